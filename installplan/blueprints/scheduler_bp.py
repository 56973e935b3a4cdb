"""
Scheduled Job Management Blueprint.

Endpoints:
    GET   /api/v1/scheduler/jobs                   registered jobs + DB status
    GET   /api/v1/scheduler/jobs/<name>            one job's status
    POST  /api/v1/scheduler/jobs/<name>/trigger    run a job now
    PATCH /api/v1/scheduler/jobs/<name>/toggle     enable / disable
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from installplan.services.scheduler_service import SchedulerService
from installplan.utils.errors import E, api_error, register_domain_error_handlers
from installplan.utils.helpers import parse_flag

logger = logging.getLogger(__name__)

scheduler_bp = Blueprint("scheduler", __name__, url_prefix="/api/v1/scheduler")

register_domain_error_handlers(scheduler_bp, logger)


@scheduler_bp.route("/jobs", methods=["GET"])
def list_scheduled_jobs():
    """List all registered jobs with their status."""
    jobs = SchedulerService.list_jobs()
    return jsonify({"jobs": jobs, "total": len(jobs)})


@scheduler_bp.route("/jobs/<job_name>", methods=["GET"])
def get_job_status(job_name):
    job = SchedulerService.get_job_status(job_name)
    if not job:
        return api_error(E.NOT_FOUND, f"Job '{job_name}' not found")
    return jsonify(job)


@scheduler_bp.route("/jobs/<job_name>/trigger", methods=["POST"])
def trigger_job(job_name):
    """Manually trigger a scheduled job."""
    result = SchedulerService.run_job(job_name)
    if result.get("status") == "error" and "Unknown job" in result.get("error", ""):
        return api_error(E.NOT_FOUND, result["error"])
    return jsonify(result)


@scheduler_bp.route("/jobs/<job_name>/toggle", methods=["PATCH"])
def toggle_job_status(job_name):
    """Enable or disable a scheduled job.

    Body: {enabled: true|false}
    """
    data = request.get_json(silent=True) or {}
    if data.get("enabled") is None:
        return api_error(E.VALIDATION_REQUIRED, "'enabled' field is required (true/false)")
    try:
        enabled = parse_flag(data, "enabled")
    except ValueError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc))

    result = SchedulerService.toggle_job(job_name, enabled)
    if not result:
        return api_error(E.NOT_FOUND, f"Job '{job_name}' not found")
    return jsonify(result)
