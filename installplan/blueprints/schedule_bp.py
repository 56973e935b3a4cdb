"""
Work-Package Scheduling Blueprint.

Endpoints:
  POST /projects/<pn>/work-packages/<pl>/schedule            set planned dates
  POST /projects/<pn>/work-packages/<pl>/schedule/validate   dry run, nothing stored
  POST /projects/<pn>/work-packages/<pl>/status              schedule_status transition
  POST /projects/<pn>/downstream-updates                     apply cascade proposals

Dependency problems come back as warnings inside a 200 response; only a
bad date range (422) or an unknown work package (404) fails the call.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from installplan.services import schedule_service
from installplan.services.schedule_service import DownstreamProposal
from installplan.utils.errors import E, api_error, register_domain_error_handlers
from installplan.utils.helpers import parse_datetime, parse_flag

logger = logging.getLogger(__name__)

schedule_bp = Blueprint("schedule", __name__, url_prefix="/api/v1/projects")

register_domain_error_handlers(schedule_bp, logger)


def _parse_range(data: dict):
    """Return ((start, end), None) or (None, error_response)."""
    missing = [f for f in ("planned_start", "planned_end") if not data.get(f)]
    if missing:
        return None, api_error(
            E.VALIDATION_REQUIRED, f"{', '.join(missing)} is required",
            details={f: "required" for f in missing},
        )
    try:
        return (parse_datetime(data["planned_start"]), parse_datetime(data["planned_end"])), None
    except ValueError as exc:
        return None, api_error(E.VALIDATION_INVALID, str(exc))


@schedule_bp.route("/<project_number>/work-packages/<pl_number>/schedule", methods=["POST"])
def schedule(project_number, pl_number):
    """Set planned dates.

    Body: {planned_start, planned_end, estimated_duration_days?, override?, cascade?}
    """
    data = request.get_json(silent=True) or {}
    dates, err = _parse_range(data)
    if err:
        return err

    duration = data.get("estimated_duration_days")
    if duration is not None:
        try:
            duration = float(duration)
        except (TypeError, ValueError):
            return api_error(E.VALIDATION_INVALID, "estimated_duration_days must be a number")

    try:
        override = parse_flag(data, "override")
        cascade = parse_flag(data, "cascade")
    except ValueError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc))

    result = schedule_service.schedule_work_package(
        project_number, pl_number, *dates,
        estimated_duration_days=duration,
        override=override,
        cascade=cascade,
    )
    return jsonify(result)


@schedule_bp.route(
    "/<project_number>/work-packages/<pl_number>/schedule/validate", methods=["POST"],
)
def validate(project_number, pl_number):
    """Validate candidate dates without storing them.

    Body: {planned_start, planned_end}
    """
    data = request.get_json(silent=True) or {}
    dates, err = _parse_range(data)
    if err:
        return err
    return jsonify(schedule_service.validate_schedule(project_number, pl_number, *dates))


@schedule_bp.route("/<project_number>/work-packages/<pl_number>/status", methods=["POST"])
def update_status(project_number, pl_number):
    """Body: {status}"""
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if not status:
        return api_error(E.VALIDATION_REQUIRED, "status is required",
                         details={"status": "required"})
    return jsonify(schedule_service.update_work_package_status(project_number, pl_number, status))


@schedule_bp.route("/<project_number>/downstream-updates", methods=["POST"])
def apply_downstream(project_number):
    """Apply cascade proposals returned by the schedule endpoint.

    Body: {proposals: [{work_package_id, new_start}, ...]}
    """
    data = request.get_json(silent=True) or {}
    raw = data.get("proposals")
    if not isinstance(raw, list):
        return api_error(E.VALIDATION_REQUIRED, "proposals must be a list",
                         details={"proposals": "required"})

    proposals = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            return api_error(E.VALIDATION_INVALID, f"proposals[{index}] must be an object")
        try:
            wp_id = int(entry.get("work_package_id"))
            new_start = parse_datetime(entry.get("new_start"))
        except (TypeError, ValueError) as exc:
            return api_error(E.VALIDATION_INVALID, f"proposals[{index}]: {exc}")
        if new_start is None:
            return api_error(E.VALIDATION_REQUIRED, f"proposals[{index}].new_start is required")
        proposals.append(DownstreamProposal(work_package_id=wp_id, new_start=new_start))

    result = schedule_service.apply_downstream_updates(proposals, project_number=project_number)
    return jsonify(result)
