"""
Work Package Blueprint: aggregation, lookups and material readiness.

Endpoints:
  Aggregation:  POST /projects/<pn>/work-packages/aggregate
  Lookups:      GET  /projects/<pn>/work-packages
                GET  /projects/<pn>/work-packages/issues
                GET  /projects/<pn>/work-packages/<pl>
  Readiness:    POST /projects/<pn>/work-packages/<pl>/readiness   (recompute + store)
                GET  /projects/<pn>/work-packages/<pl>/readiness   (stored value)
                POST /projects/<pn>/readiness                      (whole project)
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify

from installplan.services import readiness_service, work_package_service
from installplan.utils.errors import register_domain_error_handlers

logger = logging.getLogger(__name__)

work_package_bp = Blueprint("work_packages", __name__, url_prefix="/api/v1/projects")

register_domain_error_handlers(work_package_bp, logger)


# ── Aggregation & lookups ─────────────────────────────────────────────────


@work_package_bp.route("/<project_number>/work-packages/aggregate", methods=["POST"])
def aggregate(project_number):
    """Rebuild work-package aggregates from the project's supply items."""
    result = work_package_service.aggregate_work_packages(project_number)
    return jsonify({"project_number": project_number, **result})


@work_package_bp.route("/<project_number>/work-packages", methods=["GET"])
def list_work_packages(project_number):
    items = [wp.to_dict() for wp in work_package_service.list_work_packages(project_number)]
    return jsonify({"project_number": project_number, "items": items, "total": len(items)})


@work_package_bp.route("/<project_number>/work-packages/issues", methods=["GET"])
def list_with_issues(project_number):
    """Work packages with items in installation status ``issue``, most first."""
    items = work_package_service.get_work_packages_with_issues(project_number)
    return jsonify({"project_number": project_number, "items": items, "total": len(items)})


@work_package_bp.route("/<project_number>/work-packages/<pl_number>", methods=["GET"])
def get_work_package(project_number, pl_number):
    return jsonify(work_package_service.get_work_package(project_number, pl_number))


# ── Readiness ─────────────────────────────────────────────────────────────


@work_package_bp.route("/<project_number>/work-packages/<pl_number>/readiness", methods=["POST"])
def calculate_readiness(project_number, pl_number):
    result = readiness_service.calculate_readiness(project_number, pl_number)
    return jsonify(result.to_dict())


@work_package_bp.route("/<project_number>/work-packages/<pl_number>/readiness", methods=["GET"])
def get_readiness(project_number, pl_number):
    return jsonify(readiness_service.get_readiness_status(project_number, pl_number))


@work_package_bp.route("/<project_number>/readiness", methods=["POST"])
def calculate_project_readiness(project_number):
    return jsonify(readiness_service.calculate_project_readiness(project_number))
