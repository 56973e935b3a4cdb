"""
EVM Analytics Blueprint.

Endpoints (all GET, read-only):
  /projects/<pn>/evm?scope=&scope_id=&as_of=   one scope, live
  /projects/<pn>/evm/pwbs                      every PWBS code, lowest SPI first
  /projects/<pn>/evm/pwbs/<code>
  /projects/<pn>/evm/work-packages             every work package, lowest SPI first
  /projects/<pn>/evm/work-packages/<pl>
  /projects/<pn>/evm/trend?days=&scope=&scope_id=   stored daily snapshots

``as_of`` is ISO-8601 (naive = UTC) and defaults to now.
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from installplan.services import evm_service
from installplan.utils.errors import E, api_error, register_domain_error_handlers
from installplan.utils.helpers import parse_datetime

logger = logging.getLogger(__name__)

evm_bp = Blueprint("evm", __name__, url_prefix="/api/v1/projects")

register_domain_error_handlers(evm_bp, logger)


def _as_of():
    """Return (as_of, None) or (None, error_response)."""
    try:
        return parse_datetime(request.args.get("as_of")), None
    except ValueError as exc:
        return None, api_error(E.VALIDATION_INVALID, str(exc), details={"as_of": "invalid"})


@evm_bp.route("/<project_number>/evm", methods=["GET"])
def get_evm(project_number):
    as_of, err = _as_of()
    if err:
        return err
    metrics = evm_service.calculate_evm(
        project_number,
        request.args.get("scope") or "project",
        request.args.get("scope_id") or None,
        as_of,
    )
    return jsonify(metrics.to_dict())


@evm_bp.route("/<project_number>/evm/pwbs", methods=["GET"])
def list_pwbs_evm(project_number):
    as_of, err = _as_of()
    if err:
        return err
    items = [m.to_dict() for m in evm_service.get_evm_by_all_pwbs(project_number, as_of)]
    return jsonify({"project_number": project_number, "items": items, "total": len(items)})


@evm_bp.route("/<project_number>/evm/pwbs/<pwbs_code>", methods=["GET"])
def get_pwbs_evm(project_number, pwbs_code):
    as_of, err = _as_of()
    if err:
        return err
    return jsonify(evm_service.get_evm_by_pwbs(project_number, pwbs_code, as_of).to_dict())


@evm_bp.route("/<project_number>/evm/work-packages", methods=["GET"])
def list_work_package_evm(project_number):
    as_of, err = _as_of()
    if err:
        return err
    items = [m.to_dict() for m in evm_service.get_evm_by_all_work_packages(project_number, as_of)]
    return jsonify({"project_number": project_number, "items": items, "total": len(items)})


@evm_bp.route("/<project_number>/evm/work-packages/<pl_number>", methods=["GET"])
def get_work_package_evm(project_number, pl_number):
    as_of, err = _as_of()
    if err:
        return err
    return jsonify(evm_service.get_evm_by_work_package(project_number, pl_number, as_of).to_dict())


@evm_bp.route("/<project_number>/evm/trend", methods=["GET"])
def get_trend(project_number):
    """Stored snapshots from today - days onward (default EVM_TREND_DEFAULT_DAYS)."""
    days = request.args.get("days", type=int)
    if days is None:
        if request.args.get("days"):
            return api_error(E.VALIDATION_INVALID, "days must be an integer",
                             details={"days": "invalid"})
        days = current_app.config.get("EVM_TREND_DEFAULT_DAYS", 30)

    snapshots = evm_service.get_evm_trend(
        project_number, days,
        scope=request.args.get("scope") or None,
        scope_id=request.args.get("scope_id") or None,
    )
    return jsonify({
        "project_number": project_number,
        "days": days,
        "items": [s.to_dict() for s in snapshots],
        "total": len(snapshots),
    })
