"""
PWBS Dependency Blueprint.

Endpoints:
  Effective set:   GET    /pwbs-dependencies?project_number=
                   GET    /pwbs-dependencies/for/<pwbs>?project_number=
  Defaults:        GET    /pwbs-dependencies/defaults
                   PUT    /pwbs-dependencies/defaults
                   DELETE /pwbs-dependencies/defaults/<from_pwbs>/<to_pwbs>
  Project edges:   GET    /projects/<pn>/pwbs-dependencies
                   PUT    /projects/<pn>/pwbs-dependencies
                   DELETE /projects/<pn>/pwbs-dependencies/<from_pwbs>/<to_pwbs>

PUT is an upsert keyed by (from_pwbs, to_pwbs): 201 when the edge is new,
200 when an existing edge was updated.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from installplan.services import dependency_service as deps
from installplan.utils.errors import E, api_error, register_domain_error_handlers

logger = logging.getLogger(__name__)

dependency_bp = Blueprint("dependencies", __name__, url_prefix="/api/v1")

register_domain_error_handlers(dependency_bp, logger)


def _edge_body() -> tuple[dict | None, tuple | None]:
    data = request.get_json(silent=True) or {}
    missing = [f for f in ("from_pwbs", "to_pwbs") if not str(data.get(f) or "").strip()]
    if missing:
        return None, api_error(
            E.VALIDATION_REQUIRED, f"{', '.join(missing)} is required",
            details={f: "required" for f in missing},
        )
    return {
        "from_pwbs": str(data["from_pwbs"]).strip(),
        "to_pwbs": str(data["to_pwbs"]).strip(),
        "dependency_type": data.get("dependency_type") or "finish_to_start",
    }, None


# ═════════════════════════════════════════════════════════════════════════
# Effective set
# ═════════════════════════════════════════════════════════════════════════


@dependency_bp.route("/pwbs-dependencies", methods=["GET"])
def list_effective():
    """Effective edges for ?project_number= (defaults only when omitted)."""
    project_number = request.args.get("project_number") or None
    items = [d.to_dict() for d in deps.resolve_dependencies(project_number)]
    return jsonify({"project_number": project_number, "items": items, "total": len(items)})


@dependency_bp.route("/pwbs-dependencies/for/<pwbs>", methods=["GET"])
def list_for_pwbs(pwbs):
    project_number = request.args.get("project_number") or None
    items = [d.to_dict() for d in deps.get_dependencies_for_pwbs(pwbs, project_number)]
    return jsonify({"pwbs": pwbs, "project_number": project_number, "items": items,
                    "total": len(items)})


# ═════════════════════════════════════════════════════════════════════════
# Defaults
# ═════════════════════════════════════════════════════════════════════════


@dependency_bp.route("/pwbs-dependencies/defaults", methods=["GET"])
def list_defaults():
    items = [d.to_dict() for d in deps.get_default_dependencies()]
    return jsonify({"items": items, "total": len(items)})


@dependency_bp.route("/pwbs-dependencies/defaults", methods=["PUT"])
def put_default():
    """Create or update a template edge.

    Body: {from_pwbs, to_pwbs, dependency_type?}
    """
    body, err = _edge_body()
    if err:
        return err
    dep, created = deps.set_default_dependency(**body)
    return jsonify(dep.to_dict()), 201 if created else 200


@dependency_bp.route("/pwbs-dependencies/defaults/<from_pwbs>/<to_pwbs>", methods=["DELETE"])
def delete_default(from_pwbs, to_pwbs):
    removed = deps.remove_default_dependency(from_pwbs, to_pwbs)
    return jsonify({"deleted": True, "dependency": removed})


# ═════════════════════════════════════════════════════════════════════════
# Project overrides
# ═════════════════════════════════════════════════════════════════════════


@dependency_bp.route("/projects/<project_number>/pwbs-dependencies", methods=["GET"])
def list_overrides(project_number):
    items = [d.to_dict() for d in deps.get_project_overrides(project_number)]
    return jsonify({"project_number": project_number, "items": items, "total": len(items)})


@dependency_bp.route("/projects/<project_number>/pwbs-dependencies", methods=["PUT"])
def put_override(project_number):
    """Create or update a project-specific edge.

    Body: {from_pwbs, to_pwbs, dependency_type?}
    """
    body, err = _edge_body()
    if err:
        return err
    dep, created = deps.set_project_dependency(project_number, **body)
    return jsonify(dep.to_dict()), 201 if created else 200


@dependency_bp.route(
    "/projects/<project_number>/pwbs-dependencies/<from_pwbs>/<to_pwbs>", methods=["DELETE"],
)
def delete_override(project_number, from_pwbs, to_pwbs):
    removed = deps.remove_project_dependency(project_number, from_pwbs, to_pwbs)
    return jsonify({"deleted": True, "dependency": removed})
