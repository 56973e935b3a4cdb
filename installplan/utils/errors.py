"""Standardised API error responses.

Usage
-----
    from installplan.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Work package not found")
    return api_error(E.VALIDATION_REQUIRED, "planned_start is required")
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    # Malformed input – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Business-rule failures – HTTP 422
    INVALID_RANGE = "ERR_INVALID_RANGE"
    MISSING_SCOPE_ID = "ERR_MISSING_SCOPE_ID"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Rate limit – HTTP 429
    RATE_LIMITED = "ERR_RATE_LIMITED"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.INVALID_RANGE: 422,
    E.MISSING_SCOPE_ID: 422,
    E.NOT_FOUND: 404,
    E.RATE_LIMITED: 429,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (offending fields, scope, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


_HTTP_CODES: dict[int, str] = {
    404: E.NOT_FOUND,
    429: E.RATE_LIMITED,
    500: E.INTERNAL,
}


def http_error(error):
    """JSON rendering of a werkzeug HTTPException (404, 405, 429, ...)."""
    status = error.code or 500
    code = _HTTP_CODES.get(status, E.VALIDATION_INVALID if status < 500 else E.INTERNAL)
    return api_error(code, error.description or error.name, status=status)


def register_domain_error_handlers(bp, logger) -> None:
    """Attach the service-exception handlers shared by every API blueprint.

    NotFoundError -> 404, ValidationError (and subclasses) -> 422 carrying the
    subclass error code, anything else -> logged and 500.
    """
    from werkzeug.exceptions import HTTPException

    from installplan.core.exceptions import NotFoundError, ValidationError

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(error.code, str(error), status=422, details=error.details)

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return http_error(error)
        from flask import request

        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
