"""
Service-layer exception hierarchy.

Services raise these types before touching the session, so a raised error
never leaves a half-applied mutation behind. Blueprints register handlers
against them once and map them to consistent HTTP status codes.

Dependency ordering problems are NOT exceptions: they are returned to the
caller as warning data and never block a write.

Usage:
    from installplan.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="WorkPackage", resource_id="PL-100", project_number="P1")
    raise ValidationError("dependency_type is invalid", details={"dependency_type": "..."})
"""


class NotFoundError(Exception):
    """Raised when a required record does not exist.

    Args:
        resource: Human-readable entity name (e.g. "WorkPackage", "PwbsDependency").
        resource_id: The key that was looked up.
        project_number: Optional project scope the lookup was made in.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        project_number: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.project_number = project_number
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" {resource_id}"
        msg += " not found"
        if project_number is not None:
            msg += f" in project {project_number}"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    code = "ERR_VALIDATION_INVALID"

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidRangeError(ValidationError):
    """Raised when a planned start is not strictly before the planned end."""

    code = "ERR_INVALID_RANGE"

    def __init__(self, start, end) -> None:
        super().__init__(
            "planned_start must be before planned_end",
            details={
                "planned_start": start.isoformat() if start else None,
                "planned_end": end.isoformat() if end else None,
            },
        )


class MissingScopeIdError(ValidationError):
    """Raised when a non-project EVM scope is requested without a scope id."""

    code = "ERR_MISSING_SCOPE_ID"

    def __init__(self, scope: str) -> None:
        super().__init__(
            f"scope_id is required for scope type '{scope}'",
            details={"scope": scope},
        )
