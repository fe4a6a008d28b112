"""Typed service errors.

Services raise these; the HTTP layer maps ``status_code`` onto the response
and renders ``message`` in the ``{"success": false, "message": ...}`` envelope.
"""

from typing import Any


class FitConnectError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500
    default_message: str = "An internal error occurred"

    def __init__(self, message: str | None = None, **details: Any):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(FitConnectError):
    """Malformed or out-of-range input."""

    status_code = 400
    default_message = "Validation failed"


class UnauthorizedError(FitConnectError):
    """Caller identity is missing or does not match an account."""

    status_code = 401
    default_message = "Authentication required"


class NotFoundError(FitConnectError):
    """Referenced entity does not exist or is not visible to the caller."""

    status_code = 404
    default_message = "Not found"


class ForbiddenError(FitConnectError):
    """Entity exists but the caller may not act on it."""

    status_code = 403
    default_message = "Access denied"


class ConflictError(FitConnectError):
    """Uniqueness or state-machine violation."""

    status_code = 409
    default_message = "Conflict"


class InvalidOperationError(FitConnectError):
    """Operation is not valid in the entity's current state."""

    status_code = 400
    default_message = "Invalid operation"


class InternalError(FitConnectError):
    """Unexpected storage or runtime failure."""

    status_code = 500


def from_pydantic(exc: Exception) -> ValidationError:
    """Convert a pydantic ``ValidationError`` into the service error type.

    The first error's location and message become the error message; the full
    list is kept in ``details["errors"]``.
    """
    errors = exc.errors() if hasattr(exc, "errors") else []
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "value"
        message = f"{field}: {first.get('msg', 'Invalid value')}"
    else:
        message = str(exc)
    return ValidationError(
        message,
        errors=[
            {"field": ".".join(str(p) for p in e.get("loc", ())), "message": e.get("msg")}
            for e in errors
        ],
    )


__all__ = [
    "FitConnectError",
    "ValidationError",
    "UnauthorizedError",
    "NotFoundError",
    "ForbiddenError",
    "ConflictError",
    "InvalidOperationError",
    "InternalError",
    "from_pydantic",
]
