"""Custom exceptions used across the appointment system package.

Every failure the scheduling core reports maps to exactly one of these
classes, and each class carries a stable machine-readable ``code`` plus the
HTTP status a web layer should answer with.
"""


class SchedulingError(Exception):
    """Base class for all scheduling errors."""

    code = "error"
    status_code = 500
    retryable = False


class ValidationError(SchedulingError):
    """Raised when incoming data fails domain or business validation."""

    code = "invalid_argument"
    status_code = 400


class ResourceNotFoundError(SchedulingError):
    """Raised when a doctor or appointment lookup returns no result."""

    code = "not_found"
    status_code = 404


class TimeSlotOccupiedError(SchedulingError):
    """Raised when a doctor already has an appointment overlapping the requested time."""

    code = "conflict"
    status_code = 409


class DatabaseConnectionError(SchedulingError):
    """Raised when the store cannot complete an operation."""

    code = "unavailable"
    retryable = True


class StoreTimeoutError(DatabaseConnectionError):
    """Raised when a store operation did not finish before its deadline."""

    code = "timeout"


def error_response(exc: SchedulingError) -> tuple[int, dict[str, str]]:
    """Return the status code and JSON body describing ``exc``."""
    message = str(exc) or exc.__class__.__name__
    return exc.status_code, {"error": message, "code": exc.code}


__all__ = [
    "SchedulingError",
    "ValidationError",
    "ResourceNotFoundError",
    "TimeSlotOccupiedError",
    "DatabaseConnectionError",
    "StoreTimeoutError",
    "error_response",
]
