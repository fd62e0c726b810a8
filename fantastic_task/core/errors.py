"""Error taxonomy and classification for task engine operations."""

from enum import Enum

from pydantic import BaseModel

from fantastic_task.core.db_client import DatabaseError, RecordNotFoundError


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    # Input errors
    ERR_VALIDATION = "ERR_VALIDATION"
    ERR_INVALID_STATE_TRANSITION = "ERR_INVALID_STATE_TRANSITION"
    ERR_INVALID_RECURRENCE_PATTERN = "ERR_INVALID_RECURRENCE_PATTERN"
    ERR_INSUFFICIENT_POINTS = "ERR_INSUFFICIENT_POINTS"

    # Lookup errors
    ERR_NOT_FOUND = "ERR_NOT_FOUND"

    # Permission errors
    ERR_PERMISSION_DENIED = "ERR_PERMISSION_DENIED"

    # Store errors
    ERR_STORE = "ERR_STORE"

    # Generic errors
    ERR_UNKNOWN = "ERR_UNKNOWN"


class FantasticTaskError(Exception):
    """Base class for errors raised by the task engine."""

    code: str = ErrorCode.ERR_UNKNOWN

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(FantasticTaskError, ValueError):
    """Missing identifiers, malformed input or an illegal state transition."""

    code = ErrorCode.ERR_VALIDATION


class NotFoundError(FantasticTaskError, LookupError):
    """A referenced task, assignment, member or completion does not exist."""

    code = ErrorCode.ERR_NOT_FOUND


class PermissionDeniedError(FantasticTaskError, PermissionError):
    """The acting member's role does not allow the attempted action."""

    code = ErrorCode.ERR_PERMISSION_DENIED


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity


_SUGGESTIONS: dict[str, tuple[str, ErrorSeverity]] = {
    ErrorCode.ERR_VALIDATION: ("Check the submitted values and try again.", ErrorSeverity.LOW),
    ErrorCode.ERR_INVALID_STATE_TRANSITION: (
        "Reload the task list to see the completion's current status.",
        ErrorSeverity.LOW,
    ),
    ErrorCode.ERR_INVALID_RECURRENCE_PATTERN: (
        "Use formats like 'daily', 'every 3 days', 'Mon,Wed,Fri' or 'once'.",
        ErrorSeverity.LOW,
    ),
    ErrorCode.ERR_INSUFFICIENT_POINTS: ("Earn more points before spending them.", ErrorSeverity.LOW),
    ErrorCode.ERR_NOT_FOUND: ("Reload the task list; it may have been removed.", ErrorSeverity.LOW),
    ErrorCode.ERR_PERMISSION_DENIED: (
        "Ask a family admin if you think this is an error.",
        ErrorSeverity.MEDIUM,
    ),
    ErrorCode.ERR_STORE: ("Check your connection and try again.", ErrorSeverity.HIGH),
}


def to_error_response(exception: Exception) -> ErrorResponse:
    """Classify an exception and return a structured response with a recovery suggestion.

    Engine errors keep their own code. Store errors are passed through with
    their original message. Anything else is reported as unknown.

    Args:
        exception: The exception raised during the operation

    Returns:
        ErrorResponse with code, message, suggestion, and severity
    """
    if isinstance(exception, FantasticTaskError):
        code = exception.code
        message = exception.message
    elif isinstance(exception, RecordNotFoundError):
        code = ErrorCode.ERR_NOT_FOUND
        message = str(exception)
    elif isinstance(exception, DatabaseError):
        code = ErrorCode.ERR_STORE
        message = str(exception)
    else:
        return ErrorResponse(
            code=ErrorCode.ERR_UNKNOWN,
            message=str(exception) or "An unexpected error occurred.",
            suggestion="Please try again later. If the problem persists, contact support.",
            severity=ErrorSeverity.MEDIUM,
        )

    suggestion, severity = _SUGGESTIONS.get(code, ("Please try again later.", ErrorSeverity.MEDIUM))
    return ErrorResponse(code=code, message=message, suggestion=suggestion, severity=severity)
