"""
Scheduling error taxonomy.

Every rejection raised by the scheduling core is a SchedulingError subclass.
All of them are per-request and synchronous: nothing is retried by the core,
and no state has changed when one is raised.
"""

from typing import Any, Optional


class SchedulingError(Exception):
    """Base exception for scheduling rejections."""

    status_code: int = 400
    default_code: str = "SCHEDULING_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class ValidationError(SchedulingError):
    """Missing or malformed input (bad service type, duration, start >= end...)."""

    status_code = 400
    default_code = "VALIDATION_ERROR"


class AuthorizationError(SchedulingError):
    """Wrong role, or the caller does not own the referenced record."""

    status_code = 403
    default_code = "NOT_AUTHORIZED"


class NotFoundError(SchedulingError):
    """Referenced pet, groomer, appointment or time block does not exist."""

    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(SchedulingError):
    """Requested interval overlaps an occupying appointment or a time block."""

    status_code = 409
    default_code = "SLOT_CONFLICT"


class PolicyViolationError(SchedulingError):
    """Business rule refusal: cutoff window, past start, closed day, invalid transition."""

    status_code = 422
    default_code = "POLICY_VIOLATION"


class RecurrenceExpansionError(ConflictError):
    """
    Raised when a recurring time block could only be partially materialized.

    Attributes:
        created: Time block records committed before the failure
        failed_date: Occurrence date that could not be created
    """

    default_code = "RECURRENCE_PARTIAL_FAILURE"

    def __init__(self, message: str, created: list, failed_date, cause: SchedulingError):
        super().__init__(
            message,
            details={
                "created_ids": [str(block.id) for block in created],
                "failed_date": failed_date.isoformat(),
                "cause": cause.to_dict(),
            },
        )
        self.created = created
        self.failed_date = failed_date
        self.cause = cause
