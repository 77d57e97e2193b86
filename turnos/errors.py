# turnos/errors.py

from enum import Enum


class RejectionReason(str, Enum):
    OUTSIDE_BUSINESS_HOURS = "OUTSIDE_BUSINESS_HOURS"
    NON_WORKING_DAY = "NON_WORKING_DAY"
    INSUFFICIENT_LEAD_TIME = "INSUFFICIENT_LEAD_TIME"
    MAX_ADVANCE_EXCEEDED = "MAX_ADVANCE_EXCEEDED"
    BARBER_NOT_FOUND = "BARBER_NOT_FOUND"
    BARBER_INVALID_ROLE = "BARBER_INVALID_ROLE"
    BARBER_UNAVAILABLE = "BARBER_UNAVAILABLE"
    SLOT_BLOCKED = "SLOT_BLOCKED"
    CLIENT_REQUIRED = "CLIENT_REQUIRED"
    CLIENT_NOT_FOUND = "CLIENT_NOT_FOUND"
    CLIENT_INVALID_ROLE = "CLIENT_INVALID_ROLE"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    SLOT_CONFLICT = "SLOT_CONFLICT"
    APPOINTMENT_NOT_FOUND = "APPOINTMENT_NOT_FOUND"
    NOT_OWNER = "NOT_OWNER"
    ROLE_NOT_PERMITTED = "ROLE_NOT_PERMITTED"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
    CANCELLATION_WINDOW_VIOLATED = "CANCELLATION_WINDOW_VIOLATED"
    ALREADY_TERMINAL = "ALREADY_TERMINAL"
    NOTE_NOT_ALLOWED = "NOTE_NOT_ALLOWED"
    INVALID_BLOCK = "INVALID_BLOCK"


class SchedulingError(Exception):
    """Expected, typed outcome of a scheduling operation.

    Carries a machine-checkable ``reason`` plus a human-readable message.
    Subclasses decide the HTTP status the API layer answers with.
    """

    status_code = 400
    retryable = False

    def __init__(self, reason: RejectionReason, message: str):
        super().__init__(message)
        self.reason = reason
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.reason.value, "detail": self.message, "retryable": self.retryable}


class ValidationRejection(SchedulingError):
    status_code = 422


class NotFoundError(SchedulingError):
    status_code = 404


class AuthorizationError(SchedulingError):
    status_code = 403


class SlotConflict(SchedulingError):
    """The pre-check found an active appointment in the requested range."""

    status_code = 409

    def __init__(self, message: str = "The barber already has an appointment in that time range"):
        super().__init__(RejectionReason.SLOT_CONFLICT, message)


class CommitConflict(SlotConflict):
    """Another request took the slot between our check and our commit."""

    retryable = True


class StateConflict(SchedulingError):
    status_code = 409
