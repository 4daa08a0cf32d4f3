# app/core/errors.py
"""
Typed failures raised by the scheduling engine.

Every kind carries a stable ``code`` and the HTTP status the API layer maps it
to. ``reresolve`` marks errors meaning the schedule changed under the caller
(fetch availability again); ``retryable`` marks transient store failures that
the caller may retry unchanged.
"""
from __future__ import annotations

from typing import Any, Optional


class BookingError(Exception):
    code = "booking_error"
    http_status = 400
    retryable = False
    reresolve = False

    def __init__(self, message: str = "", **context: Any):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "error": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "reresolve": self.reresolve,
        }
        if self.context:
            payload["context"] = {k: _plain(v) for k, v in self.context.items()}
        return payload


def _plain(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


class ValidationError(BookingError):
    code = "validation_error"
    http_status = 422


class InvalidRange(BookingError):
    code = "invalid_range"
    http_status = 422


class InvalidDuration(BookingError):
    code = "invalid_duration"
    http_status = 422


class NotFound(BookingError):
    code = "not_found"
    http_status = 404


class NotAuthorized(BookingError):
    code = "not_authorized"
    http_status = 403


class SlotUnavailable(BookingError):
    code = "slot_unavailable"
    http_status = 409
    reresolve = True


class SlotConflict(BookingError):
    code = "slot_conflict"
    http_status = 409
    reresolve = True


class InvalidTransition(BookingError):
    code = "invalid_transition"
    http_status = 409


class PaymentRequired(BookingError):
    code = "payment_required"
    http_status = 402


class PractitionerInactive(BookingError):
    code = "practitioner_inactive"
    http_status = 409


class ClinicInactive(BookingError):
    code = "clinic_inactive"
    http_status = 409


class StoreUnavailable(BookingError):
    code = "store_unavailable"
    http_status = 503
    retryable = True

    def __init__(self, message: str = "", operation: Optional[str] = None, **context: Any):
        if operation:
            context["operation"] = operation
        super().__init__(message or "Booking store is temporarily unavailable", **context)
