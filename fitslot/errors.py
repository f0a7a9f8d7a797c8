"""
Booking domain errors.

Every caller-facing failure of the engine is one of these. Services raise
them and never retry; the HTTP layer maps them to a status code and a
machine-readable code so clients can tell "slot was just taken" apart from
"not enough credits" or "too late to cancel".
"""

from typing import Any, Dict, Optional


class BookingError(Exception):
    """Base class for all recoverable booking errors"""

    code = 'BOOKING_ERROR'
    http_status = 400

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message
        if code:
            self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        payload = {'error': self.message, 'code': self.code}
        if self.details:
            payload['details'] = self.details
        return payload


class NotFoundError(BookingError):
    code = 'NOT_FOUND'
    http_status = 404


class InvalidStateError(BookingError):
    code = 'INVALID_STATE'
    http_status = 409


class AlreadyCancelledError(InvalidStateError):
    code = 'ALREADY_CANCELLED'


class SlotUnavailableError(BookingError):
    code = 'SLOT_UNAVAILABLE'
    http_status = 409


class InsufficientCreditsError(BookingError):
    code = 'INSUFFICIENT_CREDITS'
    http_status = 402


class NotOwnerError(BookingError):
    code = 'NOT_OWNER'
    http_status = 403


class CancellationWindowPassedError(BookingError):
    code = 'CANCELLATION_WINDOW_PASSED'
    http_status = 422


class ValidationError(BookingError):
    code = 'VALIDATION_ERROR'
    http_status = 400
