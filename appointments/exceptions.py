"""
Errors raised by the scheduling engine.

All of them are recoverable by the caller: views translate them to
`{"detail": ..., "code": ...}` responses and never retry on their own.
"""


class BookingError(Exception):
    """Base exception for booking failures."""

    status_code = 400

    def __init__(self, message, code="booking_error"):
        self.message = message
        self.code = code
        super().__init__(self.message)


class SlotNoLongerAvailableError(BookingError):
    """Raised when the requested slot is no longer available."""

    status_code = 409

    def __init__(self, message="This time slot is no longer available. Please select another slot."):
        super().__init__(message, code="slot_unavailable")


class PastSlotError(BookingError):
    """Raised when the requested start time has already elapsed."""

    def __init__(self, message="Cannot book a slot that has already started."):
        super().__init__(message, code="past_slot")


class LocationMismatchError(BookingError):
    """Raised when a location is not valid for the provider at that time."""

    def __init__(self, message="This location is not available for the provider at the selected time."):
        super().__init__(message, code="location_mismatch")


class OverlapsExistingCommitmentError(BookingError):
    """Raised when confirming a guest visit would double-book the provider."""

    status_code = 409

    def __init__(self, message="The provider already has a commitment overlapping this window."):
        super().__init__(message, code="overlaps_commitment")


class InvalidTransitionError(BookingError):
    """Raised on a status change that the lifecycle does not allow."""

    status_code = 409

    def __init__(self, message="This status change is not allowed."):
        super().__init__(message, code="invalid_transition")


class InvalidIntervalError(BookingError):
    """Raised when calendar, break or closure data is malformed."""

    def __init__(self, message="Start must be before end."):
        super().__init__(message, code="invalid_interval")


class NotFoundError(BookingError):
    """Raised when a referenced provider, booking or visit does not exist."""

    status_code = 404

    def __init__(self, message="Not found."):
        super().__init__(message, code="not_found")
