from __future__ import annotations


class BookingError(ValueError):
    """Base class for every rule violation surfaced to callers.

    ``category`` is stable and safe to branch on; the message is for humans.
    """

    category = "booking_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class MissingFieldError(BookingError):
    category = "missing_field"


class InvalidArgumentError(BookingError):
    category = "invalid_argument"


class InvalidRangeError(BookingError):
    category = "invalid_range"


class NotInFutureError(BookingError):
    category = "not_in_future"


class InvalidStateError(BookingError):
    category = "invalid_state"


class UnauthenticatedError(BookingError):
    category = "unauthenticated"


class ForbiddenError(BookingError):
    category = "forbidden"


class NotFoundError(BookingError):
    category = "not_found"


class ConflictError(BookingError):
    category = "conflict"


class CapacityExceededError(BookingError):
    category = "capacity_exceeded"


class BookingStorageError(RuntimeError):
    pass
