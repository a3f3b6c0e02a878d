"""
Typed error taxonomy for the booking engine.

Every error here is recoverable: the caller shows the message and lets
the user retry with corrected input. Persistence failures are not part
of this hierarchy and propagate untouched.
"""

from datetime import datetime
from typing import Optional


class EngineError(Exception):
    """Base class for all recoverable booking engine errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ScheduleUnavailableError(EngineError):
    """Date or hour is outside the recurring template, blocked by a day-off, or too soon."""


class OverlapDetectedError(EngineError):
    """Candidate slot collides with an active booking."""

    def __init__(self, message: str, booking_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.booking_id = booking_id


class NonContiguousSelectionError(EngineError):
    """A selection add neither extends a run nor starts a valid new one."""


class BelowMinimumDurationError(EngineError):
    """A selection remove would leave a run shorter than the minimum span."""


class InsufficientAvailabilityError(EngineError):
    """The mandatory minimum block cannot be carved out from the first pick."""


class MinimumBookingNotMetError(EngineError):
    """No selected run reaches the minimum span; the selection cannot be submitted."""


class StatusConflictError(EngineError):
    """Booking is not in the status the transition expects, or lost a race."""

    def __init__(
        self,
        message: str,
        current: Optional[str] = None,
        expected: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.current = current
        self.expected = expected


class UnauthorizedError(EngineError):
    """Actor is not the owning party for the attempted transition."""


class InvalidStreamLinkError(EngineError):
    """Stream link is not a syntactically valid http(s) URL."""


class BookingNotFoundError(EngineError):
    """No booking exists with the requested id."""


class RateLimitedError(EngineError):
    """Price change attempted before the cooldown window elapsed."""

    def __init__(self, message: str, retry_at: datetime) -> None:
        super().__init__(message)
        self.retry_at = retry_at


class PriceBoundError(EngineError):
    """Requested price falls outside the allowed change band."""

    def __init__(self, message: str, min_price: int, max_price: int) -> None:
        super().__init__(message)
        self.min_price = min_price
        self.max_price = max_price


class ReasonRequiredError(EngineError):
    """A cancellation or reschedule was attempted without a reason."""


class InvalidRescheduleError(EngineError):
    """Reschedule times are missing, naive or out of order."""


class RescheduleNotAllowedError(EngineError):
    """Booking was already rescheduled once, or the session starts too soon."""
