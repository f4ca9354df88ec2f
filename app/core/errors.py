"""
Scheduling error taxonomy.

User-actionable failures (a conflict, a bad interval) and infrastructure
failures (external calendar down) are separate types so callers never have to
parse messages to tell them apart. ``EXCEPTION_STATUS_CODES`` maps each type
onto the HTTP status the API layer returns for it.
"""
from __future__ import annotations

from typing import Optional

# ---------------------------------------------------------------------------
# User-facing messages
# ---------------------------------------------------------------------------

MSG_SLOT_CONFLICT = "This time was just taken, please pick another"
MSG_SYNC_DEGRADED = "Calendar sync may be delayed"


class SchedulingError(Exception):
    """Base class for every error raised by the scheduling engine"""

    code = "scheduling_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or str(self.args[0])


class InvalidInterval(SchedulingError):
    """Malformed, zero-length or negative-length interval"""

    code = "invalid_interval"


class SlotConflict(SchedulingError):
    """The requested interval is no longer free"""

    code = "slot_conflict"

    def __init__(self, message: str = MSG_SLOT_CONFLICT, conflicting_booking_id: Optional[str] = None):
        super().__init__(message)
        self.conflicting_booking_id = conflicting_booking_id


class RuleConflict(SchedulingError):
    """Two active availability rules for the same owner and weekday"""

    code = "rule_conflict"


class BookingNotFound(SchedulingError):
    """No booking with that id"""

    code = "booking_not_found"


class BookingCancelled(SchedulingError):
    """The booking was already cancelled and cannot be moved"""

    code = "booking_cancelled"


class EventTypeNotFound(SchedulingError):
    """Event type does not exist or is inactive"""

    code = "event_type_not_found"


class IntegrationNotFound(SchedulingError):
    """No calendar integration with that id for the owner"""

    code = "integration_not_found"


class CalendarSyncError(SchedulingError):
    """A single call to the external calendar failed or timed out"""

    code = "calendar_sync_error"

    def __init__(self, message: str = "", retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class SyncFailurePermanent(SchedulingError):
    """External mirroring gave up; the booking needs manual reconciliation"""

    code = "sync_failure_permanent"

    def __init__(self, booking_id: str, operation: str, message: str = ""):
        super().__init__(message or f"{operation} failed permanently for booking {booking_id}")
        self.booking_id = booking_id
        self.operation = operation


# First match wins, so subclasses go before their bases.
EXCEPTION_STATUS_CODES: list[tuple[type[SchedulingError], int]] = [
    (InvalidInterval, 400),
    (SlotConflict, 409),
    (RuleConflict, 409),
    (BookingNotFound, 404),
    (BookingCancelled, 409),
    (EventTypeNotFound, 404),
    (IntegrationNotFound, 404),
    (CalendarSyncError, 503),
    (SyncFailurePermanent, 500),
    (SchedulingError, 400),
]


def status_code_for(exc: SchedulingError) -> int:
    for exc_type, status_code in EXCEPTION_STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 500
