# app/models/__init__.py
from .base import Base
from .availability import AvailabilityRule, AvailabilityOverride
from .event_type import EventType
from .booking import Booking, BookingOwnerLock
from .calendar_integration import CalendarIntegration

__all__ = [
    "Base",
    "AvailabilityRule",
    "AvailabilityOverride",
    "EventType",
    "Booking",
    "BookingOwnerLock",
    "CalendarIntegration",
]
