# app/schemas/__init__.py
from .scheduling import (
    BookingStatus,
    SyncStatus,
    SyncDirection,
    ConnectionStatus,
    AvailabilityRuleRecord,
    AvailabilityOverrideRecord,
    EventTypeRecord,
    BookerIdentity,
    BookingRecord,
    CalendarIntegrationRecord,
    ExternalBusyInterval,
    BookableSlot,
    BookingDraft,
)

from .calendar_events import (
    AvailabilityResponse,
    AvailableDay,
    AvailableDaysResponse,
    CreateBookingRequest,
    CancelBookingRequest,
    RescheduleBookingRequest,
    BookingResponse,
    AvailabilityRuleIn,
    ReplaceRulesRequest,
    AvailabilityRuleOut,
    DragSelectionRequest,
)
