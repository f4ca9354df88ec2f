# app/schemas/scheduling.py
"""Domain records passed between the storage collaborator and the engine"""
from __future__ import annotations

import datetime as dt
from datetime import datetime, time, timezone
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.core.errors import InvalidInterval
from app.services.scheduling.intervals import TimeInterval, get_zone


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class SyncStatus(str, Enum):
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"
    FAILED_PERMANENT = "failed_permanent"
    SYNC_DISABLED = "sync_disabled"


class SyncDirection(str, Enum):
    READ_ONLY = "read_only"
    WRITE_ONLY = "write_only"
    BIDIRECTIONAL = "bidirectional"


class ConnectionStatus(str, Enum):
    CONNECTED = "connected"
    AUTH_REVOKED = "auth_revoked"
    ERROR = "error"


def validate_timezone_name(value: str) -> str:
    try:
        get_zone(value)
    except InvalidInterval as e:
        raise ValueError(e.message) from e
    return value


class AvailabilityRuleRecord(BaseModel):
    """Weekly availability for one weekday, in the owner's local wall clock"""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[UUID] = None
    owner_id: UUID
    day_of_week: int = Field(..., ge=0, le=6, description="0=Monday, 6=Sunday")
    start_time: time
    end_time: time
    timezone: str = "UTC"
    is_active: bool = True

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        return validate_timezone_name(v)

    @model_validator(mode="after")
    def start_before_end(self) -> "AvailabilityRuleRecord":
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class AvailabilityOverrideRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[UUID] = None
    owner_id: UUID
    date: dt.date
    is_available: bool
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    timezone: str = "UTC"
    reason: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        return validate_timezone_name(v)

    @model_validator(mode="after")
    def hours_are_complete(self) -> "AvailabilityOverrideRecord":
        if (self.start_time is None) != (self.end_time is None):
            raise ValueError("start_time and end_time must be given together")
        if self.start_time is not None and self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self

    @property
    def has_custom_hours(self) -> bool:
        return self.is_available and self.start_time is not None


class EventTypeRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_id: UUID
    name: str
    description: Optional[str] = None
    duration_minutes: int = Field(..., gt=0)
    buffer_before_minutes: int = Field(0, ge=0)
    buffer_after_minutes: int = Field(0, ge=0)
    is_active: bool = True


class BookerIdentity(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    company: Optional[str] = None
    notes: Optional[str] = None


class BookingRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_id: UUID
    event_type_id: Optional[UUID] = None
    start_time: datetime
    end_time: datetime
    status: BookingStatus = BookingStatus.CONFIRMED
    booker_name: str
    booker_email: str
    booker_company: Optional[str] = None
    notes: Optional[str] = None
    external_ref: Optional[str] = None
    sync_status: SyncStatus = SyncStatus.PENDING
    sync_attempts: int = 0
    last_sync_error: Optional[str] = None
    rescheduled_from_id: Optional[UUID] = None
    created_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def as_utc(cls, v: datetime) -> datetime:
        # Some drivers hand back naive UTC values
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval(self.start_time, self.end_time)

    @property
    def is_confirmed(self) -> bool:
        return self.status == BookingStatus.CONFIRMED


class CalendarIntegrationRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_id: UUID
    provider: str = "google"
    calendar_id: str = "primary"
    is_active: bool = True
    is_primary: bool = False
    include_in_availability: bool = True
    sync_direction: SyncDirection = SyncDirection.BIDIRECTIONAL
    connection_status: ConnectionStatus = ConnectionStatus.CONNECTED
    access_token_encrypted: Optional[bytes] = Field(None, repr=False)
    refresh_token_encrypted: Optional[bytes] = Field(None, repr=False)
    token_expires_at: Optional[datetime] = None

    @property
    def can_write(self) -> bool:
        return self.is_active and self.sync_direction != SyncDirection.READ_ONLY


class ExternalBusyInterval(BaseModel):
    """Busy block reported by an external calendar; never persisted"""

    start: datetime
    end: datetime
    source_calendar_id: str

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval(self.start, self.end)


class BookableSlot(BaseModel):
    owner_id: UUID
    start: datetime
    end: datetime

    @classmethod
    def from_interval(cls, owner_id: UUID, interval: TimeInterval) -> "BookableSlot":
        return cls(owner_id=owner_id, start=interval.start, end=interval.end)

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval(self.start, self.end)


class BookingDraft(BaseModel):
    """A finished drag on the weekly grid, ready to be turned into a booking"""

    owner_id: UUID
    start: datetime
    end: datetime
    duration_minutes: int
    timezone: str = "UTC"
