# app/schemas/calendar_events.py
"""Request and response bodies for the availability and booking API"""
from __future__ import annotations

import datetime as dt
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from app.config.settings import get_settings
from app.schemas.scheduling import (
    BookableSlot,
    BookingRecord,
    ConnectionStatus,
    SyncDirection,
    validate_timezone_name,
)


class AvailabilityResponse(BaseModel):
    """Bookable slots for an owner over a date range"""
    owner_id: UUID = Field(..., description="Owner whose calendar was queried")
    start: datetime = Field(..., description="Range start (UTC)")
    end: datetime = Field(..., description="Range end (UTC)")
    event_type_id: Optional[UUID] = Field(None, description="Event type used for chunking")
    slots: List[BookableSlot] = Field(default_factory=list)
    partial: bool = Field(False, description="External calendar could not be read")
    sync_notice: Optional[str] = Field(None, description="Non-blocking notice when partial")


class AvailableDay(BaseModel):
    date: dt.date
    has_slots: bool


class AvailableDaysResponse(BaseModel):
    owner_id: UUID
    timezone: str = "UTC"
    days: List[AvailableDay] = Field(default_factory=list)
    partial: bool = False
    sync_notice: Optional[str] = None


class CreateBookingRequest(BaseModel):
    """Booking request from the public booking page"""
    start_time: datetime = Field(..., description="Requested start, timezone aware")
    end_time: Optional[datetime] = Field(None, description="Defaults to start + event type duration")
    event_type_id: Optional[UUID] = Field(None, description="Null for ad-hoc events")
    booker_name: str = Field(..., min_length=1, description="Booker name")
    booker_email: EmailStr = Field(..., description="Booker email")
    booker_company: Optional[str] = Field(None, description="Booker company")
    notes: Optional[str] = Field(None, description="Additional notes")


class CancelBookingRequest(BaseModel):
    reason: Optional[str] = Field(None, description="Why the booking was cancelled")


class RescheduleBookingRequest(BaseModel):
    start_time: datetime = Field(..., description="New start, timezone aware")
    end_time: Optional[datetime] = Field(None, description="Defaults to start + event type duration")
    reason: Optional[str] = Field(None, description="Why the booking was moved")


class BookingResponse(BaseModel):
    booking: BookingRecord
    success: bool = True
    message: str = ""


class AvailabilityRuleIn(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6, description="Day of week (0=Monday, 6=Sunday)")
    start_time: str = Field(..., description="Start time (HH:MM)")
    end_time: str = Field(..., description="End time (HH:MM)")
    timezone: str = Field(default_factory=lambda: get_settings().DEFAULT_TIMEZONE, description="IANA timezone")

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        try:
            datetime.strptime(v, "%H:%M")
        except ValueError:
            raise ValueError("Time must be in HH:MM format")
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        return validate_timezone_name(v)

    @model_validator(mode="after")
    def start_before_end(self) -> "AvailabilityRuleIn":
        start, end = self.parsed_times()
        if start >= end:
            raise ValueError("start_time must be before end_time")
        return self

    def parsed_times(self) -> tuple[dt.time, dt.time]:
        return (
            datetime.strptime(self.start_time, "%H:%M").time(),
            datetime.strptime(self.end_time, "%H:%M").time(),
        )


class ReplaceRulesRequest(BaseModel):
    rules: List[AvailabilityRuleIn] = Field(..., description="One rule per weekday")


class AvailabilityRuleOut(BaseModel):
    id: Optional[UUID] = None
    day_of_week: int
    start_time: dt.time
    end_time: dt.time
    timezone: str


class DragSelectionRequest(BaseModel):
    day: dt.date = Field(..., description="Column date of the weekly grid")
    start_px: float = Field(..., description="Pointer-down offset from the top of the day column")
    end_px: float = Field(..., description="Pointer-up offset from the top of the day column")
    pixels_per_hour: float = Field(..., gt=0)
    timezone: Optional[str] = Field(None, description="Timezone the grid is rendered in, the default zone if omitted")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        return validate_timezone_name(v) if v is not None else None


class EventTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    duration_minutes: int = Field(30, gt=0, le=24 * 60)
    buffer_before_minutes: int = Field(0, ge=0)
    buffer_after_minutes: int = Field(0, ge=0)


class EventTypeUpdate(BaseModel):
    """Only the fields that are sent are changed"""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    duration_minutes: Optional[int] = Field(None, gt=0, le=24 * 60)
    buffer_before_minutes: Optional[int] = Field(None, ge=0)
    buffer_after_minutes: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class AvailabilityOverrideIn(BaseModel):
    """Day off, or different hours, on one local date"""
    date: dt.date
    is_available: bool = Field(False, description="False blocks the whole day")
    start_time: Optional[str] = Field(None, description="Custom start (HH:MM)")
    end_time: Optional[str] = Field(None, description="Custom end (HH:MM)")
    timezone: str = Field(default_factory=lambda: get_settings().DEFAULT_TIMEZONE)
    reason: Optional[str] = Field(None, max_length=200)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            datetime.strptime(v, "%H:%M")
        except ValueError:
            raise ValueError("Time must be in HH:MM format")
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        return validate_timezone_name(v)

    @model_validator(mode="after")
    def hours_are_complete(self) -> "AvailabilityOverrideIn":
        if (self.start_time is None) != (self.end_time is None):
            raise ValueError("start_time and end_time must be given together")
        start, end = self.parsed_times()
        if start is not None and start >= end:
            raise ValueError("start_time must be before end_time")
        return self

    def parsed_times(self) -> tuple[Optional[dt.time], Optional[dt.time]]:
        if self.start_time is None or self.end_time is None:
            return None, None
        return (
            datetime.strptime(self.start_time, "%H:%M").time(),
            datetime.strptime(self.end_time, "%H:%M").time(),
        )


class BookingListResponse(BaseModel):
    owner_id: UUID
    start: datetime
    end: datetime
    bookings: List[BookingRecord] = Field(default_factory=list)


class CalendarIntegrationOut(BaseModel):
    """Connected calendar without its tokens"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    provider: str
    calendar_id: str
    is_primary: bool
    include_in_availability: bool
    sync_direction: SyncDirection
    connection_status: ConnectionStatus
