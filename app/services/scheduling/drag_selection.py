# app/services/scheduling/drag_selection.py
"""
Maps a finished drag on the weekly grid to a time interval.

Pure: no I/O and no pointer state. The grid sends the two vertical offsets
once the pointer is released.
"""
import math
from datetime import date, datetime, time, timedelta
from typing import Optional
from uuid import UUID

from app.config.settings import get_settings
from app.core.errors import InvalidInterval
from app.schemas.scheduling import BookingDraft
from app.services.scheduling.intervals import TimeInterval, get_zone

MINUTES_PER_DAY = 24 * 60


class DragSelectionMapper:

    def __init__(self, granularity_minutes: Optional[int] = None, min_duration_minutes: Optional[int] = None):
        settings = get_settings()
        self.granularity_minutes = granularity_minutes or settings.SLOT_GRANULARITY_MINUTES
        self.min_duration_minutes = min_duration_minutes or settings.MIN_SLOT_MINUTES
        self.default_timezone = settings.DEFAULT_TIMEZONE
        if self.min_duration_minutes > MINUTES_PER_DAY:
            raise InvalidInterval("Minimum duration cannot exceed one day")

    def snap_minutes(self, start_px: float, end_px: float, pixels_per_hour: float) -> tuple:
        """
        Snapped ``(start, end)`` minutes from midnight.

        The start rounds down and the end rounds up to the granularity, both
        are clamped to the day, and the result is widened to the minimum
        duration. Dragging upwards gives the same result as dragging down.
        """
        if pixels_per_hour is None or pixels_per_hour <= 0:
            raise InvalidInterval("pixels_per_hour must be positive")

        top, bottom = sorted((start_px, end_px))
        start_minutes = top / pixels_per_hour * 60
        end_minutes = bottom / pixels_per_hour * 60

        g = self.granularity_minutes
        start = math.floor(start_minutes / g) * g
        end = math.ceil(end_minutes / g) * g

        start = min(max(start, 0), MINUTES_PER_DAY)
        end = min(max(end, 0), MINUTES_PER_DAY)

        if end - start < self.min_duration_minutes:
            end = start + self.min_duration_minutes
            if end > MINUTES_PER_DAY:
                end = MINUTES_PER_DAY
                start = end - self.min_duration_minutes

        return start, end

    def map_drag(
            self,
            day: date,
            start_px: float,
            end_px: float,
            pixels_per_hour: float,
            tz_name: Optional[str] = None
    ) -> TimeInterval:
        start, end = self.snap_minutes(start_px, end_px, pixels_per_hour)
        zone = get_zone(tz_name or self.default_timezone)
        midnight = datetime.combine(day, time(0), tzinfo=zone)
        # Aware datetime arithmetic is wall-clock, so grid labels hold on DST days
        return TimeInterval(midnight + timedelta(minutes=start), midnight + timedelta(minutes=end))

    def to_draft(
            self,
            owner_id: UUID,
            day: date,
            start_px: float,
            end_px: float,
            pixels_per_hour: float,
            tz_name: Optional[str] = None
    ) -> BookingDraft:
        interval = self.map_drag(day, start_px, end_px, pixels_per_hour, tz_name)
        return BookingDraft(
            owner_id=owner_id,
            start=interval.start,
            end=interval.end,
            duration_minutes=interval.duration_minutes,
            timezone=tz_name or self.default_timezone,
        )
