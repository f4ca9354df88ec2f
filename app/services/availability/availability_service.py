# ===== app/services/availability/availability_service.py =====
from datetime import date, datetime, time, timedelta
from typing import Optional
from uuid import UUID
import logging

from app.config.settings import get_settings
from app.core.errors import InvalidInterval, MSG_SYNC_DEGRADED
from app.schemas.calendar_events import AvailabilityResponse, AvailableDay, AvailableDaysResponse
from app.services.availability.rule_set import AvailabilityRuleSet
from app.services.availability.slot_generator import SlotGenerator
from app.services.scheduling.intervals import TimeInterval, get_zone

logger = logging.getLogger(__name__)


class AvailabilityService:
    """Availability queries for the booking page and the weekly grid"""

    def __init__(self, slot_generator: SlotGenerator, max_range_days: Optional[int] = None):
        self.slot_generator = slot_generator
        self.max_range_days = max_range_days or get_settings().MAX_AVAILABILITY_RANGE_DAYS

    def validate_range(self, start: datetime, end: datetime) -> TimeInterval:
        date_range = TimeInterval(start, end)
        if date_range.duration > timedelta(days=self.max_range_days):
            raise InvalidInterval(f"Range may span at most {self.max_range_days} days")
        return date_range

    async def get_availability(
            self,
            owner_id: UUID,
            start: datetime,
            end: datetime,
            event_type_id: Optional[UUID] = None
    ) -> AvailabilityResponse:
        """
        Bookable slots for an owner between ``start`` and ``end``.

        If an external calendar could not be read the slots come from
        internal bookings only and the response is marked partial.
        """
        date_range = self.validate_range(start, end)
        result = await self.slot_generator.generate(owner_id, date_range, event_type_id)

        logger.info(
            f"Availability for owner {owner_id}: {len(result.slots)} slots"
            f"{' (partial)' if result.partial else ''}"
        )
        return AvailabilityResponse(
            owner_id=owner_id,
            start=date_range.start,
            end=date_range.end,
            event_type_id=event_type_id,
            slots=result.slots,
            partial=result.partial,
            sync_notice=MSG_SYNC_DEGRADED if result.partial else None,
        )

    async def get_available_days(
            self,
            owner_id: UUID,
            start_date: date,
            end_date: date,
            tz_name: Optional[str] = None,
            event_type_id: Optional[UUID] = None
    ) -> AvailableDaysResponse:
        """
        Which local dates between start_date and end_date (inclusive) have at least one slot.
        Dates are read in the owner's own timezone unless ``tz_name`` is given.
        """
        if end_date < start_date:
            raise InvalidInterval("end_date must not be before start_date")
        tz_name = tz_name or self.slot_generator.rule_set.timezone_for(owner_id)

        zone = get_zone(tz_name)
        start = datetime.combine(start_date, time(0), tzinfo=zone)
        end = datetime.combine(end_date + timedelta(days=1), time(0), tzinfo=zone)
        date_range = self.validate_range(start, end)

        result = await self.slot_generator.generate(owner_id, date_range, event_type_id)
        with_slots = set(AvailabilityRuleSet.available_dates((s.interval for s in result.slots), tz_name))

        days = []
        current = start_date
        while current <= end_date:
            days.append(AvailableDay(date=current, has_slots=current in with_slots))
            current += timedelta(days=1)

        return AvailableDaysResponse(
            owner_id=owner_id,
            timezone=tz_name,
            days=days,
            partial=result.partial,
            sync_notice=MSG_SYNC_DEGRADED if result.partial else None,
        )
