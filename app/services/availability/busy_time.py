# app/services/availability/busy_time.py
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Collection, List, Tuple
from uuid import UUID

from app.core.errors import CalendarSyncError, InvalidInterval
from app.schemas.scheduling import CalendarIntegrationRecord, ConnectionStatus
from app.services.calendar.base import AdapterResolver
from app.services.scheduling.intervals import TimeInterval, coalesce, expand, overlaps
from app.services.storage.booking_store import BookingStore

logger = logging.getLogger(__name__)


@dataclass
class BusyTimeResult:
    intervals: List[TimeInterval]
    partial: bool = False
    failed_calendars: List[str] = field(default_factory=list)


class BusyTimeAggregator:
    """
    Union of an owner's internal bookings and external calendar busy time.

    Internal bookings are authoritative and always included. External
    calendars are best effort: a pull that fails or times out is logged and
    reported through ``partial`` instead of being raised.
    """

    def __init__(self, store: BookingStore, adapter_resolver: AdapterResolver):
        self.store = store
        self.adapter_resolver = adapter_resolver

    def booking_busy(
            self,
            owner_id: UUID,
            date_range: TimeInterval,
            exclude_booking_ids: Collection[UUID] = ()
    ) -> List[TimeInterval]:
        """Confirmed bookings, each expanded by its own event type's buffers"""
        event_types = {
            et.id: et for et in self.store.list_event_types(owner_id, include_inactive=True)
        }
        max_before = max((et.buffer_before_minutes for et in event_types.values()), default=0)
        max_after = max((et.buffer_after_minutes for et in event_types.values()), default=0)

        # A booking just outside the range can still reach into it with its buffers
        query_range = TimeInterval(
            date_range.start - timedelta(minutes=max_after),
            date_range.end + timedelta(minutes=max_before),
        )

        busy = []
        for booking in self.store.list_confirmed_bookings(owner_id, query_range):
            if booking.id in exclude_booking_ids:
                continue
            event_type = event_types.get(booking.event_type_id) if booking.event_type_id else None
            interval = booking.interval
            if event_type is not None:
                interval = expand(interval, event_type.buffer_before_minutes, event_type.buffer_after_minutes)
            if overlaps(interval, date_range):
                busy.append(interval)
        return busy

    async def external_busy(self, owner_id: UUID, date_range: TimeInterval) -> Tuple[List[TimeInterval], List[str]]:
        """Busy time from every calendar that feeds availability, plus the ids that failed"""
        integrations: List[CalendarIntegrationRecord] = [
            i for i in self.store.list_calendar_integrations(owner_id)
            if i.is_active and i.include_in_availability
        ]
        if not integrations:
            return [], []

        failed: List[str] = []
        pulls = []
        pulled_from = []
        for integration in integrations:
            if integration.connection_status == ConnectionStatus.AUTH_REVOKED:
                logger.warning(f"Skipping calendar {integration.calendar_id} for owner {owner_id}: auth revoked")
                failed.append(integration.calendar_id)
                continue
            try:
                adapter = self.adapter_resolver(integration)
            except CalendarSyncError as e:
                logger.warning(f"No adapter for calendar {integration.calendar_id}: {e.message}")
                failed.append(integration.calendar_id)
                continue
            pulls.append(adapter.pull_busy(owner_id, date_range))
            pulled_from.append(integration)

        results = await asyncio.gather(*pulls, return_exceptions=True)

        busy: List[TimeInterval] = []
        for integration, result in zip(pulled_from, results):
            if isinstance(result, Exception):
                logger.warning(
                    f"Busy time pull failed for owner {owner_id} calendar {integration.calendar_id}: {result}"
                )
                failed.append(integration.calendar_id)
                continue
            if isinstance(result, BaseException):
                raise result
            try:
                busy.extend([block.interval for block in result])
            except InvalidInterval as e:
                logger.warning(
                    f"Calendar {integration.calendar_id} for owner {owner_id} returned a malformed busy block: {e.message}"
                )
                failed.append(integration.calendar_id)

        return busy, failed

    async def busy_intervals(
            self,
            owner_id: UUID,
            date_range: TimeInterval,
            exclude_booking_ids: Collection[UUID] = ()
    ) -> BusyTimeResult:
        internal = self.booking_busy(owner_id, date_range, exclude_booking_ids)
        external, failed = await self.external_busy(owner_id, date_range)

        if failed:
            logger.warning(
                f"Availability for owner {owner_id} is partial; unreadable calendars: {', '.join(failed)}"
            )

        return BusyTimeResult(
            intervals=coalesce(internal + external),
            partial=bool(failed),
            failed_calendars=failed,
        )
