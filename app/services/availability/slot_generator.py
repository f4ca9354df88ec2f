# app/services/availability/slot_generator.py
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence
from uuid import UUID

from app.config.settings import get_settings
from app.core.errors import EventTypeNotFound
from app.schemas.scheduling import BookableSlot, EventTypeRecord
from app.services.availability.busy_time import BusyTimeAggregator
from app.services.availability.rule_set import AvailabilityRuleSet
from app.services.scheduling.intervals import (
    TimeInterval,
    ceil_to_granularity,
    expand,
    overlaps,
    subtract_all,
)
from app.services.storage.booking_store import BookingStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_event_type(store: BookingStore, owner_id: UUID, event_type_id: Optional[UUID]) -> Optional[EventTypeRecord]:
    """Load an owner's active event type; None means an ad-hoc booking"""
    if event_type_id is None:
        return None
    event_type = store.get_event_type(event_type_id)
    if event_type is None or not event_type.is_active or event_type.owner_id != owner_id:
        raise EventTypeNotFound(f"Event type {event_type_id} not found for owner {owner_id}")
    return event_type


@dataclass
class SlotGenerationResult:
    slots: List[BookableSlot]
    partial: bool = False


class SlotGenerator:
    """Bookable slots = rule intervals minus busy time, chunked by event type"""

    def __init__(
            self,
            store: BookingStore,
            rule_set: AvailabilityRuleSet,
            aggregator: BusyTimeAggregator,
            granularity_minutes: Optional[int] = None,
            min_notice_minutes: Optional[int] = None,
            clock: Clock = utc_now
    ):
        settings = get_settings()
        self.store = store
        self.rule_set = rule_set
        self.aggregator = aggregator
        self.granularity_minutes = granularity_minutes or settings.SLOT_GRANULARITY_MINUTES
        self.min_notice_minutes = (
            min_notice_minutes if min_notice_minutes is not None else settings.BOOKING_MIN_NOTICE_MINUTES
        )
        self.clock = clock

    def earliest_start(self) -> datetime:
        return self.clock() + timedelta(minutes=self.min_notice_minutes)

    async def generate(
            self,
            owner_id: UUID,
            date_range: TimeInterval,
            event_type_id: Optional[UUID] = None
    ) -> SlotGenerationResult:
        event_type = resolve_event_type(self.store, owner_id, event_type_id)

        windows = self.rule_set.intervals_for(owner_id, date_range)
        if not windows:
            logger.info(f"Owner {owner_id} has no availability in {date_range.start} - {date_range.end}")
            return SlotGenerationResult(slots=[])

        # Buffers of a slot at the edge of the range reach outside it
        busy_range = date_range
        if event_type is not None:
            busy_range = expand(date_range, event_type.buffer_before_minutes, event_type.buffer_after_minutes)
        busy = await self.aggregator.busy_intervals(owner_id, busy_range)
        tz_name = self.rule_set.timezone_for(owner_id)

        free = subtract_all(windows, busy.intervals)
        if event_type is not None:
            intervals = self.chunk(free, event_type, busy.intervals, tz_name)
        else:
            intervals = free

        intervals = self._apply_min_notice(intervals, clip=event_type is None, tz_name=tz_name)
        slots = [BookableSlot.from_interval(owner_id, interval) for interval in intervals]
        return SlotGenerationResult(slots=slots, partial=busy.partial)

    def chunk(
            self,
            free: Sequence[TimeInterval],
            event_type: EventTypeRecord,
            busy: Sequence[TimeInterval],
            tz_name: str = "UTC"
    ) -> List[TimeInterval]:
        """
        Cut free intervals into consecutive slots of the event type's duration.

        Starts are aligned to the granularity on the wall clock of
        ``tz_name``. A candidate whose buffers would overlap busy time is
        skipped and the next aligned start is tried, so every slot returned
        can actually be booked. Remainders shorter than
        the duration are dropped.
        """
        duration = timedelta(minutes=event_type.duration_minutes)
        step = timedelta(minutes=self.granularity_minutes)

        slots: List[TimeInterval] = []
        for window in sorted(free):
            cursor = ceil_to_granularity(window.start, self.granularity_minutes, tz_name)
            while cursor + duration <= window.end:
                candidate = TimeInterval(cursor, cursor + duration)
                guarded = expand(candidate, event_type.buffer_before_minutes, event_type.buffer_after_minutes)
                if any(overlaps(guarded, block) for block in busy):
                    cursor += step
                    continue
                slots.append(candidate)
                cursor += duration
        return slots

    def _apply_min_notice(
            self,
            intervals: List[TimeInterval],
            clip: bool,
            tz_name: str = "UTC"
    ) -> List[TimeInterval]:
        earliest = self.earliest_start()
        kept = []
        for interval in intervals:
            if interval.start >= earliest:
                kept.append(interval)
            elif clip and interval.end > earliest:
                start = ceil_to_granularity(earliest, self.granularity_minutes, tz_name)
                if start < interval.end:
                    kept.append(TimeInterval(start, interval.end))
        return kept
