# app/services/calendar/memory_adapter.py
import asyncio
import logging
from typing import Dict, List, Optional
from uuid import uuid4

from app.core.errors import CalendarSyncError
from app.schemas.scheduling import (
    BookingRecord,
    CalendarIntegrationRecord,
    ExternalBusyInterval,
)
from app.services.calendar.base import CalendarSyncAdapter
from app.services.scheduling.intervals import TimeInterval, overlaps

logger = logging.getLogger(__name__)


class InMemoryCalendarAdapter(CalendarSyncAdapter):
    """
    Calendar held in memory, for tests and local development.

    Set ``fail_with`` to make every call raise it, or ``delay_seconds`` to
    make calls slow enough to hit the timeout.
    """

    def __init__(
            self,
            integration: CalendarIntegrationRecord,
            busy: Optional[List[ExternalBusyInterval]] = None,
            **kwargs
    ):
        super().__init__(integration, **kwargs)
        self.busy: List[ExternalBusyInterval] = list(busy or [])
        self.events: Dict[str, BookingRecord] = {}
        self.fail_with: Optional[Exception] = None
        self.delay_seconds: float = 0
        self.calls: List[str] = []

    def add_busy(self, interval: TimeInterval) -> None:
        self.busy.append(
            ExternalBusyInterval(start=interval.start, end=interval.end, source_calendar_id=self.calendar_id)
        )

    async def _maybe_fail(self, operation: str):
        self.calls.append(operation)
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.fail_with is not None:
            raise self.fail_with

    async def _pull_busy(self, owner_id, date_range):
        await self._maybe_fail("pull_busy")
        return [b for b in self.busy if overlaps(b.interval, date_range)]

    async def _push(self, booking):
        await self._maybe_fail("push")
        external_ref = f"mem-{uuid4().hex[:12]}"
        self.events[external_ref] = booking
        return external_ref

    async def _update(self, external_ref, booking):
        await self._maybe_fail("update")
        if external_ref not in self.events:
            raise CalendarSyncError(f"Event {external_ref} not found", retryable=False)
        self.events[external_ref] = booking

    async def _delete(self, external_ref):
        await self._maybe_fail("delete")
        self.events.pop(external_ref, None)
