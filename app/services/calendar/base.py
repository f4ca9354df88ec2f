# app/services/calendar/base.py
"""Boundary between the scheduling engine and an external calendar"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional, TypeVar

from app.config.settings import get_settings
from app.core.errors import CalendarSyncError
from app.schemas.scheduling import (
    BookingRecord,
    CalendarIntegrationRecord,
    ConnectionStatus,
    ExternalBusyInterval,
)
from app.services.scheduling.intervals import TimeInterval

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CalendarSyncAdapter(ABC):
    """
    One connected external calendar.

    The public methods make exactly one attempt, bounded by a timeout, and
    raise CalendarSyncError on any failure. Retrying is the caller's job.
    Subclasses implement the underscore methods.
    """

    def __init__(
            self,
            integration: CalendarIntegrationRecord,
            pull_timeout: Optional[float] = None,
            push_timeout: Optional[float] = None
    ):
        settings = get_settings()
        self.integration = integration
        self.pull_timeout = pull_timeout if pull_timeout is not None else settings.CALENDAR_PULL_TIMEOUT_SECONDS
        self.push_timeout = push_timeout if push_timeout is not None else settings.CALENDAR_PUSH_TIMEOUT_SECONDS

    @property
    def calendar_id(self) -> str:
        return self.integration.calendar_id

    @property
    def include_in_availability(self) -> bool:
        return self.integration.is_active and self.integration.include_in_availability

    @property
    def connection_status(self) -> ConnectionStatus:
        return self.integration.connection_status

    async def pull_busy(self, owner_id, date_range: TimeInterval) -> List[ExternalBusyInterval]:
        return await self._call("pull_busy", self._pull_busy(owner_id, date_range), self.pull_timeout)

    async def push(self, booking: BookingRecord) -> str:
        return await self._call("push", self._push(booking), self.push_timeout)

    async def update(self, external_ref: str, booking: BookingRecord) -> None:
        await self._call("update", self._update(external_ref, booking), self.push_timeout)

    async def delete(self, external_ref: str) -> None:
        await self._call("delete", self._delete(external_ref), self.push_timeout)

    async def _call(self, operation: str, coro: Awaitable[T], timeout: float) -> T:
        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.warning(
                f"Calendar {operation} timed out after {timeout}s "
                f"(integration={self.integration.id}, provider={self.integration.provider})"
            )
            raise CalendarSyncError(f"{operation} timed out after {timeout}s") from e
        except CalendarSyncError:
            raise
        except Exception as e:
            logger.warning(
                f"Calendar {operation} failed unexpectedly "
                f"(integration={self.integration.id}, provider={self.integration.provider}): {e}"
            )
            raise CalendarSyncError(f"{operation} failed: {e}") from e

    @abstractmethod
    async def _pull_busy(self, owner_id, date_range: TimeInterval) -> List[ExternalBusyInterval]:
        ...

    @abstractmethod
    async def _push(self, booking: BookingRecord) -> str:
        ...

    @abstractmethod
    async def _update(self, external_ref: str, booking: BookingRecord) -> None:
        ...

    @abstractmethod
    async def _delete(self, external_ref: str) -> None:
        ...


AdapterResolver = Callable[[CalendarIntegrationRecord], CalendarSyncAdapter]
