# app/services/calendar/sync_dispatcher.py
"""Hands external calendar work to the background worker"""
import logging
from abc import ABC, abstractmethod
from uuid import UUID

logger = logging.getLogger(__name__)


class SyncDispatcher(ABC):
    @abstractmethod
    def enqueue_push(self, booking_id: UUID) -> None:
        ...

    @abstractmethod
    def enqueue_update(self, booking_id: UUID) -> None:
        ...

    @abstractmethod
    def enqueue_delete(self, booking_id: UUID) -> None:
        ...


class CelerySyncDispatcher(SyncDispatcher):
    """Queues the calendar tasks on the calendar_sync queue"""

    def enqueue_push(self, booking_id: UUID) -> None:
        from app.tasks.calendar_tasks import push_booking_to_calendar
        push_booking_to_calendar.delay(str(booking_id))
        logger.info(f"Queued calendar push for booking {booking_id}")

    def enqueue_update(self, booking_id: UUID) -> None:
        from app.tasks.calendar_tasks import update_booking_in_calendar
        update_booking_in_calendar.delay(str(booking_id))
        logger.info(f"Queued calendar update for booking {booking_id}")

    def enqueue_delete(self, booking_id: UUID) -> None:
        from app.tasks.calendar_tasks import delete_booking_from_calendar
        delete_booking_from_calendar.delay(str(booking_id))
        logger.info(f"Queued calendar delete for booking {booking_id}")
