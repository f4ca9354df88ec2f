# ===== app/tasks/calendar_tasks.py =====
import asyncio
import logging
from uuid import UUID

from sqlalchemy.orm import Session

from app.config.celery_config import celery_app
from app.config.database import SessionLocal
from app.config.settings import get_settings
from app.core.errors import BookingNotFound, CalendarSyncError
from app.services.calendar.calendar_sync_service import CalendarSyncService
from app.services.calendar.google_calendar_service import get_calendar_adapter
from app.services.storage.sql_booking_store import SqlBookingStore

logger = logging.getLogger(__name__)

settings = get_settings()


def _build_sync_service(db: Session) -> CalendarSyncService:
    store = SqlBookingStore(db)
    return CalendarSyncService(store, lambda integration: get_calendar_adapter(integration, store))


def _run_sync_task(task, operation: str, booking_id: str) -> dict:
    """
    One attempt at a calendar operation for a booking.

    Retryable failures are retried with exponential backoff. Once retries are
    exhausted, or the failure can never succeed, the booking is flagged
    failed_permanent for manual reconciliation; it stays confirmed.
    """
    db = SessionLocal()
    try:
        service = _build_sync_service(db)
        try:
            result = asyncio.run(getattr(service, f"{operation}_booking")(UUID(booking_id)))
            logger.info(f"Calendar {operation} for booking {booking_id}: {result['status']}")
            return result

        except BookingNotFound:
            logger.error(f"Booking {booking_id} not found")
            return {"status": "failed", "reason": "booking_not_found"}

        except CalendarSyncError as exc:
            retryable, error = exc.retryable, exc.message

        except Exception as exc:
            logger.error(f"Calendar {operation} crashed for booking {booking_id}: {exc}")
            db.rollback()
            retryable, error = True, str(exc)

        retries = task.request.retries
        if retryable and retries < task.max_retries:
            countdown = settings.CALENDAR_SYNC_RETRY_BASE_SECONDS * (2 ** retries)
            logger.warning(
                f"Calendar {operation} failed for booking {booking_id}, "
                f"retry {retries + 1}/{task.max_retries} in {countdown}s: {error}"
            )
            raise task.retry(countdown=countdown)

        service.mark_permanent_failure(UUID(booking_id), operation, error)
        return {"status": "failed_permanent", "reason": error}

    finally:
        db.close()


@celery_app.task(bind=True, max_retries=settings.CALENDAR_SYNC_MAX_RETRIES)
def push_booking_to_calendar(self, booking_id: str):
    """Create the external calendar event for a new booking"""
    return _run_sync_task(self, "push", booking_id)


@celery_app.task(bind=True, max_retries=settings.CALENDAR_SYNC_MAX_RETRIES)
def update_booking_in_calendar(self, booking_id: str):
    """Move the external event of a rescheduled booking"""
    return _run_sync_task(self, "update", booking_id)


@celery_app.task(bind=True, max_retries=settings.CALENDAR_SYNC_MAX_RETRIES)
def delete_booking_from_calendar(self, booking_id: str):
    """Remove the external event of a cancelled booking"""
    return _run_sync_task(self, "delete", booking_id)
