# app/services/calendar/calendar_sync_service.py
"""
Mirrors committed bookings onto the owner's external calendar.

Each method makes one attempt through the adapter and records the outcome on
the booking. A CalendarSyncError is re-raised so the Celery task can decide
whether to retry; the booking itself is never rolled back.
"""
import logging
from typing import Optional
from uuid import UUID

from app.core.errors import BookingNotFound, CalendarSyncError, SyncFailurePermanent
from app.schemas.scheduling import BookingRecord, CalendarIntegrationRecord, SyncStatus
from app.services.calendar.base import AdapterResolver, CalendarSyncAdapter
from app.services.storage.booking_store import BookingStore

logger = logging.getLogger(__name__)


class CalendarSyncService:

    def __init__(self, store: BookingStore, resolver: AdapterResolver):
        self.store = store
        self.resolver = resolver

    def _load(self, booking_id: UUID) -> BookingRecord:
        booking = self.store.get_booking(booking_id)
        if booking is None:
            raise BookingNotFound(f"Booking {booking_id} not found")
        return booking

    def _adapter_for(self, booking: BookingRecord) -> Optional[CalendarSyncAdapter]:
        integration: Optional[CalendarIntegrationRecord] = self.store.get_primary_integration(booking.owner_id)
        if integration is None:
            return None
        return self.resolver(integration)

    def _failed(self, booking_id: UUID, operation: str, error: CalendarSyncError):
        logger.warning(f"Calendar {operation} failed for booking {booking_id}: {error.message}")
        self.store.record_sync_result(booking_id, SyncStatus.FAILED, error.message)

    async def push_booking(self, booking_id: UUID) -> dict:
        """Create the external event for a booking and attach its reference"""
        booking = self._load(booking_id)

        if booking.external_ref:
            return {"status": "skipped", "reason": "already_synced", "external_ref": booking.external_ref}
        if not booking.is_confirmed:
            return {"status": "skipped", "reason": "booking_cancelled"}

        adapter = self._adapter_for(booking)
        if adapter is None:
            self.store.record_sync_result(booking_id, SyncStatus.SYNC_DISABLED)
            return {"status": "skipped", "reason": "no_integration_or_read_only"}

        try:
            external_ref = await adapter.push(booking)
        except CalendarSyncError as e:
            self._failed(booking_id, "push", e)
            raise

        self.store.attach_external_ref(booking_id, external_ref)
        self.store.record_sync_result(booking_id, SyncStatus.SYNCED)
        logger.info(f"Booking {booking_id} mirrored as external event {external_ref}")

        # Cancelled while the push was in flight
        if not self._load(booking_id).is_confirmed:
            try:
                await adapter.delete(external_ref)
            except CalendarSyncError as e:
                self._failed(booking_id, "delete", e)
                raise
            return {"status": "deleted", "external_ref": external_ref}

        return {"status": "synced", "external_ref": external_ref}

    async def update_booking(self, booking_id: UUID) -> dict:
        """Move the external event to the booking's current time"""
        booking = self._load(booking_id)
        if not booking.external_ref:
            return await self.push_booking(booking_id)

        adapter = self._adapter_for(booking)
        if adapter is None:
            self.store.record_sync_result(booking_id, SyncStatus.SYNC_DISABLED)
            return {"status": "skipped", "reason": "no_integration_or_read_only"}

        try:
            await adapter.update(booking.external_ref, booking)
        except CalendarSyncError as e:
            self._failed(booking_id, "update", e)
            raise

        self.store.record_sync_result(booking_id, SyncStatus.SYNCED)
        return {"status": "synced", "external_ref": booking.external_ref}

    async def delete_booking(self, booking_id: UUID) -> dict:
        booking = self._load(booking_id)
        if not booking.external_ref:
            return {"status": "skipped", "reason": "no_external_event"}

        adapter = self._adapter_for(booking)
        if adapter is None:
            return {"status": "skipped", "reason": "no_integration_or_read_only"}

        try:
            await adapter.delete(booking.external_ref)
        except CalendarSyncError as e:
            self._failed(booking_id, "delete", e)
            raise

        self.store.record_sync_result(booking_id, SyncStatus.SYNCED)
        return {"status": "deleted", "external_ref": booking.external_ref}

    def mark_permanent_failure(self, booking_id: UUID, operation: str, error: str) -> SyncFailurePermanent:
        """Flag the booking for manual reconciliation once retries are exhausted"""
        failure = SyncFailurePermanent(str(booking_id), operation, f"{operation} gave up: {error}")
        self.store.record_sync_result(booking_id, SyncStatus.FAILED_PERMANENT, failure.message)
        logger.error(f"SyncFailurePermanent: {failure.message} (booking={booking_id})")
        return failure
