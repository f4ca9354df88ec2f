# app/services/calendar/integration_service.py
import logging
from typing import List
from uuid import UUID

from app.core.errors import IntegrationNotFound
from app.schemas.scheduling import CalendarIntegrationRecord
from app.services.storage.booking_store import BookingStore

logger = logging.getLogger(__name__)


class CalendarIntegrationService:
    """Connected calendars as the owner sees them"""

    def __init__(self, store: BookingStore):
        self.store = store

    def list_integrations(self, owner_id: UUID) -> List[CalendarIntegrationRecord]:
        return self.store.list_calendar_integrations(owner_id)

    def disconnect(self, owner_id: UUID, integration_id: UUID) -> None:
        """
        Stop reading busy time from and mirroring bookings to a calendar.

        Its tokens are dropped. Sync jobs still queued for the owner's
        bookings find no writable calendar and mark them sync_disabled.
        """
        integration = self.store.get_calendar_integration(integration_id)
        if integration is None or integration.owner_id != owner_id or not integration.is_active:
            raise IntegrationNotFound(f"Calendar integration {integration_id} not found for owner {owner_id}")
        self.store.deactivate_integration(integration_id)
        logger.info(f"Owner {owner_id} disconnected calendar {integration.calendar_id}")
