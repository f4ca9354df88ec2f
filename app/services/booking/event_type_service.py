# app/services/booking/event_type_service.py
import logging
from typing import List
from uuid import UUID, uuid4

from app.core.errors import EventTypeNotFound
from app.schemas.calendar_events import EventTypeCreate, EventTypeUpdate
from app.schemas.scheduling import EventTypeRecord
from app.services.storage.booking_store import BookingStore

logger = logging.getLogger(__name__)


class EventTypeService:
    """Owner-side management of bookable meeting types"""

    def __init__(self, store: BookingStore):
        self.store = store

    def _get_owned(self, owner_id: UUID, event_type_id: UUID) -> EventTypeRecord:
        event_type = self.store.get_event_type(event_type_id)
        if event_type is None or event_type.owner_id != owner_id:
            raise EventTypeNotFound(f"Event type {event_type_id} not found for owner {owner_id}")
        return event_type

    def list_event_types(self, owner_id: UUID, include_inactive: bool = False) -> List[EventTypeRecord]:
        event_types = self.store.list_event_types(owner_id, include_inactive=include_inactive)
        return sorted(event_types, key=lambda et: (et.name.lower(), et.duration_minutes))

    def create_event_type(self, owner_id: UUID, request: EventTypeCreate) -> EventTypeRecord:
        event_type = self.store.create_event_type(EventTypeRecord(
            id=uuid4(),
            owner_id=owner_id,
            **request.model_dump(),
        ))
        logger.info(f"Owner {owner_id} added event type {event_type.name} ({event_type.duration_minutes} min)")
        return event_type

    def update_event_type(self, owner_id: UUID, event_type_id: UUID, request: EventTypeUpdate) -> EventTypeRecord:
        self._get_owned(owner_id, event_type_id)
        changes = request.model_dump(exclude_unset=True)
        if not changes:
            return self.store.get_event_type(event_type_id)
        return self.store.update_event_type(event_type_id, changes)

    def deactivate_event_type(self, owner_id: UUID, event_type_id: UUID) -> EventTypeRecord:
        """
        Retire an event type.

        The row stays so confirmed bookings of this type keep blocking their
        buffers; it just stops being offered and accepted for new bookings.
        """
        self._get_owned(owner_id, event_type_id)
        event_type = self.store.deactivate_event_type(event_type_id)
        logger.info(f"Owner {owner_id} retired event type {event_type_id}")
        return event_type
