# ============================================================================
# app/services/storage/booking_store.py
# ============================================================================
"""Storage collaborator contract used by the scheduling engine"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

from app.core.errors import BookingNotFound, EventTypeNotFound, IntegrationNotFound, RuleConflict
from app.schemas.scheduling import (
    AvailabilityOverrideRecord,
    AvailabilityRuleRecord,
    BookingRecord,
    BookingStatus,
    CalendarIntegrationRecord,
    ConnectionStatus,
    EventTypeRecord,
    SyncStatus,
)
from app.services.scheduling.intervals import TimeInterval, overlaps


def ensure_unique_weekdays(rules: Sequence[AvailabilityRuleRecord]) -> None:
    """Reject a rule write that would activate two rules for one weekday"""
    seen = set()
    for rule in rules:
        if rule.day_of_week in seen:
            raise RuleConflict(
                f"More than one rule for day_of_week={rule.day_of_week} in a single write"
            )
        seen.add(rule.day_of_week)


class BookingStore(ABC):
    """
    Everything the engine reads from or writes to persistent storage.

    ``owner_lock`` serializes booking commits for one owner. Writes made
    inside it become visible together when the block exits.
    """

    # ---- availability rules -------------------------------------------------

    @abstractmethod
    def list_active_rules(self, owner_id: UUID) -> List[AvailabilityRuleRecord]:
        ...

    @abstractmethod
    def replace_rules(
            self,
            owner_id: UUID,
            rules: Sequence[AvailabilityRuleRecord]
    ) -> List[AvailabilityRuleRecord]:
        """Deactivate the active rule of every weekday in ``rules`` and activate the new ones"""

    @abstractmethod
    def list_overrides(self, owner_id: UUID, start: date, end: date) -> List[AvailabilityOverrideRecord]:
        ...

    @abstractmethod
    def upsert_override(self, override: AvailabilityOverrideRecord) -> AvailabilityOverrideRecord:
        """Insert the override for its date or replace the one already there"""

    @abstractmethod
    def delete_override(self, owner_id: UUID, day: date) -> bool:
        """Remove the override for ``day``; False if there was none"""

    # ---- event types --------------------------------------------------------

    @abstractmethod
    def list_event_types(self, owner_id: UUID, include_inactive: bool = False) -> List[EventTypeRecord]:
        ...

    @abstractmethod
    def get_event_type(self, event_type_id: UUID) -> Optional[EventTypeRecord]:
        ...

    @abstractmethod
    def create_event_type(self, event_type: EventTypeRecord) -> EventTypeRecord:
        ...

    @abstractmethod
    def update_event_type(self, event_type_id: UUID, changes: Dict[str, Any]) -> EventTypeRecord:
        """Apply ``changes`` to the event type; raises EventTypeNotFound"""

    @abstractmethod
    def deactivate_event_type(self, event_type_id: UUID) -> EventTypeRecord:
        """Hide the event type from new bookings; existing bookings keep their buffers"""

    # ---- bookings -----------------------------------------------------------

    @abstractmethod
    def list_confirmed_bookings(self, owner_id: UUID, date_range: TimeInterval) -> List[BookingRecord]:
        """Confirmed bookings of ``owner_id`` overlapping ``date_range``"""

    @abstractmethod
    def list_bookings(
            self,
            owner_id: UUID,
            date_range: TimeInterval,
            status: Optional[BookingStatus] = None
    ) -> List[BookingRecord]:
        """Bookings of ``owner_id`` overlapping ``date_range`` in any status unless one is given"""

    @abstractmethod
    def get_booking(self, booking_id: UUID) -> Optional[BookingRecord]:
        ...

    @abstractmethod
    def insert_booking(self, booking: BookingRecord) -> BookingRecord:
        ...

    @abstractmethod
    def update_booking_status(
            self,
            booking_id: UUID,
            status: BookingStatus,
            reason: Optional[str] = None
    ) -> BookingRecord:
        ...

    @abstractmethod
    def attach_external_ref(self, booking_id: UUID, external_ref: Optional[str]) -> None:
        ...

    @abstractmethod
    def record_sync_result(
            self,
            booking_id: UUID,
            sync_status: SyncStatus,
            error: Optional[str] = None
    ) -> None:
        ...

    # ---- calendar integrations ----------------------------------------------

    @abstractmethod
    def list_calendar_integrations(self, owner_id: UUID) -> List[CalendarIntegrationRecord]:
        """Active integrations only"""

    @abstractmethod
    def get_calendar_integration(self, integration_id: UUID) -> Optional[CalendarIntegrationRecord]:
        ...

    @abstractmethod
    def deactivate_integration(self, integration_id: UUID) -> None:
        """Disconnect a calendar: stop reading and writing it and drop its tokens"""

    @abstractmethod
    def update_integration_tokens(
            self,
            integration_id: UUID,
            access_token_encrypted: bytes,
            token_expires_at: Optional[datetime]
    ) -> None:
        ...

    @abstractmethod
    def update_integration_status(
            self,
            integration_id: UUID,
            connection_status: ConnectionStatus,
            error: Optional[str] = None
    ) -> None:
        ...

    # ---- serialization ------------------------------------------------------

    @abstractmethod
    def owner_lock(self, owner_id: UUID):
        """Context manager holding the per-owner booking lock"""

    def get_primary_integration(self, owner_id: UUID) -> Optional[CalendarIntegrationRecord]:
        """Calendar new bookings are mirrored to, if any"""
        writable = [i for i in self.list_calendar_integrations(owner_id) if i.can_write]
        if not writable:
            return None
        primary = [i for i in writable if i.is_primary]
        return (primary or writable)[0]


class InMemoryBookingStore(BookingStore):
    """
    Dict backed store for tests and local development.

    Serialization only holds within one process.
    """

    def __init__(self):
        self.rules: Dict[UUID, AvailabilityRuleRecord] = {}
        self.overrides: Dict[UUID, AvailabilityOverrideRecord] = {}
        self.event_types: Dict[UUID, EventTypeRecord] = {}
        self.bookings: Dict[UUID, BookingRecord] = {}
        self.integrations: Dict[UUID, CalendarIntegrationRecord] = {}
        self.lock_versions: Dict[UUID, int] = {}
        self._mutex = threading.RLock()
        self._owner_locks: Dict[UUID, Tuple[threading.Lock, int]] = {}

    # ---- seeding helpers ----------------------------------------------------

    def add_rule(self, rule: AvailabilityRuleRecord) -> AvailabilityRuleRecord:
        rule = rule.model_copy(update={"id": rule.id or uuid4()})
        self.rules[rule.id] = rule
        return rule

    def add_override(self, override: AvailabilityOverrideRecord) -> AvailabilityOverrideRecord:
        override = override.model_copy(update={"id": override.id or uuid4()})
        self.overrides[override.id] = override
        return override

    def add_event_type(self, event_type: EventTypeRecord) -> EventTypeRecord:
        self.event_types[event_type.id] = event_type
        return event_type

    def add_integration(self, integration: CalendarIntegrationRecord) -> CalendarIntegrationRecord:
        self.integrations[integration.id] = integration
        return integration

    # ---- BookingStore -------------------------------------------------------

    def list_active_rules(self, owner_id: UUID) -> List[AvailabilityRuleRecord]:
        return [r for r in self.rules.values() if r.owner_id == owner_id and r.is_active]

    def replace_rules(self, owner_id, rules):
        ensure_unique_weekdays(rules)
        with self._mutex:
            days = {r.day_of_week for r in rules}
            for rule_id, existing in list(self.rules.items()):
                if existing.owner_id == owner_id and existing.is_active and existing.day_of_week in days:
                    self.rules[rule_id] = existing.model_copy(update={"is_active": False})
            return [
                self.add_rule(rule.model_copy(update={"id": None, "owner_id": owner_id, "is_active": True}))
                for rule in rules
            ]

    def list_overrides(self, owner_id, start, end):
        return [
            o for o in self.overrides.values()
            if o.owner_id == owner_id and start <= o.date <= end
        ]

    def upsert_override(self, override):
        with self._mutex:
            existing = next(
                (o for o in self.overrides.values() if o.owner_id == override.owner_id and o.date == override.date),
                None,
            )
            override = override.model_copy(update={"id": existing.id if existing else uuid4()})
            self.overrides[override.id] = override
            return override

    def delete_override(self, owner_id, day):
        with self._mutex:
            for override_id, override in list(self.overrides.items()):
                if override.owner_id == owner_id and override.date == day:
                    del self.overrides[override_id]
                    return True
            return False

    def list_event_types(self, owner_id, include_inactive=False):
        return [
            et for et in self.event_types.values()
            if et.owner_id == owner_id and (include_inactive or et.is_active)
        ]

    def get_event_type(self, event_type_id):
        return self.event_types.get(event_type_id)

    def create_event_type(self, event_type):
        return self.add_event_type(event_type)

    def update_event_type(self, event_type_id, changes):
        with self._mutex:
            event_type = self.event_types.get(event_type_id)
            if event_type is None:
                raise EventTypeNotFound(f"Event type {event_type_id} not found")
            event_type = EventTypeRecord.model_validate({**event_type.model_dump(), **changes})
            self.event_types[event_type_id] = event_type
            return event_type

    def deactivate_event_type(self, event_type_id):
        return self.update_event_type(event_type_id, {"is_active": False})

    def list_confirmed_bookings(self, owner_id, date_range):
        return sorted(
            (
                b for b in self.bookings.values()
                if b.owner_id == owner_id and b.is_confirmed and overlaps(b.interval, date_range)
            ),
            key=lambda b: b.start_time,
        )

    def list_bookings(self, owner_id, date_range, status=None):
        return sorted(
            (
                b for b in self.bookings.values()
                if b.owner_id == owner_id
                and (status is None or b.status == status)
                and overlaps(b.interval, date_range)
            ),
            key=lambda b: b.start_time,
        )

    def get_booking(self, booking_id):
        return self.bookings.get(booking_id)

    def insert_booking(self, booking):
        with self._mutex:
            booking = booking.model_copy(
                update={"created_at": booking.created_at or datetime.now(timezone.utc)}
            )
            self.bookings[booking.id] = booking
            return booking

    def update_booking_status(self, booking_id, status, reason=None):
        with self._mutex:
            booking = self.bookings.get(booking_id)
            if booking is None:
                raise BookingNotFound(f"Booking {booking_id} not found")
            update = {"status": status}
            if status == BookingStatus.CANCELLED:
                update["cancelled_at"] = datetime.now(timezone.utc)
                update["cancellation_reason"] = reason
            booking = booking.model_copy(update=update)
            self.bookings[booking_id] = booking
            return booking

    def attach_external_ref(self, booking_id, external_ref):
        with self._mutex:
            booking = self.bookings.get(booking_id)
            if booking is None:
                raise BookingNotFound(f"Booking {booking_id} not found")
            self.bookings[booking_id] = booking.model_copy(update={"external_ref": external_ref})

    def record_sync_result(self, booking_id, sync_status, error=None):
        with self._mutex:
            booking = self.bookings.get(booking_id)
            if booking is None:
                raise BookingNotFound(f"Booking {booking_id} not found")
            update = {"sync_status": sync_status, "last_sync_error": error}
            if sync_status in (SyncStatus.SYNCED, SyncStatus.FAILED):
                update["sync_attempts"] = booking.sync_attempts + 1
            self.bookings[booking_id] = booking.model_copy(update=update)

    def list_calendar_integrations(self, owner_id):
        return [i for i in self.integrations.values() if i.owner_id == owner_id and i.is_active]

    def get_calendar_integration(self, integration_id):
        return self.integrations.get(integration_id)

    def deactivate_integration(self, integration_id):
        integration = self.integrations.get(integration_id)
        if integration is None:
            raise IntegrationNotFound(f"Calendar integration {integration_id} not found")
        self.integrations[integration_id] = integration.model_copy(
            update={
                "is_active": False,
                "access_token_encrypted": None,
                "refresh_token_encrypted": None,
                "token_expires_at": None,
            }
        )

    def update_integration_tokens(self, integration_id, access_token_encrypted, token_expires_at):
        integration = self.integrations[integration_id]
        self.integrations[integration_id] = integration.model_copy(
            update={
                "access_token_encrypted": access_token_encrypted,
                "token_expires_at": token_expires_at,
            }
        )

    def update_integration_status(self, integration_id, connection_status, error=None):
        integration = self.integrations[integration_id]
        self.integrations[integration_id] = integration.model_copy(
            update={"connection_status": connection_status}
        )

    @contextmanager
    def owner_lock(self, owner_id: UUID) -> Iterator[None]:
        with self._mutex:
            lock, users = self._owner_locks.get(owner_id, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._owner_locks[owner_id] = (lock, users + 1)
        try:
            with lock:
                self.lock_versions[owner_id] = self.lock_versions.get(owner_id, 0) + 1
                yield
        finally:
            # Drop the entry with its last user
            with self._mutex:
                lock, users = self._owner_locks[owner_id]
                if users == 1:
                    del self._owner_locks[owner_id]
                else:
                    self._owner_locks[owner_id] = (lock, users - 1)
