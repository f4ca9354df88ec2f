# ============================================================================
# app/services/storage/sql_booking_store.py
# ============================================================================
"""SQLAlchemy implementation of the storage collaborator"""
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional
from uuid import UUID
import logging

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from app.core.errors import BookingNotFound, EventTypeNotFound, IntegrationNotFound
from app.models.availability import AvailabilityRule, AvailabilityOverride
from app.models.booking import Booking, BookingOwnerLock
from app.models.calendar_integration import CalendarIntegration
from app.models.event_type import EventType
from app.schemas.scheduling import (
    AvailabilityOverrideRecord,
    AvailabilityRuleRecord,
    BookingRecord,
    BookingStatus,
    CalendarIntegrationRecord,
    EventTypeRecord,
    SyncStatus,
)
from app.services.storage.booking_store import BookingStore, ensure_unique_weekdays

logger = logging.getLogger(__name__)


class SqlBookingStore(BookingStore):
    """Reads and writes scheduling rows through one SQLAlchemy session"""

    def __init__(self, db: Session):
        self.db = db
        self._lock_depth = 0

    def _commit(self):
        # Inside owner_lock the commit happens when the lock is released
        if self._lock_depth:
            self.db.flush()
        else:
            self.db.commit()

    def _get_booking_row(self, booking_id: UUID) -> Booking:
        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            raise BookingNotFound(f"Booking {booking_id} not found")
        return booking

    # ---- availability rules -------------------------------------------------

    def list_active_rules(self, owner_id: UUID) -> List[AvailabilityRuleRecord]:
        rules = self.db.query(AvailabilityRule).filter(
            AvailabilityRule.owner_id == owner_id,
            AvailabilityRule.is_active == True
        ).order_by(AvailabilityRule.day_of_week).all()
        return [AvailabilityRuleRecord.model_validate(r) for r in rules]

    def replace_rules(self, owner_id, rules):
        ensure_unique_weekdays(rules)
        now = datetime.now(timezone.utc)
        days = [r.day_of_week for r in rules]

        self.db.query(AvailabilityRule).filter(
            AvailabilityRule.owner_id == owner_id,
            AvailabilityRule.day_of_week.in_(days),
            AvailabilityRule.is_active == True
        ).update(
            {"is_active": False, "deactivated_at": now},
            synchronize_session=False
        )

        rows = [
            AvailabilityRule(
                owner_id=owner_id,
                day_of_week=rule.day_of_week,
                start_time=rule.start_time,
                end_time=rule.end_time,
                timezone=rule.timezone,
                is_active=True,
            )
            for rule in rules
        ]
        self.db.add_all(rows)
        self._commit()
        for row in rows:
            self.db.refresh(row)

        logger.info(f"Replaced availability rules for owner {owner_id}: days={days}")
        return [AvailabilityRuleRecord.model_validate(r) for r in rows]

    def list_overrides(self, owner_id, start, end):
        overrides = self.db.query(AvailabilityOverride).filter(
            AvailabilityOverride.owner_id == owner_id,
            AvailabilityOverride.date.between(start, end)
        ).all()
        return [AvailabilityOverrideRecord.model_validate(o) for o in overrides]

    def upsert_override(self, override):
        row = self.db.query(AvailabilityOverride).filter(
            AvailabilityOverride.owner_id == override.owner_id,
            AvailabilityOverride.date == override.date
        ).first()
        if row is None:
            row = AvailabilityOverride(owner_id=override.owner_id, date=override.date)
            self.db.add(row)
        row.is_available = override.is_available
        row.start_time = override.start_time
        row.end_time = override.end_time
        row.timezone = override.timezone
        row.reason = override.reason
        self._commit()
        self.db.refresh(row)
        return AvailabilityOverrideRecord.model_validate(row)

    def delete_override(self, owner_id, day):
        deleted = self.db.query(AvailabilityOverride).filter(
            AvailabilityOverride.owner_id == owner_id,
            AvailabilityOverride.date == day
        ).delete(synchronize_session=False)
        self._commit()
        return bool(deleted)

    # ---- event types --------------------------------------------------------

    def list_event_types(self, owner_id, include_inactive=False):
        query = self.db.query(EventType).filter(EventType.owner_id == owner_id)
        if not include_inactive:
            query = query.filter(EventType.is_active == True)
        return [EventTypeRecord.model_validate(et) for et in query.all()]

    def get_event_type(self, event_type_id):
        event_type = self.db.query(EventType).filter(EventType.id == event_type_id).first()
        return EventTypeRecord.model_validate(event_type) if event_type else None

    def create_event_type(self, event_type):
        row = EventType(
            id=event_type.id,
            owner_id=event_type.owner_id,
            name=event_type.name,
            description=event_type.description,
            duration_minutes=event_type.duration_minutes,
            buffer_before_minutes=event_type.buffer_before_minutes,
            buffer_after_minutes=event_type.buffer_after_minutes,
            is_active=event_type.is_active,
        )
        self.db.add(row)
        self._commit()
        self.db.refresh(row)
        logger.info(f"Created event type {row.id} ({row.name}) for owner {row.owner_id}")
        return EventTypeRecord.model_validate(row)

    def update_event_type(self, event_type_id, changes):
        row = self.db.query(EventType).filter(EventType.id == event_type_id).first()
        if not row:
            raise EventTypeNotFound(f"Event type {event_type_id} not found")
        # Validate the result before touching the row
        EventTypeRecord.model_validate({**EventTypeRecord.model_validate(row).model_dump(), **changes})
        for field, value in changes.items():
            setattr(row, field, value)
        self._commit()
        self.db.refresh(row)
        return EventTypeRecord.model_validate(row)

    def deactivate_event_type(self, event_type_id):
        return self.update_event_type(event_type_id, {"is_active": False})

    # ---- bookings -----------------------------------------------------------

    def list_confirmed_bookings(self, owner_id, date_range):
        bookings = self.db.query(Booking).filter(
            Booking.owner_id == owner_id,
            Booking.status == BookingStatus.CONFIRMED.value,
            Booking.start_time < date_range.end,
            Booking.end_time > date_range.start
        ).order_by(Booking.start_time).all()
        return [BookingRecord.model_validate(b) for b in bookings]

    def list_bookings(self, owner_id, date_range, status=None):
        query = self.db.query(Booking).filter(
            Booking.owner_id == owner_id,
            Booking.start_time < date_range.end,
            Booking.end_time > date_range.start
        )
        if status is not None:
            query = query.filter(Booking.status == status.value)
        return [BookingRecord.model_validate(b) for b in query.order_by(Booking.start_time).all()]

    def get_booking(self, booking_id):
        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        return BookingRecord.model_validate(booking) if booking else None

    def insert_booking(self, booking):
        row = Booking(
            id=booking.id,
            owner_id=booking.owner_id,
            event_type_id=booking.event_type_id,
            rescheduled_from_id=booking.rescheduled_from_id,
            start_time=booking.start_time,
            end_time=booking.end_time,
            booker_name=booking.booker_name,
            booker_email=booking.booker_email,
            booker_company=booking.booker_company,
            notes=booking.notes,
            status=booking.status.value,
            external_ref=booking.external_ref,
            sync_status=booking.sync_status.value,
            sync_attempts=booking.sync_attempts,
        )
        self.db.add(row)
        self._commit()
        self.db.refresh(row)
        return BookingRecord.model_validate(row)

    def update_booking_status(self, booking_id, status, reason=None):
        booking = self._get_booking_row(booking_id)
        booking.status = status.value
        if status == BookingStatus.CANCELLED:
            booking.cancelled_at = datetime.now(timezone.utc)
            booking.cancellation_reason = reason
        self._commit()
        self.db.refresh(booking)
        return BookingRecord.model_validate(booking)

    def attach_external_ref(self, booking_id, external_ref):
        booking = self._get_booking_row(booking_id)
        booking.external_ref = external_ref
        self._commit()

    def record_sync_result(self, booking_id, sync_status, error=None):
        booking = self._get_booking_row(booking_id)
        booking.sync_status = sync_status.value
        booking.last_sync_error = error
        if sync_status in (SyncStatus.SYNCED, SyncStatus.FAILED):
            booking.sync_attempts = (booking.sync_attempts or 0) + 1
        if sync_status == SyncStatus.SYNCED:
            booking.last_synced_at = datetime.now(timezone.utc)
        self._commit()

    # ---- calendar integrations ----------------------------------------------

    def list_calendar_integrations(self, owner_id):
        integrations = self.db.query(CalendarIntegration).filter(
            CalendarIntegration.owner_id == owner_id,
            CalendarIntegration.is_active == True
        ).all()
        return [CalendarIntegrationRecord.model_validate(i) for i in integrations]

    def get_calendar_integration(self, integration_id):
        integration = self.db.query(CalendarIntegration).filter_by(id=integration_id).first()
        return CalendarIntegrationRecord.model_validate(integration) if integration else None

    def deactivate_integration(self, integration_id):
        integration = self.db.query(CalendarIntegration).filter_by(id=integration_id).first()
        if not integration:
            raise IntegrationNotFound(f"Calendar integration {integration_id} not found")
        integration.is_active = False
        integration.access_token_encrypted = None
        integration.refresh_token_encrypted = None
        integration.token_expires_at = None
        self._commit()
        logger.info(f"Disconnected {integration.provider} calendar {integration.calendar_id} for owner {integration.owner_id}")

    def update_integration_tokens(self, integration_id, access_token_encrypted, token_expires_at):
        integration = self.db.query(CalendarIntegration).filter_by(id=integration_id).first()
        if not integration:
            return
        integration.access_token_encrypted = access_token_encrypted
        integration.token_expires_at = token_expires_at
        self._commit()

    def update_integration_status(self, integration_id, connection_status, error=None):
        integration = self.db.query(CalendarIntegration).filter_by(id=integration_id).first()
        if not integration:
            return
        integration.connection_status = connection_status.value
        integration.last_sync_at = datetime.now(timezone.utc)
        integration.last_sync_status = "failed" if error else "success"
        integration.last_sync_error = error
        self._commit()

    # ---- serialization ------------------------------------------------------

    @contextmanager
    def owner_lock(self, owner_id: UUID) -> Iterator[None]:
        """
        Lock the owner's row in booking_owner_locks for the rest of the transaction.

        The row is created on first use; a second transaction for the same
        owner blocks on SELECT ... FOR UPDATE until this one commits or rolls
        back. SQLite has no row locks and serializes writers on its own.
        """
        insert = sqlite_insert if self.db.get_bind().dialect.name == "sqlite" else pg_insert
        self.db.execute(
            insert(BookingOwnerLock)
            .values(owner_id=owner_id, version=0)
            .on_conflict_do_nothing(index_elements=["owner_id"])
        )
        lock_row = self.db.query(BookingOwnerLock).filter(
            BookingOwnerLock.owner_id == owner_id
        ).with_for_update().one()
        lock_row.version = lock_row.version + 1

        self._lock_depth += 1
        try:
            yield
        except Exception:
            self._lock_depth -= 1
            self.db.rollback()
            raise
        else:
            self._lock_depth -= 1
            self.db.commit()
