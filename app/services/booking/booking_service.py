# ============================================================================
# app/services/booking/booking_service.py
# ============================================================================
"""Conflict-free creation, cancellation and rescheduling of bookings"""
import asyncio
import logging
import weakref
from datetime import datetime, timedelta
from typing import Collection, List, Optional
from uuid import UUID, uuid4

from app.config.settings import get_settings
from app.core.errors import (
    BookingCancelled,
    BookingNotFound,
    InvalidInterval,
    SlotConflict,
)
from app.schemas.calendar_events import CreateBookingRequest, RescheduleBookingRequest
from app.schemas.scheduling import (
    BookerIdentity,
    BookingRecord,
    BookingStatus,
    EventTypeRecord,
    SyncStatus,
)
from app.services.availability.busy_time import BusyTimeAggregator
from app.services.availability.slot_generator import Clock, resolve_event_type, utc_now
from app.services.calendar.sync_dispatcher import SyncDispatcher
from app.services.scheduling.intervals import TimeInterval, expand, overlaps
from app.services.storage.booking_store import BookingStore

logger = logging.getLogger(__name__)


class OwnerLockRegistry:
    """
    One asyncio.Lock per owner, shared by every BookingService in the process.

    Entries disappear once no coroutine holds or waits on the lock.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[UUID, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock_for(self, owner_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(owner_id)
        if lock is None:
            lock = self._locks.setdefault(owner_id, asyncio.Lock())
        return lock


class BookingService:
    """
    Books, cancels and reschedules.

    Commits for one owner are serialized twice: by the in-process lock and by
    the store's ``owner_lock``, which holds across worker processes. Busy time
    is recomputed inside both. The external calendar is only told about a
    change after it is committed.
    """

    def __init__(
            self,
            store: BookingStore,
            aggregator: BusyTimeAggregator,
            dispatcher: SyncDispatcher,
            lock_registry: Optional[OwnerLockRegistry] = None,
            clock: Clock = utc_now,
            min_notice_minutes: Optional[int] = None
    ):
        self.store = store
        self.aggregator = aggregator
        self.dispatcher = dispatcher
        self.lock_registry = lock_registry or OwnerLockRegistry()
        self.clock = clock
        self.min_notice_minutes = (
            min_notice_minutes if min_notice_minutes is not None
            else get_settings().BOOKING_MIN_NOTICE_MINUTES
        )

    # ---- validation ---------------------------------------------------------

    def _validate(self, interval: TimeInterval) -> None:
        if not isinstance(interval, TimeInterval):
            raise InvalidInterval("Booking interval is required")

        earliest = self.clock() + timedelta(minutes=self.min_notice_minutes)
        if interval.start < earliest:
            if self.min_notice_minutes:
                raise InvalidInterval(
                    f"Bookings must start at least {self.min_notice_minutes} minutes from now"
                )
            raise InvalidInterval("Cannot book a time in the past")

    def _check_duration(self, interval: TimeInterval, event_type: Optional[EventTypeRecord]) -> None:
        if event_type is not None and interval.duration != timedelta(minutes=event_type.duration_minutes):
            raise InvalidInterval(
                f"{event_type.name} lasts {event_type.duration_minutes} minutes, "
                f"got {interval.duration_minutes}"
            )

    def _get(self, booking_id: UUID) -> BookingRecord:
        booking = self.store.get_booking(booking_id)
        if booking is None:
            raise BookingNotFound(f"Booking {booking_id} not found")
        return booking

    def get_booking(self, booking_id: UUID) -> BookingRecord:
        return self._get(booking_id)

    def list_bookings(
            self,
            owner_id: UUID,
            start: datetime,
            end: datetime,
            status: Optional[BookingStatus] = None
    ) -> List[BookingRecord]:
        """The owner's bookings overlapping ``[start, end)``, earliest first"""
        return self.store.list_bookings(owner_id, TimeInterval(start, end), status)

    def _enqueue(self, enqueue, booking_id: UUID, operation: str) -> None:
        # The booking is already committed; a broker outage only delays mirroring
        try:
            enqueue(booking_id)
        except Exception as e:
            logger.error(f"Failed to queue calendar {operation} for booking {booking_id}: {e}")

    # ---- commit path --------------------------------------------------------

    async def _commit_booking(
            self,
            owner_id: UUID,
            interval: TimeInterval,
            event_type: Optional[EventTypeRecord],
            booker: BookerIdentity,
            exclude_booking_ids: Collection[UUID] = (),
            external_ref: Optional[str] = None,
            rescheduled_from_id: Optional[UUID] = None
    ) -> BookingRecord:
        """Must run while holding the owner's locks"""
        guarded = interval
        if event_type is not None:
            guarded = expand(interval, event_type.buffer_before_minutes, event_type.buffer_after_minutes)

        busy = await self.aggregator.busy_intervals(owner_id, guarded, exclude_booking_ids)
        if any(overlaps(block, guarded) for block in busy.intervals):
            conflicting = next(
                (
                    b.id for b in self.store.list_confirmed_bookings(owner_id, guarded)
                    if b.id not in exclude_booking_ids
                ),
                None
            )
            logger.info(
                f"Slot conflict for owner {owner_id} at {interval.start.isoformat()}"
                f" (booking={conflicting})"
            )
            raise SlotConflict(conflicting_booking_id=str(conflicting) if conflicting else None)

        if busy.partial:
            logger.warning(f"Booking for owner {owner_id} checked against internal bookings only")

        booking = BookingRecord(
            id=uuid4(),
            owner_id=owner_id,
            event_type_id=event_type.id if event_type else None,
            start_time=interval.start,
            end_time=interval.end,
            status=BookingStatus.CONFIRMED,
            booker_name=booker.name,
            booker_email=booker.email,
            booker_company=booker.company,
            notes=booker.notes,
            external_ref=external_ref,
            sync_status=SyncStatus.PENDING,
            rescheduled_from_id=rescheduled_from_id,
        )
        return self.store.insert_booking(booking)

    async def book(
            self,
            owner_id: UUID,
            interval: TimeInterval,
            event_type_id: Optional[UUID],
            booker: BookerIdentity
    ) -> BookingRecord:
        """Commit a confirmed booking or raise SlotConflict"""
        self._validate(interval)
        event_type = resolve_event_type(self.store, owner_id, event_type_id)
        self._check_duration(interval, event_type)

        async with self.lock_registry.lock_for(owner_id):
            with self.store.owner_lock(owner_id):
                booking = await self._commit_booking(owner_id, interval, event_type, booker)

        logger.info(
            f"Booked {booking.id} for owner {owner_id}: "
            f"{booking.start_time.isoformat()} - {booking.end_time.isoformat()}"
        )
        self._enqueue(self.dispatcher.enqueue_push, booking.id, "push")
        return booking

    def _cancel_locked(self, booking_id: UUID, reason: Optional[str]) -> BookingRecord:
        booking = self._get(booking_id)
        if not booking.is_confirmed:
            return booking
        return self.store.update_booking_status(booking_id, BookingStatus.CANCELLED, reason)

    async def cancel(self, booking_id: UUID, reason: Optional[str] = None) -> BookingRecord:
        """Cancel a booking; cancelling twice is a no-op"""
        booking = self._get(booking_id)
        if not booking.is_confirmed:
            logger.info(f"Booking {booking_id} already cancelled")
            return booking

        async with self.lock_registry.lock_for(booking.owner_id):
            with self.store.owner_lock(booking.owner_id):
                was_confirmed = self._get(booking_id).is_confirmed
                cancelled = self._cancel_locked(booking_id, reason)

        if was_confirmed:
            logger.info(f"Cancelled booking {booking_id}")
            if cancelled.external_ref:
                self._enqueue(self.dispatcher.enqueue_delete, booking_id, "delete")
        return cancelled

    async def reschedule(
            self,
            booking_id: UUID,
            new_interval: TimeInterval,
            reason: Optional[str] = None
    ) -> BookingRecord:
        """
        Move a booking by booking the new time and cancelling the old one.

        The new booking is checked with the old one left out of busy time, so
        small shifts that overlap the original are allowed. Both steps happen
        under the owner's lock; on SlotConflict the old booking is untouched.
        The external event moves with the booking.
        """
        old = self._get(booking_id)
        if not old.is_confirmed:
            raise BookingCancelled(f"Booking {booking_id} is cancelled and cannot be rescheduled")

        event_type = self.store.get_event_type(old.event_type_id) if old.event_type_id else None
        self._validate(new_interval)
        self._check_duration(new_interval, event_type)
        booker = BookerIdentity(
            name=old.booker_name,
            email=old.booker_email,
            company=old.booker_company,
            notes=old.notes,
        )

        async with self.lock_registry.lock_for(old.owner_id):
            with self.store.owner_lock(old.owner_id):
                old = self._get(booking_id)
                if not old.is_confirmed:
                    raise BookingCancelled(f"Booking {booking_id} is cancelled and cannot be rescheduled")
                new = await self._commit_booking(
                    old.owner_id,
                    new_interval,
                    event_type,
                    booker,
                    exclude_booking_ids={old.id},
                    external_ref=old.external_ref,
                    rescheduled_from_id=old.id,
                )
                self._cancel_locked(old.id, reason or f"Rescheduled to {new.id}")

        logger.info(f"Rescheduled booking {booking_id} -> {new.id}")
        if new.external_ref:
            self._enqueue(self.dispatcher.enqueue_update, new.id, "update")
        else:
            self._enqueue(self.dispatcher.enqueue_push, new.id, "push")
        return new

    # ---- request-level helpers used by the API -------------------------------

    def _interval_for(self, start: datetime, end: Optional[datetime], event_type: Optional[EventTypeRecord]) -> TimeInterval:
        if end is None:
            if event_type is None:
                raise InvalidInterval("end_time is required for ad-hoc bookings")
            end = start + timedelta(minutes=event_type.duration_minutes)
        return TimeInterval(start, end)

    async def create_booking(self, owner_id: UUID, request: CreateBookingRequest) -> BookingRecord:
        event_type = resolve_event_type(self.store, owner_id, request.event_type_id)
        interval = self._interval_for(request.start_time, request.end_time, event_type)
        booker = BookerIdentity(
            name=request.booker_name,
            email=str(request.booker_email),
            company=request.booker_company,
            notes=request.notes,
        )
        return await self.book(owner_id, interval, request.event_type_id, booker)

    async def cancel_booking(self, booking_id: UUID, reason: Optional[str] = None) -> BookingRecord:
        return await self.cancel(booking_id, reason)

    async def reschedule_booking(self, booking_id: UUID, request: RescheduleBookingRequest) -> BookingRecord:
        old = self._get(booking_id)
        event_type = self.store.get_event_type(old.event_type_id) if old.event_type_id else None
        if request.end_time is None and event_type is None:
            # Ad-hoc bookings keep their length
            end = request.start_time + (old.end_time - old.start_time)
        else:
            end = request.end_time
        interval = self._interval_for(request.start_time, end, event_type)
        return await self.reschedule(booking_id, interval, request.reason)
