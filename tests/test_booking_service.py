"""Tests for booking, cancelling and rescheduling."""

import asyncio
import gc
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from app.core.errors import (
    BookingCancelled,
    BookingNotFound,
    CalendarSyncError,
    EventTypeNotFound,
    InvalidInterval,
    MSG_SLOT_CONFLICT,
    SlotConflict,
)
from app.schemas.calendar_events import CreateBookingRequest, RescheduleBookingRequest
from app.schemas.scheduling import BookingStatus, SyncStatus
from app.services.booking.booking_service import OwnerLockRegistry
from app.services.scheduling.intervals import TimeInterval


def utc(hour, minute=0, day=1):
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


def slot(hour, minute=0, length=30, day=1):
    start = utc(hour, minute, day)
    return TimeInterval(start, start.replace(hour=hour + (minute + length) // 60, minute=(minute + length) % 60))


class TestBook:

    @pytest.mark.asyncio
    async def test_commits_then_queues_push(self, store, owner_id, event_type, booker, booking_service, dispatcher):
        booking = await booking_service.book(owner_id, slot(10), event_type.id, booker)

        assert booking.status == BookingStatus.CONFIRMED
        assert booking.sync_status == SyncStatus.PENDING
        assert booking.external_ref is None
        assert store.get_booking(booking.id) == booking
        dispatcher.enqueue_push.assert_called_once_with(booking.id)

    @pytest.mark.asyncio
    async def test_same_slot_twice_conflicts(self, store, owner_id, event_type, booker, booking_service):
        first = await booking_service.book(owner_id, slot(10), event_type.id, booker)

        with pytest.raises(SlotConflict) as exc_info:
            await booking_service.book(owner_id, slot(10), event_type.id, booker)

        assert exc_info.value.message == MSG_SLOT_CONFLICT
        assert exc_info.value.conflicting_booking_id == str(first.id)
        assert len(store.bookings) == 1

    @pytest.mark.asyncio
    async def test_back_to_back_bookings_are_allowed(self, owner_id, event_type, booker, booking_service):
        await booking_service.book(owner_id, slot(10), event_type.id, booker)
        second = await booking_service.book(owner_id, slot(10, 30), event_type.id, booker)

        assert second.start_time == utc(10, 30)

    @pytest.mark.asyncio
    async def test_buffers_of_existing_booking_block_request(self, owner_id, make_event_type, booker, booking_service):
        padded = make_event_type(duration=30, after=15)
        await booking_service.book(owner_id, slot(10), padded.id, booker)

        with pytest.raises(SlotConflict):
            await booking_service.book(owner_id, slot(10, 30), padded.id, booker)

    @pytest.mark.asyncio
    async def test_request_buffers_are_checked(self, owner_id, event_type, make_event_type, booker, booking_service):
        await booking_service.book(owner_id, slot(10), event_type.id, booker)
        padded = make_event_type(duration=30, before=15)

        with pytest.raises(SlotConflict):
            await booking_service.book(owner_id, slot(10, 30), padded.id, booker)

    @pytest.mark.asyncio
    async def test_concurrent_requests_for_one_slot(self, store, owner_id, event_type, booker, booking_service):
        results = await asyncio.gather(
            *(booking_service.book(owner_id, slot(10), event_type.id, booker) for _ in range(5)),
            return_exceptions=True
        )

        confirmed = [r for r in results if not isinstance(r, Exception)]
        conflicts = [r for r in results if isinstance(r, SlotConflict)]
        assert len(confirmed) == 1
        assert len(conflicts) == 4
        assert len(store.list_confirmed_bookings(owner_id, slot(10))) == 1
        assert store.lock_versions[owner_id] == 5

    @pytest.mark.asyncio
    async def test_external_busy_time_blocks_booking(self, owner_id, event_type, booker, calendar, booking_service):
        calendar.add_busy(slot(10, 15))

        with pytest.raises(SlotConflict):
            await booking_service.book(owner_id, slot(10), event_type.id, booker)

    @pytest.mark.asyncio
    async def test_external_outage_does_not_block_booking(self, owner_id, event_type, booker, calendar, booking_service):
        calendar.fail_with = CalendarSyncError("Google API returned 503")

        booking = await booking_service.book(owner_id, slot(10), event_type.id, booker)

        assert booking.status == BookingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_queue_outage_does_not_fail_booking(self, store, owner_id, event_type, booker, booking_service, dispatcher):
        dispatcher.enqueue_push.side_effect = ConnectionError("broker down")

        booking = await booking_service.book(owner_id, slot(10), event_type.id, booker)

        assert store.get_booking(booking.id).status == BookingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_past_start_is_invalid(self, owner_id, event_type, booker, booking_service, clock, dispatcher):
        clock.now = utc(11)

        with pytest.raises(InvalidInterval):
            await booking_service.book(owner_id, slot(10), event_type.id, booker)
        dispatcher.enqueue_push.assert_not_called()

    @pytest.mark.asyncio
    async def test_minimum_notice(self, owner_id, event_type, booker, booking_service, clock):
        clock.now = utc(9, 30)
        booking_service.min_notice_minutes = 60

        with pytest.raises(InvalidInterval):
            await booking_service.book(owner_id, slot(10), event_type.id, booker)

    @pytest.mark.asyncio
    async def test_length_must_match_event_type(self, owner_id, event_type, booker, booking_service):
        with pytest.raises(InvalidInterval):
            await booking_service.book(owner_id, slot(10, length=45), event_type.id, booker)

    @pytest.mark.asyncio
    async def test_unknown_event_type(self, owner_id, booker, booking_service):
        with pytest.raises(EventTypeNotFound):
            await booking_service.book(owner_id, slot(10), uuid4(), booker)

    @pytest.mark.asyncio
    async def test_ad_hoc_booking_has_any_length(self, owner_id, booker, booking_service):
        booking = await booking_service.book(owner_id, slot(10, length=50), None, booker)

        assert booking.event_type_id is None
        assert booking.end_time == utc(10, 50)


class TestCancel:

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self, store, owner_id, event_type, booker, booking_service, dispatcher):
        booking = await booking_service.book(owner_id, slot(10), event_type.id, booker)
        store.attach_external_ref(booking.id, "evt-1")

        first = await booking_service.cancel(booking.id, "Conflict came up")
        second = await booking_service.cancel(booking.id, "Clicked twice")

        assert first.status == second.status == BookingStatus.CANCELLED
        assert second.cancellation_reason == "Conflict came up"
        dispatcher.enqueue_delete.assert_called_once_with(booking.id)

    @pytest.mark.asyncio
    async def test_no_external_delete_without_ref(self, owner_id, event_type, booker, booking_service, dispatcher):
        booking = await booking_service.book(owner_id, slot(10), event_type.id, booker)

        await booking_service.cancel(booking.id)

        dispatcher.enqueue_delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancel_frees_the_slot(self, owner_id, monday_rule, event_type, booker, booking_service, slot_generator):
        booking = await booking_service.book(owner_id, slot(10), event_type.id, booker)
        await booking_service.cancel(booking.id)

        result = await slot_generator.generate(owner_id, TimeInterval(utc(0), utc(0, day=2)), event_type.id)

        assert utc(10) in [s.start for s in result.slots]
        rebooked = await booking_service.book(owner_id, slot(10), event_type.id, booker)
        assert rebooked.id != booking.id

    @pytest.mark.asyncio
    async def test_unknown_booking(self, booking_service):
        with pytest.raises(BookingNotFound):
            await booking_service.cancel(uuid4())


class TestReschedule:

    @pytest.mark.asyncio
    async def test_books_new_and_cancels_old(self, store, owner_id, event_type, booker, booking_service, dispatcher):
        old = await booking_service.book(owner_id, slot(10), event_type.id, booker)

        new = await booking_service.reschedule(old.id, slot(14), "Moved to the afternoon")

        assert new.id != old.id
        assert new.rescheduled_from_id == old.id
        assert new.start_time == utc(14)
        assert new.booker_email == old.booker_email
        assert store.get_booking(old.id).status == BookingStatus.CANCELLED
        assert store.get_booking(old.id).cancellation_reason == "Moved to the afternoon"
        dispatcher.enqueue_push.assert_called_with(new.id)
        dispatcher.enqueue_delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_small_shift_overlapping_itself(self, owner_id, event_type, booker, booking_service):
        old = await booking_service.book(owner_id, slot(10), event_type.id, booker)

        new = await booking_service.reschedule(old.id, slot(10, 15))

        assert new.start_time == utc(10, 15)

    @pytest.mark.asyncio
    async def test_external_event_moves_with_booking(self, store, owner_id, event_type, booker, booking_service, dispatcher):
        old = await booking_service.book(owner_id, slot(10), event_type.id, booker)
        store.attach_external_ref(old.id, "evt-1")

        new = await booking_service.reschedule(old.id, slot(14))

        assert new.external_ref == "evt-1"
        dispatcher.enqueue_update.assert_called_once_with(new.id)
        dispatcher.enqueue_delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_conflict_leaves_old_booking_untouched(self, store, owner_id, event_type, booker, booking_service):
        old = await booking_service.book(owner_id, slot(10), event_type.id, booker)
        await booking_service.book(owner_id, slot(14), event_type.id, booker)

        with pytest.raises(SlotConflict):
            await booking_service.reschedule(old.id, slot(14))

        assert store.get_booking(old.id).status == BookingStatus.CONFIRMED
        assert len(store.bookings) == 2

    @pytest.mark.asyncio
    async def test_cancelled_booking_cannot_move(self, owner_id, event_type, booker, booking_service):
        old = await booking_service.book(owner_id, slot(10), event_type.id, booker)
        await booking_service.cancel(old.id)

        with pytest.raises(BookingCancelled):
            await booking_service.reschedule(old.id, slot(14))


class TestRequestHelpers:

    @pytest.mark.asyncio
    async def test_end_defaults_to_event_type_duration(self, owner_id, event_type, booking_service):
        request = CreateBookingRequest(
            start_time=utc(10),
            event_type_id=event_type.id,
            booker_name="Ada",
            booker_email="ada@example.com",
        )

        booking = await booking_service.create_booking(owner_id, request)

        assert booking.end_time == utc(10, 30)

    @pytest.mark.asyncio
    async def test_ad_hoc_request_needs_end(self, owner_id, booking_service):
        request = CreateBookingRequest(start_time=utc(10), booker_name="Ada", booker_email="ada@example.com")

        with pytest.raises(InvalidInterval):
            await booking_service.create_booking(owner_id, request)

    @pytest.mark.asyncio
    async def test_ad_hoc_reschedule_keeps_length(self, owner_id, booker, booking_service):
        old = await booking_service.book(owner_id, slot(10, length=45), None, booker)

        new = await booking_service.reschedule_booking(old.id, RescheduleBookingRequest(start_time=utc(15)))

        assert new.end_time == utc(15, 45)


class TestOwnerLocks:

    @pytest.mark.asyncio
    async def test_locks_are_released_with_their_last_user(self, store, owner_id, event_type, booker, booking_service):
        requests = [booking_service.book(owner_id, slot(10), event_type.id, booker) for _ in range(3)]
        await asyncio.gather(*requests, return_exceptions=True)
        gc.collect()

        assert owner_id not in booking_service.lock_registry._locks
        assert store._owner_locks == {}
        assert store.lock_versions[owner_id] == 3

    @pytest.mark.asyncio
    async def test_waiters_share_one_lock(self):
        registry = OwnerLockRegistry()
        owner = uuid4()

        held = registry.lock_for(owner)
        async with held:
            assert registry.lock_for(owner) is held
