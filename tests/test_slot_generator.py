"""Tests for bookable slot generation."""

from datetime import datetime, time, timedelta, timezone
from uuid import uuid4

import pytest

from app.core.errors import CalendarSyncError, EventTypeNotFound
from app.schemas.scheduling import AvailabilityRuleRecord, BookingRecord
from app.services.availability.slot_generator import SlotGenerator
from app.services.scheduling.intervals import TimeInterval, overlaps


def utc(hour, minute=0, day=1):
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


MONDAY = TimeInterval(utc(0), utc(0, day=2))


def add_booking(store, owner_id, start, end, event_type=None):
    return store.insert_booking(BookingRecord(
        id=uuid4(),
        owner_id=owner_id,
        event_type_id=event_type.id if event_type else None,
        start_time=start,
        end_time=end,
        booker_name="Grace",
        booker_email="grace@example.com",
    ))


def starts(result):
    return [(s.start.hour, s.start.minute) for s in result.slots]


@pytest.mark.asyncio
async def test_monday_morning_with_one_booking(store, owner_id, monday_rule, event_type, slot_generator):
    """09:00-12:00 with 10:00-10:30 taken leaves five half-hour slots."""
    add_booking(store, owner_id, utc(10), utc(10, 30), event_type)

    result = await slot_generator.generate(owner_id, MONDAY, event_type.id)

    assert starts(result) == [(9, 0), (9, 30), (10, 30), (11, 0), (11, 30)]
    assert all(s.end - s.start == timedelta(minutes=30) for s in result.slots)
    assert result.partial is False


@pytest.mark.asyncio
async def test_without_event_type_returns_free_intervals(store, owner_id, monday_rule, slot_generator):
    add_booking(store, owner_id, utc(10), utc(10, 30))

    result = await slot_generator.generate(owner_id, MONDAY)

    assert [s.interval for s in result.slots] == [
        TimeInterval(utc(9), utc(10)),
        TimeInterval(utc(10, 30), utc(12)),
    ]


@pytest.mark.asyncio
async def test_buffers_keep_slots_bookable(store, owner_id, monday_rule, make_event_type, slot_generator):
    padded = make_event_type(duration=30, after=15)
    add_booking(store, owner_id, utc(10), utc(10, 30), padded)

    result = await slot_generator.generate(owner_id, MONDAY, padded.id)

    # 09:30 would run its 15 minute tail into the 10:00 booking
    assert starts(result) == [(9, 0), (10, 45), (11, 15)]


@pytest.mark.asyncio
async def test_starts_are_aligned_to_granularity(store, owner_id, event_type, slot_generator):
    store.add_rule(AvailabilityRuleRecord(
        owner_id=owner_id, day_of_week=0, start_time=time(9, 10), end_time=time(10, 30)
    ))

    result = await slot_generator.generate(owner_id, MONDAY, event_type.id)

    assert starts(result) == [(9, 15), (9, 45)]


@pytest.mark.asyncio
async def test_remainders_shorter_than_duration_are_dropped(store, owner_id, monday_rule, make_event_type, slot_generator):
    long_meeting = make_event_type(duration=120)

    result = await slot_generator.generate(owner_id, MONDAY, long_meeting.id)

    assert starts(result) == [(9, 0)]


@pytest.mark.asyncio
async def test_slots_stay_inside_rules_and_outside_busy_time(
        store, owner_id, monday_rule, event_type, calendar, slot_generator
):
    add_booking(store, owner_id, utc(9, 15), utc(9, 45))
    calendar.add_busy(TimeInterval(utc(11), utc(11, 20)))

    result = await slot_generator.generate(owner_id, MONDAY, event_type.id)

    window = TimeInterval(utc(9), utc(12))
    busy = [TimeInterval(utc(9, 15), utc(9, 45)), TimeInterval(utc(11), utc(11, 20))]
    assert result.slots
    for slot in result.slots:
        assert window.contains(slot.interval)
        assert not any(overlaps(slot.interval, b) for b in busy)


@pytest.mark.asyncio
async def test_external_failure_is_partial_not_an_error(
        store, owner_id, monday_rule, event_type, calendar, slot_generator
):
    calendar.add_busy(TimeInterval(utc(9), utc(12)))
    calendar.fail_with = CalendarSyncError("timeout")

    result = await slot_generator.generate(owner_id, MONDAY, event_type.id)

    assert result.partial is True
    assert len(result.slots) == 6


@pytest.mark.asyncio
async def test_minimum_notice_drops_early_slots(store, owner_id, monday_rule, event_type, rule_set, aggregator, clock):
    clock.now = utc(9, 20)
    generator = SlotGenerator(store, rule_set, aggregator, granularity_minutes=15, min_notice_minutes=0, clock=clock)

    result = await generator.generate(owner_id, MONDAY, event_type.id)

    assert starts(result) == [(9, 30), (10, 0), (10, 30), (11, 0), (11, 30)]

    generator.min_notice_minutes = 60
    result = await generator.generate(owner_id, MONDAY, event_type.id)

    assert starts(result) == [(10, 30), (11, 0), (11, 30)]


@pytest.mark.asyncio
async def test_unknown_event_type(owner_id, monday_rule, slot_generator):
    with pytest.raises(EventTypeNotFound):
        await slot_generator.generate(owner_id, MONDAY, uuid4())


@pytest.mark.asyncio
async def test_inactive_event_type(owner_id, monday_rule, make_event_type, slot_generator):
    retired = make_event_type(is_active=False)

    with pytest.raises(EventTypeNotFound):
        await slot_generator.generate(owner_id, MONDAY, retired.id)


@pytest.mark.asyncio
async def test_no_rules_means_no_slots(owner_id, event_type, slot_generator):
    result = await slot_generator.generate(owner_id, MONDAY, event_type.id)

    assert result.slots == []
    assert result.partial is False


@pytest.mark.asyncio
async def test_hourly_slots_follow_half_hour_offset_zone(store, owner_id, make_event_type, rule_set, aggregator, clock):
    """09:00-10:00 in Kolkata (UTC+05:30) is one free hour, so one hourly slot."""
    store.add_rule(AvailabilityRuleRecord(
        owner_id=owner_id, day_of_week=0, start_time=time(9, 0), end_time=time(10, 0), timezone="Asia/Kolkata"
    ))
    hour_meeting = make_event_type(duration=60)
    generator = SlotGenerator(store, rule_set, aggregator, granularity_minutes=60, min_notice_minutes=0, clock=clock)

    result = await generator.generate(owner_id, MONDAY, hour_meeting.id)

    assert [s.interval for s in result.slots] == [TimeInterval(utc(3, 30), utc(4, 30))]


def test_owner_timezone_defaults_without_rules(owner_id, rule_set):
    assert rule_set.timezone_for(owner_id) == "UTC"
