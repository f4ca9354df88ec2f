"""Pytest fixtures for the scheduling engine tests."""

import logging
from datetime import datetime, time, timezone
from typing import Callable
from unittest.mock import MagicMock
from uuid import UUID, uuid4

import pytest

from app.schemas.scheduling import (
    AvailabilityRuleRecord,
    BookerIdentity,
    CalendarIntegrationRecord,
    EventTypeRecord,
)
from app.services.availability.availability_service import AvailabilityService
from app.services.availability.busy_time import BusyTimeAggregator
from app.services.availability.rule_set import AvailabilityRuleSet
from app.services.availability.slot_generator import SlotGenerator
from app.services.booking.booking_service import BookingService
from app.services.calendar.memory_adapter import InMemoryCalendarAdapter
from app.services.calendar.sync_dispatcher import SyncDispatcher
from app.services.storage.booking_store import InMemoryBookingStore

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    """Shorthand for an aware UTC datetime."""
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


class FixedClock:
    """Clock the tests can move by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def owner_id() -> UUID:
    return uuid4()


@pytest.fixture
def clock() -> FixedClock:
    """Midnight UTC on Monday 2024-01-01."""
    return FixedClock(utc(2024, 1, 1, 0, 0))


@pytest.fixture
def store() -> InMemoryBookingStore:
    return InMemoryBookingStore()


@pytest.fixture
def monday_rule(store, owner_id) -> AvailabilityRuleRecord:
    """Mondays 09:00-12:00 UTC."""
    return store.add_rule(AvailabilityRuleRecord(
        owner_id=owner_id,
        day_of_week=0,
        start_time=time(9, 0),
        end_time=time(12, 0),
        timezone="UTC",
    ))


@pytest.fixture
def event_type(store, owner_id) -> EventTypeRecord:
    """30 minute meeting without buffers."""
    return store.add_event_type(EventTypeRecord(
        id=uuid4(),
        owner_id=owner_id,
        name="Intro call",
        duration_minutes=30,
    ))


@pytest.fixture
def make_event_type(store, owner_id) -> Callable[..., EventTypeRecord]:
    def _make(duration=30, before=0, after=0, name="Meeting", is_active=True):
        return store.add_event_type(EventTypeRecord(
            id=uuid4(),
            owner_id=owner_id,
            name=name,
            duration_minutes=duration,
            buffer_before_minutes=before,
            buffer_after_minutes=after,
            is_active=is_active,
        ))
    return _make


@pytest.fixture
def booker() -> BookerIdentity:
    return BookerIdentity(name="Ada Investor", email="ada@example.com", company="Analytical Capital")


@pytest.fixture
def integration(store, owner_id) -> CalendarIntegrationRecord:
    return store.add_integration(CalendarIntegrationRecord(
        id=uuid4(),
        owner_id=owner_id,
        provider="memory",
        calendar_id="owner@example.com",
        is_primary=True,
    ))


@pytest.fixture
def calendar(integration) -> InMemoryCalendarAdapter:
    return InMemoryCalendarAdapter(integration, pull_timeout=0.5, push_timeout=0.5)


@pytest.fixture
def resolver(calendar):
    return lambda integration: calendar


@pytest.fixture
def aggregator(store, resolver) -> BusyTimeAggregator:
    return BusyTimeAggregator(store, resolver)


@pytest.fixture
def rule_set(store) -> AvailabilityRuleSet:
    return AvailabilityRuleSet(store)


@pytest.fixture
def slot_generator(store, rule_set, aggregator, clock) -> SlotGenerator:
    return SlotGenerator(store, rule_set, aggregator, granularity_minutes=15, min_notice_minutes=0, clock=clock)


@pytest.fixture
def availability_service(slot_generator) -> AvailabilityService:
    return AvailabilityService(slot_generator)


@pytest.fixture
def dispatcher() -> MagicMock:
    return MagicMock(spec=SyncDispatcher)


@pytest.fixture
def booking_service(store, aggregator, dispatcher, clock) -> BookingService:
    return BookingService(store, aggregator, dispatcher, clock=clock, min_notice_minutes=0)
