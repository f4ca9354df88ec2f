# ============================================================================
# FILE: app/api/dependencies.py
# Service wiring for the scheduling endpoints
# ============================================================================
from fastapi import Depends
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.services.availability.availability_service import AvailabilityService
from app.services.availability.busy_time import BusyTimeAggregator
from app.services.availability.rule_set import AvailabilityRuleSet
from app.services.availability.slot_generator import Clock, SlotGenerator, utc_now
from app.services.booking.booking_service import BookingService, OwnerLockRegistry
from app.services.booking.event_type_service import EventTypeService
from app.services.calendar.base import AdapterResolver
from app.services.calendar.google_calendar_service import get_calendar_adapter
from app.services.calendar.integration_service import CalendarIntegrationService
from app.services.calendar.sync_dispatcher import CelerySyncDispatcher, SyncDispatcher
from app.services.scheduling.drag_selection import DragSelectionMapper
from app.services.storage.booking_store import BookingStore
from app.services.storage.sql_booking_store import SqlBookingStore

# Shared by every request handled by this process
_owner_locks = OwnerLockRegistry()


def get_booking_store(db: Session = Depends(get_db)) -> BookingStore:
    return SqlBookingStore(db)


def get_adapter_resolver(store: BookingStore = Depends(get_booking_store)) -> AdapterResolver:
    return lambda integration: get_calendar_adapter(integration, store)


def get_sync_dispatcher() -> SyncDispatcher:
    return CelerySyncDispatcher()


def get_lock_registry() -> OwnerLockRegistry:
    return _owner_locks


def get_clock() -> Clock:
    return utc_now


def get_rule_set(store: BookingStore = Depends(get_booking_store)) -> AvailabilityRuleSet:
    return AvailabilityRuleSet(store)


def get_busy_time_aggregator(
        store: BookingStore = Depends(get_booking_store),
        resolver: AdapterResolver = Depends(get_adapter_resolver)
) -> BusyTimeAggregator:
    return BusyTimeAggregator(store, resolver)


def get_availability_service(
        store: BookingStore = Depends(get_booking_store),
        rule_set: AvailabilityRuleSet = Depends(get_rule_set),
        aggregator: BusyTimeAggregator = Depends(get_busy_time_aggregator),
        clock: Clock = Depends(get_clock)
) -> AvailabilityService:
    return AvailabilityService(SlotGenerator(store, rule_set, aggregator, clock=clock))


def get_booking_service(
        store: BookingStore = Depends(get_booking_store),
        aggregator: BusyTimeAggregator = Depends(get_busy_time_aggregator),
        dispatcher: SyncDispatcher = Depends(get_sync_dispatcher),
        lock_registry: OwnerLockRegistry = Depends(get_lock_registry),
        clock: Clock = Depends(get_clock)
) -> BookingService:
    return BookingService(store, aggregator, dispatcher, lock_registry=lock_registry, clock=clock)


def get_drag_selection_mapper() -> DragSelectionMapper:
    return DragSelectionMapper()


def get_event_type_service(store: BookingStore = Depends(get_booking_store)) -> EventTypeService:
    return EventTypeService(store)


def get_integration_service(store: BookingStore = Depends(get_booking_store)) -> CalendarIntegrationService:
    return CalendarIntegrationService(store)
