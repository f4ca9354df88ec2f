# ============================================================================
# FILE: app/api/v1/event_types.py
# Event type management - thin HTTP layer
# ============================================================================
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status

from app.api.dependencies import get_event_type_service
from app.schemas.calendar_events import EventTypeCreate, EventTypeUpdate
from app.schemas.scheduling import EventTypeRecord
from app.services.booking.event_type_service import EventTypeService

router = APIRouter(tags=["event-types"])


@router.get("/owners/{owner_id}/event-types", response_model=List[EventTypeRecord])
async def list_event_types(
        owner_id: UUID = Path(..., description="Owner whose event types are listed"),
        include_inactive: bool = Query(False, description="Include retired event types"),
        service: EventTypeService = Depends(get_event_type_service)
):
    return service.list_event_types(owner_id, include_inactive)


@router.post(
    "/owners/{owner_id}/event-types",
    response_model=EventTypeRecord,
    status_code=status.HTTP_201_CREATED
)
async def create_event_type(
        request: EventTypeCreate,
        owner_id: UUID = Path(..., description="Owner the event type belongs to"),
        service: EventTypeService = Depends(get_event_type_service)
):
    return service.create_event_type(owner_id, request)


@router.patch("/owners/{owner_id}/event-types/{event_type_id}", response_model=EventTypeRecord)
async def update_event_type(
        request: EventTypeUpdate,
        owner_id: UUID = Path(..., description="Owner the event type belongs to"),
        event_type_id: UUID = Path(..., description="The event type ID"),
        service: EventTypeService = Depends(get_event_type_service)
):
    """Change name, duration or buffers. Existing bookings keep their times."""
    return service.update_event_type(owner_id, event_type_id, request)


@router.delete("/owners/{owner_id}/event-types/{event_type_id}", response_model=EventTypeRecord)
async def deactivate_event_type(
        owner_id: UUID = Path(..., description="Owner the event type belongs to"),
        event_type_id: UUID = Path(..., description="The event type ID"),
        service: EventTypeService = Depends(get_event_type_service)
):
    """
    Retire an event type.
    It is deactivated rather than deleted so its bookings keep their buffers.
    """
    return service.deactivate_event_type(owner_id, event_type_id)
