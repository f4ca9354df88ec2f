# ============================================================================
# FILE: app/api/v1/availability.py
# Availability queries - thin HTTP layer
# IMPORTANT: Specific routes MUST come before parameterized routes
# ============================================================================
from datetime import date, datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query

from app.api.dependencies import get_availability_service
from app.schemas.calendar_events import AvailabilityResponse, AvailableDaysResponse
from app.services.availability.availability_service import AvailabilityService

router = APIRouter(tags=["availability"])


@router.get("/owners/{owner_id}/availability/days", response_model=AvailableDaysResponse)
async def get_available_days(
        owner_id: UUID = Path(..., description="Owner whose calendar is queried"),
        start_date: date = Query(..., description="First local date (inclusive)"),
        end_date: date = Query(..., description="Last local date (inclusive)"),
        timezone: Optional[str] = Query(None, description="Timezone the dates are expressed in, the owner's by default"),
        event_type_id: Optional[UUID] = Query(None, description="Event type used for chunking"),
        service: AvailabilityService = Depends(get_availability_service)
):
    """
    Which dates have at least one bookable slot.
    Used to grey out days in the booking page's date picker.
    """
    return await service.get_available_days(owner_id, start_date, end_date, timezone, event_type_id)


@router.get("/owners/{owner_id}/availability", response_model=AvailabilityResponse)
async def get_availability(
        owner_id: UUID = Path(..., description="Owner whose calendar is queried"),
        start: datetime = Query(..., description="Range start, timezone aware"),
        end: datetime = Query(..., description="Range end, timezone aware"),
        event_type_id: Optional[UUID] = Query(None, description="Chunk into slots of this event type"),
        service: AvailabilityService = Depends(get_availability_service)
):
    """
    Bookable slots for an owner.
    If an external calendar could not be read, partial is true and the
    slots reflect internal bookings only.
    """
    return await service.get_availability(owner_id, start, end, event_type_id)
