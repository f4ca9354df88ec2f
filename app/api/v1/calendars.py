# ============================================================================
# FILE: app/api/v1/calendars.py
# Connected calendars - thin HTTP layer
# ============================================================================
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Path, status

from app.api.dependencies import get_integration_service
from app.schemas.calendar_events import CalendarIntegrationOut
from app.services.calendar.integration_service import CalendarIntegrationService

router = APIRouter(tags=["calendars"])


@router.get("/owners/{owner_id}/calendars", response_model=List[CalendarIntegrationOut])
async def list_calendars(
        owner_id: UUID = Path(..., description="Owner whose calendars are listed"),
        service: CalendarIntegrationService = Depends(get_integration_service)
):
    """Connected calendars; tokens are never returned"""
    return service.list_integrations(owner_id)


@router.delete("/owners/{owner_id}/calendars/{integration_id}", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect_calendar(
        owner_id: UUID = Path(..., description="Owner the calendar belongs to"),
        integration_id: UUID = Path(..., description="The calendar integration ID"),
        service: CalendarIntegrationService = Depends(get_integration_service)
):
    """Stop reading busy time from and mirroring bookings to this calendar"""
    service.disconnect(owner_id, integration_id)
