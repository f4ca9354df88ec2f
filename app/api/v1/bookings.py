# ============================================================================
# FILE: app/api/v1/bookings.py
# Booking lifecycle - thin HTTP layer
# ============================================================================
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status

from app.api.dependencies import get_booking_service
from app.schemas.calendar_events import (
    BookingListResponse,
    BookingResponse,
    CancelBookingRequest,
    CreateBookingRequest,
    RescheduleBookingRequest,
)
from app.schemas.scheduling import BookingStatus
from app.services.booking.booking_service import BookingService

router = APIRouter(tags=["bookings"])


@router.post(
    "/owners/{owner_id}/bookings",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_booking(
        request: CreateBookingRequest,
        owner_id: UUID = Path(..., description="Owner being booked"),
        service: BookingService = Depends(get_booking_service)
):
    """
    Book a time with an owner.
    Returns 409 if the time was taken since the slots were fetched.
    """
    booking = await service.create_booking(owner_id, request)
    return BookingResponse(booking=booking, message="Booking confirmed")


@router.get("/owners/{owner_id}/bookings", response_model=BookingListResponse)
async def list_bookings(
        owner_id: UUID = Path(..., description="Owner whose bookings are listed"),
        start: datetime = Query(..., description="Range start, timezone aware"),
        end: datetime = Query(..., description="Range end, timezone aware"),
        booking_status: Optional[BookingStatus] = Query(None, alias="status", description="Only this status"),
        service: BookingService = Depends(get_booking_service)
):
    """Bookings overlapping the range, earliest first, cancelled ones included unless filtered"""
    bookings = service.list_bookings(owner_id, start, end, booking_status)
    return BookingListResponse(owner_id=owner_id, start=start, end=end, bookings=bookings)


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
async def get_booking(
        booking_id: UUID = Path(..., description="The booking ID"),
        service: BookingService = Depends(get_booking_service)
):
    return BookingResponse(booking=service.get_booking(booking_id))


@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
        booking_id: UUID = Path(..., description="The booking ID"),
        request: Optional[CancelBookingRequest] = None,
        service: BookingService = Depends(get_booking_service)
):
    """Cancel a booking. Cancelling an already cancelled booking succeeds."""
    booking = await service.cancel_booking(booking_id, request.reason if request else None)
    return BookingResponse(booking=booking, message="Booking cancelled")


@router.post("/bookings/{booking_id}/reschedule", response_model=BookingResponse)
async def reschedule_booking(
        request: RescheduleBookingRequest,
        booking_id: UUID = Path(..., description="The booking ID"),
        service: BookingService = Depends(get_booking_service)
):
    """
    Move a booking to a new time.
    Returns the new booking, which points back to the cancelled original
    through rescheduled_from_id.
    """
    booking = await service.reschedule_booking(booking_id, request)
    return BookingResponse(booking=booking, message="Booking rescheduled")
