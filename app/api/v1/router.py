"""
API v1 router setup
Organized into: availability, bookings, availability rules, event types and calendars
"""
from fastapi import APIRouter

from app.api.v1 import availability, bookings, calendars, event_types, rules

api_v1_router = APIRouter()

# ============================================================================
# AVAILABILITY (booking page and weekly grid)
# ============================================================================
api_v1_router.include_router(
    availability.router,
    tags=["Availability"]
)

# ============================================================================
# BOOKINGS
# ============================================================================
api_v1_router.include_router(
    bookings.router,
    tags=["Bookings"]
)

# ============================================================================
# AVAILABILITY RULES
# ============================================================================
api_v1_router.include_router(
    rules.router,
    tags=["Availability Rules"]
)

# ============================================================================
# EVENT TYPES
# ============================================================================
api_v1_router.include_router(
    event_types.router,
    tags=["Event Types"]
)

# ============================================================================
# CONNECTED CALENDARS
# ============================================================================
api_v1_router.include_router(
    calendars.router,
    tags=["Calendars"]
)


# ============================================================================
# ROOT ENDPOINT - API Info
# ============================================================================
@api_v1_router.get("/", tags=["Info"])
async def api_info():
    """
    API information and available endpoints.
    """
    return {
        "version": "1.0",
        "endpoints": {
            "availability": "/api/v1/owners/{owner_id}/availability",
            "available_days": "/api/v1/owners/{owner_id}/availability/days",
            "bookings": "/api/v1/owners/{owner_id}/bookings",
            "booking": "/api/v1/bookings/{booking_id}",
            "rules": "/api/v1/owners/{owner_id}/availability-rules",
            "overrides": "/api/v1/owners/{owner_id}/availability-overrides",
            "event_types": "/api/v1/owners/{owner_id}/event-types",
            "calendars": "/api/v1/owners/{owner_id}/calendars",
            "drag_selection": "/api/v1/owners/{owner_id}/drag-selection",
        }
    }


@api_v1_router.get("/health", tags=["Info"])
async def health_check():
    """
    Health check endpoint.
    Useful for monitoring and load balancers.
    """
    return {
        "status": "healthy",
        "version": "1.0",
        "service": "Booking Scheduler API"
    }
