# ============================================================================
# FILE: app/api/v1/rules.py
# Weekly availability rules and the weekly grid - thin HTTP layer
# ============================================================================
from datetime import date
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status

from app.api.dependencies import get_drag_selection_mapper, get_rule_set
from app.schemas.calendar_events import (
    AvailabilityOverrideIn,
    AvailabilityRuleOut,
    DragSelectionRequest,
    ReplaceRulesRequest,
)
from app.schemas.scheduling import AvailabilityOverrideRecord, AvailabilityRuleRecord, BookingDraft
from app.services.availability.rule_set import AvailabilityRuleSet
from app.services.scheduling.drag_selection import DragSelectionMapper

router = APIRouter(tags=["availability-rules"])


def _to_out(rule: AvailabilityRuleRecord) -> AvailabilityRuleOut:
    return AvailabilityRuleOut(
        id=rule.id,
        day_of_week=rule.day_of_week,
        start_time=rule.start_time,
        end_time=rule.end_time,
        timezone=rule.timezone,
    )


@router.get("/owners/{owner_id}/availability-rules", response_model=List[AvailabilityRuleOut])
async def list_rules(
        owner_id: UUID = Path(..., description="Owner whose rules are listed"),
        rule_set: AvailabilityRuleSet = Depends(get_rule_set)
):
    """Active weekly rules, Monday first"""
    rules = sorted(rule_set.rules_for(owner_id), key=lambda r: r.day_of_week)
    return [_to_out(r) for r in rules]


@router.put("/owners/{owner_id}/availability-rules", response_model=List[AvailabilityRuleOut])
async def replace_rules(
        request: ReplaceRulesRequest,
        owner_id: UUID = Path(..., description="Owner whose rules are replaced"),
        rule_set: AvailabilityRuleSet = Depends(get_rule_set)
):
    """
    Set the weekly hours for the given weekdays.
    The previous rule of each weekday is deactivated, not deleted.
    Two rules for one weekday in the same request returns 409.
    """
    records = []
    for rule in request.rules:
        start_time, end_time = rule.parsed_times()
        records.append(AvailabilityRuleRecord(
            owner_id=owner_id,
            day_of_week=rule.day_of_week,
            start_time=start_time,
            end_time=end_time,
            timezone=rule.timezone,
        ))
    return [_to_out(r) for r in rule_set.replace_rules(owner_id, records)]


@router.get("/owners/{owner_id}/availability-overrides", response_model=List[AvailabilityOverrideRecord])
async def list_overrides(
        owner_id: UUID = Path(..., description="Owner whose overrides are listed"),
        start_date: date = Query(..., description="First date (inclusive)"),
        end_date: date = Query(..., description="Last date (inclusive)"),
        rule_set: AvailabilityRuleSet = Depends(get_rule_set)
):
    return rule_set.list_overrides(owner_id, start_date, end_date)


@router.put("/owners/{owner_id}/availability-overrides", response_model=AvailabilityOverrideRecord)
async def set_override(
        request: AvailabilityOverrideIn,
        owner_id: UUID = Path(..., description="Owner whose date is overridden"),
        rule_set: AvailabilityRuleSet = Depends(get_rule_set)
):
    """
    Block a date, or give it custom hours.
    Sending the same date again replaces the earlier override.
    """
    start_time, end_time = request.parsed_times()
    override = AvailabilityOverrideRecord(
        owner_id=owner_id,
        date=request.date,
        is_available=request.is_available,
        start_time=start_time,
        end_time=end_time,
        timezone=request.timezone,
        reason=request.reason,
    )
    return rule_set.set_override(owner_id, override)


@router.delete("/owners/{owner_id}/availability-overrides/{day}", status_code=status.HTTP_204_NO_CONTENT)
async def clear_override(
        owner_id: UUID = Path(..., description="Owner whose override is removed"),
        day: date = Path(..., description="Overridden date"),
        rule_set: AvailabilityRuleSet = Depends(get_rule_set)
):
    """Go back to the weekly rule for this date. Clearing a date without an override succeeds."""
    rule_set.clear_override(owner_id, day)


@router.post("/owners/{owner_id}/drag-selection", response_model=BookingDraft)
async def map_drag_selection(
        request: DragSelectionRequest,
        owner_id: UUID = Path(..., description="Owner whose grid was dragged on"),
        mapper: DragSelectionMapper = Depends(get_drag_selection_mapper)
):
    """Snap a finished drag on the weekly grid to a bookable draft"""
    return mapper.to_draft(
        owner_id,
        request.day,
        request.start_px,
        request.end_px,
        request.pixels_per_hour,
        request.timezone,
    )
