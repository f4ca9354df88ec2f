# app/services/availability/rule_set.py
from collections import Counter
from datetime import date, timedelta
from typing import Dict, Iterable, List, Sequence
from uuid import UUID
import logging

from app.config.settings import get_settings
from app.core.errors import InvalidInterval
from app.schemas.scheduling import AvailabilityOverrideRecord, AvailabilityRuleRecord
from app.services.scheduling.intervals import TimeInterval, get_zone, intersection
from app.services.storage.booking_store import BookingStore

logger = logging.getLogger(__name__)


def _dates_touching(date_range: TimeInterval) -> List[date]:
    # One extra day on each side covers every UTC offset
    first = date_range.start.date() - timedelta(days=1)
    last = date_range.end.date() + timedelta(days=1)
    return [first + timedelta(days=i) for i in range((last - first).days + 1)]


class AvailabilityRuleSet:
    """Turns an owner's weekly rules and date overrides into UTC intervals"""

    def __init__(self, store: BookingStore):
        self.store = store

    def rules_for(self, owner_id: UUID) -> List[AvailabilityRuleRecord]:
        """Active rules only"""
        return [r for r in self.store.list_active_rules(owner_id) if r.is_active]

    def timezone_for(self, owner_id: UUID) -> str:
        """Zone most of the owner's rules are written in, the default zone without rules"""
        zones = Counter(rule.timezone for rule in self.rules_for(owner_id))
        if not zones:
            return get_settings().DEFAULT_TIMEZONE
        return zones.most_common(1)[0][0]

    def overrides_for(self, owner_id: UUID, date_range: TimeInterval) -> List[AvailabilityOverrideRecord]:
        dates = _dates_touching(date_range)
        return self.store.list_overrides(owner_id, dates[0], dates[-1])

    def intervals_for(self, owner_id: UUID, date_range: TimeInterval) -> List[TimeInterval]:
        return self.project_onto_range(
            self.rules_for(owner_id),
            date_range,
            self.overrides_for(owner_id, date_range)
        )

    @staticmethod
    def project_onto_range(
            rules: Sequence[AvailabilityRuleRecord],
            date_range: TimeInterval,
            overrides: Iterable[AvailabilityOverrideRecord] = ()
    ) -> List[TimeInterval]:
        """
        Project weekly rules onto a UTC range.

        Every local date the range touches gets the active rule for its
        weekday, built in the rule's own timezone and clipped to the range.
        An override for a date replaces the rule: unavailable blocks the
        day, custom hours replace the rule's hours, and an available
        override without hours keeps the rule. A weekday with no rule
        produces nothing.
        """
        rules_by_day: Dict[int, AvailabilityRuleRecord] = {}
        for rule in rules:
            if rule.is_active:
                rules_by_day[rule.day_of_week] = rule
        overrides_by_date = {o.date: o for o in overrides}

        intervals: List[TimeInterval] = []
        for day in _dates_touching(date_range):
            override = overrides_by_date.get(day)
            if override is not None and not override.is_available:
                continue

            if override is not None and override.has_custom_hours:
                source = override
            else:
                source = rules_by_day.get(day.weekday())
            if source is None:
                continue

            try:
                local = TimeInterval.from_local(day, source.start_time, source.end_time, source.timezone)
            except InvalidInterval as e:
                # DST can collapse a rule that sits entirely inside the skipped hour
                logger.warning(f"Skipping availability on {day}: {e.message}")
                continue

            clipped = intersection(local, date_range)
            if clipped is not None:
                intervals.append(clipped)

        return sorted(intervals)

    @staticmethod
    def available_dates(intervals: Iterable[TimeInterval], tz_name: str) -> List[date]:
        """Local dates in ``tz_name`` on which any of ``intervals`` starts"""
        zone = get_zone(tz_name)
        return sorted({interval.start.astimezone(zone).date() for interval in intervals})

    def replace_rules(self, owner_id: UUID, rules: Sequence[AvailabilityRuleRecord]) -> List[AvailabilityRuleRecord]:
        """Activate ``rules``, retiring the current rule of each weekday they cover"""
        rules = [rule.model_copy(update={"owner_id": owner_id}) for rule in rules]
        saved = self.store.replace_rules(owner_id, rules)
        logger.info(f"Owner {owner_id} now has rules for days {sorted(r.day_of_week for r in saved)}")
        return sorted(saved, key=lambda r: r.day_of_week)

    def list_overrides(self, owner_id: UUID, start: date, end: date) -> List[AvailabilityOverrideRecord]:
        if end < start:
            raise InvalidInterval("end_date must not be before start_date")
        return sorted(self.store.list_overrides(owner_id, start, end), key=lambda o: o.date)

    def set_override(self, owner_id: UUID, override: AvailabilityOverrideRecord) -> AvailabilityOverrideRecord:
        """Block a date or give it custom hours; replaces an earlier override of that date"""
        saved = self.store.upsert_override(override.model_copy(update={"owner_id": owner_id}))
        if saved.is_available:
            logger.info(f"Owner {owner_id} has custom hours on {saved.date}")
        else:
            logger.info(f"Owner {owner_id} is unavailable on {saved.date}")
        return saved

    def clear_override(self, owner_id: UUID, day: date) -> bool:
        """Back to the weekly rule for ``day``"""
        return self.store.delete_override(owner_id, day)
