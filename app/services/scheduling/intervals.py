# app/services/scheduling/intervals.py
"""
Half-open UTC time intervals and the arithmetic the scheduler is built on.

Every interval is ``[start, end)`` with both ends timezone-aware and stored in
UTC, so back-to-back meetings (A.end == B.start) never overlap.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.errors import InvalidInterval


def get_zone(tz_name: str) -> ZoneInfo:
    """Resolve an IANA zone name, raising InvalidInterval for unknown zones"""
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidInterval(f"Unknown timezone: {tz_name!r}") from e


def to_utc(value: datetime) -> datetime:
    if value.tzinfo is None or value.utcoffset() is None:
        raise InvalidInterval(f"Naive datetime is not allowed: {value.isoformat()}")
    return value.astimezone(timezone.utc)


@dataclass(frozen=True, order=True)
class TimeInterval:
    """Half-open ``[start, end)`` interval of UTC instants"""

    start: datetime
    end: datetime

    def __post_init__(self):
        start = to_utc(self.start)
        end = to_utc(self.end)
        if end <= start:
            raise InvalidInterval(
                f"Interval end {end.isoformat()} must be after start {start.isoformat()}"
            )
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    @classmethod
    def from_local(cls, day: date, start_time: time, end_time: time, tz_name: str) -> "TimeInterval":
        """
        Build an interval from a local wall-clock date and times in ``tz_name``.

        Each end is resolved with the zone's own rules for that date, so an
        08:00-16:00 rule stays eight local hours on a DST changeover day even
        though the UTC length differs by the DST delta.
        """
        zone = get_zone(tz_name)
        start = datetime.combine(day, start_time, tzinfo=zone)
        end = datetime.combine(day, end_time, tzinfo=zone)
        return cls(start, end)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def duration_minutes(self) -> int:
        return int(self.duration.total_seconds() // 60)

    def overlaps(self, other: "TimeInterval") -> bool:
        return overlaps(self, other)

    def contains(self, other: "TimeInterval") -> bool:
        return self.start <= other.start and other.end <= self.end

    def expand(self, before_minutes: int = 0, after_minutes: int = 0) -> "TimeInterval":
        return expand(self, before_minutes, after_minutes)

    def to_dict(self) -> dict:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


def overlaps(a: TimeInterval, b: TimeInterval) -> bool:
    """Strict overlap test; touching intervals do not overlap"""
    return a.start < b.end and b.start < a.end


def expand(interval: TimeInterval, before_minutes: int = 0, after_minutes: int = 0) -> TimeInterval:
    if before_minutes < 0 or after_minutes < 0:
        raise InvalidInterval("Buffers must be >= 0")
    return TimeInterval(
        interval.start - timedelta(minutes=before_minutes),
        interval.end + timedelta(minutes=after_minutes),
    )


def intersection(a: TimeInterval, b: TimeInterval) -> Optional[TimeInterval]:
    start = max(a.start, b.start)
    end = min(a.end, b.end)
    if start >= end:
        return None
    return TimeInterval(start, end)


def coalesce(intervals: Iterable[TimeInterval]) -> List[TimeInterval]:
    """Merge overlapping and adjacent intervals, sorted by start"""
    merged: List[TimeInterval] = []
    for interval in sorted(intervals):
        if merged and interval.start <= merged[-1].end:
            last = merged[-1]
            if interval.end > last.end:
                merged[-1] = TimeInterval(last.start, interval.end)
        else:
            merged.append(interval)
    return merged


def subtract(base: TimeInterval, busy: Iterable[TimeInterval]) -> List[TimeInterval]:
    """
    Return what is left of ``base`` after removing every busy interval.

    ``base`` is split around busy intervals that fall inside it; the result is
    sorted and never contains zero-length pieces.
    """
    free: List[TimeInterval] = []
    cursor = base.start
    for block in coalesce(b for b in busy if overlaps(base, b)):
        if block.start > cursor:
            free.append(TimeInterval(cursor, block.start))
        cursor = max(cursor, block.end)
        if cursor >= base.end:
            break
    if cursor < base.end:
        free.append(TimeInterval(cursor, base.end))
    return free


def subtract_all(bases: Iterable[TimeInterval], busy: Iterable[TimeInterval]) -> List[TimeInterval]:
    busy = coalesce(busy)
    free: List[TimeInterval] = []
    for base in sorted(bases):
        free.extend(subtract(base, busy))
    return free


def ceil_to_granularity(value: datetime, granularity_minutes: int, tz_name: str = "UTC") -> datetime:
    """
    Round an instant up to the next multiple of ``granularity_minutes``
    counted from local midnight in ``tz_name``.

    Zones with :30 or :45 offsets keep their slots on the local hour.
    """
    step = timedelta(minutes=granularity_minutes)
    local = to_utc(value).astimezone(get_zone(tz_name))
    midnight = datetime.combine(local.date(), time(0), tzinfo=local.tzinfo).astimezone(timezone.utc)
    elapsed = to_utc(value) - midnight
    steps = -(-elapsed // step)
    return midnight + steps * step
