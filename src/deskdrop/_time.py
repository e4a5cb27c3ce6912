"""Clock and local-day helpers.

"Today" is always a calendar day in the configured local zone, while every
timestamp the library stores or compares is tz-aware.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    return datetime.now(UTC)


def resolve_zone(name: str | None) -> tzinfo | None:
    """Return a ``ZoneInfo`` for *name*, or ``None`` for the system zone."""
    if not name:
        return None
    return ZoneInfo(name)


def to_local(value: datetime, zone: tzinfo | None = None) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(zone)


def localize(naive: datetime, zone: tzinfo | None = None) -> datetime:
    """Attach *zone* to a naive local wall-clock time (``None``: system zone)."""
    if zone is None:
        # The offset is resolved for this wall time, not for midnight.
        return naive.astimezone()
    return naive.replace(tzinfo=zone)


def start_of_local_day(day: date, zone: tzinfo | None = None) -> datetime:
    return localize(datetime(day.year, day.month, day.day), zone)


def local_day_bounds(now: datetime, zone: tzinfo | None = None) -> tuple[datetime, datetime]:
    """Return ``[start_of_local_day, start_of_next_local_day)`` for *now*."""
    today = to_local(now, zone).date()
    return start_of_local_day(today, zone), start_of_local_day(today + timedelta(days=1), zone)


def is_same_local_day(value: datetime, now: datetime, zone: tzinfo | None = None) -> bool:
    return to_local(value, zone).date() == to_local(now, zone).date()
