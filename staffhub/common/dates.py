"""Reference-timezone helpers for attendance-day boundaries.

Timestamps are stored in UTC. The calendar day an event belongs to, and the
local time-of-day used for lateness, are both taken in the reference zone
(``settings.REFERENCE_TIMEZONE``) so that a late-evening clock-out never
lands on the next UTC day.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo

from staffhub.config import settings


@lru_cache(maxsize=8)
def _zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def reference_zone() -> ZoneInfo:
    return _zone(settings.REFERENCE_TIMEZONE)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_local(value: datetime) -> datetime:
    return ensure_utc(value).astimezone(reference_zone())


def reference_date(value: datetime | None = None) -> date:
    """Calendar date of ``value`` (default: now) in the reference zone."""
    return to_local(value or utcnow()).date()


def local_time_of_day(value: datetime) -> time:
    return to_local(value).time()


def parse_hhmm(value: str) -> time:
    hours, _, minutes = value.partition(":")
    return time(int(hours), int(minutes or 0))


def is_late(check_in: datetime, late_after: time | None = None) -> bool:
    """True if the local check-in minute is strictly after ``late_after``."""
    threshold = late_after or parse_hhmm(settings.LATE_AFTER)
    local = local_time_of_day(check_in)
    return (local.hour, local.minute) > (threshold.hour, threshold.minute)
