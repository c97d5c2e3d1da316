"""
Clock abstraction and local-calendar helpers.

Every time-dependent operation takes a ``Clock`` instead of calling
``datetime.now`` directly so tests can pin the current instant.
"""

from __future__ import annotations

import time
from datetime import date, datetime, timedelta, timezone


class Clock:
    """Wall-clock and monotonic time source."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()


def parse_offset(tz_offset: str) -> timezone:
    """Turn ``"+05:30"`` style offsets into a fixed ``timezone``."""
    sign = 1 if tz_offset[0] == "+" else -1
    parts = tz_offset[1:].split(":")
    hours = int(parts[0])
    minutes = int(parts[1]) if len(parts) > 1 else 0
    return timezone(timedelta(hours=sign * hours, minutes=sign * minutes))


def ensure_utc(dt: datetime) -> datetime:
    """Normalise a potentially-naive timestamp to UTC-aware."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def local_day(now: datetime, tz_offset: str) -> date:
    """Calendar day of ``now`` in the configured local offset."""
    return ensure_utc(now).astimezone(parse_offset(tz_offset)).date()


def hours_between(start: datetime, end: datetime) -> float:
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 3600
