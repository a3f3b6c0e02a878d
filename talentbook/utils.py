"""Shared utilities used across the booking engine."""

import math
import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from functools import lru_cache
from typing import Union
from zoneinfo import ZoneInfo

_HOUR_PATTERN = re.compile(r"^\s*(\d{1,2})(?::(\d{2}))?\s*$")

HourLike = Union[int, str]


def parse_hour(value: HourLike) -> int:
    """Parse an hour given as an int or an ``HH`` / ``HH:MM`` string.

    Examples:
        >>> parse_hour("09:00")
        9
        >>> parse_hour(17)
        17
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid hour: {value!r}")
    if isinstance(value, int):
        hour = value
    else:
        match = _HOUR_PATTERN.match(str(value))
        if not match:
            raise ValueError(f"Invalid hour: {value!r}")
        hour = int(match.group(1))
    if not 0 <= hour <= 23:
        raise ValueError(f"Hour out of range: {value!r}")
    return hour


def format_hour(hour: int) -> str:
    """Render an hour as the ``HH:00`` slot label used by clients."""
    return f"{hour:02d}:00"


@lru_cache(maxsize=None)
def get_zone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def ensure_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to UTC; naive values are rejected."""
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"Naive datetime not allowed: {value.isoformat()}")
    return value.astimezone(timezone.utc)


def slot_bounds(day: date, hour: int, zone_name: str = "UTC") -> tuple[datetime, datetime]:
    """Return the UTC ``[start, end)`` instants of a one-hour slot."""
    zone = get_zone(zone_name)
    local_start = datetime.combine(day, time(hour=hour), tzinfo=zone)
    start = local_start.astimezone(timezone.utc)
    return start, start + timedelta(hours=1)


def intervals_overlap(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    """Half-open interval intersection test on aware datetimes."""
    return ensure_utc(start_a) < ensure_utc(end_b) and ensure_utc(start_b) < ensure_utc(end_a)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives, like JavaScript's Math.round."""
    return int(math.floor(value + 0.5))
