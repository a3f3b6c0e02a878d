"""
Availability resolution and conflict filtering.

Turns a streamer's recurring weekly template into concrete hour slots
for a date, then removes any slot that intersects an active booking.
All comparisons run on UTC-aware instants; schedule hours are wall-clock
hours in the configured schedule timezone.

Usage:
    hours = resolve_schedule_hours(schedule, date(2025, 3, 17), day_offs)
    free = filter_conflicts(hours, date(2025, 3, 17), bookings)
"""

import logging
from datetime import date, datetime
from typing import Iterable, Optional

from talentbook.config import settings
from talentbook.schemas.booking_schema import ACTIVE_STATUSES, Booking
from talentbook.schemas.schedule_schema import WeeklySchedule
from talentbook.utils import intervals_overlap, slot_bounds

logger = logging.getLogger(__name__)


def resolve_schedule_hours(
    schedule: Optional[WeeklySchedule],
    day: date,
    day_offs: Iterable[date] = (),
) -> list[int]:
    """
    Expand the template ranges for ``day`` into sorted, unique hours.

    A missing template, a weekday without ranges, or a matching day-off
    all yield an empty list.
    """
    if schedule is None:
        return []
    if day in set(day_offs):
        logger.debug("Day off on %s", day.isoformat())
        return []

    hours: set[int] = set()
    for time_range in schedule.ranges_for(day):
        hours.update(time_range.hours())
    return sorted(hours)


def slot_conflicts(
    day: date, hour: int, booking: Booking, zone_name: Optional[str] = None
) -> bool:
    """True when the one-hour slot at ``day@hour`` intersects ``booking``."""
    zone = zone_name or settings.booking.schedule_timezone
    start, end = slot_bounds(day, hour, zone)
    return intervals_overlap(start, end, booking.start_time, booking.end_time)


def _blocking(bookings: Iterable[Booking], exclude_booking_id: Optional[int]) -> list[Booking]:
    return [
        b for b in bookings
        if b.status in ACTIVE_STATUSES and b.id != exclude_booking_id
    ]


def filter_conflicts(
    hours: Iterable[int],
    day: date,
    bookings: Iterable[Booking],
    exclude_booking_id: Optional[int] = None,
    zone_name: Optional[str] = None,
) -> list[int]:
    """Return the subset of ``hours`` with no overlap against active bookings."""
    blocking = _blocking(bookings, exclude_booking_id)
    free = [
        h for h in hours
        if not any(slot_conflicts(day, h, b, zone_name) for b in blocking)
    ]
    return free


def find_conflict(
    start: datetime,
    end: datetime,
    bookings: Iterable[Booking],
    exclude_booking_id: Optional[int] = None,
) -> Optional[Booking]:
    """Return the first active booking intersecting ``[start, end)``, if any."""
    for booking in _blocking(bookings, exclude_booking_id):
        if intervals_overlap(start, end, booking.start_time, booking.end_time):
            return booking
    return None


def available_hours(
    schedule: Optional[WeeklySchedule],
    day: date,
    day_offs: Iterable[date],
    bookings: Iterable[Booking],
    zone_name: Optional[str] = None,
) -> list[int]:
    """Schedule-eligible hours for ``day`` minus anything already booked."""
    eligible = resolve_schedule_hours(schedule, day, day_offs)
    return filter_conflicts(eligible, day, bookings, zone_name=zone_name)
