"""
Bulk range selection across many days.

Clients booking a streamer for a week or a month at once get every
available hour of every qualifying day. The contiguous-run rules of
the interactive selector do not apply here; each day simply takes all
of its free hours. Days that cannot be booked are reported back with
the reason, never silently dropped.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Iterable, Optional

from talentbook.config import settings
from talentbook.schemas.booking_schema import Booking
from talentbook.schemas.schedule_schema import ShippingInfo, WeeklySchedule
from talentbook.scheduling.availability import filter_conflicts, resolve_schedule_hours
from talentbook.scheduling.selection import RunSet, SelectionState

logger = logging.getLogger(__name__)


class BulkMode(str, Enum):
    WEEK = "week"
    TWO_WEEKS = "twoWeeks"
    MONTH = "month"


BULK_MODE_DAYS: dict[BulkMode, int] = {
    BulkMode.WEEK: 7,
    BulkMode.TWO_WEEKS: 14,
    BulkMode.MONTH: 30,
}


class SkipReason(str, Enum):
    TOO_SOON = "too_soon"
    DAY_OFF = "day_off"
    NO_SCHEDULE = "no_schedule"
    FULLY_BOOKED = "fully_booked"


@dataclass(frozen=True)
class SkippedDate:
    day: date
    reason: SkipReason


@dataclass(frozen=True)
class BulkSelectionResult:
    """Outcome of a bulk selection run."""

    selection: SelectionState
    skipped: list[SkippedDate] = field(default_factory=list)

    @property
    def selected_dates(self) -> list[date]:
        return self.selection.sorted_dates()

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


def earliest_eligible_date(today: date, shipping: Optional[ShippingInfo] = None) -> Optional[date]:
    """
    First date a session may be booked for.

    Sessions start tomorrow at the earliest. When products must be shipped
    to the streamer, extra lead days are added depending on whether the
    client is in the streamer's city. Shipping without a known client city
    makes no date eligible.
    """
    tomorrow = today + timedelta(days=1)
    if shipping is None or not shipping.required:
        return tomorrow
    if not shipping.client_city:
        return None
    if shipping.same_city():
        return tomorrow + timedelta(days=settings.shipping.same_city_extra_days)
    return tomorrow + timedelta(days=settings.shipping.other_city_extra_days)


def is_date_eligible(day: date, today: date, shipping: Optional[ShippingInfo] = None) -> bool:
    earliest = earliest_eligible_date(today, shipping)
    return earliest is not None and day >= earliest


def bulk_select(
    streamer_id: int,
    schedule: Optional[WeeklySchedule],
    day_offs: Iterable[date],
    bookings: Iterable[Booking],
    mode: BulkMode,
    today: date,
    start: Optional[date] = None,
    shipping: Optional[ShippingInfo] = None,
    zone_name: Optional[str] = None,
) -> BulkSelectionResult:
    """Select every available hour for each qualifying day in the window."""
    mode = BulkMode(mode)
    first_day = start or today
    day_off_set = set(day_offs)
    active = list(bookings)

    state = SelectionState(streamer_id=streamer_id, shipping=shipping)
    skipped: list[SkippedDate] = []

    for offset in range(BULK_MODE_DAYS[mode]):
        day = first_day + timedelta(days=offset)

        if not is_date_eligible(day, today, shipping):
            skipped.append(SkippedDate(day, SkipReason.TOO_SOON))
            continue
        if day in day_off_set:
            skipped.append(SkippedDate(day, SkipReason.DAY_OFF))
            continue

        eligible = resolve_schedule_hours(schedule, day)
        if not eligible:
            skipped.append(SkippedDate(day, SkipReason.NO_SCHEDULE))
            continue

        free = filter_conflicts(eligible, day, active, zone_name=zone_name)
        if not free:
            skipped.append(SkippedDate(day, SkipReason.FULLY_BOOKED))
            continue

        state = state.with_date(day, RunSet(tuple(free)))

    logger.info(
        "Bulk %s selection for streamer %s: %d days selected, %d skipped",
        mode.value, streamer_id, len(state.dates), len(skipped),
    )
    return BulkSelectionResult(selection=state, skipped=skipped)
