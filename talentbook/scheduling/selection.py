"""
Slot selection with contiguous-run rules.

A client builds a prospective booking one hour at a time. The first pick
on a date atomically selects a minimum block (three hour-slots, a two
hour span). Later picks may only extend an existing run by one hour at
either end; removals may never shrink a run below the minimum span.

Every operation is a pure function from one SelectionState to the next.
Callers keep the returned state between requests; nothing is stored here.

Usage:
    state = SelectionState(streamer_id=7)
    state = select_hour(state, day, "09:00", available=[9, 10, 11, 12])
    state = select_hour(state, day, "12:00", available=[9, 10, 11, 12])
    state = deselect_hour(state, day, "09:00")
    blocks = selection_blocks(state)
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Collection, Iterator, Optional

from talentbook.config import settings
from talentbook.errors import (
    BelowMinimumDurationError,
    InsufficientAvailabilityError,
    MinimumBookingNotMetError,
    NonContiguousSelectionError,
    OverlapDetectedError,
    ScheduleUnavailableError,
)
from talentbook.schemas.schedule_schema import ShippingInfo
from talentbook.utils import HourLike, format_hour, parse_hour, slot_bounds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Run:
    """A maximal stretch of consecutive selected hours."""

    first: int
    last: int

    @property
    def span(self) -> int:
        """Duration in hours counted between slot starts (``last - first``)."""
        return self.last - self.first

    @property
    def slot_count(self) -> int:
        return self.last - self.first + 1

    def hours(self) -> list[int]:
        return list(range(self.first, self.last + 1))


@dataclass(frozen=True)
class RunSet:
    """Selected hours for one date, kept sorted and unique."""

    hours: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "hours", tuple(sorted(set(self.hours))))

    def __iter__(self) -> Iterator[int]:
        return iter(self.hours)

    def __len__(self) -> int:
        return len(self.hours)

    def runs(self) -> list[Run]:
        runs: list[Run] = []
        for hour in self.hours:
            if runs and hour == runs[-1].last + 1:
                runs[-1] = Run(runs[-1].first, hour)
            else:
                runs.append(Run(hour, hour))
        return runs

    def span(self) -> int:
        return sum(run.span for run in self.runs())

    def slot_count(self) -> int:
        return len(self.hours)

    def contains(self, hour: int) -> bool:
        return hour in self.hours

    def run_containing(self, hour: int) -> Optional[Run]:
        for run in self.runs():
            if run.first <= hour <= run.last:
                return run
        return None

    def with_hours(self, *hours: int) -> "RunSet":
        return RunSet(self.hours + tuple(hours))

    def without(self, hour: int) -> "RunSet":
        return RunSet(tuple(h for h in self.hours if h != hour))

    def labels(self) -> list[str]:
        return [format_hour(h) for h in self.hours]


@dataclass(frozen=True)
class TimeBlock:
    """One bookable ``[start, end)`` block derived from a run."""

    day: date
    start_hour: int
    end_hour: int
    start_time: datetime
    end_time: datetime

    @property
    def hours(self) -> int:
        return self.end_hour - self.start_hour


@dataclass(frozen=True)
class SelectionState:
    """Per-date selections for one streamer, owned by the caller."""

    streamer_id: int
    dates: dict[date, RunSet] = field(default_factory=dict)
    shipping: Optional[ShippingInfo] = None

    def get(self, day: date) -> RunSet:
        return self.dates.get(day, RunSet())

    def with_date(self, day: date, run_set: RunSet) -> "SelectionState":
        dates = dict(self.dates)
        if len(run_set):
            dates[day] = run_set
        else:
            dates.pop(day, None)
        return SelectionState(streamer_id=self.streamer_id, dates=dates, shipping=self.shipping)

    def is_empty(self) -> bool:
        return not any(len(rs) for rs in self.dates.values())

    def sorted_dates(self) -> list[date]:
        return sorted(self.dates)

    def total_span_hours(self) -> int:
        return sum(rs.span() for rs in self.dates.values())

    def total_slot_hours(self) -> int:
        return sum(rs.slot_count() for rs in self.dates.values())


def _minimum_block(hour: int) -> list[int]:
    return list(range(hour, hour + settings.booking.min_block_slots))


def _unavailable(hour: int, day: date, schedule_hours: Optional[Collection[int]]) -> Exception:
    if schedule_hours is not None and hour in schedule_hours:
        return OverlapDetectedError(
            f"{format_hour(hour)} on {day.isoformat()} is already booked."
        )
    return ScheduleUnavailableError(
        f"{format_hour(hour)} on {day.isoformat()} is not in the streamer's schedule."
    )


def _far_from_runs(block: list[int], run_set: RunSet) -> bool:
    gap = settings.booking.detached_block_gap_hours
    return all(
        block[0] - run.last >= gap or run.first - block[-1] >= gap
        for run in run_set.runs()
    )


def select_hour(
    state: SelectionState,
    day: date,
    hour: HourLike,
    available: Collection[int],
    schedule_hours: Optional[Collection[int]] = None,
) -> SelectionState:
    """
    Add ``hour`` on ``day`` to the selection.

    Args:
        available: hours that passed availability and conflict filtering.
        schedule_hours: template hours for the day, used only to pick the
            more precise error when an hour is unavailable.

    Raises:
        InsufficientAvailabilityError: first pick cannot form a minimum block.
        NonContiguousSelectionError: hour does not extend any run.
        ScheduleUnavailableError / OverlapDetectedError: extending hour is not free.
    """
    h = parse_hour(hour)
    current = state.get(day)

    if current.contains(h):
        return state

    if not len(current):
        block = _minimum_block(h)
        missing = [b for b in block if b not in available]
        if missing:
            raise InsufficientAvailabilityError(
                f"A booking needs at least {settings.booking.min_span_hours} hours; "
                f"{', '.join(format_hour(m) for m in missing if m <= 23) or 'end of day'} "
                f"not available after {format_hour(h)} on {day.isoformat()}."
            )
        logger.debug("First pick on %s: %s", day.isoformat(), block)
        return state.with_date(day, current.with_hours(*block))

    runs = current.runs()
    if any(h == run.first - 1 or h == run.last + 1 for run in runs):
        if h not in available:
            raise _unavailable(h, day, schedule_hours)
        return state.with_date(day, current.with_hours(h))

    if settings.booking.allow_detached_blocks:
        block = _minimum_block(h)
        if _far_from_runs(block, current):
            missing = [b for b in block if b not in available]
            if missing:
                raise InsufficientAvailabilityError(
                    f"Cannot start a new {settings.booking.min_span_hours}-hour block "
                    f"at {format_hour(h)} on {day.isoformat()}."
                )
            return state.with_date(day, current.with_hours(*block))

    raise NonContiguousSelectionError(
        f"{format_hour(h)} does not extend the selected time on {day.isoformat()}; "
        "pick an hour directly before or after your selection."
    )


def deselect_hour(state: SelectionState, day: date, hour: HourLike) -> SelectionState:
    """
    Remove ``hour`` from the selection on ``day``.

    Only the run that held the hour is re-checked; each piece it splits
    into must still span the minimum. The removal is refused outright
    rather than partially applied.
    """
    h = parse_hour(hour)
    current = state.get(day)
    affected = current.run_containing(h)
    if affected is None:
        return state

    remaining = current.without(h)
    pieces = [
        run for run in remaining.runs()
        if affected.first <= run.first and run.last <= affected.last
    ]
    short = [run for run in pieces if run.span < settings.booking.min_span_hours]
    if short:
        raise BelowMinimumDurationError(
            f"Removing {format_hour(h)} would leave less than "
            f"{settings.booking.min_span_hours} hours booked on {day.isoformat()}."
        )
    return state.with_date(day, remaining)


def clear_date(state: SelectionState, day: date) -> SelectionState:
    """Drop every selected hour on ``day``."""
    return state.with_date(day, RunSet())


def meets_minimum_booking(state: SelectionState) -> bool:
    """At least one run across all dates spans the minimum booking length."""
    return any(
        run.span >= settings.booking.min_span_hours
        for run_set in state.dates.values()
        for run in run_set.runs()
    )


def require_minimum_booking(state: SelectionState) -> None:
    if not meets_minimum_booking(state):
        raise MinimumBookingNotMetError(
            f"Select at least {settings.booking.min_span_hours} consecutive hours to book."
        )


def selection_blocks(
    state: SelectionState, zone_name: Optional[str] = None
) -> list[TimeBlock]:
    """Convert each run into its ``[first, last + 1)`` block, ordered by time."""
    zone = zone_name or settings.booking.schedule_timezone
    blocks: list[TimeBlock] = []
    for day in state.sorted_dates():
        for run in state.get(day).runs():
            start_time, _ = slot_bounds(day, run.first, zone)
            _, end_time = slot_bounds(day, run.last, zone)
            blocks.append(TimeBlock(
                day=day,
                start_hour=run.first,
                end_hour=run.last + 1,
                start_time=start_time,
                end_time=end_time,
            ))
    return blocks
