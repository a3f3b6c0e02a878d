"""Shared test fixtures and helpers."""

from datetime import date, datetime, timedelta, timezone
from typing import Optional

import pytest

from talentbook.engine import BookingEngine
from talentbook.scheduling.lifecycle import BookingStateMachine
from talentbook.scheduling.pricing import PriceGuardrail
from talentbook.schemas.booking_schema import Actor, Booking, BookingStatus, Role
from talentbook.schemas.price_schema import PriceState
from talentbook.schemas.schedule_schema import WeeklySchedule
from talentbook.tools.notifications import InMemoryNotifier
from talentbook.tools.store import InMemoryBookingStore

STREAMER_ID = 7
CLIENT_ID = "client-001"

# Monday 2025-03-10, 08:00 UTC. The next bookable Monday is 2025-03-17.
NOW = datetime(2025, 3, 10, 8, 0, tzinfo=timezone.utc)
TODAY = date(2025, 3, 10)
NEXT_MONDAY = date(2025, 3, 17)


class FixedClock:
    """Settable clock so tests can step through cooldown windows."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def store():
    s = InMemoryBookingStore()
    yield s
    s.reset()


@pytest.fixture
def notifier():
    return InMemoryNotifier()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def engine(store, notifier, clock):
    return BookingEngine(store, notifier, clock=clock)


@pytest.fixture
def seeded_engine(engine, store):
    """Engine whose store holds a Monday 09-17 schedule and a 100000 rate."""
    store.save_weekly_schedule(STREAMER_ID, make_schedule())
    store.set_price_state(PriceState(streamer_id=STREAMER_ID, current_price=100000))
    return engine


@pytest.fixture
def state_machine():
    return BookingStateMachine()


@pytest.fixture
def guardrail():
    return PriceGuardrail()


@pytest.fixture
def client():
    return Actor(role=Role.CLIENT, id=CLIENT_ID)


@pytest.fixture
def streamer():
    return Actor(role=Role.STREAMER, id=STREAMER_ID)


def make_schedule(days: Optional[dict] = None) -> WeeklySchedule:
    """Helper to create a WeeklySchedule; defaults to Monday 09:00-17:00."""
    if days is None:
        days = {1: [{"start": "09:00", "end": "17:00"}]}
    return WeeklySchedule(days=days)


def at(day: date, hour: int) -> datetime:
    """UTC instant at ``hour`` on ``day``."""
    return datetime(day.year, day.month, day.day, hour, tzinfo=timezone.utc)


def make_booking(
    booking_id: int = 1,
    day: date = NEXT_MONDAY,
    start_hour: int = 9,
    end_hour: int = 12,
    status: BookingStatus = BookingStatus.PENDING,
    streamer_id: int = STREAMER_ID,
    client_id: str = CLIENT_ID,
    items_received: bool = False,
    **kwargs,
) -> Booking:
    """Helper to create a Booking covering ``[start_hour, end_hour)`` on ``day``."""
    return Booking(
        id=booking_id,
        client_id=client_id,
        streamer_id=streamer_id,
        start_time=at(day, start_hour),
        end_time=at(day, end_hour),
        hourly_rate=100000,
        price=100000 * (end_hour - start_hour),
        status=status,
        items_received=items_received,
        **kwargs,
    )
