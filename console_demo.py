"""
Offline console demo: walks a booking through the engine end to end.

Seeds an in-memory store with one streamer, then drives slot selection,
submission and the booking lifecycle with the real engine. No database,
no notification channel, no network calls.

Usage:
    python console_demo.py
    python console_demo.py --scenario bulk
    python console_demo.py --scenario price
"""

import argparse
import sys
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

from talentbook.config import settings
from talentbook.engine import BookingEngine
from talentbook.errors import EngineError
from talentbook.logging_context import set_request_id
from talentbook.schemas.booking_schema import Actor, Role
from talentbook.schemas.price_schema import PriceState
from talentbook.schemas.schedule_schema import WeeklySchedule
from talentbook.scheduling.bulk import BulkMode
from talentbook.scheduling.selection import SelectionState
from talentbook.tools.notifications import InMemoryNotifier
from talentbook.tools.store import InMemoryBookingStore

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

STREAMER_ID = 7
CLIENT_ID = "client-001"


def _next_weekday(start: date, weekday: int) -> date:
    """Next date strictly after ``start`` with the given Sunday-first weekday."""
    day = start + timedelta(days=1)
    while (day.weekday() + 1) % 7 != weekday:
        day += timedelta(days=1)
    return day


class ConsoleSession:
    """Runs scripted engine scenarios in the terminal."""

    def __init__(self, now: Optional[datetime] = None) -> None:
        self.now = now or datetime.now(timezone.utc)
        self.store = InMemoryBookingStore()
        self.notifier = InMemoryNotifier()
        self.engine = BookingEngine(self.store, self.notifier, clock=lambda: self.now)
        self.client = Actor(role=Role.CLIENT, id=CLIENT_ID)
        self.streamer = Actor(role=Role.STREAMER, id=STREAMER_ID)
        self._seed()

    def _seed(self) -> None:
        self.store.save_weekly_schedule(STREAMER_ID, WeeklySchedule(days={
            1: [{"start": 9, "end": 17}],
            3: [{"start": "13:00", "end": "20:00"}],
            5: [{"start": 10, "end": 12}, {"start": 18, "end": 22}],
        }))
        self.store.set_price_state(PriceState(streamer_id=STREAMER_ID, current_price=100000))

    def say(self, text: str) -> None:
        print(f"{GREEN}{text}{RESET}")

    def log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def fail(self, exc: EngineError) -> None:
        print(f"{YELLOW}  !! {type(exc).__name__}: {exc.message}{RESET}")

    def attempt(self, label: str, action: Callable[[], object]) -> Optional[object]:
        print(f"\n{BLUE}{label}{RESET}")
        try:
            return action()
        except EngineError as exc:
            self.fail(exc)
            return None

    # ------------------------------------------------------------------ #
    # Scenarios
    # ------------------------------------------------------------------ #

    def scenario_booking(self) -> None:
        monday = _next_weekday(self.engine.today(), 1)
        self.say(f"Streamer {STREAMER_ID} availability on {monday.isoformat()}:")
        self.log(str(self.engine.resolve_availability(STREAMER_ID, monday)))

        state = SelectionState(streamer_id=STREAMER_ID)
        for hour in ("09:00", "12:00", "15:00"):
            result = self.attempt(f"Select {hour}", lambda h=hour: self.engine.select_hour(state, monday, h))
            if result is not None:
                state = result
                self.log(f"Selected: {state.get(monday).labels()}")

        result = self.attempt("Deselect 09:00", lambda: self.engine.deselect_hour(state, monday, "09:00"))
        if result is not None:
            state = result
            self.log(f"Selected: {state.get(monday).labels()}")

        bookings = self.attempt("Submit", lambda: self.engine.submit_booking(state, CLIENT_ID))
        if not bookings:
            return
        booking = bookings[0]
        self.log(f"Booking {booking.id}: {booking.start_time} -> {booking.end_time}, price {booking.price}")

        self.attempt("Start stream before accepting",
                     lambda: self.engine.start_stream(booking.id, self.streamer, "https://tiktok.com/@live"))
        steps: list[tuple[str, Callable[[], object]]] = [
            ("Accept", lambda: self.engine.accept(booking.id, self.streamer)),
            ("Start stream before items arrive",
             lambda: self.engine.start_stream(booking.id, self.streamer, "https://tiktok.com/@live")),
            ("Mark items received", lambda: self.engine.mark_items_received(booking.id, self.streamer)),
            ("Start stream",
             lambda: self.engine.start_stream(booking.id, self.streamer, "https://tiktok.com/@live")),
            ("End stream", lambda: self.engine.end_stream(booking.id, self.streamer)),
        ]
        for label, action in steps:
            updated = self.attempt(label, action)
            if updated is not None:
                self.log(f"Status: {updated.status.value}")

    def scenario_bulk(self) -> None:
        result = self.engine.bulk_select(STREAMER_ID, BulkMode.WEEK)
        self.say(f"Bulk week selection for streamer {STREAMER_ID}:")
        for day in result.selected_dates:
            self.log(f"{day.isoformat()}: {result.selection.get(day).labels()}")
        self.log(f"Skipped {result.skipped_count} dates")
        for skipped in result.skipped:
            self.log(f"  {skipped.day.isoformat()} ({skipped.reason.value})")

    def scenario_price(self) -> None:
        for price in (126000, 125000, 110000):
            state = self.attempt(f"Change price to {price}",
                                 lambda p=price: self.engine.change_price(STREAMER_ID, p))
            if state is not None:
                self.log(f"Now {state.current_price} (clients see {state.display_price})")

    SCENARIOS = {
        "booking": scenario_booking,
        "bulk": scenario_bulk,
        "price": scenario_price,
    }

    def run_scenario(self, scenario: str) -> None:
        handler = self.SCENARIOS.get(scenario)
        if handler is None:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return

        set_request_id(f"DEMO-{scenario.upper()}")
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  {settings.app_name.upper()} - Scenario: {scenario}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        handler(self)
        print(f"\n{BOLD}{'=' * 60}{RESET}")
        print(f"{DIM}  Notifications sent: {len(self.notifier.sent)}{RESET}")
        for notification in self.notifier.sent:
            print(f"{DIM}    [{notification.type.value}] {notification.message}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run an offline booking engine scenario.")
    parser.add_argument(
        "--scenario",
        choices=sorted(ConsoleSession.SCENARIOS),
        default="booking",
        help="Scenario to play (default: booking).",
    )
    args = parser.parse_args(argv)
    ConsoleSession().run_scenario(args.scenario)
    return 0


if __name__ == "__main__":
    sys.exit(main())
