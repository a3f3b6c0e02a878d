"""
In-memory booking store.

Implements the persistence contract the engine depends on. In production
this sits on the hosted Postgres backend, where compare-and-swap is an
``UPDATE ... WHERE id = ? AND status = ?`` and overlap protection is an
exclusion constraint. Here both are emulated under a lock so concurrent
callers see the same guarantees.
"""

import logging
import threading
from datetime import date, datetime, timezone
from typing import Any, Optional, Protocol

from talentbook.errors import OverlapDetectedError
from talentbook.schemas.booking_schema import ACTIVE_STATUSES, Booking, BookingDraft, BookingStatus
from talentbook.schemas.price_schema import PriceState
from talentbook.schemas.schedule_schema import WeeklySchedule
from talentbook.utils import intervals_overlap

logger = logging.getLogger(__name__)


class BookingStore(Protocol):
    """Persistence operations consumed by the engine."""

    def load_weekly_schedule(self, streamer_id: int) -> Optional[WeeklySchedule]: ...

    def load_day_offs(self, streamer_id: int) -> list[date]: ...

    def load_active_bookings(self, streamer_id: int) -> list[Booking]: ...

    def get_booking(self, booking_id: int) -> Optional[Booking]: ...

    def create_bookings(self, drafts: list[BookingDraft]) -> list[Booking]: ...

    def compare_and_swap(
        self, booking_id: int, expected: dict[str, Any], patch: dict[str, Any]
    ) -> bool: ...

    def load_price_state(self, streamer_id: int) -> PriceState: ...

    def commit_price_state(
        self,
        streamer_id: int,
        expected_last_update: Optional[datetime],
        patch: dict[str, Any],
    ) -> bool: ...


class InMemoryBookingStore:
    """Thread-safe dict-backed store used by tests and the console demo."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._schedules: dict[int, WeeklySchedule] = {}
        self._day_offs: dict[int, set[date]] = {}
        self._bookings: dict[int, Booking] = {}
        self._prices: dict[int, PriceState] = {}
        self._next_id = 1

    # --- Schedules ---

    def save_weekly_schedule(self, streamer_id: int, schedule: WeeklySchedule) -> None:
        """Replace the streamer's template wholesale."""
        with self._lock:
            self._schedules[streamer_id] = schedule

    def load_weekly_schedule(self, streamer_id: int) -> Optional[WeeklySchedule]:
        return self._schedules.get(streamer_id)

    def add_day_off(self, streamer_id: int, day: date) -> None:
        with self._lock:
            self._day_offs.setdefault(streamer_id, set()).add(day)

    def remove_day_off(self, streamer_id: int, day: date) -> None:
        with self._lock:
            self._day_offs.get(streamer_id, set()).discard(day)

    def load_day_offs(self, streamer_id: int) -> list[date]:
        return sorted(self._day_offs.get(streamer_id, set()))

    # --- Bookings ---

    def load_active_bookings(self, streamer_id: int) -> list[Booking]:
        return [
            b for b in self._bookings.values()
            if b.streamer_id == streamer_id and b.status in ACTIVE_STATUSES
        ]

    def list_bookings(self, streamer_id: Optional[int] = None) -> list[Booking]:
        return [
            b for b in sorted(self._bookings.values(), key=lambda b: b.id)
            if streamer_id is None or b.streamer_id == streamer_id
        ]

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        return self._bookings.get(booking_id)

    def _find_overlap(
        self,
        draft: BookingDraft,
        pending: list[BookingDraft],
        exclude_booking_id: Optional[int] = None,
    ) -> Optional[int]:
        for existing in self._bookings.values():
            if (
                existing.id != exclude_booking_id
                and existing.streamer_id == draft.streamer_id
                and existing.status in ACTIVE_STATUSES
                and intervals_overlap(draft.start_time, draft.end_time,
                                      existing.start_time, existing.end_time)
            ):
                return existing.id
        for other in pending:
            if other.streamer_id == draft.streamer_id and intervals_overlap(
                draft.start_time, draft.end_time, other.start_time, other.end_time
            ):
                return -1
        return None

    def create_bookings(self, drafts: list[BookingDraft]) -> list[Booking]:
        """Insert all drafts as pending bookings, or none if any overlaps."""
        with self._lock:
            checked: list[BookingDraft] = []
            for draft in drafts:
                conflict = self._find_overlap(draft, checked)
                if conflict is not None:
                    raise OverlapDetectedError(
                        f"Requested time {draft.start_time.isoformat()} overlaps an existing booking.",
                        booking_id=conflict if conflict > 0 else None,
                    )
                checked.append(draft)

            now = datetime.now(timezone.utc)
            created = []
            for draft in drafts:
                booking = Booking(
                    **draft.model_dump(),
                    id=self._next_id,
                    status=BookingStatus.PENDING,
                    created_at=now,
                    updated_at=now,
                )
                self._bookings[booking.id] = booking
                self._next_id += 1
                created.append(booking)

        logger.debug("Stored %d bookings", len(created))
        return created

    def create_booking(self, draft: BookingDraft) -> Booking:
        return self.create_bookings([draft])[0]

    def insert_booking(self, booking: Booking) -> Booking:
        """Store a fully-formed booking as-is. Used to seed fixtures."""
        with self._lock:
            self._bookings[booking.id] = booking
            self._next_id = max(self._next_id, booking.id + 1)
        return booking

    def compare_and_swap(
        self, booking_id: int, expected: dict[str, Any], patch: dict[str, Any]
    ) -> bool:
        """
        Apply ``patch`` only if every ``expected`` field still matches.

        A patch that moves an active booking's times is re-checked for
        overlap against the streamer's other active bookings while the
        lock is held.

        Raises:
            OverlapDetectedError: the moved range collides with another booking.
        """
        with self._lock:
            current = self._bookings.get(booking_id)
            if current is None:
                return False
            if any(getattr(current, k) != v for k, v in expected.items()):
                return False
            updated = current.model_copy(update=patch)
            moved = "start_time" in patch or "end_time" in patch
            if moved and updated.status in ACTIVE_STATUSES:
                conflict = self._find_overlap(updated, [], exclude_booking_id=booking_id)
                if conflict is not None:
                    raise OverlapDetectedError(
                        f"Booking {booking_id} cannot move to "
                        f"{updated.start_time.isoformat()}; it overlaps booking {conflict}.",
                        booking_id=conflict,
                    )
            self._bookings[booking_id] = updated
            return True

    def update_booking_status(
        self, booking_id: int, expected_status: BookingStatus, patch: dict[str, Any]
    ) -> bool:
        return self.compare_and_swap(booking_id, {"status": expected_status}, patch)

    # --- Prices ---

    def set_price_state(self, state: PriceState) -> None:
        with self._lock:
            self._prices[state.streamer_id] = state

    def load_price_state(self, streamer_id: int) -> PriceState:
        state = self._prices.get(streamer_id)
        if state is None:
            raise KeyError(f"No price state for streamer {streamer_id}")
        return state

    def commit_price_state(
        self,
        streamer_id: int,
        expected_last_update: Optional[datetime],
        patch: dict[str, Any],
    ) -> bool:
        with self._lock:
            current = self._prices.get(streamer_id)
            if current is None or current.last_price_update != expected_last_update:
                return False
            self._prices[streamer_id] = current.model_copy(update=patch)
            return True

    def reset(self) -> None:
        """Clear all data. Used by test fixtures for isolation."""
        with self._lock:
            self._schedules.clear()
            self._day_offs.clear()
            self._bookings.clear()
            self._prices.clear()
            self._next_id = 1
