"""
Booking engine facade.

The single entry point a UI or API layer calls. Each method is one
logical transaction: read current state from the store, evaluate the
pure scheduling or lifecycle rules, write with an optimistic predicate,
then dispatch notifications. Notification failures are logged and
swallowed; they never turn a committed transition into an error.
"""

import uuid
from datetime import date, datetime, timezone
from typing import Any, Callable, Iterable, Optional

from talentbook.config import settings
from talentbook.errors import (
    BookingNotFoundError,
    OverlapDetectedError,
    ScheduleUnavailableError,
    StatusConflictError,
)
from talentbook.logging_context import get_request_logger, request_context
from talentbook.schemas.booking_schema import (
    Actor,
    Booking,
    BookingDraft,
    Platform,
    Role,
    VoucherUsage,
)
from talentbook.schemas.notification_schema import NotificationIntent, NotificationType
from talentbook.schemas.price_schema import PriceState, display_price
from talentbook.schemas.schedule_schema import ShippingInfo
from talentbook.scheduling.availability import (
    filter_conflicts,
    find_conflict,
    resolve_schedule_hours,
)
from talentbook.scheduling.bulk import BulkMode, BulkSelectionResult, bulk_select, is_date_eligible
from talentbook.scheduling.lifecycle import BookingEvent, BookingStateMachine
from talentbook.scheduling.pricing import PriceGuardrail
from talentbook.scheduling.selection import (
    SelectionState,
    clear_date,
    deselect_hour,
    require_minimum_booking,
    select_hour,
    selection_blocks,
)
from talentbook.tools.notifications import NotificationDispatcher, render_message
from talentbook.tools.store import BookingStore
from talentbook.utils import HourLike, format_hour, get_zone, parse_hour

logger = get_request_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_payment_group_id() -> str:
    return f"PG-{uuid.uuid4().hex[:10].upper()}"


class BookingEngine:
    """Caller-facing scheduling, booking lifecycle and pricing operations."""

    def __init__(
        self,
        store: BookingStore,
        notifier: NotificationDispatcher,
        clock: Callable[[], datetime] = _utc_now,
        machine: Optional[BookingStateMachine] = None,
        guardrail: Optional[PriceGuardrail] = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.clock = clock
        self.machine = machine or BookingStateMachine()
        self.guardrail = guardrail or PriceGuardrail()

    def today(self) -> date:
        """Current date in the schedule timezone."""
        return self.clock().astimezone(get_zone(settings.booking.schedule_timezone)).date()

    # --- Availability ---

    def schedule_hours(self, streamer_id: int, day: date) -> list[int]:
        schedule = self.store.load_weekly_schedule(streamer_id)
        return resolve_schedule_hours(schedule, day, self.store.load_day_offs(streamer_id))

    def resolve_availability(self, streamer_id: int, day: date) -> list[int]:
        """Hours on ``day`` that are in the template and not already booked."""
        eligible = self.schedule_hours(streamer_id, day)
        return filter_conflicts(eligible, day, self.store.load_active_bookings(streamer_id))

    # --- Selection ---

    def _check_date(self, state: SelectionState, day: date) -> None:
        if not is_date_eligible(day, self.today(), state.shipping):
            raise ScheduleUnavailableError(
                f"{day.isoformat()} is too soon to book; sessions need enough lead time."
            )

    def select_hour(self, state: SelectionState, day: date, hour: HourLike) -> SelectionState:
        self._check_date(state, day)
        eligible = self.schedule_hours(state.streamer_id, day)
        h = parse_hour(hour)
        if h not in eligible and not state.get(day).contains(h):
            raise ScheduleUnavailableError(
                f"{format_hour(h)} on {day.isoformat()} is not in the streamer's schedule."
            )
        available = filter_conflicts(
            eligible, day, self.store.load_active_bookings(state.streamer_id)
        )
        return select_hour(state, day, hour, available, schedule_hours=eligible)

    def deselect_hour(self, state: SelectionState, day: date, hour: HourLike) -> SelectionState:
        return deselect_hour(state, day, hour)

    def clear_date(self, state: SelectionState, day: date) -> SelectionState:
        return clear_date(state, day)

    def bulk_select(
        self,
        streamer_id: int,
        mode: BulkMode,
        shipping: Optional[ShippingInfo] = None,
        start: Optional[date] = None,
    ) -> BulkSelectionResult:
        return bulk_select(
            streamer_id=streamer_id,
            schedule=self.store.load_weekly_schedule(streamer_id),
            day_offs=self.store.load_day_offs(streamer_id),
            bookings=self.store.load_active_bookings(streamer_id),
            mode=mode,
            today=self.today(),
            start=start,
            shipping=shipping,
        )

    # --- Booking creation ---

    def _revalidate(self, state: SelectionState, active: list[Booking]) -> None:
        for day in state.sorted_dates():
            self._check_date(state, day)
            in_schedule = set(self.schedule_hours(state.streamer_id, day))
            missing = [h for h in state.get(day) if h not in in_schedule]
            if missing:
                raise ScheduleUnavailableError(
                    f"{', '.join(format_hour(h) for h in missing)} on {day.isoformat()} "
                    "is no longer in the streamer's schedule."
                )
        for block in selection_blocks(state):
            conflict = find_conflict(block.start_time, block.end_time, active)
            if conflict is not None:
                raise OverlapDetectedError(
                    f"{block.day.isoformat()} {format_hour(block.start_hour)}-"
                    f"{format_hour(block.end_hour % 24)} overlaps booking {conflict.id}.",
                    booking_id=conflict.id,
                )

    def submit_booking(
        self,
        state: SelectionState,
        client_id: str,
        platform: Platform = Platform.TIKTOK,
        hourly_rate: Optional[int] = None,
        voucher_code: Optional[str] = None,
        voucher_discount: int = 0,
        special_request: Optional[str] = None,
    ) -> list[Booking]:
        """
        Create one pending booking per selected run, sharing a payment group.

        The streamer is notified once, through the group's primary (lowest
        id) booking.

        Raises:
            MinimumBookingNotMetError, ScheduleUnavailableError, OverlapDetectedError.
        """
        group_id = new_payment_group_id()
        with request_context(group_id):
            return self._submit_booking(
                state, client_id, group_id, platform, hourly_rate,
                voucher_code, voucher_discount, special_request,
            )

    def _submit_booking(
        self,
        state: SelectionState,
        client_id: str,
        group_id: str,
        platform: Platform,
        hourly_rate: Optional[int],
        voucher_code: Optional[str],
        voucher_discount: int,
        special_request: Optional[str],
    ) -> list[Booking]:
        require_minimum_booking(state)
        active = self.store.load_active_bookings(state.streamer_id)
        self._revalidate(state, active)

        rate = hourly_rate
        if rate is None:
            rate = self.store.load_price_state(state.streamer_id).current_price

        drafts = [
            BookingDraft(
                client_id=client_id,
                streamer_id=state.streamer_id,
                start_time=block.start_time,
                end_time=block.end_time,
                timezone=settings.booking.schedule_timezone,
                platform=platform,
                hourly_rate=rate,
                price=rate * block.hours,
                payment_group_id=group_id,
                special_request=special_request,
            )
            for block in selection_blocks(state)
        ]
        if voucher_code:
            total = sum(display_price(d.price) for d in drafts)
            drafts[0] = drafts[0].model_copy(update={"voucher_usage": VoucherUsage(
                code=voucher_code,
                discount_amount=voucher_discount,
                final_price=max(total - voucher_discount, 0),
            )})

        bookings = self.store.create_bookings(drafts)
        primary = min(bookings, key=lambda b: b.id)
        logger.info(
            "Created %d bookings for streamer %s in group %s",
            len(bookings), state.streamer_id, group_id,
        )

        self._dispatch([NotificationIntent(
            recipient_id=primary.streamer_id,
            recipient_role=Role.STREAMER,
            type=NotificationType.NEW_BOOKING,
            payload={
                "booking_id": primary.id,
                "booking_ids": [b.id for b in bookings],
                "start_time": primary.start_time.isoformat(),
                "end_time": primary.end_time.isoformat(),
                "platform": primary.platform.value,
                "payment_group_id": group_id,
                "total_hours": sum(int(b.duration_hours) for b in bookings),
            },
        )])
        return bookings

    # --- Lifecycle ---

    def _load(self, booking_id: int) -> Booking:
        booking = self.store.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found.")
        return booking

    def valid_events(self, booking_id: int, actor: Optional[Actor] = None) -> list[BookingEvent]:
        return self.machine.valid_events(self._load(booking_id), actor)

    def transition(
        self,
        booking_id: int,
        event: BookingEvent,
        actor: Actor,
        payload: Optional[dict[str, Any]] = None,
    ) -> Booking:
        """
        Apply a lifecycle event to a booking.

        Raises:
            BookingNotFoundError, UnauthorizedError, StatusConflictError,
            InvalidStreamLinkError, ReasonRequiredError, RescheduleNotAllowedError,
            InvalidRescheduleError, ScheduleUnavailableError, OverlapDetectedError.
        """
        with request_context(f"BK-{booking_id}"):
            return self._transition(booking_id, BookingEvent(event), actor, payload)

    def _transition(
        self,
        booking_id: int,
        event: BookingEvent,
        actor: Actor,
        payload: Optional[dict[str, Any]],
    ) -> Booking:
        booking = self._load(booking_id)
        context: dict[str, Any] = {}
        if event == BookingEvent.CONFIRM_RESCHEDULE:
            context = {
                "other_bookings": self.store.load_active_bookings(booking.streamer_id),
                "schedule": self.store.load_weekly_schedule(booking.streamer_id),
                "day_offs": self.store.load_day_offs(booking.streamer_id),
            }

        plan = self.machine.plan(booking, event, actor, payload, now=self.clock(), **context)
        if not self.store.compare_and_swap(booking_id, plan.expected, plan.patch):
            latest = self.store.get_booking(booking_id)
            current = latest.status.value if latest else "missing"
            logger.info(
                "Lost race on booking %s: %s expected %s, found %s",
                booking_id, event.value, plan.from_status.value, current,
            )
            raise StatusConflictError(
                f"Booking {booking_id} changed while you were acting on it; refresh and retry.",
                current=current,
                expected=plan.from_status.value,
            )

        logger.info(
            "Booking %s %s: %s -> %s by %s",
            booking_id, event.value, plan.from_status.value,
            plan.to_status.value, actor.role.value,
        )
        self._dispatch(plan.notifications)
        return self._load(booking_id)

    def accept(self, booking_id: int, actor: Actor) -> Booking:
        return self.transition(booking_id, BookingEvent.ACCEPT, actor)

    def reject(self, booking_id: int, actor: Actor, reason: Optional[str] = None) -> Booking:
        return self.transition(booking_id, BookingEvent.REJECT, actor, {"reason": reason})

    def mark_items_received(self, booking_id: int, actor: Actor) -> Booking:
        return self.transition(booking_id, BookingEvent.MARK_ITEMS_RECEIVED, actor)

    def start_stream(self, booking_id: int, actor: Actor, stream_link: str) -> Booking:
        return self.transition(
            booking_id, BookingEvent.START_STREAM, actor, {"stream_link": stream_link}
        )

    def end_stream(self, booking_id: int, actor: Actor) -> Booking:
        return self.transition(booking_id, BookingEvent.END_STREAM, actor)

    def request_reschedule(self, booking_id: int, actor: Actor, reason: str) -> Booking:
        return self.transition(
            booking_id, BookingEvent.REQUEST_RESCHEDULE, actor, {"reason": reason}
        )

    def confirm_reschedule(
        self, booking_id: int, actor: Actor, new_start: datetime, new_end: datetime
    ) -> Booking:
        return self.transition(
            booking_id, BookingEvent.CONFIRM_RESCHEDULE, actor,
            {"new_start": new_start, "new_end": new_end},
        )

    def cancel_reschedule(self, booking_id: int, actor: Actor, reason: str) -> Booking:
        return self.transition(
            booking_id, BookingEvent.CANCEL_RESCHEDULE, actor, {"reason": reason}
        )

    def cancel_booking(self, booking_id: int, actor: Actor, reason: str) -> Booking:
        return self.transition(booking_id, BookingEvent.CANCEL, actor, {"reason": reason})

    # --- Pricing ---

    def change_price(self, streamer_id: int, new_price: int) -> PriceState:
        """
        Change a streamer's base hourly rate under the guardrail.

        The commit is conditional on ``last_price_update`` being unchanged
        since it was read, so two concurrent changes cannot both pass the
        cooldown check.

        Raises:
            RateLimitedError, PriceBoundError, StatusConflictError.
        """
        with request_context(f"PRICE-{streamer_id}"):
            return self._change_price(streamer_id, new_price)

    def _change_price(self, streamer_id: int, new_price: int) -> PriceState:
        current = self.store.load_price_state(streamer_id)
        updated = self.guardrail.evaluate(current, new_price, self.clock())
        patch = {
            "previous_price": updated.previous_price,
            "current_price": updated.current_price,
            "last_price_update": updated.last_price_update,
            "discount_percentage": updated.discount_percentage,
        }
        if not self.store.commit_price_state(streamer_id, current.last_price_update, patch):
            raise StatusConflictError(
                f"Price for streamer {streamer_id} was changed concurrently; refresh and retry."
            )
        logger.info(
            "Streamer %s price changed %s -> %s",
            streamer_id, current.current_price, updated.current_price,
        )
        return self.store.load_price_state(streamer_id)

    # --- Notifications ---

    def _dispatch(self, intents: Iterable[NotificationIntent]) -> None:
        for intent in intents:
            payload = {
                **intent.payload,
                "recipient_role": intent.recipient_role,
                "message": render_message(intent),
            }
            try:
                self.notifier.notify(intent.recipient_id, intent.type, payload)
            except Exception:
                logger.warning(
                    "Failed to send %s notification to %s",
                    intent.type.value, intent.recipient_id, exc_info=True,
                )
