"""
Booking lifecycle state machine.

Defines every legal status transition, who may fire it and what it
guards on. Planning a transition is pure: it returns the expected prior
row values, the patch to write and the notifications to send, and never
touches storage. The engine applies the plan with a compare-and-swap
and dispatches notifications afterwards.

Usage:
    machine = BookingStateMachine()
    plan = machine.plan(booking, BookingEvent.ACCEPT, streamer_actor, now=now)
    assert plan.to_status == BookingStatus.ACCEPTED
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Iterable, Optional

from pydantic import HttpUrl, TypeAdapter, ValidationError

from talentbook.config import settings
from talentbook.errors import (
    BelowMinimumDurationError,
    InvalidRescheduleError,
    InvalidStreamLinkError,
    OverlapDetectedError,
    ReasonRequiredError,
    RescheduleNotAllowedError,
    ScheduleUnavailableError,
    StatusConflictError,
    UnauthorizedError,
)
from talentbook.schemas.booking_schema import Actor, Booking, BookingStatus, Role
from talentbook.schemas.notification_schema import NotificationIntent, NotificationType
from talentbook.schemas.schedule_schema import WeeklySchedule
from talentbook.scheduling.availability import find_conflict, resolve_schedule_hours
from talentbook.scheduling.bulk import is_date_eligible
from talentbook.utils import ensure_utc, format_hour, get_zone

logger = logging.getLogger(__name__)

_URL_ADAPTER = TypeAdapter(HttpUrl)


class BookingEvent(str, Enum):
    """Actions that move a booking between statuses."""

    ACCEPT = "accept"
    REJECT = "reject"
    MARK_ITEMS_RECEIVED = "mark_items_received"
    START_STREAM = "start_stream"
    END_STREAM = "end_stream"
    REQUEST_RESCHEDULE = "request_reschedule"
    CONFIRM_RESCHEDULE = "confirm_reschedule"
    CANCEL_RESCHEDULE = "cancel_reschedule"
    CANCEL = "cancel"


CLIENT_ONLY = frozenset({Role.CLIENT})
STREAMER_ONLY = frozenset({Role.STREAMER})
EITHER_PARTY = frozenset({Role.CLIENT, Role.STREAMER})


@dataclass(frozen=True)
class Transition:
    """A single valid status transition."""

    from_status: BookingStatus
    event: BookingEvent
    to_status: BookingStatus
    roles: frozenset[Role]


@dataclass(frozen=True)
class TransitionPlan:
    """Everything needed to apply one transition atomically."""

    booking_id: int
    event: BookingEvent
    from_status: BookingStatus
    to_status: BookingStatus
    expected: dict[str, Any]
    patch: dict[str, Any]
    notifications: list[NotificationIntent] = field(default_factory=list)


def validate_stream_link(link: Optional[str]) -> str:
    """Return the link if it is a syntactically valid http(s) URL."""
    if not link or not link.strip():
        raise InvalidStreamLinkError("A stream link is required to go live.")
    try:
        _URL_ADAPTER.validate_python(link.strip())
    except ValidationError:
        raise InvalidStreamLinkError(f"'{link}' is not a valid stream URL.") from None
    return link.strip()


def _counterparty(role: Role) -> Role:
    return Role.STREAMER if role == Role.CLIENT else Role.CLIENT


def _base_payload(booking: Booking) -> dict[str, Any]:
    return {
        "booking_id": booking.id,
        "start_time": booking.start_time.isoformat(),
        "end_time": booking.end_time.isoformat(),
        "platform": booking.platform.value,
        "payment_group_id": booking.payment_group_id,
    }


def _intent(
    booking: Booking, role: Role, kind: NotificationType, **extra: Any
) -> NotificationIntent:
    return NotificationIntent(
        recipient_id=booking.owner_id(role),
        recipient_role=role,
        type=kind,
        payload={**_base_payload(booking), **extra},
    )


class BookingStateMachine:
    """
    Authoritative booking status transitions.

    Every transition must be explicitly listed. Any event without a
    matching row for the booking's current status is a StatusConflictError.
    """

    TRANSITIONS: list[Transition] = [
        # --- Streamer decision ---
        Transition(BookingStatus.PENDING, BookingEvent.ACCEPT,
                   BookingStatus.ACCEPTED, STREAMER_ONLY),
        Transition(BookingStatus.PENDING, BookingEvent.REJECT,
                   BookingStatus.REJECTED, STREAMER_ONLY),

        # --- Session ---
        Transition(BookingStatus.ACCEPTED, BookingEvent.MARK_ITEMS_RECEIVED,
                   BookingStatus.ACCEPTED, STREAMER_ONLY),
        Transition(BookingStatus.ACCEPTED, BookingEvent.START_STREAM,
                   BookingStatus.LIVE, STREAMER_ONLY),
        Transition(BookingStatus.LIVE, BookingEvent.END_STREAM,
                   BookingStatus.COMPLETED, STREAMER_ONLY),

        # --- Reschedule ---
        Transition(BookingStatus.PENDING, BookingEvent.REQUEST_RESCHEDULE,
                   BookingStatus.RESCHEDULE_REQUESTED, EITHER_PARTY),
        Transition(BookingStatus.ACCEPTED, BookingEvent.REQUEST_RESCHEDULE,
                   BookingStatus.RESCHEDULE_REQUESTED, EITHER_PARTY),
        Transition(BookingStatus.RESCHEDULE_REQUESTED, BookingEvent.CONFIRM_RESCHEDULE,
                   BookingStatus.PENDING, CLIENT_ONLY),
        Transition(BookingStatus.RESCHEDULE_REQUESTED, BookingEvent.CANCEL_RESCHEDULE,
                   BookingStatus.CANCELLED, CLIENT_ONLY),

        # --- Client cancellation ---
        Transition(BookingStatus.PENDING, BookingEvent.CANCEL,
                   BookingStatus.CANCELLED, CLIENT_ONLY),
        Transition(BookingStatus.ACCEPTED, BookingEvent.CANCEL,
                   BookingStatus.CANCELLED, CLIENT_ONLY),
    ]

    def roles_for(self, event: BookingEvent) -> frozenset[Role]:
        roles: set[Role] = set()
        for t in self.TRANSITIONS:
            if t.event == event:
                roles |= t.roles
        return frozenset(roles)

    def find(self, status: BookingStatus, event: BookingEvent) -> Optional[Transition]:
        for t in self.TRANSITIONS:
            if t.from_status == status and t.event == event:
                return t
        return None

    def valid_events(self, booking: Booking, actor: Optional[Actor] = None) -> list[BookingEvent]:
        """Events legal from the booking's status, optionally narrowed to an actor."""
        events = []
        for t in self.TRANSITIONS:
            if t.from_status != booking.status:
                continue
            if actor is not None and (actor.role not in t.roles or not booking.is_party(actor)):
                continue
            events.append(t.event)
        return events

    def authorize(self, booking: Booking, event: BookingEvent, actor: Actor) -> None:
        if not booking.is_party(actor):
            raise UnauthorizedError(
                f"{actor.role.value} {actor.id} is not a party to booking {booking.id}."
            )
        if actor.role not in self.roles_for(event):
            raise UnauthorizedError(
                f"A {actor.role.value} cannot {event.value.replace('_', ' ')}."
            )

    def plan(
        self,
        booking: Booking,
        event: BookingEvent,
        actor: Actor,
        payload: Optional[dict[str, Any]] = None,
        *,
        now: datetime,
        other_bookings: Iterable[Booking] = (),
        schedule: Optional[WeeklySchedule] = None,
        day_offs: Iterable[date] = (),
    ) -> TransitionPlan:
        """
        Evaluate guards and compute the transition without applying it.

        Args:
            payload: event data such as ``reason``, ``stream_link``,
                ``new_start`` and ``new_end``.
            other_bookings, schedule, day_offs: the streamer's bookings,
                weekly template and day-offs, consulted only when
                confirming a reschedule.

        Raises:
            UnauthorizedError, StatusConflictError, InvalidStreamLinkError,
            ReasonRequiredError, RescheduleNotAllowedError,
            InvalidRescheduleError, ScheduleUnavailableError,
            OverlapDetectedError.
        """
        event = BookingEvent(event)
        payload = payload or {}
        self.authorize(booking, event, actor)

        transition = self.find(booking.status, event)
        if transition is None:
            valid = [e.value for e in self.valid_events(booking)]
            raise StatusConflictError(
                f"Cannot {event.value.replace('_', ' ')} a booking that is "
                f"'{booking.status.value}'. Valid events: {valid}",
                current=booking.status.value,
            )

        expected: dict[str, Any] = {"status": booking.status}
        patch: dict[str, Any] = {"status": transition.to_status, "updated_at": now}
        reason = payload.get("reason")
        notifications: list[NotificationIntent]

        if event == BookingEvent.ACCEPT:
            notifications = [_intent(booking, Role.CLIENT, NotificationType.BOOKING_ACCEPTED)]

        elif event == BookingEvent.REJECT:
            patch["reason"] = reason
            notifications = [_intent(
                booking, Role.CLIENT, NotificationType.BOOKING_REJECTED, reason=reason,
            )]

        elif event == BookingEvent.MARK_ITEMS_RECEIVED:
            if booking.items_received:
                raise StatusConflictError(
                    f"Items for booking {booking.id} were already marked received.",
                    current=booking.status.value,
                )
            expected["items_received"] = False
            patch.update(items_received=True, items_received_at=now)
            notifications = [_intent(booking, Role.CLIENT, NotificationType.ITEM_RECEIVED)]

        elif event == BookingEvent.START_STREAM:
            if not booking.items_received:
                raise StatusConflictError(
                    f"Booking {booking.id} cannot go live before the items are received.",
                    current=booking.status.value,
                )
            link = validate_stream_link(payload.get("stream_link"))
            expected["items_received"] = True
            patch["stream_link"] = link
            notifications = [_intent(
                booking, Role.CLIENT, NotificationType.STREAM_STARTED, stream_link=link,
            )]

        elif event == BookingEvent.END_STREAM:
            patch["stream_link"] = None
            notifications = [_intent(booking, Role.CLIENT, NotificationType.STREAM_ENDED)]

        elif event == BookingEvent.REQUEST_RESCHEDULE:
            reason = _require_reason(reason, "request a reschedule")
            self._check_reschedule_allowed(booking, now)
            patch.update(reason=reason, reschedule_requested_by=actor.role)
            notifications = [_intent(
                booking, _counterparty(actor.role), NotificationType.RESCHEDULE_REQUEST,
                reason=reason, requested_by=actor.role.value,
            )]

        elif event == BookingEvent.CONFIRM_RESCHEDULE:
            new_start, new_end = self._reschedule_range(
                booking, payload, now, other_bookings, schedule, day_offs,
            )
            patch.update(
                start_time=new_start,
                end_time=new_end,
                previous_start_time=booking.start_time,
                previous_end_time=booking.end_time,
                reschedule_requested_by=None,
            )
            notifications = [_intent(
                booking, Role.STREAMER, NotificationType.RESCHEDULE_ACCEPTED,
                new_start_time=new_start.isoformat(), new_end_time=new_end.isoformat(),
            )]

        elif event == BookingEvent.CANCEL_RESCHEDULE:
            reason = _require_reason(reason, "cancel a reschedule")
            patch.update(reason=reason, reschedule_requested_by=None)
            notifications = [_intent(
                booking, _counterparty(actor.role), NotificationType.RESCHEDULE_CANCELLED,
                reason=reason,
            )]

        elif event == BookingEvent.CANCEL:
            reason = _require_reason(reason, "cancel a booking")
            patch["reason"] = reason
            notifications = [_intent(
                booking, Role.STREAMER, NotificationType.BOOKING_CANCELLED, reason=reason,
            )]

        else:  # pragma: no cover - every event is listed above
            raise StatusConflictError(f"Unhandled event {event.value}")

        logger.debug(
            "Planned %s for booking %s: %s -> %s",
            event.value, booking.id, booking.status.value, transition.to_status.value,
        )
        return TransitionPlan(
            booking_id=booking.id,
            event=event,
            from_status=booking.status,
            to_status=transition.to_status,
            expected=expected,
            patch=patch,
            notifications=notifications,
        )

    def _check_reschedule_allowed(self, booking: Booking, now: datetime) -> None:
        if booking.previous_start_time is not None:
            raise RescheduleNotAllowedError(
                f"Booking {booking.id} was already rescheduled once."
            )
        notice = timedelta(hours=settings.booking.reschedule_notice_hours)
        if booking.start_time - now < notice:
            raise RescheduleNotAllowedError(
                f"A reschedule must be requested at least "
                f"{settings.booking.reschedule_notice_hours} hours before the session starts."
            )

    def _reschedule_range(
        self,
        booking: Booking,
        payload: dict[str, Any],
        now: datetime,
        other_bookings: Iterable[Booking],
        schedule: Optional[WeeklySchedule],
        day_offs: Iterable[date],
    ) -> tuple[datetime, datetime]:
        try:
            new_start = ensure_utc(payload["new_start"])
            new_end = ensure_utc(payload["new_end"])
        except KeyError as exc:
            raise InvalidRescheduleError(f"Missing reschedule field: {exc.args[0]}") from None
        except (AttributeError, TypeError, ValueError):
            raise InvalidRescheduleError(
                "Reschedule times must be timezone-aware datetimes."
            ) from None

        if new_start >= new_end:
            raise InvalidRescheduleError("The new start must be before the new end.")
        if new_end - new_start < timedelta(hours=settings.booking.min_span_hours):
            raise BelowMinimumDurationError(
                f"A rescheduled session must last at least {settings.booking.min_span_hours} hours."
            )
        _require_bookable(new_start, new_end, now, schedule, list(day_offs))
        conflict = find_conflict(new_start, new_end, other_bookings, exclude_booking_id=booking.id)
        if conflict is not None:
            raise OverlapDetectedError(
                f"New time overlaps booking {conflict.id}.", booking_id=conflict.id,
            )
        return new_start, new_end


def _require_reason(reason: Optional[str], action: str) -> str:
    if not reason or not reason.strip():
        raise ReasonRequiredError(f"Please give a reason to {action}.")
    return reason.strip()


def _on_the_hour(value: datetime) -> bool:
    return value.minute == 0 and value.second == 0 and value.microsecond == 0


def _require_bookable(
    start: datetime,
    end: datetime,
    now: datetime,
    schedule: Optional[WeeklySchedule],
    day_offs: list[date],
) -> None:
    """Every hour slot in ``[start, end)`` must be one the streamer offers."""
    zone = get_zone(settings.booking.schedule_timezone)
    local_start, local_end = start.astimezone(zone), end.astimezone(zone)
    if not (_on_the_hour(local_start) and _on_the_hour(local_end)):
        raise ScheduleUnavailableError("Sessions must start and end on the hour.")

    today = now.astimezone(zone).date()
    slot = start
    while slot < end:
        local = slot.astimezone(zone)
        day = local.date()
        if not is_date_eligible(day, today):
            raise ScheduleUnavailableError(
                f"{day.isoformat()} is too soon to book; sessions need enough lead time."
            )
        if local.hour not in resolve_schedule_hours(schedule, day, day_offs):
            raise ScheduleUnavailableError(
                f"{format_hour(local.hour)} on {day.isoformat()} is not in the streamer's schedule."
            )
        slot += timedelta(hours=1)
