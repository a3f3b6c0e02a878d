"""
Notification templates and an in-memory dispatcher.

In production, delivery goes through the hosted backend's notifications
table and realtime channel. The engine only needs ``notify`` to accept a
recipient, a type and a payload; delivery failures are the dispatcher's
problem and never roll back a booking transition.
"""

import logging
from datetime import datetime
from typing import Any, Optional, Protocol, Union

from talentbook.schemas.booking_schema import Role
from talentbook.schemas.notification_schema import (
    Notification,
    NotificationIntent,
    NotificationType,
)

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    def notify(
        self,
        recipient_id: Union[int, str],
        notification_type: NotificationType,
        payload: dict[str, Any],
    ) -> None: ...


NOTIFICATION_TEMPLATES: dict[NotificationType, dict[Role, str]] = {
    NotificationType.NEW_BOOKING: {
        Role.CLIENT: "Your booking request for {start} is being processed.",
        Role.STREAMER: "You have a new booking request for {start} - {end} on {platform}.",
    },
    NotificationType.BOOKING_ACCEPTED: {
        Role.CLIENT: "Your booking for {start} on {platform} has been accepted.",
        Role.STREAMER: "You accepted the booking for {start}.",
    },
    NotificationType.BOOKING_REJECTED: {
        Role.CLIENT: "Your booking for {start} on {platform} was declined. Reason: {reason}",
        Role.STREAMER: "You declined the booking for {start}.",
    },
    NotificationType.BOOKING_CANCELLED: {
        Role.CLIENT: "Your booking for {start} has been cancelled.",
        Role.STREAMER: "The booking for {start} was cancelled by the client. Reason: {reason}",
    },
    NotificationType.ITEM_RECEIVED: {
        Role.CLIENT: "Your items have arrived and the streamer is ready for the session on {start}.",
        Role.STREAMER: "You marked the items for {start} as received.",
    },
    NotificationType.STREAM_STARTED: {
        Role.CLIENT: "Your live session for {start} has started. Join here: {stream_link}",
        Role.STREAMER: "You started the live session for {start}.",
    },
    NotificationType.STREAM_ENDED: {
        Role.CLIENT: "Your live session for {start} has ended.",
        Role.STREAMER: "You ended the live session for {start}.",
    },
    NotificationType.RESCHEDULE_REQUEST: {
        Role.CLIENT: "The streamer asked to reschedule your session on {start}. Reason: {reason}",
        Role.STREAMER: "The client asked to reschedule the session on {start}. Reason: {reason}",
    },
    NotificationType.RESCHEDULE_ACCEPTED: {
        Role.CLIENT: "Your session has been moved to {new_start}.",
        Role.STREAMER: "The session on {start} has been moved to {new_start} and awaits your approval.",
    },
    NotificationType.RESCHEDULE_CANCELLED: {
        Role.CLIENT: "The reschedule for {start} was cancelled and the booking is closed.",
        Role.STREAMER: "The client cancelled the booking for {start} instead of rescheduling. Reason: {reason}",
    },
}


class _TemplateData(dict):
    def __missing__(self, key: str) -> str:
        return "-"


def _label(value: Optional[str]) -> str:
    if not value:
        return "-"
    try:
        return datetime.fromisoformat(value).strftime("%d %b %Y %H:%M %Z").strip()
    except ValueError:
        return value


def render_message(intent: NotificationIntent) -> str:
    """Fill the recipient-specific template from the intent payload."""
    template = NOTIFICATION_TEMPLATES[intent.type][intent.recipient_role]
    data = _TemplateData({k: v for k, v in intent.payload.items() if v is not None})
    data["start"] = _label(intent.payload.get("start_time"))
    data["end"] = _label(intent.payload.get("end_time"))
    data["new_start"] = _label(intent.payload.get("new_start_time"))
    return template.format_map(data)


class InMemoryNotifier:
    """Records every notification it is handed. Used by tests and the demo."""

    def __init__(self, fail_with: Optional[Exception] = None) -> None:
        self.sent: list[Notification] = []
        self.fail_with = fail_with

    def notify(
        self,
        recipient_id: Union[int, str],
        notification_type: NotificationType,
        payload: dict[str, Any],
    ) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        notification = Notification(
            recipient_id=recipient_id,
            recipient_role=payload.get("recipient_role", Role.CLIENT),
            type=notification_type,
            message=payload.get("message", ""),
            booking_id=payload.get("booking_id"),
            payload=payload,
        )
        self.sent.append(notification)
        logger.debug("Notification %s queued for %s", notification_type.value, recipient_id)

    def of_type(self, notification_type: NotificationType) -> list[Notification]:
        return [n for n in self.sent if n.type == notification_type]

    def reset(self) -> None:
        self.sent.clear()
