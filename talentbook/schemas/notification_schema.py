"""Notification records emitted by booking transitions."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from talentbook.schemas.booking_schema import Role


class NotificationType(str, Enum):
    NEW_BOOKING = "new_booking"
    BOOKING_ACCEPTED = "booking_accepted"
    BOOKING_REJECTED = "booking_rejected"
    BOOKING_CANCELLED = "booking_cancelled"
    ITEM_RECEIVED = "item_received"
    STREAM_STARTED = "stream_started"
    STREAM_ENDED = "stream_ended"
    RESCHEDULE_REQUEST = "reschedule_request"
    RESCHEDULE_ACCEPTED = "reschedule_accepted"
    RESCHEDULE_CANCELLED = "reschedule_cancelled"


class NotificationIntent(BaseModel):
    """A notification a transition wants sent, before it is rendered."""

    recipient_id: Union[int, str]
    recipient_role: Role
    type: NotificationType
    payload: dict[str, Any] = Field(default_factory=dict)


class Notification(BaseModel):
    """A rendered notification as handed to the delivery channel."""

    recipient_id: Union[int, str]
    recipient_role: Role
    type: NotificationType
    message: str
    booking_id: Optional[int] = None
    payload: dict[str, Any] = Field(default_factory=dict)
    is_read: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
