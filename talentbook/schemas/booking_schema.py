"""Booking records, statuses and the parties acting on them."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from talentbook.utils import ensure_utc


class BookingStatus(str, Enum):
    """All statuses a booking can hold."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    LIVE = "live"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RESCHEDULE_REQUESTED = "reschedule_requested"


# Statuses that still occupy streamer capacity. A pending reschedule keeps
# holding the original slot until it is confirmed or cancelled.
ACTIVE_STATUSES: frozenset[BookingStatus] = frozenset({
    BookingStatus.PENDING,
    BookingStatus.ACCEPTED,
    BookingStatus.LIVE,
    BookingStatus.RESCHEDULE_REQUESTED,
})

TERMINAL_STATUSES: frozenset[BookingStatus] = frozenset({
    BookingStatus.REJECTED,
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
})


class Platform(str, Enum):
    TIKTOK = "tiktok"
    SHOPEE = "shopee"


class Role(str, Enum):
    CLIENT = "client"
    STREAMER = "streamer"


class Actor(BaseModel):
    """The authenticated party attempting an action."""

    role: Role
    id: Union[int, str]


class VoucherUsage(BaseModel):
    """Discount applied at checkout."""

    code: str
    discount_amount: int = Field(ge=0)
    final_price: int = Field(ge=0)


class BookingDraft(BaseModel):
    """Everything needed to persist a new booking row."""

    client_id: str
    streamer_id: int
    start_time: datetime
    end_time: datetime
    timezone: str = "UTC"
    platform: Platform = Platform.TIKTOK
    hourly_rate: int = Field(ge=0)
    price: int = Field(ge=0)
    payment_group_id: Optional[str] = None
    voucher_usage: Optional[VoucherUsage] = None
    special_request: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _aware_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _ordered(self):
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self

    @property
    def duration_hours(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / 3600


class Booking(BookingDraft):
    """Persisted booking with lifecycle state."""

    id: int
    status: BookingStatus = BookingStatus.PENDING
    items_received: bool = False
    items_received_at: Optional[datetime] = None
    stream_link: Optional[str] = None
    reason: Optional[str] = None
    reschedule_requested_by: Optional[Role] = None
    previous_start_time: Optional[datetime] = None
    previous_end_time: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def owner_id(self, role: Role) -> Union[int, str]:
        return self.client_id if role == Role.CLIENT else self.streamer_id

    def is_party(self, actor: Actor) -> bool:
        """True when ``actor`` owns this booking in its role.

        Ids are compared as strings; client ids are text and callers often
        pass numeric ids.
        """
        return str(self.owner_id(actor.role)) == str(actor.id)
