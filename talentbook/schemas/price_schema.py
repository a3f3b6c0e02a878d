"""Streamer hourly rate state."""

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from talentbook.config import settings
from talentbook.utils import ensure_utc, round_half_up


def display_price(base_price: int, fee_ratio: Optional[float] = None) -> int:
    """Client-facing price: base plus the fixed platform fee."""
    ratio = settings.pricing.platform_fee_ratio if fee_ratio is None else fee_ratio
    return round_half_up(base_price * (1 + ratio))


class PriceState(BaseModel):
    """Current and previous base (pre-fee) hourly rate for one streamer."""

    streamer_id: int
    current_price: int = Field(ge=0)
    previous_price: Optional[int] = None
    last_price_update: Optional[datetime] = None
    discount_percentage: Optional[int] = None

    @field_validator("last_price_update")
    @classmethod
    def _aware_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    @property
    def next_available_update(self) -> Optional[datetime]:
        if self.last_price_update is None:
            return None
        return self.last_price_update + timedelta(hours=settings.pricing.cooldown_hours)

    @property
    def display_price(self) -> int:
        return display_price(self.current_price)
