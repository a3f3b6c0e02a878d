"""
Hourly rate change guardrail.

A streamer may change their base rate at most once per cooldown window,
and only within a band around the current rate. The guardrail works on
base prices; the client-facing price adds the platform fee on top.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from talentbook.config import settings
from talentbook.errors import PriceBoundError, RateLimitedError
from talentbook.schemas.price_schema import PriceState
from talentbook.utils import ensure_utc, round_half_up

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceBounds:
    min_price: int
    max_price: int

    def contains(self, price: int) -> bool:
        return self.min_price <= price <= self.max_price


def price_bounds(current_price: int, ratio: Optional[float] = None) -> PriceBounds:
    """Allowed ``[min, max]`` for the next rate, both rounded up."""
    r = settings.pricing.max_change_ratio if ratio is None else ratio
    return PriceBounds(
        min_price=math.ceil(current_price * (1 - r)),
        max_price=math.ceil(current_price * (1 + r)),
    )


def discount_percentage(previous: int, new: int) -> Optional[int]:
    """Percent drop from ``previous`` to ``new``; None when the rate did not drop."""
    if previous <= 0 or new >= previous:
        return None
    return round_half_up((previous - new) / previous * 100)


class PriceGuardrail:
    """Rate limit and band checks for streamer rate changes."""

    def check_rate_limit(self, state: PriceState, now: datetime) -> None:
        retry_at = state.next_available_update
        if retry_at is not None and ensure_utc(now) < retry_at:
            raise RateLimitedError(
                f"Price can be changed again after {retry_at.isoformat()}.",
                retry_at=retry_at,
            )

    def check_bounds(self, state: PriceState, new_price: int) -> PriceBounds:
        bounds = price_bounds(state.current_price)
        if not bounds.contains(new_price):
            raise PriceBoundError(
                f"New price must be between {bounds.min_price} and {bounds.max_price}.",
                min_price=bounds.min_price,
                max_price=bounds.max_price,
            )
        return bounds

    def evaluate(self, state: PriceState, new_price: int, now: datetime) -> PriceState:
        """
        Run both checks in order and return the state to commit.

        Raises:
            RateLimitedError: still inside the cooldown window.
            PriceBoundError: new price outside the allowed band.
        """
        if new_price < 0:
            raise ValueError(f"Price cannot be negative: {new_price}")
        self.check_rate_limit(state, now)
        self.check_bounds(state, new_price)

        updated = state.model_copy(update={
            "previous_price": state.current_price,
            "current_price": new_price,
            "last_price_update": ensure_utc(now),
            "discount_percentage": discount_percentage(state.current_price, new_price),
        })
        logger.debug(
            "Price change for streamer %s allowed: %s -> %s",
            state.streamer_id, state.current_price, new_price,
        )
        return updated
