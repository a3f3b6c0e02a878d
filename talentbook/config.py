"""
Centralized configuration with environment variable overrides.

Booking floors, shipping lead times and price guardrail thresholds are
configurable here. Nothing is hardcoded in scheduling or lifecycle logic.
"""

import logging
import os
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from talentbook.logging_context import attach_request_id_filter

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _safe_bool(env_var: str, default: str) -> bool:
    raw = os.getenv(env_var, default).strip().lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"Invalid boolean for {env_var}: {raw!r}")


@dataclass(frozen=True)
class BookingConfig:
    """Slot selection floors and the wall-clock zone schedules are written in."""

    min_block_slots: int = _safe_int("MIN_BLOCK_SLOTS", "3")
    min_span_hours: int = _safe_int("MIN_SPAN_HOURS", "2")
    allow_detached_blocks: bool = _safe_bool("ALLOW_DETACHED_BLOCKS", "false")
    detached_block_gap_hours: int = _safe_int("DETACHED_BLOCK_GAP_HOURS", "2")
    schedule_timezone: str = os.getenv("SCHEDULE_TIMEZONE", "UTC")
    reschedule_notice_hours: int = _safe_int("RESCHEDULE_NOTICE_HOURS", "6")


@dataclass(frozen=True)
class ShippingConfig:
    """Extra lead days beyond tomorrow when products must be shipped first."""

    same_city_extra_days: int = _safe_int("SHIPPING_SAME_CITY_DAYS", "1")
    other_city_extra_days: int = _safe_int("SHIPPING_OTHER_CITY_DAYS", "3")


@dataclass(frozen=True)
class PricingConfig:
    """Hourly rate change guardrail and platform fee."""

    max_change_ratio: float = _safe_float("PRICE_MAX_CHANGE_RATIO", "0.25")
    cooldown_hours: int = _safe_int("PRICE_COOLDOWN_HOURS", "24")
    platform_fee_ratio: float = _safe_float("PLATFORM_FEE_RATIO", "0.30")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    booking: BookingConfig = field(default_factory=BookingConfig)
    shipping: ShippingConfig = field(default_factory=ShippingConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    app_name: str = os.getenv("APP_NAME", "talentbook-engine")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.booking.min_block_slots < 2:
        raise ValueError(
            f"MIN_BLOCK_SLOTS must be >= 2, got {config.booking.min_block_slots}"
        )
    if config.booking.min_span_hours != config.booking.min_block_slots - 1:
        raise ValueError(
            "MIN_SPAN_HOURS must equal MIN_BLOCK_SLOTS - 1, "
            f"got {config.booking.min_span_hours}"
        )
    if config.booking.detached_block_gap_hours < 2:
        raise ValueError(
            "DETACHED_BLOCK_GAP_HOURS must be >= 2, "
            f"got {config.booking.detached_block_gap_hours}"
        )
    if config.booking.reschedule_notice_hours < 0:
        raise ValueError(
            f"RESCHEDULE_NOTICE_HOURS must be >= 0, got {config.booking.reschedule_notice_hours}"
        )
    if config.booking.schedule_timezone.upper() != "UTC":
        try:
            ZoneInfo(config.booking.schedule_timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(
                f"SCHEDULE_TIMEZONE is not a known zone: {config.booking.schedule_timezone!r}"
            ) from None

    for name, days in [
        ("SHIPPING_SAME_CITY_DAYS", config.shipping.same_city_extra_days),
        ("SHIPPING_OTHER_CITY_DAYS", config.shipping.other_city_extra_days),
    ]:
        if days < 0:
            raise ValueError(f"{name} must be >= 0, got {days}")

    if not 0.0 < config.pricing.max_change_ratio < 1.0:
        raise ValueError(
            "PRICE_MAX_CHANGE_RATIO must be between 0.0 and 1.0, "
            f"got {config.pricing.max_change_ratio}"
        )
    if config.pricing.cooldown_hours < 0:
        raise ValueError(
            f"PRICE_COOLDOWN_HOURS must be >= 0, got {config.pricing.cooldown_hours}"
        )
    if config.pricing.platform_fee_ratio < 0:
        raise ValueError(
            f"PLATFORM_FEE_RATIO must be >= 0, got {config.pricing.platform_fee_ratio}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] [%(request_id)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    attach_request_id_filter(logging.getLogger())
    logger.info("Configuration loaded for '%s'", config.app_name)
    return config


# Singleton instance
settings = load_config()
