"""Tests for configuration loading and validation."""

from dataclasses import replace

import pytest

from talentbook.config import (
    AppConfig,
    BookingConfig,
    PricingConfig,
    ShippingConfig,
    _safe_bool,
    _safe_float,
    _safe_int,
    _validate_config,
)


class TestConfigValidation:
    def test_default_config_passes_validation(self):
        config = AppConfig()
        _validate_config(config)  # should not raise

    def test_defaults(self):
        config = AppConfig()
        assert config.booking.min_block_slots == 3
        assert config.booking.min_span_hours == 2
        assert config.booking.allow_detached_blocks is False
        assert config.booking.reschedule_notice_hours == 6
        assert config.pricing.max_change_ratio == pytest.approx(0.25)
        assert config.pricing.cooldown_hours == 24
        assert config.pricing.platform_fee_ratio == pytest.approx(0.30)

    def test_block_too_small(self):
        booking = replace(BookingConfig(), min_block_slots=1, min_span_hours=0)
        config = replace(AppConfig(), booking=booking)
        with pytest.raises(ValueError, match="MIN_BLOCK_SLOTS"):
            _validate_config(config)

    def test_span_must_match_block(self):
        booking = replace(BookingConfig(), min_span_hours=3)
        config = replace(AppConfig(), booking=booking)
        with pytest.raises(ValueError, match="MIN_SPAN_HOURS"):
            _validate_config(config)

    def test_detached_gap_too_small(self):
        booking = replace(BookingConfig(), detached_block_gap_hours=1)
        config = replace(AppConfig(), booking=booking)
        with pytest.raises(ValueError, match="DETACHED_BLOCK_GAP_HOURS"):
            _validate_config(config)

    def test_negative_reschedule_notice(self):
        booking = replace(BookingConfig(), reschedule_notice_hours=-1)
        config = replace(AppConfig(), booking=booking)
        with pytest.raises(ValueError, match="RESCHEDULE_NOTICE_HOURS"):
            _validate_config(config)

    def test_unknown_timezone(self):
        booking = replace(BookingConfig(), schedule_timezone="Mars/Olympus_Mons")
        config = replace(AppConfig(), booking=booking)
        with pytest.raises(ValueError, match="SCHEDULE_TIMEZONE"):
            _validate_config(config)

    def test_known_timezone_passes(self):
        booking = replace(BookingConfig(), schedule_timezone="Asia/Jakarta")
        _validate_config(replace(AppConfig(), booking=booking))

    def test_negative_shipping_days(self):
        shipping = replace(ShippingConfig(), other_city_extra_days=-1)
        config = replace(AppConfig(), shipping=shipping)
        with pytest.raises(ValueError, match="SHIPPING_OTHER_CITY_DAYS"):
            _validate_config(config)

    def test_change_ratio_out_of_range(self):
        pricing = replace(PricingConfig(), max_change_ratio=1.5)
        config = replace(AppConfig(), pricing=pricing)
        with pytest.raises(ValueError, match="PRICE_MAX_CHANGE_RATIO"):
            _validate_config(config)

    def test_negative_cooldown(self):
        pricing = replace(PricingConfig(), cooldown_hours=-1)
        config = replace(AppConfig(), pricing=pricing)
        with pytest.raises(ValueError, match="PRICE_COOLDOWN_HOURS"):
            _validate_config(config)

    def test_negative_fee(self):
        pricing = replace(PricingConfig(), platform_fee_ratio=-0.1)
        config = replace(AppConfig(), pricing=pricing)
        with pytest.raises(ValueError, match="PLATFORM_FEE_RATIO"):
            _validate_config(config)


class TestEnvParsing:
    def test_safe_int_parsing(self):
        assert _safe_int("NONEXISTENT_VAR_12345", "42") == 42

    def test_safe_int_bad_value(self, monkeypatch):
        monkeypatch.setenv("TALENTBOOK_TEST_INT", "three")
        with pytest.raises(ValueError, match="TALENTBOOK_TEST_INT"):
            _safe_int("TALENTBOOK_TEST_INT", "3")

    def test_safe_float_parsing(self):
        assert _safe_float("NONEXISTENT_VAR_12345", "0.25") == pytest.approx(0.25)

    def test_safe_bool_truthy(self, monkeypatch):
        monkeypatch.setenv("TALENTBOOK_TEST_BOOL", "Yes")
        assert _safe_bool("TALENTBOOK_TEST_BOOL", "false") is True

    def test_safe_bool_default(self):
        assert _safe_bool("NONEXISTENT_VAR_12345", "false") is False

    def test_safe_bool_bad_value(self, monkeypatch):
        monkeypatch.setenv("TALENTBOOK_TEST_BOOL", "maybe")
        with pytest.raises(ValueError, match="TALENTBOOK_TEST_BOOL"):
            _safe_bool("TALENTBOOK_TEST_BOOL", "false")
