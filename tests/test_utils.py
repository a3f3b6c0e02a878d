"""Tests for shared utility functions."""

from datetime import date, datetime, timedelta, timezone

import pytest

from talentbook.utils import (
    ensure_utc,
    format_hour,
    intervals_overlap,
    parse_hour,
    round_half_up,
    slot_bounds,
)


class TestParseHour:
    def test_int_passthrough(self):
        assert parse_hour(17) == 17

    def test_hh_mm_string(self):
        assert parse_hour("09:00") == 9

    def test_bare_hour_string(self):
        assert parse_hour("9") == 9

    def test_strips_whitespace(self):
        assert parse_hour("  13:00 ") == 13

    def test_out_of_range(self):
        with pytest.raises(ValueError):
            parse_hour(24)

    def test_negative(self):
        with pytest.raises(ValueError):
            parse_hour(-1)

    def test_garbage(self):
        with pytest.raises(ValueError):
            parse_hour("nine")

    def test_bool_rejected(self):
        with pytest.raises(ValueError):
            parse_hour(True)


class TestFormatHour:
    def test_pads_single_digit(self):
        assert format_hour(9) == "09:00"

    def test_two_digits(self):
        assert format_hour(23) == "23:00"


class TestEnsureUtc:
    def test_converts_offset(self):
        wib = timezone(timedelta(hours=7))
        value = ensure_utc(datetime(2025, 3, 17, 16, 0, tzinfo=wib))
        assert value == datetime(2025, 3, 17, 9, 0, tzinfo=timezone.utc)
        assert value.tzinfo == timezone.utc

    def test_naive_rejected(self):
        with pytest.raises(ValueError, match="Naive"):
            ensure_utc(datetime(2025, 3, 17, 9, 0))


class TestSlotBounds:
    def test_utc_slot(self):
        start, end = slot_bounds(date(2025, 3, 17), 9)
        assert start == datetime(2025, 3, 17, 9, tzinfo=timezone.utc)
        assert end - start == timedelta(hours=1)

    def test_zoned_slot_converted_to_utc(self):
        start, _ = slot_bounds(date(2025, 3, 17), 9, "Asia/Jakarta")
        assert start == datetime(2025, 3, 17, 2, tzinfo=timezone.utc)

    def test_last_slot_of_day_ends_next_day(self):
        _, end = slot_bounds(date(2025, 3, 17), 23)
        assert end == datetime(2025, 3, 18, 0, tzinfo=timezone.utc)


class TestIntervalsOverlap:
    def _t(self, hour):
        return datetime(2025, 3, 17, hour, tzinfo=timezone.utc)

    def test_overlapping(self):
        assert intervals_overlap(self._t(9), self._t(12), self._t(11), self._t(13))

    def test_touching_edges_do_not_overlap(self):
        assert not intervals_overlap(self._t(9), self._t(12), self._t(12), self._t(14))

    def test_contained(self):
        assert intervals_overlap(self._t(9), self._t(17), self._t(10), self._t(11))

    def test_disjoint(self):
        assert not intervals_overlap(self._t(9), self._t(10), self._t(14), self._t(15))


class TestRoundHalfUp:
    def test_half_rounds_up(self):
        assert round_half_up(2.5) == 3

    def test_below_half_rounds_down(self):
        assert round_half_up(2.49) == 2

    def test_whole_number(self):
        assert round_half_up(130000.0) == 130000
