"""End-to-end tests for the booking engine: select, submit, and run a session."""

from datetime import date, timedelta

import pytest

from talentbook.engine import BookingEngine, new_payment_group_id
from talentbook.errors import (
    InsufficientAvailabilityError,
    MinimumBookingNotMetError,
    OverlapDetectedError,
    ScheduleUnavailableError,
)
from talentbook.logging_context import get_request_id, set_request_id
from talentbook.scheduling.bulk import BulkMode
from talentbook.scheduling.lifecycle import BookingEvent
from talentbook.scheduling.selection import RunSet, SelectionState
from talentbook.schemas.booking_schema import BookingStatus, Platform
from talentbook.schemas.notification_schema import NotificationType
from talentbook.schemas.price_schema import PriceState
from talentbook.schemas.schedule_schema import ShippingInfo
from talentbook.tools.notifications import InMemoryNotifier
from tests.conftest import (
    CLIENT_ID,
    NEXT_MONDAY,
    STREAMER_ID,
    TODAY,
    at,
    make_booking,
    make_schedule,
)

LINK = "https://shopee.co.id/live/123"
FOLLOWING_MONDAY = NEXT_MONDAY + timedelta(days=7)


def _selection(*days_and_hours):
    state = SelectionState(streamer_id=STREAMER_ID)
    for day, hours in days_and_hours:
        state = state.with_date(day, RunSet(tuple(hours)))
    return state


class TestAvailability:
    def test_resolve_full_day(self, seeded_engine):
        assert seeded_engine.resolve_availability(STREAMER_ID, NEXT_MONDAY) == list(range(9, 18))

    def test_resolve_excludes_booked_and_day_off(self, seeded_engine, store):
        store.insert_booking(make_booking(start_hour=9, end_hour=12))
        assert seeded_engine.resolve_availability(STREAMER_ID, NEXT_MONDAY)[0] == 12

        store.add_day_off(STREAMER_ID, NEXT_MONDAY)
        assert seeded_engine.resolve_availability(STREAMER_ID, NEXT_MONDAY) == []

    def test_unknown_streamer_has_nothing(self, engine):
        assert engine.resolve_availability(404, NEXT_MONDAY) == []


class TestSelectionThroughEngine:
    def test_today_is_too_soon(self, seeded_engine):
        with pytest.raises(ScheduleUnavailableError):
            seeded_engine.select_hour(SelectionState(streamer_id=STREAMER_ID), TODAY, 9)

    def test_hour_outside_schedule(self, seeded_engine):
        with pytest.raises(ScheduleUnavailableError):
            seeded_engine.select_hour(SelectionState(streamer_id=STREAMER_ID), NEXT_MONDAY, 20)

    def test_day_off_blocks_selection(self, seeded_engine, store):
        store.add_day_off(STREAMER_ID, NEXT_MONDAY)
        with pytest.raises(ScheduleUnavailableError):
            seeded_engine.select_hour(SelectionState(streamer_id=STREAMER_ID), NEXT_MONDAY, 9)

    def test_first_pick_into_booked_block(self, seeded_engine, store):
        store.insert_booking(make_booking(start_hour=10, end_hour=12))
        with pytest.raises(InsufficientAvailabilityError):
            seeded_engine.select_hour(SelectionState(streamer_id=STREAMER_ID), NEXT_MONDAY, 9)

    def test_extension_into_booked_hour(self, seeded_engine, store):
        store.insert_booking(make_booking(start_hour=12, end_hour=14))
        state = seeded_engine.select_hour(SelectionState(streamer_id=STREAMER_ID), NEXT_MONDAY, 9)
        with pytest.raises(OverlapDetectedError):
            seeded_engine.select_hour(state, NEXT_MONDAY, 12)

    def test_shipping_lead_applies(self, seeded_engine):
        state = SelectionState(
            streamer_id=STREAMER_ID,
            shipping=ShippingInfo(required=True, client_city="Bandung", streamer_city="Jakarta"),
        )
        # The lead date is Friday the 14th, so next Monday is fine
        state = seeded_engine.select_hour(state, NEXT_MONDAY, 9)
        assert state.get(NEXT_MONDAY).hours == (9, 10, 11)

    def test_clear_date(self, seeded_engine):
        state = seeded_engine.select_hour(SelectionState(streamer_id=STREAMER_ID), NEXT_MONDAY, 9)
        assert seeded_engine.clear_date(state, NEXT_MONDAY).is_empty()

    def test_bulk_select_uses_store(self, seeded_engine, store):
        store.insert_booking(make_booking(start_hour=9, end_hour=18))
        result = seeded_engine.bulk_select(STREAMER_ID, BulkMode.TWO_WEEKS, start=date(2025, 3, 11))
        assert result.selected_dates == [date(2025, 3, 24)]
        assert result.selection.get(date(2025, 3, 24)).hours == tuple(range(9, 18))


class TestSubmitBooking:
    def test_full_walkthrough(self, seeded_engine, store, notifier, client, streamer):
        engine = seeded_engine
        state = SelectionState(streamer_id=STREAMER_ID)
        state = engine.select_hour(state, NEXT_MONDAY, "09:00")
        state = engine.select_hour(state, NEXT_MONDAY, "12:00")
        state = engine.deselect_hour(state, NEXT_MONDAY, "09:00")

        [booking] = engine.submit_booking(state, CLIENT_ID)
        assert booking.status == BookingStatus.PENDING
        assert booking.start_time == at(NEXT_MONDAY, 10)
        assert booking.end_time == at(NEXT_MONDAY, 13)
        assert booking.hourly_rate == 100000
        assert booking.price == 300000
        assert booking.payment_group_id.startswith("PG-")

        assert engine.valid_events(booking.id, streamer) == [BookingEvent.ACCEPT, BookingEvent.REJECT,
                                                             BookingEvent.REQUEST_RESCHEDULE]
        engine.accept(booking.id, streamer)
        engine.mark_items_received(booking.id, streamer)
        engine.start_stream(booking.id, streamer, LINK)
        done = engine.end_stream(booking.id, streamer)
        assert done.status == BookingStatus.COMPLETED

        kinds = [n.type for n in notifier.sent]
        assert kinds == [
            NotificationType.NEW_BOOKING,
            NotificationType.BOOKING_ACCEPTED,
            NotificationType.ITEM_RECEIVED,
            NotificationType.STREAM_STARTED,
            NotificationType.STREAM_ENDED,
        ]
        assert store.load_active_bookings(STREAMER_ID) == []

    def test_minimum_not_met(self, seeded_engine):
        state = _selection((NEXT_MONDAY, [9, 10]))
        with pytest.raises(MinimumBookingNotMetError):
            seeded_engine.submit_booking(state, CLIENT_ID)

    def test_one_booking_per_run_in_one_payment_group(self, seeded_engine, notifier):
        state = _selection((NEXT_MONDAY, [9, 10, 11, 14, 15, 16]), (FOLLOWING_MONDAY, [13, 14, 15]))
        bookings = seeded_engine.submit_booking(state, CLIENT_ID, platform=Platform.SHOPEE)
        assert len(bookings) == 3
        assert len({b.payment_group_id for b in bookings}) == 1
        assert [b.start_time for b in bookings] == [
            at(NEXT_MONDAY, 9), at(NEXT_MONDAY, 14), at(FOLLOWING_MONDAY, 13),
        ]

        [sent] = notifier.of_type(NotificationType.NEW_BOOKING)
        assert sent.recipient_id == STREAMER_ID
        assert sent.booking_id == min(b.id for b in bookings)
        assert sent.payload["booking_ids"] == [b.id for b in bookings]
        assert sent.payload["total_hours"] == 9
        assert "shopee" in sent.message

    def test_voucher_on_primary_booking(self, seeded_engine):
        state = _selection((NEXT_MONDAY, [9, 10, 11]), (FOLLOWING_MONDAY, [9, 10, 11]))
        first, second = seeded_engine.submit_booking(
            state, CLIENT_ID, voucher_code="HEMAT50", voucher_discount=50000,
        )
        assert first.voucher_usage.code == "HEMAT50"
        # 2 x 300000 base, plus fee, minus discount
        assert first.voucher_usage.final_price == 730000
        assert second.voucher_usage is None

    def test_voucher_never_goes_negative(self, seeded_engine):
        state = _selection((NEXT_MONDAY, [9, 10, 11]))
        [booking] = seeded_engine.submit_booking(
            state, CLIENT_ID, voucher_code="FREE", voucher_discount=10_000_000,
        )
        assert booking.voucher_usage.final_price == 0

    def test_explicit_rate_overrides_price_state(self, seeded_engine):
        state = _selection((NEXT_MONDAY, [9, 10, 11]))
        [booking] = seeded_engine.submit_booking(state, CLIENT_ID, hourly_rate=50000)
        assert booking.price == 150000

    def test_double_submit_detects_overlap(self, seeded_engine, store):
        state = _selection((NEXT_MONDAY, [9, 10, 11]))
        seeded_engine.submit_booking(state, CLIENT_ID)
        with pytest.raises(OverlapDetectedError):
            seeded_engine.submit_booking(state, "client-002")
        assert len(store.list_bookings(STREAMER_ID)) == 1

    def test_stale_selection_after_schedule_change(self, seeded_engine, store):
        state = _selection((NEXT_MONDAY, [15, 16, 17]))
        store.save_weekly_schedule(STREAMER_ID, make_schedule({1: [{"start": 9, "end": 12}]}))
        with pytest.raises(ScheduleUnavailableError):
            seeded_engine.submit_booking(state, CLIENT_ID)

    def test_failed_submit_creates_nothing(self, seeded_engine, store):
        store.insert_booking(make_booking(day=FOLLOWING_MONDAY, start_hour=10, end_hour=11))
        state = _selection((NEXT_MONDAY, [9, 10, 11]), (FOLLOWING_MONDAY, [9, 10, 11]))
        with pytest.raises(OverlapDetectedError):
            seeded_engine.submit_booking(state, CLIENT_ID)
        assert len(store.list_bookings(STREAMER_ID)) == 1


class TestNotificationFailures:
    def test_transition_survives_notifier_outage(self, store, clock, streamer):
        engine = BookingEngine(store, InMemoryNotifier(fail_with=RuntimeError("channel down")), clock=clock)
        booking = store.insert_booking(make_booking())
        updated = engine.accept(booking.id, streamer)
        assert updated.status == BookingStatus.ACCEPTED
        assert store.get_booking(booking.id).status == BookingStatus.ACCEPTED

    def test_submit_survives_notifier_outage(self, store, clock):
        store.save_weekly_schedule(STREAMER_ID, make_schedule())
        store.set_price_state(PriceState(streamer_id=STREAMER_ID, current_price=100000))
        engine = BookingEngine(store, InMemoryNotifier(fail_with=RuntimeError("channel down")), clock=clock)
        bookings = engine.submit_booking(_selection((NEXT_MONDAY, [9, 10, 11])), CLIENT_ID)
        assert len(bookings) == 1

    def test_failure_is_logged(self, store, clock, streamer, caplog):
        engine = BookingEngine(store, InMemoryNotifier(fail_with=RuntimeError("channel down")), clock=clock)
        booking = store.insert_booking(make_booking())
        with caplog.at_level("WARNING", logger="talentbook.engine"):
            engine.accept(booking.id, streamer)
        assert "booking_accepted" in caplog.text


class TestPaymentGroupId:
    def test_format(self):
        group_id = new_payment_group_id()
        assert group_id.startswith("PG-")
        assert len(group_id) == 13
        assert group_id[3:] == group_id[3:].upper()

    def test_unique(self):
        assert new_payment_group_id() != new_payment_group_id()


class TestRequestIds:
    def _engine_records(self, caplog):
        return [r for r in caplog.records if r.name == "talentbook.engine"]

    def test_transition_logs_under_booking_id(self, engine, store, streamer, caplog):
        booking = store.insert_booking(make_booking())
        with caplog.at_level("INFO", logger="talentbook.engine"):
            engine.accept(booking.id, streamer)
        records = self._engine_records(caplog)
        assert records
        assert {r.request_id for r in records} == {f"BK-{booking.id}"}

    def test_submit_logs_under_payment_group(self, seeded_engine, caplog):
        with caplog.at_level("INFO", logger="talentbook.engine"):
            [booking] = seeded_engine.submit_booking(_selection((NEXT_MONDAY, [9, 10, 11])), CLIENT_ID)
        assert {r.request_id for r in self._engine_records(caplog)} == {booking.payment_group_id}

    def test_price_change_logs_under_streamer(self, seeded_engine, caplog):
        with caplog.at_level("INFO", logger="talentbook.engine"):
            seeded_engine.change_price(STREAMER_ID, 110000)
        assert {r.request_id for r in self._engine_records(caplog)} == {f"PRICE-{STREAMER_ID}"}

    def test_caller_request_id_restored(self, engine, store, streamer):
        booking = store.insert_booking(make_booking())
        set_request_id("REQ-caller")
        engine.accept(booking.id, streamer)
        assert get_request_id() == "REQ-caller"
