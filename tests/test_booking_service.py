"""
Tests for BookingService.

Tests cover:
- Booking validation (party size, window, opening hours)
- Initial status and confirmation codes
- Table conflicts and capacity
- Transaction rollback on failure
- Status changes and their history
- Request acceptance, check-in, seating and cancellation
- Table switches, listing and daily counters
"""
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from conftest import DINNER, NOW, at
from restaurant_dashboard.error_handling.exceptions import (
    NotificationError,
    BookingValidationError,
    CapacityExceededError,
    DatabaseError,
    InvalidBookingTimeError,
    InvalidPartySizeError,
    NotFoundError,
    RestaurantClosedError,
    StateTransitionError,
    TableUnavailableError,
)
from restaurant_dashboard.models.database import Booking, BookingStatusHistory
from restaurant_dashboard.models.enums import DiningStatus
from restaurant_dashboard.models.schemas import BookingFilters, VIPCreate
from restaurant_dashboard.services.vip_service import VIPService


@pytest.fixture
def request_policy(db_session, restaurant):
    """Switch the restaurant to review every booking."""
    restaurant.booking_policy = "request"
    db_session.commit()
    return restaurant


def history_of(db_session, booking):
    return (
        db_session.query(BookingStatusHistory)
        .filter_by(booking_id=booking.id)
        .order_by(BookingStatusHistory.id)
        .all()
    )


class TestBookingValidation:
    """Test validation performed before a booking is stored."""

    def test_party_too_large(self, make_booking):
        with pytest.raises(InvalidPartySizeError) as exc_info:
            make_booking(party_size=13)
        assert exc_info.value.field == "party_size"

    def test_booking_in_the_past(self, make_booking):
        with pytest.raises(InvalidBookingTimeError):
            make_booking(booking_time=at(NOW, -60))

    def test_beyond_booking_window(self, make_booking):
        with pytest.raises(InvalidBookingTimeError) as exc_info:
            make_booking(booking_time=DINNER + timedelta(days=31))
        assert "30 days in advance" in exc_info.value.user_message

    def test_vip_gets_extended_window(self, db_session, restaurant, make_booking):
        VIPService(db_session).grant_vip(
            restaurant.id, VIPCreate(user_id="guest-1", extended_booking_days=60), now=NOW
        )
        booking = make_booking(
            booking_time=DINNER + timedelta(days=40),
            user_id="guest-1",
            guest_name=None,
        )
        assert booking.status == DiningStatus.CONFIRMED.value
        assert booking.display_name == "Grace Guest"

    def test_closed_offers_alternatives(self, make_booking):
        with pytest.raises(RestaurantClosedError) as exc_info:
            make_booking(booking_time=datetime(2030, 6, 4, 22, 0))
        alternatives = exc_info.value.alternatives
        assert alternatives
        assert alternatives[0] == "2030-06-04T11:00:00"

    def test_unknown_profile(self, make_booking):
        with pytest.raises(NotFoundError):
            make_booking(user_id="nobody")

    def test_unknown_table(self, make_booking):
        with pytest.raises(BookingValidationError) as exc_info:
            make_booking(table_ids=[999])
        assert exc_info.value.field == "table_ids"

    def test_walk_in_skips_time_checks(self, request_policy, make_booking):
        booking = make_booking(booking_time=at(NOW, -90), source="walk_in")
        assert booking.status == DiningStatus.CONFIRMED.value
        assert booking.request_expires_at is None


class TestCreateBooking:
    """Test successful creation."""

    def test_instant_policy_confirms(self, make_booking, tables):
        booking = make_booking(table_ids=[tables["T2"].id])
        assert booking.id is not None
        assert booking.status == DiningStatus.CONFIRMED.value
        assert booking.confirmed_at == NOW
        assert booking.turn_time_minutes == 120
        assert booking.table_ids == [tables["T2"].id]

    def test_request_policy_waits_for_review(self, request_policy, make_booking):
        booking = make_booking()
        assert booking.status == DiningStatus.PENDING.value
        assert booking.request_expires_at == NOW + timedelta(hours=24)

    def test_pre_approved_request(self, request_policy, make_booking):
        booking = make_booking(pre_approved=True)
        assert booking.status == DiningStatus.CONFIRMED.value

    def test_confirmation_code_uses_restaurant_prefix(self, make_booking):
        first = make_booking()
        second = make_booking(booking_time=at(DINNER, 30))
        assert first.confirmation_code.startswith("BELL")
        assert len(first.confirmation_code) == 10
        assert first.confirmation_code != second.confirmation_code

    def test_creation_history_row(self, db_session, make_booking):
        booking = make_booking()
        rows = history_of(db_session, booking)
        assert len(rows) == 1
        assert rows[0].old_status is None
        assert rows[0].new_status == "confirmed"
        assert rows[0].changed_by == "owner-1"

    def test_custom_turn_time(self, make_booking):
        booking = make_booking(turn_time_minutes=90)
        assert booking.turn_time_minutes == 90


class TestTableChecks:
    def test_double_booking_rejected(self, make_booking, tables):
        first = make_booking(table_ids=[tables["T2"].id])
        with pytest.raises(TableUnavailableError) as exc_info:
            make_booking(booking_time=at(DINNER, 60), table_ids=[tables["T2"].id])
        assert exc_info.value.conflicting_booking_ids == [first.id]

    def test_back_to_back_allowed(self, make_booking, tables):
        make_booking(table_ids=[tables["T2"].id])
        later = make_booking(
            booking_time=at(DINNER, 120), turn_time_minutes=60, table_ids=[tables["T2"].id]
        )
        assert later.table_ids == [tables["T2"].id]

    def test_capacity_exceeded(self, make_booking, tables):
        with pytest.raises(CapacityExceededError) as exc_info:
            make_booking(party_size=4, table_ids=[tables["T1"].id])
        assert exc_info.value.capacity == 2

    def test_below_table_minimum(self, make_booking, tables):
        with pytest.raises(CapacityExceededError):
            make_booking(party_size=1, table_ids=[tables["T4"].id])

    def test_failed_transaction_persists_nothing(self, db_session, booking_service, make_booking, tables):
        with patch.object(booking_service, "_assign_tables", side_effect=RuntimeError("disk full")):
            with pytest.raises(DatabaseError) as exc_info:
                make_booking(table_ids=[tables["T2"].id])

        assert exc_info.value.context["operation"] == "create_booking"
        assert db_session.query(Booking).count() == 0
        assert db_session.query(BookingStatusHistory).count() == 0


class TestUpdateStatus:
    """Test moving bookings through the dining flow."""

    def test_valid_transition_writes_history(self, db_session, booking_service, make_booking):
        booking = make_booking()
        booking_service.update_status(booking.id, DiningStatus.ARRIVED, changed_by="staff-1", now=DINNER)

        assert booking.status == "arrived"
        assert booking.checked_in_at == DINNER
        rows = history_of(db_session, booking)
        assert [(r.old_status, r.new_status) for r in rows] == [(None, "confirmed"), ("confirmed", "arrived")]
        assert rows[-1].changed_by == "staff-1"

    def test_invalid_transition(self, db_session, booking_service, make_booking):
        booking = make_booking()
        with pytest.raises(StateTransitionError) as exc_info:
            booking_service.update_status(booking.id, DiningStatus.PAYMENT)
        assert exc_info.value.user_message == "Cannot change status from Confirmed to Payment"
        assert len(history_of(db_session, booking)) == 1

    def test_forced_transition(self, db_session, booking_service, make_booking):
        booking = make_booking()
        booking_service.update_status(
            booking.id, DiningStatus.COMPLETED, changed_by="owner-1", reason="Cleanup", force=True, now=DINNER
        )
        assert booking.status == "completed"
        assert booking.completed_at == DINNER
        last = history_of(db_session, booking)[-1]
        assert last.details == {"forced": True}
        assert last.reason == "Cleanup"

    def test_forced_to_same_status_rejected(self, booking_service, make_booking):
        booking = make_booking()
        with pytest.raises(StateTransitionError):
            booking_service.update_status(booking.id, DiningStatus.CONFIRMED, force=True)

    def test_wrong_restaurant(self, booking_service, make_booking):
        booking = make_booking()
        with pytest.raises(NotFoundError):
            booking_service.update_status(booking.id, DiningStatus.ARRIVED, restaurant_id=999)

    def test_basic_tier_has_no_dining_flow(self, db_session, restaurant, booking_service, make_booking):
        restaurant.tier = "basic"
        db_session.commit()
        booking = make_booking()
        with pytest.raises(StateTransitionError):
            booking_service.update_status(booking.id, DiningStatus.ARRIVED)

    def test_transitions_menu(self, booking_service, make_booking):
        booking = make_booking()
        targets = [t.to_status for t in booking_service.get_transitions(booking)]
        assert DiningStatus.ARRIVED in targets
        assert DiningStatus.NO_SHOW in targets


class TestRequests:
    """Test accepting and declining pending requests."""

    def test_accept_assigns_best_table(self, request_policy, booking_service, make_booking, tables):
        booking = make_booking()
        booking_service.accept_request(booking.id, "owner-1", now=at(NOW, 60))
        assert booking.status == "confirmed"
        assert booking.table_ids == [tables["T1"].id]

    def test_accept_with_chosen_tables(self, request_policy, booking_service, make_booking, tables):
        booking = make_booking()
        booking_service.accept_request(booking.id, "owner-1", table_ids=[tables["T3"].id], now=at(NOW, 60))
        assert booking.table_ids == [tables["T3"].id]

    def test_repeated_table_id_is_linked_once(self, request_policy, booking_service, make_booking, tables):
        booking = make_booking()
        table_id = tables["T2"].id
        booking_service.accept_request(booking.id, "owner-1", table_ids=[table_id, table_id], now=at(NOW, 60))
        assert booking.status == "confirmed"
        assert booking.table_ids == [table_id]

    def test_expired_request_is_auto_declined(self, db_session, request_policy, booking_service, make_booking):
        booking = make_booking()
        with pytest.raises(StateTransitionError) as exc_info:
            booking_service.accept_request(booking.id, "owner-1", now=NOW + timedelta(hours=25))
        assert exc_info.value.user_message == "This booking request has expired"
        db_session.refresh(booking)
        assert booking.status == "auto_declined"

    def test_conflict_marks_acceptance_failed(self, request_policy, booking_service, make_booking, tables):
        make_booking(pre_approved=True, table_ids=[tables["T2"].id])
        booking = make_booking()

        result = booking_service.accept_request(booking.id, "owner-1", table_ids=[tables["T2"].id], now=at(NOW, 60))
        assert result.status == "acceptance_failed"
        assert result.table_ids == []

        retried = booking_service.accept_request(booking.id, "owner-1", table_ids=[tables["T3"].id], now=at(NOW, 60))
        assert retried.status == "confirmed"
        assert retried.table_ids == [tables["T3"].id]

    def test_forced_accept_ignores_conflict(self, request_policy, booking_service, make_booking, tables):
        make_booking(pre_approved=True, table_ids=[tables["T2"].id])
        booking = make_booking()
        booking_service.accept_request(
            booking.id, "owner-1", table_ids=[tables["T2"].id], force=True, now=at(NOW, 60)
        )
        assert booking.status == "confirmed"

    def test_only_pending_can_be_accepted(self, booking_service, make_booking):
        booking = make_booking()
        with pytest.raises(StateTransitionError):
            booking_service.accept_request(booking.id, "owner-1")

    def test_decline(self, request_policy, booking_service, make_booking):
        booking = make_booking()
        booking_service.decline_request(booking.id, "owner-1", reason="Fully booked", now=at(NOW, 60))
        assert booking.status == "declined_by_restaurant"
        assert booking.decline_reason == "Fully booked"

    def test_decline_confirmed_rejected(self, booking_service, make_booking):
        booking = make_booking()
        with pytest.raises(StateTransitionError):
            booking_service.decline_request(booking.id, "owner-1")

    def test_auto_decline_expired(self, request_policy, booking_service, make_booking):
        stale = make_booking()
        fresh = make_booking(now=at(NOW, 600), booking_time=at(DINNER, 30))

        declined = booking_service.auto_decline_expired_requests(
            request_policy.id, now=NOW + timedelta(hours=25)
        )
        assert [b.id for b in declined] == [stale.id]
        assert stale.status == "auto_declined"
        assert fresh.status == "pending"

    def test_auto_decline_disabled(self, db_session, request_policy, booking_service, make_booking):
        request_policy.auto_decline_enabled = False
        db_session.commit()
        make_booking()
        assert booking_service.auto_decline_expired_requests(
            request_policy.id, now=NOW + timedelta(hours=25)
        ) == []


class TestCheckInAndSeating:
    def test_check_in_assigns_table(self, booking_service, make_booking, tables):
        booking = make_booking()
        booking_service.check_in(booking.id, "staff-1", now=DINNER)
        assert booking.status == "arrived"
        assert booking.table_ids == [tables["T1"].id]

    def test_check_in_with_tables(self, booking_service, make_booking, tables):
        booking = make_booking(table_ids=[tables["T1"].id])
        booking_service.check_in(booking.id, "staff-1", table_ids=[tables["T2"].id], now=DINNER)
        assert booking.table_ids == [tables["T2"].id]

    def test_seat_requires_a_table(self, booking_service, make_booking, tables):
        booking = make_booking(party_size=9)
        booking_service.check_in(booking.id, "staff-1", now=DINNER)
        assert booking.table_ids == []

        with pytest.raises(BookingValidationError) as exc_info:
            booking_service.seat(booking.id, "staff-1", now=DINNER)
        assert exc_info.value.user_message == "Assign a table before seating the guest"

    def test_seat(self, booking_service, make_booking, tables):
        booking = make_booking(table_ids=[tables["T2"].id])
        booking_service.check_in(booking.id, "staff-1", now=DINNER)
        booking_service.seat(booking.id, "staff-1", now=at(DINNER, 5))
        assert booking.status == "seated"
        assert booking.seated_at == at(DINNER, 5)
        assert booking.checked_in_at == DINNER

    def test_cannot_seat_before_check_in(self, booking_service, make_booking, tables):
        booking = make_booking(table_ids=[tables["T2"].id])
        with pytest.raises(StateTransitionError):
            booking_service.seat(booking.id, "staff-1")


class TestCancellation:
    def test_cancel_by_restaurant(self, booking_service, make_booking):
        booking = make_booking()
        booking_service.cancel_booking(booking.id, "owner-1", reason="Kitchen fire", now=at(NOW, 30))
        assert booking.status == "cancelled_by_restaurant"
        assert booking.cancellation_reason == "Kitchen fire"
        assert booking.cancelled_at == at(NOW, 30)

    def test_cancel_by_guest(self, booking_service, make_booking):
        booking = make_booking()
        booking_service.cancel_booking(booking.id, by_user=True, now=at(NOW, 30))
        assert booking.status == "cancelled_by_user"

    def test_cancel_twice(self, booking_service, make_booking):
        booking = make_booking()
        booking_service.cancel_booking(booking.id, "owner-1", now=at(NOW, 30))
        with pytest.raises(StateTransitionError) as exc_info:
            booking_service.cancel_booking(booking.id, "owner-1")
        assert exc_info.value.user_message == "Booking is already cancelled"

    def test_completed_cannot_be_cancelled(self, booking_service, make_booking):
        booking = make_booking()
        booking_service.update_status(booking.id, DiningStatus.COMPLETED, force=True, now=DINNER)
        with pytest.raises(StateTransitionError) as exc_info:
            booking_service.cancel_booking(booking.id, "owner-1")
        assert exc_info.value.user_message == "Completed or no-show bookings cannot be cancelled"

    def test_cancelled_tables_are_free_again(self, booking_service, make_booking, tables):
        booking = make_booking(table_ids=[tables["T2"].id])
        booking_service.cancel_booking(booking.id, "owner-1", now=at(NOW, 30))
        replacement = make_booking(table_ids=[tables["T2"].id])
        assert replacement.table_ids == [tables["T2"].id]


class TestTableChanges:
    def test_switch_tables_records_move(self, db_session, booking_service, make_booking, tables):
        booking = make_booking(table_ids=[tables["T2"].id])
        booking_service.switch_tables(booking.id, [tables["T3"].id], staff_id="staff-1")

        assert booking.table_ids == [tables["T3"].id]
        last = history_of(db_session, booking)[-1]
        assert last.reason == "Tables switched"
        assert last.old_status == last.new_status == "confirmed"
        assert last.details == {"table_switch": {"from": [tables["T2"].id], "to": [tables["T3"].id]}}

    def test_switch_to_busy_table(self, booking_service, make_booking, tables):
        make_booking(table_ids=[tables["T3"].id])
        booking = make_booking(table_ids=[tables["T2"].id])
        with pytest.raises(TableUnavailableError):
            booking_service.switch_tables(booking.id, [tables["T3"].id])
        assert booking.table_ids == [tables["T2"].id]

    def test_assign_combined_tables(self, booking_service, make_booking, tables):
        booking = make_booking(party_size=8)
        booking_service.assign_tables(booking.id, [tables["T2"].id, tables["T3"].id])
        assert booking.table_ids == sorted([tables["T2"].id, tables["T3"].id])

    def test_finished_booking_tables_locked(self, booking_service, make_booking, tables):
        booking = make_booking()
        booking_service.cancel_booking(booking.id, "owner-1", now=at(NOW, 30))
        with pytest.raises(StateTransitionError):
            booking_service.assign_tables(booking.id, [tables["T2"].id])

    def test_remove_one_table(self, booking_service, make_booking, tables):
        booking = make_booking(party_size=8, table_ids=[tables["T2"].id, tables["T3"].id])
        booking_service.remove_table_assignment(booking.id, tables["T3"].id)
        assert booking.table_ids == [tables["T2"].id]

    def test_remove_all_tables(self, booking_service, make_booking, tables):
        booking = make_booking(table_ids=[tables["T2"].id])
        booking_service.remove_table_assignment(booking.id)
        assert booking.table_ids == []

    def test_remove_unassigned_table(self, booking_service, make_booking, tables):
        booking = make_booking(table_ids=[tables["T2"].id])
        with pytest.raises(NotFoundError):
            booking_service.remove_table_assignment(booking.id, tables["T1"].id)


class TestListing:
    @pytest.fixture
    def day_of_bookings(self, booking_service, make_booking, tables):
        seated = make_booking(table_ids=[tables["T2"].id])
        unassigned = make_booking(
            booking_time=at(DINNER, 60),
            party_size=4,
            guest_name="Marco Rossi",
            guest_email="marco@example.com",
            guest_phone="+14155550199",
        )
        cancelled = make_booking(booking_time=at(DINNER, -60), party_size=6, guest_name="Ann Lee")
        booking_service.cancel_booking(cancelled.id, "owner-1", now=at(NOW, 30))
        tomorrow = make_booking(booking_time=DINNER + timedelta(days=1))
        return {"seated": seated, "unassigned": unassigned, "cancelled": cancelled, "tomorrow": tomorrow}

    def test_ordered_by_time(self, booking_service, restaurant, day_of_bookings):
        ids = [b.id for b in booking_service.list_bookings(restaurant.id)]
        expected = [day_of_bookings[k].id for k in ("cancelled", "seated", "unassigned", "tomorrow")]
        assert ids == expected

    def test_date_range(self, booking_service, restaurant, day_of_bookings):
        start = datetime(2030, 6, 4)
        found = booking_service.list_bookings(
            restaurant.id, BookingFilters(start=start, end=start + timedelta(days=1))
        )
        assert day_of_bookings["tomorrow"].id not in [b.id for b in found]
        assert len(found) == 3

    def test_status_filter(self, booking_service, restaurant, day_of_bookings):
        found = booking_service.list_bookings(
            restaurant.id, BookingFilters(statuses=[DiningStatus.CANCELLED_BY_RESTAURANT])
        )
        assert [b.id for b in found] == [day_of_bookings["cancelled"].id]

    def test_search(self, booking_service, restaurant, day_of_bookings):
        by_name = booking_service.list_bookings(restaurant.id, BookingFilters(search="marco"))
        assert [b.id for b in by_name] == [day_of_bookings["unassigned"].id]

        code = day_of_bookings["seated"].confirmation_code
        by_code = booking_service.list_bookings(restaurant.id, BookingFilters(search=code.lower()))
        assert [b.id for b in by_code] == [day_of_bookings["seated"].id]

    def test_table_filters(self, booking_service, restaurant, tables, day_of_bookings):
        on_t2 = booking_service.list_bookings(restaurant.id, BookingFilters(table_id=tables["T2"].id))
        assert [b.id for b in on_t2] == [day_of_bookings["seated"].id]

        without = booking_service.list_bookings(restaurant.id, BookingFilters(without_tables=True))
        assert day_of_bookings["seated"].id not in [b.id for b in without]
        assert len(without) == 3

    def test_daily_stats(self, booking_service, restaurant, day_of_bookings):
        stats = booking_service.get_booking_stats(restaurant.id, day=DINNER.date(), now=NOW)
        assert stats.all == 3
        assert stats.confirmed == 2
        assert stats.cancelled == 1
        assert stats.pending == 0
        assert stats.without_tables == 1
        assert stats.upcoming == 2
        assert stats.total_guests == 6
        assert stats.avg_party_size == 3.0
        assert stats.needing_attention == 1

    def test_busy_day_stats_count_every_booking(self, db_session, booking_service, restaurant):
        busy_day = DINNER + timedelta(days=7)
        db_session.add_all([
            Booking(
                restaurant_id=restaurant.id,
                booking_time=busy_day + timedelta(minutes=i % 240),
                party_size=2,
                status="confirmed",
                confirmation_code=f"BUSY{i:06d}",
            )
            for i in range(1050)
        ])
        db_session.commit()

        stats = booking_service.get_booking_stats(restaurant.id, day=busy_day.date(), now=NOW)
        assert stats.all == 1050
        assert stats.total_guests == 2100
        assert len(booking_service.list_bookings(restaurant.id, BookingFilters(limit=1000))) == 1000

    def test_status_history(self, booking_service, day_of_bookings):
        cancelled = day_of_bookings["cancelled"]
        history = booking_service.get_status_history(cancelled.id)
        assert [h.new_status for h in history] == ["confirmed", "cancelled_by_restaurant"]


class TestStaffAlertFailures:
    """A failed alert never undoes or masks a saved booking change."""

    def test_booking_saved_when_alert_storage_fails(self, db_session, booking_service, make_booking):
        failure = OperationalError("INSERT INTO notifications", {}, Exception("database is locked"))
        with patch.object(booking_service.notifications, "notify_staff", side_effect=failure):
            booking = make_booking()

        assert booking.status == "confirmed"
        assert db_session.query(Booking).count() == 1
        assert db_session.query(BookingStatusHistory).count() == 1

    def test_cancellation_saved_when_alert_fails(self, db_session, booking_service, make_booking):
        booking = make_booking()
        failure = NotificationError("Alert dispatch failed", "in_app")
        with patch.object(booking_service.notifications, "notify_staff", side_effect=failure) as notify:
            booking_service.cancel_booking(booking.id, "owner-1", now=at(NOW, 30))

        notify.assert_called_once()
        db_session.expire_all()
        assert db_session.get(Booking, booking.id).status == "cancelled_by_restaurant"
