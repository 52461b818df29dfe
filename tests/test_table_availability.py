"""
Tests for table availability.

Tests cover:
- Half-open interval overlap
- Conflict detection against existing bookings
- Single-table and combination options
- Utilization arithmetic
"""
from datetime import date, datetime, timedelta
from types import SimpleNamespace

import pytest

from conftest import DINNER, at
from restaurant_dashboard.config import reset_settings
from restaurant_dashboard.services.table_availability import (
    TableAvailabilityService,
    can_combine,
    compute_table_utilization,
    find_conflicts,
    intervals_overlap,
    validate_capacity,
)


def fake_booking(booking_id, start, turn=120, tables=(1,), status="confirmed"):
    return SimpleNamespace(
        id=booking_id,
        booking_time=start,
        turn_time_minutes=turn,
        table_ids=list(tables),
        status=status,
    )


def fake_table(table_id, capacity=4, min_capacity=1, combinable=True, combinable_with=()):
    return SimpleNamespace(
        id=table_id,
        capacity=capacity,
        min_capacity=min_capacity,
        is_combinable=combinable,
        combinable_with=list(combinable_with),
    )


@pytest.fixture
def availability(db_session, tables):
    return TableAvailabilityService(db_session)


class TestOverlap:
    """Test half-open interval overlap."""

    def test_overlapping(self):
        assert intervals_overlap(DINNER, at(DINNER, 120), at(DINNER, 60), at(DINNER, 180))

    def test_adjacent_intervals_do_not_overlap(self):
        assert not intervals_overlap(DINNER, at(DINNER, 120), at(DINNER, 120), at(DINNER, 240))
        assert not intervals_overlap(at(DINNER, 120), at(DINNER, 240), DINNER, at(DINNER, 120))

    def test_contained(self):
        assert intervals_overlap(DINNER, at(DINNER, 240), at(DINNER, 30), at(DINNER, 60))

    @pytest.mark.parametrize("offset,expected", [
        (-120, False),
        (-119, True),
        (0, True),
        (119, True),
        (120, False),
    ])
    def test_conflict_boundaries(self, offset, expected):
        existing = fake_booking(1, DINNER)
        start = at(DINNER, offset)
        conflicts = find_conflicts([existing], [1], start, at(start, 120))
        assert bool(conflicts) is expected

    def test_other_tables_ignored(self):
        existing = fake_booking(1, DINNER, tables=(2,))
        assert find_conflicts([existing], [1], DINNER, at(DINNER, 120)) == []

    def test_cancelled_bookings_release_tables(self):
        existing = fake_booking(1, DINNER, status="cancelled_by_user")
        assert find_conflicts([existing], [1], DINNER, at(DINNER, 120)) == []

    def test_excluded_booking_ignored(self):
        existing = fake_booking(7, DINNER)
        assert find_conflicts([existing], [1], DINNER, at(DINNER, 120), exclude_booking_id=7) == []


class TestCapacityHelpers:
    def test_validate_capacity(self):
        tables = [fake_table(1, capacity=4, min_capacity=2)]
        assert validate_capacity(tables, 3) == (True, "")
        assert validate_capacity(tables, 5) == (False, "Selected tables can only accommodate up to 4 guests")
        assert validate_capacity(tables, 1) == (False, "Selected tables require a minimum of 2 guests")

    def test_can_combine(self):
        assert can_combine(fake_table(1), fake_table(2))
        assert not can_combine(fake_table(1, combinable=False), fake_table(2))
        assert can_combine(fake_table(1, combinable_with=[2]), fake_table(2))
        assert not can_combine(fake_table(1, combinable_with=[3]), fake_table(2))


class TestUtilization:
    def test_counts_started_hours_per_table(self):
        bookings = [
            fake_booking(1, DINNER, turn=90, tables=(1,)),
            fake_booking(2, DINNER, turn=120, tables=(2, 3)),
        ]
        # (2 + 4) slots out of 4 tables * 12 hours
        assert compute_table_utilization(4, bookings, operating_hours=12) == 12

    def test_cancelled_bookings_ignored(self):
        bookings = [fake_booking(1, DINNER, status="declined_by_restaurant")]
        assert compute_table_utilization(4, bookings, operating_hours=12) == 0

    def test_capped_at_100(self):
        bookings = [fake_booking(i, DINNER, turn=600) for i in range(5)]
        assert compute_table_utilization(1, bookings, operating_hours=12) == 100

    def test_no_tables(self):
        assert compute_table_utilization(0, [], operating_hours=12) == 0

    def test_uses_configured_hours(self, monkeypatch):
        monkeypatch.setenv("UTILIZATION_OPERATING_HOURS", "10")
        reset_settings()
        bookings = [fake_booking(1, DINNER, turn=60)]
        assert compute_table_utilization(1, bookings) == 10


class TestCheckTableAvailability:
    """Test availability against stored bookings."""

    def test_free_table(self, availability, restaurant, tables):
        result = availability.check_table_availability(restaurant.id, [tables["T2"].id], DINNER)
        assert result.available is True

    def test_booked_table(self, availability, restaurant, tables, make_booking):
        booking = make_booking(table_ids=[tables["T2"].id])
        result = availability.check_table_availability(restaurant.id, [tables["T2"].id], at(DINNER, 60))
        assert result.available is False
        assert result.conflicting_booking_ids == [booking.id]
        assert result.message == "Table(s) T2 already booked at this time"

    def test_back_to_back_allowed(self, availability, restaurant, tables, make_booking):
        make_booking(table_ids=[tables["T2"].id])
        result = availability.check_table_availability(
            restaurant.id, [tables["T2"].id], at(DINNER, 120), turn_time_minutes=60
        )
        assert result.available is True

    def test_unknown_table(self, availability, restaurant):
        result = availability.check_table_availability(restaurant.id, [999], DINNER)
        assert result.available is False
        assert result.unknown_table_ids == [999]

    def test_inactive_table_is_unknown(self, availability, restaurant, tables, db_session):
        tables["T3"].is_active = False
        db_session.commit()
        result = availability.check_table_availability(restaurant.id, [tables["T3"].id], DINNER)
        assert result.unknown_table_ids == [tables["T3"].id]

    def test_outside_hours(self, availability, restaurant, tables):
        result = availability.check_table_availability(
            restaurant.id, [tables["T2"].id], datetime(2030, 6, 4, 22, 0)
        )
        assert result.available is False
        assert result.restaurant_open is False


class TestTableOptions:
    def test_closest_fit_first(self, availability, restaurant, tables):
        options = availability.get_available_tables_for_slot(restaurant.id, DINNER, 2)
        assert options[0].table_numbers == ["T1"]
        assert options[0].is_combination is False

    def test_min_capacity_respected(self, availability, restaurant, tables):
        options = availability.get_available_tables_for_slot(restaurant.id, DINNER, 1)
        singles = [o.table_numbers for o in options if not o.is_combination]
        assert singles == [["T1"]]

    def test_combination_for_large_party(self, availability, restaurant, tables):
        options = availability.get_available_tables_for_slot(restaurant.id, DINNER, 8)
        assert options
        assert all(o.is_combination for o in options)
        assert options[0].table_numbers == ["T2", "T3"]

    def test_non_combinable_table_not_joined(self, availability, restaurant, tables):
        options = availability.get_available_tables_for_slot(restaurant.id, DINNER, 9)
        assert options == []

    def test_busy_tables_excluded(self, availability, restaurant, tables, make_booking):
        make_booking(table_ids=[tables["T1"].id])
        best = availability.get_optimal_table_assignment(restaurant.id, DINNER, 2)
        assert best.table_numbers == ["T2"]

    def test_nothing_fits(self, availability, restaurant, tables):
        assert availability.get_optimal_table_assignment(restaurant.id, DINNER, 20) is None


class TestTableTimeSlots:
    def test_slots_marked_busy_around_booking(self, availability, restaurant, tables, make_booking):
        make_booking(table_ids=[tables["T2"].id])
        slots = availability.get_table_time_slots(restaurant.id, [tables["T2"].id], date(2030, 6, 4))
        by_time = {s.time: s.available for s in slots}
        assert by_time[datetime(2030, 6, 4, 17, 0)] is True
        assert by_time[datetime(2030, 6, 4, 17, 30)] is False
        assert by_time[datetime(2030, 6, 4, 20, 30)] is False
        assert by_time[DINNER + timedelta(hours=2)] is True
