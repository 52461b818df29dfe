"""
Tests for the dining-status state machine.

Tests cover:
- Valid transitions per tier
- Terminal statuses
- Progress and remaining-time estimates
- Override menu
"""
from datetime import datetime

import pytest

from restaurant_dashboard.models.enums import DiningStatus, RestaurantTier
from restaurant_dashboard.services.dining_status import (
    TERMINAL_STATUSES,
    can_transition,
    estimate_completion_time,
    estimate_remaining_minutes,
    format_status,
    get_dining_progress,
    get_next_statuses,
    get_override_statuses,
    get_valid_transitions,
    holds_tables,
    is_dining,
    is_terminal,
    to_status,
)

S = DiningStatus


class TestValidTransitions:
    """Test the next-status menu."""

    @pytest.mark.parametrize("status", [s for s in DiningStatus if s not in TERMINAL_STATUSES])
    def test_non_terminal_statuses_have_a_next_step(self, status):
        assert get_valid_transitions(status, RestaurantTier.PRO)

    @pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
    def test_terminal_statuses_have_no_next_step(self, status):
        assert get_valid_transitions(status, RestaurantTier.PRO) == []
        assert get_valid_transitions(status, RestaurantTier.BASIC) == []

    def test_pending_options(self):
        assert get_next_statuses(S.PENDING) == [
            S.CONFIRMED,
            S.DECLINED_BY_RESTAURANT,
            S.CANCELLED_BY_RESTAURANT,
        ]

    def test_main_course_can_skip_dessert(self):
        assert S.DESSERT in get_next_statuses(S.MAIN_COURSE)
        assert S.PAYMENT in get_next_statuses(S.MAIN_COURSE)

    def test_payment_only_completes(self):
        assert get_next_statuses(S.PAYMENT) == [S.COMPLETED]

    def test_decline_requires_confirmation(self):
        decline = [t for t in get_valid_transitions(S.PENDING) if t.to_status == S.DECLINED_BY_RESTAURANT]
        assert decline[0].requires_confirmation is True
        assert decline[0].label == "Decline"

    def test_accepts_raw_strings(self):
        assert get_next_statuses("confirmed", "pro") == get_next_statuses(S.CONFIRMED, RestaurantTier.PRO)

    def test_unknown_status_rejected(self):
        with pytest.raises(ValueError):
            to_status("eating")


class TestBasicTier:
    """Basic restaurants only approve or decline requests."""

    def test_pending_approve_or_decline(self):
        assert get_next_statuses(S.PENDING, RestaurantTier.BASIC) == [
            S.CONFIRMED,
            S.DECLINED_BY_RESTAURANT,
        ]

    def test_confirmed_has_no_dining_flow(self):
        assert get_next_statuses(S.CONFIRMED, RestaurantTier.BASIC) == []

    def test_basic_pending_label(self):
        assert format_status(S.PENDING, RestaurantTier.BASIC) == "Needs Review"
        assert format_status(S.PENDING, RestaurantTier.PRO) == "Pending Approval"

    def test_basic_cannot_seat(self):
        allowed, reason = can_transition(S.CONFIRMED, S.ARRIVED, RestaurantTier.BASIC)
        assert allowed is False
        assert "Cannot change status" in reason


class TestCanTransition:
    """Test can_transition reasons."""

    def test_allowed(self):
        assert can_transition(S.CONFIRMED, S.ARRIVED) == (True, "")

    def test_same_status(self):
        allowed, reason = can_transition(S.SEATED, S.SEATED)
        assert allowed is False
        assert reason == "Booking is already seated"

    def test_from_terminal(self):
        allowed, reason = can_transition(S.COMPLETED, S.SEATED)
        assert allowed is False
        assert "cannot be changed" in reason

    def test_skipping_steps(self):
        allowed, reason = can_transition(S.CONFIRMED, S.PAYMENT)
        assert allowed is False
        assert reason == "Cannot change status from Confirmed to Payment"


class TestProgress:
    """Test dining progress and time estimates."""

    def test_progress_never_decreases_along_the_flow(self):
        values = [get_dining_progress(s) for s in DiningStatus.get_ordered_states()]
        assert values == sorted(values)
        assert values[0] == 0
        assert values[-1] == 100

    @pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
    def test_terminal_progress_is_complete(self, status):
        assert get_dining_progress(status) == 100

    def test_known_values(self):
        assert get_dining_progress(S.SEATED) == 20
        assert get_dining_progress(S.MAIN_COURSE) == 70
        assert get_dining_progress(S.PAYMENT) == 95

    def test_remaining_minutes(self):
        assert estimate_remaining_minutes(S.SEATED, 120) == 96
        assert estimate_remaining_minutes(S.PENDING, 90) == 90
        assert estimate_remaining_minutes(S.COMPLETED, 120) == 0

    def test_completion_time(self):
        now = datetime(2030, 6, 3, 20, 0)
        assert estimate_completion_time(S.MAIN_COURSE, 100, now) == datetime(2030, 6, 3, 20, 30)


class TestStatusGroups:
    def test_dining_statuses(self):
        assert is_dining(S.ARRIVED)
        assert is_dining(S.PAYMENT)
        assert not is_dining(S.CONFIRMED)
        assert not is_dining(S.COMPLETED)

    def test_table_holding(self):
        assert holds_tables(S.PENDING)
        assert holds_tables(S.DESSERT)
        assert not holds_tables(S.CANCELLED_BY_USER)
        assert not holds_tables(S.ACCEPTANCE_FAILED)

    def test_terminal(self):
        assert is_terminal("no_show")
        assert not is_terminal("acceptance_failed")


class TestOverrideStatuses:
    """Staff can force statuses outside the normal flow."""

    def test_terminal_only_reopens(self):
        targets = [t.to_status for t in get_override_statuses(S.CANCELLED_BY_RESTAURANT)]
        assert targets == [S.PENDING, S.CONFIRMED, S.ARRIVED, S.SEATED]

    def test_system_statuses_never_offered(self):
        targets = {t.to_status for t in get_override_statuses(S.SEATED)}
        assert S.AUTO_DECLINED not in targets
        assert S.ACCEPTANCE_FAILED not in targets
        assert S.SEATED not in targets

    def test_backwards_moves_need_confirmation(self):
        options = {t.to_status: t for t in get_override_statuses(S.MAIN_COURSE)}
        assert options[S.SEATED].requires_confirmation is True
        assert options[S.PAYMENT].requires_confirmation is False
        assert options[S.COMPLETED].requires_confirmation is True
