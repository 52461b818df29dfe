"""
Dining-status state machine for restaurant bookings.

This module answers, for a booking's current status:
- which statuses staff may move it to next (with the menu label)
- how far through the meal it is (0-100, for progress bars)
- how many minutes of its turn time remain

The rules are pure functions over DiningStatus values so they can be used by
the booking service, the floor view and the API alike.
"""
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple, Union

from ..models.enums import DiningStatus, RestaurantTier
from ..models.schemas import StatusTransitionInfo

StatusLike = Union[DiningStatus, str]

S = DiningStatus

TERMINAL_STATUSES = frozenset({
    S.COMPLETED,
    S.NO_SHOW,
    S.CANCELLED_BY_USER,
    S.CANCELLED_BY_RESTAURANT,
    S.DECLINED_BY_RESTAURANT,
    S.AUTO_DECLINED,
})

# Party is physically in the restaurant
DINING_STATUSES = frozenset({
    S.ARRIVED,
    S.SEATED,
    S.ORDERED,
    S.APPETIZERS,
    S.MAIN_COURSE,
    S.DESSERT,
    S.PAYMENT,
})

# Statuses that hold their assigned tables for the booking interval
TABLE_HOLDING_STATUSES = frozenset({S.PENDING, S.CONFIRMED}) | DINING_STATUSES

CANCELLED_STATUSES = frozenset({
    S.CANCELLED_BY_USER,
    S.CANCELLED_BY_RESTAURANT,
    S.DECLINED_BY_RESTAURANT,
    S.AUTO_DECLINED,
})

# Statuses that may be set by staff from the override menu
_REOPEN_STATUSES = (S.PENDING, S.CONFIRMED, S.ARRIVED, S.SEATED)
_SYSTEM_ONLY_STATUSES = frozenset({S.AUTO_DECLINED, S.ACCEPTANCE_FAILED})

_CANCEL = (S.CANCELLED_BY_RESTAURANT, "Cancel", True)

# status -> [(next_status, label, requires_confirmation)]
_PRO_TRANSITIONS: Dict[DiningStatus, List[Tuple[DiningStatus, str, bool]]] = {
    S.PENDING: [
        (S.CONFIRMED, "Confirm", False),
        (S.DECLINED_BY_RESTAURANT, "Decline", True),
        _CANCEL,
    ],
    S.CONFIRMED: [
        (S.ARRIVED, "Guest Arrived", False),
        (S.NO_SHOW, "Mark No Show", True),
        _CANCEL,
    ],
    S.ARRIVED: [
        (S.SEATED, "Seat Guest", False),
        _CANCEL,
    ],
    S.SEATED: [
        (S.ORDERED, "Order Taken", False),
        _CANCEL,
    ],
    S.ORDERED: [
        (S.APPETIZERS, "Appetizers Served", False),
        (S.MAIN_COURSE, "Main Course Served", False),
        _CANCEL,
    ],
    S.APPETIZERS: [
        (S.MAIN_COURSE, "Main Course Served", False),
        _CANCEL,
    ],
    S.MAIN_COURSE: [
        (S.DESSERT, "Dessert Served", False),
        (S.PAYMENT, "Request Bill", False),
        _CANCEL,
    ],
    S.DESSERT: [
        (S.PAYMENT, "Request Bill", False),
        _CANCEL,
    ],
    S.PAYMENT: [
        (S.COMPLETED, "Complete", False),
    ],
    S.ACCEPTANCE_FAILED: [
        (S.CONFIRMED, "Retry Confirmation", False),
        (S.DECLINED_BY_RESTAURANT, "Decline", True),
    ],
}

# Basic tier only approves or declines requests
_BASIC_TRANSITIONS: Dict[DiningStatus, List[Tuple[DiningStatus, str, bool]]] = {
    S.PENDING: [
        (S.CONFIRMED, "Approve", False),
        (S.DECLINED_BY_RESTAURANT, "Decline", True),
    ],
    S.ACCEPTANCE_FAILED: [
        (S.CONFIRMED, "Approve", False),
        (S.DECLINED_BY_RESTAURANT, "Decline", True),
    ],
}

DINING_PROGRESS: Dict[DiningStatus, int] = {
    S.PENDING: 0,
    S.CONFIRMED: 5,
    S.ARRIVED: 10,
    S.SEATED: 20,
    S.ORDERED: 30,
    S.APPETIZERS: 50,
    S.MAIN_COURSE: 70,
    S.DESSERT: 85,
    S.PAYMENT: 95,
    S.COMPLETED: 100,
    S.NO_SHOW: 100,
    S.CANCELLED_BY_USER: 100,
    S.CANCELLED_BY_RESTAURANT: 100,
    S.DECLINED_BY_RESTAURANT: 100,
    S.AUTO_DECLINED: 100,
    S.ACCEPTANCE_FAILED: 0,
}

STATUS_LABELS: Dict[DiningStatus, str] = {
    S.PENDING: "Pending Approval",
    S.CONFIRMED: "Confirmed",
    S.ARRIVED: "Arrived",
    S.SEATED: "Seated",
    S.ORDERED: "Ordered",
    S.APPETIZERS: "Appetizers",
    S.MAIN_COURSE: "Main Course",
    S.DESSERT: "Dessert",
    S.PAYMENT: "Payment",
    S.COMPLETED: "Completed",
    S.NO_SHOW: "No Show",
    S.CANCELLED_BY_USER: "Cancelled by Customer",
    S.CANCELLED_BY_RESTAURANT: "Cancelled by Restaurant",
    S.DECLINED_BY_RESTAURANT: "Declined",
    S.AUTO_DECLINED: "Auto Declined",
    S.ACCEPTANCE_FAILED: "Acceptance Failed",
}

_BASIC_LABELS: Dict[DiningStatus, str] = {
    S.PENDING: "Needs Review",
}


def to_status(status: StatusLike) -> DiningStatus:
    """
    Coerce a raw status string to DiningStatus.

    Raises:
        ValueError: If the string is not a known status
    """
    if isinstance(status, DiningStatus):
        return status
    try:
        return DiningStatus(status)
    except ValueError:
        raise ValueError(f"Unknown dining status: {status!r}")


def _tier(tier: Union[RestaurantTier, str, None]) -> RestaurantTier:
    if tier is None:
        return RestaurantTier.PRO
    return tier if isinstance(tier, RestaurantTier) else RestaurantTier(tier)


def is_terminal(status: StatusLike) -> bool:
    """True when no further transition is possible."""
    return to_status(status) in TERMINAL_STATUSES


def is_dining(status: StatusLike) -> bool:
    """True while the party is physically at the restaurant."""
    return to_status(status) in DINING_STATUSES


def holds_tables(status: StatusLike) -> bool:
    """True when the booking blocks its tables for its interval."""
    return to_status(status) in TABLE_HOLDING_STATUSES


def get_valid_transitions(
    status: StatusLike,
    tier: Union[RestaurantTier, str, None] = RestaurantTier.PRO
) -> List[StatusTransitionInfo]:
    """
    Get the statuses a booking may move to next.

    Args:
        status: Current status
        tier: Restaurant tier selecting the rule set

    Returns:
        List of StatusTransitionInfo in menu order; empty for terminal
        statuses
    """
    current = to_status(status)
    table = _BASIC_TRANSITIONS if _tier(tier) == RestaurantTier.BASIC else _PRO_TRANSITIONS
    return [
        StatusTransitionInfo(
            from_status=current,
            to_status=target,
            label=label,
            requires_confirmation=confirm,
        )
        for target, label, confirm in table.get(current, [])
    ]


def get_next_statuses(
    status: StatusLike,
    tier: Union[RestaurantTier, str, None] = RestaurantTier.PRO
) -> List[DiningStatus]:
    """Get just the target statuses of get_valid_transitions."""
    return [t.to_status for t in get_valid_transitions(status, tier)]


def can_transition(
    current: StatusLike,
    new: StatusLike,
    tier: Union[RestaurantTier, str, None] = RestaurantTier.PRO
) -> Tuple[bool, str]:
    """
    Check if a booking can move from one status to another.

    Args:
        current: Current status
        new: Requested status
        tier: Restaurant tier

    Returns:
        Tuple of (can_transition, reason). Reason is empty if transition
        is allowed.
    """
    current_status = to_status(current)
    new_status = to_status(new)

    if current_status == new_status:
        return False, f"Booking is already {format_status(current_status, tier).lower()}"

    if current_status in TERMINAL_STATUSES:
        return False, (
            f"Booking is {format_status(current_status, tier).lower()} "
            f"and cannot be changed"
        )

    allowed = get_next_statuses(current_status, tier)
    if new_status not in allowed:
        return False, (
            f"Cannot change status from {format_status(current_status, tier)} "
            f"to {format_status(new_status, tier)}"
        )

    return True, ""


def get_override_statuses(status: StatusLike) -> List[StatusTransitionInfo]:
    """
    Get every status staff may force a booking into, outside the normal flow.

    From a terminal status only re-opening statuses are offered. Statuses
    set by the system (auto_declined, acceptance_failed) are never offered.

    Args:
        status: Current status

    Returns:
        List of StatusTransitionInfo; moves backwards or into a terminal
        status require confirmation
    """
    current = to_status(status)
    order = DiningStatus.get_ordered_states()

    if current in TERMINAL_STATUSES:
        candidates = list(_REOPEN_STATUSES)
    else:
        candidates = [
            s for s in DiningStatus
            if s != current and s not in _SYSTEM_ONLY_STATUSES
        ]

    def _is_backwards(target: DiningStatus) -> bool:
        if current not in order or target not in order:
            return False
        return order.index(target) < order.index(current)

    return [
        StatusTransitionInfo(
            from_status=current,
            to_status=target,
            label=STATUS_LABELS[target],
            requires_confirmation=(
                current in TERMINAL_STATUSES
                or target in TERMINAL_STATUSES
                or _is_backwards(target)
            ),
        )
        for target in candidates
    ]


def get_dining_progress(status: StatusLike) -> int:
    """
    Map a status to a 0-100 progress percentage.

    Progress never decreases along pending -> ... -> completed. Every
    terminal status reads as 100.
    """
    return DINING_PROGRESS[to_status(status)]


def estimate_remaining_minutes(status: StatusLike, turn_time_minutes: int) -> int:
    """
    Estimate the minutes a party will still occupy its table.

    Args:
        status: Current status
        turn_time_minutes: Turn time of the booking

    Returns:
        Remaining minutes, never negative
    """
    progress = get_dining_progress(status)
    remaining = turn_time_minutes - (progress / 100.0) * turn_time_minutes
    return max(0, round(remaining))


def estimate_completion_time(
    status: StatusLike,
    turn_time_minutes: int,
    now: Optional[datetime] = None
) -> datetime:
    """Clock time at which the table is expected to free up."""
    now = now or datetime.now()
    return now + timedelta(minutes=estimate_remaining_minutes(status, turn_time_minutes))


def format_status(
    status: StatusLike,
    tier: Union[RestaurantTier, str, None] = RestaurantTier.PRO
) -> str:
    """Human label for a status; basic tier uses request-queue wording."""
    current = to_status(status)
    if _tier(tier) == RestaurantTier.BASIC and current in _BASIC_LABELS:
        return _BASIC_LABELS[current]
    return STATUS_LABELS[current]
