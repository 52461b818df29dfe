"""
Table availability - overlap checks, table combinations and utilization.

A booking holds its tables for the half-open interval
[booking_time, booking_time + turn_time). Availability is decided by a
linear scan over the restaurant's bookings around the requested window;
per-restaurant volumes are small enough that no index structure is needed.
"""
import math
from datetime import date, datetime, timedelta
from itertools import combinations
from typing import Iterable, List, Optional, Sequence, Tuple

from loguru import logger
from sqlalchemy.orm import Session, selectinload

from ..config import get_settings
from ..models.database import Booking, RestaurantTable
from ..models.schemas import AvailabilityResult, TableOption, TableSlot
from .dining_status import CANCELLED_STATUSES, TABLE_HOLDING_STATUSES, to_status
from .open_hours import OpenHoursService


# ============================================================================
# Pure helpers
# ============================================================================

def intervals_overlap(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime
) -> bool:
    """
    Check whether two half-open intervals overlap.

    Adjacent intervals (one ends exactly when the other starts) do not.
    """
    return a_start < b_end and b_start < a_end


def booking_interval(booking: Booking) -> Tuple[datetime, datetime]:
    """Interval during which a booking occupies its tables."""
    start = booking.booking_time
    return start, start + timedelta(minutes=booking.turn_time_minutes)


def find_conflicts(
    bookings: Iterable[Booking],
    table_ids: Sequence[int],
    start: datetime,
    end: datetime,
    exclude_booking_id: Optional[int] = None
) -> List[Booking]:
    """
    Find bookings holding any of the tables during an overlapping interval.

    Args:
        bookings: Candidate bookings (any order)
        table_ids: Tables being requested
        start: Requested start
        end: Requested end
        exclude_booking_id: Booking being edited, ignored in the scan

    Returns:
        Conflicting bookings in input order
    """
    wanted = set(table_ids)
    conflicts = []
    for booking in bookings:
        if exclude_booking_id is not None and booking.id == exclude_booking_id:
            continue
        if to_status(booking.status) not in TABLE_HOLDING_STATUSES:
            continue
        if not wanted.intersection(booking.table_ids):
            continue
        other_start, other_end = booking_interval(booking)
        if intervals_overlap(start, end, other_start, other_end):
            conflicts.append(booking)
    return conflicts


def validate_capacity(tables: Sequence[RestaurantTable], party_size: int) -> Tuple[bool, str]:
    """
    Check that a set of tables can seat a party.

    Args:
        tables: Selected tables
        party_size: Number of guests

    Returns:
        Tuple of (is_valid, error_message). error_message is empty if valid.
    """
    total_capacity = sum(t.capacity for t in tables)
    total_minimum = sum(t.min_capacity for t in tables)

    if party_size > total_capacity:
        return False, f"Selected tables can only accommodate up to {total_capacity} guests"
    if party_size < total_minimum:
        return False, f"Selected tables require a minimum of {total_minimum} guests"
    return True, ""


def can_combine(first: RestaurantTable, second: RestaurantTable) -> bool:
    """
    Two tables can be joined when both are combinable and each accepts the
    other (an empty combinable_with list accepts any table).
    """
    if not (first.is_combinable and second.is_combinable):
        return False
    first_ok = not first.combinable_with or second.id in first.combinable_with
    second_ok = not second.combinable_with or first.id in second.combinable_with
    return first_ok and second_ok


def compute_table_utilization(
    table_count: int,
    bookings: Iterable[Booking],
    operating_hours: Optional[int] = None
) -> int:
    """
    Percentage of table-hours occupied by bookings.

    Each booking occupies one slot per assigned table per started hour of
    its turn time, out of table_count * operating_hours slots. Cancelled and
    declined bookings do not count.

    Args:
        table_count: Number of active tables
        bookings: Bookings in the period
        operating_hours: Assumed opening hours per table

    Returns:
        Utilization percentage, 0-100
    """
    operating_hours = operating_hours or get_settings().utilization_operating_hours
    total_slots = table_count * operating_hours
    if total_slots <= 0:
        return 0

    occupied = 0
    for booking in bookings:
        if to_status(booking.status) in CANCELLED_STATUSES:
            continue
        occupied += len(booking.table_ids) * math.ceil(booking.turn_time_minutes / 60)

    return min(100, round(occupied / total_slots * 100))


def _option(tables: Sequence[RestaurantTable]) -> TableOption:
    return TableOption(
        table_ids=[t.id for t in tables],
        table_numbers=[t.table_number for t in tables],
        total_capacity=sum(t.capacity for t in tables),
        total_min_capacity=sum(t.min_capacity for t in tables),
        is_combination=len(tables) > 1,
        priority_score=sum(t.priority_score for t in tables),
    )


# ============================================================================
# Service
# ============================================================================

class TableAvailabilityService:
    """
    Service answering which tables are free for a booking window.
    """

    def __init__(self, session: Session):
        """
        Initialize the service with a database session.

        Args:
            session: SQLAlchemy database session
        """
        self.session = session
        self.settings = get_settings()
        self.hours = OpenHoursService(session)

    def get_active_tables(self, restaurant_id: int) -> List[RestaurantTable]:
        return (
            self.session.query(RestaurantTable)
            .filter(
                RestaurantTable.restaurant_id == restaurant_id,
                RestaurantTable.is_active.is_(True),
            )
            .order_by(RestaurantTable.capacity, RestaurantTable.table_number)
            .all()
        )

    def get_tables(self, restaurant_id: int, table_ids: Sequence[int]) -> List[RestaurantTable]:
        """Fetch the requested tables that belong to the restaurant."""
        if not table_ids:
            return []
        return (
            self.session.query(RestaurantTable)
            .filter(
                RestaurantTable.restaurant_id == restaurant_id,
                RestaurantTable.id.in_(list(table_ids)),
            )
            .all()
        )

    def get_bookings_in_window(
        self,
        restaurant_id: int,
        start: datetime,
        end: datetime
    ) -> List[Booking]:
        """
        Bookings that could overlap [start, end).

        The lower bound reaches back one day so long turn times starting the
        previous evening are still scanned.
        """
        return (
            self.session.query(Booking)
            .options(selectinload(Booking.table_links))
            .filter(
                Booking.restaurant_id == restaurant_id,
                Booking.booking_time < end,
                Booking.booking_time >= start - timedelta(days=1),
                Booking.status.in_([s.value for s in TABLE_HOLDING_STATUSES]),
            )
            .order_by(Booking.booking_time)
            .all()
        )

    def _turn_time(self, turn_time_minutes: Optional[int]) -> int:
        return turn_time_minutes or self.settings.default_turn_time_minutes

    def check_table_availability(
        self,
        restaurant_id: int,
        table_ids: Sequence[int],
        booking_time: datetime,
        turn_time_minutes: Optional[int] = None,
        exclude_booking_id: Optional[int] = None,
        check_hours: bool = True
    ) -> AvailabilityResult:
        """
        Check whether tables are free for a booking window.

        Args:
            restaurant_id: Restaurant owning the tables
            table_ids: Tables to check
            booking_time: Requested start
            turn_time_minutes: Requested duration (restaurant default if None)
            exclude_booking_id: Booking being moved, ignored in the scan
            check_hours: Also require the restaurant to be open at start and end

        Returns:
            AvailabilityResult describing why the tables are unavailable, if
            they are
        """
        start = booking_time
        end = start + timedelta(minutes=self._turn_time(turn_time_minutes))

        tables = self.get_tables(restaurant_id, table_ids)
        known = {t.id for t in tables if t.is_active}
        unknown = sorted(set(table_ids) - known)
        if unknown:
            return AvailabilityResult(
                available=False,
                unknown_table_ids=unknown,
                message="Some selected tables are invalid or inactive",
            )

        if check_hours:
            open_status = self.hours.is_open_for_interval(restaurant_id, start, end)
            if not open_status.is_open:
                return AvailabilityResult(
                    available=False,
                    restaurant_open=False,
                    message=open_status.reason,
                )

        bookings = self.get_bookings_in_window(restaurant_id, start, end)
        conflicts = find_conflicts(bookings, table_ids, start, end, exclude_booking_id)
        if conflicts:
            busy = sorted({tid for b in conflicts for tid in b.table_ids} & set(table_ids))
            numbers = [t.table_number for t in tables if t.id in busy]
            logger.debug(
                f"Tables {busy} busy at {start} for restaurant {restaurant_id}: "
                f"bookings {[b.id for b in conflicts]}"
            )
            return AvailabilityResult(
                available=False,
                conflicting_booking_ids=[b.id for b in conflicts],
                message=f"Table(s) {', '.join(numbers)} already booked at this time",
            )

        return AvailabilityResult(available=True)

    def get_available_tables_for_slot(
        self,
        restaurant_id: int,
        booking_time: datetime,
        party_size: int,
        turn_time_minutes: Optional[int] = None,
        exclude_booking_id: Optional[int] = None
    ) -> List[TableOption]:
        """
        List single tables and two-table combinations able to seat a party.

        Args:
            restaurant_id: Restaurant to search
            booking_time: Requested start
            party_size: Number of guests
            turn_time_minutes: Requested duration
            exclude_booking_id: Booking being moved

        Returns:
            Single-table options (closest fit first) followed by
            combinations sorted by total capacity
        """
        start = booking_time
        end = start + timedelta(minutes=self._turn_time(turn_time_minutes))

        tables = self.get_active_tables(restaurant_id)
        bookings = self.get_bookings_in_window(restaurant_id, start, end)
        conflicts = find_conflicts(
            bookings, [t.id for t in tables], start, end, exclude_booking_id
        )
        busy = {tid for b in conflicts for tid in b.table_ids}
        free = [t for t in tables if t.id not in busy]

        singles = [
            _option([t]) for t in sorted(
                (t for t in free if t.capacity >= party_size and t.min_capacity <= party_size),
                key=lambda t: (t.capacity - party_size, -t.priority_score),
            )
        ]

        combos = []
        for first, second in combinations(free, 2):
            if not can_combine(first, second):
                continue
            pair = sorted((first, second), key=lambda t: t.table_number)
            option = _option(pair)
            if option.total_capacity >= party_size and option.total_min_capacity <= party_size:
                combos.append(option)
        combos.sort(key=lambda o: (o.total_capacity, -o.priority_score))

        return singles + combos

    def get_optimal_table_assignment(
        self,
        restaurant_id: int,
        booking_time: datetime,
        party_size: int,
        turn_time_minutes: Optional[int] = None,
        exclude_booking_id: Optional[int] = None
    ) -> Optional[TableOption]:
        """
        Pick the best tables for a party.

        Prefers the single table whose capacity is closest to the party size
        (higher priority score breaks ties), then the smallest combination.

        Returns:
            TableOption or None when nothing fits
        """
        options = self.get_available_tables_for_slot(
            restaurant_id,
            booking_time,
            party_size,
            turn_time_minutes,
            exclude_booking_id,
        )
        if not options:
            logger.info(
                f"No table fits party of {party_size} at {booking_time} "
                f"for restaurant {restaurant_id}"
            )
            return None
        return options[0]

    def get_table_time_slots(
        self,
        restaurant_id: int,
        table_ids: Sequence[int],
        day: date,
        turn_time_minutes: Optional[int] = None,
        slot_duration: Optional[int] = None
    ) -> List[TableSlot]:
        """
        Availability of a set of tables for each bookable slot of a day.

        Returns:
            One TableSlot per opening-hours slot
        """
        turn_time = self._turn_time(turn_time_minutes)
        slots = self.hours.get_available_time_slots(restaurant_id, day, slot_duration)
        if not slots:
            return []

        window_end = slots[-1] + timedelta(minutes=turn_time)
        bookings = self.get_bookings_in_window(restaurant_id, slots[0], window_end)

        result = []
        for slot in slots:
            end = slot + timedelta(minutes=turn_time)
            conflicts = find_conflicts(bookings, table_ids, slot, end)
            result.append(TableSlot(time=slot, available=not conflicts))
        return result
