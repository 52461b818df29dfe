"""
TableStatusService - live table occupancy for the floor view.

A table is occupied when its party is physically present (arrived through
payment) or when the current time falls inside an assigned booking's
interval. Free tables report their next booking and whether a walk-in can
still be seated before it.
"""
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..config import get_settings
from ..models.database import Booking, RestaurantTable
from ..models.schemas import BookingSummary, TableStatusInfo
from .dining_status import (
    estimate_completion_time,
    get_dining_progress,
    is_dining,
    to_status,
)
from .table_availability import TableAvailabilityService, booking_interval


def summarize_booking(booking: Booking, now: datetime) -> BookingSummary:
    """Build the compact booking view used by the floor plan."""
    if is_dining(booking.status):
        estimated_end = estimate_completion_time(booking.status, booking.turn_time_minutes, now)
    else:
        estimated_end = booking_interval(booking)[1]

    return BookingSummary(
        id=booking.id,
        guest_name=booking.display_name,
        party_size=booking.party_size,
        booking_time=booking.booking_time,
        status=to_status(booking.status).value,
        turn_time_minutes=booking.turn_time_minutes,
        dining_progress=get_dining_progress(booking.status),
        estimated_end=estimated_end,
        seated_at=booking.seated_at,
    )


class TableStatusService:
    """
    Service computing which tables are occupied right now.
    """

    def __init__(self, session: Session):
        """
        Initialize the service with a database session.

        Args:
            session: SQLAlchemy database session
        """
        self.session = session
        self.settings = get_settings()
        self.availability = TableAvailabilityService(session)

    def get_table_statuses(
        self,
        restaurant_id: int,
        now: Optional[datetime] = None,
        walk_in_buffer_minutes: Optional[int] = None
    ) -> Dict[int, TableStatusInfo]:
        """
        Compute the live status of every active table.

        Args:
            restaurant_id: Restaurant to inspect
            now: Reference time (defaults to the current time)
            walk_in_buffer_minutes: Minimum gap before the next booking for a
                walk-in to be accepted

        Returns:
            Mapping of table id to TableStatusInfo, in table number order
        """
        now = now or datetime.now()
        buffer = (
            walk_in_buffer_minutes
            if walk_in_buffer_minutes is not None
            else self.settings.walk_in_buffer_minutes
        )

        tables = self.availability.get_active_tables(restaurant_id)
        day_end = datetime.combine(now.date(), datetime.max.time())
        bookings = self.availability.get_bookings_in_window(restaurant_id, now, day_end)

        by_table: Dict[int, List[Booking]] = {t.id: [] for t in tables}
        for booking in bookings:
            for table_id in booking.table_ids:
                if table_id in by_table:
                    by_table[table_id].append(booking)

        return {
            table.id: self._status_for(table, by_table[table.id], now, buffer)
            for table in sorted(tables, key=lambda t: t.table_number)
        }

    def _status_for(
        self,
        table: RestaurantTable,
        bookings: List[Booking],
        now: datetime,
        buffer: int
    ) -> TableStatusInfo:
        current = None
        for booking in bookings:
            if is_dining(booking.status):
                current = booking
                break
        if current is None:
            for booking in bookings:
                start, end = booking_interval(booking)
                if start <= now <= end:
                    current = booking
                    break

        upcoming = [
            b for b in bookings
            if b is not current and b.booking_time > now and not is_dining(b.status)
        ]
        next_booking = upcoming[0] if upcoming else None
        minutes_until_next = None
        if next_booking is not None:
            minutes_until_next = int((next_booking.booking_time - now) / timedelta(minutes=1))

        is_occupied = current is not None
        can_accept_walk_in = not is_occupied and (
            minutes_until_next is None or minutes_until_next > buffer
        )

        return TableStatusInfo(
            table_id=table.id,
            table_number=table.table_number,
            capacity=table.capacity,
            section=table.section,
            is_occupied=is_occupied,
            current_booking=summarize_booking(current, now) if current else None,
            next_booking=summarize_booking(next_booking, now) if next_booking else None,
            minutes_until_next=minutes_until_next,
            can_accept_walk_in=can_accept_walk_in,
        )

    def get_occupancy_rate(self, restaurant_id: int, now: Optional[datetime] = None) -> int:
        """
        Percentage of active tables currently occupied.
        """
        statuses = self.get_table_statuses(restaurant_id, now)
        if not statuses:
            return 0
        occupied = sum(1 for s in statuses.values() if s.is_occupied)
        return round(occupied / len(statuses) * 100)
