"""
AnalyticsService - operational metrics over a date range.

Bookings are loaded once for the range and grouped in memory; per-restaurant
volumes are small enough that no SQL aggregation is needed.
"""
from collections import Counter, defaultdict
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Sequence

from loguru import logger
from sqlalchemy.orm import Session, selectinload

from ..config import get_settings
from ..error_handling.exceptions import BookingValidationError, NotFoundError
from ..models.database import Booking, Restaurant, RestaurantTable
from ..models.enums import DiningStatus
from ..models.schemas import AnalyticsReport, CustomerCount, DailyTrend, HourCount
from .dining_status import CANCELLED_STATUSES, to_status
from .table_availability import compute_table_utilization

WAIT_BUCKETS = ("0-5", "5-10", "10-15", "15+")
PEAK_HOURS_SHOWN = 5


def _rate(count: int, total: int) -> float:
    return round(count / total * 100, 1) if total else 0.0


def wait_bucket(minutes: float) -> str:
    """Bucket label for a wait between booking time and seating."""
    if minutes < 5:
        return "0-5"
    if minutes < 10:
        return "5-10"
    if minutes < 15:
        return "10-15"
    return "15+"


def wait_minutes(booking: Booking) -> Optional[float]:
    """Minutes between the booked time and seating; early seating counts as 0."""
    if booking.seated_at is None:
        return None
    return max(0.0, (booking.seated_at - booking.booking_time) / timedelta(minutes=1))


def customer_key(booking: Booking) -> Optional[str]:
    """Identify the guest behind a booking for repeat-customer counts."""
    if booking.user_id:
        return f"user:{booking.user_id}"
    for prefix, value in (("email", booking.guest_email), ("phone", booking.guest_phone)):
        if value:
            return f"{prefix}:{value.lower()}"
    if booking.guest_name:
        return f"name:{booking.guest_name.lower()}"
    return None


class AnalyticsService:
    """
    Service computing booking analytics for a restaurant.
    """

    def __init__(self, session: Session):
        """
        Initialize the analytics service with a database session.

        Args:
            session: SQLAlchemy database session
        """
        self.session = session
        self.settings = get_settings()

    def get_bookings(self, restaurant_id: int, start_date: date, end_date: date) -> List[Booking]:
        start = datetime.combine(start_date, datetime.min.time())
        end = datetime.combine(end_date + timedelta(days=1), datetime.min.time())
        return (
            self.session.query(Booking)
            .options(selectinload(Booking.table_links), selectinload(Booking.user))
            .filter(
                Booking.restaurant_id == restaurant_id,
                Booking.booking_time >= start,
                Booking.booking_time < end,
            )
            .order_by(Booking.booking_time)
            .all()
        )

    def get_report(
        self,
        restaurant_id: int,
        start_date: date,
        end_date: date,
        top_customers: int = 10
    ) -> AnalyticsReport:
        """
        Build the analytics report for a restaurant.

        Args:
            restaurant_id: Restaurant to report on
            start_date: First day (inclusive)
            end_date: Last day (inclusive)
            top_customers: Number of repeat customers to list

        Returns:
            AnalyticsReport

        Raises:
            NotFoundError: If the restaurant does not exist
            BookingValidationError: If end_date is before start_date
        """
        if self.session.get(Restaurant, restaurant_id) is None:
            raise NotFoundError("Restaurant", restaurant_id)
        if end_date < start_date:
            raise BookingValidationError(
                f"Invalid range {start_date} - {end_date}",
                user_message="End date cannot be before start date",
                field="end_date",
                value=end_date.isoformat(),
            )

        bookings = self.get_bookings(restaurant_id, start_date, end_date)
        days = (end_date - start_date).days + 1
        table_count = (
            self.session.query(RestaurantTable)
            .filter(
                RestaurantTable.restaurant_id == restaurant_id,
                RestaurantTable.is_active.is_(True),
            )
            .count()
        )

        statuses = [to_status(b.status) for b in bookings]
        status_counts = Counter(s.value for s in statuses)
        total = len(bookings)
        active = [b for b, s in zip(bookings, statuses) if s not in CANCELLED_STATUSES]
        cancelled = total - len(active)
        no_shows = status_counts.get(DiningStatus.NO_SHOW.value, 0)
        completed = [b for b, s in zip(bookings, statuses) if s == DiningStatus.COMPLETED]

        total_guests = sum(b.party_size for b in active)
        waits = [w for w in (wait_minutes(b) for b in active) if w is not None]

        report = AnalyticsReport(
            start_date=start_date,
            end_date=end_date,
            total_bookings=total,
            status_counts=dict(status_counts),
            total_guests=total_guests,
            avg_party_size=round(total_guests / len(active), 1) if active else 0.0,
            cancellation_rate=_rate(cancelled, total),
            no_show_rate=_rate(no_shows, total),
            completion_rate=_rate(len(completed), total),
            peak_hour=None,
            peak_hours=self._peak_hours(active),
            daily_trends=self._daily_trends(bookings, start_date, days),
            table_utilization=float(compute_table_utilization(
                table_count,
                bookings,
                self.settings.utilization_operating_hours * days,
            )),
            turnover_rate=(
                round(sum(1 for b in completed if b.table_ids) / (table_count * days), 2)
                if table_count else 0.0
            ),
            avg_wait_minutes=round(sum(waits) / len(waits), 1) if waits else None,
            wait_time_distribution=self._wait_distribution(waits),
            service_efficiency=self._service_efficiency(completed),
            top_customers=self._top_customers(completed, top_customers),
        )
        if report.peak_hours:
            report.peak_hour = report.peak_hours[0].hour

        logger.debug(
            f"Analytics for restaurant {restaurant_id} {start_date}..{end_date}: "
            f"{total} bookings, utilization {report.table_utilization}%"
        )
        return report

    def _peak_hours(self, bookings: Sequence[Booking]) -> List[HourCount]:
        counts: Dict[int, List[int]] = defaultdict(lambda: [0, 0])
        for booking in bookings:
            entry = counts[booking.booking_time.hour]
            entry[0] += 1
            entry[1] += booking.party_size
        ranked = sorted(counts.items(), key=lambda kv: (-kv[1][0], -kv[1][1], kv[0]))
        return [
            HourCount(hour=hour, bookings=n, guests=guests)
            for hour, (n, guests) in ranked[:PEAK_HOURS_SHOWN]
        ]

    def _daily_trends(self, bookings: Sequence[Booking], start_date: date, days: int) -> List[DailyTrend]:
        by_day: Dict[date, List[Booking]] = defaultdict(list)
        for booking in bookings:
            by_day[booking.booking_time.date()].append(booking)

        trends = []
        for offset in range(days):
            day = start_date + timedelta(days=offset)
            rows = by_day.get(day, [])
            statuses = [to_status(b.status) for b in rows]
            trends.append(DailyTrend(
                date=day,
                bookings=len(rows),
                guests=sum(b.party_size for b, s in zip(rows, statuses) if s not in CANCELLED_STATUSES),
                completed=sum(1 for s in statuses if s == DiningStatus.COMPLETED),
                cancelled=sum(1 for s in statuses if s in CANCELLED_STATUSES),
                no_shows=sum(1 for s in statuses if s == DiningStatus.NO_SHOW),
            ))
        return trends

    def _wait_distribution(self, waits: Sequence[float]) -> Dict[str, int]:
        distribution = {bucket: 0 for bucket in WAIT_BUCKETS}
        for minutes in waits:
            distribution[wait_bucket(minutes)] += 1
        return distribution

    def _service_efficiency(self, completed: Sequence[Booking]) -> Optional[float]:
        """Share of completed meals that finished within their turn time."""
        timed = [b for b in completed if b.seated_at is not None and b.completed_at is not None]
        if not timed:
            return None
        on_time = sum(
            1 for b in timed
            if b.completed_at - b.seated_at <= timedelta(minutes=b.turn_time_minutes)
        )
        return _rate(on_time, len(timed))

    def _top_customers(self, completed: Sequence[Booking], limit: int) -> List[CustomerCount]:
        grouped: Dict[str, CustomerCount] = {}
        for booking in completed:
            key = customer_key(booking)
            if key is None:
                continue
            entry = grouped.get(key)
            if entry is None:
                entry = grouped[key] = CustomerCount(
                    key=key,
                    name=booking.display_name,
                    completed_bookings=0,
                    total_guests=0,
                )
            entry.completed_bookings += 1
            entry.total_guests += booking.party_size

        ranked = sorted(
            grouped.values(),
            key=lambda c: (-c.completed_bookings, -c.total_guests, c.name),
        )
        return ranked[:limit]
