"""
OpenHoursService - opening hours, special dates and closures.

Resolution order for a given moment:
1. Closures covering the date (whole day, or a time window within it)
2. Special hours for that exact date
3. Regular weekly shifts (several per day allowed; a shift whose close time
   is earlier than its open time runs past midnight)

Answers are cached per restaurant and minute for a short TTL; every write
through this service clears the restaurant's cache.
"""
from time import monotonic
from datetime import date, time, datetime, timedelta
from typing import Dict, List, Optional, Tuple

from loguru import logger
from sqlalchemy.orm import Session

from ..config import get_settings
from ..error_handling.exceptions import NotFoundError
from ..models.database import (
    Restaurant,
    RestaurantHours,
    RestaurantSpecialHours,
    RestaurantClosure,
)
from ..models.schemas import (
    OpenStatus,
    RegularHoursEntry,
    SpecialHoursCreate,
    ClosureCreate,
)

CLOSED_TODAY = "Closed today"
CLOSED_NOW = "Restaurant is closed at this time"
TEMPORARILY_CLOSED = "Temporarily closed"

# (restaurant_id, iso minute) -> (expires_at, status)
_cache: Dict[Tuple[int, str], Tuple[float, OpenStatus]] = {}
MAX_CACHE_ENTRIES = 1024


def clear_cache(restaurant_id: Optional[int] = None) -> None:
    """
    Drop cached open/closed answers.

    Args:
        restaurant_id: Restaurant to clear; all restaurants when omitted
    """
    if restaurant_id is None:
        _cache.clear()
        return
    for key in [k for k in _cache if k[0] == restaurant_id]:
        del _cache[key]


def _store(key: Tuple[int, str], status: OpenStatus, now: float, expires_at: float) -> None:
    """
    Cache an answer, evicting expired entries first and then the entries
    closest to expiry until the cache is under MAX_CACHE_ENTRIES.
    """
    for stale in [k for k, (expiry, _) in _cache.items() if expiry <= now]:
        del _cache[stale]

    overflow = len(_cache) - MAX_CACHE_ENTRIES + 1
    if overflow > 0:
        oldest = sorted(_cache, key=lambda k: _cache[k][0])[:overflow]
        for k in oldest:
            del _cache[k]
        logger.debug(f"Evicted {len(oldest)} cached opening-hours answers")

    _cache[key] = (expires_at, status)


def is_time_within_range(current: time, open_time: time, close_time: time) -> bool:
    """
    Check whether a clock time falls inside an opening range.

    Both ends are inclusive. A range whose close time is earlier than its
    open time wraps past midnight.
    """
    if close_time < open_time:
        return current >= open_time or current <= close_time
    return open_time <= current <= close_time


def _format_range(open_time: time, close_time: time) -> Dict[str, str]:
    return {"open": open_time.strftime("%H:%M"), "close": close_time.strftime("%H:%M")}


class OpenHoursService:
    """
    Service answering whether a restaurant is open and which slots it offers.
    """

    def __init__(self, session: Session):
        """
        Initialize the service with a database session.

        Args:
            session: SQLAlchemy database session
        """
        self.session = session
        self.settings = get_settings()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_restaurant_open(self, restaurant_id: int, when: datetime) -> OpenStatus:
        """
        Check whether the restaurant is open at a moment.

        Args:
            restaurant_id: Restaurant to check
            when: Moment to check (naive, restaurant local time)

        Returns:
            OpenStatus with is_open, a reason when closed, and the shifts
            considered
        """
        key = (restaurant_id, when.replace(second=0, microsecond=0).isoformat())
        cached = _cache.get(key)
        now = monotonic()
        if cached and cached[0] > now:
            return cached[1]

        status = self._resolve(restaurant_id, when)
        _store(key, status, now, now + self.settings.hours_cache_seconds)
        return status

    def _resolve(self, restaurant_id: int, when: datetime) -> OpenStatus:
        day = when.date()
        moment = when.time().replace(second=0, microsecond=0)

        for closure in self._closures_for(restaurant_id, day):
            if closure.start_time is None or closure.end_time is None:
                return OpenStatus(is_open=False, reason=closure.reason or TEMPORARILY_CLOSED)
            if is_time_within_range(moment, closure.start_time, closure.end_time):
                return OpenStatus(is_open=False, reason=closure.reason or TEMPORARILY_CLOSED)

        # A shift from the previous day may still be running after midnight
        for open_time, close_time in self._shifts_for(restaurant_id, day - timedelta(days=1)):
            if close_time < open_time and moment <= close_time:
                return OpenStatus(is_open=True, hours=[_format_range(open_time, close_time)])

        special = self._special_hours_for(restaurant_id, day)
        if special is not None and special.is_closed:
            return OpenStatus(is_open=False, reason=special.reason or CLOSED_TODAY)

        shifts = self._shifts_for(restaurant_id, day)
        if not shifts:
            return OpenStatus(is_open=False, reason=CLOSED_TODAY)

        hours = [_format_range(o, c) for o, c in shifts]
        for open_time, close_time in shifts:
            if close_time < open_time:
                # Overnight shift: only the part before midnight belongs to today
                if moment >= open_time:
                    return OpenStatus(is_open=True, hours=hours)
            elif is_time_within_range(moment, open_time, close_time):
                return OpenStatus(is_open=True, hours=hours)

        return OpenStatus(is_open=False, reason=CLOSED_NOW, hours=hours)

    def is_open_for_interval(
        self,
        restaurant_id: int,
        start: datetime,
        end: datetime
    ) -> OpenStatus:
        """
        Check the restaurant is open both when a booking starts and ends.

        Returns:
            The first closed OpenStatus, or the opening status at start
        """
        at_start = self.is_restaurant_open(restaurant_id, start)
        if not at_start.is_open:
            return at_start
        at_end = self.is_restaurant_open(restaurant_id, end)
        if not at_end.is_open:
            return OpenStatus(
                is_open=False,
                reason="Restaurant closes before this booking would end",
                hours=at_end.hours,
            )
        return at_start

    def get_available_time_slots(
        self,
        restaurant_id: int,
        day: date,
        slot_duration: Optional[int] = None,
        meal_duration: Optional[int] = None
    ) -> List[datetime]:
        """
        Generate bookable start times for a date.

        A slot is offered only when a full meal fits before the shift closes
        and no closure covers it.

        Args:
            restaurant_id: Restaurant to generate slots for
            day: Date to generate slots for
            slot_duration: Minutes between slots
            meal_duration: Minimum meal length before closing

        Returns:
            Sorted list of slot start times
        """
        slot_duration = slot_duration or self.settings.slot_duration_minutes
        meal_duration = meal_duration or self.settings.meal_duration_minutes

        special = self._special_hours_for(restaurant_id, day)
        if special is not None and special.is_closed:
            return []

        slots = set()
        for open_time, close_time in self._shifts_for(restaurant_id, day):
            opens = datetime.combine(day, open_time)
            closes = datetime.combine(day, close_time)
            if closes <= opens:
                closes += timedelta(days=1)

            current = opens
            while current + timedelta(minutes=meal_duration) <= closes:
                if self.is_restaurant_open(restaurant_id, current).is_open:
                    slots.add(current)
                current += timedelta(minutes=slot_duration)

        return sorted(slots)

    def get_operating_window(
        self,
        restaurant_id: int,
        day: date
    ) -> Optional[Tuple[datetime, datetime]]:
        """
        Get the earliest opening and latest closing for a date.

        Returns:
            Tuple of (opens, closes) or None when closed all day
        """
        special = self._special_hours_for(restaurant_id, day)
        if special is not None and special.is_closed:
            return None

        windows = []
        for open_time, close_time in self._shifts_for(restaurant_id, day):
            opens = datetime.combine(day, open_time)
            closes = datetime.combine(day, close_time)
            if closes <= opens:
                closes += timedelta(days=1)
            windows.append((opens, closes))

        if not windows:
            return None
        return min(w[0] for w in windows), max(w[1] for w in windows)

    def list_regular_hours(self, restaurant_id: int) -> List[RestaurantHours]:
        return (
            self.session.query(RestaurantHours)
            .filter(RestaurantHours.restaurant_id == restaurant_id)
            .order_by(RestaurantHours.day_of_week, RestaurantHours.open_time)
            .all()
        )

    def list_closures(self, restaurant_id: int, from_date: Optional[date] = None) -> List[RestaurantClosure]:
        query = self.session.query(RestaurantClosure).filter(
            RestaurantClosure.restaurant_id == restaurant_id
        )
        if from_date is not None:
            query = query.filter(RestaurantClosure.end_date >= from_date)
        return query.order_by(RestaurantClosure.start_date).all()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_regular_hours(
        self,
        restaurant_id: int,
        entries: List[RegularHoursEntry]
    ) -> List[RestaurantHours]:
        """
        Replace the weekly shifts for every weekday present in entries.

        Args:
            restaurant_id: Restaurant to update
            entries: New shifts; days not mentioned keep their shifts

        Returns:
            All regular hours rows of the restaurant
        """
        self._require_restaurant(restaurant_id)
        days = {entry.day_of_week for entry in entries}

        try:
            (
                self.session.query(RestaurantHours)
                .filter(
                    RestaurantHours.restaurant_id == restaurant_id,
                    RestaurantHours.day_of_week.in_(days),
                )
                .delete(synchronize_session=False)
            )
            for entry in entries:
                self.session.add(RestaurantHours(
                    restaurant_id=restaurant_id,
                    day_of_week=entry.day_of_week,
                    is_open=entry.is_open,
                    open_time=entry.open_time,
                    close_time=entry.close_time,
                ))
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        finally:
            clear_cache(restaurant_id)

        logger.info(f"Regular hours updated for restaurant {restaurant_id}: days={sorted(days)}")
        return self.list_regular_hours(restaurant_id)

    def add_special_hours(
        self,
        restaurant_id: int,
        data: SpecialHoursCreate
    ) -> RestaurantSpecialHours:
        """
        Create or replace the special hours for one date.
        """
        self._require_restaurant(restaurant_id)

        special = self._special_hours_for(restaurant_id, data.date)
        if special is None:
            special = RestaurantSpecialHours(restaurant_id=restaurant_id, date=data.date)
            self.session.add(special)

        special.is_closed = data.is_closed
        special.open_time = data.open_time
        special.close_time = data.close_time
        special.reason = data.reason

        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        finally:
            clear_cache(restaurant_id)

        self.session.refresh(special)
        logger.info(f"Special hours set for restaurant {restaurant_id} on {data.date}")
        return special

    def add_closure(self, restaurant_id: int, data: ClosureCreate) -> RestaurantClosure:
        """
        Record a temporary closure.
        """
        self._require_restaurant(restaurant_id)
        closure = RestaurantClosure(
            restaurant_id=restaurant_id,
            start_date=data.start_date,
            end_date=data.end_date,
            start_time=data.start_time,
            end_time=data.end_time,
            reason=data.reason,
        )
        self.session.add(closure)
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        finally:
            clear_cache(restaurant_id)

        self.session.refresh(closure)
        logger.info(
            f"Closure added for restaurant {restaurant_id}: "
            f"{data.start_date} - {data.end_date} ({data.reason})"
        )
        return closure

    def delete_closure(self, restaurant_id: int, closure_id: int) -> None:
        closure = (
            self.session.query(RestaurantClosure)
            .filter_by(id=closure_id, restaurant_id=restaurant_id)
            .first()
        )
        if closure is None:
            raise NotFoundError("Closure", closure_id)

        self.session.delete(closure)
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        finally:
            clear_cache(restaurant_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_restaurant(self, restaurant_id: int) -> Restaurant:
        restaurant = self.session.get(Restaurant, restaurant_id)
        if restaurant is None:
            raise NotFoundError("Restaurant", restaurant_id)
        return restaurant

    def _closures_for(self, restaurant_id: int, day: date) -> List[RestaurantClosure]:
        return (
            self.session.query(RestaurantClosure)
            .filter(
                RestaurantClosure.restaurant_id == restaurant_id,
                RestaurantClosure.start_date <= day,
                RestaurantClosure.end_date >= day,
            )
            .all()
        )

    def _special_hours_for(self, restaurant_id: int, day: date) -> Optional[RestaurantSpecialHours]:
        return (
            self.session.query(RestaurantSpecialHours)
            .filter_by(restaurant_id=restaurant_id, date=day)
            .first()
        )

    def _shifts_for(self, restaurant_id: int, day: date) -> List[Tuple[time, time]]:
        """
        Opening ranges for a date: special hours when set, else weekly shifts.
        """
        special = self._special_hours_for(restaurant_id, day)
        if special is not None:
            if special.is_closed or special.open_time is None or special.close_time is None:
                return []
            return [(special.open_time, special.close_time)]

        rows = (
            self.session.query(RestaurantHours)
            .filter(
                RestaurantHours.restaurant_id == restaurant_id,
                RestaurantHours.day_of_week == day.weekday(),
                RestaurantHours.is_open.is_(True),
            )
            .order_by(RestaurantHours.open_time)
            .all()
        )
        return [
            (row.open_time, row.close_time)
            for row in rows
            if row.open_time is not None and row.close_time is not None
        ]
