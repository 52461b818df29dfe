"""
BookingService - booking lifecycle for the restaurant dashboard.

Handles creation (validation, initial status, confirmation code, table
assignment), status changes through the dining-status state machine,
request acceptance, check-in and seating, cancellation, table switches,
listing and the counters shown above the bookings list.

Every status change writes one BookingStatusHistory row in the same
transaction as the change itself.
"""
import secrets
import string
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..config import get_settings
from ..error_handling.exceptions import (
    BookingSystemError,
    BookingValidationError,
    CapacityExceededError,
    DatabaseConnectionError,
    DatabaseError,
    DatabaseQueryError,
    InvalidBookingTimeError,
    InvalidPartySizeError,
    NotFoundError,
    NotificationError,
    RestaurantClosedError,
    StateTransitionError,
    TableUnavailableError,
)
from ..error_handling.handlers import graceful_degradation
from ..error_handling.logging_config import log_booking_event
from ..models.database import (
    Booking,
    BookingStatusHistory,
    BookingTable,
    Profile,
    Restaurant,
)
from ..models.enums import BookingPolicy, BookingSource, DiningStatus
from ..models.schemas import BookingCreate, BookingFilters, BookingStats, StatusTransitionInfo
from .dining_status import (
    CANCELLED_STATUSES,
    TABLE_HOLDING_STATUSES,
    TERMINAL_STATUSES,
    can_transition,
    format_status,
    get_valid_transitions,
    to_status,
)
from .notification_service import NotificationService
from .open_hours import OpenHoursService
from .table_availability import TableAvailabilityService
from .vip_service import VIPService

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_SUFFIX_LENGTH = 6
MAX_CODE_ATTEMPTS = 10

_ACCEPTABLE_STATUSES = (DiningStatus.PENDING, DiningStatus.ACCEPTANCE_FAILED)


class BookingService:
    """
    Service for managing bookings of a restaurant.
    """

    def __init__(self, session: Session):
        """
        Initialize booking service with database session.

        Args:
            session: SQLAlchemy database session
        """
        self.session = session
        self.settings = get_settings()
        self.availability = TableAvailabilityService(session)
        self.hours = OpenHoursService(session)
        self.vips = VIPService(session)
        self.notifications = NotificationService(session)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get_restaurant(self, restaurant_id: int) -> Restaurant:
        restaurant = self.session.get(Restaurant, restaurant_id)
        if restaurant is None:
            raise NotFoundError("Restaurant", restaurant_id)
        return restaurant

    def get_booking(self, booking_id: int, restaurant_id: Optional[int] = None) -> Booking:
        """
        Fetch a booking, optionally scoped to a restaurant.

        Raises:
            NotFoundError: If the booking does not exist or belongs to
                another restaurant
        """
        booking = self.session.get(Booking, booking_id)
        if booking is None or (restaurant_id is not None and booking.restaurant_id != restaurant_id):
            raise NotFoundError("Booking", booking_id)
        return booking

    def get_status_history(
        self,
        booking_id: int,
        restaurant_id: Optional[int] = None
    ) -> List[BookingStatusHistory]:
        booking = self.get_booking(booking_id, restaurant_id)
        return list(booking.status_history)

    def get_transitions(self, booking: Booking) -> List[StatusTransitionInfo]:
        """Next-status menu for a booking, using its restaurant's tier."""
        restaurant = self._get_restaurant(booking.restaurant_id)
        return get_valid_transitions(booking.status, restaurant.tier)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _generate_confirmation_code(self, restaurant: Restaurant) -> str:
        """
        Build a unique code: restaurant prefix plus six random characters.

        Raises:
            DatabaseQueryError: If no unused code is found
        """
        letters = "".join(ch for ch in restaurant.name.upper() if ch.isalnum())
        prefix = (letters[:4] or "BOOK").ljust(4, "X")

        for _ in range(MAX_CODE_ATTEMPTS):
            suffix = "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_SUFFIX_LENGTH))
            code = f"{prefix}{suffix}"
            exists = (
                self.session.query(Booking.id)
                .filter(Booking.confirmation_code == code)
                .first()
            )
            if exists is None:
                return code

        raise DatabaseQueryError(
            f"Could not generate a unique confirmation code after {MAX_CODE_ATTEMPTS} attempts"
        )

    def validate_booking_request(
        self,
        restaurant: Restaurant,
        data: BookingCreate,
        now: Optional[datetime] = None
    ) -> None:
        """
        Validate party size, booking window and opening hours.

        Walk-ins skip the time and opening-hours checks.

        Raises:
            InvalidPartySizeError: If the party is outside the restaurant's limits
            InvalidBookingTimeError: If the time is past or beyond the window
            RestaurantClosedError: If the restaurant is closed for the interval
            NotFoundError: If user_id names an unknown profile
        """
        now = now or datetime.now()

        if not restaurant.min_party_size <= data.party_size <= restaurant.max_party_size:
            raise InvalidPartySizeError(
                data.party_size,
                min_size=restaurant.min_party_size,
                max_size=restaurant.max_party_size,
            )

        if data.user_id and self.session.get(Profile, data.user_id) is None:
            raise NotFoundError("Profile", data.user_id)

        if data.source == BookingSource.WALK_IN:
            return

        if data.booking_time < now:
            raise InvalidBookingTimeError(data.booking_time, "Booking time must be in the future")

        window_days = self.vips.get_booking_window_days(restaurant, data.user_id, now)
        if data.booking_time > now + timedelta(days=window_days):
            raise InvalidBookingTimeError(
                data.booking_time,
                f"Bookings can only be made up to {window_days} days in advance",
                window_days=window_days,
            )

        turn_time = data.turn_time_minutes or restaurant.table_turnover_minutes
        end = data.booking_time + timedelta(minutes=turn_time)
        open_status = self.hours.is_open_for_interval(restaurant.id, data.booking_time, end)
        if not open_status.is_open:
            alternatives = [
                slot.isoformat()
                for slot in self.hours.get_available_time_slots(restaurant.id, data.booking_time.date())
            ][:5]
            raise RestaurantClosedError(data.booking_time, open_status.reason, alternatives)

    def _initial_status(self, restaurant: Restaurant, data: BookingCreate) -> DiningStatus:
        if data.status is not None:
            return data.status
        needs_review = (
            restaurant.booking_policy == BookingPolicy.REQUEST.value
            and not data.pre_approved
            and data.source != BookingSource.WALK_IN
        )
        return DiningStatus.PENDING if needs_review else DiningStatus.CONFIRMED

    def create_booking(
        self,
        restaurant_id: int,
        data: BookingCreate,
        created_by: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Booking:
        """
        Create a booking and assign its tables in one transaction.

        Args:
            restaurant_id: Restaurant taking the booking
            data: Validated booking request
            created_by: Staff member creating the booking
            now: Reference time

        Returns:
            The committed Booking

        Raises:
            BookingValidationError: If validation fails (subclasses carry
                the field and alternatives)
            TableUnavailableError: If a requested table is already booked
            DatabaseError: If the transaction fails; nothing is persisted
        """
        now = now or datetime.now()
        restaurant = self._get_restaurant(restaurant_id)
        self.validate_booking_request(restaurant, data, now)

        turn_time = data.turn_time_minutes or restaurant.table_turnover_minutes
        if data.table_ids:
            self._check_tables(restaurant_id, data.table_ids, data.booking_time, turn_time, data.party_size)

        status = self._initial_status(restaurant, data)
        booking = Booking(
            restaurant_id=restaurant_id,
            user_id=data.user_id,
            guest_name=data.guest_name,
            guest_email=data.guest_email,
            guest_phone=data.guest_phone,
            booking_time=data.booking_time,
            party_size=data.party_size,
            turn_time_minutes=turn_time,
            status=status.value,
            confirmation_code=self._generate_confirmation_code(restaurant),
            source=data.source.value,
            special_requests=data.special_requests,
            occasion=data.occasion,
            applied_offer_id=data.applied_offer_id,
        )
        if status == DiningStatus.PENDING:
            booking.request_expires_at = now + timedelta(hours=restaurant.request_expiry_hours)
        self._stamp(booking, status, now)

        try:
            self.session.add(booking)
            self.session.flush()
            self._assign_tables(booking, data.table_ids)
            self._record_history(
                booking,
                None,
                status,
                created_by,
                reason="Booking created",
                details={"source": data.source.value},
            )
            self.session.commit()

        except BookingSystemError:
            self.session.rollback()
            raise

        except IntegrityError as e:
            self.session.rollback()
            raise DatabaseQueryError(
                f"Database constraint violation: {e.orig}",
                operation="create_booking",
                original_error=e,
            ) from e

        except OperationalError as e:
            self.session.rollback()
            raise DatabaseConnectionError(
                f"Database operation failed: {e}",
                original_error=e,
            ) from e

        except Exception as e:
            self.session.rollback()
            logger.error(f"Unexpected error creating booking: {e}")
            raise DatabaseError(
                f"Unexpected error creating booking: {e}",
                operation="create_booking",
                original_error=e,
            ) from e

        log_booking_event(
            "CREATED",
            restaurant_id=restaurant_id,
            booking_id=booking.id,
            actor=created_by,
            details={
                "status": booking.status,
                "party_size": booking.party_size,
                "booking_time": booking.booking_time.isoformat(),
                "tables": booking.table_ids,
            },
        )

        event = "booking_request" if status == DiningStatus.PENDING else "new_booking"
        self._alert_staff(
            restaurant_id,
            event,
            title="New booking request" if status == DiningStatus.PENDING else "New booking",
            message=(
                f"{booking.display_name}, party of {booking.party_size} "
                f"at {booking.booking_time:%d %b %H:%M}"
            ),
            booking=booking,
            exclude_user_id=created_by,
            now=now,
        )
        return booking

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_tables(
        self,
        restaurant_id: int,
        table_ids: Sequence[int],
        booking_time: datetime,
        turn_time: int,
        party_size: int,
        exclude_booking_id: Optional[int] = None,
        check_conflicts: bool = True
    ) -> None:
        """
        Ensure tables exist, are free and can seat the party.

        Raises:
            BookingValidationError: If tables are unknown or inactive
            TableUnavailableError: If another booking holds a table
            CapacityExceededError: If the tables cannot seat the party
        """
        result = self.availability.check_table_availability(
            restaurant_id,
            table_ids,
            booking_time,
            turn_time,
            exclude_booking_id=exclude_booking_id,
            check_hours=False,
        )
        if result.unknown_table_ids:
            raise BookingValidationError(
                f"Unknown or inactive tables {result.unknown_table_ids}",
                user_message=result.message,
                field="table_ids",
                value=result.unknown_table_ids,
            )
        if not result.available and check_conflicts:
            raise TableUnavailableError(
                list(table_ids),
                result.conflicting_booking_ids,
                message=result.message,
            )

        tables = self.availability.get_tables(restaurant_id, table_ids)
        capacity = sum(t.capacity for t in tables)
        minimum = sum(t.min_capacity for t in tables)
        if not minimum <= party_size <= capacity:
            raise CapacityExceededError(party_size, capacity, minimum=minimum)

    def _assign_tables(self, booking: Booking, table_ids: Sequence[int]) -> None:
        """Replace the booking's table links with the given tables."""
        wanted = set(table_ids)
        for link in list(booking.table_links):
            if link.table_id not in wanted:
                booking.table_links.remove(link)
        existing = {link.table_id for link in booking.table_links}
        for table_id in dict.fromkeys(table_ids):
            if table_id not in existing:
                booking.table_links.append(BookingTable(table_id=table_id))
        self.session.flush()

    def _record_history(
        self,
        booking: Booking,
        old_status: Optional[DiningStatus],
        new_status: DiningStatus,
        changed_by: Optional[str],
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        self.session.add(BookingStatusHistory(
            booking_id=booking.id,
            old_status=old_status.value if old_status is not None else None,
            new_status=new_status.value,
            changed_by=changed_by,
            reason=reason,
            details=details,
        ))

    def _stamp(self, booking: Booking, status: DiningStatus, now: datetime) -> None:
        """Set the lifecycle timestamp belonging to a status."""
        if status == DiningStatus.CONFIRMED:
            booking.confirmed_at = booking.confirmed_at or now
        elif status == DiningStatus.ARRIVED:
            booking.checked_in_at = booking.checked_in_at or now
        elif status == DiningStatus.SEATED:
            booking.checked_in_at = booking.checked_in_at or now
            booking.seated_at = booking.seated_at or now
        elif status == DiningStatus.COMPLETED:
            booking.completed_at = now
        elif status in CANCELLED_STATUSES:
            booking.cancelled_at = now

        if status not in TERMINAL_STATUSES:
            booking.completed_at = None
            booking.cancelled_at = None

    def _apply_status(
        self,
        booking: Booking,
        new_status: DiningStatus,
        changed_by: Optional[str],
        now: datetime,
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> DiningStatus:
        """Move a booking to a status and queue the history row; no commit."""
        old_status = to_status(booking.status)
        booking.status = new_status.value
        self._stamp(booking, new_status, now)
        self._record_history(booking, old_status, new_status, changed_by, reason, details)
        return old_status

    def _require_transition(self, booking: Booking, target: DiningStatus) -> None:
        restaurant = self._get_restaurant(booking.restaurant_id)
        allowed, message = can_transition(booking.status, target, restaurant.tier)
        if not allowed:
            raise StateTransitionError(booking.status, target.value, message)

    def _commit(self, operation: str) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise DatabaseError(
                f"Database operation {operation} failed: {e}",
                operation=operation,
                original_error=e,
            ) from e

    @graceful_degradation(
        fallback_value=None,
        log_message="Staff alert failed after the booking was saved",
        exceptions=(NotificationError, SQLAlchemyError),
    )
    def _alert_staff(self, restaurant_id: int, event: str, **kwargs) -> Optional[Dict[str, int]]:
        try:
            return self.notifications.notify_staff(restaurant_id, event, **kwargs)
        except SQLAlchemyError:
            self.session.rollback()
            raise

    def _notify_status(self, booking: Booking, new_status: DiningStatus, changed_by: Optional[str], now: datetime) -> None:
        if new_status in (DiningStatus.CANCELLED_BY_USER, DiningStatus.CANCELLED_BY_RESTAURANT):
            self._alert_staff(
                booking.restaurant_id,
                "booking_cancelled",
                title="Booking cancelled",
                message=(
                    f"{booking.display_name}, party of {booking.party_size} "
                    f"at {booking.booking_time:%d %b %H:%M} was cancelled"
                ),
                booking=booking,
                exclude_user_id=changed_by,
                now=now,
            )
        elif new_status == DiningStatus.NO_SHOW:
            self._alert_staff(
                booking.restaurant_id,
                "no_show",
                title="No show",
                message=f"{booking.display_name} did not arrive for {booking.booking_time:%H:%M}",
                booking=booking,
                exclude_user_id=changed_by,
                now=now,
            )

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    def update_status(
        self,
        booking_id: int,
        new_status: DiningStatus,
        changed_by: Optional[str] = None,
        reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        force: bool = False,
        restaurant_id: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> Booking:
        """
        Move a booking to a new status.

        Args:
            booking_id: Booking to update
            new_status: Requested status
            changed_by: Staff member making the change
            reason: Free-text reason stored in the history
            metadata: Extra data stored in the history row
            force: Allow a transition the state machine does not offer
            restaurant_id: Scope check for the booking
            now: Reference time for lifecycle timestamps

        Returns:
            The updated Booking

        Raises:
            StateTransitionError: If the transition is not allowed
        """
        now = now or datetime.now()
        new_status = to_status(new_status)
        booking = self.get_booking(booking_id, restaurant_id)
        restaurant = self._get_restaurant(booking.restaurant_id)
        current = to_status(booking.status)

        if force:
            if current == new_status:
                raise StateTransitionError(
                    current.value,
                    new_status.value,
                    f"Booking is already {format_status(current, restaurant.tier).lower()}",
                )
            logger.warning(
                f"Forced status change on booking {booking_id}: {current.value} -> {new_status.value} "
                f"by {changed_by}"
            )
        else:
            allowed, message = can_transition(current, new_status, restaurant.tier)
            if not allowed:
                raise StateTransitionError(current.value, new_status.value, message)

        details = dict(metadata or {})
        if force:
            details["forced"] = True

        if new_status == DiningStatus.CANCELLED_BY_RESTAURANT and reason:
            booking.cancellation_reason = reason
        elif new_status == DiningStatus.DECLINED_BY_RESTAURANT and reason:
            booking.decline_reason = reason

        self._apply_status(booking, new_status, changed_by, now, reason, details or None)
        self._commit("update_status")

        log_booking_event(
            "STATUS_CHANGED",
            restaurant_id=booking.restaurant_id,
            booking_id=booking.id,
            actor=changed_by,
            details={"from": current.value, "to": new_status.value, "forced": force},
        )
        self._notify_status(booking, new_status, changed_by, now)
        return booking

    def accept_request(
        self,
        booking_id: int,
        staff_id: Optional[str] = None,
        table_ids: Optional[Sequence[int]] = None,
        force: bool = False,
        restaurant_id: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> Booking:
        """
        Accept a pending booking request.

        Tables given by staff are validated; without them the booking keeps
        its tables or the best free option is picked. When no tables can be
        assigned the booking becomes acceptance_failed with the reason.

        Args:
            booking_id: Pending booking
            staff_id: Staff member accepting
            table_ids: Tables to assign
            force: Assign the given tables even if another booking holds them
            restaurant_id: Scope check for the booking
            now: Reference time

        Returns:
            The booking, confirmed or acceptance_failed

        Raises:
            StateTransitionError: If the booking is not awaiting review or
                the request has expired (it is auto-declined first)
        """
        now = now or datetime.now()
        booking = self.get_booking(booking_id, restaurant_id)
        current = to_status(booking.status)
        if current not in _ACCEPTABLE_STATUSES:
            raise StateTransitionError(
                current.value,
                DiningStatus.CONFIRMED.value,
                "Only pending requests can be accepted",
            )

        if booking.request_expires_at is not None and booking.request_expires_at < now:
            self._apply_status(booking, DiningStatus.AUTO_DECLINED, staff_id, now, reason="Request expired")
            self._commit("accept_request")
            log_booking_event("AUTO_DECLINED", booking.restaurant_id, booking.id, staff_id)
            raise StateTransitionError(
                current.value,
                DiningStatus.CONFIRMED.value,
                "This booking request has expired",
            )

        failure = None
        chosen: List[int] = []
        if table_ids:
            try:
                self._check_tables(
                    booking.restaurant_id,
                    table_ids,
                    booking.booking_time,
                    booking.turn_time_minutes,
                    booking.party_size,
                    exclude_booking_id=booking.id,
                    check_conflicts=not force,
                )
                chosen = list(table_ids)
            except (TableUnavailableError, BookingValidationError) as e:
                failure = e.user_message
        elif booking.table_ids:
            result = self.availability.check_table_availability(
                booking.restaurant_id,
                booking.table_ids,
                booking.booking_time,
                booking.turn_time_minutes,
                exclude_booking_id=booking.id,
                check_hours=False,
            )
            if result.available or force:
                chosen = booking.table_ids
            else:
                failure = result.message
        else:
            option = self.availability.get_optimal_table_assignment(
                booking.restaurant_id,
                booking.booking_time,
                booking.party_size,
                booking.turn_time_minutes,
                exclude_booking_id=booking.id,
            )
            if option is None:
                failure = f"No suitable tables available for {booking.party_size} guests at this time"
            else:
                chosen = option.table_ids

        if failure is not None:
            if current != DiningStatus.ACCEPTANCE_FAILED:
                self._apply_status(
                    booking,
                    DiningStatus.ACCEPTANCE_FAILED,
                    staff_id,
                    now,
                    reason=failure,
                    details={"requested_tables": list(table_ids or [])},
                )
                self._commit("accept_request")
            logger.warning(f"Booking {booking.id} could not be accepted: {failure}")
            log_booking_event(
                "ACCEPTANCE_FAILED", booking.restaurant_id, booking.id, staff_id, {"reason": failure}
            )
            return booking

        self._assign_tables(booking, chosen)
        self._apply_status(
            booking,
            DiningStatus.CONFIRMED,
            staff_id,
            now,
            reason="Request accepted",
            details={"tables": chosen, "forced": force} if force else {"tables": chosen},
        )
        self._commit("accept_request")

        log_booking_event(
            "ACCEPTED", booking.restaurant_id, booking.id, staff_id, {"tables": chosen}
        )
        return booking

    def decline_request(
        self,
        booking_id: int,
        staff_id: Optional[str] = None,
        reason: Optional[str] = None,
        restaurant_id: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> Booking:
        """
        Decline a pending booking request.

        Raises:
            StateTransitionError: If the booking is not awaiting review
        """
        now = now or datetime.now()
        booking = self.get_booking(booking_id, restaurant_id)
        current = to_status(booking.status)
        if current not in _ACCEPTABLE_STATUSES:
            raise StateTransitionError(
                current.value,
                DiningStatus.DECLINED_BY_RESTAURANT.value,
                "Only pending requests can be declined",
            )

        booking.decline_reason = reason
        self._apply_status(booking, DiningStatus.DECLINED_BY_RESTAURANT, staff_id, now, reason=reason)
        self._commit("decline_request")
        log_booking_event("DECLINED", booking.restaurant_id, booking.id, staff_id, {"reason": reason})
        return booking

    def check_in(
        self,
        booking_id: int,
        staff_id: Optional[str] = None,
        table_ids: Optional[Sequence[int]] = None,
        restaurant_id: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> Booking:
        """
        Mark a confirmed booking's guests as arrived.

        Tables given here replace the current assignment. A booking without
        tables gets the best free option when one exists.
        """
        now = now or datetime.now()
        booking = self.get_booking(booking_id, restaurant_id)
        self._require_transition(booking, DiningStatus.ARRIVED)
        if table_ids:
            self._check_tables(
                booking.restaurant_id,
                table_ids,
                booking.booking_time,
                booking.turn_time_minutes,
                booking.party_size,
                exclude_booking_id=booking.id,
            )
            self._assign_tables(booking, table_ids)
        elif not booking.table_ids:
            option = self.availability.get_optimal_table_assignment(
                booking.restaurant_id,
                booking.booking_time,
                booking.party_size,
                booking.turn_time_minutes,
                exclude_booking_id=booking.id,
            )
            if option is not None:
                self._assign_tables(booking, option.table_ids)
            else:
                logger.warning(f"Booking {booking.id} checked in without a table")

        return self.update_status(
            booking.id,
            DiningStatus.ARRIVED,
            changed_by=staff_id,
            reason="Guest checked in",
            metadata={"tables": booking.table_ids},
            now=now,
        )

    def seat(
        self,
        booking_id: int,
        staff_id: Optional[str] = None,
        table_ids: Optional[Sequence[int]] = None,
        restaurant_id: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> Booking:
        """
        Seat an arrived party.

        Raises:
            BookingValidationError: If the booking still has no table
        """
        now = now or datetime.now()
        booking = self.get_booking(booking_id, restaurant_id)
        self._require_transition(booking, DiningStatus.SEATED)
        if table_ids:
            self._check_tables(
                booking.restaurant_id,
                table_ids,
                booking.booking_time,
                booking.turn_time_minutes,
                booking.party_size,
                exclude_booking_id=booking.id,
            )
            self._assign_tables(booking, table_ids)

        if not booking.table_ids:
            raise BookingValidationError(
                f"Booking {booking.id} has no table assigned",
                user_message="Assign a table before seating the guest",
                field="table_ids",
            )

        return self.update_status(
            booking.id,
            DiningStatus.SEATED,
            changed_by=staff_id,
            reason="Guest seated",
            metadata={"tables": booking.table_ids},
            now=now,
        )

    def cancel_booking(
        self,
        booking_id: int,
        staff_id: Optional[str] = None,
        reason: Optional[str] = None,
        by_user: bool = False,
        restaurant_id: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> Booking:
        """
        Cancel a booking on behalf of the restaurant or the guest.

        Raises:
            StateTransitionError: If the booking is completed, a no-show or
                already cancelled
        """
        now = now or datetime.now()
        booking = self.get_booking(booking_id, restaurant_id)
        current = to_status(booking.status)
        target = DiningStatus.CANCELLED_BY_USER if by_user else DiningStatus.CANCELLED_BY_RESTAURANT

        if current in (DiningStatus.COMPLETED, DiningStatus.NO_SHOW):
            raise StateTransitionError(
                current.value,
                target.value,
                "Completed or no-show bookings cannot be cancelled",
            )
        if current in TERMINAL_STATUSES:
            raise StateTransitionError(current.value, target.value, "Booking is already cancelled")

        booking.cancellation_reason = reason
        self._apply_status(booking, target, staff_id, now, reason=reason)
        self._commit("cancel_booking")

        log_booking_event(
            "CANCELLED",
            booking.restaurant_id,
            booking.id,
            staff_id,
            {"reason": reason, "by_user": by_user},
        )
        self._notify_status(booking, target, staff_id, now)
        return booking

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def _require_open_booking(self, booking: Booking) -> None:
        if to_status(booking.status) in TERMINAL_STATUSES:
            raise StateTransitionError(
                booking.status,
                booking.status,
                "Tables cannot be changed on a finished booking",
            )

    def assign_tables(
        self,
        booking_id: int,
        table_ids: Sequence[int],
        staff_id: Optional[str] = None,
        restaurant_id: Optional[int] = None
    ) -> Booking:
        """
        Set the tables of a booking after checking they are free.

        Raises:
            TableUnavailableError: If another booking holds a table
            CapacityExceededError: If the tables cannot seat the party
        """
        booking = self.get_booking(booking_id, restaurant_id)
        self._require_open_booking(booking)
        self._check_tables(
            booking.restaurant_id,
            table_ids,
            booking.booking_time,
            booking.turn_time_minutes,
            booking.party_size,
            exclude_booking_id=booking.id,
        )
        self._assign_tables(booking, table_ids)
        self._commit("assign_tables")
        log_booking_event(
            "TABLES_ASSIGNED", booking.restaurant_id, booking.id, staff_id, {"tables": list(table_ids)}
        )
        return booking

    def switch_tables(
        self,
        booking_id: int,
        table_ids: Sequence[int],
        staff_id: Optional[str] = None,
        restaurant_id: Optional[int] = None
    ) -> Booking:
        """
        Move a booking to other tables, recording the move in its history.
        """
        booking = self.get_booking(booking_id, restaurant_id)
        self._require_open_booking(booking)
        previous = booking.table_ids
        self._check_tables(
            booking.restaurant_id,
            table_ids,
            booking.booking_time,
            booking.turn_time_minutes,
            booking.party_size,
            exclude_booking_id=booking.id,
        )
        self._assign_tables(booking, table_ids)

        status = to_status(booking.status)
        self._record_history(
            booking,
            status,
            status,
            staff_id,
            reason="Tables switched",
            details={"table_switch": {"from": previous, "to": sorted(table_ids)}},
        )
        self._commit("switch_tables")
        log_booking_event(
            "TABLES_SWITCHED",
            booking.restaurant_id,
            booking.id,
            staff_id,
            {"from": previous, "to": sorted(table_ids)},
        )
        return booking

    def remove_table_assignment(
        self,
        booking_id: int,
        table_id: Optional[int] = None,
        staff_id: Optional[str] = None,
        restaurant_id: Optional[int] = None
    ) -> Booking:
        """
        Unassign one table, or every table when table_id is omitted.

        Raises:
            NotFoundError: If the table is not assigned to the booking
        """
        booking = self.get_booking(booking_id, restaurant_id)
        if table_id is None:
            remaining: List[int] = []
        else:
            if table_id not in booking.table_ids:
                raise NotFoundError("BookingTable", table_id, booking_id=booking.id)
            remaining = [tid for tid in booking.table_ids if tid != table_id]

        removed = sorted(set(booking.table_ids) - set(remaining))
        self._assign_tables(booking, remaining)
        self._commit("remove_table_assignment")
        log_booking_event(
            "TABLES_REMOVED", booking.restaurant_id, booking.id, staff_id, {"tables": removed}
        )
        return booking

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def auto_decline_expired_requests(
        self,
        restaurant_id: int,
        staff_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> List[Booking]:
        """
        Decline pending requests whose review window has passed.

        Returns:
            Bookings that were auto-declined
        """
        now = now or datetime.now()
        restaurant = self._get_restaurant(restaurant_id)
        if not restaurant.auto_decline_enabled:
            return []

        expired = (
            self.session.query(Booking)
            .filter(
                Booking.restaurant_id == restaurant_id,
                Booking.status == DiningStatus.PENDING.value,
                Booking.request_expires_at.isnot(None),
                Booking.request_expires_at < now,
            )
            .all()
        )
        for booking in expired:
            booking.decline_reason = "Request expired"
            self._apply_status(booking, DiningStatus.AUTO_DECLINED, staff_id, now, reason="Request expired")
        if expired:
            self._commit("auto_decline_expired_requests")
            logger.info(f"Auto-declined {len(expired)} expired requests for restaurant {restaurant_id}")
            for booking in expired:
                log_booking_event("AUTO_DECLINED", restaurant_id, booking.id, staff_id)
        return expired

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_bookings(self, restaurant_id: int, filters: Optional[BookingFilters] = None) -> List[Booking]:
        """
        List bookings matching the filters, ordered by booking time.

        Search matches guest name, email, phone, confirmation code and the
        linked profile's name, case-insensitively.
        """
        filters = filters or BookingFilters()
        return (
            self._filtered_query(restaurant_id, filters)
            .order_by(Booking.booking_time, Booking.id)
            .offset(filters.offset)
            .limit(filters.limit)
            .all()
        )

    def _filtered_query(self, restaurant_id: int, filters: BookingFilters):
        query = (
            self.session.query(Booking)
            .options(selectinload(Booking.table_links), selectinload(Booking.user))
            .outerjoin(Profile, Booking.user_id == Profile.id)
            .filter(Booking.restaurant_id == restaurant_id)
        )

        if filters.start is not None:
            query = query.filter(Booking.booking_time >= filters.start)
        if filters.end is not None:
            query = query.filter(Booking.booking_time < filters.end)
        if filters.statuses:
            query = query.filter(Booking.status.in_([s.value for s in filters.statuses]))
        if filters.table_id is not None:
            query = query.filter(Booking.table_links.any(BookingTable.table_id == filters.table_id))
        if filters.without_tables:
            query = query.filter(~Booking.table_links.any())
        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            query = query.filter(or_(
                Booking.guest_name.ilike(pattern),
                Booking.guest_email.ilike(pattern),
                Booking.guest_phone.ilike(pattern),
                Booking.confirmation_code.ilike(pattern),
                Profile.full_name.ilike(pattern),
            ))
        return query

    def get_booking_stats(
        self,
        restaurant_id: int,
        day: Optional[date] = None,
        now: Optional[datetime] = None
    ) -> BookingStats:
        """
        Counters for one day's bookings.

        Guests and average party size leave out cancelled and declined
        bookings. A booking needs attention while it awaits review or still
        holds no table.
        """
        now = now or datetime.now()
        day = day or now.date()
        start = datetime.combine(day, datetime.min.time())
        bookings = self._filtered_query(
            restaurant_id, BookingFilters(start=start, end=start + timedelta(days=1))
        ).all()

        stats = BookingStats(all=len(bookings))
        guests = []
        attention = 0
        for booking in bookings:
            status = to_status(booking.status)
            if status == DiningStatus.PENDING:
                stats.pending += 1
            elif status == DiningStatus.CONFIRMED:
                stats.confirmed += 1
            elif status == DiningStatus.COMPLETED:
                stats.completed += 1
            elif status == DiningStatus.NO_SHOW:
                stats.no_show += 1
            elif status in CANCELLED_STATUSES:
                stats.cancelled += 1

            holding = status in TABLE_HOLDING_STATUSES
            if holding and not booking.table_ids:
                stats.without_tables += 1
            if status in (DiningStatus.PENDING, DiningStatus.CONFIRMED) and booking.booking_time >= now:
                stats.upcoming += 1
            if status not in CANCELLED_STATUSES:
                guests.append(booking.party_size)
            if status in _ACCEPTABLE_STATUSES or (holding and not booking.table_ids):
                attention += 1

        stats.total_guests = sum(guests)
        stats.avg_party_size = round(sum(guests) / len(guests), 1) if guests else 0.0
        stats.needing_attention = attention
        return stats
