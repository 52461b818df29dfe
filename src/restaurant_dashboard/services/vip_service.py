"""
VIPService - VIP grants and extended booking windows.
"""
from datetime import datetime, timedelta
from typing import List, Optional

from loguru import logger
from sqlalchemy.orm import Session

from ..error_handling.exceptions import BookingValidationError, DuplicateError, NotFoundError
from ..models.database import Profile, Restaurant, RestaurantVIPUser
from ..models.schemas import VIPCreate, VIPUpdate

DEFAULT_VIP_DAYS = 365


class VIPService:
    """
    Service managing VIP grants of a restaurant.
    """

    def __init__(self, session: Session):
        """
        Initialize the VIP service with a database session.

        Args:
            session: SQLAlchemy database session
        """
        self.session = session

    def get_active_vip(
        self,
        restaurant_id: int,
        user_id: str,
        now: Optional[datetime] = None
    ) -> Optional[RestaurantVIPUser]:
        """Active grant for a user, or None."""
        now = now or datetime.now()
        return (
            self.session.query(RestaurantVIPUser)
            .filter(
                RestaurantVIPUser.restaurant_id == restaurant_id,
                RestaurantVIPUser.user_id == user_id,
                RestaurantVIPUser.valid_until >= now,
            )
            .order_by(RestaurantVIPUser.valid_until.desc())
            .first()
        )

    def list_active_vips(self, restaurant_id: int, now: Optional[datetime] = None) -> List[RestaurantVIPUser]:
        now = now or datetime.now()
        return (
            self.session.query(RestaurantVIPUser)
            .filter(
                RestaurantVIPUser.restaurant_id == restaurant_id,
                RestaurantVIPUser.valid_until >= now,
            )
            .order_by(RestaurantVIPUser.created_at.desc())
            .all()
        )

    def grant_vip(
        self,
        restaurant_id: int,
        data: VIPCreate,
        created_by: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> RestaurantVIPUser:
        """
        Grant VIP status to a user.

        Raises:
            NotFoundError: If the restaurant or profile does not exist
            DuplicateError: If the user already has an active grant
            BookingValidationError: If valid_until is in the past
        """
        now = now or datetime.now()
        if self.session.get(Restaurant, restaurant_id) is None:
            raise NotFoundError("Restaurant", restaurant_id)
        if self.session.get(Profile, data.user_id) is None:
            raise NotFoundError("Profile", data.user_id)
        if self.get_active_vip(restaurant_id, data.user_id, now) is not None:
            raise DuplicateError("RestaurantVIPUser", "User is already a VIP", user_id=data.user_id)

        valid_until = data.valid_until or now + timedelta(days=DEFAULT_VIP_DAYS)
        if valid_until < now:
            raise BookingValidationError(
                f"valid_until {valid_until} is in the past",
                user_message="VIP expiry must be in the future",
                field="valid_until",
                value=valid_until.isoformat(),
            )

        vip = RestaurantVIPUser(
            restaurant_id=restaurant_id,
            user_id=data.user_id,
            extended_booking_days=data.extended_booking_days,
            priority_booking=data.priority_booking,
            valid_until=valid_until,
            notes=data.notes,
            created_by=created_by,
        )
        self.session.add(vip)
        self.session.commit()
        self.session.refresh(vip)

        logger.info(
            f"VIP granted: restaurant={restaurant_id} user={data.user_id} "
            f"days={data.extended_booking_days} until={valid_until:%Y-%m-%d}"
        )
        return vip

    def update_vip(self, restaurant_id: int, vip_id: int, data: VIPUpdate) -> RestaurantVIPUser:
        vip = self._get(restaurant_id, vip_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(vip, field, value)
        self.session.commit()
        self.session.refresh(vip)
        logger.info(f"VIP {vip_id} updated for restaurant {restaurant_id}")
        return vip

    def revoke_vip(self, restaurant_id: int, vip_id: int, now: Optional[datetime] = None) -> RestaurantVIPUser:
        """
        End a VIP grant immediately; the row is kept for history.
        """
        vip = self._get(restaurant_id, vip_id)
        vip.valid_until = now or datetime.now()
        self.session.commit()
        self.session.refresh(vip)
        logger.info(f"VIP revoked: restaurant={restaurant_id} user={vip.user_id}")
        return vip

    def get_booking_window_days(
        self,
        restaurant: Restaurant,
        user_id: Optional[str],
        now: Optional[datetime] = None
    ) -> int:
        """
        How many days ahead a user may book.

        Active VIPs get the larger of the restaurant window and their
        extended window.
        """
        window = restaurant.booking_window_days
        if not user_id:
            return window
        vip = self.get_active_vip(restaurant.id, user_id, now)
        if vip is None:
            return window
        return max(window, vip.extended_booking_days)

    def _get(self, restaurant_id: int, vip_id: int) -> RestaurantVIPUser:
        vip = (
            self.session.query(RestaurantVIPUser)
            .filter_by(id=vip_id, restaurant_id=restaurant_id)
            .first()
        )
        if vip is None:
            raise NotFoundError("RestaurantVIPUser", vip_id)
        return vip
