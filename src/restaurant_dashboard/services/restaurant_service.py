"""
RestaurantService - restaurant settings and the table floor plan.
"""
from typing import List, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..error_handling.exceptions import BookingValidationError, DuplicateError, NotFoundError
from ..models.database import Profile, Restaurant, RestaurantStaff, RestaurantTable
from ..models.enums import StaffRole
from ..models.schemas import RestaurantCreate, RestaurantUpdate, TableCreate, TableUpdate
from .open_hours import clear_cache
from .staff_service import get_role_permissions


class RestaurantService:
    """
    Service managing restaurants and their tables.
    """

    def __init__(self, session: Session):
        """
        Initialize the restaurant service with a database session.

        Args:
            session: SQLAlchemy database session
        """
        self.session = session

    def get_restaurant(self, restaurant_id: int) -> Restaurant:
        restaurant = self.session.get(Restaurant, restaurant_id)
        if restaurant is None:
            raise NotFoundError("Restaurant", restaurant_id)
        return restaurant

    def create_restaurant(self, data: RestaurantCreate, owner_id: Optional[str] = None) -> Restaurant:
        """
        Create a restaurant; the creator becomes its owner.

        Raises:
            NotFoundError: If owner_id names an unknown profile
        """
        if owner_id and self.session.get(Profile, owner_id) is None:
            raise NotFoundError("Profile", owner_id)

        values = data.model_dump()
        values["tier"] = data.tier.value
        values["booking_policy"] = data.booking_policy.value
        restaurant = Restaurant(**values)
        self.session.add(restaurant)
        self.session.flush()

        if owner_id:
            self.session.add(RestaurantStaff(
                restaurant_id=restaurant.id,
                user_id=owner_id,
                role=StaffRole.OWNER.value,
                permissions=get_role_permissions(StaffRole.OWNER),
                created_by=owner_id,
            ))

        self.session.commit()
        self.session.refresh(restaurant)
        logger.info(f"Restaurant created: id={restaurant.id} name='{restaurant.name}' owner={owner_id}")
        return restaurant

    def update_restaurant(self, restaurant_id: int, data: RestaurantUpdate) -> Restaurant:
        """
        Change restaurant settings.

        Raises:
            BookingValidationError: If the party size range becomes invalid
        """
        restaurant = self.get_restaurant(restaurant_id)
        for field, value in data.model_dump(exclude_none=True).items():
            setattr(restaurant, field, value.value if hasattr(value, "value") else value)

        if restaurant.max_party_size < restaurant.min_party_size:
            self.session.rollback()
            raise BookingValidationError(
                "max_party_size below min_party_size",
                user_message="Maximum party size cannot be below the minimum",
                field="max_party_size",
            )

        self.session.commit()
        self.session.refresh(restaurant)
        clear_cache(restaurant_id)
        logger.info(f"Restaurant {restaurant_id} settings updated")
        return restaurant

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def list_tables(self, restaurant_id: int, include_inactive: bool = False) -> List[RestaurantTable]:
        query = self.session.query(RestaurantTable).filter(RestaurantTable.restaurant_id == restaurant_id)
        if not include_inactive:
            query = query.filter(RestaurantTable.is_active.is_(True))
        return query.order_by(RestaurantTable.table_number).all()

    def get_table(self, restaurant_id: int, table_id: int) -> RestaurantTable:
        table = (
            self.session.query(RestaurantTable)
            .filter_by(id=table_id, restaurant_id=restaurant_id)
            .first()
        )
        if table is None:
            raise NotFoundError("RestaurantTable", table_id)
        return table

    def add_table(self, restaurant_id: int, data: TableCreate) -> RestaurantTable:
        """
        Add a table to the floor plan.

        Raises:
            DuplicateError: If the table number is already used
        """
        self.get_restaurant(restaurant_id)
        table = RestaurantTable(restaurant_id=restaurant_id, **data.model_dump())
        self.session.add(table)
        self._commit_unique(data.table_number)
        self.session.refresh(table)
        logger.info(
            f"Table {table.table_number} added to restaurant {restaurant_id} "
            f"(capacity {table.capacity})"
        )
        return table

    def update_table(self, restaurant_id: int, table_id: int, data: TableUpdate) -> RestaurantTable:
        table = self.get_table(restaurant_id, table_id)
        for field, value in data.model_dump(exclude_none=True).items():
            setattr(table, field, value)

        if table.min_capacity > table.capacity:
            self.session.rollback()
            raise BookingValidationError(
                "min_capacity exceeds capacity",
                user_message="Minimum capacity cannot exceed the table capacity",
                field="min_capacity",
            )

        self._commit_unique(table.table_number)
        self.session.refresh(table)
        return table

    def deactivate_table(self, restaurant_id: int, table_id: int) -> RestaurantTable:
        """Take a table off the floor plan; past assignments are kept."""
        table = self.get_table(restaurant_id, table_id)
        table.is_active = False
        self.session.commit()
        logger.info(f"Table {table.table_number} deactivated for restaurant {restaurant_id}")
        return table

    def _commit_unique(self, table_number: str) -> None:
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise DuplicateError(
                "RestaurantTable",
                f"Table {table_number} already exists",
                table_number=table_number,
            ) from e
