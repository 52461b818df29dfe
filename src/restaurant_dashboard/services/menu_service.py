"""
MenuService - categories and items of a restaurant's menu.
"""
from typing import List, Optional, Sequence

from loguru import logger
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..error_handling.exceptions import BookingValidationError, DuplicateError, NotFoundError
from ..models.database import MenuCategory, MenuItem, Restaurant
from ..models.schemas import (
    MenuCategoryCreate,
    MenuCategoryUpdate,
    MenuItemCreate,
    MenuItemUpdate,
)


class MenuService:
    """
    Service managing menu categories and items.
    """

    def __init__(self, session: Session):
        """
        Initialize the menu service with a database session.

        Args:
            session: SQLAlchemy database session
        """
        self.session = session

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def list_categories(self, restaurant_id: int, active_only: bool = False) -> List[MenuCategory]:
        query = self.session.query(MenuCategory).filter(MenuCategory.restaurant_id == restaurant_id)
        if active_only:
            query = query.filter(MenuCategory.is_active.is_(True))
        return query.order_by(MenuCategory.display_order, MenuCategory.name).all()

    def get_category(self, restaurant_id: int, category_id: int) -> MenuCategory:
        category = (
            self.session.query(MenuCategory)
            .filter_by(id=category_id, restaurant_id=restaurant_id)
            .first()
        )
        if category is None:
            raise NotFoundError("MenuCategory", category_id)
        return category

    def create_category(self, restaurant_id: int, data: MenuCategoryCreate) -> MenuCategory:
        """
        Add a category to the menu.

        Raises:
            NotFoundError: If the restaurant does not exist
            DuplicateError: If a category with the same name exists
        """
        if self.session.get(Restaurant, restaurant_id) is None:
            raise NotFoundError("Restaurant", restaurant_id)

        category = MenuCategory(restaurant_id=restaurant_id, **data.model_dump())
        self.session.add(category)
        self._commit_unique("MenuCategory", f"Category '{data.name}' already exists")
        self.session.refresh(category)
        logger.info(f"Menu category created: restaurant={restaurant_id} name='{category.name}'")
        return category

    def update_category(
        self,
        restaurant_id: int,
        category_id: int,
        data: MenuCategoryUpdate
    ) -> MenuCategory:
        category = self.get_category(restaurant_id, category_id)
        for field, value in data.model_dump(exclude_none=True).items():
            setattr(category, field, value.strip() if field == "name" else value)
        self._commit_unique("MenuCategory", "A category with this name already exists")
        self.session.refresh(category)
        return category

    def delete_category(self, restaurant_id: int, category_id: int, cascade: bool = False) -> None:
        """
        Delete a category.

        Args:
            restaurant_id: Restaurant owning the category
            category_id: Category to delete
            cascade: Also delete the category's items

        Raises:
            BookingValidationError: If the category still holds items and
                cascade is False
        """
        category = self.get_category(restaurant_id, category_id)
        items = list(category.items)
        if items and not cascade:
            raise BookingValidationError(
                f"Category {category_id} still has {len(items)} items",
                user_message="Move or delete the items in this category first",
                field="category_id",
                value=category_id,
                item_count=len(items),
            )

        for item in items:
            self.session.delete(item)
        self.session.delete(category)
        self.session.commit()
        logger.info(
            f"Menu category {category_id} deleted for restaurant {restaurant_id} "
            f"({len(items)} items removed)"
        )

    def reorder_categories(self, restaurant_id: int, category_ids: Sequence[int]) -> List[MenuCategory]:
        """
        Set display_order to each category's position in category_ids.

        Raises:
            BookingValidationError: If the ids are not exactly the
                restaurant's categories
        """
        categories = {c.id: c for c in self.list_categories(restaurant_id)}
        if sorted(category_ids) != sorted(categories):
            raise BookingValidationError(
                "Reorder list does not match the restaurant's categories",
                user_message="Every category must appear exactly once",
                field="category_ids",
                value=list(category_ids),
            )

        for position, category_id in enumerate(category_ids):
            categories[category_id].display_order = position
        self.session.commit()
        return self.list_categories(restaurant_id)

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def list_items(
        self,
        restaurant_id: int,
        category_id: Optional[int] = None,
        search: Optional[str] = None,
        available_only: bool = False
    ) -> List[MenuItem]:
        """
        List menu items, optionally filtered.

        Search matches name and description case-insensitively.
        """
        query = self.session.query(MenuItem).filter(MenuItem.restaurant_id == restaurant_id)
        if category_id is not None:
            query = query.filter(MenuItem.category_id == category_id)
        if available_only:
            query = query.filter(MenuItem.is_available.is_(True))
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(MenuItem.name.ilike(pattern), MenuItem.description.ilike(pattern)))
        return query.order_by(MenuItem.display_order, MenuItem.name).all()

    def get_item(self, restaurant_id: int, item_id: int) -> MenuItem:
        item = (
            self.session.query(MenuItem)
            .filter_by(id=item_id, restaurant_id=restaurant_id)
            .first()
        )
        if item is None:
            raise NotFoundError("MenuItem", item_id)
        return item

    def create_item(self, restaurant_id: int, data: MenuItemCreate) -> MenuItem:
        """
        Add an item to the menu.

        Raises:
            NotFoundError: If the restaurant or category does not exist
        """
        if self.session.get(Restaurant, restaurant_id) is None:
            raise NotFoundError("Restaurant", restaurant_id)
        if data.category_id is not None:
            self.get_category(restaurant_id, data.category_id)

        item = MenuItem(restaurant_id=restaurant_id, **data.model_dump())
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        logger.info(f"Menu item created: restaurant={restaurant_id} name='{item.name}' price={item.price}")
        return item

    def update_item(self, restaurant_id: int, item_id: int, data: MenuItemUpdate) -> MenuItem:
        item = self.get_item(restaurant_id, item_id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("category_id") is not None:
            self.get_category(restaurant_id, changes["category_id"])
        for field, value in changes.items():
            setattr(item, field, value)
        self.session.commit()
        self.session.refresh(item)
        return item

    def toggle_availability(self, restaurant_id: int, item_id: int) -> MenuItem:
        """Flip an item between available and sold out."""
        item = self.get_item(restaurant_id, item_id)
        item.is_available = not item.is_available
        self.session.commit()
        self.session.refresh(item)
        logger.info(f"Menu item {item_id} available={item.is_available}")
        return item

    def delete_item(self, restaurant_id: int, item_id: int) -> None:
        item = self.get_item(restaurant_id, item_id)
        self.session.delete(item)
        self.session.commit()
        logger.info(f"Menu item {item_id} deleted for restaurant {restaurant_id}")

    def _commit_unique(self, entity: str, message: str) -> None:
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise DuplicateError(entity, message) from e
