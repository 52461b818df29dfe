"""
StaffService - staff membership, roles and permissions.

Each membership links a profile to a restaurant with a role. A member's
permission list defaults to the role's set and can be customised; owners
always hold every permission.
"""
from typing import Dict, List, Optional, Union

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..error_handling.exceptions import (
    BookingValidationError,
    DuplicateError,
    NotFoundError,
    PermissionDeniedError,
)
from ..models.database import Profile, Restaurant, RestaurantStaff
from ..models.enums import StaffRole
from ..models.schemas import StaffCreate, StaffUpdate

PERMISSIONS: Dict[str, List[str]] = {
    "bookings": [
        "bookings.view",
        "bookings.create",
        "bookings.edit",
        "bookings.delete",
        "bookings.manage",
        "bookings.checkin",
    ],
    "customers": [
        "customers.view",
        "customers.edit",
        "customers.notes",
        "customers.tags",
        "customers.delete",
    ],
    "tables": ["tables.view", "tables.edit", "tables.assign"],
    "menu": ["menu.view", "menu.edit", "menu.delete"],
    "staff": ["staff.view", "staff.invite", "staff.edit", "staff.remove"],
    "analytics": ["analytics.view", "analytics.export"],
    "restaurant": ["restaurant.edit", "restaurant.hours", "restaurant.closures"],
    "loyalty": ["loyalty.view", "loyalty.manage"],
    "vip": ["vip.view", "vip.manage"],
}

ALL_PERMISSIONS: List[str] = [p for group in PERMISSIONS.values() for p in group]

_MANAGER_EXCLUDED = {
    "bookings.delete",
    "customers.delete",
    "menu.delete",
    "staff.remove",
    "restaurant.edit",
}

ROLE_PERMISSIONS: Dict[StaffRole, List[str]] = {
    StaffRole.OWNER: list(ALL_PERMISSIONS),
    StaffRole.MANAGER: [p for p in ALL_PERMISSIONS if p not in _MANAGER_EXCLUDED],
    StaffRole.STAFF: [
        "bookings.view",
        "bookings.create",
        "bookings.manage",
        "bookings.checkin",
        "customers.view",
        "customers.notes",
        "tables.view",
        "tables.assign",
        "menu.view",
        "vip.view",
    ],
    StaffRole.VIEWER: [
        "bookings.view",
        "customers.view",
        "tables.view",
        "menu.view",
        "analytics.view",
    ],
}


def get_role_permissions(role: Union[StaffRole, str]) -> List[str]:
    """Default permission set for a role."""
    return list(ROLE_PERMISSIONS[StaffRole(role)])


def validate_permissions(permissions: List[str]) -> List[str]:
    """
    Check every permission exists; returns them de-duplicated in order.

    Raises:
        BookingValidationError: If an unknown permission is given
    """
    unknown = [p for p in permissions if p not in ALL_PERMISSIONS]
    if unknown:
        raise BookingValidationError(
            f"Unknown permissions: {unknown}",
            user_message=f"Unknown permissions: {', '.join(unknown)}",
            field="permissions",
            value=unknown,
        )
    return list(dict.fromkeys(permissions))


class StaffService:
    """
    Service managing staff memberships of a restaurant.
    """

    def __init__(self, session: Session):
        """
        Initialize the staff service with a database session.

        Args:
            session: SQLAlchemy database session
        """
        self.session = session

    def get_membership(
        self,
        restaurant_id: int,
        user_id: str,
        active_only: bool = True
    ) -> Optional[RestaurantStaff]:
        query = self.session.query(RestaurantStaff).filter_by(
            restaurant_id=restaurant_id, user_id=user_id
        )
        if active_only:
            query = query.filter(RestaurantStaff.is_active.is_(True))
        return query.first()

    def list_staff(self, restaurant_id: int, include_inactive: bool = False) -> List[RestaurantStaff]:
        query = self.session.query(RestaurantStaff).filter(
            RestaurantStaff.restaurant_id == restaurant_id
        )
        if not include_inactive:
            query = query.filter(RestaurantStaff.is_active.is_(True))
        return query.order_by(RestaurantStaff.role, RestaurantStaff.created_at).all()

    def has_permission(self, restaurant_id: int, user_id: str, permission: str) -> bool:
        """
        Check whether a user holds a permission at a restaurant.

        Owners hold every permission regardless of their stored list.
        """
        membership = self.get_membership(restaurant_id, user_id)
        if membership is None:
            return False
        if membership.role == StaffRole.OWNER.value:
            return True
        return permission in (membership.permissions or [])

    def require_permission(self, restaurant_id: int, user_id: Optional[str], permission: str) -> RestaurantStaff:
        """
        Ensure a user may perform an action.

        Returns:
            The caller's active membership

        Raises:
            PermissionDeniedError: If the user is not active staff or lacks
                the permission
        """
        membership = self.get_membership(restaurant_id, user_id) if user_id else None
        if membership is None or not self.has_permission(restaurant_id, user_id, permission):
            logger.warning(
                f"Permission denied: user={user_id} restaurant={restaurant_id} "
                f"permission={permission}"
            )
            raise PermissionDeniedError(permission, user_id=user_id, restaurant_id=restaurant_id)
        return membership

    def add_staff(
        self,
        restaurant_id: int,
        data: StaffCreate,
        created_by: str
    ) -> RestaurantStaff:
        """
        Link a profile to a restaurant as staff.

        A previously removed member is re-activated with the new role.

        Args:
            restaurant_id: Restaurant the member joins
            data: User, role and optional permission list
            created_by: Acting user; only owners may appoint owners, and
                other members may only hand out permissions they hold

        Raises:
            NotFoundError: If the restaurant or profile does not exist
            PermissionDeniedError: If the actor may not grant the role or
                permissions
            DuplicateError: If the user is already active staff
        """
        if self.session.get(Restaurant, restaurant_id) is None:
            raise NotFoundError("Restaurant", restaurant_id)
        if self.session.get(Profile, data.user_id) is None:
            raise NotFoundError("Profile", data.user_id)

        permissions = (
            validate_permissions(data.permissions)
            if data.permissions is not None
            else get_role_permissions(data.role)
        )
        actor = self._get_actor(restaurant_id, created_by)
        self._ensure_can_grant(actor, data.role.value, permissions)

        membership = self.get_membership(restaurant_id, data.user_id, active_only=False)
        if membership is not None and membership.is_active:
            raise DuplicateError("RestaurantStaff", "User is already a staff member", user_id=data.user_id)
        if membership is not None and membership.role == StaffRole.OWNER.value and not _is_owner(actor):
            raise PermissionDeniedError("staff.owner", user_id=created_by, restaurant_id=restaurant_id)

        if membership is None:
            membership = RestaurantStaff(restaurant_id=restaurant_id, user_id=data.user_id)
            self.session.add(membership)

        membership.role = data.role.value
        membership.permissions = permissions
        membership.is_active = True
        membership.created_by = created_by

        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise DuplicateError("RestaurantStaff", "User is already a staff member", user_id=data.user_id) from e

        self.session.refresh(membership)
        logger.info(
            f"Staff added: restaurant={restaurant_id} user={data.user_id} "
            f"role={data.role.value} by={created_by}"
        )
        return membership

    def update_staff(
        self,
        restaurant_id: int,
        staff_id: int,
        data: StaffUpdate,
        updated_by: str
    ) -> RestaurantStaff:
        """
        Change a member's role, permissions or active flag.

        Changing the role without an explicit permission list resets the
        permissions to the new role's defaults. Every check runs before the
        membership is touched.

        Raises:
            NotFoundError: If the membership does not exist
            PermissionDeniedError: If a non-owner edits an owner, appoints an
                owner or grants permissions they lack
            BookingValidationError: If an owner would be deactivated or the
                last owner demoted
        """
        membership = self._get(restaurant_id, staff_id)
        actor = self._get_actor(restaurant_id, updated_by)
        target_is_owner = membership.role == StaffRole.OWNER.value

        if target_is_owner and not _is_owner(actor):
            raise PermissionDeniedError("staff.owner", user_id=updated_by, restaurant_id=restaurant_id)

        role = data.role.value if data.role is not None else membership.role
        if data.permissions is not None:
            permissions = validate_permissions(data.permissions)
        elif role != membership.role:
            permissions = get_role_permissions(role)
        else:
            permissions = list(membership.permissions or [])

        if role != membership.role or data.permissions is not None:
            self._ensure_can_grant(actor, role, permissions)
        if target_is_owner and data.is_active is False:
            raise _owner_row_error()
        if target_is_owner and role != StaffRole.OWNER.value:
            self._ensure_other_owner(restaurant_id, membership.id)

        membership.role = role
        membership.permissions = permissions
        if data.is_active is not None:
            membership.is_active = data.is_active

        self.session.commit()
        self.session.refresh(membership)
        logger.info(f"Staff {staff_id} updated: role={membership.role} by={updated_by}")
        return membership

    def remove_staff(self, restaurant_id: int, staff_id: int, removed_by: str) -> None:
        """
        Unlink a member from the restaurant (the row is deactivated).

        Owner memberships are never removed; an owner who wants to leave is
        demoted first.

        Raises:
            NotFoundError: If the membership does not exist
            PermissionDeniedError: If a non-owner targets an owner
            BookingValidationError: If the membership is an owner's
        """
        membership = self._get(restaurant_id, staff_id)
        actor = self._get_actor(restaurant_id, removed_by)
        if membership.role == StaffRole.OWNER.value:
            if not _is_owner(actor):
                raise PermissionDeniedError("staff.owner", user_id=removed_by, restaurant_id=restaurant_id)
            raise _owner_row_error()

        membership.is_active = False
        self.session.commit()
        logger.info(
            f"Staff removed: restaurant={restaurant_id} user={membership.user_id} by={removed_by}"
        )

    def _get(self, restaurant_id: int, staff_id: int) -> RestaurantStaff:
        membership = (
            self.session.query(RestaurantStaff)
            .filter_by(id=staff_id, restaurant_id=restaurant_id)
            .first()
        )
        if membership is None:
            raise NotFoundError("RestaurantStaff", staff_id)
        return membership

    def _get_actor(self, restaurant_id: int, user_id: Optional[str]) -> RestaurantStaff:
        actor = self.get_membership(restaurant_id, user_id) if user_id else None
        if actor is None:
            raise PermissionDeniedError("staff.manage", user_id=user_id, restaurant_id=restaurant_id)
        return actor

    def _ensure_can_grant(self, actor: RestaurantStaff, role: str, permissions: List[str]) -> None:
        """Owners grant anything; others never appoint owners or exceed their own permissions."""
        if _is_owner(actor):
            return
        if role == StaffRole.OWNER.value:
            raise PermissionDeniedError(
                "staff.owner", user_id=actor.user_id, restaurant_id=actor.restaurant_id
            )
        held = set(actor.permissions or [])
        missing = [p for p in permissions if p not in held]
        if missing:
            raise PermissionDeniedError(
                missing[0], user_id=actor.user_id, restaurant_id=actor.restaurant_id, missing=missing
            )

    def _ensure_other_owner(self, restaurant_id: int, staff_id: int) -> None:
        others = (
            self.session.query(RestaurantStaff)
            .filter(
                RestaurantStaff.restaurant_id == restaurant_id,
                RestaurantStaff.role == StaffRole.OWNER.value,
                RestaurantStaff.is_active.is_(True),
                RestaurantStaff.id != staff_id,
            )
            .count()
        )
        if others == 0:
            raise BookingValidationError(
                "Cannot demote the last owner",
                user_message="A restaurant must keep at least one owner",
                field="role",
            )


def _is_owner(membership: RestaurantStaff) -> bool:
    return membership.role == StaffRole.OWNER.value


def _owner_row_error() -> BookingValidationError:
    return BookingValidationError(
        "Owner memberships cannot be deactivated or removed",
        user_message="Change the owner's role before removing them",
        field="role",
    )
