"""
Request dependencies shared by the API routes.

Authentication is handled upstream; the acting user's id arrives in the
X-User-Id header and is checked against the restaurant's staff permissions.
"""
from typing import Callable, Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from ..error_handling.exceptions import PermissionDeniedError
from ..models.database import get_db
from ..services.staff_service import StaffService


def get_current_user_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> str:
    """Acting user id from the X-User-Id header."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    return x_user_id.strip()


def require_permission(permission: str) -> Callable[..., str]:
    """
    Build a dependency that checks the caller holds a permission at the
    restaurant named in the path.

    Returns:
        Dependency returning the caller's user id
    """
    def dependency(
        restaurant_id: int,
        user_id: str = Depends(get_current_user_id),
        db: Session = Depends(get_db),
    ) -> str:
        StaffService(db).require_permission(restaurant_id, user_id, permission)
        return user_id

    return dependency


def require_member(
    restaurant_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> str:
    """Caller must be active staff of the restaurant, whatever their role."""
    if StaffService(db).get_membership(restaurant_id, user_id) is None:
        raise PermissionDeniedError("restaurant.member", user_id=user_id, restaurant_id=restaurant_id)
    return user_id
