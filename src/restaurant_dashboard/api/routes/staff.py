"""
Staff routes: memberships, roles and the permission catalogue.
"""
from typing import Dict, List

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ...models.database import get_db
from ...models.schemas import StaffCreate, StaffResponse, StaffUpdate
from ...services.staff_service import PERMISSIONS, StaffService
from ..dependencies import require_permission

router = APIRouter(prefix="/staff", tags=["staff"])


@router.get("", response_model=List[StaffResponse])
def list_staff(
    restaurant_id: int,
    include_inactive: bool = False,
    user_id: str = Depends(require_permission("staff.view")),
    db: Session = Depends(get_db),
):
    return StaffService(db).list_staff(restaurant_id, include_inactive)


@router.get("/permissions", response_model=Dict[str, List[str]])
def permission_catalogue(
    restaurant_id: int,
    user_id: str = Depends(require_permission("staff.view")),
):
    return PERMISSIONS


@router.post("", response_model=StaffResponse, status_code=201)
def add_staff(
    restaurant_id: int,
    data: StaffCreate,
    user_id: str = Depends(require_permission("staff.invite")),
    db: Session = Depends(get_db),
):
    return StaffService(db).add_staff(restaurant_id, data, created_by=user_id)


@router.patch("/{staff_id}", response_model=StaffResponse)
def update_staff(
    restaurant_id: int,
    staff_id: int,
    data: StaffUpdate,
    user_id: str = Depends(require_permission("staff.edit")),
    db: Session = Depends(get_db),
):
    return StaffService(db).update_staff(restaurant_id, staff_id, data, updated_by=user_id)


@router.delete("/{staff_id}", status_code=204)
def remove_staff(
    restaurant_id: int,
    staff_id: int,
    user_id: str = Depends(require_permission("staff.remove")),
    db: Session = Depends(get_db),
):
    StaffService(db).remove_staff(restaurant_id, staff_id, removed_by=user_id)
    return Response(status_code=204)
