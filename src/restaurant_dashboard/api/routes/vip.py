"""
VIP routes: grants giving guests an extended booking window.
"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...models.database import get_db
from ...models.schemas import VIPCreate, VIPResponse, VIPUpdate
from ...services.vip_service import VIPService
from ..dependencies import require_permission

router = APIRouter(prefix="/vips", tags=["vip"])


@router.get("", response_model=List[VIPResponse])
def list_vips(
    restaurant_id: int,
    user_id: str = Depends(require_permission("vip.view")),
    db: Session = Depends(get_db),
):
    return VIPService(db).list_active_vips(restaurant_id)


@router.post("", response_model=VIPResponse, status_code=201)
def grant_vip(
    restaurant_id: int,
    data: VIPCreate,
    user_id: str = Depends(require_permission("vip.manage")),
    db: Session = Depends(get_db),
):
    return VIPService(db).grant_vip(restaurant_id, data, created_by=user_id)


@router.patch("/{vip_id}", response_model=VIPResponse)
def update_vip(
    restaurant_id: int,
    vip_id: int,
    data: VIPUpdate,
    user_id: str = Depends(require_permission("vip.manage")),
    db: Session = Depends(get_db),
):
    return VIPService(db).update_vip(restaurant_id, vip_id, data)


@router.delete("/{vip_id}", response_model=VIPResponse)
def revoke_vip(
    restaurant_id: int,
    vip_id: int,
    user_id: str = Depends(require_permission("vip.manage")),
    db: Session = Depends(get_db),
):
    """End a grant now; the record stays for history."""
    return VIPService(db).revoke_vip(restaurant_id, vip_id)
