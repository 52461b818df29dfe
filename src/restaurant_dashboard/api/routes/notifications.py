"""
Notification routes: the caller's inbox and alert preferences.
"""
from typing import Dict, List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...models.database import get_db
from ...models.schemas import (
    NotificationPreferencesResponse,
    NotificationPreferencesUpdate,
    NotificationResponse,
)
from ...services.notification_service import NotificationService
from ..dependencies import require_member

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=List[NotificationResponse])
def list_notifications(
    restaurant_id: int,
    unread_only: bool = False,
    user_id: str = Depends(require_member),
    db: Session = Depends(get_db),
):
    return NotificationService(db).list_notifications(restaurant_id, user_id, unread_only)


@router.post("/read-all", response_model=Dict[str, int])
def mark_all_read(
    restaurant_id: int,
    user_id: str = Depends(require_member),
    db: Session = Depends(get_db),
):
    return {"updated": NotificationService(db).mark_all_read(restaurant_id, user_id)}


@router.get("/preferences", response_model=NotificationPreferencesResponse)
def get_preferences(
    restaurant_id: int,
    user_id: str = Depends(require_member),
    db: Session = Depends(get_db),
):
    return NotificationService(db).get_preferences(restaurant_id, user_id)


@router.put("/preferences", response_model=NotificationPreferencesResponse)
def update_preferences(
    restaurant_id: int,
    data: NotificationPreferencesUpdate,
    user_id: str = Depends(require_member),
    db: Session = Depends(get_db),
):
    return NotificationService(db).update_preferences(restaurant_id, user_id, data)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    restaurant_id: int,
    notification_id: int,
    user_id: str = Depends(require_member),
    db: Session = Depends(get_db),
):
    return NotificationService(db).mark_read(user_id, notification_id)
