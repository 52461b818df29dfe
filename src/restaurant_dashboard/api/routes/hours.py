"""
Opening hours routes: weekly shifts, special dates, closures and slots.
"""
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ...models.database import get_db
from ...models.schemas import (
    ClosureCreate,
    ClosureResponse,
    OpenStatus,
    RegularHoursEntry,
    RegularHoursResponse,
    SpecialHoursCreate,
    SpecialHoursResponse,
)
from ...services.open_hours import OpenHoursService
from ..dependencies import require_member, require_permission

router = APIRouter(prefix="/hours", tags=["hours"])


@router.get("", response_model=List[RegularHoursResponse])
def list_hours(
    restaurant_id: int,
    user_id: str = Depends(require_member),
    db: Session = Depends(get_db),
):
    return OpenHoursService(db).list_regular_hours(restaurant_id)


@router.put("", response_model=List[RegularHoursResponse])
def set_hours(
    restaurant_id: int,
    entries: List[RegularHoursEntry],
    user_id: str = Depends(require_permission("restaurant.hours")),
    db: Session = Depends(get_db),
):
    return OpenHoursService(db).set_regular_hours(restaurant_id, entries)


@router.post("/special", response_model=SpecialHoursResponse, status_code=201)
def add_special_hours(
    restaurant_id: int,
    data: SpecialHoursCreate,
    user_id: str = Depends(require_permission("restaurant.hours")),
    db: Session = Depends(get_db),
):
    return OpenHoursService(db).add_special_hours(restaurant_id, data)


@router.get("/closures", response_model=List[ClosureResponse])
def list_closures(
    restaurant_id: int,
    from_date: Optional[date] = None,
    user_id: str = Depends(require_member),
    db: Session = Depends(get_db),
):
    return OpenHoursService(db).list_closures(restaurant_id, from_date)


@router.post("/closures", response_model=ClosureResponse, status_code=201)
def add_closure(
    restaurant_id: int,
    data: ClosureCreate,
    user_id: str = Depends(require_permission("restaurant.closures")),
    db: Session = Depends(get_db),
):
    return OpenHoursService(db).add_closure(restaurant_id, data)


@router.delete("/closures/{closure_id}", status_code=204)
def delete_closure(
    restaurant_id: int,
    closure_id: int,
    user_id: str = Depends(require_permission("restaurant.closures")),
    db: Session = Depends(get_db),
):
    OpenHoursService(db).delete_closure(restaurant_id, closure_id)
    return Response(status_code=204)


@router.get("/open", response_model=OpenStatus)
def is_open(
    restaurant_id: int,
    at: Optional[datetime] = None,
    user_id: str = Depends(require_member),
    db: Session = Depends(get_db),
):
    return OpenHoursService(db).is_restaurant_open(restaurant_id, at or datetime.now())


@router.get("/slots", response_model=List[datetime])
def time_slots(
    restaurant_id: int,
    day: date,
    user_id: str = Depends(require_member),
    db: Session = Depends(get_db),
):
    return OpenHoursService(db).get_available_time_slots(restaurant_id, day)
