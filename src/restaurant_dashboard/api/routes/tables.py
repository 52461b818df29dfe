"""
Table routes: floor plan, live occupancy and availability.
"""
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...models.database import get_db
from ...models.schemas import (
    AvailabilityResult,
    TableCreate,
    TableOption,
    TableResponse,
    TableSlot,
    TableStatusInfo,
    TableUpdate,
)
from ...services.restaurant_service import RestaurantService
from ...services.table_availability import TableAvailabilityService
from ...services.table_status import TableStatusService
from ..dependencies import require_permission

router = APIRouter(prefix="/tables", tags=["tables"])


@router.get("", response_model=List[TableResponse])
def list_tables(
    restaurant_id: int,
    include_inactive: bool = False,
    user_id: str = Depends(require_permission("tables.view")),
    db: Session = Depends(get_db),
):
    return RestaurantService(db).list_tables(restaurant_id, include_inactive)


@router.post("", response_model=TableResponse, status_code=201)
def add_table(
    restaurant_id: int,
    data: TableCreate,
    user_id: str = Depends(require_permission("tables.edit")),
    db: Session = Depends(get_db),
):
    return RestaurantService(db).add_table(restaurant_id, data)


@router.get("/status", response_model=List[TableStatusInfo])
def table_statuses(
    restaurant_id: int,
    at: Optional[datetime] = None,
    user_id: str = Depends(require_permission("tables.view")),
    db: Session = Depends(get_db),
):
    """Live floor view: occupancy, current and next booking per table."""
    return list(TableStatusService(db).get_table_statuses(restaurant_id, at).values())


@router.get("/availability", response_model=List[TableOption])
def available_tables(
    restaurant_id: int,
    booking_time: datetime,
    party_size: int = Query(..., ge=1),
    turn_time_minutes: Optional[int] = Query(None, ge=15),
    user_id: str = Depends(require_permission("tables.view")),
    db: Session = Depends(get_db),
):
    return TableAvailabilityService(db).get_available_tables_for_slot(
        restaurant_id, booking_time, party_size, turn_time_minutes
    )


@router.get("/availability/check", response_model=AvailabilityResult)
def check_availability(
    restaurant_id: int,
    booking_time: datetime,
    table_ids: List[int] = Query(...),
    turn_time_minutes: Optional[int] = Query(None, ge=15),
    exclude_booking_id: Optional[int] = None,
    user_id: str = Depends(require_permission("tables.view")),
    db: Session = Depends(get_db),
):
    return TableAvailabilityService(db).check_table_availability(
        restaurant_id, table_ids, booking_time, turn_time_minutes, exclude_booking_id
    )


@router.get("/slots", response_model=List[TableSlot])
def table_slots(
    restaurant_id: int,
    day: date,
    table_ids: List[int] = Query(...),
    turn_time_minutes: Optional[int] = Query(None, ge=15),
    user_id: str = Depends(require_permission("tables.view")),
    db: Session = Depends(get_db),
):
    return TableAvailabilityService(db).get_table_time_slots(
        restaurant_id, table_ids, day, turn_time_minutes
    )


@router.patch("/{table_id}", response_model=TableResponse)
def update_table(
    restaurant_id: int,
    table_id: int,
    data: TableUpdate,
    user_id: str = Depends(require_permission("tables.edit")),
    db: Session = Depends(get_db),
):
    return RestaurantService(db).update_table(restaurant_id, table_id, data)


@router.delete("/{table_id}", response_model=TableResponse)
def deactivate_table(
    restaurant_id: int,
    table_id: int,
    user_id: str = Depends(require_permission("tables.edit")),
    db: Session = Depends(get_db),
):
    return RestaurantService(db).deactivate_table(restaurant_id, table_id)
