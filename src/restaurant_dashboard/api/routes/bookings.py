"""
Booking routes: list, create, status changes and table assignment.
"""
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...models.database import get_db
from ...models.enums import DiningStatus
from ...models.schemas import (
    AcceptRequest,
    BookingCreate,
    BookingFilters,
    BookingResponse,
    BookingStats,
    BookingStatusUpdate,
    CheckInRequest,
    ReasonRequest,
    StatusHistoryResponse,
    StatusTransitionInfo,
    TableAssignment,
)
from ...services.booking_service import BookingService
from ...services.dining_status import get_override_statuses
from ..dependencies import require_permission

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.get("", response_model=List[BookingResponse])
def list_bookings(
    restaurant_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    status: Optional[List[DiningStatus]] = Query(None),
    search: Optional[str] = None,
    table_id: Optional[int] = None,
    without_tables: bool = False,
    limit: int = Query(200, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(require_permission("bookings.view")),
    db: Session = Depends(get_db),
):
    filters = BookingFilters(
        start=start,
        end=end,
        statuses=status or [],
        search=search,
        table_id=table_id,
        without_tables=without_tables,
        limit=limit,
        offset=offset,
    )
    return BookingService(db).list_bookings(restaurant_id, filters)


@router.get("/stats", response_model=BookingStats)
def booking_stats(
    restaurant_id: int,
    day: Optional[date] = None,
    user_id: str = Depends(require_permission("bookings.view")),
    db: Session = Depends(get_db),
):
    return BookingService(db).get_booking_stats(restaurant_id, day)


@router.post("/auto-decline", response_model=List[BookingResponse])
def auto_decline_expired(
    restaurant_id: int,
    user_id: str = Depends(require_permission("bookings.manage")),
    db: Session = Depends(get_db),
):
    """Decline every pending request past its review window."""
    return BookingService(db).auto_decline_expired_requests(restaurant_id, user_id)


@router.post("", response_model=BookingResponse, status_code=201)
def create_booking(
    restaurant_id: int,
    data: BookingCreate,
    user_id: str = Depends(require_permission("bookings.create")),
    db: Session = Depends(get_db),
):
    return BookingService(db).create_booking(restaurant_id, data, created_by=user_id)


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    restaurant_id: int,
    booking_id: int,
    user_id: str = Depends(require_permission("bookings.view")),
    db: Session = Depends(get_db),
):
    return BookingService(db).get_booking(booking_id, restaurant_id)


@router.get("/{booking_id}/history", response_model=List[StatusHistoryResponse])
def get_status_history(
    restaurant_id: int,
    booking_id: int,
    user_id: str = Depends(require_permission("bookings.view")),
    db: Session = Depends(get_db),
):
    return BookingService(db).get_status_history(booking_id, restaurant_id)


@router.get("/{booking_id}/transitions", response_model=List[StatusTransitionInfo])
def get_transitions(
    restaurant_id: int,
    booking_id: int,
    override: bool = False,
    user_id: str = Depends(require_permission("bookings.view")),
    db: Session = Depends(get_db),
):
    """Next-status menu; override=true lists every status staff may force."""
    service = BookingService(db)
    booking = service.get_booking(booking_id, restaurant_id)
    if override:
        return get_override_statuses(booking.status)
    return service.get_transitions(booking)


@router.patch("/{booking_id}/status", response_model=BookingResponse)
def update_status(
    restaurant_id: int,
    booking_id: int,
    data: BookingStatusUpdate,
    user_id: str = Depends(require_permission("bookings.manage")),
    db: Session = Depends(get_db),
):
    return BookingService(db).update_status(
        booking_id,
        data.status,
        changed_by=user_id,
        reason=data.reason,
        metadata=data.metadata,
        force=data.force,
        restaurant_id=restaurant_id,
    )


@router.post("/{booking_id}/accept", response_model=BookingResponse)
def accept_request(
    restaurant_id: int,
    booking_id: int,
    data: AcceptRequest,
    user_id: str = Depends(require_permission("bookings.manage")),
    db: Session = Depends(get_db),
):
    return BookingService(db).accept_request(
        booking_id, user_id, data.table_ids, force=data.force, restaurant_id=restaurant_id
    )


@router.post("/{booking_id}/decline", response_model=BookingResponse)
def decline_request(
    restaurant_id: int,
    booking_id: int,
    data: ReasonRequest,
    user_id: str = Depends(require_permission("bookings.manage")),
    db: Session = Depends(get_db),
):
    return BookingService(db).decline_request(booking_id, user_id, data.reason, restaurant_id=restaurant_id)


@router.post("/{booking_id}/check-in", response_model=BookingResponse)
def check_in(
    restaurant_id: int,
    booking_id: int,
    data: CheckInRequest,
    user_id: str = Depends(require_permission("bookings.checkin")),
    db: Session = Depends(get_db),
):
    return BookingService(db).check_in(booking_id, user_id, data.table_ids, restaurant_id=restaurant_id)


@router.post("/{booking_id}/seat", response_model=BookingResponse)
def seat(
    restaurant_id: int,
    booking_id: int,
    data: CheckInRequest,
    user_id: str = Depends(require_permission("bookings.checkin")),
    db: Session = Depends(get_db),
):
    return BookingService(db).seat(booking_id, user_id, data.table_ids, restaurant_id=restaurant_id)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    restaurant_id: int,
    booking_id: int,
    data: ReasonRequest,
    by_user: bool = False,
    user_id: str = Depends(require_permission("bookings.manage")),
    db: Session = Depends(get_db),
):
    return BookingService(db).cancel_booking(
        booking_id, user_id, data.reason, by_user=by_user, restaurant_id=restaurant_id
    )


@router.put("/{booking_id}/tables", response_model=BookingResponse)
def assign_tables(
    restaurant_id: int,
    booking_id: int,
    data: TableAssignment,
    user_id: str = Depends(require_permission("tables.assign")),
    db: Session = Depends(get_db),
):
    return BookingService(db).assign_tables(booking_id, data.table_ids, user_id, restaurant_id=restaurant_id)


@router.post("/{booking_id}/tables/switch", response_model=BookingResponse)
def switch_tables(
    restaurant_id: int,
    booking_id: int,
    data: TableAssignment,
    user_id: str = Depends(require_permission("tables.assign")),
    db: Session = Depends(get_db),
):
    return BookingService(db).switch_tables(booking_id, data.table_ids, user_id, restaurant_id=restaurant_id)


@router.delete("/{booking_id}/tables/{table_id}", response_model=BookingResponse)
def remove_table(
    restaurant_id: int,
    booking_id: int,
    table_id: int,
    user_id: str = Depends(require_permission("tables.assign")),
    db: Session = Depends(get_db),
):
    return BookingService(db).remove_table_assignment(
        booking_id, table_id, user_id, restaurant_id=restaurant_id
    )
