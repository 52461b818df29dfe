"""
FastAPI application for the restaurant dashboard.

Domain errors raised by the services are turned into JSON responses with
the status code from error_handling.http_status_for.
"""
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .. import __version__
from ..error_handling import BookingSystemError, error_response, http_status_for, log_error
from ..models.database import get_db
from ..models.schemas import RestaurantCreate, RestaurantResponse, RestaurantUpdate
from ..services.restaurant_service import RestaurantService
from .dependencies import get_current_user_id, require_member, require_permission
from .routes import analytics, bookings, hours, menu, notifications, staff, tables, vip

RESTAURANT_PREFIX = "/api/restaurants/{restaurant_id}"


async def handle_booking_system_error(request: Request, exc: BookingSystemError) -> JSONResponse:
    log_error(exc, {"path": request.url.path, "method": request.method})
    return JSONResponse(status_code=http_status_for(exc), content=error_response(exc))


def create_app() -> FastAPI:
    """
    Build the FastAPI application with every router mounted.

    Returns:
        Configured FastAPI instance
    """
    app = FastAPI(
        title="Restaurant Dashboard API",
        description="Bookings, tables, menu, staff and analytics for restaurant operations",
        version=__version__,
    )
    app.add_exception_handler(BookingSystemError, handle_booking_system_error)

    @app.get("/api/health")
    def health():
        return {"status": "healthy", "version": __version__}

    @app.post("/api/restaurants", response_model=RestaurantResponse, status_code=201)
    def create_restaurant(
        data: RestaurantCreate,
        user_id: str = Depends(get_current_user_id),
        db: Session = Depends(get_db),
    ):
        """Create a restaurant; the caller becomes its owner."""
        return RestaurantService(db).create_restaurant(data, owner_id=user_id)

    @app.get("/api/restaurants/{restaurant_id}", response_model=RestaurantResponse)
    def get_restaurant(
        restaurant_id: int,
        user_id: str = Depends(require_member),
        db: Session = Depends(get_db),
    ):
        return RestaurantService(db).get_restaurant(restaurant_id)

    @app.patch("/api/restaurants/{restaurant_id}", response_model=RestaurantResponse)
    def update_restaurant(
        restaurant_id: int,
        data: RestaurantUpdate,
        user_id: str = Depends(require_permission("restaurant.edit")),
        db: Session = Depends(get_db),
    ):
        return RestaurantService(db).update_restaurant(restaurant_id, data)

    for module in (bookings, tables, hours, menu, staff, vip, notifications, analytics):
        app.include_router(module.router, prefix=RESTAURANT_PREFIX)

    return app
