"""
Pytest configuration and shared fixtures.
"""
from datetime import datetime, time, timedelta
from typing import Generator

import pytest
from sqlalchemy.orm import Session, sessionmaker

from restaurant_dashboard.config import reset_settings
from restaurant_dashboard.models.database import (
    Base,
    Profile,
    Restaurant,
    RestaurantHours,
    RestaurantStaff,
    RestaurantTable,
    build_engine,
)
from restaurant_dashboard.models.enums import StaffRole
from restaurant_dashboard.models.schemas import BookingCreate
from restaurant_dashboard.services.booking_service import BookingService
from restaurant_dashboard.services.open_hours import clear_cache
from restaurant_dashboard.services.staff_service import get_role_permissions

# Monday morning; every test runs against this clock
NOW = datetime(2030, 6, 3, 10, 0)
# Tuesday dinner, inside the booking window and opening hours
DINNER = datetime(2030, 6, 4, 19, 0)

CHANNEL_ENV_VARS = (
    "TWILIO_ACCOUNT_SID",
    "TWILIO_AUTH_TOKEN",
    "TWILIO_PHONE_NUMBER",
    "SENDGRID_API_KEY",
)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """
    Fresh settings per test with notification channels switched off.
    """
    for name in CHANNEL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture(autouse=True)
def empty_hours_cache():
    """Opening-hours answers are cached per process; start every test clean."""
    clear_cache()
    yield
    clear_cache()


@pytest.fixture(scope="function")
def db_engine():
    """
    Create an in-memory SQLite engine with all tables.
    """
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """
    Create a database session for testing.
    """
    SessionLocal = sessionmaker(bind=db_engine, autocommit=False, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def profiles(db_session: Session):
    """
    Owner, staff member and a registered guest.
    """
    rows = {
        "owner": Profile(
            id="owner-1",
            full_name="Olivia Owner",
            email="owner@example.com",
            phone_number="+14155550100",
        ),
        "staff": Profile(
            id="staff-1",
            full_name="Sam Staff",
            email="staff@example.com",
            phone_number="+14155550101",
        ),
        "guest": Profile(
            id="guest-1",
            full_name="Grace Guest",
            email="grace@example.com",
            phone_number="+14155550102",
        ),
    }
    db_session.add_all(rows.values())
    db_session.commit()
    return rows


@pytest.fixture(scope="function")
def restaurant(db_session: Session, profiles) -> Restaurant:
    """
    Pro-tier restaurant open 11:00-23:00 every day, with an owner and a
    staff member.
    """
    restaurant = Restaurant(
        name="Bella Vista",
        tier="pro",
        booking_policy="instant",
        booking_window_days=30,
        table_turnover_minutes=120,
        request_expiry_hours=24,
        auto_decline_enabled=True,
        min_party_size=1,
        max_party_size=12,
    )
    db_session.add(restaurant)
    db_session.flush()

    for day in range(7):
        db_session.add(RestaurantHours(
            restaurant_id=restaurant.id,
            day_of_week=day,
            is_open=True,
            open_time=time(11, 0),
            close_time=time(23, 0),
        ))

    db_session.add_all([
        RestaurantStaff(
            restaurant_id=restaurant.id,
            user_id="owner-1",
            role=StaffRole.OWNER.value,
            permissions=get_role_permissions(StaffRole.OWNER),
        ),
        RestaurantStaff(
            restaurant_id=restaurant.id,
            user_id="staff-1",
            role=StaffRole.STAFF.value,
            permissions=get_role_permissions(StaffRole.STAFF),
        ),
    ])
    db_session.commit()
    db_session.refresh(restaurant)
    return restaurant


@pytest.fixture(scope="function")
def tables(db_session: Session, restaurant: Restaurant):
    """
    Floor plan: a two-top, two four-tops and a six-top.

    Returned as a dict keyed by table number.
    """
    rows = [
        RestaurantTable(restaurant_id=restaurant.id, table_number="T1", capacity=2, min_capacity=1),
        RestaurantTable(restaurant_id=restaurant.id, table_number="T2", capacity=4, min_capacity=2),
        RestaurantTable(restaurant_id=restaurant.id, table_number="T3", capacity=4, min_capacity=2),
        RestaurantTable(
            restaurant_id=restaurant.id,
            table_number="T4",
            capacity=6,
            min_capacity=3,
            is_combinable=False,
        ),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return {t.table_number: t for t in rows}


@pytest.fixture(scope="function")
def booking_service(db_session: Session, restaurant: Restaurant) -> BookingService:
    """
    Create a BookingService instance for testing.
    """
    return BookingService(db_session)


@pytest.fixture(scope="function")
def make_booking(booking_service: BookingService, restaurant: Restaurant):
    """
    Factory creating committed bookings; keyword arguments override the
    BookingCreate defaults (party of 2 at DINNER).
    """
    def factory(now: datetime = NOW, created_by: str = "owner-1", **overrides):
        values = {
            "booking_time": DINNER,
            "party_size": 2,
            "guest_name": "Jane Doe",
            "guest_phone": "+14155550123",
            "guest_email": "jane.doe@example.com",
        }
        values.update(overrides)
        return booking_service.create_booking(
            restaurant.id,
            BookingCreate(**values),
            created_by=created_by,
            now=now,
        )

    return factory


def at(base: datetime, minutes: int) -> datetime:
    """Shift a datetime by a number of minutes."""
    return base + timedelta(minutes=minutes)
