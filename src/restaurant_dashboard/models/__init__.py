"""
Models package - SQLAlchemy ORM models, enums and Pydantic schemas.
"""
from .enums import (
    DiningStatus,
    RestaurantTier,
    BookingPolicy,
    BookingSource,
    StaffRole,
    SummaryFrequency,
)

from .database import (
    Base,
    Restaurant,
    Profile,
    RestaurantTable,
    Booking,
    BookingTable,
    BookingStatusHistory,
    RestaurantStaff,
    MenuCategory,
    MenuItem,
    RestaurantVIPUser,
    NotificationPreference,
    Notification,
    RestaurantHours,
    RestaurantSpecialHours,
    RestaurantClosure,
    init_db,
    create_tables,
    drop_tables,
    check_connection,
    get_db_session,
    get_db,
)

__all__ = [
    # Enums
    "DiningStatus",
    "RestaurantTier",
    "BookingPolicy",
    "BookingSource",
    "StaffRole",
    "SummaryFrequency",
    # Database models
    "Base",
    "Restaurant",
    "Profile",
    "RestaurantTable",
    "Booking",
    "BookingTable",
    "BookingStatusHistory",
    "RestaurantStaff",
    "MenuCategory",
    "MenuItem",
    "RestaurantVIPUser",
    "NotificationPreference",
    "Notification",
    "RestaurantHours",
    "RestaurantSpecialHours",
    "RestaurantClosure",
    # Database utilities
    "init_db",
    "create_tables",
    "drop_tables",
    "check_connection",
    "get_db_session",
    "get_db",
]
