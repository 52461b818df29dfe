"""
Services package - Business rules of the restaurant dashboard.
"""
from .booking_service import BookingService
from .table_availability import TableAvailabilityService
from .table_status import TableStatusService
from .open_hours import OpenHoursService
from .menu_service import MenuService
from .staff_service import StaffService
from .vip_service import VIPService
from .notification_service import NotificationService
from .analytics_service import AnalyticsService
from .restaurant_service import RestaurantService

__all__ = [
    "BookingService",
    "TableAvailabilityService",
    "TableStatusService",
    "OpenHoursService",
    "MenuService",
    "StaffService",
    "VIPService",
    "NotificationService",
    "AnalyticsService",
    "RestaurantService",
]
