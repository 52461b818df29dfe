"""
Enumerations shared by the ORM models, schemas and services.
"""

from enum import Enum


class DiningStatus(str, Enum):
    """
    Lifecycle stage of a single booking.

    The canonical flow is:
    pending -> confirmed -> arrived -> seated -> ordered -> appetizers
    -> main_course -> dessert -> payment -> completed

    A booking can leave the flow early through a cancellation, decline,
    no-show or an expired request.
    """

    PENDING = "pending"
    """Request waiting for staff approval."""

    CONFIRMED = "confirmed"
    """Accepted booking, guests not yet at the restaurant."""

    ARRIVED = "arrived"
    """Guests checked in at the host stand."""

    SEATED = "seated"
    ORDERED = "ordered"
    APPETIZERS = "appetizers"
    MAIN_COURSE = "main_course"
    DESSERT = "dessert"

    PAYMENT = "payment"
    """Bill requested."""

    COMPLETED = "completed"
    NO_SHOW = "no_show"
    CANCELLED_BY_USER = "cancelled_by_user"
    CANCELLED_BY_RESTAURANT = "cancelled_by_restaurant"
    DECLINED_BY_RESTAURANT = "declined_by_restaurant"

    AUTO_DECLINED = "auto_declined"
    """Request expired before staff answered it."""

    ACCEPTANCE_FAILED = "acceptance_failed"
    """Staff accepted the request but tables could not be assigned."""

    def __str__(self) -> str:
        """Return the string value of the status."""
        return self.value

    @classmethod
    def get_ordered_states(cls) -> list['DiningStatus']:
        """
        Get the canonical progression from request to completion.

        Returns:
            List of DiningStatus in service order
        """
        return [
            cls.PENDING,
            cls.CONFIRMED,
            cls.ARRIVED,
            cls.SEATED,
            cls.ORDERED,
            cls.APPETIZERS,
            cls.MAIN_COURSE,
            cls.DESSERT,
            cls.PAYMENT,
            cls.COMPLETED,
        ]

    @classmethod
    def values(cls) -> list[str]:
        """All status strings, in declaration order."""
        return [member.value for member in cls]


class RestaurantTier(str, Enum):
    """Subscription tier; basic restaurants only approve or decline requests."""

    BASIC = "basic"
    PRO = "pro"

    def __str__(self) -> str:
        return self.value


class BookingPolicy(str, Enum):
    """Whether new bookings are confirmed instantly or wait for approval."""

    INSTANT = "instant"
    REQUEST = "request"

    def __str__(self) -> str:
        return self.value


class BookingSource(str, Enum):
    MANUAL = "manual"
    WALK_IN = "walk_in"
    ONLINE = "online"
    PHONE = "phone"

    def __str__(self) -> str:
        return self.value


class StaffRole(str, Enum):
    """Role of a staff member within one restaurant."""

    OWNER = "owner"
    MANAGER = "manager"
    STAFF = "staff"
    VIEWER = "viewer"

    def __str__(self) -> str:
        return self.value


class SummaryFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    NEVER = "never"

    def __str__(self) -> str:
        return self.value
