"""
Pydantic models for data validation and serialization.
"""
import re
from datetime import date, time, datetime
from typing import Any, Dict, List, Optional

from email_validator import validate_email, EmailNotValidError
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict

from .enums import (
    DiningStatus,
    RestaurantTier,
    BookingPolicy,
    BookingSource,
    StaffRole,
    SummaryFrequency,
)


def _validate_phone(v: Optional[str]) -> Optional[str]:
    """
    Validate phone number format.
    Accepts formats like: +1234567890, (123) 456-7890, 123-456-7890, 1234567890
    """
    if v is None or v.strip() == "":
        return None

    cleaned = re.sub(r'[\s\-\(\)\.]', '', v)
    if not re.match(r'^\+?\d{10,15}$', cleaned):
        raise ValueError(
            "Phone number must contain 10-15 digits and may include spaces, "
            "dashes, parentheses, or a leading +"
        )
    return v.strip()


def _validate_email(v: Optional[str]) -> Optional[str]:
    """Normalise an email address, rejecting malformed ones."""
    if v is None or v.strip() == "":
        return None
    try:
        return validate_email(v.strip(), check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValueError(f"Invalid email format: {e}")


def _normalise_tags(v: Optional[List[str]]) -> Optional[List[str]]:
    """Lowercase, strip and de-duplicate tags keeping their order."""
    if v is None:
        return None
    seen: List[str] = []
    for tag in v:
        cleaned = tag.strip().lower()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


def _validate_clock(v: Optional[str]) -> Optional[str]:
    """Validate an "HH:MM" clock string."""
    if v is None:
        return None
    if not re.match(r'^([01]\d|2[0-3]):[0-5]\d$', v):
        raise ValueError("Time must be in HH:MM format")
    return v


# ============================================================================
# Restaurants and tables
# ============================================================================

class RestaurantCreate(BaseModel):
    """
    Pydantic model for creating a restaurant.
    """
    name: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = None
    email: Optional[str] = None
    tier: RestaurantTier = RestaurantTier.PRO
    booking_policy: BookingPolicy = BookingPolicy.INSTANT
    booking_window_days: int = Field(30, ge=1, le=365)
    table_turnover_minutes: int = Field(120, ge=15, le=480)
    request_expiry_hours: int = Field(24, ge=1, le=168)
    auto_decline_enabled: bool = True
    min_party_size: int = Field(1, ge=1)
    max_party_size: int = Field(20, ge=1)

    @field_validator("phone")
    @classmethod
    def validate_phone_format(cls, v: Optional[str]) -> Optional[str]:
        return _validate_phone(v)

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v: Optional[str]) -> Optional[str]:
        return _validate_email(v)

    @model_validator(mode="after")
    def validate_party_range(self) -> "RestaurantCreate":
        if self.max_party_size < self.min_party_size:
            raise ValueError("max_party_size cannot be below min_party_size")
        return self


class RestaurantUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone: Optional[str] = None
    email: Optional[str] = None
    tier: Optional[RestaurantTier] = None
    booking_policy: Optional[BookingPolicy] = None
    booking_window_days: Optional[int] = Field(None, ge=1, le=365)
    table_turnover_minutes: Optional[int] = Field(None, ge=15, le=480)
    request_expiry_hours: Optional[int] = Field(None, ge=1, le=168)
    auto_decline_enabled: Optional[bool] = None
    min_party_size: Optional[int] = Field(None, ge=1)
    max_party_size: Optional[int] = Field(None, ge=1)
    status: Optional[str] = Field(None, pattern=r"^(active|inactive)$")

    @field_validator("phone")
    @classmethod
    def validate_phone_format(cls, v: Optional[str]) -> Optional[str]:
        return _validate_phone(v)

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v: Optional[str]) -> Optional[str]:
        return _validate_email(v)


class RestaurantResponse(BaseModel):
    id: int
    name: str
    tier: str
    booking_policy: str
    booking_window_days: int
    table_turnover_minutes: int
    request_expiry_hours: int
    auto_decline_enabled: bool
    min_party_size: int
    max_party_size: int
    status: str

    model_config = ConfigDict(from_attributes=True)


class TableCreate(BaseModel):
    """
    Pydantic model for adding a table to the floor plan.
    """
    table_number: str = Field(..., min_length=1, max_length=20)
    capacity: int = Field(..., ge=1, le=50)
    min_capacity: int = Field(1, ge=1)
    max_capacity: Optional[int] = Field(None, ge=1)
    table_type: str = Field("standard", max_length=30)
    section: Optional[str] = Field(None, max_length=50)
    is_active: bool = True
    is_combinable: bool = True
    combinable_with: List[int] = Field(default_factory=list)
    priority_score: int = 0

    @model_validator(mode="after")
    def validate_capacity_range(self) -> "TableCreate":
        """Minimum capacity cannot exceed the seating capacity."""
        if self.min_capacity > self.capacity:
            raise ValueError("min_capacity cannot exceed capacity")
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "table_number": "T12",
                "capacity": 4,
                "min_capacity": 2,
                "section": "Patio",
                "is_combinable": True,
                "combinable_with": [13],
                "priority_score": 5
            }
        }
    )


class TableUpdate(BaseModel):
    table_number: Optional[str] = Field(None, min_length=1, max_length=20)
    capacity: Optional[int] = Field(None, ge=1, le=50)
    min_capacity: Optional[int] = Field(None, ge=1)
    max_capacity: Optional[int] = Field(None, ge=1)
    table_type: Optional[str] = Field(None, max_length=30)
    section: Optional[str] = Field(None, max_length=50)
    is_active: Optional[bool] = None
    is_combinable: Optional[bool] = None
    combinable_with: Optional[List[int]] = None
    priority_score: Optional[int] = None


class TableResponse(BaseModel):
    id: int
    restaurant_id: int
    table_number: str
    table_type: str
    capacity: int
    min_capacity: int
    max_capacity: Optional[int]
    section: Optional[str]
    is_active: bool
    is_combinable: bool
    combinable_with: List[int]
    priority_score: int

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Bookings
# ============================================================================

class BookingCreate(BaseModel):
    """
    Pydantic model for validating incoming booking requests.

    Either user_id (registered guest) or guest_name must be given.
    """
    booking_time: datetime = Field(..., description="Start of the reservation")
    party_size: int = Field(..., ge=1, le=100, description="Number of guests")
    user_id: Optional[str] = Field(None, max_length=64, description="Registered guest id")
    guest_name: Optional[str] = Field(None, max_length=255)
    guest_email: Optional[str] = Field(None, max_length=255)
    guest_phone: Optional[str] = Field(None, max_length=50)
    turn_time_minutes: Optional[int] = Field(None, ge=15, le=480)
    table_ids: List[int] = Field(default_factory=list, description="Tables to assign")
    status: Optional[DiningStatus] = Field(None, description="Initial status override")
    source: BookingSource = BookingSource.MANUAL
    special_requests: Optional[str] = None
    occasion: Optional[str] = Field(None, max_length=50)
    applied_offer_id: Optional[str] = Field(None, max_length=64)
    pre_approved: bool = Field(False, description="Skip the request queue")

    @field_validator("guest_phone")
    @classmethod
    def validate_phone_format(cls, v: Optional[str]) -> Optional[str]:
        return _validate_phone(v)

    @field_validator("guest_email")
    @classmethod
    def validate_email_format(cls, v: Optional[str]) -> Optional[str]:
        return _validate_email(v)

    @field_validator("guest_name")
    @classmethod
    def validate_guest_name(cls, v: Optional[str]) -> Optional[str]:
        """Strip whitespace; blank names count as missing."""
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("table_ids")
    @classmethod
    def validate_unique_tables(cls, v: List[int]) -> List[int]:
        if len(set(v)) != len(v):
            raise ValueError("Table ids must be unique")
        return v

    @model_validator(mode="after")
    def validate_guest_identity(self) -> "BookingCreate":
        """A booking needs either a registered user or a guest name."""
        if not self.user_id and not self.guest_name:
            raise ValueError("Either user_id or guest_name is required")
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "booking_time": "2025-06-14T19:30:00",
                "party_size": 4,
                "guest_name": "Jane Doe",
                "guest_phone": "+14155550123",
                "guest_email": "jane.doe@example.com",
                "table_ids": [3],
                "special_requests": "Window seat preferred",
                "occasion": "birthday"
            }
        }
    )


class BookingStatusUpdate(BaseModel):
    """
    Pydantic model for a status change requested by staff.
    """
    status: DiningStatus
    reason: Optional[str] = None
    force: bool = Field(False, description="Allow a transition outside the normal flow")
    metadata: Optional[Dict[str, Any]] = None


class TableAssignment(BaseModel):
    table_ids: List[int] = Field(..., min_length=1)

    @field_validator("table_ids")
    @classmethod
    def validate_unique_tables(cls, v: List[int]) -> List[int]:
        if len(set(v)) != len(v):
            raise ValueError("Table ids must be unique")
        return v


class AcceptRequest(BaseModel):
    table_ids: Optional[List[int]] = None
    force: bool = False

    @field_validator("table_ids")
    @classmethod
    def validate_unique_tables(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        if v is not None and len(set(v)) != len(v):
            raise ValueError("Table ids must be unique")
        return v


class ReasonRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class CheckInRequest(BaseModel):
    table_ids: Optional[List[int]] = None

    @field_validator("table_ids")
    @classmethod
    def validate_unique_tables(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        if v is not None and len(set(v)) != len(v):
            raise ValueError("Table ids must be unique")
        return v


class BookingFilters(BaseModel):
    """
    Filters for the bookings list.
    """
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    statuses: List[DiningStatus] = Field(default_factory=list)
    search: Optional[str] = None
    table_id: Optional[int] = None
    without_tables: bool = False
    limit: int = Field(200, ge=1, le=1000)
    offset: int = Field(0, ge=0)


class BookingResponse(BaseModel):
    """
    Pydantic model for formatting booking data in API responses.
    """
    id: int
    restaurant_id: int
    user_id: Optional[str]
    guest_name: Optional[str]
    guest_email: Optional[str]
    guest_phone: Optional[str]
    booking_time: datetime
    party_size: int
    turn_time_minutes: int
    status: str
    confirmation_code: str
    source: str
    special_requests: Optional[str]
    occasion: Optional[str]
    applied_offer_id: Optional[str]
    request_expires_at: Optional[datetime]
    checked_in_at: Optional[datetime]
    seated_at: Optional[datetime]
    completed_at: Optional[datetime]
    decline_reason: Optional[str]
    cancellation_reason: Optional[str]
    table_ids: List[int]
    created_at: datetime

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": 17,
                "restaurant_id": 1,
                "guest_name": "Jane Doe",
                "booking_time": "2025-06-14T19:30:00",
                "party_size": 4,
                "turn_time_minutes": 120,
                "status": "confirmed",
                "confirmation_code": "BELL4K2Q9Z",
                "source": "manual",
                "table_ids": [3],
                "created_at": "2025-06-01T10:30:00"
            }
        }
    )


class StatusHistoryResponse(BaseModel):
    id: int
    booking_id: int
    old_status: Optional[str]
    new_status: str
    changed_by: Optional[str]
    changed_at: datetime
    reason: Optional[str]
    details: Optional[Dict[str, Any]]

    model_config = ConfigDict(from_attributes=True)


class StatusTransitionInfo(BaseModel):
    """
    One entry of the "next status" menu.
    """
    from_status: DiningStatus
    to_status: DiningStatus
    label: str
    requires_confirmation: bool = False


class BookingStats(BaseModel):
    """
    Counters shown above the bookings list.
    """
    all: int = 0
    pending: int = 0
    confirmed: int = 0
    completed: int = 0
    cancelled: int = 0
    no_show: int = 0
    without_tables: int = 0
    upcoming: int = 0
    avg_party_size: float = 0.0
    total_guests: int = 0
    needing_attention: int = 0


# ============================================================================
# Availability and occupancy
# ============================================================================

class AvailabilityResult(BaseModel):
    """
    Outcome of checking a set of tables for a time window.
    """
    available: bool
    conflicting_booking_ids: List[int] = Field(default_factory=list)
    unknown_table_ids: List[int] = Field(default_factory=list)
    restaurant_open: bool = True
    message: Optional[str] = None


class TableOption(BaseModel):
    """
    A single table or a combination of tables able to seat a party.
    """
    table_ids: List[int]
    table_numbers: List[str]
    total_capacity: int
    total_min_capacity: int
    is_combination: bool = False
    priority_score: int = 0


class TableSlot(BaseModel):
    time: datetime
    available: bool


class BookingSummary(BaseModel):
    """
    Compact booking view embedded in table occupancy.
    """
    id: int
    guest_name: str
    party_size: int
    booking_time: datetime
    status: str
    turn_time_minutes: int
    dining_progress: int = 0
    estimated_end: Optional[datetime] = None
    seated_at: Optional[datetime] = None


class TableStatusInfo(BaseModel):
    """
    Live state of one table for the floor view.
    """
    table_id: int
    table_number: str
    capacity: int
    section: Optional[str]
    is_occupied: bool
    current_booking: Optional[BookingSummary] = None
    next_booking: Optional[BookingSummary] = None
    minutes_until_next: Optional[int] = None
    can_accept_walk_in: bool = True


class OpenStatus(BaseModel):
    is_open: bool
    reason: Optional[str] = None
    hours: Optional[List[Dict[str, str]]] = None


# ============================================================================
# Opening hours
# ============================================================================

class RegularHoursEntry(BaseModel):
    """
    One weekly shift. day_of_week: Monday is 0, Sunday is 6.
    """
    day_of_week: int = Field(..., ge=0, le=6)
    is_open: bool = True
    open_time: Optional[time] = None
    close_time: Optional[time] = None

    @model_validator(mode="after")
    def validate_times(self) -> "RegularHoursEntry":
        if self.is_open and (self.open_time is None or self.close_time is None):
            raise ValueError("open_time and close_time are required when open")
        return self


class SpecialHoursCreate(BaseModel):
    date: date
    is_closed: bool = False
    open_time: Optional[time] = None
    close_time: Optional[time] = None
    reason: Optional[str] = Field(None, max_length=255)

    @model_validator(mode="after")
    def validate_times(self) -> "SpecialHoursCreate":
        if not self.is_closed and (self.open_time is None or self.close_time is None):
            raise ValueError("open_time and close_time are required unless closed")
        return self


class ClosureCreate(BaseModel):
    start_date: date
    end_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    reason: Optional[str] = Field(None, max_length=255)

    @model_validator(mode="after")
    def validate_range(self) -> "ClosureCreate":
        if self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        if (self.start_time is None) != (self.end_time is None):
            raise ValueError("start_time and end_time must be given together")
        return self


class RegularHoursResponse(BaseModel):
    id: int
    day_of_week: int
    is_open: bool
    open_time: Optional[time]
    close_time: Optional[time]

    model_config = ConfigDict(from_attributes=True)


class SpecialHoursResponse(BaseModel):
    id: int
    date: date
    is_closed: bool
    open_time: Optional[time]
    close_time: Optional[time]
    reason: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class ClosureResponse(BaseModel):
    id: int
    start_date: date
    end_date: date
    start_time: Optional[time]
    end_time: Optional[time]
    reason: Optional[str]

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Menu
# ============================================================================

class MenuCategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    display_order: int = 0
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Category name cannot be empty")
        return v.strip()


class MenuCategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    display_order: Optional[int] = None
    is_active: Optional[bool] = None


class MenuCategoryResponse(BaseModel):
    id: int
    restaurant_id: int
    name: str
    description: Optional[str]
    display_order: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class MenuItemCreate(BaseModel):
    """
    Pydantic model for a new menu item.
    """
    name: str = Field(..., min_length=1, max_length=255)
    category_id: Optional[int] = None
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    dietary_tags: List[str] = Field(default_factory=list)
    allergens: List[str] = Field(default_factory=list)
    calories: Optional[int] = Field(None, ge=0)
    preparation_time_minutes: Optional[int] = Field(None, ge=0)
    is_available: bool = True
    is_featured: bool = False
    display_order: int = 0

    @field_validator("dietary_tags", "allergens")
    @classmethod
    def normalise_tags(cls, v: List[str]) -> List[str]:
        return _normalise_tags(v)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Burrata",
                "category_id": 2,
                "price": 14.5,
                "dietary_tags": ["vegetarian"],
                "allergens": ["dairy"],
                "is_featured": True
            }
        }
    )


class MenuItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    category_id: Optional[int] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    dietary_tags: Optional[List[str]] = None
    allergens: Optional[List[str]] = None
    calories: Optional[int] = Field(None, ge=0)
    preparation_time_minutes: Optional[int] = Field(None, ge=0)
    is_available: Optional[bool] = None
    is_featured: Optional[bool] = None
    display_order: Optional[int] = None

    @field_validator("dietary_tags", "allergens")
    @classmethod
    def normalise_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _normalise_tags(v)


class MenuItemResponse(BaseModel):
    id: int
    restaurant_id: int
    category_id: Optional[int]
    name: str
    description: Optional[str]
    price: float
    dietary_tags: List[str]
    allergens: List[str]
    calories: Optional[int]
    preparation_time_minutes: Optional[int]
    is_available: bool
    is_featured: bool
    display_order: int

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Staff and VIP
# ============================================================================

class StaffCreate(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    role: StaffRole = StaffRole.STAFF
    permissions: Optional[List[str]] = Field(
        None, description="Explicit permissions; defaults to the role's set"
    )


class StaffUpdate(BaseModel):
    role: Optional[StaffRole] = None
    permissions: Optional[List[str]] = None
    is_active: Optional[bool] = None


class StaffResponse(BaseModel):
    id: int
    restaurant_id: int
    user_id: str
    role: str
    permissions: List[str]
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class VIPCreate(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    extended_booking_days: int = Field(60, ge=1, le=365)
    priority_booking: bool = True
    valid_until: Optional[datetime] = None
    notes: Optional[str] = None


class VIPUpdate(BaseModel):
    extended_booking_days: Optional[int] = Field(None, ge=1, le=365)
    priority_booking: Optional[bool] = None
    valid_until: Optional[datetime] = None
    notes: Optional[str] = None


class VIPResponse(BaseModel):
    id: int
    restaurant_id: int
    user_id: str
    extended_booking_days: int
    priority_booking: bool
    valid_until: datetime
    notes: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Notifications
# ============================================================================

class NotificationPreferencesUpdate(BaseModel):
    """
    Partial update of a staff member's notification settings.
    """
    email_new_booking: Optional[bool] = None
    email_booking_cancelled: Optional[bool] = None
    email_booking_modified: Optional[bool] = None
    email_new_review: Optional[bool] = None
    email_new_vip: Optional[bool] = None
    email_daily_summary: Optional[bool] = None
    email_weekly_report: Optional[bool] = None
    sms_new_booking: Optional[bool] = None
    sms_booking_cancelled: Optional[bool] = None
    sms_no_show_alert: Optional[bool] = None
    push_new_booking: Optional[bool] = None
    push_booking_reminder: Optional[bool] = None
    push_table_ready: Optional[bool] = None
    app_all_activities: Optional[bool] = None
    app_mention_only: Optional[bool] = None
    quiet_hours_enabled: Optional[bool] = None
    quiet_hours_start: Optional[str] = None
    quiet_hours_end: Optional[str] = None
    summary_frequency: Optional[SummaryFrequency] = None
    summary_time: Optional[str] = None

    @field_validator("quiet_hours_start", "quiet_hours_end", "summary_time")
    @classmethod
    def validate_clock_format(cls, v: Optional[str]) -> Optional[str]:
        return _validate_clock(v)


class NotificationPreferencesResponse(BaseModel):
    restaurant_id: int
    user_id: str
    email_new_booking: bool
    email_booking_cancelled: bool
    email_booking_modified: bool
    email_new_review: bool
    email_new_vip: bool
    email_daily_summary: bool
    email_weekly_report: bool
    sms_new_booking: bool
    sms_booking_cancelled: bool
    sms_no_show_alert: bool
    push_new_booking: bool
    push_booking_reminder: bool
    push_table_ready: bool
    app_all_activities: bool
    app_mention_only: bool
    quiet_hours_enabled: bool
    quiet_hours_start: str
    quiet_hours_end: str
    summary_frequency: str
    summary_time: str

    model_config = ConfigDict(from_attributes=True)


class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    message: str
    booking_id: Optional[int]
    is_read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Analytics
# ============================================================================

class HourCount(BaseModel):
    hour: int
    bookings: int
    guests: int


class DailyTrend(BaseModel):
    date: date
    bookings: int
    guests: int
    completed: int
    cancelled: int
    no_shows: int


class CustomerCount(BaseModel):
    key: str
    name: str
    completed_bookings: int
    total_guests: int


class AnalyticsReport(BaseModel):
    """
    Aggregated operational metrics for a date range.
    """
    start_date: date
    end_date: date
    total_bookings: int
    status_counts: Dict[str, int]
    total_guests: int
    avg_party_size: float
    cancellation_rate: float
    no_show_rate: float
    completion_rate: float
    peak_hour: Optional[int]
    peak_hours: List[HourCount]
    daily_trends: List[DailyTrend]
    table_utilization: float
    turnover_rate: float
    avg_wait_minutes: Optional[float]
    wait_time_distribution: Dict[str, int]
    service_efficiency: Optional[float]
    top_customers: List[CustomerCount]
