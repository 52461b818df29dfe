"""
Custom Exception Classes for the restaurant dashboard backend.

This module defines exception classes for different error categories:
- Business Logic Errors (booking validation, table conflicts, status transitions)
- Access Errors (missing records, duplicates, permissions)
- Technical Errors (database, notification delivery)

Each exception carries a staff-facing message plus context for logging and
for the JSON body returned by the HTTP layer.
"""

from typing import Optional, Any, Dict, List
from datetime import datetime


class BookingSystemError(Exception):
    """Base exception for all booking system errors."""

    def __init__(
        self,
        message: str,
        user_message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = True
    ):
        """
        Initialize booking system error.

        Args:
            message: Technical error message for logging
            user_message: Message suitable for showing to staff
            context: Additional context for error recovery
            recoverable: Whether the error is recoverable
        """
        super().__init__(message)
        self.message = message
        self.user_message = user_message or message
        self.context = context or {}
        self.recoverable = recoverable


# ============================================================================
# Business Logic Errors
# ============================================================================

class BookingValidationError(BookingSystemError):
    """
    Raised when booking validation fails.

    Examples:
    - Booking time in the past or beyond the booking window
    - Party size outside the restaurant limits
    - Booking time outside operating hours
    """

    def __init__(
        self,
        message: str,
        user_message: Optional[str] = None,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        alternatives: Optional[list] = None,
        **kwargs
    ):
        """
        Initialize booking validation error.

        Args:
            message: Technical error message
            user_message: Staff-facing message
            field: Field that failed validation (booking_time, party_size, ...)
            value: Invalid value
            alternatives: List of alternative valid options
            **kwargs: Additional context
        """
        context = {
            "field": field,
            "value": value,
            "alternatives": alternatives or [],
            **kwargs
        }
        super().__init__(message, user_message, context, recoverable=True)
        self.field = field
        self.value = value
        self.alternatives = alternatives or []


class InvalidPartySizeError(BookingValidationError):
    """Raised when party size is outside the restaurant's limits."""

    def __init__(self, party_size: int, min_size: int = 1, max_size: int = 20, **kwargs):
        message = f"Party size {party_size} outside allowed range {min_size}-{max_size}"
        super().__init__(
            message=message,
            user_message=f"Party size must be between {min_size} and {max_size} guests",
            field="party_size",
            value=party_size,
            min_size=min_size,
            max_size=max_size,
            **kwargs
        )


class InvalidBookingTimeError(BookingValidationError):
    """Raised when the booking time is in the past or beyond the booking window."""

    def __init__(self, booking_time: datetime, reason: str, **kwargs):
        super().__init__(
            message=f"Invalid booking time {booking_time}: {reason}",
            user_message=reason,
            field="booking_time",
            value=booking_time.isoformat() if booking_time else None,
            **kwargs
        )


class RestaurantClosedError(BookingValidationError):
    """Raised when the restaurant is closed for the requested time."""

    def __init__(
        self,
        booking_time: datetime,
        reason: Optional[str] = None,
        alternatives: Optional[list] = None,
        **kwargs
    ):
        reason = reason or "Restaurant is closed at this time"
        super().__init__(
            message=f"Restaurant closed at {booking_time}: {reason}",
            user_message=reason,
            field="booking_time",
            value=booking_time.isoformat() if booking_time else None,
            alternatives=alternatives,
            **kwargs
        )


class CapacityExceededError(BookingValidationError):
    """Raised when the selected tables cannot seat the party."""

    def __init__(
        self,
        party_size: int,
        capacity: int,
        minimum: Optional[int] = None,
        **kwargs
    ):
        if minimum is not None and party_size < minimum:
            user_message = f"Selected tables require a minimum of {minimum} guests"
        else:
            user_message = f"Selected tables can only accommodate up to {capacity} guests"
        super().__init__(
            message=(
                f"Insufficient capacity: {capacity} seats available "
                f"but {party_size} guests in party"
            ),
            user_message=user_message,
            field="party_size",
            value=party_size,
            capacity=capacity,
            minimum=minimum,
            **kwargs
        )
        self.party_size = party_size
        self.capacity = capacity
        self.minimum = minimum


class TableUnavailableError(BookingSystemError):
    """Raised when requested tables are held by an overlapping booking."""

    def __init__(
        self,
        table_ids: List[int],
        conflicting_booking_ids: Optional[List[int]] = None,
        message: Optional[str] = None,
        **kwargs
    ):
        context = {
            "table_ids": list(table_ids),
            "conflicting_booking_ids": list(conflicting_booking_ids or []),
            **kwargs
        }
        super().__init__(
            message or f"Tables {list(table_ids)} are not available",
            user_message=message or "Selected tables are no longer available",
            context=context,
            recoverable=True
        )
        self.table_ids = list(table_ids)
        self.conflicting_booking_ids = list(conflicting_booking_ids or [])


class StateTransitionError(BookingSystemError):
    """Raised when a booking status change is not allowed."""

    def __init__(
        self,
        current_status: str,
        requested_status: str,
        reason: Optional[str] = None,
        **kwargs
    ):
        reason = reason or f"Cannot change status from {current_status} to {requested_status}"
        context = {
            "current_status": current_status,
            "requested_status": requested_status,
            **kwargs
        }
        super().__init__(
            f"Invalid transition {current_status} -> {requested_status}",
            user_message=reason,
            context=context,
            recoverable=True
        )
        self.current_status = current_status
        self.requested_status = requested_status


# ============================================================================
# Access Errors
# ============================================================================

class NotFoundError(BookingSystemError):
    """Raised when a record does not exist or belongs to another restaurant."""

    def __init__(self, entity: str, entity_id: Any, **kwargs):
        context = {"entity": entity, "entity_id": entity_id, **kwargs}
        super().__init__(
            f"{entity} {entity_id} not found",
            user_message=f"{entity} not found",
            context=context,
            recoverable=False
        )
        self.entity = entity
        self.entity_id = entity_id


class DuplicateError(BookingSystemError):
    """Raised when creating a record that already exists."""

    def __init__(self, entity: str, message: str, **kwargs):
        context = {"entity": entity, **kwargs}
        super().__init__(message, context=context, recoverable=False)
        self.entity = entity


class PermissionDeniedError(BookingSystemError):
    """Raised when a staff member lacks the permission for an action."""

    def __init__(
        self,
        permission: str,
        user_id: Optional[str] = None,
        restaurant_id: Optional[int] = None,
        **kwargs
    ):
        context = {
            "permission": permission,
            "user_id": user_id,
            "restaurant_id": restaurant_id,
            **kwargs
        }
        super().__init__(
            f"User {user_id} lacks permission {permission} for restaurant {restaurant_id}",
            user_message="You don't have permission to perform this action",
            context=context,
            recoverable=False
        )
        self.permission = permission
        self.user_id = user_id


# ============================================================================
# Technical Errors - Database
# ============================================================================

class DatabaseError(BookingSystemError):
    """
    Raised when database operations fail.

    Examples:
    - Connection errors
    - Query failures
    - Constraint violations
    """

    def __init__(
        self,
        message: str,
        error_type: str = "unknown",
        original_error: Optional[Exception] = None,
        retry_possible: bool = True,
        **kwargs
    ):
        """
        Initialize database error.

        Args:
            message: Error message
            error_type: Type of error (connection, query, constraint)
            original_error: Original exception
            retry_possible: Whether retry is possible
            **kwargs: Additional context
        """
        context = {
            "error_type": error_type,
            "original_error": str(original_error) if original_error else None,
            "retry_possible": retry_possible,
            **kwargs
        }
        super().__init__(
            message,
            user_message="A database error occurred. Please try again.",
            context=context,
            recoverable=retry_possible
        )
        self.error_type = error_type
        self.original_error = original_error
        self.retry_possible = retry_possible


class DatabaseConnectionError(DatabaseError):
    """Raised when database connection fails."""

    def __init__(self, message: str = "Database connection failed", **kwargs):
        super().__init__(
            message=message,
            error_type="connection",
            retry_possible=True,
            **kwargs
        )


class DatabaseQueryError(DatabaseError):
    """Raised when a database query or constraint fails."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            error_type="query",
            retry_possible=False,
            **kwargs
        )


# ============================================================================
# Technical Errors - Notifications
# ============================================================================

class NotificationError(BookingSystemError):
    """
    Raised when notification delivery fails.

    Notifications never block booking operations; callers log and continue.
    """

    def __init__(
        self,
        message: str,
        notification_type: str,
        recipient: Optional[str] = None,
        original_error: Optional[Exception] = None,
        **kwargs
    ):
        context = {
            "notification_type": notification_type,
            "recipient": recipient,
            "original_error": str(original_error) if original_error else None,
            **kwargs
        }
        super().__init__(message, context=context, recoverable=True)
        self.notification_type = notification_type
        self.recipient = recipient
        self.original_error = original_error


class SMSDeliveryError(NotificationError):
    """Raised when SMS delivery fails."""

    def __init__(self, phone: str, **kwargs):
        super().__init__(
            message=f"Failed to send SMS to {phone}",
            notification_type="sms",
            recipient=phone,
            **kwargs
        )


class EmailDeliveryError(NotificationError):
    """Raised when email delivery fails."""

    def __init__(self, email: str, **kwargs):
        super().__init__(
            message=f"Failed to send email to {email}",
            notification_type="email",
            recipient=email,
            **kwargs
        )
