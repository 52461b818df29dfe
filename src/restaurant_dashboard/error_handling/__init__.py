"""
Error handling module for the restaurant dashboard.

Main Components:
    - exceptions: Categorised exception hierarchy
    - handlers: Logging, retry, degradation and HTTP mapping helpers
    - logging_config: loguru sinks and the booking audit trail
"""

from .exceptions import (
    # Base exception
    BookingSystemError,

    # Business logic errors
    BookingValidationError,
    InvalidPartySizeError,
    InvalidBookingTimeError,
    RestaurantClosedError,
    CapacityExceededError,
    TableUnavailableError,
    StateTransitionError,

    # Access errors
    NotFoundError,
    DuplicateError,
    PermissionDeniedError,

    # Database errors
    DatabaseError,
    DatabaseConnectionError,
    DatabaseQueryError,

    # Notification errors
    NotificationError,
    SMSDeliveryError,
    EmailDeliveryError,
)

from .handlers import (
    log_error,
    retry_on_error,
    graceful_degradation,
    http_status_for,
    error_response,
)

from .logging_config import (
    configure_logging,
    log_booking_event,
)

__all__ = [
    "BookingSystemError",
    "BookingValidationError",
    "InvalidPartySizeError",
    "InvalidBookingTimeError",
    "RestaurantClosedError",
    "CapacityExceededError",
    "TableUnavailableError",
    "StateTransitionError",
    "NotFoundError",
    "DuplicateError",
    "PermissionDeniedError",
    "DatabaseError",
    "DatabaseConnectionError",
    "DatabaseQueryError",
    "NotificationError",
    "SMSDeliveryError",
    "EmailDeliveryError",
    "log_error",
    "retry_on_error",
    "graceful_degradation",
    "http_status_for",
    "error_response",
    "configure_logging",
    "log_booking_event",
]
