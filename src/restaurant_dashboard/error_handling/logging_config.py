"""
Centralized logging configuration for the restaurant dashboard.

This module configures loguru for structured logging with a console sink
and optional rotating files, including a separate audit trail for booking
lifecycle events.
"""
import sys
from pathlib import Path
from typing import Any, Dict, Optional
from loguru import logger


def configure_logging(
    log_level: str = "INFO",
    log_to_file: bool = True,
    log_dir: str = "logs",
    rotation: str = "100 MB",
    retention: str = "30 days",
    format_type: str = "detailed"
) -> None:
    """
    Configure loguru logging for the application.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_to_file: Whether to log to files in addition to console
        log_dir: Directory for log files
        rotation: When to rotate log files (e.g., "100 MB", "1 day")
        retention: How long to keep old log files
        format_type: Format style ("simple", "detailed", "json")
    """
    logger.remove()

    serialize = format_type == "json"
    if format_type == "simple":
        format_string = "<level>{level: <8}</level> | <level>{message}</level>"
    elif serialize:
        format_string = "{message}"
    else:
        format_string = (
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        )

    logger.add(
        sys.stderr,
        format=format_string,
        level=log_level,
        colorize=not serialize,
        serialize=serialize,
        backtrace=True,
        diagnose=False
    )

    if log_to_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_path / "dashboard_{time:YYYY-MM-DD}.log",
            format=format_string,
            level=log_level,
            rotation=rotation,
            retention=retention,
            compression="zip",
            serialize=serialize
        )

        logger.add(
            log_path / "errors_{time:YYYY-MM-DD}.log",
            format=format_string,
            level="ERROR",
            rotation=rotation,
            retention=retention,
            compression="zip",
            serialize=serialize
        )

        # Booking audit trail is kept longer than operational logs
        logger.add(
            log_path / "bookings_{time:YYYY-MM-DD}.log",
            format=format_string,
            level="INFO",
            rotation="1 day",
            retention="1 year",
            compression="zip",
            serialize=serialize,
            filter=lambda record: record["extra"].get("category") == "BOOKING"
        )

    logger.info(
        f"Logging configured: level={log_level}, "
        f"file_logging={log_to_file}, "
        f"format={format_type}"
    )


def log_booking_event(
    event_type: str,
    restaurant_id: Optional[int] = None,
    booking_id: Optional[int] = None,
    actor: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None
) -> None:
    """
    Log a booking lifecycle event for the audit trail.

    Args:
        event_type: Type of event (e.g., "CREATED", "STATUS_CHANGED", "TABLES_SWITCHED")
        restaurant_id: Restaurant the booking belongs to
        booking_id: Booking identifier
        actor: User id of the staff member (or guest) who triggered the event
        details: Additional event details
    """
    details = details or {}

    logger.bind(category="BOOKING").info(
        f"BOOKING {event_type} | "
        f"restaurant={restaurant_id} | "
        f"booking_id={booking_id} | "
        f"actor={actor} | "
        f"details={details}"
    )
