"""
Centralized error handling utilities for the restaurant dashboard.

This module provides utilities for:
- Error logging with context
- Retrying transient database failures
- Graceful degradation for non-critical side effects (notifications)
- Mapping domain errors to HTTP responses
"""
import functools
from typing import Optional, Callable, Any, Dict, Tuple, Type
from loguru import logger
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from .exceptions import (
    BookingSystemError,
    BookingValidationError,
    TableUnavailableError,
    StateTransitionError,
    NotFoundError,
    DuplicateError,
    PermissionDeniedError,
    DatabaseError,
    NotificationError,
)


def log_error(
    error: Exception,
    context: Optional[Dict[str, Any]] = None,
    severity: Optional[str] = None
) -> None:
    """
    Log an error with its domain context.

    Validation and access errors are logged as warnings without a stack
    trace; anything else is logged as an error with the traceback.

    Args:
        error: Exception that occurred
        context: Extra context (restaurant id, booking id, actor)
        severity: Override for the log level
    """
    context = dict(context or {})
    if isinstance(error, BookingSystemError):
        context.update({k: v for k, v in error.context.items() if k not in context})

    expected = isinstance(
        error,
        (BookingValidationError, NotFoundError, DuplicateError,
         PermissionDeniedError, StateTransitionError, TableUnavailableError)
    )
    level = severity or ("WARNING" if expected else "ERROR")

    logger.bind(category="ERROR", **context).log(
        level,
        f"{type(error).__name__}: {error}"
    )
    if level in ("ERROR", "CRITICAL") and not expected:
        logger.opt(exception=error).debug("Stack trace:")


def _log_retry(retry_state) -> None:
    """Log a failed attempt before tenacity sleeps."""
    error = retry_state.outcome.exception() if retry_state.outcome else None
    name = getattr(retry_state.fn, "__name__", "call")
    logger.warning(
        f"Attempt {retry_state.attempt_number} of {name} failed: {error}. Retrying..."
    )


def retry_on_error(
    max_retries: int = 3,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    backoff_factor: float = 0.5,
    max_wait: float = 5.0
):
    """
    Decorator for retrying functions on specific exceptions.

    Args:
        max_retries: Maximum number of attempts
        exceptions: Tuple of exception types to retry on
        backoff_factor: Multiplier for exponential backoff
        max_wait: Upper bound for a single wait in seconds

    Returns:
        Decorated function; the last exception is re-raised when all
        attempts fail
    """
    return retry(
        stop=stop_after_attempt(max_retries),
        wait=wait_exponential(multiplier=backoff_factor, max=max_wait),
        retry=retry_if_exception_type(exceptions),
        before_sleep=_log_retry,
        reraise=True,
    )


def graceful_degradation(
    fallback_value: Any = None,
    log_message: Optional[str] = None,
    exceptions: Tuple[Type[BaseException], ...] = (NotificationError,)
):
    """
    Decorator for side effects whose failure must not abort the caller.

    Only the listed exception types are absorbed; anything else propagates.

    Args:
        fallback_value: Value to return if the function fails
        log_message: Custom log message for degradation
        exceptions: Exception types that trigger the fallback

    Returns:
        Decorated function with fallback logic
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except exceptions as e:
                message = log_message or f"{func.__name__} failed, continuing without it"
                logger.warning(f"{message}: {e}")
                return fallback_value

        return wrapper
    return decorator


# ============================================================================
# HTTP mapping
# ============================================================================

_STATUS_CODES = (
    (NotFoundError, 404),
    (PermissionDeniedError, 403),
    (DuplicateError, 409),
    (StateTransitionError, 409),
    (TableUnavailableError, 409),
    (BookingValidationError, 422),
    (DatabaseError, 503),
    (NotificationError, 502),
)


def http_status_for(error: Exception) -> int:
    """
    Map an exception to the HTTP status code returned by the API.

    Args:
        error: Exception raised by a service

    Returns:
        HTTP status code (500 for anything unrecognised)
    """
    for error_class, status_code in _STATUS_CODES:
        if isinstance(error, error_class):
            return status_code
    return 500


def error_response(error: Exception) -> Dict[str, Any]:
    """
    Build the JSON body for an error response.

    Args:
        error: Exception raised by a service

    Returns:
        Dictionary with error_type, message, context and recoverable
    """
    if isinstance(error, BookingSystemError):
        return {
            "error_type": type(error).__name__,
            "message": error.user_message,
            "context": _jsonable(error.context),
            "recoverable": error.recoverable,
        }
    return {
        "error_type": type(error).__name__,
        "message": "An unexpected error occurred",
        "context": {},
        "recoverable": False,
    }


def _jsonable(value: Any) -> Any:
    """Reduce context values to JSON-safe primitives."""
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)
