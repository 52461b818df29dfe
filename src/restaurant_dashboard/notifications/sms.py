"""
Twilio SMS delivery for staff alerts.

Handles phone number normalisation to E.164, message formatting and
retrying transient network failures.
"""
import re
from typing import Optional

from loguru import logger
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)
from twilio.rest import Client
from twilio.base.exceptions import TwilioException, TwilioRestException

from ..config import get_settings
from ..error_handling.exceptions import SMSDeliveryError

# Twilio concatenates longer bodies into several billed segments
MAX_SMS_LENGTH = 320


def format_phone_number(phone: str) -> str:
    """
    Normalize phone number to E.164 format (+15550123456).

    Accepts various formats:
    - (555) 012-3456
    - 555-012-3456
    - +44 20 7946 0958

    Args:
        phone: Phone number in various formats

    Returns:
        Phone number in E.164 format

    Raises:
        ValueError: If phone number cannot be formatted

    Examples:
        >>> format_phone_number("(555) 012-3456")
        '+15550123456'
        >>> format_phone_number("+44 20 7946 0958")
        '+442079460958'
    """
    has_plus = phone.strip().startswith('+')
    digits_only = re.sub(r'\D', '', phone)

    if has_plus and 10 <= len(digits_only) <= 15:
        return f"+{digits_only}"
    if len(digits_only) == 10:
        return f"+1{digits_only}"
    if len(digits_only) == 11 and digits_only.startswith('1'):
        return f"+{digits_only}"

    raise ValueError(
        f"Invalid phone number format: {phone}. "
        "Expected 10 digits for US numbers or a leading + with country code"
    )


def format_alert_sms(title: str, message: str, restaurant_name: Optional[str] = None) -> str:
    """
    Build the SMS body for a staff alert.

    Args:
        title: Alert title (e.g., "New booking")
        message: Alert details
        restaurant_name: Prefix identifying the restaurant

    Returns:
        Message body no longer than MAX_SMS_LENGTH
    """
    prefix = f"[{restaurant_name}] " if restaurant_name else ""
    body = f"{prefix}{title}: {message}"
    if len(body) > MAX_SMS_LENGTH:
        body = body[:MAX_SMS_LENGTH - 3].rstrip() + "..."
    return body


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    retry=retry_if_exception_type((ConnectionError, TimeoutError)),
    reraise=True,
)
def _send_sms_with_retry(client: Client, to: str, from_: str, body: str) -> str:
    """
    Send SMS via Twilio, retrying network failures.

    Returns:
        Twilio message SID
    """
    try:
        message = client.messages.create(to=to, from_=from_, body=body)
        return message.sid
    except TwilioRestException:
        raise
    except TwilioException as e:
        if "connection" in str(e).lower() or "timeout" in str(e).lower():
            logger.warning(f"Twilio network error (will retry): {e}")
            raise ConnectionError(str(e))
        raise


def send_staff_sms(phone_number: str, body: str) -> str:
    """
    Send an alert SMS to a staff member.

    Args:
        phone_number: Recipient phone (any common format)
        body: Message body

    Returns:
        Twilio message SID

    Raises:
        SMSDeliveryError: If Twilio is not configured, the number is invalid
            or delivery fails after retries
    """
    settings = get_settings()
    if not settings.sms_configured:
        raise SMSDeliveryError(phone_number, reason="Twilio credentials not configured")

    try:
        formatted_phone = format_phone_number(phone_number)
    except ValueError as e:
        raise SMSDeliveryError(phone_number, reason=str(e)) from e

    try:
        client = Client(settings.twilio_account_sid, settings.twilio_auth_token)
        message_sid = _send_sms_with_retry(
            client=client,
            to=formatted_phone,
            from_=settings.twilio_phone_number,
            body=body,
        )
    except TwilioRestException as e:
        logger.error(f"Twilio API error for {formatted_phone}: {e.code} - {e.msg}")
        raise SMSDeliveryError(formatted_phone, original_error=e, code=e.code) from e
    except (TwilioException, ConnectionError, TimeoutError) as e:
        logger.error(f"SMS delivery to {formatted_phone} failed: {e}")
        raise SMSDeliveryError(formatted_phone, original_error=e) from e

    logger.info(f"Staff SMS sent to {formatted_phone} (sid={message_sid})")
    return message_sid
