"""
Email delivery for staff alerts using SendGrid.

This module provides:
- Email validation and normalisation
- A compact HTML template for alerts
- SendGrid API integration with retry logic for transient failures
"""
import html
from datetime import datetime
from typing import Dict, Optional, Tuple

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, Content
from email_validator import validate_email, EmailNotValidError
from loguru import logger
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from ..config import get_settings
from ..error_handling.exceptions import EmailDeliveryError


def _validate_email_address(email: str) -> Tuple[bool, str]:
    """
    Validate email address format.

    Args:
        email: Email address to validate

    Returns:
        Tuple of (is_valid, normalized_email or error_message)
    """
    try:
        validated = validate_email(email, check_deliverability=False)
        return True, validated.normalized
    except EmailNotValidError as e:
        return False, str(e)


def create_alert_html(
    title: str,
    message: str,
    restaurant_name: str,
    details: Optional[Dict[str, str]] = None
) -> str:
    """
    Render the HTML body of a staff alert.

    All interpolated values are HTML-escaped.

    Args:
        title: Alert title
        message: Alert text
        restaurant_name: Restaurant the alert concerns
        details: Extra label/value rows (guest, time, party size...)

    Returns:
        HTML document
    """
    rows = "".join(
        f"<tr><td style=\"padding:8px;font-weight:bold;color:#555;\">{html.escape(str(label))}</td>"
        f"<td style=\"padding:8px;\">{html.escape(str(value))}</td></tr>"
        for label, value in (details or {}).items()
    )
    table = f"<table style=\"border-collapse:collapse;width:100%;\">{rows}</table>" if rows else ""

    return f"""<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>{html.escape(title)}</title></head>
<body style="font-family:Arial,sans-serif;color:#333;max-width:600px;margin:0 auto;">
  <div style="background:#2c3e50;color:#fff;padding:20px;">
    <h2 style="margin:0;">{html.escape(restaurant_name)}</h2>
    <p style="margin:4px 0 0 0;">{html.escape(title)}</p>
  </div>
  <div style="padding:20px;border:1px solid #ddd;">
    <p>{html.escape(message)}</p>
    {table}
  </div>
  <p style="font-size:12px;color:#888;text-align:center;">
    Sent {datetime.now().strftime('%Y-%m-%d %H:%M')}. Change alerts in your notification settings.
  </p>
</body>
</html>"""


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    retry=retry_if_exception_type((ConnectionError, TimeoutError)),
    reraise=True,
)
def _send_via_sendgrid(
    to_email: str,
    subject: str,
    html_content: str,
    from_email: str,
    api_key: str
) -> int:
    """
    Send email via SendGrid API with retry logic.

    Returns:
        HTTP status code returned by SendGrid
    """
    sg = SendGridAPIClient(api_key=api_key)
    mail = Mail(
        from_email=Email(from_email),
        to_emails=To(to_email),
        subject=subject,
        html_content=Content("text/html", html_content),
    )
    response = sg.send(mail)
    return response.status_code


def send_staff_email(
    email: str,
    subject: str,
    title: str,
    message: str,
    restaurant_name: str,
    details: Optional[Dict[str, str]] = None
) -> int:
    """
    Send an alert email to a staff member.

    Args:
        email: Recipient address
        subject: Email subject
        title: Heading shown in the body
        message: Alert text
        restaurant_name: Restaurant the alert concerns
        details: Extra label/value rows

    Returns:
        SendGrid status code

    Raises:
        EmailDeliveryError: If SendGrid is not configured, the address is
            invalid or delivery fails
    """
    settings = get_settings()
    if not settings.email_configured:
        raise EmailDeliveryError(email, reason="SendGrid API key not configured")

    is_valid, result = _validate_email_address(email)
    if not is_valid:
        raise EmailDeliveryError(email, reason=result)

    html_content = create_alert_html(title, message, restaurant_name, details)
    try:
        status_code = _send_via_sendgrid(
            to_email=result,
            subject=subject,
            html_content=html_content,
            from_email=settings.sendgrid_from_email,
            api_key=settings.sendgrid_api_key,
        )
    except Exception as e:
        logger.error(f"SendGrid delivery to {result} failed: {e}")
        raise EmailDeliveryError(result, original_error=e) from e

    if status_code not in (200, 201, 202):
        raise EmailDeliveryError(result, status_code=status_code)

    logger.info(f"Staff email sent to {result} (status={status_code})")
    return status_code
