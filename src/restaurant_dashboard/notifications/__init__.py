"""
Notifications package - email and SMS delivery of staff alerts.
"""
from .email_service import send_staff_email, create_alert_html
from .sms import send_staff_sms, format_phone_number, format_alert_sms

__all__ = [
    "send_staff_email",
    "create_alert_html",
    "send_staff_sms",
    "format_phone_number",
    "format_alert_sms",
]
