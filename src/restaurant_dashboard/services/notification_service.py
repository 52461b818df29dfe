"""
Staff notification service with per-user preferences and graceful degradation.

Booking events fan out to every active staff member of the restaurant:
- an in-app notification row (unless the member only wants mentions)
- an email through SendGrid and/or an SMS through Twilio when the member
  enabled that channel for the event, the channel is configured and the
  member is outside their quiet hours

Delivery failures are logged and never block the booking flow.
"""
from datetime import datetime, time
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy.orm import Session

from ..config import get_settings
from ..error_handling.exceptions import NotFoundError
from ..error_handling.handlers import graceful_degradation
from ..models.database import (
    Booking,
    Notification,
    NotificationPreference,
    Profile,
    Restaurant,
)
from ..models.schemas import NotificationPreferencesUpdate
from ..notifications.email_service import send_staff_email
from ..notifications.sms import format_alert_sms, send_staff_sms
from .staff_service import StaffService

DEFAULT_PREFERENCES: Dict[str, Any] = {
    "email_new_booking": True,
    "email_booking_cancelled": True,
    "email_booking_modified": True,
    "email_new_review": True,
    "email_new_vip": True,
    "email_daily_summary": False,
    "email_weekly_report": True,
    "sms_new_booking": False,
    "sms_booking_cancelled": False,
    "sms_no_show_alert": False,
    "push_new_booking": True,
    "push_booking_reminder": True,
    "push_table_ready": True,
    "app_all_activities": True,
    "app_mention_only": False,
    "quiet_hours_enabled": False,
    "quiet_hours_start": "22:00",
    "quiet_hours_end": "08:00",
    "summary_frequency": "weekly",
    "summary_time": "09:00",
}

# event -> preference flag per external channel
EVENT_CHANNELS: Dict[str, Dict[str, str]] = {
    "new_booking": {"email": "email_new_booking", "sms": "sms_new_booking"},
    "booking_request": {"email": "email_new_booking", "sms": "sms_new_booking"},
    "booking_cancelled": {"email": "email_booking_cancelled", "sms": "sms_booking_cancelled"},
    "booking_modified": {"email": "email_booking_modified"},
    "no_show": {"sms": "sms_no_show_alert"},
    "new_vip": {"email": "email_new_vip"},
    "new_review": {"email": "email_new_review"},
}


def _parse_clock(value: str) -> time:
    hours, minutes = map(int, value.split(":"))
    return time(hour=hours, minute=minutes)


def in_quiet_hours(preferences: NotificationPreference, now: datetime) -> bool:
    """
    Check whether a moment falls inside a member's quiet hours.

    The window may wrap past midnight (22:00-08:00). The end is exclusive.
    """
    if not preferences.quiet_hours_enabled:
        return False
    start = _parse_clock(preferences.quiet_hours_start)
    end = _parse_clock(preferences.quiet_hours_end)
    current = now.time()
    if start <= end:
        return start <= current < end
    return current >= start or current < end


class NotificationService:
    """
    Service for staff notification preferences and alert delivery.
    """

    def __init__(self, session: Session):
        """
        Initialize the notification service with a database session.

        Args:
            session: SQLAlchemy database session
        """
        self.session = session
        self.settings = get_settings()
        self.staff = StaffService(session)

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def get_preferences(self, restaurant_id: int, user_id: str) -> NotificationPreference:
        """
        Get a member's preferences, or unsaved defaults when none are stored.
        """
        preferences = (
            self.session.query(NotificationPreference)
            .filter_by(restaurant_id=restaurant_id, user_id=user_id)
            .first()
        )
        if preferences is None:
            preferences = NotificationPreference(
                restaurant_id=restaurant_id,
                user_id=user_id,
                **DEFAULT_PREFERENCES,
            )
        return preferences

    def update_preferences(
        self,
        restaurant_id: int,
        user_id: str,
        data: NotificationPreferencesUpdate
    ) -> NotificationPreference:
        """
        Create or update a member's preferences (upsert on restaurant and user).
        """
        preferences = self.get_preferences(restaurant_id, user_id)
        if preferences.id is None:
            self.session.add(preferences)

        for field, value in data.model_dump(exclude_unset=True).items():
            if value is None:
                continue
            setattr(preferences, field, value.value if hasattr(value, "value") else value)

        self.session.commit()
        self.session.refresh(preferences)
        logger.info(f"Notification preferences saved: restaurant={restaurant_id} user={user_id}")
        return preferences

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def notify_staff(
        self,
        restaurant_id: int,
        event: str,
        title: str,
        message: str,
        booking: Optional[Booking] = None,
        exclude_user_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, int]:
        """
        Fan an event out to the restaurant's active staff.

        Args:
            restaurant_id: Restaurant the event belongs to
            event: Event key (see EVENT_CHANNELS)
            title: Short alert title
            message: Alert text
            booking: Booking the event concerns
            exclude_user_id: Member who triggered the event
            now: Reference time for quiet hours

        Returns:
            Counts of in_app, email, sms deliveries and failed attempts
        """
        now = now or datetime.now()
        restaurant = self.session.get(Restaurant, restaurant_id)
        if restaurant is None:
            raise NotFoundError("Restaurant", restaurant_id)

        counts = {"in_app": 0, "email": 0, "sms": 0, "failed": 0}
        channels = EVENT_CHANNELS.get(event, {})

        for member in self.staff.list_staff(restaurant_id):
            if member.user_id == exclude_user_id:
                continue
            preferences = self.get_preferences(restaurant_id, member.user_id)

            if preferences.app_all_activities and not preferences.app_mention_only:
                self.session.add(Notification(
                    restaurant_id=restaurant_id,
                    user_id=member.user_id,
                    type=event,
                    title=title,
                    message=message,
                    booking_id=booking.id if booking is not None else None,
                    data={"status": booking.status} if booking is not None else None,
                ))
                counts["in_app"] += 1

            if in_quiet_hours(preferences, now):
                continue

            profile = member.user or self.session.get(Profile, member.user_id)
            email_flag = channels.get("email")
            if email_flag and getattr(preferences, email_flag) and profile and profile.email:
                if self.settings.email_configured:
                    delivered = self._deliver_email(profile.email, restaurant.name, title, message, booking)
                    counts["email" if delivered else "failed"] += 1

            sms_flag = channels.get("sms")
            if sms_flag and getattr(preferences, sms_flag) and profile and profile.phone_number:
                if self.settings.sms_configured:
                    delivered = self._deliver_sms(profile.phone_number, restaurant.name, title, message)
                    counts["sms" if delivered else "failed"] += 1

        self.session.commit()
        logger.debug(f"Event {event} for restaurant {restaurant_id} dispatched: {counts}")
        return counts

    @graceful_degradation(fallback_value=False, log_message="Staff email alert failed")
    def _deliver_email(
        self,
        email: str,
        restaurant_name: str,
        title: str,
        message: str,
        booking: Optional[Booking]
    ) -> bool:
        details = None
        if booking is not None:
            details = {
                "Guest": booking.display_name,
                "Time": booking.booking_time.strftime("%a %d %b %H:%M"),
                "Party size": str(booking.party_size),
                "Code": booking.confirmation_code,
            }
        send_staff_email(
            email,
            subject=f"{restaurant_name}: {title}",
            title=title,
            message=message,
            restaurant_name=restaurant_name,
            details=details,
        )
        return True

    @graceful_degradation(fallback_value=False, log_message="Staff SMS alert failed")
    def _deliver_sms(self, phone: str, restaurant_name: str, title: str, message: str) -> bool:
        send_staff_sms(phone, format_alert_sms(title, message, restaurant_name))
        return True

    # ------------------------------------------------------------------
    # Inbox
    # ------------------------------------------------------------------

    def list_notifications(
        self,
        restaurant_id: int,
        user_id: str,
        unread_only: bool = False,
        limit: int = 50
    ) -> List[Notification]:
        query = self.session.query(Notification).filter(
            Notification.restaurant_id == restaurant_id,
            Notification.user_id == user_id,
        )
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()

    def mark_read(self, user_id: str, notification_id: int) -> Notification:
        notification = (
            self.session.query(Notification)
            .filter_by(id=notification_id, user_id=user_id)
            .first()
        )
        if notification is None:
            raise NotFoundError("Notification", notification_id)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.now()
            self.session.commit()
        return notification

    def mark_all_read(self, restaurant_id: int, user_id: str) -> int:
        """Mark every unread notification read; returns how many changed."""
        updated = (
            self.session.query(Notification)
            .filter(
                Notification.restaurant_id == restaurant_id,
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
            .update({"is_read": True, "read_at": datetime.now()}, synchronize_session="fetch")
        )
        self.session.commit()
        return updated
