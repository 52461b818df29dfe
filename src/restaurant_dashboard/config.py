"""
Configuration module for the restaurant dashboard backend.

Loads environment variables (and an optional .env file) and provides the
settings used by the database layer, the booking rules and the staff
notification channels.
"""
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        database_url: SQLAlchemy connection string
        log_level: Minimum loguru level for the console sink
        default_turn_time_minutes: Table occupancy assumed when a booking has none
        walk_in_buffer_minutes: Minutes before the next booking during which
            a free table no longer accepts walk-ins
        utilization_operating_hours: Fixed operating-hours constant used by
            utilization statistics
        hours_cache_seconds: Lifetime of cached open/closed answers
    """

    # Database configuration
    database_url: str = Field(
        default="sqlite:///./restaurant_dashboard.db",
        alias="DATABASE_URL",
        description="SQLAlchemy connection string"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Minimum log level"
    )

    log_to_file: bool = Field(
        default=False,
        alias="LOG_TO_FILE",
        description="Write rotating log files in addition to stderr"
    )

    log_dir: str = Field(
        default="logs",
        alias="LOG_DIR",
        description="Directory for log files"
    )

    # Booking rules
    default_turn_time_minutes: int = Field(
        default=120,
        alias="DEFAULT_TURN_TIME_MINUTES",
        description="Default table turn time in minutes"
    )

    walk_in_buffer_minutes: int = Field(
        default=90,
        alias="WALK_IN_BUFFER_MINUTES",
        description="Minimum gap before the next booking to seat a walk-in"
    )

    utilization_operating_hours: int = Field(
        default=12,
        alias="UTILIZATION_OPERATING_HOURS",
        description="Operating hours assumed by utilization statistics"
    )

    hours_cache_seconds: int = Field(
        default=300,
        alias="HOURS_CACHE_SECONDS",
        description="TTL for cached opening-hours lookups"
    )

    request_expiry_hours: int = Field(
        default=24,
        alias="REQUEST_EXPIRY_HOURS",
        description="Hours before an unanswered booking request auto-declines"
    )

    slot_duration_minutes: int = Field(
        default=30,
        alias="SLOT_DURATION_MINUTES",
        description="Granularity of generated time slots"
    )

    meal_duration_minutes: int = Field(
        default=90,
        alias="MEAL_DURATION_MINUTES",
        description="Minimum meal length that must fit before closing time"
    )

    # Twilio SMS Configuration
    twilio_account_sid: Optional[str] = Field(
        default=None,
        alias="TWILIO_ACCOUNT_SID",
        description="Twilio Account SID"
    )

    twilio_auth_token: Optional[str] = Field(
        default=None,
        alias="TWILIO_AUTH_TOKEN",
        description="Twilio Auth Token"
    )

    twilio_phone_number: Optional[str] = Field(
        default=None,
        alias="TWILIO_PHONE_NUMBER",
        description="Twilio phone number (sender)"
    )

    # SendGrid Email Configuration
    sendgrid_api_key: Optional[str] = Field(
        default=None,
        alias="SENDGRID_API_KEY",
        description="SendGrid API key"
    )

    sendgrid_from_email: str = Field(
        default="alerts@restaurant-dashboard.local",
        alias="SENDGRID_FROM_EMAIL",
        description="Sender address for staff alert emails"
    )

    # HTTP server
    api_host: str = Field(default="127.0.0.1", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    @property
    def sms_configured(self) -> bool:
        """True when all Twilio credentials are present."""
        return bool(
            self.twilio_account_sid
            and self.twilio_auth_token
            and self.twilio_phone_number
        )

    @property
    def email_configured(self) -> bool:
        """True when a SendGrid API key is present."""
        return bool(self.sendgrid_api_key)


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get or create the global settings instance.

    Returns:
        Settings instance with loaded configuration
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
