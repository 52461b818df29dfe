"""
SQLAlchemy database models and session management for the restaurant dashboard.

Every operational table is scoped to a restaurant. Profiles are global and
identify users of the external auth provider by their string id.
"""
from contextlib import contextmanager
from datetime import datetime
from typing import Generator, Optional
from loguru import logger

from sqlalchemy import (
    create_engine,
    text,
    Column,
    Integer,
    String,
    Text,
    Date,
    Time,
    DateTime,
    Boolean,
    Numeric,
    Enum,
    ForeignKey,
    Index,
    UniqueConstraint,
    CheckConstraint,
    JSON,
)
from sqlalchemy.orm import declarative_base, relationship, Session, sessionmaker
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, DisconnectionError
from sqlalchemy.pool import StaticPool

from ..config import get_settings
from ..error_handling.exceptions import DatabaseConnectionError
from ..error_handling.handlers import retry_on_error
from .enums import DiningStatus, RestaurantTier, BookingPolicy, StaffRole

# Create declarative base
Base = declarative_base()

# Database engine and session factory (initialized by init_db)
engine: Optional[Engine] = None
SessionLocal: Optional[sessionmaker] = None


class Restaurant(Base):
    """
    Restaurant with the booking rules applied to its reservations.
    """
    __tablename__ = "restaurants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    tier = Column(
        Enum(*[t.value for t in RestaurantTier], name="restaurant_tier"),
        nullable=False,
        default=RestaurantTier.PRO.value,
    )
    booking_policy = Column(
        Enum(*[p.value for p in BookingPolicy], name="booking_policy"),
        nullable=False,
        default=BookingPolicy.INSTANT.value,
    )
    booking_window_days = Column(Integer, nullable=False, default=30)
    table_turnover_minutes = Column(Integer, nullable=False, default=120)
    request_expiry_hours = Column(Integer, nullable=False, default=24)
    auto_decline_enabled = Column(Boolean, nullable=False, default=True)
    min_party_size = Column(Integer, nullable=False, default=1)
    max_party_size = Column(Integer, nullable=False, default=20)
    status = Column(String(20), nullable=False, default="active")
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    tables = relationship("RestaurantTable", back_populates="restaurant")

    __table_args__ = (
        CheckConstraint("min_party_size >= 1", name="ck_restaurant_min_party"),
        CheckConstraint("max_party_size >= min_party_size", name="ck_restaurant_party_range"),
    )

    def __repr__(self) -> str:
        return (
            f"<Restaurant(id={self.id}, name='{self.name}', tier='{self.tier}', "
            f"policy='{self.booking_policy}')>"
        )


class Profile(Base):
    """
    User profile mirrored from the external auth provider.
    """
    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)
    full_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    phone_number = Column(String(50), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    def __repr__(self) -> str:
        return f"<Profile(id='{self.id}', full_name='{self.full_name}')>"


class RestaurantTable(Base):
    """
    Physical table with capacity limits and combination rules.

    combinable_with holds ids of tables this one may be joined with; an
    empty list means any combinable table.
    """
    __tablename__ = "restaurant_tables"

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False)
    table_number = Column(String(20), nullable=False)
    table_type = Column(String(30), nullable=False, default="standard")
    capacity = Column(Integer, nullable=False)
    min_capacity = Column(Integer, nullable=False, default=1)
    max_capacity = Column(Integer, nullable=True)
    section = Column(String(50), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_combinable = Column(Boolean, nullable=False, default=True)
    combinable_with = Column(JSON, nullable=False, default=list)
    priority_score = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    restaurant = relationship("Restaurant", back_populates="tables")

    __table_args__ = (
        UniqueConstraint("restaurant_id", "table_number", name="uq_table_restaurant_number"),
        CheckConstraint("capacity > 0", name="ck_table_capacity_positive"),
        CheckConstraint("min_capacity >= 1 AND min_capacity <= capacity", name="ck_table_min_capacity"),
        Index("ix_table_restaurant", "restaurant_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<RestaurantTable(id={self.id}, number='{self.table_number}', "
            f"capacity={self.capacity}, active={self.is_active})>"
        )


class Booking(Base):
    """
    Booking model representing a reservation or walk-in at a restaurant.
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(64), ForeignKey("profiles.id"), nullable=True)
    guest_name = Column(String(255), nullable=True)
    guest_email = Column(String(255), nullable=True)
    guest_phone = Column(String(50), nullable=True)
    booking_time = Column(DateTime, nullable=False)
    party_size = Column(Integer, nullable=False)
    turn_time_minutes = Column(Integer, nullable=False, default=120)
    status = Column(
        Enum(*DiningStatus.values(), name="dining_status"),
        nullable=False,
        default=DiningStatus.PENDING.value,
    )
    confirmation_code = Column(String(16), nullable=False, unique=True)
    source = Column(String(20), nullable=False, default="manual")
    special_requests = Column(Text, nullable=True)
    occasion = Column(String(50), nullable=True)
    applied_offer_id = Column(String(64), nullable=True)
    request_expires_at = Column(DateTime, nullable=True)
    confirmed_at = Column(DateTime, nullable=True)
    checked_in_at = Column(DateTime, nullable=True)
    seated_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    decline_reason = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    user = relationship("Profile")
    tables = relationship(
        "RestaurantTable",
        secondary="booking_tables",
        order_by="RestaurantTable.table_number",
        viewonly=True,
    )
    table_links = relationship(
        "BookingTable",
        back_populates="booking",
        cascade="all, delete-orphan",
    )
    status_history = relationship(
        "BookingStatusHistory",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingStatusHistory.id",
    )

    __table_args__ = (
        CheckConstraint("party_size >= 1", name="ck_booking_party_size"),
        CheckConstraint("turn_time_minutes > 0", name="ck_booking_turn_time"),
        Index("ix_booking_restaurant_time", "restaurant_id", "booking_time"),
        Index("ix_booking_restaurant_status", "restaurant_id", "status"),
    )

    @property
    def table_ids(self) -> list:
        """Ids of the tables currently assigned to this booking."""
        return sorted(link.table_id for link in self.table_links)

    @property
    def display_name(self) -> str:
        """Guest name, falling back to the linked profile."""
        if self.guest_name:
            return self.guest_name
        if self.user is not None and self.user.full_name:
            return self.user.full_name
        return "Guest"

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, restaurant_id={self.restaurant_id}, "
            f"booking_time={self.booking_time}, party_size={self.party_size}, "
            f"status='{self.status}', code='{self.confirmation_code}')>"
        )


class BookingTable(Base):
    """
    Assignment of a table to a booking.
    """
    __tablename__ = "booking_tables"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False)
    table_id = Column(Integer, ForeignKey("restaurant_tables.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    booking = relationship("Booking", back_populates="table_links")
    table = relationship("RestaurantTable")

    __table_args__ = (
        UniqueConstraint("booking_id", "table_id", name="uq_booking_table"),
        Index("ix_booking_table_table", "table_id"),
    )

    def __repr__(self) -> str:
        return f"<BookingTable(booking_id={self.booking_id}, table_id={self.table_id})>"


class BookingStatusHistory(Base):
    """
    Audit row written for every status change of a booking.
    """
    __tablename__ = "booking_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False)
    old_status = Column(String(30), nullable=True)
    new_status = Column(String(30), nullable=False)
    changed_by = Column(String(64), nullable=True)
    changed_at = Column(DateTime, nullable=False, default=datetime.now)
    reason = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, nullable=True)

    booking = relationship("Booking", back_populates="status_history")

    __table_args__ = (
        Index("ix_status_history_booking", "booking_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<BookingStatusHistory(booking_id={self.booking_id}, "
            f"{self.old_status} -> {self.new_status})>"
        )


class RestaurantStaff(Base):
    """
    Staff membership linking a profile to a restaurant with a role.
    """
    __tablename__ = "restaurant_staff"

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(64), ForeignKey("profiles.id"), nullable=False)
    role = Column(
        Enum(*[r.value for r in StaffRole], name="staff_role"),
        nullable=False,
        default=StaffRole.STAFF.value,
    )
    permissions = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    user = relationship("Profile")

    __table_args__ = (
        UniqueConstraint("restaurant_id", "user_id", name="uq_staff_restaurant_user"),
    )

    def __repr__(self) -> str:
        return (
            f"<RestaurantStaff(restaurant_id={self.restaurant_id}, user_id='{self.user_id}', "
            f"role='{self.role}', active={self.is_active})>"
        )


class MenuCategory(Base):
    """
    Menu section such as starters or desserts.
    """
    __tablename__ = "menu_categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    items = relationship("MenuItem", back_populates="category")

    __table_args__ = (
        UniqueConstraint("restaurant_id", "name", name="uq_menu_category_name"),
    )

    def __repr__(self) -> str:
        return f"<MenuCategory(id={self.id}, name='{self.name}', order={self.display_order})>"


class MenuItem(Base):
    """
    Dish or drink offered by a restaurant.
    """
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False)
    category_id = Column(Integer, ForeignKey("menu_categories.id"), nullable=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    dietary_tags = Column(JSON, nullable=False, default=list)
    allergens = Column(JSON, nullable=False, default=list)
    calories = Column(Integer, nullable=True)
    preparation_time_minutes = Column(Integer, nullable=True)
    is_available = Column(Boolean, nullable=False, default=True)
    is_featured = Column(Boolean, nullable=False, default=False)
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    category = relationship("MenuCategory", back_populates="items")

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_menu_item_price"),
        Index("ix_menu_item_restaurant_category", "restaurant_id", "category_id"),
    )

    def __repr__(self) -> str:
        return f"<MenuItem(id={self.id}, name='{self.name}', price={self.price})>"


class RestaurantVIPUser(Base):
    """
    VIP grant giving a user an extended booking window at one restaurant.
    """
    __tablename__ = "restaurant_vip_users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(64), ForeignKey("profiles.id"), nullable=False)
    extended_booking_days = Column(Integer, nullable=False, default=60)
    priority_booking = Column(Boolean, nullable=False, default=True)
    valid_until = Column(DateTime, nullable=False)
    notes = Column(Text, nullable=True)
    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    user = relationship("Profile")

    __table_args__ = (
        CheckConstraint("extended_booking_days > 0", name="ck_vip_extended_days"),
        Index("ix_vip_restaurant_user", "restaurant_id", "user_id"),
    )

    def is_active(self, now: Optional[datetime] = None) -> bool:
        """True while the grant has not expired."""
        return self.valid_until >= (now or datetime.now())

    def __repr__(self) -> str:
        return (
            f"<RestaurantVIPUser(restaurant_id={self.restaurant_id}, user_id='{self.user_id}', "
            f"valid_until={self.valid_until})>"
        )


class NotificationPreference(Base):
    """
    Per staff member notification settings for one restaurant.
    """
    __tablename__ = "notification_preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(64), ForeignKey("profiles.id"), nullable=False)

    # Email
    email_new_booking = Column(Boolean, nullable=False, default=True)
    email_booking_cancelled = Column(Boolean, nullable=False, default=True)
    email_booking_modified = Column(Boolean, nullable=False, default=True)
    email_new_review = Column(Boolean, nullable=False, default=True)
    email_new_vip = Column(Boolean, nullable=False, default=True)
    email_daily_summary = Column(Boolean, nullable=False, default=False)
    email_weekly_report = Column(Boolean, nullable=False, default=True)

    # SMS
    sms_new_booking = Column(Boolean, nullable=False, default=False)
    sms_booking_cancelled = Column(Boolean, nullable=False, default=False)
    sms_no_show_alert = Column(Boolean, nullable=False, default=False)

    # Push
    push_new_booking = Column(Boolean, nullable=False, default=True)
    push_booking_reminder = Column(Boolean, nullable=False, default=True)
    push_table_ready = Column(Boolean, nullable=False, default=True)

    # In-app
    app_all_activities = Column(Boolean, nullable=False, default=True)
    app_mention_only = Column(Boolean, nullable=False, default=False)

    # Quiet hours ("HH:MM")
    quiet_hours_enabled = Column(Boolean, nullable=False, default=False)
    quiet_hours_start = Column(String(5), nullable=False, default="22:00")
    quiet_hours_end = Column(String(5), nullable=False, default="08:00")

    summary_frequency = Column(String(10), nullable=False, default="weekly")
    summary_time = Column(String(5), nullable=False, default="09:00")

    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        UniqueConstraint("restaurant_id", "user_id", name="uq_notification_pref_restaurant_user"),
    )

    def __repr__(self) -> str:
        return (
            f"<NotificationPreference(restaurant_id={self.restaurant_id}, "
            f"user_id='{self.user_id}')>"
        )


class Notification(Base):
    """
    In-app alert shown to a staff member.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(64), ForeignKey("profiles.id"), nullable=False)
    type = Column(String(40), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True)
    data = Column(JSON, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    __table_args__ = (
        Index("ix_notification_user_read", "user_id", "is_read"),
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, user_id='{self.user_id}', type='{self.type}')>"


class RestaurantHours(Base):
    """
    Regular weekly opening shift. Several rows per weekday model split shifts.

    day_of_week follows Python's date.weekday(): Monday is 0, Sunday is 6.
    A close_time earlier than open_time runs past midnight.
    """
    __tablename__ = "restaurant_hours"

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False)
    day_of_week = Column(Integer, nullable=False)
    is_open = Column(Boolean, nullable=False, default=True)
    open_time = Column(Time, nullable=True)
    close_time = Column(Time, nullable=True)

    __table_args__ = (
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_hours_day_of_week"),
        Index("ix_hours_restaurant_day", "restaurant_id", "day_of_week"),
    )

    def __repr__(self) -> str:
        return (
            f"<RestaurantHours(day={self.day_of_week}, open={self.open_time}, "
            f"close={self.close_time}, is_open={self.is_open})>"
        )


class RestaurantSpecialHours(Base):
    """
    Hours for one specific date, overriding the weekly schedule.
    """
    __tablename__ = "restaurant_special_hours"

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    is_closed = Column(Boolean, nullable=False, default=False)
    open_time = Column(Time, nullable=True)
    close_time = Column(Time, nullable=True)
    reason = Column(String(255), nullable=True)

    __table_args__ = (
        UniqueConstraint("restaurant_id", "date", name="uq_special_hours_date"),
    )

    def __repr__(self) -> str:
        return f"<RestaurantSpecialHours(date={self.date}, closed={self.is_closed})>"


class RestaurantClosure(Base):
    """
    Temporary closure over a date range, optionally limited to a time window.
    """
    __tablename__ = "restaurant_closures"

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    reason = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_closure_range"),
        Index("ix_closure_restaurant_dates", "restaurant_id", "start_date", "end_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<RestaurantClosure(start={self.start_date}, end={self.end_date}, "
            f"reason='{self.reason}')>"
        )


# ============================================================================
# Engine and Session Management
# ============================================================================

def get_database_url() -> str:
    """
    Get database URL from settings.

    Returns:
        Database connection string
    """
    return get_settings().database_url


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine with options suited to the backend.

    SQLite connections are shared across threads (FastAPI runs sync routes in
    a threadpool) and in-memory databases use a single static connection.

    Args:
        database_url: SQLAlchemy connection string
        echo: Log emitted SQL

    Returns:
        SQLAlchemy Engine instance
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=echo, **kwargs)

    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


def init_db(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Initialize database engine and session factory.

    Args:
        database_url: Optional database connection string. If not provided,
            the DATABASE_URL setting is used.
        echo: Log emitted SQL

    Returns:
        SQLAlchemy Engine instance
    """
    global engine, SessionLocal

    url = database_url or get_database_url()
    engine = build_engine(url, echo=echo)
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    logger.info(f"Database engine initialised for {engine.url.get_backend_name()}")
    return engine


def create_tables() -> None:
    """
    Create all tables in the database.

    Raises:
        RuntimeError: If engine is not initialized
    """
    if engine is None:
        raise RuntimeError("Database engine not initialized. Call init_db() first.")

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")


def drop_tables() -> None:
    """
    Drop all tables. Only used by tests and the reset option of db_init.

    Raises:
        RuntimeError: If engine is not initialized
    """
    if engine is None:
        raise RuntimeError("Database engine not initialized. Call init_db() first.")

    Base.metadata.drop_all(bind=engine)
    logger.warning("Database tables dropped")


@retry_on_error(max_retries=3, exceptions=(OperationalError, DisconnectionError), backoff_factor=1.0)
def _ping(bound_engine: Engine) -> None:
    with bound_engine.connect() as conn:
        conn.execute(text("SELECT 1"))


def check_connection() -> None:
    """
    Verify the database answers, retrying transient connection failures.

    Raises:
        DatabaseConnectionError: If the database stays unreachable
        RuntimeError: If engine is not initialized
    """
    if engine is None:
        raise RuntimeError("Database engine not initialized. Call init_db() first.")

    try:
        _ping(engine)
    except (OperationalError, DisconnectionError) as e:
        logger.error(f"Database connection failed: {e}")
        raise DatabaseConnectionError(
            "Database connection failed after retries",
            original_error=e
        ) from e


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Commits when the block succeeds and rolls back on any exception.

    Yields:
        SQLAlchemy Session instance

    Raises:
        RuntimeError: If session factory is not initialized
    """
    if SessionLocal is None:
        raise RuntimeError("Session factory not initialized. Call init_db() first.")

    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency yielding a session per request.

    Services commit their own units of work; anything left open is rolled
    back when the request ends.

    Yields:
        SQLAlchemy Session instance
    """
    if SessionLocal is None:
        raise RuntimeError("Session factory not initialized. Call init_db() first.")

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
