"""
Database initialization and seeding script for the restaurant dashboard.

This script:
1. Initializes the database connection
2. Creates all tables (optionally dropping them first)
3. Seeds a demo restaurant with tables, opening hours, a small menu and an owner
"""
import argparse
import sys
from datetime import time
from typing import List, Optional

from dotenv import load_dotenv
from sqlalchemy.exc import SQLAlchemyError

from .config import get_settings
from .models.database import (
    MenuCategory,
    MenuItem,
    Profile,
    Restaurant,
    RestaurantHours,
    RestaurantStaff,
    RestaurantTable,
    create_tables,
    drop_tables,
    get_db_session,
    init_db,
)
from .models.enums import StaffRole
from .services.staff_service import get_role_permissions

DEMO_RESTAURANT = "Demo Bistro"

# (number, capacity, min, section, combinable table numbers)
DEMO_TABLES = [
    ("T1", 2, 1, "window", ["T2"]),
    ("T2", 2, 1, "window", ["T1"]),
    ("T3", 4, 2, "main", []),
    ("T4", 4, 2, "main", []),
    ("T5", 6, 3, "main", []),
    ("B1", 8, 5, "booth", []),
]

# day_of_week -> shifts; Monday is 0
DEMO_HOURS = {
    0: [(time(11, 0), time(22, 0))],
    1: [(time(11, 0), time(22, 0))],
    2: [(time(11, 0), time(22, 0))],
    3: [(time(11, 0), time(22, 0))],
    4: [(time(11, 0), time(15, 0)), (time(17, 0), time(23, 0))],
    5: [(time(10, 0), time(23, 0))],
    6: [(time(10, 0), time(21, 0))],
}

DEMO_MENU = {
    "Starters": [
        ("Tomato Soup", 7.5, ["vegetarian"], []),
        ("Calamari", 9.0, [], ["shellfish"]),
    ],
    "Mains": [
        ("Grilled Salmon", 21.0, ["gluten_free"], ["fish"]),
        ("Mushroom Risotto", 17.5, ["vegetarian"], ["dairy"]),
    ],
    "Desserts": [
        ("Chocolate Tart", 8.0, ["vegetarian"], ["dairy", "gluten"]),
    ],
}


def seed_demo_restaurant(owner_id: str, owner_email: Optional[str] = None) -> None:
    """
    Seed a demo restaurant unless one with the same name exists.

    Args:
        owner_id: Profile id that becomes the restaurant owner
        owner_email: Optional email stored on the owner profile
    """
    with get_db_session() as session:
        existing = session.query(Restaurant).filter_by(name=DEMO_RESTAURANT).first()
        if existing:
            print(f"✓ Demo restaurant already exists (id={existing.id})")
            return

        profile = session.get(Profile, owner_id)
        if profile is None:
            profile = Profile(id=owner_id, full_name="Demo Owner", email=owner_email)
            session.add(profile)

        restaurant = Restaurant(
            name=DEMO_RESTAURANT,
            phone="+15555550100",
            email="hello@demo-bistro.local",
            booking_window_days=30,
            table_turnover_minutes=120,
            min_party_size=1,
            max_party_size=12,
        )
        session.add(restaurant)
        session.flush()

        tables = {}
        for number, capacity, min_capacity, section, combinable in DEMO_TABLES:
            tables[number] = RestaurantTable(
                restaurant_id=restaurant.id,
                table_number=number,
                capacity=capacity,
                min_capacity=min_capacity,
                section=section,
                is_combinable=bool(combinable),
            )
            session.add(tables[number])
        session.flush()

        # combinable_with stores table ids, known only after the flush
        for number, _, _, _, combinable in DEMO_TABLES:
            tables[number].combinable_with = [tables[other].id for other in combinable]

        for day, shifts in DEMO_HOURS.items():
            for open_time, close_time in shifts:
                session.add(
                    RestaurantHours(
                        restaurant_id=restaurant.id,
                        day_of_week=day,
                        open_time=open_time,
                        close_time=close_time,
                    )
                )

        for order, (category_name, items) in enumerate(DEMO_MENU.items()):
            category = MenuCategory(
                restaurant_id=restaurant.id,
                name=category_name,
                display_order=order,
            )
            session.add(category)
            session.flush()
            for item_order, (name, price, dietary, allergens) in enumerate(items):
                session.add(
                    MenuItem(
                        restaurant_id=restaurant.id,
                        category_id=category.id,
                        name=name,
                        price=price,
                        dietary_tags=dietary,
                        allergens=allergens,
                        display_order=item_order,
                    )
                )

        session.add(
            RestaurantStaff(
                restaurant_id=restaurant.id,
                user_id=owner_id,
                role=StaffRole.OWNER.value,
                permissions=get_role_permissions(StaffRole.OWNER),
            )
        )

        print(f"✓ Created demo restaurant '{DEMO_RESTAURANT}':")
        print(f"  - Tables: {', '.join(t[0] for t in DEMO_TABLES)}")
        print(f"  - Menu categories: {', '.join(DEMO_MENU)}")
        print(f"  - Owner: {owner_id}")


def initialize_database(
    database_url: Optional[str] = None,
    reset: bool = False,
    seed: bool = False,
    owner_id: str = "demo-owner",
) -> None:
    """
    Initialize the database: create tables and optionally seed demo data.

    Args:
        database_url: Optional connection string; defaults to DATABASE_URL
        reset: Drop all tables before creating them
        seed: Insert the demo restaurant
        owner_id: Profile id for the demo owner
    """
    print("Initializing database...")

    engine = init_db(database_url)
    print(f"✓ Connected to database: {engine.url.render_as_string(hide_password=True)}")

    if reset:
        print("\nDropping existing tables...")
        drop_tables()
        print("✓ Tables dropped")

    print("\nCreating database tables...")
    create_tables()
    print("✓ Tables created successfully")

    if seed:
        print("\nSeeding demo data...")
        seed_demo_restaurant(owner_id)

    print("\n" + "=" * 50)
    print("Database initialization complete!")
    print("=" * 50)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the database initialization script.

    Returns:
        Process exit code
    """
    parser = argparse.ArgumentParser(description="Create the restaurant dashboard schema")
    parser.add_argument("--database-url", help="Override DATABASE_URL")
    parser.add_argument("--reset", action="store_true", help="Drop all tables first")
    parser.add_argument("--seed", action="store_true", help="Insert a demo restaurant")
    parser.add_argument("--owner-id", default="demo-owner", help="Profile id of the demo owner")
    args = parser.parse_args(argv)

    load_dotenv()

    print("=" * 50)
    print("Restaurant Dashboard - Database Setup")
    print("=" * 50 + "\n")

    try:
        initialize_database(
            args.database_url or get_settings().database_url,
            reset=args.reset,
            seed=args.seed,
            owner_id=args.owner_id,
        )
    except SQLAlchemyError as e:
        print(f"\n✗ Error during database initialization: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
