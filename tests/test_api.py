"""
Tests for the HTTP API.

Routes run against the test session through a dependency override, so the
services see the same in-memory database as the fixtures.
"""
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from restaurant_dashboard.api import create_app
from restaurant_dashboard.models.database import get_db

OWNER = {"X-User-Id": "owner-1"}
STAFF = {"X-User-Id": "staff-1"}
GUEST = {"X-User-Id": "guest-1"}


@pytest.fixture
def client(db_session, restaurant, tables):
    app = create_app()

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def base(restaurant):
    return f"/api/restaurants/{restaurant.id}"


@pytest.fixture
def tomorrow_evening():
    when = datetime.now() + timedelta(days=1)
    return when.replace(hour=19, minute=0, second=0, microsecond=0)


@pytest.fixture
def booking(client, base, tables, tomorrow_evening):
    response = client.post(f"{base}/bookings", headers=OWNER, json={
        "booking_time": tomorrow_evening.isoformat(),
        "party_size": 2,
        "guest_name": "Jane Doe",
        "guest_phone": "+14155550123",
        "table_ids": [tables["T2"].id],
    })
    assert response.status_code == 201
    return response.json()


class TestAccess:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_missing_user_header(self, client, base):
        assert client.get(f"{base}/bookings").status_code == 401

    def test_non_member_forbidden(self, client, base):
        response = client.get(f"{base}/bookings", headers=GUEST)
        assert response.status_code == 403
        assert response.json()["error_type"] == "PermissionDeniedError"

    def test_missing_permission(self, client, base):
        assert client.get(f"{base}/analytics", headers=STAFF).status_code == 403

    def test_member_only_route(self, client, base):
        assert client.get(f"{base}/hours", headers=STAFF).status_code == 200
        assert client.get(f"{base}/hours", headers=GUEST).status_code == 403


class TestRestaurants:
    def test_create_makes_caller_owner(self, client):
        response = client.post("/api/restaurants", headers=GUEST, json={"name": "Trattoria Grace"})
        assert response.status_code == 201
        created = response.json()
        assert created["tier"] == "pro"

        fetched = client.get(f"/api/restaurants/{created['id']}", headers=GUEST)
        assert fetched.status_code == 200
        assert fetched.json()["name"] == "Trattoria Grace"

    def test_unknown_owner_profile(self, client):
        response = client.post("/api/restaurants", headers={"X-User-Id": "ghost"}, json={"name": "Nowhere"})
        assert response.status_code == 404


class TestBookingRoutes:
    def test_create(self, booking, tables):
        assert booking["status"] == "confirmed"
        assert booking["table_ids"] == [tables["T2"].id]
        assert booking["confirmation_code"].startswith("BELL")

    def test_schema_validation(self, client, base, tomorrow_evening):
        response = client.post(f"{base}/bookings", headers=OWNER, json={
            "booking_time": tomorrow_evening.isoformat(),
            "party_size": 0,
            "guest_name": "Jane Doe",
        })
        assert response.status_code == 422

    def test_domain_validation(self, client, base, tomorrow_evening):
        response = client.post(f"{base}/bookings", headers=OWNER, json={
            "booking_time": tomorrow_evening.isoformat(),
            "party_size": 13,
            "guest_name": "Big Group",
        })
        assert response.status_code == 422
        body = response.json()
        assert body["error_type"] == "InvalidPartySizeError"
        assert body["message"] == "Party size must be between 1 and 12 guests"

    def test_table_conflict(self, client, base, booking, tables, tomorrow_evening):
        response = client.post(f"{base}/bookings", headers=OWNER, json={
            "booking_time": (tomorrow_evening + timedelta(minutes=30)).isoformat(),
            "party_size": 2,
            "guest_name": "John Roe",
            "table_ids": [tables["T2"].id],
        })
        assert response.status_code == 409
        assert response.json()["error_type"] == "TableUnavailableError"

    def test_invalid_transition(self, client, base, booking):
        response = client.patch(
            f"{base}/bookings/{booking['id']}/status", headers=STAFF, json={"status": "payment"}
        )
        assert response.status_code == 409
        assert response.json()["message"] == "Cannot change status from Confirmed to Payment"

    def test_check_in_and_seat(self, client, base, booking):
        arrived = client.post(f"{base}/bookings/{booking['id']}/check-in", headers=STAFF, json={})
        assert arrived.status_code == 200
        assert arrived.json()["status"] == "arrived"

        seated = client.post(f"{base}/bookings/{booking['id']}/seat", headers=STAFF, json={})
        assert seated.json()["status"] == "seated"

        history = client.get(f"{base}/bookings/{booking['id']}/history", headers=STAFF).json()
        assert [h["new_status"] for h in history] == ["confirmed", "arrived", "seated"]

    def test_transitions_menu(self, client, base, booking):
        menu = client.get(f"{base}/bookings/{booking['id']}/transitions", headers=STAFF).json()
        assert {t["to_status"] for t in menu} == {"arrived", "no_show", "cancelled_by_restaurant"}

    def test_unknown_booking(self, client, base):
        response = client.get(f"{base}/bookings/9999", headers=STAFF)
        assert response.status_code == 404
        assert response.json()["error_type"] == "NotFoundError"

    def test_list_and_stats(self, client, base, booking, tomorrow_evening):
        listed = client.get(f"{base}/bookings", headers=STAFF, params={"search": "jane"}).json()
        assert [b["id"] for b in listed] == [booking["id"]]

        stats = client.get(
            f"{base}/bookings/stats", headers=STAFF, params={"day": tomorrow_evening.date().isoformat()}
        ).json()
        assert stats["all"] == 1
        assert stats["confirmed"] == 1

    @pytest.mark.parametrize("action", ["accept", "check-in", "seat"])
    def test_repeated_table_ids_rejected(self, client, base, booking, tables, action):
        table_id = tables["T2"].id
        response = client.post(
            f"{base}/bookings/{booking['id']}/{action}", headers=OWNER, json={"table_ids": [table_id, table_id]}
        )
        assert response.status_code == 422

    def test_cancel(self, client, base, booking):
        response = client.post(
            f"{base}/bookings/{booking['id']}/cancel", headers=STAFF, json={"reason": "Guest called"}
        )
        assert response.status_code == 200
        assert response.json()["cancellation_reason"] == "Guest called"


class TestFloorRoutes:
    def test_table_status(self, client, base, booking, tomorrow_evening):
        response = client.get(
            f"{base}/tables/status",
            headers=STAFF,
            params={"at": (tomorrow_evening + timedelta(minutes=30)).isoformat()},
        )
        assert response.status_code == 200
        occupied = [t["table_number"] for t in response.json() if t["is_occupied"]]
        assert occupied == ["T2"]

    def test_availability(self, client, base, tomorrow_evening):
        response = client.get(
            f"{base}/tables/availability",
            headers=STAFF,
            params={"booking_time": tomorrow_evening.isoformat(), "party_size": 2},
        )
        assert response.status_code == 200
        assert response.json()[0]["table_numbers"] == ["T1"]

    def test_open_status(self, client, base, tomorrow_evening):
        response = client.get(f"{base}/hours/open", headers=STAFF, params={"at": tomorrow_evening.isoformat()})
        assert response.json()["is_open"] is True


class TestOtherRoutes:
    def test_menu_category_lifecycle(self, client, base):
        created = client.post(f"{base}/menu/categories", headers=OWNER, json={"name": "Starters"})
        assert created.status_code == 201
        duplicate = client.post(f"{base}/menu/categories", headers=OWNER, json={"name": "Starters"})
        assert duplicate.status_code == 409

        names = [c["name"] for c in client.get(f"{base}/menu/categories", headers=STAFF).json()]
        assert names == ["Starters"]

    def test_staff_cannot_delete_menu(self, client, base):
        category = client.post(f"{base}/menu/categories", headers=OWNER, json={"name": "Mains"}).json()
        response = client.delete(f"{base}/menu/categories/{category['id']}", headers=STAFF)
        assert response.status_code == 403

    def test_notifications_inbox(self, client, base, booking):
        inbox = client.get(f"{base}/notifications", headers=STAFF).json()
        assert [n["type"] for n in inbox] == ["new_booking"]

        marked = client.post(f"{base}/notifications/read-all", headers=STAFF).json()
        assert marked == {"updated": 1}

    def test_analytics_defaults_to_last_month(self, client, base):
        report = client.get(f"{base}/analytics", headers=OWNER).json()
        assert len(report["daily_trends"]) == 30
        assert report["total_bookings"] == 0

    def test_staff_listing(self, client, base):
        members = client.get(f"{base}/staff", headers=OWNER).json()
        assert {m["user_id"] for m in members} == {"owner-1", "staff-1"}


class TestStaffRoutes:
    """Test that staff management cannot be used to take over a restaurant."""

    MANAGER = {"X-User-Id": "guest-1"}

    @pytest.fixture
    def manager(self, client, base):
        response = client.post(f"{base}/staff", headers=OWNER, json={"user_id": "guest-1", "role": "manager"})
        assert response.status_code == 201
        return response.json()

    @pytest.fixture
    def owner_row(self, client, base):
        members = client.get(f"{base}/staff", headers=OWNER).json()
        return next(m for m in members if m["user_id"] == "owner-1")

    def test_manager_cannot_promote_self(self, client, base, manager):
        response = client.patch(f"{base}/staff/{manager['id']}", headers=self.MANAGER, json={"role": "owner"})
        assert response.status_code == 403
        assert client.patch(base, headers=self.MANAGER, json={"name": "Mine now"}).status_code == 403

    def test_manager_cannot_deactivate_owner(self, client, base, manager, owner_row):
        response = client.patch(f"{base}/staff/{owner_row['id']}", headers=self.MANAGER, json={"is_active": False})
        assert response.status_code == 403
        assert client.get(f"{base}/staff", headers=OWNER).status_code == 200

    def test_manager_cannot_invite_owner(self, client, base, manager):
        staff_row = next(
            m for m in client.get(f"{base}/staff", headers=OWNER).json() if m["user_id"] == "staff-1"
        )
        assert client.delete(f"{base}/staff/{staff_row['id']}", headers=OWNER).status_code == 204
        response = client.post(f"{base}/staff", headers=self.MANAGER, json={"user_id": "staff-1", "role": "owner"})
        assert response.status_code == 403

    def test_owner_row_cannot_be_removed(self, client, base, owner_row):
        response = client.delete(f"{base}/staff/{owner_row['id']}", headers=OWNER)
        assert response.status_code == 422

    def test_owner_manages_staff(self, client, base, manager):
        response = client.patch(f"{base}/staff/{manager['id']}", headers=OWNER, json={"role": "viewer"})
        assert response.status_code == 200
        assert response.json()["role"] == "viewer"
