"""
Tests for StaffService and the role permission tables.
"""
import pytest

from restaurant_dashboard.error_handling.exceptions import (
    BookingValidationError,
    DuplicateError,
    NotFoundError,
    PermissionDeniedError,
)
from restaurant_dashboard.models.enums import StaffRole
from restaurant_dashboard.models.schemas import StaffCreate, StaffUpdate
from restaurant_dashboard.services.staff_service import (
    ALL_PERMISSIONS,
    StaffService,
    get_role_permissions,
    validate_permissions,
)


@pytest.fixture
def staff(db_session, restaurant):
    return StaffService(db_session)


def membership_id(staff, restaurant, user_id):
    return staff.get_membership(restaurant.id, user_id, active_only=False).id


class TestRolePermissions:
    def test_owner_has_everything(self):
        assert get_role_permissions(StaffRole.OWNER) == ALL_PERMISSIONS

    def test_manager_cannot_delete(self):
        manager = get_role_permissions("manager")
        assert "bookings.edit" in manager
        assert "bookings.delete" not in manager
        assert "staff.remove" not in manager

    def test_viewer_is_read_only(self):
        assert all(p.endswith(".view") for p in get_role_permissions(StaffRole.VIEWER))

    def test_validate_permissions_dedupes(self):
        assert validate_permissions(["menu.view", "menu.edit", "menu.view"]) == ["menu.view", "menu.edit"]

    def test_unknown_permission(self):
        with pytest.raises(BookingValidationError) as exc_info:
            validate_permissions(["menu.view", "kitchen.burn"])
        assert exc_info.value.value == ["kitchen.burn"]


class TestPermissionChecks:
    def test_owner_bypasses_stored_list(self, db_session, staff, restaurant):
        owner = staff.get_membership(restaurant.id, "owner-1")
        owner.permissions = []
        db_session.commit()
        assert staff.has_permission(restaurant.id, "owner-1", "staff.remove") is True

    def test_staff_member_permissions(self, staff, restaurant):
        assert staff.has_permission(restaurant.id, "staff-1", "bookings.checkin") is True
        assert staff.has_permission(restaurant.id, "staff-1", "menu.delete") is False

    def test_non_member(self, staff, restaurant):
        assert staff.has_permission(restaurant.id, "guest-1", "bookings.view") is False

    def test_require_permission_raises(self, staff, restaurant):
        with pytest.raises(PermissionDeniedError) as exc_info:
            staff.require_permission(restaurant.id, "staff-1", "analytics.view")
        assert exc_info.value.permission == "analytics.view"

    def test_require_permission_without_user(self, staff, restaurant):
        with pytest.raises(PermissionDeniedError):
            staff.require_permission(restaurant.id, None, "bookings.view")

    def test_require_permission_returns_membership(self, staff, restaurant):
        membership = staff.require_permission(restaurant.id, "staff-1", "bookings.view")
        assert membership.user_id == "staff-1"


class TestMembership:
    """Test adding, updating and removing staff."""

    def test_add_with_role_defaults(self, staff, restaurant):
        member = staff.add_staff(restaurant.id, StaffCreate(user_id="guest-1", role="manager"), created_by="owner-1")
        assert member.role == "manager"
        assert member.permissions == get_role_permissions(StaffRole.MANAGER)
        assert member.created_by == "owner-1"

    def test_add_with_custom_permissions(self, staff, restaurant):
        member = staff.add_staff(
            restaurant.id, StaffCreate(user_id="guest-1", permissions=["bookings.view"]), created_by="owner-1"
        )
        assert member.permissions == ["bookings.view"]

    def test_add_existing_member(self, staff, restaurant):
        with pytest.raises(DuplicateError):
            staff.add_staff(restaurant.id, StaffCreate(user_id="staff-1"), created_by="owner-1")

    def test_add_unknown_profile(self, staff, restaurant):
        with pytest.raises(NotFoundError):
            staff.add_staff(restaurant.id, StaffCreate(user_id="ghost"), created_by="owner-1")

    def test_removed_member_can_return(self, staff, restaurant):
        staff_id = membership_id(staff, restaurant, "staff-1")
        staff.remove_staff(restaurant.id, staff_id, removed_by="owner-1")
        assert [m.user_id for m in staff.list_staff(restaurant.id)] == ["owner-1"]

        member = staff.add_staff(restaurant.id, StaffCreate(user_id="staff-1", role="viewer"), created_by="owner-1")
        assert member.id == staff_id
        assert member.is_active is True
        assert member.role == "viewer"

    def test_list_includes_inactive_on_request(self, staff, restaurant):
        staff.remove_staff(restaurant.id, membership_id(staff, restaurant, "staff-1"), removed_by="owner-1")
        assert len(staff.list_staff(restaurant.id, include_inactive=True)) == 2

    def test_role_change_resets_permissions(self, staff, restaurant):
        staff_id = membership_id(staff, restaurant, "staff-1")
        member = staff.update_staff(restaurant.id, staff_id, StaffUpdate(role="manager"), updated_by="owner-1")
        assert member.permissions == get_role_permissions(StaffRole.MANAGER)

    def test_permission_override(self, staff, restaurant):
        staff_id = membership_id(staff, restaurant, "staff-1")
        member = staff.update_staff(
            restaurant.id,
            staff_id,
            StaffUpdate(permissions=["bookings.view", "analytics.view"]),
            updated_by="owner-1",
        )
        assert member.role == "staff"
        assert staff.has_permission(restaurant.id, "staff-1", "analytics.view")

    def test_last_owner_cannot_be_demoted(self, staff, restaurant):
        owner_id = membership_id(staff, restaurant, "owner-1")
        with pytest.raises(BookingValidationError) as exc_info:
            staff.update_staff(restaurant.id, owner_id, StaffUpdate(role="manager"), updated_by="owner-1")
        assert exc_info.value.user_message == "A restaurant must keep at least one owner"

    def test_owner_row_cannot_be_removed(self, staff, restaurant):
        owner_id = membership_id(staff, restaurant, "owner-1")
        with pytest.raises(BookingValidationError):
            staff.remove_staff(restaurant.id, owner_id, removed_by="owner-1")
        assert staff.get_membership(restaurant.id, "owner-1") is not None

    def test_owner_row_cannot_be_deactivated(self, staff, restaurant):
        owner_id = membership_id(staff, restaurant, "owner-1")
        with pytest.raises(BookingValidationError):
            staff.update_staff(restaurant.id, owner_id, StaffUpdate(is_active=False), updated_by="owner-1")

    def test_owner_leaves_after_handover(self, staff, restaurant):
        staff.update_staff(
            restaurant.id, membership_id(staff, restaurant, "staff-1"), StaffUpdate(role="owner"), updated_by="owner-1"
        )
        owner_id = membership_id(staff, restaurant, "owner-1")
        staff.update_staff(restaurant.id, owner_id, StaffUpdate(role="viewer"), updated_by="owner-1")
        staff.remove_staff(restaurant.id, owner_id, removed_by="staff-1")
        assert staff.get_membership(restaurant.id, "owner-1") is None

    def test_unknown_membership(self, staff, restaurant):
        with pytest.raises(NotFoundError):
            staff.remove_staff(restaurant.id, 999, removed_by="owner-1")


class TestActorChecks:
    """Test what non-owners may do to other memberships."""

    @pytest.fixture
    def manager(self, staff, restaurant):
        return staff.add_staff(restaurant.id, StaffCreate(user_id="guest-1", role="manager"), created_by="owner-1")

    def test_manager_cannot_promote_self(self, staff, restaurant, manager):
        with pytest.raises(PermissionDeniedError):
            staff.update_staff(restaurant.id, manager.id, StaffUpdate(role="owner"), updated_by="guest-1")
        assert staff.get_membership(restaurant.id, "guest-1").role == "manager"

    def test_manager_cannot_appoint_owner(self, staff, restaurant, manager):
        staff.remove_staff(restaurant.id, membership_id(staff, restaurant, "staff-1"), removed_by="owner-1")
        with pytest.raises(PermissionDeniedError):
            staff.add_staff(restaurant.id, StaffCreate(user_id="staff-1", role="owner"), created_by="guest-1")

    def test_manager_cannot_touch_owner(self, staff, restaurant, manager):
        owner_id = membership_id(staff, restaurant, "owner-1")
        with pytest.raises(PermissionDeniedError):
            staff.update_staff(restaurant.id, owner_id, StaffUpdate(is_active=False), updated_by="guest-1")
        with pytest.raises(PermissionDeniedError):
            staff.remove_staff(restaurant.id, owner_id, removed_by="guest-1")
        assert staff.get_membership(restaurant.id, "owner-1").is_active is True

    def test_manager_cannot_grant_missing_permission(self, staff, restaurant, manager):
        with pytest.raises(PermissionDeniedError) as exc_info:
            staff.update_staff(
                restaurant.id, manager.id, StaffUpdate(permissions=["restaurant.edit"]), updated_by="guest-1"
            )
        assert exc_info.value.permission == "restaurant.edit"

    def test_manager_edits_staff_within_own_permissions(self, staff, restaurant, manager):
        staff_id = membership_id(staff, restaurant, "staff-1")
        member = staff.update_staff(
            restaurant.id, staff_id, StaffUpdate(permissions=["bookings.view", "tables.edit"]), updated_by="guest-1"
        )
        assert member.permissions == ["bookings.view", "tables.edit"]

    def test_non_member_actor(self, staff, restaurant):
        with pytest.raises(PermissionDeniedError):
            staff.update_staff(
                restaurant.id, membership_id(staff, restaurant, "staff-1"), StaffUpdate(role="viewer"),
                updated_by="ghost",
            )

    def test_rejected_update_leaves_membership_untouched(self, db_session, staff, restaurant):
        owner_id = membership_id(staff, restaurant, "owner-1")
        with pytest.raises(BookingValidationError):
            staff.update_staff(
                restaurant.id,
                owner_id,
                StaffUpdate(role="manager", permissions=["bookings.view"]),
                updated_by="owner-1",
            )
        assert db_session.dirty == set()
        owner = staff.get_membership(restaurant.id, "owner-1")
        assert owner.role == "owner"
        assert owner.permissions == get_role_permissions(StaffRole.OWNER)
