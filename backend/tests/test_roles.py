"""
Role store, authorization guard and user administration tests.

Verifies:
- The admin grant can never be removed
- Nobody modifies their own roles, restriction or account
- Duplicate grants conflict instead of duplicating rows
- Denials are audited and leave no partial writes
- Deleting a user removes their grants, messages and notifications
"""

import pytest

from storefront.errors import AccessDenied, ConflictError, NotFound, ValidationError
from storefront.models import Message, Notification, Order, SecurityEvent, User, UserRole
from storefront.roles import ROLE_ADMIN, ROLE_DELIVERY, ROLE_EMPLOYEE
from storefront.services import message_service, order_service, role_service, user_admin_service
from storefront.services.message_service import AllAdmins, SpecificUser


# =============================================================================
# ROLE STORE
# =============================================================================


class TestRoleStore:

    def test_no_grants_means_plain_user(self, ctx, customer):
        c = ctx(customer)
        assert role_service.get_roles(customer.id) == set()
        assert not c.is_staff
        assert not c.is_admin

    def test_multiple_roles(self, ctx, make_user):
        user = make_user("multi@storefront.test", roles=(ROLE_EMPLOYEE, ROLE_DELIVERY))
        c = ctx(user)
        assert c.is_employee and c.is_delivery
        assert not c.is_admin
        assert role_service.is_staff(user.id)

    def test_user_ids_with_role(self, admin, admin2, employee):
        assert role_service.user_ids_with_role(ROLE_ADMIN) == sorted([admin.id, admin2.id])
        assert role_service.user_ids_with_role(ROLE_EMPLOYEE) == [employee.id]


# =============================================================================
# GUARD
# =============================================================================


class TestGuard:

    def test_denial_is_audited(self, db_session, ctx, customer):
        with pytest.raises(AccessDenied):
            role_service.require_admin(ctx(customer), action="list_users")

        event = db_session.query(SecurityEvent).filter_by(user_id=customer.id).one()
        assert event.event_type == "ACCESS_DENIED"
        assert event.action == "list_users"
        assert event.success is False

    def test_any_of_roles(self, ctx, employee):
        role_service.require_role(ctx(employee), ROLE_ADMIN, ROLE_EMPLOYEE)
        with pytest.raises(AccessDenied):
            role_service.require_role(ctx(employee), ROLE_DELIVERY)

    def test_restricted_user_denied(self, ctx, make_user):
        user = make_user("blocked@storefront.test", is_restricted=True)
        with pytest.raises(AccessDenied):
            role_service.require_unrestricted(ctx(user), action="place_order")


# =============================================================================
# ROLE ADMINISTRATION
# =============================================================================


class TestAssignRole:

    def test_admin_assigns_employee(self, ctx, admin, customer):
        grant = user_admin_service.assign_role(ctx(admin), customer.id, "employee")

        assert grant["role"] == ROLE_EMPLOYEE
        assert grant["assigned_by_user_id"] == admin.id
        assert role_service.has_role(customer.id, ROLE_EMPLOYEE)

    def test_new_employee_appears_in_recipient_picker(self, ctx, admin, customer, customer2):
        user_admin_service.assign_role(ctx(admin), customer.id, ROLE_EMPLOYEE)

        picker = message_service.list_recipients(ctx(customer2), "employee")
        assert customer.id in [r["id"] for r in picker]

    def test_duplicate_grant_conflicts(self, db_session, ctx, admin, employee):
        with pytest.raises(ConflictError):
            user_admin_service.assign_role(ctx(admin), employee.id, ROLE_EMPLOYEE)
        assert db_session.query(UserRole).filter_by(user_id=employee.id).count() == 1

    def test_unknown_role_rejected(self, ctx, admin, customer):
        with pytest.raises(ValidationError):
            user_admin_service.assign_role(ctx(admin), customer.id, "superuser")

    def test_missing_user(self, ctx, admin):
        with pytest.raises(NotFound):
            user_admin_service.assign_role(ctx(admin), 99999, ROLE_EMPLOYEE)

    def test_non_admin_denied_without_write(self, ctx, employee, customer):
        with pytest.raises(AccessDenied):
            user_admin_service.assign_role(ctx(employee), customer.id, ROLE_EMPLOYEE)
        assert not role_service.has_role(customer.id, ROLE_EMPLOYEE)

    @pytest.mark.parametrize("role", [ROLE_ADMIN, ROLE_EMPLOYEE, ROLE_DELIVERY])
    def test_no_self_assignment(self, ctx, admin, role):
        with pytest.raises(AccessDenied):
            user_admin_service.assign_role(ctx(admin), admin.id, role)

    def test_no_self_assignment_for_non_admin(self, ctx, customer):
        with pytest.raises(AccessDenied):
            user_admin_service.assign_role(ctx(customer), customer.id, ROLE_EMPLOYEE)


class TestRemoveRole:

    def test_admin_removes_employee(self, ctx, admin, employee):
        user_admin_service.remove_role(ctx(admin), employee.id, ROLE_EMPLOYEE)
        assert not role_service.has_role(employee.id, ROLE_EMPLOYEE)

    def test_admin_grant_never_removable(self, ctx, admin, admin2):
        with pytest.raises(AccessDenied):
            user_admin_service.remove_role(ctx(admin), admin2.id, ROLE_ADMIN)
        assert role_service.is_admin(admin2.id)

    @pytest.mark.parametrize("role", [ROLE_ADMIN, ROLE_EMPLOYEE])
    def test_no_self_removal(self, ctx, make_user, role):
        actor = make_user("both@storefront.test", roles=(ROLE_ADMIN, ROLE_EMPLOYEE))
        with pytest.raises(AccessDenied):
            user_admin_service.remove_role(ctx(actor), actor.id, role)
        assert role_service.has_role(actor.id, role)

    def test_missing_grant(self, ctx, admin, customer):
        with pytest.raises(NotFound):
            user_admin_service.remove_role(ctx(admin), customer.id, ROLE_DELIVERY)

    def test_changes_are_audited(self, db_session, ctx, admin, customer):
        user_admin_service.assign_role(ctx(admin), customer.id, ROLE_DELIVERY)
        user_admin_service.remove_role(ctx(admin), customer.id, ROLE_DELIVERY)

        types = [e.event_type for e in db_session.query(SecurityEvent).order_by(SecurityEvent.id)]
        assert types == ["ROLE_ASSIGNED", "ROLE_REMOVED"]


# =============================================================================
# ACCOUNT ADMINISTRATION
# =============================================================================


class TestRestriction:

    def test_toggle(self, ctx, admin, customer):
        assert user_admin_service.toggle_restriction(ctx(admin), customer.id)["is_restricted"] is True
        assert user_admin_service.toggle_restriction(ctx(admin), customer.id)["is_restricted"] is False

    def test_restricted_user_cannot_message(self, ctx, admin, customer):
        user_admin_service.toggle_restriction(ctx(admin), customer.id)
        with pytest.raises(AccessDenied):
            message_service.send(ctx(customer), "Hi", "Hello", AllAdmins())

    def test_not_on_self(self, ctx, admin):
        with pytest.raises(AccessDenied):
            user_admin_service.toggle_restriction(ctx(admin), admin.id)


class TestDeleteUser:

    def test_removes_owned_rows(self, db_session, ctx, admin, employee, customer, burger):
        sent = message_service.send(ctx(customer), "Order?", "Where is it", AllAdmins())
        message_service.reply(ctx(admin), sent["id"], "On its way")
        message_service.send(ctx(admin), "Promo", "Free fries", SpecificUser(customer.id))
        order_service.place_order(
            ctx(customer), [{"product_id": burger.id, "quantity": 1}], "Road 1", "0170000000", "cod"
        )
        user_admin_service.assign_role(ctx(admin), customer.id, ROLE_DELIVERY)
        customer_id = customer.id

        user_admin_service.delete_user(ctx(admin), customer_id)

        assert db_session.get(User, customer_id) is None
        assert db_session.query(UserRole).filter_by(user_id=customer_id).count() == 0
        assert db_session.query(Notification).filter_by(user_id=customer_id).count() == 0
        assert db_session.query(Message).filter(
            (Message.sender_id == customer_id) | (Message.recipient_id == customer_id)
        ).count() == 0
        assert db_session.query(Order).filter_by(user_id=customer_id).count() == 0

    def test_clears_references_on_other_rows(self, db_session, ctx, admin, employee, customer):
        sent = message_service.send(ctx(customer), "Menu", "Any vegan options?", AllAdmins())
        message_service.reply(ctx(employee), sent["id"], "Yes, the veggie burger")
        employee_id = employee.id

        user_admin_service.delete_user(ctx(admin), employee_id)

        db_session.expire_all()
        message = db_session.get(Message, sent["id"])
        assert message.reply == "Yes, the veggie burger"
        assert message.replied_by_id is None

    def test_not_on_self(self, ctx, admin):
        with pytest.raises(AccessDenied):
            user_admin_service.delete_user(ctx(admin), admin.id)

    def test_non_admin_denied(self, db_session, ctx, employee, customer):
        with pytest.raises(AccessDenied):
            user_admin_service.delete_user(ctx(employee), customer.id)
        assert db_session.get(User, customer.id) is not None

    def test_missing_user(self, ctx, admin):
        with pytest.raises(NotFound):
            user_admin_service.delete_user(ctx(admin), 424242)


class TestListUsersAndProfile:

    def test_list_users_includes_roles(self, ctx, admin, employee, customer):
        users = {u["id"]: u for u in user_admin_service.list_users(ctx(admin))}
        assert users[admin.id]["roles"] == [ROLE_ADMIN]
        assert users[employee.id]["roles"] == [ROLE_EMPLOYEE]
        assert users[customer.id]["roles"] == []

    def test_list_users_admin_only(self, ctx, employee):
        with pytest.raises(AccessDenied):
            user_admin_service.list_users(ctx(employee))

    def test_update_profile(self, ctx, customer):
        profile = user_admin_service.update_profile(
            ctx(customer), {"full_name": "  Cora C. ", "phone": "01711", "address": "House 5"}
        )
        assert profile["full_name"] == "Cora C."
        assert profile["address"] == "House 5"

    def test_update_profile_whitelist(self, ctx, customer):
        with pytest.raises(ValidationError):
            user_admin_service.update_profile(ctx(customer), {"is_restricted": False})

    def test_username_taken(self, ctx, customer, customer2):
        user_admin_service.update_profile(ctx(customer), {"username": "cora"})
        with pytest.raises(ConflictError):
            user_admin_service.update_profile(ctx(customer2), {"username": "cora"})
