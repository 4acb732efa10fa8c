"""
Order lifecycle tests.

Verifies:
- Checkout snapshots names and prices, and sets the initial payment status
- Only legal status transitions are accepted, by the right roles
- Manual transfer review: verified confirms, rejected cancels in one step
- Delivery staff see and close only their own runs
"""

import pytest

from storefront.errors import AccessDenied, ConflictError, NotFound, ValidationError
from storefront.models import Notification, Order
from storefront.services import notification_service, order_service, product_service
from storefront.services.order_service import (
    PAYMENT_AWAITING_VERIFICATION,
    PAYMENT_PENDING,
    PAYMENT_REJECTED,
    PAYMENT_VERIFIED,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    STATUS_DELIVERED,
    STATUS_OUT_FOR_DELIVERY,
    STATUS_PENDING,
    STATUS_PREPARING,
    validate_transition,
)


ADDRESS = "House 12, Road 4, Dhanmondi"
PHONE = "01700000000"


@pytest.fixture
def place(ctx, burger, fries):
    def _place(user, method="cod", transaction_id=None, items=None):
        items = items or [{"product_id": burger.id, "quantity": 2}, {"product_id": fries.id, "quantity": 1}]
        return order_service.place_order(ctx(user), items, ADDRESS, PHONE, method, transaction_id)
    return _place


def _walk(ctx, actor, order_id, *statuses):
    for status in statuses:
        order_service.update_status(ctx(actor), order_id, status)


# =============================================================================
# TRANSITION TABLE
# =============================================================================


class TestTransitionTable:

    @pytest.mark.parametrize("current,nxt", [
        (STATUS_PENDING, STATUS_CONFIRMED),
        (STATUS_CONFIRMED, STATUS_PREPARING),
        (STATUS_PREPARING, STATUS_OUT_FOR_DELIVERY),
        (STATUS_OUT_FOR_DELIVERY, STATUS_DELIVERED),
        (STATUS_PENDING, STATUS_CANCELLED),
        (STATUS_OUT_FOR_DELIVERY, STATUS_CANCELLED),
    ])
    def test_legal(self, current, nxt):
        validate_transition(current, nxt)

    @pytest.mark.parametrize("current,nxt", [
        (STATUS_PENDING, STATUS_DELIVERED),
        (STATUS_DELIVERED, STATUS_CANCELLED),
        (STATUS_CANCELLED, STATUS_PENDING),
        (STATUS_PREPARING, STATUS_CONFIRMED),
    ])
    def test_illegal(self, current, nxt):
        with pytest.raises(ConflictError):
            validate_transition(current, nxt)

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            validate_transition(STATUS_PENDING, "teleported")


# =============================================================================
# CHECKOUT
# =============================================================================


class TestPlaceOrder:

    def test_cod(self, db_session, place, customer, admin, burger):
        order = place(customer)

        assert order["status"] == STATUS_PENDING
        assert order["payment_status"] == PAYMENT_PENDING
        assert order["transaction_id"] is None
        assert order["total_cents"] == 2 * 35000 + 15000
        assert [i["name"] for i in order["items"]] == ["Chicken Burger", "French Fries"]

        note = db_session.query(Notification).filter_by(user_id=admin.id).one()
        assert note.type == notification_service.TYPE_NEW_ORDER

    def test_manual_transfer_awaits_verification(self, db_session, place, customer, admin):
        order = place(customer, method="manual_transfer", transaction_id="BK-7781")

        assert order["payment_status"] == PAYMENT_AWAITING_VERIFICATION
        assert order["transaction_id"] == "BK-7781"
        note = db_session.query(Notification).filter_by(user_id=admin.id).one()
        assert note.type == notification_service.TYPE_PAYMENT_VERIFICATION

    def test_manual_transfer_requires_transaction_id(self, place, customer):
        with pytest.raises(ValidationError):
            place(customer, method="manual_transfer")

    def test_prices_are_snapshotted(self, ctx, place, customer, admin, burger):
        order = place(customer)
        product_service.update_product(ctx(admin), burger.id, {"price_cents": 99900, "name": "Mega Burger"})

        again = order_service.get_order(ctx(customer), order["id"])
        assert again["items"][0]["unit_price_cents"] == 35000
        assert again["items"][0]["name"] == "Chicken Burger"

    def test_duplicate_lines_are_merged(self, place, customer, burger):
        order = place(customer, items=[{"product_id": burger.id, "quantity": 1}, {"product_id": burger.id, "quantity": 2}])
        assert len(order["items"]) == 1
        assert order["items"][0]["quantity"] == 3

    def test_unavailable_product(self, ctx, place, customer, admin, burger):
        product_service.toggle_availability(ctx(admin), burger.id)
        with pytest.raises(ValidationError):
            place(customer)

    @pytest.mark.parametrize("items", [
        [],
        [{"product_id": 1, "quantity": 0}],
        [{"product_id": "1", "quantity": 1}],
        [{"product_id": 1, "quantity": 100}],
    ])
    def test_bad_items(self, ctx, customer, items):
        with pytest.raises(ValidationError):
            order_service.place_order(ctx(customer), items, ADDRESS, PHONE, "cod")

    def test_unknown_payment_method(self, place, customer):
        with pytest.raises(ValidationError):
            place(customer, method="crypto")

    def test_restricted_user_cannot_order(self, db_session, place, make_user):
        blocked = make_user("blocked@storefront.test", is_restricted=True)
        with pytest.raises(AccessDenied):
            place(blocked)
        assert db_session.query(Order).count() == 0


# =============================================================================
# FULFILLMENT
# =============================================================================


class TestUpdateStatus:

    def test_employee_walks_the_order(self, ctx, place, customer, employee):
        order = place(customer)
        _walk(ctx, employee, order["id"], STATUS_CONFIRMED, STATUS_PREPARING)

        assert order_service.get_order(ctx(customer), order["id"])["status"] == STATUS_PREPARING

    def test_cannot_skip_steps(self, ctx, place, customer, admin):
        order = place(customer)
        with pytest.raises(ConflictError):
            order_service.update_status(ctx(admin), order["id"], STATUS_DELIVERED)

    def test_customer_cannot_change_status(self, ctx, place, customer):
        order = place(customer)
        with pytest.raises(AccessDenied):
            order_service.update_status(ctx(customer), order["id"], STATUS_CANCELLED)

    def test_unverified_transfer_cannot_be_confirmed(self, ctx, place, customer, admin):
        order = place(customer, method="manual_transfer", transaction_id="TX1")
        with pytest.raises(ConflictError):
            order_service.update_status(ctx(admin), order["id"], STATUS_CONFIRMED)

    def test_missing_order(self, ctx, admin):
        with pytest.raises(NotFound):
            order_service.update_status(ctx(admin), 4040, STATUS_CONFIRMED)


class TestDelivery:

    def test_assign_and_deliver(self, db_session, ctx, place, customer, employee, courier, admin):
        order = place(customer)
        _walk(ctx, employee, order["id"], STATUS_CONFIRMED, STATUS_PREPARING)

        assigned = order_service.assign_delivery(ctx(employee), order["id"], courier.id)
        assert assigned["status"] == STATUS_OUT_FOR_DELIVERY
        assert assigned["delivery_person_id"] == courier.id
        assert [o["id"] for o in order_service.list_assigned(ctx(courier))] == [order["id"]]

        done = order_service.update_status(ctx(courier), order["id"], STATUS_DELIVERED)
        assert done["status"] == STATUS_DELIVERED
        assert done["delivered_at"] is not None

        types = [n.type for n in db_session.query(Notification).filter_by(user_id=admin.id)]
        assert notification_service.TYPE_DELIVERY_COMPLETED in types

    def test_assignee_must_be_delivery(self, ctx, place, customer, employee, employee2):
        order = place(customer)
        _walk(ctx, employee, order["id"], STATUS_CONFIRMED, STATUS_PREPARING)
        with pytest.raises(ValidationError):
            order_service.assign_delivery(ctx(employee), order["id"], employee2.id)

    def test_other_courier_cannot_deliver(self, ctx, place, make_user, customer, employee, courier):
        other = make_user("rider2@storefront.test", roles=("delivery",))
        order = place(customer)
        _walk(ctx, employee, order["id"], STATUS_CONFIRMED, STATUS_PREPARING)
        order_service.assign_delivery(ctx(employee), order["id"], courier.id)

        with pytest.raises(AccessDenied):
            order_service.update_status(ctx(other), order["id"], STATUS_DELIVERED)
        with pytest.raises(NotFound):
            order_service.get_order(ctx(other), order["id"])

    def test_courier_can_only_deliver(self, ctx, place, customer, employee, courier):
        order = place(customer)
        _walk(ctx, employee, order["id"], STATUS_CONFIRMED, STATUS_PREPARING)
        order_service.assign_delivery(ctx(employee), order["id"], courier.id)

        with pytest.raises(AccessDenied):
            order_service.update_status(ctx(courier), order["id"], STATUS_CANCELLED)

    def test_assign_requires_manager(self, ctx, place, customer, courier):
        order = place(customer)
        with pytest.raises(AccessDenied):
            order_service.assign_delivery(ctx(courier), order["id"], courier.id)


# =============================================================================
# PAYMENT REVIEW
# =============================================================================


class TestPaymentReview:

    def test_verified_confirms_and_notifies_owner(self, db_session, ctx, place, customer, admin):
        order = place(customer, method="manual_transfer", transaction_id="BK-1")
        assert order["payment_status"] == PAYMENT_AWAITING_VERIFICATION

        reviewed = order_service.verify_payment(ctx(admin), order["id"], True)

        assert reviewed["payment_status"] == PAYMENT_VERIFIED
        assert reviewed["status"] == STATUS_CONFIRMED
        types = [n.type for n in db_session.query(Notification).filter_by(user_id=customer.id)]
        assert types == [notification_service.TYPE_PAYMENT_VERIFIED]

    def test_rejected_cancels(self, db_session, ctx, place, customer, admin):
        order = place(customer, method="manual_transfer", transaction_id="BK-2")

        reviewed = order_service.verify_payment(ctx(admin), order["id"], False)

        assert reviewed["payment_status"] == PAYMENT_REJECTED
        assert reviewed["status"] == STATUS_CANCELLED
        db_session.expire_all()
        stored = db_session.get(Order, order["id"])
        assert (stored.payment_status, stored.status) == (PAYMENT_REJECTED, STATUS_CANCELLED)

    def test_only_once(self, ctx, place, customer, admin):
        order = place(customer, method="manual_transfer", transaction_id="BK-3")
        order_service.verify_payment(ctx(admin), order["id"], True)
        with pytest.raises(ConflictError):
            order_service.verify_payment(ctx(admin), order["id"], False)

    def test_cod_not_reviewable(self, ctx, place, customer, admin):
        order = place(customer)
        with pytest.raises(ConflictError):
            order_service.verify_payment(ctx(admin), order["id"], True)

    def test_admin_only(self, ctx, place, customer, employee):
        order = place(customer, method="manual_transfer", transaction_id="BK-4")
        with pytest.raises(AccessDenied):
            order_service.verify_payment(ctx(employee), order["id"], True)

    def test_pending_payments_queue(self, ctx, place, customer, admin):
        transfer = place(customer, method="manual_transfer", transaction_id="BK-5")
        place(customer)
        assert [o["id"] for o in order_service.list_pending_payments(ctx(admin))] == [transfer["id"]]

    def test_cancel_before_review_clears_queue(self, db_session, ctx, place, customer, admin, employee):
        order = place(customer, method="manual_transfer", transaction_id="BK-6")

        cancelled = order_service.update_status(ctx(employee), order["id"], STATUS_CANCELLED)

        assert cancelled["payment_status"] == PAYMENT_REJECTED
        assert order_service.list_pending_payments(ctx(admin)) == []
        with pytest.raises(ConflictError):
            order_service.verify_payment(ctx(admin), order["id"], True)
        db_session.expire_all()
        stored = db_session.get(Order, order["id"])
        assert (stored.payment_status, stored.status) == (PAYMENT_REJECTED, STATUS_CANCELLED)

    def test_cancelling_cod_keeps_payment_status(self, ctx, place, customer, admin):
        order = place(customer)
        cancelled = order_service.update_status(ctx(admin), order["id"], STATUS_CANCELLED)
        assert cancelled["payment_status"] == PAYMENT_PENDING


# =============================================================================
# READS
# =============================================================================


class TestReads:

    def test_customer_sees_only_own(self, ctx, place, customer, customer2):
        mine = place(customer)
        place(customer2)

        assert [o["id"] for o in order_service.list_my_orders(ctx(customer))] == [mine["id"]]
        with pytest.raises(NotFound):
            order_service.get_order(ctx(customer2), mine["id"])

    def test_board_for_staff(self, ctx, place, customer, employee):
        place(customer)
        board = order_service.list_orders(ctx(employee))
        assert board[0]["customer_name"] == "Cora Customer"

    def test_board_status_filter(self, ctx, place, customer, employee):
        first = place(customer)
        place(customer)
        order_service.update_status(ctx(employee), first["id"], STATUS_CONFIRMED)

        confirmed = order_service.list_orders(ctx(employee), status=STATUS_CONFIRMED)
        assert [o["id"] for o in confirmed] == [first["id"]]

    def test_board_denied_for_customers_and_couriers(self, ctx, customer, courier):
        with pytest.raises(AccessDenied):
            order_service.list_orders(ctx(customer))
        with pytest.raises(AccessDenied):
            order_service.list_orders(ctx(courier))
