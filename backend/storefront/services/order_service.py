# Overview: Service-layer operations for orders; checkout, fulfillment lifecycle, delivery assignment, payment review.

"""
Order Lifecycle

Fulfillment status and payment status are independent axes. Every status
change goes through validate_transition(); ORDER_TRANSITIONS is the single
source of truth for which moves exist.

Who may move an order:
- admin / employee: any legal transition, delivery assignment
- delivery: out_for_delivery -> delivered, only on orders assigned to them
- admin only: payment review for manual transfers

A rejected payment cancels the order in the same commit, and cancelling an
order still awaiting payment review rejects the payment. Nothing times out
on its own; every transition is triggered by a caller.
"""

from __future__ import annotations

from flask import current_app

from ..errors import ConflictError, NotFound, ValidationError
from ..extensions import change_feed, db
from ..models import Order, OrderItem, Product, User
from ..roles import ORDER_MANAGER_ROLES, ROLE_ADMIN, ROLE_DELIVERY
from ..time_utils import utcnow
from ..validation import clean_text, coerce_int
from . import notification_service, role_service
from .realtime import EVENT_INSERT, EVENT_UPDATE


STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_PREPARING = "preparing"
STATUS_OUT_FOR_DELIVERY = "out_for_delivery"
STATUS_DELIVERED = "delivered"
STATUS_CANCELLED = "cancelled"

ORDER_TRANSITIONS = {
    STATUS_PENDING: {STATUS_CONFIRMED, STATUS_CANCELLED},
    STATUS_CONFIRMED: {STATUS_PREPARING, STATUS_CANCELLED},
    STATUS_PREPARING: {STATUS_OUT_FOR_DELIVERY, STATUS_CANCELLED},
    STATUS_OUT_FOR_DELIVERY: {STATUS_DELIVERED, STATUS_CANCELLED},
    STATUS_DELIVERED: set(),  # Terminal
    STATUS_CANCELLED: set(),  # Terminal
}

PAYMENT_PENDING = "pending"
PAYMENT_AWAITING_VERIFICATION = "awaiting_verification"
PAYMENT_VERIFIED = "verified"
PAYMENT_REJECTED = "rejected"

METHOD_COD = "cod"
METHOD_MANUAL_TRANSFER = "manual_transfer"
VALID_PAYMENT_METHODS = {METHOD_COD, METHOD_MANUAL_TRANSFER}

MAX_LINE_QUANTITY = 99


def validate_transition(current_status: str, next_status: str) -> None:
    """Raise ConflictError unless current_status -> next_status is a legal move."""
    if next_status not in ORDER_TRANSITIONS:
        raise ValidationError(f"Unknown order status: {next_status}")
    if current_status not in ORDER_TRANSITIONS:
        raise ConflictError(f"Order is in unknown status: {current_status}")
    if next_status not in ORDER_TRANSITIONS[current_status]:
        raise ConflictError(f"Invalid transition: {current_status} -> {next_status}")


def _get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFound("Order not found")
    return order


def _publish(order: Order, event: str = EVENT_UPDATE) -> dict:
    record = order.to_dict()
    change_feed.publish(Order.__tablename__, event, record)
    return record


def _parse_items(items) -> list[tuple[int, int]]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    quantities: dict[int, int] = {}
    for item in items:
        if not isinstance(item, dict):
            raise ValidationError("each item must be an object with product_id and quantity")
        product_id = item.get("product_id")
        quantity = item.get("quantity", 1)
        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise ValidationError("product_id must be an integer")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError("quantity must be a positive integer")
        quantities[product_id] = quantities.get(product_id, 0) + quantity

    for product_id, quantity in quantities.items():
        if quantity > MAX_LINE_QUANTITY:
            raise ValidationError(f"quantity for product {product_id} exceeds {MAX_LINE_QUANTITY}")
    return list(quantities.items())


# =============================================================================
# CHECKOUT
# =============================================================================

def place_order(
    ctx,
    items,
    delivery_address: str,
    phone: str,
    payment_method: str,
    transaction_id: str | None = None,
) -> dict:
    """
    Create an order from (product_id, quantity) lines.

    Unit prices and names are taken from the catalog now and frozen on the
    lines. Cash on delivery starts with payment pending; manual transfer needs
    a transaction id and starts awaiting verification. Admins are notified
    after the order is stored.
    """
    role_service.require_unrestricted(ctx, action="place_order")

    delivery_address = clean_text(delivery_address, "delivery_address")
    phone = clean_text(phone, "phone")

    payment_method = clean_text(payment_method, "payment_method", required=False, lower=True)
    if payment_method not in VALID_PAYMENT_METHODS:
        raise ValidationError("payment_method must be cod or manual_transfer")

    transaction_id = clean_text(transaction_id, "transaction_id", required=False)
    if payment_method == METHOD_MANUAL_TRANSFER and not transaction_id:
        raise ValidationError("transaction_id is required for manual_transfer payments")
    if payment_method == METHOD_COD:
        transaction_id = None

    lines = _parse_items(items)
    products = {
        p.id: p
        for p in db.session.query(Product).filter(Product.id.in_([pid for pid, _ in lines])).all()
    }

    order_items = []
    for product_id, quantity in lines:
        product = products.get(product_id)
        if not product or not product.is_available:
            raise ValidationError(f"Product {product_id} is not available")
        order_items.append(
            OrderItem(
                product_id=product.id,
                name=product.name,
                unit_price_cents=product.price_cents,
                quantity=quantity,
            )
        )

    order = Order(
        user_id=ctx.user_id,
        total_cents=sum(i.unit_price_cents * i.quantity for i in order_items),
        delivery_address=delivery_address,
        phone=phone,
        payment_method=payment_method,
        transaction_id=transaction_id,
        payment_status=(
            PAYMENT_AWAITING_VERIFICATION if payment_method == METHOD_MANUAL_TRANSFER else PAYMENT_PENDING
        ),
        status=STATUS_PENDING,
        items=order_items,
    )
    db.session.add(order)
    db.session.commit()

    record = _publish(order, EVENT_INSERT)
    notification_service.notify(
        notification_service.EVENT_ORDER_PLACED,
        {
            "order_id": order.id,
            "payment_method": order.payment_method,
            "transaction_id": order.transaction_id,
            "total_cents": order.total_cents,
        },
    )
    return record


# =============================================================================
# FULFILLMENT
# =============================================================================

def update_status(ctx, order_id: int, status: str) -> dict:
    status = clean_text(status, "status", lower=True)
    order = _get_order(order_id)

    if not ctx.roles & ORDER_MANAGER_ROLES:
        # Delivery staff only close out their own runs
        if not (ctx.is_delivery and status == STATUS_DELIVERED and order.delivery_person_id == ctx.user_id):
            raise role_service.deny(
                ctx, "update_order_status", "Not allowed to set this order status", resource=f"order:{order_id}"
            )

    validate_transition(order.status, status)

    if status == STATUS_CONFIRMED and order.payment_status in {PAYMENT_AWAITING_VERIFICATION, PAYMENT_REJECTED}:
        raise ConflictError("Payment must be verified before the order can be confirmed")

    order.status = status
    if status == STATUS_DELIVERED:
        order.delivered_at = utcnow()
    if status == STATUS_CANCELLED and order.payment_status == PAYMENT_AWAITING_VERIFICATION:
        # Leaves the verification queue with the order
        order.payment_status = PAYMENT_REJECTED
    db.session.commit()

    current_app.logger.info("Order %s moved to %s by user %s", order.id, status, ctx.user_id)
    record = _publish(order)

    if status == STATUS_DELIVERED:
        notification_service.notify(
            notification_service.EVENT_DELIVERY_COMPLETED,
            {"order_id": order.id, "delivery_person_id": order.delivery_person_id},
        )
    return record


def assign_delivery(ctx, order_id: int, delivery_user_id: int) -> dict:
    """Hand an order to a delivery person; it goes out for delivery."""
    role_service.require_role(ctx, *sorted(ORDER_MANAGER_ROLES), action="assign_delivery")

    delivery_user_id = coerce_int(delivery_user_id, "delivery_user_id")
    order = _get_order(order_id)
    courier = db.session.get(User, delivery_user_id)
    if not courier:
        raise NotFound("Delivery person not found")
    if not role_service.has_role(courier.id, ROLE_DELIVERY):
        raise ValidationError("Assignee does not hold the delivery role")

    validate_transition(order.status, STATUS_OUT_FOR_DELIVERY)

    order.delivery_person_id = courier.id
    order.status = STATUS_OUT_FOR_DELIVERY
    db.session.commit()

    return _publish(order)


# =============================================================================
# PAYMENT REVIEW
# =============================================================================

def verify_payment(ctx, order_id: int, approved: bool) -> dict:
    """
    Admin decision on a manual transfer.

    Verified -> order confirmed. Rejected -> order cancelled, same commit.
    The owner is notified either way.
    """
    role_service.require_admin(ctx, action="verify_payment")

    order = _get_order(order_id)
    if order.payment_method != METHOD_MANUAL_TRANSFER:
        raise ConflictError("Only manual transfer payments are reviewed")
    if order.payment_status != PAYMENT_AWAITING_VERIFICATION:
        raise ConflictError(f"Payment is already {order.payment_status}")

    next_status = STATUS_CONFIRMED if approved else STATUS_CANCELLED
    validate_transition(order.status, next_status)

    order.payment_status = PAYMENT_VERIFIED if approved else PAYMENT_REJECTED
    order.status = next_status
    db.session.commit()

    current_app.logger.info(
        "Payment for order %s %s by admin %s", order.id, order.payment_status, ctx.user_id
    )
    record = _publish(order)
    notification_service.notify(
        notification_service.EVENT_PAYMENT_REVIEWED,
        {"order_id": order.id, "user_id": order.user_id, "approved": bool(approved)},
    )
    return record


# =============================================================================
# READS
# =============================================================================

def get_order(ctx, order_id: int) -> dict:
    order = _get_order(order_id)
    if order.user_id == ctx.user_id or ctx.roles & ORDER_MANAGER_ROLES:
        return order.to_dict()
    if ctx.is_delivery and order.delivery_person_id == ctx.user_id:
        return order.to_dict()
    raise NotFound("Order not found")


def list_my_orders(ctx) -> list[dict]:
    orders = (
        db.session.query(Order)
        .filter_by(user_id=ctx.user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
    return [o.to_dict() for o in orders]


def list_orders(ctx, status: str | None = None) -> list[dict]:
    """Order board for admins and employees."""
    role_service.require_role(ctx, *sorted(ORDER_MANAGER_ROLES), action="list_orders")

    q = db.session.query(Order)
    if status:
        status = clean_text(status, "status", lower=True)
        if status not in ORDER_TRANSITIONS:
            raise ValidationError(f"Unknown order status: {status}")
        q = q.filter_by(status=status)

    orders = q.order_by(Order.created_at.desc(), Order.id.desc()).all()
    owner_ids = {o.user_id for o in orders}
    owners = {u.id: u for u in db.session.query(User).filter(User.id.in_(owner_ids)).all()}

    result = []
    for o in orders:
        item = o.to_dict()
        owner = owners.get(o.user_id)
        item["customer_name"] = owner.display_name if owner else None
        result.append(item)
    return result


def list_assigned(ctx) -> list[dict]:
    """Delivery queue: orders assigned to the caller."""
    role_service.require_role(ctx, ROLE_DELIVERY, action="list_assigned_orders")

    orders = (
        db.session.query(Order)
        .filter_by(delivery_person_id=ctx.user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
    return [o.to_dict() for o in orders]


def list_pending_payments(ctx) -> list[dict]:
    role_service.require_role(ctx, ROLE_ADMIN, action="list_pending_payments")

    orders = (
        db.session.query(Order)
        .filter_by(payment_method=METHOD_MANUAL_TRANSFER, payment_status=PAYMENT_AWAITING_VERIFICATION)
        .order_by(Order.created_at.asc(), Order.id.asc())
        .all()
    )
    return [o.to_dict() for o in orders]
