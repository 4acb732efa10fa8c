# Overview: Service-layer operations for notifications; fan-out from domain events and recipient reads.

"""
Notification Fan-out

notify(event_kind, payload) maps a domain event to its recipient set and
writes one Notification row per recipient.

Fan-out runs after the triggering write has been committed and is
best-effort: a failure is logged and rolled back, and the caller's operation
still succeeds. Users never create notifications directly.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import NotFound, ValidationError
from ..extensions import change_feed, db
from ..models import Notification
from ..roles import ROLE_ADMIN
from .realtime import EVENT_INSERT, EVENT_UPDATE
from . import role_service


EVENT_ORDER_PLACED = "order_placed"
EVENT_PAYMENT_REVIEWED = "payment_reviewed"
EVENT_MESSAGE_REPLIED = "message_replied"
EVENT_DELIVERY_COMPLETED = "delivery_completed"
EVENT_USER_SIGNED_UP = "user_signed_up"

TYPE_NEW_ORDER = "new_order"
TYPE_PAYMENT_VERIFICATION = "payment_verification"
TYPE_PAYMENT_VERIFIED = "payment_verified"
TYPE_PAYMENT_REJECTED = "payment_rejected"
TYPE_MESSAGE_REPLY = "message_reply"
TYPE_DELIVERY_COMPLETED = "delivery_completed"
TYPE_NEW_USER_SIGNUP = "new_user_signup"


def _money(cents: int) -> str:
    symbol = current_app.config.get("CURRENCY_SYMBOL", "")
    return f"{symbol}{cents / 100:.2f}"


def _order_placed(payload: dict) -> tuple[list[int], str, str, str, dict]:
    amount = _money(payload["total_cents"])
    data = {
        "order_id": payload["order_id"],
        "payment_method": payload["payment_method"],
        "transaction_id": payload.get("transaction_id"),
        "amount_cents": payload["total_cents"],
    }
    if payload["payment_method"] == "manual_transfer":
        return (
            role_service.user_ids_with_role(ROLE_ADMIN),
            TYPE_PAYMENT_VERIFICATION,
            "Payment Verification Required",
            f"New transfer payment received. Transaction ID: {payload.get('transaction_id')}. Amount: {amount}",
            data,
        )
    return (
        role_service.user_ids_with_role(ROLE_ADMIN),
        TYPE_NEW_ORDER,
        "New Order",
        f"New order received. Amount: {amount}",
        data,
    )


def _payment_reviewed(payload: dict):
    if payload["approved"]:
        return (
            [payload["user_id"]],
            TYPE_PAYMENT_VERIFIED,
            "Payment Verified",
            "Your transfer payment has been verified. Your order is confirmed!",
            {"order_id": payload["order_id"]},
        )
    return (
        [payload["user_id"]],
        TYPE_PAYMENT_REJECTED,
        "Payment Issue",
        "We could not verify your transfer payment. Please contact support.",
        {"order_id": payload["order_id"]},
    )


def _message_replied(payload: dict):
    return (
        [payload["sender_id"]],
        TYPE_MESSAGE_REPLY,
        "New Reply to Your Message",
        f'Your question "{payload["subject"]}" has been answered.',
        {"message_id": payload["message_id"]},
    )


def _delivery_completed(payload: dict):
    return (
        role_service.user_ids_with_role(ROLE_ADMIN),
        TYPE_DELIVERY_COMPLETED,
        "Order Delivered",
        f"Order #{payload['order_id']} has been marked as delivered",
        {"order_id": payload["order_id"], "delivery_person_id": payload.get("delivery_person_id")},
    )


def _user_signed_up(payload: dict):
    name = payload.get("display_name") or payload.get("email") or "Unknown user"
    return (
        role_service.user_ids_with_role(ROLE_ADMIN),
        TYPE_NEW_USER_SIGNUP,
        "New User Signup",
        f"{name} has signed up and is awaiting review",
        {"user_id": payload["user_id"], "email": payload.get("email"), "full_name": payload.get("full_name")},
    )


EVENT_HANDLERS = {
    EVENT_ORDER_PLACED: _order_placed,
    EVENT_PAYMENT_REVIEWED: _payment_reviewed,
    EVENT_MESSAGE_REPLIED: _message_replied,
    EVENT_DELIVERY_COMPLETED: _delivery_completed,
    EVENT_USER_SIGNED_UP: _user_signed_up,
}


def notify(event_kind: str, payload: dict) -> int:
    """
    Materialize one notification per recipient of event_kind.

    Returns the number of rows written; 0 if there was nobody to notify or the
    fan-out failed. Never raises for persistence problems.
    """
    handler = EVENT_HANDLERS.get(event_kind)
    if handler is None:
        raise ValueError(f"Unknown notification event: {event_kind}")

    try:
        recipients, ntype, title, message, data = handler(payload)
        rows = [
            Notification(user_id=user_id, type=ntype, title=title, message=message, data=data, is_read=False)
            for user_id in dict.fromkeys(recipients)
        ]
        if not rows:
            current_app.logger.info("No recipients for %s notification", ntype)
            return 0
        db.session.add_all(rows)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Notification fan-out failed for %s", event_kind)
        return 0

    for row in rows:
        change_feed.publish(Notification.__tablename__, EVENT_INSERT, row.to_dict())
    current_app.logger.info("Notified %d recipient(s) of %s", len(rows), ntype)
    return len(rows)


# =============================================================================
# RECIPIENT SIDE
# =============================================================================

def list_for_user(ctx, unread_only: bool = False, limit: int | None = None) -> list[dict]:
    q = db.session.query(Notification).filter_by(user_id=ctx.user_id)
    if unread_only:
        q = q.filter_by(is_read=False)
    q = q.order_by(Notification.created_at.desc(), Notification.id.desc())
    if limit:
        if limit < 1:
            raise ValidationError("limit must be positive")
        q = q.limit(limit)
    return [n.to_dict() for n in q.all()]


def unread_count(ctx) -> int:
    return db.session.query(Notification).filter_by(user_id=ctx.user_id, is_read=False).count()


def mark_read(ctx, notification_id: int) -> dict:
    # Someone else's notification is reported as missing
    notification = (
        db.session.query(Notification)
        .filter_by(id=notification_id, user_id=ctx.user_id)
        .first()
    )
    if not notification:
        raise NotFound("Notification not found")

    if not notification.is_read:
        notification.is_read = True
        db.session.commit()
        change_feed.publish(Notification.__tablename__, EVENT_UPDATE, notification.to_dict())
    return notification.to_dict()


def mark_all_read(ctx) -> int:
    count = (
        db.session.query(Notification)
        .filter_by(user_id=ctx.user_id, is_read=False)
        .update({"is_read": True}, synchronize_session=False)
    )
    db.session.commit()
    return count
