# Overview: Service-layer operations for user administration; role grants, restriction, account deletion, profile edits.

"""
User Administration

Admin-only operations over other accounts:
- assign_role / remove_role
- toggle_restriction
- delete_user

Shared rules:
- Caller must be an admin (checked before any read of the target)
- An admin never modifies their own account through these operations
- The admin grant is never removed by remove_role
- Every change is written to security_events
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFound, ValidationError
from ..extensions import db
from ..models import Message, Notification, Order, OrderItem, SessionToken, User, UserRole
from ..roles import PROTECTED_ROLES, validate_role
from ..time_utils import utcnow
from ..validation import clean_text
from . import role_service


PROFILE_FIELDS = {"full_name", "username", "phone", "address"}


def _get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


def _require_other_user(ctx, user_id: int, action: str) -> None:
    if user_id == ctx.user_id:
        raise role_service.deny(ctx, action, "Admins cannot modify their own account", resource=f"user:{user_id}")


def _audit(ctx, event_type: str, user_id: int, action: str, reason: str | None = None) -> None:
    role_service.log_security_event(
        user_id=ctx.user_id,
        event_type=event_type,
        success=True,
        resource=f"user:{user_id}",
        action=action,
        reason=reason,
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )


def list_users(ctx) -> list[dict]:
    """All accounts, newest first, each with its role grants."""
    role_service.require_admin(ctx, action="list_users")

    users = db.session.query(User).order_by(User.created_at.desc(), User.id.desc()).all()
    grants: dict[int, list[str]] = {}
    for user_id, role in db.session.query(UserRole.user_id, UserRole.role).order_by(UserRole.role).all():
        grants.setdefault(user_id, []).append(role)

    result = []
    for user in users:
        item = user.to_dict()
        item["roles"] = grants.get(user.id, [])
        result.append(item)
    return result


# =============================================================================
# ROLE GRANTS
# =============================================================================

def assign_role(ctx, user_id: int, role: str) -> dict:
    role_service.require_admin(ctx, action="assign_role")
    _require_other_user(ctx, user_id, "assign_role")
    role = validate_role(role)
    _get_user(user_id)

    grant = UserRole(user_id=user_id, role=role, assigned_by_user_id=ctx.user_id, assigned_at=utcnow())
    db.session.add(grant)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"User already has the {role} role", user_id=user_id, role=role)

    _audit(ctx, "ROLE_ASSIGNED", user_id, "assign_role", reason=role)
    current_app.logger.info("Admin %s granted %s to user %s", ctx.user_id, role, user_id)
    return grant.to_dict()


def remove_role(ctx, user_id: int, role: str) -> None:
    role_service.require_admin(ctx, action="remove_role")
    _require_other_user(ctx, user_id, "remove_role")
    role = validate_role(role)
    if role in PROTECTED_ROLES:
        raise role_service.deny(ctx, "remove_role", f"The {role} role cannot be removed", resource=f"user:{user_id}")

    grant = db.session.query(UserRole).filter_by(user_id=user_id, role=role).first()
    if not grant:
        raise NotFound(f"User does not have the {role} role")

    db.session.delete(grant)
    db.session.commit()

    _audit(ctx, "ROLE_REMOVED", user_id, "remove_role", reason=role)
    current_app.logger.info("Admin %s removed %s from user %s", ctx.user_id, role, user_id)


# =============================================================================
# ACCOUNT STATE
# =============================================================================

def toggle_restriction(ctx, user_id: int) -> dict:
    """Flip is_restricted. Restricted users keep their sessions but cannot order or message."""
    role_service.require_admin(ctx, action="toggle_restriction")
    _require_other_user(ctx, user_id, "toggle_restriction")
    user = _get_user(user_id)

    user.is_restricted = not user.is_restricted
    db.session.commit()

    _audit(ctx, "USER_RESTRICTED" if user.is_restricted else "USER_UNRESTRICTED", user_id, "toggle_restriction")
    return user.to_dict()


def delete_user(ctx, user_id: int) -> None:
    """
    Remove an account and everything that only makes sense with it.

    One transaction, in order:
    1. role grants and sessions
    2. notifications addressed to the user
    3. messages the user sent or that were addressed to them
    4. the user's orders and their lines
    5. the profile

    References the user holds on other people's rows (replied_by_id on
    messages, delivery_person_id on orders, assigned_by_user_id on grants)
    are cleared rather than deleted.
    """
    role_service.require_admin(ctx, action="delete_user")
    _require_other_user(ctx, user_id, "delete_user")
    user = _get_user(user_id)
    email = user.email

    try:
        db.session.query(UserRole).filter_by(user_id=user_id).delete(synchronize_session=False)
        db.session.query(UserRole).filter_by(assigned_by_user_id=user_id).update(
            {"assigned_by_user_id": None}, synchronize_session=False
        )
        db.session.query(SessionToken).filter_by(user_id=user_id).delete(synchronize_session=False)
        db.session.query(Notification).filter_by(user_id=user_id).delete(synchronize_session=False)

        db.session.query(Message).filter(
            or_(Message.sender_id == user_id, Message.recipient_id == user_id)
        ).delete(synchronize_session=False)
        db.session.query(Message).filter_by(replied_by_id=user_id).update(
            {"replied_by_id": None}, synchronize_session=False
        )

        order_ids = db.session.query(Order.id).filter_by(user_id=user_id).scalar_subquery()
        db.session.query(OrderItem).filter(OrderItem.order_id.in_(order_ids)).delete(synchronize_session=False)
        db.session.query(Order).filter_by(user_id=user_id).delete(synchronize_session=False)
        db.session.query(Order).filter_by(delivery_person_id=user_id).update(
            {"delivery_person_id": None}, synchronize_session=False
        )

        db.session.expunge(user)
        db.session.query(User).filter_by(id=user_id).delete(synchronize_session=False)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.exception("Failed to delete user %s", user_id)
        raise ConflictError("User could not be deleted")

    _audit(ctx, "USER_DELETED", user_id, "delete_user", reason=email)
    current_app.logger.info("Admin %s deleted user %s (%s)", ctx.user_id, user_id, email)


# =============================================================================
# SELF SERVICE
# =============================================================================

def update_profile(ctx, fields: dict) -> dict:
    """Owner edits their own profile. Only PROFILE_FIELDS are writable."""
    if not isinstance(fields, dict) or not fields:
        raise ValidationError("No profile fields provided")

    unknown = set(fields) - PROFILE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be changed: {', '.join(sorted(unknown))}")

    user = ctx.user
    for key, value in fields.items():
        setattr(user, key, clean_text(value, key, required=False))

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Username is already taken")
    return user.to_dict()
