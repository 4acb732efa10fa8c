# Overview: Service-layer operations for roles; the role store and the authorization guard.

"""
Role Store and Authorization Guard

The role store is the user_roles table: zero or more grants per user from
{admin, employee, delivery}. No grant means the implicit "user" level.

The guard is require_role(): every privileged service operation calls it
before touching the database, so a denial never leaves a partial write.

DESIGN PRINCIPLES:
- Fail closed: deny unless a grant exists
- Log denials only: successful checks are not audited
- Per-session cache: role lookups go through SessionContext.roles
"""

from flask import current_app

from ..errors import AccessDenied
from ..extensions import db
from ..models import SecurityEvent, User, UserRole
from ..roles import (
    ROLE_ADMIN,
    ROLE_DELIVERY,
    ROLE_EMPLOYEE,
    STAFF_ROLES,
)
from ..time_utils import utcnow


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """
    Append an entry to the security audit trail.

    event_type examples:
    - ACCESS_DENIED
    - ROLE_ASSIGNED / ROLE_REMOVED
    - USER_RESTRICTED / USER_UNRESTRICTED
    - USER_DELETED
    - LOGIN_FAILED
    """
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )
    db.session.add(event)
    db.session.commit()
    return event


def get_roles(user_id: int) -> set[str]:
    rows = db.session.query(UserRole.role).filter_by(user_id=user_id).all()
    return {r[0] for r in rows}


def has_role(user_id: int, role: str) -> bool:
    return (
        db.session.query(UserRole.id)
        .filter_by(user_id=user_id, role=role)
        .first()
        is not None
    )


def is_admin(user_id: int) -> bool:
    return has_role(user_id, ROLE_ADMIN)


def is_employee(user_id: int) -> bool:
    return has_role(user_id, ROLE_EMPLOYEE)


def is_delivery(user_id: int) -> bool:
    return has_role(user_id, ROLE_DELIVERY)


def is_staff(user_id: int) -> bool:
    return bool(get_roles(user_id) & STAFF_ROLES)


def user_ids_with_role(role: str) -> list[int]:
    rows = db.session.query(UserRole.user_id).filter_by(role=role).order_by(UserRole.user_id).all()
    return [r[0] for r in rows]


def users_with_role(role: str) -> list[User]:
    return (
        db.session.query(User)
        .join(UserRole, UserRole.user_id == User.id)
        .filter(UserRole.role == role)
        .order_by(User.full_name, User.email)
        .all()
    )


def deny(ctx, action: str, reason: str, resource: str | None = None) -> AccessDenied:
    """Record a denial and return the exception for the caller to raise."""
    current_app.logger.warning("Access denied for user %s on %s: %s", ctx.user_id, action, reason)
    log_security_event(
        user_id=ctx.user_id,
        event_type="ACCESS_DENIED",
        success=False,
        resource=resource,
        action=action,
        reason=reason,
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return AccessDenied(reason)


def require_role(ctx, *roles: str, action: str | None = None) -> None:
    """
    Require the caller to hold at least one of roles.

    Raises AccessDenied (after auditing) otherwise.

    Usage:
        require_role(ctx, ROLE_ADMIN, action="verify_payment")
    """
    if ctx.roles & set(roles):
        return
    action = action or f"ANY_OF:{','.join(roles)}"
    raise deny(ctx, action, f"Requires one of: {', '.join(roles)}")


def require_admin(ctx, action: str | None = None) -> None:
    require_role(ctx, ROLE_ADMIN, action=action)


def require_staff(ctx, action: str | None = None) -> None:
    require_role(ctx, *sorted(STAFF_ROLES), action=action)


def require_unrestricted(ctx, action: str) -> None:
    if ctx.user.is_restricted:
        raise deny(ctx, action, "Account is restricted")
