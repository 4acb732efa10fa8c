# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Session Token Management

Bearer tokens are the authentication boundary the rest of the backend
consumes: validate_session(token) answers "who is the current user".

- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Absolute and idle timeouts (configurable, see Config)
- Revocable on logout

Every service operation takes the resulting SessionContext explicitly rather
than reading ambient request state.
"""

import hashlib
import secrets
from dataclasses import dataclass, field
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User, UserRole
from ..roles import ROLE_ADMIN, ROLE_DELIVERY, ROLE_EMPLOYEE, STAFF_ROLES
from ..time_utils import as_naive_utc, utcnow


@dataclass
class SessionContext:
    """
    The caller of a service operation.

    Roles are loaded once per context and cached; build a new context after
    changing someone's grants.
    """
    user: User
    session: SessionToken | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    _roles: frozenset | None = field(default=None, repr=False)

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def roles(self) -> frozenset:
        if self._roles is None:
            rows = db.session.query(UserRole.role).filter_by(user_id=self.user.id).all()
            self._roles = frozenset(r[0] for r in rows)
        return self._roles

    def has_role(self, role: str) -> bool:
        return role in self.roles

    @property
    def is_admin(self) -> bool:
        return self.has_role(ROLE_ADMIN)

    @property
    def is_employee(self) -> bool:
        return self.has_role(ROLE_EMPLOYEE)

    @property
    def is_delivery(self) -> bool:
        return self.has_role(ROLE_DELIVERY)

    @property
    def is_staff(self) -> bool:
        return bool(self.roles & STAFF_ROLES)

    def refresh_roles(self) -> None:
        self._roles = None


def context_for_user(user: User, **kwargs) -> SessionContext:
    """Build a context without a token (CLI commands, background jobs, tests)."""
    return SessionContext(user=user, **kwargs)


def generate_token() -> str:
    return secrets.token_hex(32)  # 32 bytes = 64 hex characters


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24))


def _idle_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_IDLE_TIMEOUT_HOURS", 2))


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Create a new session token for a user.

    Returns (session_record, plaintext_token). Only the hash is stored.
    """
    user = db.session.get(User, user_id)
    if not user:
        raise ValueError("User not found")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _absolute_timeout(),
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str, ip_address: str | None = None, user_agent: str | None = None) -> SessionContext | None:
    """
    Validate a session token and return a SessionContext if valid.

    Returns None when the token is unknown, revoked, past its absolute expiry,
    idle for too long, or its user no longer exists. Updates last_used_at.
    """
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session or session.is_revoked:
        return None

    now = utcnow()
    if as_naive_utc(session.expires_at) <= now:
        return None

    if as_naive_utc(session.last_used_at) + _idle_timeout() <= now:
        session.is_revoked = True
        session.revoked_at = now
        db.session.commit()
        return None

    user = db.session.get(User, session.user_id)
    if not user:
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session, ip_address=ip_address, user_agent=user_agent)


def revoke_session(token: str) -> bool:
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session or session.is_revoked:
        return False

    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()
    return True

