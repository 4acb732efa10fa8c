# Overview: Service-layer operations for auth; signup, password hashing, credential checks.

"""
Authentication Service

Every action must be attributable to an account. Passwords are hashed with
bcrypt and checked for minimum strength at signup.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, at least one letter and one digit
- Session tokens managed separately (see session_service.py)
- Restricted users can still authenticate; restriction is enforced per action
"""

import re

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, ValidationError
from ..extensions import db
from ..models import User
from ..time_utils import utcnow
from ..validation import clean_text
from . import notification_service


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one letter
    - At least one digit

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Hash password using bcrypt. Password is validated for strength before hashing."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """bcrypt.checkpw() is timing-safe. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def normalize_email(email: str) -> str:
    email = clean_text(email, "email", required=False, lower=True) or ""
    if not EMAIL_RE.match(email):
        raise ValidationError("A valid email address is required")
    return email


def create_user(email: str, password: str, full_name: str | None = None, phone: str | None = None) -> User:
    """
    Create a new account with a bcrypt password hash.

    Raises:
        ValidationError: malformed email
        PasswordValidationError: weak password
        ConflictError: email already registered
    """
    email = normalize_email(email)
    password_hash = hash_password(password)

    if db.session.query(User.id).filter_by(email=email).first():
        raise ConflictError("An account with this email already exists")

    user = User(
        email=email,
        password_hash=password_hash,
        full_name=clean_text(full_name, "full_name", required=False),
        phone=clean_text(phone, "phone", required=False),
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("An account with this email already exists")
    return user


def signup(email: str, password: str, full_name: str | None = None, phone: str | None = None) -> User:
    """Self-service registration. Admins are told about the new account."""
    user = create_user(email, password, full_name=full_name, phone=phone)
    current_app.logger.info("New signup: user %s", user.id)

    notification_service.notify(
        notification_service.EVENT_USER_SIGNED_UP,
        {
            "user_id": user.id,
            "email": user.email,
            "full_name": user.full_name,
            "display_name": user.display_name,
        },
    )
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Check credentials.

    Returns the User and stamps last_login_at on success, None otherwise.
    """
    if not isinstance(email, str) or not isinstance(password, str):
        return None
    email = email.strip().lower()
    if not email or not password:
        return None

    user = db.session.query(User).filter_by(email=email).first()
    if not user:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
