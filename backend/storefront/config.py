# backend/storefront/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Local SQLite file unless DATABASE_URL points at a hosted database
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///storefront.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    SESSION_ABSOLUTE_TIMEOUT_HOURS = int(os.environ.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", "24"))
    SESSION_IDLE_TIMEOUT_HOURS = int(os.environ.get("SESSION_IDLE_TIMEOUT_HOURS", "2"))

    # The admin inbox historically listed every message, including employee broadcasts.
    ADMINS_SEE_EMPLOYEE_BROADCASTS = _env_flag("ADMINS_SEE_EMPLOYEE_BROADCASTS", True)

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:8080",
        ).split(",")
        if origin.strip()
    ]

    # Used in notification text only
    CURRENCY_SYMBOL = os.environ.get("CURRENCY_SYMBOL", "Tk")

    # bcrypt cost factor; tests lower it
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
