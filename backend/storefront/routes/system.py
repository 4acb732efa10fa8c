# backend/storefront/routes/system.py
"""
System health endpoint.

Reports database connectivity so load balancers and deploy scripts can tell
a dead backend from a slow one.
"""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import change_feed, db
from ..models import Order, User

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity with two cheap counts.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        order_count = db.session.query(Order).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "orders": order_count,
            },
        }
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    payload = {
        "status": "ok" if healthy else "degraded",
        "checks": {
            "database": database,
            "change_feed": {"subscribers": len(change_feed)},
        },
    }
    return jsonify(payload), 200 if healthy else 503
