# Overview: Flask API routes for notifications; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import notification_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_route():
    """
    Caller's notifications, newest first.

    Query params:
    - unread: bool (default false)
    - limit: int
    """
    unread_only = request.args.get("unread", "false").lower() == "true"
    limit = request.args.get("limit", type=int)
    notifications = notification_service.list_for_user(g.session_context, unread_only=unread_only, limit=limit)
    return jsonify({"notifications": notifications, "count": len(notifications)})


@notifications_bp.get("/unread-count")
@require_auth
def unread_count_route():
    return jsonify({"unread": notification_service.unread_count(g.session_context)})


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    notification = notification_service.mark_read(g.session_context, notification_id)
    return jsonify({"notification": notification})


@notifications_bp.post("/read-all")
@require_auth
def mark_all_read_route():
    updated = notification_service.mark_all_read(g.session_context)
    return jsonify({"updated": updated})
