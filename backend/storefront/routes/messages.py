# Overview: Flask API routes for messages; parses input and returns JSON responses.

"""
Messaging API routes

All endpoints require authentication. Who may read, answer or delete a
given message is decided in message_service from the session context.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import json_body, require_auth
from ..services import message_service


messages_bp = Blueprint("messages", __name__, url_prefix="/api/messages")


@messages_bp.get("/inbox")
@require_auth
def inbox_route():
    messages = message_service.list_inbox(g.session_context)
    return jsonify({"messages": messages, "count": len(messages)})


@messages_bp.get("/sent")
@require_auth
def sent_route():
    messages = message_service.list_sent(g.session_context)
    return jsonify({"messages": messages, "count": len(messages)})


@messages_bp.get("/support")
@require_auth
def support_queue_route():
    """Staff only. Query params: state=pending|replied (optional)"""
    messages = message_service.list_support_queue(g.session_context, request.args.get("state"))
    return jsonify({"messages": messages, "count": len(messages)})


@messages_bp.post("")
@require_auth
def send_route():
    """
    Send a message.

    Request body:
    - subject: str (required)
    - body: str (required)
    - recipient_type: admin | specific_admin | all_employees | employee | user (default admin)
    - recipient_id: int (required for specific_admin, employee, user)
    """
    data = json_body()
    recipient = message_service.parse_recipient(data.get("recipient_type"), data.get("recipient_id"))
    message = message_service.send(g.session_context, data.get("subject"), data.get("body"), recipient)
    return jsonify({"message": message}), 201


@messages_bp.post("/<int:message_id>/reply")
@require_auth
def reply_route(message_id: int):
    data = json_body()
    message = message_service.reply(g.session_context, message_id, data.get("reply"))
    return jsonify({"message": message})


@messages_bp.post("/<int:message_id>/read")
@require_auth
def mark_reply_read_route(message_id: int):
    message = message_service.mark_reply_read(g.session_context, message_id)
    return jsonify({"message": message})


@messages_bp.post("/<int:message_id>/seen")
@require_auth
def mark_seen_route(message_id: int):
    message = message_service.mark_seen(g.session_context, message_id)
    return jsonify({"message": message})


@messages_bp.delete("/<int:message_id>")
@require_auth
def delete_route(message_id: int):
    message_service.delete(g.session_context, message_id)
    return jsonify({"deleted": message_id})


@messages_bp.get("/recipients")
@require_auth
def recipients_route():
    """Query params: kind=employee|admin"""
    recipients = message_service.list_recipients(g.session_context, request.args.get("kind"))
    return jsonify({"recipients": recipients})
