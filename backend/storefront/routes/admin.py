# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

"""
Admin routes for user and role management.

Provides endpoints for:
- User listing with roles
- Role grants (assign, revoke)
- Account restriction and deletion

All endpoints require authentication and the admin role.
"""

from flask import Blueprint, g, jsonify

from ..decorators import json_body, require_auth, require_role
from ..roles import ROLE_ADMIN
from ..services import user_admin_service


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_role(ROLE_ADMIN)
def list_users():
    users = user_admin_service.list_users(g.session_context)
    return jsonify({"users": users, "count": len(users)})


@admin_bp.post("/users/<int:user_id>/restriction")
@require_auth
@require_role(ROLE_ADMIN)
def toggle_restriction(user_id: int):
    user = user_admin_service.toggle_restriction(g.session_context, user_id)
    return jsonify({"user": user})


@admin_bp.delete("/users/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_user(user_id: int):
    user_admin_service.delete_user(g.session_context, user_id)
    return jsonify({"deleted": user_id})


# =============================================================================
# ROLE MANAGEMENT
# =============================================================================

@admin_bp.post("/users/<int:user_id>/roles")
@require_auth
@require_role(ROLE_ADMIN)
def assign_role(user_id: int):
    """Request body: role: admin | employee | delivery"""
    data = json_body()
    grant = user_admin_service.assign_role(g.session_context, user_id, data.get("role"))
    return jsonify({"grant": grant}), 201


@admin_bp.delete("/users/<int:user_id>/roles/<role>")
@require_auth
@require_role(ROLE_ADMIN)
def remove_role(user_id: int, role: str):
    user_admin_service.remove_role(g.session_context, user_id, role)
    return jsonify({"user_id": user_id, "removed": role})
