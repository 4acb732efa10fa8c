# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- POST /signup   create an account, returns a session token
- POST /login    exchange email + password for a session token
- POST /logout   revoke the presented token
- GET  /me       current user with roles
- PATCH /me      edit own profile fields
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import bearer_token, json_body, require_auth
from ..services import auth_service, role_service, session_service, user_admin_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_payload(user, token: str, session) -> dict:
    return {
        "user": user.to_dict(),
        "roles": sorted(role_service.get_roles(user.id)),
        "token": token,
        "expires_at": session.to_dict()["expires_at"],
    }


@auth_bp.post("/signup")
def signup_route():
    """
    Self-service registration.

    Request body:
    - email: str (required)
    - password: str (required, 8+ chars with a letter and a digit)
    - full_name: str (optional)
    - phone: str (optional)
    """
    data = json_body()

    user = auth_service.signup(
        data.get("email"),
        data.get("password"),
        full_name=data.get("full_name"),
        phone=data.get("phone"),
    )

    session, token = session_service.create_session(
        user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return jsonify(_session_payload(user, token, session)), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in the Authorization header for protected routes.
    Failed attempts are recorded in security_events.
    """
    data = json_body()
    email = data.get("email")
    password = data.get("password")

    if not email or not password:
        return jsonify({"error": "email and password required"}), 400

    user_agent = request.headers.get("User-Agent")
    ip_address = request.remote_addr

    user = auth_service.authenticate(email, password)
    if not user:
        role_service.log_security_event(
            user_id=None,
            event_type="LOGIN_FAILED",
            success=False,
            resource="/api/auth/login",
            action="login",
            reason="Invalid credentials",
            ip_address=ip_address,
            user_agent=user_agent,
        )
        current_app.logger.warning("Failed login from %s", ip_address)
        return jsonify({"error": "Invalid credentials"}), 401

    session, token = session_service.create_session(user.id, user_agent=user_agent, ip_address=ip_address)
    return jsonify(_session_payload(user, token, session))


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(bearer_token())
    return jsonify({"message": "Logged out"})


@auth_bp.get("/me")
@require_auth
def me_route():
    ctx = g.session_context
    return jsonify({"user": ctx.user.to_dict(), "roles": sorted(ctx.roles)})


@auth_bp.patch("/me")
@require_auth
def update_me_route():
    data = json_body()
    user = user_admin_service.update_profile(g.session_context, data)
    return jsonify({"user": user})
