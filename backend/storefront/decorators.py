# Overview: Request and role decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .errors import AccessDenied, ValidationError
from .services import role_service, session_service


def _is_authenticated() -> bool:
    return hasattr(g, "session_context")


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def json_body() -> dict:
    """Request JSON as a dict. A missing body is {}; any other non-object is rejected."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_auth(f):
    """
    Require a valid bearer token.

    Sets the following Flask g attributes:
    - g.session_context: the SessionContext passed to every service call
    - g.current_user: the authenticated User

    Returns 401 if the Authorization header is missing or the token is
    unknown, revoked or expired.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(
            token,
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.session_context = context
        g.current_user = context.user

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require any of the given roles. Must be stacked under @require_auth.

    Denials are audited by role_service and rendered as 403.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            try:
                role_service.require_role(g.session_context, *roles, action=request.endpoint)
            except AccessDenied as e:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                    "message": str(e),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
