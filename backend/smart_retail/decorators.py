# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def require_auth(f):
    """
    Require a valid session token.

    Sets g.current_user and g.session_token. Returns 401 if the header is
    missing, or the token is invalid, expired, revoked, or belongs to a
    deactivated account.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            return jsonify({"error": "Authentication required"}), 401

        user = session_service.validate_session(token)
        if user is None:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = user
        g.session_token = token
        return f(*args, **kwargs)

    return decorated_function


def require_role(role: str):
    """Require the authenticated user to hold `role`. Must follow @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return jsonify({"error": "Authentication required"}), 401
            if user.role != role:
                return jsonify({
                    "error": "Permission denied",
                    "required_role": role,
                }), 403
            return f(*args, **kwargs)

        return decorated_function

    return decorator


require_admin = require_role("admin")
