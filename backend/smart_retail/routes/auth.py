# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..errors import RetailError
from ..services import auth_service, session_service
from ..validation import parse_login, parse_register
from ._helpers import error_response, internal_error, json_body


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    """Self-registration. Always creates a customer account."""
    try:
        req = parse_register(json_body())
        user = auth_service.create_user(
            name=req.name,
            email=req.email,
            phone=req.phone,
            password=req.password,
            role="customer",
        )
        return jsonify({"message": "User registered successfully", "user": user.to_dict()}), 201
    except RetailError as e:
        return error_response(e)
    except Exception:
        return internal_error("register user")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and create a session token.

    The token goes in the Authorization header: "Bearer <token>".
    """
    try:
        req = parse_login(json_body())
        user = auth_service.authenticate(req.email, req.password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify({
            "token": token,
            "expires_at": session.to_dict()["expires_at"],
            "user": user.to_dict(),
        }), 200
    except RetailError as e:
        return error_response(e)
    except Exception:
        return internal_error("log in")


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.session_token)
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200
