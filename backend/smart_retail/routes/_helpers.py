# Overview: Shared error-to-response helpers for API routes.

from flask import current_app, jsonify, request

from ..errors import RetailError
from ..extensions import db


def error_response(exc: RetailError):
    return jsonify(exc.to_dict()), exc.status_code


def internal_error(action: str):
    """Roll back, log with traceback, and return a generic 500."""
    db.session.rollback()
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500


def json_body():
    """Request JSON or None; type checks are left to the parsers."""
    return request.get_json(silent=True)
