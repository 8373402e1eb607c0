# Overview: Flask API routes for HQ restock transfers; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import RetailError
from ..services import restock_service
from ..time_utils import parse_iso_datetime
from ..validation import parse_bulk_restock, parse_restock, parse_threshold
from ._helpers import error_response, internal_error, json_body


restock_bp = Blueprint("restock", __name__, url_prefix="/api/restock")


@restock_bp.post("")
@require_auth
@require_admin
def restock_route():
    """Move stock from HQ to a branch. HQ shortfall is a 409 and nothing changes."""
    try:
        req = parse_restock(json_body())
        return jsonify(restock_service.restock(req, g.current_user.id)), 200
    except RetailError as e:
        return error_response(e)
    except Exception:
        return internal_error("restock branch")


@restock_bp.post("/bulk")
@require_auth
@require_admin
def bulk_restock_route():
    try:
        req = parse_bulk_restock(json_body())
        return jsonify(restock_service.bulk_restock(req, g.current_user.id)), 200
    except RetailError as e:
        return error_response(e)
    except Exception:
        return internal_error("bulk restock")


@restock_bp.get("/logs")
@require_auth
@require_admin
def restock_logs_route():
    """
    Query params:
    - branch_id, product_id: filters
    - start, end: ISO-8601 bounds on created_at
    - limit: default 100, max 500
    """
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start and end must be ISO-8601 datetimes"}), 400

    limit = min(max(request.args.get("limit", 100, type=int), 1), 500)
    logs = restock_service.get_restock_logs(
        branch_id=request.args.get("branch_id", type=int),
        product_id=request.args.get("product_id", type=int),
        start=start,
        end=end,
        limit=limit,
    )
    return jsonify({"items": [log.to_dict() for log in logs], "count": len(logs)}), 200


@restock_bp.get("/suggestions")
@require_auth
@require_admin
def restock_suggestions_route():
    threshold = parse_threshold(request.args.get("threshold"), current_app.config["LOW_STOCK_THRESHOLD"])
    try:
        return jsonify(restock_service.get_restock_suggestions(threshold)), 200
    except RetailError as e:
        return error_response(e)
