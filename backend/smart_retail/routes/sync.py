# Overview: Flask API routes for offline sale sync; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import RetailError
from ..services import sync_service
from ..validation import parse_status, parse_sync_batch
from ._helpers import error_response, internal_error, json_body


sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


@sync_bp.post("")
@require_auth
def sync_route():
    """
    Replay a batch of offline sales.

    Always 200 once the envelope parses; each record carries its own
    status (synced, duplicate, insufficient_stock, failed).
    """
    try:
        req = parse_sync_batch(json_body())
        return jsonify(sync_service.sync_offline_sales(req, g.current_user.id)), 200
    except RetailError as e:
        return error_response(e)
    except Exception:
        return internal_error("sync offline sales")


@sync_bp.get("/status/<client_id>")
@require_auth
def sync_status_route(client_id: str):
    return jsonify(sync_service.get_sync_status(client_id)), 200


@sync_bp.get("/pending")
@require_auth
def pending_route():
    sales = sync_service.get_pending_sales(branch_id=request.args.get("branch_id", type=int))
    return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)}), 200


@sync_bp.post("/sales/<int:sale_id>/resolve")
@require_auth
@require_admin
def resolve_route(sale_id: int):
    try:
        action = parse_status(json_body(), sync_service.RESOLVE_ACTIONS, field="action")
        return jsonify(sync_service.resolve_conflict(sale_id, action, g.current_user.id)), 200
    except RetailError as e:
        return error_response(e)
    except Exception:
        return internal_error("resolve sync conflict")
