# Overview: Flask API routes for inventory and stock alerts; parses input and returns JSON responses.

"""
Inventory routes.

SECURITY: Admin only. Stock is changed here only through the audited
set-quantity path; sales, orders and restocks move it elsewhere.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import RetailError, ValidationError
from ..services import inventory_service, restock_service
from ..validation import parse_set_quantity, parse_threshold
from ._helpers import error_response, internal_error, json_body


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_auth
@require_admin
def list_inventory():
    threshold = parse_threshold(
        request.args.get("threshold"),
        current_app.config["ADMIN_INVENTORY_LOW_STOCK_THRESHOLD"],
    )
    return jsonify(inventory_service.list_inventory(threshold)), 200


@inventory_bp.get("/hq")
@require_auth
@require_admin
def hq_stock():
    try:
        return jsonify(restock_service.get_hq_stock()), 200
    except RetailError as e:
        return error_response(e)


@inventory_bp.put("/adjust")
@require_auth
@require_admin
def adjust_stock():
    """Set an entry to an absolute quantity. Body: branch_id, product_id, quantity, reason."""
    try:
        req = parse_set_quantity(json_body())
        return jsonify(inventory_service.set_quantity(req, g.current_user.id)), 200
    except RetailError as e:
        return error_response(e)
    except Exception:
        return internal_error("adjust stock")


@inventory_bp.get("/alerts/low")
@require_auth
@require_admin
def low_stock_alerts():
    threshold = parse_threshold(request.args.get("threshold"), current_app.config["LOW_STOCK_THRESHOLD"])
    branch_id = request.args.get("branch_id", type=int)
    return jsonify(inventory_service.low_stock_alerts(threshold, branch_id=branch_id)), 200


@inventory_bp.get("/alerts/critical")
@require_auth
@require_admin
def critical_alerts():
    return jsonify(inventory_service.critical_stock_alerts()), 200


@inventory_bp.get("/alerts/branch/<int:branch_id>")
@require_auth
@require_admin
def branch_alerts(branch_id: int):
    threshold = parse_threshold(request.args.get("threshold"), current_app.config["LOW_STOCK_THRESHOLD"])
    try:
        return jsonify(inventory_service.branch_stock_alerts(branch_id, threshold)), 200
    except RetailError as e:
        return error_response(e)


@inventory_bp.get("/alerts/summary")
@require_auth
@require_admin
def alert_summary():
    return jsonify(inventory_service.alert_summary()), 200


@inventory_bp.post("/alerts/evaluate")
@require_auth
@require_admin
def evaluate_alert():
    data = json_body()
    try:
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        fields = {}
        for name in ("branch_id", "product_id", "threshold"):
            value = data.get(name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"{name} must be an integer", field=name)
            fields[name] = value
        return jsonify(inventory_service.evaluate_alert_rule(**fields)), 200
    except RetailError as e:
        return error_response(e)


@inventory_bp.get("/alerts/history")
@require_auth
@require_admin
def alert_history():
    days = request.args.get("days", 7, type=int)
    if days < 1 or days > 90:
        return jsonify({"error": "days must be between 1 and 90"}), 400
    return jsonify(inventory_service.alert_history(days)), 200
