# Overview: Flask API routes for customer orders; parses input and returns JSON responses.

"""
Order routes.

SECURITY: Customers only ever see their own orders. A foreign order id
answers 404, the same as a missing one.
"""
from flask import Blueprint, g, jsonify, request, url_for

from ..decorators import require_admin, require_auth
from ..errors import RetailError
from ..models.sales import ORDER_STATUSES
from ..services import order_service
from ..validation import parse_create_order, parse_status
from ._helpers import error_response, internal_error, json_body


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_auth
def create_order_route():
    try:
        req = parse_create_order(json_body())
        order = order_service.create_order(req, g.current_user.id)
        return jsonify({
            "message": "Order created",
            "order": order.to_dict(),
            "payment_url": url_for("payments.initiate_route"),
        }), 201
    except RetailError as e:
        return error_response(e)
    except Exception:
        return internal_error("create order")


@orders_bp.get("")
@require_auth
def list_orders_route():
    status = request.args.get("status")
    if status is not None and status not in ORDER_STATUSES:
        return jsonify({"error": f"status must be one of: {', '.join(ORDER_STATUSES)}"}), 400
    orders = order_service.list_orders(g.current_user, status=status)
    return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)}), 200


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        return jsonify(order_service.get_order_for_user(order_id, g.current_user).to_dict()), 200
    except RetailError as e:
        return error_response(e)


@orders_bp.patch("/<int:order_id>/status")
@require_auth
@require_admin
def update_order_status_route(order_id: int):
    try:
        status = parse_status(json_body(), ORDER_STATUSES)
        order = order_service.update_order_status(order_id, status, g.current_user)
        return jsonify(order.to_dict()), 200
    except RetailError as e:
        return error_response(e)
    except Exception:
        return internal_error("update order status")
