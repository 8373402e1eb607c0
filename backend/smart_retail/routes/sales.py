# Overview: Flask API routes for sales; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import NotFound, RetailError
from ..models.sales import SALE_STATUSES
from ..services import sales_service
from ..validation import parse_create_sale, parse_status
from ._helpers import error_response, internal_error, json_body


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Record an online sale.

    Lines are priced from the catalog; any client price is ignored.
    Returns 409 with {product_id, available, requested} on a shortfall.
    """
    try:
        req = parse_create_sale(json_body())
        sale = sales_service.create_sale(req, g.current_user.id)
        return jsonify({"message": "Sale recorded", "sale": sale.to_dict()}), 201
    except RetailError as e:
        return error_response(e)
    except Exception:
        return internal_error("create sale")


@sales_bp.get("")
@require_auth
@require_admin
def list_sales_route():
    status = request.args.get("status")
    if status is not None and status not in SALE_STATUSES:
        return jsonify({"error": f"status must be one of: {', '.join(SALE_STATUSES)}"}), 400
    sales = sales_service.list_sales(status=status, branch_id=request.args.get("branch_id", type=int))
    return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)}), 200


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        if not g.current_user.is_admin and sale.user_id != g.current_user.id:
            raise NotFound("Sale", sale_id)
        return jsonify(sale.to_dict()), 200
    except RetailError as e:
        return error_response(e)


@sales_bp.patch("/<int:sale_id>/status")
@require_auth
@require_admin
def update_sale_status_route(sale_id: int):
    try:
        status = parse_status(json_body(), SALE_STATUSES)
        sale = sales_service.update_sale_status(sale_id, status)
        return jsonify(sale.to_dict()), 200
    except RetailError as e:
        return error_response(e)
    except Exception:
        return internal_error("update sale status")
