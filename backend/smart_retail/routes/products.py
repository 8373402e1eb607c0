# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product catalog routes.

SECURITY: All routes require authentication; writes require admin.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import RetailError
from ..models import Product
from ..services import products_service
from ..validation import PRODUCT_POLICY, enforce_rules_product, validate_payload
from ._helpers import error_response, internal_error, json_body


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    """
    Query params:
    - brand: exact brand filter
    - category: exact category filter
    - include_inactive: "true" to include deactivated products (admin only)
    """
    include_inactive = (
        request.args.get("include_inactive", "false").lower() == "true"
        and g.current_user.is_admin
    )
    products = products_service.list_products(
        brand=request.args.get("brand"),
        category=request.args.get("category"),
        include_inactive=include_inactive,
    )
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.get("/<int:product_id>")
@require_auth
def get_product(product_id: int):
    try:
        return jsonify(products_service.get_product(product_id).to_dict()), 200
    except RetailError as e:
        return error_response(e)


@products_bp.post("")
@require_auth
@require_admin
def create_product_route():
    try:
        patch = validate_payload(model=Product, payload=json_body(), policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = products_service.create_product(patch)
        return jsonify(product.to_dict()), 201
    except RetailError as e:
        return error_response(e)
    except Exception:
        return internal_error("create product")


@products_bp.put("/<int:product_id>")
@require_auth
@require_admin
def update_product_route(product_id: int):
    try:
        patch = validate_payload(model=Product, payload=json_body(), policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        product = products_service.update_product(product_id, patch)
        return jsonify(product.to_dict()), 200
    except RetailError as e:
        return error_response(e)
    except Exception:
        return internal_error("update product")


@products_bp.delete("/<int:product_id>")
@require_auth
@require_admin
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id)
        return jsonify({"ok": True}), 200
    except RetailError as e:
        return error_response(e)
    except Exception:
        return internal_error("delete product")


@products_bp.get("/<int:product_id>/stock")
@require_auth
def product_stock(product_id: int):
    try:
        return jsonify(products_service.get_stock_across_branches(product_id)), 200
    except RetailError as e:
        return error_response(e)
