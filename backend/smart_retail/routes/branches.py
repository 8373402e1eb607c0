# Overview: Flask API routes for branches; parses input and returns JSON responses.

"""
Branch management routes.

SECURITY: All routes require authentication; writes require admin.
"""
from flask import Blueprint, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import RetailError
from ..models import Branch
from ..services import branch_service, sales_service
from ..validation import BRANCH_POLICY, enforce_rules_branch, validate_payload
from ._helpers import error_response, internal_error, json_body


branches_bp = Blueprint("branches", __name__, url_prefix="/api/branches")


@branches_bp.get("")
@require_auth
def list_branches():
    branches = branch_service.list_branches()
    return jsonify({"items": [b.to_dict() for b in branches], "count": len(branches)}), 200


@branches_bp.get("/<int:branch_id>")
@require_auth
def get_branch(branch_id: int):
    try:
        return jsonify(branch_service.get_branch(branch_id).to_dict()), 200
    except RetailError as e:
        return error_response(e)


@branches_bp.post("")
@require_auth
@require_admin
def create_branch():
    try:
        patch = validate_payload(model=Branch, payload=json_body(), policy=BRANCH_POLICY, partial=False)
        enforce_rules_branch(patch)
        branch = branch_service.create_branch(patch)
        return jsonify(branch.to_dict()), 201
    except RetailError as e:
        return error_response(e)
    except Exception:
        return internal_error("create branch")


@branches_bp.put("/<int:branch_id>")
@require_auth
@require_admin
def update_branch(branch_id: int):
    try:
        patch = validate_payload(model=Branch, payload=json_body(), policy=BRANCH_POLICY, partial=True)
        enforce_rules_branch(patch)
        branch = branch_service.update_branch(branch_id, patch)
        return jsonify(branch.to_dict()), 200
    except RetailError as e:
        return error_response(e)
    except Exception:
        return internal_error("update branch")


@branches_bp.delete("/<int:branch_id>")
@require_auth
@require_admin
def delete_branch(branch_id: int):
    try:
        branch_service.delete_branch(branch_id)
        return jsonify({"message": "Branch deleted"}), 200
    except RetailError as e:
        return error_response(e)
    except Exception:
        return internal_error("delete branch")


@branches_bp.get("/<int:branch_id>/stock")
@require_auth
def branch_stock(branch_id: int):
    try:
        return jsonify(branch_service.get_branch_stock(branch_id)), 200
    except RetailError as e:
        return error_response(e)


@branches_bp.get("/<int:branch_id>/sales")
@require_auth
@require_admin
def branch_sales(branch_id: int):
    try:
        branch_service.get_branch(branch_id)
        sales = sales_service.list_sales(branch_id=branch_id, status=request.args.get("status"))
        return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)}), 200
    except RetailError as e:
        return error_response(e)
