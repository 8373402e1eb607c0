# Overview: Flask API routes for admin reports; parses query params and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import RetailError
from ..services import reporting_service
from ..validation import parse_threshold
from ._helpers import error_response


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales")
@require_auth
@require_admin
def sales_report():
    try:
        return jsonify(reporting_service.sales_report(
            period=request.args.get("period"),
            branch_id=request.args.get("branch_id", type=int),
        )), 200
    except RetailError as e:
        return error_response(e)


@reports_bp.get("/branches")
@require_auth
@require_admin
def branch_report():
    try:
        return jsonify(reporting_service.branch_performance(period=request.args.get("period"))), 200
    except RetailError as e:
        return error_response(e)


@reports_bp.get("/low-stock")
@require_auth
@require_admin
def low_stock_report():
    threshold = parse_threshold(request.args.get("threshold"), current_app.config["LOW_STOCK_THRESHOLD"])
    return jsonify(reporting_service.low_stock_report(threshold=threshold)), 200


@reports_bp.get("/revenue")
@require_auth
@require_admin
def revenue_report():
    try:
        return jsonify(reporting_service.revenue_summary(period=request.args.get("period"))), 200
    except RetailError as e:
        return error_response(e)


@reports_bp.get("/daily-trend")
@require_auth
@require_admin
def daily_trend_report():
    days = request.args.get("days", 30, type=int)
    if days < 1 or days > 365:
        return jsonify({"error": "days must be between 1 and 365"}), 400
    return jsonify(reporting_service.daily_sales_trend(days=days)), 200


@reports_bp.get("/orders")
@require_auth
@require_admin
def order_report():
    try:
        return jsonify(reporting_service.order_report(period=request.args.get("period"))), 200
    except RetailError as e:
        return error_response(e)
