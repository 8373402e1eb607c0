# Overview: Flask API routes for M-Pesa payments; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..errors import RetailError
from ..services import payment_service
from ..validation import parse_initiate_payment
from ._helpers import error_response, internal_error, json_body


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/mpesa/initiate")
@require_auth
def initiate_route():
    """
    Send an STK push for the caller's order.

    502 when the gateway rejects or cannot be reached, 503 when M-Pesa
    credentials are not configured. The payment stays pending either way.
    """
    try:
        req = parse_initiate_payment(json_body())
        return jsonify(payment_service.initiate_payment(req, g.current_user)), 200
    except RetailError as e:
        return error_response(e)
    except Exception:
        return internal_error("initiate payment")


@payments_bp.post("/mpesa/callback")
def callback_route():
    # Unauthenticated gateway webhook; always acknowledged
    payment_service.process_callback(request.get_json(silent=True))
    return jsonify(payment_service.CALLBACK_ACK), 200


@payments_bp.get("/<int:order_id>/status")
@require_auth
def payment_status_route(order_id: int):
    try:
        return jsonify(payment_service.get_payment_status(order_id, g.current_user)), 200
    except RetailError as e:
        return error_response(e)
