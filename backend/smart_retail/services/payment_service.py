# Overview: Payment reconciliation processor; STK push initiation and idempotent callback handling.

"""
M-Pesa payments.

STATE MACHINE (per Payment): pending -> completed | pending -> failed.

Initiation sends an STK push and records the gateway's
CheckoutRequestID on the pending payment. The callback later maps that
id back to the payment and applies exactly one terminal transition:

- ResultCode 0: payment completed (receipt, raw body stored), order
  payment_status and order_status completed.
- Anything else: payment failed, order cancelled and its stock released.

process_callback() never raises. Unknown checkout ids, replays on a
terminal payment, malformed bodies and database errors are logged and
the gateway still gets {"ResultCode": 0, "ResultDesc": "Accepted"};
an error reply would make the gateway redeliver.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from ..errors import InvalidStateTransition, NotFound, ValidationError
from ..extensions import db
from ..models import Order, Payment, User
from ..time_utils import utcnow
from ..validation import InitiatePaymentRequest
from .concurrency import atomic, lock_for_update
from .mpesa_client import get_mpesa_client
from .order_service import get_order_for_user, release_order_stock


logger = logging.getLogger(__name__)

CALLBACK_ACK = {"ResultCode": 0, "ResultDesc": "Accepted"}

OUTCOME_COMPLETED = "completed"
OUTCOME_FAILED = "failed"
OUTCOME_UNKNOWN = "unknown_checkout"
OUTCOME_REPLAY = "replay"
OUTCOME_MALFORMED = "malformed"
OUTCOME_ERROR = "error"


@dataclass(frozen=True)
class StkCallback:
    merchant_request_id: str | None
    checkout_request_id: str
    result_code: int
    result_desc: str | None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.result_code == 0


def parse_stk_callback(payload: Any) -> StkCallback:
    """Body.stkCallback -> StkCallback. Raises ValidationError on a malformed body."""
    if not isinstance(payload, dict):
        raise ValidationError("Callback body must be an object")
    body = payload.get("Body")
    callback = body.get("stkCallback") if isinstance(body, dict) else None
    if not isinstance(callback, dict):
        raise ValidationError("Missing Body.stkCallback")

    checkout_request_id = callback.get("CheckoutRequestID")
    if not isinstance(checkout_request_id, str) or not checkout_request_id:
        raise ValidationError("Missing CheckoutRequestID")

    raw_code = callback.get("ResultCode")
    if isinstance(raw_code, bool):
        raise ValidationError("ResultCode must be numeric")
    try:
        result_code = int(raw_code)
    except (TypeError, ValueError):
        raise ValidationError("ResultCode must be numeric")

    # Some gateways send ResultDesc as a number
    raw_desc = callback.get("ResultDesc")

    metadata: dict[str, Any] = {}
    meta = callback.get("CallbackMetadata")
    items = meta.get("Item") if isinstance(meta, dict) else None
    if isinstance(items, list):
        for item in items:
            if isinstance(item, dict) and isinstance(item.get("Name"), str):
                metadata[item["Name"]] = item.get("Value")

    return StkCallback(
        merchant_request_id=callback.get("MerchantRequestID"),
        checkout_request_id=checkout_request_id,
        result_code=result_code,
        result_desc=str(raw_desc) if raw_desc is not None else None,
        metadata=metadata,
    )


def receipt_number(value: Any) -> str | None:
    """MpesaReceiptNumber arrives as a string, or as a number from some gateways."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return format(value, ".0f")
    return str(value)


def _apply_callback(callback: StkCallback, raw_body: str) -> str:
    with atomic():
        payment = lock_for_update(
            db.session.query(Payment).filter_by(checkout_request_id=callback.checkout_request_id)
        ).first()
        if payment is None:
            logger.warning(
                "M-Pesa callback for unknown checkout_request_id=%s", callback.checkout_request_id
            )
            return OUTCOME_UNKNOWN

        if payment.is_terminal:
            logger.warning(
                "M-Pesa callback replay ignored: payment_id=%s already %s",
                payment.id, payment.status,
            )
            return OUTCOME_REPLAY

        order = lock_for_update(db.session.query(Order).filter_by(id=payment.order_id)).one()

        payment.result_code = callback.result_code
        payment.result_desc = (callback.result_desc or "")[:255] or None
        payment.gateway_response = raw_body

        if callback.succeeded:
            receipt = receipt_number(callback.metadata.get("MpesaReceiptNumber"))
            payment.status = "completed"
            payment.transaction_id = receipt
            order.payment_status = "completed"
            order.order_status = "completed"
            order.mpesa_receipt_number = receipt
            order.completed_at = utcnow()
            outcome = OUTCOME_COMPLETED
        else:
            payment.status = "failed"
            order.payment_status = "failed"
            if order.order_status == "processing":
                order.order_status = "cancelled"
                release_order_stock(order)
            outcome = OUTCOME_FAILED

    logger.info(
        "M-Pesa callback applied: order_id=%s payment_id=%s outcome=%s",
        payment.order_id, payment.id, outcome,
    )
    return outcome


def process_callback(payload: Any) -> str:
    """
    Apply a gateway callback. Returns the outcome name; never raises.
    The route always answers CALLBACK_ACK.
    """
    try:
        callback = parse_stk_callback(payload)
    except ValidationError as e:
        logger.warning("Malformed M-Pesa callback ignored: %s", e.message)
        return OUTCOME_MALFORMED

    try:
        return _apply_callback(callback, json.dumps(payload, default=str))
    except Exception:
        db.session.rollback()
        logger.exception(
            "Failed to process M-Pesa callback checkout_request_id=%s", callback.checkout_request_id
        )
        return OUTCOME_ERROR


def initiate_payment(request: InitiatePaymentRequest, user: User) -> dict:
    """
    Send an STK push for a processing order with a non-terminal payment.

    The gateway call happens outside any transaction. A gateway failure
    fails this request and leaves the payment unchanged. Re-initiating a
    pending payment replaces its checkout id.
    """
    order = get_order_for_user(request.order_id, user)
    payment = order.payment
    if payment is None:
        raise NotFound("Payment", order.id)
    if order.order_status != "processing" or payment.is_terminal:
        raise InvalidStateTransition("payment", payment.status, "pending")

    phone = request.phone or payment.phone

    with get_mpesa_client() as client:
        result = client.stk_push(
            phone=phone,
            amount_cents=payment.amount_cents,
            account_reference=f"ORDER_{order.id}",
            description=f"Payment for order {order.id}",
        )

    with atomic():
        payment = lock_for_update(db.session.query(Payment).filter_by(id=payment.id)).one()
        if payment.is_terminal:
            raise InvalidStateTransition("payment", payment.status, "pending")
        payment.phone = phone
        payment.checkout_request_id = result.checkout_request_id
        payment.merchant_request_id = result.merchant_request_id

    logger.info(
        "STK push sent: order_id=%s checkout_request_id=%s", order.id, result.checkout_request_id
    )
    return {
        "message": "STK push sent",
        "order_id": order.id,
        "checkout_request_id": result.checkout_request_id,
        "merchant_request_id": result.merchant_request_id,
        "customer_message": result.customer_message,
    }


def get_payment_status(order_id: int, user: User) -> dict:
    order = get_order_for_user(order_id, user)
    return {
        "order_id": order.id,
        "payment_status": order.payment_status,
        "order_status": order.order_status,
        "mpesa_receipt_number": order.mpesa_receipt_number,
        "payment": order.payment.to_dict() if order.payment else None,
    }
