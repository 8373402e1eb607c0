# Overview: Order transaction processor; orders decrement stock and open a pending M-Pesa payment.

"""
Customer orders.

LIFECYCLE:
- processing / payment pending: created here, stock already decremented
- completed: payment callback succeeded, or admin completed it
- cancelled: payment callback failed, or admin cancelled it;
  the order's stock is released back to the branch

release_order_stock() is the only path that returns order stock, and
always writes one InventoryAdjustment per line.
"""
from __future__ import annotations

import logging

from ..errors import InvalidStateTransition, NotFound, PermissionDenied
from ..extensions import db
from ..models import InventoryAdjustment, Order, OrderLine, Payment, User
from ..time_utils import utcnow
from ..validation import CreateOrderRequest
from . import stock_ledger
from .concurrency import atomic, lock_for_update
from .sales_service import load_products, lock_branch, reserve_stock


logger = logging.getLogger(__name__)


def create_order(request: CreateOrderRequest, user_id: int) -> Order:
    """
    Record an order and its pending payment in one transaction.

    Lines are priced from the live catalog; the brand is captured with
    the price.
    """
    with atomic():
        lock_branch(request.branch_id)
        products = load_products(request.items)

        reserve_stock(request.branch_id, request.items)

        order = Order(
            user_id=user_id,
            branch_id=request.branch_id,
            total_cents=0,
            payment_status="pending",
            payment_method="mpesa",
            order_status="processing",
        )
        db.session.add(order)
        db.session.flush()

        total = 0
        for item in request.items:
            product = products[item.product_id]
            line_total = product.price_cents * item.quantity
            total += line_total
            db.session.add(OrderLine(
                order_id=order.id,
                product_id=product.id,
                product_brand=product.brand,
                quantity=item.quantity,
                unit_price_cents=product.price_cents,
                line_total_cents=line_total,
            ))

        order.total_cents = total
        db.session.add(Payment(
            order_id=order.id,
            phone=request.phone,
            amount_cents=total,
            status="pending",
        ))
        db.session.flush()

    logger.info("Created order id=%s branch_id=%s total_cents=%s", order.id, order.branch_id, order.total_cents)
    return order


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound("Order", order_id)
    return order


def get_order_for_user(order_id: int, user: User) -> Order:
    """Customers see only their own orders; admins see any."""
    order = get_order(order_id)
    if not user.is_admin and order.user_id != user.id:
        # Same response as a missing order
        raise NotFound("Order", order_id)
    return order


def list_orders(user: User, status: str | None = None) -> list[Order]:
    query = db.session.query(Order)
    if not user.is_admin:
        query = query.filter(Order.user_id == user.id)
    if status:
        query = query.filter(Order.order_status == status)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).all()


def release_order_stock(order: Order, user_id: int | None = None) -> None:
    """Return every line's quantity to the order's branch. Caller owns the transaction."""
    for line in order.lines:
        previous = stock_ledger.get_quantity(order.branch_id, line.product_id)
        new_quantity = stock_ledger.adjust(order.branch_id, line.product_id, line.quantity)
        db.session.add(InventoryAdjustment(
            branch_id=order.branch_id,
            product_id=line.product_id,
            previous_quantity=previous,
            new_quantity=new_quantity,
            quantity_delta=line.quantity,
            reason="order_cancelled",
            order_id=order.id,
            user_id=user_id,
        ))


def update_order_status(order_id: int, status: str, user: User) -> Order:
    """
    Admin status change for a processing order.

    completed: payment marked completed as well.
    cancelled: stock released and a pending payment failed, so a late
    gateway callback cannot complete a cancelled order.
    """
    if not user.is_admin:
        raise PermissionDenied("Admin access required")

    with atomic():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise NotFound("Order", order_id)
        if order.order_status != "processing" or status == "processing":
            raise InvalidStateTransition("order", order.order_status, status)

        payment = lock_for_update(db.session.query(Payment).filter_by(order_id=order.id)).first()
        now = utcnow()

        if status == "completed":
            order.order_status = "completed"
            order.payment_status = "completed"
            order.completed_at = now
            if payment is not None and payment.status == "pending":
                payment.status = "completed"
                payment.result_desc = "Marked completed by admin"
        else:
            order.order_status = "cancelled"
            if payment is not None and payment.status == "pending":
                payment.status = "failed"
                payment.result_desc = "Order cancelled by admin"
                order.payment_status = "failed"
            release_order_stock(order, user_id=user.id)

    logger.info("Order id=%s moved to %s by user_id=%s", order_id, status, user.id)
    return order
