# Overview: Restock transfer processor; moves stock from the headquarters branch to other branches.

"""
HQ -> branch restock transfers.

ALGORITHM (per item):
1. Resolve the HQ branch (NoHeadquarters if none).
2. Read the HQ StockEntry for the product (ProductNotAtHQ if absent).
3. Reject with InsufficientHQStock{available, requested} if short.
4. Decrement HQ, increment (or create) the destination entry.
5. Append a RestockLog with before/after quantities on both sides.

restock() commits one item; bulk_restock() runs every item in one
transaction and aborts the batch on the first failure. Total quantity
of a product across all branches is unchanged by either.
"""
from __future__ import annotations

import logging
from datetime import datetime

from flask import current_app

from ..errors import InsufficientHQStock, InsufficientStock, NotFound, ProductNotAtHQ, RetailError, ValidationError
from ..extensions import db
from ..models import Branch, Product, RestockLog, StockEntry
from ..validation import BulkRestockRequest, RestockRequest
from . import stock_ledger
from .branch_service import get_headquarters
from .concurrency import atomic, lock_for_update


logger = logging.getLogger(__name__)


def _resolve_destination(branch_id: int, hq: Branch) -> Branch:
    branch = lock_for_update(db.session.query(Branch).filter_by(id=branch_id)).first()
    if branch is None:
        raise NotFound("Branch", branch_id)
    if branch.id == hq.id:
        raise ValidationError("Cannot restock the headquarters branch from itself", field="branch_id")
    return branch


def _transfer(hq: Branch, branch: Branch, product_id: int, quantity: int, user_id: int | None) -> tuple[RestockLog, Product]:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound("Product", product_id)

    hq_entry = stock_ledger.get_entry(hq.id, product_id, for_update=True)
    if hq_entry is None:
        raise ProductNotAtHQ(product_id)
    if hq_entry.quantity < quantity:
        raise InsufficientHQStock(product_id=product_id, available=hq_entry.quantity, requested=quantity)

    hq_previous = hq_entry.quantity
    previous = stock_ledger.get_quantity(branch.id, product_id)

    try:
        hq_new = stock_ledger.adjust(hq.id, product_id, -quantity)
    except InsufficientStock as e:
        # Lost a race with a concurrent HQ decrement
        raise InsufficientHQStock(product_id=product_id, available=e.available, requested=quantity)
    new_quantity = stock_ledger.adjust(branch.id, product_id, quantity, restocked=True)

    log = RestockLog(
        branch_id=branch.id,
        product_id=product_id,
        quantity_added=quantity,
        previous_quantity=previous,
        new_quantity=new_quantity,
        hq_previous_quantity=hq_previous,
        hq_new_quantity=hq_new,
        restocked_by_user_id=user_id,
    )
    db.session.add(log)
    db.session.flush()
    return log, product


def restock(request: RestockRequest, user_id: int | None) -> dict:
    """Single-item transfer. Returns the destination stock, HQ remainder and the log."""
    with atomic():
        hq = get_headquarters()
        branch = _resolve_destination(request.branch_id, hq)
        log, _product = _transfer(hq, branch, request.product_id, request.quantity, user_id)
        result = {
            "message": "Branch restocked successfully",
            "stock": stock_ledger.get_entry(branch.id, request.product_id).to_dict(include_product=True),
            "hq_remaining": log.hq_new_quantity,
            "restock_log": log.to_dict(),
        }

    logger.info(
        "Restocked branch_id=%s product_id=%s quantity=%s hq_remaining=%s",
        request.branch_id, request.product_id, request.quantity, result["hq_remaining"],
    )
    return result


def bulk_restock(request: BulkRestockRequest, user_id: int | None) -> dict:
    """All-or-nothing transfer of several products to one branch."""
    with atomic():
        hq = get_headquarters()
        branch = _resolve_destination(request.branch_id, hq)

        results = []
        for index, item in enumerate(request.items):
            try:
                log, product = _transfer(hq, branch, item.product_id, item.quantity, user_id)
            except RetailError as e:
                e.details = {**e.details, "index": index}
                raise
            results.append({
                "product_id": product.id,
                "product_name": product.name,
                "quantity_added": item.quantity,
                "new_total": log.new_quantity,
                "hq_remaining": log.hq_new_quantity,
            })

    logger.info("Bulk restocked branch_id=%s items=%s", request.branch_id, len(results))
    return {
        "message": "Bulk restock completed successfully",
        "branch_id": request.branch_id,
        "results": results,
        "total_items": len(results),
    }


def get_hq_stock() -> dict:
    hq = get_headquarters()
    threshold = current_app.config["HQ_LOW_STOCK_THRESHOLD"]
    entries = (
        db.session.query(StockEntry)
        .filter_by(branch_id=hq.id)
        .order_by(StockEntry.product_id.asc())
        .all()
    )

    total_items = 0
    total_value_cents = 0
    low_stock_items = 0
    for entry in entries:
        total_items += entry.quantity
        total_value_cents += entry.quantity * entry.product.price_cents
        if entry.quantity < threshold:
            low_stock_items += 1

    return {
        "hq_branch": hq.to_dict(),
        "stock": [entry.to_dict(include_product=True) for entry in entries],
        "summary": {
            "total_products": len(entries),
            "total_items": total_items,
            "total_value_cents": total_value_cents,
            "low_stock_items": low_stock_items,
            "low_stock_threshold": threshold,
        },
    }


def get_restock_logs(
    *,
    branch_id: int | None = None,
    product_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
) -> list[RestockLog]:
    query = db.session.query(RestockLog)
    if branch_id is not None:
        query = query.filter(RestockLog.branch_id == branch_id)
    if product_id is not None:
        query = query.filter(RestockLog.product_id == product_id)
    if start is not None:
        query = query.filter(RestockLog.created_at >= start)
    if end is not None:
        query = query.filter(RestockLog.created_at <= end)
    return query.order_by(RestockLog.created_at.desc(), RestockLog.id.desc()).limit(limit).all()


def get_restock_suggestions(threshold: int) -> dict:
    """Non-HQ entries under threshold, with a target of twice the threshold."""
    hq = get_headquarters()
    entries = (
        db.session.query(StockEntry)
        .join(Branch, Branch.id == StockEntry.branch_id)
        .filter(Branch.is_headquarters.is_(False), StockEntry.quantity < threshold)
        .order_by(StockEntry.quantity.asc(), StockEntry.branch_id.asc())
        .all()
    )

    suggestions = []
    for entry in entries:
        suggestions.append({
            **entry.to_dict(include_product=True, include_branch=True),
            "suggested_quantity": threshold * 2 - entry.quantity,
            "hq_available": stock_ledger.get_quantity(hq.id, entry.product_id),
        })

    return {
        "threshold": threshold,
        "suggestions": suggestions,
        "count": len(suggestions),
    }
