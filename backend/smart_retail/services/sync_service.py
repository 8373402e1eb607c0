# Overview: Offline sync processor; replays client-recorded sales with per-record isolation.

"""
Offline sale synchronization.

Each record in a batch is handled in its own transaction:

1. client_txn_id already recorded -> duplicate (no mutation)
2. malformed record, unknown branch/product -> failed
3. stock shortfall -> insufficient_stock (only this record rolls back)
4. reported total != sum(price * quantity) -> failed
5. payment_info.status completed -> paid, failed -> failed, else pending
6. commit -> synced

Client-reported prices are kept on the lines; the online path prices
from the catalog instead. A failure in one record never affects others.
"""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import InsufficientStock, InvalidStateTransition, NotFound, RetailError, TransactionFailure, ValidationError
from ..extensions import db
from ..models import InventoryAdjustment, Sale
from ..time_utils import to_utc_z, utcnow
from ..validation import SyncBatchRequest, SyncSaleRecord, parse_sync_record
from . import stock_ledger
from .concurrency import atomic, lock_for_update
from .sales_service import PRICE_SOURCE_CLIENT, record_sale


logger = logging.getLogger(__name__)

STATUS_SYNCED = "synced"
STATUS_DUPLICATE = "duplicate"
STATUS_INSUFFICIENT_STOCK = "insufficient_stock"
STATUS_FAILED = "failed"

RESOLVE_ACTIONS = ("approve", "reject", "delete")


def _initial_status(record: SyncSaleRecord) -> str:
    info = record.payment_info
    if info is None or info.status is None:
        return "pending"
    if info.status == "completed":
        return "paid"
    if info.status == "failed":
        return "failed"
    return "pending"


def _find_by_txn_id(client_txn_id: str) -> Sale | None:
    return db.session.query(Sale).filter_by(client_txn_id=client_txn_id).first()


def _result(client_txn_id: Any, status: str, server_id: int | None = None, error: str | None = None, details: dict | None = None) -> dict:
    result = {"client_txn_id": client_txn_id, "status": status}
    if server_id is not None:
        result["server_id"] = server_id
    if error is not None:
        result["error"] = error
    if details:
        result["details"] = details
    return result


def _sync_record(raw: Any, client_id: str, user_id: int) -> dict:
    client_txn_id = raw.get("client_txn_id") if isinstance(raw, dict) else None
    if not isinstance(client_txn_id, str) or not client_txn_id.strip():
        return _result(client_txn_id, STATUS_FAILED, error="client_txn_id is required")
    client_txn_id = client_txn_id.strip()

    existing = _find_by_txn_id(client_txn_id)
    if existing is not None:
        return _result(client_txn_id, STATUS_DUPLICATE, server_id=existing.id)

    try:
        record = parse_sync_record(raw)
    except ValidationError as e:
        return _result(client_txn_id, STATUS_FAILED, error=e.message, details=e.details)

    status = _initial_status(record)
    info = record.payment_info

    try:
        with atomic():
            sale = record_sale(
                branch_id=record.branch_id,
                user_id=user_id,
                items=record.items,
                price_source=PRICE_SOURCE_CLIENT,
                reported_total_cents=record.total_cents,
                payment_method=info.method if info else None,
                client_txn_id=client_txn_id,
                client_id=client_id,
                created_at=record.created_at,
            )
            sale.status = status
            sale.synced_at = utcnow()
            if info is not None:
                sale.payment_phone = info.phone
            if status == "paid":
                sale.payment_ref = info.reference
                sale.completed_at = record.created_at or utcnow()
            db.session.flush()
            sale_id = sale.id
    except InsufficientStock as e:
        return _result(client_txn_id, STATUS_INSUFFICIENT_STOCK, error=e.message, details=e.details)
    except TransactionFailure as e:
        # Unique client_txn_id lost a race with a concurrent sync of the same record
        if isinstance(e.__cause__, IntegrityError):
            existing = _find_by_txn_id(client_txn_id)
            if existing is not None:
                return _result(client_txn_id, STATUS_DUPLICATE, server_id=existing.id)
        logger.warning("Offline sale %s failed to commit", client_txn_id)
        return _result(client_txn_id, STATUS_FAILED, error=e.message)
    except RetailError as e:
        return _result(client_txn_id, STATUS_FAILED, error=e.message, details=e.details)

    return _result(client_txn_id, STATUS_SYNCED, server_id=sale_id)


def sync_offline_sales(request: SyncBatchRequest, user_id: int) -> dict:
    """Replay a batch. Partial success is normal; every record gets a classification."""
    results = []
    summary = {
        "total": len(request.sales),
        STATUS_SYNCED: 0,
        STATUS_DUPLICATE: 0,
        STATUS_INSUFFICIENT_STOCK: 0,
        STATUS_FAILED: 0,
    }

    for raw in request.sales:
        result = _sync_record(raw, request.client_id, user_id)
        summary[result["status"]] += 1
        results.append(result)

    logger.info(
        "Offline sync client_id=%s total=%s synced=%s duplicate=%s insufficient_stock=%s failed=%s",
        request.client_id, summary["total"], summary[STATUS_SYNCED], summary[STATUS_DUPLICATE],
        summary[STATUS_INSUFFICIENT_STOCK], summary[STATUS_FAILED],
    )
    return {
        "client_id": request.client_id,
        "results": results,
        "summary": summary,
        "synced_at": to_utc_z(utcnow()),
    }


def get_sync_status(client_id: str) -> dict:
    rows = (
        db.session.query(Sale.status, func.count(Sale.id), func.max(Sale.synced_at))
        .filter(Sale.client_id == client_id)
        .group_by(Sale.status)
        .all()
    )
    counts = {status: int(count) for status, count, _ in rows}
    last_sync = max((last for _, _, last in rows if last is not None), default=None)
    return {
        "client_id": client_id,
        "total_synced": sum(counts.values()),
        "pending": counts.get("pending", 0),
        "paid": counts.get("paid", 0),
        "failed": counts.get("failed", 0),
        "cancelled": counts.get("cancelled", 0),
        "last_sync_at": to_utc_z(last_sync),
    }


def get_pending_sales(branch_id: int | None = None) -> list[Sale]:
    query = db.session.query(Sale).filter(Sale.source == "offline", Sale.status == "pending")
    if branch_id is not None:
        query = query.filter(Sale.branch_id == branch_id)
    return query.order_by(Sale.created_at.asc(), Sale.id.asc()).all()


def resolve_conflict(sale_id: int, action: str, user_id: int) -> dict:
    """
    Controlled override of a sale's status.

    approve -> paid, reject -> failed, delete -> stock restored line by
    line (sale_deleted adjustments) and the sale removed.
    """
    if action not in RESOLVE_ACTIONS:
        raise ValidationError(f"action must be one of: {', '.join(RESOLVE_ACTIONS)}", field="action")

    with atomic():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise NotFound("Sale", sale_id)

        if action == "approve":
            if sale.status == "cancelled":
                raise InvalidStateTransition("sale", sale.status, "paid")
            sale.status = "paid"
            sale.completed_at = sale.completed_at or utcnow()
            result = {"message": "Sale approved", "sale": sale.to_dict()}
        elif action == "reject":
            if sale.status == "cancelled":
                raise InvalidStateTransition("sale", sale.status, "failed")
            sale.status = "failed"
            result = {"message": "Sale rejected", "sale": sale.to_dict()}
        else:
            restored = []
            for line in sale.lines:
                previous = stock_ledger.get_quantity(sale.branch_id, line.product_id)
                new_quantity = stock_ledger.adjust(sale.branch_id, line.product_id, line.quantity)
                db.session.add(InventoryAdjustment(
                    branch_id=sale.branch_id,
                    product_id=line.product_id,
                    previous_quantity=previous,
                    new_quantity=new_quantity,
                    quantity_delta=line.quantity,
                    reason="sale_deleted",
                    sale_id=sale.id,
                    user_id=user_id,
                ))
                restored.append({"product_id": line.product_id, "quantity": line.quantity, "new_quantity": new_quantity})
            db.session.delete(sale)
            result = {"message": "Sale deleted and stock restored", "sale_id": sale_id, "restored": restored}

    logger.info("Resolved sale id=%s action=%s by user_id=%s", sale_id, action, user_id)
    return result
