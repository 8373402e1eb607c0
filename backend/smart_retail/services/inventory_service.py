# Overview: Inventory views, admin set-quantity and stock alerts.

from __future__ import annotations

import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy import func

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Branch, InventoryAdjustment, Product, StockEntry
from ..time_utils import to_utc_z, utcnow
from ..validation import SetQuantityRequest
from . import stock_ledger
from .concurrency import atomic, lock_for_update


logger = logging.getLogger(__name__)


def list_inventory(threshold: int | None = None) -> dict:
    """Every stock entry, flagged when under the admin low-stock threshold."""
    if threshold is None:
        threshold = current_app.config["ADMIN_INVENTORY_LOW_STOCK_THRESHOLD"]
    entries = (
        db.session.query(StockEntry)
        .order_by(StockEntry.branch_id.asc(), StockEntry.product_id.asc())
        .all()
    )
    items = []
    low = 0
    for entry in entries:
        is_low = entry.quantity < threshold
        low += int(is_low)
        items.append({**entry.to_dict(include_product=True, include_branch=True), "is_low_stock": is_low})
    return {
        "items": items,
        "count": len(items),
        "low_stock_count": low,
        "low_stock_threshold": threshold,
    }


def set_quantity(request: SetQuantityRequest, user_id: int) -> dict:
    """Admin override of one entry's quantity, recorded as an admin_set adjustment."""
    with atomic():
        branch = lock_for_update(db.session.query(Branch).filter_by(id=request.branch_id)).first()
        if branch is None:
            raise NotFound("Branch", request.branch_id)
        if db.session.get(Product, request.product_id) is None:
            raise NotFound("Product", request.product_id)

        previous, new_quantity = stock_ledger.set_quantity(request.branch_id, request.product_id, request.quantity)
        adjustment = InventoryAdjustment(
            branch_id=request.branch_id,
            product_id=request.product_id,
            previous_quantity=previous,
            new_quantity=new_quantity,
            quantity_delta=new_quantity - previous,
            reason="admin_set",
            note=request.note,
            user_id=user_id,
        )
        db.session.add(adjustment)
        db.session.flush()
        result = {
            "stock": stock_ledger.get_entry(request.branch_id, request.product_id).to_dict(include_product=True),
            "adjustment": adjustment.to_dict(),
        }

    logger.info(
        "Stock set branch_id=%s product_id=%s %s -> %s by user_id=%s",
        request.branch_id, request.product_id, previous, new_quantity, user_id,
    )
    return result


# =============================================================================
# ALERTS
# =============================================================================


def _alert(entry: StockEntry, threshold: int, reorder_level: int) -> dict:
    return {
        "stock_id": entry.id,
        "branch_id": entry.branch_id,
        "branch_name": entry.branch.name,
        "product_id": entry.product_id,
        "product_name": entry.product.name,
        "brand": entry.product.brand,
        "current_stock": entry.quantity,
        "threshold": threshold,
        "reorder_level": reorder_level,
        "last_updated": to_utc_z(entry.updated_at),
    }


def low_stock_alerts(threshold: int, branch_id: int | None = None) -> dict:
    query = db.session.query(StockEntry).filter(StockEntry.quantity < threshold)
    if branch_id is not None:
        query = query.filter(StockEntry.branch_id == branch_id)
    entries = query.order_by(StockEntry.quantity.asc(), StockEntry.id.asc()).all()

    alerts = [_alert(entry, threshold, threshold * 2) for entry in entries]
    return {
        "threshold": threshold,
        "total_alerts": len(alerts),
        "alerts": alerts,
        "generated_at": to_utc_z(utcnow()),
    }


def critical_stock_alerts() -> dict:
    threshold = current_app.config["CRITICAL_STOCK_THRESHOLD"]
    entries = (
        db.session.query(StockEntry)
        .filter(StockEntry.quantity <= threshold)
        .order_by(StockEntry.quantity.asc(), StockEntry.id.asc())
        .all()
    )
    alerts = [_alert(entry, threshold, current_app.config["LOW_STOCK_THRESHOLD"]) for entry in entries]
    return {
        "critical_threshold": threshold,
        "total_critical": len(alerts),
        "alerts": alerts,
        "urgent_action": bool(alerts),
        "generated_at": to_utc_z(utcnow()),
    }


def branch_stock_alerts(branch_id: int, threshold: int) -> dict:
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        raise NotFound("Branch", branch_id)
    report = low_stock_alerts(threshold, branch_id=branch_id)
    report["branch_id"] = branch.id
    report["branch_name"] = branch.name
    return report


def health_score(total_entries: int, low: int, critical: int) -> str:
    if total_entries == 0:
        return "unknown"
    low_pct = low / total_entries * 100
    critical_pct = critical / total_entries * 100
    if critical_pct > 10:
        return "critical"
    if low_pct > 25:
        return "warning"
    if low_pct > 10:
        return "caution"
    return "healthy"


def alert_summary() -> dict:
    low_threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    critical_threshold = current_app.config["CRITICAL_STOCK_THRESHOLD"]

    total_entries = db.session.query(func.count(StockEntry.id)).scalar() or 0
    low = db.session.query(func.count(StockEntry.id)).filter(StockEntry.quantity < low_threshold).scalar() or 0
    critical = (
        db.session.query(func.count(StockEntry.id))
        .filter(StockEntry.quantity <= critical_threshold)
        .scalar() or 0
    )
    out_of_stock = db.session.query(func.count(StockEntry.id)).filter(StockEntry.quantity == 0).scalar() or 0

    branch_rows = (
        db.session.query(Branch.id, Branch.name, func.count(StockEntry.id).label("alert_count"))
        .join(StockEntry, StockEntry.branch_id == Branch.id)
        .filter(StockEntry.quantity < low_threshold)
        .group_by(Branch.id, Branch.name)
        .order_by(Branch.id.asc())
        .all()
    )

    product_rows = (
        db.session.query(
            Product.id, Product.name, Product.brand, func.count(StockEntry.id).label("alert_count")
        )
        .join(StockEntry, StockEntry.product_id == Product.id)
        .filter(StockEntry.quantity < low_threshold)
        .group_by(Product.id, Product.name, Product.brand)
        .order_by(func.count(StockEntry.id).desc(), Product.id.asc())
        .limit(5)
        .all()
    )

    return {
        "total_products": db.session.query(func.count(Product.id)).scalar() or 0,
        "total_branches": db.session.query(func.count(Branch.id)).scalar() or 0,
        "total_stock_entries": total_entries,
        "low_stock_alerts": low,
        "critical_alerts": critical,
        "out_of_stock": out_of_stock,
        "branch_alerts": [
            {"branch_id": row.id, "branch_name": row.name, "alert_count": int(row.alert_count)}
            for row in branch_rows
        ],
        "top_product_alerts": [
            {
                "product_id": row.id,
                "product_name": row.name,
                "brand": row.brand,
                "alert_count": int(row.alert_count),
            }
            for row in product_rows
        ],
        "health_score": health_score(total_entries, low, critical),
        "generated_at": to_utc_z(utcnow()),
    }


def evaluate_alert_rule(branch_id: int, product_id: int, threshold: int) -> dict:
    """Check a (branch, product, threshold) rule against current stock. Nothing is stored."""
    if threshold <= 0:
        raise ValidationError("Threshold must be positive", field="threshold")
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        raise NotFound("Branch", branch_id)
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound("Product", product_id)
    entry = stock_ledger.get_entry(branch_id, product_id)
    if entry is None:
        raise NotFound("Stock entry", None)

    return {
        "branch_id": branch.id,
        "branch_name": branch.name,
        "product_id": product.id,
        "product_name": product.name,
        "threshold": threshold,
        "current_stock": entry.quantity,
        "is_alert": entry.quantity <= threshold,
        "evaluated_at": to_utc_z(utcnow()),
    }


def alert_history(days: int) -> dict:
    """Low entries whose quantity changed within the last `days` days."""
    threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    since = utcnow() - timedelta(days=days)
    entries = (
        db.session.query(StockEntry)
        .filter(StockEntry.quantity < threshold, StockEntry.updated_at >= since)
        .order_by(StockEntry.updated_at.desc(), StockEntry.id.desc())
        .all()
    )
    alerts = [_alert(entry, threshold, threshold * 2) for entry in entries]
    return {
        "period": f"{days} days",
        "total_alerts": len(alerts),
        "alerts": alerts,
        "generated_at": to_utc_z(utcnow()),
    }
