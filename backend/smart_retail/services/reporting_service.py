# Overview: Service-layer operations for reporting; aggregate queries over paid sales and orders.

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Branch, Order, Product, Sale, SaleLine, StockEntry
from ..time_utils import period_start, to_utc_z, utcnow


REPORT_PERIODS = ("today", "week", "month", "year")


def _resolve_period(period: str | None, default: str) -> str:
    period = period or default
    if period not in REPORT_PERIODS:
        raise ValidationError(f"period must be one of: {', '.join(REPORT_PERIODS)}", field="period")
    return period


def _paid_sales_filter(query, start, branch_id: int | None = None):
    query = query.filter(Sale.status == "paid", Sale.created_at >= start)
    if branch_id is not None:
        query = query.filter(Sale.branch_id == branch_id)
    return query


def sales_report(*, period: str | None, branch_id: int | None = None) -> dict:
    period = _resolve_period(period, "week")
    now = utcnow()
    start = period_start(period, now)

    count, revenue = _paid_sales_filter(
        db.session.query(func.count(Sale.id), func.coalesce(func.sum(Sale.total_cents), 0)),
        start,
        branch_id,
    ).one()

    brand_rows = _paid_sales_filter(
        db.session.query(
            Product.brand.label("brand"),
            func.coalesce(func.sum(SaleLine.line_total_cents), 0).label("revenue_cents"),
            func.coalesce(func.sum(SaleLine.quantity), 0).label("units_sold"),
            func.count(func.distinct(Sale.id)).label("sales_count"),
        )
        .select_from(Sale)
        .join(SaleLine, SaleLine.sale_id == Sale.id)
        .join(Product, Product.id == SaleLine.product_id),
        start,
        branch_id,
    ).group_by(Product.brand).order_by(func.sum(SaleLine.line_total_cents).desc()).all()

    return {
        "period": period,
        "branch_id": branch_id,
        "start": to_utc_z(start),
        "generated_at": to_utc_z(now),
        "total_revenue_cents": int(revenue or 0),
        "total_sales": int(count or 0),
        "brand_breakdown": [
            {
                "brand": row.brand,
                "revenue_cents": int(row.revenue_cents),
                "units_sold": int(row.units_sold),
                "sales_count": int(row.sales_count),
                "average_price_cents": int(row.revenue_cents) // int(row.units_sold) if row.units_sold else 0,
            }
            for row in brand_rows
        ],
    }


def branch_performance(*, period: str | None) -> dict:
    period = _resolve_period(period, "week")
    now = utcnow()
    start = period_start(period, now)

    reports = []
    for branch in db.session.query(Branch).order_by(Branch.id.asc()).all():
        count, revenue = _paid_sales_filter(
            db.session.query(func.count(Sale.id), func.coalesce(func.sum(Sale.total_cents), 0)),
            start,
            branch.id,
        ).one()

        top_rows = _paid_sales_filter(
            db.session.query(
                Product.id.label("product_id"),
                Product.name.label("product_name"),
                func.sum(SaleLine.quantity).label("quantity"),
                func.sum(SaleLine.line_total_cents).label("revenue_cents"),
            )
            .select_from(Sale)
            .join(SaleLine, SaleLine.sale_id == Sale.id)
            .join(Product, Product.id == SaleLine.product_id),
            start,
            branch.id,
        ).group_by(Product.id, Product.name).order_by(
            func.sum(SaleLine.line_total_cents).desc(), Product.id.asc()
        ).limit(5).all()

        reports.append({
            "branch_id": branch.id,
            "branch_name": branch.name,
            "total_revenue_cents": int(revenue or 0),
            "total_sales": int(count or 0),
            "top_products": [
                {
                    "product_id": row.product_id,
                    "product_name": row.product_name,
                    "quantity": int(row.quantity),
                    "revenue_cents": int(row.revenue_cents),
                }
                for row in top_rows
            ],
        })

    return {
        "period": period,
        "generated_at": to_utc_z(now),
        "branch_reports": reports,
    }


def low_stock_report(*, threshold: int) -> dict:
    entries = (
        db.session.query(StockEntry)
        .filter(StockEntry.quantity < threshold)
        .order_by(StockEntry.branch_id.asc(), StockEntry.quantity.asc())
        .all()
    )

    branches: dict[int, dict] = {}
    for entry in entries:
        group = branches.setdefault(entry.branch_id, {
            "branch_id": entry.branch_id,
            "branch_name": entry.branch.name,
            "low_stock_items": [],
        })
        group["low_stock_items"].append(entry.to_dict(include_product=True))

    report = []
    for group in branches.values():
        group["count"] = len(group["low_stock_items"])
        report.append(group)

    return {
        "threshold": threshold,
        "generated_at": to_utc_z(utcnow()),
        "branches": report,
        "total_low_stock_items": len(entries),
    }


def revenue_summary(*, period: str | None) -> dict:
    period = _resolve_period(period, "month")
    now = utcnow()
    start = period_start(period, now)

    count, revenue = _paid_sales_filter(
        db.session.query(func.count(Sale.id), func.coalesce(func.sum(Sale.total_cents), 0)),
        start,
    ).one()
    count = int(count or 0)
    revenue = int(revenue or 0)

    brand_rows = _paid_sales_filter(
        db.session.query(
            Product.brand.label("brand"),
            func.sum(SaleLine.line_total_cents).label("revenue_cents"),
        )
        .select_from(Sale)
        .join(SaleLine, SaleLine.sale_id == Sale.id)
        .join(Product, Product.id == SaleLine.product_id),
        start,
    ).group_by(Product.brand).order_by(func.sum(SaleLine.line_total_cents).desc()).limit(10).all()

    return {
        "period": period,
        "generated_at": to_utc_z(now),
        "total_revenue_cents": revenue,
        "total_sales": count,
        "average_sale_cents": revenue // count if count else 0,
        "top_brands": [
            {"brand": row.brand, "revenue_cents": int(row.revenue_cents)} for row in brand_rows
        ],
    }


def daily_sales_trend(*, days: int) -> dict:
    now = utcnow()
    start = now - timedelta(days=days)
    day = func.date(Sale.created_at)

    rows = _paid_sales_filter(
        db.session.query(
            day.label("date"),
            func.coalesce(func.sum(Sale.total_cents), 0).label("revenue_cents"),
            func.count(Sale.id).label("sales"),
        ),
        start,
    ).group_by(day).order_by(day.asc()).all()

    return {
        "period": f"{days} days",
        "generated_at": to_utc_z(now),
        "daily_sales": [
            {"date": str(row.date), "revenue_cents": int(row.revenue_cents), "sales": int(row.sales)}
            for row in rows
        ],
    }


def order_report(*, period: str | None) -> dict:
    period = _resolve_period(period, "month")
    now = utcnow()
    start = period_start(period, now)

    status_rows = (
        db.session.query(Order.order_status, func.count(Order.id))
        .filter(Order.created_at >= start)
        .group_by(Order.order_status)
        .all()
    )
    completed_revenue = (
        db.session.query(func.coalesce(func.sum(Order.total_cents), 0))
        .filter(Order.created_at >= start, Order.order_status == "completed")
        .scalar()
    )
    by_status = {status: int(count) for status, count in status_rows}

    return {
        "period": period,
        "generated_at": to_utc_z(now),
        "total_orders": sum(by_status.values()),
        "by_status": {
            "processing": by_status.get("processing", 0),
            "completed": by_status.get("completed", 0),
            "cancelled": by_status.get("cancelled", 0),
        },
        "completed_revenue_cents": int(completed_revenue or 0),
    }
