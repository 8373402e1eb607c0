# Overview: Sale transaction processor; validates lines against the stock ledger and records sales.

"""
Sale recording.

ALGORITHM (one transaction per sale):
1. Lock the branch row (BranchInactive unless active) and resolve
   every active product.
2. For each product, read the branch StockEntry; abort with
   InsufficientStock{product_id, available, requested} on shortfall.
3. Decrement each StockEntry through stock_ledger.adjust.
4. Price each line: live Product.price_cents for online sales, the
   client-reported price for offline replays (which must also match
   the reported total, else TotalMismatch).
5. Write the Sale header (pending), its lines and the total.

record_sale() does steps 1-5 without committing so the offline sync
processor can run it inside its own per-record transaction;
create_sale() wraps it in atomic().
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Iterable, Sequence

from ..errors import BranchInactive, InsufficientStock, InvalidStateTransition, NotFound, TotalMismatch
from ..extensions import db
from ..models import Branch, Product, Sale, SaleLine
from ..models.sales import SALE_STATUSES
from ..time_utils import utcnow
from ..validation import CreateSaleRequest, LineItemRequest
from . import stock_ledger
from .concurrency import atomic, lock_for_update


logger = logging.getLogger(__name__)

PRICE_SOURCE_CATALOG = "catalog"
PRICE_SOURCE_CLIENT = "client"


def lock_branch(branch_id: int) -> Branch:
    branch = lock_for_update(db.session.query(Branch).filter_by(id=branch_id)).first()
    if branch is None:
        raise NotFound("Branch", branch_id)
    if branch.status != "active":
        raise BranchInactive(branch_id)
    return branch


def load_products(items: Iterable[LineItemRequest]) -> dict[int, Product]:
    """Resolve every referenced product; missing or inactive products are NotFound."""
    product_ids = {item.product_id for item in items}
    products = {
        p.id: p
        for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()
    }
    for product_id in sorted(product_ids):
        product = products.get(product_id)
        if product is None or not product.is_active:
            raise NotFound("Product", product_id)
    return products


def requested_quantities(items: Iterable[LineItemRequest]) -> "OrderedDict[int, int]":
    """Total requested quantity per product, in first-seen order."""
    totals: OrderedDict[int, int] = OrderedDict()
    for item in items:
        totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return totals


def reserve_stock(branch_id: int, items: Sequence[LineItemRequest]) -> None:
    """
    Check every product against the branch's stock, then decrement.

    All checks run before any decrement so the reported shortfall names
    the first product that cannot be covered. The conditional UPDATE in
    stock_ledger.adjust re-checks under the row lock.
    """
    totals = requested_quantities(items)
    for product_id, quantity in totals.items():
        entry = stock_ledger.get_entry(branch_id, product_id, for_update=True)
        available = entry.quantity if entry is not None else 0
        if available < quantity:
            raise InsufficientStock(product_id=product_id, available=available, requested=quantity)

    for product_id, quantity in totals.items():
        stock_ledger.adjust(branch_id, product_id, -quantity)


def unit_price(item: LineItemRequest, product: Product, price_source: str) -> int:
    if price_source == PRICE_SOURCE_CLIENT:
        return item.price_cents
    return product.price_cents


def record_sale(
    *,
    branch_id: int,
    user_id: int,
    items: Sequence[LineItemRequest],
    price_source: str = PRICE_SOURCE_CATALOG,
    reported_total_cents: int | None = None,
    payment_method: str | None = None,
    client_txn_id: str | None = None,
    client_id: str | None = None,
    created_at=None,
) -> Sale:
    """Steps 1-5 of the sale algorithm. Caller owns the transaction."""
    lock_branch(branch_id)
    products = load_products(items)

    reserve_stock(branch_id, items)

    priced = [(item, unit_price(item, products[item.product_id], price_source)) for item in items]
    computed_total = sum(price * item.quantity for item, price in priced)

    if price_source == PRICE_SOURCE_CLIENT and reported_total_cents != computed_total:
        raise TotalMismatch(reported_total_cents, computed_total)

    sale = Sale(
        branch_id=branch_id,
        user_id=user_id,
        status="pending",
        total_cents=0,
        payment_method=payment_method,
        client_txn_id=client_txn_id,
        client_id=client_id,
        source="offline" if client_txn_id else "online",
    )
    if created_at is not None:
        sale.created_at = created_at
    db.session.add(sale)
    db.session.flush()

    for item, price in priced:
        db.session.add(SaleLine(
            sale_id=sale.id,
            product_id=item.product_id,
            quantity=item.quantity,
            unit_price_cents=price,
            line_total_cents=price * item.quantity,
        ))

    sale.total_cents = computed_total
    db.session.flush()
    return sale


def create_sale(request: CreateSaleRequest, user_id: int) -> Sale:
    """Online sale. Client prices are ignored; the live catalog price is captured."""
    with atomic():
        sale = record_sale(
            branch_id=request.branch_id,
            user_id=user_id,
            items=request.items,
            price_source=PRICE_SOURCE_CATALOG,
            payment_method=request.payment_method,
        )
    logger.info("Recorded sale id=%s branch_id=%s total_cents=%s", sale.id, sale.branch_id, sale.total_cents)
    return sale


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFound("Sale", sale_id)
    return sale


def list_sales(
    *,
    status: str | None = None,
    branch_id: int | None = None,
    limit: int = 200,
) -> list[Sale]:
    query = db.session.query(Sale)
    if status:
        query = query.filter(Sale.status == status)
    if branch_id is not None:
        query = query.filter(Sale.branch_id == branch_id)
    return query.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()


def update_sale_status(sale_id: int, status: str) -> Sale:
    """pending -> paid | failed | cancelled. Terminal sales are immutable here."""
    if status not in SALE_STATUSES or status == "pending":
        raise InvalidStateTransition("sale", "pending", status)

    with atomic():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise NotFound("Sale", sale_id)
        if sale.status != "pending":
            raise InvalidStateTransition("sale", sale.status, status)

        sale.status = status
        if status == "paid":
            sale.completed_at = utcnow()
    return sale
