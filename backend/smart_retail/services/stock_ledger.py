# Overview: Stock ledger; the only code that changes StockEntry.quantity.

"""
Per-(branch, product) quantity store.

CONTRACT:
- get_quantity(branch_id, product_id) -> int (0 when no row exists)
- ensure_exists(branch_id, product_id) -> StockEntry (zero row if absent)
- adjust(branch_id, product_id, delta) -> new quantity, or InsufficientStock
- set_quantity(branch_id, product_id, quantity) -> (previous, new)

None of these commit. They run inside the caller's atomic() block, and
the caller writes the linked record (sale line, restock log or
inventory adjustment) in the same transaction.

adjust() is a single conditional UPDATE:

    UPDATE stock_entries SET quantity = quantity + :delta
    WHERE branch_id = :b AND product_id = :p AND quantity + :delta >= 0

The database row lock taken by the UPDATE serializes concurrent writers
and the predicate is evaluated under that lock, so two requests can
never both consume the last unit.
"""

from __future__ import annotations

from sqlalchemy import update

from ..errors import InsufficientStock, ValidationError
from ..extensions import db
from ..models import StockEntry
from ..time_utils import utcnow
from .concurrency import lock_for_update


def get_entry(branch_id: int, product_id: int, *, for_update: bool = False) -> StockEntry | None:
    query = db.session.query(StockEntry).filter_by(branch_id=branch_id, product_id=product_id)
    if for_update:
        query = lock_for_update(query)
    return query.first()


def get_quantity(branch_id: int, product_id: int) -> int:
    quantity = (
        db.session.query(StockEntry.quantity)
        .filter_by(branch_id=branch_id, product_id=product_id)
        .scalar()
    )
    return int(quantity or 0)


def ensure_exists(branch_id: int, product_id: int) -> StockEntry:
    """Return the entry for (branch, product), creating a zero-quantity row if absent."""
    entry = get_entry(branch_id, product_id, for_update=True)
    if entry is None:
        entry = StockEntry(branch_id=branch_id, product_id=product_id, quantity=0)
        db.session.add(entry)
        db.session.flush()
    return entry


def adjust(branch_id: int, product_id: int, delta: int, *, restocked: bool = False) -> int:
    """
    Apply delta to the entry and return the new quantity.

    Positive deltas create the entry if needed. A delta that would take
    the quantity below zero raises InsufficientStock and changes nothing.
    restocked=True also stamps last_restocked_at.
    """
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("delta must be an integer")

    if delta > 0:
        ensure_exists(branch_id, product_id)
    elif delta == 0:
        return get_quantity(branch_id, product_id)

    now = utcnow()
    values = {"quantity": StockEntry.quantity + delta, "updated_at": now}
    if restocked:
        values["last_restocked_at"] = now

    stmt = (
        update(StockEntry)
        .where(
            StockEntry.branch_id == branch_id,
            StockEntry.product_id == product_id,
            StockEntry.quantity + delta >= 0,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)

    if result.rowcount != 1:
        raise InsufficientStock(
            product_id=product_id,
            available=get_quantity(branch_id, product_id),
            requested=-delta,
        )

    entry = (
        db.session.query(StockEntry)
        .filter_by(branch_id=branch_id, product_id=product_id)
        .populate_existing()
        .one()
    )
    return entry.quantity


def set_quantity(branch_id: int, product_id: int, quantity: int) -> tuple[int, int]:
    """Admin set-quantity. Returns (previous, new)."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise ValidationError("quantity must be a non-negative integer", field="quantity")

    entry = ensure_exists(branch_id, product_id)
    previous = entry.quantity
    new_quantity = adjust(branch_id, product_id, quantity - previous)
    return previous, new_quantity
