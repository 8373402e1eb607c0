# backend/smart_retail/services/products_service.py
from __future__ import annotations

from ..errors import Conflict, NotFound
from ..extensions import db
from ..models import OrderLine, Product, SaleLine, StockEntry
from .concurrency import atomic

PRODUCT_MUTABLE_FIELDS = {
    "name", "brand", "description", "category", "volume", "unit", "price_cents", "is_active",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound("Product", product_id)
    return product


def list_products(
    brand: str | None = None,
    category: str | None = None,
    include_inactive: bool = False,
) -> list[Product]:
    query = db.session.query(Product)
    if brand:
        query = query.filter(Product.brand == brand)
    if category:
        query = query.filter(Product.category == category)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    return query.order_by(Product.brand.asc(), Product.name.asc()).all()


def create_product(patch: dict) -> Product:
    with atomic():
        product = Product()
        apply_product_patch(product, patch)
        db.session.add(product)
    return product


def update_product(product_id: int, patch: dict) -> Product:
    """Price changes apply to new online sales only; captured line prices stay."""
    with atomic():
        product = get_product(product_id)
        apply_product_patch(product, patch)
    return product


def delete_product(product_id: int) -> None:
    """Blocked while any branch holds inventory rows or any line references the product."""
    with atomic():
        product = get_product(product_id)
        stock_rows = db.session.query(StockEntry).filter_by(product_id=product_id).count()
        if stock_rows:
            raise Conflict(
                "Cannot delete product with existing inventory",
                {"stock_entries": stock_rows},
            )
        referenced = (
            db.session.query(SaleLine).filter_by(product_id=product_id).count()
            + db.session.query(OrderLine).filter_by(product_id=product_id).count()
        )
        if referenced:
            raise Conflict(
                "Cannot delete product referenced by sales or orders; deactivate it instead",
                {"lines": referenced},
            )
        db.session.delete(product)


def get_stock_across_branches(product_id: int) -> dict:
    product = get_product(product_id)
    entries = (
        db.session.query(StockEntry)
        .filter_by(product_id=product_id)
        .order_by(StockEntry.branch_id.asc())
        .all()
    )
    return {
        "product": product.to_dict(),
        "branches": [entry.to_dict(include_branch=True) for entry in entries],
        "total_quantity": sum(entry.quantity for entry in entries),
    }
