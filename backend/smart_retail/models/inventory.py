from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class StockEntry(db.Model):
    """
    Quantity of one product at one branch.

    INVARIANT: quantity >= 0. The CHECK constraint backs the conditional
    UPDATE in stock_ledger.adjust; neither is relied on alone.

    Rows are created lazily (first restock / adjustment) and are never
    deleted while sales, orders or logs reference the pair.
    """
    __tablename__ = "stock_entries"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "product_id", name="uq_stock_entries_branch_product"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_entries_quantity_nonneg"),
        db.Index("ix_stock_entries_quantity", "quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    last_restocked_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    branch = db.relationship("Branch", backref=db.backref("stock_entries", lazy=True))
    product = db.relationship("Product", backref=db.backref("stock_entries", lazy=True))

    def __repr__(self) -> str:
        return f"<StockEntry branch_id={self.branch_id} product_id={self.product_id} qty={self.quantity}>"

    def to_dict(self, include_product: bool = False, include_branch: bool = False) -> dict:
        data = {
            "id": self.id,
            "branch_id": self.branch_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "last_restocked_at": to_utc_z(self.last_restocked_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_product and self.product is not None:
            data["product"] = self.product.to_dict()
        if include_branch and self.branch is not None:
            data["branch_name"] = self.branch.name
        return data


class RestockLog(db.Model):
    """Immutable audit record of one HQ -> branch transfer."""
    __tablename__ = "restock_logs"
    __table_args__ = (
        db.Index("ix_restock_logs_branch_created", "branch_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity_added = db.Column(db.Integer, nullable=False)
    previous_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)
    hq_previous_quantity = db.Column(db.Integer, nullable=False)
    hq_new_quantity = db.Column(db.Integer, nullable=False)
    restocked_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    branch = db.relationship("Branch")
    product = db.relationship("Product")
    restocked_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "branch_name": self.branch.name if self.branch else None,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity_added": self.quantity_added,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "hq_previous_quantity": self.hq_previous_quantity,
            "hq_new_quantity": self.hq_new_quantity,
            "restocked_by_user_id": self.restocked_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


ADJUSTMENT_REASONS = ("admin_set", "sale_deleted", "order_cancelled")


class InventoryAdjustment(db.Model):
    """
    Immutable record of a stock change that is not a sale line or a
    restock: admin set-quantity and stock released by a deleted sale or
    a cancelled order.
    """
    __tablename__ = "inventory_adjustments"
    __table_args__ = (
        db.CheckConstraint(
            "reason IN ('admin_set', 'sale_deleted', 'order_cancelled')",
            name="ck_inventory_adjustments_reason",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    previous_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)
    quantity_delta = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(32), nullable=False)
    note = db.Column(db.String(255), nullable=True)

    # Plain ids: the sale may be deleted by the conflict-resolution path
    sale_id = db.Column(db.Integer, nullable=True, index=True)
    order_id = db.Column(db.Integer, nullable=True, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "product_id": self.product_id,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "quantity_delta": self.quantity_delta,
            "reason": self.reason,
            "note": self.note,
            "sale_id": self.sale_id,
            "order_id": self.order_id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
