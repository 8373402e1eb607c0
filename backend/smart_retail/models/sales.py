from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


SALE_STATUSES = ("pending", "paid", "failed", "cancelled")
SALE_TERMINAL_STATUSES = ("paid", "failed", "cancelled")

ORDER_STATUSES = ("processing", "completed", "cancelled")
ORDER_PAYMENT_STATUSES = ("pending", "completed", "failed")

PAYMENT_STATUSES = ("pending", "completed", "failed")
PAYMENT_TERMINAL_STATUSES = ("completed", "failed")


class Sale(db.Model):
    """
    One customer transaction at one branch.

    Online sales price lines from the live catalog; offline (synced)
    sales carry client_txn_id and keep the client-reported prices.
    A sale is immutable once terminal except through sync conflict
    resolution.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending', 'paid', 'failed', 'cancelled')",
            name="ck_sales_status",
        ),
        db.Index("ix_sales_branch_status_created", "branch_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    total_cents = db.Column(db.BigInteger, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    payment_method = db.Column(db.String(32), nullable=True)
    payment_ref = db.Column(db.String(100), nullable=True)
    payment_phone = db.Column(db.String(20), nullable=True)

    # Offline sync idempotency token
    client_txn_id = db.Column(db.String(100), nullable=True, unique=True)
    client_id = db.Column(db.String(100), nullable=True, index=True)
    source = db.Column(db.String(16), nullable=False, default="online")

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)
    synced_at = db.Column(db.DateTime, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    branch = db.relationship("Branch", backref=db.backref("sales", lazy=True))
    user = db.relationship("User", backref=db.backref("sales", lazy=True))
    lines = db.relationship(
        "SaleLine",
        backref="sale",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SaleLine.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_terminal(self) -> bool:
        return self.status in SALE_TERMINAL_STATUSES

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "branch_id": self.branch_id,
            "user_id": self.user_id,
            "total_cents": self.total_cents,
            "status": self.status,
            "payment_method": self.payment_method,
            "payment_ref": self.payment_ref,
            "client_txn_id": self.client_txn_id,
            "client_id": self.client_id,
            "source": self.source,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "completed_at": to_utc_z(self.completed_at),
            "synced_at": to_utc_z(self.synced_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class SaleLine(db.Model):
    """Line item; unit_price_cents is the price captured when the sale was recorded."""
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_pos"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.BigInteger, nullable=False)
    line_total_cents = db.Column(db.BigInteger, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class Order(db.Model):
    """
    Customer order paid through M-Pesa STK push.

    payment_status follows the Payment row; order_status is moved to
    completed/cancelled by the payment callback or an admin.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint(
            "payment_status IN ('pending', 'completed', 'failed')",
            name="ck_orders_payment_status",
        ),
        db.CheckConstraint(
            "order_status IN ('processing', 'completed', 'cancelled')",
            name="ck_orders_order_status",
        ),
        db.CheckConstraint("payment_method IN ('mpesa')", name="ck_orders_payment_method"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    total_cents = db.Column(db.BigInteger, nullable=False, default=0)
    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_method = db.Column(db.String(16), nullable=False, default="mpesa")
    mpesa_receipt_number = db.Column(db.String(64), nullable=True)
    order_status = db.Column(db.String(16), nullable=False, default="processing", index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    branch = db.relationship("Branch", backref=db.backref("orders", lazy=True))
    user = db.relationship("User", backref=db.backref("orders", lazy=True))
    lines = db.relationship(
        "OrderLine",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderLine.id",
    )
    payment = db.relationship("Payment", backref="order", uselist=False, lazy=True)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "branch_id": self.branch_id,
            "branch_name": self.branch.name if self.branch else None,
            "total_cents": self.total_cents,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "mpesa_receipt_number": self.mpesa_receipt_number,
            "order_status": self.order_status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "completed_at": to_utc_z(self.completed_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class OrderLine(db.Model):
    __tablename__ = "order_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_lines_quantity_pos"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_brand = db.Column(db.String(100), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.BigInteger, nullable=False)
    line_total_cents = db.Column(db.BigInteger, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_brand": self.product_brand,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class Payment(db.Model):
    """
    M-Pesa payment for exactly one order.

    checkout_request_id is the gateway's idempotency key for callbacks.
    At most one terminal transition (completed/failed) is ever applied.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending', 'completed', 'failed')",
            name="ck_payments_status",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, unique=True)
    phone = db.Column(db.String(20), nullable=False)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    transaction_id = db.Column(db.String(64), nullable=True)
    checkout_request_id = db.Column(db.String(100), nullable=True, unique=True)
    merchant_request_id = db.Column(db.String(100), nullable=True)
    result_code = db.Column(db.Integer, nullable=True)
    result_desc = db.Column(db.String(255), nullable=True)
    gateway_response = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_terminal(self) -> bool:
        return self.status in PAYMENT_TERMINAL_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "phone": self.phone,
            "amount_cents": self.amount_cents,
            "status": self.status,
            "transaction_id": self.transaction_id,
            "checkout_request_id": self.checkout_request_id,
            "merchant_request_id": self.merchant_request_id,
            "result_code": self.result_code,
            "result_desc": self.result_desc,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
