from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Branch(db.Model):
    """
    Retail location.

    Exactly one branch may carry is_headquarters=True; it is the only
    restock source. The service layer enforces the single-HQ rule.
    """
    __tablename__ = "branches"
    __table_args__ = (
        db.CheckConstraint("status IN ('active', 'inactive')", name="ck_branches_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    address = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(20), nullable=True)
    is_headquarters = db.Column(db.Boolean, nullable=False, default=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="active")

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Branch id={self.id} name={self.name!r} hq={self.is_headquarters}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "is_headquarters": self.is_headquarters,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Catalog entry.

    price_cents is authoritative for new online sales only; sale and
    order lines capture their own unit price.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_brand", "brand"),
        db.CheckConstraint("price_cents >= 0", name="ck_products_price_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    brand = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(100), nullable=True)
    volume = db.Column(db.String(32), nullable=True)
    unit = db.Column(db.String(32), nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.BigInteger, nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} brand={self.brand!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "brand": self.brand,
            "description": self.description,
            "category": self.category,
            "volume": self.volume,
            "unit": self.unit,
            "price_cents": self.price_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
