from __future__ import annotations

import uuid

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


def new_id(prefix: str) -> str:
    """Opaque string identifier: '<prefix>_<8 hex chars>'."""
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


# Sign convention per ledger type.
# +1: change must be positive, -1: must be negative, 0: either direction.
TRANSACTION_TYPE_SIGNS = {
    "stock_in": 1,
    "purchase": 1,
    "return_in": 1,
    "stock_out": -1,
    "sale": -1,
    "return_out": -1,
    "adjustment": 0,
    "transfer": 0,
}
TRANSACTION_TYPES = tuple(TRANSACTION_TYPE_SIGNS)


class Product(db.Model):
    """
    Product master data and current on-hand quantity.

    QUANTITY OWNERSHIP:
    Product.quantity is written ONLY by the stock engine
    (services/stock_service.py), which appends one StockTransaction per change.
    Attribute edits never touch it, so quantity always equals the sum of the
    product's signed ledger changes.

    SOFT DELETE:
    Products are tombstoned (is_active=False), never removed, because ledger
    rows and returns keep referencing them.

    category_id / supplier_id / user_id point into registries owned elsewhere;
    they are stored as plain references without foreign keys.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
        db.Index("ix_products_active_name", "is_active", "name"),
    )

    id = db.Column(db.String(32), primary_key=True, default=lambda: new_id("prod"))

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Unique when present; several products may have no SKU
    sku = db.Column(db.String(64), nullable=True, unique=True)
    barcode = db.Column(db.String(64), nullable=True, index=True)

    category_id = db.Column(db.String(64), nullable=True, index=True)
    supplier_id = db.Column(db.String(64), nullable=True, index=True)
    user_id = db.Column(db.String(64), nullable=True, index=True)

    price = db.Column(db.Float, nullable=False, default=0.0)
    cost_price = db.Column(db.Float, nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)

    unit = db.Column(db.String(32), nullable=False, default="unit")
    location = db.Column(db.String(255), nullable=True)
    image_url = db.Column(db.String(512), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    transactions = db.relationship(
        "StockTransaction",
        back_populates="product",
        lazy="dynamic",
        passive_deletes="all",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} quantity={self.quantity}>"

    @property
    def is_low_stock(self) -> bool:
        return self.min_stock > 0 and 0 < self.quantity <= self.min_stock

    @property
    def is_out_of_stock(self) -> bool:
        return self.quantity <= 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "sku": self.sku,
            "barcode": self.barcode,
            "category_id": self.category_id,
            "supplier_id": self.supplier_id,
            "user_id": self.user_id,
            "price": self.price,
            "cost_price": self.cost_price,
            "quantity": self.quantity,
            "min_stock": self.min_stock,
            "unit": self.unit,
            "location": self.location,
            "image_url": self.image_url,
            "is_active": self.is_active,
            "is_low_stock": self.is_low_stock,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockTransaction(db.Model):
    """
    One stock-quantity change for one product. Append-only.

    quantity is the absolute size of the change; the direction is implied by
    type (see TRANSACTION_TYPE_SIGNS) and always equals
    new_quantity - previous_quantity.
    """
    __tablename__ = "stock_transactions"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_stock_transactions_quantity_positive"),
        db.Index("ix_stock_tx_product_created", "product_id", "created_at"),
        db.Index("ix_stock_tx_type_created", "type", "created_at"),
    )

    id = db.Column(db.String(32), primary_key=True, default=lambda: new_id("txn"))

    product_id = db.Column(
        db.String(32),
        db.ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    type = db.Column(db.String(32), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    previous_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)

    unit_price = db.Column(db.Float, nullable=True)
    total_amount = db.Column(db.Float, nullable=True)

    # Free-form correlation id, e.g. "RET-<return id>"
    reference_no = db.Column(db.String(64), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)
    user_id = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    product = db.relationship("Product", back_populates="transactions")

    def __repr__(self) -> str:
        return (
            f"<StockTransaction id={self.id} product_id={self.product_id} type={self.type} "
            f"{self.previous_quantity}->{self.new_quantity}>"
        )

    @property
    def signed_quantity(self) -> int:
        return self.new_quantity - self.previous_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "type": self.type,
            "quantity": self.quantity,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "unit_price": self.unit_price,
            "total_amount": self.total_amount,
            "reference_no": self.reference_no,
            "notes": self.notes,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
