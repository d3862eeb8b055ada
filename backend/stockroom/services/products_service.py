# backend/stockroom/services/products_service.py
"""
Product Registry

Holds product attributes and exposes stock classification queries.

QUANTITY: this module never assigns Product.quantity. A product created with
an opening quantity is inserted at zero and receives a 'stock_in' ledger row
through the stock engine, in the same DB transaction.
"""
from __future__ import annotations

import logging

from sqlalchemy import case, func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ProductNotFound
from ..models import Product
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError
from .ledger_service import clamp_limit
from .stock_service import StockEngine
from .concurrency import product_lock

logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = {
    "name", "description", "sku", "barcode", "category_id", "supplier_id",
    "price", "cost_price", "min_stock", "unit", "location", "image_url", "is_active",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


class ProductRegistry:
    def __init__(self, session=None, stock_engine: StockEngine | None = None):
        self.session = session if session is not None else db.session
        self.stock_engine = stock_engine if stock_engine is not None else StockEngine(self.session)

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_product(self, product_id: str) -> Product:
        product = self.session.get(Product, product_id)
        if product is None:
            raise ProductNotFound(product_id)
        return product

    def get_product_by_barcode(self, barcode: str) -> Product:
        product = self.session.query(Product).filter_by(barcode=barcode).first()
        if product is None:
            raise ProductNotFound(barcode)
        return product

    def list_products(
        self,
        *,
        search: str | None = None,
        category_id: str | None = None,
        user_id: str | None = None,
        is_active: bool = True,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Product]:
        q = self.session.query(Product).filter(Product.is_active == is_active)
        if user_id:
            q = q.filter(Product.user_id == user_id)
        if search:
            term = f"%{search}%"
            q = q.filter(or_(Product.name.like(term), Product.sku.like(term), Product.barcode.like(term)))
        if category_id:
            q = q.filter(Product.category_id == category_id)
        return (
            q.order_by(Product.updated_at.desc(), Product.id)
            .offset(max(offset or 0, 0))
            .limit(clamp_limit(limit))
            .all()
        )

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def create_product(self, patch: dict, user_id: str | None = None) -> Product:
        """
        Create a product; an opening quantity is booked as 'stock_in'.

        Raises:
            ValidationError: missing name or negative opening quantity
            ConflictError: sku already used
        """
        if not patch.get("name"):
            raise ValidationError("name is required")

        opening_quantity = patch.get("quantity") or 0
        if opening_quantity < 0:
            raise ValidationError("quantity must be >= 0")

        self._ensure_sku_free(patch.get("sku"))

        product = Product(user_id=user_id, quantity=0)
        apply_product_patch(product, patch)
        if product.price is None:
            product.price = 0.0
        self.session.add(product)

        try:
            self.session.flush()
            if opening_quantity:
                with product_lock(product.id):
                    self.stock_engine.adjust_stock(
                        product.id,
                        opening_quantity,
                        "stock_in",
                        notes="Initial stock",
                        user_id=user_id,
                        commit=False,
                    )
                    self.session.commit()
            else:
                self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError("sku already exists")
        except Exception:
            self.session.rollback()
            raise

        logger.info("Created product %s (%s) with %d on hand", product.id, product.name, product.quantity)
        return product

    def update_product(self, product_id: str, patch: dict) -> Product:
        """Edit attributes. quantity is not writable here; use the stock engine."""
        if "quantity" in patch:
            raise ValidationError("quantity can only change through a stock adjustment")

        product = self.get_product(product_id)
        if patch.get("sku") and patch["sku"] != product.sku:
            self._ensure_sku_free(patch["sku"])

        apply_product_patch(product, patch)
        product.updated_at = utcnow()
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError("sku already exists")
        return product

    def delete_product(self, product_id: str) -> Product:
        """Soft delete; ledger rows and returns keep pointing at the product."""
        product = self.get_product(product_id)
        product.is_active = False
        product.updated_at = utcnow()
        self.session.commit()
        logger.info("Deactivated product %s", product_id)
        return product

    def _ensure_sku_free(self, sku: str | None) -> None:
        if not sku:
            return
        exists = self.session.query(Product.id).filter_by(sku=sku).first()
        if exists is not None:
            raise ConflictError(f"sku {sku!r} already exists")

    # -------------------------------------------------------------------------
    # Stock classification
    # -------------------------------------------------------------------------

    def list_low_stock(self, user_id: str | None = None) -> list[Product]:
        """Active products with 0 < quantity <= min_stock (min_stock > 0)."""
        q = self.session.query(Product).filter(
            Product.is_active.is_(True),
            Product.min_stock > 0,
            Product.quantity > 0,
            Product.quantity <= Product.min_stock,
        )
        if user_id:
            q = q.filter(Product.user_id == user_id)
        return q.order_by(Product.quantity.asc(), Product.name).all()

    def list_out_of_stock(self, user_id: str | None = None) -> list[Product]:
        q = self.session.query(Product).filter(
            Product.is_active.is_(True),
            Product.quantity <= 0,
        )
        if user_id:
            q = q.filter(Product.user_id == user_id)
        return q.order_by(Product.name).all()

    def inventory_stats(self, user_id: str | None = None) -> dict:
        low_stock = (Product.quantity > 0) & (Product.quantity <= Product.min_stock) & (Product.min_stock > 0)
        q = self.session.query(
            func.count(Product.id),
            func.coalesce(func.sum(Product.quantity), 0),
            func.coalesce(func.sum(Product.price * Product.quantity), 0),
            func.coalesce(func.sum(case((Product.quantity <= 0, 1), else_=0)), 0),
            func.coalesce(func.sum(case((low_stock, 1), else_=0)), 0),
        ).filter(Product.is_active.is_(True))
        if user_id:
            q = q.filter(Product.user_id == user_id)

        total, quantity, value, out_of_stock, low = q.one()
        return {
            "total_products": int(total),
            "total_quantity": int(quantity),
            "total_value": round(float(value), 2),
            "out_of_stock_count": int(out_of_stock),
            "low_stock_count": int(low),
        }
