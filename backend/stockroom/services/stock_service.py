# Overview: Stock engine; the single chokepoint that mutates product quantity and writes the ledger.

from __future__ import annotations

import logging
from typing import NamedTuple

from ..extensions import db
from ..errors import InsufficientStockError, InvalidTypeError, ProductNotFound
from ..models import Product, StockTransaction, TRANSACTION_TYPES, TRANSACTION_TYPE_SIGNS
from ..time_utils import utcnow
from ..validation import ValidationError
from .concurrency import lock_for_update, product_lock, run_with_retry
"""
Stock Ledger Invariants (authoritative)

- Product.quantity is written ONLY here. Nothing else assigns it or inserts
  StockTransaction rows.
- Every change writes exactly one StockTransaction with
  previous_quantity/new_quantity snapshots taken under the product lock.
- quantity never goes below zero; a change that would do so is refused and
  nothing is written.
- The quantity update and the ledger insert commit together or not at all.
- Therefore Product.quantity == SUM(new_quantity - previous_quantity) over the
  product's transactions at all times.
"""

logger = logging.getLogger(__name__)


class StockAdjustment(NamedTuple):
    """Refreshed product and the ledger row that moved it, observed together."""
    product: Product
    transaction: StockTransaction

    def to_dict(self) -> dict:
        return {
            "product": self.product.to_dict(),
            "transaction": self.transaction.to_dict(),
        }


def validate_change(quantity_change, type: str) -> None:
    """
    Reject malformed adjustments before any row is read.

    The sign of quantity_change must agree with the type: inbound types
    (stock_in, purchase, return_in) add stock, outbound types (stock_out,
    sale, return_out) remove it, adjustment and transfer go either way.
    """
    if type not in TRANSACTION_TYPE_SIGNS:
        raise InvalidTypeError(type, TRANSACTION_TYPES)

    if isinstance(quantity_change, bool) or not isinstance(quantity_change, int):
        raise ValidationError("quantity_change must be an integer")
    if quantity_change == 0:
        raise ValidationError("quantity_change must be non-zero")

    sign = TRANSACTION_TYPE_SIGNS[type]
    if sign > 0 and quantity_change < 0:
        raise ValidationError(f"{type} requires a positive quantity_change")
    if sign < 0 and quantity_change > 0:
        raise ValidationError(f"{type} requires a negative quantity_change")


class StockEngine:
    """
    Serialized read-modify-write-append over one product.

    The session is injected so callers (and tests) decide which store the
    engine works against; it defaults to the app's db.session.
    """

    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    def adjust_stock(
        self,
        product_id: str,
        quantity_change: int,
        type: str,
        *,
        reference_no: str | None = None,
        notes: str | None = None,
        unit_price: float | None = None,
        user_id: str | None = None,
        commit: bool = True,
    ) -> StockAdjustment:
        """
        Apply a signed quantity change to a product and record it.

        commit=False flushes instead of committing; the caller then owns the
        transaction AND must already hold product_lock(product_id) until it
        commits (see ReturnWorkflow.process_return).

        Raises:
            InvalidTypeError: type not in TRANSACTION_TYPES
            ValidationError: zero, non-integer, or wrongly-signed change
            ProductNotFound: no such product (inactive products are allowed)
            InsufficientStockError: change would make quantity negative
        """
        validate_change(quantity_change, type)

        def _op() -> StockAdjustment:
            with product_lock(product_id):
                try:
                    result = self._apply(
                        product_id,
                        quantity_change,
                        type,
                        reference_no=reference_no,
                        notes=notes,
                        unit_price=unit_price,
                        user_id=user_id,
                    )
                    if commit:
                        self.session.commit()
                    else:
                        self.session.flush()
                except Exception:
                    if commit:
                        self.session.rollback()
                    raise
                return result

        if not commit:
            return _op()
        return run_with_retry(_op, session=self.session)

    def _apply(
        self,
        product_id: str,
        quantity_change: int,
        type: str,
        *,
        reference_no: str | None,
        notes: str | None,
        unit_price: float | None,
        user_id: str | None,
    ) -> StockAdjustment:
        query = self.session.query(Product).filter_by(id=product_id)
        product = lock_for_update(query).populate_existing().first()
        if product is None:
            raise ProductNotFound(product_id)

        previous = product.quantity
        new = previous + quantity_change
        if new < 0:
            logger.warning(
                "Refused %s of %d on %s: only %d on hand",
                type, quantity_change, product_id, previous,
            )
            raise InsufficientStockError(product_id, available=previous, requested=abs(quantity_change))

        quantity = abs(quantity_change)
        price = unit_price if unit_price is not None else product.price
        now = utcnow()

        product.quantity = new
        product.updated_at = now

        tx = StockTransaction(
            product_id=product.id,
            type=type,
            quantity=quantity,
            previous_quantity=previous,
            new_quantity=new,
            unit_price=price,
            total_amount=round(price * quantity, 2) if price is not None else None,
            reference_no=reference_no,
            notes=notes,
            user_id=user_id,
            created_at=now,
        )
        self.session.add(tx)
        self.session.flush()  # assigns tx.id without committing

        logger.info("Stock %s %s: %d -> %d (%s)", type, product_id, previous, new, tx.id)
        return StockAdjustment(product=product, transaction=tx)


def adjust_stock(
    product_id: str,
    quantity_change: int,
    type: str,
    *,
    reference_no: str | None = None,
    notes: str | None = None,
    unit_price: float | None = None,
    user_id: str | None = None,
) -> StockAdjustment:
    """Adjust stock against the app session and commit."""
    return StockEngine().adjust_stock(
        product_id,
        quantity_change,
        type,
        reference_no=reference_no,
        notes=notes,
        unit_price=unit_price,
        user_id=user_id,
    )
