# Overview: Read surface over the append-only stock transaction ledger.

from __future__ import annotations

from flask import current_app, has_app_context
from sqlalchemy import func

from ..extensions import db
from ..errors import InvalidTypeError, TransactionNotFound
from ..models import Product, StockTransaction, TRANSACTION_TYPES
from ..time_utils import normalize_range_bound
from ..validation import ValidationError
"""
Ledger Read Semantics (authoritative)

- This module only reads. Rows are inserted by the stock engine and are never
  updated or deleted.
- Date ranges are inclusive on both ends: start <= created_at <= end.
- Lists are newest first (created_at desc, then id desc).
"""


def clamp_limit(limit, default: int | None = None) -> int:
    """Bound a caller-supplied page size to [1, MAX_PAGE_LIMIT]."""
    max_limit = 500
    if has_app_context():
        max_limit = current_app.config.get("MAX_PAGE_LIMIT", max_limit)
        if default is None:
            default = current_app.config.get("DEFAULT_PAGE_LIMIT", 100)
    if limit is None:
        limit = default if default is not None else 100
    return max(1, min(int(limit), max_limit))


def _parse_range(start_date, end_date):
    try:
        start_dt = normalize_range_bound(start_date)
        end_dt = normalize_range_bound(end_date, end=True)
    except ValueError:
        raise ValidationError("start_date and end_date must be ISO-8601 dates or datetimes")
    if start_dt is not None and end_dt is not None and start_dt > end_dt:
        raise ValidationError("start_date must not be after end_date")
    return start_dt, end_dt


class Ledger:
    """Queries over stock_transactions for one session."""

    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    def get_transaction(self, transaction_id: str) -> StockTransaction:
        tx = self.session.get(StockTransaction, transaction_id)
        if tx is None:
            raise TransactionNotFound(transaction_id)
        return tx

    def list_transactions(
        self,
        *,
        product_id: str | None = None,
        type: str | None = None,
        start_date=None,
        end_date=None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[StockTransaction]:
        if type is not None and type not in TRANSACTION_TYPES:
            raise InvalidTypeError(type, TRANSACTION_TYPES)
        if offset is None or offset < 0:
            offset = 0

        start_dt, end_dt = _parse_range(start_date, end_date)

        q = self.session.query(StockTransaction)
        if product_id:
            q = q.filter(StockTransaction.product_id == product_id)
        if type:
            q = q.filter(StockTransaction.type == type)
        if start_dt is not None:
            q = q.filter(StockTransaction.created_at >= start_dt)
        if end_dt is not None:
            q = q.filter(StockTransaction.created_at <= end_dt)

        return (
            q.order_by(StockTransaction.created_at.desc(), StockTransaction.id.desc())
            .offset(offset)
            .limit(clamp_limit(limit))
            .all()
        )

    def list_for_product(self, product_id: str, limit: int = 50) -> list[StockTransaction]:
        return self.list_transactions(product_id=product_id, limit=limit)

    def recent(self, limit: int = 10) -> list[StockTransaction]:
        return self.list_transactions(limit=limit)

    def summarize(self, start_date, end_date) -> list[dict]:
        """
        Count, total quantity and total amount per transaction type.

        Both bounds are required and inclusive.
        """
        if not start_date or not end_date:
            raise ValidationError("start_date and end_date are required")
        start_dt, end_dt = _parse_range(start_date, end_date)

        rows = (
            self.session.query(
                StockTransaction.type,
                func.count(StockTransaction.id).label("count"),
                func.coalesce(func.sum(StockTransaction.quantity), 0).label("total_quantity"),
                func.coalesce(func.sum(StockTransaction.total_amount), 0).label("total_amount"),
            )
            .filter(
                StockTransaction.created_at >= start_dt,
                StockTransaction.created_at <= end_dt,
            )
            .group_by(StockTransaction.type)
            .order_by(StockTransaction.type)
            .all()
        )
        return [
            {
                "type": row.type,
                "count": int(row.count),
                "total_quantity": int(row.total_quantity),
                "total_amount": round(float(row.total_amount), 2),
            }
            for row in rows
        ]

    def ledger_quantity(self, product_id: str) -> int:
        """On-hand quantity reconstructed from the product's ledger rows."""
        total = (
            self.session.query(
                func.coalesce(
                    func.sum(StockTransaction.new_quantity - StockTransaction.previous_quantity),
                    0,
                )
            )
            .filter(StockTransaction.product_id == product_id)
            .scalar()
        )
        return int(total or 0)

    def verify(self) -> list[dict]:
        """
        Products whose stored quantity disagrees with their ledger.

        Empty when the ledger invariant holds for every product.
        """
        ledger_sums = (
            self.session.query(
                StockTransaction.product_id.label("product_id"),
                func.sum(StockTransaction.new_quantity - StockTransaction.previous_quantity).label("total"),
            )
            .group_by(StockTransaction.product_id)
            .subquery()
        )
        rows = (
            self.session.query(Product.id, Product.quantity, func.coalesce(ledger_sums.c.total, 0))
            .outerjoin(ledger_sums, ledger_sums.c.product_id == Product.id)
            .all()
        )
        return [
            {"product_id": pid, "stored_quantity": stored, "ledger_quantity": int(ledger)}
            for pid, stored, ledger in rows
            if stored != int(ledger)
        ]
