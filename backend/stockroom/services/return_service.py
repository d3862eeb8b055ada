"""
Return Workflow Service

WHY: A return moves stock between a customer or supplier and inventory, but
only after someone decides to accept it. Stock must move exactly once, at the
moment the return is completed, and never for a rejected request.

DESIGN PRINCIPLES:
- Creation records intent only (status: pending), no stock effect
- approve / reject never touch stock
- Completing calls the stock engine once, in the same DB transaction as the
  status change: return_in adds quantity, return_out removes it
- completed and rejected are terminal
- Every status change is appended to return_status_changes, including the
  implicit approval when a pending return is completed directly

LIFECYCLE:
1. Create return (pending)
2. Process -> approved | rejected
3. Process -> completed (from approved, or from pending via auto-approve)

The return_out stock check at creation is advisory: it reads current stock
without reserving it, so completion can still fail with InsufficientStockError
if stock left in the meantime.
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from ..extensions import db
from ..errors import (
    AlreadyCompleted,
    AlreadyRejected,
    InsufficientStockError,
    InvalidTypeError,
    NotPending,
    ProductNotFound,
    ReturnNotFound,
)
from ..models import Product, Return, ReturnStatusChange, RETURN_STATUSES, RETURN_TYPES
from ..time_utils import normalize_range_bound, utcnow
from ..validation import ValidationError, enforce_rules_return
from .concurrency import lock_for_update, product_lock, return_lock
from .ledger_service import clamp_limit
from .stock_service import StockEngine

logger = logging.getLogger(__name__)


# =============================================================================
# RETURN STATUS CONSTANTS
# =============================================================================

RETURN_STATUS_PENDING = "pending"
RETURN_STATUS_APPROVED = "approved"
RETURN_STATUS_REJECTED = "rejected"
RETURN_STATUS_COMPLETED = "completed"

PROCESS_TARGET_STATUSES = (RETURN_STATUS_APPROVED, RETURN_STATUS_REJECTED, RETURN_STATUS_COMPLETED)

AUTO_APPROVE_NOTE = "Auto-approved"

RETURN_CREATE_FIELDS = {
    "product_id", "type", "quantity", "reason", "customer_name", "customer_contact",
    "supplier_id", "original_transaction_id", "refund_amount", "notes",
}
RETURN_MUTABLE_FIELDS = {
    "quantity", "reason", "customer_name", "customer_contact",
    "supplier_id", "refund_amount", "notes",
}


def _check_quantity(value) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("quantity must be a positive integer")


class ReturnWorkflow:
    def __init__(self, session=None, stock_engine: StockEngine | None = None):
        self.session = session if session is not None else db.session
        self.stock_engine = stock_engine if stock_engine is not None else StockEngine(self.session)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_return(self, return_id: str) -> Return:
        return_doc = self.session.get(Return, return_id)
        if return_doc is None:
            raise ReturnNotFound(return_id)
        return return_doc

    def list_returns(
        self,
        *,
        type: str | None = None,
        status: str | None = None,
        product_id: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Return]:
        if type is not None and type not in RETURN_TYPES:
            raise InvalidTypeError(type, RETURN_TYPES)
        if status is not None and status not in RETURN_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(RETURN_STATUSES)}")

        q = self.session.query(Return)
        if type:
            q = q.filter(Return.type == type)
        if status:
            q = q.filter(Return.status == status)
        if product_id:
            q = q.filter(Return.product_id == product_id)
        return (
            q.order_by(Return.created_at.desc(), Return.id.desc())
            .offset(max(offset or 0, 0))
            .limit(clamp_limit(limit))
            .all()
        )

    def list_for_product(self, product_id: str, limit: int = 50) -> list[Return]:
        return self.list_returns(product_id=product_id, limit=limit)

    def recent(self, limit: int = 10) -> list[Return]:
        return self.list_returns(limit=limit)

    def return_stats(self, start_date=None, end_date=None) -> dict:
        """
        Returns grouped by (type, status) plus an overall summary.

        The date filter applies only when both bounds are given.
        """
        q = self.session.query(
            Return.type,
            Return.status,
            func.count(Return.id).label("count"),
            func.coalesce(func.sum(Return.quantity), 0).label("total_quantity"),
            func.coalesce(func.sum(Return.refund_amount), 0).label("total_refund"),
        )
        if start_date and end_date:
            try:
                start_dt = normalize_range_bound(start_date)
                end_dt = normalize_range_bound(end_date, end=True)
            except ValueError:
                raise ValidationError("start_date and end_date must be ISO-8601 dates or datetimes")
            q = q.filter(Return.created_at >= start_dt, Return.created_at <= end_dt)

        details = [
            {
                "type": row.type,
                "status": row.status,
                "count": int(row.count),
                "total_quantity": int(row.total_quantity),
                "total_refund": round(float(row.total_refund), 2),
            }
            for row in q.group_by(Return.type, Return.status).order_by(Return.type, Return.status).all()
        ]

        summary = {
            "total_returns": 0,
            "total_return_in": 0,
            "total_return_out": 0,
            "pending_count": 0,
            "approved_count": 0,
            "completed_count": 0,
            "rejected_count": 0,
            "total_refund_amount": 0.0,
        }
        for d in details:
            summary["total_returns"] += d["count"]
            summary[f"total_{d['type']}"] += d["count"]
            summary[f"{d['status']}_count"] += d["count"]
            summary["total_refund_amount"] += d["total_refund"]
        summary["total_refund_amount"] = round(summary["total_refund_amount"], 2)

        return {"details": details, "summary": summary}

    # =========================================================================
    # CREATE / EDIT / DELETE
    # =========================================================================

    def create_return(self, data: dict, user_id: str | None = None) -> Return:
        """
        Create a return in 'pending'. No stock moves.

        Raises:
            ValidationError: missing product_id, bad type or quantity
            ProductNotFound: product_id does not resolve
            InsufficientStockError: return_out asks for more than is on hand now
        """
        unknown = set(data) - RETURN_CREATE_FIELDS
        if unknown:
            raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

        product_id = data.get("product_id")
        if not product_id:
            raise ValidationError("product_id is required")

        return_type = data.get("type")
        if return_type not in RETURN_TYPES:
            raise InvalidTypeError(return_type, RETURN_TYPES)

        _check_quantity(data.get("quantity"))
        enforce_rules_return(data)

        product = self.session.get(Product, product_id)
        if product is None:
            raise ProductNotFound(product_id)

        quantity = data["quantity"]
        if return_type == "return_out" and product.quantity < quantity:
            raise InsufficientStockError(product_id, available=product.quantity, requested=quantity)

        now = utcnow()
        return_doc = Return(
            product_id=product_id,
            type=return_type,
            quantity=quantity,
            reason=data.get("reason"),
            status=RETURN_STATUS_PENDING,
            customer_name=data.get("customer_name"),
            customer_contact=data.get("customer_contact"),
            supplier_id=data.get("supplier_id"),
            original_transaction_id=data.get("original_transaction_id"),
            refund_amount=data.get("refund_amount"),
            notes=data.get("notes"),
            created_at=now,
            updated_at=now,
        )
        return_doc.status_changes.append(
            ReturnStatusChange(from_status=None, to_status=RETURN_STATUS_PENDING, processed_by=user_id, created_at=now)
        )

        self.session.add(return_doc)
        self.session.commit()

        logger.info("Created %s %s for %s x%d", return_type, return_doc.id, product_id, quantity)
        return return_doc

    def update_return(self, return_id: str, patch: dict) -> Return:
        """
        Edit descriptive fields of a return that is not completed.

        Status is not editable here (see process_return), and no edit moves stock.
        """
        unknown = set(patch) - RETURN_MUTABLE_FIELDS
        if unknown:
            raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
        if "quantity" in patch:
            _check_quantity(patch["quantity"])
        enforce_rules_return(patch)

        with return_lock(return_id):
            return_doc = self.get_return(return_id)
            if return_doc.status == RETURN_STATUS_COMPLETED:
                raise AlreadyCompleted(return_id)

            if return_doc.type == "return_out" and "quantity" in patch:
                on_hand = return_doc.product.quantity
                if on_hand < patch["quantity"]:
                    raise InsufficientStockError(return_doc.product_id, available=on_hand, requested=patch["quantity"])

            for k, v in patch.items():
                setattr(return_doc, k, v)
            return_doc.updated_at = utcnow()
            self.session.commit()
            return return_doc

    def delete_return(self, return_id: str) -> None:
        """Hard-delete a pending return (and its status history)."""
        with return_lock(return_id):
            return_doc = self.get_return(return_id)
            if return_doc.status != RETURN_STATUS_PENDING:
                raise NotPending(return_id, return_doc.status)

            self.session.delete(return_doc)
            self.session.commit()
            logger.info("Deleted pending return %s", return_id)

    # =========================================================================
    # PROCESSING (STATE MACHINE)
    # =========================================================================

    def process_return(
        self,
        return_id: str,
        status: str,
        processed_by: str | None = None,
        notes: str | None = None,
    ) -> Return:
        """
        Move a return to approved, rejected or completed.

        Completing a pending return first records an explicit
        pending -> approved change (notes "Auto-approved"), then
        approved -> completed. Only entering 'completed' calls the stock engine.
        The whole call commits once; on any error nothing is kept.

        Raises:
            ValidationError: status not one of approved/rejected/completed
            ReturnNotFound
            AlreadyCompleted / AlreadyRejected: return is terminal
            InsufficientStockError: return_out completion with too little stock
        """
        if status not in PROCESS_TARGET_STATUSES:
            raise ValidationError("status must be approved, rejected, or completed")

        with return_lock(return_id):
            query = self.session.query(Return).filter_by(id=return_id)
            return_doc = lock_for_update(query).populate_existing().first()
            if return_doc is None:
                raise ReturnNotFound(return_id)

            # Product lock is held through the commit below so no other
            # adjustment can interleave with this completion.
            with product_lock(return_doc.product_id):
                try:
                    self._guard_not_terminal(return_doc)

                    if status == RETURN_STATUS_COMPLETED and return_doc.status == RETURN_STATUS_PENDING:
                        self._transition(return_doc, RETURN_STATUS_APPROVED, processed_by, AUTO_APPROVE_NOTE)

                    if status == RETURN_STATUS_COMPLETED:
                        self._apply_stock(return_doc, processed_by, notes)

                    self._transition(return_doc, status, processed_by, notes)
                    if notes:
                        return_doc.notes = notes

                    self.session.commit()
                except Exception:
                    self.session.rollback()
                    raise

        logger.info("Return %s -> %s (by %s)", return_id, status, processed_by)
        return return_doc

    def _guard_not_terminal(self, return_doc: Return) -> None:
        if not return_doc.is_terminal:
            return
        if return_doc.status == RETURN_STATUS_COMPLETED:
            raise AlreadyCompleted(return_doc.id)
        raise AlreadyRejected(return_doc.id)

    def _transition(self, return_doc: Return, to_status: str, processed_by, notes) -> None:
        now = utcnow()
        return_doc.status_changes.append(
            ReturnStatusChange(
                from_status=return_doc.status,
                to_status=to_status,
                processed_by=processed_by,
                notes=notes,
                created_at=now,
            )
        )
        return_doc.status = to_status
        return_doc.processed_by = processed_by
        return_doc.updated_at = now

    def _apply_stock(self, return_doc: Return, processed_by, notes) -> None:
        if return_doc.type == "return_in":
            change = return_doc.quantity
            direction = "from customer"
        else:
            change = -return_doc.quantity
            direction = "to supplier"

        self.stock_engine.adjust_stock(
            return_doc.product_id,
            change,
            return_doc.type,
            reference_no=return_doc.reference_no,
            notes=f"Return {direction}: {notes or return_doc.reason or 'No reason provided'}",
            user_id=processed_by,
            commit=False,
        )

