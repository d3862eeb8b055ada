from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .inventory import new_id


RETURN_TYPES = ("return_in", "return_out")
RETURN_STATUSES = ("pending", "approved", "rejected", "completed")


class Return(db.Model):
    """
    Return request moving stock between a customer or supplier and inventory.

    - return_in: customer hands stock back into inventory
    - return_out: stock leaves inventory back to the supplier

    LIFECYCLE:
    1. pending: created, no stock effect
    2. approved / rejected: processing decision, no stock effect
    3. completed: stock adjusted once through the stock engine

    completed and rejected are terminal. Every status change is written to
    ReturnStatusChange.
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_returns_quantity_positive"),
        db.Index("ix_returns_status_created", "status", "created_at"),
    )

    id = db.Column(db.String(32), primary_key=True, default=lambda: new_id("ret"))

    product_id = db.Column(db.String(32), db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, default="return_in", index=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    reason = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    # return_in counterpart
    customer_name = db.Column(db.String(255), nullable=True)
    customer_contact = db.Column(db.String(255), nullable=True)

    # return_out counterpart (external supplier registry)
    supplier_id = db.Column(db.String(64), nullable=True)

    # Sale/purchase being reversed, if known
    original_transaction_id = db.Column(db.String(32), nullable=True)

    refund_amount = db.Column(db.Float, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    processed_by = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    product = db.relationship("Product", backref=db.backref("returns", lazy="dynamic"))
    status_changes = db.relationship(
        "ReturnStatusChange",
        back_populates="return_doc",
        cascade="all, delete-orphan",
        order_by="ReturnStatusChange.seq",
    )

    def __repr__(self) -> str:
        return f"<Return id={self.id} type={self.type} status={self.status} quantity={self.quantity}>"

    @property
    def is_terminal(self) -> bool:
        return self.status in ("completed", "rejected")

    @property
    def reference_no(self) -> str:
        """Correlation id carried by the ledger row written on completion."""
        return f"RET-{self.id}"

    def to_dict(self, include_history: bool = False) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_sku": self.product.sku if self.product else None,
            "type": self.type,
            "quantity": self.quantity,
            "reason": self.reason,
            "status": self.status,
            "customer_name": self.customer_name,
            "customer_contact": self.customer_contact,
            "supplier_id": self.supplier_id,
            "original_transaction_id": self.original_transaction_id,
            "refund_amount": self.refund_amount,
            "notes": self.notes,
            "processed_by": self.processed_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_history:
            data["history"] = [c.to_dict() for c in self.status_changes]
        return data


class ReturnStatusChange(db.Model):
    """Append-only status history of a return; from_status is None on creation."""
    __tablename__ = "return_status_changes"

    seq = db.Column(db.Integer, primary_key=True, autoincrement=True)

    return_id = db.Column(
        db.String(32),
        db.ForeignKey("returns.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    from_status = db.Column(db.String(16), nullable=True)
    to_status = db.Column(db.String(16), nullable=False)
    processed_by = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    return_doc = db.relationship("Return", back_populates="status_changes")

    def to_dict(self) -> dict:
        return {
            "seq": self.seq,
            "return_id": self.return_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "processed_by": self.processed_by,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
