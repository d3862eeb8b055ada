"""
Domain error taxonomy for the stock ledger and returns workflow.

Services raise these; the request layer translates them into responses.
Nothing here is retried: every failure is caused by input or by an
invariant, never by a transient condition.
"""

from .validation import ValidationError


class InventoryError(Exception):
    """Base class for stock ledger and returns errors."""


# =============================================================================
# NOT FOUND
# =============================================================================

class NotFoundError(InventoryError, LookupError):
    """Entity id did not resolve."""


class ProductNotFound(NotFoundError):
    def __init__(self, product_id):
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


class ReturnNotFound(NotFoundError):
    def __init__(self, return_id):
        super().__init__(f"Return {return_id} not found")
        self.return_id = return_id


class TransactionNotFound(NotFoundError):
    def __init__(self, transaction_id):
        super().__init__(f"Transaction {transaction_id} not found")
        self.transaction_id = transaction_id


# =============================================================================
# INVALID INPUT
# =============================================================================

class InvalidTypeError(ValidationError):
    """Transaction or return type outside the fixed enum."""

    def __init__(self, value, allowed):
        super().__init__(f"Invalid type {value!r}; expected one of: {', '.join(allowed)}")
        self.value = value


# =============================================================================
# INVARIANT / STATE
# =============================================================================

class InsufficientStockError(InventoryError):
    """Change would take a product's on-hand quantity below zero."""

    def __init__(self, product_id, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"available {available}, requested {requested}"
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class InvalidStateTransitionError(InventoryError):
    """Return is in a status that does not allow the requested operation."""


class AlreadyCompleted(InvalidStateTransitionError):
    def __init__(self, return_id):
        super().__init__(f"Return {return_id} already completed")


class AlreadyRejected(InvalidStateTransitionError):
    def __init__(self, return_id):
        super().__init__(f"Cannot process rejected return {return_id}")


class NotPending(InvalidStateTransitionError):
    def __init__(self, return_id, status: str):
        super().__init__(f"Can only delete pending returns. Return {return_id} has status: {status}")
        self.status = status
