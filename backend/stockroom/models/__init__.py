from .inventory import Product, StockTransaction, TRANSACTION_TYPES, TRANSACTION_TYPE_SIGNS, new_id
from .returns import Return, ReturnStatusChange, RETURN_TYPES, RETURN_STATUSES

__all__ = [
    'Product', 'StockTransaction', 'TRANSACTION_TYPES', 'TRANSACTION_TYPE_SIGNS', 'new_id',
    'Return', 'ReturnStatusChange', 'RETURN_TYPES', 'RETURN_STATUSES',
]
