from .items import Item, InsufficientStockError
from .customers import Customer
from .bills import Bill, BillItem, PaymentStatus
from .documents import DocumentSequence

__all__ = [
    'Item', 'InsufficientStockError',
    'Customer',
    'Bill', 'BillItem', 'PaymentStatus',
    'DocumentSequence',
]
