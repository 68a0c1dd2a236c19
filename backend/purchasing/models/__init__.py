from .purchasing import (
    Supplier, Purchase, PurchaseItem, PurchasePayment,
    PurchaseReturn, PurchaseReturnItem, RefundTransaction, PurchaseEvent,
)
from .inventory import Warehouse, WarehouseStock, StockMovement
from .accounting import Account, JournalEntry, JournalLine
from .documents import DocumentSequence

__all__ = [
    'Supplier', 'Purchase', 'PurchaseItem', 'PurchasePayment',
    'PurchaseReturn', 'PurchaseReturnItem', 'RefundTransaction', 'PurchaseEvent',
    'Warehouse', 'WarehouseStock', 'StockMovement',
    'Account', 'JournalEntry', 'JournalLine',
    'DocumentSequence',
]
