from .settings import StoreSettings
from .catalog import Product
from .dining import Table
from .orders import Order, OrderItem
from .inventory import InventoryTransaction, PurchaseReceipt, PurchaseReceiptItem
from .receipts import Transaction, TransactionItem

__all__ = [
    'StoreSettings',
    'Product',
    'Table',
    'Order', 'OrderItem',
    'InventoryTransaction', 'PurchaseReceipt', 'PurchaseReceiptItem',
    'Transaction', 'TransactionItem',
]
