from .auth import User, SessionToken
from .catalog import Branch, Product
from .inventory import StockEntry, RestockLog, InventoryAdjustment
from .sales import Sale, SaleLine, Order, OrderLine, Payment

__all__ = [
    'User', 'SessionToken',
    'Branch', 'Product',
    'StockEntry', 'RestockLog', 'InventoryAdjustment',
    'Sale', 'SaleLine', 'Order', 'OrderLine', 'Payment',
]
