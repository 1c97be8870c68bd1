# Models
from .product import Product
from .order import Order, OrderStatus
from .order_line import OrderLine
from .inventory_logs import InventoryLog, ChangeType
from .idempotency_keys import IdempotencyKey, IdempotencyStatus

__all__ = [
    "Product",
    "Order",
    "OrderStatus",
    "OrderLine",
    "InventoryLog",
    "ChangeType",
    "IdempotencyKey",
    "IdempotencyStatus",
]
