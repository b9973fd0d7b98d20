"""
Purchase Order Module (``procurement_modules.purchase_order``).

Responsibility
--------------
Supplier orders created at accepted supplier cost once the client has
paid in full, and their one-step-at-a-time delivery tracking.
"""

from procurement_modules.purchase_order.models import (
    OrderStatus,
    OrderStatusChange,
    PurchaseOrder,
    PurchaseOrderLine,
)
from procurement_modules.purchase_order.service import PurchaseOrderService
from procurement_modules.purchase_order.workflows import ORDER_WORKFLOW

__all__ = [
    "OrderStatus",
    "OrderStatusChange",
    "PurchaseOrder",
    "PurchaseOrderLine",
    "PurchaseOrderService",
    "ORDER_WORKFLOW",
]
