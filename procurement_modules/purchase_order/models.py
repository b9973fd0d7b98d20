"""
Purchase Order Domain Models.

Orders placed with suppliers at supplier cost once the client has paid,
and the status history that tracks them through delivery.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class OrderStatus(str, Enum):
    """Purchase order lifecycle, in order."""
    PENDING_PAYMENT = "pending_payment"
    PAYMENT_RECEIVED = "payment_received"
    ORDERED = "ordered"
    CONFIRMED = "confirmed"
    IN_PRODUCTION = "in_production"
    SHIPPED = "shipped"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    INSTALLED = "installed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PurchaseOrderLine:
    """An ordered line at the accepted supplier cost, never the client price."""
    id: UUID
    line_number: int
    rfq_line_item_id: UUID
    supplier_quote_line_id: UUID
    client_quote_line_id: UUID
    name: str
    quantity: Decimal
    unit: str
    currency: str
    unit_cost: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class PurchaseOrder:
    id: UUID
    po_number: str
    client_quote_id: UUID
    supplier_rfq_id: UUID
    supplier_name: str
    status: OrderStatus
    currency: str
    subtotal: Decimal
    total_amount: Decimal
    version: int
    delivery_fee: Decimal | None = None
    tax_amount: Decimal | None = None
    carrier: str | None = None
    tracking_number: str | None = None
    cancellation_reason: str | None = None
    lines: tuple[PurchaseOrderLine, ...] = ()


@dataclass(frozen=True)
class OrderStatusChange:
    """One entry of an order's append-only status history."""
    id: UUID
    purchase_order_id: UUID
    from_status: OrderStatus | None
    to_status: OrderStatus
    changed_at: datetime
    actor_id: UUID
    note: str | None = None
