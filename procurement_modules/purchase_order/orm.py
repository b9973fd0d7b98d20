"""
SQLAlchemy ORM persistence models for the Purchase Order module.

Responsibility
--------------
Persist supplier purchase orders, their lines and the status history of
each order.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``PurchaseOrderService``.

Invariants enforced
-------------------
* One order per (client quote, supplier) -- unique constraint, so a second
  creation attempt cannot slip past the service check.
* Order lines carry the accepted supplier cost; the client price is never
  stored on an order.
* ``PurchaseOrderStatusChangeModel`` rows are append-only.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procurement_kernel.db.base import TrackedBase, VersionedBase


class PurchaseOrderModel(VersionedBase):
    """
    An order placed with one supplier.

    Maps to the ``PurchaseOrder`` DTO in ``procurement_modules.purchase_order.models``.
    """

    __tablename__ = "purchase_orders"

    __table_args__ = (
        UniqueConstraint("po_number", name="uq_purchase_order_number"),
        UniqueConstraint("client_quote_id", "supplier_rfq_id", name="uq_purchase_order_supplier"),
        Index("idx_purchase_order_status", "status"),
    )

    po_number: Mapped[str] = mapped_column(String(50), nullable=False)
    client_quote_id: Mapped[UUID] = mapped_column(ForeignKey("client_quotes.id"), nullable=False)
    supplier_rfq_id: Mapped[UUID] = mapped_column(ForeignKey("supplier_rfqs.id"), nullable=False)
    supplier_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending_payment")
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    subtotal: Mapped[Decimal]
    delivery_fee: Mapped[Decimal | None]
    tax_amount: Mapped[Decimal | None]
    total_amount: Mapped[Decimal]
    carrier: Mapped[str | None] = mapped_column(String(100), nullable=True)
    tracking_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    lines: Mapped[list["PurchaseOrderLineModel"]] = relationship(
        "PurchaseOrderLineModel",
        back_populates="purchase_order",
        order_by="PurchaseOrderLineModel.line_number",
    )

    def to_dto(self):
        from procurement_modules.purchase_order.models import OrderStatus, PurchaseOrder

        return PurchaseOrder(
            id=self.id,
            po_number=self.po_number,
            client_quote_id=self.client_quote_id,
            supplier_rfq_id=self.supplier_rfq_id,
            supplier_name=self.supplier_name,
            status=OrderStatus(self.status),
            currency=self.currency,
            subtotal=self.subtotal,
            total_amount=self.total_amount,
            version=self.version,
            delivery_fee=self.delivery_fee,
            tax_amount=self.tax_amount,
            carrier=self.carrier,
            tracking_number=self.tracking_number,
            cancellation_reason=self.cancellation_reason,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrderModel {self.po_number} [{self.status}]>"


class PurchaseOrderLineModel(TrackedBase):
    """An ordered line, traceable to the client quote line it fulfils."""

    __tablename__ = "purchase_order_lines"

    __table_args__ = (
        UniqueConstraint("purchase_order_id", "line_number", name="uq_purchase_order_line_number"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(ForeignKey("purchase_orders.id"), nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    rfq_line_item_id: Mapped[UUID] = mapped_column(ForeignKey("rfq_line_items.id"), nullable=False)
    supplier_quote_line_id: Mapped[UUID] = mapped_column(
        ForeignKey("supplier_quote_lines.id"), nullable=False,
    )
    client_quote_line_id: Mapped[UUID] = mapped_column(
        ForeignKey("client_quote_lines.id"), nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[Decimal]
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="EA")
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    unit_cost: Mapped[Decimal]
    line_total: Mapped[Decimal]

    purchase_order: Mapped["PurchaseOrderModel"] = relationship(
        "PurchaseOrderModel", back_populates="lines",
    )

    def to_dto(self):
        from procurement_modules.purchase_order.models import PurchaseOrderLine

        return PurchaseOrderLine(
            id=self.id,
            line_number=self.line_number,
            rfq_line_item_id=self.rfq_line_item_id,
            supplier_quote_line_id=self.supplier_quote_line_id,
            client_quote_line_id=self.client_quote_line_id,
            name=self.name,
            quantity=self.quantity,
            unit=self.unit,
            currency=self.currency,
            unit_cost=self.unit_cost,
            line_total=self.line_total,
        )


class PurchaseOrderStatusChangeModel(TrackedBase):
    """Append-only record of one order status change."""

    __tablename__ = "purchase_order_status_changes"

    __table_args__ = (
        UniqueConstraint("purchase_order_id", "sequence", name="uq_po_status_change_sequence"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(ForeignKey("purchase_orders.id"), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    to_status: Mapped[str] = mapped_column(String(50), nullable=False)
    changed_at: Mapped[datetime]
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self):
        from procurement_kernel.domain.clock import as_utc
        from procurement_modules.purchase_order.models import OrderStatus, OrderStatusChange

        return OrderStatusChange(
            id=self.id,
            purchase_order_id=self.purchase_order_id,
            from_status=OrderStatus(self.from_status) if self.from_status else None,
            to_status=OrderStatus(self.to_status),
            changed_at=as_utc(self.changed_at),
            actor_id=self.created_by_id,
            note=self.note,
        )
