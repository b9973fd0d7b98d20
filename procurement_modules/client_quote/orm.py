"""
SQLAlchemy ORM persistence models for the Client Quote module.

Responsibility
--------------
Persist line item acceptances, client quote revisions with their priced
lines, and client payments.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``QuoteAcceptanceService`` and
``ClientQuoteService``; read by ``PurchaseOrderService``.

Invariants enforced
-------------------
* One ``LineItemAcceptanceModel`` per requested line item (unique
  ``rfq_line_item_id``).  Changing the accepted option is a
  compare-and-set on ``version``; the row is never deleted.
* ``(quote_number, revision)`` is unique on ``ClientQuoteModel``.
* Client quote lines are a snapshot: the supplier cost, markup and price
  are copied in at build time and never recomputed.
* All monetary fields use ``Decimal`` (Numeric(38,9)) -- NEVER float.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procurement_kernel.db.base import TrackedBase, VersionedBase

# ---------------------------------------------------------------------------
# LineItemAcceptanceModel
# ---------------------------------------------------------------------------


class LineItemAcceptanceModel(VersionedBase):
    """Pointer from a requested line item to its accepted supplier quote line."""

    __tablename__ = "line_item_acceptances"

    __table_args__ = (
        UniqueConstraint("rfq_line_item_id", name="uq_acceptance_rfq_line"),
        Index("idx_acceptance_rfq", "rfq_id"),
    )

    rfq_id: Mapped[UUID] = mapped_column(ForeignKey("rfqs.id"), nullable=False)
    rfq_line_item_id: Mapped[UUID] = mapped_column(ForeignKey("rfq_line_items.id"), nullable=False)
    supplier_quote_line_id: Mapped[UUID] = mapped_column(
        ForeignKey("supplier_quote_lines.id"), nullable=False,
    )
    supplier_rfq_id: Mapped[UUID] = mapped_column(ForeignKey("supplier_rfqs.id"), nullable=False)
    accepted_at: Mapped[datetime]
    accepted_by_id: Mapped[UUID]

    def __repr__(self) -> str:
        return f"<LineItemAcceptanceModel {self.rfq_line_item_id} -> {self.supplier_quote_line_id}>"


# ---------------------------------------------------------------------------
# ClientQuoteModel
# ---------------------------------------------------------------------------


class ClientQuoteModel(VersionedBase):
    """
    One revision of a client quote.

    Maps to the ``ClientQuote`` DTO in ``procurement_modules.client_quote.models``.
    """

    __tablename__ = "client_quotes"

    __table_args__ = (
        UniqueConstraint("quote_number", "revision", name="uq_client_quote_revision"),
        Index("idx_client_quote_rfq", "rfq_id"),
        Index("idx_client_quote_status", "status"),
    )

    rfq_id: Mapped[UUID] = mapped_column(ForeignKey("rfqs.id"), nullable=False)
    quote_number: Mapped[str] = mapped_column(String(50), nullable=False)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    default_markup_percent: Mapped[Decimal]
    # False when default_markup_percent came from configuration.
    markup_explicit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    total_amount: Mapped[Decimal]
    amount_paid: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    client_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    supersedes_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("client_quotes.id"), nullable=True,
    )
    sent_at: Mapped[datetime | None]
    approved_at: Mapped[datetime | None]
    paid_at: Mapped[datetime | None]
    superseded_at: Mapped[datetime | None]
    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    revision_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    lines: Mapped[list["ClientQuoteLineModel"]] = relationship(
        "ClientQuoteLineModel",
        back_populates="client_quote",
        order_by="ClientQuoteLineModel.line_number",
    )

    def to_dto(self):
        from procurement_kernel.domain.clock import as_utc
        from procurement_modules.client_quote.models import ClientQuote, ClientQuoteStatus

        return ClientQuote(
            id=self.id,
            rfq_id=self.rfq_id,
            quote_number=self.quote_number,
            revision=self.revision,
            status=ClientQuoteStatus(self.status),
            currency=self.currency,
            default_markup_percent=self.default_markup_percent,
            markup_explicit=self.markup_explicit,
            total_amount=self.total_amount,
            amount_paid=self.amount_paid,
            version=self.version,
            client_name=self.client_name,
            notes=self.notes,
            supersedes_id=self.supersedes_id,
            sent_at=as_utc(self.sent_at),
            approved_at=as_utc(self.approved_at),
            paid_at=as_utc(self.paid_at),
            rejection_reason=self.rejection_reason,
            revision_notes=self.revision_notes,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<ClientQuoteModel {self.quote_number} r{self.revision} [{self.status}]>"


# ---------------------------------------------------------------------------
# ClientQuoteLineModel
# ---------------------------------------------------------------------------


class ClientQuoteLineModel(TrackedBase):
    """A priced client quote line, traceable to the accepted supplier quote line."""

    __tablename__ = "client_quote_lines"

    __table_args__ = (
        UniqueConstraint("client_quote_id", "line_number", name="uq_client_quote_line_number"),
    )

    client_quote_id: Mapped[UUID] = mapped_column(ForeignKey("client_quotes.id"), nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    rfq_line_item_id: Mapped[UUID] = mapped_column(ForeignKey("rfq_line_items.id"), nullable=False)
    supplier_quote_line_id: Mapped[UUID] = mapped_column(
        ForeignKey("supplier_quote_lines.id"), nullable=False,
    )
    supplier_rfq_id: Mapped[UUID] = mapped_column(ForeignKey("supplier_rfqs.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    quantity: Mapped[Decimal]
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="EA")
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    supplier_unit_cost: Mapped[Decimal]
    markup_percent: Mapped[Decimal]
    client_unit_price: Mapped[Decimal]
    line_total: Mapped[Decimal]
    cost_total: Mapped[Decimal]
    # [{"name", "quantity", "unit_cost", "unit_price", "total_price"}], amounts as strings
    components: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    client_quote: Mapped["ClientQuoteModel"] = relationship(
        "ClientQuoteModel", back_populates="lines",
    )

    def to_dto(self):
        from procurement_modules.client_quote.models import ClientQuoteLine, QuoteComponent

        return ClientQuoteLine(
            id=self.id,
            line_number=self.line_number,
            rfq_line_item_id=self.rfq_line_item_id,
            supplier_quote_line_id=self.supplier_quote_line_id,
            supplier_rfq_id=self.supplier_rfq_id,
            name=self.name,
            quantity=self.quantity,
            unit=self.unit,
            currency=self.currency,
            supplier_unit_cost=self.supplier_unit_cost,
            markup_percent=self.markup_percent,
            client_unit_price=self.client_unit_price,
            line_total=self.line_total,
            cost_total=self.cost_total,
            description=self.description,
            category=self.category,
            components=tuple(
                QuoteComponent(
                    name=c["name"],
                    quantity=Decimal(c["quantity"]),
                    unit_cost=Decimal(c["unit_cost"]),
                    unit_price=Decimal(c["unit_price"]),
                    total_price=Decimal(c["total_price"]),
                )
                for c in (self.components or ())
            ),
        )

    def __repr__(self) -> str:
        return f"<ClientQuoteLineModel {self.line_number}: {self.name} @ {self.client_unit_price}>"


# ---------------------------------------------------------------------------
# ClientPaymentModel
# ---------------------------------------------------------------------------


class ClientPaymentModel(TrackedBase):
    """A payment received from the client against one client quote revision."""

    __tablename__ = "client_payments"

    __table_args__ = (
        Index("idx_client_payment_quote", "client_quote_id"),
    )

    client_quote_id: Mapped[UUID] = mapped_column(ForeignKey("client_quotes.id"), nullable=False)
    amount: Mapped[Decimal]
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    received_at: Mapped[datetime]
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    method: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def to_dto(self):
        from procurement_kernel.domain.clock import as_utc
        from procurement_modules.client_quote.models import ClientPayment

        return ClientPayment(
            id=self.id,
            client_quote_id=self.client_quote_id,
            amount=self.amount,
            currency=self.currency,
            received_at=as_utc(self.received_at),
            reference=self.reference,
            method=self.method,
        )
