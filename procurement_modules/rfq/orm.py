"""
SQLAlchemy ORM persistence models for the RFQ module.

Responsibility
--------------
Persist RFQs, their requested line items, supplier invitations and the
supplier quotes (with their quoted lines) submitted against them.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``RFQService`` and, read-only,
by the client quote and purchase order services.  Inherits from
``TrackedBase`` / ``VersionedBase`` (kernel db layer).

Invariants enforced
-------------------
* All monetary fields use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* Enum fields stored as String(50) for readability and portability.
* ``RFQLineItemModel.quantity`` > 0 (check constraint).
* One ``SupplierRFQModel`` per (rfq, supplier); access token stored only
  as its SHA-256 digest.
* ``(supplier_rfq_id, revision)`` is unique on ``SupplierQuoteModel``;
  two racing resubmissions cannot both insert the same revision.
* Quotes are never deleted.  A resubmission inserts a new row and moves
  ``SupplierRFQModel.current_quote_id``; the prior row gets
  ``superseded_at``.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procurement_kernel.db.base import TrackedBase, VersionedBase

# ---------------------------------------------------------------------------
# RFQModel
# ---------------------------------------------------------------------------


class RFQModel(VersionedBase):
    """
    A request for quote.

    Maps to the ``RFQ`` DTO in ``procurement_modules.rfq.models``.
    """

    __tablename__ = "rfqs"

    __table_args__ = (
        UniqueConstraint("rfq_number", name="uq_rfq_number"),
        Index("idx_rfq_status", "status"),
        Index("idx_rfq_deadline", "response_deadline"),
    )

    rfq_number: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    project_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    response_deadline: Mapped[datetime]
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")
    sent_at: Mapped[datetime | None]
    expired_at: Mapped[datetime | None]
    cancelled_at: Mapped[datetime | None]
    cancellation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    reopen_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    lines: Mapped[list["RFQLineItemModel"]] = relationship(
        "RFQLineItemModel",
        back_populates="rfq",
        order_by="RFQLineItemModel.line_number",
    )
    supplier_rfqs: Mapped[list["SupplierRFQModel"]] = relationship(
        "SupplierRFQModel",
        back_populates="rfq",
        order_by="SupplierRFQModel.created_at",
    )

    def to_dto(self):
        from procurement_kernel.domain.clock import as_utc
        from procurement_modules.rfq.models import RFQ, RFQStatus

        return RFQ(
            id=self.id,
            rfq_number=self.rfq_number,
            title=self.title,
            status=RFQStatus(self.status),
            response_deadline=as_utc(self.response_deadline),
            version=self.version,
            description=self.description,
            project_reference=self.project_reference,
            sent_at=as_utc(self.sent_at),
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<RFQModel {self.rfq_number} [{self.status}]>"


# ---------------------------------------------------------------------------
# RFQLineItemModel
# ---------------------------------------------------------------------------


class RFQLineItemModel(TrackedBase):
    """A requested line item. Immutable once the RFQ is sent."""

    __tablename__ = "rfq_line_items"

    __table_args__ = (
        UniqueConstraint("rfq_id", "line_number", name="uq_rfq_line_number"),
        CheckConstraint("quantity > 0", name="ck_rfq_line_quantity_positive"),
        Index("idx_rfq_line_rfq", "rfq_id"),
    )

    rfq_id: Mapped[UUID] = mapped_column(ForeignKey("rfqs.id"), nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    quantity: Mapped[Decimal]
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="EA")
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    model_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    brand: Mapped[str | None] = mapped_column(String(100), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    rfq: Mapped["RFQModel"] = relationship("RFQModel", back_populates="lines")

    def to_dto(self):
        from procurement_modules.rfq.models import RFQLineItem

        return RFQLineItem(
            id=self.id,
            rfq_id=self.rfq_id,
            line_number=self.line_number,
            name=self.name,
            quantity=self.quantity,
            unit=self.unit,
            description=self.description,
            sku=self.sku,
            model_number=self.model_number,
            brand=self.brand,
            category=self.category,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return f"<RFQLineItemModel {self.line_number}: {self.name} x{self.quantity}>"


# ---------------------------------------------------------------------------
# SupplierRFQModel
# ---------------------------------------------------------------------------


class SupplierRFQModel(VersionedBase):
    """
    One supplier's invitation to one RFQ.

    ``current_quote_id`` points at the live ``SupplierQuoteModel`` and is
    only ever moved by compare-and-set on ``version``.  It carries no
    foreign key because the quote row references this one.
    """

    __tablename__ = "supplier_rfqs"

    __table_args__ = (
        UniqueConstraint("rfq_id", "supplier_id", name="uq_supplier_rfq_supplier"),
        UniqueConstraint("token_digest", name="uq_supplier_rfq_token"),
        Index("idx_supplier_rfq_rfq", "rfq_id"),
    )

    rfq_id: Mapped[UUID] = mapped_column(ForeignKey("rfqs.id"), nullable=False)
    supplier_id: Mapped[UUID]
    supplier_name: Mapped[str] = mapped_column(String(255), nullable=False)
    supplier_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    token_digest: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    viewed_at: Mapped[datetime | None]
    submitted_at: Mapped[datetime | None]
    declined_at: Mapped[datetime | None]
    decline_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    revision_allowed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    revision_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_quote_id: Mapped[UUID | None]

    rfq: Mapped["RFQModel"] = relationship("RFQModel", back_populates="supplier_rfqs")

    def to_dto(self):
        from procurement_kernel.domain.clock import as_utc
        from procurement_modules.rfq.models import SupplierResponseStatus, SupplierRFQ

        return SupplierRFQ(
            id=self.id,
            rfq_id=self.rfq_id,
            supplier_id=self.supplier_id,
            supplier_name=self.supplier_name,
            status=SupplierResponseStatus(self.status),
            version=self.version,
            supplier_email=self.supplier_email,
            viewed_at=as_utc(self.viewed_at),
            submitted_at=as_utc(self.submitted_at),
            declined_at=as_utc(self.declined_at),
            decline_reason=self.decline_reason,
            revision_allowed=self.revision_allowed,
            revision_count=self.revision_count,
            current_quote_id=self.current_quote_id,
        )

    def __repr__(self) -> str:
        return f"<SupplierRFQModel {self.supplier_name} [{self.status}]>"


# ---------------------------------------------------------------------------
# SupplierQuoteModel
# ---------------------------------------------------------------------------


class SupplierQuoteModel(TrackedBase):
    """One submitted revision of a supplier's quote. Never updated except ``superseded_at``."""

    __tablename__ = "supplier_quotes"

    __table_args__ = (
        UniqueConstraint("supplier_rfq_id", "revision", name="uq_supplier_quote_revision"),
        Index("idx_supplier_quote_supplier_rfq", "supplier_rfq_id"),
    )

    supplier_rfq_id: Mapped[UUID] = mapped_column(ForeignKey("supplier_rfqs.id"), nullable=False)
    revision: Mapped[int] = mapped_column(Integer, nullable=False)
    quote_number: Mapped[str] = mapped_column(String(100), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    submission_method: Mapped[str] = mapped_column(String(50), nullable=False)
    document_ref: Mapped[str | None] = mapped_column(String(500), nullable=True)
    delivery_fee: Mapped[Decimal | None]
    tax_amount: Mapped[Decimal | None]
    declared_total: Mapped[Decimal | None]
    subtotal: Mapped[Decimal]
    total_amount: Mapped[Decimal]
    valid_until: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_terms: Mapped[str | None] = mapped_column(String(255), nullable=True)
    supplier_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    manual_entry_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    discrepancies: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    submitted_at: Mapped[datetime]
    superseded_at: Mapped[datetime | None]

    lines: Mapped[list["SupplierQuoteLineModel"]] = relationship(
        "SupplierQuoteLineModel",
        back_populates="quote",
        order_by="SupplierQuoteLineModel.line_number",
    )

    def to_dto(self):
        from procurement_kernel.domain.clock import as_utc
        from procurement_modules.rfq.models import SubmissionMethod, SupplierQuote

        return SupplierQuote(
            id=self.id,
            supplier_rfq_id=self.supplier_rfq_id,
            revision=self.revision,
            quote_number=self.quote_number,
            currency=self.currency,
            submission_method=SubmissionMethod(self.submission_method),
            subtotal=self.subtotal,
            total_amount=self.total_amount,
            submitted_at=as_utc(self.submitted_at),
            is_current=self.superseded_at is None,
            document_ref=self.document_ref,
            delivery_fee=self.delivery_fee,
            tax_amount=self.tax_amount,
            declared_total=self.declared_total,
            valid_until=self.valid_until,
            payment_terms=self.payment_terms,
            supplier_notes=self.supplier_notes,
            manual_entry_required=self.manual_entry_required,
            discrepancies=tuple(self.discrepancies or ()),
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<SupplierQuoteModel {self.quote_number} r{self.revision}>"


# ---------------------------------------------------------------------------
# SupplierQuoteLineModel
# ---------------------------------------------------------------------------


class SupplierQuoteLineModel(TrackedBase):
    """
    A quoted line.

    Linked to at most one requested line item; unlinked lines are extras.
    """

    __tablename__ = "supplier_quote_lines"

    __table_args__ = (
        UniqueConstraint("quote_id", "line_number", name="uq_supplier_quote_line_number"),
        Index("idx_supplier_quote_line_rfq_line", "rfq_line_item_id"),
    )

    quote_id: Mapped[UUID] = mapped_column(ForeignKey("supplier_quotes.id"), nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    rfq_line_item_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("rfq_line_items.id"), nullable=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    brand: Mapped[str | None] = mapped_column(String(100), nullable=True)
    unit_price: Mapped[Decimal | None]
    quantity: Mapped[Decimal | None]
    line_total: Mapped[Decimal | None]
    lead_time: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    classification: Mapped[str] = mapped_column(String(20), nullable=False)
    confidence: Mapped[Decimal | None]
    discrepancies: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    quote: Mapped["SupplierQuoteModel"] = relationship("SupplierQuoteModel", back_populates="lines")

    def to_dto(self):
        from procurement_engines.reconciliation import MatchClassification
        from procurement_modules.rfq.models import SupplierQuoteLine

        return SupplierQuoteLine(
            id=self.id,
            line_number=self.line_number,
            name=self.name,
            classification=MatchClassification(self.classification),
            rfq_line_item_id=self.rfq_line_item_id,
            sku=self.sku,
            brand=self.brand,
            unit_price=self.unit_price,
            quantity=self.quantity,
            line_total=self.line_total,
            lead_time=self.lead_time,
            notes=self.notes,
            confidence=self.confidence,
            discrepancies=tuple(self.discrepancies or ()),
        )

    def __repr__(self) -> str:
        return f"<SupplierQuoteLineModel {self.line_number}: {self.name} @ {self.unit_price}>"
