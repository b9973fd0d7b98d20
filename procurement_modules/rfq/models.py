"""
RFQ Domain Models.

The nouns of sourcing: requests for quote, the suppliers invited to answer
them, and the quotes they send back.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from procurement_engines.reconciliation import MatchClassification, ReconciliationResult


class RFQStatus(str, Enum):
    """RFQ lifecycle states."""
    DRAFT = "draft"
    SENT = "sent"
    PARTIALLY_QUOTED = "partially_quoted"
    FULLY_QUOTED = "fully_quoted"
    QUOTE_ACCEPTED = "quote_accepted"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class SupplierResponseStatus(str, Enum):
    """Per-supplier response states."""
    PENDING = "pending"
    VIEWED = "viewed"
    SUBMITTED = "submitted"
    DECLINED = "declined"


class SubmissionMethod(str, Enum):
    DOCUMENT = "document"
    MANUAL = "manual"


class SupplierAction(str, Enum):
    """Actions recorded in the supplier access log."""
    VIEW = "view"
    DECLINE = "decline"
    SUBMIT_QUOTE = "submit_quote"
    RECONCILE = "reconcile"


# -----------------------------------------------------------------------------
# Inputs
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class RFQLineItemInput:
    """A line item to request."""
    name: str
    quantity: Decimal
    unit: str = "EA"
    description: str = ""
    sku: str | None = None
    model_number: str | None = None
    brand: str | None = None
    category: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class QuoteTerms:
    """
    Commercial terms common to both submission forms.

    ``declared_total`` is the supplier's stated grand total (goods plus
    delivery plus tax), when they state one.
    """
    currency: str
    delivery_fee: Decimal | None = None
    tax_amount: Decimal | None = None
    declared_total: Decimal | None = None
    quote_number: str | None = None
    valid_until: date | None = None
    payment_terms: str | None = None
    supplier_notes: str | None = None


@dataclass(frozen=True)
class ManualQuoteLine:
    """One manually entered price, answering one requested line item."""
    rfq_line_item_id: UUID
    unit_price: Decimal
    quantity: Decimal | None = None
    lead_time: str | None = None
    notes: str | None = None


# -----------------------------------------------------------------------------
# Read models
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class RFQLineItem:
    id: UUID
    rfq_id: UUID
    line_number: int
    name: str
    quantity: Decimal
    unit: str = "EA"
    description: str = ""
    sku: str | None = None
    model_number: str | None = None
    brand: str | None = None
    category: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class RFQ:
    """A request for quote."""
    id: UUID
    rfq_number: str
    title: str
    status: RFQStatus
    response_deadline: datetime
    version: int
    description: str = ""
    project_reference: str | None = None
    sent_at: datetime | None = None
    lines: tuple[RFQLineItem, ...] = ()


@dataclass(frozen=True)
class SupplierRFQ:
    """One supplier's invitation to an RFQ and the state of its response."""
    id: UUID
    rfq_id: UUID
    supplier_id: UUID
    supplier_name: str
    status: SupplierResponseStatus
    version: int
    supplier_email: str | None = None
    viewed_at: datetime | None = None
    submitted_at: datetime | None = None
    declined_at: datetime | None = None
    decline_reason: str | None = None
    revision_allowed: bool = False
    revision_count: int = 0
    current_quote_id: UUID | None = None


@dataclass(frozen=True)
class SupplierInvitation:
    """
    Result of inviting a supplier.

    ``access_token`` is returned here and nowhere else; only its digest is
    stored.
    """
    supplier_rfq: SupplierRFQ
    access_token: str


@dataclass(frozen=True)
class SupplierAccess:
    """What the holder of a valid access token may currently do."""
    supplier_rfq_id: UUID
    rfq_id: UUID
    can_view: bool
    can_submit: bool
    expired: bool
    status: SupplierResponseStatus


@dataclass(frozen=True)
class SupplierQuoteLine:
    id: UUID
    line_number: int
    name: str
    classification: MatchClassification
    rfq_line_item_id: UUID | None = None
    sku: str | None = None
    brand: str | None = None
    unit_price: Decimal | None = None
    quantity: Decimal | None = None
    line_total: Decimal | None = None
    lead_time: str | None = None
    notes: str | None = None
    confidence: Decimal | None = None
    discrepancies: tuple[str, ...] = ()


@dataclass(frozen=True)
class SupplierQuote:
    """A supplier's quote. Superseded revisions are kept with ``is_current`` False."""
    id: UUID
    supplier_rfq_id: UUID
    revision: int
    quote_number: str
    currency: str
    submission_method: SubmissionMethod
    subtotal: Decimal
    total_amount: Decimal
    submitted_at: datetime
    is_current: bool
    document_ref: str | None = None
    delivery_fee: Decimal | None = None
    tax_amount: Decimal | None = None
    declared_total: Decimal | None = None
    valid_until: date | None = None
    payment_terms: str | None = None
    supplier_notes: str | None = None
    manual_entry_required: bool = False
    discrepancies: tuple[str, ...] = ()
    lines: tuple[SupplierQuoteLine, ...] = ()


@dataclass(frozen=True)
class SubmissionResult:
    quote: SupplierQuote
    reconciliation: ReconciliationResult
    rfq_status: RFQStatus


@dataclass(frozen=True)
class RevisionDraftLine:
    rfq_line_item_id: UUID
    lead_time: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class RevisionDraft:
    """
    Pre-fill for a revised quote.

    Carries forward what the supplier wrote (lead times, notes, terms) but
    never prices; a revision must restate every price.
    """
    supplier_rfq_id: UUID
    currency: str
    lines: tuple[RevisionDraftLine, ...] = ()
    payment_terms: str | None = None
    supplier_notes: str | None = None


@dataclass(frozen=True)
class QuoteOption:
    """One supplier's priced answer to one requested line item."""
    rfq_line_item_id: UUID
    supplier_rfq_id: UUID
    supplier_name: str
    supplier_quote_id: UUID
    supplier_quote_line_id: UUID
    currency: str
    unit_price: Decimal
    classification: MatchClassification
    quantity: Decimal | None = None
    lead_time: str | None = None


@dataclass(frozen=True)
class LineItemOptions:
    """Every priced option for one requested line, cheapest first."""
    line_item: RFQLineItem
    options: tuple[QuoteOption, ...] = ()
