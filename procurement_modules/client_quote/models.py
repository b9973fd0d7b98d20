"""
Client Quote Domain Models.

Accepted supplier terms per requested line, and the marked-up quote the
client sees, pays and approves.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class ClientQuoteStatus(str, Enum):
    """Client quote lifecycle states."""
    DRAFT = "draft"
    SENT_TO_CLIENT = "sent_to_client"
    CLIENT_REVIEWING = "client_reviewing"
    APPROVED = "approved"
    REVISION_REQUESTED = "revision_requested"
    REJECTED = "rejected"
    PAID = "paid"
    SUPERSEDED = "superseded"


@dataclass(frozen=True)
class LineItemAcceptance:
    """The one accepted supplier option for a requested line item."""
    id: UUID
    rfq_id: UUID
    rfq_line_item_id: UUID
    supplier_quote_line_id: UUID
    supplier_rfq_id: UUID
    currency: str
    unit_cost: Decimal
    accepted_at: datetime
    version: int


@dataclass(frozen=True)
class QuoteComponent:
    """A priced sub-item on a client quote line."""
    name: str
    quantity: Decimal
    unit_cost: Decimal
    unit_price: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class ClientQuoteLine:
    """
    Internal view of a client quote line.

    ``supplier_unit_cost`` and ``cost_total`` never leave the studio; the
    client-facing projection is ``ClientViewLine``.
    """
    id: UUID
    line_number: int
    rfq_line_item_id: UUID
    supplier_quote_line_id: UUID
    supplier_rfq_id: UUID
    name: str
    quantity: Decimal
    unit: str
    currency: str
    supplier_unit_cost: Decimal
    markup_percent: Decimal
    client_unit_price: Decimal
    line_total: Decimal
    cost_total: Decimal
    description: str = ""
    category: str | None = None
    components: tuple[QuoteComponent, ...] = ()


@dataclass(frozen=True)
class ClientQuote:
    id: UUID
    rfq_id: UUID
    quote_number: str
    revision: int
    status: ClientQuoteStatus
    currency: str
    default_markup_percent: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    version: int
    client_name: str | None = None
    notes: str | None = None
    supersedes_id: UUID | None = None
    sent_at: datetime | None = None
    approved_at: datetime | None = None
    paid_at: datetime | None = None
    rejection_reason: str | None = None
    revision_notes: str | None = None
    markup_explicit: bool = False
    lines: tuple[ClientQuoteLine, ...] = ()

    @property
    def balance_due(self) -> Decimal:
        return self.total_amount - self.amount_paid

    @property
    def label(self) -> str:
        return f"{self.quote_number} rev {self.revision}"


@dataclass(frozen=True)
class ClientPayment:
    id: UUID
    client_quote_id: UUID
    amount: Decimal
    currency: str
    received_at: datetime
    reference: str | None = None
    method: str | None = None


@dataclass(frozen=True)
class ClientViewComponent:
    name: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class ClientViewLine:
    name: str
    description: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    line_total: Decimal
    components: tuple[ClientViewComponent, ...] = ()


@dataclass(frozen=True)
class ClientView:
    """What the client is shown. Carries no supplier cost or markup."""
    quote_number: str
    revision: int
    status: ClientQuoteStatus
    currency: str
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    lines: tuple[ClientViewLine, ...] = ()
    client_name: str | None = None
    notes: str | None = None
