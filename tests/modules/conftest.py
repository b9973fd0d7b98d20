"""
Shared fixtures for module tests.

Provides the module services wired to the test session, clock and
configuration, plus ``flow``: a driver that walks an RFQ through the
sourcing steps so each test starts at the stage it is about.

DESIGN RULE: Every fixture is opt-in.  No autouse.  Each test declares
the stage it starts from in its function signature.
"""

from decimal import Decimal
from uuid import UUID

import pytest

from procurement_modules.client_quote.models import ClientQuote
from procurement_modules.client_quote.service import ClientQuoteService, QuoteAcceptanceService
from procurement_modules.purchase_order.service import PurchaseOrderService
from procurement_modules.rfq.models import (
    RFQ,
    ManualQuoteLine,
    QuoteTerms,
    RFQLineItemInput,
    SubmissionResult,
)
from procurement_modules.rfq.service import RFQService

# ---------------------------------------------------------------------------
# Deterministic supplier IDs
# ---------------------------------------------------------------------------

ATELIER_NORD_ID = UUID("00000000-0000-4000-b000-000000000001")
BEXLEY_SUPPLY_ID = UUID("00000000-0000-4000-b000-000000000002")
CASTELLO_ID = UUID("00000000-0000-4000-b000-000000000003")

SUPPLIER_IDS = {
    "Atelier Nord": ATELIER_NORD_ID,
    "Bexley Supply": BEXLEY_SUPPLY_ID,
    "Castello": CASTELLO_ID,
}

DEFAULT_LINES = (
    RFQLineItemInput(name="Sofa", quantity=Decimal("2"), sku="ABC-1", category="Furniture"),
    RFQLineItemInput(name="Pendant Lamp", quantity=Decimal("3"), category="Lighting"),
)


class ProcurementFlow:
    """Drives the services through the workflow for test setup."""

    def __init__(self, session, config, clock, actor_id):
        self.session = session
        self.clock = clock
        self.actor_id = actor_id
        self.rfqs = RFQService(session, config, clock)
        self.acceptance = QuoteAcceptanceService(session, clock)
        self.client_quotes = ClientQuoteService(session, config, clock)
        self.orders = PurchaseOrderService(session, config, clock)
        self.rfq: RFQ | None = None
        self.tokens: dict[str, str] = {}
        self.supplier_rfq_ids: dict[str, UUID] = {}

    # -- sourcing -------------------------------------------------------------

    def draft(self, lines=DEFAULT_LINES, suppliers=("Atelier Nord", "Bexley Supply")) -> RFQ:
        self.rfq = self.rfqs.create_rfq(
            title="Lobby refresh",
            actor_id=self.actor_id,
            lines=lines,
            project_reference="PRJ-118",
        )
        for name in suppliers:
            invitation = self.rfqs.invite_supplier(
                self.rfq.id,
                supplier_id=SUPPLIER_IDS[name],
                supplier_name=name,
                actor_id=self.actor_id,
                supplier_email=f"quotes@{name.split()[0].lower()}.example",
            )
            self.tokens[name] = invitation.access_token
            self.supplier_rfq_ids[name] = invitation.supplier_rfq.id
        return self.rfq

    def send(self, lines=DEFAULT_LINES, suppliers=("Atelier Nord", "Bexley Supply")) -> RFQ:
        self.draft(lines, suppliers)
        self.rfq = self.rfqs.send_rfq(self.rfq.id, actor_id=self.actor_id)
        return self.rfq

    def line_id(self, name: str) -> UUID:
        return next(line.id for line in self.rfq.lines if line.name == name)

    def quote(
        self,
        supplier: str,
        prices: dict[str, Decimal],
        *,
        currency: str = "CAD",
        quantities: dict[str, Decimal] | None = None,
        **terms,
    ) -> SubmissionResult:
        quantities = quantities or {}
        lines = [
            ManualQuoteLine(
                rfq_line_item_id=self.line_id(name),
                unit_price=price,
                quantity=quantities.get(name),
                lead_time="6 weeks",
            )
            for name, price in prices.items()
        ]
        return self.rfqs.submit_manual_quote(
            self.tokens[supplier],
            lines=lines,
            terms=QuoteTerms(currency=currency, **terms),
        )

    def quote_default(self) -> None:
        """Atelier is cheaper on the sofa, Bexley on the lamp."""
        self.quote(
            "Atelier Nord",
            {"Sofa": Decimal("1000.00"), "Pendant Lamp": Decimal("200.00")},
            delivery_fee=Decimal("150.00"),
        )
        self.quote(
            "Bexley Supply",
            {"Sofa": Decimal("1100.00"), "Pendant Lamp": Decimal("180.00")},
        )

    def accept_lowest_and_finalize(self) -> RFQ:
        self.acceptance.accept_lowest_cost(self.rfq.id, actor_id=self.actor_id)
        self.rfq = self.acceptance.finalize_acceptance(self.rfq.id, actor_id=self.actor_id)
        return self.rfq

    # -- client side ----------------------------------------------------------

    def approved_client_quote(self, markup: Decimal = Decimal("25")) -> ClientQuote:
        quote = self.client_quotes.build_client_quote(
            self.rfq.id,
            actor_id=self.actor_id,
            default_markup_percent=markup,
            client_name="Harbourview Hotel",
        )
        self.client_quotes.send_to_client(quote.id, actor_id=self.actor_id)
        self.client_quotes.mark_client_reviewing(quote.id, actor_id=self.actor_id)
        return self.client_quotes.approve(quote.id, actor_id=self.actor_id)

    def paid_client_quote(self, markup: Decimal = Decimal("25")) -> ClientQuote:
        quote = self.approved_client_quote(markup)
        return self.client_quotes.record_payment(
            quote.id,
            amount=quote.total_amount,
            currency=quote.currency,
            actor_id=self.actor_id,
            reference="WIRE-2211",
        )


@pytest.fixture
def flow(session, config, deterministic_clock, test_actor_id) -> ProcurementFlow:
    return ProcurementFlow(session, config, deterministic_clock, test_actor_id)


@pytest.fixture
def rfq_service(flow) -> RFQService:
    return flow.rfqs


@pytest.fixture
def acceptance_service(flow) -> QuoteAcceptanceService:
    return flow.acceptance


@pytest.fixture
def client_quote_service(flow) -> ClientQuoteService:
    return flow.client_quotes


@pytest.fixture
def purchase_order_service(flow) -> PurchaseOrderService:
    return flow.orders
