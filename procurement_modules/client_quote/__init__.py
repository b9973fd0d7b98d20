"""
Client Quote Module (``procurement_modules.client_quote``).

Responsibility
--------------
Acceptance of one supplier option per requested line, the marked-up
client quote built from those acceptances, its revisions, client
payments and profit reporting.

Architecture position
---------------------
**Modules layer** -- prices through ``procurement_engines.pricing``;
reads supplier options from ``procurement_modules.rfq``.

Invariants enforced
-------------------
* One accepted option per requested line; changes are compare-and-set.
* Built quotes are snapshots; a rebuild is a new revision.
* One currency per client quote.
"""

from procurement_modules.client_quote.models import (
    ClientPayment,
    ClientQuote,
    ClientQuoteLine,
    ClientQuoteStatus,
    ClientView,
    ClientViewLine,
    LineItemAcceptance,
    QuoteComponent,
)
from procurement_modules.client_quote.service import ClientQuoteService, QuoteAcceptanceService
from procurement_modules.client_quote.workflows import CLIENT_QUOTE_WORKFLOW

__all__ = [
    "ClientPayment",
    "ClientQuote",
    "ClientQuoteLine",
    "ClientQuoteStatus",
    "ClientView",
    "ClientViewLine",
    "LineItemAcceptance",
    "QuoteComponent",
    "ClientQuoteService",
    "QuoteAcceptanceService",
    "CLIENT_QUOTE_WORKFLOW",
]
