"""
Procurement Modules.

Orchestration over the Procurement Kernel and Engines.  Each module
contains:
- Domain models (the nouns, as frozen DTOs)
- Workflows (state machines)
- ORM models
- A service owning the transaction boundary

Modules:
- RFQ: requests for quote, supplier invitations, supplier quotes and
  their reconciliation against the requested line items
- Client Quote: line item acceptance, marked-up client quotes, payments
- Purchase Order: supplier orders at cost and delivery tracking

Pricing and matching logic lives in the engines.
"""

from procurement_modules import client_quote, purchase_order, rfq

__all__ = ["rfq", "client_quote", "purchase_order"]
