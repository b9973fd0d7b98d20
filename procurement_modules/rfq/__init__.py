"""
RFQ Module (``procurement_modules.rfq``).

Responsibility
--------------
Requests for quote and the supplier side of sourcing: invitations with
opaque access tokens, views and declines, document or manual quote
submission, reconciliation of quoted items against requested ones,
revisions and deadline expiry.

Architecture position
---------------------
**Modules layer** -- ``RFQService`` delegates matching to
``procurement_engines.reconciliation`` and numbering/audit to the kernel
services.

Invariants enforced
-------------------
* Every status change follows ``RFQ_WORKFLOW`` or
  ``SUPPLIER_RESPONSE_WORKFLOW`` and is applied by compare-and-set.
* A resubmission replaces the current supplier quote in one conditional
  update; prior quotes are kept.

Audit relevance
---------------
Supplier views, declines, submissions and reconciliations are recorded
as activities on the supplier RFQ.
"""

from procurement_modules.rfq.models import (
    RFQ,
    LineItemOptions,
    ManualQuoteLine,
    QuoteOption,
    QuoteTerms,
    RevisionDraft,
    RFQLineItem,
    RFQLineItemInput,
    RFQStatus,
    SubmissionMethod,
    SubmissionResult,
    SupplierAccess,
    SupplierAction,
    SupplierInvitation,
    SupplierQuote,
    SupplierQuoteLine,
    SupplierResponseStatus,
    SupplierRFQ,
)
from procurement_modules.rfq.service import RFQService
from procurement_modules.rfq.workflows import RFQ_WORKFLOW, SUPPLIER_RESPONSE_WORKFLOW

__all__ = [
    "RFQ",
    "LineItemOptions",
    "ManualQuoteLine",
    "QuoteOption",
    "QuoteTerms",
    "RevisionDraft",
    "RFQLineItem",
    "RFQLineItemInput",
    "RFQStatus",
    "SubmissionMethod",
    "SubmissionResult",
    "SupplierAccess",
    "SupplierAction",
    "SupplierInvitation",
    "SupplierQuote",
    "SupplierQuoteLine",
    "SupplierResponseStatus",
    "SupplierRFQ",
    "RFQService",
    "RFQ_WORKFLOW",
    "SUPPLIER_RESPONSE_WORKFLOW",
]
