"""
Procurement Engines - pure calculation layer.

- pricing: supplier cost to client price, per-currency totals, profit
- reconciliation: requested vs. quoted line item matching
- similarity: product name similarity (token overlap + edit distance)
- tracer: @traced_engine, one PROCUREMENT_ENGINE_TRACE log line per call

Engines do no I/O and hold no state; they are safe to call concurrently.
"""

from procurement_engines.pricing import (
    PriceComponent,
    PricedLine,
    PricingLine,
    ProfitSummary,
    aggregate_by_currency,
    client_price,
    price_line,
    price_lines,
    profit_summary,
    resolve_markup,
    sum_single_currency,
)
from procurement_engines.reconciliation import (
    CandidateItem,
    LineMatch,
    MatchClassification,
    MatchMethod,
    ReconciliationEngine,
    ReconciliationResult,
    ReconciliationSettings,
    RequestedItem,
)

__all__ = [
    "PriceComponent",
    "PricedLine",
    "PricingLine",
    "ProfitSummary",
    "aggregate_by_currency",
    "client_price",
    "price_line",
    "price_lines",
    "profit_summary",
    "resolve_markup",
    "sum_single_currency",
    "CandidateItem",
    "LineMatch",
    "MatchClassification",
    "MatchMethod",
    "ReconciliationEngine",
    "ReconciliationResult",
    "ReconciliationSettings",
    "RequestedItem",
]
