"""
procurement_engines.reconciliation -- Requested vs. quoted line item matching.

Responsibility:
    Match a supplier's candidate line items (extracted from an uploaded
    quote document or entered by hand) against the requested RFQ line
    items, classify every outcome (matched / partial / missing / extra),
    attach human-readable discrepancies, suggest likely targets for extra
    items and compare the calculated total with the supplier's declared
    total.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports procurement_engines.similarity (thefuzz) and kernel values only.

Algorithm:
    1. Exact-key pass.  A candidate whose SKU/model number equals a
       requested item's SKU or model number (case-insensitive, trimmed) is
       paired with it.  A candidate that explicitly references a requested
       item (manual entry) is paired the same way.  Exact pairs are final.
    2. Fuzzy-name pass over whatever is left: every (requested, candidate)
       pair is scored by ``similarity.name_similarity`` plus a small brand
       bonus; pairs at or above the threshold are committed greedily in
       descending score order (ties broken by requested then candidate
       position).  Once either side is paired it leaves consideration.
    3. Unpaired requested items are ``missing``; unpaired candidates are
       ``extra``.
    4. A pair is ``matched`` when a unit price is present and the quoted
       quantity equals the requested quantity or is not stated; otherwise
       it is ``partial``.

Invariants enforced:
    - Deterministic: identical inputs yield identical classifications and
      confidence scores.  No clock access, no randomness.
    - Exact-key pairs always carry confidence 1 and are never revisited.
    - Never raises on an empty candidate list: every requested item comes
      back missing and ``manual_entry_required`` is set.

Usage:
    engine = ReconciliationEngine(ReconciliationSettings())
    result = engine.reconcile(requested=[...], candidates=[...])
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from procurement_engines.similarity import (
    ONE,
    ZERO,
    name_similarity,
    normalize_key,
    normalize_name,
    quantize_score,
)
from procurement_engines.tracer import traced_engine
from procurement_kernel.domain.values import round2
from procurement_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation")


class MatchClassification(str, Enum):
    """Outcome of reconciling one requested or candidate item."""

    MATCHED = "matched"
    PARTIAL = "partial"
    MISSING = "missing"
    EXTRA = "extra"


class MatchMethod(str, Enum):
    """Which pass produced a pair."""

    EXACT_KEY = "exact_key"
    FUZZY_NAME = "fuzzy_name"


@dataclass(frozen=True)
class ReconciliationSettings:
    """
    Tunable matching parameters.

    Immutable; built from configuration by the caller.
    A fuzzy pair qualifies when its score is at or above ``fuzzy_threshold``.
    """

    fuzzy_threshold: Decimal = Decimal("0.45")
    token_weight: Decimal = Decimal("0.5")
    edit_weight: Decimal = Decimal("0.5")
    brand_bonus: Decimal = Decimal("0.1")
    suggestion_limit: int = 3
    total_tolerance: Decimal = Decimal("1.00")


@dataclass(frozen=True)
class RequestedItem:
    """A requested RFQ line item as seen by the engine."""

    key: str
    name: str
    quantity: Decimal
    sku: str | None = None
    model_number: str | None = None
    brand: str | None = None


@dataclass(frozen=True)
class CandidateItem:
    """
    A best-effort quoted item.

    Every field except ``name`` may be missing.  ``requested_key`` is set
    only when the supplier explicitly chose which requested item this
    entry answers (manual entry form).
    """

    name: str = ""
    sku: str | None = None
    unit_price: Decimal | None = None
    quantity: Decimal | None = None
    line_total: Decimal | None = None
    brand: str | None = None
    lead_time: str | None = None
    notes: str | None = None
    requested_key: str | None = None

    @property
    def calculated_total(self) -> Decimal | None:
        """Stated line total, else unit price x quantity (quantity defaults to 1)."""
        return self.total_for(ONE)

    def total_for(self, default_quantity: Decimal) -> Decimal | None:
        """Stated line total, else unit price x quantity, else x ``default_quantity``."""
        if self.line_total is not None:
            return self.line_total
        if self.unit_price is None:
            return None
        quantity = self.quantity if self.quantity is not None else default_quantity
        return round2(self.unit_price * quantity)


@dataclass(frozen=True)
class Suggestion:
    """A possible target for an extra item."""

    requested_key: str
    requested_name: str
    score: Decimal


@dataclass(frozen=True)
class LineMatch:
    """Outcome for one requested item."""

    requested: RequestedItem
    classification: MatchClassification
    confidence: Decimal
    candidate: CandidateItem | None = None
    candidate_index: int | None = None
    method: MatchMethod | None = None
    discrepancies: tuple[str, ...] = ()

    @property
    def is_paired(self) -> bool:
        return self.candidate is not None


@dataclass(frozen=True)
class ExtraItem:
    """A quoted item that answers no requested item."""

    candidate: CandidateItem
    candidate_index: int
    suggestions: tuple[Suggestion, ...] = ()
    classification: MatchClassification = MatchClassification.EXTRA


@dataclass(frozen=True)
class ReconciliationSummary:
    total_requested: int
    total_quoted: int
    matched: int
    partial: int
    missing: int
    extra: int
    quantity_discrepancies: int
    calculated_total: Decimal | None = None
    declared_total: Decimal | None = None
    total_difference: Decimal | None = None
    total_discrepancy: bool = False


@dataclass(frozen=True)
class ReconciliationResult:
    """
    Full reconciliation output.

    ``lines`` follows the order of the requested items.
    """

    lines: tuple[LineMatch, ...]
    extras: tuple[ExtraItem, ...]
    summary: ReconciliationSummary
    manual_entry_required: bool = False
    discrepancy_messages: tuple[str, ...] = field(default=())

    def line_for(self, requested_key: str) -> LineMatch | None:
        for line in self.lines:
            if line.requested.key == requested_key:
                return line
        return None

    def by_classification(self, classification: MatchClassification) -> tuple[LineMatch, ...]:
        return tuple(line for line in self.lines if line.classification == classification)


def _fmt(value: Decimal) -> str:
    """Render quantities without trailing zeros (2, not 2.000000000)."""
    normalized = value.normalize()
    return format(normalized, "f")


def _brands_agree(a: str | None, b: str | None) -> bool:
    norm_a = normalize_name(a)
    norm_b = normalize_name(b)
    if not norm_a or not norm_b:
        return False
    return norm_a in norm_b or norm_b in norm_a


class ReconciliationEngine:
    """
    Deterministic requested/quoted matcher.

    Contract:
        Pure functions -- no I/O, no database access.  Never mutates its
        inputs; callers persist outcomes.
    Non-goals:
        - Does not extract candidates from documents.
        - Does not find a globally optimal assignment; greedy by score.
    """

    def __init__(self, settings: ReconciliationSettings | None = None) -> None:
        self._settings = settings or ReconciliationSettings()

    @property
    def settings(self) -> ReconciliationSettings:
        return self._settings

    def score(self, requested: RequestedItem, candidate: CandidateItem) -> Decimal:
        """Fuzzy score of one pair, brand bonus included, capped at 1."""
        s = self._settings
        base = name_similarity(
            requested.name,
            candidate.name,
            token_weight=s.token_weight,
            edit_weight=s.edit_weight,
        )
        if base > ZERO and _brands_agree(requested.brand, candidate.brand):
            base = min(ONE, base + s.brand_bonus)
        return quantize_score(base)

    @traced_engine(
        "reconciliation", "1.0",
        fingerprint_fields=("requested", "candidates", "declared_total"),
    )
    def reconcile(
        self,
        requested: Sequence[RequestedItem],
        candidates: Sequence[CandidateItem],
        declared_total: Decimal | None = None,
    ) -> ReconciliationResult:
        """
        Reconcile quoted candidates against requested items.

        Args:
            requested: Requested items in RFQ order.
            candidates: Quoted items in document/form order; may be empty.
            declared_total: Supplier's stated total for the goods (excluding
                delivery and tax), compared against the calculated total.

        Returns:
            ReconciliationResult; never raises for empty candidates.
        """
        t0 = time.monotonic()
        logger.info("reconciliation_started", extra={
            "requested_count": len(requested),
            "candidate_count": len(candidates),
        })

        if not candidates:
            result = self._all_missing(requested, declared_total)
            logger.warning("reconciliation_manual_entry_required", extra={
                "requested_count": len(requested),
            })
            return result

        # requested index -> (candidate index, method, confidence)
        pairs: dict[int, tuple[int, MatchMethod, Decimal]] = {}
        paired_candidates: set[int] = set()

        self._exact_key_pass(requested, candidates, pairs, paired_candidates)
        self._fuzzy_name_pass(requested, candidates, pairs, paired_candidates)

        lines = tuple(
            self._build_line(i, item, candidates, pairs.get(i))
            for i, item in enumerate(requested)
        )
        unpaired_requested = [
            item for i, item in enumerate(requested) if i not in pairs
        ]
        extras = tuple(
            ExtraItem(
                candidate=cand,
                candidate_index=j,
                suggestions=self._suggest(cand, unpaired_requested),
            )
            for j, cand in enumerate(candidates)
            if j not in paired_candidates
        )

        summary = self._summarize(requested, candidates, lines, extras, declared_total)
        messages = [d for line in lines for d in line.discrepancies]
        if summary.total_discrepancy:
            messages.append(
                f"Total: declared {summary.declared_total}, "
                f"calculated {summary.calculated_total}"
            )

        result = ReconciliationResult(
            lines=lines,
            extras=extras,
            summary=summary,
            manual_entry_required=False,
            discrepancy_messages=tuple(messages),
        )

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info("reconciliation_completed", extra={
            "matched": summary.matched,
            "partial": summary.partial,
            "missing": summary.missing,
            "extra": summary.extra,
            "total_discrepancy": summary.total_discrepancy,
            "duration_ms": duration_ms,
        })
        return result

    # -----------------------------------------------------------------
    # Passes
    # -----------------------------------------------------------------

    def _exact_key_pass(
        self,
        requested: Sequence[RequestedItem],
        candidates: Sequence[CandidateItem],
        pairs: dict[int, tuple[int, MatchMethod, Decimal]],
        paired_candidates: set[int],
    ) -> None:
        for j, cand in enumerate(candidates):
            target = self._exact_target(cand, requested, pairs)
            if target is not None:
                pairs[target] = (j, MatchMethod.EXACT_KEY, quantize_score(ONE))
                paired_candidates.add(j)

    @staticmethod
    def _exact_target(
        cand: CandidateItem,
        requested: Sequence[RequestedItem],
        pairs: dict[int, tuple[int, MatchMethod, Decimal]],
    ) -> int | None:
        if cand.requested_key is not None:
            for i, item in enumerate(requested):
                if i not in pairs and item.key == cand.requested_key:
                    return i
        key = normalize_key(cand.sku)
        if not key:
            return None
        for i, item in enumerate(requested):
            if i in pairs:
                continue
            if key in (normalize_key(item.sku), normalize_key(item.model_number)):
                return i
        return None

    def _fuzzy_name_pass(
        self,
        requested: Sequence[RequestedItem],
        candidates: Sequence[CandidateItem],
        pairs: dict[int, tuple[int, MatchMethod, Decimal]],
        paired_candidates: set[int],
    ) -> None:
        threshold = self._settings.fuzzy_threshold
        scored: list[tuple[Decimal, int, int]] = []
        for i, item in enumerate(requested):
            if i in pairs:
                continue
            for j, cand in enumerate(candidates):
                if j in paired_candidates:
                    continue
                s = self.score(item, cand)
                if s >= threshold:
                    scored.append((s, i, j))

        scored.sort(key=lambda t: (-t[0], t[1], t[2]))
        for s, i, j in scored:
            if i in pairs or j in paired_candidates:
                continue
            pairs[i] = (j, MatchMethod.FUZZY_NAME, s)
            paired_candidates.add(j)

    # -----------------------------------------------------------------
    # Classification
    # -----------------------------------------------------------------

    def _build_line(
        self,
        index: int,
        item: RequestedItem,
        candidates: Sequence[CandidateItem],
        pair: tuple[int, MatchMethod, Decimal] | None,
    ) -> LineMatch:
        if pair is None:
            return LineMatch(
                requested=item,
                classification=MatchClassification.MISSING,
                confidence=ZERO,
                discrepancies=(f"Missing: {item.name} was not quoted",),
            )

        j, method, confidence = pair
        cand = candidates[j]
        discrepancies: list[str] = []
        quantity_ok = True

        if cand.quantity is None:
            discrepancies.append(
                f"Quantity: not stated for {item.name}, "
                f"requested {_fmt(item.quantity)}"
            )
        elif cand.quantity <= 0:
            quantity_ok = False
            discrepancies.append(f"Quantity: quoted {_fmt(cand.quantity)} is not a valid quantity")
        elif cand.quantity != item.quantity:
            quantity_ok = False
            discrepancies.append(
                f"Quantity: requested {_fmt(item.quantity)}, quoted {_fmt(cand.quantity)}"
            )

        price_ok = cand.unit_price is not None and cand.unit_price >= 0
        if cand.unit_price is None:
            discrepancies.append(f"Price: no unit price quoted for {item.name}")
        elif cand.unit_price < 0:
            discrepancies.append(f"Price: quoted {cand.unit_price} is not a valid price")

        classification = (
            MatchClassification.MATCHED
            if quantity_ok and price_ok
            else MatchClassification.PARTIAL
        )
        return LineMatch(
            requested=item,
            classification=classification,
            confidence=confidence,
            candidate=cand,
            candidate_index=j,
            method=method,
            discrepancies=tuple(discrepancies),
        )

    def _suggest(
        self,
        cand: CandidateItem,
        unpaired_requested: Sequence[RequestedItem],
    ) -> tuple[Suggestion, ...]:
        scored = []
        for position, item in enumerate(unpaired_requested):
            s = self.score(item, cand)
            if s > ZERO:
                scored.append((s, position, item))
        scored.sort(key=lambda t: (-t[0], t[1]))
        return tuple(
            Suggestion(requested_key=item.key, requested_name=item.name, score=s)
            for s, _, item in scored[: self._settings.suggestion_limit]
        )

    def _summarize(
        self,
        requested: Sequence[RequestedItem],
        candidates: Sequence[CandidateItem],
        lines: Sequence[LineMatch],
        extras: Sequence[ExtraItem],
        declared_total: Decimal | None,
    ) -> ReconciliationSummary:
        # A paired item with no stated quantity is taken at the requested quantity.
        amounts = [
            line.candidate.total_for(line.requested.quantity) for line in lines if line.is_paired
        ] + [extra.candidate.calculated_total for extra in extras]
        line_totals = [a for a in amounts if a is not None]
        calculated = round2(sum(line_totals, ZERO)) if line_totals else None

        difference = None
        total_discrepancy = False
        if declared_total is not None and calculated is not None and declared_total > 0:
            difference = round2(declared_total - calculated)
            total_discrepancy = abs(difference) > self._settings.total_tolerance

        return ReconciliationSummary(
            total_requested=len(requested),
            total_quoted=len(candidates),
            matched=sum(1 for line in lines if line.classification == MatchClassification.MATCHED),
            partial=sum(1 for line in lines if line.classification == MatchClassification.PARTIAL),
            missing=sum(1 for line in lines if line.classification == MatchClassification.MISSING),
            extra=len(extras),
            quantity_discrepancies=sum(
                1 for line in lines
                if any(d.startswith("Quantity: requested") for d in line.discrepancies)
            ),
            calculated_total=calculated,
            declared_total=declared_total,
            total_difference=difference,
            total_discrepancy=total_discrepancy,
        )

    def _all_missing(
        self,
        requested: Sequence[RequestedItem],
        declared_total: Decimal | None,
    ) -> ReconciliationResult:
        lines = tuple(
            LineMatch(
                requested=item,
                classification=MatchClassification.MISSING,
                confidence=ZERO,
                discrepancies=(f"Missing: {item.name} was not quoted",),
            )
            for item in requested
        )
        summary = ReconciliationSummary(
            total_requested=len(requested),
            total_quoted=0,
            matched=0,
            partial=0,
            missing=len(lines),
            extra=0,
            quantity_discrepancies=0,
            declared_total=declared_total,
        )
        return ReconciliationResult(
            lines=lines,
            extras=(),
            summary=summary,
            manual_entry_required=True,
            discrepancy_messages=("Manual entry required: no line items could be read",),
        )
