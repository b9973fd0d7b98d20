"""
procurement_engines.similarity -- Product name similarity.

Combines two signals into one score in [0, 1]:

* token overlap -- Jaccard index (intersection over union) of the
  lower-cased word tokens of both names;
* edit similarity -- ``thefuzz`` Levenshtein ratio of the normalized
  full names, scaled from 0-100 to 0-1.

Scores are Decimals quantized to four places so that identical inputs
always produce identical, comparable scores.
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal

from thefuzz import fuzz

SCORE_PLACES = Decimal("0.0001")
ONE = Decimal("1")
ZERO = Decimal("0")

_TOKEN_RE = re.compile(r"[a-z0-9]+")


def normalize_name(name: str | None) -> str:
    """Lower-case, keep word characters, collapse whitespace."""
    if not name:
        return ""
    return " ".join(_TOKEN_RE.findall(name.lower()))


def normalize_key(key: str | None) -> str:
    """Normalize a SKU or model number for exact comparison."""
    if not key:
        return ""
    return key.strip().lower()


def tokenize(name: str | None) -> frozenset[str]:
    return frozenset(_TOKEN_RE.findall(name.lower())) if name else frozenset()


def quantize_score(value: Decimal) -> Decimal:
    return value.quantize(SCORE_PLACES, rounding=ROUND_HALF_UP)


def token_overlap(a: str | None, b: str | None) -> Decimal:
    """Jaccard index of the word-token sets. 0 when either side is empty."""
    tokens_a = tokenize(a)
    tokens_b = tokenize(b)
    if not tokens_a or not tokens_b:
        return ZERO
    return Decimal(len(tokens_a & tokens_b)) / Decimal(len(tokens_a | tokens_b))


def edit_similarity(a: str | None, b: str | None) -> Decimal:
    """Bounded edit-distance term in [0, 1]."""
    norm_a = normalize_name(a)
    norm_b = normalize_name(b)
    if not norm_a or not norm_b:
        return ZERO
    return Decimal(fuzz.ratio(norm_a, norm_b)) / Decimal(100)


def name_similarity(
    a: str | None,
    b: str | None,
    *,
    token_weight: Decimal = Decimal("0.5"),
    edit_weight: Decimal = Decimal("0.5"),
) -> Decimal:
    """Weighted blend of token overlap and edit similarity, in [0, 1]."""
    score = token_weight * token_overlap(a, b) + edit_weight * edit_similarity(a, b)
    return quantize_score(min(max(score, ZERO), ONE))
