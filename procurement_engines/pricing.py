"""
procurement_engines.pricing -- Supplier cost to client price.

Responsibility:
    Converts an accepted supplier unit cost into the client-facing unit
    price, prices whole lines (including attached component sub-items),
    aggregates totals per currency and summarizes profit.

Architecture position:
    Engines -- pure calculation layer, zero I/O, no stored state.
    May only import procurement_kernel domain values, exceptions and logging.

Invariants enforced:
    - client_price(c, m) == round2(c * (1 + m / 100)), half-up.
    - Markup is applied exactly once: components are marked up from their
      own cost, never from an already marked-up value.
    - Totals are only ever combined within one currency code; mixing raises
      CurrencyMismatchError.
    - Rounding happens once per stored amount: each unit price and each
      line total is rounded; aggregates are sums of rounded line totals.

Failure modes:
    - ValidationError for negative markup, negative cost or non-positive
      quantity.
    - CurrencyMismatchError when a single-currency total is requested over
      amounts in more than one currency.

Usage:
    from procurement_engines.pricing import client_price, price_line, PricingLine

    client_price(Decimal("1000.00"), Decimal("25"))  # Decimal("1250.00")
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal

from procurement_engines.tracer import traced_engine
from procurement_kernel.domain.values import Money, round2, to_decimal
from procurement_kernel.exceptions import CurrencyMismatchError, ValidationError
from procurement_kernel.logging_config import get_logger

logger = get_logger("engines.pricing")

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class PriceComponent:
    """An attached sub-item (transformer, bracket, cushion set...).

    ``quantity`` is the component count for the whole line, not per unit.
    """
    name: str
    unit_cost: Decimal
    quantity: Decimal = Decimal("1")


@dataclass(frozen=True)
class PricingLine:
    """Input to price one client quote line."""
    key: str
    currency: str
    supplier_unit_cost: Decimal
    quantity: Decimal
    markup_percent: Decimal
    components: tuple[PriceComponent, ...] = ()


@dataclass(frozen=True)
class PricedComponent:
    name: str
    unit_cost: Decimal
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class PricedLine:
    """Output of pricing one line. ``cost_total`` is internal-only."""
    key: str
    currency: str
    markup_percent: Decimal
    supplier_unit_cost: Decimal
    client_unit_price: Decimal
    quantity: Decimal
    components: tuple[PricedComponent, ...]
    line_total: Decimal
    cost_total: Decimal

    @property
    def line_total_money(self) -> Money:
        return Money.of(self.line_total, self.currency)


@dataclass(frozen=True)
class ProfitSummary:
    """Per-currency profit on a client quote."""
    currency: str
    total_cost: Decimal
    total_price: Decimal
    profit: Decimal
    margin_percent: Decimal


def validate_markup(markup_percent: Decimal | int | str, field: str = "markup_percent") -> Decimal:
    """Coerce and check a markup percentage. Zero is allowed."""
    markup = to_decimal(markup_percent, field)
    if markup < 0:
        raise ValidationError(field, f"markup must be >= 0, got {markup}")
    return markup


def _validate_cost(cost: Decimal | int | str, field: str) -> Decimal:
    value = to_decimal(cost, field)
    if value < 0:
        raise ValidationError(field, f"cost must be >= 0, got {value}")
    return value


def _validate_quantity(quantity: Decimal | int | str, field: str) -> Decimal:
    value = to_decimal(quantity, field)
    if value <= 0:
        raise ValidationError(field, f"quantity must be > 0, got {value}")
    return value


@traced_engine("pricing.client_price", "1.0", fingerprint_fields=("supplier_cost", "markup_percent"))
def client_price(supplier_cost: Decimal, markup_percent: Decimal) -> Decimal:
    """round2(supplier_cost * (1 + markup_percent / 100))."""
    cost = _validate_cost(supplier_cost, "supplier_cost")
    markup = validate_markup(markup_percent)
    return round2(cost * (1 + markup / HUNDRED))


def resolve_markup(
    *,
    line_override: Decimal | None,
    quote_markup: Decimal | None,
    category: str | None,
    category_markups: Mapping[str, Decimal],
    config_default: Decimal,
) -> Decimal:
    """
    Pick the markup for a line.

    Line override, then a markup stated for the whole quote, then the
    configured markup for the line's category, then the configured default.
    """
    if line_override is not None:
        return validate_markup(line_override)
    if quote_markup is not None:
        return validate_markup(quote_markup, "default_markup_percent")
    if category:
        for name, percent in category_markups.items():
            if name.strip().lower() == category.strip().lower():
                return validate_markup(percent, f"category_markups.{name}")
    return validate_markup(config_default, "pricing.default_markup_percent")


def price_line(line: PricingLine) -> PricedLine:
    """Price one line: unit price x quantity plus each marked-up component."""
    cost = _validate_cost(line.supplier_unit_cost, f"{line.key}.supplier_unit_cost")
    quantity = _validate_quantity(line.quantity, f"{line.key}.quantity")
    markup = validate_markup(line.markup_percent, f"{line.key}.markup_percent")

    unit_price = client_price(cost, markup)
    line_total = round2(unit_price * quantity)
    cost_total = round2(cost * quantity)

    priced_components: list[PricedComponent] = []
    for comp in line.components:
        comp_cost = _validate_cost(comp.unit_cost, f"{line.key}.{comp.name}.unit_cost")
        comp_qty = _validate_quantity(comp.quantity, f"{line.key}.{comp.name}.quantity")
        comp_price = client_price(comp_cost, markup)
        comp_total = round2(comp_price * comp_qty)
        priced_components.append(PricedComponent(
            name=comp.name,
            unit_cost=comp_cost,
            quantity=comp_qty,
            unit_price=comp_price,
            total_price=comp_total,
        ))
        line_total += comp_total
        cost_total += round2(comp_cost * comp_qty)

    return PricedLine(
        key=line.key,
        currency=Money.zero(line.currency).currency.code,
        markup_percent=markup,
        supplier_unit_cost=cost,
        client_unit_price=unit_price,
        quantity=quantity,
        components=tuple(priced_components),
        line_total=line_total,
        cost_total=cost_total,
    )


@traced_engine("pricing.price_lines", "1.0", fingerprint_fields=("lines",))
def price_lines(lines: Sequence[PricingLine]) -> list[PricedLine]:
    """Price every line, preserving order."""
    priced = [price_line(line) for line in lines]
    logger.info("pricing_lines_priced", extra={
        "line_count": len(priced),
        "currencies": sorted({p.currency for p in priced}),
    })
    return priced


def aggregate_by_currency(amounts: Sequence[Money]) -> dict[str, Money]:
    """Sum amounts per currency code. Never combines two codes."""
    totals: dict[str, Money] = {}
    for amount in amounts:
        code = amount.currency.code
        totals[code] = totals[code] + amount if code in totals else amount
    return totals


def sum_single_currency(amounts: Sequence[Money], currency: str | None = None) -> Money:
    """Sum amounts that must all share one currency.

    ``currency``, when given, is the expected code (and the currency of an
    empty sum).

    Raises:
        CurrencyMismatchError: if two codes appear.
        ValidationError: if the list is empty and no currency is given.
    """
    if not amounts:
        if currency is None:
            raise ValidationError("currency", "required to total an empty set of amounts")
        return Money.zero(currency)
    expected = Money.zero(currency).currency if currency else amounts[0].currency
    total = Money.zero(expected)
    for amount in amounts:
        if amount.currency != expected:
            raise CurrencyMismatchError(expected.code, amount.currency.code)
        total = total + amount
    return total


@traced_engine("pricing.profit_summary", "1.0")
def profit_summary(lines: Sequence[PricedLine]) -> dict[str, ProfitSummary]:
    """Cost, price, profit and margin per currency."""
    costs = aggregate_by_currency([Money.of(line.cost_total, line.currency) for line in lines])
    prices = aggregate_by_currency([Money.of(line.line_total, line.currency) for line in lines])
    summaries: dict[str, ProfitSummary] = {}
    for code, price in prices.items():
        cost = costs[code]
        profit = price - cost
        margin = (
            round2(profit.amount / price.amount * HUNDRED)
            if not price.is_zero
            else Decimal("0.00")
        )
        summaries[code] = ProfitSummary(
            currency=code,
            total_cost=cost.amount,
            total_price=price.amount,
            profit=profit.amount,
            margin_percent=margin,
        )
    return summaries
