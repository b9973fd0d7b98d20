"""
Money values used for supplier costs, client prices and payments.

A cost is never a bare Decimal once it leaves a form field: it is a
``Money`` with a ``Currency``, and two amounts in different currencies can
be neither added nor compared. Amounts are Decimals end to end; a float
anywhere in the chain is rejected at construction.

Rounding is explicit. ``round2`` is the half-up cent rounding applied to
line totals and markup; ``Money.round`` rounds to the currency's own minor
unit.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from functools import total_ordering

from procurement_kernel.domain.currency import CurrencyRegistry
from procurement_kernel.exceptions import (
    CurrencyMismatchError,
    InvalidCurrencyError,
    ValidationError,
)

_CENT = Decimal("0.01")
_ZERO = Decimal("0")


def round2(value: Decimal) -> Decimal:
    """Half-up to cents: 1.005 -> 1.01, -1.005 -> -1.01."""
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: Decimal | str | int, field: str = "amount") -> Decimal:
    """Parse a quantity, price or amount from user or supplier input.

    Accepts Decimal, int and numeric strings. Floats, booleans, NaN and
    infinities raise ValidationError naming *field*.
    """
    if isinstance(value, bool) or not isinstance(value, (Decimal, int, str)):
        raise ValidationError(field, f"expected Decimal, int or str, got {type(value).__name__}")
    if isinstance(value, Decimal):
        parsed = value
    else:
        try:
            parsed = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValidationError(field, f"not a number: {value!r}") from e
    if not parsed.is_finite():
        raise ValidationError(field, f"not a finite number: {value!r}")
    return parsed


@dataclass(frozen=True, slots=True)
class Currency:
    """A validated, upper-cased ISO 4217 code. There is no default."""

    code: str

    def __post_init__(self) -> None:
        info = CurrencyRegistry.lookup(self.code)
        if info is None:
            raise InvalidCurrencyError(str(self.code))
        object.__setattr__(self, "code", info.code)

    @property
    def decimal_places(self) -> int:
        return CurrencyRegistry.lookup(self.code).decimal_places

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"Currency({self.code!r})"


def _as_currency(currency: str | Currency) -> Currency:
    if isinstance(currency, Currency):
        return currency
    if isinstance(currency, str):
        return Currency(currency)
    raise InvalidCurrencyError(repr(currency))


@total_ordering
@dataclass(frozen=True, slots=True, eq=True)
class Money:
    """An amount in one currency.

    Arithmetic with another Money requires the same currency and raises
    CurrencyMismatchError otherwise. Multiplication takes a plain quantity
    or rate. Nothing here converts between currencies.
    """

    amount: Decimal
    currency: Currency

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_decimal(self.amount))
        object.__setattr__(self, "currency", _as_currency(self.currency))

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str | Currency) -> Money:
        return cls(amount=to_decimal(amount), currency=_as_currency(currency))

    @classmethod
    def zero(cls, currency: str | Currency) -> Money:
        return cls(amount=_ZERO, currency=_as_currency(currency))

    @property
    def is_zero(self) -> bool:
        return self.amount == _ZERO

    def round(self, rounding: str = ROUND_HALF_UP) -> Money:
        """Round to the currency's minor unit (cents for CAD, whole yen for JPY)."""
        unit = CurrencyRegistry.lookup(self.currency.code).minor_unit
        return Money(self.amount.quantize(unit, rounding=rounding), self.currency)

    def _same_currency(self, other: Money) -> Money:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency.code, other.currency.code)
        return other

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.amount + self._same_currency(other).amount, self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.amount - self._same_currency(other).amount, self.currency)

    def __mul__(self, factor: Decimal | int | str) -> Money:
        if isinstance(factor, bool) or not isinstance(factor, (Decimal, int, str)):
            return NotImplemented
        return Money(self.amount * to_decimal(factor, "factor"), self.currency)

    __rmul__ = __mul__

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount < self._same_currency(other).amount

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.code}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency!r})"
