"""Currencies suppliers quote in and clients are billed in."""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    code: str
    name: str
    decimal_places: int = 2

    @property
    def minor_unit(self) -> Decimal:
        """Smallest billable amount, e.g. ``0.01`` for CAD, ``1`` for JPY."""
        return Decimal(1).scaleb(-self.decimal_places)


def _table(*entries: CurrencyInfo) -> dict[str, CurrencyInfo]:
    return {info.code: info for info in entries}


class CurrencyRegistry:
    """ISO 4217 codes accepted on quotes, payments and purchase orders."""

    _known: ClassVar[dict[str, CurrencyInfo]] = _table(
        # North American studios and their usual suppliers
        CurrencyInfo("CAD", "Canadian Dollar"),
        CurrencyInfo("USD", "US Dollar"),
        CurrencyInfo("MXN", "Mexican Peso"),
        # European makers
        CurrencyInfo("EUR", "Euro"),
        CurrencyInfo("GBP", "Pound Sterling"),
        CurrencyInfo("CHF", "Swiss Franc"),
        CurrencyInfo("DKK", "Danish Krone"),
        CurrencyInfo("SEK", "Swedish Krona"),
        CurrencyInfo("NOK", "Norwegian Krone"),
        CurrencyInfo("PLN", "Polish Zloty"),
        CurrencyInfo("CZK", "Czech Koruna"),
        CurrencyInfo("TRY", "Turkish Lira"),
        # Asia-Pacific workshops and freight
        CurrencyInfo("AUD", "Australian Dollar"),
        CurrencyInfo("NZD", "New Zealand Dollar"),
        CurrencyInfo("CNY", "Chinese Yuan"),
        CurrencyInfo("HKD", "Hong Kong Dollar"),
        CurrencyInfo("SGD", "Singapore Dollar"),
        CurrencyInfo("INR", "Indian Rupee"),
        CurrencyInfo("JPY", "Japanese Yen", decimal_places=0),
        CurrencyInfo("KRW", "South Korean Won", decimal_places=0),
        CurrencyInfo("VND", "Vietnamese Dong", decimal_places=0),
        # Other
        CurrencyInfo("BRL", "Brazilian Real"),
        CurrencyInfo("ZAR", "South African Rand"),
        CurrencyInfo("AED", "UAE Dirham"),
        CurrencyInfo("KWD", "Kuwaiti Dinar", decimal_places=3),
        CurrencyInfo("BHD", "Bahraini Dinar", decimal_places=3),
    )

    @classmethod
    def lookup(cls, code: str) -> CurrencyInfo | None:
        """Return the entry for *code* (case-insensitive), or None."""
        if not isinstance(code, str):
            return None
        return cls._known.get(code.strip().upper())

    @classmethod
    def is_valid(cls, code: str) -> bool:
        return cls.lookup(code) is not None
