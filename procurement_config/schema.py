"""
Procurement Configuration Schema (``procurement_config.schema``).

Frozen dataclasses describing one configuration set.  Field defaults are
the values used when a key is absent from the YAML file.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Self

from procurement_kernel.domain.values import to_decimal
from procurement_kernel.exceptions import ValidationError


@dataclass(frozen=True)
class ReconciliationConfig:
    """Name matching knobs. A fuzzy pair is kept when its score is at or above ``fuzzy_threshold``."""

    fuzzy_threshold: Decimal = Decimal("0.45")
    token_weight: Decimal = Decimal("0.5")
    edit_weight: Decimal = Decimal("0.5")
    brand_bonus: Decimal = Decimal("0.1")
    suggestion_limit: int = 3
    total_tolerance: Decimal = Decimal("1.00")


@dataclass(frozen=True)
class PricingConfig:
    default_markup_percent: Decimal = Decimal("0")
    category_markups: dict[str, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class RFQConfig:
    default_response_days: int = 14
    allow_revisions_by_default: bool = False


@dataclass(frozen=True)
class ProcurementConfig:
    """
    Configuration for the procurement workflow.

    Override at instantiation with studio-specific values:

        config = ProcurementConfig.from_dict({"tenant_code": "north", ...})
    """

    config_id: str = "default"
    version: int = 1
    checksum: str = ""

    tenant_code: str = "studio"

    # Document numbering
    rfq_number_prefix: str = "RFQ"
    po_number_prefix: str = "PO"
    client_quote_number_prefix: str = "CQ"
    sequence_padding: int = 4

    reconciliation: ReconciliationConfig = field(default_factory=ReconciliationConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    rfq: RFQConfig = field(default_factory=RFQConfig)

    def __post_init__(self) -> None:
        self._validate()

    def _validate(self) -> None:
        if not self.tenant_code or not str(self.tenant_code).strip():
            raise ValidationError("tenant_code", "must be a non-empty string")
        for key in ("rfq_number_prefix", "po_number_prefix", "client_quote_number_prefix"):
            if not getattr(self, key):
                raise ValidationError(key, "must be a non-empty string")
        if self.sequence_padding < 1:
            raise ValidationError("sequence_padding", "must be >= 1")

        r = self.reconciliation
        if not Decimal("0") <= r.fuzzy_threshold <= Decimal("1"):
            raise ValidationError("reconciliation.fuzzy_threshold", "must be within [0, 1]")
        if r.token_weight < 0 or r.edit_weight < 0:
            raise ValidationError("reconciliation.token_weight", "weights must be >= 0")
        if r.token_weight + r.edit_weight != Decimal("1"):
            raise ValidationError(
                "reconciliation.token_weight",
                f"token_weight + edit_weight must equal 1, got {r.token_weight + r.edit_weight}",
            )
        if r.brand_bonus < 0:
            raise ValidationError("reconciliation.brand_bonus", "must be >= 0")
        if r.suggestion_limit < 0:
            raise ValidationError("reconciliation.suggestion_limit", "must be >= 0")
        if r.total_tolerance < 0:
            raise ValidationError("reconciliation.total_tolerance", "must be >= 0")

        if self.pricing.default_markup_percent < 0:
            raise ValidationError("pricing.default_markup_percent", "markup must be >= 0")
        for category, percent in self.pricing.category_markups.items():
            if percent < 0:
                raise ValidationError(f"pricing.category_markups.{category}", "markup must be >= 0")

        if self.rfq.default_response_days < 1:
            raise ValidationError("rfq.default_response_days", "must be >= 1")

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the shipped defaults."""
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any], checksum: str = "") -> Self:
        """Create config from a dictionary (e.g. a parsed YAML file)."""
        known = {
            "config_id", "version", "tenant_code", "rfq_number_prefix",
            "po_number_prefix", "client_quote_number_prefix", "sequence_padding",
            "reconciliation", "pricing", "rfq",
        }
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValidationError(unknown[0], "unknown configuration key")

        recon = data.get("reconciliation") or {}
        pricing = data.get("pricing") or {}
        rfq = data.get("rfq") or {}
        defaults_r = ReconciliationConfig()

        return cls(
            config_id=str(data.get("config_id", "default")),
            version=_as_int(data.get("version", 1), "version"),
            checksum=checksum,
            tenant_code=str(data.get("tenant_code", "studio")),
            rfq_number_prefix=str(data.get("rfq_number_prefix", "RFQ")),
            po_number_prefix=str(data.get("po_number_prefix", "PO")),
            client_quote_number_prefix=str(data.get("client_quote_number_prefix", "CQ")),
            sequence_padding=_as_int(data.get("sequence_padding", 4), "sequence_padding"),
            reconciliation=ReconciliationConfig(
                fuzzy_threshold=_as_decimal(
                    recon.get("fuzzy_threshold", defaults_r.fuzzy_threshold),
                    "reconciliation.fuzzy_threshold",
                ),
                token_weight=_as_decimal(
                    recon.get("token_weight", defaults_r.token_weight),
                    "reconciliation.token_weight",
                ),
                edit_weight=_as_decimal(
                    recon.get("edit_weight", defaults_r.edit_weight),
                    "reconciliation.edit_weight",
                ),
                brand_bonus=_as_decimal(
                    recon.get("brand_bonus", defaults_r.brand_bonus),
                    "reconciliation.brand_bonus",
                ),
                suggestion_limit=_as_int(
                    recon.get("suggestion_limit", defaults_r.suggestion_limit),
                    "reconciliation.suggestion_limit",
                ),
                total_tolerance=_as_decimal(
                    recon.get("total_tolerance", defaults_r.total_tolerance),
                    "reconciliation.total_tolerance",
                ),
            ),
            pricing=PricingConfig(
                default_markup_percent=_as_decimal(
                    pricing.get("default_markup_percent", "0"),
                    "pricing.default_markup_percent",
                ),
                category_markups={
                    str(name): _as_decimal(value, f"pricing.category_markups.{name}")
                    for name, value in (pricing.get("category_markups") or {}).items()
                },
            ),
            rfq=RFQConfig(
                default_response_days=_as_int(
                    rfq.get("default_response_days", 14), "rfq.default_response_days",
                ),
                allow_revisions_by_default=bool(rfq.get("allow_revisions_by_default", False)),
            ),
        )


def _as_decimal(value: Any, key: str) -> Decimal:
    # YAML floats are read back through str() so 0.45 stays 0.45
    if isinstance(value, float):
        value = str(value)
    return to_decimal(value, key)


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationError(key, f"expected an integer, got {value!r}")
    try:
        return int(value)
    except ValueError as e:
        raise ValidationError(key, f"expected an integer, got {value!r}") from e
