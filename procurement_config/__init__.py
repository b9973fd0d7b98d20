"""
procurement_config -- single public entrypoint for procurement configuration.

Responsibility:
    Provides the way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive the returned
    ``ProcurementConfig``; they never read configuration files themselves.

Architecture position:
    Configuration -- YAML-driven, validated at load time.  Sits above
    ``procurement_kernel`` and below ``procurement_modules``.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``PROCUREMENT_CONFIG_TRACE`` log entry containing the config_id,
    version and checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from procurement_config.loader import load_config
from procurement_config.schema import (
    PricingConfig,
    ProcurementConfig,
    ReconciliationConfig,
    RFQConfig,
)

_logger = logging.getLogger("procurement_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | str | None = None) -> ProcurementConfig:
    """Load and validate the active configuration set.

    Args:
        path: Override path to a YAML configuration set.
            Defaults to procurement_config/sets/default.yaml.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValidationError: If a value is out of range.
    """
    config_path = Path(path) if path is not None else _DEFAULT_CONFIG_PATH
    config = load_config(config_path)

    _logger.info(
        "PROCUREMENT_CONFIG_TRACE",
        extra={
            "trace_type": "PROCUREMENT_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "tenant_code": config.tenant_code,
            "category_markup_count": len(config.pricing.category_markups),
        },
    )
    return config


__all__ = [
    "get_active_config",
    "PricingConfig",
    "ProcurementConfig",
    "ReconciliationConfig",
    "RFQConfig",
]
