"""
Reads a studio configuration set from YAML.

Runtime code asks ``procurement_config.get_active_config()`` for the
active set; only that function and the tests call into this module.
A missing file raises ``FileNotFoundError`` and unparseable YAML raises
``yaml.YAMLError``, both unchanged. A document that is not a mapping, or a
value the schema rejects, raises ``ValidationError`` naming the key.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from procurement_config.schema import ProcurementConfig
from procurement_kernel.exceptions import ValidationError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Parse *path*; an empty file reads as an empty mapping."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValidationError(str(path), "configuration file must contain a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of the parsed configuration."""
    canonical = json.dumps(data, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def load_config(path: Path) -> ProcurementConfig:
    """Load, checksum and validate one configuration set."""
    data = load_yaml_file(path)
    return ProcurementConfig.from_dict(data, checksum=compute_checksum(data))
