"""
Trace logging for pricing and reconciliation engines.

``@traced_engine`` logs one ``PROCUREMENT_ENGINE_TRACE`` record per call with the engine
name and version, how long the call took, and a short hash of the inputs
named in ``fingerprint_fields``. Two calls with equal inputs log the same
hash, which is how a disputed client price is tied back to the supplier
cost and markup it was computed from. The decorator only observes: it
neither copies nor alters arguments and results.
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import json
import time
from collections.abc import Callable
from typing import Any

from procurement_kernel.logging_config import get_logger

logger = get_logger("engines.tracer")

TRACE_MESSAGE = "PROCUREMENT_ENGINE_TRACE"


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: dict[str, Any],
) -> str:
    """First 16 hex digits of a SHA-256 over the named arguments.

    Absent arguments hash like ``None``; mapping keys are sorted, and values
    JSON cannot represent (Decimals, dataclasses) hash by ``repr``.
    """
    selected = {name: arguments.get(name) for name in fingerprint_fields}
    canonical = json.dumps(selected, sort_keys=True, default=repr, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.monotonic()
            result = func(*args, **kwargs)
            elapsed_ms = round((time.monotonic() - started) * 1000, 2)

            fingerprint = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs).arguments
                fingerprint = compute_input_fingerprint(fingerprint_fields, dict(bound))

            logger.info(TRACE_MESSAGE, extra={
                "engine_name": engine_name,
                "engine_version": engine_version,
                "function": func.__qualname__,
                "input_fingerprint": fingerprint,
                "duration_ms": elapsed_ms,
            })
            return result

        return wrapper

    return decorator
