"""
Structured logging for the procurement services.

Every record leaves the process as one JSON object per line. Fields bound
through ``LogContext`` (the RFQ being worked on, the acting user, the
supplier or order in play) are merged into each record so a single RFQ can
be followed from invitation to installation by filtering on ``rfq_id``.

Usage::

    logger = get_logger("modules.rfq.service")
    with LogContext.bind(rfq_id=str(rfq.id), actor_id=str(actor_id)):
        logger.info("rfq_sent", extra={"supplier_count": 3})
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextvars import ContextVar, Token
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any, TextIO

ROOT_LOGGER_NAME = "procurement_kernel"

CONTEXT_FIELDS = (
    "correlation_id",
    "actor_id",
    "rfq_id",
    "supplier_id",
    "purchase_order_id",
    "trace_id",
)

_context_vars: dict[str, ContextVar[str | None]] = {
    field: ContextVar(f"procurement_log_{field}", default=None)
    for field in CONTEXT_FIELDS
}


class LogContext:
    """Request-scoped identifiers attached to every log line.

    Backed by ``contextvars`` so values do not leak between threads or
    between asyncio tasks.
    """

    @staticmethod
    def set(**fields: Any) -> None:
        """Set the given fields; ``None`` values leave the field untouched."""
        for field, value in fields.items():
            if value is not None:
                _var(field).set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        bound: dict[str, str] = {}
        for field, var in _context_vars.items():
            value = var.get()
            if value is not None:
                bound[field] = value
        return bound

    @staticmethod
    def clear() -> None:
        for var in _context_vars.values():
            var.set(None)

    @staticmethod
    def bind(**fields: Any) -> "_BoundContext":
        """Scope fields to a ``with`` block, restoring prior values on exit."""
        return _BoundContext(fields)


def _var(field: str) -> ContextVar[str | None]:
    try:
        return _context_vars[field]
    except KeyError:
        raise TypeError(f"Unknown log context field: {field!r}") from None


class _BoundContext:
    def __init__(self, fields: dict[str, Any]):
        self._fields = {k: v for k, v in fields.items() if v is not None}
        self._tokens: list[tuple[ContextVar[str | None], Token]] = []

    def __enter__(self) -> type[LogContext]:
        for field, value in self._fields.items():
            var = _var(field)
            self._tokens.append((var, var.set(str(value))))
        return LogContext

    def __exit__(self, *exc_info: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    # Decimal amounts and UUIDs are written as strings to stay exact.
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # ProcurementError subclasses keep their context as public attributes.
    for name, value in vars(exc).items():
        if name.startswith("_") or name in ("args", "code"):
            continue
        fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Render a record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and key not in payload
        )

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json_value)


def get_logger(name: str) -> logging.Logger:
    """Return ``procurement_kernel.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_state_lock = threading.Lock()
_installed_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the procurement logger tree.

    Only the first call has any effect; later calls return immediately so
    that engine setup and test fixtures can both call it safely.
    """
    global _installed_handler
    with _state_lock:
        if _installed_handler is not None:
            return
        _installed_handler = (
            handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        )

    _installed_handler.setFormatter(StructuredFormatter())
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    root.propagate = False
    root.addHandler(_installed_handler)


def reset_logging() -> None:
    """Detach every handler so the next ``configure_logging`` call applies."""
    global _installed_handler
    with _state_lock:
        _installed_handler = None
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
