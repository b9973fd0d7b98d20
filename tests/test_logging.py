"""
JSON log output and context propagation.

Log lines are consumed by the studio's log search, so every line must be a
standalone JSON object and identifiers bound with ``LogContext`` must appear
on every line emitted inside the bound block.
"""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from procurement_kernel.exceptions import InsufficientPaymentError
from procurement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from procurement_modules.purchase_order.models import OrderStatus


@pytest.fixture
def captured():
    """Route the procurement logger tree into a buffer; yields a line reader."""
    reset_logging()
    LogContext.clear()
    buffer = StringIO()
    handler = logging.StreamHandler(buffer)
    handler.setFormatter(StructuredFormatter())
    configure_logging(handler=handler)

    def lines() -> list[dict]:
        return [json.loads(line) for line in buffer.getvalue().splitlines() if line]

    yield lines

    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())


class TestJsonLines:
    def test_envelope(self, captured):
        get_logger("modules.rfq.service").info("rfq_sent")

        (line,) = captured()
        assert line["message"] == "rfq_sent"
        assert line["level"] == "INFO"
        assert line["logger"] == "procurement_kernel.modules.rfq.service"
        assert line["ts"].endswith("+00:00")

    def test_extra_fields_are_top_level(self, captured):
        get_logger("modules.rfq.service").info(
            "rfq_sent", extra={"supplier_count": 3, "line_count": 2},
        )
        (line,) = captured()
        assert (line["supplier_count"], line["line_count"]) == (3, 2)

    def test_amounts_ids_and_statuses_serialise(self, captured):
        order_id = uuid4()
        get_logger("modules.purchase_order.service").info(
            "po_status_changed",
            extra={
                "order_id": order_id,
                "total_amount": Decimal("2150.00"),
                "to_status": OrderStatus.SHIPPED,
            },
        )
        (line,) = captured()
        assert line["order_id"] == str(order_id)
        assert line["total_amount"] == "2150.00"
        assert line["to_status"] == "shipped"

    def test_info_level_drops_debug(self, captured):
        logger = get_logger("engines.pricing")
        logger.debug("markup_resolved")
        logger.warning("markup_below_floor")
        assert [line["message"] for line in captured()] == ["markup_below_floor"]


class TestExceptionFields:
    def test_plain_exception(self, captured):
        try:
            raise ValueError("unreadable quote document")
        except ValueError:
            get_logger("test").exception("extraction_failed")

        (line,) = captured()
        assert line["exc_type"] == "ValueError"
        assert line["exc_message"] == "unreadable quote document"
        assert "Traceback" in line["traceback"]
        assert "exc_code" not in line

    def test_procurement_error_attributes(self, captured):
        try:
            raise InsufficientPaymentError(Decimal("5000.00"), Decimal("4999.99"), "CAD")
        except InsufficientPaymentError:
            get_logger("test").error("po_creation_refused", exc_info=True)

        (line,) = captured()
        assert line["exc_code"] == "INSUFFICIENT_PAYMENT"
        assert line["exc_required"] == "5000.00"
        assert line["exc_recorded"] == "4999.99"
        assert line["exc_currency"] == "CAD"


class TestLogContext:
    def test_bound_fields_appear_on_each_line(self, captured):
        logger = get_logger("modules.rfq.service")
        with LogContext.bind(rfq_id="rfq-1", supplier_id="sup-9"):
            logger.info("supplier_invited")
            logger.info("token_issued")
        logger.info("after_block")

        inside_one, inside_two, after = captured()
        assert inside_one["rfq_id"] == inside_two["rfq_id"] == "rfq-1"
        assert inside_two["supplier_id"] == "sup-9"
        assert "rfq_id" not in after

    def test_nested_bind_restores_outer_value(self):
        LogContext.clear()
        LogContext.set(rfq_id="outer")
        with LogContext.bind(rfq_id="inner", purchase_order_id="po-1"):
            assert LogContext.get_all() == {"rfq_id": "inner", "purchase_order_id": "po-1"}
        assert LogContext.get_all() == {"rfq_id": "outer"}
        LogContext.clear()

    def test_set_ignores_none_and_stringifies(self):
        LogContext.clear()
        actor = uuid4()
        LogContext.set(actor_id=actor, correlation_id=None)
        assert LogContext.get_all() == {"actor_id": str(actor)}
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(tenant="studio-1")


class TestConfigureLogging:
    def test_second_call_keeps_first_handler(self, captured):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        assert len(logging.getLogger("procurement_kernel").handlers) == 1

    def test_debug_level_reaches_nested_loggers(self):
        reset_logging()
        buffer = StringIO()
        configure_logging(level=logging.DEBUG, stream=buffer)
        try:
            get_logger("modules.client_quote.service").debug("markup_applied")
            line = json.loads(buffer.getvalue().splitlines()[0])
            assert line["logger"] == "procurement_kernel.modules.client_quote.service"
        finally:
            reset_logging()
            configure_logging(level=logging.DEBUG, stream=StringIO())
