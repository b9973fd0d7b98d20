"""
Tests for PurchaseOrderService.

Purchase orders are created only from a fully paid client quote, one per
supplier, priced at supplier cost.  Status moves forward one step at a
time and every move lands in the status history.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from procurement_kernel.exceptions import (
    EntityNotFoundError,
    InsufficientPaymentError,
    PurchaseOrderExistsError,
    StateTransitionError,
    ValidationError,
)
from procurement_kernel.services.activity_service import ActivityService
from procurement_modules.purchase_order.models import OrderStatus
from procurement_modules.purchase_order.workflows import ORDER_CHAIN, next_status


@pytest.fixture
def paid_quote(flow):
    flow.send()
    flow.quote_default()
    flow.accept_lowest_and_finalize()
    return flow.paid_client_quote()


@pytest.fixture
def orders(flow, paid_quote, test_actor_id):
    return flow.orders.create_purchase_orders(paid_quote.id, actor_id=test_actor_id)


@pytest.fixture
def order(orders):
    """The Atelier Nord order (sofa, with delivery)."""
    return orders[0]


class TestCreatePurchaseOrders:
    def test_one_order_per_supplier(self, flow, orders):
        atelier, bexley = orders
        assert [o.po_number for o in orders] == ["PO-2026-0001", "PO-2026-0002"]
        assert atelier.supplier_rfq_id == flow.supplier_rfq_ids["Atelier Nord"]
        assert atelier.supplier_name == "Atelier Nord"
        assert bexley.supplier_rfq_id == flow.supplier_rfq_ids["Bexley Supply"]
        assert all(o.status == OrderStatus.PENDING_PAYMENT for o in orders)

    def test_lines_at_supplier_cost(self, flow, orders):
        atelier, bexley = orders
        (sofa,) = atelier.lines
        assert sofa.rfq_line_item_id == flow.line_id("Sofa")
        assert sofa.unit_cost == Decimal("1000.00")
        assert sofa.quantity == Decimal("2")
        assert sofa.line_total == Decimal("2000.00")
        (lamp,) = bexley.lines
        assert lamp.unit_cost == Decimal("180.00")
        assert lamp.line_total == Decimal("540.00")

    def test_supplier_delivery_added_to_total(self, orders):
        atelier, bexley = orders
        assert atelier.subtotal == Decimal("2000.00")
        assert atelier.delivery_fee == Decimal("150.00")
        assert atelier.total_amount == Decimal("2150.00")
        assert bexley.delivery_fee is None
        assert bexley.total_amount == Decimal("540.00")

    def test_initial_history_entry(self, flow, order, test_actor_id):
        (entry,) = flow.orders.status_history(order.id)
        assert entry.from_status is None
        assert entry.to_status == OrderStatus.PENDING_PAYMENT
        assert entry.actor_id == test_actor_id

    def test_listed_by_client_quote(self, flow, paid_quote, orders):
        listed = flow.orders.list_for_client_quote(paid_quote.id)
        assert [o.id for o in listed] == [o.id for o in orders]

    def test_creation_recorded(self, flow, order, session):
        (entry,) = ActivityService(session).list_for("purchase_order", order.id)
        assert entry.action == "create"
        assert entry.details["po_number"] == "PO-2026-0001"

    def test_created_once(self, flow, paid_quote, orders, test_actor_id):
        with pytest.raises(PurchaseOrderExistsError):
            flow.orders.create_purchase_orders(paid_quote.id, actor_id=test_actor_id)
        assert len(flow.orders.list_for_client_quote(paid_quote.id)) == 2

    def test_unpaid_quote_rejected(self, flow, test_actor_id):
        flow.send()
        flow.quote_default()
        flow.accept_lowest_and_finalize()
        quote = flow.approved_client_quote()
        flow.client_quotes.record_payment(
            quote.id, amount=Decimal("3000.00"), currency="CAD", actor_id=test_actor_id,
        )
        with pytest.raises(InsufficientPaymentError) as exc_info:
            flow.orders.create_purchase_orders(quote.id, actor_id=test_actor_id)
        assert exc_info.value.required == Decimal("3175.00")
        assert exc_info.value.recorded == Decimal("3000.00")
        assert flow.orders.list_for_client_quote(quote.id) == []

    def test_unknown_client_quote(self, purchase_order_service, test_actor_id):
        with pytest.raises(EntityNotFoundError):
            purchase_order_service.create_purchase_orders(uuid4(), actor_id=test_actor_id)


class TestAdvanceStatus:
    def test_one_step_at_a_time(self, flow, order, test_actor_id):
        advanced = flow.orders.advance_status(
            order.id, OrderStatus.PAYMENT_RECEIVED, actor_id=test_actor_id, note="Deposit cleared",
        )
        assert advanced.status == OrderStatus.PAYMENT_RECEIVED
        assert advanced.version == order.version + 1

        with pytest.raises(StateTransitionError):
            flow.orders.advance_status(order.id, OrderStatus.CONFIRMED, actor_id=test_actor_id)
        assert flow.orders.get(order.id).status == OrderStatus.PAYMENT_RECEIVED

    def test_status_accepted_as_string(self, flow, order, test_actor_id):
        advanced = flow.orders.advance_status(order.id, "payment_received", actor_id=test_actor_id)
        assert advanced.status == OrderStatus.PAYMENT_RECEIVED

    def test_history_is_ordered(self, flow, order, test_actor_id, deterministic_clock):
        for _ in range(3):
            deterministic_clock.advance_days(1)
            flow.orders.advance_to_next(order.id, actor_id=test_actor_id)
        history = flow.orders.status_history(order.id)
        assert [h.to_status for h in history] == [
            OrderStatus.PENDING_PAYMENT,
            OrderStatus.PAYMENT_RECEIVED,
            OrderStatus.ORDERED,
            OrderStatus.CONFIRMED,
        ]
        assert [h.from_status for h in history[1:]] == [h.to_status for h in history[:-1]]
        assert history[-1].changed_at == deterministic_clock.now()

    def test_tracking_recorded_on_shipment(self, flow, order, test_actor_id):
        for _ in range(4):
            flow.orders.advance_to_next(order.id, actor_id=test_actor_id)
        shipped = flow.orders.advance_status(
            order.id, OrderStatus.SHIPPED,
            actor_id=test_actor_id, carrier="Purolator", tracking_number="PUR-88412",
        )
        assert shipped.status == OrderStatus.SHIPPED
        assert (shipped.carrier, shipped.tracking_number) == ("Purolator", "PUR-88412")

    def test_tracking_rejected_before_shipment(self, flow, order, test_actor_id):
        with pytest.raises(ValidationError) as exc_info:
            flow.orders.advance_status(
                order.id, OrderStatus.PAYMENT_RECEIVED,
                actor_id=test_actor_id, tracking_number="PUR-88412",
            )
        assert exc_info.value.field == "carrier"
        assert flow.orders.get(order.id).status == OrderStatus.PENDING_PAYMENT

    def test_completed_is_terminal(self, flow, order, test_actor_id):
        for _ in range(len(ORDER_CHAIN) - 1):
            flow.orders.advance_to_next(order.id, actor_id=test_actor_id)
        assert flow.orders.get(order.id).status == OrderStatus.COMPLETED
        with pytest.raises(StateTransitionError):
            flow.orders.advance_to_next(order.id, actor_id=test_actor_id)
        with pytest.raises(StateTransitionError):
            flow.orders.cancel(order.id, actor_id=test_actor_id)

    def test_unknown_order(self, purchase_order_service, test_actor_id):
        with pytest.raises(EntityNotFoundError):
            purchase_order_service.advance_to_next(uuid4(), actor_id=test_actor_id)


class TestCancel:
    def test_cancel_from_any_open_status(self, flow, order, test_actor_id):
        flow.orders.advance_to_next(order.id, actor_id=test_actor_id)
        cancelled = flow.orders.cancel(order.id, actor_id=test_actor_id, reason="Discontinued")
        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.cancellation_reason == "Discontinued"
        last = flow.orders.status_history(order.id)[-1]
        assert (last.from_status, last.to_status) == (
            OrderStatus.PAYMENT_RECEIVED, OrderStatus.CANCELLED,
        )
        assert last.note == "Discontinued"

    def test_advance_to_cancelled_delegates(self, flow, order, test_actor_id):
        cancelled = flow.orders.advance_status(
            order.id, OrderStatus.CANCELLED, actor_id=test_actor_id, note="Client withdrew",
        )
        assert cancelled.cancellation_reason == "Client withdrew"

    def test_cancelled_is_terminal(self, flow, order, test_actor_id):
        flow.orders.cancel(order.id, actor_id=test_actor_id)
        with pytest.raises(StateTransitionError):
            flow.orders.advance_to_next(order.id, actor_id=test_actor_id)

    def test_other_orders_unaffected(self, flow, orders, test_actor_id):
        atelier, bexley = orders
        flow.orders.cancel(atelier.id, actor_id=test_actor_id)
        assert flow.orders.get(bexley.id).status == OrderStatus.PENDING_PAYMENT


class TestNextStatus:
    @pytest.mark.parametrize("current,expected", [
        (OrderStatus.PENDING_PAYMENT, OrderStatus.PAYMENT_RECEIVED),
        (OrderStatus.IN_PRODUCTION, OrderStatus.SHIPPED),
        (OrderStatus.DELIVERED, OrderStatus.INSTALLED),
        (OrderStatus.COMPLETED, None),
        (OrderStatus.CANCELLED, None),
    ])
    def test_next_status(self, current, expected):
        assert next_status(current) is expected
