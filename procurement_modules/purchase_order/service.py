"""
Purchase Order Module Service (``procurement_modules.purchase_order.service``).

Responsibility
--------------
Creates the supplier purchase orders for a paid client quote and tracks
each order through delivery, one status at a time.

Architecture position
---------------------
**Modules layer** -- reads the client quote lineage, writes orders through
the kernel compare-and-set helpers.

Invariants enforced
-------------------
* No order exists unless recorded client payment >= client quote total
  and the client quote is PAID.
* Order lines carry the accepted supplier cost, never the client price.
* Status moves exactly one step forward, or to CANCELLED.  Every change
  appends a status history row in the same commit.

Failure modes
-------------
* ``InsufficientPaymentError`` -- payment below the client quote total.
* ``PurchaseOrderExistsError`` -- orders already created for the quote.
* ``StateTransitionError`` -- skipped, backward or terminal transition.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from procurement_config.schema import ProcurementConfig
from procurement_engines.pricing import sum_single_currency
from procurement_kernel.domain.clock import Clock, SystemClock
from procurement_kernel.domain.values import Money
from procurement_kernel.exceptions import (
    EntityNotFoundError,
    InsufficientPaymentError,
    PurchaseOrderExistsError,
    StateTransitionError,
    ValidationError,
)
from procurement_kernel.logging_config import LogContext, get_logger
from procurement_kernel.services.activity_service import ActivityService
from procurement_kernel.services.base import transition_status
from procurement_kernel.services.sequence_service import SequenceService
from procurement_modules.client_quote.models import ClientQuoteStatus
from procurement_modules.client_quote.orm import ClientQuoteLineModel, ClientQuoteModel
from procurement_modules.purchase_order.models import (
    OrderStatus,
    OrderStatusChange,
    PurchaseOrder,
)
from procurement_modules.purchase_order.orm import (
    PurchaseOrderLineModel,
    PurchaseOrderModel,
    PurchaseOrderStatusChangeModel,
)
from procurement_modules.purchase_order.workflows import (
    ORDER_WORKFLOW,
    TRACKING_STATUSES,
    next_status,
)
from procurement_modules.rfq.orm import (
    SupplierQuoteLineModel,
    SupplierQuoteModel,
    SupplierRFQModel,
)

logger = get_logger("modules.purchase_order.service")

PURCHASE_ORDER_ENTITY = "purchase_order"


class PurchaseOrderService:
    """
    Creates and tracks supplier purchase orders.

    Contract
    --------
    * ``create_purchase_orders`` produces one order per supplier whose
      accepted lines appear on the paid client quote.
    * ``advance_status`` accepts only the next status in the chain (or
      CANCELLED via ``cancel``); the stored status is unchanged on refusal.

    Guarantees
    ----------
    * Session is committed on success and rolled back on any exception.
    """

    def __init__(
        self,
        session: Session,
        config: ProcurementConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._config = config or ProcurementConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)
        self._activity = ActivityService(session, self._clock)

    def create_purchase_orders(
        self,
        client_quote_id: UUID,
        *,
        actor_id: UUID,
    ) -> list[PurchaseOrder]:
        """
        Create the supplier orders for a fully paid client quote.

        Raises:
            InsufficientPaymentError: recorded payment is below the total,
                even by one cent.
            StateTransitionError: the client quote is not PAID.
            PurchaseOrderExistsError: orders were already created.
        """
        try:
            quote = self._session.get(ClientQuoteModel, client_quote_id)
            if quote is None:
                raise EntityNotFoundError("client_quote", str(client_quote_id))

            total = Money.of(quote.total_amount, quote.currency)
            paid = Money.of(quote.amount_paid, quote.currency)
            if paid < total:
                raise InsufficientPaymentError(total.amount, paid.amount, quote.currency)
            if quote.status != ClientQuoteStatus.PAID.value:
                raise StateTransitionError(
                    "client_quote", str(quote.id), quote.status, "ordered",
                    "purchase orders are created from paid client quotes",
                )
            existing = self._session.execute(
                select(PurchaseOrderModel.id)
                .where(PurchaseOrderModel.client_quote_id == client_quote_id)
            ).first()
            if existing is not None:
                raise PurchaseOrderExistsError(str(client_quote_id))

            with LogContext.bind(rfq_id=str(quote.rfq_id)):
                try:
                    orders = [
                        self._create_order(quote, lines, actor_id=actor_id)
                        for lines in self._lines_by_supplier(quote.id)
                    ]
                except IntegrityError as exc:
                    # A concurrent creation for the same quote committed first.
                    raise PurchaseOrderExistsError(str(client_quote_id)) from exc

                logger.info("purchase_orders_created", extra={
                    "client_quote_id": str(quote.id),
                    "order_count": len(orders),
                    "po_numbers": [o.po_number for o in orders],
                })
            self._session.commit()
            return [o.to_dto() for o in orders]

        except Exception:
            self._session.rollback()
            raise

    def _lines_by_supplier(self, client_quote_id: UUID) -> list[list[ClientQuoteLineModel]]:
        lines = self._session.execute(
            select(ClientQuoteLineModel)
            .where(ClientQuoteLineModel.client_quote_id == client_quote_id)
            .order_by(ClientQuoteLineModel.line_number)
        ).scalars().all()
        groups: dict[UUID, list[ClientQuoteLineModel]] = {}
        for line in lines:
            groups.setdefault(line.supplier_rfq_id, []).append(line)
        return list(groups.values())

    def _create_order(
        self,
        quote: ClientQuoteModel,
        lines: list[ClientQuoteLineModel],
        *,
        actor_id: UUID,
    ) -> PurchaseOrderModel:
        supplier = self._session.get(SupplierRFQModel, lines[0].supplier_rfq_id)
        supplier_line = self._session.get(SupplierQuoteLineModel, lines[0].supplier_quote_line_id)
        supplier_quote = self._session.get(SupplierQuoteModel, supplier_line.quote_id)

        subtotal = sum_single_currency(
            [Money.of(line.cost_total, line.currency) for line in lines], quote.currency,
        )
        total = subtotal
        for extra in (supplier_quote.delivery_fee, supplier_quote.tax_amount):
            if extra is not None:
                total = total + Money.of(extra, quote.currency)

        now = self._clock.now()
        po_number = self._sequences.next_document_number(
            tenant_code=self._config.tenant_code,
            prefix=self._config.po_number_prefix,
            year=now.year,
            padding=self._config.sequence_padding,
        )
        order = PurchaseOrderModel(
            po_number=po_number,
            client_quote_id=quote.id,
            supplier_rfq_id=supplier.id,
            supplier_name=supplier.supplier_name,
            status=OrderStatus.PENDING_PAYMENT.value,
            currency=quote.currency,
            subtotal=subtotal.round().amount,
            delivery_fee=supplier_quote.delivery_fee,
            tax_amount=supplier_quote.tax_amount,
            total_amount=total.round().amount,
            created_by_id=actor_id,
        )
        for number, line in enumerate(lines, start=1):
            order.lines.append(PurchaseOrderLineModel(
                line_number=number,
                rfq_line_item_id=line.rfq_line_item_id,
                supplier_quote_line_id=line.supplier_quote_line_id,
                client_quote_line_id=line.id,
                name=line.name,
                quantity=line.quantity,
                unit=line.unit,
                currency=line.currency,
                unit_cost=line.supplier_unit_cost,
                line_total=line.cost_total,
                created_by_id=actor_id,
            ))
        self._session.add(order)
        self._session.flush()

        self._append_history(order, None, OrderStatus.PENDING_PAYMENT, actor_id=actor_id, note=None)
        self._activity.record(
            entity_type=PURCHASE_ORDER_ENTITY,
            entity_id=order.id,
            action="create",
            actor_id=actor_id,
            details={
                "po_number": po_number,
                "client_quote_id": quote.id,
                "supplier_rfq_id": supplier.id,
                "total_amount": order.total_amount,
                "currency": order.currency,
            },
        )
        logger.info("purchase_order_created", extra={
            "purchase_order_id": str(order.id),
            "po_number": po_number,
            "supplier_rfq_id": str(supplier.id),
            "line_count": len(lines),
            "total_amount": str(order.total_amount),
        })
        return order

    # =========================================================================
    # Status tracking
    # =========================================================================

    def advance_status(
        self,
        purchase_order_id: UUID,
        to_status: OrderStatus | str,
        *,
        actor_id: UUID,
        note: str | None = None,
        carrier: str | None = None,
        tracking_number: str | None = None,
    ) -> PurchaseOrder:
        """
        Move the order to ``to_status``, which must be the next status.

        Carrier and tracking labels are only accepted on SHIPPED and
        IN_TRANSIT.
        """
        target = OrderStatus(to_status)
        if target is OrderStatus.CANCELLED:
            return self.cancel(purchase_order_id, actor_id=actor_id, reason=note)
        if (carrier or tracking_number) and target not in TRACKING_STATUSES:
            raise ValidationError(
                "carrier", f"tracking labels are recorded on shipment, not on {target.value}",
            )
        extra_values = {}
        if carrier is not None:
            extra_values["carrier"] = carrier
        if tracking_number is not None:
            extra_values["tracking_number"] = tracking_number
        return self._transition(
            purchase_order_id, target,
            actor_id=actor_id, note=note, extra_values=extra_values,
        )

    def advance_to_next(
        self,
        purchase_order_id: UUID,
        *,
        actor_id: UUID,
        note: str | None = None,
    ) -> PurchaseOrder:
        order = self._load(purchase_order_id)
        current = OrderStatus(order.status)
        target = next_status(current)
        if target is None:
            raise StateTransitionError(
                PURCHASE_ORDER_ENTITY, str(purchase_order_id),
                current.value, current.value, f"{current.value} is terminal",
            )
        return self.advance_status(purchase_order_id, target, actor_id=actor_id, note=note)

    def cancel(
        self,
        purchase_order_id: UUID,
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> PurchaseOrder:
        return self._transition(
            purchase_order_id, OrderStatus.CANCELLED,
            actor_id=actor_id, note=reason,
            extra_values={"cancellation_reason": reason},
        )

    def _transition(
        self,
        purchase_order_id: UUID,
        to_status: OrderStatus,
        *,
        actor_id: UUID,
        note: str | None,
        extra_values: dict,
    ) -> PurchaseOrder:
        try:
            order = self._load(purchase_order_id)
            from_status = OrderStatus(order.status)
            ORDER_WORKFLOW.require(
                from_status.value, to_status.value,
                entity_type=PURCHASE_ORDER_ENTITY, entity_id=purchase_order_id,
            )
            transition_status(
                self._session, PurchaseOrderModel, order,
                entity_type=PURCHASE_ORDER_ENTITY,
                to_status=to_status.value,
                extra_values={**extra_values, "updated_by_id": actor_id},
            )
            self._append_history(order, from_status, to_status, actor_id=actor_id, note=note)
            logger.info("order_status_advanced", extra={
                "purchase_order_id": str(order.id),
                "po_number": order.po_number,
                "from_status": from_status.value,
                "to_status": to_status.value,
            })
            self._session.commit()
            return order.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def _append_history(
        self,
        order: PurchaseOrderModel,
        from_status: OrderStatus | None,
        to_status: OrderStatus,
        *,
        actor_id: UUID,
        note: str | None,
    ) -> None:
        recorded = self._session.execute(
            select(func.count())
            .select_from(PurchaseOrderStatusChangeModel)
            .where(PurchaseOrderStatusChangeModel.purchase_order_id == order.id)
        ).scalar_one()
        self._session.add(PurchaseOrderStatusChangeModel(
            purchase_order_id=order.id,
            sequence=recorded + 1,
            from_status=from_status.value if from_status else None,
            to_status=to_status.value,
            changed_at=self._clock.now(),
            note=note,
            created_by_id=actor_id,
        ))
        self._session.flush()

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, purchase_order_id: UUID) -> PurchaseOrder:
        return self._load(purchase_order_id).to_dto()

    def list_for_client_quote(self, client_quote_id: UUID) -> list[PurchaseOrder]:
        rows = self._session.execute(
            select(PurchaseOrderModel)
            .where(PurchaseOrderModel.client_quote_id == client_quote_id)
            .order_by(PurchaseOrderModel.po_number)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def status_history(self, purchase_order_id: UUID) -> list[OrderStatusChange]:
        rows = self._session.execute(
            select(PurchaseOrderStatusChangeModel)
            .where(PurchaseOrderStatusChangeModel.purchase_order_id == purchase_order_id)
            .order_by(PurchaseOrderStatusChangeModel.sequence)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def _load(self, purchase_order_id: UUID) -> PurchaseOrderModel:
        order = self._session.get(PurchaseOrderModel, purchase_order_id)
        if order is None:
            raise EntityNotFoundError(PURCHASE_ORDER_ENTITY, str(purchase_order_id))
        return order
