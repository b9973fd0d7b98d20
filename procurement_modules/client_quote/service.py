"""
Client Quote Module Service (``procurement_modules.client_quote.service``).

Responsibility
--------------
Two services sit here:

* ``QuoteAcceptanceService`` -- records which supplier option is accepted
  for each requested line item (manually or lowest-cost), and finalizes
  acceptance on the RFQ.
* ``ClientQuoteService`` -- builds the marked-up client quote from the
  accepted supplier costs through the pricing engine, moves it through the
  client lifecycle, records client payments and reports profit.

Architecture position
---------------------
**Modules layer** -- thin glue over ``procurement_engines.pricing`` and the
kernel compare-and-set helpers.  Reads RFQ state through
``procurement_modules.rfq``; never writes supplier quotes.

Invariants enforced
-------------------
* Each public method owns the transaction boundary (``commit`` on
  success, ``rollback`` and re-raise on any exception).
* At most one accepted option per requested line item.  A change of
  acceptance is a compare-and-set keyed on the acceptance row's version;
  a writer holding a stale view is rejected, never silently overwrites.
* Client line price == ``client_price(accepted supplier cost, markup)``
  and the supplier quote line it came from is stored with it.
* A built client quote is a snapshot.  Only ``rebuild_client_quote``
  produces different prices, as a new revision; the prior one is kept
  as SUPERSEDED.
* One currency per client quote; mixing raises CurrencyMismatchError.

Failure modes
-------------
* ``StateTransitionError`` -- operation not allowed in the current status.
* ``OptimisticLockError`` -- acceptance changed since the caller read it.
* ``CurrencyMismatchError`` -- options or payments in another currency.
* ``OverpaymentError`` -- payment above the remaining balance.
* ``ValidationError`` -- malformed input, nothing applied.

Audit relevance
---------------
Acceptances, client quote status changes and payments are written to the
activity log with the amounts involved.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from procurement_config.schema import ProcurementConfig
from procurement_engines.pricing import (
    PriceComponent,
    PricedLine,
    PricingLine,
    ProfitSummary,
    price_lines,
    profit_summary,
    resolve_markup,
    sum_single_currency,
    validate_markup,
)
from procurement_engines.reconciliation import MatchClassification
from procurement_kernel.domain.clock import Clock, SystemClock, as_utc
from procurement_kernel.domain.values import Currency, Money, to_decimal
from procurement_kernel.exceptions import (
    CurrencyMismatchError,
    EntityNotFoundError,
    OptimisticLockError,
    OverpaymentError,
    StateTransitionError,
    ValidationError,
)
from procurement_kernel.logging_config import LogContext, get_logger
from procurement_kernel.services.activity_service import ActivityService
from procurement_kernel.services.base import (
    compare_and_set,
    raise_stale_write,
    transition_status,
)
from procurement_kernel.services.sequence_service import SequenceService
from procurement_modules.client_quote.models import (
    ClientPayment,
    ClientQuote,
    ClientQuoteStatus,
    ClientView,
    ClientViewComponent,
    ClientViewLine,
    LineItemAcceptance,
)
from procurement_modules.client_quote.orm import (
    ClientPaymentModel,
    ClientQuoteLineModel,
    ClientQuoteModel,
    LineItemAcceptanceModel,
)
from procurement_modules.client_quote.workflows import (
    CLIENT_QUOTE_WORKFLOW,
    REBUILDABLE_STATUSES,
)
from procurement_modules.rfq.models import RFQ, RFQStatus
from procurement_modules.rfq.orm import (
    RFQLineItemModel,
    RFQModel,
    SupplierQuoteLineModel,
    SupplierQuoteModel,
    SupplierRFQModel,
)
from procurement_modules.rfq.service import RFQ_ENTITY, load_line_options, load_rfq
from procurement_modules.rfq.workflows import RFQ_WORKFLOW

logger = get_logger("modules.client_quote.service")

ACCEPTANCE_ENTITY = "line_item_acceptance"
CLIENT_QUOTE_ENTITY = "client_quote"

# RFQ statuses in which acceptances may still change.
_ACCEPTING_STATUSES = frozenset({RFQStatus.PARTIALLY_QUOTED, RFQStatus.FULLY_QUOTED})

_ACCEPTABLE_CLASSIFICATIONS = frozenset({
    MatchClassification.MATCHED.value,
    MatchClassification.PARTIAL.value,
})


def _acceptance_dto(
    acceptance: LineItemAcceptanceModel,
    line: SupplierQuoteLineModel,
    quote: SupplierQuoteModel,
) -> LineItemAcceptance:
    return LineItemAcceptance(
        id=acceptance.id,
        rfq_id=acceptance.rfq_id,
        rfq_line_item_id=acceptance.rfq_line_item_id,
        supplier_quote_line_id=acceptance.supplier_quote_line_id,
        supplier_rfq_id=acceptance.supplier_rfq_id,
        currency=quote.currency,
        unit_cost=line.unit_price,
        accepted_at=as_utc(acceptance.accepted_at),
        version=acceptance.version,
    )


def load_acceptances(session: Session, rfq_id: UUID) -> list[LineItemAcceptance]:
    """Current acceptances for an RFQ, in requested line order."""
    rows = session.execute(
        select(LineItemAcceptanceModel, SupplierQuoteLineModel, SupplierQuoteModel)
        .join(
            SupplierQuoteLineModel,
            LineItemAcceptanceModel.supplier_quote_line_id == SupplierQuoteLineModel.id,
        )
        .join(SupplierQuoteModel, SupplierQuoteLineModel.quote_id == SupplierQuoteModel.id)
        .join(RFQLineItemModel, LineItemAcceptanceModel.rfq_line_item_id == RFQLineItemModel.id)
        .where(LineItemAcceptanceModel.rfq_id == rfq_id)
        .order_by(RFQLineItemModel.line_number)
    ).all()
    return [_acceptance_dto(a, line, quote) for a, line, quote in rows]


def require_current_options(session: Session, rfq_id: UUID) -> None:
    """Refuse acceptances whose supplier has since submitted a newer quote.

    A resubmission supersedes every line of the previous quote, so a line
    accepted from it no longer carries the supplier's price.
    """
    stale = session.execute(
        select(RFQLineItemModel.name)
        .join(
            LineItemAcceptanceModel,
            LineItemAcceptanceModel.rfq_line_item_id == RFQLineItemModel.id,
        )
        .join(
            SupplierQuoteLineModel,
            LineItemAcceptanceModel.supplier_quote_line_id == SupplierQuoteLineModel.id,
        )
        .join(SupplierRFQModel, LineItemAcceptanceModel.supplier_rfq_id == SupplierRFQModel.id)
        .where(
            LineItemAcceptanceModel.rfq_id == rfq_id,
            or_(
                SupplierRFQModel.current_quote_id.is_(None),
                SupplierRFQModel.current_quote_id != SupplierQuoteLineModel.quote_id,
            ),
        )
        .order_by(RFQLineItemModel.line_number)
    ).scalars().all()
    if stale:
        raise ValidationError(
            "acceptances",
            f"accepted option was superseded by a newer supplier quote for: {', '.join(stale)}",
        )


class QuoteAcceptanceService:
    """
    Records the single accepted supplier option per requested line item.

    Contract
    --------
    * The service enforces that selection is single and recorded, not
      which option is chosen.
    * ``expected_current_id`` lets a caller state which option it believes
      is accepted right now; a mismatch raises OptimisticLockError.

    Guarantees
    ----------
    * Session is committed on success and rolled back on any exception.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._activity = ActivityService(session, self._clock)

    def accept_line_item(
        self,
        rfq_line_item_id: UUID,
        supplier_quote_line_id: UUID,
        *,
        actor_id: UUID,
        expected_current_id: UUID | None = None,
    ) -> LineItemAcceptance:
        """Accept one supplier option for one requested line, superseding any prior one."""
        try:
            acceptance = self._accept(
                rfq_line_item_id,
                supplier_quote_line_id,
                actor_id=actor_id,
                expected_current_id=expected_current_id,
                check_expected=True,
            )
            self._session.commit()
            return acceptance

        except Exception:
            self._session.rollback()
            raise

    def accept_lowest_cost(self, rfq_id: UUID, *, actor_id: UUID) -> list[LineItemAcceptance]:
        """
        Accept the cheapest option on every line that has one.

        Options in different currencies cannot be compared; such a line
        raises CurrencyMismatchError and nothing is accepted.
        """
        try:
            accepted = []
            for line_options in load_line_options(self._session, rfq_id):
                options = line_options.options
                if not options:
                    continue
                currencies = sorted({o.currency for o in options})
                if len(currencies) > 1:
                    raise CurrencyMismatchError(currencies[0], currencies[1])
                cheapest = options[0]
                accepted.append(self._accept(
                    line_options.line_item.id,
                    cheapest.supplier_quote_line_id,
                    actor_id=actor_id,
                    expected_current_id=None,
                    check_expected=False,
                ))
            logger.info("lowest_cost_accepted", extra={
                "rfq_id": str(rfq_id),
                "accepted_count": len(accepted),
            })
            self._session.commit()
            return accepted

        except Exception:
            self._session.rollback()
            raise

    def list_acceptances(self, rfq_id: UUID) -> list[LineItemAcceptance]:
        return load_acceptances(self._session, rfq_id)

    def finalize_acceptance(self, rfq_id: UUID, *, actor_id: UUID) -> RFQ:
        """
        Close acceptance: every line with options must have one accepted.

        Moves the RFQ to QUOTE_ACCEPTED, after which acceptances are fixed.
        """
        try:
            rfq = load_rfq(self._session, rfq_id)
            RFQ_WORKFLOW.require(
                rfq.status, RFQStatus.QUOTE_ACCEPTED.value,
                entity_type=RFQ_ENTITY, entity_id=rfq_id,
            )
            accepted_lines = {a.rfq_line_item_id for a in load_acceptances(self._session, rfq_id)}
            unaccepted = [
                lo.line_item.name
                for lo in load_line_options(self._session, rfq_id)
                if lo.options and lo.line_item.id not in accepted_lines
            ]
            if not accepted_lines:
                raise ValidationError("acceptances", "no line item has an accepted option")
            if unaccepted:
                raise ValidationError(
                    "acceptances", f"no accepted option for: {', '.join(unaccepted)}",
                )
            require_current_options(self._session, rfq_id)

            transition_status(
                self._session, RFQModel, rfq,
                entity_type=RFQ_ENTITY,
                to_status=RFQStatus.QUOTE_ACCEPTED.value,
                extra_values={"updated_by_id": actor_id},
            )
            self._activity.record(
                entity_type=RFQ_ENTITY,
                entity_id=rfq_id,
                action="finalize_acceptance",
                actor_id=actor_id,
                details={"accepted_count": len(accepted_lines)},
            )
            logger.info("rfq_acceptance_finalized", extra={
                "rfq_id": str(rfq_id),
                "accepted_count": len(accepted_lines),
            })
            self._session.commit()
            return rfq.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def _accept(
        self,
        rfq_line_item_id: UUID,
        supplier_quote_line_id: UUID,
        *,
        actor_id: UUID,
        expected_current_id: UUID | None,
        check_expected: bool,
    ) -> LineItemAcceptance:
        item = self._session.get(RFQLineItemModel, rfq_line_item_id)
        if item is None:
            raise EntityNotFoundError("rfq_line_item", str(rfq_line_item_id))
        rfq = load_rfq(self._session, item.rfq_id)
        if RFQStatus(rfq.status) not in _ACCEPTING_STATUSES:
            raise StateTransitionError(
                RFQ_ENTITY, str(rfq.id), rfq.status, rfq.status,
                "line items can only be accepted while quotes are in and acceptance is open",
            )
        line, quote, supplier = self._load_option(supplier_quote_line_id)
        self._check_option(item, line, quote, supplier)

        now = self._clock.now()
        existing = self._session.execute(
            select(LineItemAcceptanceModel)
            .where(LineItemAcceptanceModel.rfq_line_item_id == rfq_line_item_id)
        ).scalar_one_or_none()

        with LogContext.bind(rfq_id=str(rfq.id)):
            if existing is None:
                if check_expected and expected_current_id is not None:
                    raise OptimisticLockError(ACCEPTANCE_ENTITY, str(rfq_line_item_id))
                acceptance = LineItemAcceptanceModel(
                    rfq_id=rfq.id,
                    rfq_line_item_id=rfq_line_item_id,
                    supplier_quote_line_id=line.id,
                    supplier_rfq_id=supplier.id,
                    accepted_at=now,
                    accepted_by_id=actor_id,
                    created_by_id=actor_id,
                )
                self._session.add(acceptance)
                try:
                    self._session.flush()
                except IntegrityError as exc:
                    # Another writer accepted this line first.
                    raise OptimisticLockError(ACCEPTANCE_ENTITY, str(rfq_line_item_id)) from exc
                previous_id = None
            else:
                if check_expected and expected_current_id != existing.supplier_quote_line_id:
                    raise OptimisticLockError(ACCEPTANCE_ENTITY, str(existing.id))
                previous_id = existing.supplier_quote_line_id
                updated = compare_and_set(
                    self._session, LineItemAcceptanceModel, existing.id,
                    read_version=existing.version,
                    values={
                        "supplier_quote_line_id": line.id,
                        "supplier_rfq_id": supplier.id,
                        "accepted_at": now,
                        "accepted_by_id": actor_id,
                        "updated_by_id": actor_id,
                    },
                )
                if not updated:
                    raise_stale_write(
                        self._session, LineItemAcceptanceModel, existing,
                        entity_type=ACCEPTANCE_ENTITY,
                    )
                self._session.refresh(existing)
                acceptance = existing

            self._activity.record(
                entity_type="rfq_line_item",
                entity_id=rfq_line_item_id,
                action="accept",
                actor_id=actor_id,
                details={
                    "supplier_quote_line_id": line.id,
                    "previous_supplier_quote_line_id": previous_id,
                    "unit_cost": line.unit_price,
                    "currency": quote.currency,
                },
            )
            logger.info("line_item_accepted", extra={
                "rfq_line_item_id": str(rfq_line_item_id),
                "supplier_quote_line_id": str(line.id),
                "supplier_rfq_id": str(supplier.id),
                "superseded": previous_id is not None,
            })
        return _acceptance_dto(acceptance, line, quote)

    def _load_option(
        self,
        supplier_quote_line_id: UUID,
    ) -> tuple[SupplierQuoteLineModel, SupplierQuoteModel, SupplierRFQModel]:
        line = self._session.get(SupplierQuoteLineModel, supplier_quote_line_id)
        if line is None:
            raise EntityNotFoundError("supplier_quote_line", str(supplier_quote_line_id))
        quote = self._session.get(SupplierQuoteModel, line.quote_id)
        supplier = self._session.get(SupplierRFQModel, quote.supplier_rfq_id)
        return line, quote, supplier

    @staticmethod
    def _check_option(
        item: RFQLineItemModel,
        line: SupplierQuoteLineModel,
        quote: SupplierQuoteModel,
        supplier: SupplierRFQModel,
    ) -> None:
        if line.rfq_line_item_id != item.id:
            raise ValidationError(
                "supplier_quote_line_id", f"does not answer line item {item.name}",
            )
        if supplier.current_quote_id != quote.id:
            raise ValidationError(
                "supplier_quote_line_id", "belongs to a superseded supplier quote",
            )
        if line.unit_price is None or line.classification not in _ACCEPTABLE_CLASSIFICATIONS:
            raise ValidationError(
                "supplier_quote_line_id", "option carries no usable unit price",
            )


class ClientQuoteService:
    """
    Builds and tracks the client-facing quote.

    Contract
    --------
    * Markup precedence per line: explicit line override, then a markup
      stated for the whole quote, then the line's category markup from
      configuration, then the configured default.
    * ``client_view`` is the only projection meant for the client; it
      carries no supplier cost and no markup.

    Guarantees
    ----------
    * Session is committed on success and rolled back on any exception.
    * Payments accumulate; the quote moves APPROVED -> PAID in the same
      commit as the payment that reaches the total.
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

    # =========================================================================
    # Build
    # =========================================================================

    def build_client_quote(
        self,
        rfq_id: UUID,
        *,
        actor_id: UUID,
        default_markup_percent: Decimal | None = None,
        markup_overrides: Mapping[UUID, Decimal] | None = None,
        components: Mapping[UUID, Sequence[PriceComponent]] | None = None,
        currency: str | None = None,
        client_name: str | None = None,
        notes: str | None = None,
    ) -> ClientQuote:
        """
        Build revision 1 of the client quote for an RFQ whose acceptance is final.

        ``markup_overrides`` and ``components`` are keyed by RFQ line item id.
        """
        try:
            rfq = load_rfq(self._session, rfq_id)
            if rfq.status != RFQStatus.QUOTE_ACCEPTED.value:
                raise StateTransitionError(
                    RFQ_ENTITY, str(rfq_id), rfq.status, RFQStatus.QUOTE_ACCEPTED.value,
                    "client quotes are built once acceptance is final",
                )
            live = self._session.execute(
                select(ClientQuoteModel.quote_number).where(
                    ClientQuoteModel.rfq_id == rfq_id,
                    ClientQuoteModel.status.not_in([
                        ClientQuoteStatus.SUPERSEDED.value,
                        ClientQuoteStatus.REJECTED.value,
                    ]),
                )
            ).scalars().first()
            if live is not None:
                raise ValidationError(
                    "rfq_id", f"client quote {live} already exists; rebuild it instead",
                )

            now = self._clock.now()
            quote_number = self._sequences.next_document_number(
                tenant_code=self._config.tenant_code,
                prefix=self._config.client_quote_number_prefix,
                year=now.year,
                padding=self._config.sequence_padding,
            )
            quote_markup = (
                validate_markup(default_markup_percent, "default_markup_percent")
                if default_markup_percent is not None
                else None
            )
            quote = self._build_revision(
                rfq,
                quote_number=quote_number,
                revision=1,
                quote_markup=quote_markup,
                markup_overrides=markup_overrides or {},
                components=components or {},
                currency=currency,
                client_name=client_name,
                notes=notes,
                supersedes_id=None,
                actor_id=actor_id,
            )
            self._session.commit()
            return quote.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def rebuild_client_quote(
        self,
        client_quote_id: UUID,
        *,
        actor_id: UUID,
        default_markup_percent: Decimal | None = None,
        markup_overrides: Mapping[UUID, Decimal] | None = None,
        components: Mapping[UUID, Sequence[PriceComponent]] | None = None,
        notes: str | None = None,
    ) -> ClientQuote:
        """
        Build the next revision from the current acceptances.

        The prior revision moves to SUPERSEDED and is kept.  Markup
        overrides and components are restated, not carried over; a quote
        markup stated on the prior revision carries over unless given.
        """
        try:
            prior = self._load(client_quote_id)
            if ClientQuoteStatus(prior.status) not in REBUILDABLE_STATUSES:
                raise StateTransitionError(
                    CLIENT_QUOTE_ENTITY, str(client_quote_id),
                    prior.status, ClientQuoteStatus.SUPERSEDED.value,
                    "only draft quotes and quotes with a requested revision are rebuilt",
                )
            rfq = load_rfq(self._session, prior.rfq_id)
            if default_markup_percent is not None:
                quote_markup = validate_markup(default_markup_percent, "default_markup_percent")
            elif prior.markup_explicit:
                quote_markup = prior.default_markup_percent
            else:
                quote_markup = None
            transition_status(
                self._session, ClientQuoteModel, prior,
                entity_type=CLIENT_QUOTE_ENTITY,
                to_status=ClientQuoteStatus.SUPERSEDED.value,
                extra_values={"superseded_at": self._clock.now(), "updated_by_id": actor_id},
            )
            quote = self._build_revision(
                rfq,
                quote_number=prior.quote_number,
                revision=prior.revision + 1,
                quote_markup=quote_markup,
                markup_overrides=markup_overrides or {},
                components=components or {},
                currency=prior.currency,
                client_name=prior.client_name,
                notes=notes if notes is not None else prior.notes,
                supersedes_id=prior.id,
                actor_id=actor_id,
            )
            self._session.commit()
            return quote.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def _build_revision(
        self,
        rfq: RFQModel,
        *,
        quote_number: str,
        revision: int,
        quote_markup: Decimal | None,
        markup_overrides: Mapping[UUID, Decimal],
        components: Mapping[UUID, Sequence[PriceComponent]],
        currency: str | None,
        client_name: str | None,
        notes: str | None,
        supersedes_id: UUID | None,
        actor_id: UUID,
    ) -> ClientQuoteModel:
        acceptances = load_acceptances(self._session, rfq.id)
        if not acceptances:
            raise ValidationError("acceptances", f"{rfq.rfq_number} has no accepted line items")
        require_current_options(self._session, rfq.id)

        quote_currency = Currency(currency or acceptances[0].currency).code
        for acceptance in acceptances:
            if acceptance.currency != quote_currency:
                raise CurrencyMismatchError(quote_currency, acceptance.currency)

        items = {item.id: item for item in rfq.lines}
        unknown = set(markup_overrides) | set(components)
        unknown -= {a.rfq_line_item_id for a in acceptances}
        if unknown:
            raise ValidationError(
                "markup_overrides", f"not accepted line items: {sorted(str(u) for u in unknown)}",
            )

        pricing_lines = []
        for acceptance in acceptances:
            item = items[acceptance.rfq_line_item_id]
            markup = resolve_markup(
                line_override=markup_overrides.get(item.id),
                quote_markup=quote_markup,
                category=item.category,
                category_markups=self._config.pricing.category_markups,
                config_default=self._config.pricing.default_markup_percent,
            )
            pricing_lines.append(PricingLine(
                key=str(item.id),
                currency=acceptance.currency,
                supplier_unit_cost=acceptance.unit_cost,
                quantity=item.quantity,
                markup_percent=markup,
                components=tuple(components.get(item.id, ())),
            ))
        priced = price_lines(pricing_lines)
        total = sum_single_currency(
            [p.line_total_money for p in priced], quote_currency,
        ).round()

        quote = ClientQuoteModel(
            rfq_id=rfq.id,
            quote_number=quote_number,
            revision=revision,
            status=ClientQuoteStatus.DRAFT.value,
            currency=quote_currency,
            default_markup_percent=(
                quote_markup if quote_markup is not None
                else self._config.pricing.default_markup_percent
            ),
            markup_explicit=quote_markup is not None,
            total_amount=total.amount,
            amount_paid=Decimal("0"),
            client_name=client_name,
            notes=notes,
            supersedes_id=supersedes_id,
            created_by_id=actor_id,
        )
        for number, (acceptance, line) in enumerate(zip(acceptances, priced), start=1):
            item = items[acceptance.rfq_line_item_id]
            quote.lines.append(ClientQuoteLineModel(
                line_number=number,
                rfq_line_item_id=item.id,
                supplier_quote_line_id=acceptance.supplier_quote_line_id,
                supplier_rfq_id=acceptance.supplier_rfq_id,
                name=item.name,
                description=item.description,
                category=item.category,
                quantity=line.quantity,
                unit=item.unit,
                currency=line.currency,
                supplier_unit_cost=line.supplier_unit_cost,
                markup_percent=line.markup_percent,
                client_unit_price=line.client_unit_price,
                line_total=line.line_total,
                cost_total=line.cost_total,
                components=[
                    {
                        "name": c.name,
                        "quantity": str(c.quantity),
                        "unit_cost": str(c.unit_cost),
                        "unit_price": str(c.unit_price),
                        "total_price": str(c.total_price),
                    }
                    for c in line.components
                ],
                created_by_id=actor_id,
            ))
        self._session.add(quote)
        self._session.flush()

        self._activity.record(
            entity_type=CLIENT_QUOTE_ENTITY,
            entity_id=quote.id,
            action="build",
            actor_id=actor_id,
            details={
                "quote_number": quote_number,
                "revision": revision,
                "total_amount": quote.total_amount,
                "currency": quote_currency,
                "supersedes_id": supersedes_id,
            },
        )
        logger.info("client_quote_built", extra={
            "client_quote_id": str(quote.id),
            "quote_number": quote_number,
            "revision": revision,
            "line_count": len(priced),
            "total_amount": str(quote.total_amount),
            "currency": quote_currency,
        })
        return quote

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def send_to_client(self, client_quote_id: UUID, *, actor_id: UUID) -> ClientQuote:
        return self._transition(
            client_quote_id, ClientQuoteStatus.SENT_TO_CLIENT,
            actor_id=actor_id,
            extra_values={"sent_at": self._clock.now()},
        )

    def mark_client_reviewing(self, client_quote_id: UUID, *, actor_id: UUID) -> ClientQuote:
        return self._transition(client_quote_id, ClientQuoteStatus.CLIENT_REVIEWING, actor_id=actor_id)

    def approve(self, client_quote_id: UUID, *, actor_id: UUID) -> ClientQuote:
        return self._transition(
            client_quote_id, ClientQuoteStatus.APPROVED,
            actor_id=actor_id,
            extra_values={"approved_at": self._clock.now()},
        )

    def request_revision(
        self,
        client_quote_id: UUID,
        *,
        actor_id: UUID,
        notes: str | None = None,
    ) -> ClientQuote:
        return self._transition(
            client_quote_id, ClientQuoteStatus.REVISION_REQUESTED,
            actor_id=actor_id,
            extra_values={"revision_notes": notes},
        )

    def reject(
        self,
        client_quote_id: UUID,
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> ClientQuote:
        return self._transition(
            client_quote_id, ClientQuoteStatus.REJECTED,
            actor_id=actor_id,
            extra_values={"rejection_reason": reason},
        )

    def _transition(
        self,
        client_quote_id: UUID,
        to_status: ClientQuoteStatus,
        *,
        actor_id: UUID,
        extra_values: dict | None = None,
    ) -> ClientQuote:
        try:
            quote = self._load(client_quote_id)
            from_status = quote.status
            CLIENT_QUOTE_WORKFLOW.require(
                from_status, to_status.value,
                entity_type=CLIENT_QUOTE_ENTITY, entity_id=client_quote_id,
            )
            if to_status == ClientQuoteStatus.SENT_TO_CLIENT and not quote.lines:
                raise ValidationError("lines", "cannot send a client quote without lines")
            values = {"updated_by_id": actor_id}
            values.update(extra_values or {})
            transition_status(
                self._session, ClientQuoteModel, quote,
                entity_type=CLIENT_QUOTE_ENTITY,
                to_status=to_status.value,
                extra_values=values,
            )
            self._activity.record(
                entity_type=CLIENT_QUOTE_ENTITY,
                entity_id=quote.id,
                action=to_status.value,
                actor_id=actor_id,
                details={"from_status": from_status},
            )
            logger.info("client_quote_status_changed", extra={
                "client_quote_id": str(quote.id),
                "from_status": from_status,
                "to_status": to_status.value,
            })
            self._session.commit()
            return quote.to_dto()

        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Payments
    # =========================================================================

    def record_payment(
        self,
        client_quote_id: UUID,
        *,
        amount: Decimal,
        currency: str,
        actor_id: UUID,
        reference: str | None = None,
        method: str | None = None,
    ) -> ClientQuote:
        """
        Record a client payment against an APPROVED quote.

        Partial payments accumulate; the one that reaches the total moves
        the quote to PAID.
        """
        try:
            quote = self._load(client_quote_id)
            payment = Money.of(to_decimal(amount, "amount"), currency)
            if payment.amount <= 0:
                raise ValidationError("amount", f"must be > 0, got {payment.amount}")
            if payment.currency.code != quote.currency:
                raise CurrencyMismatchError(quote.currency, payment.currency.code)
            if quote.status != ClientQuoteStatus.APPROVED.value:
                raise StateTransitionError(
                    CLIENT_QUOTE_ENTITY, str(quote.id),
                    quote.status, ClientQuoteStatus.PAID.value,
                    "payments are recorded against approved quotes",
                )

            total = Money.of(quote.total_amount, quote.currency)
            paid = Money.of(quote.amount_paid, quote.currency)
            balance = total - paid
            if payment > balance:
                raise OverpaymentError(balance.amount, payment.amount, quote.currency)

            now = self._clock.now()
            self._session.add(ClientPaymentModel(
                client_quote_id=quote.id,
                amount=payment.amount,
                currency=quote.currency,
                received_at=now,
                reference=reference,
                method=method,
                created_by_id=actor_id,
            ))
            self._session.flush()

            new_paid = (paid + payment).round()
            values = {"amount_paid": new_paid.amount, "updated_by_id": actor_id}
            if new_paid >= total:
                transition_status(
                    self._session, ClientQuoteModel, quote,
                    entity_type=CLIENT_QUOTE_ENTITY,
                    to_status=ClientQuoteStatus.PAID.value,
                    extra_values={**values, "paid_at": now},
                )
            else:
                updated = compare_and_set(
                    self._session, ClientQuoteModel, quote.id,
                    read_version=quote.version,
                    values=values,
                    expected_status=quote.status,
                )
                if not updated:
                    raise_stale_write(
                        self._session, ClientQuoteModel, quote,
                        entity_type=CLIENT_QUOTE_ENTITY,
                    )
                self._session.refresh(quote)

            self._activity.record(
                entity_type=CLIENT_QUOTE_ENTITY,
                entity_id=quote.id,
                action="payment",
                actor_id=actor_id,
                details={
                    "amount": payment.amount,
                    "currency": quote.currency,
                    "amount_paid": new_paid.amount,
                    "reference": reference,
                },
            )
            logger.info("client_payment_recorded", extra={
                "client_quote_id": str(quote.id),
                "amount": str(payment.amount),
                "amount_paid": str(new_paid.amount),
                "total_amount": str(total.amount),
                "status": quote.status,
            })
            self._session.commit()
            return quote.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def list_payments(self, client_quote_id: UUID) -> list[ClientPayment]:
        rows = self._session.execute(
            select(ClientPaymentModel)
            .where(ClientPaymentModel.client_quote_id == client_quote_id)
            .order_by(ClientPaymentModel.received_at, ClientPaymentModel.id)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    # =========================================================================
    # Reads
    # =========================================================================

    def get_client_quote(self, client_quote_id: UUID) -> ClientQuote:
        return self._load(client_quote_id).to_dto()

    def list_revisions(self, quote_number: str) -> list[ClientQuote]:
        rows = self._session.execute(
            select(ClientQuoteModel)
            .where(ClientQuoteModel.quote_number == quote_number)
            .order_by(ClientQuoteModel.revision)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def client_view(self, client_quote_id: UUID) -> ClientView:
        """Client-facing projection: prices only, never supplier cost or markup."""
        quote = self._load(client_quote_id).to_dto()
        return ClientView(
            quote_number=quote.quote_number,
            revision=quote.revision,
            status=quote.status,
            currency=quote.currency,
            total_amount=quote.total_amount,
            amount_paid=quote.amount_paid,
            balance_due=quote.balance_due,
            client_name=quote.client_name,
            notes=quote.notes,
            lines=tuple(
                ClientViewLine(
                    name=line.name,
                    description=line.description,
                    quantity=line.quantity,
                    unit=line.unit,
                    unit_price=line.client_unit_price,
                    line_total=line.line_total,
                    components=tuple(
                        ClientViewComponent(
                            name=c.name,
                            quantity=c.quantity,
                            unit_price=c.unit_price,
                            total_price=c.total_price,
                        )
                        for c in line.components
                    ),
                )
                for line in quote.lines
            ),
        )

    def profit_summary(self, client_quote_id: UUID) -> dict[str, ProfitSummary]:
        """Supplier cost, client price, profit and margin, per currency."""
        quote = self._load(client_quote_id).to_dto()
        priced = [
            PricedLine(
                key=str(line.rfq_line_item_id),
                currency=line.currency,
                markup_percent=line.markup_percent,
                supplier_unit_cost=line.supplier_unit_cost,
                client_unit_price=line.client_unit_price,
                quantity=line.quantity,
                components=(),
                line_total=line.line_total,
                cost_total=line.cost_total,
            )
            for line in quote.lines
        ]
        return profit_summary(priced)

    def _load(self, client_quote_id: UUID) -> ClientQuoteModel:
        quote = self._session.get(ClientQuoteModel, client_quote_id)
        if quote is None:
            raise EntityNotFoundError(CLIENT_QUOTE_ENTITY, str(client_quote_id))
        return quote
