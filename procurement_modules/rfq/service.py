"""
RFQ Module Service (``procurement_modules.rfq.service``).

Responsibility
--------------
Orchestrates the sourcing half of the workflow: RFQ creation and sending,
supplier invitations and token access, quote submission (document or
manual entry) with reconciliation against the requested line items,
revision permissions, deadline expiry and the per-line comparison of
supplier options.

Architecture position
---------------------
**Modules layer** -- ``RFQService`` is the sole public entry point for RFQ
operations.  It composes the pure ``ReconciliationEngine`` and the kernel
``SequenceService`` / ``ActivityService``.

Invariants enforced
-------------------
* Each public method owns the transaction boundary (``commit`` on
  success, ``rollback`` and re-raise on any exception).
* Every status change is looked up in ``RFQ_WORKFLOW`` /
  ``SUPPLIER_RESPONSE_WORKFLOW`` and applied by compare-and-set against
  the status and version that were read.
* A resubmission inserts a new quote row and moves the supplier's
  ``current_quote_id`` in one conditional UPDATE; readers see either the
  old quote or the new one, never a mix.
* Access tokens are only ever stored as SHA-256 digests.

Failure modes
-------------
* ``InvalidTokenError`` -- token digest unknown.
* ``ExpiredTokenError`` -- submission after the response deadline.
* ``StateTransitionError`` -- operation not allowed in the current status.
* ``DuplicateSubmissionError`` -- two resubmissions for the same supplier
  raced; the loser must reload and retry.
* ``ValidationError`` -- malformed input, nothing applied.

Audit relevance
---------------
Supplier VIEW, DECLINE, SUBMIT_QUOTE and RECONCILE actions and studio
reopen/cancel/revision actions are written to the activity log.

Usage::

    service = RFQService(session, config=get_active_config(), clock=clock)
    rfq = service.create_rfq(title="Lobby furniture", lines=[...], actor_id=actor)
    invitation = service.invite_supplier(rfq.id, supplier_id=sid,
                                         supplier_name="Acme", actor_id=actor)
    service.send_rfq(rfq.id, actor_id=actor)
"""

from __future__ import annotations

import hashlib
import secrets
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from procurement_config.schema import ProcurementConfig, ReconciliationConfig
from procurement_engines.reconciliation import (
    CandidateItem,
    MatchClassification,
    ReconciliationEngine,
    ReconciliationResult,
    ReconciliationSettings,
    RequestedItem,
)
from procurement_kernel.domain.clock import Clock, SystemClock, as_utc
from procurement_kernel.domain.values import Currency, round2, to_decimal
from procurement_kernel.exceptions import (
    DuplicateSubmissionError,
    EntityNotFoundError,
    ExpiredTokenError,
    InvalidTokenError,
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
from procurement_modules.rfq.models import (
    RFQ,
    LineItemOptions,
    ManualQuoteLine,
    QuoteOption,
    QuoteTerms,
    RevisionDraft,
    RevisionDraftLine,
    RFQLineItem,
    RFQLineItemInput,
    RFQStatus,
    SubmissionMethod,
    SubmissionResult,
    SupplierAccess,
    SupplierAction,
    SupplierInvitation,
    SupplierQuote,
    SupplierResponseStatus,
    SupplierRFQ,
)
from procurement_modules.rfq.orm import (
    RFQLineItemModel,
    RFQModel,
    SupplierQuoteLineModel,
    SupplierQuoteModel,
    SupplierRFQModel,
)
from procurement_modules.rfq.workflows import (
    EXPIRABLE_STATUSES,
    INVITABLE_STATUSES,
    OPEN_STATUSES,
    REVISION_PERMITTED,
    RFQ_WORKFLOW,
    SUPPLIER_RESPONSE_WORKFLOW,
)

logger = get_logger("modules.rfq.service")

RFQ_ENTITY = "rfq"
SUPPLIER_RFQ_ENTITY = "supplier_rfq"

# Upstream document extraction: document reference in, best-effort items out.
Extractor = Callable[[str], Sequence[CandidateItem]]

_PRICED_CLASSIFICATIONS = (
    MatchClassification.MATCHED.value,
    MatchClassification.PARTIAL.value,
)


def token_digest(token: str) -> str:
    """SHA-256 hex digest under which an access token is stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def reconciliation_settings(config: ReconciliationConfig) -> ReconciliationSettings:
    return ReconciliationSettings(
        fuzzy_threshold=config.fuzzy_threshold,
        token_weight=config.token_weight,
        edit_weight=config.edit_weight,
        brand_bonus=config.brand_bonus,
        suggestion_limit=config.suggestion_limit,
        total_tolerance=config.total_tolerance,
    )


def load_rfq(session: Session, rfq_id: UUID) -> RFQModel:
    rfq = session.get(RFQModel, rfq_id)
    if rfq is None:
        raise EntityNotFoundError(RFQ_ENTITY, str(rfq_id))
    return rfq


def load_line_options(session: Session, rfq_id: UUID) -> list[LineItemOptions]:
    """
    Every priced option per requested line, across current supplier quotes.

    Only lines linked to a requested item and carrying a unit price count.
    Options are sorted by unit price, then supplier name, then line id.
    """
    rfq = load_rfq(session, rfq_id)
    rows = session.execute(
        select(SupplierQuoteLineModel, SupplierQuoteModel, SupplierRFQModel)
        .join(SupplierQuoteModel, SupplierQuoteLineModel.quote_id == SupplierQuoteModel.id)
        .join(SupplierRFQModel, SupplierRFQModel.current_quote_id == SupplierQuoteModel.id)
        .where(
            SupplierRFQModel.rfq_id == rfq_id,
            SupplierRFQModel.status == SupplierResponseStatus.SUBMITTED.value,
            SupplierQuoteLineModel.rfq_line_item_id.is_not(None),
            SupplierQuoteLineModel.unit_price.is_not(None),
            SupplierQuoteLineModel.classification.in_(_PRICED_CLASSIFICATIONS),
        )
    ).all()

    by_line: dict[UUID, list[QuoteOption]] = {}
    for line, quote, supplier in rows:
        by_line.setdefault(line.rfq_line_item_id, []).append(QuoteOption(
            rfq_line_item_id=line.rfq_line_item_id,
            supplier_rfq_id=supplier.id,
            supplier_name=supplier.supplier_name,
            supplier_quote_id=quote.id,
            supplier_quote_line_id=line.id,
            currency=quote.currency,
            unit_price=line.unit_price,
            classification=MatchClassification(line.classification),
            quantity=line.quantity,
            lead_time=line.lead_time,
        ))

    result = []
    for item in rfq.lines:
        options = sorted(
            by_line.get(item.id, []),
            key=lambda o: (o.unit_price, o.supplier_name, str(o.supplier_quote_line_id)),
        )
        result.append(LineItemOptions(line_item=item.to_dto(), options=tuple(options)))
    return result


class RFQService:
    """
    Orchestrates RFQ and supplier response operations.

    Contract
    --------
    * Public methods return frozen DTOs from ``procurement_modules.rfq.models``.
    * Supplier-facing methods take the plain access token; studio-facing
      methods take identifiers and an ``actor_id``.

    Guarantees
    ----------
    * Session is committed on success and rolled back on any exception.
    * Reconciliation runs once per submission and never blocks it: a
      failing or empty extraction yields a quote flagged
      ``manual_entry_required``.
    * Clock is injectable for deterministic testing.

    Non-goals
    ---------
    * Does NOT extract line items from documents (``extractor`` callable).
    * Does NOT deliver invitations; the caller sends the returned token.
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
        self._reconciler = ReconciliationEngine(
            reconciliation_settings(self._config.reconciliation),
        )

    # =========================================================================
    # RFQ authoring
    # =========================================================================

    def create_rfq(
        self,
        *,
        title: str,
        actor_id: UUID,
        lines: Sequence[RFQLineItemInput] = (),
        description: str = "",
        response_deadline: datetime | None = None,
        project_reference: str | None = None,
    ) -> RFQ:
        """Create a DRAFT RFQ with an allocated ``RFQ-<year>-<counter>`` number."""
        try:
            if not title or not title.strip():
                raise ValidationError("title", "must not be empty")
            for index, line in enumerate(lines):
                _validate_line_input(line, f"lines[{index}]")

            now = self._clock.now()
            deadline = (
                as_utc(response_deadline)
                if response_deadline is not None
                else now + timedelta(days=self._config.rfq.default_response_days)
            )
            rfq_number = self._sequences.next_document_number(
                tenant_code=self._config.tenant_code,
                prefix=self._config.rfq_number_prefix,
                year=now.year,
                padding=self._config.sequence_padding,
            )
            rfq = RFQModel(
                rfq_number=rfq_number,
                title=title.strip(),
                description=description,
                project_reference=project_reference,
                response_deadline=deadline,
                status=RFQStatus.DRAFT.value,
                created_by_id=actor_id,
            )
            self._session.add(rfq)
            for index, line in enumerate(lines, start=1):
                rfq.lines.append(_line_model(line, index, actor_id))
            self._session.flush()

            logger.info("rfq_created", extra={
                "rfq_id": str(rfq.id),
                "rfq_number": rfq_number,
                "line_count": len(lines),
            })
            self._session.commit()
            return rfq.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def add_line_item(
        self,
        rfq_id: UUID,
        line: RFQLineItemInput,
        *,
        actor_id: UUID,
    ) -> RFQLineItem:
        """Append a requested line item. Only while the RFQ is a draft."""
        try:
            rfq = load_rfq(self._session, rfq_id)
            if rfq.status != RFQStatus.DRAFT.value:
                raise ValidationError(
                    "rfq_id",
                    f"{rfq.rfq_number} is {rfq.status}; line items are fixed once sent",
                )
            _validate_line_input(line, "line")
            model = _line_model(line, len(rfq.lines) + 1, actor_id)
            rfq.lines.append(model)
            self._session.flush()
            self._session.commit()
            return model.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def invite_supplier(
        self,
        rfq_id: UUID,
        *,
        supplier_id: UUID,
        supplier_name: str,
        actor_id: UUID,
        supplier_email: str | None = None,
    ) -> SupplierInvitation:
        """
        Invite a supplier and mint its access token.

        The plain token is in the returned invitation only.
        """
        try:
            rfq = load_rfq(self._session, rfq_id)
            if RFQStatus(rfq.status) not in INVITABLE_STATUSES:
                raise StateTransitionError(
                    RFQ_ENTITY, str(rfq_id), rfq.status, rfq.status,
                    "suppliers can only be invited to draft or open RFQs",
                )
            if not supplier_name or not supplier_name.strip():
                raise ValidationError("supplier_name", "must not be empty")
            existing = self._session.execute(
                select(SupplierRFQModel.id).where(
                    SupplierRFQModel.rfq_id == rfq_id,
                    SupplierRFQModel.supplier_id == supplier_id,
                )
            ).scalar_one_or_none()
            if existing is not None:
                raise ValidationError(
                    "supplier_id", f"supplier already invited to {rfq.rfq_number}",
                )

            token = secrets.token_urlsafe(32)
            supplier = SupplierRFQModel(
                rfq_id=rfq_id,
                supplier_id=supplier_id,
                supplier_name=supplier_name.strip(),
                supplier_email=supplier_email,
                token_digest=token_digest(token),
                status=SupplierResponseStatus.PENDING.value,
                created_by_id=actor_id,
            )
            self._session.add(supplier)
            self._session.flush()

            logger.info("rfq_supplier_invited", extra={
                "rfq_id": str(rfq_id),
                "supplier_rfq_id": str(supplier.id),
                "supplier_id": str(supplier_id),
            })
            self._session.commit()
            return SupplierInvitation(supplier_rfq=supplier.to_dto(), access_token=token)

        except Exception:
            self._session.rollback()
            raise

    def send_rfq(self, rfq_id: UUID, *, actor_id: UUID) -> RFQ:
        """DRAFT -> SENT. Needs a line item, an invited supplier and a future deadline."""
        try:
            rfq = load_rfq(self._session, rfq_id)
            RFQ_WORKFLOW.require(
                rfq.status, RFQStatus.SENT.value,
                entity_type=RFQ_ENTITY, entity_id=rfq_id,
            )
            now = self._clock.now()
            if not rfq.lines:
                raise ValidationError("lines", "an RFQ needs at least one line item")
            supplier_count = self._count_suppliers(rfq_id)
            if supplier_count == 0:
                raise ValidationError("suppliers", "an RFQ needs at least one invited supplier")
            if as_utc(rfq.response_deadline) <= now:
                raise ValidationError("response_deadline", "must be in the future")

            transition_status(
                self._session, RFQModel, rfq,
                entity_type=RFQ_ENTITY,
                to_status=RFQStatus.SENT.value,
                extra_values={"sent_at": now, "updated_by_id": actor_id},
            )
            logger.info("rfq_sent", extra={
                "rfq_id": str(rfq_id),
                "rfq_number": rfq.rfq_number,
                "supplier_count": supplier_count,
            })
            self._session.commit()
            return rfq.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def get_rfq(self, rfq_id: UUID) -> RFQ:
        """Read an RFQ, expiring it first if its deadline has passed."""
        try:
            rfq = load_rfq(self._session, rfq_id)
            if self._expire_if_due(rfq):
                self._session.commit()
            return rfq.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def list_suppliers(self, rfq_id: UUID) -> list[SupplierRFQ]:
        rows = self._session.execute(
            select(SupplierRFQModel)
            .where(SupplierRFQModel.rfq_id == rfq_id)
            .order_by(SupplierRFQModel.supplier_name, SupplierRFQModel.id)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    # =========================================================================
    # Studio overrides
    # =========================================================================

    def cancel_rfq(
        self,
        rfq_id: UUID,
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> RFQ:
        """Cancel from any non-terminal status."""
        try:
            rfq = load_rfq(self._session, rfq_id)
            RFQ_WORKFLOW.require(
                rfq.status, RFQStatus.CANCELLED.value,
                entity_type=RFQ_ENTITY, entity_id=rfq_id,
            )
            from_status = rfq.status
            transition_status(
                self._session, RFQModel, rfq,
                entity_type=RFQ_ENTITY,
                to_status=RFQStatus.CANCELLED.value,
                extra_values={
                    "cancelled_at": self._clock.now(),
                    "cancellation_reason": reason,
                    "updated_by_id": actor_id,
                },
            )
            self._activity.record(
                entity_type=RFQ_ENTITY,
                entity_id=rfq_id,
                action="cancel",
                actor_id=actor_id,
                message=reason or "",
                details={"from_status": from_status},
            )
            logger.info("rfq_cancelled", extra={
                "rfq_id": str(rfq_id),
                "from_status": from_status,
            })
            self._session.commit()
            return rfq.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def reopen_rfq(
        self,
        rfq_id: UUID,
        *,
        response_deadline: datetime,
        actor_id: UUID,
    ) -> RFQ:
        """EXPIRED -> SENT with a new deadline. Audited."""
        try:
            rfq = load_rfq(self._session, rfq_id)
            self._expire_if_due(rfq)
            RFQ_WORKFLOW.require(
                rfq.status, RFQStatus.SENT.value,
                entity_type=RFQ_ENTITY, entity_id=rfq_id,
            )
            now = self._clock.now()
            new_deadline = as_utc(response_deadline)
            if new_deadline <= now:
                raise ValidationError("response_deadline", "must be in the future")
            previous_deadline = as_utc(rfq.response_deadline)

            transition_status(
                self._session, RFQModel, rfq,
                entity_type=RFQ_ENTITY,
                to_status=RFQStatus.SENT.value,
                extra_values={
                    "response_deadline": new_deadline,
                    "expired_at": None,
                    "reopen_count": rfq.reopen_count + 1,
                    "updated_by_id": actor_id,
                },
            )
            self._activity.record(
                entity_type=RFQ_ENTITY,
                entity_id=rfq_id,
                action="reopen",
                actor_id=actor_id,
                details={
                    "previous_deadline": previous_deadline,
                    "response_deadline": new_deadline,
                },
            )
            logger.info("rfq_reopened", extra={
                "rfq_id": str(rfq_id),
                "response_deadline": new_deadline.isoformat(),
            })
            self._session.commit()
            return rfq.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def allow_revision(self, supplier_rfq_id: UUID, *, actor_id: UUID) -> SupplierRFQ:
        """Let a supplier revise its submitted quote once."""
        return self._set_revision_allowed(supplier_rfq_id, True, actor_id)

    def revoke_revision(self, supplier_rfq_id: UUID, *, actor_id: UUID) -> SupplierRFQ:
        return self._set_revision_allowed(supplier_rfq_id, False, actor_id)

    def _set_revision_allowed(
        self,
        supplier_rfq_id: UUID,
        allowed: bool,
        actor_id: UUID,
    ) -> SupplierRFQ:
        try:
            supplier = self._load_supplier_rfq(supplier_rfq_id)
            if supplier.status != SupplierResponseStatus.SUBMITTED.value:
                raise StateTransitionError(
                    SUPPLIER_RFQ_ENTITY, str(supplier_rfq_id),
                    supplier.status, SupplierResponseStatus.SUBMITTED.value,
                    "only a submitted response can be opened for revision",
                )
            updated = compare_and_set(
                self._session, SupplierRFQModel, supplier.id,
                read_version=supplier.version,
                values={"revision_allowed": allowed, "updated_by_id": actor_id},
                expected_status=supplier.status,
            )
            if not updated:
                raise_stale_write(
                    self._session, SupplierRFQModel, supplier,
                    entity_type=SUPPLIER_RFQ_ENTITY,
                )
            self._session.refresh(supplier)
            self._activity.record(
                entity_type=SUPPLIER_RFQ_ENTITY,
                entity_id=supplier.id,
                action="allow_revision" if allowed else "revoke_revision",
                actor_id=actor_id,
            )
            self._session.commit()
            return supplier.to_dto()

        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Deadline expiry
    # =========================================================================

    def sweep_expired_rfqs(self, now: datetime | None = None) -> list[UUID]:
        """
        Expire every open RFQ whose deadline has passed.

        Idempotent and safe alongside user operations: a row that another
        writer moved in the meantime is left alone.
        """
        try:
            cutoff = as_utc(now) if now is not None else self._clock.now()
            candidates = self._session.execute(
                select(RFQModel)
                .where(
                    RFQModel.status.in_([s.value for s in EXPIRABLE_STATUSES]),
                    RFQModel.response_deadline < cutoff,
                )
                .order_by(RFQModel.rfq_number)
            ).scalars().all()

            expired: list[UUID] = []
            for rfq in candidates:
                if as_utc(rfq.response_deadline) >= cutoff:
                    continue
                updated = compare_and_set(
                    self._session, RFQModel, rfq.id,
                    read_version=rfq.version,
                    values={"status": RFQStatus.EXPIRED.value, "expired_at": cutoff},
                    expected_status=rfq.status,
                )
                if not updated:
                    logger.info("rfq_expiry_skipped_concurrent_change", extra={
                        "rfq_id": str(rfq.id),
                    })
                    continue
                self._session.refresh(rfq)
                expired.append(rfq.id)

            logger.info("rfq_expiry_sweep_completed", extra={
                "candidate_count": len(candidates),
                "expired_count": len(expired),
            })
            self._session.commit()
            return expired

        except Exception:
            self._session.rollback()
            raise

    def _expire_if_due(self, rfq: RFQModel) -> bool:
        """Lazily expire ``rfq`` (flush only). True if it was expired now."""
        now = self._clock.now()
        if RFQStatus(rfq.status) not in EXPIRABLE_STATUSES:
            return False
        if as_utc(rfq.response_deadline) >= now:
            return False
        transition_status(
            self._session, RFQModel, rfq,
            entity_type=RFQ_ENTITY,
            to_status=RFQStatus.EXPIRED.value,
            extra_values={"expired_at": now},
        )
        logger.info("rfq_expired", extra={
            "rfq_id": str(rfq.id),
            "rfq_number": rfq.rfq_number,
        })
        return True

    # =========================================================================
    # Supplier access
    # =========================================================================

    def resolve_access(self, token: str) -> SupplierAccess:
        """Turn a presented token into the operations it currently grants."""
        try:
            supplier = self._supplier_for_token(token)
            rfq = load_rfq(self._session, supplier.rfq_id)
            if self._expire_if_due(rfq):
                self._session.commit()
            return self._access_for(supplier, rfq)

        except Exception:
            self._session.rollback()
            raise

    def record_view(self, token: str) -> SupplierAccess:
        """Log a view; the first one moves PENDING -> VIEWED. Allowed even after expiry."""
        try:
            supplier = self._supplier_for_token(token)
            rfq = load_rfq(self._session, supplier.rfq_id)
            self._expire_if_due(rfq)
            with LogContext.bind(rfq_id=str(rfq.id)):
                if supplier.status == SupplierResponseStatus.PENDING.value:
                    SUPPLIER_RESPONSE_WORKFLOW.require(
                        supplier.status, SupplierResponseStatus.VIEWED.value,
                        entity_type=SUPPLIER_RFQ_ENTITY, entity_id=supplier.id,
                    )
                    transition_status(
                        self._session, SupplierRFQModel, supplier,
                        entity_type=SUPPLIER_RFQ_ENTITY,
                        to_status=SupplierResponseStatus.VIEWED.value,
                        extra_values={"viewed_at": self._clock.now()},
                    )
                    logger.info("supplier_rfq_viewed", extra={
                        "supplier_rfq_id": str(supplier.id),
                    })
                self._activity.record(
                    entity_type=SUPPLIER_RFQ_ENTITY,
                    entity_id=supplier.id,
                    action=SupplierAction.VIEW.value,
                    actor_id=supplier.supplier_id,
                )
            self._session.commit()
            return self._access_for(supplier, rfq)

        except Exception:
            self._session.rollback()
            raise

    def decline(self, token: str, *, reason: str | None = None) -> SupplierRFQ:
        """Supplier declines to quote. Counts as a final response."""
        try:
            supplier = self._supplier_for_token(token)
            rfq = load_rfq(self._session, supplier.rfq_id)
            self._check_open_for_response(supplier, rfq)
            SUPPLIER_RESPONSE_WORKFLOW.require(
                supplier.status, SupplierResponseStatus.DECLINED.value,
                entity_type=SUPPLIER_RFQ_ENTITY, entity_id=supplier.id,
            )
            transition_status(
                self._session, SupplierRFQModel, supplier,
                entity_type=SUPPLIER_RFQ_ENTITY,
                to_status=SupplierResponseStatus.DECLINED.value,
                extra_values={
                    "declined_at": self._clock.now(),
                    "decline_reason": reason,
                },
            )
            self._activity.record(
                entity_type=SUPPLIER_RFQ_ENTITY,
                entity_id=supplier.id,
                action=SupplierAction.DECLINE.value,
                actor_id=supplier.supplier_id,
                message=reason or "",
            )
            self._recompute_rfq_status(rfq)
            logger.info("supplier_rfq_declined", extra={
                "rfq_id": str(rfq.id),
                "supplier_rfq_id": str(supplier.id),
            })
            self._session.commit()
            return supplier.to_dto()

        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Quote submission
    # =========================================================================

    def submit_document_quote(
        self,
        token: str,
        *,
        document_ref: str,
        terms: QuoteTerms,
        extractor: Extractor | None = None,
    ) -> SubmissionResult:
        """
        Submit an uploaded quote document.

        ``extractor`` turns the document into candidate items.  When it is
        missing, raises, or returns nothing, the quote is still recorded
        with every requested line missing and ``manual_entry_required`` set.
        """
        if not document_ref:
            raise ValidationError("document_ref", "must not be empty")

        candidates: Sequence[CandidateItem] = ()
        if extractor is not None:
            try:
                candidates = tuple(extractor(document_ref) or ())
            except Exception as exc:
                logger.warning("quote_extraction_failed", extra={
                    "document_ref": document_ref,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                })
                candidates = ()

        return self._submit(
            token,
            method=SubmissionMethod.DOCUMENT,
            terms=terms,
            candidates_for=lambda rfq: candidates,
            document_ref=document_ref,
        )

    def submit_manual_quote(
        self,
        token: str,
        *,
        lines: Sequence[ManualQuoteLine],
        terms: QuoteTerms,
    ) -> SubmissionResult:
        """Submit prices typed in per requested line item."""
        if not lines:
            raise ValidationError("lines", "a manual quote needs at least one line")

        def candidates_for(rfq: RFQModel) -> Sequence[CandidateItem]:
            by_id = {item.id: item for item in rfq.lines}
            seen: set[UUID] = set()
            items = []
            for index, line in enumerate(lines):
                field = f"lines[{index}]"
                requested = by_id.get(line.rfq_line_item_id)
                if requested is None:
                    raise ValidationError(
                        f"{field}.rfq_line_item_id", "not a line item of this RFQ",
                    )
                if line.rfq_line_item_id in seen:
                    raise ValidationError(
                        f"{field}.rfq_line_item_id", "line item priced more than once",
                    )
                seen.add(line.rfq_line_item_id)
                unit_price = to_decimal(line.unit_price, f"{field}.unit_price")
                if unit_price < 0:
                    raise ValidationError(f"{field}.unit_price", "must be >= 0")
                quantity = None
                if line.quantity is not None:
                    quantity = to_decimal(line.quantity, f"{field}.quantity")
                    if quantity <= 0:
                        raise ValidationError(f"{field}.quantity", "must be > 0")
                items.append(CandidateItem(
                    name=requested.name,
                    sku=requested.sku,
                    unit_price=unit_price,
                    quantity=quantity,
                    brand=requested.brand,
                    lead_time=line.lead_time,
                    notes=line.notes,
                    requested_key=str(requested.id),
                ))
            return items

        return self._submit(
            token,
            method=SubmissionMethod.MANUAL,
            terms=terms,
            candidates_for=candidates_for,
        )

    def _submit(
        self,
        token: str,
        *,
        method: SubmissionMethod,
        terms: QuoteTerms,
        candidates_for: Callable[[RFQModel], Sequence[CandidateItem]],
        document_ref: str | None = None,
    ) -> SubmissionResult:
        try:
            supplier = self._supplier_for_token(token)
            rfq = load_rfq(self._session, supplier.rfq_id)
            if self._expire_if_due(rfq):
                # Persist the expiry even though the submission is refused.
                self._session.commit()
            self._check_open_for_response(supplier, rfq)
            self._check_may_submit(supplier)

            currency = Currency(terms.currency).code
            delivery_fee = _optional_amount(terms.delivery_fee, "delivery_fee")
            tax_amount = _optional_amount(terms.tax_amount, "tax_amount")
            declared_total = _optional_amount(terms.declared_total, "declared_total")
            candidates = list(candidates_for(rfq))

            with LogContext.bind(rfq_id=str(rfq.id)):
                result = self._reconcile(rfq, candidates, declared_total, delivery_fee, tax_amount)
                quote = self._insert_quote(
                    supplier, rfq, method, terms, currency, candidates, result,
                    document_ref=document_ref,
                    delivery_fee=delivery_fee,
                    tax_amount=tax_amount,
                    declared_total=declared_total,
                )
                self._swap_current_quote(supplier, quote)
                self._activity.record(
                    entity_type=SUPPLIER_RFQ_ENTITY,
                    entity_id=supplier.id,
                    action=SupplierAction.SUBMIT_QUOTE.value,
                    actor_id=supplier.supplier_id,
                    details={
                        "quote_id": quote.id,
                        "revision": quote.revision,
                        "method": method.value,
                        "total_amount": quote.total_amount,
                        "currency": currency,
                    },
                )
                self._activity.record(
                    entity_type=SUPPLIER_RFQ_ENTITY,
                    entity_id=supplier.id,
                    action=SupplierAction.RECONCILE.value,
                    actor_id=supplier.supplier_id,
                    details={
                        "matched": result.summary.matched,
                        "partial": result.summary.partial,
                        "missing": result.summary.missing,
                        "extra": result.summary.extra,
                        "manual_entry_required": result.manual_entry_required,
                        "total_discrepancy": result.summary.total_discrepancy,
                    },
                )
                self._recompute_rfq_status(rfq)

                logger.info("supplier_quote_submitted", extra={
                    "supplier_rfq_id": str(supplier.id),
                    "quote_id": str(quote.id),
                    "revision": quote.revision,
                    "method": method.value,
                    "rfq_status": rfq.status,
                })
            self._session.commit()
            return SubmissionResult(
                quote=quote.to_dto(),
                reconciliation=result,
                rfq_status=RFQStatus(rfq.status),
            )

        except Exception:
            self._session.rollback()
            raise

    def _reconcile(
        self,
        rfq: RFQModel,
        candidates: Sequence[CandidateItem],
        declared_total: Decimal | None,
        delivery_fee: Decimal | None,
        tax_amount: Decimal | None,
    ) -> ReconciliationResult:
        requested = [
            RequestedItem(
                key=str(item.id),
                name=item.name,
                quantity=item.quantity,
                sku=item.sku,
                model_number=item.model_number,
                brand=item.brand,
            )
            for item in rfq.lines
        ]
        # The engine compares goods only; the declared total includes fees.
        declared_goods = None
        if declared_total is not None:
            declared_goods = declared_total - (delivery_fee or 0) - (tax_amount or 0)
        return self._reconciler.reconcile(requested, candidates, declared_goods)

    def _insert_quote(
        self,
        supplier: SupplierRFQModel,
        rfq: RFQModel,
        method: SubmissionMethod,
        terms: QuoteTerms,
        currency: str,
        candidates: Sequence[CandidateItem],
        result: ReconciliationResult,
        *,
        document_ref: str | None,
        delivery_fee: Decimal | None,
        tax_amount: Decimal | None,
        declared_total: Decimal | None,
    ) -> SupplierQuoteModel:
        revision = supplier.revision_count + 1
        subtotal = result.summary.calculated_total or Decimal("0.00")
        total = (
            declared_total
            if declared_total is not None
            else round2(subtotal + (delivery_fee or 0) + (tax_amount or 0))
        )
        quote = SupplierQuoteModel(
            supplier_rfq_id=supplier.id,
            revision=revision,
            quote_number=terms.quote_number or f"SQ-{rfq.rfq_number}-{revision}",
            currency=currency,
            submission_method=method.value,
            document_ref=document_ref,
            delivery_fee=delivery_fee,
            tax_amount=tax_amount,
            declared_total=declared_total,
            subtotal=subtotal,
            total_amount=total,
            valid_until=terms.valid_until,
            payment_terms=terms.payment_terms,
            supplier_notes=terms.supplier_notes,
            manual_entry_required=result.manual_entry_required,
            discrepancies=list(result.discrepancy_messages),
            submitted_at=self._clock.now(),
            created_by_id=supplier.supplier_id,
        )

        paired = {
            line.candidate_index: line for line in result.lines if line.candidate_index is not None
        }
        extras = {extra.candidate_index: extra for extra in result.extras}
        for j, cand in enumerate(candidates):
            match = paired.get(j)
            if match is not None:
                rfq_line_item_id = UUID(match.requested.key)
                classification = match.classification.value
                confidence = match.confidence
                notes = list(match.discrepancies)
                line_total = cand.total_for(match.requested.quantity)
            else:
                rfq_line_item_id = None
                classification = MatchClassification.EXTRA.value
                confidence = None
                notes = [
                    f"Extra: possibly {s.requested_name} ({s.score})"
                    for s in extras[j].suggestions
                ]
                line_total = cand.calculated_total
            quote.lines.append(SupplierQuoteLineModel(
                line_number=j + 1,
                rfq_line_item_id=rfq_line_item_id,
                name=cand.name or "",
                sku=cand.sku,
                brand=cand.brand,
                unit_price=cand.unit_price,
                quantity=cand.quantity,
                line_total=line_total,
                lead_time=cand.lead_time,
                notes=cand.notes,
                classification=classification,
                confidence=confidence,
                discrepancies=notes,
                created_by_id=supplier.supplier_id,
            ))

        self._session.add(quote)
        try:
            self._session.flush()
        except IntegrityError as exc:
            # Another submission claimed this revision number first.
            raise DuplicateSubmissionError(str(supplier.id)) from exc
        return quote

    def _swap_current_quote(
        self,
        supplier: SupplierRFQModel,
        quote: SupplierQuoteModel,
    ) -> None:
        """Point the supplier at ``quote`` and supersede the prior one, atomically."""
        previous_id = supplier.current_quote_id
        from_status = supplier.status
        to_status = SupplierResponseStatus.SUBMITTED.value
        if from_status != to_status:
            SUPPLIER_RESPONSE_WORKFLOW.require(
                from_status, to_status,
                entity_type=SUPPLIER_RFQ_ENTITY, entity_id=supplier.id,
            )
        updated = compare_and_set(
            self._session, SupplierRFQModel, supplier.id,
            read_version=supplier.version,
            values={
                "status": to_status,
                "current_quote_id": quote.id,
                "submitted_at": quote.submitted_at,
                "revision_count": quote.revision,
                "revision_allowed": self._config.rfq.allow_revisions_by_default,
            },
            expected_status=from_status,
        )
        if not updated:
            raise DuplicateSubmissionError(str(supplier.id))
        if previous_id is not None:
            previous = self._session.get(SupplierQuoteModel, previous_id)
            previous.superseded_at = quote.submitted_at
            self._session.flush()
        self._session.refresh(supplier)

    def _recompute_rfq_status(self, rfq: RFQModel) -> None:
        """FULLY_QUOTED when everyone answered, PARTIALLY_QUOTED when some did."""
        statuses = self._session.execute(
            select(SupplierRFQModel.status).where(SupplierRFQModel.rfq_id == rfq.id)
        ).scalars().all()
        target = _aggregate_response_status([SupplierResponseStatus(s) for s in statuses])
        if target is None or target.value == rfq.status:
            return
        if not RFQ_WORKFLOW.can_transition(rfq.status, target.value):
            return
        from_status = rfq.status
        transition_status(
            self._session, RFQModel, rfq,
            entity_type=RFQ_ENTITY,
            to_status=target.value,
        )
        logger.info("rfq_status_recomputed", extra={
            "rfq_id": str(rfq.id),
            "from_status": from_status,
            "to_status": target.value,
        })

    # =========================================================================
    # Quote reads
    # =========================================================================

    def get_current_quote(self, supplier_rfq_id: UUID) -> SupplierQuote | None:
        supplier = self._load_supplier_rfq(supplier_rfq_id)
        if supplier.current_quote_id is None:
            return None
        return self._session.get(SupplierQuoteModel, supplier.current_quote_id).to_dto()

    def list_quote_revisions(self, supplier_rfq_id: UUID) -> list[SupplierQuote]:
        """All submitted revisions, oldest first, superseded ones included."""
        rows = self._session.execute(
            select(SupplierQuoteModel)
            .where(SupplierQuoteModel.supplier_rfq_id == supplier_rfq_id)
            .order_by(SupplierQuoteModel.revision)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def get_revision_draft(self, supplier_rfq_id: UUID) -> RevisionDraft:
        """
        Pre-fill for a revision: lead times, notes and terms of the current
        quote, keyed by requested line item.  Prices are left out.
        """
        supplier = self._load_supplier_rfq(supplier_rfq_id)
        if supplier.current_quote_id is None:
            raise EntityNotFoundError("supplier_quote", f"current quote of {supplier_rfq_id}")
        quote = self._session.get(SupplierQuoteModel, supplier.current_quote_id)
        lines = tuple(
            RevisionDraftLine(
                rfq_line_item_id=line.rfq_line_item_id,
                lead_time=line.lead_time,
                notes=line.notes,
            )
            for line in quote.lines
            if line.rfq_line_item_id is not None
        )
        return RevisionDraft(
            supplier_rfq_id=supplier.id,
            currency=quote.currency,
            lines=lines,
            payment_terms=quote.payment_terms,
            supplier_notes=quote.supplier_notes,
        )

    def compare_options(self, rfq_id: UUID) -> list[LineItemOptions]:
        """Per requested line, every priced supplier option, cheapest first."""
        return load_line_options(self._session, rfq_id)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _count_suppliers(self, rfq_id: UUID) -> int:
        return self._session.execute(
            select(func.count(SupplierRFQModel.id)).where(SupplierRFQModel.rfq_id == rfq_id)
        ).scalar_one()

    def _load_supplier_rfq(self, supplier_rfq_id: UUID) -> SupplierRFQModel:
        supplier = self._session.get(SupplierRFQModel, supplier_rfq_id)
        if supplier is None:
            raise EntityNotFoundError(SUPPLIER_RFQ_ENTITY, str(supplier_rfq_id))
        return supplier

    def _supplier_for_token(self, token: str) -> SupplierRFQModel:
        if not token:
            raise InvalidTokenError()
        supplier = self._session.execute(
            select(SupplierRFQModel).where(SupplierRFQModel.token_digest == token_digest(token))
        ).scalar_one_or_none()
        if supplier is None:
            logger.warning("supplier_token_rejected")
            raise InvalidTokenError()
        return supplier

    def _is_past_deadline(self, rfq: RFQModel) -> bool:
        return (
            rfq.status == RFQStatus.EXPIRED.value
            or as_utc(rfq.response_deadline) < self._clock.now()
        )

    def _check_open_for_response(self, supplier: SupplierRFQModel, rfq: RFQModel) -> None:
        if self._is_past_deadline(rfq):
            raise ExpiredTokenError(str(supplier.id), as_utc(rfq.response_deadline).isoformat())
        if RFQStatus(rfq.status) not in OPEN_STATUSES:
            raise StateTransitionError(
                RFQ_ENTITY, str(rfq.id), rfq.status, rfq.status,
                "RFQ is not open for supplier responses",
            )

    def _check_may_submit(self, supplier: SupplierRFQModel) -> None:
        status = supplier.status
        if status == SupplierResponseStatus.SUBMITTED.value:
            if not supplier.revision_allowed:
                raise StateTransitionError(
                    SUPPLIER_RFQ_ENTITY, str(supplier.id), status, status,
                    f"resubmission requires: {REVISION_PERMITTED.description}",
                )
            return
        SUPPLIER_RESPONSE_WORKFLOW.require(
            status, SupplierResponseStatus.SUBMITTED.value,
            entity_type=SUPPLIER_RFQ_ENTITY, entity_id=supplier.id,
        )

    def _access_for(self, supplier: SupplierRFQModel, rfq: RFQModel) -> SupplierAccess:
        expired = self._is_past_deadline(rfq)
        status = SupplierResponseStatus(supplier.status)
        can_submit = (
            not expired
            and RFQStatus(rfq.status) in OPEN_STATUSES
            and status != SupplierResponseStatus.DECLINED
            and (status != SupplierResponseStatus.SUBMITTED or supplier.revision_allowed)
        )
        return SupplierAccess(
            supplier_rfq_id=supplier.id,
            rfq_id=rfq.id,
            can_view=True,
            can_submit=can_submit,
            expired=expired,
            status=status,
        )


def _aggregate_response_status(
    statuses: Sequence[SupplierResponseStatus],
) -> RFQStatus | None:
    answered = {SupplierResponseStatus.SUBMITTED, SupplierResponseStatus.DECLINED}
    waiting = {SupplierResponseStatus.PENDING, SupplierResponseStatus.VIEWED}
    if statuses and all(s in answered for s in statuses):
        return RFQStatus.FULLY_QUOTED
    if SupplierResponseStatus.SUBMITTED in statuses and any(s in waiting for s in statuses):
        return RFQStatus.PARTIALLY_QUOTED
    return None


def _validate_line_input(line: RFQLineItemInput, field: str) -> None:
    if not line.name or not line.name.strip():
        raise ValidationError(f"{field}.name", "must not be empty")
    quantity = to_decimal(line.quantity, f"{field}.quantity")
    if quantity <= 0:
        raise ValidationError(f"{field}.quantity", f"must be > 0, got {quantity}")


def _line_model(line: RFQLineItemInput, line_number: int, actor_id: UUID) -> RFQLineItemModel:
    return RFQLineItemModel(
        line_number=line_number,
        name=line.name.strip(),
        description=line.description,
        quantity=to_decimal(line.quantity, "quantity"),
        unit=line.unit,
        sku=line.sku,
        model_number=line.model_number,
        brand=line.brand,
        category=line.category,
        notes=line.notes,
        created_by_id=actor_id,
    )


def _optional_amount(value: Decimal | None, field: str) -> Decimal | None:
    if value is None:
        return None
    amount = to_decimal(value, field)
    if amount < 0:
        raise ValidationError(field, f"must be >= 0, got {amount}")
    return amount
