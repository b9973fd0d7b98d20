"""
Tests for RFQService.

Covers RFQ authoring and sending, supplier token access, document and
manual quote submission with reconciliation, response status roll-up,
revisions, deadline expiry and reopen, cancellation and option comparison.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import pytest
from sqlalchemy import select, update

from procurement_engines.reconciliation import CandidateItem, MatchClassification, MatchMethod
from procurement_kernel.exceptions import (
    DuplicateSubmissionError,
    EntityNotFoundError,
    ExpiredTokenError,
    InvalidTokenError,
    StateTransitionError,
    ValidationError,
)
from procurement_kernel.services.activity_service import ActivityService
from procurement_kernel.services.base import compare_and_set
from procurement_modules.rfq.models import (
    ManualQuoteLine,
    QuoteTerms,
    RFQLineItemInput,
    RFQStatus,
    SubmissionMethod,
    SupplierResponseStatus,
)
from procurement_modules.rfq.orm import SupplierQuoteModel, SupplierRFQModel
from procurement_modules.rfq.service import token_digest

SOFA_ONLY = (RFQLineItemInput(name="Sofa", quantity=Decimal("2"), sku="ABC-1"),)


# =============================================================================
# Authoring
# =============================================================================


class TestCreateRFQ:
    def test_draft_with_number_and_default_deadline(self, rfq_service, test_actor_id, deterministic_clock):
        rfq = rfq_service.create_rfq(
            title="  Lobby refresh ",
            actor_id=test_actor_id,
            lines=[RFQLineItemInput(name="Sofa", quantity=Decimal("2"))],
        )
        assert rfq.rfq_number == "RFQ-2026-0001"
        assert rfq.title == "Lobby refresh"
        assert rfq.status == RFQStatus.DRAFT
        assert rfq.response_deadline == deterministic_clock.now() + timedelta(days=14)
        assert [line.line_number for line in rfq.lines] == [1]

    def test_numbers_increase(self, rfq_service, test_actor_id):
        first = rfq_service.create_rfq(title="A", actor_id=test_actor_id)
        second = rfq_service.create_rfq(title="B", actor_id=test_actor_id)
        assert (first.rfq_number, second.rfq_number) == ("RFQ-2026-0001", "RFQ-2026-0002")

    def test_blank_title_rejected(self, rfq_service, test_actor_id):
        with pytest.raises(ValidationError) as exc_info:
            rfq_service.create_rfq(title="   ", actor_id=test_actor_id)
        assert exc_info.value.field == "title"

    def test_non_positive_quantity_rejected(self, rfq_service, test_actor_id):
        with pytest.raises(ValidationError) as exc_info:
            rfq_service.create_rfq(
                title="Lobby",
                actor_id=test_actor_id,
                lines=[RFQLineItemInput(name="Sofa", quantity=Decimal("0"))],
            )
        assert exc_info.value.field == "lines[0].quantity"

    def test_add_line_item_while_draft(self, flow, test_actor_id):
        rfq = flow.draft()
        line = flow.rfqs.add_line_item(
            rfq.id, RFQLineItemInput(name="Rug", quantity=Decimal("1")), actor_id=test_actor_id,
        )
        assert line.line_number == 3
        assert len(flow.rfqs.get_rfq(rfq.id).lines) == 3

    def test_lines_fixed_once_sent(self, flow, test_actor_id):
        rfq = flow.send()
        with pytest.raises(ValidationError):
            flow.rfqs.add_line_item(
                rfq.id, RFQLineItemInput(name="Rug", quantity=Decimal("1")), actor_id=test_actor_id,
            )


class TestSendRFQ:
    def test_send(self, flow, deterministic_clock):
        rfq = flow.send()
        assert rfq.status == RFQStatus.SENT
        assert rfq.sent_at == deterministic_clock.now()
        assert rfq.version == 2

    def test_needs_supplier(self, flow, test_actor_id):
        rfq = flow.draft(suppliers=())
        with pytest.raises(ValidationError) as exc_info:
            flow.rfqs.send_rfq(rfq.id, actor_id=test_actor_id)
        assert exc_info.value.field == "suppliers"
        assert flow.rfqs.get_rfq(rfq.id).status == RFQStatus.DRAFT

    def test_needs_line_items(self, flow, test_actor_id):
        rfq = flow.draft(lines=())
        with pytest.raises(ValidationError) as exc_info:
            flow.rfqs.send_rfq(rfq.id, actor_id=test_actor_id)
        assert exc_info.value.field == "lines"

    def test_deadline_must_be_future(self, rfq_service, test_actor_id, deterministic_clock):
        rfq = rfq_service.create_rfq(
            title="Lobby",
            actor_id=test_actor_id,
            lines=SOFA_ONLY,
            response_deadline=deterministic_clock.now() - timedelta(hours=1),
        )
        rfq_service.invite_supplier(
            rfq.id, supplier_id=uuid4(), supplier_name="Atelier Nord", actor_id=test_actor_id,
        )
        with pytest.raises(ValidationError) as exc_info:
            rfq_service.send_rfq(rfq.id, actor_id=test_actor_id)
        assert exc_info.value.field == "response_deadline"

    def test_send_twice_rejected(self, flow, test_actor_id):
        rfq = flow.send()
        with pytest.raises(StateTransitionError):
            flow.rfqs.send_rfq(rfq.id, actor_id=test_actor_id)

    def test_unknown_rfq(self, rfq_service, test_actor_id):
        with pytest.raises(EntityNotFoundError):
            rfq_service.send_rfq(uuid4(), actor_id=test_actor_id)


# =============================================================================
# Supplier access
# =============================================================================


class TestSupplierAccess:
    def test_token_stored_as_digest_only(self, flow, session):
        flow.send()
        token = flow.tokens["Atelier Nord"]
        stored = session.execute(
            select(SupplierRFQModel.token_digest)
            .where(SupplierRFQModel.id == flow.supplier_rfq_ids["Atelier Nord"])
        ).scalar_one()
        assert stored == token_digest(token)
        assert stored != token

    def test_duplicate_invitation_rejected(self, flow, test_actor_id):
        rfq = flow.draft()
        with pytest.raises(ValidationError) as exc_info:
            flow.rfqs.invite_supplier(
                rfq.id,
                supplier_id=flow.rfqs.list_suppliers(rfq.id)[0].supplier_id,
                supplier_name="Atelier Nord",
                actor_id=test_actor_id,
            )
        assert exc_info.value.field == "supplier_id"

    def test_unknown_token(self, flow):
        flow.send()
        with pytest.raises(InvalidTokenError):
            flow.rfqs.resolve_access("not-a-token")
        with pytest.raises(InvalidTokenError):
            flow.rfqs.resolve_access("")

    def test_resolve_access_grants_submit(self, flow):
        flow.send()
        access = flow.rfqs.resolve_access(flow.tokens["Atelier Nord"])
        assert access.can_view and access.can_submit
        assert access.expired is False
        assert access.supplier_rfq_id == flow.supplier_rfq_ids["Atelier Nord"]

    def test_first_view_moves_pending_to_viewed(self, flow, session, deterministic_clock):
        flow.send()
        token = flow.tokens["Atelier Nord"]
        flow.rfqs.record_view(token)
        deterministic_clock.advance(300)
        access = flow.rfqs.record_view(token)
        assert access.status == SupplierResponseStatus.VIEWED

        supplier_rfq_id = flow.supplier_rfq_ids["Atelier Nord"]
        (supplier,) = [s for s in flow.rfqs.list_suppliers(flow.rfq.id) if s.id == supplier_rfq_id]
        assert supplier.viewed_at == deterministic_clock.now() - timedelta(seconds=300)
        views = ActivityService(session).list_for("supplier_rfq", supplier_rfq_id, action="view")
        assert len(views) == 2

    def test_decline(self, flow):
        flow.send()
        declined = flow.rfqs.decline(flow.tokens["Bexley Supply"], reason="Out of stock")
        assert declined.status == SupplierResponseStatus.DECLINED
        assert declined.decline_reason == "Out of stock"
        access = flow.rfqs.resolve_access(flow.tokens["Bexley Supply"])
        assert access.can_submit is False

    def test_declined_supplier_cannot_submit(self, flow):
        flow.send()
        flow.rfqs.decline(flow.tokens["Bexley Supply"])
        with pytest.raises(StateTransitionError):
            flow.quote("Bexley Supply", {"Sofa": Decimal("900")})


# =============================================================================
# Submission and reconciliation
# =============================================================================


class TestDocumentSubmission:
    def test_exact_sku_match(self, flow):
        """Sofa, SKU ABC-1, qty 2 answered by sku abc-1 at 500 x 2."""
        flow.send(lines=SOFA_ONLY, suppliers=("Atelier Nord",))
        result = flow.rfqs.submit_document_quote(
            flow.tokens["Atelier Nord"],
            document_ref="uploads/atelier-q118.pdf",
            terms=QuoteTerms(currency="CAD"),
            extractor=lambda ref: [
                CandidateItem(sku="abc-1", unit_price=Decimal("500"), quantity=Decimal("2")),
            ],
        )
        line = result.reconciliation.lines[0]
        assert line.classification == MatchClassification.MATCHED
        assert line.method == MatchMethod.EXACT_KEY
        assert line.confidence == Decimal("1")
        assert result.quote.submission_method == SubmissionMethod.DOCUMENT
        assert result.quote.subtotal == Decimal("1000.00")
        assert result.quote.lines[0].rfq_line_item_id == flow.line_id("Sofa")

    def test_fuzzy_name_with_short_quantity_is_partial(self, flow):
        flow.send(lines=SOFA_ONLY, suppliers=("Atelier Nord",))
        result = flow.rfqs.submit_document_quote(
            flow.tokens["Atelier Nord"],
            document_ref="uploads/atelier-q118.pdf",
            terms=QuoteTerms(currency="CAD"),
            extractor=lambda ref: [
                CandidateItem(name="Modern Sofa", unit_price=Decimal("500"), quantity=Decimal("1")),
            ],
        )
        line = result.reconciliation.lines[0]
        assert line.classification == MatchClassification.PARTIAL
        assert line.method == MatchMethod.FUZZY_NAME
        assert result.quote.lines[0].classification == MatchClassification.PARTIAL

    def test_no_extractor_requires_manual_entry(self, flow):
        flow.send()
        result = flow.rfqs.submit_document_quote(
            flow.tokens["Atelier Nord"],
            document_ref="uploads/scan.jpg",
            terms=QuoteTerms(currency="CAD"),
        )
        assert result.quote.manual_entry_required is True
        assert result.reconciliation.summary.missing == 2
        assert result.quote.lines == ()
        assert flow.rfqs.get_current_quote(flow.supplier_rfq_ids["Atelier Nord"]).id == result.quote.id

    def test_failing_extractor_does_not_block_submission(self, flow):
        flow.send()

        def broken(ref):
            raise RuntimeError("OCR service unavailable")

        result = flow.rfqs.submit_document_quote(
            flow.tokens["Atelier Nord"],
            document_ref="uploads/scan.jpg",
            terms=QuoteTerms(currency="CAD"),
            extractor=broken,
        )
        assert result.quote.manual_entry_required is True
        assert result.rfq_status == RFQStatus.PARTIALLY_QUOTED

    def test_extra_line_recorded_with_suggestion_notes(self, flow):
        flow.send(lines=SOFA_ONLY, suppliers=("Atelier Nord",))
        result = flow.rfqs.submit_document_quote(
            flow.tokens["Atelier Nord"],
            document_ref="uploads/atelier.pdf",
            terms=QuoteTerms(currency="CAD"),
            extractor=lambda ref: [
                CandidateItem(sku="ABC-1", unit_price=Decimal("500"), quantity=Decimal("2")),
                CandidateItem(name="White glove delivery", unit_price=Decimal("80")),
            ],
        )
        extra = result.quote.lines[1]
        assert extra.classification == MatchClassification.EXTRA
        assert extra.rfq_line_item_id is None
        assert result.quote.subtotal == Decimal("1080.00")

    def test_empty_document_ref_rejected(self, flow):
        flow.send()
        with pytest.raises(ValidationError):
            flow.rfqs.submit_document_quote(
                flow.tokens["Atelier Nord"], document_ref="", terms=QuoteTerms(currency="CAD"),
            )


class TestManualSubmission:
    def test_manual_quote_matches_every_line(self, flow):
        flow.send()
        result = flow.quote(
            "Atelier Nord",
            {"Sofa": Decimal("1000.00"), "Pendant Lamp": Decimal("200.00")},
            delivery_fee=Decimal("150.00"),
            tax_amount=Decimal("0"),
        )
        quote = result.quote
        assert result.reconciliation.summary.matched == 2
        assert quote.submission_method == SubmissionMethod.MANUAL
        assert quote.revision == 1
        assert quote.is_current
        # unstated quantities are taken at the requested quantity
        assert quote.subtotal == Decimal("2600.00")
        assert quote.total_amount == Decimal("2750.00")

    def test_declared_total_compared_without_fees(self, flow):
        flow.send()
        result = flow.quote(
            "Atelier Nord",
            {"Sofa": Decimal("1000.00"), "Pendant Lamp": Decimal("200.00")},
            delivery_fee=Decimal("150.00"),
            declared_total=Decimal("2750.00"),
        )
        assert result.reconciliation.summary.total_discrepancy is False

        other = flow.quote(
            "Bexley Supply",
            {"Sofa": Decimal("1100.00"), "Pendant Lamp": Decimal("180.00")},
            declared_total=Decimal("3000.00"),
        )
        assert other.reconciliation.summary.total_discrepancy is True
        assert any(d.startswith("Total:") for d in other.quote.discrepancies)
        assert other.quote.total_amount == Decimal("3000.00")

    def test_unknown_currency_rejected(self, flow):
        flow.send()
        with pytest.raises(ValidationError) as exc_info:
            flow.quote("Atelier Nord", {"Sofa": Decimal("1000")}, currency="ZZZ")
        assert exc_info.value.field == "currency"

    def test_line_from_another_rfq_rejected(self, flow):
        flow.send()
        with pytest.raises(ValidationError) as exc_info:
            flow.rfqs.submit_manual_quote(
                flow.tokens["Atelier Nord"],
                lines=[ManualQuoteLine(rfq_line_item_id=uuid4(), unit_price=Decimal("10"))],
                terms=QuoteTerms(currency="CAD"),
            )
        assert exc_info.value.field == "lines[0].rfq_line_item_id"

    def test_line_priced_twice_rejected(self, flow):
        flow.send()
        sofa = flow.line_id("Sofa")
        with pytest.raises(ValidationError):
            flow.rfqs.submit_manual_quote(
                flow.tokens["Atelier Nord"],
                lines=[
                    ManualQuoteLine(rfq_line_item_id=sofa, unit_price=Decimal("10")),
                    ManualQuoteLine(rfq_line_item_id=sofa, unit_price=Decimal("12")),
                ],
                terms=QuoteTerms(currency="CAD"),
            )

    def test_negative_price_rejected(self, flow):
        flow.send()
        with pytest.raises(ValidationError):
            flow.quote("Atelier Nord", {"Sofa": Decimal("-1")})

    def test_empty_manual_quote_rejected(self, flow):
        flow.send()
        with pytest.raises(ValidationError):
            flow.rfqs.submit_manual_quote(
                flow.tokens["Atelier Nord"], lines=[], terms=QuoteTerms(currency="CAD"),
            )

    def test_submission_activity_recorded(self, flow, session):
        flow.send()
        flow.quote("Atelier Nord", {"Sofa": Decimal("1000")})
        supplier_rfq_id = flow.supplier_rfq_ids["Atelier Nord"]
        actions = [a.action for a in ActivityService(session).list_for("supplier_rfq", supplier_rfq_id)]
        assert "submit_quote" in actions
        assert "reconcile" in actions


class TestResponseRollUp:
    def test_partially_then_fully_quoted(self, flow):
        flow.send()
        first = flow.quote("Atelier Nord", {"Sofa": Decimal("1000"), "Pendant Lamp": Decimal("200")})
        assert first.rfq_status == RFQStatus.PARTIALLY_QUOTED
        second = flow.quote("Bexley Supply", {"Sofa": Decimal("1100")})
        assert second.rfq_status == RFQStatus.FULLY_QUOTED

    def test_decline_completes_responses(self, flow):
        flow.send()
        flow.quote("Atelier Nord", {"Sofa": Decimal("1000")})
        flow.rfqs.decline(flow.tokens["Bexley Supply"])
        assert flow.rfqs.get_rfq(flow.rfq.id).status == RFQStatus.FULLY_QUOTED

    def test_all_declined_counts_as_answered(self, flow):
        flow.send(suppliers=("Atelier Nord",))
        flow.rfqs.decline(flow.tokens["Atelier Nord"])
        assert flow.rfqs.get_rfq(flow.rfq.id).status == RFQStatus.FULLY_QUOTED


class TestRevisions:
    def test_resubmission_needs_permission(self, flow):
        flow.send()
        flow.quote("Atelier Nord", {"Sofa": Decimal("1000")})
        with pytest.raises(StateTransitionError):
            flow.quote("Atelier Nord", {"Sofa": Decimal("950")})

    def test_allowed_revision_replaces_current_quote(self, flow, test_actor_id):
        flow.send()
        first = flow.quote("Atelier Nord", {"Sofa": Decimal("1000")}).quote
        supplier_rfq_id = flow.supplier_rfq_ids["Atelier Nord"]

        allowed = flow.rfqs.allow_revision(supplier_rfq_id, actor_id=test_actor_id)
        assert allowed.revision_allowed is True
        second = flow.quote("Atelier Nord", {"Sofa": Decimal("950")}).quote

        assert second.revision == 2
        assert flow.rfqs.get_current_quote(supplier_rfq_id).id == second.id
        revisions = flow.rfqs.list_quote_revisions(supplier_rfq_id)
        assert [q.revision for q in revisions] == [1, 2]
        assert revisions[0].id == first.id
        assert revisions[0].is_current is False

        (supplier,) = [s for s in flow.rfqs.list_suppliers(flow.rfq.id) if s.id == supplier_rfq_id]
        assert supplier.revision_allowed is False
        assert supplier.revision_count == 2

    def test_options_follow_current_quote_only(self, flow, test_actor_id):
        flow.send()
        flow.quote("Atelier Nord", {"Sofa": Decimal("1000")})
        flow.rfqs.allow_revision(flow.supplier_rfq_ids["Atelier Nord"], actor_id=test_actor_id)
        flow.quote("Atelier Nord", {"Sofa": Decimal("950")})

        sofa_options = flow.rfqs.compare_options(flow.rfq.id)[0]
        assert [o.unit_price for o in sofa_options.options] == [Decimal("950")]

    def test_revoke_revision(self, flow, test_actor_id):
        flow.send()
        flow.quote("Atelier Nord", {"Sofa": Decimal("1000")})
        supplier_rfq_id = flow.supplier_rfq_ids["Atelier Nord"]
        flow.rfqs.allow_revision(supplier_rfq_id, actor_id=test_actor_id)
        revoked = flow.rfqs.revoke_revision(supplier_rfq_id, actor_id=test_actor_id)
        assert revoked.revision_allowed is False

    def test_revision_permission_needs_submission(self, flow, test_actor_id):
        flow.send()
        with pytest.raises(StateTransitionError):
            flow.rfqs.allow_revision(flow.supplier_rfq_ids["Atelier Nord"], actor_id=test_actor_id)

    def test_revision_draft_carries_terms_not_prices(self, flow):
        flow.send()
        flow.quote(
            "Atelier Nord",
            {"Sofa": Decimal("1000")},
            payment_terms="50% deposit",
            supplier_notes="Fabric per sample 4B",
        )
        draft = flow.rfqs.get_revision_draft(flow.supplier_rfq_ids["Atelier Nord"])
        assert draft.currency == "CAD"
        assert draft.payment_terms == "50% deposit"
        assert draft.supplier_notes == "Fabric per sample 4B"
        assert [line.lead_time for line in draft.lines] == ["6 weeks"]
        assert not hasattr(draft.lines[0], "unit_price")

    def test_revision_draft_without_quote(self, flow):
        flow.send()
        with pytest.raises(EntityNotFoundError):
            flow.rfqs.get_revision_draft(flow.supplier_rfq_ids["Atelier Nord"])


class TestConcurrentResubmission:
    """Two resubmissions for one supplier: the loser changes nothing."""

    @pytest.fixture
    def revisable(self, flow, test_actor_id):
        flow.send()
        first = flow.quote("Atelier Nord", {"Sofa": Decimal("1000")}).quote
        flow.rfqs.allow_revision(flow.supplier_rfq_ids["Atelier Nord"], actor_id=test_actor_id)
        return first

    def _assert_current_is(self, flow, quote):
        supplier_rfq_id = flow.supplier_rfq_ids["Atelier Nord"]
        assert flow.rfqs.get_current_quote(supplier_rfq_id).id == quote.id
        (supplier,) = [s for s in flow.rfqs.list_suppliers(flow.rfq.id) if s.id == supplier_rfq_id]
        assert supplier.revision_count == 1
        assert supplier.revision_allowed is True
        sofa_options = flow.rfqs.compare_options(flow.rfq.id)[0]
        assert [o.unit_price for o in sofa_options.options] == [Decimal("1000")]

    def test_revision_number_already_taken(self, flow, revisable, deterministic_clock):
        supplier_rfq_id = flow.supplier_rfq_ids["Atelier Nord"]
        # The other submission inserted revision 2 but has not moved the pointer yet.
        flow.session.add(SupplierQuoteModel(
            supplier_rfq_id=supplier_rfq_id,
            revision=2,
            quote_number="Q-OTHER",
            currency="CAD",
            submission_method=SubmissionMethod.MANUAL.value,
            subtotal=Decimal("975"),
            total_amount=Decimal("975"),
            submitted_at=deterministic_clock.now(),
            created_by_id=uuid4(),
        ))
        flow.session.commit()

        with pytest.raises(DuplicateSubmissionError) as exc_info:
            flow.quote("Atelier Nord", {"Sofa": Decimal("950")})

        assert exc_info.value.supplier_rfq_id == str(supplier_rfq_id)
        self._assert_current_is(flow, revisable)

    def test_supplier_row_changed_after_read(self, flow, revisable):
        supplier_rfq_id = flow.supplier_rfq_ids["Atelier Nord"]

        def other_writer_first(session, model, entity_id, **kwargs):
            if model is SupplierRFQModel and "current_quote_id" in kwargs["values"]:
                session.execute(
                    update(SupplierRFQModel)
                    .where(SupplierRFQModel.id == entity_id)
                    .values(version=SupplierRFQModel.version + 1)
                )
            return compare_and_set(session, model, entity_id, **kwargs)

        with patch("procurement_modules.rfq.service.compare_and_set", side_effect=other_writer_first):
            with pytest.raises(DuplicateSubmissionError) as exc_info:
                flow.quote("Atelier Nord", {"Sofa": Decimal("950")})

        assert exc_info.value.supplier_rfq_id == str(supplier_rfq_id)
        self._assert_current_is(flow, revisable)
        revisions = flow.rfqs.list_quote_revisions(supplier_rfq_id)
        assert [q.revision for q in revisions] == [1]
        assert revisions[0].is_current is True


# =============================================================================
# Deadlines
# =============================================================================


class TestDeadlines:
    def test_submission_at_deadline_accepted(self, flow, deterministic_clock):
        rfq = flow.send()
        deterministic_clock.set_time(rfq.response_deadline)
        result = flow.quote("Atelier Nord", {"Sofa": Decimal("1000")})
        assert result.rfq_status == RFQStatus.PARTIALLY_QUOTED

    def test_submission_after_deadline_expires_rfq(self, flow, deterministic_clock):
        rfq = flow.send()
        deterministic_clock.set_time(rfq.response_deadline + timedelta(seconds=1))
        with pytest.raises(ExpiredTokenError) as exc_info:
            flow.quote("Atelier Nord", {"Sofa": Decimal("1000")})
        assert exc_info.value.supplier_rfq_id == str(flow.supplier_rfq_ids["Atelier Nord"])
        assert flow.rfqs.get_rfq(rfq.id).status == RFQStatus.EXPIRED

    def test_viewing_allowed_after_deadline(self, flow, deterministic_clock):
        rfq = flow.send()
        deterministic_clock.set_time(rfq.response_deadline + timedelta(days=1))
        access = flow.rfqs.record_view(flow.tokens["Atelier Nord"])
        assert access.can_view is True
        assert access.can_submit is False
        assert access.expired is True

    def test_sweep_expires_once(self, flow, deterministic_clock):
        rfq = flow.send()
        deterministic_clock.advance_days(15)
        assert flow.rfqs.sweep_expired_rfqs() == [rfq.id]
        assert flow.rfqs.sweep_expired_rfqs() == []
        assert flow.rfqs.get_rfq(rfq.id).status == RFQStatus.EXPIRED

    def test_sweep_leaves_open_rfqs(self, flow, deterministic_clock):
        flow.send()
        deterministic_clock.advance_days(3)
        assert flow.rfqs.sweep_expired_rfqs() == []

    def test_reopen_with_new_deadline(self, flow, deterministic_clock, test_actor_id, session):
        rfq = flow.send()
        deterministic_clock.advance_days(15)
        flow.rfqs.sweep_expired_rfqs()

        new_deadline = deterministic_clock.now() + timedelta(days=7)
        reopened = flow.rfqs.reopen_rfq(rfq.id, response_deadline=new_deadline, actor_id=test_actor_id)
        assert reopened.status == RFQStatus.SENT
        assert reopened.response_deadline == new_deadline

        result = flow.quote("Atelier Nord", {"Sofa": Decimal("1000")})
        assert result.rfq_status == RFQStatus.PARTIALLY_QUOTED
        reopen_entries = ActivityService(session).list_for("rfq", rfq.id, action="reopen")
        assert len(reopen_entries) == 1

    def test_reopen_needs_future_deadline(self, flow, deterministic_clock, test_actor_id):
        rfq = flow.send()
        deterministic_clock.advance_days(15)
        with pytest.raises(ValidationError):
            flow.rfqs.reopen_rfq(
                rfq.id, response_deadline=deterministic_clock.now(), actor_id=test_actor_id,
            )

    def test_reopen_only_from_expired(self, flow, deterministic_clock, test_actor_id):
        rfq = flow.send()
        with pytest.raises(StateTransitionError):
            flow.rfqs.reopen_rfq(
                rfq.id,
                response_deadline=deterministic_clock.now() + timedelta(days=30),
                actor_id=test_actor_id,
            )


# =============================================================================
# Cancellation and comparison
# =============================================================================


class TestCancelRFQ:
    def test_cancel_draft(self, flow, test_actor_id, session):
        rfq = flow.draft()
        cancelled = flow.rfqs.cancel_rfq(rfq.id, actor_id=test_actor_id, reason="Client paused")
        assert cancelled.status == RFQStatus.CANCELLED
        (entry,) = ActivityService(session).list_for("rfq", rfq.id, action="cancel")
        assert entry.message == "Client paused"
        assert entry.details["from_status"] == "draft"

    def test_cancelled_is_terminal(self, flow, test_actor_id):
        rfq = flow.send()
        flow.rfqs.cancel_rfq(rfq.id, actor_id=test_actor_id)
        with pytest.raises(StateTransitionError):
            flow.rfqs.cancel_rfq(rfq.id, actor_id=test_actor_id)

    def test_cancelled_rfq_refuses_submissions(self, flow, test_actor_id):
        rfq = flow.send()
        flow.rfqs.cancel_rfq(rfq.id, actor_id=test_actor_id)
        with pytest.raises(StateTransitionError):
            flow.quote("Atelier Nord", {"Sofa": Decimal("1000")})


class TestCompareOptions:
    def test_cheapest_first_per_line(self, flow):
        flow.send()
        flow.quote_default()
        sofa, lamp = flow.rfqs.compare_options(flow.rfq.id)
        assert sofa.line_item.name == "Sofa"
        assert [o.supplier_name for o in sofa.options] == ["Atelier Nord", "Bexley Supply"]
        assert [o.supplier_name for o in lamp.options] == ["Bexley Supply", "Atelier Nord"]
        assert lamp.options[0].unit_price == Decimal("180.00")

    def test_lines_without_quotes_have_no_options(self, flow):
        flow.send()
        flow.quote("Atelier Nord", {"Sofa": Decimal("1000")})
        sofa, lamp = flow.rfqs.compare_options(flow.rfq.id)
        assert len(sofa.options) == 1
        assert lamp.options == ()
