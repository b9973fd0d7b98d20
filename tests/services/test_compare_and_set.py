"""
Tests for the conditional UPDATE helpers in procurement_kernel.services.base.

Validates:
- compare_and_set bumps version and only matches the read version/status
- transition_status refreshes the entity
- Stale writers get StateTransitionError, OptimisticLockError or
  EntityNotFoundError depending on what moved
"""

from uuid import uuid4

import pytest
from sqlalchemy import update

from procurement_kernel.exceptions import (
    EntityNotFoundError,
    OptimisticLockError,
    StateTransitionError,
)
from procurement_kernel.services.base import (
    compare_and_set,
    raise_stale_write,
    transition_status,
)
from procurement_modules.rfq.models import RFQLineItemInput
from procurement_modules.rfq.orm import RFQModel
from procurement_modules.rfq.service import RFQService


@pytest.fixture
def rfq_row(session, config, deterministic_clock, test_actor_id) -> RFQModel:
    rfq = RFQService(session, config, deterministic_clock).create_rfq(
        title="Lobby refresh",
        actor_id=test_actor_id,
        lines=[RFQLineItemInput(name="Sofa", quantity=1)],
    )
    return session.get(RFQModel, rfq.id)


class TestCompareAndSet:
    def test_matching_version_updates_and_bumps(self, session, rfq_row):
        assert compare_and_set(
            session, RFQModel, rfq_row.id,
            read_version=rfq_row.version,
            values={"title": "Lobby refresh, phase 2"},
        )
        session.refresh(rfq_row)
        assert rfq_row.title == "Lobby refresh, phase 2"
        assert rfq_row.version == 2

    def test_stale_version_matches_nothing(self, session, rfq_row):
        assert not compare_and_set(
            session, RFQModel, rfq_row.id,
            read_version=rfq_row.version + 1,
            values={"title": "never written"},
        )

    def test_expected_status_checked(self, session, rfq_row):
        assert not compare_and_set(
            session, RFQModel, rfq_row.id,
            read_version=rfq_row.version,
            values={"title": "never written"},
            expected_status="sent",
        )


class TestTransitionStatus:
    def test_refreshes_entity(self, session, rfq_row):
        transition_status(session, RFQModel, rfq_row, entity_type="rfq", to_status="cancelled")
        assert rfq_row.status == "cancelled"
        assert rfq_row.version == 2

    def test_status_moved_underneath(self, session, rfq_row):
        session.execute(
            update(RFQModel)
            .where(RFQModel.id == rfq_row.id)
            .values(status="sent", version=RFQModel.version + 1)
            .execution_options(synchronize_session=False)
        )
        with pytest.raises(StateTransitionError) as exc_info:
            transition_status(session, RFQModel, rfq_row, entity_type="rfq", to_status="cancelled")
        assert exc_info.value.from_state == "sent"
        assert "concurrently" in exc_info.value.reason

    def test_only_version_moved(self, session, rfq_row):
        session.execute(
            update(RFQModel)
            .where(RFQModel.id == rfq_row.id)
            .values(version=RFQModel.version + 1)
            .execution_options(synchronize_session=False)
        )
        with pytest.raises(OptimisticLockError):
            transition_status(session, RFQModel, rfq_row, entity_type="rfq", to_status="cancelled")


class TestRaiseStaleWrite:
    def test_missing_row(self, session, rfq_row):
        ghost = RFQModel(id=uuid4(), version=1, status="draft")
        with pytest.raises(EntityNotFoundError):
            raise_stale_write(session, RFQModel, ghost, entity_type="rfq", to_status="sent")
