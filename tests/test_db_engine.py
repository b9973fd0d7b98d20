"""Engine lifecycle and the session helpers."""

import pytest

from procurement_kernel.db import engine as db
from procurement_kernel.services.sequence_service import SequenceService


class TestBeforeInitialisation:
    @pytest.fixture(autouse=True)
    def _no_engine(self):
        db.reset_engine()

    @pytest.mark.parametrize("accessor", [db.get_engine, db.get_session, db.get_session_factory])
    def test_accessors_refuse(self, accessor):
        with pytest.raises(RuntimeError, match="init_engine_from_url"):
            accessor()


class TestSessionScope:
    def test_commits_on_success(self, db_engine):
        with db.session_scope() as session:
            SequenceService(session).next_value("studio", "RFQ", 2026)

        with db.session_scope() as session:
            assert SequenceService(session).current_value("studio", "RFQ", 2026) == 1

    def test_rolls_back_and_reraises(self, db_engine):
        with pytest.raises(LookupError):
            with db.session_scope() as session:
                SequenceService(session).next_value("studio", "PO", 2026)
                raise LookupError("supplier vanished")

        with db.session_scope() as session:
            assert SequenceService(session).current_value("studio", "PO", 2026) is None

    def test_factory_opens_independent_sessions(self, db_engine):
        factory = db.get_session_factory()
        first, second = factory(), factory()
        try:
            assert first is not second
        finally:
            first.close()
            second.close()
