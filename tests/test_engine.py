"""Tests for engine construction and ``session_scope``."""

import pytest
from sqlalchemy import text

from plan_kernel.db.engine import create_engine_from_url, session_scope
from plan_kernel.services.sequence_service import SequenceService


class TestSessionScope:

    def test_commits_on_success(self, committed_session_factory):
        with session_scope() as session:
            SequenceService(session).next_value("scope_commit")

        with session_scope() as session:
            assert SequenceService(session).current_value("scope_commit") == 1

    def test_rolls_back_and_reraises(self, committed_session_factory, captured_logs):
        with pytest.raises(ValueError):
            with session_scope() as session:
                SequenceService(session).next_value("scope_rollback")
                raise ValueError("abort")

        with session_scope() as session:
            assert SequenceService(session).current_value("scope_rollback") is None
        assert any(r["message"] == "session_scope_rolled_back" for r in captured_logs())


class TestSqliteEngine:

    def test_foreign_keys_enabled(self, tmp_path):
        engine = create_engine_from_url(f"sqlite:///{tmp_path / 'fk.db'}")
        try:
            with engine.connect() as conn:
                assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1
        finally:
            engine.dispose()
