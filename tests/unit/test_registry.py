"""Tests for the session registry."""

from unittest.mock import MagicMock

import pytest

from querystream.catalog import TypeCatalog
from querystream.exceptions import SessionNotFoundError
from querystream.registry import SessionRegistry
from querystream.session import Session
from querystream.sinks import RecordingSink


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


def _session(session_id: str) -> Session:
    return Session(session_id, MagicMock(), TypeCatalog(), RecordingSink())


class TestSessionRegistry:
    """Tests for SessionRegistry."""

    def test_register_and_get(self, registry: SessionRegistry):
        session = _session(registry.new_id())
        registry.register(session)
        assert registry.get(session.id) is session
        assert session.id in registry
        assert len(registry) == 1

    def test_ids_are_unique(self, registry: SessionRegistry):
        ids = set()
        for _ in range(50):
            session = _session(registry.new_id())
            registry.register(session)
            ids.add(session.id)
        assert len(ids) == 50

    def test_duplicate_id_rejected(self, registry: SessionRegistry):
        registry.register(_session("dup"))
        with pytest.raises(ValueError):
            registry.register(_session("dup"))

    def test_unknown_id(self, registry: SessionRegistry):
        with pytest.raises(SessionNotFoundError, match="re-run"):
            registry.get("missing")

    def test_remove(self, registry: SessionRegistry):
        registry.register(_session("a"))
        removed = registry.remove("a")
        assert removed.id == "a"
        assert "a" not in registry
        with pytest.raises(SessionNotFoundError):
            registry.remove("a")

    def test_iteration_tolerates_removal(self, registry: SessionRegistry):
        for session_id in ("a", "b", "c"):
            registry.register(_session(session_id))
        for session_id in registry:
            registry.remove(session_id)
        assert len(registry) == 0
        assert registry.sessions() == []
