"""Tests for the in-memory session store."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

import spectator_mcp.config as cfg_mod
from spectator_mcp.errors import SessionNotFoundError
from spectator_mcp.models.media import MediaSource
from spectator_mcp.orchestrator import SessionState
from spectator_mcp.sessions import SessionStore


def _source() -> MediaSource:
    return MediaSource(data=b"\x00" * 16, mime_type="video/mp4", display_name="a.mp4", origin="local")


class TestSessionStore:
    def test_create_session(self):
        store = SessionStore()
        session = store.create()
        assert session.session_id
        assert session.state is SessionState.IDLE
        assert session.turn_count == 0

    def test_get_session(self):
        store = SessionStore()
        session = store.create()
        assert store.get(session.session_id) is session

    def test_get_missing_session(self):
        with pytest.raises(SessionNotFoundError):
            SessionStore().get("nonexistent")

    def test_get_or_create(self):
        store = SessionStore()
        created = store.get_or_create(None)
        assert store.get_or_create(created.session_id) is created
        assert store.count == 1

    def test_get_refreshes_activity(self):
        store = SessionStore()
        session = store.create()
        session.last_active = datetime.now() - timedelta(minutes=30)
        store.get(session.session_id)
        assert datetime.now() - session.last_active < timedelta(minutes=1)

    def test_eviction_by_max(self):
        cfg_mod._config = cfg_mod.ServerConfig(
            gemini_api_key="test", max_sessions=2, session_timeout_hours=24
        )
        store = SessionStore()
        first = store.create()
        first.stage(_source())
        first.last_active = datetime.now() - timedelta(minutes=5)
        store.create()
        store.create()  # Should evict the least recently used
        assert store.count == 2
        with pytest.raises(SessionNotFoundError):
            store.get(first.session_id)
        assert first.state is SessionState.IDLE
        assert first.source is None

    def test_expired_sessions_evicted(self):
        cfg_mod._config = cfg_mod.ServerConfig(
            gemini_api_key="test", max_sessions=50, session_timeout_hours=1
        )
        store = SessionStore()
        session = store.create()
        session.last_active = datetime.now() - timedelta(hours=2)
        assert store._evict_expired() == 1
        with pytest.raises(SessionNotFoundError):
            store.get(session.session_id)

    def test_remove(self):
        store = SessionStore()
        session = store.create()
        assert store.remove(session.session_id) is True
        assert store.remove(session.session_id) is False

    def test_close_all(self):
        store = SessionStore()
        a = store.create()
        a.stage(_source())
        store.create()
        assert store.close_all() == 2
        assert store.count == 0
        assert a._capturer is None
