"""In-memory registry of analysis sessions."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

import httpx

from .config import get_config
from .errors import SessionNotFoundError
from .orchestrator import AnalysisSession

logger = logging.getLogger(__name__)


class SessionStore:
    """Process-wide session registry with TTL and size-bound eviction.

    Nothing is persisted: a session lives as long as the process and is
    dropped when idle past ``session_timeout_hours`` or when the store is
    full and it is the least recently used.
    """

    def __init__(self, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._sessions: dict[str, AnalysisSession] = {}
        self._transport = transport

    def create(self) -> AnalysisSession:
        """Create a new IDLE session, evicting expired ones first."""
        self._evict_expired()
        cfg = get_config()
        if self._sessions and len(self._sessions) >= cfg.max_sessions:
            oldest_id = min(self._sessions, key=lambda k: self._sessions[k].last_active)
            self._retire(oldest_id)

        sid = uuid.uuid4().hex[:12]
        session = AnalysisSession(sid, transport=self._transport)
        self._sessions[sid] = session
        logger.info("Opened session %s (%d live)", sid, len(self._sessions))
        return session

    def get(self, session_id: str) -> AnalysisSession:
        """Look up a session and mark it active.

        Raises:
            SessionNotFoundError: Unknown or expired ID.
        """
        self._evict_expired()
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        session.last_active = datetime.now()
        return session

    def get_or_create(self, session_id: str | None) -> AnalysisSession:
        return self.get(session_id) if session_id else self.create()

    def remove(self, session_id: str) -> bool:
        if session_id not in self._sessions:
            return False
        self._retire(session_id)
        return True

    def close_all(self) -> int:
        """Reset and drop every session. Returns count closed."""
        ids = list(self._sessions)
        for sid in ids:
            self._retire(sid)
        return len(ids)

    def _retire(self, session_id: str) -> None:
        session = self._sessions.pop(session_id)
        session.reset()
        session.close()
        logger.info("Closed session %s", session_id)

    def _evict_expired(self) -> int:
        """Remove sessions idle longer than the configured timeout. Returns count evicted."""
        timeout = timedelta(hours=get_config().session_timeout_hours)
        now = datetime.now()
        expired = [sid for sid, s in self._sessions.items() if now - s.last_active > timeout]
        for sid in expired:
            self._retire(sid)
        return len(expired)

    @property
    def count(self) -> int:
        """Number of live sessions."""
        return len(self._sessions)


# Module-level singleton
session_store = SessionStore()
