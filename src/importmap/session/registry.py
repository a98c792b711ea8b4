"""In-memory registry of mapping sessions for the API."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .manager import MappingSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """In-memory store of live sessions.

    Sessions idle longer than the TTL are dropped when looked up, and every
    expired session is swept whenever a new one is created.
    """

    def __init__(
        self,
        factory: Callable[[], MappingSession],
        default_ttl_minutes: int = 120,
    ):
        self._factory = factory
        self._sessions: dict[str, MappingSession] = {}
        self._last_seen: dict[str, datetime] = {}
        self._ttl = timedelta(minutes=default_ttl_minutes)
        self._lock = asyncio.Lock()

    def _touch(self, session_id: str) -> None:
        self._last_seen[session_id] = datetime.now(timezone.utc)

    def _expired(self, session_id: str) -> bool:
        seen = self._last_seen.get(session_id)
        return seen is None or datetime.now(timezone.utc) - seen > self._ttl

    def _evict_expired(self) -> int:
        """Drop every expired session (caller holds the lock)."""
        expired = [sid for sid in self._sessions if self._expired(sid)]
        for sid in expired:
            del self._sessions[sid]
            self._last_seen.pop(sid, None)
        if expired:
            logger.info(f"Evicted {len(expired)} expired session(s)")
        return len(expired)

    async def create(self) -> MappingSession:
        """Create and register a fresh session, sweeping expired ones first."""
        session = self._factory()
        async with self._lock:
            self._evict_expired()
            self._sessions[session.id] = session
            self._touch(session.id)
        return session

    async def get(self, session_id: str) -> Optional[MappingSession]:
        """
        Look up a session.

        Returns:
            The session if found and not expired, None otherwise
        """
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if self._expired(session_id):
                del self._sessions[session_id]
                self._last_seen.pop(session_id, None)
                return None
            self._touch(session_id)
            return session

    async def remove(self, session_id: str) -> bool:
        async with self._lock:
            self._last_seen.pop(session_id, None)
            return self._sessions.pop(session_id, None) is not None

    async def cleanup_expired(self) -> int:
        """Drop expired sessions. Returns how many were removed."""
        async with self._lock:
            return self._evict_expired()

    def size(self) -> int:
        return len(self._sessions)
