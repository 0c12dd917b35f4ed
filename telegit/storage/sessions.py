"""In-memory store for private-chat setup sessions.

Setup sessions track a user's progress through binding a group to a
repository. They live only in memory and expire after a fixed timeout; the
scheduler's purge job calls :meth:`SetupSessionStore.cleanup_expired`.

Thread Safety:
    All operations use an asyncio.Lock. The store is not shared across
    processes.
"""

import asyncio
from datetime import datetime, timedelta

import structlog

from telegit.models.domain import SetupSession, utcnow

log = structlog.get_logger(__name__)


class SetupSessionStore:
    """Keyed store of :class:`SetupSession` objects with a fixed timeout.

    Example:
        >>> sessions = SetupSessionStore(timeout_minutes=30)
        >>> await sessions.set(SetupSession(user_ref=42, step="await_token"))
        >>> session = await sessions.get(42)
    """

    def __init__(self, timeout_minutes: int = 30) -> None:
        self._sessions: dict[int, SetupSession] = {}
        self._timeout = timedelta(minutes=timeout_minutes)
        self._lock = asyncio.Lock()

    async def get(self, user_ref: int, now: datetime | None = None) -> SetupSession | None:
        """Return the user's session if it exists and has not timed out."""
        now = now or utcnow()
        async with self._lock:
            session = self._sessions.get(user_ref)
            if session is None:
                return None
            if now - session.timestamp >= self._timeout:
                del self._sessions[user_ref]
                log.debug("setup_session_expired", user_ref=user_ref)
                return None
            return session

    async def set(self, session: SetupSession) -> None:
        """Store or replace the user's session, resetting its timer."""
        session.timestamp = utcnow()
        async with self._lock:
            self._sessions[session.user_ref] = session

    async def delete(self, user_ref: int) -> bool:
        async with self._lock:
            return self._sessions.pop(user_ref, None) is not None

    async def cleanup_expired(self, now: datetime | None = None) -> int:
        """Drop every timed-out session.

        Returns:
            Number of sessions removed.
        """
        now = now or utcnow()
        async with self._lock:
            expired = [ref for ref, s in self._sessions.items() if now - s.timestamp >= self._timeout]
            for ref in expired:
                del self._sessions[ref]

        if expired:
            log.info("setup_sessions_cleaned", count=len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)
