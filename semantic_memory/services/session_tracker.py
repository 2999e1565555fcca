"""
Session Tracker: ephemeral per-conversation state.
"""

import asyncio
from typing import Dict, List, Optional

from ..models.core import Memory, SessionState
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import now_ms

logger = get_logger(__name__)

RECENT_MEMORY_LIMIT = 3


class SessionTracker:
    """In-process session table. Nothing here is persisted or shared across processes."""

    def __init__(self):
        self._sessions: Dict[str, SessionState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str) -> Optional[SessionState]:
        """Return the session state, or None for an unknown id."""
        return self._sessions.get(session_id)

    def get_or_create(self, session_id: str, user_id: str) -> SessionState:
        """Return the session state, creating a zero-state entry on first access."""
        session = self._sessions.get(session_id)
        if session is None:
            session = SessionState(user_id=user_id, last_interaction_time=now_ms())
            self._sessions[session_id] = session
            logger.info(f'New session created: {session_id}')
        return session

    def touch(self, session_id: str, recent_memories: List[Memory]) -> SessionState:
        """
        Record one more message in a session.

        Args:
            session_id: Session to update (must exist)
            recent_memories: Memories retrieved for this message; the first three are kept

        Returns:
            Updated session state

        Raises:
            KeyError: If the session was never created
        """
        session = self._sessions[session_id]
        session.message_count += 1
        session.last_interaction_time = now_ms()
        session.recent_memories = list(recent_memories[:RECENT_MEMORY_LIMIT])
        return session

    def clear(self, session_id: str) -> bool:
        """Forget a session. Returns False if it did not exist.

        A lock held by an in-flight turn is kept so later turns still queue behind it.
        """
        lock = self._locks.get(session_id)
        if lock is not None and not lock.locked():
            del self._locks[session_id]
        if self._sessions.pop(session_id, None) is None:
            return False
        logger.info(f'Session cleared: {session_id}')
        return True

    def lock(self, session_id: str) -> asyncio.Lock:
        """Per-session lock serializing turns of the same conversation."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock
