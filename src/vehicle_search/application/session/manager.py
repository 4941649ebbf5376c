"""
Conversation Session Manager.

Owns session lifecycle on top of a SessionStore:
- create / get (sliding idle expiry) / clear / exists
- append-only message history, capped with oldest-first trimming
- wholesale SearchState replacement after each search
- expiry sweep used by the background cleanup worker

Architecture Decision:
    All mutation goes through a per-session KeyedLock. Sessions never
    contend with each other and there is no store-wide lock; two writers
    on the same session are serialized so read-modify-write on the shared
    ConversationSession object never loses updates.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from vehicle_search.core.async_utils import KeyedLock
from vehicle_search.core.exceptions import ErrorContext, SessionNotFoundError
from vehicle_search.domain.entities.conversation import (
    ConversationMessage,
    ConversationSession,
    SearchState,
)

from .store import InMemorySessionStore, SessionStore

logger = logging.getLogger(__name__)

DEFAULT_IDLE_TTL = 4 * 3600.0
DEFAULT_MAX_MESSAGES = 100
DEFAULT_HISTORY_SIZE = 10


class SessionManager:
    """
    Conversation session service.

    Example:
        manager = SessionManager()
        session = await manager.create_session()
        await manager.add_message(session.session_id, message)
        state = (await manager.get_session(session.session_id)).search_state
    """

    def __init__(
        self,
        store: SessionStore | None = None,
        idle_ttl: float = DEFAULT_IDLE_TTL,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store: SessionStore = store if store is not None else InMemorySessionStore(clock=clock)
        self._idle_ttl = idle_ttl
        self._max_messages = max_messages
        self._clock = clock
        self._locks = KeyedLock()

    @property
    def idle_ttl(self) -> float:
        return self._idle_ttl

    # =====================================================================
    # Lifecycle
    # =====================================================================

    async def create_session(self) -> ConversationSession:
        """Create and store a new session with a fresh uuid4 id."""
        now = self._clock()
        session = ConversationSession(created_at=now, last_accessed_at=now)
        while not self._store.create(session, self._idle_ttl):
            session = ConversationSession(created_at=now, last_accessed_at=now)
        logger.info(f"Created session {session.session_id}")
        return session

    async def get_session(self, session_id: str) -> ConversationSession:
        """
        Load a session and refresh its last-access time.

        Raises:
            SessionNotFoundError: unknown id, or idle longer than the TTL
        """
        async with self._locks(session_id):
            return self._load(session_id, operation="get_session")

    async def get_or_create(self, session_id: str | None) -> ConversationSession:
        """Load ``session_id`` or start a new session if it is missing/expired."""
        if session_id:
            try:
                return await self.get_session(session_id)
            except SessionNotFoundError:
                logger.info(f"Session {session_id} not found, starting a new one")
        return await self.create_session()

    async def clear_session(self, session_id: str) -> bool:
        async with self._locks(session_id):
            removed = self._store.delete(session_id)
        if removed:
            logger.info(f"Cleared session {session_id}")
        return removed

    async def exists(self, session_id: str) -> bool:
        session = self._store.get(session_id)
        return session is not None and not self._is_idle(session)

    # =====================================================================
    # Mutation
    # =====================================================================

    @asynccontextmanager
    async def mutate(self, session_id: str) -> AsyncIterator[ConversationSession]:
        """
        Exclusive read-modify-write access to one session.

        The session is written back (refreshing its expiry) when the block
        exits without error.

        Raises:
            SessionNotFoundError: if the session cannot be loaded
        """
        async with self._locks(session_id):
            session = self._load(session_id, operation="mutate")
            yield session
            self._store.put(session, self._idle_ttl)

    async def add_message(self, session_id: str, message: ConversationMessage) -> None:
        async with self.mutate(session_id) as session:
            session.messages.append(message)
            overflow = len(session.messages) - self._max_messages
            if overflow > 0:
                del session.messages[:overflow]
                logger.debug(f"Trimmed {overflow} message(s) from session {session_id}")

    async def update_search_state(self, session_id: str, state: SearchState) -> None:
        async with self.mutate(session_id) as session:
            session.search_state = state

    async def get_history(
        self,
        session_id: str,
        max_messages: int = DEFAULT_HISTORY_SIZE,
    ) -> list[ConversationMessage]:
        """Most recent ``max_messages`` messages, oldest first."""
        session = await self.get_session(session_id)
        if max_messages <= 0:
            return []
        return list(session.messages[-max_messages:])

    # =====================================================================
    # Expiry
    # =====================================================================

    async def cleanup_expired_sessions(self) -> int:
        """
        Remove sessions idle past the TTL.

        Individual failures are logged and skipped so one bad entry cannot
        stop the sweep.
        """
        removed = len(self._store.expire())
        for session_id in self._store.session_ids():
            try:
                session = self._store.get(session_id)
                if session is not None and self._is_idle(session):
                    async with self._locks(session_id):
                        if self._store.delete(session_id):
                            removed += 1
            except Exception as e:
                logger.warning(f"Failed to evict session {session_id}: {e}")
        if removed:
            logger.info(f"Cleaned up {removed} expired session(s)")
        return removed

    # =====================================================================
    # Internals
    # =====================================================================

    def _is_idle(self, session: ConversationSession) -> bool:
        return self._clock() - session.last_accessed_at > self._idle_ttl

    def _load(self, session_id: str, *, operation: str) -> ConversationSession:
        session = self._store.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id, context=ErrorContext(operation=operation))
        if self._is_idle(session):
            self._store.delete(session_id)
            logger.info(f"Session {session_id} expired after idling past {self._idle_ttl:.0f}s")
            raise SessionNotFoundError(session_id, context=ErrorContext(operation=operation))
        session.last_accessed_at = self._clock()
        self._store.put(session, self._idle_ttl)
        return session
