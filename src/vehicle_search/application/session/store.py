"""
Session Store - keyed session storage with per-key expiry.

This is the storage-engine boundary for conversation state. The pipeline
only ever talks to it through create / get / put / delete / exists, so a
remote key-value store can replace the in-memory implementation.

The in-memory store uses ``cachetools.TLRUCache``: each entry carries its
own time-to-use, computed when it is written, and the least recently used
session is evicted when ``max_sessions`` is reached.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from cachetools import TLRUCache

from vehicle_search.domain.entities.conversation import ConversationSession

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    """Storage contract for conversation sessions."""

    def create(self, session: ConversationSession, ttl: float) -> bool: ...

    def get(self, session_id: str) -> ConversationSession | None: ...

    def put(self, session: ConversationSession, ttl: float) -> None: ...

    def delete(self, session_id: str) -> bool: ...

    def exists(self, session_id: str) -> bool: ...

    def session_ids(self) -> list[str]: ...

    def expire(self) -> list[str]: ...


@dataclass
class _StoredSession:
    session: ConversationSession
    ttl: float


def _time_to_use(_key: str, entry: _StoredSession, now: float) -> float:
    return now + entry.ttl


class InMemorySessionStore:
    """
    Process-local SessionStore.

    Example:
        store = InMemorySessionStore(max_sessions=1000)
        store.create(ConversationSession(), ttl=3600)
    """

    def __init__(
        self,
        max_sessions: int = 10_000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cache: TLRUCache[str, _StoredSession] = TLRUCache(
            maxsize=max_sessions,
            ttu=_time_to_use,
            timer=clock,
        )

    def create(self, session: ConversationSession, ttl: float) -> bool:
        """Store a new session. Returns False if the id is already taken."""
        if session.session_id in self._cache:
            return False
        self._cache[session.session_id] = _StoredSession(session, ttl)
        return True

    def get(self, session_id: str) -> ConversationSession | None:
        entry = self._cache.get(session_id)
        return entry.session if entry is not None else None

    def put(self, session: ConversationSession, ttl: float) -> None:
        # Re-inserting recomputes the entry's expiry
        self._cache[session.session_id] = _StoredSession(session, ttl)

    def delete(self, session_id: str) -> bool:
        return self._cache.pop(session_id, None) is not None

    def exists(self, session_id: str) -> bool:
        return session_id in self._cache

    def session_ids(self) -> list[str]:
        return list(self._cache.keys())

    def expire(self) -> list[str]:
        """Drop every entry past its time-to-use; returns the dropped ids."""
        expired = self._cache.expire()
        return [key for key, _ in expired]

    def __len__(self) -> int:
        return len(self._cache)
