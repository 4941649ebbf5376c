"""
Session Management Module

Provides:
- SessionStore / InMemorySessionStore: keyed storage with per-key expiry
- SessionManager: conversation lifecycle, history and search state
- SessionCleanupWorker: periodic idle-session eviction
"""

from .cleanup import SessionCleanupWorker
from .manager import SessionManager
from .store import InMemorySessionStore, SessionStore

__all__ = [
    "SessionStore",
    "InMemorySessionStore",
    "SessionManager",
    "SessionCleanupWorker",
]
