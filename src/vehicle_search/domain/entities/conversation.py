"""
Conversation domain entities.

A ConversationSession is the aggregate root for one user conversation:
message history, the current SearchState used to resolve follow-up
references, and the typed SessionCounters maintained by the abuse monitor.
"""

from __future__ import annotations

import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vehicle_search.domain.entities.query import ParsedQuery, SearchConstraint

# Queries kept for repeated-query detection
QUERY_HISTORY_LIMIT = 20
# Request timestamps kept for rapid-request detection and abuse reports
REQUEST_HISTORY_LIMIT = 1000


class MessageRole(Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ResultSummary:
    """Compact record of a search response attached to an assistant message."""

    count: int
    result_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class ConversationMessage:
    """One immutable entry in the conversation history."""

    role: MessageRole
    content: str
    timestamp: float = field(default_factory=time.time)
    parsed_query: ParsedQuery | None = None
    result_summary: ResultSummary | None = None


@dataclass
class SearchState:
    """State of the most recent successful search, replaced after each one."""

    last_query: str = ""
    last_result_ids: list[str] = field(default_factory=list)
    active_filters: dict[str, SearchConstraint] = field(default_factory=dict)
    viewed_vehicle_ids: list[str] = field(default_factory=list)
    last_search_at: float | None = None

    @property
    def has_results(self) -> bool:
        return bool(self.last_result_ids)


@dataclass
class SessionCounters:
    """Per-session abuse tracking state, owned by the abuse monitor."""

    request_timestamps: deque[float] = field(default_factory=lambda: deque(maxlen=REQUEST_HISTORY_LIMIT))
    query_history: deque[str] = field(default_factory=lambda: deque(maxlen=QUERY_HISTORY_LIMIT))
    total_queries: int = 0
    off_topic_count: int = 0
    injection_count: int = 0
    large_result_count: int = 0
    rate_limit_violations: int = 0

    @property
    def off_topic_ratio(self) -> float:
        if self.total_queries == 0:
            return 0.0
        return self.off_topic_count / self.total_queries


@dataclass
class ConversationSession:
    """Conversation aggregate root."""

    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: float = field(default_factory=time.time)
    last_accessed_at: float = field(default_factory=time.time)
    messages: list[ConversationMessage] = field(default_factory=list)
    search_state: SearchState = field(default_factory=SearchState)
    counters: SessionCounters = field(default_factory=SessionCounters)

    @property
    def message_count(self) -> int:
        return len(self.messages)

    def last_user_query(self) -> str | None:
        for message in reversed(self.messages):
            if message.role is MessageRole.USER:
                return message.content
        return None
