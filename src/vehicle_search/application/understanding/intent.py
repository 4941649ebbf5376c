"""
IntentClassifier - pattern-scored intent for one conversational turn.

Each candidate intent owns a small group of regexes; the intent with the
most matching patterns wins. Queries that mention nothing vehicle-related
are OffTopic, unless the conversation already has results and the turn
reads like a follow-up ("cheaper?", "what about diesel instead").

Architecture Decision:
    Classification is deterministic and local. Results are memoized in a
    ``cachetools.LRUCache`` keyed on the normalized text and whether the
    conversation has previous results, since the same follow-up text can
    classify differently with and without context.

Example:
    >>> classifier = IntentClassifier()
    >>> await classifier.classify("compare the BMW versus the Audi")
    (QueryIntent.COMPARE, 0.8)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from threading import Lock

from cachetools import LRUCache

from vehicle_search.domain.entities.query import QueryIntent

from .vocabulary import has_domain_term

logger = logging.getLogger(__name__)

OFF_TOPIC_CONFIDENCE = 0.8
DEFAULT_CONFIDENCE = 0.6
MAX_CONFIDENCE = 0.95


@dataclass(frozen=True)
class QueryContext:
    """Conversation facts that influence parsing of the next turn."""

    has_previous_results: bool = False
    last_query: str | None = None


class IntentClassifier:
    """Scores a query against per-intent pattern groups."""

    INTENT_PATTERNS: dict[QueryIntent, tuple[re.Pattern[str], ...]] = {
        QueryIntent.SEARCH: (
            re.compile(r"\b(find|show|looking\s+for|want|need|search)\b", re.IGNORECASE),
            re.compile(r"\b(get\s+me|I\s+want|I\s+need)\b", re.IGNORECASE),
        ),
        QueryIntent.REFINE: (
            re.compile(r"\b(cheaper|more\s+expensive|bigger|smaller|better|newer|older)\b", re.IGNORECASE),
            re.compile(r"\b(what\s+about|instead|rather|different)\b", re.IGNORECASE),
            re.compile(r"\b(narrow\s+down|filter|refine)\b", re.IGNORECASE),
        ),
        QueryIntent.COMPARE: (
            re.compile(r"\b(compare|comparison|difference|versus|vs\.?)(?!\w)", re.IGNORECASE),
            re.compile(r"\b(which\s+is\s+better|better\s+than)\b", re.IGNORECASE),
        ),
        QueryIntent.INFORMATION: (
            re.compile(r"\b(how\s+many|tell\s+me|what\s+is|explain)\b", re.IGNORECASE),
            re.compile(r"\b(do\s+you\s+have|can\s+you\s+tell)\b", re.IGNORECASE),
        ),
    }

    FOLLOW_UP_INTENTS = (QueryIntent.REFINE, QueryIntent.COMPARE)

    def __init__(self, cache_size: int = 1024) -> None:
        self._cache: LRUCache[tuple[str, bool], tuple[QueryIntent, float]] = LRUCache(maxsize=cache_size)
        self._cache_lock = Lock()

    async def classify(
        self,
        query: str,
        context: QueryContext | None = None,
    ) -> tuple[QueryIntent, float]:
        """Return ``(intent, confidence)`` for ``query``."""
        if not query or not query.strip():
            raise ValueError("Query cannot be empty")

        has_results = bool(context and context.has_previous_results)
        key = (query.strip().lower(), has_results)
        with self._cache_lock:
            cached = self._cache.get(key)
        if cached is not None:
            logger.debug(f"Intent cache hit for: {query[:50]}")
            return cached

        result = self._classify(query, has_results)
        with self._cache_lock:
            self._cache[key] = result
        return result

    def _classify(self, query: str, has_previous_results: bool) -> tuple[QueryIntent, float]:
        scores = {
            intent: sum(1 for p in patterns if p.search(query))
            for intent, patterns in self.INTENT_PATTERNS.items()
        }

        if not has_domain_term(query):
            follow_up = has_previous_results and any(scores[i] for i in self.FOLLOW_UP_INTENTS)
            if not follow_up:
                return QueryIntent.OFF_TOPIC, OFF_TOPIC_CONFIDENCE

        best = max(scores.values())
        if best == 0:
            return QueryIntent.SEARCH, DEFAULT_CONFIDENCE

        # dict order breaks ties: Search, Refine, Compare, Information
        intent = next(i for i, s in scores.items() if s == best)
        return intent, min(0.7 + 0.1 * best, MAX_CONFIDENCE)

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()
