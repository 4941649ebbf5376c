"""
QueryUnderstandingService - intent + entities for one turn.

Intent classification and entity extraction are independent, so they run
concurrently; the service merges their results into a ParsedQuery with a
combined confidence and the list of terms nothing recognized.
"""

from __future__ import annotations

import asyncio
import logging
import re

from vehicle_search.domain.entities.query import ExtractedEntity, ParsedQuery

from .extractor import EntityExtractor
from .intent import IntentClassifier, QueryContext
from .vocabulary import STOP_WORDS

logger = logging.getLogger(__name__)

_WORD_SPLIT = re.compile(r"[^\s,.!?\-()\[\]]+")


class QueryUnderstandingService:
    """
    Parses free text into a ParsedQuery.

    Example:
        service = QueryUnderstandingService()
        parsed = await service.parse("reliable family car under 15k")
        parsed.intent        # QueryIntent.SEARCH
        parsed.entities      # price + qualitative terms
    """

    def __init__(
        self,
        classifier: IntentClassifier | None = None,
        extractor: EntityExtractor | None = None,
    ) -> None:
        self._classifier = classifier or IntentClassifier()
        self._extractor = extractor or EntityExtractor()

    async def parse(self, query: str, context: QueryContext | None = None) -> ParsedQuery:
        if not query or not query.strip():
            raise ValueError("Query cannot be empty")

        (intent, intent_confidence), entities = await asyncio.gather(
            self._classifier.classify(query, context),
            self._extractor.extract(query),
        )

        if entities:
            mean_entity = sum(e.confidence for e in entities) / len(entities)
            confidence = (intent_confidence + mean_entity) / 2
        else:
            confidence = intent_confidence

        parsed = ParsedQuery(
            original_query=query,
            intent=intent,
            entities=entities,
            confidence=round(confidence, 4),
            unmapped_terms=unmapped_terms(query, entities),
        )
        logger.info(
            f"Parsed query: intent={intent.value} entities={len(entities)} "
            f"confidence={parsed.confidence:.2f}"
        )
        return parsed


def unmapped_terms(query: str, entities: list[ExtractedEntity]) -> list[str]:
    """Words (length >= 3, not stop-words) not covered by any entity."""
    terms = []
    for m in _WORD_SPLIT.finditer(query):
        word = m.group(0)
        if len(word) <= 2 or word.lower() in STOP_WORDS:
            continue
        covered = any(
            e.overlaps(m.start(), m.end()) or word.lower() in e.value.lower()
            for e in entities
        )
        if not covered:
            terms.append(word)
    return terms
