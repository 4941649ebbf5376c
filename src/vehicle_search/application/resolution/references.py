"""
ReferenceResolver - ties a follow-up turn to the previous search.

Three independent passes over the query:

    Pronouns     "it" / "this one" -> the single previous result,
                 "them" / "those"  -> the whole previous result set
    Positional   "the second one", "last car" -> one previous result
    Comparative  "cheaper", "newer" -> shifted copy of an active filter

An unresolvable pronoun or position is not an error: the ResolvedQuery is
flagged and carries a clarification question for the user.
"""

from __future__ import annotations

import logging
import re

from vehicle_search.domain.entities.conversation import ConversationSession
from vehicle_search.domain.entities.query import Reference, ReferenceType, ResolvedQuery

from .comparatives import ComparativeResolver, find_comparatives

logger = logging.getLogger(__name__)

NO_SINGLE_VEHICLE_MESSAGE = (
    "I don't have a specific vehicle to refer to. Which vehicle would you like to know about?"
)
NO_PREVIOUS_RESULTS_MESSAGE = (
    "I don't have previous search results to refer to. Please perform a search first."
)
NO_POSITIONAL_RESULTS_MESSAGE = "I don't have previous search results to refer to by position."

# "this"/"that" only count when used as a standalone demonstrative, so
# "a car that is reliable" is not a reference.
SINGULAR_PATTERN = re.compile(
    r"\bit\b|\b(?:this|that)\b(?=\s*(?:$|[?.!,]|one\b|car\b|vehicle\b))",
    re.IGNORECASE,
)
PLURAL_PATTERN = re.compile(r"\b(?:them|those|these)\b", re.IGNORECASE)
POSITIONAL_PATTERN = re.compile(
    r"\b(first|second|third|fourth|fifth|last|previous)\s+(one|vehicle|car)\b",
    re.IGNORECASE,
)

_ORDINALS = {"first": 0, "second": 1, "third": 2, "fourth": 3, "fifth": 4}


class ReferenceResolver:
    """
    Resolves references in a query against the session's SearchState.

    Example:
        resolver = ReferenceResolver()
        resolved = resolver.resolve("tell me about the second one", session)
        resolved.resolved_values["vehicle_id"]
    """

    def __init__(self, comparatives: ComparativeResolver | None = None) -> None:
        self._comparatives = comparatives or ComparativeResolver()

    def extract_references(self, query: str) -> list[Reference]:
        references = [
            Reference(m.group(0).lower(), ReferenceType.PRONOUN, m.start())
            for pattern in (SINGULAR_PATTERN, PLURAL_PATTERN)
            for m in pattern.finditer(query)
        ]
        references += [
            Reference(m.group(0).lower(), ReferenceType.ANAPHORIC, m.start())
            for m in POSITIONAL_PATTERN.finditer(query)
        ]
        references += [
            Reference(c.term.term, ReferenceType.COMPARATIVE, c.position)
            for c in find_comparatives(query)
        ]
        references.sort(key=lambda r: r.position)
        return references

    def resolve(self, query: str, session: ConversationSession) -> ResolvedQuery:
        resolved = ResolvedQuery(original_query=query, references=self.extract_references(query))
        if not resolved.references:
            return resolved

        result_ids = list(session.search_state.last_result_ids)
        has_positional = POSITIONAL_PATTERN.search(query) is not None

        if not has_positional:
            self._resolve_singular(query, result_ids, resolved)
        self._resolve_plural(query, result_ids, resolved)
        if has_positional:
            self._resolve_positional(query, result_ids, resolved)

        for field_name, constraint in self._comparatives.resolve(
            query, session.search_state.active_filters
        ).items():
            resolved.resolved_values[field_name] = constraint

        logger.info(
            f"Resolved {len(resolved.resolved_values)} reference value(s) for session "
            f"{session.session_id} (unresolved={resolved.has_unresolved})"
        )
        return resolved

    # =====================================================================
    # Passes
    # =====================================================================

    @staticmethod
    def _resolve_singular(query: str, result_ids: list[str], resolved: ResolvedQuery) -> None:
        if not SINGULAR_PATTERN.search(query):
            return
        if len(result_ids) == 1:
            resolved.resolved_values["vehicle_id"] = result_ids[0]
            logger.info(f"Resolved singular pronoun to vehicle {result_ids[0]}")
        else:
            _unresolved(resolved, NO_SINGLE_VEHICLE_MESSAGE)

    @staticmethod
    def _resolve_plural(query: str, result_ids: list[str], resolved: ResolvedQuery) -> None:
        if not PLURAL_PATTERN.search(query):
            return
        if result_ids:
            resolved.resolved_values["vehicle_ids"] = list(result_ids)
            logger.info(f"Resolved plural pronoun to {len(result_ids)} vehicles")
        else:
            _unresolved(resolved, NO_PREVIOUS_RESULTS_MESSAGE)

    @staticmethod
    def _resolve_positional(query: str, result_ids: list[str], resolved: ResolvedQuery) -> None:
        if not result_ids:
            _unresolved(resolved, NO_POSITIONAL_RESULTS_MESSAGE)
            return
        for m in POSITIONAL_PATTERN.finditer(query):
            position = m.group(1).lower()
            index = _ORDINALS.get(position, len(result_ids) - 1)
            if index < len(result_ids):
                resolved.resolved_values["vehicle_id"] = result_ids[index]
                logger.info(f"Resolved '{m.group(0)}' to vehicle {result_ids[index]}")
            else:
                _unresolved(resolved, f"I only have {len(result_ids)} result(s) from the previous search.")


def _unresolved(resolved: ResolvedQuery, message: str) -> None:
    resolved.has_unresolved = True
    resolved.clarification = message
    logger.info(f"Unresolved reference: {message}")
