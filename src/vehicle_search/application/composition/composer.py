"""
QueryComposer - mapped constraints to a ComposedQuery.

Steps:
1. Group constraints by (field, priority), first appearance first
2. Resolve contradictions inside each group (ConflictResolver)
3. Relax: drop lower-priority groups incompatible with higher ones
4. Classify the query and render the exact/range filter expression
5. Collect semantic hints (concept terms and unmapped qualitative terms)

Conflicts never raise; they surface as ``warnings`` with
``has_conflicts=True``.
"""

from __future__ import annotations

import logging

from vehicle_search.domain.entities.query import (
    ComposedQuery,
    ConstraintGroup,
    ConstraintType,
    MappedQuery,
    QueryType,
    SearchConstraint,
)

from .conflicts import ConflictResolver
from .filters import FilterTranslator

logger = logging.getLogger(__name__)


class QueryComposer:
    """
    Example:
        composer = QueryComposer()
        composed = composer.compose(mapped)
        composed.filter_expression
        # "make eq 'BMW' and price le 25000"
    """

    def __init__(
        self,
        resolver: ConflictResolver | None = None,
        translator: FilterTranslator | None = None,
    ) -> None:
        self._resolver = resolver or ConflictResolver()
        self._translator = translator or FilterTranslator()

    def compose(self, mapped: MappedQuery) -> ComposedQuery:
        groups = self.group(mapped.constraints)

        warnings: list[str] = []
        for group in groups:
            warnings.extend(self._resolver.resolve_group(group))
        groups, relaxed = self._resolver.relax(groups)
        warnings.extend(relaxed)

        constraints = [c for g in groups for c in g.constraints]
        composed = ComposedQuery(
            groups=groups,
            type=classify(constraints),
            has_conflicts=bool(warnings),
            warnings=warnings,
            filter_expression=self._translator.translate(groups),
            semantic_hints=_semantic_hints(constraints, mapped),
        )
        if warnings:
            logger.info(f"Composed query with {len(warnings)} conflict warning(s)")
        logger.debug(f"Composed {composed.type.value} query: {composed.filter_expression}")
        return composed

    @staticmethod
    def group(constraints: list[SearchConstraint]) -> list[ConstraintGroup]:
        groups: dict[tuple[str, float], ConstraintGroup] = {}
        for constraint in constraints:
            key = (constraint.field_name, constraint.priority)
            group = groups.get(key)
            if group is None:
                group = groups[key] = ConstraintGroup(field_name=constraint.field_name, priority=constraint.priority)
            group.constraints.append(constraint)
        return list(groups.values())


def classify(constraints: list[SearchConstraint]) -> QueryType:
    if len(constraints) <= 1:
        return QueryType.SIMPLE
    semantic = sum(1 for c in constraints if c.type is ConstraintType.SEMANTIC)
    if any(c.type is ConstraintType.COMPOSITE for c in constraints) or semantic == len(constraints):
        return QueryType.COMPLEX
    if semantic:
        return QueryType.MULTI_MODAL
    return QueryType.FILTERED


def _semantic_hints(constraints: list[SearchConstraint], mapped: MappedQuery) -> list[str]:
    hints = [c.source for c in constraints if c.type is ConstraintType.SEMANTIC and c.source]
    hints.extend(mapped.semantic_terms)
    hints.extend(mapped.unmapped_concepts)
    return list(dict.fromkeys(hints))
