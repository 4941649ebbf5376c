"""
QueryRefiner - merges a follow-up turn's constraints into the previous
search's active filters.
"""

from __future__ import annotations

import logging

from vehicle_search.domain.entities.query import SearchConstraint

logger = logging.getLogger(__name__)

# Field used by resolved vehicle references; never carried between turns
REFERENCE_FIELD = "id"


class QueryRefiner:
    """
    Newest constraint wins per field.

    Every field the new turn constrains replaces the active filter on that
    field; fields it does not mention keep their previous constraint.
    """

    def merge(
        self,
        new_constraints: list[SearchConstraint],
        active_filters: dict[str, SearchConstraint],
    ) -> list[SearchConstraint]:
        touched = {c.field_name for c in new_constraints}
        merged = [
            c
            for field_name, c in active_filters.items()
            if field_name not in touched and field_name != REFERENCE_FIELD
        ]
        for constraint in new_constraints:
            if constraint.field_name in active_filters:
                logger.debug(
                    f"Replacing {active_filters[constraint.field_name].describe()} "
                    f"with {constraint.describe()}"
                )
        merged.extend(new_constraints)
        logger.info(
            f"Refined query: {len(active_filters)} active + {len(new_constraints)} new "
            f"-> {len(merged)} constraint(s)"
        )
        return merged

    @staticmethod
    def active_filters_from(constraints: list[SearchConstraint]) -> dict[str, SearchConstraint]:
        """
        One constraint per field to carry into the next turn.

        Higher priority wins; at equal priority the later constraint wins.
        Vehicle reference constraints are dropped.
        """
        active: dict[str, SearchConstraint] = {}
        for constraint in constraints:
            if constraint.field_name == REFERENCE_FIELD:
                continue
            current = active.get(constraint.field_name)
            if current is None or constraint.priority >= current.priority:
                active[constraint.field_name] = constraint
        return active
