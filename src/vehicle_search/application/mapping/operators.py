"""
OperatorInference - comparison operator from the words before a value.

"under £20k" -> LessThanOrEqual, "less than 50k miles" -> LessThan,
"around £15k" -> approximate (the mapper widens it to a ±10% Between).
"""

from __future__ import annotations

import logging
import re

from vehicle_search.domain.entities.query import ConstraintOperator

logger = logging.getLogger(__name__)

CONTEXT_WINDOW_WORDS = 3

# Approximate phrases map to BETWEEN; the mapper decides the actual bounds
OPERATOR_PHRASES: dict[str, ConstraintOperator] = {
    "under": ConstraintOperator.LESS_THAN_OR_EQUAL,
    "below": ConstraintOperator.LESS_THAN_OR_EQUAL,
    "up to": ConstraintOperator.LESS_THAN_OR_EQUAL,
    "max": ConstraintOperator.LESS_THAN_OR_EQUAL,
    "maximum": ConstraintOperator.LESS_THAN_OR_EQUAL,
    "less than": ConstraintOperator.LESS_THAN,
    "fewer than": ConstraintOperator.LESS_THAN,
    "before": ConstraintOperator.LESS_THAN,
    "over": ConstraintOperator.GREATER_THAN_OR_EQUAL,
    "above": ConstraintOperator.GREATER_THAN_OR_EQUAL,
    "at least": ConstraintOperator.GREATER_THAN_OR_EQUAL,
    "min": ConstraintOperator.GREATER_THAN_OR_EQUAL,
    "minimum": ConstraintOperator.GREATER_THAN_OR_EQUAL,
    "since": ConstraintOperator.GREATER_THAN_OR_EQUAL,
    "more than": ConstraintOperator.GREATER_THAN,
    "greater than": ConstraintOperator.GREATER_THAN,
    "after": ConstraintOperator.GREATER_THAN,
    "exactly": ConstraintOperator.EQUALS,
    "around": ConstraintOperator.BETWEEN,
    "about": ConstraintOperator.BETWEEN,
    "approximately": ConstraintOperator.BETWEEN,
    "roughly": ConstraintOperator.BETWEEN,
}

APPROXIMATE_PHRASES = frozenset(p for p, op in OPERATOR_PHRASES.items() if op is ConstraintOperator.BETWEEN)

_PHRASE_PATTERN = re.compile(
    r"\b(?:" + "|".join(re.escape(p) for p in sorted(OPERATOR_PHRASES, key=len, reverse=True)) + r")\b",
    re.IGNORECASE,
)


def context_before(text: str, position: int, words: int = CONTEXT_WINDOW_WORDS) -> str:
    """The last ``words`` whitespace-separated words before ``position``."""
    return " ".join(text[:position].split()[-words:])


class OperatorInference:
    """
    Example:
        inference = OperatorInference()
        inference.infer("BMW under", ConstraintOperator.EQUALS)
        # ConstraintOperator.LESS_THAN_OR_EQUAL
    """

    def infer(self, context: str | None, default: ConstraintOperator) -> ConstraintOperator:
        """
        Operator implied by ``context``; the phrase nearest its end wins.

        Multi-word phrases are matched before their single-word suffixes,
        so "less than" never reads as "than".
        """
        if not context or not context.strip():
            return default
        matches = list(_PHRASE_PATTERN.finditer(context))
        if not matches:
            return default
        phrase = matches[-1].group(0).lower()
        operator = OPERATOR_PHRASES[" ".join(phrase.split())]
        logger.debug(f"Inferred {operator.name} from '{phrase}'")
        return operator

    def is_approximate(self, context: str | None) -> bool:
        return self.infer(context, ConstraintOperator.EQUALS) is ConstraintOperator.BETWEEN
