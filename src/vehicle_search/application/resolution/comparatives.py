"""
ComparativeResolver - "cheaper", "newer", "lower mileage" against the
previous search's active filters.

A comparative only means something relative to an earlier constraint on
the same field; without one it is silently left unresolved.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Any

from vehicle_search.domain.entities.query import ConstraintOperator, SearchConstraint

logger = logging.getLogger(__name__)

PERCENTAGE_CHANGE = 0.10


@dataclass(frozen=True)
class ComparativeTerm:
    term: str
    field_name: str
    increase: bool


COMPARATIVE_TERMS: tuple[ComparativeTerm, ...] = (
    ComparativeTerm("cheaper", "price", False),
    ComparativeTerm("less expensive", "price", False),
    ComparativeTerm("more expensive", "price", True),
    ComparativeTerm("pricier", "price", True),
    ComparativeTerm("lower mileage", "mileage", False),
    ComparativeTerm("less mileage", "mileage", False),
    ComparativeTerm("higher mileage", "mileage", True),
    ComparativeTerm("more mileage", "mileage", True),
    ComparativeTerm("newer", "registrationDate", True),
    ComparativeTerm("older", "registrationDate", False),
    ComparativeTerm("bigger", "size", True),
    ComparativeTerm("larger", "size", True),
    ComparativeTerm("smaller", "size", False),
)

_TERMS_BY_TEXT = {t.term: t for t in COMPARATIVE_TERMS}
_TERM_PATTERN = re.compile(
    r"\b(?:" + "|".join(re.escape(t.term) for t in sorted(COMPARATIVE_TERMS, key=lambda t: -len(t.term))) + r")\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ComparativeMatch:
    term: ComparativeTerm
    position: int


def find_comparatives(query: str) -> list[ComparativeMatch]:
    """Comparative terms in ``query``, in order of appearance."""
    return [
        ComparativeMatch(_TERMS_BY_TEXT[m.group(0).lower()], m.start())
        for m in _TERM_PATTERN.finditer(query)
    ]


def shift_value(value: Any, increase: bool, change: float = PERCENTAGE_CHANGE) -> Any:
    """
    Move ``value`` by ``change`` (numbers) or one year (dates).

    Integer changes truncate, so 20000 -> 18000 and 25500 -> 22950.
    Returns None for values that cannot be shifted.
    """
    match value:
        case bool():
            return None
        case int():
            delta = int(value * change)
            return value + delta if increase else value - delta
        case float():
            delta = value * change
            return value + delta if increase else value - delta
        case date():
            year = value.year + (1 if increase else -1)
            try:
                return value.replace(year=year)
            except ValueError:
                # 29 February in a non-leap year
                return value.replace(year=year, day=28)
        case _:
            return None


class ComparativeResolver:
    """
    Example:
        resolver = ComparativeResolver()
        active = {"price": SearchConstraint("price", ConstraintOperator.LESS_THAN_OR_EQUAL, 20000)}
        resolver.resolve("show me cheaper ones", active)
        # {"price": SearchConstraint("price", LESS_THAN, 18000)}
    """

    def __init__(self, change: float = PERCENTAGE_CHANGE) -> None:
        self._change = change

    def resolve(
        self,
        query: str,
        active_filters: dict[str, SearchConstraint],
    ) -> dict[str, SearchConstraint]:
        resolved: dict[str, SearchConstraint] = {}
        for match in find_comparatives(query):
            term = match.term
            if term.field_name in resolved:
                continue
            previous = active_filters.get(term.field_name)
            if previous is None:
                logger.debug(f"No active filter on {term.field_name}, '{term.term}' left unresolved")
                continue
            constraint = self._apply(previous, term)
            if constraint is not None:
                resolved[term.field_name] = constraint
                logger.info(f"Resolved comparative '{term.term}': {constraint.describe()}")
        return resolved

    def _apply(self, previous: SearchConstraint, term: ComparativeTerm) -> SearchConstraint | None:
        base = previous.value[1] if previous.operator is ConstraintOperator.BETWEEN else previous.value
        shifted = shift_value(base, term.increase, self._change)
        if shifted is None:
            logger.warning(f"Cannot apply '{term.term}' to {previous.describe()}")
            return None
        return SearchConstraint(
            field_name=term.field_name,
            operator=ConstraintOperator.GREATER_THAN if term.increase else ConstraintOperator.LESS_THAN,
            value=shifted,
            type=previous.type,
            priority=previous.priority,
            source=term.term,
        )
