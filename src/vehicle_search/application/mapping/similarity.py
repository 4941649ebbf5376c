"""
ConceptSimilarityScorer - how well a vehicle fits a qualitative concept.

Each concept entry is scored in [0, 1] against the vehicle:

    lt / gt             graded: 1.0 at or beyond 70% (lt) / 130% (gt) of the
                        target, 0.2 past the opposite end, linear in between
    le / ge / between   1.0 when met, 0.2 otherwise
    eq / ne / in / contains
                        1.0 when met, 0.0 otherwise
    missing value       0.0

Entry scores are combined with the entry weights, then the description
adjusts the total: +0.05 per positive indicator phrase, -0.10 per negative
one, capped at +/-0.5. The result is clamped to [0, 1].
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from vehicle_search.domain.entities.query import ConstraintOperator, ConstraintType, SearchConstraint
from vehicle_search.domain.entities.vehicle import Vehicle

from .concepts import ConceptConstraint, ConceptIndicators, ConceptTable

logger = logging.getLogger(__name__)

# Entry scores at or above this count as a matching attribute
MATCH_THRESHOLD = 0.5
# Score for a missed bound
PARTIAL_CREDIT = 0.2

POSITIVE_INDICATOR_BOOST = 0.05
NEGATIVE_INDICATOR_PENALTY = 0.10
MAX_DESCRIPTION_BOOST = 0.5

_GRADED_LOW = 0.7
_GRADED_HIGH = 1.3


@dataclass
class ConceptScore:
    """Similarity of one vehicle to one concept, with its components."""

    concept: str
    overall: float = 0.0
    components: dict[str, float] = field(default_factory=dict)
    matching: list[str] = field(default_factory=list)
    mismatching: list[str] = field(default_factory=list)
    description_boost: float = 0.0

    @property
    def strength(self) -> str:
        if self.overall >= 0.8:
            return "Strongly"
        if self.overall >= 0.5:
            return "Partially"
        return "Weakly"

    def explain(self) -> str:
        text = f"{self.strength} matches '{self.concept}' criteria"
        if self.matching:
            text += f": {', '.join(self.matching)}"
        return text


class ConceptSimilarityScorer:
    """
    Scores vehicles against the concepts of a ConceptTable.

    Example:
        scorer = ConceptSimilarityScorer(ConceptTable.default())
        score = scorer.score(vehicle, "reliable")
        score.overall, score.components
        # 1.0, {'mileage': 1.0, 'serviceHistoryPresent': 1.0, 'numberOfServices': 1.0}
    """

    def __init__(self, concepts: ConceptTable | None = None) -> None:
        self._concepts = concepts or ConceptTable.default()

    @property
    def concepts(self) -> ConceptTable:
        return self._concepts

    def score(self, vehicle: Vehicle, concept: str) -> ConceptScore | None:
        """None when the concept is not in the table."""
        entries = self._concepts.lookup(concept)
        if entries is None:
            return None

        result = ConceptScore(concept=concept.strip().lower())
        weighted = 0.0
        for entry, weight in zip(entries, entry_weights(entries)):
            value = attribute_score(vehicle, entry)
            result.components[entry.field_name] = round(value, 4)
            if value >= MATCH_THRESHOLD:
                result.matching.append(entry.field_name)
            else:
                result.mismatching.append(entry.field_name)
            weighted += value * weight

        result.description_boost = description_boost(vehicle.description, self._concepts.indicators(concept))
        result.overall = max(0.0, min(1.0, weighted + result.description_boost))
        logger.debug(
            f"Concept '{result.concept}' for vehicle {vehicle.id}: base={weighted:.3f}, "
            f"boost={result.description_boost:.3f}, final={result.overall:.3f}"
        )
        return result

    def score_all(self, vehicle: Vehicle, concepts: Iterable[str]) -> list[ConceptScore]:
        """Scores for every known concept in ``concepts``; unknown terms are skipped."""
        scores = []
        for concept in concepts:
            scored = self.score(vehicle, concept)
            if scored is not None:
                scores.append(scored)
        return scores


def entry_weights(entries: tuple[ConceptConstraint, ...]) -> list[float]:
    """
    Weights that sum to 1.

    Unweighted entries share whatever the weighted ones leave over; when
    nothing is left they get no weight.
    """
    if not entries:
        return []
    explicit = sum(e.weight for e in entries if e.weight is not None)
    unweighted = sum(1 for e in entries if e.weight is None)
    share = max(0.0, 1.0 - explicit) / unweighted if unweighted else 0.0
    weights = [e.weight if e.weight is not None else share for e in entries]
    total = sum(weights)
    if total <= 0:
        return [1.0 / len(entries)] * len(entries)
    return [w / total for w in weights]


def attribute_score(vehicle: Vehicle, entry: ConceptConstraint) -> float:
    actual = vehicle.field_value(entry.field_name)
    if actual is None or actual == "":
        return 0.0

    met = SearchConstraint(entry.field_name, entry.operator, entry.value, ConstraintType.SEMANTIC).matches(vehicle)
    match entry.operator:
        case ConstraintOperator.LESS_THAN:
            return graded_score(actual, entry.value, lower_is_better=True)
        case ConstraintOperator.GREATER_THAN:
            return graded_score(actual, entry.value, lower_is_better=False)
        case (
            ConstraintOperator.LESS_THAN_OR_EQUAL
            | ConstraintOperator.GREATER_THAN_OR_EQUAL
            | ConstraintOperator.BETWEEN
        ):
            return 1.0 if met else PARTIAL_CREDIT
        case (
            ConstraintOperator.EQUALS
            | ConstraintOperator.NOT_EQUALS
            | ConstraintOperator.IN
            | ConstraintOperator.CONTAINS
        ):
            return 1.0 if met else 0.0
    return 0.0


def graded_score(actual: Any, target: Any, *, lower_is_better: bool) -> float:
    """Linear score between 70% and 130% of the target."""
    try:
        actual_value = float(actual)
        target_value = float(target)
    except (TypeError, ValueError):
        return 0.0
    if target_value <= 0:
        met = actual_value < target_value if lower_is_better else actual_value > target_value
        return 1.0 if met else PARTIAL_CREDIT

    ratio = min(max(actual_value / target_value, _GRADED_LOW), _GRADED_HIGH)
    position = (ratio - _GRADED_LOW) / (_GRADED_HIGH - _GRADED_LOW)
    if lower_is_better:
        return 1.0 - (1.0 - PARTIAL_CREDIT) * position
    return PARTIAL_CREDIT + (1.0 - PARTIAL_CREDIT) * position


def description_boost(description: str, indicators: ConceptIndicators) -> float:
    if not description or not description.strip():
        return 0.0
    text = description.casefold()
    boost = POSITIVE_INDICATOR_BOOST * sum(1 for p in indicators.positive if p.casefold() in text)
    boost -= NEGATIVE_INDICATOR_PENALTY * sum(1 for n in indicators.negative if n.casefold() in text)
    return max(-MAX_DESCRIPTION_BOOST, min(MAX_DESCRIPTION_BOOST, boost))
