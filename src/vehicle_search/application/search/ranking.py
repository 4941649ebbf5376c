"""
ResultRanker - weighted multi-factor reranking, business rules, diversity.

Scoring Dimensions (default weights):
    semantic_relevance      0.40  vector similarity (or normalized fused score),
                                  averaged with concept fit for qualitative terms
    exact_match_count       0.25  share of query constraints the vehicle meets
    price_competitiveness   0.15  inverse min-max price within the result set
    vehicle_condition       0.10  service history, mileage, MOT, services, damage
    recency                 0.10  stepped by age since registration
    popularity              0.00
    location_proximity      0.00  1.0 when sold at a requested location

Concept fit comes from ConceptSimilarityScorer; each concept's overall
score and per-attribute components are exposed in ``factor_scores`` as
``concept:<term>`` and ``concept:<term>:<field>``.

Weights are normalized when they do not sum to 1. When the strategy does
not ask for reranking, the score is the fused score relative to the top
result. Business rules then add their adjustments in order and the score
is clamped to [0, 1]. Finally results are sorted and capped per make and
per make:model.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date
from enum import Enum

from vehicle_search.application.mapping import ConceptSimilarityScorer
from vehicle_search.core.exceptions import ConfigurationError
from vehicle_search.domain.entities.query import ComposedQuery, ConstraintOperator
from vehicle_search.domain.entities.search import DiversityStats, SearchStrategy, VehicleResult
from vehicle_search.domain.entities.vehicle import Vehicle

logger = logging.getLogger(__name__)


class RankingFactor(Enum):
    SEMANTIC_RELEVANCE = "semantic_relevance"
    EXACT_MATCH_COUNT = "exact_match_count"
    PRICE_COMPETITIVENESS = "price_competitiveness"
    VEHICLE_CONDITION = "vehicle_condition"
    RECENCY = "recency"
    POPULARITY = "popularity"
    LOCATION_PROXIMITY = "location_proximity"


DEFAULT_FACTOR_WEIGHTS: dict[RankingFactor, float] = {
    RankingFactor.SEMANTIC_RELEVANCE: 0.40,
    RankingFactor.EXACT_MATCH_COUNT: 0.25,
    RankingFactor.PRICE_COMPETITIVENESS: 0.15,
    RankingFactor.VEHICLE_CONDITION: 0.10,
    RankingFactor.RECENCY: 0.10,
    RankingFactor.POPULARITY: 0.0,
    RankingFactor.LOCATION_PROXIMITY: 0.0,
}

# Neutral factor value when there is nothing to compare against
NEUTRAL_SCORE = 0.5

DEFAULT_PREMIUM_MAKES = ("BMW", "Mercedes-Benz", "Audi", "Porsche", "Jaguar", "Land Rover")
_ELECTRIFIED = frozenset({"electric", "hybrid", "plug-in hybrid"})


# =============================================================================
# Business Rules
# =============================================================================


@dataclass(frozen=True)
class BusinessRule:
    """A predicate on (vehicle, today) and the score adjustment it triggers."""

    name: str
    condition: Callable[[Vehicle, date], bool]
    adjustment: float

    def __post_init__(self) -> None:
        if not -1.0 <= self.adjustment <= 1.0:
            raise ValueError(f"Rule '{self.name}' adjustment must be in [-1, 1], got {self.adjustment}")


def has_damage_declaration(vehicle: Vehicle) -> bool:
    return any("damage" in d.lower() or "accident" in d.lower() for d in vehicle.declarations)


def _days_to_mot(vehicle: Vehicle, today: date) -> int | None:
    if vehicle.mot_expiry_date is None:
        return None
    return (vehicle.mot_expiry_date - today).days


def default_business_rules(premium_makes: Iterable[str] = DEFAULT_PREMIUM_MAKES) -> tuple[BusinessRule, ...]:
    premium = frozenset(m.lower() for m in premium_makes)
    return (
        BusinessRule("Premium make", lambda v, _: v.make.lower() in premium, 0.05),
        BusinessRule("High mileage", lambda v, _: v.mileage > 100_000, -0.15),
        BusinessRule("Full service history", lambda v, _: bool(v.service_history_present), 0.10),
        BusinessRule("Damage declared", lambda v, _: has_damage_declaration(v), -0.20),
        BusinessRule("Electric or hybrid", lambda v, _: v.fuel_type.lower() in _ELECTRIFIED, 0.08),
        BusinessRule(
            "MOT due soon",
            lambda v, today: (days := _days_to_mot(v, today)) is not None and days < 30,
            -0.10,
        ),
    )


# =============================================================================
# Factor Scores
# =============================================================================


def condition_score(vehicle: Vehicle, today: date) -> float:
    score = 0.0
    if vehicle.service_history_present:
        score += 0.3

    if vehicle.mileage < 50_000:
        score += 0.2
    elif vehicle.mileage < 80_000:
        score += 0.1

    days = _days_to_mot(vehicle, today)
    if days is not None:
        if days > 90:
            score += 0.2
        elif days > 30:
            score += 0.1

    if vehicle.number_of_services is not None:
        if vehicle.number_of_services >= 5:
            score += 0.2
        elif vehicle.number_of_services >= 3:
            score += 0.1

    if not has_damage_declaration(vehicle):
        score += 0.1
    return min(1.0, score)


def recency_score(vehicle: Vehicle, today: date) -> float:
    age = vehicle.age_years(today)
    if age is None:
        return NEUTRAL_SCORE
    if age <= 1:
        return 1.0
    if age <= 3:
        return 0.8
    if age <= 5:
        return 0.6
    if age <= 10:
        return 0.4
    return 0.2


def price_score(vehicle: Vehicle, min_price: float, max_price: float) -> float:
    if max_price == min_price:
        return NEUTRAL_SCORE
    return 1.0 - (vehicle.price - min_price) / (max_price - min_price)


def exact_match_score(vehicle: Vehicle, composed: ComposedQuery) -> float:
    constraints = composed.constraints
    if not constraints:
        return NEUTRAL_SCORE
    return sum(1 for c in constraints if c.matches(vehicle)) / len(constraints)


def requested_locations(composed: ComposedQuery) -> frozenset[str]:
    locations: set[str] = set()
    for c in composed.constraints:
        if c.field_name != "saleLocation":
            continue
        match c.operator:
            case ConstraintOperator.EQUALS:
                locations.add(str(c.value).casefold())
            case ConstraintOperator.IN:
                locations.update(str(v).casefold() for v in c.value)
            case _:
                pass
    return frozenset(locations)


def concept_terms(composed: ComposedQuery) -> list[str]:
    """Qualitative terms behind the semantic constraints, in order."""
    terms = (t.strip() for c in composed.semantic_constraints for t in c.source.split(","))
    return list(dict.fromkeys(t for t in terms if t))


# =============================================================================
# Ranker
# =============================================================================


class ResultRanker:
    """
    Example:
        ranker = ResultRanker()
        ranked, stats = ranker.rank(search_results.results, composed, strategy, max_results=10)
    """

    def __init__(
        self,
        weights: dict[str, float] | dict[RankingFactor, float] | None = None,
        *,
        max_per_make: int = 3,
        max_per_model: int = 2,
        business_rules: Iterable[BusinessRule] | None = None,
        today: Callable[[], date] = date.today,
        concept_scorer: ConceptSimilarityScorer | None = None,
    ) -> None:
        if max_per_make < 1 or max_per_model < 1:
            raise ConfigurationError("Diversity caps must be at least 1")
        self._weights = normalize_weights(weights if weights is not None else DEFAULT_FACTOR_WEIGHTS)
        self._max_per_make = max_per_make
        self._max_per_model = max_per_model
        self._rules = tuple(business_rules) if business_rules is not None else default_business_rules()
        self._today = today
        self._concept_scorer = concept_scorer or ConceptSimilarityScorer()

    @property
    def weights(self) -> dict[RankingFactor, float]:
        return dict(self._weights)

    def rank(
        self,
        results: list[VehicleResult],
        composed: ComposedQuery,
        strategy: SearchStrategy | None,
        max_results: int = 10,
    ) -> tuple[list[VehicleResult], DiversityStats]:
        if not results:
            return [], DiversityStats()

        today = self._today()
        top_fused = max(r.score for r in results) or 1.0
        if strategy is not None and strategy.should_rerank:
            self._score_factors(results, composed, today, top_fused)
        else:
            for result in results:
                result.score = result.score / top_fused

        for result in results:
            self._apply_rules(result, today)
            result.breakdown.final_score = result.score

        ranked, stats = self.diversify(results, max_results)
        logger.info(
            f"Ranked {len(results)} results -> {len(ranked)} "
            f"({stats.dropped_count} dropped for diversity)"
        )
        return ranked, stats

    def _score_factors(
        self,
        results: list[VehicleResult],
        composed: ComposedQuery,
        today: date,
        top_fused: float,
    ) -> None:
        prices = [r.vehicle.price for r in results]
        min_price, max_price = min(prices), max(prices)
        locations = requested_locations(composed)
        terms = concept_terms(composed)

        for result in results:
            vehicle = result.vehicle
            semantic = result.breakdown.semantic_score
            if semantic is None:
                semantic = result.score / top_fused
            concept_scores = self._concept_scorer.score_all(vehicle, terms)
            if concept_scores:
                concept_fit = sum(s.overall for s in concept_scores) / len(concept_scores)
                semantic = (semantic + concept_fit) / 2
            factors: dict[RankingFactor, float] = {}
            for factor, weight in self._weights.items():
                if weight == 0:
                    continue
                match factor:
                    case RankingFactor.SEMANTIC_RELEVANCE:
                        value = semantic
                    case RankingFactor.EXACT_MATCH_COUNT:
                        value = exact_match_score(vehicle, composed)
                    case RankingFactor.PRICE_COMPETITIVENESS:
                        value = price_score(vehicle, min_price, max_price)
                    case RankingFactor.VEHICLE_CONDITION:
                        value = condition_score(vehicle, today)
                    case RankingFactor.RECENCY:
                        value = recency_score(vehicle, today)
                    case RankingFactor.POPULARITY:
                        value = max(0.0, min(1.0, vehicle.popularity))
                    case RankingFactor.LOCATION_PROXIMITY:
                        value = 1.0 if vehicle.sale_location.casefold() in locations else 0.0
                factors[factor] = value

            result.factor_scores = {f.value: round(v, 4) for f, v in factors.items()}
            for scored in concept_scores:
                result.factor_scores[f"concept:{scored.concept}"] = round(scored.overall, 4)
                for field_name, value in scored.components.items():
                    result.factor_scores[f"concept:{scored.concept}:{field_name}"] = value
                result.highlights.append(scored.explain())
            result.score = sum(v * self._weights[f] for f, v in factors.items())

    def _apply_rules(self, result: VehicleResult, today: date) -> None:
        adjustment = 0.0
        for rule in self._rules:
            if rule.condition(result.vehicle, today):
                adjustment += rule.adjustment
                result.highlights.append(rule.name)
        result.score = max(0.0, min(1.0, result.score + adjustment))

    def diversify(
        self,
        results: list[VehicleResult],
        max_results: int,
    ) -> tuple[list[VehicleResult], DiversityStats]:
        """Highest score first, at most ``max_per_make`` per make and ``max_per_model`` per make:model."""
        make_counts: dict[str, int] = {}
        model_counts: dict[str, int] = {}
        kept: list[VehicleResult] = []
        dropped: list[str] = []

        for result in sorted(results, key=lambda r: r.score, reverse=True):
            make = result.vehicle.make.casefold()
            model_key = f"{make}:{result.vehicle.model.casefold()}"
            if make_counts.get(make, 0) >= self._max_per_make or model_counts.get(model_key, 0) >= self._max_per_model:
                dropped.append(result.vehicle_id)
                continue
            kept.append(result)
            make_counts[make] = make_counts.get(make, 0) + 1
            model_counts[model_key] = model_counts.get(model_key, 0) + 1

        output = kept[:max_results]
        stats = DiversityStats(
            input_count=len(results),
            output_count=len(output),
            dropped_ids=dropped,
            make_counts=_count_makes(output),
        )
        return output, stats


def normalize_weights(weights: dict[str, float] | dict[RankingFactor, float]) -> dict[RankingFactor, float]:
    """
    Parse factor names and scale weights to sum to 1.

    Raises:
        ConfigurationError: unknown factor, negative weight, or all zero
    """
    parsed: dict[RankingFactor, float] = {}
    for key, weight in weights.items():
        try:
            factor = key if isinstance(key, RankingFactor) else RankingFactor(str(key))
        except ValueError as exc:
            raise ConfigurationError(f"Unknown ranking factor: {key!r}") from exc
        if weight < 0:
            raise ConfigurationError(f"Ranking weight for {factor.value} must not be negative")
        parsed[factor] = float(weight)

    total = sum(parsed.values())
    if total <= 0:
        raise ConfigurationError("Ranking weights must not all be zero")
    if abs(total - 1.0) > 0.001:
        logger.warning(f"Factor weights sum to {total:.3f}, normalizing to 1.0")
    return {f: w / total for f, w in parsed.items()}


def _count_makes(results: list[VehicleResult]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for r in results:
        counts[r.vehicle.make] = counts.get(r.vehicle.make, 0) + 1
    return counts
