"""
Search execution entities: strategies, backend candidates and ranked results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vehicle_search.domain.entities.query import SearchConstraint
    from vehicle_search.domain.entities.vehicle import Vehicle


class StrategyType(Enum):
    EXACT_ONLY = "exact_only"
    SEMANTIC_ONLY = "semantic_only"
    HYBRID = "hybrid"
    MULTI_STAGE = "multi_stage"


class ApproachType(Enum):
    EXACT_MATCH = "exact_match"
    SEMANTIC_SEARCH = "semantic_search"
    KEYWORD_SEARCH = "keyword_search"


@dataclass(frozen=True)
class SearchApproach:
    """One retrieval method contributing to a strategy, with its fusion weight."""

    type: ApproachType
    weight: float = 1.0


@dataclass
class SearchStrategy:
    """Execution plan selected for a composed query."""

    type: StrategyType
    approaches: list[SearchApproach] = field(default_factory=list)
    should_rerank: bool = False

    def weight_of(self, approach: ApproachType) -> float:
        for a in self.approaches:
            if a.type is approach:
                return a.weight
        return 0.0

    def uses(self, approach: ApproachType) -> bool:
        return any(a.type is approach for a in self.approaches)


@dataclass(frozen=True)
class ExactQuery:
    """
    Exact-filter request for the search backend.

    ``filter_expression`` is the wire form; ``constraints`` carries the
    same restrictions in structured form for backends that evaluate
    in-process.
    """

    filter_expression: str | None
    constraints: tuple[SearchConstraint, ...] = ()
    limit: int = 10


@dataclass
class SearchCandidate:
    """A backend hit. ``score`` is a similarity in [0, 1] for vector hits."""

    vehicle: Vehicle
    score: float = 0.0
    match_count: int = 0


@dataclass
class ScoreBreakdown:
    exact_score: float = 0.0
    # None when the vehicle had no vector hit
    semantic_score: float | None = None
    keyword_score: float = 0.0
    final_score: float = 0.0


@dataclass
class VehicleResult:
    """A ranked vehicle with an explainable score."""

    vehicle: Vehicle
    score: float = 0.0
    breakdown: ScoreBreakdown = field(default_factory=ScoreBreakdown)
    highlights: list[str] = field(default_factory=list)
    factor_scores: dict[str, float] = field(default_factory=dict)

    @property
    def vehicle_id(self) -> str:
        return self.vehicle.id


@dataclass
class SearchResults:
    """Orchestrator output prior to final ranking."""

    results: list[VehicleResult] = field(default_factory=list)
    strategy: SearchStrategy | None = None
    total_count: int = 0
    warnings: list[str] = field(default_factory=list)
    search_duration_ms: float = 0.0
    degraded: bool = False


@dataclass
class DiversityStats:
    """What the diversity pass removed."""

    input_count: int = 0
    output_count: int = 0
    dropped_ids: list[str] = field(default_factory=list)
    make_counts: dict[str, int] = field(default_factory=dict)

    @property
    def dropped_count(self) -> int:
        return len(self.dropped_ids)
