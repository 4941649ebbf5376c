"""
Outcomes of one conversational turn.

Exactly one of these is returned by the pipeline for every turn; safety
violations and unresolved references are outcomes, not exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .query import ComposedQuery, ParsedQuery
from .safety import SafetyValidationResult, SafetyViolationType
from .search import DiversityStats, SearchStrategy, VehicleResult


@dataclass
class TurnResult:
    """Ranked search results for the turn."""

    session_id: str
    results: list[VehicleResult] = field(default_factory=list)
    parsed_query: ParsedQuery | None = None
    composed_query: ComposedQuery | None = None
    strategy: SearchStrategy | None = None
    total_count: int = 0
    warnings: list[str] = field(default_factory=list)
    diversity: DiversityStats = field(default_factory=DiversityStats)
    degraded: bool = False
    search_duration_ms: float = 0.0
    new_session: bool = False

    @property
    def vehicle_ids(self) -> list[str]:
        return [r.vehicle_id for r in self.results]


@dataclass
class SafetyRejection:
    """The turn was refused; ``message`` is safe to show the user."""

    session_id: str
    validation: SafetyValidationResult
    new_session: bool = False

    @property
    def violation_type(self) -> SafetyViolationType | None:
        return self.validation.violation_type

    @property
    def message(self) -> str:
        return self.validation.message or ""

    @property
    def retry_after(self) -> float | None:
        return self.validation.retry_after


@dataclass
class ClarificationNeeded:
    """The turn needs more information before it can be searched."""

    session_id: str
    message: str
    parsed_query: ParsedQuery | None = None
    new_session: bool = False


TurnOutcome = TurnResult | SafetyRejection | ClarificationNeeded
