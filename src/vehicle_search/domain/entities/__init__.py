"""
Domain Entities

Core business objects for conversational vehicle search.
"""

from __future__ import annotations

from .conversation import (
    ConversationMessage,
    ConversationSession,
    MessageRole,
    ResultSummary,
    SearchState,
    SessionCounters,
)
from .query import (
    CONCEPT_PRIORITY,
    ENTITY_PRIORITY,
    ComposedQuery,
    ConstraintGroup,
    ConstraintOperator,
    ConstraintType,
    EntityType,
    ExtractedEntity,
    LogicalOperator,
    MappedQuery,
    MappingMetadata,
    ParsedQuery,
    QueryIntent,
    QueryType,
    Reference,
    ReferenceType,
    ResolvedQuery,
    SearchConstraint,
)
from .safety import (
    AbuseReport,
    PatternType,
    RateLimitResult,
    RiskLevel,
    SafetyValidationResult,
    SafetyViolationType,
    SecurityEventType,
    SessionBlockInfo,
    SuspiciousActivityReport,
    SuspiciousPattern,
)
from .search import (
    ApproachType,
    DiversityStats,
    ExactQuery,
    ScoreBreakdown,
    SearchApproach,
    SearchCandidate,
    SearchResults,
    SearchStrategy,
    StrategyType,
    VehicleResult,
)
from .turn import ClarificationNeeded, SafetyRejection, TurnOutcome, TurnResult
from .vehicle import Vehicle

__all__ = [
    # Vehicle
    "Vehicle",
    # Conversation
    "ConversationSession",
    "ConversationMessage",
    "MessageRole",
    "ResultSummary",
    "SearchState",
    "SessionCounters",
    # Query
    "QueryIntent",
    "EntityType",
    "ExtractedEntity",
    "ParsedQuery",
    "ConstraintOperator",
    "ConstraintType",
    "SearchConstraint",
    "ENTITY_PRIORITY",
    "CONCEPT_PRIORITY",
    "MappingMetadata",
    "MappedQuery",
    "LogicalOperator",
    "QueryType",
    "ConstraintGroup",
    "ComposedQuery",
    "ReferenceType",
    "Reference",
    "ResolvedQuery",
    # Search
    "StrategyType",
    "ApproachType",
    "SearchApproach",
    "SearchStrategy",
    "ExactQuery",
    "SearchCandidate",
    "ScoreBreakdown",
    "VehicleResult",
    "SearchResults",
    "DiversityStats",
    # Safety
    "SafetyViolationType",
    "SafetyValidationResult",
    "RateLimitResult",
    "PatternType",
    "RiskLevel",
    "SuspiciousPattern",
    "SuspiciousActivityReport",
    "SessionBlockInfo",
    "AbuseReport",
    "SecurityEventType",
    # Turn outcomes
    "TurnResult",
    "SafetyRejection",
    "ClarificationNeeded",
    "TurnOutcome",
]
