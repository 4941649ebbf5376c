"""
Search Execution Module

Provides:
- SearchOrchestrator: strategy selection, concurrent execution, degradation
- reciprocal_rank_fusion: weighted RRF over exact and semantic lists
- ResultRanker: factor scoring, business rules, diversity caps
"""

from .fusion import DEFAULT_RRF_K, FusedCandidate, reciprocal_rank_fusion
from .orchestrator import SearchOrchestrator
from .ranking import (
    DEFAULT_FACTOR_WEIGHTS,
    BusinessRule,
    RankingFactor,
    ResultRanker,
    concept_terms,
    condition_score,
    default_business_rules,
    normalize_weights,
    recency_score,
)

__all__ = [
    "SearchOrchestrator",
    "reciprocal_rank_fusion",
    "FusedCandidate",
    "DEFAULT_RRF_K",
    "ResultRanker",
    "RankingFactor",
    "BusinessRule",
    "DEFAULT_FACTOR_WEIGHTS",
    "default_business_rules",
    "normalize_weights",
    "condition_score",
    "concept_terms",
    "recency_score",
]
