"""
SearchOrchestrator - strategy selection and execution.

Strategy decision:
    exact/range constraints only        -> ExactOnly    (weight 1.0, no rerank)
    semantic constraints/hints only     -> SemanticOnly (rerank)
    no constraints at all               -> SemanticOnly (rerank)
    both                                -> Hybrid       (exact weight min(0.7, 0.15 * n_exact))

Execution:
    - the exact call and the embedding + vector call run concurrently,
      each under its own deadline
    - Hybrid passes the exact filter to the vector call
    - a semantic failure or timeout degrades to exact-only with a warning;
      for SemanticOnly that means an unfiltered exact browse
    - an exact failure raises ExactSearchError (cause chained)
    - lists are fused with weighted RRF
"""

from __future__ import annotations

import logging
import time

from vehicle_search.core.async_utils import gather_with_errors, with_deadline
from vehicle_search.core.exceptions import (
    ErrorContext,
    ExactSearchError,
    InvalidParameterError,
    SemanticSearchError,
)
from vehicle_search.domain.entities.query import ComposedQuery
from vehicle_search.domain.entities.search import (
    ApproachType,
    ExactQuery,
    ScoreBreakdown,
    SearchApproach,
    SearchCandidate,
    SearchResults,
    SearchStrategy,
    StrategyType,
    VehicleResult,
)
from vehicle_search.infrastructure.backends.protocols import EmbeddingProvider, SearchBackend

from .fusion import DEFAULT_RRF_K, reciprocal_rank_fusion

logger = logging.getLogger(__name__)

MAX_EXACT_WEIGHT = 0.7
EXACT_WEIGHT_PER_CONSTRAINT = 0.15

_EXACT = "exact"
_SEMANTIC = "semantic"


class SearchOrchestrator:
    """
    Example:
        orchestrator = SearchOrchestrator(backend, embeddings)
        strategy = orchestrator.plan(composed, max_results=10)
        results = await orchestrator.execute(composed, strategy, 10, query_text="reliable BMW")
    """

    def __init__(
        self,
        backend: SearchBackend,
        embeddings: EmbeddingProvider,
        *,
        timeout: float | None = 5.0,
        rrf_k: int = DEFAULT_RRF_K,
        candidate_multiplier: int = 3,
        max_results_limit: int = 100,
    ) -> None:
        self._backend = backend
        self._embeddings = embeddings
        self._timeout = timeout
        self._rrf_k = rrf_k
        self._candidate_multiplier = max(1, candidate_multiplier)
        self._max_results_limit = max_results_limit

    # =====================================================================
    # Strategy
    # =====================================================================

    def plan(self, composed: ComposedQuery, max_results: int = 10) -> SearchStrategy:
        self.validate_max_results(max_results)

        n_exact = len(composed.filterable_constraints)
        has_semantic = bool(composed.semantic_constraints or composed.semantic_hints)

        if n_exact and not has_semantic:
            strategy = SearchStrategy(
                type=StrategyType.EXACT_ONLY,
                approaches=[SearchApproach(ApproachType.EXACT_MATCH, 1.0)],
                should_rerank=False,
            )
        elif n_exact:
            exact_weight = min(MAX_EXACT_WEIGHT, EXACT_WEIGHT_PER_CONSTRAINT * n_exact)
            strategy = SearchStrategy(
                type=StrategyType.HYBRID,
                approaches=[
                    SearchApproach(ApproachType.EXACT_MATCH, exact_weight),
                    SearchApproach(ApproachType.SEMANTIC_SEARCH, 1.0 - exact_weight),
                ],
                should_rerank=True,
            )
        else:
            strategy = SearchStrategy(
                type=StrategyType.SEMANTIC_ONLY,
                approaches=[SearchApproach(ApproachType.SEMANTIC_SEARCH, 1.0)],
                should_rerank=True,
            )

        logger.info(
            f"Selected {strategy.type.value} strategy "
            f"({n_exact} filterable, semantic={'yes' if has_semantic else 'no'})"
        )
        return strategy

    def validate_max_results(self, max_results: int) -> None:
        if not isinstance(max_results, int) or isinstance(max_results, bool) or not (
            1 <= max_results <= self._max_results_limit
        ):
            raise InvalidParameterError(
                "max_results",
                max_results,
                f"an integer between 1 and {self._max_results_limit}",
                context=ErrorContext(operation="plan_search"),
            )

    # =====================================================================
    # Execution
    # =====================================================================

    async def execute(
        self,
        composed: ComposedQuery,
        strategy: SearchStrategy,
        max_results: int = 10,
        query_text: str = "",
    ) -> SearchResults:
        """
        Run ``strategy`` and fuse the result lists.

        Raises:
            InvalidParameterError: max_results outside 1..limit
            ExactSearchError: the exact call failed or timed out
        """
        self.validate_max_results(max_results)
        started = time.perf_counter()
        limit = max_results * self._candidate_multiplier
        exact_query = ExactQuery(
            filter_expression=composed.filter_expression,
            constraints=tuple(composed.filterable_constraints),
            limit=limit,
        )
        warnings: list[str] = []
        degraded = False

        match strategy.type:
            case StrategyType.EXACT_ONLY:
                exact = await self._exact(exact_query)
                semantic: list[SearchCandidate] = []
            case StrategyType.SEMANTIC_ONLY:
                semantic_text = _semantic_text(composed, query_text)
                try:
                    semantic = await self._semantic(semantic_text, limit, None)
                    exact = []
                except SemanticSearchError as exc:
                    warnings.append(f"Semantic search unavailable, showing unfiltered results ({exc})")
                    degraded = True
                    semantic = []
                    exact = await self._exact(ExactQuery(filter_expression=None, limit=limit))
            case StrategyType.HYBRID | StrategyType.MULTI_STAGE:
                semantic_text = _semantic_text(composed, query_text)
                exact_outcome, semantic_outcome = await gather_with_errors(
                    self._exact(exact_query),
                    self._semantic(semantic_text, limit, exact_query),
                    return_exceptions=True,
                )
                if isinstance(exact_outcome, Exception):
                    raise exact_outcome
                exact = exact_outcome
                if isinstance(semantic_outcome, SemanticSearchError):
                    warnings.append(f"Semantic search unavailable, showing exact matches only ({semantic_outcome})")
                    degraded = True
                    semantic = []
                elif isinstance(semantic_outcome, Exception):
                    raise semantic_outcome
                else:
                    semantic = semantic_outcome

        fused = reciprocal_rank_fusion(
            {_EXACT: exact, _SEMANTIC: semantic},
            weights={
                _EXACT: strategy.weight_of(ApproachType.EXACT_MATCH) or 1.0,
                _SEMANTIC: strategy.weight_of(ApproachType.SEMANTIC_SEARCH) or 1.0,
            },
            k=self._rrf_k,
        )
        exact_scores = {c.vehicle.id: c.score for c in exact}
        semantic_scores = {c.vehicle.id: c.score for c in semantic}
        results = [
            VehicleResult(
                vehicle=f.vehicle,
                score=f.score,
                breakdown=ScoreBreakdown(
                    exact_score=exact_scores.get(f.vehicle.id, 0.0),
                    semantic_score=semantic_scores.get(f.vehicle.id),
                    final_score=f.score,
                ),
            )
            for f in fused
        ]

        elapsed_ms = (time.perf_counter() - started) * 1000
        for warning in warnings:
            logger.warning(warning)
        logger.info(
            f"{strategy.type.value} search: {len(exact)} exact, {len(semantic)} semantic, "
            f"{len(results)} fused in {elapsed_ms:.0f}ms"
        )
        return SearchResults(
            results=results,
            strategy=strategy,
            total_count=len(results),
            warnings=warnings,
            search_duration_ms=elapsed_ms,
            degraded=degraded,
        )

    async def search(self, composed: ComposedQuery, max_results: int = 10, query_text: str = "") -> SearchResults:
        """Plan and execute in one step."""
        strategy = self.plan(composed, max_results)
        return await self.execute(composed, strategy, max_results, query_text)

    async def _exact(self, query: ExactQuery) -> list[SearchCandidate]:
        try:
            return await with_deadline(self._backend.exact_search(query), self._timeout, "exact_search")
        except Exception as exc:
            logger.error(f"Exact search failed: {exc}")
            raise ExactSearchError(
                context=ErrorContext(operation="exact_search", internal_detail=str(exc)),
            ) from exc

    async def _semantic(self, text: str, limit: int, filter: ExactQuery | None) -> list[SearchCandidate]:
        if not text.strip():
            raise SemanticSearchError("No text to search semantically")
        try:
            return await with_deadline(self._embed_and_search(text, limit, filter), self._timeout, "semantic_search")
        except SemanticSearchError:
            raise
        except Exception as exc:
            logger.warning(f"Semantic search failed: {exc}")
            raise SemanticSearchError(
                context=ErrorContext(operation="semantic_search", internal_detail=str(exc)),
            ) from exc

    async def _embed_and_search(self, text: str, limit: int, filter: ExactQuery | None) -> list[SearchCandidate]:
        embedding = await self._embeddings.embed(text)
        return await self._backend.vector_search(embedding, limit, filter)


def _semantic_text(composed: ComposedQuery, query_text: str) -> str:
    if composed.semantic_hints:
        return " ".join(composed.semantic_hints)
    return query_text
