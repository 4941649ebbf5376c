"""
Backend boundary: the search service and the embedding provider.

The pipeline only depends on these protocols. Shipped implementations:
- InMemorySearchBackend / HashingEmbeddingProvider (local runs, tests)
- HttpSearchBackend / HttpEmbeddingProvider (remote services over httpx)
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from vehicle_search.domain.entities.search import ExactQuery, SearchCandidate


@runtime_checkable
class SearchBackend(Protocol):
    async def exact_search(self, query: ExactQuery) -> list[SearchCandidate]:
        """Vehicles matching the filter, best first, with ``match_count`` set."""
        ...

    async def vector_search(
        self,
        embedding: Sequence[float],
        limit: int,
        filter: ExactQuery | None = None,
    ) -> list[SearchCandidate]:
        """Nearest vehicles by embedding; ``score`` is a similarity in [0, 1]."""
        ...


@runtime_checkable
class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> list[float]: ...
