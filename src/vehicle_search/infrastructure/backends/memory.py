"""
In-process search backend and embedding provider.

InMemorySearchBackend evaluates the structured constraints of an
ExactQuery against a list of vehicles and ranks vector hits by cosine
similarity. HashingEmbeddingProvider produces deterministic bag-of-words
vectors (signed feature hashing), so semantic search behaves sensibly
without a model. Neither is meant for production inventories.
"""

from __future__ import annotations

import hashlib
import logging
import math
import re
from collections.abc import Iterable, Sequence
from typing import Any

from cachetools import LRUCache

from vehicle_search.domain.entities.search import ExactQuery, SearchCandidate
from vehicle_search.domain.entities.vehicle import Vehicle

logger = logging.getLogger(__name__)

_TOKEN_PATTERN = re.compile(r"[a-z0-9]+(?:[.-][a-z0-9]+)*")


# =============================================================================
# Embeddings
# =============================================================================


class HashingEmbeddingProvider:
    """
    Deterministic text embeddings via signed feature hashing.

    Example:
        provider = HashingEmbeddingProvider(dimensions=64)
        vector = await provider.embed("reliable family estate")
        len(vector)  # 64, unit length
    """

    def __init__(self, dimensions: int = 256, cache_size: int = 4096) -> None:
        if dimensions <= 0:
            raise ValueError(f"dimensions must be positive, got {dimensions}")
        self.dimensions = dimensions
        self._cache: LRUCache[str, tuple[float, ...]] = LRUCache(maxsize=cache_size)

    async def embed(self, text: str) -> list[float]:
        return list(self.embed_text(text))

    def embed_text(self, text: str) -> tuple[float, ...]:
        """Synchronous embedding, cached by normalized text."""
        key = " ".join(text.lower().split())
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        vector = [0.0] * self.dimensions
        for token in _TOKEN_PATTERN.findall(key):
            digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
            bucket = int.from_bytes(digest[:4], "big") % self.dimensions
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[bucket] += sign

        norm = math.sqrt(sum(v * v for v in vector))
        result = tuple(v / norm for v in vector) if norm else tuple(vector)
        self._cache[key] = result
        return result


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        raise ValueError(f"Embedding dimensions differ: {len(a)} != {len(b)}")
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


# =============================================================================
# Search Backend
# =============================================================================


class InMemorySearchBackend:
    """
    SearchBackend over a fixed list of vehicles.

    Exact search keeps inventory order among vehicles that satisfy every
    constraint. Vector search ranks by cosine similarity, clamped to [0, 1].
    """

    def __init__(
        self,
        vehicles: Iterable[Vehicle] = (),
        embeddings: HashingEmbeddingProvider | None = None,
    ) -> None:
        self._embeddings = embeddings or HashingEmbeddingProvider()
        self._vehicles: dict[str, Vehicle] = {}
        self._vectors: dict[str, tuple[float, ...]] = {}
        for vehicle in vehicles:
            self.add(vehicle)

    @classmethod
    def from_records(
        cls,
        records: Iterable[dict[str, Any]],
        embeddings: HashingEmbeddingProvider | None = None,
    ) -> InMemorySearchBackend:
        return cls((Vehicle.from_dict(r) for r in records), embeddings)

    def add(self, vehicle: Vehicle) -> None:
        if not vehicle.id:
            raise ValueError("Vehicle id is required")
        self._vehicles[vehicle.id] = vehicle
        self._vectors[vehicle.id] = self._embeddings.embed_text(vehicle.searchable_text())

    def get(self, vehicle_id: str) -> Vehicle | None:
        return self._vehicles.get(vehicle_id)

    def __len__(self) -> int:
        return len(self._vehicles)

    async def exact_search(self, query: ExactQuery) -> list[SearchCandidate]:
        matches = [
            SearchCandidate(vehicle=v, score=1.0, match_count=len(query.constraints))
            for v in self._filtered(query)
        ]
        logger.debug(f"Exact search matched {len(matches)} of {len(self._vehicles)} vehicles")
        return matches[: query.limit]

    async def vector_search(
        self,
        embedding: Sequence[float],
        limit: int,
        filter: ExactQuery | None = None,
    ) -> list[SearchCandidate]:
        candidates = self._filtered(filter) if filter is not None else list(self._vehicles.values())
        scored = [
            SearchCandidate(
                vehicle=v,
                score=max(0.0, min(1.0, cosine_similarity(embedding, self._vectors[v.id]))),
            )
            for v in candidates
        ]
        scored.sort(key=lambda c: c.score, reverse=True)
        return scored[:limit]

    def _filtered(self, query: ExactQuery) -> list[Vehicle]:
        return [
            v for v in self._vehicles.values()
            if all(c.matches(v) for c in query.constraints if c.is_filterable)
        ]
