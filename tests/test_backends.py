"""
Tests for search backends and embedding providers.

Remote adapters are exercised against httpx.MockTransport handlers, so no
network access is needed.
"""

from __future__ import annotations

import json
import math

import httpx
import pytest
from tenacity import wait_none

from vehicle_search.core.exceptions import BackendError, EmbeddingError, SemanticSearchError
from vehicle_search.domain.entities import ConstraintOperator, ConstraintType, ExactQuery, SearchConstraint
from vehicle_search.infrastructure.backends import (
    EmbeddingProvider,
    HashingEmbeddingProvider,
    HttpEmbeddingProvider,
    HttpSearchBackend,
    InMemorySearchBackend,
    SearchBackend,
    cosine_similarity,
)
from vehicle_search.infrastructure.backends import remote

Op = ConstraintOperator

BASE_URL = "https://search.example.test"


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch):
    """Retry immediately instead of backing off."""
    monkeypatch.setattr(remote._JsonClient._post_with_retry.retry, "wait", wait_none())


def bmw_query(limit: int = 30) -> ExactQuery:
    return ExactQuery(
        filter_expression="make eq 'BMW'",
        constraints=(SearchConstraint("make", Op.EQUALS, "BMW"),),
        limit=limit,
    )


class Recorder:
    """MockTransport handler returning queued responses and keeping requests."""

    def __init__(self, *responses: httpx.Response | Exception) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    def payload(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


SEARCH_BODY = {
    "value": [
        {
            "@search.score": 0.82,
            "id": "v1",
            "make": "BMW",
            "model": "3 Series",
            "price": 18500,
            "mileage": 32000,
            "registrationDate": "2021-03-01T00:00:00Z",
            "features": "Sat Nav, Heated Seats",
        },
        {"@search.score": 1.4, "id": "v2", "make": "BMW", "model": "X5", "price": 24000},
        "not a document",
    ]
}


# ============================================================================
# Hashing embeddings
# ============================================================================


class TestHashingEmbeddingProvider:
    async def test_unit_length(self):
        provider = HashingEmbeddingProvider(dimensions=64)
        vector = await provider.embed("reliable family estate")

        assert len(vector) == 64
        assert math.sqrt(sum(v * v for v in vector)) == pytest.approx(1.0)

    def test_deterministic_and_normalized_text(self):
        provider = HashingEmbeddingProvider(dimensions=64)
        assert provider.embed_text("Family  Estate") == provider.embed_text("family estate")
        assert HashingEmbeddingProvider(64).embed_text("family estate") == provider.embed_text("family estate")

    def test_cached(self):
        provider = HashingEmbeddingProvider(dimensions=32)
        assert provider.embed_text("quick saloon") is provider.embed_text("quick saloon")

    def test_empty_text_is_zero_vector(self):
        assert HashingEmbeddingProvider(dimensions=8).embed_text("   ") == (0.0,) * 8

    def test_invalid_dimensions(self):
        with pytest.raises(ValueError):
            HashingEmbeddingProvider(dimensions=0)

    def test_similar_text_scores_higher(self):
        provider = HashingEmbeddingProvider(dimensions=256)
        query = provider.embed_text("seven seat family suv")
        close = provider.embed_text("safe seven seat family suv")
        far = provider.embed_text("small city hatchback")
        assert cosine_similarity(query, close) > cosine_similarity(query, far)

    def test_satisfies_protocol(self):
        assert isinstance(HashingEmbeddingProvider(), EmbeddingProvider)


class TestCosineSimilarity:
    def test_values(self):
        assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_zero_vector(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0], [1.0, 0.0])


# ============================================================================
# In-memory backend
# ============================================================================


class TestInMemorySearchBackend:
    async def test_exact_search(self, backend):
        hits = await backend.exact_search(bmw_query())

        assert [h.vehicle.id for h in hits] == ["v1", "v2"]
        assert all(h.score == 1.0 and h.match_count == 1 for h in hits)

    async def test_exact_search_limit(self, backend):
        hits = await backend.exact_search(ExactQuery(filter_expression=None, limit=3))
        assert [h.vehicle.id for h in hits] == ["v1", "v2", "v3"]

    async def test_range_and_contains(self, backend):
        query = ExactQuery(
            filter_expression=None,
            constraints=(
                SearchConstraint("price", Op.LESS_THAN_OR_EQUAL, 20000, ConstraintType.RANGE),
                SearchConstraint("features", Op.CONTAINS, "heated seats"),
            ),
        )
        hits = await backend.exact_search(query)
        assert [h.vehicle.id for h in hits] == ["v1"]

    async def test_semantic_constraints_not_filtered(self, backend):
        query = ExactQuery(
            filter_expression=None,
            constraints=(SearchConstraint("fuelType", Op.EQUALS, "Electric", ConstraintType.SEMANTIC),),
            limit=100,
        )
        assert len(await backend.exact_search(query)) == 8

    async def test_vector_search(self, backend, embeddings):
        vector = await embeddings.embed("electric saloon autopilot")
        hits = await backend.vector_search(vector, limit=3)

        assert len(hits) == 3
        assert hits[0].vehicle.id == "v6"
        assert all(0.0 <= h.score <= 1.0 for h in hits)
        assert [h.score for h in hits] == sorted((h.score for h in hits), reverse=True)

    async def test_vector_search_with_filter(self, backend, embeddings):
        vector = await embeddings.embed("family")
        hits = await backend.vector_search(vector, limit=10, filter=bmw_query())
        assert {h.vehicle.id for h in hits} == {"v1", "v2"}

    def test_from_records_and_lookup(self, embeddings):
        backend = InMemorySearchBackend.from_records(
            [{"id": 7, "make": "Kia", "model": "Ceed", "price": "9500", "fuelType": "Petrol"}],
            embeddings,
        )
        vehicle = backend.get("7")

        assert len(backend) == 1
        assert vehicle.price == 9500.0
        assert vehicle.fuel_type == "Petrol"
        assert backend.get("missing") is None

    def test_add_requires_id(self, sample_vehicles):
        backend = InMemorySearchBackend()
        vehicle = sample_vehicles[0]
        vehicle.id = ""
        with pytest.raises(ValueError):
            backend.add(vehicle)

    def test_satisfies_protocol(self, backend):
        assert isinstance(backend, SearchBackend)


# ============================================================================
# Remote search backend
# ============================================================================


class TestHttpSearchBackend:
    async def test_exact_search_request_and_parsing(self):
        handler = Recorder(httpx.Response(200, json=SEARCH_BODY))
        backend = HttpSearchBackend(BASE_URL, api_key="secret", transport=httpx.MockTransport(handler))

        hits = await backend.exact_search(bmw_query(limit=30))
        await backend.aclose()

        request = handler.requests[0]
        assert request.method == "POST"
        assert request.url == f"{BASE_URL}/search"
        assert request.headers["api-key"] == "secret"
        assert handler.payload() == {"top": 30, "filter": "make eq 'BMW'"}

        assert [h.vehicle.id for h in hits] == ["v1", "v2"]
        assert hits[0].score == 0.82
        assert hits[0].match_count == 1
        assert hits[0].vehicle.registration_date.isoformat() == "2021-03-01"
        assert hits[0].vehicle.features == ["Sat Nav", "Heated Seats"]

    async def test_exact_search_without_filter(self):
        handler = Recorder(httpx.Response(200, json={"value": []}))
        backend = HttpSearchBackend(BASE_URL, transport=httpx.MockTransport(handler))

        assert await backend.exact_search(ExactQuery(filter_expression=None, limit=5)) == []
        assert handler.payload() == {"top": 5}
        assert "api-key" not in handler.requests[0].headers

    async def test_vector_search(self):
        handler = Recorder(httpx.Response(200, json=SEARCH_BODY))
        backend = HttpSearchBackend(BASE_URL, transport=httpx.MockTransport(handler))

        hits = await backend.vector_search([0.1, 0.2], limit=10, filter=bmw_query())

        assert handler.payload() == {"vector": [0.1, 0.2], "top": 10, "filter": "make eq 'BMW'"}
        assert [h.score for h in hits] == [0.82, 1.0]
        assert hits[0].match_count == 0

    async def test_retries_rate_limit(self):
        handler = Recorder(httpx.Response(429), httpx.Response(200, json={"value": []}))
        backend = HttpSearchBackend(BASE_URL, transport=httpx.MockTransport(handler))

        assert await backend.exact_search(bmw_query()) == []
        assert len(handler.requests) == 2

    async def test_persistent_server_error(self):
        handler = Recorder(httpx.Response(503))
        backend = HttpSearchBackend(BASE_URL, transport=httpx.MockTransport(handler))

        with pytest.raises(BackendError) as exc_info:
            await backend.exact_search(bmw_query())

        assert len(handler.requests) == remote.MAX_RETRIES
        assert exc_info.value.retryable
        assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)
        assert exc_info.value.context.operation == "exact_search"

    async def test_client_error_not_retried(self):
        handler = Recorder(httpx.Response(404))
        backend = HttpSearchBackend(BASE_URL, transport=httpx.MockTransport(handler))

        with pytest.raises(BackendError) as exc_info:
            await backend.exact_search(bmw_query())

        assert len(handler.requests) == 1
        assert not exc_info.value.retryable

    async def test_connection_error_retried(self):
        handler = Recorder(httpx.ConnectError("refused"))
        backend = HttpSearchBackend(BASE_URL, transport=httpx.MockTransport(handler))

        with pytest.raises(BackendError):
            await backend.exact_search(bmw_query())
        assert len(handler.requests) == remote.MAX_RETRIES

    async def test_transient_error_message_retried(self):
        handler = Recorder(RuntimeError("upstream temporarily unavailable"), httpx.Response(200, json={"value": []}))
        backend = HttpSearchBackend(BASE_URL, transport=httpx.MockTransport(handler))

        assert await backend.exact_search(bmw_query()) == []
        assert len(handler.requests) == 2

    async def test_non_transient_error_not_retried(self):
        handler = Recorder(RuntimeError("unexpected shard layout"))
        backend = HttpSearchBackend(BASE_URL, transport=httpx.MockTransport(handler))

        with pytest.raises(RuntimeError):
            await backend.exact_search(bmw_query())
        assert len(handler.requests) == 1

    async def test_invalid_json(self):
        handler = Recorder(httpx.Response(200, content=b"<html>"))
        backend = HttpSearchBackend(BASE_URL, transport=httpx.MockTransport(handler))

        with pytest.raises(BackendError):
            await backend.exact_search(bmw_query())

    async def test_unexpected_payload(self):
        handler = Recorder(httpx.Response(200, json={"value": {"id": "v1"}}))
        backend = HttpSearchBackend(BASE_URL, transport=httpx.MockTransport(handler))

        with pytest.raises(BackendError) as exc_info:
            await backend.exact_search(bmw_query())
        assert not exc_info.value.retryable

    async def test_internal_detail_not_in_message(self):
        handler = Recorder(httpx.Response(404))
        backend = HttpSearchBackend(BASE_URL, transport=httpx.MockTransport(handler))

        with pytest.raises(BackendError) as exc_info:
            await backend.exact_search(bmw_query())
        assert str(exc_info.value) == "Search service request failed"
        assert "404" in exc_info.value.context.internal_detail


# ============================================================================
# Remote embeddings
# ============================================================================


class TestHttpEmbeddingProvider:
    async def test_embed(self):
        handler = Recorder(httpx.Response(200, json={"embedding": [1, 0.5, -0.25]}))
        provider = HttpEmbeddingProvider(BASE_URL, api_key="secret", transport=httpx.MockTransport(handler))

        vector = await provider.embed("reliable family car")

        assert vector == [1.0, 0.5, -0.25]
        assert handler.requests[0].url == f"{BASE_URL}/embeddings"
        assert handler.payload() == {"input": "reliable family car"}
        assert handler.requests[0].headers["api-key"] == "secret"

    @pytest.mark.parametrize("body", [{"embedding": []}, {"embedding": "nope"}, {}])
    async def test_empty_embedding(self, body):
        handler = Recorder(httpx.Response(200, json=body))
        provider = HttpEmbeddingProvider(BASE_URL, transport=httpx.MockTransport(handler))

        with pytest.raises(EmbeddingError):
            await provider.embed("family car")

    async def test_service_failure_is_embedding_error(self):
        handler = Recorder(httpx.Response(500))
        provider = HttpEmbeddingProvider(BASE_URL, transport=httpx.MockTransport(handler))

        with pytest.raises(SemanticSearchError) as exc_info:
            await provider.embed("family car")

        assert isinstance(exc_info.value, EmbeddingError)
        assert isinstance(exc_info.value.__cause__, BackendError)
        assert exc_info.value.context.operation == "embed"

    async def test_shared_client_not_closed(self):
        handler = Recorder(httpx.Response(200, json={"embedding": [1.0]}))
        client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
        provider = HttpEmbeddingProvider(BASE_URL, client=client)

        await provider.embed("car")
        await provider.aclose()

        assert not client.is_closed
        await client.aclose()
