"""
HTTP adapters for a remote search service and a remote embedding service.

Wire format (JSON over POST):

    POST {base}/search
        {"filter": "make eq 'BMW'", "top": 30}
        {"vector": [...], "filter": "...", "top": 30}
    -> {"value": [{"@search.score": 0.82, "id": "v1", "make": "BMW", ...}]}

    POST {base}/embeddings
        {"input": "reliable family car"}
    -> {"embedding": [0.01, ...]}

Transient failures (connection errors, 429, 5xx) are retried with
exponential backoff; anything left over is raised as a BackendError so the
orchestrator can decide between failing the turn and degrading.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from vehicle_search.core.exceptions import BackendError, EmbeddingError, ErrorContext, is_retryable_error
from vehicle_search.domain.entities.search import ExactQuery, SearchCandidate
from vehicle_search.domain.entities.vehicle import Vehicle

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_DELAY = 0.5  # seconds

_RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


def _is_retryable_http(error: BaseException) -> bool:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in _RETRYABLE_STATUS
    return isinstance(error, httpx.TransportError) or is_retryable_error(error)


class _JsonClient:
    """Shared httpx.AsyncClient handling for the adapters below."""

    _service_name = "backend"

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"api-key": api_key} if api_key else {}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @retry(
        stop=stop_after_attempt(MAX_RETRIES),
        wait=wait_exponential(multiplier=RETRY_DELAY, min=RETRY_DELAY, max=RETRY_DELAY * 4),
        retry=retry_if_exception(_is_retryable_http),
        reraise=True,
    )
    async def _post_with_retry(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        response = await self._client.post(path, json=payload)
        response.raise_for_status()
        return response.json()

    async def _post(self, path: str, payload: dict[str, Any], operation: str) -> dict[str, Any]:
        try:
            return await self._post_with_retry(path, payload)
        except httpx.HTTPStatusError as exc:
            logger.error(f"{self._service_name} HTTP {exc.response.status_code} on {operation}")
            raise BackendError(
                f"{self._service_name} request failed",
                context=ErrorContext(operation=operation, internal_detail=str(exc)),
                retryable=_is_retryable_http(exc),
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(f"{self._service_name} {operation} failed: {exc}")
            raise BackendError(
                f"{self._service_name} request failed",
                context=ErrorContext(operation=operation, internal_detail=str(exc)),
            ) from exc


class HttpSearchBackend(_JsonClient):
    """SearchBackend backed by a remote hybrid search service."""

    _service_name = "Search service"

    async def exact_search(self, query: ExactQuery) -> list[SearchCandidate]:
        payload: dict[str, Any] = {"top": query.limit}
        if query.filter_expression:
            payload["filter"] = query.filter_expression
        body = await self._post("/search", payload, "exact_search")
        return [
            SearchCandidate(
                vehicle=Vehicle.from_dict(doc),
                score=float(doc.get("@search.score", 1.0)),
                match_count=len(query.constraints),
            )
            for doc in _documents(body)
        ]

    async def vector_search(
        self,
        embedding: Sequence[float],
        limit: int,
        filter: ExactQuery | None = None,
    ) -> list[SearchCandidate]:
        payload: dict[str, Any] = {"vector": list(embedding), "top": limit}
        if filter is not None and filter.filter_expression:
            payload["filter"] = filter.filter_expression
        body = await self._post("/search", payload, "vector_search")
        return [
            SearchCandidate(
                vehicle=Vehicle.from_dict(doc),
                score=max(0.0, min(1.0, float(doc.get("@search.score", 0.0)))),
            )
            for doc in _documents(body)
        ]


class HttpEmbeddingProvider(_JsonClient):
    """EmbeddingProvider backed by a remote embedding endpoint."""

    _service_name = "Embedding service"

    async def embed(self, text: str) -> list[float]:
        try:
            body = await self._post("/embeddings", {"input": text}, "embed")
        except BackendError as exc:
            raise EmbeddingError(context=exc.context) from exc
        embedding = body.get("embedding")
        if not isinstance(embedding, list) or not embedding:
            raise EmbeddingError(context=ErrorContext(operation="embed", internal_detail="empty embedding"))
        return [float(v) for v in embedding]


def _documents(body: dict[str, Any]) -> list[dict[str, Any]]:
    docs = body.get("value", [])
    if not isinstance(docs, list):
        raise BackendError(
            "Search service returned an unexpected payload",
            context=ErrorContext(operation="parse_response", internal_detail=repr(body)[:200]),
            retryable=False,
        )
    return [d for d in docs if isinstance(d, dict)]
