"""Tests for the DI container and its wiring."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from dependency_injector import providers

from vehicle_search.application.pipeline import ConversationalSearchPipeline
from vehicle_search.container import ApplicationContainer
from vehicle_search.core.exceptions import ConfigurationError
from vehicle_search.domain.entities import TurnResult
from vehicle_search.infrastructure.backends import (
    HashingEmbeddingProvider,
    HttpEmbeddingProvider,
    HttpSearchBackend,
    InMemorySearchBackend,
)

# ============================================================================
# DI Container Tests
# ============================================================================


class TestApplicationContainer:
    """The container builds every component from one settings object."""

    def test_defaults_without_config(self) -> None:
        container = ApplicationContainer()
        settings = container.settings()

        assert settings.safety.requests_per_minute == 10
        assert settings.search.rrf_k == 60

    def test_config_flows_into_settings(self) -> None:
        container = ApplicationContainer()
        container.config.from_dict({"safety": {"requests_per_minute": 20}, "session": {"max_messages": 5}})

        settings = container.settings()
        assert settings.safety.requests_per_minute == 20
        assert settings.session.max_messages == 5

    def test_pipeline_singleton(self) -> None:
        container = ApplicationContainer()

        p1 = container.pipeline()
        p2 = container.pipeline()
        assert isinstance(p1, ConversationalSearchPipeline)
        assert p1 is p2

    def test_shared_session_manager(self) -> None:
        container = ApplicationContainer()
        pipeline = container.pipeline()

        assert pipeline._sessions is container.session_manager()
        assert container.abuse_monitor()._sessions is container.session_manager()

    def test_in_memory_backend_without_urls(self) -> None:
        container = ApplicationContainer()

        assert isinstance(container.search_backend(), InMemorySearchBackend)
        assert isinstance(container.embeddings(), HashingEmbeddingProvider)
        assert container.embeddings().dimensions == 256

    async def test_remote_backends_with_urls(self) -> None:
        container = ApplicationContainer()
        container.config.from_dict(
            {
                "backend": {
                    "search_url": "https://search.example.test",
                    "embedding_url": "https://embed.example.test",
                    "api_key": "secret",
                }
            }
        )

        backend = container.search_backend()
        embeddings = container.embeddings()
        assert isinstance(backend, HttpSearchBackend)
        assert isinstance(embeddings, HttpEmbeddingProvider)
        await backend.aclose()
        await embeddings.aclose()

    def test_configured_concepts_reach_understanding(self) -> None:
        container = ApplicationContainer()
        container.config.from_dict(
            {"concepts": {"zippy": [{"field": "engineSize", "operator": "le", "value": 1.4}]}}
        )

        assert "zippy" in container.concept_table()
        assert container.mapper().concepts is container.concept_table()

    def test_ranker_settings(self) -> None:
        container = ApplicationContainer()
        container.config.from_dict({"ranking": {"weights": {"recency": 1.0}, "max_per_make": 1}})

        ranker = container.ranker()
        assert list(ranker.weights.values()) == [1.0]

    def test_invalid_config(self) -> None:
        container = ApplicationContainer()
        container.config.from_dict({"safety": {"requests_per_second": 5}})

        with pytest.raises(ConfigurationError):
            container.settings()

    def test_override_provider(self) -> None:
        container = ApplicationContainer()
        mock_ranker = MagicMock()
        container.ranker.override(providers.Object(mock_ranker))

        assert container.ranker() is mock_ranker

        container.ranker.reset_override()
        assert container.ranker() is not mock_ranker

    async def test_end_to_end_with_overridden_backend(self, sample_vehicles, embeddings) -> None:
        container = ApplicationContainer()
        container.search_backend.override(providers.Object(InMemorySearchBackend(sample_vehicles, embeddings)))
        container.embeddings.override(providers.Object(embeddings))

        pipeline = container.pipeline()
        async with pipeline:
            outcome = await pipeline.process_turn(None, "Tesla under £30k")

        assert isinstance(outcome, TurnResult)
        assert outcome.vehicle_ids == ["v6"]
