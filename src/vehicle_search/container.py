"""
Application DI Container (dependency-injector).

Wires every pipeline component from one ``PipelineSettings`` instance and
owns their lifecycle as singletons.

Usage::

    from vehicle_search.container import ApplicationContainer

    container = ApplicationContainer()
    container.config.from_dict({
        "safety": {"requests_per_minute": 20},
        "backend": {"search_url": "https://search.example.com"},
    })
    # or: container.config.from_yaml("settings.yaml")

    pipeline = container.pipeline()
    outcome = await pipeline.process_turn(None, "reliable estate under 15k")

    # In tests - override any provider:
    container.search_backend.override(providers.Object(InMemorySearchBackend(vehicles)))
"""

from __future__ import annotations

import logging
from typing import Any

from dependency_injector import containers, providers

from vehicle_search.config import PipelineSettings

logger = logging.getLogger(__name__)


def _create_settings(raw: dict[str, Any] | None) -> PipelineSettings:
    return PipelineSettings.from_dict(raw)


def _create_session_manager(settings: PipelineSettings) -> object:
    """Lazy factory for SessionManager."""
    from vehicle_search.application.session import InMemorySessionStore, SessionManager

    return SessionManager(
        store=InMemorySessionStore(max_sessions=settings.session.max_sessions),
        idle_ttl=settings.session.idle_ttl_seconds,
        max_messages=settings.session.max_messages,
    )


def _create_cleanup_worker(session_manager: Any, settings: PipelineSettings) -> object:
    from vehicle_search.application.session import SessionCleanupWorker

    return SessionCleanupWorker(session_manager, interval=settings.session.cleanup_interval_seconds)


def _create_guardrail(settings: PipelineSettings) -> object:
    """Lazy factory for SafetyGuardrail with its rate limiter."""
    from vehicle_search.application.safety import SafetyGuardrail, SessionRateLimiter

    safety = settings.safety
    limiter = SessionRateLimiter(
        per_minute=safety.requests_per_minute,
        per_hour=safety.requests_per_hour,
        minute_window=safety.minute_window_seconds,
        hour_window=safety.hour_window_seconds,
    )
    return SafetyGuardrail(
        limiter,
        min_length=safety.min_query_length,
        max_length=safety.max_query_length,
        max_special_char_ratio=safety.max_special_char_ratio,
    )


def _create_abuse_monitor(session_manager: Any, settings: PipelineSettings) -> object:
    from vehicle_search.application.safety import AbuseMonitor

    return AbuseMonitor(session_manager, settings.abuse)


def _create_concept_table(settings: PipelineSettings) -> object:
    from vehicle_search.application.mapping import ConceptTable

    return ConceptTable.from_config(settings.concepts)


def _create_understanding(concept_table: Any) -> object:
    """Lazy factory for QueryUnderstandingService; configured concepts are recognized as qualitative terms."""
    from vehicle_search.application.understanding import EntityExtractor, QueryUnderstandingService

    return QueryUnderstandingService(extractor=EntityExtractor(qualitative_terms=concept_table.terms))


def _create_resolver() -> object:
    from vehicle_search.application.resolution import ReferenceResolver

    return ReferenceResolver()


def _create_mapper(concept_table: Any) -> object:
    from vehicle_search.application.mapping import AttributeMapper

    return AttributeMapper(concepts=concept_table)


def _create_composer() -> object:
    from vehicle_search.application.composition import QueryComposer

    return QueryComposer()


def _create_search_backend(settings: PipelineSettings) -> object:
    """Remote search service when configured, otherwise an empty in-memory backend."""
    from vehicle_search.infrastructure.backends import (
        HashingEmbeddingProvider,
        HttpSearchBackend,
        InMemorySearchBackend,
    )

    backend = settings.backend
    if backend.search_url:
        return HttpSearchBackend(
            backend.search_url,
            api_key=backend.api_key,
            timeout=settings.search.backend_timeout_seconds,
        )
    logger.info("No search_url configured, using the in-memory search backend")
    return InMemorySearchBackend(embeddings=HashingEmbeddingProvider(backend.embedding_dimensions))


def _create_embeddings(settings: PipelineSettings) -> object:
    from vehicle_search.infrastructure.backends import HashingEmbeddingProvider, HttpEmbeddingProvider

    backend = settings.backend
    if backend.embedding_url:
        return HttpEmbeddingProvider(
            backend.embedding_url,
            api_key=backend.api_key,
            timeout=settings.search.backend_timeout_seconds,
        )
    return HashingEmbeddingProvider(backend.embedding_dimensions)


def _create_orchestrator(search_backend: Any, embeddings: Any, settings: PipelineSettings) -> object:
    from vehicle_search.application.search import SearchOrchestrator

    search = settings.search
    return SearchOrchestrator(
        search_backend,
        embeddings,
        timeout=search.backend_timeout_seconds,
        rrf_k=search.rrf_k,
        candidate_multiplier=search.candidate_multiplier,
        max_results_limit=search.max_results_limit,
    )


def _create_ranker(settings: PipelineSettings, concept_table: Any) -> object:
    from vehicle_search.application.mapping import ConceptSimilarityScorer
    from vehicle_search.application.search import ResultRanker, default_business_rules

    ranking = settings.ranking
    return ResultRanker(
        ranking.weights,
        max_per_make=ranking.max_per_make,
        max_per_model=ranking.max_per_model,
        business_rules=default_business_rules(ranking.premium_makes),
        concept_scorer=ConceptSimilarityScorer(concept_table),
    )


def _create_pipeline(**components: Any) -> object:
    from vehicle_search.application.pipeline import ConversationalSearchPipeline

    return ConversationalSearchPipeline(**components)


class ApplicationContainer(containers.DeclarativeContainer):
    """Central DI container for the conversational vehicle search pipeline.

    Manages creation and lifecycle of all core services:
    - ``settings``: validated PipelineSettings built from ``config``
    - ``session_manager`` / ``cleanup_worker``: conversation sessions
    - ``guardrail`` / ``abuse_monitor``: safety
    - ``understanding`` / ``resolver`` / ``mapper`` / ``composer``: query building
    - ``search_backend`` / ``embeddings`` / ``orchestrator`` / ``ranker``: search
    - ``pipeline``: the turn-level entry point
    """

    config = providers.Configuration()

    settings = providers.Singleton(_create_settings, config)

    session_manager = providers.Singleton(_create_session_manager, settings)
    cleanup_worker = providers.Singleton(_create_cleanup_worker, session_manager, settings)

    guardrail = providers.Singleton(_create_guardrail, settings)
    abuse_monitor = providers.Singleton(_create_abuse_monitor, session_manager, settings)

    concept_table = providers.Singleton(_create_concept_table, settings)
    understanding = providers.Singleton(_create_understanding, concept_table)
    resolver = providers.Singleton(_create_resolver)
    mapper = providers.Singleton(_create_mapper, concept_table)
    composer = providers.Singleton(_create_composer)

    search_backend = providers.Singleton(_create_search_backend, settings)
    embeddings = providers.Singleton(_create_embeddings, settings)
    orchestrator = providers.Singleton(_create_orchestrator, search_backend, embeddings, settings)
    ranker = providers.Singleton(_create_ranker, settings, concept_table)

    pipeline = providers.Singleton(
        _create_pipeline,
        sessions=session_manager,
        guardrail=guardrail,
        abuse_monitor=abuse_monitor,
        understanding=understanding,
        resolver=resolver,
        mapper=mapper,
        composer=composer,
        orchestrator=orchestrator,
        ranker=ranker,
        cleanup_worker=cleanup_worker,
    )


__all__ = ["ApplicationContainer"]
