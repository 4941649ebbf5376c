"""
Vehicle Search - Conversational Vehicle Search Pipeline

Turns free-text requests such as "reliable family SUV under £20k" into
structured, hybrid (filter + vector) searches over a vehicle inventory,
keeping per-session context so follow-ups like "show me cheaper ones" or
"compare the first two" refine the previous search.

Usage:
    from vehicle_search import ApplicationContainer, TurnResult

    container = ApplicationContainer()
    container.config.from_dict({"backend": {"search_url": "https://search.example.com"}})

    async with container.pipeline() as pipeline:
        outcome = await pipeline.process_turn(None, "BMW under £25k in Manchester")
        if isinstance(outcome, TurnResult):
            for result in outcome.results:
                print(f"{result.vehicle.display_name}: {result.score:.2f}")

Features:
    - Safety gate: length, injection, bulk extraction and off-topic checks
    - Per-session rate limiting, abuse detection and temporary blocks
    - Intent classification and entity extraction
    - Pronoun, positional and comparative reference resolution
    - Concept mapping ("economical", "family car") to index constraints
    - Conflict resolution and OData-style filter composition
    - Exact / semantic / hybrid strategies with reciprocal rank fusion
    - Multi-factor reranking, business rules and diversity caps
"""

from .config import PipelineSettings
from .container import ApplicationContainer
from .domain.entities import (
    ClarificationNeeded,
    SafetyRejection,
    TurnOutcome,
    TurnResult,
    Vehicle,
)

__version__ = "0.1.0"

__all__ = [
    # Entry points
    "ApplicationContainer",
    "PipelineSettings",
    # Turn outcomes
    "TurnResult",
    "SafetyRejection",
    "ClarificationNeeded",
    "TurnOutcome",
    # Inventory
    "Vehicle",
]
