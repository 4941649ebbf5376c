"""
Pipeline configuration.

Settings are plain dataclasses grouped by concern. They can be built from
defaults, from a dict (the shape ``providers.Configuration`` holds) or from
a YAML file::

    safety:
      requests_per_minute: 20
    abuse:
      auto_block_levels: [critical, high]
    ranking:
      weights:
        semantic_relevance: 0.5
        exact_match_count: 0.5
    concepts:
      quiet:
        - {field: fuelType, operator: eq, value: Electric}

Unknown keys are rejected so typos surface at startup rather than as
silently ignored options.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from vehicle_search.core.exceptions import ConfigurationError, ErrorContext

logger = logging.getLogger(__name__)


@dataclass
class SafetySettings:
    min_query_length: int = 2
    max_query_length: int = 500
    max_special_char_ratio: float = 0.3
    requests_per_minute: int = 10
    requests_per_hour: int = 100
    minute_window_seconds: float = 60.0
    hour_window_seconds: float = 3600.0


@dataclass
class AbuseSettings:
    rapid_request_threshold: int = 5
    rapid_request_window_seconds: float = 10.0
    request_history_seconds: float = 3600.0
    repeated_query_threshold: int = 3
    off_topic_ratio_threshold: float = 0.5
    off_topic_min_queries: int = 6
    injection_attempt_threshold: int = 2
    large_result_threshold: int = 50
    large_result_request_threshold: int = 3
    block_durations: dict[str, float] = field(
        default_factory=lambda: {"critical": 3600.0, "high": 1800.0}
    )
    auto_block_levels: list[str] = field(default_factory=lambda: ["critical"])


@dataclass
class SessionSettings:
    idle_ttl_seconds: float = 4 * 3600.0
    max_messages: int = 100
    cleanup_interval_seconds: float = 3600.0
    max_sessions: int = 10_000


@dataclass
class SearchSettings:
    rrf_k: int = 60
    default_max_results: int = 10
    max_results_limit: int = 100
    backend_timeout_seconds: float = 5.0
    candidate_multiplier: int = 3


@dataclass
class BackendSettings:
    """Remote service URLs; unset URLs select the in-process implementations."""

    search_url: str | None = None
    embedding_url: str | None = None
    api_key: str | None = None
    embedding_dimensions: int = 256


@dataclass
class RankingSettings:
    weights: dict[str, float] = field(
        default_factory=lambda: {
            "semantic_relevance": 0.40,
            "exact_match_count": 0.25,
            "price_competitiveness": 0.15,
            "vehicle_condition": 0.10,
            "recency": 0.10,
            "popularity": 0.0,
            "location_proximity": 0.0,
        }
    )
    max_per_make: int = 3
    max_per_model: int = 2
    premium_makes: list[str] = field(
        default_factory=lambda: ["BMW", "Mercedes-Benz", "Audi", "Porsche", "Lexus", "Jaguar", "Land Rover"]
    )


@dataclass
class PipelineSettings:
    """All recognized options. ``concepts`` of None means the built-in table."""

    safety: SafetySettings = field(default_factory=SafetySettings)
    abuse: AbuseSettings = field(default_factory=AbuseSettings)
    session: SessionSettings = field(default_factory=SessionSettings)
    search: SearchSettings = field(default_factory=SearchSettings)
    ranking: RankingSettings = field(default_factory=RankingSettings)
    backend: BackendSettings = field(default_factory=BackendSettings)
    concepts: dict[str, list[dict[str, Any]]] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PipelineSettings:
        data = dict(data or {})
        sections = {f.name: f for f in fields(cls)}
        unknown = set(data) - set(sections)
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration section(s): {', '.join(sorted(unknown))}",
                context=ErrorContext(operation="load_settings", input_value=sorted(unknown)),
            )

        kwargs: dict[str, Any] = {}
        for name, section_cls in (
            ("safety", SafetySettings),
            ("abuse", AbuseSettings),
            ("session", SessionSettings),
            ("search", SearchSettings),
            ("ranking", RankingSettings),
            ("backend", BackendSettings),
        ):
            kwargs[name] = _build_section(section_cls, name, data.get(name))

        concepts = data.get("concepts")
        if concepts is not None and not isinstance(concepts, dict):
            raise ConfigurationError("'concepts' must be a mapping of concept -> constraint list")
        kwargs["concepts"] = concepts
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: str | Path) -> PipelineSettings:
        """Load settings from a YAML file (``yaml.safe_load``)."""
        path = Path(path)
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ConfigurationError(f"Cannot read settings file {path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
        if raw is not None and not isinstance(raw, dict):
            raise ConfigurationError(f"Settings file {path} must contain a mapping")
        logger.info(f"Loaded pipeline settings from {path}")
        return cls.from_dict(raw)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _build_section(section_cls: type, name: str, raw: Any) -> Any:
    if raw is None:
        return section_cls()
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration section '{name}' must be a mapping")
    known = {f.name for f in fields(section_cls)}
    unknown = set(raw) - known
    if unknown:
        raise ConfigurationError(
            f"Unknown option(s) in '{name}': {', '.join(sorted(unknown))}",
            context=ErrorContext(operation="load_settings", input_value=sorted(unknown)),
        )
    try:
        return section_cls(**raw)
    except TypeError as exc:
        raise ConfigurationError(f"Invalid configuration for '{name}': {exc}") from exc
