"""
ConceptTable - qualitative terms ("reliable", "family car") as constraints.

A concept maps to one or more ConceptConstraint entries. The mapper turns
each into a Semantic SearchConstraint at concept priority, so concepts
steer ranking and semantic search without hard-filtering the inventory.
The same entries, with their weights and the concept's description
indicators, drive ConceptSimilarityScorer.

The built-in table can be replaced through configuration or YAML::

    concepts:
      quiet:
        - {field: fuelType, operator: eq, value: Electric}
      towing:
        - {field: engineSize, operator: ge, value: 2.0, weight: 0.6}
        - {field: bodyType, operator: in, value: [SUV, Pickup], weight: 0.4}

Entries without a weight share the remaining weight equally.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from vehicle_search.core.exceptions import ConfigurationError, ErrorContext
from vehicle_search.domain.entities.query import ConstraintOperator
from vehicle_search.domain.entities.vehicle import INDEX_FIELDS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConceptConstraint:
    field_name: str
    operator: ConstraintOperator
    value: Any
    weight: float | None = None

    def __post_init__(self) -> None:
        if isinstance(self.value, list):
            object.__setattr__(self, "value", tuple(self.value))
        if self.weight is not None and self.weight <= 0:
            raise ValueError(f"Concept weight for {self.field_name} must be positive, got {self.weight}")


@dataclass(frozen=True)
class ConceptIndicators:
    """Description phrases that raise or lower a vehicle's concept score."""

    positive: tuple[str, ...] = ()
    negative: tuple[str, ...] = ()


_EQ = ConstraintOperator.EQUALS
_IN = ConstraintOperator.IN
_GE = ConstraintOperator.GREATER_THAN_OR_EQUAL
_GT = ConstraintOperator.GREATER_THAN
_LE = ConstraintOperator.LESS_THAN_OR_EQUAL
_LT = ConstraintOperator.LESS_THAN
_CONTAINS = ConstraintOperator.CONTAINS

DEFAULT_CONCEPTS: Mapping[str, tuple[ConceptConstraint, ...]] = {
    "reliable": (
        ConceptConstraint("mileage", _LT, 60000, 0.3),
        ConceptConstraint("serviceHistoryPresent", _EQ, True, 0.3),
        ConceptConstraint("numberOfServices", _GE, 3, 0.4),
    ),
    "economical": (
        ConceptConstraint("fuelType", _IN, ("Electric", "Hybrid", "Petrol"), 0.4),
        ConceptConstraint("engineSize", _LT, 2.0, 0.3),
        ConceptConstraint("price", _LT, 20000, 0.3),
    ),
    "family car": (
        ConceptConstraint("numberOfDoors", _GE, 5, 0.3),
        ConceptConstraint("numberOfSeats", _GE, 5, 0.3),
        ConceptConstraint("bodyType", _IN, ("SUV", "MPV", "Estate", "Hatchback"), 0.4),
    ),
    "sporty": (
        ConceptConstraint("engineSize", _GT, 2.0, 0.4),
        ConceptConstraint("bodyType", _IN, ("Coupe", "Convertible", "Hatchback"), 0.3),
        ConceptConstraint("transmissionType", _EQ, "Manual", 0.3),
    ),
    "luxury": (
        ConceptConstraint("price", _GT, 30000, 0.3),
        ConceptConstraint("make", _IN, ("BMW", "Mercedes-Benz", "Audi", "Jaguar", "Lexus"), 0.4),
        ConceptConstraint("features", _CONTAINS, "Leather Seats", 0.3),
    ),
    "practical": (
        ConceptConstraint("bodyType", _IN, ("Estate", "MPV", "SUV", "Hatchback"), 0.6),
        ConceptConstraint("numberOfDoors", _GE, 4, 0.4),
    ),
    "efficient": (
        ConceptConstraint("fuelType", _IN, ("Electric", "Hybrid", "Plug-in Hybrid")),
        ConceptConstraint("engineSize", _LE, 1.6),
    ),
    "safe": (
        ConceptConstraint("features", _CONTAINS, "Parking Sensors"),
        ConceptConstraint("serviceHistoryPresent", _EQ, True),
    ),
    "comfortable": (
        ConceptConstraint("transmissionType", _EQ, "Automatic"),
        ConceptConstraint("features", _CONTAINS, "Climate Control"),
    ),
    "spacious": (
        ConceptConstraint("bodyType", _IN, ("SUV", "MPV", "Estate")),
        ConceptConstraint("numberOfSeats", _GE, 5),
    ),
    "compact": (
        ConceptConstraint("bodyType", _IN, ("Hatchback", "Coupe")),
        ConceptConstraint("engineSize", _LE, 1.6),
    ),
    "fast": (
        ConceptConstraint("engineSize", _GE, 2.5),
    ),
    "powerful": (
        ConceptConstraint("engineSize", _GE, 3.0),
    ),
}

DEFAULT_INDICATORS: Mapping[str, ConceptIndicators] = {
    "reliable": ConceptIndicators(
        positive=("full service history", "one owner", "warranty", "full service", "low mileage"),
        negative=("accident damage", "high mileage", "no service history"),
    ),
    "economical": ConceptIndicators(
        positive=("fuel efficient", "hybrid", "low tax", "economical", "efficient"),
        negative=("v8", "v6", "sports", "performance"),
    ),
    "family car": ConceptIndicators(
        positive=("spacious", "boot space", "practical", "family", "seating"),
        negative=("2-door", "coupe", "sports car", "two door"),
    ),
    "sporty": ConceptIndicators(
        positive=("turbo", "performance", "sport", "alloy wheels", "fast"),
        negative=("economical", "mpv", "family"),
    ),
    "luxury": ConceptIndicators(
        positive=("leather", "navigation", "heated seats", "sunroof", "premium"),
        negative=("basic", "budget"),
    ),
    "practical": ConceptIndicators(
        positive=("boot space", "storage", "versatile", "practical", "spacious"),
        negative=("coupe", "sports car", "2-door"),
    ),
}


class ConceptTable:
    """
    Read-only concept -> constraints lookup, keyed case-insensitively.

    Example:
        table = ConceptTable.default()
        table.lookup("Reliable")
        # (ConceptConstraint('mileage', LESS_THAN, 60000, 0.3), ...)
    """

    def __init__(
        self,
        concepts: Mapping[str, tuple[ConceptConstraint, ...]],
        indicators: Mapping[str, ConceptIndicators] | None = None,
    ) -> None:
        self._concepts = {name.strip().lower(): tuple(entries) for name, entries in concepts.items()}
        self._indicators = {name.strip().lower(): value for name, value in (indicators or {}).items()}

    @classmethod
    def default(cls) -> ConceptTable:
        return cls(DEFAULT_CONCEPTS, DEFAULT_INDICATORS)

    @classmethod
    def from_config(cls, raw: Mapping[str, Any] | None) -> ConceptTable:
        """
        Build from a ``concept -> [{field, operator, value}, ...]`` mapping.

        None means the built-in table.

        Raises:
            ConfigurationError: malformed entries, unknown fields or operators
        """
        if raw is None:
            return cls.default()
        if not isinstance(raw, Mapping):
            raise ConfigurationError("Concept table must be a mapping of concept -> constraint list")
        concepts = {str(name): _parse_entries(str(name), entries) for name, entries in raw.items()}
        logger.info(f"Loaded {len(concepts)} concept(s) from configuration")
        return cls(concepts)

    @classmethod
    def from_yaml(cls, path: str | Path) -> ConceptTable:
        """Load a YAML file holding either a ``concepts:`` section or the mapping itself."""
        path = Path(path)
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ConfigurationError(f"Cannot read concept file {path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
        if isinstance(raw, Mapping) and "concepts" in raw:
            raw = raw["concepts"]
        if raw is None:
            raise ConfigurationError(f"Concept file {path} is empty")
        return cls.from_config(raw)

    def lookup(self, term: str) -> tuple[ConceptConstraint, ...] | None:
        return self._concepts.get(term.strip().lower())

    def indicators(self, term: str) -> ConceptIndicators:
        return self._indicators.get(term.strip().lower(), ConceptIndicators())

    @property
    def terms(self) -> list[str]:
        return sorted(self._concepts)

    def __contains__(self, term: object) -> bool:
        return isinstance(term, str) and term.strip().lower() in self._concepts

    def __iter__(self) -> Iterator[str]:
        return iter(self._concepts)

    def __len__(self) -> int:
        return len(self._concepts)


def _parse_entries(concept: str, entries: Any) -> tuple[ConceptConstraint, ...]:
    if not isinstance(entries, list) or not entries:
        raise ConfigurationError(f"Concept '{concept}' needs a non-empty list of constraints")
    parsed = []
    for entry in entries:
        if not isinstance(entry, Mapping) or not {"field", "operator", "value"} <= set(entry):
            raise ConfigurationError(
                f"Concept '{concept}' entries need field, operator and value",
                context=ErrorContext(operation="load_concepts", input_value=entry),
            )
        field_name = str(entry["field"])
        if field_name not in INDEX_FIELDS:
            raise ConfigurationError(
                f"Concept '{concept}' references unknown field '{field_name}'",
                context=ErrorContext(operation="load_concepts", input_value=field_name),
            )
        try:
            operator = ConstraintOperator.parse(str(entry["operator"]))
        except ValueError as exc:
            raise ConfigurationError(f"Concept '{concept}': {exc}") from exc
        value = entry["value"]
        if operator in (ConstraintOperator.IN, ConstraintOperator.BETWEEN) and not isinstance(value, list):
            raise ConfigurationError(f"Concept '{concept}': '{operator.value}' on {field_name} needs a list value")
        if operator is ConstraintOperator.IN and not value:
            raise ConfigurationError(f"Concept '{concept}': 'in' on {field_name} needs at least one value")
        if operator is ConstraintOperator.BETWEEN and len(value) != 2:
            raise ConfigurationError(f"Concept '{concept}': 'between' on {field_name} needs exactly two values")
        weight = entry.get("weight")
        if weight is not None and (isinstance(weight, bool) or not isinstance(weight, (int, float)) or weight <= 0):
            raise ConfigurationError(f"Concept '{concept}': weight on {field_name} must be a positive number")
        parsed.append(ConceptConstraint(field_name, operator, value, None if weight is None else float(weight)))
    return tuple(parsed)
