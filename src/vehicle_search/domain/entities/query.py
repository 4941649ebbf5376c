"""
Query domain entities - from parsed free text to a composed, filterable query.

Lifecycle of one turn:
    ParsedQuery      (intent + extracted entities)
    -> ResolvedQuery (pronoun / positional / comparative references)
    -> MappedQuery   (typed SearchConstraints + mapping metadata)
    -> ComposedQuery (field groups, conflict warnings, filter expression)

Entity types, operators and constraint kinds are closed enums; code that
branches on them uses exhaustive ``match`` statements.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from vehicle_search.domain.entities.vehicle import Vehicle


# =============================================================================
# Parsed Query
# =============================================================================


class QueryIntent(Enum):
    """Coarse purpose of a conversational turn."""

    SEARCH = "search"
    REFINE = "refine"
    COMPARE = "compare"
    INFORMATION = "information"
    OFF_TOPIC = "off_topic"


class EntityType(Enum):
    """Kinds of typed spans the extractor recognizes."""

    MAKE = "make"
    MODEL = "model"
    PRICE = "price"
    PRICE_RANGE = "price_range"
    MILEAGE = "mileage"
    ENGINE_SIZE = "engine_size"
    FUEL_TYPE = "fuel_type"
    TRANSMISSION = "transmission"
    BODY_TYPE = "body_type"
    COLOUR = "colour"
    FEATURE = "feature"
    LOCATION = "location"
    YEAR = "year"
    QUALITATIVE_TERM = "qualitative_term"


@dataclass(frozen=True)
class ExtractedEntity:
    """A typed span of the query text. ``end`` is exclusive."""

    type: EntityType
    value: str
    confidence: float = 1.0
    start: int = 0
    end: int = 0

    def overlaps(self, start: int, end: int) -> bool:
        return self.start < end and start < self.end


@dataclass
class ParsedQuery:
    """Result of query understanding for one turn."""

    original_query: str
    intent: QueryIntent
    entities: list[ExtractedEntity] = field(default_factory=list)
    confidence: float = 0.0
    unmapped_terms: list[str] = field(default_factory=list)

    def entities_of(self, entity_type: EntityType) -> list[ExtractedEntity]:
        return [e for e in self.entities if e.type is entity_type]

    @property
    def has_qualitative_terms(self) -> bool:
        return any(e.type is EntityType.QUALITATIVE_TERM for e in self.entities)


# =============================================================================
# Constraints
# =============================================================================


class ConstraintOperator(Enum):
    """Comparison applied between an index field and a constraint value."""

    EQUALS = "eq"
    NOT_EQUALS = "ne"
    GREATER_THAN = "gt"
    GREATER_THAN_OR_EQUAL = "ge"
    LESS_THAN = "lt"
    LESS_THAN_OR_EQUAL = "le"
    BETWEEN = "between"
    CONTAINS = "contains"
    IN = "in"

    @property
    def is_lower_bound(self) -> bool:
        return self in (ConstraintOperator.GREATER_THAN, ConstraintOperator.GREATER_THAN_OR_EQUAL)

    @property
    def is_upper_bound(self) -> bool:
        return self in (ConstraintOperator.LESS_THAN, ConstraintOperator.LESS_THAN_OR_EQUAL)

    @classmethod
    def parse(cls, text: str) -> ConstraintOperator:
        """Parse ``"ge"``, ``"GreaterThanOrEqual"`` or ``"greater_than_or_equal"``."""
        normalized = text.strip().lower().replace("_", "").replace(" ", "")
        for op in cls:
            if normalized in (op.value, op.name.lower().replace("_", "")):
                return op
        raise ValueError(f"Unknown constraint operator: {text!r}")


class ConstraintType(Enum):
    """How a constraint is executed."""

    EXACT = "exact"
    RANGE = "range"
    SEMANTIC = "semantic"
    COMPOSITE = "composite"


# Priority of constraints stated directly by the user
ENTITY_PRIORITY = 1.0
# Priority of constraints derived from qualitative concepts
CONCEPT_PRIORITY = 0.5


@dataclass(frozen=True)
class SearchConstraint:
    """
    A field + operator + value restriction.

    ``Between`` values are a 2-tuple ``(low, high)``; ``In`` values are a
    non-empty tuple. Lists are converted to tuples on construction.
    """

    field_name: str
    operator: ConstraintOperator
    value: Any
    type: ConstraintType = ConstraintType.EXACT
    priority: float = ENTITY_PRIORITY
    source: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.value, list):
            object.__setattr__(self, "value", tuple(self.value))
        match self.operator:
            case ConstraintOperator.BETWEEN:
                if not isinstance(self.value, tuple) or len(self.value) != 2:
                    raise ValueError(f"Between on {self.field_name} needs a (low, high) pair, got {self.value!r}")
            case ConstraintOperator.IN:
                if not isinstance(self.value, tuple) or not self.value:
                    raise ValueError(f"In on {self.field_name} needs a non-empty tuple, got {self.value!r}")
            case _:
                pass

    @property
    def is_filterable(self) -> bool:
        """Everything except semantic constraints goes into the filter expression."""
        return self.type is not ConstraintType.SEMANTIC

    def bounds(self) -> tuple[Any, Any]:
        """(lower, upper) bound implied by this constraint; None where open."""
        match self.operator:
            case ConstraintOperator.GREATER_THAN | ConstraintOperator.GREATER_THAN_OR_EQUAL:
                return self.value, None
            case ConstraintOperator.LESS_THAN | ConstraintOperator.LESS_THAN_OR_EQUAL:
                return None, self.value
            case ConstraintOperator.BETWEEN:
                return self.value[0], self.value[1]
            case ConstraintOperator.EQUALS:
                return self.value, self.value
            case _:
                return None, None

    def matches(self, vehicle: Vehicle) -> bool:
        """Evaluate this constraint against a vehicle record."""
        actual = vehicle.field_value(self.field_name)
        if actual is None or actual == "":
            return False
        try:
            match self.operator:
                case ConstraintOperator.EQUALS:
                    return _same(actual, self.value)
                case ConstraintOperator.NOT_EQUALS:
                    return not _same(actual, self.value)
                case ConstraintOperator.GREATER_THAN:
                    return _comparable(actual, self.value) > self.value
                case ConstraintOperator.GREATER_THAN_OR_EQUAL:
                    return _comparable(actual, self.value) >= self.value
                case ConstraintOperator.LESS_THAN:
                    return _comparable(actual, self.value) < self.value
                case ConstraintOperator.LESS_THAN_OR_EQUAL:
                    return _comparable(actual, self.value) <= self.value
                case ConstraintOperator.BETWEEN:
                    low, high = self.value
                    return low <= _comparable(actual, low) <= high
                case ConstraintOperator.CONTAINS:
                    needle = str(self.value).casefold()
                    if isinstance(actual, (list, tuple)):
                        return any(needle in str(item).casefold() for item in actual)
                    return needle in str(actual).casefold()
                case ConstraintOperator.IN:
                    if isinstance(actual, (list, tuple)):
                        return any(_same(item, v) for item in actual for v in self.value)
                    return any(_same(actual, v) for v in self.value)
        except (TypeError, ValueError):
            return False
        return False

    def describe(self) -> str:
        match self.operator:
            case ConstraintOperator.BETWEEN:
                return f"{self.field_name} between {self.value[0]} and {self.value[1]}"
            case ConstraintOperator.IN:
                return f"{self.field_name} in ({', '.join(str(v) for v in self.value)})"
            case _:
                return f"{self.field_name} {self.operator.value} {self.value}"


def _same(actual: Any, expected: Any) -> bool:
    if isinstance(actual, str) and isinstance(expected, str):
        return actual.casefold() == expected.casefold()
    if isinstance(actual, (list, tuple)):
        return any(_same(item, expected) for item in actual)
    return actual == expected


def _comparable(actual: Any, reference: Any) -> Any:
    """Coerce a vehicle value so it compares with a constraint value."""
    if isinstance(reference, date) and isinstance(actual, str):
        return date.fromisoformat(actual[:10])
    if isinstance(reference, (int, float)) and isinstance(actual, str):
        return float(actual)
    return actual


# =============================================================================
# Mapped / Composed Query
# =============================================================================


@dataclass
class MappingMetadata:
    """Constraint counts by type, for observability."""

    total_constraints: int = 0
    exact_matches: int = 0
    range_filters: int = 0
    semantic_filters: int = 0
    composite_filters: int = 0

    @classmethod
    def from_constraints(cls, constraints: list[SearchConstraint]) -> MappingMetadata:
        meta = cls(total_constraints=len(constraints))
        for c in constraints:
            match c.type:
                case ConstraintType.EXACT:
                    meta.exact_matches += 1
                case ConstraintType.RANGE:
                    meta.range_filters += 1
                case ConstraintType.SEMANTIC:
                    meta.semantic_filters += 1
                case ConstraintType.COMPOSITE:
                    meta.composite_filters += 1
        return meta


@dataclass
class MappedQuery:
    """Constraints produced by the attribute mapper."""

    constraints: list[SearchConstraint] = field(default_factory=list)
    metadata: MappingMetadata = field(default_factory=MappingMetadata)
    unmapped_concepts: list[str] = field(default_factory=list)
    semantic_terms: list[str] = field(default_factory=list)


class LogicalOperator(Enum):
    AND = "and"
    OR = "or"


class QueryType(Enum):
    """Complexity class of a composed query."""

    SIMPLE = "simple"
    FILTERED = "filtered"
    COMPLEX = "complex"
    MULTI_MODAL = "multi_modal"


@dataclass
class ConstraintGroup:
    """Constraints on one field at one priority level."""

    field_name: str
    constraints: list[SearchConstraint] = field(default_factory=list)
    operator: LogicalOperator = LogicalOperator.AND
    priority: float = ENTITY_PRIORITY
    has_conflict: bool = False


@dataclass
class ComposedQuery:
    """Final structured query handed to the strategy orchestrator."""

    groups: list[ConstraintGroup] = field(default_factory=list)
    group_operator: LogicalOperator = LogicalOperator.AND
    type: QueryType = QueryType.SIMPLE
    has_conflicts: bool = False
    warnings: list[str] = field(default_factory=list)
    filter_expression: str | None = None
    semantic_hints: list[str] = field(default_factory=list)

    @property
    def constraints(self) -> list[SearchConstraint]:
        return [c for g in self.groups for c in g.constraints]

    @property
    def filterable_constraints(self) -> list[SearchConstraint]:
        return [c for c in self.constraints if c.is_filterable]

    @property
    def semantic_constraints(self) -> list[SearchConstraint]:
        return [c for c in self.constraints if c.type is ConstraintType.SEMANTIC]

    def constraint_for(self, field_name: str) -> SearchConstraint | None:
        for c in self.constraints:
            if c.field_name == field_name:
                return c
        return None


# =============================================================================
# Reference Resolution
# =============================================================================


class ReferenceType(Enum):
    PRONOUN = "pronoun"
    ANAPHORIC = "anaphoric"
    COMPARATIVE = "comparative"


@dataclass(frozen=True)
class Reference:
    """A detected reference to earlier conversation state."""

    text: str
    type: ReferenceType
    position: int


@dataclass
class ResolvedQuery:
    """
    References resolved against the session.

    ``resolved_values`` keys are ``"vehicle_id"`` (str), ``"vehicle_ids"``
    (list[str]) or an index field name mapped to a new SearchConstraint.
    """

    original_query: str
    resolved_values: dict[str, Any] = field(default_factory=dict)
    references: list[Reference] = field(default_factory=list)
    has_unresolved: bool = False
    clarification: str | None = None

    @property
    def constraints(self) -> dict[str, SearchConstraint]:
        return {k: v for k, v in self.resolved_values.items() if isinstance(v, SearchConstraint)}

    @property
    def has_comparatives(self) -> bool:
        return bool(self.constraints)

    @property
    def has_vehicle_reference(self) -> bool:
        return "vehicle_id" in self.resolved_values or "vehicle_ids" in self.resolved_values
