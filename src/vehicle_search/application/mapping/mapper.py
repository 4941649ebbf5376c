"""
AttributeMapper - extracted entities to typed search constraints.

    Make / Model / Fuel / Transmission / Body / Colour / Location -> Exact
    Feature                                                       -> Exact, Contains
    Price / PriceRange / Mileage / EngineSize / Year              -> Range
    QualitativeTerm                                               -> Semantic (via ConceptTable)

Several values for one exact field in a single turn ("BMW or Audi") become
one Composite ``In`` constraint. Numeric operators come from the words in
front of the value (see OperatorInference).
"""

from __future__ import annotations

import logging
from datetime import date

from vehicle_search.domain.entities.query import (
    CONCEPT_PRIORITY,
    ConstraintOperator,
    ConstraintType,
    EntityType,
    ExtractedEntity,
    MappedQuery,
    MappingMetadata,
    ParsedQuery,
    SearchConstraint,
)

from .concepts import ConceptTable
from .operators import OperatorInference, context_before

logger = logging.getLogger(__name__)

APPROXIMATE_SPREAD = 0.10

# Entity type -> (index field, operator) for exact attributes
EXACT_FIELDS: dict[EntityType, tuple[str, ConstraintOperator]] = {
    EntityType.MAKE: ("make", ConstraintOperator.EQUALS),
    EntityType.MODEL: ("model", ConstraintOperator.CONTAINS),
    EntityType.FUEL_TYPE: ("fuelType", ConstraintOperator.EQUALS),
    EntityType.TRANSMISSION: ("transmissionType", ConstraintOperator.EQUALS),
    EntityType.BODY_TYPE: ("bodyType", ConstraintOperator.EQUALS),
    EntityType.COLOUR: ("colour", ConstraintOperator.EQUALS),
    EntityType.FEATURE: ("features", ConstraintOperator.CONTAINS),
    EntityType.LOCATION: ("saleLocation", ConstraintOperator.EQUALS),
}

# Fields where several values in one turn mean "any of"
_ALTERNATIVE_FIELDS = frozenset({"make", "model", "fuelType", "transmissionType", "bodyType", "colour", "saleLocation"})


class AttributeMapper:
    """
    Example:
        mapper = AttributeMapper()
        mapped = mapper.map(parsed)      # "BMW under £25k"
        [c.describe() for c in mapped.constraints]
        # ['make eq BMW', 'price le 25000']
    """

    def __init__(
        self,
        concepts: ConceptTable | None = None,
        operators: OperatorInference | None = None,
    ) -> None:
        self._concepts = concepts or ConceptTable.default()
        self._operators = operators or OperatorInference()

    @property
    def concepts(self) -> ConceptTable:
        return self._concepts

    def map(self, parsed: ParsedQuery) -> MappedQuery:
        constraints: list[SearchConstraint] = []
        exact_values: dict[str, list[ExtractedEntity]] = {}
        unmapped: list[str] = []
        semantic_terms: list[str] = []

        for entity in parsed.entities:
            match entity.type:
                case (
                    EntityType.MAKE
                    | EntityType.MODEL
                    | EntityType.FUEL_TYPE
                    | EntityType.TRANSMISSION
                    | EntityType.BODY_TYPE
                    | EntityType.COLOUR
                    | EntityType.FEATURE
                    | EntityType.LOCATION
                ):
                    exact_values.setdefault(EXACT_FIELDS[entity.type][0], []).append(entity)
                case EntityType.PRICE | EntityType.PRICE_RANGE:
                    constraints.append(self._numeric(parsed.original_query, entity, "price"))
                case EntityType.MILEAGE:
                    constraints.append(self._numeric(parsed.original_query, entity, "mileage"))
                case EntityType.ENGINE_SIZE:
                    constraints.append(self._engine_size(parsed.original_query, entity))
                case EntityType.YEAR:
                    constraints.append(self._year(parsed.original_query, entity))
                case EntityType.QUALITATIVE_TERM:
                    semantic_terms.append(entity.value)
                    concept = self._concepts.lookup(entity.value)
                    if concept is None:
                        unmapped.append(entity.value)
                        continue
                    constraints.extend(
                        SearchConstraint(
                            field_name=c.field_name,
                            operator=c.operator,
                            value=c.value,
                            type=ConstraintType.SEMANTIC,
                            priority=CONCEPT_PRIORITY,
                            source=entity.value,
                        )
                        for c in concept
                    )

        constraints = self._exact(exact_values) + constraints
        if unmapped:
            logger.info(f"No concept mapping for: {', '.join(unmapped)}")
        return MappedQuery(
            constraints=constraints,
            metadata=MappingMetadata.from_constraints(constraints),
            unmapped_concepts=unmapped,
            semantic_terms=semantic_terms,
        )

    # =====================================================================
    # Entity kinds
    # =====================================================================

    @staticmethod
    def _exact(values: dict[str, list[ExtractedEntity]]) -> list[SearchConstraint]:
        constraints = []
        for field_name, entities in values.items():
            operator = next(op for f, op in EXACT_FIELDS.values() if f == field_name)
            distinct = list(dict.fromkeys(e.value for e in entities))
            if len(distinct) > 1 and field_name in _ALTERNATIVE_FIELDS:
                constraints.append(
                    SearchConstraint(
                        field_name,
                        ConstraintOperator.IN,
                        tuple(distinct),
                        ConstraintType.COMPOSITE,
                        source=" / ".join(distinct),
                    )
                )
                continue
            constraints.extend(
                SearchConstraint(field_name, operator, value, ConstraintType.EXACT, source=value)
                for value in distinct
            )
        return constraints

    def _numeric(self, query: str, entity: ExtractedEntity, field_name: str) -> SearchConstraint:
        if "-" in entity.value:
            low, high = (int(v) for v in entity.value.split("-", 1))
            return SearchConstraint(
                field_name, ConstraintOperator.BETWEEN, (low, high), ConstraintType.RANGE, source=entity.value
            )

        value = int(entity.value)
        operator = self._operators.infer(
            context_before(query, entity.start), ConstraintOperator.LESS_THAN_OR_EQUAL
        )
        if operator is ConstraintOperator.BETWEEN:
            spread = (round(value * (1 - APPROXIMATE_SPREAD)), round(value * (1 + APPROXIMATE_SPREAD)))
            return SearchConstraint(field_name, operator, spread, ConstraintType.RANGE, source=entity.value)
        return SearchConstraint(field_name, operator, value, ConstraintType.RANGE, source=entity.value)

    def _engine_size(self, query: str, entity: ExtractedEntity) -> SearchConstraint:
        operator = self._operators.infer(context_before(query, entity.start), ConstraintOperator.EQUALS)
        if operator is ConstraintOperator.BETWEEN:
            operator = ConstraintOperator.EQUALS
        return SearchConstraint(
            "engineSize", operator, float(entity.value), ConstraintType.RANGE, source=entity.value
        )

    def _year(self, query: str, entity: ExtractedEntity) -> SearchConstraint:
        """
        A year bound on registration date.

        Lower bounds start on 1 January (``>= 2019``) or follow 31 December
        (``> 2019``); upper bounds mirror that. An exact or approximate year
        covers the whole calendar year.
        """
        year = int(entity.value)
        first, last = date(year, 1, 1), date(year, 12, 31)
        operator = self._operators.infer(
            context_before(query, entity.start), ConstraintOperator.GREATER_THAN_OR_EQUAL
        )
        match operator:
            case ConstraintOperator.GREATER_THAN_OR_EQUAL | ConstraintOperator.LESS_THAN:
                value = first
            case ConstraintOperator.GREATER_THAN | ConstraintOperator.LESS_THAN_OR_EQUAL:
                value = last
            case _:
                return SearchConstraint(
                    "registrationDate", ConstraintOperator.BETWEEN, (first, last),
                    ConstraintType.RANGE, source=entity.value,
                )
        return SearchConstraint("registrationDate", operator, value, ConstraintType.RANGE, source=entity.value)
