"""
FilterTranslator - composed constraint groups to an OData-style filter.

    make eq 'BMW'
    price le 25000
    (price ge 15000 and price le 20000)
    search.ismatch('Heated Seats', 'features')
    search.in(fuelType, 'Electric,Hybrid', ',')
    (saleLocation eq 'Newcastle, Tyne' or saleLocation eq 'Leeds')

An In whose values contain the list delimiter is written as OR-ed
equalities instead of ``search.in``.

Only filterable (non-semantic) constraints are rendered. Groups are joined
with `` and ``; a group marked OR is parenthesized and joined with `` or ``.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from vehicle_search.domain.entities.query import (
    ConstraintGroup,
    ConstraintOperator,
    LogicalOperator,
    SearchConstraint,
)


def format_value(value: Any) -> str:
    """Render a literal: quoted strings, lower-case booleans, ISO dates, bare numbers."""
    match value:
        case bool():
            return "true" if value else "false"
        case datetime():
            return f"'{value.date().isoformat()}T00:00:00Z'"
        case date():
            return f"'{value.isoformat()}T00:00:00Z'"
        case int() | float():
            return str(value)
        case _:
            return quote(str(value))


def quote(text: str) -> str:
    return "'" + text.replace("'", "''") + "'"


IN_DELIMITER = ","


class FilterTranslator:
    """
    Example:
        translator = FilterTranslator()
        translator.translate_constraint(SearchConstraint("price", ConstraintOperator.LESS_THAN_OR_EQUAL, 25000))
        # 'price le 25000'
    """

    def translate(self, groups: list[ConstraintGroup]) -> str | None:
        """Filter expression for all groups, or None when nothing is filterable."""
        parts = [expr for expr in (self.translate_group(g) for g in groups) if expr]
        if not parts:
            return None
        return " and ".join(parts)

    def translate_group(self, group: ConstraintGroup) -> str | None:
        clauses = [self.translate_constraint(c) for c in group.constraints if c.is_filterable]
        if not clauses:
            return None
        if group.operator is LogicalOperator.OR and len(clauses) > 1:
            return "(" + " or ".join(clauses) + ")"
        return " and ".join(clauses)

    def translate_constraint(self, constraint: SearchConstraint) -> str:
        f = constraint.field_name
        value = constraint.value
        match constraint.operator:
            case ConstraintOperator.EQUALS:
                return f"{f} eq {format_value(value)}"
            case ConstraintOperator.NOT_EQUALS:
                return f"{f} ne {format_value(value)}"
            case ConstraintOperator.GREATER_THAN:
                return f"{f} gt {format_value(value)}"
            case ConstraintOperator.GREATER_THAN_OR_EQUAL:
                return f"{f} ge {format_value(value)}"
            case ConstraintOperator.LESS_THAN:
                return f"{f} lt {format_value(value)}"
            case ConstraintOperator.LESS_THAN_OR_EQUAL:
                return f"{f} le {format_value(value)}"
            case ConstraintOperator.BETWEEN:
                low, high = value
                return f"({f} ge {format_value(low)} and {f} le {format_value(high)})"
            case ConstraintOperator.CONTAINS:
                return f"search.ismatch({quote(str(value))}, '{f}')"
            case ConstraintOperator.IN:
                if any(IN_DELIMITER in str(v) for v in value):
                    return "(" + " or ".join(f"{f} eq {format_value(v)}" for v in value) + ")"
                joined = IN_DELIMITER.join(str(v) for v in value)
                return f"search.in({f}, {quote(joined)}, {quote(IN_DELIMITER)})"
