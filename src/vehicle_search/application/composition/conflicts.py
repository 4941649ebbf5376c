"""
Constraint conflict detection and relaxation.

Within one (field, priority) group:
    - value constraints (Equals / In) intersect; an empty intersection is a
      contradiction and is widened to the union with OR semantics
    - range bounds tighten; an empty range is an inversion and only the most
      recently stated bound is kept
    - an Equals / In with no value inside the range is a conflict; whichever
      side was stated last is kept

Across groups on the same field, an incompatible lower-priority group is
dropped (a concept never overrides what the user said).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from vehicle_search.domain.entities.query import (
    ConstraintGroup,
    ConstraintOperator,
    ConstraintType,
    LogicalOperator,
    SearchConstraint,
)

logger = logging.getLogger(__name__)

_VALUE_OPERATORS = (ConstraintOperator.EQUALS, ConstraintOperator.IN)
_RANGE_OPERATORS = (
    ConstraintOperator.GREATER_THAN,
    ConstraintOperator.GREATER_THAN_OR_EQUAL,
    ConstraintOperator.LESS_THAN,
    ConstraintOperator.LESS_THAN_OR_EQUAL,
    ConstraintOperator.BETWEEN,
)


@dataclass(frozen=True)
class Bound:
    value: Any
    inclusive: bool = True


def _key(value: Any) -> Any:
    return value.casefold() if isinstance(value, str) else value


def value_set(constraint: SearchConstraint) -> tuple[Any, ...] | None:
    """Allowed values for Equals / In constraints, else None."""
    match constraint.operator:
        case ConstraintOperator.EQUALS:
            return (constraint.value,)
        case ConstraintOperator.IN:
            return tuple(constraint.value)
        case _:
            return None


def is_range(constraint: SearchConstraint) -> bool:
    return constraint.operator in _RANGE_OPERATORS


def constraint_bounds(constraint: SearchConstraint) -> tuple[Bound | None, Bound | None]:
    match constraint.operator:
        case ConstraintOperator.GREATER_THAN:
            return Bound(constraint.value, False), None
        case ConstraintOperator.GREATER_THAN_OR_EQUAL:
            return Bound(constraint.value), None
        case ConstraintOperator.LESS_THAN:
            return None, Bound(constraint.value, False)
        case ConstraintOperator.LESS_THAN_OR_EQUAL:
            return None, Bound(constraint.value)
        case ConstraintOperator.BETWEEN:
            return Bound(constraint.value[0]), Bound(constraint.value[1])
        case ConstraintOperator.EQUALS:
            return Bound(constraint.value), Bound(constraint.value)
        case _:
            return None, None


def tightest(constraints: list[SearchConstraint]) -> tuple[Bound | None, Bound | None]:
    """Intersection of all bounds: the highest lower and the lowest upper."""
    lower: Bound | None = None
    upper: Bound | None = None
    for constraint in constraints:
        lo, hi = constraint_bounds(constraint)
        if lo is not None and (
            lower is None or lo.value > lower.value or (lo.value == lower.value and not lo.inclusive)
        ):
            lower = lo
        if hi is not None and (
            upper is None or hi.value < upper.value or (hi.value == upper.value and not hi.inclusive)
        ):
            upper = hi
    return lower, upper


def is_empty_range(lower: Bound | None, upper: Bound | None) -> bool:
    if lower is None or upper is None:
        return False
    try:
        if lower.value > upper.value:
            return True
        return lower.value == upper.value and not (lower.inclusive and upper.inclusive)
    except TypeError:
        return False


def within(value: Any, lower: Bound | None, upper: Bound | None) -> bool:
    """True when ``value`` satisfies both bounds; incomparable values pass."""
    try:
        if lower is not None and (value < lower.value or (value == lower.value and not lower.inclusive)):
            return False
        if upper is not None and (value > upper.value or (value == upper.value and not upper.inclusive)):
            return False
    except TypeError:
        return True
    return True


def groups_compatible(a: ConstraintGroup, b: ConstraintGroup) -> bool:
    """False if no value could satisfy both groups."""
    a_values = _group_values(a)
    b_values = _group_values(b)
    if a_values is not None and b_values is not None:
        if not {_key(v) for v in a_values} & {_key(v) for v in b_values}:
            return False

    a_ranges = [c for c in a.constraints if is_range(c)]
    b_ranges = [c for c in b.constraints if is_range(c)]
    if a_ranges and b_ranges:
        lower, upper = tightest(a_ranges + b_ranges)
        if is_empty_range(lower, upper):
            return False
    for values, ranges in ((a_values, b_ranges), (b_values, a_ranges)):
        if values is not None and ranges:
            lower, upper = tightest(ranges)
            if not any(within(v, lower, upper) for v in values):
                return False
    return True


def _group_values(group: ConstraintGroup) -> tuple[Any, ...] | None:
    values: list[Any] = []
    found = False
    for constraint in group.constraints:
        allowed = value_set(constraint)
        if allowed is not None and not is_range(constraint):
            values.extend(allowed)
            found = True
    return tuple(values) if found else None


class ConflictResolver:
    """Resolves contradictions inside groups and between them."""

    def resolve_group(self, group: ConstraintGroup) -> list[str]:
        """Rewrite ``group`` in place; returns conflict warnings."""
        warnings: list[str] = []
        value_constraints = [c for c in group.constraints if c.operator in _VALUE_OPERATORS]
        range_constraints = [c for c in group.constraints if is_range(c)]
        others = [
            c for c in group.constraints if c not in value_constraints and c not in range_constraints
        ]

        merged_values = self._merge_values(group, value_constraints, warnings)
        merged_ranges = self._merge_ranges(group, range_constraints, warnings)
        if merged_values and merged_ranges:
            latest = next(c for c in reversed(group.constraints) if c.operator in _VALUE_OPERATORS or is_range(c))
            merged_values, merged_ranges = self._check_values_in_range(
                group, merged_values, merged_ranges, warnings, values_last=latest.operator in _VALUE_OPERATORS
            )
        group.constraints = merged_values + merged_ranges + others
        return warnings

    def _merge_values(
        self,
        group: ConstraintGroup,
        constraints: list[SearchConstraint],
        warnings: list[str],
    ) -> list[SearchConstraint]:
        if len(constraints) <= 1:
            return constraints

        first = constraints[0]
        ctype = ConstraintType.COMPOSITE if any(c.type is ConstraintType.COMPOSITE for c in constraints) else first.type
        allowed = list(value_set(first) or ())
        for constraint in constraints[1:]:
            keys = {_key(v) for v in value_set(constraint) or ()}
            allowed = [v for v in allowed if _key(v) in keys]

        source = ", ".join(dict.fromkeys(c.source for c in constraints if c.source))
        if allowed:
            if len(allowed) == 1:
                return [SearchConstraint(group.field_name, ConstraintOperator.EQUALS, allowed[0], first.type, first.priority, source)]
            return [SearchConstraint(group.field_name, ConstraintOperator.IN, tuple(allowed), ctype, first.priority, source)]

        union = list({_key(v): v for c in constraints for v in value_set(c) or ()}.values())
        warning = f"Contradictory values for {group.field_name}: {', '.join(str(v) for v in union)}"
        warnings.append(warning)
        logger.info(warning)
        group.has_conflict = True
        group.operator = LogicalOperator.OR
        return [SearchConstraint(group.field_name, ConstraintOperator.IN, tuple(union), ctype, first.priority, source)]

    def _merge_ranges(
        self,
        group: ConstraintGroup,
        constraints: list[SearchConstraint],
        warnings: list[str],
    ) -> list[SearchConstraint]:
        if len(constraints) <= 1:
            return constraints

        lower, upper = tightest(constraints)
        if is_empty_range(lower, upper):
            warning = f"Range inversion detected for {group.field_name}: {lower.value} > {upper.value}"
            warnings.append(warning)
            logger.info(warning)
            group.has_conflict = True
            return [constraints[-1]]

        latest = constraints[-1]
        source = ", ".join(dict.fromkeys(c.source for c in constraints if c.source))

        def build(operator: ConstraintOperator, value: Any) -> SearchConstraint:
            return SearchConstraint(group.field_name, operator, value, latest.type, latest.priority, source)

        if lower is not None and upper is not None and lower.inclusive and upper.inclusive:
            return [build(ConstraintOperator.BETWEEN, (lower.value, upper.value))]
        merged = []
        if lower is not None:
            op = ConstraintOperator.GREATER_THAN_OR_EQUAL if lower.inclusive else ConstraintOperator.GREATER_THAN
            merged.append(build(op, lower.value))
        if upper is not None:
            op = ConstraintOperator.LESS_THAN_OR_EQUAL if upper.inclusive else ConstraintOperator.LESS_THAN
            merged.append(build(op, upper.value))
        return merged

    def _check_values_in_range(
        self,
        group: ConstraintGroup,
        values: list[SearchConstraint],
        ranges: list[SearchConstraint],
        warnings: list[str],
        values_last: bool,
    ) -> tuple[list[SearchConstraint], list[SearchConstraint]]:
        allowed = value_set(values[0]) or ()
        lower, upper = tightest(ranges)
        if any(within(v, lower, upper) for v in allowed):
            return values, ranges

        stated = "; ".join(c.describe() for c in ranges)
        warning = f"Value outside range for {group.field_name}: {', '.join(str(v) for v in allowed)} vs {stated}"
        warnings.append(warning)
        logger.info(warning)
        group.has_conflict = True
        return (values, []) if values_last else ([], ranges)

    def relax(self, groups: list[ConstraintGroup]) -> tuple[list[ConstraintGroup], list[str]]:
        """Drop lower-priority groups that cannot hold alongside a higher-priority one."""
        by_priority = sorted(groups, key=lambda g: -g.priority)
        kept: list[ConstraintGroup] = []
        warnings: list[str] = []
        for group in by_priority:
            blocker = next(
                (k for k in kept if k.field_name == group.field_name and not groups_compatible(k, group)),
                None,
            )
            if blocker is None:
                kept.append(group)
                continue
            dropped = "; ".join(c.describe() for c in group.constraints)
            warning = f"Relaxed {group.field_name}: dropped lower-priority constraint(s) {dropped}"
            warnings.append(warning)
            logger.info(warning)
        survivors = [g for g in groups if any(g is k for k in kept)]
        return survivors, warnings
