"""
Operations over a footprint and its breakdown tree.

Children are sparse, so every operation here is presence-aware: a field a
child never asserted is taken from nowhere, an explicit null stays null.
Totals are checked, never recomputed; mismatches come back as issues for
the caller to report or reject.
"""

from decimal import Decimal
from typing import Any, Callable, Iterator, List, Optional, Tuple, Union

from pydantic import BaseModel, Field

from ..schemas.footprint_schemas import (
    Assurance,
    CarbonAccountingRule,
    ChildFootprint,
    DataQualityIndicator,
    FieldState,
    Footprint,
    Identifier,
    InventoryDatabase,
)

Node = Union[Footprint, ChildFootprint]
ChildResolver = Callable[[ChildFootprint], Optional[Footprint]]

# Value objects nested inside footprints; copied field by field.
_VALUE_TYPES = (Assurance, CarbonAccountingRule, DataQualityIndicator, Identifier, InventoryDatabase)

# Totals compared between a parent and the sum of its children
CHECKED_TOTALS = ("carbon_footprint", "carbon_footprint_including_biogenic")


def _clone_value(value: Any) -> Any:
    if isinstance(value, ChildFootprint):
        return clone_child(value)
    if isinstance(value, _VALUE_TYPES):
        return type(value).model_construct(
            _fields_set=set(value.model_fields_set),
            **{name: _clone_value(getattr(value, name)) for name in type(value).model_fields},
        )
    if isinstance(value, list):
        return [_clone_value(item) for item in value]
    # Decimal, str, int, datetime and enums are immutable
    return value


def clone_child(child: ChildFootprint) -> ChildFootprint:
    """Deep copy of a child that keeps its absent/null distinction."""
    return ChildFootprint.model_construct(
        _fields_set=set(child.model_fields_set),
        **{name: _clone_value(getattr(child, name)) for name in ChildFootprint.model_fields},
    )


def clone_footprint(footprint: Footprint) -> Footprint:
    """Deep copy of a footprint, used to edit a record without touching the original."""
    return Footprint.model_construct(
        _fields_set=set(footprint.model_fields_set),
        **{name: _clone_value(getattr(footprint, name)) for name in Footprint.model_fields},
    )


def merge_child(base: ChildFootprint, update: ChildFootprint) -> ChildFootprint:
    """
    Overlay update on base.

    Fields present on update (including explicit nulls) replace the base
    value; absent fields leave it untouched. A present breakdown replaces the
    base breakdown as a whole.
    """
    merged = clone_child(base)
    for name in update.model_fields_set:
        object.__setattr__(merged, name, _clone_value(getattr(update, name)))
        merged.model_fields_set.add(name)
    return merged


def effective_child(child: ChildFootprint, referenced: Optional[Footprint]) -> ChildFootprint:
    """
    Resolve a child against the full footprint it references.

    Fields absent on the child are filled from the referenced footprint;
    fields the child asserted, explicit nulls included, win.
    """
    result = clone_child(child)
    if referenced is None:
        return result
    for name in ChildFootprint.model_fields:
        if name == "breakdown" or child.field_state(name) != FieldState.ABSENT:
            continue
        if name in Footprint.model_fields:
            object.__setattr__(result, name, _clone_value(getattr(referenced, name)))
            result.model_fields_set.add(name)
    return result


def walk(node: Node, depth: int = 0) -> Iterator[Tuple[int, Node]]:
    """Depth-first traversal yielding (depth, node), parents before children."""
    yield depth, node
    for child in node.breakdown or []:
        yield from walk(child, depth + 1)


class BreakdownIssue(BaseModel):
    """A parent total that does not match the sum of its children."""

    path: List[int] = Field(default_factory=list, description="Child indexes from the root")
    metric: str
    declared: Optional[Decimal] = None
    computed: Optional[Decimal] = None
    kind: str = Field(..., description="'mismatch' or 'missing_contribution'")
    message: str


def _child_total(
    child: ChildFootprint, metric: str, resolve: Optional[ChildResolver]
) -> Tuple[FieldState, Optional[Decimal]]:
    state, value = child.get(metric)
    if state == FieldState.ABSENT and resolve is not None:
        referenced = resolve(child)
        if referenced is not None:
            value = getattr(referenced, metric)
            state = FieldState.NULL if value is None else FieldState.VALUE
    return state, value


def _check_node(
    node: Node,
    path: List[int],
    tolerance: Decimal,
    resolve: Optional[ChildResolver],
    issues: List[BreakdownIssue],
) -> None:
    children = node.breakdown or []
    if not children:
        return

    for metric in CHECKED_TOTALS:
        declared = getattr(node, metric, None)
        if declared is None:
            continue
        totals = [_child_total(child, metric, resolve) for child in children]
        if any(state != FieldState.VALUE for state, _ in totals):
            # Including-biogenic totals are optional; only check when every child has one
            if metric == "carbon_footprint":
                issues.append(
                    BreakdownIssue(
                        path=list(path),
                        metric=metric,
                        declared=declared,
                        kind="missing_contribution",
                        message="Breakdown has children without a carbon footprint",
                    )
                )
            continue
        computed = sum((value for _, value in totals), Decimal("0"))
        if abs(computed - declared) > tolerance:
            issues.append(
                BreakdownIssue(
                    path=list(path),
                    metric=metric,
                    declared=declared,
                    computed=computed,
                    kind="mismatch",
                    message=f"Declared {metric} {declared} does not match breakdown sum {computed}",
                )
            )

    for index, child in enumerate(children):
        _check_node(child, path + [index], tolerance, resolve, issues)


def check_breakdown(
    footprint: Node,
    tolerance: Decimal = Decimal("0"),
    resolve: Optional[ChildResolver] = None,
) -> List[BreakdownIssue]:
    """
    Check every aggregate in the tree against the sum of its children.

    Args:
        footprint: Root of the tree
        tolerance: Absolute difference accepted between declared and summed totals
        resolve: Optional lookup of the full footprint a child references, used
            for totals the child does not assert itself

    Returns:
        Issues found, empty when the tree is consistent
    """
    issues: List[BreakdownIssue] = []
    _check_node(footprint, [], tolerance, resolve, issues)
    return issues
