"""FilterExpression evaluation.

Evaluates a recursive AND/OR/NOT tree of field constraints against a
ContentItem. Evaluation never raises for a malformed leaf: a field the
schema does not know makes that leaf fail closed and is counted in
FilterStats so callers can surface a warning count.

Empty composites follow boolean identities:
    AND []  -> True
    OR  []  -> False
    NOT []  -> True

Usage:
    from signal_engine.signals.filters import evaluate_batch, matches

    if matches(expr, item):
        ...

    result = evaluate_batch(expr, items)
    if result.warnings:
        logger.warning("%d malformed leaves", result.warnings)
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from signal_engine.signals.models import (
    ContentItem,
    FieldConstraint,
    FilterExpression,
    FilterGroup,
    FilterLeaf,
    FilterStats,
    LogicalOperator,
)

logger = logging.getLogger(__name__)

# Wire field name -> ContentItem attribute. Each field also accepts an
# "exclude" counterpart (excludeSource, excludeCompanyId, ...).
FIELD_ATTRIBUTES: dict[str, str] = {
    "source": "source",
    "country": "country",
    "category": "category",
    "language": "language",
    "companyId": "company_ids",
    "label": "labels",
    "topic": "topics",
    "personId": "person_ids",
}

EXCLUDE_PREFIX = "exclude"


@dataclass(frozen=True)
class FilterResult:
    """Outcome of evaluating one expression over a batch of items."""

    matched: list[ContentItem]
    warnings: int


def matches(
    expr: FilterExpression, item: ContentItem, stats: FilterStats | None = None
) -> bool:
    """Return True if the item satisfies the expression.

    Args:
        expr: Filter tree to evaluate
        item: Content item to test
        stats: Optional counters; unknown fields are recorded here

    Returns:
        Whether the item matches
    """
    if stats is None:
        stats = FilterStats()
    return _evaluate(expr, item, stats)


def evaluate_batch(expr: FilterExpression, items: Iterable[ContentItem]) -> FilterResult:
    """Evaluate an expression over many items and count malformed leaves.

    The warning count is the number of leaf evaluations that failed closed
    because of an unknown field.
    """
    stats = FilterStats()
    matched = [item for item in items if _evaluate(expr, item, stats)]

    if stats.unknown_fields:
        logger.warning(
            "Filter evaluation hit %d unknown field reference(s): %s",
            stats.unknown_fields,
            ", ".join(sorted(stats.unknown_field_names)),
        )

    return FilterResult(matched=matched, warnings=stats.unknown_fields)


def _evaluate(expr: FilterExpression, item: ContentItem, stats: FilterStats) -> bool:
    if isinstance(expr, FilterLeaf):
        return _evaluate_leaf(expr, item, stats)

    if expr.operator == LogicalOperator.AND:
        return all(_evaluate(child, item, stats) for child in expr.children)

    if expr.operator == LogicalOperator.OR:
        return any(_evaluate(child, item, stats) for child in expr.children)

    # NOT of a list negates the conjunction of that list; NOT [] is True.
    # A negated empty conjunction is written {"NOT": []}. {"NOT": {"AND": []}}
    # negates a single child that is itself true, so it is False.
    if not expr.children:
        return True
    return not all(_evaluate(child, item, stats) for child in expr.children)


def _evaluate_leaf(leaf: FilterLeaf, item: ContentItem, stats: FilterStats) -> bool:
    for field_name, constraint in leaf.constraints:
        attribute = FIELD_ATTRIBUTES.get(field_name)
        if attribute is None:
            stats.unknown_fields += 1
            stats.unknown_field_names.add(field_name)
            return False

        if not _constraint_matches(constraint, item.values_for(attribute)):
            return False

    return True


def _constraint_matches(constraint: FieldConstraint, values: frozenset[str]) -> bool:
    if constraint.exclude and values & constraint.exclude:
        return False

    if constraint.include and not values & constraint.include:
        return False

    return True


def is_known_field(name: str) -> bool:
    """Whether a wire field name (or its exclude counterpart) is recognized."""
    return name in FIELD_ATTRIBUTES or include_field_for(name) in FIELD_ATTRIBUTES


def include_field_for(name: str) -> str:
    """Map excludeCompanyId -> companyId; other names are returned unchanged."""
    if name.startswith(EXCLUDE_PREFIX) and len(name) > len(EXCLUDE_PREFIX):
        rest = name[len(EXCLUDE_PREFIX) :]
        return rest[0].lower() + rest[1:]
    return name
