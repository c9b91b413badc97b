"""Threshold comparison for volume signals.

compare() applies the right-hand multiplier and the relational operator.
An undefined operand (None) fails closed: the comparison is False.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime

from signal_engine.signals.metrics import MetricSampler
from signal_engine.signals.models import ComparisonOperator, FilterExpression, VolumeComparison

logger = logging.getLogger(__name__)

# EQ tolerance for floating point values
EQ_REL_TOLERANCE = 1e-9
EQ_ABS_TOLERANCE = 1e-6


@dataclass(frozen=True)
class ComparisonResult:
    """Sampled operand values and the comparison outcome."""

    left: float | None
    right: float | None
    triggered: bool


def compare(
    left: float | None,
    right: float | None,
    operator: ComparisonOperator,
    multiplier: float = 1.0,
) -> bool:
    """Compare left against right * multiplier.

    Args:
        left: Left operand value, None if undefined
        right: Right operand value, None if undefined
        operator: Relational operator
        multiplier: Applied to right before comparing

    Returns:
        Whether the relation holds. Always False if either side is undefined.
    """
    if left is None or right is None:
        logger.warning(
            "Undefined operand in %s comparison (left=%s, right=%s), not triggering",
            operator.value,
            left,
            right,
        )
        return False

    scaled = right * multiplier

    if operator == ComparisonOperator.GT:
        return left > scaled
    if operator == ComparisonOperator.GTE:
        return left >= scaled
    if operator == ComparisonOperator.LT:
        return left < scaled
    if operator == ComparisonOperator.LTE:
        return left <= scaled
    return math.isclose(left, scaled, rel_tol=EQ_REL_TOLERANCE, abs_tol=EQ_ABS_TOLERANCE)


async def evaluate_volume(
    expression: VolumeComparison,
    sampler: MetricSampler,
    anchor: datetime,
    scope: FilterExpression | None = None,
) -> ComparisonResult:
    """Sample both operands at one anchor and compare them.

    The left operand's multiplier scales the left value; the right operand's
    multiplier is handed to compare().
    """
    left = await sampler.sample(expression.left, anchor, scope)
    right = await sampler.sample(expression.right, anchor, scope)

    if left is not None:
        left *= expression.left.multiplier

    triggered = compare(left, right, expression.operator, expression.right.multiplier)
    logger.debug(
        "Volume comparison at %s: %s %s %s x %s -> %s",
        anchor.isoformat(),
        left,
        expression.operator.value,
        right,
        expression.right.multiplier,
        triggered,
    )
    return ComparisonResult(left=left, right=right, triggered=triggered)
