"""Metric sampling for volume signals.

Derives scalar values for volume comparison operands:
- THRESHOLD: the configured constant
- VOLUME: raw count over the operand period ending at the anchor
- MA_VAL / EMA_VAL: mean / exponential mean of trailing daily counts
- MA_PCT / EMA_PCT: percentage deviation of current volume from MA / EMA

Undefined values (percentage over a zero baseline with non-zero current
volume) are returned as None. Callers must never treat None as a trigger.

A sampler is created once per evaluation tick. Count queries are memoized
by (scope, period, window end) so signals sharing a window share one query.
"""

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from signal_engine.signals.errors import TransientDataError, UndefinedMetricError
from signal_engine.signals.models import FilterExpression, Operand, OperandType, Period

if TYPE_CHECKING:
    from signal_engine.sources.base import ContentSource

logger = logging.getLogger(__name__)

_CountKey = tuple[FilterExpression | None, Period, datetime]


def moving_average(samples: Sequence[float]) -> float:
    """Arithmetic mean of samples. Empty input averages to 0."""
    if not samples:
        return 0.0
    return sum(samples) / len(samples)


def exponential_moving_average(samples: Sequence[float], window: int) -> float:
    """Exponential moving average with alpha = 2 / (window + 1).

    Samples are ordered oldest first; the EMA is seeded with the first one.
    """
    if not samples:
        return 0.0
    alpha = 2.0 / (window + 1)
    ema = float(samples[0])
    for sample in samples[1:]:
        ema = alpha * sample + (1.0 - alpha) * ema
    return ema


def percentage_change(current: float, baseline: float) -> float:
    """Percentage deviation of current from baseline.

    Raises:
        UndefinedMetricError: If baseline is zero and current is not
    """
    if baseline == 0:
        if current == 0:
            return 0.0
        raise UndefinedMetricError(
            f"Percentage change undefined for current={current} over zero baseline"
        )
    return (current - baseline) / baseline * 100.0


class MetricSampler:
    """Samples operand values from a content source with a per-tick cache.

    Attributes:
        source: ContentSource used for counts
    """

    def __init__(self, source: "ContentSource"):
        self.source = source
        self._counts: dict[_CountKey, asyncio.Task[int]] = {}

    async def sample(
        self,
        operand: Operand,
        anchor: datetime,
        scope: FilterExpression | None = None,
    ) -> float | None:
        """Compute the raw value of an operand at the anchor time.

        The operand multiplier is not applied here.

        Args:
            operand: Operand to sample
            anchor: Evaluation tick time; every window ends here
            scope: Filter restricting which content is counted

        Returns:
            The sampled value, or None when the value is undefined

        Raises:
            TransientDataError: If the content source fails
        """
        kind = operand.type

        if kind == OperandType.THRESHOLD:
            return float(operand.value) if operand.value is not None else None

        if kind == OperandType.VOLUME:
            return float(await self.count(scope, operand.period, anchor))

        if kind in (OperandType.MA_VAL, OperandType.EMA_VAL):
            return await self._baseline(operand, anchor, scope)

        # MA_PCT / EMA_PCT
        current = float(await self.count(scope, operand.period, anchor))
        baseline = await self._baseline(operand, anchor, scope)
        try:
            return percentage_change(current, baseline)
        except UndefinedMetricError as e:
            logger.info("%s undefined at %s: %s", kind.value, anchor.isoformat(), e)
            return None

    async def daily_counts(
        self, scope: FilterExpression | None, trailing_days: int, anchor: datetime
    ) -> list[float]:
        """Daily counts for the trailing windows ending at anchor, oldest first."""
        ends = [anchor - timedelta(days=offset) for offset in range(trailing_days)]
        counts = await asyncio.gather(*(self.count(scope, Period.DAY, end) for end in ends))
        return [float(c) for c in reversed(counts)]

    async def count(self, scope: FilterExpression | None, period: Period, end: datetime) -> int:
        """Memoized content count for one window."""
        key = (scope, period, end)
        task = self._counts.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch_count(scope, period, end))
            self._counts[key] = task
        return await asyncio.shield(task)

    async def _fetch_count(
        self, scope: FilterExpression | None, period: Period, end: datetime
    ) -> int:
        try:
            return await self.source.count_in_window(scope, period, end)
        except Exception as e:
            raise TransientDataError(
                f"Count query failed for {period.value} window ending {end.isoformat()}: {e}"
            ) from e

    async def _baseline(
        self, operand: Operand, anchor: datetime, scope: FilterExpression | None
    ) -> float:
        samples = await self.daily_counts(scope, operand.trailing_days, anchor)
        if operand.type in (OperandType.EMA_VAL, OperandType.EMA_PCT):
            return exponential_moving_average(samples, operand.trailing_days)
        return moving_average(samples)
