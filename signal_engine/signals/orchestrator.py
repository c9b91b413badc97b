"""SignalOrchestrator drives one evaluation tick for every active signal.

Per signal the evaluation moves through:

    IDLE -> SCHEDULED -> EVALUATING -> TRIGGERED     -> DISPATCHING -> SETTLED
                                    -> NOT_TRIGGERED
                                    -> FAILED

A FAILED evaluation leaves the watermark untouched so the same window is
retried on the next tick. The watermark only moves by compare-and-set against
the value the evaluation started from, so of two overlapping evaluations of
one signal only the first to commit takes effect; the other ends IDLE.

A TRIGGERED evaluation creates the notification, its contact point rows and
the watermark advance in one transaction, then hands the notification to the
NotificationDispatcher under a fresh lease token. A notification left
in DISPATCHING is picked up later by NotificationDispatcher.resume_stale().

Usage:
    orchestrator = SignalOrchestrator(
        session_factory=async_session,
        content_source=source,
        dispatcher=dispatcher,
    )
    outcomes = await orchestrator.run_tick()
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING

from signal_engine.db.repositories.contact_point_repo import ContactPointRepository
from signal_engine.db.repositories.notification_repo import NotificationRepository
from signal_engine.db.repositories.signal_repo import SignalRepository
from signal_engine.notifications.routing import select_contact_points
from signal_engine.signals.comparator import evaluate_volume
from signal_engine.signals.errors import ConfigurationError, StaleEvaluationError
from signal_engine.signals.factory import build_definition
from signal_engine.signals.filters import evaluate_batch
from signal_engine.signals.metrics import MetricSampler
from signal_engine.signals.models import (
    ContentItem,
    NotificationPolicyType,
    SignalDefinition,
    SignalStatus,
    SignalType,
)
from signal_engine.signals.schedule import is_due, truncate_to_minute
from signal_engine.signals.selection import SelectionPolicyResolver

if TYPE_CHECKING:
    from signal_engine.notifications.dispatcher import DispatchReport, NotificationDispatcher
    from signal_engine.sources.base import ContentSource

logger = logging.getLogger(__name__)


class EvaluationState(str, Enum):
    """Where a signal ended up after one evaluation."""

    IDLE = "IDLE"
    SCHEDULED = "SCHEDULED"
    EVALUATING = "EVALUATING"
    TRIGGERED = "TRIGGERED"
    NOT_TRIGGERED = "NOT_TRIGGERED"
    DISPATCHING = "DISPATCHING"
    SETTLED = "SETTLED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class EvaluationOutcome:
    """Result of evaluating one signal at one tick.

    Attributes:
        signal_id: The evaluated signal
        state: Final state reached in this tick
        notification_id: Created notification, if the signal triggered
        matched_count: Content items found in the evaluation window
        warnings: Filter leaves that failed closed on unknown fields
        error: Error message for FAILED evaluations
        report: Dispatch report, if dispatch ran to completion
    """

    signal_id: str
    state: EvaluationState
    notification_id: str | None = None
    matched_count: int = 0
    warnings: int = 0
    error: str | None = None
    report: "DispatchReport | None" = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SignalOrchestrator:
    """Evaluates signals and turns triggers into dispatched notifications."""

    def __init__(
        self,
        session_factory: Callable,
        content_source: "ContentSource",
        dispatcher: "NotificationDispatcher",
        selection_resolver: SelectionPolicyResolver | None = None,
        max_concurrency: int = 8,
        initial_lookback: timedelta = timedelta(hours=24),
        immediate_min_interval: timedelta = timedelta(0),
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the SignalOrchestrator.

        Args:
            session_factory: Callable that creates AsyncSession instances
            content_source: Content index queried for matches and counts
            dispatcher: Delivers created notifications
            selection_resolver: Picks notification content (LATEST-only resolver if not provided)
            max_concurrency: Maximum signals evaluated at once (default: 8)
            initial_lookback: Window for a signal with no watermark (default: 24h)
            immediate_min_interval: Minimum spacing of IMMEDIATE evaluations (default: off)
            clock: Returns the current UTC time
        """
        self.session_factory = session_factory
        self.content_source = content_source
        self.dispatcher = dispatcher
        self.selection_resolver = selection_resolver or SelectionPolicyResolver()
        self.max_concurrency = max_concurrency
        self.initial_lookback = initial_lookback
        self.immediate_min_interval = immediate_min_interval
        self.clock = clock

    async def run_tick(self, now: datetime | None = None) -> list[EvaluationOutcome]:
        """Evaluate every ACTIVE SCHEDULED signal once.

        Returns:
            One outcome per loaded signal
        """
        now = now or self.clock()
        definitions = await self._load_active(NotificationPolicyType.SCHEDULED)
        return await self._evaluate_all(definitions, now)

    async def on_content_changed(self, now: datetime | None = None) -> list[EvaluationOutcome]:
        """Evaluate every ACTIVE IMMEDIATE signal after new content arrived.

        Signals evaluated less than immediate_min_interval ago are skipped.
        """
        now = now or self.clock()
        definitions = await self._load_active(NotificationPolicyType.IMMEDIATE)

        if self.immediate_min_interval > timedelta(0):
            due = []
            for definition in definitions:
                if (
                    definition.watermark is not None
                    and now - definition.watermark < self.immediate_min_interval
                ):
                    logger.debug("Signal %s debounced", definition.id)
                    continue
                due.append(definition)
            definitions = due

        return await self._evaluate_all(definitions, now)

    async def evaluate_signal(
        self,
        definition: SignalDefinition,
        now: datetime,
        sampler: MetricSampler | None = None,
    ) -> EvaluationOutcome:
        """Evaluate one signal at the tick time and dispatch if it triggers.

        Evaluation errors produce a FAILED outcome and dispatch errors
        leave the notification for the resume sweep.
        """
        if definition.status != SignalStatus.ACTIVE:
            return EvaluationOutcome(signal_id=definition.id, state=EvaluationState.IDLE)

        if not is_due(
            definition.schedule,
            definition.notification_policy_type,
            now,
            definition.last_fired_at,
        ):
            return EvaluationOutcome(signal_id=definition.id, state=EvaluationState.IDLE)

        sampler = sampler or MetricSampler(self.content_source)
        since = definition.watermark or now - self.initial_lookback
        last_fired_at = (
            truncate_to_minute(now)
            if definition.notification_policy_type == NotificationPolicyType.SCHEDULED
            else None
        )

        try:
            triggered, items, warnings = await self._evaluate(definition, sampler, since, now)
        except Exception as e:
            logger.exception("Evaluation of signal %s failed: %s", definition.id, e)
            await self._record_failure(definition.id, now)
            return EvaluationOutcome(
                signal_id=definition.id,
                state=EvaluationState.FAILED,
                error=str(e) or type(e).__name__,
            )

        if not triggered:
            try:
                async with self.session_factory() as session:
                    advanced = await SignalRepository(session).advance_watermark(
                        definition.id,
                        expected=definition.watermark,
                        watermark=now,
                        evaluated_at=now,
                        last_fired_at=last_fired_at,
                    )
                    await session.commit()
            except Exception as e:
                logger.exception("Recording evaluation of signal %s failed: %s", definition.id, e)
                return EvaluationOutcome(
                    signal_id=definition.id,
                    state=EvaluationState.FAILED,
                    matched_count=len(items),
                    warnings=warnings,
                    error=str(e) or type(e).__name__,
                )

            if not advanced:
                logger.info(
                    "Signal %s was evaluated concurrently, dropping this result", definition.id
                )
                return EvaluationOutcome(signal_id=definition.id, state=EvaluationState.IDLE)

            return EvaluationOutcome(
                signal_id=definition.id,
                state=EvaluationState.NOT_TRIGGERED,
                matched_count=len(items),
                warnings=warnings,
            )

        logger.info("Signal %s triggered with %d item(s)", definition.id, len(items))
        lease_owner = self.dispatcher.new_lease_token()

        try:
            selection = await self.selection_resolver.select(definition.selection_policy_type, items)

            async with self.session_factory() as session:
                record = await SignalRepository(session).get(definition.id)
                if record is None:
                    raise LookupError(f"Signal {definition.id} no longer exists")

                contact_points = select_contact_points(
                    await ContactPointRepository(session).get_many(definition.contact_point_ids)
                )
                notification = await NotificationRepository(session).create_for_trigger(
                    record,
                    selection,
                    contact_points,
                    now=now,
                    lease_owner=lease_owner,
                    lease_started_at=self.dispatcher.clock(),
                    expected_watermark=definition.watermark,
                    watermark=now,
                    last_fired_at=last_fired_at,
                )
        except StaleEvaluationError as e:
            logger.info("%s, dropping this trigger", e)
            return EvaluationOutcome(signal_id=definition.id, state=EvaluationState.IDLE)
        except Exception as e:
            logger.exception("Creating notification for signal %s failed: %s", definition.id, e)
            await self._record_failure(definition.id, now)
            return EvaluationOutcome(
                signal_id=definition.id,
                state=EvaluationState.FAILED,
                matched_count=len(items),
                warnings=warnings,
                error=str(e) or type(e).__name__,
            )

        try:
            report = await self.dispatcher.dispatch(notification.id, lease_owner)
        except Exception as e:
            logger.exception(
                "Dispatch of notification %s interrupted, left for resume: %s",
                notification.id,
                e,
            )
            return EvaluationOutcome(
                signal_id=definition.id,
                state=EvaluationState.DISPATCHING,
                notification_id=notification.id,
                matched_count=len(items),
                warnings=warnings,
                error=str(e) or type(e).__name__,
            )

        return EvaluationOutcome(
            signal_id=definition.id,
            state=EvaluationState.SETTLED if report.settled else EvaluationState.DISPATCHING,
            notification_id=notification.id,
            matched_count=len(items),
            warnings=warnings,
            report=report,
        )

    async def _evaluate(
        self,
        definition: SignalDefinition,
        sampler: MetricSampler,
        since: datetime,
        now: datetime,
    ) -> tuple[bool, list[ContentItem], int]:
        """Run the signal query.

        Returns:
            Tuple of (triggered, content in the window, filter warnings)
        """
        query = definition.query

        if definition.signal_type == SignalType.ARTICLES_VOLUME:
            comparison = await evaluate_volume(query.volume, sampler, now, scope=query.filter)
            if not comparison.triggered:
                return False, [], 0
            items, warnings = await self._window_content(definition, since, now)
            return True, items, warnings

        items, warnings = await self._window_content(definition, since, now)
        return bool(items), items, warnings

    async def _window_content(
        self, definition: SignalDefinition, since: datetime, now: datetime
    ) -> tuple[list[ContentItem], int]:
        """Matching content published in (since, now]."""
        expr = definition.query.filter
        candidates = await self.content_source.find_matching(expr, since)

        warnings = 0
        if expr is not None:
            result = evaluate_batch(expr, candidates)
            candidates = result.matched
            warnings = result.warnings

        return [item for item in candidates if since < item.published_at <= now], warnings

    async def _evaluate_all(
        self, definitions: list[SignalDefinition], now: datetime
    ) -> list[EvaluationOutcome]:
        if not definitions:
            return []

        sampler = MetricSampler(self.content_source)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(definition: SignalDefinition) -> EvaluationOutcome:
            async with semaphore:
                return await self.evaluate_signal(definition, now, sampler)

        outcomes = await asyncio.gather(*(run(d) for d in definitions))

        logger.info(
            "Tick at %s: %d evaluated, %d triggered, %d failed",
            now.isoformat(),
            sum(1 for o in outcomes if o.state != EvaluationState.IDLE),
            sum(1 for o in outcomes if o.notification_id is not None),
            sum(1 for o in outcomes if o.state == EvaluationState.FAILED),
        )
        return list(outcomes)

    async def _load_active(
        self, notification_policy_type: NotificationPolicyType
    ) -> list[SignalDefinition]:
        async with self.session_factory() as session:
            records = await SignalRepository(session).list_active(notification_policy_type)

        definitions = []
        for record in records:
            try:
                definitions.append(build_definition(record))
            except ConfigurationError as e:
                logger.error("Skipping signal %s with invalid stored definition: %s", record.id, e)
        return definitions

    async def _record_failure(self, signal_id: str, now: datetime) -> None:
        try:
            async with self.session_factory() as session:
                await SignalRepository(session).record_evaluation(signal_id, evaluated_at=now)
        except Exception as e:
            logger.exception("Recording failed evaluation of signal %s failed: %s", signal_id, e)
