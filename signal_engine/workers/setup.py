"""Worker setup and lifecycle management for signal evaluation.

Two scheduled jobs run on the application's event loop:
- signal_evaluation_tick: evaluates ACTIVE SCHEDULED signals every poll interval
- notification_resume: resumes notifications whose dispatch lease expired
"""

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from signal_engine.config import Settings, settings as default_settings

if TYPE_CHECKING:
    from signal_engine.notifications.dispatcher import NotificationDispatcher
    from signal_engine.signals.orchestrator import SignalOrchestrator

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler: AsyncIOScheduler | None = None


async def _run_signal_tick(orchestrator: "SignalOrchestrator") -> None:
    """Scheduled job: evaluate every due SCHEDULED signal."""
    try:
        outcomes = await orchestrator.run_tick()
        triggered = sum(1 for o in outcomes if o.notification_id is not None)
        if triggered:
            logger.info("Signal tick issued %d notification(s)", triggered)
    except Exception as e:
        logger.exception("Signal evaluation tick failed: %s", e)


async def _run_notification_resume(dispatcher: "NotificationDispatcher") -> None:
    """Scheduled job: resume notifications left unfinished."""
    try:
        count = await dispatcher.resume_stale()
        if count > 0:
            logger.info("Resumed %d unfinished notification(s)", count)
    except Exception as e:
        logger.exception("Notification resume sweep failed: %s", e)


async def init_workers(
    orchestrator: "SignalOrchestrator",
    dispatcher: "NotificationDispatcher",
    config: Settings | None = None,
) -> None:
    """Initialize scheduled jobs.

    Args:
        orchestrator: SignalOrchestrator evaluated on every tick
        dispatcher: NotificationDispatcher used for the resume sweep
        config: Settings for job intervals (module settings if not provided)
    """
    global _scheduler

    config = config or default_settings
    logger.info("Initializing signal workers...")

    _scheduler = AsyncIOScheduler()

    # Evaluation tick: every poll interval (default 1 minute), never overlapping
    _scheduler.add_job(
        _run_signal_tick,
        IntervalTrigger(seconds=config.poll_interval_seconds),
        args=[orchestrator],
        id="signal_evaluation_tick",
        name="Evaluate scheduled signals",
        max_instances=1,
        coalesce=True,
    )

    # Resume sweep for expired dispatch leases
    _scheduler.add_job(
        _run_notification_resume,
        IntervalTrigger(seconds=config.resume_interval_seconds),
        args=[dispatcher],
        id="notification_resume",
        name="Resume unfinished notifications",
        max_instances=1,
        coalesce=True,
    )

    _scheduler.start()
    logger.info("Signal workers initialized")


async def shutdown_workers() -> None:
    """Shutdown all scheduled jobs."""
    global _scheduler

    logger.info("Shutting down signal workers...")

    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None

    logger.info("Signal workers shutdown complete")
