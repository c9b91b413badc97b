# signal_engine/main.py
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import TYPE_CHECKING

from fastapi import FastAPI

from signal_engine.api.contact_points import router as contact_points_router
from signal_engine.api.notifications import router as notifications_router
from signal_engine.api.signals import router as signals_router
from signal_engine.config import settings
from signal_engine.db.database import async_session
from signal_engine.notifications.setup import init_dispatcher
from signal_engine.signals.orchestrator import SignalOrchestrator
from signal_engine.signals.selection import SelectionPolicyResolver
from signal_engine.workers.setup import init_workers, shutdown_workers

if TYPE_CHECKING:
    from signal_engine.sources.base import ContentSource, Summarizer

logger = logging.getLogger(__name__)


def create_app(
    content_source: "ContentSource | None" = None,
    summarizer: "Summarizer | None" = None,
) -> FastAPI:
    """Build the application.

    The evaluation and resume jobs start only when a content source is
    supplied; without one the app serves the management API alone.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown events."""
        # Startup
        dispatcher = init_dispatcher(async_session)
        if content_source is not None:
            orchestrator = SignalOrchestrator(
                session_factory=async_session,
                content_source=content_source,
                dispatcher=dispatcher,
                selection_resolver=SelectionPolicyResolver(summarizer=summarizer),
                max_concurrency=settings.max_concurrency,
                initial_lookback=timedelta(hours=settings.initial_lookback_hours),
                immediate_min_interval=timedelta(seconds=settings.immediate_min_interval_seconds),
            )
            app.state.orchestrator = orchestrator
            await init_workers(orchestrator, dispatcher)
        else:
            logger.warning("No content source configured, signal evaluation disabled")
        yield
        # Shutdown
        if content_source is not None:
            await shutdown_workers()

    app = FastAPI(title="Signal Engine", version="0.1.0", lifespan=lifespan)

    # Include routers
    app.include_router(signals_router)
    app.include_router(contact_points_router)
    app.include_router(notifications_router)

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app


app = create_app()
