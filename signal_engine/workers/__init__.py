"""Workers package for scheduled background jobs."""

from signal_engine.workers.setup import init_workers, shutdown_workers

__all__ = [
    "init_workers",
    "shutdown_workers",
]
