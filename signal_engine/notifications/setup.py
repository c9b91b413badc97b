"""Notification dispatcher initialization.

This module provides functions to initialize and access the global
NotificationDispatcher instance.

Usage:
    from signal_engine.notifications.setup import init_dispatcher, get_dispatcher

    # During startup:
    dispatcher = init_dispatcher(async_session)

    # Later, anywhere in the app:
    dispatcher = get_dispatcher()
    if dispatcher:
        await dispatcher.resume_stale()
"""

import logging
from collections.abc import Callable

from signal_engine.config import Settings, settings as default_settings
from signal_engine.notifications.channels import (
    EmailChannel,
    NotificationChannel,
    WebhookChannel,
)
from signal_engine.notifications.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

_dispatcher: NotificationDispatcher | None = None


def build_channels(config: Settings) -> dict[str, NotificationChannel]:
    """Create notification channels: email if SMTP is configured, webhook always."""
    channels: dict[str, NotificationChannel] = {}

    if config.smtp_host:
        channels["email"] = EmailChannel(
            smtp_host=config.smtp_host,
            smtp_port=config.smtp_port,
            sender=config.smtp_sender,
            username=config.smtp_username,
            password=config.smtp_password,
        )
        logger.info("Email channel configured")

    channels["webhook"] = WebhookChannel(timeout_seconds=config.webhook_timeout_seconds)
    logger.info("Webhook channel configured")

    return channels


def init_dispatcher(
    session_factory: Callable, config: Settings | None = None
) -> NotificationDispatcher:
    """Initialize the global dispatcher with channels built from settings.

    Args:
        session_factory: Callable that creates AsyncSession instances
        config: Settings to use (module settings if not provided)

    Returns:
        Configured NotificationDispatcher instance
    """
    global _dispatcher

    config = config or default_settings
    _dispatcher = NotificationDispatcher(
        session_factory=session_factory,
        channels=build_channels(config),
        max_retries=config.max_retries,
        retry_base_delay=config.retry_base_delay,
        retry_multiplier=config.retry_multiplier,
        dispatch_timeout=config.dispatch_timeout_seconds,
        lease_ttl=config.lease_ttl_seconds,
    )
    logger.info("NotificationDispatcher initialized (worker %s)", _dispatcher.worker_id)

    return _dispatcher


def get_dispatcher() -> NotificationDispatcher | None:
    """Get the global dispatcher instance.

    Returns:
        The initialized NotificationDispatcher, or None if not yet initialized.
    """
    return _dispatcher


def reset_dispatcher() -> None:
    """Clear the global dispatcher (for test isolation)."""
    global _dispatcher
    _dispatcher = None
