"""Notification delivery package.

This package provides:
- Notification payloads handed to channels
- Notification channels (Email, Webhook)
- Contact point routing and destination resolution
- NotificationDispatcher with retries, leases and resumption
"""

from signal_engine.notifications.channels import (
    DeliveryResult,
    EmailChannel,
    NotificationChannel,
    WebhookChannel,
)
from signal_engine.notifications.dispatcher import (
    ContactPointResult,
    DispatchReport,
    NotificationDispatcher,
)
from signal_engine.notifications.payload import NotificationPayload, build_payload
from signal_engine.notifications.routing import (
    SUPPORTED_CHANNELS,
    resolve_destination,
    select_contact_points,
)
from signal_engine.notifications.setup import get_dispatcher, init_dispatcher

__all__ = [
    # Payload
    "NotificationPayload",
    "build_payload",
    # Channels
    "DeliveryResult",
    "EmailChannel",
    "NotificationChannel",
    "WebhookChannel",
    # Routing
    "SUPPORTED_CHANNELS",
    "resolve_destination",
    "select_contact_points",
    # Dispatcher
    "ContactPointResult",
    "DispatchReport",
    "NotificationDispatcher",
    "get_dispatcher",
    "init_dispatcher",
]
