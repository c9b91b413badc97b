"""Contact point routing.

This module decides where a notification goes:
- select_contact_points: enabled contact points of a signal, deduplicated
  by (channel, destination)
- resolve_destination: expands "env:NAME" destinations from the environment

Destinations may reference environment variables ("env:SLACK_WEBHOOK_OPS")
so secrets such as webhook URLs are never stored in the database.
"""

import logging
import os
from collections.abc import Iterable

from signal_engine.models.contact_point import ContactPoint

logger = logging.getLogger(__name__)

ENV_PREFIX = "env:"

SUPPORTED_CHANNELS: frozenset[str] = frozenset({"email", "webhook"})


def resolve_destination(destination: str) -> str | None:
    """Resolve a destination to an actual address.

    Args:
        destination: Literal address, or "env:NAME" to read environment variable NAME

    Returns:
        The resolved address, or None if the environment variable is not set
    """
    if not destination.startswith(ENV_PREFIX):
        return destination
    return os.getenv(destination[len(ENV_PREFIX) :]) or None


def select_contact_points(contact_points: Iterable[ContactPoint]) -> list[ContactPoint]:
    """Filter a signal's contact points down to the ones to notify.

    Disabled contact points are skipped. Duplicate (channel, destination)
    pairs are kept once, first occurrence wins.
    """
    seen: set[tuple[str, str]] = set()
    result: list[ContactPoint] = []

    for contact_point in contact_points:
        if not contact_point.enabled:
            logger.debug("Contact point %s disabled, skipping", contact_point.id)
            continue

        key = (contact_point.channel, contact_point.destination)
        if key in seen:
            continue

        seen.add(key)
        result.append(contact_point)

    return result
