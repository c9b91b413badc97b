"""Notification payload handed to delivery channels."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from signal_engine.models.notification import SignalNotification


@dataclass(frozen=True)
class NotificationPayload:
    """Transport-neutral content of one notification."""

    notification_id: str
    signal_id: str
    signal_name: str
    issued_at: datetime
    article_ids: list[str] = field(default_factory=list)
    digest: str | None = None
    summary_unavailable: bool = False

    @property
    def summary(self) -> str:
        count = len(self.article_ids)
        noun = "article" if count == 1 else "articles"
        return f"Signal '{self.signal_name}' triggered ({count} {noun})"

    def to_json(self) -> dict[str, Any]:
        data = asdict(self)
        data["issued_at"] = self.issued_at.isoformat()
        return data


def build_payload(notification: SignalNotification) -> NotificationPayload:
    return NotificationPayload(
        notification_id=notification.id,
        signal_id=notification.signal_id,
        signal_name=notification.signal_name,
        issued_at=notification.issued_at,
        article_ids=list(notification.article_ids or []),
        digest=notification.digest,
        summary_unavailable=notification.summary_unavailable,
    )
