"""Notification models: one SignalNotification per trigger, one
ContactPointNotification per targeted contact point."""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from signal_engine.db.database import Base
from signal_engine.signals.models import DeliveryStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SignalNotification(Base):
    """Record of one signal trigger.

    signal_name and signal_status are a snapshot taken at trigger time so the
    record still displays correctly after the signal is edited or archived.

    current_processed_at / last_processed_at form the idempotency guard:
    a row with current_processed_at set and last_processed_at unset is an
    unfinished dispatch. current_processed_at doubles as the lease start;
    lease_owner names the worker holding it.
    """

    __tablename__ = "signal_notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    signal_id: Mapped[str] = mapped_column(String(36), ForeignKey("signals.id"), index=True)
    signal_name: Mapped[str] = mapped_column(String(255))
    signal_status: Mapped[str] = mapped_column(String(20))
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    # Selection
    article_ids: Mapped[list[str]] = mapped_column(JSON, default=list)
    digest: Mapped[str | None] = mapped_column(Text, nullable=True)
    summary_unavailable: Mapped[bool] = mapped_column(Boolean, default=False)

    # Processing metadata
    current_processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    last_processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    lease_owner: Mapped[str | None] = mapped_column(String(100), nullable=True)

    contact_points: Mapped[list["ContactPointNotification"]] = relationship(
        back_populates="notification",
        lazy="selectin",
        order_by="ContactPointNotification.contact_point_id",
    )

    def __init__(self, **kwargs):
        kwargs.setdefault("article_ids", [])
        kwargs.setdefault("summary_unavailable", False)
        super().__init__(**kwargs)

    @property
    def is_settled(self) -> bool:
        return self.last_processed_at is not None and self.current_processed_at is None


class ContactPointNotification(Base):
    """Delivery status of one notification to one contact point.

    retryable distinguishes a FAILED row that a resumed dispatch may pick up
    again (dispatch timed out) from one whose retries were exhausted.
    """

    __tablename__ = "contact_point_notifications"
    __table_args__ = (
        UniqueConstraint(
            "notification_id", "contact_point_id", name="uq_cp_notifications_notification_cp"
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    notification_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("signal_notifications.id"), index=True
    )
    contact_point_id: Mapped[str] = mapped_column(String(36))
    channel: Mapped[str] = mapped_column(String(20))
    destination: Mapped[str] = mapped_column(String(1024))

    status: Mapped[str] = mapped_column(String(20), default=DeliveryStatus.PENDING.value)
    retryable: Mapped[bool] = mapped_column(Boolean, default=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    response_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    notification: Mapped[SignalNotification] = relationship(back_populates="contact_points")

    def __init__(self, **kwargs):
        kwargs.setdefault("status", DeliveryStatus.PENDING.value)
        kwargs.setdefault("retryable", True)
        kwargs.setdefault("attempts", 0)
        super().__init__(**kwargs)

    @property
    def needs_delivery(self) -> bool:
        """PENDING, or FAILED but still eligible for a resumed attempt."""
        if self.status == DeliveryStatus.PENDING.value:
            return True
        return self.status == DeliveryStatus.FAILED.value and self.retryable
