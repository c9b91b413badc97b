"""SignalRecord model for persisted monitoring rules."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from signal_engine.db.database import Base
from signal_engine.signals.models import SignalStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SignalRecord(Base):
    """A persisted signal.

    query and schedule hold the validated JSON documents; they are parsed
    into domain objects by signal_engine.signals.factory.build_definition.
    signal_type is fixed at creation.
    """

    __tablename__ = "signals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(20), default=SignalStatus.DRAFT.value, index=True)
    signal_type: Mapped[str] = mapped_column(String(20))
    notification_policy_type: Mapped[str] = mapped_column(String(20))
    selection_policy_type: Mapped[str] = mapped_column(String(30))

    query: Mapped[dict[str, Any]] = mapped_column(JSON)
    schedule: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    contact_point_ids: Mapped[list[str]] = mapped_column(JSON, default=list)

    # Evaluation bookkeeping
    watermark: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_fired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_evaluated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    def __init__(self, **kwargs):
        """Initialize SignalRecord with defaults for optional fields."""
        kwargs.setdefault("status", SignalStatus.DRAFT.value)
        kwargs.setdefault("schedule", {})
        kwargs.setdefault("contact_point_ids", [])
        super().__init__(**kwargs)
