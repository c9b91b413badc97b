"""Repository for SignalRecord operations."""

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import select, update

from signal_engine.db.repositories.base import BaseRepository
from signal_engine.models.signal import SignalRecord
from signal_engine.signals.models import NotificationPolicyType, SignalStatus


class SignalRepository(BaseRepository):
    """Repository for signal database operations."""

    async def create(self, **fields: Any) -> SignalRecord:
        """Create a new signal. An id is generated if not supplied."""
        fields.setdefault("id", str(uuid4()))
        record = SignalRecord(**fields)
        self.session.add(record)
        await self.session.commit()
        await self.session.refresh(record)
        return record

    async def get(self, signal_id: str) -> SignalRecord | None:
        """Get signal by ID."""
        result = await self.session.execute(
            select(SignalRecord)
            .where(SignalRecord.id == signal_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_active(
        self, notification_policy_type: NotificationPolicyType | None = None
    ) -> list[SignalRecord]:
        """List ACTIVE signals, optionally restricted to one notification policy."""
        query = select(SignalRecord).where(SignalRecord.status == SignalStatus.ACTIVE.value)
        if notification_policy_type is not None:
            query = query.where(
                SignalRecord.notification_policy_type == notification_policy_type.value
            )
        result = await self.session.execute(query.order_by(SignalRecord.created_at))
        return list(result.scalars().all())

    async def update(self, record: SignalRecord, **fields: Any) -> SignalRecord:
        """Apply field changes to a signal and commit."""
        for name, value in fields.items():
            setattr(record, name, value)
        await self.session.commit()
        await self.session.refresh(record)
        return record

    async def record_evaluation(self, signal_id: str, *, evaluated_at: datetime) -> None:
        """Store the time of a failed evaluation. The watermark is left alone."""
        await self.session.execute(
            update(SignalRecord)
            .where(SignalRecord.id == signal_id)
            .values(last_evaluated_at=evaluated_at)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

    async def advance_watermark(
        self,
        signal_id: str,
        *,
        expected: datetime | None,
        watermark: datetime,
        evaluated_at: datetime,
        last_fired_at: datetime | None = None,
    ) -> bool:
        """Move the watermark forward if it still equals expected.

        Does not commit, so callers can bundle the advance with other writes.

        Returns:
            False if another evaluation advanced the watermark first
        """
        values = {"watermark": watermark, "last_evaluated_at": evaluated_at}
        if last_fired_at is not None:
            values["last_fired_at"] = last_fired_at

        result = await self.session.execute(
            update(SignalRecord)
            .where(SignalRecord.id == signal_id)
            .where(watermark_is(expected))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


def watermark_is(expected: datetime | None):
    if expected is None:
        return SignalRecord.watermark.is_(None)
    return SignalRecord.watermark == expected
