"""Repository for SignalNotification and ContactPointNotification operations.

The dispatch lease lives on the notification row: current_processed_at is the
lease start and lease_owner the token of the claim holding it. Claims and
settlement are single conditional UPDATE statements so two claims can never
both win.

Usage:
    from signal_engine.db.repositories.notification_repo import NotificationRepository

    repo = NotificationRepository(session)
    if await repo.claim_lease(notification_id, token, now, lease_ttl):
        ...
"""

from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import selectinload

from signal_engine.db.repositories.base import BaseRepository
from signal_engine.db.repositories.signal_repo import SignalRepository
from signal_engine.models.contact_point import ContactPoint
from signal_engine.models.notification import ContactPointNotification, SignalNotification
from signal_engine.models.signal import SignalRecord
from signal_engine.signals.errors import StaleEvaluationError
from signal_engine.signals.models import DeliveryStatus, SelectionResult


class NotificationRepository(BaseRepository):
    """Repository for notification database operations."""

    async def create_for_trigger(
        self,
        signal: SignalRecord,
        selection: SelectionResult,
        contact_points: Sequence[ContactPoint],
        *,
        now: datetime,
        lease_owner: str,
        lease_started_at: datetime,
        expected_watermark: datetime | None,
        watermark: datetime,
        last_fired_at: datetime | None = None,
    ) -> SignalNotification:
        """Create a notification for a triggered signal.

        In one transaction: advances the signal's watermark (and last_fired_at
        for scheduled signals) provided it still equals expected_watermark,
        inserts the notification with its lease taken, and inserts one PENDING
        row per contact point.

        Args:
            signal: The triggered signal row
            selection: Selected content for the notification
            contact_points: Destinations to deliver to
            now: Tick time; becomes issued_at
            lease_owner: Lease token of the dispatch that will follow
            lease_started_at: Wall-clock start of the lease
            expected_watermark: Watermark the evaluation window was computed from
            watermark: New evaluation watermark for the signal
            last_fired_at: Scheduled minute that fired, if any

        Returns:
            The created notification with its contact point rows

        Raises:
            StaleEvaluationError: If the watermark moved since the evaluation
                read it; nothing is written
        """
        advanced = await SignalRepository(self.session).advance_watermark(
            signal.id,
            expected=expected_watermark,
            watermark=watermark,
            evaluated_at=now,
            last_fired_at=last_fired_at,
        )
        if not advanced:
            await self.session.rollback()
            raise StaleEvaluationError(signal.id)

        notification = SignalNotification(
            id=str(uuid4()),
            signal_id=signal.id,
            signal_name=signal.name,
            signal_status=signal.status,
            issued_at=now,
            article_ids=selection.article_ids,
            digest=selection.digest,
            summary_unavailable=selection.summary_unavailable,
            current_processed_at=lease_started_at,
            lease_owner=lease_owner,
        )
        self.session.add(notification)

        for contact_point in contact_points:
            self.session.add(
                ContactPointNotification(
                    id=str(uuid4()),
                    notification_id=notification.id,
                    contact_point_id=contact_point.id,
                    channel=contact_point.channel,
                    destination=contact_point.destination,
                )
            )

        await self.session.commit()
        return await self.get(notification.id)

    async def get(self, notification_id: str) -> SignalNotification | None:
        """Get a notification with its contact point rows."""
        result = await self.session.execute(
            select(SignalNotification)
            .where(SignalNotification.id == notification_id)
            .options(selectinload(SignalNotification.contact_points))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_delivery(self, delivery_id: str) -> ContactPointNotification | None:
        result = await self.session.execute(
            select(ContactPointNotification)
            .where(ContactPointNotification.id == delivery_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_page(
        self, *, signal_id: str | None = None, offset: int = 0, limit: int = 50
    ) -> tuple[list[SignalNotification], int]:
        """List notifications newest first.

        Returns:
            Tuple of (page of notifications, total matching count)
        """
        count_query = select(func.count()).select_from(SignalNotification)
        page_query = select(SignalNotification).options(
            selectinload(SignalNotification.contact_points)
        )
        if signal_id is not None:
            count_query = count_query.where(SignalNotification.signal_id == signal_id)
            page_query = page_query.where(SignalNotification.signal_id == signal_id)

        total = (await self.session.execute(count_query)).scalar() or 0
        result = await self.session.execute(
            page_query.order_by(SignalNotification.issued_at.desc(), SignalNotification.id)
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def find_resumable(
        self, now: datetime, lease_ttl: timedelta, limit: int = 50
    ) -> list[str]:
        """IDs of unfinished notifications whose lease has expired."""
        result = await self.session.execute(
            select(SignalNotification.id)
            .where(SignalNotification.last_processed_at.is_(None))
            .where(SignalNotification.current_processed_at.is_not(None))
            .where(SignalNotification.current_processed_at < now - lease_ttl)
            .order_by(SignalNotification.current_processed_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def claim_lease(
        self, notification_id: str, owner: str, now: datetime, lease_ttl: timedelta
    ) -> bool:
        """Atomically take the dispatch lease.

        Succeeds only if the notification is unsettled and either has no
        lease or its lease started more than lease_ttl ago.

        Returns:
            True if this caller now holds the lease
        """
        result = await self.session.execute(
            update(SignalNotification)
            .where(SignalNotification.id == notification_id)
            .where(SignalNotification.last_processed_at.is_(None))
            .where(
                or_(
                    SignalNotification.current_processed_at.is_(None),
                    SignalNotification.current_processed_at < now - lease_ttl,
                )
            )
            .values(current_processed_at=now, lease_owner=owner)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return result.rowcount == 1

    async def holds_lease(
        self, notification_id: str, owner: str, now: datetime, lease_ttl: timedelta
    ) -> bool:
        """Whether owner still holds an unexpired lease on an unsettled notification."""
        result = await self.session.execute(
            select(func.count())
            .select_from(SignalNotification)
            .where(SignalNotification.id == notification_id)
            .where(SignalNotification.lease_owner == owner)
            .where(SignalNotification.last_processed_at.is_(None))
            .where(SignalNotification.current_processed_at >= now - lease_ttl)
        )
        return (result.scalar() or 0) == 1

    async def settle(self, notification_id: str, owner: str, now: datetime) -> bool:
        """Mark dispatch complete and release the lease.

        Returns:
            False if the lease is no longer held by owner
        """
        result = await self.session.execute(
            update(SignalNotification)
            .where(SignalNotification.id == notification_id)
            .where(SignalNotification.lease_owner == owner)
            .values(last_processed_at=now, current_processed_at=None, lease_owner=None)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return result.rowcount == 1

    async def update_delivery(self, delivery_id: str, **fields: Any) -> None:
        """Update one contact point delivery row."""
        await self.session.execute(
            update(ContactPointNotification)
            .where(ContactPointNotification.id == delivery_id)
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

    async def mark_delivered(
        self, delivery_id: str, *, attempts: int, response_code: int | None, now: datetime
    ) -> None:
        await self.update_delivery(
            delivery_id,
            status=DeliveryStatus.DELIVERED.value,
            retryable=False,
            attempts=attempts,
            response_code=response_code,
            error_message=None,
            delivered_at=now,
            updated_at=now,
        )

    async def mark_failed(
        self,
        delivery_id: str,
        *,
        attempts: int,
        retryable: bool,
        error_message: str,
        now: datetime,
        response_code: int | None = None,
    ) -> None:
        await self.update_delivery(
            delivery_id,
            status=DeliveryStatus.FAILED.value,
            retryable=retryable,
            attempts=attempts,
            response_code=response_code,
            error_message=error_message,
            updated_at=now,
        )
