"""Tests for signal and contact point repositories."""

from datetime import datetime, timedelta, timezone

import pytest
from signal_engine.db.repositories.contact_point_repo import ContactPointRepository
from signal_engine.db.repositories.signal_repo import SignalRepository
from signal_engine.signals.factory import normalize_timestamp
from signal_engine.signals.models import NotificationPolicyType

T0 = datetime(2024, 3, 18, 9, 0, tzinfo=timezone.utc)


async def _signal(db_session, **fields):
    values = {
        "name": "signal",
        "signal_type": "ARTICLES",
        "notification_policy_type": "IMMEDIATE",
        "selection_policy_type": "LATEST",
        "query": {"filter": {"source": "nyt.com"}},
    }
    values.update(fields)
    return await SignalRepository(db_session).create(**values)


class TestSignalRepository:
    @pytest.mark.asyncio
    async def test_create_defaults(self, db_session):
        record = await _signal(db_session)

        assert len(record.id) == 36
        assert record.status == "DRAFT"
        assert record.schedule == {}
        assert record.contact_point_ids == []
        assert record.created_at is not None

    @pytest.mark.asyncio
    async def test_list_active_filters_status_and_policy(self, db_session):
        immediate = await _signal(db_session, status="ACTIVE")
        scheduled = await _signal(
            db_session, status="ACTIVE", notification_policy_type="SCHEDULED"
        )
        await _signal(db_session, status="STOPPED")

        repo = SignalRepository(db_session)

        assert {r.id for r in await repo.list_active()} == {immediate.id, scheduled.id}
        assert [r.id for r in await repo.list_active(NotificationPolicyType.SCHEDULED)] == [
            scheduled.id
        ]

    @pytest.mark.asyncio
    async def test_record_evaluation_leaves_watermark(self, db_session):
        record = await _signal(db_session, status="ACTIVE")
        repo = SignalRepository(db_session)

        await repo.record_evaluation(record.id, evaluated_at=T0)

        stored = await repo.get(record.id)
        assert normalize_timestamp(stored.last_evaluated_at) == T0
        assert stored.watermark is None
        assert stored.last_fired_at is None

    @pytest.mark.asyncio
    async def test_record_evaluation_missing_signal(self, db_session):
        await SignalRepository(db_session).record_evaluation("missing", evaluated_at=T0)


class TestAdvanceWatermark:
    @pytest.mark.asyncio
    async def test_advances_from_empty_watermark(self, db_session):
        record = await _signal(db_session, status="ACTIVE")
        repo = SignalRepository(db_session)

        advanced = await repo.advance_watermark(
            record.id, expected=None, watermark=T0, evaluated_at=T0, last_fired_at=T0
        )
        await db_session.commit()

        assert advanced is True
        stored = await repo.get(record.id)
        assert normalize_timestamp(stored.watermark) == T0
        assert normalize_timestamp(stored.last_evaluated_at) == T0
        assert normalize_timestamp(stored.last_fired_at) == T0

    @pytest.mark.asyncio
    async def test_stale_expected_value_is_rejected(self, db_session):
        record = await _signal(db_session, status="ACTIVE")
        repo = SignalRepository(db_session)
        later = T0 + timedelta(minutes=1)
        await repo.advance_watermark(record.id, expected=None, watermark=T0, evaluated_at=T0)
        await db_session.commit()

        assert not await repo.advance_watermark(
            record.id, expected=None, watermark=later, evaluated_at=later
        )
        assert not await repo.advance_watermark(
            record.id, expected=later, watermark=later, evaluated_at=later
        )
        assert await repo.advance_watermark(
            record.id, expected=T0, watermark=later, evaluated_at=later
        )
        await db_session.commit()

        stored = await repo.get(record.id)
        assert normalize_timestamp(stored.watermark) == later

    @pytest.mark.asyncio
    async def test_last_fired_at_kept_when_not_given(self, db_session):
        record = await _signal(db_session, status="ACTIVE", last_fired_at=T0)
        repo = SignalRepository(db_session)

        await repo.advance_watermark(record.id, expected=None, watermark=T0, evaluated_at=T0)
        await db_session.commit()

        stored = await repo.get(record.id)
        assert normalize_timestamp(stored.last_fired_at) == T0


class TestContactPointRepository:
    @pytest.mark.asyncio
    async def test_get_many_preserves_order_and_skips_missing(self, db_session):
        repo = ContactPointRepository(db_session)
        a = await repo.create("a", "webhook", "https://a.example.com")
        b = await repo.create("b", "email", "b@example.com")

        found = await repo.get_many([b.id, "missing", a.id])

        assert [cp.id for cp in found] == [b.id, a.id]
        assert await repo.get_many([]) == []

    @pytest.mark.asyncio
    async def test_list_all(self, db_session):
        repo = ContactPointRepository(db_session)
        await repo.create("a", "webhook", "https://a.example.com")

        contact_points = await repo.list_all()

        assert len(contact_points) == 1
        assert contact_points[0].enabled is True
