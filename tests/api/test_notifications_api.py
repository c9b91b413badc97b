"""Tests for notifications API endpoints."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from signal_engine.db.repositories.contact_point_repo import ContactPointRepository
from signal_engine.db.repositories.notification_repo import NotificationRepository
from signal_engine.db.repositories.signal_repo import SignalRepository
from signal_engine.signals.models import SelectionResult

T0 = datetime(2024, 3, 18, 9, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def seeded(session_factory, make_item):
    """A signal with three notifications, each for one webhook contact point."""
    async with session_factory() as session:
        signal = await SignalRepository(session).create(
            name="NYT politics",
            status="ACTIVE",
            signal_type="ARTICLES",
            notification_policy_type="IMMEDIATE",
            selection_policy_type="LATEST",
            query={"filter": {"source": "nyt.com"}},
        )
        contact_point = await ContactPointRepository(session).create(
            "ops", "webhook", "https://hooks.example.com/ops"
        )
        repo = NotificationRepository(session)
        ids = []
        previous = None
        for minutes in range(3):
            now = T0 + timedelta(minutes=minutes)
            notification = await repo.create_for_trigger(
                signal,
                SelectionResult(items=(make_item(f"a{minutes}"),)),
                [contact_point],
                now=now,
                lease_owner="worker-1",
                lease_started_at=now,
                expected_watermark=previous,
                watermark=now,
            )
            ids.append(notification.id)
            previous = now
    return signal.id, ids


class TestNotificationsApi:
    @pytest.mark.asyncio
    async def test_list_newest_first(self, client, seeded):
        signal_id, ids = seeded

        response = await client.get("/api/notifications", params={"limit": 2})

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["offset"] == 0
        assert data["limit"] == 2
        assert [n["id"] for n in data["notifications"]] == [ids[2], ids[1]]

        page = (await client.get("/api/notifications", params={"offset": 2, "limit": 2})).json()
        assert [n["id"] for n in page["notifications"]] == [ids[0]]

    @pytest.mark.asyncio
    async def test_filter_by_signal(self, client, seeded):
        signal_id, _ = seeded

        data = (await client.get("/api/notifications", params={"signal_id": signal_id})).json()
        assert data["total"] == 3

        data = (await client.get("/api/notifications", params={"signal_id": "other"})).json()
        assert data["total"] == 0
        assert data["notifications"] == []

    @pytest.mark.asyncio
    async def test_get_with_deliveries(self, client, seeded):
        _, ids = seeded

        response = await client.get(f"/api/notifications/{ids[0]}")

        assert response.status_code == 200
        data = response.json()
        assert data["article_ids"] == ["a0"]
        assert data["signal_name"] == "NYT politics"
        assert len(data["contact_points"]) == 1
        assert data["contact_points"][0]["status"] == "PENDING"
        assert data["contact_points"][0]["attempts"] == 0

    @pytest.mark.asyncio
    async def test_get_missing(self, client):
        response = await client.get("/api/notifications/missing")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_limit_bounds(self, client):
        assert (await client.get("/api/notifications", params={"limit": 0})).status_code == 422
        assert (await client.get("/api/notifications", params={"limit": 101})).status_code == 422


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
