"""Tests for signals API endpoints."""

import pytest

SCHEDULE = {"timezone": "UTC", "intervals": [{"hour": 9, "minute": 0, "days": ["MONDAY"]}]}


def _payload(**overrides):
    payload = {
        "name": "NYT sports",
        "signal_type": "ARTICLES",
        "query": {"filter": {"AND": [{"source": "nyt.com"}, {"category": "sports"}]}},
        "schedule": SCHEDULE,
    }
    payload.update(overrides)
    return payload


async def _create(client, **overrides) -> dict:
    response = await client.post("/api/signals", json=_payload(**overrides))
    assert response.status_code == 201, response.text
    return response.json()


class TestCreateSignal:
    @pytest.mark.asyncio
    async def test_create_starts_in_draft(self, client):
        data = await _create(client)

        assert data["status"] == "DRAFT"
        assert data["signal_type"] == "ARTICLES"
        assert data["notification_policy_type"] == "SCHEDULED"
        assert data["selection_policy_type"] == "LATEST"
        assert data["schedule"] == SCHEDULE
        assert data["contact_point_ids"] == []
        assert data["watermark"] is None

    @pytest.mark.asyncio
    async def test_unknown_filter_field_rejected(self, client):
        response = await client.post(
            "/api/signals", json=_payload(query={"filter": {"colour": "red"}})
        )

        assert response.status_code == 422
        assert "colour" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_articles_signal_requires_filter(self, client):
        response = await client.post("/api/signals", json=_payload(query={}))

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_scheduled_signal_requires_intervals(self, client):
        response = await client.post("/api/signals", json=_payload(schedule=None))

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_immediate_signal_without_schedule(self, client):
        data = await _create(client, notification_policy_type="IMMEDIATE", schedule=None)

        assert data["schedule"] == {}

    @pytest.mark.asyncio
    async def test_unknown_contact_point_rejected(self, client):
        response = await client.post(
            "/api/signals", json=_payload(contact_point_ids=["does-not-exist"])
        )

        assert response.status_code == 422
        assert "does-not-exist" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_volume_signal(self, client):
        volume = {
            "left": {"type": "VOLUME", "period": "HOUR"},
            "right": {"type": "MA_VAL", "period": "HOUR", "multiplier": 2},
            "operator": "GT",
        }
        data = await _create(client, signal_type="ARTICLES_VOLUME", query={"volume": volume})

        assert data["query"]["volume"]["operator"] == "GT"

    @pytest.mark.asyncio
    async def test_volume_signal_requires_volume(self, client):
        response = await client.post(
            "/api/signals",
            json=_payload(signal_type="ARTICLES_VOLUME", query={"filter": {"source": "nyt.com"}}),
        )

        assert response.status_code == 422


class TestGetSignal:
    @pytest.mark.asyncio
    async def test_get_existing(self, client):
        created = await _create(client)

        response = await client.get(f"/api/signals/{created['id']}")

        assert response.status_code == 200
        assert response.json()["name"] == "NYT sports"

    @pytest.mark.asyncio
    async def test_get_missing(self, client):
        response = await client.get("/api/signals/missing")

        assert response.status_code == 404


class TestUpdateSignal:
    @pytest.mark.asyncio
    async def test_update_name_and_query(self, client):
        created = await _create(client)

        response = await client.patch(
            f"/api/signals/{created['id']}",
            json={"name": "NYT politics", "query": {"filter": {"category": "politics"}}},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "NYT politics"
        assert data["query"] == {"filter": {"category": "politics"}}
        assert data["schedule"] == SCHEDULE

    @pytest.mark.asyncio
    async def test_signal_type_change_conflicts(self, client):
        created = await _create(client)

        response = await client.patch(
            f"/api/signals/{created['id']}", json={"signal_type": "ARTICLES_VOLUME"}
        )

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_same_signal_type_accepted(self, client):
        created = await _create(client)

        response = await client.patch(
            f"/api/signals/{created['id']}", json={"signal_type": "ARTICLES"}
        )

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_invalid_merged_definition_rejected(self, client):
        created = await _create(client)

        response = await client.patch(f"/api/signals/{created['id']}", json={"schedule": None})

        assert response.status_code == 422
        assert (await client.get(f"/api/signals/{created['id']}")).json()["schedule"] == SCHEDULE

    @pytest.mark.asyncio
    async def test_clear_schedule_when_switching_to_immediate(self, client):
        created = await _create(client)

        response = await client.patch(
            f"/api/signals/{created['id']}",
            json={"notification_policy_type": "IMMEDIATE", "schedule": None},
        )

        assert response.status_code == 200
        assert response.json()["schedule"] == {}
        assert response.json()["notification_policy_type"] == "IMMEDIATE"

    @pytest.mark.asyncio
    async def test_archived_signal_cannot_be_updated(self, client):
        created = await _create(client)
        signal_id = created["id"]
        for action in ("activate", "pause", "archive"):
            assert (await client.post(f"/api/signals/{signal_id}/{action}")).status_code == 200

        response = await client.patch(f"/api/signals/{signal_id}", json={"name": "renamed"})

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_update_missing(self, client):
        response = await client.patch("/api/signals/missing", json={"name": "x"})

        assert response.status_code == 404


class TestStatusTransitions:
    @pytest.mark.asyncio
    async def test_full_lifecycle(self, client):
        signal_id = (await _create(client))["id"]

        expected = [
            ("activate", "ACTIVE"),
            ("pause", "STOPPED"),
            ("resume", "ACTIVE"),
            ("pause", "STOPPED"),
            ("archive", "ARCHIVED"),
        ]
        for action, status in expected:
            response = await client.post(f"/api/signals/{signal_id}/{action}")
            assert response.status_code == 200, action
            assert response.json()["status"] == status

    @pytest.mark.asyncio
    async def test_invalid_transitions_conflict(self, client):
        signal_id = (await _create(client))["id"]

        for action in ("pause", "resume", "archive"):
            response = await client.post(f"/api/signals/{signal_id}/{action}")
            assert response.status_code == 409, action

        await client.post(f"/api/signals/{signal_id}/activate")
        assert (await client.post(f"/api/signals/{signal_id}/activate")).status_code == 409
        assert (await client.post(f"/api/signals/{signal_id}/archive")).status_code == 409

    @pytest.mark.asyncio
    async def test_archived_is_terminal(self, client):
        signal_id = (await _create(client))["id"]
        for action in ("activate", "pause", "archive"):
            await client.post(f"/api/signals/{signal_id}/{action}")

        for action in ("activate", "pause", "resume", "archive"):
            response = await client.post(f"/api/signals/{signal_id}/{action}")
            assert response.status_code == 409, action

    @pytest.mark.asyncio
    async def test_transition_missing_signal(self, client):
        response = await client.post("/api/signals/missing/activate")

        assert response.status_code == 404
