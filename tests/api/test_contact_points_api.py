"""Tests for contact points API endpoints."""

import pytest


class TestContactPointsApi:
    @pytest.mark.asyncio
    async def test_create_and_list(self, client):
        response = await client.post(
            "/api/contact-points",
            json={"name": "ops", "channel": "webhook", "destination": "env:OPS_WEBHOOK"},
        )

        assert response.status_code == 201
        created = response.json()
        assert created["enabled"] is True
        assert created["destination"] == "env:OPS_WEBHOOK"

        listed = (await client.get("/api/contact-points")).json()
        assert [cp["id"] for cp in listed] == [created["id"]]

    @pytest.mark.asyncio
    async def test_unsupported_channel(self, client):
        response = await client.post(
            "/api/contact-points",
            json={"name": "pager", "channel": "sms", "destination": "+15550100"},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_signal_references_contact_point(self, client):
        contact_point = (
            await client.post(
                "/api/contact-points",
                json={"name": "desk", "channel": "email", "destination": "desk@example.com"},
            )
        ).json()

        response = await client.post(
            "/api/signals",
            json={
                "name": "desk alerts",
                "signal_type": "ARTICLES",
                "notification_policy_type": "IMMEDIATE",
                "query": {"filter": {"source": "nyt.com"}},
                "contact_point_ids": [contact_point["id"]],
            },
        )

        assert response.status_code == 201
        assert response.json()["contact_point_ids"] == [contact_point["id"]]
