"""Tests for notification channels."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from aiosmtplib import SMTPException
from signal_engine.notifications.channels import (
    DeliveryResult,
    EmailChannel,
    NotificationChannel,
    WebhookChannel,
)
from signal_engine.notifications.payload import NotificationPayload

# Test fixtures for SMTP authentication (not real credentials)
TEST_SMTP_USER = "user"
TEST_SMTP_CRED = "test-cred-1234"


def _payload(**overrides) -> NotificationPayload:
    fields = {
        "notification_id": "n-1",
        "signal_id": "s-1",
        "signal_name": "Chip makers",
        "issued_at": datetime(2024, 3, 18, 9, 0, tzinfo=timezone.utc),
        "article_ids": ["a1", "a2"],
        "digest": "Chip stocks rallied on earnings.",
    }
    fields.update(overrides)
    return NotificationPayload(**fields)


def _mock_client(mock_client_class, *, response=None, side_effect=None):
    mock_client = AsyncMock()
    if side_effect is not None:
        mock_client.post.side_effect = side_effect
    else:
        mock_client.post.return_value = response
    mock_client.__aenter__.return_value = mock_client
    mock_client.__aexit__.return_value = None
    mock_client_class.return_value = mock_client
    return mock_client


class TestNotificationChannel:
    def test_notification_channel_is_abstract(self):
        with pytest.raises(TypeError):
            NotificationChannel()

    def test_delivery_result_defaults(self):
        result = DeliveryResult(success=True)

        assert result.response_code is None
        assert result.error_message is None


class TestPayload:
    def test_summary_pluralizes(self):
        assert _payload().summary == "Signal 'Chip makers' triggered (2 articles)"
        assert _payload(article_ids=["a1"]).summary == "Signal 'Chip makers' triggered (1 article)"

    def test_to_json_serializes_issued_at(self):
        data = _payload().to_json()

        assert data["issued_at"] == "2024-03-18T09:00:00+00:00"
        assert data["article_ids"] == ["a1", "a2"]
        assert data["summary_unavailable"] is False


class TestEmailChannel:
    @pytest.mark.asyncio
    async def test_send_success(self):
        channel = EmailChannel(
            smtp_host="smtp.example.com",
            smtp_port=587,
            sender="signals@example.com",
            username=TEST_SMTP_USER,
            password=TEST_SMTP_CRED,
        )

        with patch("signal_engine.notifications.channels.aiosmtplib.send") as mock_send:
            mock_send.return_value = ({}, "OK")

            result = await channel.send(_payload(), "analyst@example.com")

            assert result.success is True
            assert result.response_code == 250

            mock_send.assert_called_once()
            message = mock_send.call_args.args[0]
            call_kwargs = mock_send.call_args.kwargs
            assert call_kwargs["hostname"] == "smtp.example.com"
            assert call_kwargs["port"] == 587
            assert call_kwargs["username"] == TEST_SMTP_USER
            assert call_kwargs["password"] == TEST_SMTP_CRED
            assert call_kwargs["start_tls"] is True

            assert message["To"] == "analyst@example.com"
            assert message["Subject"] == "Signal 'Chip makers' triggered (2 articles)"
            body = message.get_content()
            assert "Chip stocks rallied on earnings." in body
            assert "a2" in body

    @pytest.mark.asyncio
    async def test_send_smtp_error(self):
        channel = EmailChannel(smtp_host="smtp.example.com", smtp_port=587, sender="s@example.com")

        with patch("signal_engine.notifications.channels.aiosmtplib.send") as mock_send:
            mock_send.side_effect = SMTPException("Connection refused")

            result = await channel.send(_payload(), "analyst@example.com")

            assert result.success is False
            assert "Connection refused" in result.error_message


class TestWebhookChannel:
    @pytest.mark.asyncio
    async def test_send_success_posts_payload(self):
        channel = WebhookChannel(timeout_seconds=15.0)
        mock_response = AsyncMock()
        mock_response.status_code = 200
        mock_response.raise_for_status = MagicMock()

        with patch("signal_engine.notifications.channels.httpx.AsyncClient") as mock_client_class:
            mock_client = _mock_client(mock_client_class, response=mock_response)

            result = await channel.send(_payload(), "https://hooks.example.com/ops")

            assert result.success is True
            assert result.response_code == 200
            mock_client_class.assert_called_once_with(timeout=15.0)

            call_args = mock_client.post.call_args
            assert call_args.args[0] == "https://hooks.example.com/ops"
            body = call_args.kwargs["json"]
            assert body["text"] == "Signal 'Chip makers' triggered (2 articles)"
            assert body["notification_id"] == "n-1"
            assert body["article_ids"] == ["a1", "a2"]

    @pytest.mark.asyncio
    async def test_send_timeout_error(self):
        channel = WebhookChannel(timeout_seconds=1.0)

        with patch("signal_engine.notifications.channels.httpx.AsyncClient") as mock_client_class:
            _mock_client(mock_client_class, side_effect=httpx.TimeoutException("Request timed out"))

            result = await channel.send(_payload(), "https://hooks.example.com/ops")

            assert result.success is False
            assert "timed out" in result.error_message.lower()

    @pytest.mark.asyncio
    async def test_send_http_error(self):
        channel = WebhookChannel()
        mock_response = AsyncMock()
        mock_response.status_code = 500

        with patch("signal_engine.notifications.channels.httpx.AsyncClient") as mock_client_class:
            _mock_client(
                mock_client_class,
                side_effect=httpx.HTTPStatusError(
                    "Server error", request=MagicMock(), response=mock_response
                ),
            )

            result = await channel.send(_payload(), "https://hooks.example.com/ops")

            assert result.success is False
            assert result.response_code == 500

    @pytest.mark.asyncio
    async def test_send_connection_error(self):
        channel = WebhookChannel()

        with patch("signal_engine.notifications.channels.httpx.AsyncClient") as mock_client_class:
            _mock_client(
                mock_client_class,
                side_effect=httpx.ConnectError("Name or service not known"),
            )

            result = await channel.send(_payload(), "https://hooks.example.com/ops")

            assert result.success is False
            assert result.response_code is None
