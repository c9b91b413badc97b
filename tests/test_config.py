"""Tests for application settings."""

import pytest
from pydantic import ValidationError
from signal_engine.config import Settings


class TestSettings:
    def test_defaults(self):
        config = Settings()

        assert config.poll_interval_seconds == 60
        assert config.max_retries == 5
        assert config.lease_ttl_seconds > config.dispatch_timeout_seconds

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("SIGNAL_ENGINE_MAX_CONCURRENCY", "3")

        assert Settings().max_concurrency == 3

    def test_lease_must_outlive_dispatch_timeout(self):
        with pytest.raises(ValidationError, match="lease_ttl_seconds"):
            Settings(dispatch_timeout_seconds=300, lease_ttl_seconds=300)
