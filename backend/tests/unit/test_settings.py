"""
Unit tests for Pydantic Settings configuration.

Tests settings loading and validation.
"""

import pytest
from unittest.mock import patch
import os

from pydantic import ValidationError

from app.config.settings import Settings
from app.infrastructure.services.annual_quota_service import RetryPolicy


class TestSettings:
    """Tests for Settings configuration."""

    def test_settings_has_defaults(self):
        """Settings should have sensible defaults."""
        settings = Settings(_env_file=None)

        assert settings.environment in ("development", "production", "testing")
        assert settings.quota_max_retries == 3
        assert settings.quota_retry_base_delay_ms == 50
        assert settings.free_plan_name == "free"

    def test_settings_loads_from_env(self):
        """Settings should load from environment variables."""
        env = {
            "QUOTA_MAX_RETRIES": "5",
            "QUOTA_RETRY_BASE_DELAY_MS": "20",
            "FREE_PLAN_NAME": "starter",
        }
        with patch.dict(os.environ, env):
            settings = Settings(_env_file=None)

        assert settings.quota_max_retries == 5
        assert settings.quota_retry_base_delay_ms == 20
        assert settings.free_plan_name == "starter"

    def test_rejects_zero_retries(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, quota_max_retries=0)

    def test_rejects_negative_delay(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, quota_retry_base_delay_ms=-1)

    def test_is_production_property(self):
        """is_production should follow ENVIRONMENT."""
        assert Settings(_env_file=None, environment="production").is_production is True
        assert Settings(_env_file=None, environment="development").is_production is False

    @pytest.mark.parametrize("url,expected", [
        ("postgresql://u:p@db:5432/quota", "postgresql+asyncpg://u:p@db:5432/quota"),
        ("postgres://u:p@db:5432/quota", "postgresql+asyncpg://u:p@db:5432/quota"),
        ("postgresql+asyncpg://u:p@db/quota", "postgresql+asyncpg://u:p@db/quota"),
        (None, None),
    ])
    def test_async_database_url(self, url, expected):
        assert Settings(_env_file=None, database_url=url).async_database_url == expected

    def test_retry_policy_from_settings(self):
        settings = Settings(_env_file=None, quota_max_retries=4, quota_retry_base_delay_ms=50)

        policy = RetryPolicy.from_settings(settings)

        assert policy.max_retries == 4
        assert policy.base_delay == pytest.approx(0.05)
