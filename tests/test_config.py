"""
Unit tests for the settings layer.
"""

import pytest
from pydantic import ValidationError

from quantum_dashboard.config import APIConfig, IBMQuantumConfig, SchedulerConfig, Settings


class TestSchedulerConfig:
    """Test scheduler settings and their bounds."""

    def test_defaults_success(self, monkeypatch):
        for name in ("SCHEDULER_PROMOTE_PROBABILITY", "SCHEDULER_SEED", "SCHEDULER_ENABLED"):
            monkeypatch.delenv(name, raising=False)

        config = SchedulerConfig()

        assert config.promote_probability == 0.4
        assert config.resolve_probability == 0.3
        assert config.success_probability == 0.85
        assert config.spawn_probability == 0.2
        assert config.min_interval_s == 20.0
        assert config.max_interval_s == 30.0

    def test_env_override_success(self, monkeypatch):
        monkeypatch.setenv("SCHEDULER_SEED", "7")
        monkeypatch.setenv("SCHEDULER_ENABLED", "false")

        config = SchedulerConfig()

        assert config.seed == 7
        assert config.enabled is False

    def test_probability_out_of_range_failure(self):
        with pytest.raises(ValidationError):
            SchedulerConfig(promote_probability=1.5)
        with pytest.raises(ValidationError):
            SchedulerConfig(spawn_probability=-0.1)

    def test_interval_order_failure(self):
        with pytest.raises(ValidationError, match="must be >= min_interval_s"):
            SchedulerConfig(min_interval_s=30.0, max_interval_s=10.0)


class TestIBMQuantumConfig:
    """Test provider settings."""

    def test_not_configured_failure(self):
        assert IBMQuantumConfig(api_token=None).is_configured is False
        assert IBMQuantumConfig(api_token="").is_configured is False

    def test_configured_success(self):
        config = IBMQuantumConfig(api_token="abc")
        assert config.is_configured is True
        # Secret never shows up in reprs
        assert "abc" not in repr(config)


class TestSettings:
    """Test the aggregate settings container."""

    def test_sections_success(self):
        s = Settings()
        assert isinstance(s.scheduler, SchedulerConfig)
        assert isinstance(s.api, APIConfig)
        assert s.api.max_page_size >= s.api.default_page_size

    def test_environment_flags_success(self, monkeypatch):
        monkeypatch.setenv("APP_ENV", "production")
        s = Settings()
        assert s.is_production is True
        assert s.is_development is False
