"""
Unit tests for settings.
"""

import pytest

from configs.environments.base import BaseConfig
from configs.environments.development import DevelopmentConfig
from configs.environments.production import ProductionConfig
from configs.environments.testing import TestingConfig
from configs.settings import get_config_class, validate_settings


class TestConfigSelection:
    """Test environment selection."""

    @pytest.mark.parametrize("environment,config_class", [
        ("development", DevelopmentConfig),
        ("production", ProductionConfig),
        ("testing", TestingConfig),
        ("test", TestingConfig),
        ("staging", DevelopmentConfig),
    ])
    def test_get_config_class(self, monkeypatch, environment, config_class):
        monkeypatch.setenv("ENVIRONMENT", environment)
        assert get_config_class() is config_class

    def test_testing_settings(self, test_settings):
        assert test_settings.environment == "testing"
        assert test_settings.restart_delay_seconds == 0.0
        assert validate_settings(test_settings) is True


class TestValidation:
    """Test threshold validation."""

    def test_inverted_thresholds(self):
        config = BaseConfig(latency_alert_threshold_ms=5000, latency_critical_threshold_ms=1000,
                            session_success_threshold=1.5)

        issues = config.validate_thresholds()

        assert len(issues) == 2
        assert validate_settings(config) is False

    def test_production_requirements(self):
        config = ProductionConfig(debug=True, alert_cooldown_seconds=10,
                                  connectivity_check_url="http://example.com")

        issues = config.validate_production_requirements()

        assert len(issues) == 3
        assert validate_settings(config) is False

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("QUEUE_DEPTH_THRESHOLD", "75")
        monkeypatch.setenv("SCENARIO_OVERRIDES", '{"network_disconnection": {"max_attempts": 2}}')

        config = BaseConfig()

        assert config.queue_depth_threshold == 75
        assert config.scenario_overrides == {"network_disconnection": {"max_attempts": 2}}
