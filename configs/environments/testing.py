"""
Testing environment configuration.
"""

from pydantic_settings import SettingsConfigDict

from .base import BaseConfig


class TestingConfig(BaseConfig):
    """Testing configuration."""

    model_config = SettingsConfigDict(env_file=".env.testing")

    environment: str = "testing"
    debug: bool = True
    log_level: str = "DEBUG"
    log_format: str = "text"
    log_to_file: bool = False

    # Fast loops and no real waits in tests
    health_check_interval_seconds: float = 0.05
    queue_check_interval_seconds: float = 0.05
    latency_check_interval_seconds: float = 0.05
    detection_interval_seconds: float = 0.05
    error_cleanup_interval_seconds: float = 0.05
    probe_timeout_seconds: float = 1.0
    restart_delay_seconds: float = 0.0

    # Disable background recovery unless a test opts in
    enable_auto_recovery: bool = False

    # Short retention for tests
    error_retention_days: int = 1
