"""
Development environment configuration.
"""

from pydantic_settings import SettingsConfigDict

from .base import BaseConfig


class DevelopmentConfig(BaseConfig):
    """Development configuration."""

    model_config = SettingsConfigDict(env_file=".env.development")

    environment: str = "development"
    debug: bool = True
    log_level: str = "DEBUG"
    log_format: str = "text"

    # Faster feedback while iterating
    health_check_interval_seconds: float = 15.0
    queue_check_interval_seconds: float = 30.0
    alert_cooldown_seconds: float = 60.0

    # Point-of-sale terminals in dev rarely have a real remote
    enable_auto_recovery: bool = False
