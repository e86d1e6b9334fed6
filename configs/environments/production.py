"""
Production environment configuration.
"""

from typing import List

from pydantic_settings import SettingsConfigDict

from .base import BaseConfig


class ProductionConfig(BaseConfig):
    """Production configuration."""

    model_config = SettingsConfigDict(env_file=".env.production")

    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    log_format: str = "json"

    # Production logging
    log_dir: str = "/var/log/sync-health"
    log_to_file: bool = True

    # Let lightweight probes try to self-heal
    enable_auto_recovery: bool = True

    # Stricter session limits
    max_concurrent_sessions: int = 2
    global_session_timeout_seconds: float = 240.0

    def validate_production_requirements(self) -> List[str]:
        """Additional validation for production."""
        issues = self.validate_thresholds()

        if self.debug:
            issues.append("DEBUG must be disabled in production")

        if self.alert_cooldown_seconds < 60:
            issues.append("ALERT_COOLDOWN_SECONDS below 60 will flood operators")

        if not self.connectivity_check_url.startswith("https://"):
            issues.append("CONNECTIVITY_CHECK_URL should use https")

        return issues
