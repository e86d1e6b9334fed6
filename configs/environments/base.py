"""
Base configuration settings.
"""

from typing import Any, Dict, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration for all environments."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Sync Health Monitor"
    app_version: str = "1.0.0"
    environment: str = "development"
    debug: bool = False

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_dir: str = "logs"
    log_to_file: bool = False

    # Queue monitoring
    queue_depth_threshold: int = 50
    processing_rate_threshold: float = 10.0  # items per minute
    old_item_warning_minutes: float = 15.0
    old_item_critical_minutes: float = 30.0
    queue_check_interval_seconds: float = 60.0
    queue_history_size: int = 288  # 24h of 5 minute samples

    # Latency monitoring
    latency_alert_threshold_ms: float = 60_000.0
    latency_critical_threshold_ms: float = 120_000.0
    latency_sample_size: int = 100
    latency_check_interval_seconds: float = 60.0

    # Health sweep
    error_rate_threshold: float = 20.0  # percent
    health_check_interval_seconds: float = 30.0
    probe_timeout_seconds: float = 10.0
    disk_path: str = "/"
    disk_warning_free_mb: float = 1024.0
    disk_critical_free_mb: float = 512.0
    alert_cooldown_seconds: float = 300.0

    # Error logging
    max_in_memory_errors: int = 1000
    error_retention_days: int = 30
    enable_pattern_detection: bool = True
    enable_auto_recovery: bool = False
    error_cleanup_interval_seconds: float = 3600.0

    # Recovery
    enable_auto_recovery_sessions: bool = True
    max_concurrent_sessions: int = 3
    global_session_timeout_seconds: float = 300.0
    max_recovery_history: int = 1000
    detection_interval_seconds: float = 30.0
    session_success_threshold: float = 0.7
    stuck_item_retry_threshold: int = 3
    stalled_queue_depth: int = 50
    stale_sync_hours: float = 2.0
    restart_delay_seconds: float = 5.0
    connectivity_check_url: str = "https://www.google.com"
    connectivity_timeout_seconds: float = 10.0

    # Per-scenario strategy overrides, e.g.
    # {"network_disconnection": {"max_attempts": 3, "timeout_seconds": 90}}
    scenario_overrides: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    def get_log_dir(self) -> str:
        """Get log directory with fallback."""
        return self.log_dir or "logs"

    def validate_thresholds(self) -> List[str]:
        """Validate threshold relationships."""
        issues = []

        if self.latency_critical_threshold_ms < self.latency_alert_threshold_ms:
            issues.append("LATENCY_CRITICAL_THRESHOLD_MS must be >= LATENCY_ALERT_THRESHOLD_MS")

        if self.old_item_critical_minutes < self.old_item_warning_minutes:
            issues.append("OLD_ITEM_CRITICAL_MINUTES must be >= OLD_ITEM_WARNING_MINUTES")

        if self.disk_critical_free_mb > self.disk_warning_free_mb:
            issues.append("DISK_CRITICAL_FREE_MB must be <= DISK_WARNING_FREE_MB")

        if not 0.0 < self.session_success_threshold <= 1.0:
            issues.append("SESSION_SUCCESS_THRESHOLD must be in (0, 1]")

        if self.max_concurrent_sessions < 1:
            issues.append("MAX_CONCURRENT_SESSIONS must be at least 1")

        return issues
