"""
Health monitoring and automated recovery for an offline-first sync engine.

This package provides:
- Error classification, pattern detection and trend analysis
- Sync queue and operation latency monitoring
- Aggregated component health checks and alerting
- A weighted health score over recent syncs
- Scenario-based recovery sessions with backoff
"""

# Errors
from .exceptions import (
    ErrorSeverity, ErrorCategory, MonitoringException, RecoveryError,
    UnknownScenarioError, RecoveryLimitError, RecoveryInProgressError,
    SessionNotFoundError, UnknownRecoveryActionError
)

# Events and alerts
from .events import Event, EventBus
from .alerts import Alert, AlertBook, AlertSeverity

# External interfaces
from .interfaces import (
    SyncEngine, LocalStore, RemoteStore, Capability,
    SyncEngineStatus, SyncResult, QueueItem, QueueItemStatus, QueueSummary
)

# Monitors
from .error_logger import ErrorLogger, ErrorContext, ErrorEntry, ErrorPattern, ErrorTrend
from .latency_monitor import LatencyMonitor, LatencyMeasurement, LatencyStats
from .queue_monitor import QueueMonitor, QueueStats
from .sync_monitor import SyncMonitor, HealthStatus, HealthCheck, HealthReport
from .health_score import HealthScore, HealthFactor, calculate_health_score

# Recovery
from .actions import ActionType, RecoveryAction, RecoveryActionResult
from .recovery_models import (
    RecoveryScenario, RecoveryStrategy, DetectionCriteria, BackoffType,
    RecoveryContext, RecoverySession, SessionStatus, TriggerSource, SystemSnapshot
)
from .recovery_scenarios import build_default_scenarios
from .recovery_manager import RecoveryManager

__all__ = [
    # Errors
    "ErrorSeverity", "ErrorCategory", "MonitoringException", "RecoveryError",
    "UnknownScenarioError", "RecoveryLimitError", "RecoveryInProgressError",
    "SessionNotFoundError", "UnknownRecoveryActionError",

    # Events and alerts
    "Event", "EventBus", "Alert", "AlertBook", "AlertSeverity",

    # External interfaces
    "SyncEngine", "LocalStore", "RemoteStore", "Capability",
    "SyncEngineStatus", "SyncResult", "QueueItem", "QueueItemStatus", "QueueSummary",

    # Monitors
    "ErrorLogger", "ErrorContext", "ErrorEntry", "ErrorPattern", "ErrorTrend",
    "LatencyMonitor", "LatencyMeasurement", "LatencyStats",
    "QueueMonitor", "QueueStats",
    "SyncMonitor", "HealthStatus", "HealthCheck", "HealthReport",
    "HealthScore", "HealthFactor", "calculate_health_score",

    # Recovery
    "ActionType", "RecoveryAction", "RecoveryActionResult",
    "RecoveryScenario", "RecoveryStrategy", "DetectionCriteria", "BackoffType",
    "RecoveryContext", "RecoverySession", "SessionStatus", "TriggerSource", "SystemSnapshot",
    "build_default_scenarios", "RecoveryManager",
]
