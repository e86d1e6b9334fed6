"""
Aggregated sync health monitoring.

SyncMonitor runs a periodic five-probe sweep, owns the canonical alert set
(including alerts mirrored from the queue and latency monitors), reacts to
sync engine events immediately and exposes manual recovery actions for
operators.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

import psutil

from .actions import ActionType, RecoveryAction, RecoveryActionResult, run_action
from .alerts import Alert, AlertBook, AlertSeverity
from .events import Event, EventBus
from .exceptions import UnknownRecoveryActionError
from .health_score import HEALTH_SCORE_WINDOW, HealthScore, calculate_health_score
from .interfaces import Capability, LocalStore, QueueItemStatus, RemoteStore, SyncEngine, SyncResult
from utils.logging import LogCategory, category_extra, get_logger

logger = get_logger(__name__)

HEALTH_ALERT = "health"
ENGINE_COMPONENT = "sync_engine"
QUEUE_COMPONENT = "sync_queue"

DISK_WARNING_PERCENT = 85.0
DISK_CRITICAL_PERCENT = 95.0


class HealthStatus(Enum):
    """Health status levels."""
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


_ALERT_SEVERITY = {
    HealthStatus.WARNING: AlertSeverity.WARNING,
    HealthStatus.CRITICAL: AlertSeverity.CRITICAL,
}


@dataclass
class HealthCheck:
    """Result of probing one component."""
    component: str
    status: HealthStatus
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    response_time_ms: Optional[float] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'component': self.component,
            'status': self.status.value,
            'message': self.message,
            'details': self.details,
            'response_time_ms': self.response_time_ms,
            'timestamp': self.timestamp.isoformat()
        }


@dataclass
class HealthReport:
    """Overall status, latest checks and active alerts."""
    overall: HealthStatus
    checks: List[HealthCheck]
    alerts: List[Alert]
    last_check: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'overall': self.overall.value,
            'checks': [c.to_dict() for c in self.checks],
            'alerts': [a.to_dict() for a in self.alerts],
            'last_check': self.last_check.isoformat() if self.last_check else None
        }


def overall_status(checks: List[HealthCheck]) -> HealthStatus:
    """Worst status wins; no checks yet is unknown."""
    if not checks:
        return HealthStatus.UNKNOWN

    statuses = {c.status for c in checks}
    if HealthStatus.CRITICAL in statuses:
        return HealthStatus.CRITICAL
    if HealthStatus.WARNING in statuses:
        return HealthStatus.WARNING
    return HealthStatus.HEALTHY


class SyncMonitor:
    """Central health monitor for the sync engine."""

    def __init__(
        self,
        engine: SyncEngine,
        local_store: LocalStore,
        remote_store: Capability[RemoteStore],
        queue_depth_threshold: int = 50,
        latency_threshold_ms: float = 60_000.0,
        error_rate_threshold: float = 20.0,
        alert_cooldown_seconds: float = 300.0,
        probe_timeout_seconds: float = 10.0,
        disk_path: str = "/",
        disk_warning_free_mb: float = 1024.0,
        disk_critical_free_mb: float = 512.0,
        disk_usage_reader: Callable[[str], Any] = psutil.disk_usage,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.engine = engine
        self.local_store = local_store
        self.remote_store = remote_store
        self.queue_depth_threshold = queue_depth_threshold
        self.latency_threshold_ms = latency_threshold_ms
        self.error_rate_threshold = error_rate_threshold
        self.probe_timeout_seconds = probe_timeout_seconds
        self.disk_path = disk_path
        self.disk_warning_free_mb = disk_warning_free_mb
        self.disk_critical_free_mb = disk_critical_free_mb
        self.disk_usage_reader = disk_usage_reader
        self.clock = clock

        self.events = EventBus("sync_monitor")
        self.alerts = AlertBook(self.events, alert_cooldown_seconds, clock)

        self.health_checks: Dict[str, HealthCheck] = {}
        self.last_check: Optional[datetime] = None

        self.sync_metrics = {
            'total_syncs': 0,
            'successful_syncs': 0,
            'failed_syncs': 0,
            'sync_errors': 0,
            'last_sync_at': None,
            'last_sync_duration_ms': None,
            'average_sync_duration_ms': 0.0
        }
        self._recent_outcomes: Deque[bool] = deque(maxlen=50)
        self._recent_results: Deque[SyncResult] = deque(maxlen=HEALTH_SCORE_WINDOW)
        self._detached_tasks = set()

        self.recovery_actions: Dict[str, RecoveryAction] = self._build_recovery_actions()
        self._engine_handlers = {
            'sync_complete': self._on_sync_complete,
            'sync_error': self._on_sync_error,
            'queue_updated': self._on_queue_updated,
        }
        self._attached = False

    def attach_to_engine(self) -> None:
        """Subscribe to sync engine events."""
        if self._attached:
            return
        for event_type, handler in self._engine_handlers.items():
            self.engine.subscribe(event_type, handler)
        self._attached = True

    def detach_from_engine(self) -> None:
        if not self._attached:
            return
        for event_type, handler in self._engine_handlers.items():
            self.engine.unsubscribe(event_type, handler)
        self._attached = False

    def attach_alert_source(self, source: EventBus) -> None:
        """Mirror another monitor's alerts into the canonical alert set."""
        source.subscribe("alert_created", self._on_source_alert)
        source.subscribe("alert_updated", self._on_source_alert)
        source.subscribe("alert_resolved", self._on_source_alert_resolved)

    async def run_health_check(self) -> List[HealthCheck]:
        """
        Run all probes concurrently and reconcile health alerts.

        Returns:
            The new health checks
        """
        probes: Dict[str, Callable[[], Awaitable[HealthCheck]]] = {
            'sync_engine': self._check_sync_engine,
            'local_database': self._check_local_database,
            'cloud_database': self._check_cloud_database,
            'sync_queue': self._check_sync_queue,
            'disk_space': self._check_disk_space,
        }

        checks = await asyncio.gather(*(self._run_probe(name, probe) for name, probe in probes.items()))

        for check in checks:
            self.health_checks[check.component] = check
        self.last_check = self.clock()

        self._process_health_check_alerts(checks)

        report = self.get_health_status()
        logger.debug(f"Health check complete: {report.overall.value}",
                     extra=category_extra(LogCategory.HEALTH, overall=report.overall.value))
        self.events.publish("health_check_complete", report)
        return list(checks)

    async def force_health_check(self) -> HealthReport:
        await self.run_health_check()
        return self.get_health_status()

    def get_health_status(self) -> HealthReport:
        """Get overall status, latest checks and active alerts."""
        checks = list(self.health_checks.values())
        return HealthReport(
            overall=overall_status(checks),
            checks=checks,
            alerts=self.alerts.get_active_alerts(),
            last_check=self.last_check
        )

    def get_active_alerts(self) -> List[Alert]:
        return self.alerts.get_active_alerts()

    def acknowledge_alert(self, alert_id: str, acknowledged_by: Optional[str] = None) -> bool:
        """Acknowledge an alert in the canonical set."""
        return self.alerts.acknowledge(alert_id, acknowledged_by)

    def get_current_metrics(self) -> Dict[str, Any]:
        """Sync counters plus the latest engine status."""
        metrics = dict(self.sync_metrics)
        if metrics['last_sync_at']:
            metrics['last_sync_at'] = metrics['last_sync_at'].isoformat()
        metrics['error_rate'] = self._error_rate()
        metrics['health_score'] = self.calculate_health_score().to_dict()
        try:
            metrics['engine'] = self.engine.get_status().to_dict()
        except Exception as e:
            logger.warning(f"Could not read sync engine status: {e}")
            metrics['engine'] = None
        return metrics

    def calculate_health_score(self) -> HealthScore:
        """Weighted health score over the last 50 completed syncs."""
        return calculate_health_score(self._recent_results, self.clock())

    def get_recovery_actions(self) -> List[RecoveryAction]:
        return list(self.recovery_actions.values())

    async def execute_recovery_action(self, action_id: str) -> RecoveryActionResult:
        """
        Run a manual recovery action.

        Args:
            action_id: One of the ids from ``get_recovery_actions``

        Returns:
            The action result; failures are reported, not raised

        Raises:
            UnknownRecoveryActionError: If the action id is unknown
        """
        action = self.recovery_actions.get(action_id)
        if action is None:
            raise UnknownRecoveryActionError(action_id)

        logger.info(f"Executing manual recovery action: {action.name}",
                    extra=category_extra(LogCategory.RECOVERY, action_id=action_id))

        result = await run_action(action, None, self._detached_tasks)

        if result.success:
            self.events.publish("recovery_action_executed", result)
        else:
            logger.error(f"Manual recovery action {action_id} failed: {result.message}")
            self.events.publish("recovery_action_failed", result)

        return result

    async def shutdown(self) -> None:
        """Detach from the engine and drop abandoned action tasks."""
        self.detach_from_engine()
        tasks = list(self._detached_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # Private methods

    async def _run_probe(self, component: str, probe: Callable[[], Awaitable[HealthCheck]]) -> HealthCheck:
        started = time.monotonic()
        try:
            check = await asyncio.wait_for(probe(), timeout=self.probe_timeout_seconds)
        except asyncio.TimeoutError:
            check = HealthCheck(component, HealthStatus.CRITICAL,
                                f"Health check timed out after {self.probe_timeout_seconds}s")
        except Exception as e:
            logger.error(f"Health check for {component} failed: {e}")
            check = HealthCheck(component, HealthStatus.CRITICAL, f"Health check failed: {e}")

        if check.response_time_ms is None:
            check.response_time_ms = (time.monotonic() - started) * 1000
        check.timestamp = self.clock()
        return check

    async def _check_sync_engine(self) -> HealthCheck:
        status = self.engine.get_status()
        details = status.to_dict()

        if not status.is_active:
            return HealthCheck(ENGINE_COMPONENT, HealthStatus.CRITICAL, "Sync engine is not running", details)
        if status.errors:
            return HealthCheck(ENGINE_COMPONENT, HealthStatus.WARNING,
                               f"Sync engine reported {len(status.errors)} errors", details)
        if not status.is_online:
            return HealthCheck(ENGINE_COMPONENT, HealthStatus.WARNING, "Sync engine is offline", details)
        return HealthCheck(ENGINE_COMPONENT, HealthStatus.HEALTHY, "Sync engine is running", details)

    async def _check_local_database(self) -> HealthCheck:
        started = time.monotonic()
        try:
            await self.local_store.ping()
        except Exception as e:
            return HealthCheck('local_database', HealthStatus.CRITICAL, f"Local database unreachable: {e}")

        return HealthCheck('local_database', HealthStatus.HEALTHY, "Local database is reachable",
                           response_time_ms=(time.monotonic() - started) * 1000)

    async def _check_cloud_database(self) -> HealthCheck:
        if not self.remote_store.is_present:
            return HealthCheck('cloud_database', HealthStatus.WARNING,
                               f"Remote store {self.remote_store.reason}")

        try:
            latency_ms = await self.remote_store.value.ping()
        except Exception as e:
            return HealthCheck('cloud_database', HealthStatus.CRITICAL, f"Remote store unreachable: {e}")

        return HealthCheck('cloud_database', HealthStatus.HEALTHY, "Remote store is reachable",
                           {'latency_ms': latency_ms}, response_time_ms=latency_ms)

    async def _check_sync_queue(self) -> HealthCheck:
        depth = self.engine.get_status().queue_depth
        details = {'queue_depth': depth, 'threshold': self.queue_depth_threshold}

        if depth >= self.queue_depth_threshold:
            return HealthCheck(QUEUE_COMPONENT, HealthStatus.WARNING,
                               f"Sync queue depth {depth} exceeds threshold {self.queue_depth_threshold}", details)
        return HealthCheck(QUEUE_COMPONENT, HealthStatus.HEALTHY, f"Sync queue depth {depth}", details)

    async def _check_disk_space(self) -> HealthCheck:
        usage = self.disk_usage_reader(self.disk_path)
        free_mb = usage.free / 1024 / 1024
        used_percent = (usage.used / usage.total * 100) if usage.total else 0.0
        details = {'path': self.disk_path, 'free_mb': round(free_mb, 1), 'used_percent': round(used_percent, 1)}

        if used_percent >= DISK_CRITICAL_PERCENT or free_mb < self.disk_critical_free_mb:
            return HealthCheck('disk_space', HealthStatus.CRITICAL,
                               f"Disk space critical: {free_mb:.0f}MB free ({used_percent:.1f}% used)", details)
        if used_percent >= DISK_WARNING_PERCENT or free_mb < self.disk_warning_free_mb:
            return HealthCheck('disk_space', HealthStatus.WARNING,
                               f"Disk space low: {free_mb:.0f}MB free ({used_percent:.1f}% used)", details)
        return HealthCheck('disk_space', HealthStatus.HEALTHY,
                           f"Disk space ok: {free_mb:.0f}MB free", details)

    def _process_health_check_alerts(self, checks: List[HealthCheck]) -> None:
        for check in checks:
            if check.status in _ALERT_SEVERITY:
                self.alerts.raise_alert(
                    component=check.component,
                    alert_type=HEALTH_ALERT,
                    severity=_ALERT_SEVERITY[check.status],
                    message=check.message,
                    metadata={'component': check.component, 'details': check.details}
                )
            elif check.status == HealthStatus.HEALTHY:
                self.alerts.clear(check.component, HEALTH_ALERT, check.message)

    def _on_sync_complete(self, event: Event) -> None:
        result: SyncResult = event.payload
        metrics = self.sync_metrics

        metrics['total_syncs'] += 1
        if result.success:
            metrics['successful_syncs'] += 1
        else:
            metrics['failed_syncs'] += 1
        metrics['last_sync_at'] = result.completed_at
        metrics['last_sync_duration_ms'] = result.duration_ms
        metrics['average_sync_duration_ms'] += (
            (result.duration_ms - metrics['average_sync_duration_ms']) / metrics['total_syncs']
        )
        self._recent_outcomes.append(result.success)
        self._recent_results.append(result)

        if result.duration_ms > self.latency_threshold_ms:
            severity = (AlertSeverity.CRITICAL if result.duration_ms >= self.latency_threshold_ms * 2
                        else AlertSeverity.WARNING)
            self.alerts.raise_alert(
                ENGINE_COMPONENT, "high_latency", severity,
                f"Sync took {result.duration_ms / 1000:.1f}s (threshold {self.latency_threshold_ms / 1000:.0f}s)",
                metadata={'latency_ms': result.duration_ms, 'threshold_ms': self.latency_threshold_ms}
            )
        else:
            self.alerts.clear(ENGINE_COMPONENT, "high_latency")

        if self._error_rate() < self.error_rate_threshold:
            self.alerts.clear(ENGINE_COMPONENT, "error_rate")

    def _on_sync_error(self, event: Event) -> None:
        error = event.payload
        self.sync_metrics['sync_errors'] += 1
        self._recent_outcomes.append(False)

        rate = self._error_rate()
        severity = AlertSeverity.CRITICAL if rate >= self.error_rate_threshold else AlertSeverity.WARNING
        self.alerts.raise_alert(
            ENGINE_COMPONENT, "error_rate", severity,
            f"Sync error: {error}. Recent error rate {rate:.0f}%",
            metadata={'error_rate': rate, 'threshold': self.error_rate_threshold, 'error': str(error)}
        )

    def _on_queue_updated(self, event: Event) -> None:
        depth = int((event.payload or {}).get('depth', 0))

        if depth >= self.queue_depth_threshold:
            severity = (AlertSeverity.CRITICAL if depth >= self.queue_depth_threshold * 2
                        else AlertSeverity.WARNING)
            self.alerts.raise_alert(
                QUEUE_COMPONENT, "queue_depth", severity,
                f"Sync queue depth is {depth} (threshold {self.queue_depth_threshold})",
                metadata={'queue_depth': depth, 'threshold': self.queue_depth_threshold},
                alert_id="queue_depth_high"
            )
        else:
            self.alerts.clear(QUEUE_COMPONENT, "queue_depth")

    def _on_source_alert(self, event: Event) -> None:
        alert: Alert = event.payload
        is_new = self.alerts.find(alert.component, alert.alert_type) is None
        mirrored = self.alerts.upsert(alert)
        self.events.publish("alert_created" if is_new else "alert_updated", mirrored)

    def _on_source_alert_resolved(self, event: Event) -> None:
        alert: Alert = event.payload
        removed = self.alerts.remove(alert.component, alert.alert_type)
        if removed is not None:
            self.events.publish("alert_resolved", removed)

    def _error_rate(self) -> float:
        if not self._recent_outcomes:
            return 0.0
        failures = sum(1 for ok in self._recent_outcomes if not ok)
        return failures / len(self._recent_outcomes) * 100

    def _build_recovery_actions(self) -> Dict[str, RecoveryAction]:
        async def clear_sync_queue(_context) -> RecoveryActionResult:
            removed = await self.local_store.delete_queue_items(lambda item: item.status == QueueItemStatus.PENDING)
            return RecoveryActionResult('clear_sync_queue', True, f"Removed {removed} pending items",
                                        details={'removed': removed})

        async def restart_sync(_context) -> RecoveryActionResult:
            await self.engine.stop()
            await self.engine.start()
            active = self.engine.get_status().is_active
            return RecoveryActionResult('restart_sync', active,
                                        "Sync engine restarted" if active else "Sync engine did not start")

        async def force_full_sync(_context) -> RecoveryActionResult:
            result = await self.engine.perform_full_sync()
            return RecoveryActionResult(
                'force_full_sync', result.success,
                f"Full sync {'completed' if result.success else 'failed'} in {result.duration_ms:.0f}ms",
                details={'items_processed': result.items_processed, 'errors': list(result.errors)}
            )

        actions = [
            RecoveryAction('clear_sync_queue', "Clear Sync Queue", "Removes all pending items from the sync queue",
                           ActionType.CORRECTIVE, clear_sync_queue, timeout_seconds=60.0),
            RecoveryAction('restart_sync', "Restart Sync Engine", "Stops and restarts the sync engine",
                           ActionType.CORRECTIVE, restart_sync, timeout_seconds=90.0),
            RecoveryAction('force_full_sync', "Force Full Sync", "Performs a complete synchronization",
                           ActionType.CORRECTIVE, force_full_sync, timeout_seconds=300.0),
        ]
        return {action.action_id: action for action in actions}
