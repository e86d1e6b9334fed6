"""
Dependency injection container.

Builds every monitoring component once from settings, wires their event
buses together and owns the periodic loops that drive them.
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from configs.environments.base import BaseConfig
from configs.settings import get_settings
from sync_health.error_logger import ErrorContext, ErrorLogger
from sync_health.events import Event
from sync_health.exceptions import ErrorCategory
from sync_health.interfaces import Capability, LocalStore, RemoteStore, SyncEngine
from sync_health.latency_monitor import LatencyMonitor
from sync_health.periodic import PeriodicTask
from sync_health.queue_monitor import QueueMonitor
from sync_health.recovery_manager import RecoveryManager
from sync_health.recovery_models import RecoveryScenario
from sync_health.recovery_scenarios import ConnectivityProbe, build_default_scenarios
from sync_health.sync_monitor import SyncMonitor
from utils.logging import get_logger

logger = get_logger(__name__)


class MonitoringContainer:
    """Owns and wires the monitoring components for one sync engine."""

    def __init__(
        self,
        engine: SyncEngine,
        local_store: LocalStore,
        remote_store: Optional[RemoteStore] = None,
        settings: Optional[BaseConfig] = None,
        disk_usage_reader: Optional[Callable[[str], Any]] = None,
        scenarios: Optional[List[RecoveryScenario]] = None,
        connectivity_probe: Optional[ConnectivityProbe] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.settings = settings or get_settings()
        self.engine = engine
        self.local_store = local_store
        self.remote_store: Capability[RemoteStore] = Capability.of(remote_store)
        self.clock = clock
        s = self.settings

        self.error_logger = ErrorLogger(
            max_in_memory_errors=s.max_in_memory_errors,
            retention_days=s.error_retention_days,
            enable_pattern_detection=s.enable_pattern_detection,
            enable_auto_recovery=s.enable_auto_recovery,
            clock=clock
        )

        self.queue_monitor = QueueMonitor(
            local_store,
            depth_threshold=s.queue_depth_threshold,
            processing_rate_threshold=s.processing_rate_threshold,
            old_item_warning_minutes=s.old_item_warning_minutes,
            old_item_critical_minutes=s.old_item_critical_minutes,
            alert_cooldown_seconds=s.alert_cooldown_seconds,
            max_history_size=s.queue_history_size,
            clock=clock
        )

        self.latency_monitor = LatencyMonitor(
            alert_threshold_ms=s.latency_alert_threshold_ms,
            critical_threshold_ms=s.latency_critical_threshold_ms,
            sample_size=s.latency_sample_size,
            alert_cooldown_seconds=s.alert_cooldown_seconds,
            clock=clock
        )

        monitor_kwargs: Dict[str, Any] = {}
        if disk_usage_reader is not None:
            monitor_kwargs['disk_usage_reader'] = disk_usage_reader

        self.sync_monitor = SyncMonitor(
            engine,
            local_store,
            self.remote_store,
            queue_depth_threshold=s.queue_depth_threshold,
            latency_threshold_ms=s.latency_alert_threshold_ms,
            error_rate_threshold=s.error_rate_threshold,
            alert_cooldown_seconds=s.alert_cooldown_seconds,
            probe_timeout_seconds=s.probe_timeout_seconds,
            disk_path=s.disk_path,
            disk_warning_free_mb=s.disk_warning_free_mb,
            disk_critical_free_mb=s.disk_critical_free_mb,
            clock=clock,
            **monitor_kwargs
        )

        if scenarios is None:
            scenarios = build_default_scenarios(
                connectivity_probe=connectivity_probe,
                connectivity_check_url=s.connectivity_check_url,
                connectivity_timeout_seconds=s.connectivity_timeout_seconds,
                stuck_item_retry_threshold=s.stuck_item_retry_threshold,
                stalled_queue_depth=s.stalled_queue_depth,
                stale_sync_hours=s.stale_sync_hours,
                restart_delay_seconds=s.restart_delay_seconds,
                overrides=s.scenario_overrides
            )

        self.recovery_manager = RecoveryManager(
            engine,
            local_store,
            self.remote_store,
            error_logger=self.error_logger,
            scenarios=scenarios,
            enable_auto_recovery=s.enable_auto_recovery_sessions,
            max_concurrent_sessions=s.max_concurrent_sessions,
            global_session_timeout_seconds=s.global_session_timeout_seconds,
            max_recovery_history=s.max_recovery_history,
            success_threshold=s.session_success_threshold,
            detection_interval_seconds=s.detection_interval_seconds,
            clock=clock
        )

        self._tasks = [
            PeriodicTask("error_maintenance", s.error_cleanup_interval_seconds,
                         self.error_logger.run_maintenance, run_immediately=False),
            PeriodicTask("queue_poll", s.queue_check_interval_seconds, self.queue_monitor.check_queue),
            PeriodicTask("latency_check", s.latency_check_interval_seconds, self.latency_monitor.check_alerts),
            PeriodicTask("health_sweep", s.health_check_interval_seconds, self.sync_monitor.run_health_check),
        ]
        self._started = False

        self._wire()
        logger.info(f"Monitoring container initialized ({s.environment})")

    def start_all(self) -> None:
        """Start every periodic loop. Must be called from a running event loop."""
        if self._started:
            return
        for task in self._tasks:
            task.start()
        self.recovery_manager.start()
        self._started = True
        logger.info("Monitoring started")

    async def stop_all(self) -> None:
        """Stop loops, cancel recovery sessions and drop in-flight work."""
        for task in self._tasks:
            await task.stop()
        await self.recovery_manager.stop()
        await self.sync_monitor.shutdown()
        await self.error_logger.shutdown()
        self._started = False
        logger.info("Monitoring stopped")

    @property
    def running(self) -> bool:
        return self._started

    def get_overall_health(self) -> Dict[str, Any]:
        """Combined view of every component."""
        report = self.sync_monitor.get_health_status()
        latest_queue = self.queue_monitor.get_latest_stats()

        return {
            'timestamp': self.clock().isoformat(),
            'status': report.overall.value,
            'health_score': self.sync_monitor.calculate_health_score().to_dict(),
            'health': report.to_dict(),
            'metrics': self.sync_monitor.get_current_metrics(),
            'errors': self.error_logger.get_error_summary(hours=1),
            'queue': latest_queue.to_dict() if latest_queue else None,
            'latency': {op: stats.to_dict() for op, stats in self.latency_monitor.get_latency_stats().items()},
            'recovery': {
                'active_sessions': [s.to_dict() for s in self.recovery_manager.get_active_sessions()],
                'stats_24h': self.recovery_manager.get_recovery_stats('24h')
            },
            'remote_store': 'present' if self.remote_store.is_present else self.remote_store.reason
        }

    # Wiring

    def _wire(self) -> None:
        self.engine.subscribe("sync_error", self._on_sync_error)
        self.engine.subscribe("sync_complete", self._on_sync_complete)
        self.engine.subscribe("operation_started", self._on_operation_started)
        self.engine.subscribe("operation_completed", self._on_operation_completed)

        self.sync_monitor.attach_to_engine()
        self.sync_monitor.attach_alert_source(self.queue_monitor.events)
        self.sync_monitor.attach_alert_source(self.latency_monitor.events)

        self.recovery_manager.attach(self.error_logger.events, self.sync_monitor.events)

        self._register_recovery_probes()

    def _register_recovery_probes(self) -> None:
        if self.remote_store.is_present:
            remote = self.remote_store.value

            async def ping_remote(_entry) -> bool:
                await remote.ping()
                return True

            self.error_logger.register_recovery_strategy(ErrorCategory.NETWORK, ping_remote, "ping_remote_store")
            self.error_logger.register_recovery_strategy(ErrorCategory.TIMEOUT, ping_remote, "ping_remote_store")

        async def ping_local(_entry) -> bool:
            await self.local_store.ping()
            return True

        self.error_logger.register_recovery_strategy(ErrorCategory.SYSTEM, ping_local, "ping_local_store")

    def _on_sync_error(self, event: Event) -> None:
        error = event.payload
        if not isinstance(error, BaseException):
            error = RuntimeError(str(error))

        queue_depth = None
        network_status = "unknown"
        try:
            status = self.engine.get_status()
            queue_depth = status.queue_depth
            network_status = "online" if status.is_online else "offline"
        except Exception as e:
            logger.debug(f"Engine status unavailable while logging sync error: {e}")

        self.error_logger.log_error(error, ErrorContext(
            component="sync_engine",
            operation="sync",
            queue_depth=queue_depth,
            network_status=network_status
        ))

    def _on_sync_complete(self, event: Event) -> None:
        self.latency_monitor.record_sync_result(event.payload)

    def _on_operation_started(self, event: Event) -> None:
        payload = event.payload or {}
        self.latency_monitor.start_operation(
            payload.get('operation_type', 'unknown'),
            operation_id=payload.get('operation_id'),
            metadata=payload.get('metadata')
        )

    def _on_operation_completed(self, event: Event) -> None:
        payload = event.payload or {}
        operation_id = payload.get('operation_id')
        if operation_id is None:
            logger.warning("operation_completed event without operation_id")
            return

        self.latency_monitor.complete_operation(
            operation_id,
            success=payload.get('success', True),
            items_processed=payload.get('items_processed', 0),
            bytes_transferred=payload.get('bytes_transferred', 0),
            error=payload.get('error'),
            breakdown=payload.get('breakdown')
        )
