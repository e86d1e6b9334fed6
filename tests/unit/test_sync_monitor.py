"""
Unit tests for the aggregated sync monitor.
"""

import asyncio

import pytest

from sync_health.alerts import AlertBook, AlertSeverity
from sync_health.events import EventBus
from sync_health.exceptions import UnknownRecoveryActionError
from sync_health.interfaces import Capability, QueueItemStatus, SyncResult
from sync_health.sync_monitor import HealthCheck, HealthStatus, SyncMonitor, overall_status
from tests.conftest import GB, DiskUsage, healthy_disk


class TestOverallStatus:
    """Test status aggregation."""

    def test_worst_status_wins(self):
        checks = [
            HealthCheck("a", HealthStatus.HEALTHY, "ok"),
            HealthCheck("b", HealthStatus.WARNING, "meh"),
        ]
        assert overall_status(checks) == HealthStatus.WARNING

        checks.append(HealthCheck("c", HealthStatus.CRITICAL, "bad"))
        assert overall_status(checks) == HealthStatus.CRITICAL

    def test_no_checks_is_unknown(self):
        assert overall_status([]) == HealthStatus.UNKNOWN


class TestHealthChecks:
    """Test the five-probe sweep."""

    @pytest.mark.asyncio
    async def test_all_healthy(self, sync_monitor):
        checks = await sync_monitor.run_health_check()

        assert {c.component for c in checks} == {
            'sync_engine', 'local_database', 'cloud_database', 'sync_queue', 'disk_space'
        }
        report = sync_monitor.get_health_status()
        assert report.overall == HealthStatus.HEALTHY
        assert report.alerts == []
        assert report.last_check is not None

    @pytest.mark.asyncio
    async def test_absent_remote_is_warning(self, engine, local_store, clock):
        monitor = SyncMonitor(engine, local_store, Capability.absent("not configured"),
                              disk_usage_reader=healthy_disk, clock=clock)

        await monitor.run_health_check()

        check = monitor.health_checks['cloud_database']
        assert check.status == HealthStatus.WARNING
        assert "not configured" in check.message
        assert monitor.alerts.get("health_cloud_database") is not None

    @pytest.mark.asyncio
    async def test_failures_raise_health_alerts(self, sync_monitor, engine, local_store, remote_store):
        engine.is_active = False
        local_store.ping_error = RuntimeError("database is locked")
        remote_store.ping_error = ConnectionError("unreachable")

        await sync_monitor.run_health_check()

        report = sync_monitor.get_health_status()
        assert report.overall == HealthStatus.CRITICAL
        ids = {a.alert_id for a in report.alerts}
        assert {"health_sync_engine", "health_local_database", "health_cloud_database"} <= ids
        assert all(a.severity == AlertSeverity.CRITICAL for a in report.alerts)

    @pytest.mark.asyncio
    async def test_recovery_clears_health_alert(self, sync_monitor, engine):
        engine.is_active = False
        await sync_monitor.run_health_check()
        assert sync_monitor.alerts.get("health_sync_engine") is not None

        engine.is_active = True
        await sync_monitor.run_health_check()
        assert sync_monitor.alerts.get("health_sync_engine") is None

    @pytest.mark.asyncio
    async def test_probe_timeout(self, sync_monitor, local_store):
        sync_monitor.probe_timeout_seconds = 0.05

        async def hang():
            await asyncio.sleep(1)

        local_store.ping = hang

        await sync_monitor.run_health_check()

        check = sync_monitor.health_checks['local_database']
        assert check.status == HealthStatus.CRITICAL
        assert "timed out" in check.message

    @pytest.mark.asyncio
    async def test_disk_thresholds(self, engine, local_store, remote_store, clock):
        def nearly_full(_path):
            return DiskUsage(total=100 * GB, used=90 * GB, free=10 * GB)

        def tiny_free(_path):
            return DiskUsage(total=1 * GB, used=int(0.6 * GB), free=int(0.4 * GB))

        monitor = SyncMonitor(engine, local_store, Capability.of(remote_store),
                              disk_usage_reader=nearly_full, clock=clock)
        await monitor.run_health_check()
        assert monitor.health_checks['disk_space'].status == HealthStatus.WARNING

        monitor.disk_usage_reader = tiny_free
        await monitor.run_health_check()
        assert monitor.health_checks['disk_space'].status == HealthStatus.CRITICAL

    @pytest.mark.asyncio
    async def test_health_check_event(self, sync_monitor):
        reports = []
        sync_monitor.events.subscribe("health_check_complete", lambda e: reports.append(e.payload))

        report = await sync_monitor.force_health_check()

        assert len(reports) == 1
        assert reports[0].overall == report.overall


class TestEngineEvents:
    """Test immediate reactions to sync engine events."""

    def test_slow_sync_raises_latency_alert(self, sync_monitor, engine):
        sync_monitor.attach_to_engine()

        engine.events.publish("sync_complete", SyncResult(success=True, duration_ms=90_000))

        alert = sync_monitor.alerts.find("sync_engine", "high_latency")
        assert alert.severity == AlertSeverity.WARNING
        assert sync_monitor.sync_metrics['total_syncs'] == 1

    def test_sync_error_raises_error_rate_alert(self, sync_monitor, engine):
        sync_monitor.attach_to_engine()

        engine.events.publish("sync_error", RuntimeError("upload failed"))

        alert = sync_monitor.alerts.find("sync_engine", "error_rate")
        assert alert.severity == AlertSeverity.CRITICAL
        assert sync_monitor.get_current_metrics()['error_rate'] == 100.0

    def test_error_rate_alert_clears_when_rate_drops(self, sync_monitor, engine):
        sync_monitor.attach_to_engine()
        engine.events.publish("sync_error", RuntimeError("upload failed"))
        for _ in range(9):
            engine.events.publish("sync_complete", SyncResult(success=True, duration_ms=100))

        assert sync_monitor.alerts.find("sync_engine", "error_rate") is None

    def test_completed_syncs_feed_health_score(self, sync_monitor, engine):
        sync_monitor.attach_to_engine()
        assert sync_monitor.calculate_health_score().overall == 50

        engine.events.publish("sync_complete", SyncResult(success=True, duration_ms=1000))
        engine.events.publish("sync_complete", SyncResult(success=False, duration_ms=3000))

        score = sync_monitor.get_current_metrics()['health_score']
        assert score['components']['reliability'] == 50
        assert score['components']['stability'] == 50
        assert [f['name'] for f in score['factors']] == ["Low Success Rate"]

    def test_queue_updated_uses_fixed_alert_id(self, sync_monitor, engine):
        sync_monitor.attach_to_engine()

        engine.events.publish("queue_updated", {"depth": 75})

        assert sync_monitor.alerts.get("queue_depth_high") is not None

    def test_detach(self, sync_monitor, engine):
        sync_monitor.attach_to_engine()
        sync_monitor.detach_from_engine()

        engine.events.publish("sync_error", RuntimeError("upload failed"))

        assert len(sync_monitor.alerts) == 0


class TestAlertMirroring:
    """Test alerts mirrored from other monitors."""

    def test_source_alerts_are_mirrored_and_republished(self, sync_monitor, clock):
        source_bus = EventBus("queue_monitor")
        source = AlertBook(source_bus, cooldown_seconds=0, clock=clock)
        sync_monitor.attach_alert_source(source_bus)
        events = []
        sync_monitor.events.subscribe("*", lambda e: events.append(e.event_type))

        source.raise_alert("sync_queue", "high_depth", AlertSeverity.WARNING, "deep")
        assert sync_monitor.alerts.get("high_depth_sync_queue") is not None

        clock.advance(seconds=1)
        source.raise_alert("sync_queue", "high_depth", AlertSeverity.CRITICAL, "deeper")
        assert sync_monitor.alerts.get("high_depth_sync_queue").severity == AlertSeverity.CRITICAL

        source.clear("sync_queue", "high_depth")
        assert sync_monitor.alerts.get("high_depth_sync_queue") is None

        assert events == ["alert_created", "alert_updated", "alert_resolved"]

    def test_acknowledge_mirrored_alert(self, sync_monitor, clock):
        source_bus = EventBus("latency_monitor")
        source = AlertBook(source_bus, clock=clock)
        sync_monitor.attach_alert_source(source_bus)
        source.raise_alert("upload", "high_latency", AlertSeverity.WARNING, "slow")

        assert sync_monitor.acknowledge_alert("high_latency_upload", "ops") is True
        assert sync_monitor.get_active_alerts()[0].acknowledged_by == "ops"


class TestManualActions:
    """Test operator recovery actions."""

    def test_available_actions(self, sync_monitor):
        ids = {a.action_id for a in sync_monitor.get_recovery_actions()}
        assert ids == {'clear_sync_queue', 'restart_sync', 'force_full_sync'}

    @pytest.mark.asyncio
    async def test_clear_sync_queue(self, sync_monitor, local_store, clock):
        local_store.add_items(4, created_at=clock.now)
        local_store.add_items(1, created_at=clock.now, status=QueueItemStatus.COMPLETED)
        executed = []
        sync_monitor.events.subscribe("recovery_action_executed", lambda e: executed.append(e.payload))

        result = await sync_monitor.execute_recovery_action('clear_sync_queue')

        assert result.success is True
        assert result.details == {'removed': 4}
        assert len(local_store.items) == 1
        assert executed == [result]

    @pytest.mark.asyncio
    async def test_restart_sync(self, sync_monitor, engine):
        result = await sync_monitor.execute_recovery_action('restart_sync')

        assert result.success is True
        assert engine.stop_calls == 1
        assert engine.start_calls == 1

    @pytest.mark.asyncio
    async def test_failed_action_is_reported(self, sync_monitor, engine):
        engine.fail_start = True
        failed = []
        sync_monitor.events.subscribe("recovery_action_failed", lambda e: failed.append(e.payload))

        result = await sync_monitor.execute_recovery_action('restart_sync')

        assert result.success is False
        assert "engine failed to start" in result.message
        assert failed == [result]

    @pytest.mark.asyncio
    async def test_force_full_sync(self, sync_monitor, engine):
        result = await sync_monitor.execute_recovery_action('force_full_sync')

        assert result.success is True
        assert engine.full_syncs == 1
        assert result.details['items_processed'] == 5

    @pytest.mark.asyncio
    async def test_unknown_action(self, sync_monitor):
        with pytest.raises(UnknownRecoveryActionError):
            await sync_monitor.execute_recovery_action('reboot_everything')
