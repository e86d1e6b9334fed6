"""
Unit tests for the queue monitor.
"""

import pytest

from sync_health.alerts import AlertSeverity
from sync_health.interfaces import QueueItemStatus
from sync_health.queue_monitor import (
    HIGH_DEPTH, OLD_ITEMS, QUEUE_COMPONENT, STALLED_PROCESSING,
    backlog_trend, estimate_clear_seconds
)


class TestHelpers:
    """Test pure helpers."""

    def test_estimate_clear_seconds(self):
        assert estimate_clear_seconds(0, 0) == 0.0
        assert estimate_clear_seconds(30, 0) is None
        assert estimate_clear_seconds(30, 10) == pytest.approx(180)

    def test_backlog_trend(self):
        assert backlog_trend([10, 20]) == "stable"
        assert backlog_trend([10, 12, 14, 16, 20]) == "increasing"
        assert backlog_trend([20, 18, 16, 12, 10]) == "decreasing"
        assert backlog_trend([10, 11, 10, 11, 11]) == "stable"


class TestQueueChecks:
    """Test polling and alerts."""

    @pytest.mark.asyncio
    async def test_depth_warning(self, queue_monitor, local_store, clock):
        """Test a depth at the threshold raises a warning."""
        local_store.add_items(60, created_at=clock.now)

        stats = await queue_monitor.check_queue()

        assert stats.current_depth == 60
        alert = queue_monitor.alerts.find(QUEUE_COMPONENT, HIGH_DEPTH)
        assert alert.severity == AlertSeverity.WARNING

    @pytest.mark.asyncio
    async def test_depth_critical(self, queue_monitor, local_store, clock):
        """Test twice the threshold is critical."""
        local_store.add_items(120, created_at=clock.now)

        await queue_monitor.check_queue()

        assert queue_monitor.alerts.find(QUEUE_COMPONENT, HIGH_DEPTH).severity == AlertSeverity.CRITICAL

    @pytest.mark.asyncio
    async def test_depth_alert_clears(self, queue_monitor, local_store, clock):
        local_store.add_items(60, created_at=clock.now)
        await queue_monitor.check_queue()

        local_store.items = local_store.items[:10]
        clock.advance(minutes=1)
        await queue_monitor.check_queue()

        assert queue_monitor.alerts.find(QUEUE_COMPONENT, HIGH_DEPTH) is None

    @pytest.mark.asyncio
    async def test_alert_events_within_cooldown(self, queue_monitor, local_store, clock):
        """Test repeated polls do not emit duplicate alerts."""
        created = []
        queue_monitor.events.subscribe("alert_created", lambda e: created.append(e.payload.alert_type))
        local_store.add_items(60, created_at=clock.now)

        await queue_monitor.check_queue()
        clock.advance(minutes=1)
        await queue_monitor.check_queue()

        assert created.count(HIGH_DEPTH) == 1

    @pytest.mark.asyncio
    async def test_processing_rate(self, queue_monitor, local_store, clock):
        """Test the rate is derived from consecutive polls."""
        local_store.add_items(40, created_at=clock.now)
        first = await queue_monitor.check_queue()
        assert first.processing_rate == 0.0

        local_store.items = local_store.items[:20]
        clock.advance(minutes=2)
        second = await queue_monitor.check_queue()

        assert second.processing_rate == pytest.approx(10.0)
        assert second.estimated_clear_seconds == pytest.approx(120)

    @pytest.mark.asyncio
    async def test_stalled_needs_previous_poll(self, queue_monitor, local_store, clock):
        """Test the stall alert only fires once a rate is known."""
        local_store.add_items(5, created_at=clock.now)
        await queue_monitor.check_queue()
        assert queue_monitor.alerts.find(QUEUE_COMPONENT, STALLED_PROCESSING) is None

        clock.advance(minutes=1)
        await queue_monitor.check_queue()
        alert = queue_monitor.alerts.find(QUEUE_COMPONENT, STALLED_PROCESSING)
        assert alert.severity == AlertSeverity.CRITICAL

    @pytest.mark.asyncio
    async def test_empty_queue_is_not_stalled(self, queue_monitor, clock):
        await queue_monitor.check_queue()
        clock.advance(minutes=1)
        await queue_monitor.check_queue()

        assert len(queue_monitor.alerts) == 0

    @pytest.mark.asyncio
    async def test_old_items(self, queue_monitor, local_store, clock):
        local_store.add_items(1, created_at=clock.now)
        clock.advance(minutes=20)
        await queue_monitor.check_queue()
        assert queue_monitor.alerts.find(QUEUE_COMPONENT, OLD_ITEMS).severity == AlertSeverity.WARNING

        clock.advance(minutes=15)
        await queue_monitor.check_queue()
        assert queue_monitor.alerts.find(QUEUE_COMPONENT, OLD_ITEMS).severity == AlertSeverity.CRITICAL

    @pytest.mark.asyncio
    async def test_store_failure_returns_none(self, queue_monitor, local_store):
        async def broken():
            raise RuntimeError("database is locked")

        local_store.get_queue_summary = broken

        assert await queue_monitor.check_queue() is None
        assert queue_monitor.monitoring_stats['check_failures'] == 1


class TestQueueAnalysis:
    """Test analysis and maintenance."""

    @pytest.mark.asyncio
    async def test_analysis_buckets(self, queue_monitor, local_store, clock):
        local_store.add_items(2, created_at=clock.now, operation="update")
        clock.advance(minutes=10)
        local_store.add_items(1, created_at=clock.now)
        local_store.add_items(1, created_at=clock.now, status=QueueItemStatus.COMPLETED)
        clock.advance(seconds=30)

        analysis = await queue_monitor.get_queue_analysis()

        assert analysis['total_items'] == 4
        assert analysis['by_status'] == {'pending': 3, 'completed': 1}
        assert analysis['by_operation'] == {'update': 2, 'insert': 1}
        assert analysis['age_distribution'] == {'under_1m': 1, 'under_5m': 0, 'under_15m': 2, 'over_15m': 0}
        assert analysis['oldest_items'][0]['operation'] == 'update'

    @pytest.mark.asyncio
    async def test_clear_old_items_only_removes_completed(self, queue_monitor, local_store, clock):
        local_store.add_items(3, created_at=clock.now, status=QueueItemStatus.COMPLETED)
        local_store.add_items(2, created_at=clock.now)
        clock.advance(hours=25)

        assert await queue_monitor.clear_old_items(max_age_hours=24) == 3
        assert len(local_store.items) == 2

    @pytest.mark.asyncio
    async def test_history_and_metrics(self, queue_monitor, local_store, clock):
        local_store.add_items(10, created_at=clock.now)
        for _ in range(3):
            await queue_monitor.check_queue()
            clock.advance(minutes=5)

        assert len(queue_monitor.get_stats_history(hours=1)) == 3
        metrics = queue_monitor.get_performance_metrics(hours=1)
        assert metrics['samples'] == 3
        assert metrics['max_depth'] == 10

        exported = queue_monitor.export_queue_data()
        assert len(exported['stats_history']) == 3
