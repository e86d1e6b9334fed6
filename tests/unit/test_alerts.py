"""
Unit tests for the keyed alert book.
"""

from sync_health.alerts import AlertSeverity


def collect(bus, *event_types):
    seen = []
    for event_type in event_types:
        bus.subscribe(event_type, lambda e: seen.append((e.event_type, e.payload)))
    return seen


class TestAlertBook:
    """Test AlertBook."""

    def test_raise_creates_alert_with_default_id(self, alert_book, event_bus):
        """Test alert creation and id format."""
        seen = collect(event_bus, "alert_created")

        alert = alert_book.raise_alert("sync_queue", "high_depth", AlertSeverity.WARNING, "Queue deep")

        assert alert.alert_id == "high_depth_sync_queue"
        assert alert.key == ("sync_queue", "high_depth")
        assert len(alert_book) == 1
        assert seen == [("alert_created", alert)]

    def test_one_alert_per_key(self, alert_book, clock):
        """Test repeated raises within cooldown keep a single alert."""
        first = alert_book.raise_alert("c", "t", AlertSeverity.WARNING, "one")
        clock.advance(seconds=10)
        second = alert_book.raise_alert("c", "t", AlertSeverity.CRITICAL, "two")

        assert second is first
        assert first.message == "one"
        assert first.severity == AlertSeverity.WARNING
        assert len(alert_book) == 1

    def test_refresh_after_cooldown(self, alert_book, event_bus, clock):
        """Test an active alert is updated in place once cooldown expires."""
        seen = collect(event_bus, "alert_updated")
        alert = alert_book.raise_alert("c", "t", AlertSeverity.WARNING, "one")

        clock.advance(seconds=301)
        refreshed = alert_book.raise_alert("c", "t", AlertSeverity.CRITICAL, "two")

        assert refreshed is alert
        assert alert.severity == AlertSeverity.CRITICAL
        assert alert.message == "two"
        assert alert.timestamp == clock.now
        assert seen == [("alert_updated", alert)]

    def test_cooldown_suppresses_recreation_after_clear(self, alert_book, clock):
        """Test cleared alerts stay quiet for one cooldown."""
        alert_book.raise_alert("c", "t", AlertSeverity.WARNING, "one")
        alert_book.clear("c", "t")

        clock.advance(seconds=60)
        assert alert_book.raise_alert("c", "t", AlertSeverity.WARNING, "again") is None
        assert len(alert_book) == 0

        clock.advance(seconds=300)
        assert alert_book.raise_alert("c", "t", AlertSeverity.WARNING, "again") is not None

    def test_clear_publishes_resolution(self, alert_book, event_bus, clock):
        """Test clear resolves and records history."""
        seen = collect(event_bus, "alert_resolved")
        alert = alert_book.raise_alert("c", "t", AlertSeverity.WARNING, "one")
        clock.advance(seconds=5)

        resolved = alert_book.clear("c", "t", "back to normal")

        assert resolved is alert
        assert alert.resolved_at == clock.now
        assert list(alert_book.alert_history) == [alert]
        assert seen == [("alert_resolved", alert)]
        assert alert_book.clear("c", "t") is None

    def test_acknowledge(self, alert_book, event_bus):
        """Test acknowledgement by id."""
        seen = collect(event_bus, "alert_acknowledged")
        alert = alert_book.raise_alert("c", "t", AlertSeverity.WARNING, "one")

        assert alert_book.acknowledge(alert.alert_id, "operator") is True
        assert alert.acknowledged is True
        assert alert.acknowledged_by == "operator"
        assert alert.acknowledged_at is not None
        assert len(seen) == 1

        assert alert_book.acknowledge("missing") is False

    def test_active_alerts_newest_first_and_filtered(self, alert_book, clock):
        """Test ordering and filters."""
        old = alert_book.raise_alert("a", "t", AlertSeverity.WARNING, "old")
        clock.advance(seconds=1)
        new = alert_book.raise_alert("b", "t", AlertSeverity.CRITICAL, "new")

        assert alert_book.get_active_alerts() == [new, old]
        assert alert_book.get_active_alerts(component="a") == [old]
        assert alert_book.get_active_alerts(severity=AlertSeverity.CRITICAL) == [new]

    def test_upsert_keeps_local_acknowledgement(self, alert_book, event_bus, clock):
        """Test mirrored alerts keep acknowledgement across refreshes."""
        from sync_health.alerts import AlertBook
        from sync_health.events import EventBus

        source = AlertBook(EventBus("source"), cooldown_seconds=0, clock=clock)
        original = source.raise_alert("sync_queue", "high_depth", AlertSeverity.WARNING, "deep")

        mirrored = alert_book.upsert(original)
        alert_book.acknowledge(mirrored.alert_id, "ops")

        clock.advance(seconds=1)
        source.raise_alert("sync_queue", "high_depth", AlertSeverity.CRITICAL, "deeper")
        refreshed = alert_book.upsert(original)

        assert refreshed.severity == AlertSeverity.CRITICAL
        assert refreshed.acknowledged is True
        assert refreshed.acknowledged_by == "ops"
        assert original.acknowledged is False

    def test_remove_skips_cooldown(self, alert_book):
        """Test remove drops a mirrored alert without starting a cooldown."""
        from sync_health.alerts import Alert

        alert = Alert("x_c", "x", AlertSeverity.WARNING, "c", "mirrored")
        alert_book.upsert(alert)

        assert alert_book.remove("c", "x") is not None
        assert alert_book.raise_alert("c", "x", AlertSeverity.WARNING, "local") is not None
