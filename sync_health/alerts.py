"""
Alert records and the keyed alert set shared by all monitors.
"""

import dataclasses
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from .events import EventBus
from utils.logging import LogCategory, category_extra, get_logger

logger = get_logger(__name__)


class AlertSeverity(Enum):
    """Alert severity levels."""
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class Alert:
    """A live, de-duplicated signal for one (component, alert_type) condition."""
    alert_id: str
    alert_type: str
    severity: AlertSeverity
    component: str
    message: str
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)
    recommendations: List[str] = field(default_factory=list)
    acknowledged: bool = False
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.component, self.alert_type)

    def acknowledge(self, user_id: Optional[str] = None, at: Optional[datetime] = None) -> None:
        """Acknowledge the alert."""
        self.acknowledged = True
        self.acknowledged_by = user_id
        self.acknowledged_at = at or datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'alert_id': self.alert_id,
            'alert_type': self.alert_type,
            'severity': self.severity.value,
            'component': self.component,
            'message': self.message,
            'timestamp': self.timestamp.isoformat(),
            'metadata': self.metadata,
            'recommendations': list(self.recommendations),
            'acknowledged': self.acknowledged,
            'acknowledged_by': self.acknowledged_by,
            'acknowledged_at': self.acknowledged_at.isoformat() if self.acknowledged_at else None,
            'resolved_at': self.resolved_at.isoformat() if self.resolved_at else None
        }


def make_alert_id(component: str, alert_type: str) -> str:
    return f"{alert_type}_{component}"


class AlertBook:
    """
    Keyed set of active alerts with per-key cooldown.

    At most one alert exists per ``(component, alert_type)``. Raising an
    alert that is already active is a no-op until the cooldown window has
    passed, after which the existing alert is refreshed in place. Raising
    an alert that was cleared less than one cooldown ago is suppressed.
    """

    def __init__(
        self,
        events: EventBus,
        cooldown_seconds: float = 300.0,
        clock: Callable[[], datetime] = datetime.now,
        max_history: int = 500
    ):
        self.events = events
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock

        self.active_alerts: Dict[Tuple[str, str], Alert] = {}
        self.alert_history: Deque[Alert] = deque(maxlen=max_history)
        self._last_alerted: Dict[Tuple[str, str], datetime] = {}

    def raise_alert(
        self,
        component: str,
        alert_type: str,
        severity: AlertSeverity,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        recommendations: Optional[List[str]] = None,
        alert_id: Optional[str] = None
    ) -> Optional[Alert]:
        """
        Create or refresh the alert for a condition.

        Args:
            component: Component the condition belongs to
            alert_type: Condition type
            severity: Warning or critical
            message: Human-readable description
            metadata: Context such as queue depth or latency
            recommendations: Suggested operator actions
            alert_id: Explicit id, defaults to ``<alert_type>_<component>``

        Returns:
            The active alert, or None when suppressed by cooldown
        """
        key = (component, alert_type)
        now = self.clock()
        existing = self.active_alerts.get(key)

        if self._in_cooldown(key, now):
            if existing is None:
                logger.debug(f"Alert {alert_type} for {component} suppressed by cooldown")
            return existing

        self._last_alerted[key] = now

        if existing is not None:
            existing.severity = severity
            existing.message = message
            existing.metadata = metadata or {}
            existing.recommendations = recommendations or []
            existing.timestamp = now
            self.events.publish("alert_updated", existing)
            return existing

        alert = Alert(
            alert_id=alert_id or make_alert_id(component, alert_type),
            alert_type=alert_type,
            severity=severity,
            component=component,
            message=message,
            timestamp=now,
            metadata=metadata or {},
            recommendations=recommendations or []
        )
        self.active_alerts[key] = alert

        log = logger.error if severity == AlertSeverity.CRITICAL else logger.warning
        log(f"Alert raised [{severity.value}] {component}/{alert_type}: {message}",
            extra=category_extra(LogCategory.ALERT, alert_id=alert.alert_id))

        self.events.publish("alert_created", alert)
        return alert

    def clear(self, component: str, alert_type: str, message: Optional[str] = None) -> Optional[Alert]:
        """Resolve the active alert for a condition, if any."""
        alert = self.active_alerts.pop((component, alert_type), None)
        if alert is None:
            return None

        alert.resolved_at = self.clock()
        self.alert_history.append(alert)

        logger.info(f"Alert resolved {component}/{alert_type}" + (f": {message}" if message else ""),
                    extra=category_extra(LogCategory.ALERT, alert_id=alert.alert_id))

        self.events.publish("alert_resolved", alert)
        return alert

    def upsert(self, alert: Alert) -> Alert:
        """Store a copy of an alert owned elsewhere, keeping local acknowledgement."""
        mirrored = dataclasses.replace(alert, metadata=dict(alert.metadata),
                                       recommendations=list(alert.recommendations))
        existing = self.active_alerts.get(alert.key)
        if existing is not None and existing.acknowledged:
            mirrored.acknowledged = True
            mirrored.acknowledged_by = existing.acknowledged_by
            mirrored.acknowledged_at = existing.acknowledged_at

        self.active_alerts[alert.key] = mirrored
        return mirrored

    def remove(self, component: str, alert_type: str) -> Optional[Alert]:
        """Drop a mirrored alert without cooldown bookkeeping."""
        alert = self.active_alerts.pop((component, alert_type), None)
        if alert is not None:
            alert.resolved_at = alert.resolved_at or self.clock()
            self.alert_history.append(alert)
        return alert

    def acknowledge(self, alert_id: str, acknowledged_by: Optional[str] = None) -> bool:
        """Acknowledge an active alert by id."""
        alert = self.get(alert_id)
        if alert is None:
            return False

        alert.acknowledge(acknowledged_by, self.clock())
        logger.info(f"Alert acknowledged: {alert_id}" + (f" by {acknowledged_by}" if acknowledged_by else ""))
        self.events.publish("alert_acknowledged", alert)
        return True

    def get(self, alert_id: str) -> Optional[Alert]:
        for alert in self.active_alerts.values():
            if alert.alert_id == alert_id:
                return alert
        return None

    def find(self, component: str, alert_type: str) -> Optional[Alert]:
        return self.active_alerts.get((component, alert_type))

    def get_active_alerts(
        self,
        component: Optional[str] = None,
        severity: Optional[AlertSeverity] = None
    ) -> List[Alert]:
        """Get active alerts, newest first."""
        alerts = list(self.active_alerts.values())

        if component:
            alerts = [a for a in alerts if a.component == component]

        if severity:
            alerts = [a for a in alerts if a.severity == severity]

        return sorted(alerts, key=lambda a: a.timestamp, reverse=True)

    def __len__(self) -> int:
        return len(self.active_alerts)

    # Private methods

    def _in_cooldown(self, key: Tuple[str, str], now: datetime) -> bool:
        last = self._last_alerted.get(key)
        return last is not None and (now - last).total_seconds() < self.cooldown_seconds
