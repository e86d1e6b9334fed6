"""
Sync queue monitoring.

Polls the local store for queue depth and item ages, derives processing
rate and backlog trend from consecutive polls and raises depth, stall and
old-item alerts.
"""

from collections import Counter, deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Deque, Dict, List, Optional

from .alerts import Alert, AlertBook, AlertSeverity
from .events import EventBus
from .interfaces import LocalStore, QueueItem, QueueItemStatus
from utils.logging import get_logger

logger = get_logger(__name__)

QUEUE_COMPONENT = "sync_queue"
HIGH_DEPTH = "high_depth"
STALLED_PROCESSING = "stalled_processing"
OLD_ITEMS = "old_items"

BACKLOG_WINDOW = 5
WAIT_SAMPLE_SIZE = 100


@dataclass
class QueueStats:
    """Point-in-time queue snapshot."""
    timestamp: datetime
    current_depth: int
    total_items: int
    oldest_item_age_seconds: Optional[float]
    newest_item_age_seconds: Optional[float]
    processing_rate: float  # items per minute
    average_wait_seconds: Optional[float]
    backlog_trend: str
    estimated_clear_seconds: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'current_depth': self.current_depth,
            'total_items': self.total_items,
            'oldest_item_age_seconds': self.oldest_item_age_seconds,
            'newest_item_age_seconds': self.newest_item_age_seconds,
            'processing_rate': self.processing_rate,
            'average_wait_seconds': self.average_wait_seconds,
            'backlog_trend': self.backlog_trend,
            'estimated_clear_seconds': self.estimated_clear_seconds
        }


def estimate_clear_seconds(depth: int, processing_rate: float) -> Optional[float]:
    """Seconds to drain ``depth`` items at ``processing_rate`` items/minute."""
    if depth == 0:
        return 0.0
    if processing_rate <= 0:
        return None
    return depth / processing_rate * 60


def backlog_trend(depths: List[int]) -> str:
    """Compare first and last of the recent depths against 10%-or-2-items."""
    if len(depths) < BACKLOG_WINDOW:
        return "stable"

    recent = depths[-BACKLOG_WINDOW:]
    first, last = recent[0], recent[-1]
    threshold = max(2, first * 0.1)

    if last - first > threshold:
        return "increasing"
    if first - last > threshold:
        return "decreasing"
    return "stable"


class QueueMonitor:
    """Polls the sync queue and raises queue alerts."""

    def __init__(
        self,
        local_store: LocalStore,
        depth_threshold: int = 50,
        processing_rate_threshold: float = 10.0,
        old_item_warning_minutes: float = 15.0,
        old_item_critical_minutes: float = 30.0,
        alert_cooldown_seconds: float = 300.0,
        max_history_size: int = 288,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.local_store = local_store
        self.depth_threshold = depth_threshold
        self.processing_rate_threshold = processing_rate_threshold
        self.old_item_warning_minutes = old_item_warning_minutes
        self.old_item_critical_minutes = old_item_critical_minutes
        self.clock = clock

        self.events = EventBus("queue_monitor")
        self.alerts = AlertBook(self.events, alert_cooldown_seconds, clock)

        self.stats_history: Deque[QueueStats] = deque(maxlen=max_history_size)
        self._last_poll: Optional[Dict[str, Any]] = None

        self.monitoring_stats = {
            'checks_performed': 0,
            'check_failures': 0,
            'last_check': None
        }

    async def check_queue(self) -> Optional[QueueStats]:
        """
        Poll the store, record a snapshot and reconcile queue alerts.

        Returns:
            The new snapshot, or None if the store could not be read
        """
        try:
            stats = await self.get_current_stats()
        except Exception as e:
            self.monitoring_stats['check_failures'] += 1
            logger.error(f"Queue check failed: {e}")
            return None

        has_rate = self._last_poll is not None
        self._last_poll = {'timestamp': stats.timestamp, 'depth': stats.current_depth}

        self.stats_history.append(stats)
        self.monitoring_stats['checks_performed'] += 1
        self.monitoring_stats['last_check'] = stats.timestamp

        self._check_alerts(stats, has_rate)
        self.events.publish("queue_checked", stats)

        logger.debug(f"Queue depth {stats.current_depth}, rate {stats.processing_rate:.1f}/min, trend {stats.backlog_trend}")
        return stats

    async def get_current_stats(self) -> QueueStats:
        """Build a snapshot from the store without recording it."""
        now = self.clock()
        summary = await self.local_store.get_queue_summary()
        depth = summary.pending_count

        rate = self._processing_rate(depth, now)
        depths = [s.current_depth for s in self.stats_history] + [depth]

        return QueueStats(
            timestamp=now,
            current_depth=depth,
            total_items=summary.total_count,
            oldest_item_age_seconds=self._age(summary.oldest_created_at, now),
            newest_item_age_seconds=self._age(summary.newest_created_at, now),
            processing_rate=rate,
            average_wait_seconds=await self._average_wait_seconds(),
            backlog_trend=backlog_trend(depths),
            estimated_clear_seconds=estimate_clear_seconds(depth, rate)
        )

    def get_latest_stats(self) -> Optional[QueueStats]:
        return self.stats_history[-1] if self.stats_history else None

    def get_stats_history(self, hours: float = 24) -> List[QueueStats]:
        cutoff = self.clock() - timedelta(hours=hours)
        return [s for s in self.stats_history if s.timestamp >= cutoff]

    async def get_queue_analysis(self) -> Dict[str, Any]:
        """Break the queue down by status, operation and age."""
        now = self.clock()
        items = await self.local_store.list_queue_items()
        pending = [i for i in items if i.status == QueueItemStatus.PENDING]

        buckets = {'under_1m': 0, 'under_5m': 0, 'under_15m': 0, 'over_15m': 0}
        for item in pending:
            age_minutes = (now - item.created_at).total_seconds() / 60
            if age_minutes < 1:
                buckets['under_1m'] += 1
            elif age_minutes < 5:
                buckets['under_5m'] += 1
            elif age_minutes < 15:
                buckets['under_15m'] += 1
            else:
                buckets['over_15m'] += 1

        oldest = sorted(pending, key=lambda i: i.created_at)[:10]

        return {
            'timestamp': now.isoformat(),
            'total_items': len(items),
            'by_status': dict(Counter(i.status for i in items)),
            'by_operation': dict(Counter(i.operation for i in pending)),
            'age_distribution': buckets,
            'oldest_items': [
                {**i.to_dict(), 'age_seconds': (now - i.created_at).total_seconds()} for i in oldest
            ]
        }

    async def clear_old_items(self, max_age_hours: float = 24) -> int:
        """Delete completed items older than ``max_age_hours``."""
        cutoff = self.clock() - timedelta(hours=max_age_hours)

        def is_old_completed(item: QueueItem) -> bool:
            return item.status == QueueItemStatus.COMPLETED and item.created_at < cutoff

        removed = await self.local_store.delete_queue_items(is_old_completed)
        logger.info(f"Cleared {removed} completed queue items older than {max_age_hours}h")
        return removed

    def get_performance_metrics(self, hours: float = 1) -> Dict[str, Any]:
        """Averages over recent snapshots."""
        history = self.get_stats_history(hours)
        if not history:
            return {'samples': 0}

        waits = [s.average_wait_seconds for s in history if s.average_wait_seconds is not None]
        return {
            'samples': len(history),
            'average_depth': sum(s.current_depth for s in history) / len(history),
            'max_depth': max(s.current_depth for s in history),
            'average_processing_rate': sum(s.processing_rate for s in history) / len(history),
            'average_wait_seconds': sum(waits) / len(waits) if waits else None,
            'active_alerts': len(self.alerts)
        }

    def get_active_alerts(self) -> List[Alert]:
        return self.alerts.get_active_alerts()

    def acknowledge_alert(self, alert_id: str, acknowledged_by: Optional[str] = None) -> bool:
        return self.alerts.acknowledge(alert_id, acknowledged_by)

    def export_queue_data(self) -> Dict[str, Any]:
        """Export snapshot history and alerts."""
        return {
            'exported_at': self.clock().isoformat(),
            'stats_history': [s.to_dict() for s in self.stats_history],
            'alerts': [a.to_dict() for a in self.get_active_alerts()],
            'monitoring_stats': {
                **self.monitoring_stats,
                'last_check': self.monitoring_stats['last_check'].isoformat()
                if self.monitoring_stats['last_check'] else None
            }
        }

    # Private methods

    def _processing_rate(self, depth: int, now: datetime) -> float:
        if self._last_poll is None:
            return 0.0

        elapsed_minutes = (now - self._last_poll['timestamp']).total_seconds() / 60
        if elapsed_minutes <= 0:
            return 0.0

        drained = max(0, self._last_poll['depth'] - depth)
        return drained / elapsed_minutes

    def _age(self, created_at: Optional[datetime], now: datetime) -> Optional[float]:
        if created_at is None:
            return None
        return max(0.0, (now - created_at).total_seconds())

    async def _average_wait_seconds(self) -> Optional[float]:
        completed = await self.local_store.list_queue_items(status=QueueItemStatus.COMPLETED, limit=WAIT_SAMPLE_SIZE)
        waits = [(i.updated_at - i.created_at).total_seconds() for i in completed if i.updated_at]
        if not waits:
            return None
        return sum(waits) / len(waits)

    def _check_alerts(self, stats: QueueStats, has_rate: bool) -> None:
        depth = stats.current_depth
        context = {'queue_depth': depth, 'processing_rate': stats.processing_rate}

        # Depth
        if depth >= self.depth_threshold:
            severity = AlertSeverity.CRITICAL if depth >= self.depth_threshold * 2 else AlertSeverity.WARNING
            self.alerts.raise_alert(
                QUEUE_COMPONENT, HIGH_DEPTH, severity,
                f"Sync queue depth is {depth} (threshold {self.depth_threshold})",
                metadata={**context, 'threshold': self.depth_threshold}
            )
        else:
            self.alerts.clear(QUEUE_COMPONENT, HIGH_DEPTH)

        # Processing rate, only meaningful with a previous poll and work to do
        if has_rate and depth > 0 and stats.processing_rate < self.processing_rate_threshold:
            severity = AlertSeverity.CRITICAL if stats.processing_rate == 0 else AlertSeverity.WARNING
            self.alerts.raise_alert(
                QUEUE_COMPONENT, STALLED_PROCESSING, severity,
                f"Queue processing rate is {stats.processing_rate:.1f} items/min "
                f"(threshold {self.processing_rate_threshold})",
                metadata={**context, 'threshold': self.processing_rate_threshold}
            )
        else:
            self.alerts.clear(QUEUE_COMPONENT, STALLED_PROCESSING)

        # Item age
        age_minutes = (stats.oldest_item_age_seconds or 0) / 60
        if depth > 0 and age_minutes > self.old_item_warning_minutes:
            severity = (AlertSeverity.CRITICAL if age_minutes > self.old_item_critical_minutes
                        else AlertSeverity.WARNING)
            self.alerts.raise_alert(
                QUEUE_COMPONENT, OLD_ITEMS, severity,
                f"Oldest queued item is {age_minutes:.0f} minutes old",
                metadata={**context, 'oldest_item_age_seconds': stats.oldest_item_age_seconds}
            )
        else:
            self.alerts.clear(QUEUE_COMPONENT, OLD_ITEMS)
