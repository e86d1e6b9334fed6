"""
Per-operation latency tracking for sync operations.
"""

import uuid
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Deque, Dict, List, Optional

from .alerts import Alert, AlertBook, AlertSeverity
from .events import EventBus
from .interfaces import SyncResult
from .statistics import Trend, latency_trend, mean, percentile, population_std_dev
from utils.logging import LogCategory, category_extra, get_logger

logger = get_logger(__name__)

# Expected durations in milliseconds
DEFAULT_BASELINES = {
    'upload': 30_000.0,
    'download': 20_000.0,
    'transformation': 5_000.0,
    'full_sync': 45_000.0,
}

TREND_PERIODS = {'1h': 1, '6h': 6, '24h': 24}

HIGH_LATENCY = "high_latency"
DEGRADING_PERFORMANCE = "degrading_performance"


@dataclass
class LatencyMeasurement:
    """One completed operation."""
    operation_id: str
    operation_type: str
    start_time: datetime
    end_time: datetime
    duration_ms: float
    success: bool = True
    items_processed: int = 0
    bytes_transferred: int = 0
    error: Optional[str] = None
    network_ms: float = 0.0
    processing_ms: float = 0.0
    database_ms: float = 0.0
    transformation_ms: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'operation_id': self.operation_id,
            'operation_type': self.operation_type,
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat(),
            'duration_ms': self.duration_ms,
            'success': self.success,
            'items_processed': self.items_processed,
            'bytes_transferred': self.bytes_transferred,
            'error': self.error,
            'network_ms': self.network_ms,
            'processing_ms': self.processing_ms,
            'database_ms': self.database_ms,
            'transformation_ms': self.transformation_ms,
            'metadata': self.metadata
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LatencyMeasurement':
        values = dict(data)
        values['start_time'] = datetime.fromisoformat(values['start_time'])
        values['end_time'] = datetime.fromisoformat(values['end_time'])
        return cls(**values)


@dataclass
class LatencyStats:
    """Windowed statistics for one operation type."""
    operation_type: str
    count: int
    average: float
    median: float
    p95: float
    p99: float
    min: float
    max: float
    std_dev: float
    trend: Trend
    throughput: float  # items per second
    efficiency: float  # 0-100, baseline relative
    success_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'operation_type': self.operation_type,
            'count': self.count,
            'average': self.average,
            'median': self.median,
            'p95': self.p95,
            'p99': self.p99,
            'min': self.min,
            'max': self.max,
            'std_dev': self.std_dev,
            'trend': self.trend.value,
            'throughput': self.throughput,
            'efficiency': self.efficiency,
            'success_rate': self.success_rate
        }


class LatencyMonitor:
    """Tracks operation durations and raises latency alerts."""

    def __init__(
        self,
        alert_threshold_ms: float = 60_000.0,
        critical_threshold_ms: float = 120_000.0,
        sample_size: int = 100,
        alert_cooldown_seconds: float = 300.0,
        baselines: Optional[Dict[str, float]] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.alert_threshold_ms = alert_threshold_ms
        self.critical_threshold_ms = critical_threshold_ms
        self.sample_size = sample_size
        self.baselines = dict(DEFAULT_BASELINES if baselines is None else baselines)
        self.clock = clock

        self.events = EventBus("latency_monitor")
        self.alerts = AlertBook(self.events, alert_cooldown_seconds, clock)

        self.measurements: Dict[str, Deque[LatencyMeasurement]] = defaultdict(lambda: deque(maxlen=self.sample_size))
        self.active_operations: Dict[str, Dict[str, Any]] = {}

        logger.info(f"Latency monitor initialized (alert {alert_threshold_ms}ms, critical {critical_threshold_ms}ms)")

    def start_operation(
        self,
        operation_type: str,
        operation_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> str:
        """Begin timing an operation and return its id."""
        operation_id = operation_id or str(uuid.uuid4())
        self.active_operations[operation_id] = {
            'operation_type': operation_type,
            'start_time': self.clock(),
            'metadata': metadata or {}
        }
        return operation_id

    def complete_operation(
        self,
        operation_id: str,
        success: bool = True,
        items_processed: int = 0,
        bytes_transferred: int = 0,
        error: Optional[str] = None,
        breakdown: Optional[Dict[str, float]] = None
    ) -> Optional[LatencyMeasurement]:
        """
        Finish timing an operation started with ``start_operation``.

        Args:
            operation_id: Id returned by start_operation
            success: Whether the operation succeeded
            items_processed: Records moved by the operation
            bytes_transferred: Payload size
            error: Error message on failure
            breakdown: Optional network/processing/database/transformation ms

        Returns:
            The recorded measurement, or None for an unknown id
        """
        started = self.active_operations.pop(operation_id, None)
        if started is None:
            logger.warning(f"Completed unknown operation: {operation_id}")
            return None

        end_time = self.clock()
        breakdown = breakdown or {}
        measurement = LatencyMeasurement(
            operation_id=operation_id,
            operation_type=started['operation_type'],
            start_time=started['start_time'],
            end_time=end_time,
            duration_ms=(end_time - started['start_time']).total_seconds() * 1000,
            success=success,
            items_processed=items_processed,
            bytes_transferred=bytes_transferred,
            error=error,
            network_ms=breakdown.get('network', 0.0),
            processing_ms=breakdown.get('processing', 0.0),
            database_ms=breakdown.get('database', 0.0),
            transformation_ms=breakdown.get('transformation', 0.0),
            metadata=started['metadata']
        )
        self.record_measurement(measurement)
        return measurement

    def record_sync_result(self, result: SyncResult) -> LatencyMeasurement:
        """Record a finished sync run reported by the engine."""
        end_time = result.completed_at
        measurement = LatencyMeasurement(
            operation_id=str(uuid.uuid4()),
            operation_type=result.operation_type,
            start_time=end_time - timedelta(milliseconds=result.duration_ms),
            end_time=end_time,
            duration_ms=result.duration_ms,
            success=result.success,
            items_processed=result.items_processed,
            bytes_transferred=result.bytes_transferred,
            error="; ".join(result.errors) if result.errors else None
        )
        self.record_measurement(measurement)
        return measurement

    def record_measurement(self, measurement: LatencyMeasurement) -> None:
        """Store a measurement and evaluate latency alerts for its type."""
        self.measurements[measurement.operation_type].append(measurement)
        logger.debug(
            f"Latency {measurement.operation_type}: {measurement.duration_ms:.0f}ms",
            extra=category_extra(LogCategory.PERFORMANCE, operation_type=measurement.operation_type,
                                 duration_ms=measurement.duration_ms)
        )
        self.events.publish("measurement_recorded", measurement)
        self._check_latency_alert(measurement)

    def get_latency_stats(self, operation_type: Optional[str] = None) -> Dict[str, LatencyStats]:
        """Get statistics per operation type."""
        types = [operation_type] if operation_type else list(self.measurements.keys())
        stats = {}
        for op_type in types:
            samples = list(self.measurements.get(op_type, []))
            if samples:
                stats[op_type] = self._compute_stats(op_type, samples)
        return stats

    def get_latency_breakdown(self, operation_type: str) -> Dict[str, float]:
        """Average share of time spent per phase, in percent."""
        samples = list(self.measurements.get(operation_type, []))
        total = sum(m.duration_ms for m in samples)
        if total <= 0:
            return {'network': 0.0, 'processing': 0.0, 'database': 0.0, 'transformation': 0.0, 'overhead': 0.0}

        network = sum(m.network_ms for m in samples) / total * 100
        processing = sum(m.processing_ms for m in samples) / total * 100
        database = sum(m.database_ms for m in samples) / total * 100
        transformation = sum(m.transformation_ms for m in samples) / total * 100
        overhead = max(0.0, 100.0 - network - processing - database - transformation)

        return {
            'network': round(network, 2),
            'processing': round(processing, 2),
            'database': round(database, 2),
            'transformation': round(transformation, 2),
            'overhead': round(overhead, 2)
        }

    def generate_recommendations(self, operation_type: str) -> List[str]:
        """Suggest operator actions from the breakdown and statistics."""
        recommendations = []
        breakdown = self.get_latency_breakdown(operation_type)
        stats = self.get_latency_stats(operation_type).get(operation_type)
        baseline = self.baselines.get(operation_type)

        if breakdown['network'] > 50:
            recommendations.append("Network time dominates: check connectivity and remote store region")
        if breakdown['database'] > 40:
            recommendations.append("Database time dominates: review local queries and indexes")
        if breakdown['transformation'] > 30:
            recommendations.append("Transformation time is high: optimize schema mapping or batch transforms")

        if stats is not None:
            if baseline and stats.p95 > baseline * 2:
                recommendations.append("p95 latency is over twice the baseline: investigate outlier operations")
            if stats.trend == Trend.DEGRADING:
                recommendations.append("Latency is degrading: review recent configuration or data volume changes")
            if stats.count >= 5 and 0 < stats.throughput < 1:
                recommendations.append("Throughput below 1 item/s: increase sync batch size")

        return recommendations

    def analyze_performance_trends(self) -> List[Dict[str, Any]]:
        """Compare recent periods against the baseline for each operation type."""
        now = self.clock()
        analysis = []

        for op_type, samples in self.measurements.items():
            if len(samples) < 20:
                continue

            baseline = self.baselines.get(op_type)
            for period, hours in TREND_PERIODS.items():
                window = [m.duration_ms for m in samples if m.end_time >= now - timedelta(hours=hours)]
                if len(window) < 5:
                    continue

                average = mean(window)
                change = ((average - baseline) / baseline * 100) if baseline else 0.0
                analysis.append({
                    'operation_type': op_type,
                    'period': period,
                    'samples': len(window),
                    'average': average,
                    'baseline': baseline,
                    'change_percent': round(change, 2),
                    'trend': latency_trend(window).value,
                    'confidence': min(100, len(window) * 2)
                })

        return analysis

    async def check_alerts(self) -> None:
        """Periodic sweep: re-evaluate the latest sample and trend per type."""
        for op_type, samples in list(self.measurements.items()):
            if not samples:
                continue

            self._check_latency_alert(samples[-1])

            trend = latency_trend([m.duration_ms for m in samples])
            if trend == Trend.DEGRADING:
                self.alerts.raise_alert(
                    component=op_type,
                    alert_type=DEGRADING_PERFORMANCE,
                    severity=AlertSeverity.WARNING,
                    message=f"{op_type} latency is degrading",
                    metadata={'operation_type': op_type},
                    recommendations=self.generate_recommendations(op_type)
                )
            else:
                self.alerts.clear(op_type, DEGRADING_PERFORMANCE)

    def get_active_alerts(self) -> List[Alert]:
        return self.alerts.get_active_alerts()

    def acknowledge_alert(self, alert_id: str, acknowledged_by: Optional[str] = None) -> bool:
        return self.alerts.acknowledge(alert_id, acknowledged_by)

    def export_data(self) -> Dict[str, Any]:
        """Export measurements, statistics and alerts."""
        return {
            'exported_at': self.clock().isoformat(),
            'measurements': {
                op_type: [m.to_dict() for m in samples] for op_type, samples in self.measurements.items()
            },
            'stats': {op_type: s.to_dict() for op_type, s in self.get_latency_stats().items()},
            'alerts': [a.to_dict() for a in self.get_active_alerts()]
        }

    def import_data(self, data: Dict[str, Any]) -> int:
        """Import measurements from ``export_data``. Does not re-evaluate alerts."""
        imported = 0
        for op_type, samples in data.get('measurements', {}).items():
            for sample in samples:
                self.measurements[op_type].append(LatencyMeasurement.from_dict(sample))
                imported += 1
        logger.info(f"Imported {imported} latency measurements")
        return imported

    # Private methods

    def _compute_stats(self, op_type: str, samples: List[LatencyMeasurement]) -> LatencyStats:
        durations = [m.duration_ms for m in samples]
        average = mean(durations)
        total_seconds = sum(durations) / 1000
        items = sum(m.items_processed for m in samples)
        baseline = self.baselines.get(op_type)

        if baseline and average > 0:
            efficiency = max(0.0, min(100.0, baseline / average * 100))
        else:
            efficiency = 100.0

        return LatencyStats(
            operation_type=op_type,
            count=len(durations),
            average=average,
            median=percentile(durations, 50),
            p95=percentile(durations, 95),
            p99=percentile(durations, 99),
            min=min(durations),
            max=max(durations),
            std_dev=population_std_dev(durations),
            trend=latency_trend(durations),
            throughput=items / total_seconds if total_seconds > 0 else 0.0,
            efficiency=efficiency,
            success_rate=sum(1 for m in samples if m.success) / len(samples) * 100
        )

    def _check_latency_alert(self, measurement: LatencyMeasurement) -> None:
        op_type = measurement.operation_type
        duration = measurement.duration_ms

        if duration >= self.critical_threshold_ms:
            severity = AlertSeverity.CRITICAL
        elif duration >= self.alert_threshold_ms:
            severity = AlertSeverity.WARNING
        else:
            self.alerts.clear(op_type, HIGH_LATENCY)
            return

        recommendations = self.generate_recommendations(op_type) or [
            "Check network connectivity and sync engine load"
        ]
        threshold = self.critical_threshold_ms if severity == AlertSeverity.CRITICAL else self.alert_threshold_ms
        message = (
            f"{op_type} took {duration / 1000:.1f}s (threshold {threshold / 1000:.0f}s). "
            f"Recommended: {'; '.join(recommendations)}"
        )

        self.alerts.raise_alert(
            component=op_type,
            alert_type=HIGH_LATENCY,
            severity=severity,
            message=message,
            metadata={'latency_ms': duration, 'threshold_ms': threshold, 'operation_id': measurement.operation_id},
            recommendations=recommendations
        )
