"""
Structured error logging for the sync engine.

Every failure reported by the sync engine is classified into a category
and severity, stored in a bounded in-memory history, folded into a
recurring-pattern table and published on the logger's event bus so the
recovery manager can react to it.
"""

import asyncio
import re
import time
import traceback
import uuid
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Tuple

from .events import EventBus
from .exceptions import ErrorCategory, ErrorSeverity
from utils.logging import LogCategory, category_extra, get_logger

logger = get_logger(__name__)

RELATED_ERROR_WINDOW = timedelta(minutes=5)
PATTERN_PREFIX_LENGTH = 50
RECOVERABLE_CATEGORIES = {ErrorCategory.NETWORK, ErrorCategory.TIMEOUT, ErrorCategory.SYSTEM}
TREND_HORIZONS = {'1h': 1, '4h': 4, '24h': 24, '7d': 168}
TREND_CHANGE_THRESHOLD = 10.0  # percent

RecoveryStrategyFunc = Callable[['ErrorEntry'], Awaitable[bool]]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class ClassificationRule:
    """Regex rule mapping error text to a category and severity."""
    pattern: 're.Pattern'
    category: ErrorCategory
    severity: ErrorSeverity

    def matches(self, text: str) -> bool:
        return bool(self.pattern.search(text))


def _rule(pattern: str, category: ErrorCategory, severity: ErrorSeverity) -> ClassificationRule:
    return ClassificationRule(re.compile(pattern, re.IGNORECASE), category, severity)


# Order matters: the first matching rule wins.
DEFAULT_CLASSIFICATION_RULES: List[ClassificationRule] = [
    _rule(r"timeout|timed out", ErrorCategory.TIMEOUT, ErrorSeverity.MEDIUM),
    _rule(r"network|connection|fetch|request|unreachable|offline", ErrorCategory.NETWORK, ErrorSeverity.MEDIUM),
    _rule(r"database|sql|query|transaction|locked", ErrorCategory.DATABASE, ErrorSeverity.HIGH),
    _rule(r"permission|access denied", ErrorCategory.PERMISSION, ErrorSeverity.HIGH),
    _rule(r"auth|login|token|unauthorized|forbidden", ErrorCategory.AUTHENTICATION, ErrorSeverity.HIGH),
    _rule(r"validation|invalid|required|format|schema", ErrorCategory.VALIDATION, ErrorSeverity.LOW),
    _rule(r"transform|mapping|serializ|parse", ErrorCategory.TRANSFORMATION, ErrorSeverity.MEDIUM),
    _rule(r"business rule|constraint violation|insufficient", ErrorCategory.BUSINESS_LOGIC, ErrorSeverity.MEDIUM),
    _rule(r"memory|disk|cpu|system|resource", ErrorCategory.SYSTEM, ErrorSeverity.CRITICAL),
]

CATEGORY_RECOMMENDATIONS = {
    ErrorCategory.NETWORK: "Check network connectivity and remote service availability",
    ErrorCategory.TIMEOUT: "Increase operation timeouts or reduce sync batch sizes",
    ErrorCategory.DATABASE: "Inspect local database locks, integrity and query plans",
    ErrorCategory.AUTHENTICATION: "Verify credentials and token expiry for the remote store",
    ErrorCategory.PERMISSION: "Review row-level permissions for the terminal's role",
    ErrorCategory.VALIDATION: "Review validation rules for records rejected during sync",
    ErrorCategory.TRANSFORMATION: "Check schema mappings between local and remote tables",
    ErrorCategory.SYSTEM: "Check memory, disk and CPU headroom on the terminal",
    ErrorCategory.BUSINESS_LOGIC: "Review business rule violations reported by the remote store",
}


@dataclass
class ErrorContext:
    """Where and while doing what an error happened."""
    component: str = "unknown"
    operation: str = "unknown"
    terminal_id: str = "unknown"
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    sync_operation: Optional[str] = None
    items_being_processed: Optional[int] = None
    queue_depth: Optional[int] = None
    network_status: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'component': self.component,
            'operation': self.operation,
            'terminal_id': self.terminal_id,
            'user_id': self.user_id,
            'session_id': self.session_id,
            'sync_operation': self.sync_operation,
            'items_being_processed': self.items_being_processed,
            'queue_depth': self.queue_depth,
            'network_status': self.network_status,
            'metadata': self.metadata
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ErrorContext':
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class TechnicalDetails:
    """Best-effort details pulled from the exception."""
    error_type: str
    source_file: Optional[str] = None
    source_line: Optional[int] = None
    function: Optional[str] = None


@dataclass
class RecoveryInfo:
    """Auto-recovery bookkeeping for an entry."""
    is_recoverable: bool
    attempts: int = 0
    successful: Optional[bool] = None
    strategy: Optional[str] = None
    duration_ms: Optional[float] = None


@dataclass
class ErrorEntry:
    """A logged failure."""
    error_id: str
    timestamp: datetime
    severity: ErrorSeverity
    category: ErrorCategory
    message: str
    context: ErrorContext
    technical: TechnicalDetails
    recovery: RecoveryInfo
    stack: str = ""
    related_errors: List[str] = field(default_factory=list)
    acknowledged: bool = False
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolution: Optional[str] = None

    @property
    def component(self) -> str:
        return self.context.component

    @property
    def operation(self) -> str:
        return self.context.operation

    @property
    def resolved(self) -> bool:
        return self.resolved_at is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'error_id': self.error_id,
            'timestamp': self.timestamp.isoformat(),
            'severity': self.severity.value,
            'category': self.category.value,
            'message': self.message,
            'stack': self.stack,
            'context': self.context.to_dict(),
            'technical': {
                'error_type': self.technical.error_type,
                'source_file': self.technical.source_file,
                'source_line': self.technical.source_line,
                'function': self.technical.function
            },
            'recovery': {
                'is_recoverable': self.recovery.is_recoverable,
                'attempts': self.recovery.attempts,
                'successful': self.recovery.successful,
                'strategy': self.recovery.strategy,
                'duration_ms': self.recovery.duration_ms
            },
            'related_errors': list(self.related_errors),
            'acknowledged': self.acknowledged,
            'acknowledged_by': self.acknowledged_by,
            'acknowledged_at': _iso(self.acknowledged_at),
            'resolved_at': _iso(self.resolved_at),
            'resolution': self.resolution
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ErrorEntry':
        return cls(
            error_id=data['error_id'],
            timestamp=datetime.fromisoformat(data['timestamp']),
            severity=ErrorSeverity(data['severity']),
            category=ErrorCategory(data['category']),
            message=data['message'],
            stack=data.get('stack', ""),
            context=ErrorContext.from_dict(data.get('context', {})),
            technical=TechnicalDetails(**data['technical']),
            recovery=RecoveryInfo(**data['recovery']),
            related_errors=list(data.get('related_errors', [])),
            acknowledged=data.get('acknowledged', False),
            acknowledged_by=data.get('acknowledged_by'),
            acknowledged_at=_parse(data.get('acknowledged_at')),
            resolved_at=_parse(data.get('resolved_at')),
            resolution=data.get('resolution')
        )


@dataclass
class ErrorPattern:
    """Recurring error aggregated by category and message prefix."""
    pattern_key: str
    category: ErrorCategory
    message_prefix: str
    count: int
    first_seen: datetime
    last_seen: datetime
    frequency: float = 0.0  # events per hour
    trend: str = "stable"
    impact: str = "low"
    components: List[str] = field(default_factory=list)

    def record(self, entry: ErrorEntry) -> None:
        """Fold a new occurrence into the pattern."""
        self.count += 1
        self.first_seen = min(self.first_seen, entry.timestamp)
        self.last_seen = max(self.last_seen, entry.timestamp)
        if entry.component not in self.components:
            self.components.append(entry.component)
        self.impact = _impact_for(entry.severity, self.impact)
        self.refresh()

    def refresh(self) -> None:
        """Recompute frequency and trend from count and time span."""
        hours = (self.last_seen - self.first_seen).total_seconds() / 3600
        self.frequency = self.count / hours if hours > 0 else 0.0

        if self.frequency > 1:
            self.trend = "increasing"
        elif self.frequency < 0.1:
            self.trend = "decreasing"
        else:
            self.trend = "stable"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pattern_key': self.pattern_key,
            'category': self.category.value,
            'message_prefix': self.message_prefix,
            'count': self.count,
            'first_seen': self.first_seen.isoformat(),
            'last_seen': self.last_seen.isoformat(),
            'frequency': self.frequency,
            'trend': self.trend,
            'impact': self.impact,
            'components': list(self.components)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ErrorPattern':
        return cls(
            pattern_key=data['pattern_key'],
            category=ErrorCategory(data['category']),
            message_prefix=data['message_prefix'],
            count=data['count'],
            first_seen=datetime.fromisoformat(data['first_seen']),
            last_seen=datetime.fromisoformat(data['last_seen']),
            frequency=data.get('frequency', 0.0),
            trend=data.get('trend', 'stable'),
            impact=data.get('impact', 'low'),
            components=list(data.get('components', []))
        )


_IMPACT_ORDER = ['low', 'medium', 'high']


def _impact_for(severity: ErrorSeverity, current: str = 'low') -> str:
    if severity == ErrorSeverity.CRITICAL:
        impact = 'high'
    elif severity == ErrorSeverity.HIGH:
        impact = 'medium'
    else:
        impact = 'low'
    return max(impact, current, key=_IMPACT_ORDER.index)


@dataclass
class ErrorTrend:
    """Current-vs-previous window comparison for one horizon."""
    period: str
    current_count: int
    previous_count: int
    current_rate: float
    previous_rate: float
    change_percent: float
    direction: str
    primary_factors: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'period': self.period,
            'current_count': self.current_count,
            'previous_count': self.previous_count,
            'current_rate': self.current_rate,
            'previous_rate': self.previous_rate,
            'change_percent': self.change_percent,
            'direction': self.direction,
            'primary_factors': list(self.primary_factors),
            'recommendations': list(self.recommendations)
        }


class ErrorLogger:
    """Classifies, stores and analyzes sync errors."""

    def __init__(
        self,
        max_in_memory_errors: int = 1000,
        retention_days: int = 30,
        enable_pattern_detection: bool = True,
        enable_auto_recovery: bool = False,
        recovery_timeout_seconds: float = 30.0,
        classification_rules: Optional[List[ClassificationRule]] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.max_in_memory_errors = max_in_memory_errors
        self.retention_days = retention_days
        self.enable_pattern_detection = enable_pattern_detection
        self.enable_auto_recovery = enable_auto_recovery
        self.recovery_timeout_seconds = recovery_timeout_seconds
        self.classification_rules = classification_rules or list(DEFAULT_CLASSIFICATION_RULES)
        self.clock = clock

        self.events = EventBus("error_logger")

        # Storage
        self.errors: Deque[ErrorEntry] = deque(maxlen=max_in_memory_errors)
        self.patterns: Dict[str, ErrorPattern] = {}

        # Recovery strategies by category
        self.recovery_strategies: Dict[ErrorCategory, Tuple[str, RecoveryStrategyFunc]] = {}
        self._recovery_tasks = set()

        # Statistics
        self.error_stats = {
            'total_errors': 0,
            'errors_by_severity': {severity.value: 0 for severity in ErrorSeverity},
            'errors_by_category': {category.value: 0 for category in ErrorCategory},
            'auto_recovery_attempts': 0,
            'auto_recovery_successes': 0
        }

        logger.info("Error logger initialized")

    def log_error(
        self,
        error: BaseException,
        context: Optional[ErrorContext] = None,
        timestamp: Optional[datetime] = None
    ) -> ErrorEntry:
        """
        Log an error with full context.

        Args:
            error: The exception that occurred
            context: Component, operation and terminal information
            timestamp: Override for the entry time, defaults to now

        Returns:
            The stored ErrorEntry
        """
        context = context or ErrorContext()
        message = str(error) or type(error).__name__
        stack = self._format_stack(error)
        category, severity = self.classify(f"{type(error).__name__}: {message}", stack)

        entry = ErrorEntry(
            error_id=str(uuid.uuid4()),
            timestamp=timestamp or self.clock(),
            severity=severity,
            category=category,
            message=message,
            stack=stack,
            context=context,
            technical=self._extract_technical_details(error),
            recovery=RecoveryInfo(is_recoverable=category in RECOVERABLE_CATEGORIES)
        )
        entry.related_errors = self._find_related_errors(entry)

        self.errors.append(entry)

        if self.enable_pattern_detection:
            self._update_pattern(entry)

        self._update_statistics(entry)
        self._log_entry(entry)

        self.events.publish("error_logged", entry)
        if severity == ErrorSeverity.CRITICAL:
            self.events.publish("critical_error", entry)

        if self.enable_auto_recovery and entry.recovery.is_recoverable:
            self._schedule_recovery(entry)

        return entry

    def classify(self, message: str, stack: str = "") -> Tuple[ErrorCategory, ErrorSeverity]:
        """Classify error text. The message is tried before the stack."""
        for text in (message, stack):
            if not text:
                continue
            for rule in self.classification_rules:
                if rule.matches(text):
                    return rule.category, rule.severity
        return ErrorCategory.UNKNOWN, ErrorSeverity.MEDIUM

    def register_recovery_strategy(
        self,
        category: ErrorCategory,
        strategy: RecoveryStrategyFunc,
        name: Optional[str] = None
    ) -> None:
        """Register an async recovery probe for an error category."""
        self.recovery_strategies[category] = (name or getattr(strategy, '__name__', category.value), strategy)
        logger.info(f"Registered recovery strategy for category: {category.value}")

    def get_error(self, error_id: str) -> Optional[ErrorEntry]:
        """Get error by ID."""
        for entry in self.errors:
            if entry.error_id == error_id:
                return entry
        return None

    def get_errors(
        self,
        category: Optional[ErrorCategory] = None,
        severity: Optional[ErrorSeverity] = None,
        component: Optional[str] = None,
        since: Optional[datetime] = None,
        resolved: Optional[bool] = None,
        limit: Optional[int] = None
    ) -> List[ErrorEntry]:
        """Get errors matching a filter, newest first."""
        results = list(self.errors)

        if category:
            results = [e for e in results if e.category == category]

        if severity:
            results = [e for e in results if e.severity == severity]

        if component:
            results = [e for e in results if e.component == component]

        if since:
            results = [e for e in results if e.timestamp >= since]

        if resolved is not None:
            results = [e for e in results if e.resolved == resolved]

        results.sort(key=lambda e: e.timestamp, reverse=True)
        return results[:limit] if limit else results

    def get_error_patterns(self, min_count: int = 1) -> List[ErrorPattern]:
        """Get error patterns, most frequent first."""
        patterns = [p for p in self.patterns.values() if p.count >= min_count]
        return sorted(patterns, key=lambda p: p.count, reverse=True)

    def acknowledge_error(self, error_id: str, acknowledged_by: Optional[str] = None) -> bool:
        """Acknowledge an error. Returns False if unknown or already acknowledged."""
        entry = self.get_error(error_id)
        if entry is None or entry.acknowledged:
            return False

        entry.acknowledged = True
        entry.acknowledged_by = acknowledged_by
        entry.acknowledged_at = self.clock()

        self.events.publish("error_acknowledged", entry)
        return True

    def resolve_error(self, error_id: str, resolution: Optional[str] = None) -> bool:
        """Mark an error resolved. Returns False if unknown or already resolved."""
        entry = self.get_error(error_id)
        if entry is None or entry.resolved:
            return False

        entry.resolved_at = self.clock()
        entry.resolution = resolution

        self.events.publish("error_resolved", entry)
        return True

    def get_error_summary(self, hours: float = 24) -> Dict[str, Any]:
        """
        Summarize errors over a period.

        Args:
            hours: Look-back window

        Returns:
            Counts by category, severity and component, top messages,
            error rate, MTBF, MTTR and auto-recovery rate
        """
        now = self.clock()
        recent = [e for e in self.errors if e.timestamp >= now - timedelta(hours=hours)]

        by_category = Counter(e.category.value for e in recent)
        by_severity = Counter(e.severity.value for e in recent)
        by_component = Counter(e.component for e in recent)
        top_messages = Counter(e.message for e in recent).most_common(10)

        recoverable = [e for e in recent if e.recovery.is_recoverable]
        recovered = [e for e in recoverable if e.recovery.successful]

        return {
            'period_hours': hours,
            'start': (now - timedelta(hours=hours)).isoformat(),
            'end': now.isoformat(),
            'total_errors': len(recent),
            'by_category': dict(by_category),
            'by_severity': dict(by_severity),
            'by_component': dict(by_component),
            'top_errors': [{'message': m, 'count': c} for m, c in top_messages],
            'error_rate': len(recent) / hours if hours > 0 else 0.0,
            'mtbf_seconds': self._mean_time_between_failures(recent),
            'mttr_seconds': self._mean_time_to_recovery(recent),
            'recovery_rate': (len(recovered) / len(recoverable) * 100) if recoverable else 0.0
        }

    def analyze_error_trends(self) -> List[ErrorTrend]:
        """Compare each horizon's current window with the equal-length window before it."""
        now = self.clock()
        trends = []

        for period, hours in TREND_HORIZONS.items():
            span = timedelta(hours=hours)
            current = [e for e in self.errors if now - span < e.timestamp <= now]
            previous = [e for e in self.errors if now - 2 * span < e.timestamp <= now - span]

            if previous:
                change = (len(current) - len(previous)) / len(previous) * 100
            elif current:
                change = 100.0
            else:
                change = 0.0

            if change > TREND_CHANGE_THRESHOLD:
                direction = "worsening"
            elif change < -TREND_CHANGE_THRESHOLD:
                direction = "improving"
            else:
                direction = "stable"

            factors = [c for c, _ in Counter(e.category for e in current).most_common(3)]

            trends.append(ErrorTrend(
                period=period,
                current_count=len(current),
                previous_count=len(previous),
                current_rate=len(current) / hours,
                previous_rate=len(previous) / hours,
                change_percent=round(change, 2),
                direction=direction,
                primary_factors=[c.value for c in factors],
                recommendations=self._trend_recommendations(direction, factors)
            ))

        return trends

    def cleanup_old_errors(self) -> int:
        """Age out errors and patterns past the retention window."""
        cutoff = self.clock() - timedelta(days=self.retention_days)

        before = len(self.errors)
        self.errors = deque((e for e in self.errors if e.timestamp >= cutoff), maxlen=self.max_in_memory_errors)
        removed_errors = before - len(self.errors)

        stale = [key for key, p in self.patterns.items() if p.last_seen < cutoff]
        for key in stale:
            del self.patterns[key]

        if removed_errors or stale:
            logger.info(f"Cleaned up {removed_errors} errors and {len(stale)} patterns older than {self.retention_days} days")
            self.events.publish("errors_cleaned", {'removed_errors': removed_errors, 'removed_patterns': len(stale)})

        return removed_errors

    async def run_maintenance(self) -> None:
        """Periodic pattern aging."""
        self.cleanup_old_errors()

    def export_error_data(self) -> Dict[str, Any]:
        """Export errors and patterns as JSON-serialisable data."""
        return {
            'exported_at': self.clock().isoformat(),
            'errors': [e.to_dict() for e in sorted(self.errors, key=lambda e: e.timestamp)],
            'patterns': [p.to_dict() for p in self.patterns.values()],
            'statistics': self.get_statistics()
        }

    def import_error_data(self, data: Dict[str, Any]) -> int:
        """
        Import errors and patterns previously produced by ``export_error_data``.

        Returns:
            Number of errors imported
        """
        known = {e.error_id for e in self.errors}
        imported = [ErrorEntry.from_dict(d) for d in data.get('errors', []) if d['error_id'] not in known]

        merged = sorted(list(self.errors) + imported, key=lambda e: e.timestamp)
        self.errors = deque(merged, maxlen=self.max_in_memory_errors)

        for pattern_data in data.get('patterns', []):
            pattern = ErrorPattern.from_dict(pattern_data)
            self.patterns[pattern.pattern_key] = pattern

        for entry in imported:
            self._update_statistics(entry)

        logger.info(f"Imported {len(imported)} errors and {len(data.get('patterns', []))} patterns")
        return len(imported)

    def get_statistics(self) -> Dict[str, Any]:
        stats = dict(self.error_stats)
        stats['errors_in_memory'] = len(self.errors)
        stats['patterns'] = len(self.patterns)
        stats['pending_recoveries'] = len(self._recovery_tasks)
        return stats

    async def wait_for_recoveries(self) -> None:
        """Wait for in-flight auto-recovery attempts."""
        if self._recovery_tasks:
            await asyncio.gather(*list(self._recovery_tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel in-flight auto-recovery attempts."""
        tasks = list(self._recovery_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._recovery_tasks.clear()

    # Private methods

    def _format_stack(self, error: BaseException) -> str:
        if error.__traceback__ is None:
            return ""
        return ''.join(traceback.format_exception(type(error), error, error.__traceback__))

    def _extract_technical_details(self, error: BaseException) -> TechnicalDetails:
        details = TechnicalDetails(error_type=type(error).__name__)
        try:
            frames = traceback.extract_tb(error.__traceback__) if error.__traceback__ else []
            if frames:
                last = frames[-1]
                details.source_file = last.filename
                details.source_line = last.lineno
                details.function = last.name
        except Exception as e:
            logger.debug(f"Could not extract traceback details: {e}")
        return details

    def _find_related_errors(self, entry: ErrorEntry) -> List[str]:
        window_start = entry.timestamp - RELATED_ERROR_WINDOW
        return [
            other.error_id for other in self.errors
            if window_start <= other.timestamp <= entry.timestamp
            and (other.component == entry.component or other.operation == entry.operation)
        ]

    def _update_pattern(self, entry: ErrorEntry) -> None:
        prefix = entry.message[:PATTERN_PREFIX_LENGTH]
        key = f"{entry.category.value}_{prefix}"

        pattern = self.patterns.get(key)
        if pattern is None:
            self.patterns[key] = ErrorPattern(
                pattern_key=key,
                category=entry.category,
                message_prefix=prefix,
                count=1,
                first_seen=entry.timestamp,
                last_seen=entry.timestamp,
                impact=_impact_for(entry.severity),
                components=[entry.component]
            )
        else:
            pattern.record(entry)

    def _update_statistics(self, entry: ErrorEntry) -> None:
        self.error_stats['total_errors'] += 1
        self.error_stats['errors_by_severity'][entry.severity.value] += 1
        self.error_stats['errors_by_category'][entry.category.value] += 1

    def _log_entry(self, entry: ErrorEntry) -> None:
        log = {
            ErrorSeverity.LOW: logger.info,
            ErrorSeverity.MEDIUM: logger.warning,
            ErrorSeverity.HIGH: logger.error,
            ErrorSeverity.CRITICAL: logger.critical
        }[entry.severity]

        log(
            f"Error logged: {entry.error_id} - {entry.severity.value} - {entry.category.value} - "
            f"{entry.component}/{entry.operation} - {entry.message}",
            extra=category_extra(LogCategory.ERROR, error_id=entry.error_id,
                                 terminal_id=entry.context.terminal_id)
        )

    def _schedule_recovery(self, entry: ErrorEntry) -> None:
        registered = self.recovery_strategies.get(entry.category)
        if registered is None:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop, skipping auto-recovery for {entry.error_id}")
            return

        name, strategy = registered
        task = loop.create_task(self._attempt_recovery(entry, name, strategy))
        self._recovery_tasks.add(task)
        task.add_done_callback(self._recovery_tasks.discard)

    async def _attempt_recovery(self, entry: ErrorEntry, name: str, strategy: RecoveryStrategyFunc) -> None:
        entry.recovery.attempts += 1
        entry.recovery.strategy = name
        self.error_stats['auto_recovery_attempts'] += 1
        started = time.monotonic()

        try:
            successful = bool(await asyncio.wait_for(strategy(entry), timeout=self.recovery_timeout_seconds))
        except asyncio.TimeoutError:
            logger.warning(f"Auto-recovery {name} timed out for error {entry.error_id}")
            successful = False
        except Exception as e:
            logger.warning(f"Auto-recovery {name} failed for error {entry.error_id}: {e}")
            successful = False

        entry.recovery.successful = successful
        entry.recovery.duration_ms = (time.monotonic() - started) * 1000

        if successful:
            self.error_stats['auto_recovery_successes'] += 1
            logger.info(f"Auto-recovery {name} succeeded for error {entry.error_id}")
            self.events.publish("auto_recovery_success", entry)
        else:
            self.events.publish("auto_recovery_failed", entry)

    def _mean_time_between_failures(self, entries: List[ErrorEntry]) -> Optional[float]:
        if len(entries) < 2:
            return None
        timestamps = sorted(e.timestamp for e in entries)
        return (timestamps[-1] - timestamps[0]).total_seconds() / (len(timestamps) - 1)

    def _mean_time_to_recovery(self, entries: List[ErrorEntry]) -> Optional[float]:
        durations = [(e.resolved_at - e.timestamp).total_seconds() for e in entries if e.resolved_at]
        if not durations:
            return None
        return sum(durations) / len(durations)

    def _trend_recommendations(self, direction: str, factors: List[ErrorCategory]) -> List[str]:
        recommendations = []
        if direction == "worsening":
            recommendations.append("Error rate is rising; review recent deployments and sync configuration")
        for category in factors:
            if category in CATEGORY_RECOMMENDATIONS:
                recommendations.append(CATEGORY_RECOMMENDATIONS[category])
        return recommendations
