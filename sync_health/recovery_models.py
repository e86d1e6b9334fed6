"""
Data model for recovery scenarios and sessions.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Pattern, Tuple

from .actions import RecoveryAction, RecoveryActionResult
from .interfaces import Capability, LocalStore, RemoteStore, SyncEngine, SyncEngineStatus


class TriggerSource(Enum):
    """What started a recovery session."""
    MANUAL = "manual"
    AUTOMATIC = "automatic"
    SCHEDULED = "scheduled"


class SessionStatus(Enum):
    """Recovery session lifecycle. Everything except RUNNING is terminal."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class BackoffType(Enum):
    """Delay growth between failed automatic attempts."""
    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class RecoveryStrategy:
    """Retry and timeout policy for a scenario."""
    auto_execute: bool = True
    max_attempts: int = 3
    backoff: BackoffType = BackoffType.EXPONENTIAL
    base_delay_seconds: float = 5.0
    max_delay_seconds: float = 60.0
    timeout_seconds: float = 120.0

    def delay_for(self, failures: int) -> float:
        """Delay before the next automatic attempt after ``failures`` consecutive failures."""
        if failures <= 0:
            return 0.0
        if self.backoff == BackoffType.EXPONENTIAL:
            delay = self.base_delay_seconds * (2 ** (failures - 1))
        elif self.backoff == BackoffType.LINEAR:
            delay = self.base_delay_seconds * failures
        else:
            delay = self.base_delay_seconds
        return min(delay, self.max_delay_seconds)


@dataclass(frozen=True)
class DetectionCriteria:
    """When a scenario applies."""
    error_patterns: Tuple[Pattern, ...] = ()
    conditions: Tuple[Callable[['SystemSnapshot'], bool], ...] = ()
    condition_mode: str = "any"  # "any" or "all"
    time_window_seconds: float = 300.0
    min_occurrences: int = 1

    def matches_text(self, *texts: str) -> bool:
        return any(p.search(t) for p in self.error_patterns for t in texts if t)

    def conditions_met(self, snapshot: 'SystemSnapshot') -> bool:
        if not self.conditions:
            return False
        results = (condition(snapshot) for condition in self.conditions)
        return all(results) if self.condition_mode == "all" else any(results)


@dataclass(frozen=True)
class RecoveryScenario:
    """A named failure pattern with its remediation chain."""
    scenario_type: str
    name: str
    description: str
    detection: DetectionCriteria
    strategy: RecoveryStrategy
    actions: Tuple[RecoveryAction, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'scenario_type': self.scenario_type,
            'name': self.name,
            'description': self.description,
            'detection': {
                'error_patterns': [p.pattern for p in self.detection.error_patterns],
                'condition_count': len(self.detection.conditions),
                'condition_mode': self.detection.condition_mode,
                'time_window_seconds': self.detection.time_window_seconds,
                'min_occurrences': self.detection.min_occurrences
            },
            'strategy': {
                'auto_execute': self.strategy.auto_execute,
                'max_attempts': self.strategy.max_attempts,
                'backoff': self.strategy.backoff.value,
                'base_delay_seconds': self.strategy.base_delay_seconds,
                'max_delay_seconds': self.strategy.max_delay_seconds,
                'timeout_seconds': self.strategy.timeout_seconds
            },
            'actions': [a.to_dict() for a in self.actions]
        }


@dataclass
class SystemSnapshot:
    """System state captured when a session starts or a sweep runs."""
    captured_at: datetime
    engine_status: Optional[SyncEngineStatus]
    queue_depth: int = 0
    last_sync_at: Optional[datetime] = None
    network_status: str = "unknown"
    error_history: List[Any] = field(default_factory=list)

    @property
    def hours_since_last_sync(self) -> Optional[float]:
        if self.last_sync_at is None:
            return None
        return (self.captured_at - self.last_sync_at).total_seconds() / 3600

    @property
    def is_online(self) -> bool:
        return self.network_status == "online"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'captured_at': self.captured_at.isoformat(),
            'engine_status': self.engine_status.to_dict() if self.engine_status else None,
            'queue_depth': self.queue_depth,
            'last_sync_at': self.last_sync_at.isoformat() if self.last_sync_at else None,
            'network_status': self.network_status,
            'recent_errors': len(self.error_history)
        }


@dataclass
class RecoveryServices:
    """Collaborators available to recovery actions."""
    engine: SyncEngine
    local_store: LocalStore
    remote_store: Capability[RemoteStore]
    error_logger: Any = None


@dataclass
class RecoveryContext:
    """Per-session context handed to each action."""
    scenario: RecoveryScenario
    session_id: str
    attempt_number: int
    start_time: datetime
    triggered_by: TriggerSource
    system_state: SystemSnapshot
    services: RecoveryServices
    terminal_id: str = "unknown"
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SessionResult:
    """Overall outcome of a session."""
    success: bool
    recovered_fully: bool
    partial_recovery: bool
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'recovered_fully': self.recovered_fully,
            'partial_recovery': self.partial_recovery,
            'message': self.message
        }


@dataclass
class RecoverySession:
    """One execution of a scenario's action chain."""
    session_id: str
    scenario: str
    triggered_by: TriggerSource
    start_time: datetime
    attempt_number: int = 1
    status: SessionStatus = SessionStatus.RUNNING
    end_time: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    action_results: List[RecoveryActionResult] = field(default_factory=list)
    overall_result: Optional[SessionResult] = None
    success_rate: float = 0.0
    effectiveness_score: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.RUNNING

    def to_dict(self) -> Dict[str, Any]:
        return {
            'session_id': self.session_id,
            'scenario': self.scenario,
            'triggered_by': self.triggered_by.value,
            'start_time': self.start_time.isoformat(),
            'attempt_number': self.attempt_number,
            'status': self.status.value,
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'duration_seconds': self.duration_seconds,
            'action_results': [r.to_dict() for r in self.action_results],
            'overall_result': self.overall_result.to_dict() if self.overall_result else None,
            'success_rate': self.success_rate,
            'effectiveness_score': self.effectiveness_score,
            'metadata': self.metadata
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RecoverySession':
        overall = data.get('overall_result')
        return cls(
            session_id=data['session_id'],
            scenario=data['scenario'],
            triggered_by=TriggerSource(data['triggered_by']),
            start_time=datetime.fromisoformat(data['start_time']),
            attempt_number=data.get('attempt_number', 1),
            status=SessionStatus(data['status']),
            end_time=datetime.fromisoformat(data['end_time']) if data.get('end_time') else None,
            duration_seconds=data.get('duration_seconds'),
            action_results=[RecoveryActionResult.from_dict(r) for r in data.get('action_results', [])],
            overall_result=SessionResult(**overall) if overall else None,
            success_rate=data.get('success_rate', 0.0),
            effectiveness_score=data.get('effectiveness_score', 0),
            metadata=data.get('metadata', {})
        )
