"""
Error taxonomy and contract-violation exceptions for the sync health monitor.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict


class ErrorSeverity(Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification."""
    NETWORK = "network"
    DATABASE = "database"
    TRANSFORMATION = "transformation"
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    PERMISSION = "permission"
    TIMEOUT = "timeout"
    SYSTEM = "system"
    BUSINESS_LOGIC = "business_logic"
    UNKNOWN = "unknown"


class MonitoringException(Exception):
    """Base exception for sync health monitor errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        recoverable: bool = True,
        metadata: Dict[str, Any] = None
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.recoverable = recoverable
        self.metadata = metadata or {}
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'error': type(self).__name__,
            'message': self.message,
            'category': self.category.value,
            'severity': self.severity.value,
            'recoverable': self.recoverable,
            'metadata': self.metadata,
            'timestamp': self.timestamp.isoformat()
        }


class RecoveryError(MonitoringException):
    """Raised when a recovery request violates the recovery contract."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.BUSINESS_LOGIC)
        kwargs.setdefault('recoverable', False)
        super().__init__(message, **kwargs)


class UnknownScenarioError(RecoveryError):
    """Raised when a recovery scenario type is not in the catalog."""

    def __init__(self, scenario_type: str):
        super().__init__(
            f"Unknown recovery scenario: {scenario_type}",
            metadata={'scenario_type': scenario_type}
        )
        self.scenario_type = scenario_type


class RecoveryLimitError(RecoveryError):
    """Raised when max concurrent recovery sessions are already running."""

    def __init__(self, max_sessions: int):
        super().__init__(
            f"Maximum concurrent recovery sessions reached ({max_sessions})",
            metadata={'max_concurrent_sessions': max_sessions}
        )
        self.max_sessions = max_sessions


class RecoveryInProgressError(RecoveryError):
    """Raised when a session for the same scenario is already active."""

    def __init__(self, scenario_type: str, session_id: str):
        super().__init__(
            f"Recovery already in progress for {scenario_type} (session {session_id})",
            metadata={'scenario_type': scenario_type, 'session_id': session_id}
        )
        self.scenario_type = scenario_type
        self.session_id = session_id


class SessionNotFoundError(RecoveryError):
    """Raised when a recovery session id is unknown."""

    def __init__(self, session_id: str):
        super().__init__(
            f"Recovery session not found: {session_id}",
            metadata={'session_id': session_id}
        )
        self.session_id = session_id


class UnknownRecoveryActionError(MonitoringException):
    """Raised when a manual recovery action id is unknown."""

    def __init__(self, action_id: str):
        super().__init__(
            f"Recovery action not found: {action_id}",
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.LOW,
            recoverable=False,
            metadata={'action_id': action_id}
        )
        self.action_id = action_id
