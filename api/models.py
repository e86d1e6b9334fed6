"""
Pydantic models for API request/response objects.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class HealthState(str, Enum):
    """Overall or per-component health."""
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


class AlertResponse(BaseModel):
    """An active alert."""
    alert_id: str
    alert_type: str
    severity: str = Field(..., description="warning or critical")
    component: str
    message: str
    timestamp: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict)
    recommendations: List[str] = Field(default_factory=list)
    acknowledged: bool = False
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class HealthCheckResponse(BaseModel):
    """Result of one component probe."""
    component: str
    status: HealthState
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    response_time_ms: Optional[float] = None
    timestamp: datetime


class HealthReportResponse(BaseModel):
    """Overall status with latest checks and active alerts."""
    overall: HealthState
    checks: List[HealthCheckResponse]
    alerts: List[AlertResponse]
    last_check: Optional[datetime] = None


class AcknowledgeRequest(BaseModel):
    """Alert acknowledgement."""
    acknowledged_by: Optional[str] = Field(None, description="Operator acknowledging the alert")

    @field_validator('acknowledged_by')
    @classmethod
    def strip_operator(cls, v):
        if v is None:
            return v
        v = v.strip()
        return v or None


class RecoveryActionResultResponse(BaseModel):
    """Outcome of a recovery action."""
    action_id: str
    success: bool
    message: str
    duration_ms: float = 0.0
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime


class RecoveryActionInfo(BaseModel):
    """A runnable recovery action."""
    action_id: str
    name: str
    description: str
    action_type: str
    critical: bool = False
    timeout_seconds: float
    prerequisites: List[str] = Field(default_factory=list)
    has_rollback: bool = False


class SessionResultResponse(BaseModel):
    success: bool
    recovered_fully: bool
    partial_recovery: bool
    message: str


class RecoverySessionResponse(BaseModel):
    """A running or finished recovery session."""
    session_id: str
    scenario: str
    triggered_by: str
    start_time: datetime
    attempt_number: int = 1
    status: str
    end_time: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    action_results: List[RecoveryActionResultResponse] = Field(default_factory=list)
    overall_result: Optional[SessionResultResponse] = None
    success_rate: float = 0.0
    effectiveness_score: int = 0
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TriggerRecoveryRequest(BaseModel):
    """Manual recovery trigger."""
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Stored on the session")


class CancelSessionResponse(BaseModel):
    session_id: str
    cancelled: bool
    reason: str
