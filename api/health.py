"""
Health check endpoints and monitoring.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response

from api.dependencies import get_container
from api.models import (
    AcknowledgeRequest, AlertResponse, CancelSessionResponse, HealthReportResponse,
    RecoveryActionInfo, RecoveryActionResultResponse, RecoverySessionResponse,
    TriggerRecoveryRequest
)
from infrastructure.container import MonitoringContainer
from sync_health.exceptions import (
    RecoveryInProgressError, RecoveryLimitError, UnknownRecoveryActionError, UnknownScenarioError
)
from sync_health.sync_monitor import HealthStatus
from utils.logging import get_logger

logger = get_logger(__name__)


def create_health_router(container: Optional[MonitoringContainer] = None) -> APIRouter:
    """
    Build the /health router.

    Args:
        container: Container to serve; when omitted the one attached to
            ``app.state.container`` is used

    Returns:
        APIRouter
    """
    router = APIRouter(prefix="/health", tags=["health"])

    if container is not None:
        def resolve() -> MonitoringContainer:
            return container
    else:
        resolve = get_container

    @router.get("", response_model=HealthReportResponse)
    async def health_check(response: Response, c: MonitoringContainer = Depends(resolve)):
        """Get overall sync health. Returns 503 when any component is critical."""
        report = c.sync_monitor.get_health_status()
        if report.last_check is None:
            report = await c.sync_monitor.force_health_check()

        if report.overall == HealthStatus.CRITICAL:
            response.status_code = 503
        return report.to_dict()

    @router.get("/live")
    async def liveness_probe() -> Dict[str, Any]:
        """Liveness probe - basic service availability."""
        return {"status": "ok", "timestamp": datetime.now().isoformat()}

    @router.get("/overview")
    async def overview(c: MonitoringContainer = Depends(resolve)) -> Dict[str, Any]:
        """Combined view of every monitor."""
        return c.get_overall_health()

    @router.get("/alerts", response_model=List[AlertResponse])
    async def list_alerts(c: MonitoringContainer = Depends(resolve)):
        return [a.to_dict() for a in c.sync_monitor.get_active_alerts()]

    @router.post("/alerts/{alert_id}/acknowledge", response_model=AlertResponse)
    async def acknowledge_alert(
        alert_id: str,
        request: Optional[AcknowledgeRequest] = Body(None),
        c: MonitoringContainer = Depends(resolve)
    ):
        acknowledged_by = request.acknowledged_by if request else None
        if not c.sync_monitor.acknowledge_alert(alert_id, acknowledged_by):
            raise HTTPException(status_code=404, detail=f"Alert not found: {alert_id}")
        return c.sync_monitor.alerts.get(alert_id).to_dict()

    @router.get("/errors/summary")
    async def error_summary(
        hours: float = Query(24, gt=0, description="Look-back window in hours"),
        c: MonitoringContainer = Depends(resolve)
    ) -> Dict[str, Any]:
        return c.error_logger.get_error_summary(hours)

    @router.get("/errors/trends")
    async def error_trends(c: MonitoringContainer = Depends(resolve)) -> List[Dict[str, Any]]:
        return [t.to_dict() for t in c.error_logger.analyze_error_trends()]

    @router.get("/latency")
    async def latency_stats(c: MonitoringContainer = Depends(resolve)) -> Dict[str, Any]:
        return {
            'stats': {op: s.to_dict() for op, s in c.latency_monitor.get_latency_stats().items()},
            'trends': c.latency_monitor.analyze_performance_trends()
        }

    @router.get("/queue")
    async def queue_stats(c: MonitoringContainer = Depends(resolve)) -> Dict[str, Any]:
        latest = c.queue_monitor.get_latest_stats()
        return {
            'current': latest.to_dict() if latest else None,
            'metrics': c.queue_monitor.get_performance_metrics()
        }

    @router.get("/recovery")
    async def recovery_stats(
        period: str = Query("24h", pattern="^(24h|7d|30d)$"),
        c: MonitoringContainer = Depends(resolve)
    ) -> Dict[str, Any]:
        return c.recovery_manager.get_recovery_stats(period)

    @router.get("/recovery/scenarios")
    async def recovery_scenarios(c: MonitoringContainer = Depends(resolve)) -> List[Dict[str, Any]]:
        return c.recovery_manager.get_available_scenarios()

    @router.get("/recovery/sessions", response_model=List[RecoverySessionResponse])
    async def active_sessions(c: MonitoringContainer = Depends(resolve)):
        return [s.to_dict() for s in c.recovery_manager.get_active_sessions()]

    @router.post("/recovery/{scenario}/trigger", response_model=RecoverySessionResponse, status_code=202)
    async def trigger_recovery(
        scenario: str,
        request: Optional[TriggerRecoveryRequest] = Body(None),
        c: MonitoringContainer = Depends(resolve)
    ):
        metadata = request.metadata if request else {}
        try:
            session = c.recovery_manager.trigger_recovery(scenario, metadata=metadata)
        except UnknownScenarioError as e:
            raise HTTPException(status_code=404, detail=e.message)
        except (RecoveryInProgressError, RecoveryLimitError) as e:
            raise HTTPException(status_code=409, detail=e.message)

        logger.info(f"Manual recovery triggered via API: {scenario} ({session.session_id})")
        return session.to_dict()

    @router.delete("/recovery/sessions/{session_id}", response_model=CancelSessionResponse)
    async def cancel_session(
        session_id: str,
        reason: str = Query("Cancelled by operator"),
        c: MonitoringContainer = Depends(resolve)
    ):
        if not c.recovery_manager.cancel_recovery_session(session_id, reason):
            raise HTTPException(status_code=404, detail=f"No active recovery session: {session_id}")
        return {'session_id': session_id, 'cancelled': True, 'reason': reason}

    @router.get("/actions", response_model=List[RecoveryActionInfo])
    async def list_actions(c: MonitoringContainer = Depends(resolve)):
        return [a.to_dict() for a in c.sync_monitor.get_recovery_actions()]

    @router.post("/actions/{action_id}", response_model=RecoveryActionResultResponse)
    async def run_action(action_id: str, c: MonitoringContainer = Depends(resolve)):
        try:
            result = await c.sync_monitor.execute_recovery_action(action_id)
        except UnknownRecoveryActionError as e:
            raise HTTPException(status_code=404, detail=e.message)
        return result.to_dict()

    return router
