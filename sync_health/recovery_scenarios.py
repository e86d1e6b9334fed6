"""
Built-in recovery scenario catalog.
"""

import asyncio
import dataclasses
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from .actions import ActionType, RecoveryAction, RecoveryActionResult
from .interfaces import QueueItemStatus
from .recovery_models import (
    BackoffType, DetectionCriteria, RecoveryContext, RecoveryScenario,
    RecoveryStrategy, SystemSnapshot
)
from utils.logging import get_logger

logger = get_logger(__name__)

NETWORK_DISCONNECTION = "network_disconnection"
SYNC_QUEUE_STALLED = "sync_queue_stalled"

ConnectivityProbe = Callable[[], Awaitable[bool]]


def http_connectivity_probe(url: str, timeout_seconds: float = 10.0) -> ConnectivityProbe:
    """Build a probe that sends a HEAD request and treats any non-5xx reply as connected."""
    async def probe() -> bool:
        async with httpx.AsyncClient(timeout=timeout_seconds, follow_redirects=True) as client:
            response = await client.head(url)
        return response.status_code < 500
    return probe


def network_disconnection_scenario(connectivity_probe: ConnectivityProbe) -> RecoveryScenario:
    """Lost connection to the remote store."""

    async def check_network(context: RecoveryContext) -> RecoveryActionResult:
        try:
            connected = await connectivity_probe()
        except (httpx.HTTPError, OSError) as e:
            return RecoveryActionResult('check_network', False, f"No internet connectivity: {e}")

        if connected:
            return RecoveryActionResult('check_network', True, "Internet connectivity confirmed")
        return RecoveryActionResult('check_network', False, "Connectivity check returned an error status")

    async def reconnect_services(context: RecoveryContext) -> RecoveryActionResult:
        remote = context.services.remote_store
        if not remote.is_present:
            return RecoveryActionResult('reconnect_services', True,
                                        f"Remote store {remote.reason}, nothing to reconnect")

        await remote.value.reconnect()
        latency_ms = await remote.value.ping()
        return RecoveryActionResult('reconnect_services', True, "Remote store connection re-established",
                                    details={'latency_ms': latency_ms})

    async def resume_sync(context: RecoveryContext) -> RecoveryActionResult:
        engine = context.services.engine
        await engine.start()
        status = engine.get_status()
        if status.is_active:
            return RecoveryActionResult('resume_sync', True, "Sync engine resumed",
                                        details={'is_online': status.is_online})
        return RecoveryActionResult('resume_sync', False, "Sync engine failed to resume")

    def engine_offline(snapshot: SystemSnapshot) -> bool:
        return snapshot.engine_status is not None and not snapshot.engine_status.is_online

    return RecoveryScenario(
        scenario_type=NETWORK_DISCONNECTION,
        name="Network Disconnection Recovery",
        description="Restore connectivity to the remote store and resume synchronization",
        detection=DetectionCriteria(
            error_patterns=(re.compile(r"network|connection|timeout|fetch failed", re.IGNORECASE),),
            conditions=(engine_offline,),
            time_window_seconds=300.0,
            min_occurrences=3
        ),
        strategy=RecoveryStrategy(
            auto_execute=True,
            max_attempts=5,
            backoff=BackoffType.EXPONENTIAL,
            base_delay_seconds=5.0,
            max_delay_seconds=60.0,
            timeout_seconds=120.0
        ),
        actions=(
            RecoveryAction('check_network', "Check Network Connectivity",
                           "Verify basic internet connectivity", ActionType.DIAGNOSTIC,
                           check_network, critical=False, timeout_seconds=30.0),
            RecoveryAction('reconnect_services', "Reconnect to Services",
                           "Re-establish the remote store connection", ActionType.CORRECTIVE,
                           reconnect_services, critical=True, timeout_seconds=60.0),
            RecoveryAction('resume_sync', "Resume Synchronization",
                           "Restart sync operations", ActionType.CORRECTIVE,
                           resume_sync, critical=True, timeout_seconds=120.0,
                           prerequisites=('reconnect_services',)),
        )
    )


def sync_queue_stalled_scenario(
    stuck_item_retry_threshold: int = 3,
    stalled_queue_depth: int = 50,
    stale_sync_hours: float = 2.0,
    restart_delay_seconds: float = 5.0
) -> RecoveryScenario:
    """Queue items are piling up and not being processed."""

    async def analyze_queue(context: RecoveryContext) -> RecoveryActionResult:
        items = await context.services.local_store.list_queue_items(status=QueueItemStatus.PENDING)
        stuck = [i for i in items if i.retry_count > stuck_item_retry_threshold]

        return RecoveryActionResult(
            'analyze_queue', True,
            f"Found {len(stuck)} stuck items out of {len(items)} pending",
            details={
                'pending': len(items),
                'stuck': len(stuck),
                'stuck_item_ids': [i.item_id for i in stuck[:50]]
            }
        )

    async def restart_sync_engine(context: RecoveryContext) -> RecoveryActionResult:
        engine = context.services.engine
        await engine.stop()
        await asyncio.sleep(restart_delay_seconds)
        await engine.start()

        if engine.get_status().is_active:
            return RecoveryActionResult('restart_sync_engine', True, "Sync engine restarted")
        return RecoveryActionResult('restart_sync_engine', False, "Sync engine did not come back after restart")

    def queue_backed_up(snapshot: SystemSnapshot) -> bool:
        return snapshot.queue_depth > stalled_queue_depth

    def sync_stale(snapshot: SystemSnapshot) -> bool:
        hours = snapshot.hours_since_last_sync
        if hours is None:
            return snapshot.queue_depth > 0
        return hours > stale_sync_hours

    return RecoveryScenario(
        scenario_type=SYNC_QUEUE_STALLED,
        name="Sync Queue Stalled Recovery",
        description="Diagnose stuck queue items and restart the sync engine",
        detection=DetectionCriteria(
            error_patterns=(re.compile(r"queue.*stalled|processing.*stuck|sync.*timeout", re.IGNORECASE),),
            conditions=(queue_backed_up, sync_stale),
            time_window_seconds=600.0,
            min_occurrences=1
        ),
        strategy=RecoveryStrategy(
            auto_execute=True,
            max_attempts=3,
            backoff=BackoffType.LINEAR,
            base_delay_seconds=10.0,
            max_delay_seconds=30.0,
            timeout_seconds=180.0
        ),
        actions=(
            RecoveryAction('analyze_queue', "Analyze Queue",
                           "Find pending items that exceeded the retry limit", ActionType.DIAGNOSTIC,
                           analyze_queue, critical=False, timeout_seconds=30.0),
            RecoveryAction('restart_sync_engine', "Restart Sync Engine",
                           "Stop and restart the sync engine", ActionType.CORRECTIVE,
                           restart_sync_engine, critical=True, timeout_seconds=90.0),
        )
    )


def apply_strategy_overrides(scenario: RecoveryScenario, overrides: Optional[Dict[str, Any]]) -> RecoveryScenario:
    """Return a copy of the scenario with strategy fields replaced."""
    if not overrides:
        return scenario

    values = {k: v for k, v in overrides.items() if k in RecoveryStrategy.__dataclass_fields__}
    if 'backoff' in values and not isinstance(values['backoff'], BackoffType):
        values['backoff'] = BackoffType(values['backoff'])

    unknown = set(overrides) - set(values)
    if unknown:
        logger.warning(f"Ignoring unknown strategy overrides for {scenario.scenario_type}: {sorted(unknown)}")

    return dataclasses.replace(scenario, strategy=dataclasses.replace(scenario.strategy, **values))


def build_default_scenarios(
    connectivity_probe: Optional[ConnectivityProbe] = None,
    connectivity_check_url: str = "https://www.google.com",
    connectivity_timeout_seconds: float = 10.0,
    stuck_item_retry_threshold: int = 3,
    stalled_queue_depth: int = 50,
    stale_sync_hours: float = 2.0,
    restart_delay_seconds: float = 5.0,
    overrides: Optional[Dict[str, Dict[str, Any]]] = None
) -> List[RecoveryScenario]:
    """
    Build the built-in scenario catalog.

    Args:
        connectivity_probe: Replaces the HTTP connectivity check
        connectivity_check_url: URL probed by the default connectivity check
        connectivity_timeout_seconds: Timeout for the default connectivity check
        stuck_item_retry_threshold: Retry count above which a pending item is stuck
        stalled_queue_depth: Queue depth above which the queue counts as backed up
        stale_sync_hours: Hours without a sync after which sync counts as stale
        restart_delay_seconds: Pause between stopping and starting the engine
        overrides: Per-scenario strategy overrides keyed by scenario type

    Returns:
        Scenario list
    """
    probe = connectivity_probe or http_connectivity_probe(connectivity_check_url, connectivity_timeout_seconds)
    overrides = overrides or {}

    scenarios = [
        network_disconnection_scenario(probe),
        sync_queue_stalled_scenario(
            stuck_item_retry_threshold=stuck_item_retry_threshold,
            stalled_queue_depth=stalled_queue_depth,
            stale_sync_hours=stale_sync_hours,
            restart_delay_seconds=restart_delay_seconds
        ),
    ]
    return [apply_strategy_overrides(s, overrides.get(s.scenario_type)) for s in scenarios]
