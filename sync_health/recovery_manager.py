"""
Scenario-based automated recovery.

The RecoveryManager watches logged errors and monitor alerts, matches them
against the scenario catalog and runs each matching scenario's action chain
as a recovery session. Sessions are bounded by a timeout, scored when they
finish and kept in a bounded history for statistics. Consecutive failures
of a scenario back off automatic triggering until ``max_attempts`` is
reached, after which only manual triggers run it.
"""

import asyncio
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Deque, Dict, List, Optional, Set

from .actions import RecoveryAction, RecoveryActionResult, detach, run_action
from .events import Event, EventBus
from .exceptions import (
    RecoveryInProgressError, RecoveryLimitError, SessionNotFoundError, UnknownScenarioError
)
from .interfaces import Capability, LocalStore, RemoteStore, SyncEngine
from .periodic import PeriodicTask
from .recovery_models import (
    RecoveryContext, RecoveryScenario, RecoveryServices, RecoverySession,
    SessionResult, SessionStatus, SystemSnapshot, TriggerSource
)
from .recovery_scenarios import build_default_scenarios
from .statistics import round_half_up
from utils.logging import (
    LogCategory, category_extra, clear_correlation_id, get_logger, set_correlation_id
)

logger = get_logger(__name__)

STATS_PERIODS = {
    '24h': timedelta(hours=24),
    '7d': timedelta(days=7),
    '30d': timedelta(days=30),
}

SHUTDOWN_REASON = "Recovery manager shutting down"
RECENT_ERROR_LIMIT = 500


@dataclass
class ScenarioState:
    """Automatic-trigger backoff bookkeeping for one scenario."""
    consecutive_failures: int = 0
    next_auto_attempt_at: Optional[datetime] = None
    exhausted: bool = False
    last_session_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'consecutive_failures': self.consecutive_failures,
            'next_auto_attempt_at': self.next_auto_attempt_at.isoformat() if self.next_auto_attempt_at else None,
            'exhausted': self.exhausted,
            'last_session_id': self.last_session_id
        }


class RecoveryManager:
    """Detects failure scenarios and runs their recovery sessions."""

    def __init__(
        self,
        engine: SyncEngine,
        local_store: LocalStore,
        remote_store: Capability[RemoteStore],
        error_logger: Any = None,
        scenarios: Optional[List[RecoveryScenario]] = None,
        enable_auto_recovery: bool = True,
        max_concurrent_sessions: int = 3,
        global_session_timeout_seconds: float = 300.0,
        max_recovery_history: int = 1000,
        success_threshold: float = 0.7,
        detection_interval_seconds: float = 30.0,
        terminal_id: str = "unknown",
        clock: Callable[[], datetime] = datetime.now
    ):
        self.services = RecoveryServices(
            engine=engine,
            local_store=local_store,
            remote_store=remote_store,
            error_logger=error_logger
        )
        self.enable_auto_recovery = enable_auto_recovery
        self.max_concurrent_sessions = max_concurrent_sessions
        self.global_session_timeout_seconds = global_session_timeout_seconds
        self.success_threshold = success_threshold
        self.terminal_id = terminal_id
        self.clock = clock

        catalog = scenarios if scenarios is not None else build_default_scenarios()
        self.scenarios: Dict[str, RecoveryScenario] = {s.scenario_type: s for s in catalog}
        self.scenario_state: Dict[str, ScenarioState] = {t: ScenarioState() for t in self.scenarios}

        self.events = EventBus("recovery_manager")

        self.active_sessions: Dict[str, RecoverySession] = {}
        self.history: Deque[RecoverySession] = deque(maxlen=max_recovery_history)
        self._session_tasks: Dict[str, asyncio.Task] = {}
        self._background_tasks: Set[asyncio.Task] = set()
        self._detached_actions: Set[asyncio.Task] = set()
        self._recent_errors: Deque[Any] = deque(maxlen=RECENT_ERROR_LIMIT)

        self._sweep = PeriodicTask("recovery_detection", detection_interval_seconds,
                                   self.run_detection_sweep, run_immediately=False)
        self._subscriptions: List[tuple] = []

        logger.info(f"Recovery manager initialized with {len(self.scenarios)} scenarios")

    # Lifecycle

    def attach(self, error_events: Optional[EventBus] = None, alert_events: Optional[EventBus] = None) -> None:
        """Listen to ``error_logged`` and ``alert_created`` on the given buses."""
        if error_events is not None:
            error_events.subscribe("error_logged", self._on_error_logged)
            self._subscriptions.append((error_events, "error_logged", self._on_error_logged))
        if alert_events is not None:
            alert_events.subscribe("alert_created", self._on_alert_created)
            self._subscriptions.append((alert_events, "alert_created", self._on_alert_created))

    def detach(self) -> None:
        for bus, event_type, handler in self._subscriptions:
            bus.unsubscribe(event_type, handler)
        self._subscriptions.clear()

    def start(self) -> None:
        """Start the periodic condition sweep. Must be called from a running event loop."""
        if self.enable_auto_recovery:
            self._sweep.start()
        logger.info("Recovery manager started", extra=category_extra(
            LogCategory.RECOVERY, auto_recovery=self.enable_auto_recovery))

    async def stop(self) -> None:
        """Stop the sweep and cancel every running session."""
        await self._sweep.stop()

        for session_id in list(self.active_sessions):
            self.cancel_recovery_session(session_id, SHUTDOWN_REASON)

        pending = list(self._session_tasks.values()) + list(self._background_tasks) + list(self._detached_actions)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        self._session_tasks.clear()
        self._background_tasks.clear()
        self._detached_actions.clear()
        logger.info("Recovery manager stopped")

    # Triggering

    def trigger_recovery(
        self,
        scenario_type: str,
        triggered_by: TriggerSource = TriggerSource.MANUAL,
        metadata: Optional[Dict[str, Any]] = None
    ) -> RecoverySession:
        """
        Start a recovery session for a scenario.

        Manual triggers ignore backoff and exhausted attempts. Must be called
        from a running event loop.

        Args:
            scenario_type: Scenario to run
            triggered_by: What asked for the session
            metadata: Stored on the session

        Returns:
            The running RecoverySession

        Raises:
            UnknownScenarioError: Scenario is not in the catalog
            RecoveryInProgressError: A session for the scenario is already active
            RecoveryLimitError: ``max_concurrent_sessions`` are already running
        """
        scenario = self.scenarios.get(scenario_type)
        if scenario is None:
            raise UnknownScenarioError(scenario_type)

        active = self._active_session_for(scenario_type)
        if active is not None:
            raise RecoveryInProgressError(scenario_type, active.session_id)

        if len(self.active_sessions) >= self.max_concurrent_sessions:
            raise RecoveryLimitError(self.max_concurrent_sessions)

        loop = asyncio.get_running_loop()
        state = self.scenario_state[scenario_type]

        session = RecoverySession(
            session_id=str(uuid.uuid4()),
            scenario=scenario_type,
            triggered_by=triggered_by,
            start_time=self.clock(),
            attempt_number=state.consecutive_failures + 1,
            metadata=dict(metadata or {})
        )
        self.active_sessions[session.session_id] = session
        state.last_session_id = session.session_id

        task = loop.create_task(self._run_session(session, scenario), name=f"recovery-{session.session_id[:8]}")
        self._session_tasks[session.session_id] = task
        task.add_done_callback(lambda _t, sid=session.session_id: self._session_tasks.pop(sid, None))

        logger.info(
            f"Recovery session started: {scenario.name} (attempt {session.attempt_number}, {triggered_by.value})",
            extra=category_extra(LogCategory.RECOVERY, session_id=session.session_id, scenario=scenario_type)
        )
        self.events.publish("recovery_session_started", session)
        return session

    async def run_detection_sweep(self) -> List[RecoverySession]:
        """Evaluate scenario conditions against a fresh snapshot and trigger matches."""
        if not self.enable_auto_recovery:
            return []

        snapshot = await self.capture_snapshot()
        started = []

        for scenario in self.scenarios.values():
            if not self._can_auto_trigger(scenario, snapshot.captured_at):
                continue
            try:
                matched = scenario.detection.conditions_met(snapshot)
            except Exception as e:
                logger.error(f"Detection condition for {scenario.scenario_type} failed: {e}")
                continue
            if matched:
                session = self._start_automatic(scenario, {'trigger': 'condition', 'snapshot': snapshot.to_dict()})
                if session:
                    started.append(session)

        return started

    async def capture_snapshot(self) -> SystemSnapshot:
        """Read engine and queue state for detection and session context."""
        now = self.clock()
        engine_status = None
        try:
            engine_status = self.services.engine.get_status()
        except Exception as e:
            logger.warning(f"Could not read sync engine status: {e}")

        queue_depth = engine_status.queue_depth if engine_status else 0
        try:
            summary = await self.services.local_store.get_queue_summary()
            queue_depth = summary.pending_count
        except Exception as e:
            logger.warning(f"Could not read queue summary: {e}")

        if engine_status is None:
            network_status = "unknown"
        else:
            network_status = "online" if engine_status.is_online else "offline"

        cutoff = now - timedelta(hours=1)
        return SystemSnapshot(
            captured_at=now,
            engine_status=engine_status,
            queue_depth=queue_depth,
            last_sync_at=engine_status.last_sync_at if engine_status else None,
            network_status=network_status,
            error_history=[e for e in self._recent_errors if e.timestamp >= cutoff]
        )

    # Sessions

    async def wait_for_session(self, session_id: str) -> RecoverySession:
        """Wait until a session finishes and return it."""
        task = self._session_tasks.get(session_id)
        if task is not None:
            await asyncio.wait({task})

        session = self.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def get_active_sessions(self) -> List[RecoverySession]:
        return list(self.active_sessions.values())

    def get_session(self, session_id: str) -> Optional[RecoverySession]:
        session = self.active_sessions.get(session_id)
        if session is not None:
            return session
        return next((s for s in self.history if s.session_id == session_id), None)

    def cancel_recovery_session(self, session_id: str, reason: str = "Cancelled by operator") -> bool:
        """
        Cancel a running session. The in-flight action's result is discarded.

        Returns:
            False if the session is not active
        """
        session = self.active_sessions.get(session_id)
        if session is None:
            return False

        result = SessionResult(success=False, recovered_fully=False, partial_recovery=False, message=reason)
        if not self._close(session, SessionStatus.CANCELLED, result):
            return False

        task = self._session_tasks.get(session_id)
        if task is not None and not task.done():
            task.cancel()

        logger.info(f"Recovery session cancelled: {reason}",
                    extra=category_extra(LogCategory.RECOVERY, session_id=session_id, scenario=session.scenario))
        self.events.publish("recovery_session_cancelled", session)
        return True

    def reset_scenario_backoff(self, scenario_type: str) -> None:
        """Clear the failure count so automatic triggering resumes."""
        if scenario_type not in self.scenarios:
            raise UnknownScenarioError(scenario_type)
        last = self.scenario_state[scenario_type].last_session_id
        self.scenario_state[scenario_type] = ScenarioState(last_session_id=last)
        logger.info(f"Backoff reset for {scenario_type}")

    # Queries

    def get_available_scenarios(self) -> List[Dict[str, Any]]:
        return [
            {**scenario.to_dict(), 'state': self.scenario_state[scenario.scenario_type].to_dict()}
            for scenario in self.scenarios.values()
        ]

    def get_recovery_stats(self, period: str = '24h') -> Dict[str, Any]:
        """
        Summarize finished sessions over a period.

        Args:
            period: One of '24h', '7d', '30d'

        Returns:
            Counts, rates, durations and per-scenario breakdown
        """
        if period not in STATS_PERIODS:
            raise ValueError(f"Unknown period {period!r}, expected one of {sorted(STATS_PERIODS)}")

        cutoff = self.clock() - STATS_PERIODS[period]
        sessions = [s for s in self.history if s.start_time >= cutoff]

        successful = [s for s in sessions if s.status == SessionStatus.COMPLETED]
        failed = [s for s in sessions if s.status == SessionStatus.FAILED]
        cancelled = [s for s in sessions if s.status == SessionStatus.CANCELLED]
        timed = [s for s in sessions if s.duration_seconds is not None]

        by_scenario: Dict[str, Dict[str, Any]] = {}
        for scenario_type in sorted({s.scenario for s in sessions}):
            group = [s for s in sessions if s.scenario == scenario_type]
            group_timed = [s.duration_seconds for s in group if s.duration_seconds is not None]
            by_scenario[scenario_type] = {
                'count': len(group),
                'success_rate': _ratio(sum(1 for s in group if s.status == SessionStatus.COMPLETED), len(group)),
                'average_duration_seconds': sum(group_timed) / len(group_timed) if group_timed else 0.0,
                'average_effectiveness': sum(s.effectiveness_score for s in group) / len(group)
            }

        fastest = min(timed, key=lambda s: s.duration_seconds) if timed else None
        slowest = max(timed, key=lambda s: s.duration_seconds) if timed else None

        return {
            'period': period,
            'total_sessions': len(sessions),
            'successful_sessions': len(successful),
            'failed_sessions': len(failed),
            'cancelled_sessions': len(cancelled),
            'success_rate': _ratio(len(successful), len(sessions)),
            'average_duration_seconds': sum(s.duration_seconds for s in timed) / len(timed) if timed else 0.0,
            'by_scenario': by_scenario,
            'fastest_session': _session_brief(fastest),
            'slowest_session': _session_brief(slowest),
            'automated_sessions': sum(1 for s in sessions if s.triggered_by != TriggerSource.MANUAL),
            'manual_sessions': sum(1 for s in sessions if s.triggered_by == TriggerSource.MANUAL),
            'active_sessions': len(self.active_sessions)
        }

    def export_recovery_data(self) -> Dict[str, Any]:
        """Export history, active sessions and backoff state."""
        return {
            'exported_at': self.clock().isoformat(),
            'history': [s.to_dict() for s in self.history],
            'active_sessions': [s.to_dict() for s in self.active_sessions.values()],
            'scenario_state': {t: state.to_dict() for t, state in self.scenario_state.items()}
        }

    def import_recovery_data(self, data: Dict[str, Any]) -> int:
        """
        Load finished sessions and backoff state from an export.

        Returns:
            Number of sessions added to history
        """
        known = {s.session_id for s in self.history}
        imported = 0

        for raw in data.get('history', []):
            session = RecoverySession.from_dict(raw)
            if session.session_id in known or session.is_active:
                continue
            self.history.append(session)
            known.add(session.session_id)
            imported += 1

        for scenario_type, raw in data.get('scenario_state', {}).items():
            if scenario_type not in self.scenario_state:
                continue
            next_at = raw.get('next_auto_attempt_at')
            self.scenario_state[scenario_type] = ScenarioState(
                consecutive_failures=raw.get('consecutive_failures', 0),
                next_auto_attempt_at=datetime.fromisoformat(next_at) if next_at else None,
                exhausted=raw.get('exhausted', False),
                last_session_id=raw.get('last_session_id')
            )

        logger.info(f"Imported {imported} recovery sessions")
        return imported

    # Private methods

    def _active_session_for(self, scenario_type: str) -> Optional[RecoverySession]:
        return next((s for s in self.active_sessions.values() if s.scenario == scenario_type), None)

    def _can_auto_trigger(self, scenario: RecoveryScenario, now: datetime) -> bool:
        if not scenario.strategy.auto_execute:
            return False
        if self._active_session_for(scenario.scenario_type) is not None:
            return False
        if len(self.active_sessions) >= self.max_concurrent_sessions:
            return False

        state = self.scenario_state[scenario.scenario_type]
        if state.exhausted:
            return False
        if state.next_auto_attempt_at is not None and now < state.next_auto_attempt_at:
            return False
        return True

    def _start_automatic(self, scenario: RecoveryScenario, metadata: Dict[str, Any]) -> Optional[RecoverySession]:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop, skipping automatic recovery for {scenario.scenario_type}")
            return None

        try:
            return self.trigger_recovery(scenario.scenario_type, TriggerSource.AUTOMATIC, metadata)
        except (RecoveryInProgressError, RecoveryLimitError) as e:
            logger.debug(f"Automatic recovery not started: {e}")
            return None

    def _matching_errors(self, scenario: RecoveryScenario, now: datetime) -> int:
        cutoff = now - timedelta(seconds=scenario.detection.time_window_seconds)
        return sum(
            1 for entry in self._recent_errors
            if entry.timestamp >= cutoff and scenario.detection.matches_text(entry.message, entry.stack)
        )

    def _on_error_logged(self, event: Event) -> None:
        entry = event.payload
        self._recent_errors.append(entry)

        if not self.enable_auto_recovery:
            return

        now = self.clock()
        for scenario in self.scenarios.values():
            if not scenario.detection.matches_text(entry.message, entry.stack):
                continue
            if not self._can_auto_trigger(scenario, now):
                continue
            occurrences = self._matching_errors(scenario, now)
            if occurrences < scenario.detection.min_occurrences:
                continue

            self._start_automatic(scenario, {
                'trigger': 'error',
                'error_id': entry.error_id,
                'occurrences': occurrences
            })

    def _on_alert_created(self, event: Event) -> None:
        if not self.enable_auto_recovery:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return

        task = loop.create_task(self.run_detection_sweep())
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _run_session(self, session: RecoverySession, scenario: RecoveryScenario) -> None:
        token = set_correlation_id(session.session_id)
        timeout = min(scenario.strategy.timeout_seconds, self.global_session_timeout_seconds)

        try:
            try:
                abort_message = await asyncio.wait_for(self._execute_actions(session, scenario), timeout)
            except asyncio.TimeoutError:
                self._finish(session, f"Recovery session timed out after {timeout:g}s", force_failure=True)
            except Exception as e:
                logger.error(f"Recovery session {session.session_id} crashed: {e}",
                             extra=category_extra(LogCategory.RECOVERY, session_id=session.session_id))
                self._finish(session, f"Recovery session error: {e}", force_failure=True)
            else:
                self._finish(session, abort_message)
        finally:
            clear_correlation_id(token)

    async def _execute_actions(self, session: RecoverySession, scenario: RecoveryScenario) -> Optional[str]:
        context = RecoveryContext(
            scenario=scenario,
            session_id=session.session_id,
            attempt_number=session.attempt_number,
            start_time=session.start_time,
            triggered_by=session.triggered_by,
            system_state=await self._uninterrupted(self.capture_snapshot()),
            services=self.services,
            terminal_id=self.terminal_id,
            metadata=session.metadata
        )
        succeeded: List[RecoveryAction] = []

        for action in scenario.actions:
            if not session.is_active:
                return None

            done_ids = {a.action_id for a in succeeded}
            if any(p not in done_ids for p in action.prerequisites):
                result = RecoveryActionResult(action.action_id, False, "Prerequisites not met")
            elif not self._conditions_hold(action, context):
                result = RecoveryActionResult(action.action_id, False, "Conditions not met")
            else:
                result = await run_action(action, context, self._detached_actions)

            if not session.is_active:
                return None

            session.action_results.append(result)
            self.events.publish("recovery_action_completed", {
                'session_id': session.session_id,
                'scenario': session.scenario,
                'action': action.to_dict(),
                'result': result
            })
            logger.info(
                f"Recovery action {action.action_id}: {'ok' if result.success else 'failed'} - {result.message}",
                extra=category_extra(LogCategory.RECOVERY, session_id=session.session_id,
                                     action_id=action.action_id, success=result.success)
            )

            if result.success:
                succeeded.append(action)
            elif action.critical:
                await self._uninterrupted(self._rollback(succeeded, context))
                return f"Critical action failed: {action.name}"

        return None

    async def _uninterrupted(self, coro):
        """
        Await a store call or rollback that a session cancel must not cut short.

        The cancelled session stops waiting; the call itself runs on detached.
        """
        task = asyncio.ensure_future(coro)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            detach(task, self._detached_actions)
            raise

    def _conditions_hold(self, action: RecoveryAction, context: RecoveryContext) -> bool:
        try:
            return all(condition(context) for condition in action.conditions)
        except Exception as e:
            logger.error(f"Condition check for {action.action_id} failed: {e}")
            return False

    async def _rollback(self, succeeded: List[RecoveryAction], context: RecoveryContext) -> None:
        for action in reversed(succeeded):
            if action.rollback is None:
                continue
            try:
                await asyncio.wait_for(action.rollback(context), action.timeout_seconds)
                logger.info(f"Rolled back {action.action_id}")
            except Exception as e:
                logger.error(f"Rollback of {action.action_id} failed: {e}")

    def _finish(self, session: RecoverySession, abort_message: Optional[str] = None,
                force_failure: bool = False) -> None:
        total = len(session.action_results)
        successful = sum(1 for r in session.action_results if r.success)
        rate = successful / total if total else 0.0

        success = rate >= self.success_threshold and not force_failure
        if abort_message:
            message = abort_message
        elif total and successful == total:
            message = f"All {total} recovery actions succeeded"
        else:
            message = f"{successful}/{total} recovery actions succeeded"

        session.success_rate = rate
        session.effectiveness_score = round_half_up(rate * 100)
        result = SessionResult(
            success=success,
            recovered_fully=rate == 1.0,
            partial_recovery=0.0 < rate < 1.0,
            message=message
        )

        status = SessionStatus.COMPLETED if success else SessionStatus.FAILED
        if not self._close(session, status, result):
            return

        self._update_backoff(session, success)

        log = logger.info if success else logger.warning
        log(f"Recovery session {status.value}: {message} ({successful}/{total} actions)",
            extra=category_extra(LogCategory.RECOVERY, session_id=session.session_id,
                                 scenario=session.scenario, success_rate=rate,
                                 duration_seconds=session.duration_seconds))

        self.events.publish("recovery_session_completed", session)
        if not success:
            self.events.publish("recovery_session_failed", session)

    def _close(self, session: RecoverySession, status: SessionStatus, result: SessionResult) -> bool:
        if not session.is_active:
            return False

        session.status = status
        session.overall_result = result
        session.end_time = self.clock()
        session.duration_seconds = (session.end_time - session.start_time).total_seconds()

        self.active_sessions.pop(session.session_id, None)
        self.history.append(session)
        return True

    def _update_backoff(self, session: RecoverySession, success: bool) -> None:
        scenario = self.scenarios[session.scenario]
        state = self.scenario_state[session.scenario]

        if success:
            state.consecutive_failures = 0
            state.next_auto_attempt_at = None
            state.exhausted = False
            return

        state.consecutive_failures += 1
        if state.consecutive_failures >= scenario.strategy.max_attempts:
            state.exhausted = True
            state.next_auto_attempt_at = None
            logger.warning(
                f"Automatic recovery suspended for {session.scenario} after "
                f"{state.consecutive_failures} consecutive failures",
                extra=category_extra(LogCategory.RECOVERY, scenario=session.scenario)
            )
            self.events.publish("recovery_attempts_exhausted", {
                'scenario_type': session.scenario,
                'consecutive_failures': state.consecutive_failures,
                'last_session_id': session.session_id
            })
        else:
            delay = scenario.strategy.delay_for(state.consecutive_failures)
            state.next_auto_attempt_at = self.clock() + timedelta(seconds=delay)


def _ratio(part: int, whole: int) -> float:
    return part / whole if whole else 0.0


def _session_brief(session: Optional[RecoverySession]) -> Optional[Dict[str, Any]]:
    if session is None:
        return None
    return {
        'session_id': session.session_id,
        'scenario': session.scenario,
        'duration_seconds': session.duration_seconds
    }
