"""
Recovery action contract shared by scenario sessions and manual actions.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple

from utils.logging import get_logger

logger = get_logger(__name__)


class ActionType(Enum):
    """Kinds of recovery action."""
    DIAGNOSTIC = "diagnostic"
    CORRECTIVE = "corrective"
    PREVENTIVE = "preventive"


@dataclass
class RecoveryActionResult:
    """Outcome of one recovery action."""
    action_id: str
    success: bool
    message: str
    duration_ms: float = 0.0
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'action_id': self.action_id,
            'success': self.success,
            'message': self.message,
            'duration_ms': self.duration_ms,
            'details': self.details,
            'timestamp': self.timestamp.isoformat()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RecoveryActionResult':
        return cls(
            action_id=data['action_id'],
            success=data['success'],
            message=data['message'],
            duration_ms=data.get('duration_ms', 0.0),
            details=data.get('details', {}),
            timestamp=datetime.fromisoformat(data['timestamp'])
        )


ActionFunc = Callable[[Any], Awaitable[RecoveryActionResult]]
ActionPredicate = Callable[[Any], bool]


@dataclass(frozen=True)
class RecoveryAction:
    """
    One step of a recovery chain.

    ``execute`` receives the session's RecoveryContext (or None for manual
    actions) and returns a RecoveryActionResult. ``prerequisites`` are ids
    of earlier actions that must have succeeded in the same session.
    """
    action_id: str
    name: str
    description: str
    action_type: ActionType
    execute: ActionFunc
    critical: bool = False
    timeout_seconds: float = 30.0
    prerequisites: Tuple[str, ...] = ()
    conditions: Tuple[ActionPredicate, ...] = ()
    rollback: Optional[Callable[[Any], Awaitable[None]]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'action_id': self.action_id,
            'name': self.name,
            'description': self.description,
            'action_type': self.action_type.value,
            'critical': self.critical,
            'timeout_seconds': self.timeout_seconds,
            'prerequisites': list(self.prerequisites),
            'has_rollback': self.rollback is not None
        }


def _forget_detached(detached: Set[asyncio.Task]) -> Callable[[asyncio.Task], None]:
    def callback(task: asyncio.Task) -> None:
        detached.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Detached recovery action finished with error: {task.exception()}")
    return callback


def detach(task: asyncio.Task, detached: Set[asyncio.Task]) -> None:
    """Keep a reference to an abandoned task until it finishes, then drop its result."""
    detached.add(task)
    task.add_done_callback(_forget_detached(detached))


async def run_action(
    action: RecoveryAction,
    context: Any,
    detached: Set[asyncio.Task],
    timeout_seconds: Optional[float] = None
) -> RecoveryActionResult:
    """
    Execute an action raced against its timeout.

    A timed-out call is not cancelled: it is detached and its eventual
    result is discarded. Exceptions become failure results.

    Args:
        action: Action to run
        context: Passed to ``action.execute``
        detached: Set that keeps abandoned tasks referenced
        timeout_seconds: Override for ``action.timeout_seconds``

    Returns:
        The action result
    """
    timeout = action.timeout_seconds if timeout_seconds is None else timeout_seconds
    started = time.monotonic()
    task = asyncio.ensure_future(action.execute(context))

    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        detach(task, detached)
        raise

    duration_ms = (time.monotonic() - started) * 1000

    if not done:
        detach(task, detached)
        logger.warning(f"Recovery action {action.action_id} timed out after {timeout}s")
        return RecoveryActionResult(
            action_id=action.action_id,
            success=False,
            message=f"Action timed out after {timeout}s",
            duration_ms=duration_ms
        )

    try:
        result = task.result()
    except Exception as e:
        logger.error(f"Recovery action {action.action_id} raised: {e}")
        return RecoveryActionResult(
            action_id=action.action_id,
            success=False,
            message=f"Action failed: {e}",
            duration_ms=duration_ms,
            details={'error_type': type(e).__name__}
        )

    result.duration_ms = duration_ms
    return result
