"""
Abstract interfaces for the collaborators the monitor watches.

The sync engine and both stores live outside this package. Concrete
adapters implement these classes; the monitor only depends on them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from .events import EventBus, EventHandler

T = TypeVar('T')


class QueueItemStatus:
    """Status values for sync queue items."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class QueueItem:
    """A pending change waiting to be synchronized."""
    item_id: str
    operation: str
    created_at: datetime
    retry_count: int = 0
    status: str = QueueItemStatus.PENDING
    updated_at: Optional[datetime] = None
    table_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'item_id': self.item_id,
            'operation': self.operation,
            'created_at': self.created_at.isoformat(),
            'retry_count': self.retry_count,
            'status': self.status,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
            'table_name': self.table_name
        }


@dataclass
class QueueSummary:
    """Aggregate view of the sync queue."""
    pending_count: int
    total_count: int
    oldest_created_at: Optional[datetime] = None
    newest_created_at: Optional[datetime] = None


@dataclass
class SyncEngineStatus:
    """Point-in-time status reported by the sync engine."""
    is_active: bool
    is_online: bool
    queue_depth: int = 0
    last_sync_at: Optional[datetime] = None
    errors: List[str] = field(default_factory=list)
    is_syncing: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_active': self.is_active,
            'is_online': self.is_online,
            'queue_depth': self.queue_depth,
            'last_sync_at': self.last_sync_at.isoformat() if self.last_sync_at else None,
            'errors': list(self.errors),
            'is_syncing': self.is_syncing
        }


@dataclass
class SyncResult:
    """Outcome of one sync run, carried by ``sync_complete`` events."""
    success: bool
    duration_ms: float
    items_uploaded: int = 0
    items_downloaded: int = 0
    bytes_transferred: int = 0
    retry_count: int = 0
    operation_type: str = "full_sync"
    errors: List[str] = field(default_factory=list)
    completed_at: datetime = field(default_factory=datetime.now)

    @property
    def items_processed(self) -> int:
        return self.items_uploaded + self.items_downloaded


class SyncEngine(ABC):
    """
    Interface of the offline-first sync engine.

    Implementations publish ``sync_complete``, ``sync_error``,
    ``queue_updated``, ``operation_started`` and ``operation_completed``
    on ``self.events``.
    """

    def __init__(self):
        self.events = EventBus(type(self).__name__)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Register a handler for an engine event."""
        self.events.subscribe(event_type, handler)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        self.events.unsubscribe(event_type, handler)

    @abstractmethod
    async def start(self) -> None:
        """Start periodic synchronization."""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Stop periodic synchronization."""
        pass

    @abstractmethod
    async def perform_full_sync(self) -> SyncResult:
        """Run one full upload/download cycle."""
        pass

    @abstractmethod
    def get_status(self) -> SyncEngineStatus:
        """Get the current engine status."""
        pass


class LocalStore(ABC):
    """Interface to the local embedded database that holds the sync queue."""

    @abstractmethod
    async def ping(self) -> None:
        """
        Run a trivial query.

        Raises:
            Exception: if the store is unreachable
        """
        pass

    @abstractmethod
    async def get_queue_summary(self) -> QueueSummary:
        """Get pending count and oldest/newest creation timestamps."""
        pass

    @abstractmethod
    async def list_queue_items(
        self,
        status: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[QueueItem]:
        """
        List queue items, oldest first.

        Args:
            status: Only return items with this status
            limit: Maximum number of items

        Returns:
            List of queue items
        """
        pass

    @abstractmethod
    async def delete_queue_items(self, predicate: Callable[[QueueItem], bool]) -> int:
        """
        Delete queue items matching a predicate.

        Returns:
            Number of deleted items
        """
        pass


class RemoteStore(ABC):
    """Interface to the remote relational database."""

    @abstractmethod
    async def ping(self) -> float:
        """
        Run a trivial query against the remote store.

        Returns:
            Round-trip latency in milliseconds
        """
        pass

    async def reconnect(self) -> None:
        """Re-establish the connection. Defaults to a ping."""
        await self.ping()


class Capability(Generic[T]):
    """
    An optional collaborator that is either present or explicitly absent.

    Callers check ``is_present`` and handle the absent case themselves
    instead of passing ``None`` around.
    """

    __slots__ = ('_value', 'reason')

    def __init__(self, value: Optional[T], reason: str = "not configured"):
        self._value = value
        self.reason = reason

    @classmethod
    def present(cls, value: T) -> 'Capability[T]':
        if value is None:
            raise ValueError("present capability requires a value")
        return cls(value)

    @classmethod
    def absent(cls, reason: str = "not configured") -> 'Capability[T]':
        return cls(None, reason)

    @classmethod
    def of(cls, value: Optional[T]) -> 'Capability[T]':
        return cls.absent() if value is None else cls.present(value)

    @property
    def is_present(self) -> bool:
        return self._value is not None

    @property
    def value(self) -> T:
        if self._value is None:
            raise LookupError(f"capability is absent: {self.reason}")
        return self._value

    def __repr__(self) -> str:
        if self.is_present:
            return f"Capability.present({self._value!r})"
        return f"Capability.absent({self.reason!r})"
