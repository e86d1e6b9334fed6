"""
Pytest configuration and shared fixtures.
"""

import os
from collections import namedtuple
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import pytest

from configs.settings import get_settings
from infrastructure.container import MonitoringContainer
from sync_health.alerts import AlertBook
from sync_health.error_logger import ErrorLogger
from sync_health.events import EventBus
from sync_health.interfaces import (
    Capability, LocalStore, QueueItem, QueueItemStatus, QueueSummary,
    RemoteStore, SyncEngine, SyncEngineStatus, SyncResult
)
from sync_health.latency_monitor import LatencyMonitor
from sync_health.queue_monitor import QueueMonitor
from sync_health.sync_monitor import SyncMonitor

DiskUsage = namedtuple("DiskUsage", "total used free")

GB = 1024 ** 3


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 15, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeSyncEngine(SyncEngine):
    """In-memory sync engine."""

    def __init__(self):
        super().__init__()
        self.is_active = True
        self.is_online = True
        self.queue_depth = 0
        self.last_sync_at: Optional[datetime] = None
        self.errors: List[str] = []
        self.start_calls = 0
        self.stop_calls = 0
        self.full_syncs = 0
        self.fail_start = False
        self.stay_inactive = False

    async def start(self) -> None:
        self.start_calls += 1
        if self.fail_start:
            raise RuntimeError("engine failed to start")
        if not self.stay_inactive:
            self.is_active = True

    async def stop(self) -> None:
        self.stop_calls += 1
        self.is_active = False

    async def perform_full_sync(self) -> SyncResult:
        self.full_syncs += 1
        return SyncResult(success=True, duration_ms=250.0, items_uploaded=3, items_downloaded=2)

    def get_status(self) -> SyncEngineStatus:
        return SyncEngineStatus(
            is_active=self.is_active,
            is_online=self.is_online,
            queue_depth=self.queue_depth,
            last_sync_at=self.last_sync_at,
            errors=list(self.errors)
        )


class FakeLocalStore(LocalStore):
    """In-memory local store holding queue items."""

    def __init__(self):
        self.items: List[QueueItem] = []
        self.ping_error: Optional[Exception] = None
        self.pings = 0

    def add_items(self, count: int, created_at: datetime, status: str = QueueItemStatus.PENDING,
                  retry_count: int = 0, operation: str = "insert") -> None:
        start = len(self.items)
        for i in range(count):
            self.items.append(QueueItem(
                item_id=f"item-{start + i}",
                operation=operation,
                created_at=created_at,
                retry_count=retry_count,
                status=status
            ))

    async def ping(self) -> None:
        self.pings += 1
        if self.ping_error:
            raise self.ping_error

    async def get_queue_summary(self) -> QueueSummary:
        pending = [i for i in self.items if i.status == QueueItemStatus.PENDING]
        created = [i.created_at for i in pending]
        return QueueSummary(
            pending_count=len(pending),
            total_count=len(self.items),
            oldest_created_at=min(created) if created else None,
            newest_created_at=max(created) if created else None
        )

    async def list_queue_items(self, status: Optional[str] = None, limit: Optional[int] = None) -> List[QueueItem]:
        items = [i for i in self.items if status is None or i.status == status]
        return items[:limit] if limit else items

    async def delete_queue_items(self, predicate: Callable[[QueueItem], bool]) -> int:
        before = len(self.items)
        self.items = [i for i in self.items if not predicate(i)]
        return before - len(self.items)


class FakeRemoteStore(RemoteStore):
    """Remote store with a configurable ping."""

    def __init__(self, latency_ms: float = 42.0):
        self.latency_ms = latency_ms
        self.ping_error: Optional[Exception] = None
        self.reconnects = 0

    async def ping(self) -> float:
        if self.ping_error:
            raise self.ping_error
        return self.latency_ms

    async def reconnect(self) -> None:
        self.reconnects += 1


def healthy_disk(_path: str) -> DiskUsage:
    return DiskUsage(total=100 * GB, used=40 * GB, free=60 * GB)


@pytest.fixture(scope="session")
def test_settings():
    """Test settings configuration."""
    os.environ["ENVIRONMENT"] = "testing"
    get_settings.cache_clear()
    return get_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine() -> FakeSyncEngine:
    return FakeSyncEngine()


@pytest.fixture
def local_store() -> FakeLocalStore:
    return FakeLocalStore()


@pytest.fixture
def remote_store() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus("test")


@pytest.fixture
def alert_book(event_bus, clock) -> AlertBook:
    return AlertBook(event_bus, cooldown_seconds=300, clock=clock)


@pytest.fixture
def error_logger(clock) -> ErrorLogger:
    return ErrorLogger(max_in_memory_errors=100, retention_days=1, clock=clock)


@pytest.fixture
def latency_monitor(clock) -> LatencyMonitor:
    return LatencyMonitor(alert_threshold_ms=60_000, critical_threshold_ms=120_000,
                          sample_size=100, alert_cooldown_seconds=300, clock=clock)


@pytest.fixture
def queue_monitor(local_store, clock) -> QueueMonitor:
    return QueueMonitor(local_store, depth_threshold=50, processing_rate_threshold=10.0,
                        alert_cooldown_seconds=300, clock=clock)


@pytest.fixture
def sync_monitor(engine, local_store, remote_store, clock) -> SyncMonitor:
    return SyncMonitor(engine, local_store, Capability.of(remote_store),
                       probe_timeout_seconds=1.0, disk_usage_reader=healthy_disk, clock=clock)


async def always_connected() -> bool:
    return True


@pytest.fixture
def container(engine, local_store, remote_store, test_settings, clock) -> MonitoringContainer:
    return MonitoringContainer(engine, local_store, remote_store, settings=test_settings,
                               disk_usage_reader=healthy_disk, connectivity_probe=always_connected,
                               clock=clock)
