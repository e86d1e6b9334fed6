"""
Publish/subscribe channel used by the monitors to talk to each other.

Each component owns one EventBus and publishes on it; other components
subscribe with plain callables. Publishing is synchronous: every handler
registered for an event type sees an event before ``publish`` returns, in
registration order, so two events of the same kind are never reordered.
Handlers that need to await I/O should schedule their own task.
"""

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from utils.logging import get_logger

logger = get_logger(__name__)

ALL_EVENTS = "*"


@dataclass
class Event:
    """A published event."""
    event_type: str
    source: str
    payload: Any = None
    timestamp: datetime = field(default_factory=datetime.now)


EventHandler = Callable[[Event], None]


@dataclass
class EventStats:
    """Statistics for a bus."""
    total_events: int = 0
    events_by_type: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    handler_errors: int = 0
    last_event_time: Optional[datetime] = None


class EventBus:
    """Synchronous in-order event bus."""

    def __init__(self, name: str):
        self.name = name
        self.handlers: Dict[str, List[EventHandler]] = defaultdict(list)
        self.stats = EventStats()
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Register a handler for an event type, or ``"*"`` for all events."""
        with self._lock:
            self.handlers[event_type].append(handler)
        logger.debug(f"{self.name}: subscribed {getattr(handler, '__name__', handler)} to {event_type}")

    def unsubscribe(self, event_type: str, handler: EventHandler) -> bool:
        """Remove a handler. Returns False if it was not registered."""
        with self._lock:
            handlers = self.handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)
                return True
        return False

    def publish(self, event_type: str, payload: Any = None) -> Event:
        """Publish an event to all current subscribers."""
        event = Event(event_type=event_type, source=self.name, payload=payload)

        with self._lock:
            handlers = list(self.handlers.get(event_type, [])) + list(self.handlers.get(ALL_EVENTS, []))
            self.stats.total_events += 1
            self.stats.events_by_type[event_type] += 1
            self.stats.last_event_time = event.timestamp

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                self.stats.handler_errors += 1
                logger.error(f"Error handling {self.name}.{event_type} in {getattr(handler, '__name__', handler)}: {e}")

        return event

    def handler_count(self, event_type: Optional[str] = None) -> int:
        with self._lock:
            if event_type is None:
                return sum(len(h) for h in self.handlers.values())
            return len(self.handlers.get(event_type, []))

    def get_stats(self) -> Dict[str, Any]:
        """Get bus statistics."""
        return {
            'name': self.name,
            'total_events': self.stats.total_events,
            'events_by_type': dict(self.stats.events_by_type),
            'handler_errors': self.stats.handler_errors,
            'last_event_time': self.stats.last_event_time.isoformat() if self.stats.last_event_time else None
        }
