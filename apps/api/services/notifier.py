"""In-process change feed for inserted matches and alerts.

Stores publish one event per inserted row; SSE subscribers each get their own
asyncio queue. Publishing is thread-safe because sync endpoints run in the
threadpool while subscribers live on the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Tuple

LOGGER = logging.getLogger(__name__)

HISTORY_SIZE = 200
QUEUE_MAXSIZE = 500


@dataclass(eq=False)
class Subscription:
    loop: asyncio.AbstractEventLoop
    queue: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(maxsize=QUEUE_MAXSIZE))
    tables: Optional[frozenset] = None

    def wants(self, event: Dict[str, Any]) -> bool:
        return self.tables is None or event.get("table") in self.tables


class EventBus:
    def __init__(self, history_size: int = HISTORY_SIZE):
        self._lock = threading.Lock()
        self._subscribers: List[Subscription] = []
        self._history: Deque[Dict[str, Any]] = deque(maxlen=history_size)

    def subscribe(self, tables: Optional[List[str]] = None) -> Subscription:
        """Register a subscriber bound to the running event loop."""
        sub, _ = self.subscribe_with_history(tables, 0)
        return sub

    def subscribe_with_history(
        self, tables: Optional[List[str]] = None, replay: int = 0
    ) -> Tuple[Subscription, List[Dict[str, Any]]]:
        """Subscribe and snapshot up to `replay` recent events in one step.

        Every event lands either in the snapshot or in the queue, never both.
        """
        sub = Subscription(loop=asyncio.get_running_loop(), tables=frozenset(tables) if tables else None)
        with self._lock:
            backlog = self._recent_locked(replay, tables)
            self._subscribers.append(sub)
        return sub, backlog

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def recent(self, limit: int, tables: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        with self._lock:
            return self._recent_locked(limit, tables)

    def _recent_locked(self, limit: int, tables: Optional[List[str]]) -> List[Dict[str, Any]]:
        if limit <= 0:
            return []
        events = [e for e in self._history if not tables or e.get("table") in tables]
        return events[-limit:]

    def publish(self, table: str, record: Dict[str, Any], event_type: str = "INSERT") -> Dict[str, Any]:
        event = {"table": table, "type": event_type, "record": record}
        with self._lock:
            self._history.append(event)
            subscribers = list(self._subscribers)
        for sub in subscribers:
            if sub.wants(event):
                self._deliver(sub, event)
        return event

    def _deliver(self, sub: Subscription, event: Dict[str, Any]) -> None:
        def _put() -> None:
            try:
                sub.queue.put_nowait(event)
            except asyncio.QueueFull:
                LOGGER.warning("Dropping %s event for slow subscriber", event.get("table"))

        try:
            sub.loop.call_soon_threadsafe(_put)
        except RuntimeError:
            # Loop already closed; the subscriber is gone.
            self.unsubscribe(sub)

    def clear(self) -> None:
        with self._lock:
            self._history.clear()


BUS = EventBus()
