"""EventBus -- thread-safe pub/sub for navigation events.

The scheduler publishes to the bus when one is supplied; consumers (a game
adapter, a replay recorder, tests) each get their own bounded queue.
"""

from __future__ import annotations

import queue
import threading

AGENT_FROZEN = "agent_frozen"
NAVIGATION_DEGRADED = "navigation_degraded"
NAVIGATION_COMPLETE = "navigation_complete"


class EventBus:
    """Simple thread-safe pub/sub for pushing events to subscribers."""

    def __init__(self, maxsize: int = 100) -> None:
        self._lock = threading.Lock()
        self._maxsize = maxsize
        self._subscribers: list[tuple[queue.Queue, str | None]] = []

    def subscribe(self, event_type: str | None = None) -> queue.Queue:
        """Subscribe to events of *event_type*, or to every event when None."""
        q: queue.Queue = queue.Queue(maxsize=self._maxsize)
        with self._lock:
            self._subscribers.append((q, event_type))
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            self._subscribers = [(s, f) for s, f in self._subscribers if s is not q]

    def publish(self, event_type: str, data: dict | None = None) -> None:
        msg = {"type": event_type}
        if data is not None:
            msg["data"] = data
        with self._lock:
            for q, event_filter in self._subscribers:
                if event_filter is not None and event_filter != event_type:
                    continue
                try:
                    q.put_nowait(msg)
                except queue.Full:
                    # Drop oldest message to make room
                    try:
                        q.get_nowait()
                    except queue.Empty:
                        pass
                    try:
                        q.put_nowait(msg)
                    except queue.Full:
                        pass
