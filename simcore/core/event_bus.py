"""Publish-subscribe bus for pipeline notifications.

The engine emits one event when a run starts, one per completed stage and
one when the run completes or fails.  Handlers may be called from worker
threads (see ``CoreEngine.run_simulation_async``), so subscription and
history bookkeeping are guarded by a lock; handlers run outside it.
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Callable

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict], None]

PIPELINE_STARTED = "pipeline.started"
STAGE_COMPLETED = "pipeline.stage_completed"
PIPELINE_COMPLETED = "pipeline.completed"
PIPELINE_FAILED = "pipeline.failed"

# Subscribing to this name receives every event.
WILDCARD = "*"

DEFAULT_MAX_HISTORY = 1000


class EventBus:
    def __init__(self, keep_history: bool = False, max_history: int = DEFAULT_MAX_HISTORY):
        self._handlers: dict = {}
        self._keep_history = keep_history
        # Oldest events are dropped once the history is full.
        self._history: deque = deque(maxlen=max(1, int(max_history)))
        self._lock = threading.Lock()

    def subscribe(self, event: str, handler: EventHandler) -> None:
        with self._lock:
            self._handlers.setdefault(event, []).append(handler)

    def unsubscribe(self, event: str, handler: EventHandler) -> None:
        with self._lock:
            remaining = [h for h in self._handlers.get(event, []) if h is not handler]
            if remaining:
                self._handlers[event] = remaining
            else:
                self._handlers.pop(event, None)

    def emit(self, event: str, data: dict) -> None:
        """Deliver *data* to subscribers of *event* and of :data:`WILDCARD`.

        A failing handler is logged and skipped; it never aborts the run
        that emitted the event.
        """
        with self._lock:
            if self._keep_history:
                self._history.append({
                    "event": event,
                    "data": data,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                })
            handlers = self._handlers.get(event, []) + self._handlers.get(WILDCARD, [])

        for handler in handlers:
            try:
                handler(data)
            except Exception:
                logger.exception("Handler %r failed for %s", handler, event)

    def get_history(self, event: str = "", run_id: str = "") -> list:
        """Recorded events, optionally narrowed to one event name or run."""
        with self._lock:
            history = list(self._history)
        if event:
            history = [h for h in history if h["event"] == event]
        if run_id:
            history = [h for h in history if h["data"].get("run_id") == run_id]
        return history

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()
