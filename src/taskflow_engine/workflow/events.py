"""Commit notifications.

Subscribers learn about committed mutations as they happen instead of
re-reading the store on a timer. Each event carries the committed version so
a reader can tell whether its copy is stale.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class TaskEvent(BaseModel):
    task_id: str
    kind: str
    actor_id: str
    version: int
    occurred_at: datetime


TaskEventListener = Callable[[TaskEvent], None]


class TaskEventBus:
    def __init__(self) -> None:
        self._listeners: list[TaskEventListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: TaskEventListener) -> Callable[[], None]:
        """Register ``listener``; the returned callable unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: TaskEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                # The commit already happened; a broken subscriber must not undo it.
                logger.exception(
                    "task_event event=listener_failed task_id=%s kind=%s version=%s",
                    event.task_id,
                    event.kind,
                    event.version,
                )
