"""Read path used by dashboards.

Reads never take the engine's mutation lock. Monitor flags are recomputed on
every read, so stored flag values are never shown to a caller.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from taskflow_engine.errors import NotFound
from taskflow_engine.storage.base import TaskStore
from taskflow_engine.storage.models import TaskFilter, TaskRecord, TaskStatus, ensure_utc
from taskflow_engine.workflow.clock import Clock, utc_now
from taskflow_engine.workflow.monitor import DeadlineMonitor


class TaskStats(BaseModel):
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    overdue: int = 0
    at_risk: int = 0


class TaskQueries:
    def __init__(
        self,
        store: TaskStore,
        *,
        monitor: DeadlineMonitor | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.monitor = monitor or DeadlineMonitor()
        self._clock = clock

    def get(self, task_id: str, now: datetime | None = None) -> TaskRecord:
        task = self.store.get(task_id)
        if task is None:
            raise NotFound(task_id)
        return self.monitor.refresh(task, self._resolve_now(now))

    def list(
        self,
        task_filter: TaskFilter | None = None,
        now: datetime | None = None,
    ) -> list[TaskRecord]:
        current = self._resolve_now(now)
        return [self.monitor.refresh(task, current) for task in self.store.list(task_filter)]

    def stats(
        self,
        task_filter: TaskFilter | None = None,
        now: datetime | None = None,
    ) -> TaskStats:
        tasks = self.list(task_filter, now)
        return TaskStats(
            total=len(tasks),
            pending=sum(1 for task in tasks if task.status is TaskStatus.PENDING),
            in_progress=sum(1 for task in tasks if task.status is TaskStatus.IN_PROGRESS),
            completed=sum(1 for task in tasks if task.status is TaskStatus.COMPLETED),
            overdue=sum(1 for task in tasks if task.is_overdue),
            at_risk=sum(1 for task in tasks if task.is_at_risk),
        )

    def _resolve_now(self, now: datetime | None) -> datetime:
        if now is not None:
            return ensure_utc(now)
        return ensure_utc(self._clock())
