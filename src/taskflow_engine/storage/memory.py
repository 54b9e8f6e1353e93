"""In-memory storage backend for tests and single-process use."""

from __future__ import annotations

import logging
import threading

from taskflow_engine.errors import NotFound, VersionConflict
from taskflow_engine.storage.models import TaskFilter, TaskRecord

logger = logging.getLogger(__name__)


class InMemoryTaskStore:
    """Thread-safe dict-backed store with optimistic version checks.

    Records are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, TaskRecord] = {}
        self._lock = threading.Lock()

    def migrate(self) -> None:
        return None

    def get(self, task_id: str) -> TaskRecord | None:
        with self._lock:
            task = self._tasks.get(task_id)
            return task.model_copy(deep=True) if task else None

    def put(self, record: TaskRecord, *, expected_version: int | None = None) -> TaskRecord:
        with self._lock:
            current = self._tasks.get(record.id)
            if expected_version is None:
                if current is not None:
                    raise VersionConflict(
                        record.id, expected_version=None, actual_version=current.version
                    )
            elif current is None:
                raise NotFound(record.id)
            elif current.version != expected_version:
                logger.info(
                    "task_store event=version_conflict task_id=%s expected=%s actual=%s",
                    record.id,
                    expected_version,
                    current.version,
                )
                raise VersionConflict(
                    record.id,
                    expected_version=expected_version,
                    actual_version=current.version,
                )
            stored = record.model_copy(deep=True)
            self._tasks[record.id] = stored
            return stored.model_copy(deep=True)

    def list(self, task_filter: TaskFilter | None = None) -> list[TaskRecord]:
        task_filter = task_filter or TaskFilter()
        with self._lock:
            matching = [
                task.model_copy(deep=True)
                for task in self._tasks.values()
                if task_filter.matches(task)
            ]
        matching.sort(key=lambda task: task.created_at, reverse=True)
        return matching

    def delete(self, task_id: str) -> bool:
        with self._lock:
            return self._tasks.pop(task_id, None) is not None
