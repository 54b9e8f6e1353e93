"""Storage interface consumed by the workflow engine."""

from __future__ import annotations

from typing import Protocol

from taskflow_engine.storage.models import TaskFilter, TaskRecord


class TaskStore(Protocol):
    def migrate(self) -> None: ...

    def get(self, task_id: str) -> TaskRecord | None: ...

    def put(self, record: TaskRecord, *, expected_version: int | None = None) -> TaskRecord:
        """Write ``record``.

        ``expected_version=None`` inserts and fails with ``VersionConflict`` if
        the id already exists. Otherwise the stored version must equal
        ``expected_version`` or the write is rejected with ``VersionConflict``.
        Raises ``NotFound`` when updating a task that no longer exists.
        """
        ...

    def list(self, task_filter: TaskFilter | None = None) -> list[TaskRecord]: ...

    def delete(self, task_id: str) -> bool: ...
