"""Storage backends and models."""

from taskflow_engine.storage.base import TaskStore
from taskflow_engine.storage.memory import InMemoryTaskStore
from taskflow_engine.storage.models import (
    AcceptanceStatus,
    EditRequestStatus,
    TaskComment,
    TaskFilter,
    TaskPriority,
    TaskRecord,
    TaskStatus,
)
from taskflow_engine.storage.postgres import PostgresTaskStore

__all__ = [
    "AcceptanceStatus",
    "EditRequestStatus",
    "InMemoryTaskStore",
    "PostgresTaskStore",
    "TaskComment",
    "TaskFilter",
    "TaskPriority",
    "TaskRecord",
    "TaskStatus",
    "TaskStore",
]
