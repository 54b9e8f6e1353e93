"""Typed outcome of a workflow operation."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

from taskflow_engine.errors import WorkflowError
from taskflow_engine.storage.models import TaskRecord


class WorkflowResult(BaseModel):
    """Success carries the committed task; failure carries the typed error."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    ok: bool
    task: TaskRecord | None = None
    error: WorkflowError | None = None

    @classmethod
    def success(cls, task: TaskRecord) -> WorkflowResult:
        return cls(ok=True, task=task)

    @classmethod
    def failure(cls, error: WorkflowError) -> WorkflowResult:
        return cls(ok=False, error=error)

    @property
    def reason(self) -> str | None:
        return self.error.message if self.error is not None else None

    def unwrap(self) -> TaskRecord:
        """Return the task or raise the carried error."""
        if self.error is not None:
            raise self.error
        if self.task is None:
            raise RuntimeError("Successful result carries no task")
        return self.task

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "task": self.task.to_storage_dict() if self.task is not None else None,
            "error": self.error.to_dict() if self.error is not None else None,
        }
