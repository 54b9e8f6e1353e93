"""Error taxonomy shared by the workflow engine and storage backends.

Business-rule failures subclass ``WorkflowError`` and are returned to callers
inside a ``WorkflowResult``. Infrastructure failures subclass ``StorageError``
and propagate as ordinary exceptions.
"""

from __future__ import annotations

from typing import Any


class WorkflowError(Exception):
    """Base class for failures the caller is expected to explain to a user."""

    code = "workflow_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ValidationError(WorkflowError):
    """Missing or malformed input."""

    code = "validation_error"

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["field"] = self.field
        return payload


class UnauthorizedTransition(WorkflowError):
    """Actor is not the assignee/approver permitted for this operation."""

    code = "unauthorized_transition"


class InvalidStateTransition(WorkflowError):
    """Current state does not admit the requested operation."""

    code = "invalid_state_transition"

    def __init__(self, message: str, *, current_state: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.current_state = dict(current_state or {})

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["current_state"] = dict(self.current_state)
        return payload


class NotFound(WorkflowError):
    """Task id is unknown to the store."""

    code = "not_found"

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class VersionConflict(WorkflowError):
    """A concurrent writer committed first; reload and retry."""

    code = "version_conflict"

    def __init__(
        self,
        task_id: str,
        *,
        expected_version: int | None,
        actual_version: int | None,
    ) -> None:
        super().__init__(
            f"Task {task_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )
        self.task_id = task_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class StorageError(RuntimeError):
    """Store-layer I/O failure (connection loss, timeouts, driver errors)."""
