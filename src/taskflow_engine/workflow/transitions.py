"""Transition tables for the three task state machines.

Every enum member has an entry; a missing member fails at import time.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TypeVar

from taskflow_engine.errors import InvalidStateTransition
from taskflow_engine.storage.models import (
    AcceptanceStatus,
    EditRequestStatus,
    TaskRecord,
    TaskStatus,
)

StateT = TypeVar("StateT", bound=StrEnum)

ACCEPTANCE_TRANSITIONS: dict[AcceptanceStatus, frozenset[AcceptanceStatus]] = {
    AcceptanceStatus.PENDING: frozenset(
        {
            AcceptanceStatus.ACCEPTED,
            AcceptanceStatus.REJECTED,
            AcceptanceStatus.EXTENSION_REQUESTED,
        }
    ),
    AcceptanceStatus.ACCEPTED: frozenset({AcceptanceStatus.EXTENSION_REQUESTED}),
    AcceptanceStatus.REJECTED: frozenset(),
    AcceptanceStatus.EXTENSION_REQUESTED: frozenset({AcceptanceStatus.ACCEPTED}),
}

# ``none`` is only ever the initial value; resolved requests go straight back
# to ``pending`` on the next request.
EDIT_REQUEST_TRANSITIONS: dict[EditRequestStatus, frozenset[EditRequestStatus]] = {
    EditRequestStatus.NONE: frozenset({EditRequestStatus.PENDING}),
    EditRequestStatus.PENDING: frozenset({EditRequestStatus.APPROVED, EditRequestStatus.REJECTED}),
    EditRequestStatus.APPROVED: frozenset({EditRequestStatus.PENDING}),
    EditRequestStatus.REJECTED: frozenset({EditRequestStatus.PENDING}),
}

TASK_STATUS_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.IN_PROGRESS}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.COMPLETED}),
    TaskStatus.COMPLETED: frozenset(),
}


def _assert_exhaustive(table: dict[StateT, frozenset[StateT]], enum_type: type[StateT]) -> None:
    missing = set(enum_type) - set(table)
    if missing:
        names = ", ".join(sorted(member.value for member in missing))
        raise RuntimeError(f"{enum_type.__name__} transition table is missing: {names}")


_assert_exhaustive(ACCEPTANCE_TRANSITIONS, AcceptanceStatus)
_assert_exhaustive(EDIT_REQUEST_TRANSITIONS, EditRequestStatus)
_assert_exhaustive(TASK_STATUS_TRANSITIONS, TaskStatus)


def can_transition(table: dict[StateT, frozenset[StateT]], current: StateT, target: StateT) -> bool:
    return target in table[current]


def require_acceptance_transition(task: TaskRecord, target: AcceptanceStatus) -> None:
    if not can_transition(ACCEPTANCE_TRANSITIONS, task.acceptance_status, target):
        raise InvalidStateTransition(
            f"Cannot move acceptance status from {task.acceptance_status.value} "
            f"to {target.value}",
            current_state=task.workflow_state(),
        )


def require_edit_request_transition(task: TaskRecord, target: EditRequestStatus) -> None:
    if not can_transition(EDIT_REQUEST_TRANSITIONS, task.edit_request_status, target):
        raise InvalidStateTransition(
            f"Cannot move edit request status from {task.edit_request_status.value} "
            f"to {target.value}",
            current_state=task.workflow_state(),
        )


def require_status_transition(task: TaskRecord, target: TaskStatus) -> None:
    if not can_transition(TASK_STATUS_TRANSITIONS, task.status, target):
        raise InvalidStateTransition(
            f"Cannot move task status from {task.status.value} to {target.value}",
            current_state=task.workflow_state(),
        )


def require_not_completed(task: TaskRecord, operation: str) -> None:
    if task.status is TaskStatus.COMPLETED:
        raise InvalidStateTransition(
            f"Cannot {operation} on a completed task",
            current_state=task.workflow_state(),
        )
