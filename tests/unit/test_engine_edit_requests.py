from __future__ import annotations

from collections.abc import Callable

import pytest

from taskflow_engine.errors import InvalidStateTransition, UnauthorizedTransition, ValidationError
from taskflow_engine.storage.models import EditRequestStatus, TaskRecord, TaskStatus
from taskflow_engine.workflow.engine import WorkflowEngine
from taskflow_engine.workflow.identity import authenticated_as
from tests.support import ADMIN, ASSIGNEE, LEAD, OTHER_LEAD, TEAMMATE


def _request_edit(
    engine: WorkflowEngine,
    task_id: str,
    details: str = "Split into two tasks",
) -> TaskRecord:
    with authenticated_as(ASSIGNEE):
        result = engine.request_edit(task_id, ASSIGNEE, "Scope changed", details)
    assert result.ok, result.reason
    return result.unwrap()


def test_edit_request_round_trip_leaves_other_machines_alone(
    engine: WorkflowEngine,
    accepted_task: TaskRecord,
) -> None:
    requested = _request_edit(engine, accepted_task.id)
    assert requested.edit_request_status is EditRequestStatus.PENDING
    assert requested.edit_request_reason == "Scope changed"
    assert requested.edit_request_details == "Split into two tasks"

    with authenticated_as(LEAD):
        approved = engine.approve_edit(accepted_task.id, LEAD).unwrap()

    assert approved.edit_request_status is EditRequestStatus.APPROVED
    assert approved.edit_request_reason is None
    assert approved.edit_request_details is None
    assert approved.status is accepted_task.status
    assert approved.acceptance_status is accepted_task.acceptance_status
    assert approved.deadline == accepted_task.deadline


def test_rejected_edit_can_be_requested_again(
    engine: WorkflowEngine,
    accepted_task: TaskRecord,
) -> None:
    _request_edit(engine, accepted_task.id)
    with authenticated_as(ADMIN):
        rejected = engine.reject_edit(accepted_task.id, ADMIN).unwrap()
    assert rejected.edit_request_status is EditRequestStatus.REJECTED

    again = _request_edit(engine, accepted_task.id, details="Only drop the appendix")
    assert again.edit_request_status is EditRequestStatus.PENDING
    assert again.edit_request_details == "Only drop the appendix"


def test_edit_request_allowed_before_acceptance(
    engine: WorkflowEngine,
    create_task: Callable[..., TaskRecord],
) -> None:
    task = create_task()
    requested = _request_edit(engine, task.id)
    assert requested.status is TaskStatus.PENDING
    assert requested.edit_request_status is EditRequestStatus.PENDING


def test_second_edit_request_while_pending_is_invalid(
    engine: WorkflowEngine,
    accepted_task: TaskRecord,
) -> None:
    _request_edit(engine, accepted_task.id)
    with authenticated_as(ASSIGNEE):
        result = engine.request_edit(accepted_task.id, ASSIGNEE, "again", "more")
    assert isinstance(result.error, InvalidStateTransition)
    assert result.error.current_state["edit_request_status"] == "pending"


@pytest.mark.parametrize(
    ("reason", "details", "field"),
    [("", "details", "reason"), ("why", "  ", "details")],
)
def test_edit_request_needs_reason_and_details(
    engine: WorkflowEngine,
    accepted_task: TaskRecord,
    reason: str,
    details: str,
    field: str,
) -> None:
    with authenticated_as(ASSIGNEE):
        result = engine.request_edit(accepted_task.id, ASSIGNEE, reason, details)
    assert isinstance(result.error, ValidationError)
    assert result.error.field == field


def test_resolving_without_pending_edit_is_invalid(
    engine: WorkflowEngine,
    accepted_task: TaskRecord,
) -> None:
    with authenticated_as(LEAD):
        approve = engine.approve_edit(accepted_task.id, LEAD)
        reject = engine.reject_edit(accepted_task.id, LEAD)
    assert isinstance(approve.error, InvalidStateTransition)
    assert isinstance(reject.error, InvalidStateTransition)


def test_completed_task_cannot_request_edit(
    engine: WorkflowEngine,
    accepted_task: TaskRecord,
) -> None:
    with authenticated_as(LEAD):
        engine.set_status(accepted_task.id, LEAD, TaskStatus.COMPLETED).unwrap()
    with authenticated_as(ASSIGNEE):
        result = engine.request_edit(accepted_task.id, ASSIGNEE, "late", "details")
    assert isinstance(result.error, InvalidStateTransition)


@pytest.mark.parametrize("actor", [TEAMMATE, LEAD])
def test_only_assignee_may_request_edit(
    engine: WorkflowEngine,
    accepted_task: TaskRecord,
    actor: str,
) -> None:
    with authenticated_as(actor):
        result = engine.request_edit(accepted_task.id, actor, "reason", "details")
    assert isinstance(result.error, UnauthorizedTransition)


@pytest.mark.parametrize("actor", [ASSIGNEE, OTHER_LEAD])
def test_edit_resolution_requires_approver(
    engine: WorkflowEngine,
    accepted_task: TaskRecord,
    actor: str,
) -> None:
    _request_edit(engine, accepted_task.id)
    with authenticated_as(actor):
        result = engine.approve_edit(accepted_task.id, actor)
    assert isinstance(result.error, UnauthorizedTransition)
