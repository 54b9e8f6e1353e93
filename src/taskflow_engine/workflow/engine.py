"""Workflow engine: the only writer of task workflow fields.

Every operation follows the same path:

1. verify ``actor_id`` against the authenticated session and the directory;
2. take the per-task lock and load the current record;
3. check role and state guards, then compute the field changes;
4. rebuild and re-validate the record, refresh monitor flags, bump version;
5. commit with ``expected_version`` and publish a commit event.

Business-rule failures come back as ``WorkflowResult.failure``; store I/O
errors propagate.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime
from typing import Any
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from taskflow_engine.errors import (
    InvalidStateTransition,
    NotFound,
    UnauthorizedTransition,
    ValidationError,
    WorkflowError,
)
from taskflow_engine.storage.base import TaskStore
from taskflow_engine.storage.models import (
    AcceptanceStatus,
    EditRequestStatus,
    TaskRecord,
    TaskStatus,
    ensure_utc,
)
from taskflow_engine.workflow.clock import Clock, utc_now
from taskflow_engine.workflow.comments import CommentLog
from taskflow_engine.workflow.events import TaskEvent, TaskEventBus
from taskflow_engine.workflow.identity import (
    Actor,
    ActorDirectory,
    ContextSessionIdentity,
    SessionIdentity,
    can_create_for_team,
    is_approver,
    is_assignee,
    is_participant,
)
from taskflow_engine.workflow.monitor import DeadlineMonitor
from taskflow_engine.workflow.requests import (
    CreateTaskRequest,
    TaskUpdate,
    parse_create_request,
    parse_update,
    validation_error_from,
)
from taskflow_engine.workflow.results import WorkflowResult
from taskflow_engine.workflow.transitions import (
    require_acceptance_transition,
    require_edit_request_transition,
    require_not_completed,
    require_status_transition,
)

logger = logging.getLogger(__name__)

Mutation = Callable[[TaskRecord, Actor, datetime], dict[str, Any]]


def _required_text(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required", field=field)
    return text


class WorkflowEngine:
    def __init__(
        self,
        store: TaskStore,
        directory: ActorDirectory,
        *,
        identity: SessionIdentity | None = None,
        monitor: DeadlineMonitor | None = None,
        comment_log: CommentLog | None = None,
        events: TaskEventBus | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.directory = directory
        self.identity = identity or ContextSessionIdentity()
        self.monitor = monitor or DeadlineMonitor()
        self.comment_log = comment_log or CommentLog()
        self.events = events or TaskEventBus()
        self._clock = clock
        # task id -> (lock, number of callers holding or waiting on it)
        self._locks: dict[str, tuple[threading.Lock, int]] = {}
        self._locks_guard = threading.Lock()

    # ---- creation ----

    def create(
        self,
        data: CreateTaskRequest | Mapping[str, Any],
        creator_id: str,
    ) -> WorkflowResult:
        def apply() -> TaskRecord:
            creator = self._authenticate(creator_id)
            request = parse_create_request(data)
            if not can_create_for_team(creator, request.team_id):
                raise UnauthorizedTransition(
                    f"User {creator_id} may not create tasks for team {request.team_id}"
                )
            if self.directory.get_actor(request.assigned_user_id) is None:
                raise ValidationError(
                    f"Unknown assignee {request.assigned_user_id}",
                    field="assigned_user_id",
                )
            deadline = ensure_utc(request.deadline)
            if request.start_date is not None and ensure_utc(request.start_date) > deadline:
                raise ValidationError("start_date must not be after deadline", field="start_date")

            now = self._now()
            try:
                record = TaskRecord(
                    id=str(uuid4()),
                    title=request.title,
                    description=request.description,
                    priority=request.priority,
                    start_date=request.start_date,
                    deadline=deadline,
                    original_deadline=deadline,
                    assigned_user_id=request.assigned_user_id,
                    created_by_id=creator_id,
                    team_id=request.team_id,
                    created_at=now,
                    updated_at=now,
                )
            except PydanticValidationError as exc:
                raise validation_error_from(exc) from exc
            committed = self.store.put(self.monitor.refresh(record, now), expected_version=None)
            self._publish("create", committed, creator_id, now)
            return committed

        return self._run("create", None, creator_id, apply)

    # ---- acceptance ----

    def accept(self, task_id: str, actor_id: str, estimated_time: str | None) -> WorkflowResult:
        def mutation(task: TaskRecord, actor: Actor, now: datetime) -> dict[str, Any]:
            estimate = _required_text(estimated_time, "estimated_time")
            self._require_assignee(actor, task, "accept")
            if task.acceptance_status is not AcceptanceStatus.PENDING:
                raise InvalidStateTransition(
                    f"Cannot accept a task whose acceptance status is "
                    f"{task.acceptance_status.value}",
                    current_state=task.workflow_state(),
                )
            require_acceptance_transition(task, AcceptanceStatus.ACCEPTED)
            require_not_completed(task, "accept")
            changes: dict[str, Any] = {
                "acceptance_status": AcceptanceStatus.ACCEPTED,
                "estimated_time_to_complete": estimate,
                "acceptance_timestamp": task.acceptance_timestamp or now,
            }
            if task.status is TaskStatus.PENDING:
                require_status_transition(task, TaskStatus.IN_PROGRESS)
                changes["status"] = TaskStatus.IN_PROGRESS
            return changes

        return self._mutate("accept", task_id, actor_id, mutation)

    def reject(self, task_id: str, actor_id: str, reason: str | None) -> WorkflowResult:
        def mutation(task: TaskRecord, actor: Actor, now: datetime) -> dict[str, Any]:
            text = _required_text(reason, "reason")
            self._require_assignee(actor, task, "reject")
            require_acceptance_transition(task, AcceptanceStatus.REJECTED)
            return {
                "acceptance_status": AcceptanceStatus.REJECTED,
                "rejection_reason": text,
            }

        return self._mutate("reject", task_id, actor_id, mutation)

    # ---- deadline extensions ----

    def request_extension(
        self,
        task_id: str,
        actor_id: str,
        reason: str | None,
        requested_deadline: datetime | None,
    ) -> WorkflowResult:
        def mutation(task: TaskRecord, actor: Actor, now: datetime) -> dict[str, Any]:
            text = _required_text(reason, "reason")
            if requested_deadline is None:
                raise ValidationError("requested_deadline is required", field="requested_deadline")
            requested = ensure_utc(requested_deadline)
            self._require_assignee(actor, task, "request an extension")
            require_not_completed(task, "request an extension")
            require_acceptance_transition(task, AcceptanceStatus.EXTENSION_REQUESTED)
            if requested <= task.deadline:
                raise ValidationError(
                    "requested_deadline must be later than the current deadline",
                    field="requested_deadline",
                )
            return {
                "acceptance_status": AcceptanceStatus.EXTENSION_REQUESTED,
                "extension_reason": text,
                "requested_deadline": requested,
            }

        return self._mutate("request_extension", task_id, actor_id, mutation)

    def approve_extension(
        self,
        task_id: str,
        approver_id: str,
        new_deadline: datetime | None = None,
    ) -> WorkflowResult:
        def mutation(task: TaskRecord, actor: Actor, now: datetime) -> dict[str, Any]:
            self._require_approver(actor, task, "approve an extension")
            self._require_pending_extension(task)
            deadline = task.deadline
            if new_deadline is not None:
                deadline = ensure_utc(new_deadline)
            elif task.requested_deadline is not None:
                deadline = task.requested_deadline
            return self._resolve_extension(task, now, deadline=deadline)

        return self._mutate("approve_extension", task_id, approver_id, mutation)

    def reject_extension(self, task_id: str, approver_id: str) -> WorkflowResult:
        def mutation(task: TaskRecord, actor: Actor, now: datetime) -> dict[str, Any]:
            self._require_approver(actor, task, "reject an extension")
            self._require_pending_extension(task)
            return self._resolve_extension(task, now, deadline=task.deadline)

        return self._mutate("reject_extension", task_id, approver_id, mutation)

    # ---- edit requests ----

    def request_edit(
        self,
        task_id: str,
        actor_id: str,
        reason: str | None,
        details: str | None,
    ) -> WorkflowResult:
        def mutation(task: TaskRecord, actor: Actor, now: datetime) -> dict[str, Any]:
            reason_text = _required_text(reason, "reason")
            details_text = _required_text(details, "details")
            self._require_assignee(actor, task, "request an edit")
            require_not_completed(task, "request an edit")
            require_edit_request_transition(task, EditRequestStatus.PENDING)
            return {
                "edit_request_status": EditRequestStatus.PENDING,
                "edit_request_reason": reason_text,
                "edit_request_details": details_text,
            }

        return self._mutate("request_edit", task_id, actor_id, mutation)

    def approve_edit(self, task_id: str, approver_id: str) -> WorkflowResult:
        return self._resolve_edit("approve_edit", task_id, approver_id, EditRequestStatus.APPROVED)

    def reject_edit(self, task_id: str, approver_id: str) -> WorkflowResult:
        return self._resolve_edit("reject_edit", task_id, approver_id, EditRequestStatus.REJECTED)

    # ---- status, comments, plain fields ----

    def set_status(
        self,
        task_id: str,
        actor_id: str,
        new_status: TaskStatus | str,
    ) -> WorkflowResult:
        def mutation(task: TaskRecord, actor: Actor, now: datetime) -> dict[str, Any]:
            try:
                target = TaskStatus(new_status)
            except ValueError as exc:
                raise ValidationError(f"Unknown status {new_status!r}", field="status") from exc
            self._require_approver(actor, task, "change the status")
            require_status_transition(task, target)
            return {"status": target}

        return self._mutate("set_status", task_id, actor_id, mutation)

    def add_comment(self, task_id: str, actor_id: str, content: str | None) -> WorkflowResult:
        def mutation(task: TaskRecord, actor: Actor, now: datetime) -> dict[str, Any]:
            if not is_participant(actor, task):
                raise UnauthorizedTransition(
                    f"User {actor.user_id} is not a participant of task {task.id}"
                )
            updated, _comment = self.comment_log.append(task, actor.user_id, content, now)
            return {"comments": updated.comments}

        return self._mutate("add_comment", task_id, actor_id, mutation)

    def update(
        self,
        task_id: str,
        actor_id: str,
        fields: TaskUpdate | Mapping[str, Any],
    ) -> WorkflowResult:
        def mutation(task: TaskRecord, actor: Actor, now: datetime) -> dict[str, Any]:
            changes = parse_update(fields).changes()
            self._require_approver(actor, task, "update")
            team_id = changes.get("team_id")
            if team_id is not None and not can_create_for_team(actor, team_id):
                raise UnauthorizedTransition(
                    f"User {actor.user_id} may not move tasks to team {team_id}"
                )
            assignee = changes.get("assigned_user_id")
            if assignee is not None and self.directory.get_actor(assignee) is None:
                raise ValidationError(f"Unknown assignee {assignee}", field="assigned_user_id")
            start_date = changes.get("start_date")
            if start_date is not None and ensure_utc(start_date) > task.deadline:
                raise ValidationError("start_date must not be after deadline", field="start_date")
            return changes

        return self._mutate("update", task_id, actor_id, mutation)

    # ---- internals ----

    def _resolve_edit(
        self,
        operation: str,
        task_id: str,
        approver_id: str,
        target: EditRequestStatus,
    ) -> WorkflowResult:
        def mutation(task: TaskRecord, actor: Actor, now: datetime) -> dict[str, Any]:
            self._require_approver(actor, task, "resolve an edit request")
            require_edit_request_transition(task, target)
            return {
                "edit_request_status": target,
                "edit_request_reason": None,
                "edit_request_details": None,
            }

        return self._mutate(operation, task_id, approver_id, mutation)

    @staticmethod
    def _require_pending_extension(task: TaskRecord) -> None:
        if task.acceptance_status is not AcceptanceStatus.EXTENSION_REQUESTED:
            raise InvalidStateTransition(
                "No extension request is pending",
                current_state=task.workflow_state(),
            )
        require_acceptance_transition(task, AcceptanceStatus.ACCEPTED)

    @staticmethod
    def _resolve_extension(
        task: TaskRecord, now: datetime, *, deadline: datetime
    ) -> dict[str, Any]:
        return {
            "acceptance_status": AcceptanceStatus.ACCEPTED,
            "deadline": deadline,
            "extension_reason": None,
            "requested_deadline": None,
            # First time the task becomes accepted when the extension was
            # requested straight from pending.
            "acceptance_timestamp": task.acceptance_timestamp or now,
        }

    @staticmethod
    def _require_assignee(actor: Actor, task: TaskRecord, action: str) -> None:
        if not is_assignee(actor, task):
            raise UnauthorizedTransition(
                f"Only the assignee of task {task.id} may {action}"
            )

    @staticmethod
    def _require_approver(actor: Actor, task: TaskRecord, action: str) -> None:
        if not is_approver(actor, task):
            raise UnauthorizedTransition(
                f"Only the creator or team lead of task {task.id} may {action}"
            )

    def _authenticate(self, actor_id: str) -> Actor:
        if not actor_id:
            raise ValidationError("actor_id is required", field="actor_id")
        session_user_id = self.identity.current_user_id()
        if session_user_id is None:
            raise UnauthorizedTransition("No authenticated session")
        if session_user_id != actor_id:
            raise UnauthorizedTransition("Actor does not match the authenticated session")
        actor = self.directory.get_actor(actor_id)
        if actor is None:
            raise UnauthorizedTransition(f"Unknown actor {actor_id}")
        return actor

    def _mutate(
        self,
        operation: str,
        task_id: str,
        actor_id: str,
        mutation: Mutation,
    ) -> WorkflowResult:
        def apply() -> TaskRecord:
            actor = self._authenticate(actor_id)
            with self._task_lock(task_id):
                current = self.store.get(task_id)
                if current is None:
                    raise NotFound(task_id)
                now = self._now()
                changes = mutation(current, actor, now)
                updated = self._evolve(current, changes, now)
                committed = self.store.put(updated, expected_version=current.version)
            self._publish(operation, committed, actor_id, now)
            return committed

        return self._run(operation, task_id, actor_id, apply)

    def _run(
        self,
        operation: str,
        task_id: str | None,
        actor_id: str,
        apply: Callable[[], TaskRecord],
    ) -> WorkflowResult:
        try:
            task = apply()
        except WorkflowError as exc:
            logger.info(
                "workflow event=refused operation=%s task_id=%s actor_id=%s code=%s reason=%s",
                operation,
                task_id,
                actor_id,
                exc.code,
                exc.message,
            )
            return WorkflowResult.failure(exc)
        logger.info(
            "workflow event=committed operation=%s task_id=%s actor_id=%s version=%s "
            "status=%s acceptance_status=%s edit_request_status=%s",
            operation,
            task.id,
            actor_id,
            task.version,
            task.status.value,
            task.acceptance_status.value,
            task.edit_request_status.value,
        )
        return WorkflowResult.success(task)

    def _evolve(self, current: TaskRecord, changes: dict[str, Any], now: datetime) -> TaskRecord:
        payload = current.model_dump()
        payload.update(changes)
        payload["version"] = current.version + 1
        payload["updated_at"] = now
        try:
            candidate = TaskRecord.model_validate(payload)
        except PydanticValidationError as exc:
            raise validation_error_from(exc) from exc
        self._check_audit_fields(current, candidate)
        return self.monitor.refresh(candidate, now)

    @staticmethod
    def _check_audit_fields(current: TaskRecord, candidate: TaskRecord) -> None:
        if candidate.original_deadline != current.original_deadline:
            raise InvalidStateTransition("original_deadline is immutable")
        if (
            current.acceptance_timestamp is not None
            and candidate.acceptance_timestamp != current.acceptance_timestamp
        ):
            raise InvalidStateTransition("acceptance_timestamp is immutable once set")
        existing = len(current.comments)
        if candidate.comments[:existing] != current.comments:
            raise InvalidStateTransition("comments are append-only")
        if (candidate.id, candidate.created_by_id, candidate.created_at) != (
            current.id,
            current.created_by_id,
            current.created_at,
        ):
            raise InvalidStateTransition("task identity fields are immutable")

    def _publish(self, operation: str, task: TaskRecord, actor_id: str, now: datetime) -> None:
        self.events.publish(
            TaskEvent(
                task_id=task.id,
                kind=operation,
                actor_id=actor_id,
                version=task.version,
                occurred_at=now,
            )
        )

    def _now(self) -> datetime:
        return ensure_utc(self._clock())

    @contextmanager
    def _task_lock(self, task_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock, users = self._locks.get(task_id, (threading.Lock(), 0))
            self._locks[task_id] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._locks_guard:
                lock, users = self._locks[task_id]
                if users == 1:
                    del self._locks[task_id]
                else:
                    self._locks[task_id] = (lock, users - 1)
