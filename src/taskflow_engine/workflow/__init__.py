"""Task lifecycle workflow: engine, deadline monitor, comment log, read path."""

from taskflow_engine.workflow.comments import CommentLog
from taskflow_engine.workflow.engine import WorkflowEngine
from taskflow_engine.workflow.events import TaskEvent, TaskEventBus
from taskflow_engine.workflow.identity import (
    Actor,
    ActorDirectory,
    ContextSessionIdentity,
    InMemoryActorDirectory,
    SessionIdentity,
    UserRole,
    authenticated_as,
)
from taskflow_engine.workflow.monitor import DeadlineMonitor, MonitorFlags, parse_duration
from taskflow_engine.workflow.queries import TaskQueries, TaskStats
from taskflow_engine.workflow.requests import CreateTaskRequest, TaskUpdate
from taskflow_engine.workflow.results import WorkflowResult
from taskflow_engine.workflow.retry import retry_on_conflict

__all__ = [
    "Actor",
    "ActorDirectory",
    "CommentLog",
    "ContextSessionIdentity",
    "CreateTaskRequest",
    "DeadlineMonitor",
    "InMemoryActorDirectory",
    "MonitorFlags",
    "SessionIdentity",
    "TaskEvent",
    "TaskEventBus",
    "TaskQueries",
    "TaskStats",
    "TaskUpdate",
    "UserRole",
    "WorkflowEngine",
    "WorkflowResult",
    "authenticated_as",
    "parse_duration",
    "retry_on_conflict",
]
