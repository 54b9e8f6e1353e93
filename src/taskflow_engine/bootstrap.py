"""Runtime wiring for the workflow engine.

``create_workflow`` builds the store, monitor, engine and read path from
settings. Tests pass a store/directory override so no database is needed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta

from taskflow_engine.config.logging_setup import configure_logging
from taskflow_engine.config.settings import Settings, get_settings
from taskflow_engine.storage.base import TaskStore
from taskflow_engine.storage.memory import InMemoryTaskStore
from taskflow_engine.storage.postgres import PostgresTaskStore
from taskflow_engine.workflow.clock import Clock, utc_now
from taskflow_engine.workflow.comments import CommentLog
from taskflow_engine.workflow.engine import WorkflowEngine
from taskflow_engine.workflow.events import TaskEventBus
from taskflow_engine.workflow.identity import (
    ActorDirectory,
    InMemoryActorDirectory,
    SessionIdentity,
)
from taskflow_engine.workflow.monitor import DeadlineMonitor
from taskflow_engine.workflow.queries import TaskQueries
from taskflow_engine.workflow.results import WorkflowResult
from taskflow_engine.workflow.retry import retry_on_conflict

logger = logging.getLogger(__name__)


@dataclass
class WorkflowRuntime:
    settings: Settings
    store: TaskStore
    engine: WorkflowEngine
    queries: TaskQueries
    events: TaskEventBus

    def with_retry(self, operation: Callable[[], WorkflowResult]) -> WorkflowResult:
        """Run ``operation`` with the configured bounded conflict retry."""
        return retry_on_conflict(
            operation,
            max_attempts=self.settings.conflict_max_retries,
            backoff_s=self.settings.conflict_backoff_s,
        )


def build_task_store(settings: Settings) -> TaskStore:
    if settings.storage_backend == "memory":
        return InMemoryTaskStore()
    database_url = settings.resolved_database_url()
    if not database_url:
        raise RuntimeError(
            "Missing database URL. Set TASKFLOW_DATABASE_URL or DATABASE_URL "
            "when TASKFLOW_STORAGE_BACKEND=postgres."
        )
    return PostgresTaskStore(database_url)


def create_workflow(
    *,
    store: TaskStore | None = None,
    directory: ActorDirectory | None = None,
    identity: SessionIdentity | None = None,
    settings_override: Settings | None = None,
    clock: Clock = utc_now,
) -> WorkflowRuntime:
    settings = settings_override or get_settings()
    configure_logging(settings.log_level)

    task_store = store or build_task_store(settings)
    task_store.migrate()

    monitor = DeadlineMonitor(at_risk_window=timedelta(hours=settings.at_risk_window_hours))
    events = TaskEventBus()
    engine = WorkflowEngine(
        task_store,
        directory or InMemoryActorDirectory(),
        identity=identity,
        monitor=monitor,
        comment_log=CommentLog(max_length=settings.max_comment_length),
        events=events,
        clock=clock,
    )
    queries = TaskQueries(task_store, monitor=monitor, clock=clock)
    logger.info(
        "workflow_runtime event=ready app=%s storage_backend=%s",
        settings.app_name,
        type(task_store).__name__,
    )
    return WorkflowRuntime(
        settings=settings,
        store=task_store,
        engine=engine,
        queries=queries,
        events=events,
    )
