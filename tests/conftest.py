from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta
from typing import Any

import pytest

from taskflow_engine.storage.memory import InMemoryTaskStore
from taskflow_engine.storage.models import TaskRecord
from taskflow_engine.workflow.engine import WorkflowEngine
from taskflow_engine.workflow.identity import (
    Actor,
    InMemoryActorDirectory,
    UserRole,
    authenticated_as,
)
from tests.support import (
    ADMIN,
    ASSIGNEE,
    LEAD,
    OTHER_LEAD,
    OTHER_TEAM,
    T0,
    TEAM,
    TEAMMATE,
    FrozenClock,
)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(T0)


@pytest.fixture
def directory() -> InMemoryActorDirectory:
    return InMemoryActorDirectory(
        [
            Actor(user_id=ADMIN, role=UserRole.ADMIN),
            Actor(user_id=LEAD, role=UserRole.TEAM_LEADER, team_id=TEAM),
            Actor(user_id=OTHER_LEAD, role=UserRole.TEAM_LEADER, team_id=OTHER_TEAM),
            Actor(user_id=ASSIGNEE, role=UserRole.USER, team_id=TEAM),
            Actor(user_id=TEAMMATE, role=UserRole.USER, team_id=TEAM),
        ]
    )


@pytest.fixture
def store() -> InMemoryTaskStore:
    return InMemoryTaskStore()


@pytest.fixture
def engine(
    store: InMemoryTaskStore,
    directory: InMemoryActorDirectory,
    clock: FrozenClock,
) -> WorkflowEngine:
    return WorkflowEngine(store, directory, clock=clock)


@pytest.fixture
def create_task(engine: WorkflowEngine) -> Callable[..., TaskRecord]:
    def _create(**overrides: Any) -> TaskRecord:
        payload: dict[str, Any] = {
            "title": "Quarterly report",
            "description": "Compile numbers for Q1",
            "assigned_user_id": ASSIGNEE,
            "team_id": TEAM,
            "deadline": T0 + timedelta(days=10),
        }
        payload.update(overrides)
        with authenticated_as(LEAD):
            result = engine.create(payload, LEAD)
        assert result.ok, result.reason
        return result.unwrap()

    return _create


@pytest.fixture
def accepted_task(
    engine: WorkflowEngine,
    create_task: Callable[..., TaskRecord],
) -> TaskRecord:
    task = create_task()
    with authenticated_as(ASSIGNEE):
        result = engine.accept(task.id, ASSIGNEE, "2 days")
    assert result.ok, result.reason
    return result.unwrap()
