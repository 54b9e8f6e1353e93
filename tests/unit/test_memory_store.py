from __future__ import annotations

from datetime import timedelta

import pytest

from taskflow_engine.errors import NotFound, VersionConflict
from taskflow_engine.storage.memory import InMemoryTaskStore
from taskflow_engine.storage.models import TaskFilter, TaskStatus
from tests.support import ASSIGNEE, OTHER_TEAM, T0, TEAMMATE, make_task


def test_put_and_get_round_trip() -> None:
    store = InMemoryTaskStore()
    task = make_task()

    stored = store.put(task)

    assert stored == task
    assert store.get(task.id) == task
    assert store.get("missing") is None


def test_insert_refuses_existing_id() -> None:
    store = InMemoryTaskStore()
    store.put(make_task())

    with pytest.raises(VersionConflict) as exc_info:
        store.put(make_task(title="Duplicate"))

    assert exc_info.value.actual_version == 1
    assert store.get("task-1").title == "Quarterly report"


def test_update_checks_expected_version() -> None:
    store = InMemoryTaskStore()
    task = store.put(make_task())

    store.put(task.model_copy(update={"version": 2, "title": "v2"}), expected_version=1)
    with pytest.raises(VersionConflict) as exc_info:
        store.put(task.model_copy(update={"version": 2, "title": "stale"}), expected_version=1)

    assert exc_info.value.expected_version == 1
    assert exc_info.value.actual_version == 2
    assert store.get(task.id).title == "v2"


def test_update_of_missing_task_is_not_found() -> None:
    store = InMemoryTaskStore()
    with pytest.raises(NotFound):
        store.put(make_task(), expected_version=1)


def test_returned_records_are_copies() -> None:
    store = InMemoryTaskStore()
    task = store.put(make_task())

    task.title = "mutated by caller"
    fetched = store.get(task.id)
    assert fetched is not None
    fetched.title = "mutated again"

    assert store.get(task.id).title == "Quarterly report"


def test_list_filters_and_orders_newest_first() -> None:
    store = InMemoryTaskStore()
    store.put(make_task(id="old", created_at=T0, updated_at=T0))
    store.put(
        make_task(
            id="new",
            created_at=T0 + timedelta(hours=2),
            updated_at=T0 + timedelta(hours=2),
            assigned_user_id=TEAMMATE,
        )
    )
    store.put(
        make_task(
            id="other-team",
            team_id=OTHER_TEAM,
            created_at=T0 + timedelta(hours=1),
            updated_at=T0 + timedelta(hours=1),
            status=TaskStatus.IN_PROGRESS,
        )
    )

    assert [task.id for task in store.list()] == ["new", "other-team", "old"]
    assert [task.id for task in store.list(TaskFilter(assigned_user_id=ASSIGNEE))] == [
        "other-team",
        "old",
    ]
    assert [task.id for task in store.list(TaskFilter(team_id=OTHER_TEAM))] == ["other-team"]
    assert [task.id for task in store.list(TaskFilter(status=TaskStatus.PENDING))] == [
        "new",
        "old",
    ]


def test_delete() -> None:
    store = InMemoryTaskStore()
    store.put(make_task())

    assert store.delete("task-1") is True
    assert store.delete("task-1") is False
    assert store.get("task-1") is None
