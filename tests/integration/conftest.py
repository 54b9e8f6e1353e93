from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from uuid import uuid4

import pytest

from taskflow_engine.storage.postgres import PostgresTaskStore


@pytest.fixture
def postgres_store() -> PostgresTaskStore:
    if os.getenv("RUN_POSTGRES_INTEGRATION_TESTS") != "1":
        pytest.skip(
            "Set RUN_POSTGRES_INTEGRATION_TESTS=1 and TASKFLOW_DATABASE_URL "
            "to run integration tests against PostgreSQL."
        )
    database_url = os.getenv("TASKFLOW_DATABASE_URL")
    if not database_url:
        pytest.skip("TASKFLOW_DATABASE_URL is required for integration tests.")

    store = PostgresTaskStore(database_url)
    store.migrate()
    return store


@pytest.fixture
def new_task_id(postgres_store: PostgresTaskStore) -> Iterator[Callable[[], str]]:
    """Hand out unique ids and delete their rows afterwards."""
    issued: list[str] = []

    def _issue() -> str:
        task_id = f"it-{uuid4()}"
        issued.append(task_id)
        return task_id

    yield _issue
    for task_id in issued:
        postgres_store.delete(task_id)
