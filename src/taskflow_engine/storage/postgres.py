"""PostgreSQL-backed task store with automatic table migration.

Optimistic concurrency: every update is ``UPDATE ... WHERE version = %s``; a
zero row count means another writer committed first (or the task is gone).
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from taskflow_engine.errors import NotFound, StorageError, VersionConflict
from taskflow_engine.storage.models import TaskFilter, TaskRecord

logger = logging.getLogger(__name__)

# Column order used for INSERT/UPDATE; ``id`` is handled separately.
_COLUMNS: tuple[str, ...] = (
    "title",
    "description",
    "priority",
    "status",
    "acceptance_status",
    "start_date",
    "deadline",
    "original_deadline",
    "requested_deadline",
    "extension_reason",
    "estimated_time_to_complete",
    "acceptance_timestamp",
    "edit_request_status",
    "edit_request_reason",
    "edit_request_details",
    "rejection_reason",
    "assigned_user_id",
    "created_by_id",
    "team_id",
    "comments",
    "is_overdue",
    "is_at_risk",
    "version",
    "created_at",
    "updated_at",
)


class PostgresTaskStore:
    """Persist task records in PostgreSQL."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("TASKFLOW_DATABASE_URL is required")
        self.database_url = database_url
        self._lock = threading.Lock()
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()

    def migrate(self) -> None:
        with self._lock, self._connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS workflow_tasks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    priority TEXT NOT NULL,
                    status TEXT NOT NULL,
                    acceptance_status TEXT NOT NULL,
                    start_date TIMESTAMPTZ,
                    deadline TIMESTAMPTZ NOT NULL,
                    original_deadline TIMESTAMPTZ NOT NULL,
                    requested_deadline TIMESTAMPTZ,
                    extension_reason TEXT,
                    estimated_time_to_complete TEXT,
                    acceptance_timestamp TIMESTAMPTZ,
                    edit_request_status TEXT NOT NULL,
                    edit_request_reason TEXT,
                    edit_request_details TEXT,
                    rejection_reason TEXT,
                    assigned_user_id TEXT NOT NULL,
                    created_by_id TEXT NOT NULL,
                    team_id TEXT NOT NULL,
                    comments JSONB NOT NULL DEFAULT '[]'::jsonb,
                    is_overdue BOOLEAN NOT NULL DEFAULT FALSE,
                    is_at_risk BOOLEAN NOT NULL DEFAULT FALSE,
                    version INTEGER NOT NULL,
                    created_at TIMESTAMPTZ NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_workflow_tasks_assigned_user_id
                ON workflow_tasks(assigned_user_id)
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_workflow_tasks_team_id
                ON workflow_tasks(team_id)
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_workflow_tasks_created_at
                ON workflow_tasks(created_at DESC)
                """)
            conn.commit()

    def get(self, task_id: str) -> TaskRecord | None:
        with self._lock, self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM workflow_tasks WHERE id = %s",
                (task_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def put(self, record: TaskRecord, *, expected_version: int | None = None) -> TaskRecord:
        values = self._record_values(record)
        with self._lock, self._connection() as conn:
            if expected_version is None:
                placeholders = ", ".join(["%s"] * (len(_COLUMNS) + 1))
                cursor = conn.execute(
                    f"""
                    INSERT INTO workflow_tasks (id, {", ".join(_COLUMNS)})
                    VALUES ({placeholders})
                    ON CONFLICT (id) DO NOTHING
                    """,
                    (record.id, *values),
                )
                if cursor.rowcount == 0:
                    conn.rollback()
                    raise VersionConflict(
                        record.id,
                        expected_version=None,
                        actual_version=self._current_version(conn, record.id),
                    )
            else:
                assignments = ", ".join(f"{column} = %s" for column in _COLUMNS)
                cursor = conn.execute(
                    f"""
                    UPDATE workflow_tasks
                    SET {assignments}
                    WHERE id = %s AND version = %s
                    """,
                    (*values, record.id, expected_version),
                )
                if cursor.rowcount == 0:
                    actual_version = self._current_version(conn, record.id)
                    conn.rollback()
                    if actual_version is None:
                        raise NotFound(record.id)
                    logger.info(
                        "task_store event=version_conflict task_id=%s expected=%s actual=%s",
                        record.id,
                        expected_version,
                        actual_version,
                    )
                    raise VersionConflict(
                        record.id,
                        expected_version=expected_version,
                        actual_version=actual_version,
                    )
            conn.commit()
        return record.model_copy(deep=True)

    def list(self, task_filter: TaskFilter | None = None) -> list[TaskRecord]:
        task_filter = task_filter or TaskFilter()
        clauses: list[str] = []
        params: list[Any] = []
        if task_filter.assigned_user_id is not None:
            clauses.append("assigned_user_id = %s")
            params.append(task_filter.assigned_user_id)
        if task_filter.created_by_id is not None:
            clauses.append("created_by_id = %s")
            params.append(task_filter.created_by_id)
        if task_filter.team_id is not None:
            clauses.append("team_id = %s")
            params.append(task_filter.team_id)
        if task_filter.status is not None:
            clauses.append("status = %s")
            params.append(task_filter.status.value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._lock, self._connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM workflow_tasks {where} ORDER BY created_at DESC",
                tuple(params),
            ).fetchall()
        return [self._row_to_task(row) for row in rows]

    def delete(self, task_id: str) -> bool:
        with self._lock, self._connection() as conn:
            cursor = conn.execute("DELETE FROM workflow_tasks WHERE id = %s", (task_id,))
            conn.commit()
        return cursor.rowcount > 0

    @contextmanager
    def _connection(self) -> Iterator[Any]:
        try:
            with self._psycopg.connect(self.database_url, row_factory=self._dict_row) as conn:
                yield conn
        except self._psycopg.Error as exc:
            raise StorageError(f"PostgreSQL task store failure: {exc}") from exc

    @staticmethod
    def _current_version(conn: Any, task_id: str) -> int | None:
        row = conn.execute(
            "SELECT version FROM workflow_tasks WHERE id = %s",
            (task_id,),
        ).fetchone()
        if row is None:
            return None
        return int(row["version"])

    def _record_values(self, record: TaskRecord) -> tuple[Any, ...]:
        payload = record.model_dump(mode="python")
        values: list[Any] = []
        for column in _COLUMNS:
            value = payload[column]
            if column == "comments":
                value = self._json_wrapper(
                    [comment.model_dump(mode="json") for comment in record.comments]
                )
            elif hasattr(value, "value"):
                # Enums are stored by symbolic name.
                value = value.value
            values.append(value)
        return tuple(values)

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "PostgreSQL task store requires psycopg. "
                'Install with: python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row, Json

    @staticmethod
    def _parse_json_list(raw: Any) -> list[dict[str, Any]]:
        if raw is None:
            return []
        if isinstance(raw, str):
            parsed = json.loads(raw)
        else:
            parsed = raw
        if not isinstance(parsed, list):
            return []
        return [item for item in parsed if isinstance(item, dict)]

    @staticmethod
    def _parse_datetime(raw: Any) -> datetime | None:
        if raw is None:
            return None
        if isinstance(raw, datetime):
            return raw
        if isinstance(raw, str):
            return datetime.fromisoformat(raw)
        raise TypeError(f"Unsupported datetime value: {type(raw)!r}")

    @classmethod
    def _row_to_task(cls, row: Any) -> TaskRecord:
        payload = {column: row[column] for column in _COLUMNS}
        for column in (
            "start_date",
            "deadline",
            "original_deadline",
            "requested_deadline",
            "acceptance_timestamp",
            "created_at",
            "updated_at",
        ):
            payload[column] = cls._parse_datetime(payload[column])
        payload["comments"] = cls._parse_json_list(row["comments"])
        payload["id"] = str(row["id"])
        return TaskRecord.model_validate(payload)
