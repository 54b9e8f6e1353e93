"""Shared constants and builders for the test suite."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from taskflow_engine.storage.models import TaskRecord

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)

ADMIN = "admin-1"
LEAD = "lead-a"
OTHER_LEAD = "lead-b"
ASSIGNEE = "user-1"
TEAMMATE = "user-2"
TEAM = "team-a"
OTHER_TEAM = "team-b"


class FrozenClock:
    """Test clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_task(**overrides: Any) -> TaskRecord:
    payload: dict[str, Any] = {
        "id": "task-1",
        "title": "Quarterly report",
        "deadline": T0 + timedelta(days=10),
        "original_deadline": T0 + timedelta(days=10),
        "assigned_user_id": ASSIGNEE,
        "created_by_id": LEAD,
        "team_id": TEAM,
        "created_at": T0,
        "updated_at": T0,
    }
    payload.update(overrides)
    return TaskRecord.model_validate(payload)
