"""Deadline monitoring: derived overdue/at-risk flags.

Flags are a pure function of a task and the current time. They are
recomputed on every read and after every committed mutation; the values stored
on ``TaskRecord`` are only a cache.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta

from pydantic import BaseModel

from taskflow_engine.storage.models import TaskRecord, TaskStatus, ensure_utc

_DURATION_PATTERN = re.compile(r"(\d+)\s*(hour|day|week)s?", re.IGNORECASE)
_UNIT_MS = {
    "hour": 3_600_000,
    "day": 86_400_000,
    "week": 604_800_000,
}
DEFAULT_AT_RISK_WINDOW = timedelta(days=1)


class MonitorFlags(BaseModel):
    is_overdue: bool
    is_at_risk: bool


def parse_duration(raw: str | None) -> timedelta:
    """Parse estimates such as ``"2 days"`` or ``"1 Week"``.

    Anything unrecognised is a zero duration; this never raises.
    """
    if not raw:
        return timedelta(0)
    match = _DURATION_PATTERN.search(raw)
    if match is None:
        return timedelta(0)
    amount = int(match.group(1))
    unit = match.group(2).lower()
    return timedelta(milliseconds=amount * _UNIT_MS[unit])


class DeadlineMonitor:
    """Evaluates monitoring flags for a task at a point in time."""

    def __init__(self, at_risk_window: timedelta = DEFAULT_AT_RISK_WINDOW) -> None:
        self.at_risk_window = at_risk_window

    def evaluate(self, task: TaskRecord, now: datetime) -> MonitorFlags:
        now = ensure_utc(now)
        if task.status is not TaskStatus.IN_PROGRESS:
            return MonitorFlags(is_overdue=False, is_at_risk=False)

        is_overdue = now > task.deadline
        is_at_risk = False
        if task.acceptance_timestamp is not None and task.estimated_time_to_complete:
            estimated_completion = task.acceptance_timestamp + parse_duration(
                task.estimated_time_to_complete
            )
            is_at_risk = (
                estimated_completion >= task.deadline
                or task.deadline - now < self.at_risk_window
            )
        return MonitorFlags(is_overdue=is_overdue, is_at_risk=is_at_risk)

    def refresh(self, task: TaskRecord, now: datetime) -> TaskRecord:
        """Return a copy of ``task`` with its cached flags recomputed."""
        flags = self.evaluate(task, now)
        return task.model_copy(
            update={"is_overdue": flags.is_overdue, "is_at_risk": flags.is_at_risk}
        )
