"""Storage models shared by the workflow engine and persistence backends."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaskStatus(StrEnum):
    """Coarse execution state. Monotonic: pending -> in_progress -> completed."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class AcceptanceStatus(StrEnum):
    """Assignee's response to the assignment."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXTENSION_REQUESTED = "extension_requested"


class EditRequestStatus(StrEnum):
    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so comparisons never mix naive and aware values."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class TaskComment(BaseModel):
    """One entry of a task's append-only comment log."""

    model_config = ConfigDict(frozen=True)

    id: str
    content: str = Field(min_length=1)
    user_id: str
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _utc_created_at(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class TaskRecord(BaseModel):
    """Persisted task record.

    ``is_overdue``/``is_at_risk`` are a cache of the deadline monitor's output;
    readers recompute them instead of trusting the stored values.
    """

    id: str
    title: str = Field(min_length=1)
    description: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING
    acceptance_status: AcceptanceStatus = AcceptanceStatus.PENDING
    start_date: datetime | None = None
    deadline: datetime
    original_deadline: datetime
    requested_deadline: datetime | None = None
    extension_reason: str | None = None
    estimated_time_to_complete: str | None = None
    acceptance_timestamp: datetime | None = None
    edit_request_status: EditRequestStatus = EditRequestStatus.NONE
    edit_request_reason: str | None = None
    edit_request_details: str | None = None
    rejection_reason: str | None = None
    assigned_user_id: str = Field(min_length=1)
    created_by_id: str = Field(min_length=1)
    team_id: str = Field(min_length=1)
    comments: list[TaskComment] = Field(default_factory=list)
    is_overdue: bool = False
    is_at_risk: bool = False
    version: int = Field(default=1, ge=1)
    created_at: datetime
    updated_at: datetime

    @field_validator(
        "start_date",
        "deadline",
        "original_deadline",
        "requested_deadline",
        "acceptance_timestamp",
        "created_at",
        "updated_at",
    )
    @classmethod
    def _utc_datetimes(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check_satellite_fields(self) -> TaskRecord:
        if (
            self.rejection_reason is not None
            and self.acceptance_status is not AcceptanceStatus.REJECTED
        ):
            raise ValueError("rejection_reason is only allowed while acceptance_status is rejected")
        has_extension_fields = (
            self.extension_reason is not None or self.requested_deadline is not None
        )
        if (
            has_extension_fields
            and self.acceptance_status is not AcceptanceStatus.EXTENSION_REQUESTED
        ):
            raise ValueError(
                "extension_reason/requested_deadline are only allowed while an "
                "extension is requested"
            )
        has_edit_fields = (
            self.edit_request_reason is not None or self.edit_request_details is not None
        )
        edit_pending = self.edit_request_status is EditRequestStatus.PENDING
        if has_edit_fields != edit_pending:
            raise ValueError(
                "edit_request_reason/edit_request_details must be present exactly "
                "while edit_request_status is pending"
            )
        return self

    def workflow_state(self) -> dict[str, str]:
        """Symbolic snapshot of the three state machines, used in error context."""
        return {
            "status": self.status.value,
            "acceptance_status": self.acceptance_status.value,
            "edit_request_status": self.edit_request_status.value,
        }

    def to_storage_dict(self) -> dict[str, Any]:
        """JSON-safe representation with enums stored by symbolic name."""
        return self.model_dump(mode="json")


class TaskFilter(BaseModel):
    """Read-only listing filter used by dashboards."""

    assigned_user_id: str | None = None
    created_by_id: str | None = None
    team_id: str | None = None
    status: TaskStatus | None = None

    def matches(self, task: TaskRecord) -> bool:
        if self.assigned_user_id is not None and task.assigned_user_id != self.assigned_user_id:
            return False
        if self.created_by_id is not None and task.created_by_id != self.created_by_id:
            return False
        if self.team_id is not None and task.team_id != self.team_id:
            return False
        if self.status is not None and task.status is not self.status:
            return False
        return True
