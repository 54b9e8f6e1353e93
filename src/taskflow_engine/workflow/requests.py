"""Input models for task creation and non-workflow field updates."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from taskflow_engine.errors import ValidationError
from taskflow_engine.storage.models import TaskPriority

# Fields only the workflow operations may write.
WORKFLOW_FIELDS = frozenset(
    {
        "status",
        "acceptance_status",
        "acceptance_timestamp",
        "estimated_time_to_complete",
        "rejection_reason",
        "requested_deadline",
        "extension_reason",
        "edit_request_status",
        "edit_request_reason",
        "edit_request_details",
        "deadline",
        "original_deadline",
        "comments",
        "is_overdue",
        "is_at_risk",
        "version",
        "id",
        "created_by_id",
        "created_at",
        "updated_at",
    }
)


class CreateTaskRequest(BaseModel):
    """Fields a privileged actor supplies when assigning a new task."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    title: str = Field(min_length=1)
    description: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    assigned_user_id: str = Field(min_length=1)
    team_id: str = Field(min_length=1)
    deadline: datetime
    start_date: datetime | None = None


class TaskUpdate(BaseModel):
    """Partial update restricted to non-workflow fields."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    priority: TaskPriority | None = None
    start_date: datetime | None = None
    assigned_user_id: str | None = Field(default=None, min_length=1)
    team_id: str | None = Field(default=None, min_length=1)

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


def validation_error_from(exc: PydanticValidationError) -> ValidationError:
    """Map the first pydantic error to a field-level ``ValidationError``."""
    errors = exc.errors()
    if not errors:
        return ValidationError(str(exc))
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    message = str(first.get("msg", "Invalid value"))
    return ValidationError(f"{field}: {message}" if field else message, field=field)


def parse_create_request(data: CreateTaskRequest | Mapping[str, Any]) -> CreateTaskRequest:
    if isinstance(data, CreateTaskRequest):
        return data
    try:
        return CreateTaskRequest.model_validate(dict(data))
    except PydanticValidationError as exc:
        raise validation_error_from(exc) from exc


def parse_update(fields: TaskUpdate | Mapping[str, Any]) -> TaskUpdate:
    if isinstance(fields, TaskUpdate):
        update = fields
    else:
        for name in fields:
            if name in WORKFLOW_FIELDS:
                raise ValidationError(
                    f"Field '{name}' can only be changed through workflow operations",
                    field=name,
                )
        try:
            update = TaskUpdate.model_validate(dict(fields))
        except PydanticValidationError as exc:
            raise validation_error_from(exc) from exc
    if not update.changes():
        raise ValidationError("No fields to update")
    return update
