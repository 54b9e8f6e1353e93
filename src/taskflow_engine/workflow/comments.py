"""Append-only comment log of a task."""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from taskflow_engine.errors import ValidationError
from taskflow_engine.storage.models import TaskComment, TaskRecord

DEFAULT_MAX_COMMENT_LENGTH = 5000


class CommentLog:
    """Builds new comment entries; there is no update or delete."""

    def __init__(self, max_length: int = DEFAULT_MAX_COMMENT_LENGTH) -> None:
        self.max_length = max_length

    def append(
        self,
        task: TaskRecord,
        actor_id: str,
        content: str | None,
        now: datetime,
    ) -> tuple[TaskRecord, TaskComment]:
        text = (content or "").strip()
        if not text:
            raise ValidationError("Comment content must not be empty", field="content")
        if len(text) > self.max_length:
            raise ValidationError(
                f"Comment content exceeds {self.max_length} characters",
                field="content",
            )
        comment = TaskComment(id=str(uuid4()), content=text, user_id=actor_id, created_at=now)
        # New list: existing entries are shared, never modified.
        updated = task.model_copy(update={"comments": [*task.comments, comment]})
        return updated, comment
