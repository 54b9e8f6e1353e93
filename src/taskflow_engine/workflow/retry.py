"""Bounded caller-side retry for optimistic concurrency conflicts.

The engine never retries on its own; callers that want to retry a
``VersionConflict`` wrap the operation here.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from taskflow_engine.errors import VersionConflict
from taskflow_engine.workflow.results import WorkflowResult

logger = logging.getLogger(__name__)


def retry_on_conflict(
    operation: Callable[[], WorkflowResult],
    *,
    max_attempts: int = 3,
    backoff_s: float = 0.05,
    sleep: Callable[[float], None] = time.sleep,
) -> WorkflowResult:
    """Re-run ``operation`` while it fails with ``VersionConflict``.

    Each attempt reloads the task inside the engine, so a retry is evaluated
    against the winner's committed state. Backoff grows linearly per attempt.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    result = operation()
    for attempt in range(1, max_attempts):
        if not isinstance(result.error, VersionConflict):
            return result
        logger.info(
            "workflow_retry event=conflict attempt=%s max_attempts=%s task_id=%s",
            attempt,
            max_attempts,
            result.error.task_id,
        )
        if backoff_s > 0:
            sleep(backoff_s * attempt)
        result = operation()
    return result
