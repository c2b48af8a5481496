"""Scheduling domain types."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel

TaskStatus = Literal["scheduled", "queued", "running", "skipped", "inactive"]

STATUS_SCHEDULED: TaskStatus = "scheduled"
STATUS_QUEUED: TaskStatus = "queued"
STATUS_RUNNING: TaskStatus = "running"
STATUS_SKIPPED: TaskStatus = "skipped"
STATUS_INACTIVE: TaskStatus = "inactive"

# Only these may be picked up and moved to "queued".
QUEUEABLE_STATUSES: tuple[TaskStatus, ...] = (STATUS_SCHEDULED, STATUS_SKIPPED)


class ScheduledTask(BaseModel):
    id: str
    name: str
    task_class: str
    status: TaskStatus = STATUS_SCHEDULED
    run_interval: int
    next_execution_time: datetime
    last_execution_time: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None


class TaskRunLog(BaseModel):
    task_id: str
    run_at: datetime
    duration_ms: int
    status: Literal["success", "error"]
    error: str | None = None


class MinResult(BaseModel):
    """Result of a MIN aggregation; ``min`` is None when nothing matched."""

    name: str
    min: Any = None


@dataclass(frozen=True)
class Context:
    """Explicit call context threaded through every store and scheduler call."""

    scope: Literal["system", "user"] = "system"
    source: str = "scheduler"

    @classmethod
    def system(cls, source: str = "scheduler") -> Context:
        return cls(scope="system", source=source)
