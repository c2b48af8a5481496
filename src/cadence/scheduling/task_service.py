"""Task manager: record lifecycle outside the scheduler's poll cycle."""

from __future__ import annotations

import random
import string
import time
from datetime import UTC, datetime, timedelta

from cadence.infrastructure.logger import logger
from cadence.scheduling.registry import TaskClassRegistry
from cadence.scheduling.repository import TaskRepository
from cadence.scheduling.types import (
    STATUS_INACTIVE,
    STATUS_QUEUED,
    STATUS_RUNNING,
    STATUS_SCHEDULED,
    STATUS_SKIPPED,
    Context,
    ScheduledTask,
    TaskRunLog,
)


class TaskManager:
    def __init__(self, task_repo: TaskRepository, context: Context) -> None:
        self._task_repo = task_repo
        self._context = context

    # --- CRUD ---

    def create(
        self,
        name: str,
        task_class: str,
        run_interval: int,
        next_execution_time: datetime | None = None,
    ) -> str:
        if run_interval <= 0:
            raise ValueError(f"Invalid run interval: {run_interval}")

        now = datetime.now(UTC)
        rand = "".join(random.choices(string.ascii_lowercase + string.digits, k=8))
        task_id = f"task-{int(time.time())}-{rand}"

        task = ScheduledTask(
            id=task_id,
            name=name,
            task_class=task_class,
            status=STATUS_SCHEDULED,
            run_interval=run_interval,
            next_execution_time=next_execution_time or now,
            created_at=now,
        )
        self._task_repo.create_task(task)
        logger.info("Scheduled task created", task_id=task_id, task_class=task_class, run_interval=run_interval)
        return task_id

    def get_by_id(self, id: str) -> ScheduledTask | None:
        return self._task_repo.get_task_by_id(id)

    def get_all(self) -> list[ScheduledTask]:
        return self._task_repo.get_all_tasks()

    def sync_registry(self, registry: TaskClassRegistry) -> list[str]:
        """Create a scheduled record for every registered class that has none."""
        created: list[str] = []
        for task_cls in registry.registered():
            if self._task_repo.get_task_by_class(task_cls.task_name) is not None:
                continue
            created.append(self.create(task_cls.task_name, task_cls.task_name, task_cls.default_interval))
        return created

    # --- Lifecycle ---

    def deactivate(self, id: str) -> None:
        self._task_repo.update([{"id": id, "status": STATUS_INACTIVE}], self._context)

    def activate(self, id: str) -> None:
        self._task_repo.update(
            [{"id": id, "status": STATUS_SCHEDULED}], self._context, expected_status=(STATUS_INACTIVE,)
        )

    def mark_running(self, id: str) -> bool:
        """Move a queued task to running. False if it is no longer queued."""
        return self._task_repo.update(
            [{"id": id, "status": STATUS_RUNNING}], self._context, expected_status=(STATUS_QUEUED,)
        ) > 0

    def mark_skipped(self, id: str) -> None:
        """Hand a task back to the scheduler without running it."""
        self._task_repo.update(
            [{"id": id, "status": STATUS_SKIPPED}], self._context, expected_status=(STATUS_QUEUED,)
        )

    def complete_run(self, task: ScheduledTask, duration_ms: int, error: str | None) -> None:
        now = datetime.now(UTC)
        self._task_repo.log_task_run(TaskRunLog(
            task_id=task.id,
            run_at=now,
            duration_ms=duration_ms,
            status="error" if error else "success",
            error=error,
        ))

        self._task_repo.update(
            [{
                "id": task.id,
                "status": STATUS_SCHEDULED,
                "last_execution_time": now,
                "next_execution_time": now + timedelta(seconds=task.run_interval),
            }],
            self._context,
            expected_status=(STATUS_RUNNING,),
        )

    def abort_run(self, task: ScheduledTask, duration_ms: int, reason: str) -> None:
        """Record an interrupted run and hand the task back as skipped.

        The next execution time is left untouched, so the next poll cycle
        picks the task up again.
        """
        self._task_repo.log_task_run(TaskRunLog(
            task_id=task.id,
            run_at=datetime.now(UTC),
            duration_ms=duration_ms,
            status="error",
            error=reason,
        ))
        self._task_repo.update(
            [{"id": task.id, "status": STATUS_SKIPPED}], self._context, expected_status=(STATUS_RUNNING,)
        )

    def get_run_logs(self, id: str) -> list[TaskRunLog]:
        return self._task_repo.get_run_logs(id)

    def purge_run_logs(self, older_than: timedelta) -> int:
        removed = self._task_repo.delete_run_logs_before(datetime.now(UTC) - older_than)
        logger.info("Purged task run logs", removed=removed)
        return removed
