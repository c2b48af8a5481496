"""Task scheduler: polls for due tasks, claims them as queued, and dispatches them."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Callable

from cadence.execution.work_queue import DispatchQueue
from cadence.infrastructure.config import (
    SCHEDULER_MIN_POLL_INTERVAL,
    SCHEDULER_POLL_INTERVAL,
    Configuration,
)
from cadence.infrastructure.logger import logger
from cadence.infrastructure.poll_loop import PollLoop, start_poll_loop
from cadence.scheduling.criteria import (
    due_tasks_criteria,
    min_run_interval_criteria,
    next_execution_criteria,
)
from cadence.scheduling.registry import TaskClassRegistry
from cadence.scheduling.repository import TaskRepository
from cadence.scheduling.types import (
    QUEUEABLE_STATUSES,
    STATUS_QUEUED,
    Context,
    MinResult,
    ScheduledTask,
)


def utc_now() -> datetime:
    return datetime.now(UTC)


class TaskScheduler:
    """Stateless between cycles; every call is a fresh query-then-act pass."""

    def __init__(
        self,
        task_repo: TaskRepository,
        queue: DispatchQueue,
        registry: TaskClassRegistry,
        config: Configuration,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._task_repo = task_repo
        self._queue = queue
        self._registry = registry
        self._config = config
        self._clock = clock

    def queue_scheduled_tasks(self, context: Context) -> int:
        """Queue and dispatch every due task. Returns the number of messages submitted.

        Store and queue errors propagate and end the cycle; anything
        dispatched earlier in the same cycle stays dispatched.
        """
        tasks = self._task_repo.search(due_tasks_criteria(self._clock()), context)
        if not tasks:
            return 0

        logger.info("Found due tasks", count=len(tasks))
        dispatched = 0

        # The queued status must be committed before the message is submitted;
        # a worker may move the task to running as soon as it sees the message.
        for task in tasks:
            claimed = self._task_repo.update(
                [{"id": task.id, "status": STATUS_QUEUED}],
                context,
                expected_status=QUEUEABLE_STATUSES,
            )
            if not claimed:
                logger.info("Task already claimed by another scheduler", task_id=task.id, task_class=task.task_class)
                continue
            if self._queue_task(task):
                dispatched += 1

        return dispatched

    def get_next_execution_time(self, context: Context) -> datetime | None:
        result = self._task_repo.aggregate(next_execution_criteria(), context).get("next_execution_time")
        if not isinstance(result, MinResult) or result.min is None:
            return None
        return result.min

    def get_min_run_interval(self, context: Context) -> int | None:
        result = self._task_repo.aggregate(min_run_interval_criteria(), context).get("run_interval")
        if not isinstance(result, MinResult) or result.min is None:
            return None
        return int(result.min)

    def _queue_task(self, task: ScheduledTask) -> bool:
        task_cls = self._registry.resolve(task.task_class)

        if not task_cls.should_run(self._config):
            # Known gap: the record stays queued without a message.
            logger.info("Task not eligible in this deployment, left queued", task_id=task.id, task_class=task.task_class)
            return False

        self._queue.submit(task_cls(task_id=task.id))
        logger.debug("Task dispatched", task_id=task.id, task_class=task.task_class)
        return True


def compute_poll_delay(
    scheduler: TaskScheduler,
    context: Context,
    now: datetime,
    max_interval_s: float = SCHEDULER_POLL_INTERVAL,
    min_interval_s: float = SCHEDULER_MIN_POLL_INTERVAL,
) -> float:
    """Seconds until the next poll: soon enough for the next due task and the
    shortest run interval, never below the configured minimum."""
    delay = max_interval_s

    min_run_interval = scheduler.get_min_run_interval(context)
    if min_run_interval is not None:
        delay = min(delay, float(min_run_interval))

    next_execution_time = scheduler.get_next_execution_time(context)
    if next_execution_time is not None:
        delay = min(delay, (next_execution_time - now).total_seconds())

    return max(min_interval_s, delay)


def start_scheduler_loop(scheduler: TaskScheduler, context: Context) -> PollLoop:
    """Start the scheduler polling loop."""

    async def poll() -> None:
        scheduler.queue_scheduled_tasks(context)

    def next_delay() -> float:
        return compute_poll_delay(scheduler, context, utc_now())

    return start_poll_loop("Scheduler", next_delay, poll, fallback_interval_s=SCHEDULER_POLL_INTERVAL)
