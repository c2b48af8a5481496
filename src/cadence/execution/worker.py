"""Worker side of the task lifecycle: queued -> running -> scheduled."""

from __future__ import annotations

import asyncio
import time

from cadence.infrastructure.config import Configuration
from cadence.infrastructure.logger import logger
from cadence.scheduling.registry import ScheduledTaskMessage, TaskDeps
from cadence.scheduling.task_service import TaskManager


class TaskRunner:
    """Consumes dispatched messages. Each run is attempted once; there is no retry."""

    def __init__(self, task_manager: TaskManager, config: Configuration) -> None:
        self._task_manager = task_manager
        self._deps = TaskDeps(task_manager=task_manager, config=config)

    async def handle(self, message: ScheduledTaskMessage) -> None:
        task = self._task_manager.get_by_id(message.task_id)
        if task is None:
            logger.warning("Dispatched task no longer exists", task_id=message.task_id)
            return

        if not type(message).should_run(self._deps.config):
            self._task_manager.mark_skipped(task.id)
            logger.info("Task no longer eligible, skipped", task_id=task.id, task_class=task.task_class)
            return

        if not self._task_manager.mark_running(task.id):
            logger.info("Task is not queued, ignoring duplicate dispatch", task_id=task.id, status=task.status)
            return

        logger.info("Running scheduled task", task_id=task.id, task_class=task.task_class)
        start_time = time.time()
        error: str | None = None

        try:
            await message.run(self._deps)
        except asyncio.CancelledError:
            duration_ms = int((time.time() - start_time) * 1000)
            self._task_manager.abort_run(task, duration_ms, "Cancelled before completion")
            logger.warning("Task cancelled, handed back to scheduler", task_id=task.id, duration_ms=duration_ms)
            raise
        except Exception as err:
            error = str(err) or type(err).__name__
            logger.exception("Task failed", task_id=task.id, task_class=task.task_class)

        duration_ms = int((time.time() - start_time) * 1000)
        self._task_manager.complete_run(task, duration_ms, error)
        if error is None:
            logger.info("Task completed", task_id=task.id, duration_ms=duration_ms)

    def release(self, message: ScheduledTaskMessage) -> None:
        """Hand back a message that was accepted but never started."""
        self._task_manager.mark_skipped(message.task_id)
        logger.info("Unstarted task handed back to scheduler", task_id=message.task_id)
