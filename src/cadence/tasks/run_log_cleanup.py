"""Builtin task that removes old task run logs."""

from __future__ import annotations

from datetime import timedelta

from cadence.infrastructure.config import Configuration
from cadence.scheduling.registry import ScheduledTaskMessage, TaskDeps

DEFAULT_RETENTION_DAYS = 30


class RunLogCleanupTask(ScheduledTaskMessage):
    task_name = "cadence.run_log_cleanup"
    default_interval = 86400

    @classmethod
    def should_run(cls, config: Configuration) -> bool:
        return config.get_bool("run_log_cleanup.enabled", True)

    async def run(self, deps: TaskDeps) -> None:
        days = int(deps.config.get("run_log_cleanup.retention_days", DEFAULT_RETENTION_DAYS))
        deps.task_manager.purge_run_logs(timedelta(days=days))
