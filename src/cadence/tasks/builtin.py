"""Registration of the tasks shipped with cadence."""

from __future__ import annotations

from cadence.scheduling.registry import TaskClassRegistry
from cadence.tasks.run_log_cleanup import RunLogCleanupTask

BUILTIN_TASKS = [RunLogCleanupTask]


def register_builtin_tasks(registry: TaskClassRegistry) -> None:
    for task_cls in BUILTIN_TASKS:
        registry.register(task_cls)
