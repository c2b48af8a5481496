"""Orchestrator class: composes services, wires subsystems."""

from __future__ import annotations

from cadence.execution.work_queue import WorkQueue
from cadence.execution.worker import TaskRunner
from cadence.infrastructure.config import Configuration, load_configuration
from cadence.infrastructure.database import AppDatabase, database
from cadence.infrastructure.logger import logger
from cadence.infrastructure.poll_loop import PollLoop
from cadence.scheduling.registry import TaskClassRegistry
from cadence.scheduling.scheduler import TaskScheduler, start_scheduler_loop
from cadence.scheduling.task_service import TaskManager
from cadence.scheduling.types import Context
from cadence.tasks.builtin import register_builtin_tasks


class Orchestrator:
    """Composes all services and manages the application lifecycle."""

    def __init__(
        self,
        db: AppDatabase | None = None,
        registry: TaskClassRegistry | None = None,
        config: Configuration | None = None,
    ) -> None:
        self._db: AppDatabase = db if db is not None else database
        self._registry = registry if registry is not None else TaskClassRegistry()
        self._config = config
        self._context = Context.system("orchestrator")
        self._queue = WorkQueue()
        self._scheduler_handle: PollLoop | None = None
        self.scheduler: TaskScheduler | None = None
        self.task_manager: TaskManager | None = None

    @property
    def registry(self) -> TaskClassRegistry:
        return self._registry

    def build(self) -> None:
        """Open the store and wire scheduler, queue and worker. No loops are started."""
        if not self._db.is_initialized:
            self._db.init()
        if self._config is None:
            self._config = load_configuration()
        if not len(self._registry):
            register_builtin_tasks(self._registry)

        self.task_manager = TaskManager(self._db.task_repo, self._context)
        runner = TaskRunner(self.task_manager, self._config)
        self._queue.set_handler(runner.handle, on_drop=runner.release)

        self.scheduler = TaskScheduler(
            task_repo=self._db.task_repo,
            queue=self._queue,
            registry=self._registry,
            config=self._config,
        )

    def close(self) -> None:
        """Close the store. Safe to call more than once."""
        self._db.close()

    async def start(self) -> None:
        """Initialize all services and start the scheduler loop."""
        logger.info("Starting cadence...")
        self.build()
        assert self.task_manager is not None and self.scheduler is not None

        created = self.task_manager.sync_registry(self._registry)
        if created:
            logger.info("Registered new scheduled tasks", count=len(created))

        self._scheduler_handle = start_scheduler_loop(self.scheduler, self._context)
        logger.info("cadence started successfully", task_classes=len(self._registry))

    async def shutdown(self) -> None:
        """Gracefully shut down all services."""
        logger.info("Shutting down cadence...")

        if self._scheduler_handle:
            self._scheduler_handle.stop()
            self._scheduler_handle = None

        await self._queue.shutdown()
        self.close()

        logger.info("cadence shut down complete")
