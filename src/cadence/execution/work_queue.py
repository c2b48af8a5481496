"""Dispatch queue protocol and an in-process asyncio work queue with a global concurrency limit."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Callable, Awaitable, Protocol, runtime_checkable, TYPE_CHECKING

from cadence.infrastructure.config import MAX_CONCURRENT_TASKS
from cadence.infrastructure.logger import logger

if TYPE_CHECKING:
    from cadence.scheduling.registry import ScheduledTaskMessage


@runtime_checkable
class DispatchQueue(Protocol):
    def submit(self, message: ScheduledTaskMessage) -> None: ...


MessageHandler = Callable[["ScheduledTaskMessage"], Awaitable[None]]
DropHandler = Callable[["ScheduledTaskMessage"], None]


class WorkQueue:
    """Runs submitted task messages on the event loop, at most ``max_concurrent`` at a time.

    ``submit`` is fire-and-forget and must be called from inside a running
    event loop. A message whose task id is already pending or running is
    dropped. On shutdown, messages that never started are passed to
    ``on_drop`` so their records can be handed back.
    """

    def __init__(
        self,
        handler: MessageHandler | None = None,
        max_concurrent: int = MAX_CONCURRENT_TASKS,
        on_drop: DropHandler | None = None,
    ) -> None:
        self._handler = handler
        self._on_drop = on_drop
        self._max_concurrent = max(1, max_concurrent)
        self._pending: deque[ScheduledTaskMessage] = deque()
        self._in_flight: set[str] = set()
        self._running: set[asyncio.Task[None]] = set()
        self._active_count = 0
        self._shutting_down = False

    def set_handler(self, handler: MessageHandler, on_drop: DropHandler | None = None) -> None:
        self._handler = handler
        self._on_drop = on_drop

    @property
    def active_count(self) -> int:
        return self._active_count

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def submit(self, message: ScheduledTaskMessage) -> None:
        if self._shutting_down:
            raise RuntimeError("Work queue is shutting down")
        if self._handler is None:
            raise RuntimeError("Work queue has no handler")

        if message.task_id in self._in_flight:
            logger.debug("Task already queued, skipping", task_id=message.task_id)
            return
        self._in_flight.add(message.task_id)

        if self._active_count >= self._max_concurrent:
            self._pending.append(message)
            logger.debug("At concurrency limit, task queued", task_id=message.task_id, active=self._active_count)
            return

        self._start(message)

    def _start(self, message: ScheduledTaskMessage) -> None:
        self._active_count += 1
        task = asyncio.create_task(self._run(message))
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _run(self, message: ScheduledTaskMessage) -> None:
        assert self._handler is not None
        logger.debug("Running queued task", task_id=message.task_id, active=self._active_count)

        try:
            await self._handler(message)
        except Exception:
            logger.exception("Error running task", task_id=message.task_id, message=repr(message))
        finally:
            self._active_count -= 1
            self._in_flight.discard(message.task_id)
            self._drain()

    def _drain(self) -> None:
        if self._shutting_down:
            return
        while self._pending and self._active_count < self._max_concurrent:
            self._start(self._pending.popleft())

    async def join(self) -> None:
        """Wait until nothing is pending or running."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    async def shutdown(self, grace_period_s: float = 5.0) -> None:
        """Stop accepting work, hand back pending messages, and cancel
        handlers still running after ``grace_period_s``. Returns once every
        handler has finished."""
        self._shutting_down = True
        dropped = list(self._pending)
        self._pending.clear()

        logger.info("WorkQueue shutting down", active_count=self._active_count, dropped_pending=len(dropped))

        for message in dropped:
            self._in_flight.discard(message.task_id)
            if self._on_drop is None:
                continue
            try:
                self._on_drop(message)
            except Exception:
                logger.exception("Failed to hand back dropped task", task_id=message.task_id)

        if not self._running:
            return
        _done, still_running = await asyncio.wait(list(self._running), timeout=grace_period_s)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
