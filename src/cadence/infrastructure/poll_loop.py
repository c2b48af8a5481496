"""Shared async polling loop abstraction."""

from __future__ import annotations

import asyncio
from typing import Callable, Awaitable

from cadence.infrastructure.logger import logger


class PollLoop:
    """An async polling loop that calls a function at regular intervals.

    ``interval`` is either a fixed number of seconds or a callable that is
    asked for the next delay after every iteration.
    """

    def __init__(
        self,
        name: str,
        interval: float | Callable[[], float],
        fn: Callable[[], Awaitable[None]],
        fallback_interval_s: float = 60.0,
    ) -> None:
        self._name = name
        self._fallback_interval = fallback_interval_s
        self._interval = interval
        self._fn = fn
        self._task: asyncio.Task[None] | None = None
        self._stopped = False

    def start(self) -> None:
        """Start the polling loop as a background task."""
        self._stopped = False
        self._task = asyncio.create_task(self._loop())
        logger.info(f"{self._name} loop started")

    def stop(self) -> None:
        """Stop the polling loop."""
        self._stopped = True
        if self._task:
            self._task.cancel()
            self._task = None

    def next_delay(self) -> float:
        if callable(self._interval):
            return self._interval()
        return self._interval

    async def _loop(self) -> None:
        while not self._stopped:
            try:
                await self._fn()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception(f"Error in {self._name} loop")
            if self._stopped:
                break
            try:
                delay = self.next_delay()
            except Exception:
                logger.exception(f"Error computing {self._name} loop delay")
                delay = self._fallback_interval
            logger.debug(f"{self._name} loop sleeping", delay_s=delay)
            await asyncio.sleep(delay)


def start_poll_loop(
    name: str,
    interval: float | Callable[[], float],
    fn: Callable[[], Awaitable[None]],
    fallback_interval_s: float = 60.0,
) -> PollLoop:
    """Create and start a polling loop. Returns a handle to stop it."""
    loop = PollLoop(name, interval, fn, fallback_interval_s)
    loop.start()
    return loop
