"""Tests for the in-process work queue."""

import asyncio

import pytest

from cadence.execution.work_queue import DispatchQueue, WorkQueue
from cadence.scheduling.registry import ScheduledTaskMessage


class NoopTask(ScheduledTaskMessage):
    task_name = "test.noop"

    async def run(self, deps):
        return None


class TestWorkQueue:
    def test_initial_state(self):
        queue = WorkQueue()
        assert queue.active_count == 0
        assert queue.pending_count == 0

    def test_satisfies_dispatch_protocol(self):
        assert isinstance(WorkQueue(), DispatchQueue)

    def test_submit_without_handler_fails(self):
        with pytest.raises(RuntimeError, match="no handler"):
            WorkQueue().submit(NoopTask("task-1"))

    @pytest.mark.asyncio
    async def test_submit_runs_handler(self):
        handled = []

        async def handler(message):
            handled.append(message.task_id)

        queue = WorkQueue(handler)
        queue.submit(NoopTask("task-1"))
        await queue.join()
        assert handled == ["task-1"]

    @pytest.mark.asyncio
    async def test_concurrency_limit(self):
        gate = asyncio.Event()
        started = []

        async def handler(message):
            started.append(message.task_id)
            await gate.wait()

        queue = WorkQueue(handler, max_concurrent=2)
        for i in range(3):
            queue.submit(NoopTask(f"task-{i}"))

        await asyncio.sleep(0.05)
        assert started == ["task-0", "task-1"]
        assert queue.pending_count == 1

        gate.set()
        await queue.join()
        assert started == ["task-0", "task-1", "task-2"]
        assert queue.active_count == 0

    @pytest.mark.asyncio
    async def test_duplicate_task_id_dropped(self):
        gate = asyncio.Event()
        calls = []

        async def handler(message):
            calls.append(message.task_id)
            await gate.wait()

        queue = WorkQueue(handler)
        queue.submit(NoopTask("task-1"))
        queue.submit(NoopTask("task-1"))
        gate.set()
        await queue.join()
        assert calls == ["task-1"]

    @pytest.mark.asyncio
    async def test_handler_error_does_not_stop_queue(self):
        handled = []

        async def handler(message):
            if message.task_id == "bad":
                raise RuntimeError("boom")
            handled.append(message.task_id)

        queue = WorkQueue(handler, max_concurrent=1)
        queue.submit(NoopTask("bad"))
        queue.submit(NoopTask("good"))
        await queue.join()
        assert handled == ["good"]

    @pytest.mark.asyncio
    async def test_shutdown_rejects_new_work(self):
        async def handler(message):
            return None

        queue = WorkQueue(handler)
        await queue.shutdown()
        with pytest.raises(RuntimeError, match="shutting down"):
            queue.submit(NoopTask("task-1"))

    @pytest.mark.asyncio
    async def test_shutdown_cancels_after_grace_period(self):
        async def handler(message):
            await asyncio.sleep(10)

        queue = WorkQueue(handler)
        queue.submit(NoopTask("slow"))
        await asyncio.sleep(0)
        await queue.shutdown(grace_period_s=0.05)
        await asyncio.sleep(0.01)
        assert queue.active_count == 0

    @pytest.mark.asyncio
    async def test_shutdown_hands_back_pending_messages(self):
        gate = asyncio.Event()
        dropped = []

        async def handler(message):
            await gate.wait()

        queue = WorkQueue(handler, max_concurrent=1, on_drop=lambda message: dropped.append(message.task_id))
        queue.submit(NoopTask("task-0"))
        queue.submit(NoopTask("task-1"))
        queue.submit(NoopTask("task-2"))
        await asyncio.sleep(0)

        gate.set()
        await queue.shutdown(grace_period_s=1.0)

        assert dropped == ["task-1", "task-2"]
        assert queue.pending_count == 0

    @pytest.mark.asyncio
    async def test_shutdown_continues_when_drop_handler_fails(self):
        released = []

        def on_drop(message):
            if message.task_id == "task-1":
                raise RuntimeError("store unavailable")
            released.append(message.task_id)

        async def handler(message):
            await asyncio.sleep(10)

        queue = WorkQueue(handler, max_concurrent=1, on_drop=on_drop)
        for i in range(3):
            queue.submit(NoopTask(f"task-{i}"))
        await asyncio.sleep(0)

        await queue.shutdown(grace_period_s=0.01)
        assert released == ["task-2"]

    @pytest.mark.asyncio
    async def test_shutdown_waits_for_cancelled_handlers(self):
        cleaned_up = []

        async def handler(message):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cleaned_up.append(message.task_id)
                raise

        queue = WorkQueue(handler)
        queue.submit(NoopTask("slow"))
        await asyncio.sleep(0)

        await queue.shutdown(grace_period_s=0.05)
        assert cleaned_up == ["slow"]
        assert queue.active_count == 0
