"""Entry point: python -m cadence [run|status|sync]"""

from __future__ import annotations

import argparse
import asyncio
import signal

from cadence.infrastructure.logger import logger


async def main() -> None:
    from cadence.app import Orchestrator

    orchestrator = Orchestrator()

    shutdown_event = asyncio.Event()

    def signal_handler() -> None:
        logger.info("Received shutdown signal")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await orchestrator.start()
        await shutdown_event.wait()
    except KeyboardInterrupt:
        pass
    finally:
        await orchestrator.shutdown()


def run_status() -> None:
    """Print the values a driver uses to size its polling cadence."""
    from cadence.app import Orchestrator
    from cadence.scheduling.types import Context

    orchestrator = Orchestrator()
    orchestrator.build()
    try:
        assert orchestrator.scheduler is not None and orchestrator.task_manager is not None
        context = Context.system("cli")

        next_time = orchestrator.scheduler.get_next_execution_time(context)
        min_interval = orchestrator.scheduler.get_min_run_interval(context)
        print(f"next execution time: {next_time.isoformat() if next_time else '-'}")
        print(f"minimum run interval: {f'{min_interval}s' if min_interval is not None else '-'}")
        for task in orchestrator.task_manager.get_all():
            print(f"  {task.name:<40} {task.status:<10} every {task.run_interval}s next {task.next_execution_time.isoformat()}")
    finally:
        orchestrator.close()


def run_sync() -> None:
    """Create records for registered task classes that have none yet."""
    from cadence.app import Orchestrator

    orchestrator = Orchestrator()
    orchestrator.build()
    try:
        assert orchestrator.task_manager is not None
        created = orchestrator.task_manager.sync_registry(orchestrator.registry)
    finally:
        orchestrator.close()
    print(f"created {len(created)} scheduled task(s)")


def run() -> None:
    parser = argparse.ArgumentParser(prog="cadence", description="Recurring task scheduler")
    parser.add_argument("command", nargs="?", default="run", choices=["run", "status", "sync"])
    args = parser.parse_args()

    if args.command == "status":
        run_status()
        return
    if args.command == "sync":
        run_sync()
        return

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
