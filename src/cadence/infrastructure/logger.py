"""structlog setup for the scheduler process.

``LOG_LEVEL`` filters structlog events and stdlib ``logging`` records alike.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

DEFAULT_LOG_LEVEL = "INFO"


def level_from_env() -> int:
    name = os.environ.get("LOG_LEVEL", DEFAULT_LOG_LEVEL).strip().upper()
    return logging.getLevelNamesMapping().get(name, logging.INFO)


def setup_logging(level: int | None = None) -> structlog.typing.FilteringBoundLogger:
    if level is None:
        level = level_from_env()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(level=level, stream=sys.stderr, format="%(message)s")

    return structlog.get_logger("cadence")


logger: structlog.typing.FilteringBoundLogger = setup_logging()


def install_exception_hooks() -> None:
    """Send uncaught exceptions to the structured log; Ctrl-C keeps the default hook."""

    def log_uncaught(exc_type, exc_value, exc_traceback):  # type: ignore[no-untyped-def]
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        logger.critical("Scheduler process crashed", exc_info=(exc_type, exc_value, exc_traceback))

    sys.excepthook = log_uncaught


install_exception_hooks()
