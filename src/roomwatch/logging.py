"""Structured logging for roomwatch using structlog.

Console output for development, JSON lines for production. Log records go to
stderr because the CLI prints its results as JSON on stdout.

Modules log snake_case event names with key/value context:
    log.warning("alert_raised", alert_id="absent-s1", recipient_id="u1")
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TextIO

import structlog


def setup_logging(
    json_output: bool = False, log_level: str = "INFO", stream: TextIO | None = None
) -> None:
    """Configure structlog and route stdlib logging (requests, urllib3) the same way.

    Args:
        json_output: Render JSON lines instead of the colored console format.
        log_level: Minimum level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        stream: Destination, stderr by default.
    """
    stream = stream or sys.stderr
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=stream.isatty())
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.handlers = [logging.StreamHandler(stream)]
    root.setLevel(level)


@contextmanager
def log_context(**values) -> Iterator[None]:
    """Attach key/value pairs to every record logged inside the block."""
    with structlog.contextvars.bound_contextvars(**values):
        yield


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger bound with the module name.

    Args:
        name: Logger name (typically __name__ from calling module).
    """
    return structlog.get_logger(name)
