"""structlog setup for the updater.

Scheduled runs (``APP_ENV=production``) emit one JSON object per line on
stderr; interactive runs get the coloured console renderer.  stdout is left
to the CLI, which prints its JSON result there.

Library loggers (httpx, anthropic, aiosqlite) are routed through the same
processor chain and held at WARNING unless the run itself logs at DEBUG.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from typing import Iterator

import structlog

_LIBRARY_LOGGERS = ("httpx", "httpcore", "anthropic", "aiosqlite")


def _processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def _renderer(use_json: bool) -> structlog.types.Processor:
    if use_json:
        return structlog.processors.JSONRenderer(sort_keys=True)
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def _route_stdlib(level: int, processors: list, renderer: structlog.types.Processor) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *processors,
                renderer,
            ],
        )
    )
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    library_level = level if level <= logging.DEBUG else logging.WARNING
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog and the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR.
        json_output: Force the JSON renderer.  Without it JSON is used only
            when ``APP_ENV`` is ``production``.
    """
    use_json = json_output or os.environ.get("APP_ENV", "development") == "production"
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    processors = _processors()
    renderer = _renderer(use_json)

    structlog.configure(
        processors=[*processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    _route_stdlib(level, processors, renderer)

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a logger tagged with *name*, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(logger_name=name)


@contextmanager
def run_context(**values: object) -> Iterator[None]:
    """Bind *values* (run id, holder, dry-run flag) to every log line inside the block."""
    with structlog.contextvars.bound_contextvars(**values):
        yield
