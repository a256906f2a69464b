"""Logging setup.

The package only asks structlog for loggers. Configuring output is left to the
process entry point, which can call ``configure_logging``.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

LOG_LEVEL_ENV = "YIELD_LOOP_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "WARNING"


def configure_logging(level: str | None = None) -> None:
    """Configures structlog for a process running yield-loop.

    Args:
        level: name of the level, e.g. "DEBUG". Falls back to the
            ``YIELD_LOOP_LOG_LEVEL`` environment variable, then to WARNING.
    """
    level_name = (level or os.environ.get(LOG_LEVEL_ENV) or DEFAULT_LOG_LEVEL).upper()
    numeric_level = logging.getLevelNamesMapping().get(level_name, logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> FilteringBoundLogger:
    """Gets a structlog logger. Uses whatever configuration is active."""
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(logger_name=name)
