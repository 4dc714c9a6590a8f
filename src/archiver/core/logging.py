"""
archiver.core.logging - structlog Setup
=========================================

Every module logs through ``structlog.get_logger()`` with snake_case event
names and keyword context. This module installs the processor chain once,
typically from ArchiverService.initialize().
"""

from __future__ import annotations

import logging

import structlog


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structlog output with a level filter.

    Args:
        log_level: Standard level name (DEBUG, INFO, WARNING, ...). Unknown
            names fall back to INFO.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )
