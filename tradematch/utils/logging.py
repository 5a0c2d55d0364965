# tradematch/utils/logging.py
"""Structured JSON logging for matcher, resolver and importers."""

import structlog
import logging
import sys


def configure_logging(level=None, cache: bool = True):
    """
    Route structlog output to stdout as JSON lines.

    Args:
        level: stdlib level; defaults to TRADEMATCH_LOG_LEVEL
        cache: cache bound loggers on first use (turn off when the config is swapped in tests)
    """
    if level is None:
        from tradematch import config
        level = config.log_level()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=cache,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)


def get_logger(name: str):
    return structlog.get_logger(name)
