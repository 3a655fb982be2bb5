"""Logging configuration for the project."""

import logging
import sys
import uuid
from typing import Optional
from pythonjsonlogger import jsonlogger

from ..config import config

# One id per process, so every line of a setup or reconcile run can be grouped
RUN_ID = uuid.uuid4().hex[:12]


class RunContextFilter(logging.Filter):
    """Stamp every record with the run id and environment."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = RUN_ID
        record.environment = config.environment
        return True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger instance.

    In prod, lines are JSON objects carrying ``run_id`` and any ``extra``
    fields the caller passes, e.g. the table and partition a reconcile
    step was working on.

    Args:
        name: Logger name. If None, uses the package logger.

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(name or "flowlog_athena")

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    log_level = getattr(logging, config.log_level.upper(), logging.INFO)
    logger.setLevel(log_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(RunContextFilter())

    if config.environment == "prod":
        formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(run_id)s %(environment)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.propagate = False

    return logger
