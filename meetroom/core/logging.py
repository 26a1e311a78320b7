# meetroom/core/logging.py

import logging
import sys
from typing import Optional


DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Third-party loggers that are chatty at INFO
NOISY_LOGGERS = ("redis", "jose", "uvicorn.access")


def setup_logging(level_name: Optional[str] = None) -> None:
    """
    Configure application-wide logging.

    - Root level from ``level_name`` (Settings.LOG_LEVEL), INFO if unknown
    - Logs go to stdout so the container runtime picks them up
    - Redis, jose and per-request access logs are limited to warnings

    Safe to call more than once: if a handler is already installed (e.g. by
    Uvicorn) only the level is updated.
    """
    level = getattr(logging, (level_name or "INFO").upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    if root_logger.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Usage:
        from meetroom.core.logging import get_logger

        logger = get_logger(__name__)
    """
    return logging.getLogger(name)
