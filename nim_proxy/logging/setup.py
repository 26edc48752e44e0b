"""Logging configuration for the proxy."""

import logging
import os
import sys
from typing import Optional

LOGGER_NAME = "nim-proxy"


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Set up the proxy logger with a stdout handler.

    The level comes from ``level`` or ``NIM_LOG_LEVEL`` and defaults to INFO.
    """
    logger = logging.getLogger(LOGGER_NAME)
    level_name = (level or os.getenv("NIM_LOG_LEVEL") or "INFO").upper()
    resolved = logging.getLevelName(level_name)
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logger.setLevel(resolved)

    # Clear any existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(resolved)
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Set logger to propagate to root logger to ensure proper flushing
    logger.propagate = True

    return logger
