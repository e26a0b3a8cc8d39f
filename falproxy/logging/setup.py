"""Logging configuration for the proxy."""

import logging
import os
import sys

LOG_LEVEL_ENV = "FALPROXY_LOG_LEVEL"


def _resolve_level() -> int:
    name = (os.getenv(LOG_LEVEL_ENV) or "INFO").strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def setup_logging() -> logging.Logger:
    """Set up logging with proper handlers and formatters."""
    logger = logging.getLogger("falproxy")
    level = _resolve_level()
    logger.setLevel(level)

    # Clear any existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Propagate so pytest's caplog and any root handlers still see records
    logger.propagate = True

    return logger


# Global logger instance
logger = setup_logging()
