"""
Logging configuration.

Console logging only; the engine has no file I/O of its own. Library modules
obtain loggers through `get_logger` and never attach handlers themselves;
the CLI calls `setup_logging` once at startup. The level comes from the
ALLOSTAT_LOG_LEVEL environment variable and defaults to WARNING.
"""

import logging
import os
from typing import Optional

LEVEL_ENV_VAR = "ALLOSTAT_LOG_LEVEL"
DEFAULT_LEVEL = "WARNING"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_level(name: Optional[str] = None) -> int:
    """
    Numeric level for a level name, read from the environment when omitted.

    Unknown names fall back to DEFAULT_LEVEL instead of raising.
    """
    if name is None:
        name = os.environ.get(LEVEL_ENV_VAR, DEFAULT_LEVEL)
    level = logging.getLevelName(str(name).strip().upper())
    if not isinstance(level, int):
        return logging.getLevelName(DEFAULT_LEVEL)
    return level


def setup_logging(logger_name: str = "allostat") -> logging.Logger:
    """
    Configure and return the package root logger.

    Args:
        logger_name: Name of the logger to configure

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Don't add handlers if logger already configured
    if logger.handlers:
        return logger

    logger.setLevel(resolve_level())

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the `allostat` namespace."""
    if name == "allostat" or name.startswith("allostat."):
        return logging.getLogger(name)
    return logging.getLogger(f"allostat.{name}")
