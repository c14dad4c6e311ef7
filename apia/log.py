"""Loguru sink setup for the APIA runtime and CLI."""

import sys
from typing import Optional, TextIO

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} {level: <8} [{name}] {message}"


def configure_logging(level: str = "INFO", sink: Optional[TextIO] = None) -> int:
    """Replace loguru's default sink with a single formatted one. Returns the sink id."""
    logger.remove()
    return logger.add(sink or sys.stderr, level=level.upper(), format=LOG_FORMAT, backtrace=False, diagnose=False)
