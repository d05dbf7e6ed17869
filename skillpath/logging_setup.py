"""
Logging configuration.

All modules log through loguru's global ``logger``; entry points (API
lifespan, CLI) call configure_logging once to install the sinks.
"""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from config import get_settings

CONSOLE_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {name}:{line} | {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"


def configure_logging(level: str | None = None, log_file: str | None = None, console: bool = True) -> None:
    """
    Replace loguru's default handler with the service sinks.

    Args:
        level: Minimum level (defaults to settings.log_level)
        log_file: Rotating file sink path (defaults to settings.log_file, empty disables)
        console: Emit to stderr as well
    """
    settings = get_settings()
    level = level or settings.log_level
    log_file = settings.log_file if log_file is None else log_file

    logger.remove()
    if console:
        logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level=level,
            format=FILE_FORMAT,
            rotation="10 MB",
            retention=5,
            enqueue=True,
        )
