"""Logging configuration for mscan.

Human-readable colored logs on stderr by default, JSON lines when the
output is consumed by another tool.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from loguru import logger


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    json_output: bool = False,
    rich_traceback: bool = False,
) -> None:
    """Configure logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        json_output: If True, output logs in JSON format
        rich_traceback: If True, include variable values in tracebacks
    """
    # Remove default handler
    logger.remove()

    if json_output:
        logger.add(
            sys.stderr,
            format="{message}",
            level=level,
            serialize=True,
        )
    else:
        console_format = (
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        )
        logger.add(
            sys.stderr,
            format=console_format,
            level=level,
            colorize=True,
            backtrace=rich_traceback,
            diagnose=rich_traceback,
        )

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            level=level,
        )


def log_progress(current: int, interval: int, description: str = "") -> None:
    """Log progress every ``interval`` items.

    Streams are read once with no known length, so only the running count is
    reported.
    """
    if current and current % interval == 0:
        logger.debug(f"{description}: {current}")
