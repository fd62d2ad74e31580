"""Loguru-based logging setup."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

LOG_FILE_NAME = "d2r-save-guard.log"


def setup_logger(log_dir: Path | None = None, verbose: bool = False) -> None:
    """
    Route all ``saveguard`` logging through loguru.

    Console output goes to stderr at INFO (DEBUG with *verbose*) and reports
    every backup written or removed. When *log_dir* is given, a DEBUG file
    sink ``d2r-save-guard.log`` also records retry and rotation details; it
    rotates at 5 MB and keeps a week of history.
    """
    logger.remove()

    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else "INFO",
        format="<green>{time:HH:mm:ss}</green> | <level>{level:<7}</level> | {message}",
        colorize=True,
    )

    if log_dir:
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_dir / LOG_FILE_NAME),
            level="DEBUG",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level:<7} | {name}:{line} | {message}",
            rotation="5 MB",
            retention="7 days",
            encoding="utf-8",
        )
