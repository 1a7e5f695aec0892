"""Configures logging for the command line application.

The library modules only create their own loggers ('logging.getLogger(__name__)'); handlers are installed here, once,
by the application entry point.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path


MAX_LOG_SIZE = 1024 * 1024
BACKUP_COUNT = 2


def setup_logging(log_level: int | str = logging.WARNING, log_file: str | Path | None = None) -> None:
    """Installs a console handler and, optionally, a rotating debug log file on the package logger.

    Args:
        log_level: Level for console output.
        log_file: Path of a log file receiving every message down to DEBUG, or None for console output only.
    """
    default_formatter = logging.Formatter("%(asctime)s:%(name)s:%(levelname)s: %(message)s")
    package_logger = logging.getLogger("tilemap_wfc")
    package_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers (for re-initialization)
    for handler in package_logger.handlers[:]:
        package_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(default_formatter)
    package_logger.addHandler(console_handler)

    if log_file is not None:
        file_handler = RotatingFileHandler(
            log_file, maxBytes=MAX_LOG_SIZE, backupCount=BACKUP_COUNT, encoding="utf-8", delay=True
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(default_formatter)
        package_logger.addHandler(file_handler)
