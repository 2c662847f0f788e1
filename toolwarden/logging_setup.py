"""Logging configuration for entry points (CLI, host plugins).

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed here, once, by whoever owns the process.
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.logging import RichHandler

from .paths import get_log_path

LOG_LEVEL_ENV_VAR = "LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 5


def configure_logging(
    level: str | int | None = None,
    log_file: Path | None = None,
    *,
    console: bool = True,
) -> logging.Logger:
    """
    Attach console and rotating-file handlers to the ``toolwarden`` logger.

    Args:
        level: Log level; falls back to $LOG_LEVEL, then INFO
        log_file: Log file path (defaults to <data dir>/toolwarden.log)
        console: Also log to stderr through Rich

    Returns:
        The configured package logger
    """
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV_VAR, "INFO")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    package_logger = logging.getLogger("toolwarden")
    package_logger.setLevel(level)

    # Re-configuring replaces our handlers instead of stacking them
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    if console:
        package_logger.addHandler(
            RichHandler(level=level, show_path=False, rich_tracebacks=True, markup=False)
        )

    path = log_file or get_log_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8"
        )
    except OSError as e:
        package_logger.warning(f"File logging disabled, cannot open {path}: {e}")
    else:
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(file_handler)

    package_logger.propagate = False
    return package_logger
