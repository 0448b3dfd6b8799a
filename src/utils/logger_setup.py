"""Logging configuration for the CLI and for library callers that want log files."""

import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from config.settings import Settings

LOG_FILE_MAX_BYTES_DEFAULT = 10 * 1024 * 1024  # 10 MB
LOG_FILE_BACKUP_COUNT_DEFAULT = 5
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(module)s.%(funcName)s:%(lineno)d] - %(message)s"


def log_file_for(logger_name: str, log_dir: Path) -> Path:
    """Map a dotted logger name to a file name; the root logger uses Settings.LOGGER_NAME."""
    stem = re.sub(r"[^A-Za-z0-9_-]", "_", logger_name) or Settings.LOGGER_NAME
    return log_dir / f"{stem}.log"


def setup_logging(
    logger_name: str = Settings.LOGGER_NAME,
    log_level: int = Settings.LOG_LEVEL,
    log_dir: Optional[Path] = None,
    log_file_max_bytes: int = LOG_FILE_MAX_BYTES_DEFAULT,
    log_file_backup_count: int = LOG_FILE_BACKUP_COUNT_DEFAULT,
    console_output: bool = True
) -> logging.Logger:
    """
    Attach console and rotating-file handlers to a logger.

    The ``utils`` and ``backend`` modules log through
    ``logging.getLogger(__name__)``, so passing ``""`` (the root logger)
    collects the builder's and the engine's messages in one file.

    Args:
        logger_name: Logger to configure ("" for the root logger).
        log_level: Minimum level; also applied when the logger was configured before.
        log_dir: Directory for the log file (defaults to Settings.LOGS_DIR).
        log_file_max_bytes: Size at which the file rotates.
        log_file_backup_count: Rotated files kept.
        console_output: Also write to stdout.

    Returns:
        The configured logger.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(log_level)
    if logger.handlers:
        return logger

    log_dir = Settings.get_logs_dir(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT)

    handlers = [
        RotatingFileHandler(
            log_file_for(logger_name, log_dir),
            maxBytes=log_file_max_bytes,
            backupCount=log_file_backup_count,
            encoding="utf-8",
        )
    ]
    if console_output:
        handlers.append(logging.StreamHandler(sys.stdout))

    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
