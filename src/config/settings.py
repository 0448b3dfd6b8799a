"""Application-wide settings and configuration."""

import logging
from pathlib import Path
from typing import Optional


class Settings:
    """Centralized application settings."""

    # Project paths
    PROJECT_ROOT = Path(__file__).parent.parent.parent
    LOGS_DIR = PROJECT_ROOT / "logs"

    # Logging
    LOGGER_NAME = "query_assembler"
    LOG_LEVEL = logging.INFO

    # Query assembly
    DEFAULT_POLICY = "omit"
    SQL_PREVIEW_LENGTH = 200

    @classmethod
    def get_logs_dir(cls, custom_path: Optional[Path] = None) -> Path:
        """Get the logs directory, with optional override."""
        return custom_path or cls.LOGS_DIR
