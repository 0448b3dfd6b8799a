"""Database configuration and connection settings."""

from pathlib import Path
from typing import Optional, Union


class DatabaseConfig:
    """Database-specific configuration."""

    MEMORY_DATABASE = ":memory:"
    READ_ONLY_DEFAULT = True

    @classmethod
    def is_memory(cls, db_path: Optional[Union[str, Path]]) -> bool:
        """Check if a path refers to an in-memory database."""
        return db_path is None or str(db_path) == cls.MEMORY_DATABASE
