"""Configuration management for the query assembler."""

from .database import DatabaseConfig
from .settings import Settings

__all__ = ["Settings", "DatabaseConfig"]
