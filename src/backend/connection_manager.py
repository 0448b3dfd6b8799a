"""
Database connection management with guaranteed resource cleanup.
"""

from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import Generator, Optional, Union

import duckdb

from config.database import DatabaseConfig


@contextlib.contextmanager
def get_db_connection(
    db_path: Optional[Union[str, Path]] = None,
    read_only: bool = DatabaseConfig.READ_ONLY_DEFAULT,
    logger_obj: logging.Logger | None = None,
) -> Generator[duckdb.DuckDBPyConnection, None, None]:
    """
    Context manager for DuckDB connections with proper resource cleanup.

    Args:
        db_path: Path to the database file; None or ":memory:" for an in-memory database
        read_only: Whether to open in read-only mode
        logger_obj: Optional logger for debug messages

    Yields:
        DuckDB connection that will be automatically closed

    Example:
        with get_db_connection(db_path) as conn:
            handle = builder.finalize_managed(DuckDBQueryEngine(conn))
    """
    if logger_obj is None:
        logger_obj = logging.getLogger(__name__)

    if DatabaseConfig.is_memory(db_path):
        database = DatabaseConfig.MEMORY_DATABASE
        read_only = False
    else:
        path = Path(db_path)
        if not path.exists() and read_only:
            logger_obj.warning(f"Database {path} does not exist. Using in-memory fallback.")
            database = DatabaseConfig.MEMORY_DATABASE
            read_only = False
        else:
            database = path.as_posix()

    conn = duckdb.connect(database=database, read_only=read_only)
    logger_obj.debug(f"Connected to DuckDB at {database} (read_only={read_only})")
    try:
        yield conn
    finally:
        conn.close()
        logger_obj.debug(f"Connection to {database} closed")
