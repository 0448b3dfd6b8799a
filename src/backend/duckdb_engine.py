"""
DuckDB implementation of the query engine contract.

Two dialects are supported:

- managed: portable ``:name`` placeholders. A collection bound to a
  placeholder is expanded into one DuckDB parameter per element, so
  ``x in (:ids)`` works for lists, tuples and sets.
- native: DuckDB's own ``$name`` placeholders. A collection is expanded
  only where the placeholder is the whole list of ``in (...)``; anywhere
  else it binds as a DuckDB list.

Expanded parameters are named ``<name>__<index>``, with extra underscores
when that name is already used by the query.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Pattern, Tuple

import duckdb
import pandas as pd

from backend.query_engine import QueryCompilationError, UnknownParameterError
from config.settings import Settings
from utils.query_builder import is_absent, is_collection

MANAGED = "managed"
NATIVE = "native"

# ``::`` is a cast, ``$1`` a positional parameter; neither is a named placeholder
MANAGED_PLACEHOLDER_RE = re.compile(r"(?<![:\w]):([A-Za-z_]\w*)")
NATIVE_PLACEHOLDER_RE = re.compile(r"(?<![$\w])\$([A-Za-z_]\w*)")
# ``$name`` as the whole list of an ``in (...)``
NATIVE_IN_LIST_RE = re.compile(r"(\bin\s*\(\s*)\$([A-Za-z_]\w*)(\s*\))", re.IGNORECASE)
# String literals, quoted identifiers and comments never hold placeholders
_SKIPPED_TEXT_RE = re.compile(
    r"""('(?:[^']|'')*'|"(?:[^"]|"")*"|--[^\n]*|/\*.*?\*/)""",
    re.DOTALL,
)


def _sub_outside_skipped(pattern: Pattern[str], repl: Callable[[re.Match], str], text: str) -> str:
    """Apply ``pattern.sub`` outside string literals, quoted identifiers and comments."""
    chunks = _SKIPPED_TEXT_RE.split(text)
    for index in range(0, len(chunks), 2):
        chunks[index] = pattern.sub(repl, chunks[index])
    return "".join(chunks)


def find_placeholders(text: str, dialect: str) -> List[str]:
    """
    List the named placeholders of a query, in order of first appearance.

    Args:
        text: Query text
        dialect: MANAGED or NATIVE

    Returns:
        Unique placeholder names without their prefix
    """
    pattern = MANAGED_PLACEHOLDER_RE if dialect == MANAGED else NATIVE_PLACEHOLDER_RE
    names: List[str] = []

    def collect(match: re.Match) -> str:
        if match.group(1) not in names:
            names.append(match.group(1))
        return match.group(0)

    _sub_outside_skipped(pattern, collect, text)
    return names


class DuckDBQueryHandle:
    """A parsed query plus its bindings, ready to run on a DuckDB connection."""

    def __init__(
        self,
        connection: duckdb.DuckDBPyConnection,
        text: str,
        dialect: str,
        logger_obj: Optional[logging.Logger] = None,
    ):
        self.connection = connection
        self.text = text
        self.dialect = dialect
        self.placeholders = find_placeholders(text, dialect)
        self.logger = logger_obj or logging.getLogger(__name__)
        self._bindings: Dict[str, Any] = {}
        self._inert_bindings: Dict[str, Any] = {}

    @property
    def bindings(self) -> Dict[str, Any]:
        """All bindings received, including those with no placeholder in the text."""
        return {**self._inert_bindings, **self._bindings}

    def bind(self, name: str, value: Any) -> "DuckDBQueryHandle":
        """
        Bind a value to a named placeholder.

        An absent value (``None`` or an empty collection) for a name the text
        does not reference is accepted and never sent to DuckDB; this is the
        binding left behind when a membership test was replaced by a constant
        predicate.

        Raises:
            UnknownParameterError: If a present value names no placeholder
        """
        if name in self.placeholders:
            self._bindings[name] = value
        elif is_absent(value):
            self.logger.debug(f"Keeping unreferenced absent binding '{name}' out of the query")
            self._inert_bindings[name] = value
        else:
            raise UnknownParameterError(name, self.text)
        return self

    def render(self) -> Tuple[str, Dict[str, Any]]:
        """
        Produce the SQL and parameter dict DuckDB will execute.

        Raises:
            QueryCompilationError: If a placeholder has no bound value
        """
        missing = [name for name in self.placeholders if name not in self._bindings]
        if missing:
            raise QueryCompilationError(
                self.text, f"No value bound for placeholder(s): {', '.join(missing)}"
            )

        taken = set(self.placeholders) | set(self._bindings)
        expanded: Dict[str, Any] = {}

        def expand_collection(name: str, value: Any) -> str:
            if len(value) == 0:
                return "NULL"
            placeholders = []
            for index, item in enumerate(value):
                expanded_name = f"{name}__{index}"
                while expanded_name in taken or expanded_name in expanded:
                    expanded_name += "_"
                expanded[expanded_name] = item
                placeholders.append(f"${expanded_name}")
            return ", ".join(placeholders)

        if self.dialect == NATIVE:
            def expand_in_list(match: re.Match) -> str:
                value = self._bindings[match.group(2)]
                if not is_collection(value):
                    return match.group(0)
                return f"{match.group(1)}{expand_collection(match.group(2), value)}{match.group(3)}"

            sql = _sub_outside_skipped(NATIVE_IN_LIST_RE, expand_in_list, self.text)
        else:
            def expand_placeholder(match: re.Match) -> str:
                name = match.group(1)
                value = self._bindings[name]
                if is_collection(value):
                    return expand_collection(name, value)
                return f"${name}"

            sql = _sub_outside_skipped(MANAGED_PLACEHOLDER_RE, expand_placeholder, self.text)

        params = {
            name: self._bindings[name]
            for name in find_placeholders(sql, NATIVE)
            if name not in expanded and name in self._bindings
        }
        params.update(expanded)
        return sql, params

    @property
    def sql(self) -> str:
        return self.render()[0]

    @property
    def params(self) -> Dict[str, Any]:
        return self.render()[1]

    def execute(self) -> duckdb.DuckDBPyConnection:
        """Run the query and return the DuckDB cursor holding its result."""
        sql, params = self.render()
        self.logger.debug(f"Executing query: {sql[:Settings.SQL_PREVIEW_LENGTH]}... with params: {params}")
        try:
            if params:
                return self.connection.execute(sql, params)
            return self.connection.execute(sql)
        except duckdb.Error as e:
            self.logger.error(f"Query execution error: {e}\nQuery: {sql}\nParams: {params}", exc_info=True)
            raise

    def df(self) -> pd.DataFrame:
        """Run the query and return its result as a DataFrame."""
        return self.execute().df()

    def fetchall(self) -> List[tuple]:
        return self.execute().fetchall()


class DuckDBQueryEngine:
    """Compiles assembled query text against a DuckDB connection."""

    def __init__(self, connection: duckdb.DuckDBPyConnection, logger_obj: Optional[logging.Logger] = None):
        self.connection = connection
        self.logger = logger_obj or logging.getLogger(__name__)

    def compile_managed(self, text: str) -> DuckDBQueryHandle:
        """Parse text written with ``:name`` placeholders."""
        parsable = _sub_outside_skipped(
            MANAGED_PLACEHOLDER_RE, lambda match: f"${match.group(1)}", text
        )
        self._parse(text, parsable)
        return DuckDBQueryHandle(self.connection, text, MANAGED, logger_obj=self.logger)

    def compile_native(self, text: str) -> DuckDBQueryHandle:
        """Parse text written in DuckDB SQL with ``$name`` placeholders."""
        self._parse(text, text)
        return DuckDBQueryHandle(self.connection, text, NATIVE, logger_obj=self.logger)

    def _parse(self, text: str, sql: str) -> None:
        try:
            statements = self.connection.extract_statements(sql)
        except duckdb.Error as e:
            self.logger.error(f"Query rejected by parser: {e}\nQuery: {text}")
            raise QueryCompilationError(text, str(e)) from e

        if len(statements) != 1:
            raise QueryCompilationError(
                text, f"Expected exactly one statement, found {len(statements)}"
            )
