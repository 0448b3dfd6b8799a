"""Contract for the query engines that assembled queries are handed to."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


class QueryEngineError(Exception):
    """Base class for errors raised by a query engine."""


class QueryCompilationError(QueryEngineError):
    """Exception raised when an engine rejects the query text."""

    def __init__(self, text: str, reason: str):
        self.text = text
        self.reason = reason
        super().__init__(f"Could not compile query: {reason}")


class UnknownParameterError(QueryEngineError):
    """Exception raised when a binding names a placeholder the query does not contain."""

    def __init__(self, name: str, text: str):
        self.name = name
        self.text = text
        super().__init__(f"Query has no placeholder named '{name}'")


@runtime_checkable
class QueryHandle(Protocol):
    """A compiled, not-yet-executed query that accepts named bindings."""

    def bind(self, name: str, value: Any) -> "QueryHandle":
        ...


@runtime_checkable
class QueryEngine(Protocol):
    """Compiles query text in either the managed or the native dialect."""

    def compile_managed(self, text: str) -> QueryHandle:
        ...

    def compile_native(self, text: str) -> QueryHandle:
        ...
