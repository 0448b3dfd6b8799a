import logging
from pathlib import Path
from typing import Any, List, Optional, Set, Tuple

import duckdb
import typer

from backend.connection_manager import get_db_connection
from backend.duckdb_engine import DuckDBQueryEngine
from backend.query_engine import QueryEngineError
from config.settings import Settings
from utils.logger_setup import setup_logging
from utils.query_builder import InclusionPolicy, QueryBuilder

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="query_assembler",
    help="Assemble parameterized queries from optional filters.",
    add_completion=False
)


def _parse_value(raw: str) -> Any:
    try:
        return int(raw)
    except ValueError:
        return raw


def parse_filter(raw: str, used_keys: Set[str]) -> Tuple[str, str, List[Any]]:
    """
    Split a COLUMN=V1,V2 option into column, parameter name and values.

    The parameter name is the column's last path segment; it gets a numeric
    suffix when an earlier filter already uses it. ``COLUMN=`` yields an
    empty value list.
    """
    column, sep, values = raw.partition("=")
    column = column.strip()
    if not sep or not column:
        raise typer.BadParameter(f"Expected COLUMN=V1,V2, got '{raw}'")

    base_key = column.rsplit(".", 1)[-1].strip('"')
    if not base_key.isidentifier():
        raise typer.BadParameter(f"Cannot derive a parameter name from column '{column}'")
    key = base_key
    suffix = 1
    while key in used_keys:
        suffix += 1
        key = f"{base_key}_{suffix}"
    used_keys.add(key)

    parsed = [_parse_value(v.strip()) for v in values.split(",") if v.strip()]
    return column, key, parsed


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to the console.")
):
    """
    Assemble parameterized queries from optional filters.
    """
    setup_logging(
        logger_name="",
        log_level=logging.DEBUG if verbose else Settings.LOG_LEVEL,
        console_output=verbose,
    )


@app.command()
def assemble(
    base_sql: str = typer.Argument(
        ...,
        help="Query the filters are appended to, e.g. 'select * from bills b where 1=1'."
    ),
    in_filters: Optional[List[str]] = typer.Option(
        None,
        "--in",
        help="Membership filter COLUMN=V1,V2. Repeatable."
    ),
    not_in_filters: Optional[List[str]] = typer.Option(
        None,
        "--not-in",
        help="Exclusion filter COLUMN=V1,V2. Repeatable."
    ),
    policy: str = typer.Option(
        Settings.DEFAULT_POLICY,
        "--policy",
        "-p",
        help="How filters without values are handled: omit or union-compare."
    ),
    db: Optional[Path] = typer.Option(
        None,
        "--db",
        help="DuckDB database to run the query against. Without it the query is only compiled."
    ),
):
    """
    Build a query from BASE_SQL and filters, then print or run it.
    """
    try:
        inclusion_policy = InclusionPolicy.from_name(policy)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--policy")

    builder = QueryBuilder(base_sql).set_policy(inclusion_policy)
    used_keys: Set[str] = set()
    for raw in in_filters or []:
        column, key, values = parse_filter(raw, used_keys)
        builder.append_in(column, key, values)
    for raw in not_in_filters or []:
        column, key, values = parse_filter(raw, used_keys)
        builder.append_in(column, key, values, negate=True)

    typer.echo(f"Query: {builder.text.strip()}")
    typer.echo(f"Bindings: {builder.parameters}")

    try:
        with get_db_connection(db, read_only=True) as conn:
            handle = builder.finalize_managed(DuckDBQueryEngine(conn))
            typer.echo(f"Executed SQL: {handle.sql.strip()}")
            if db is not None:
                results_df = handle.df()
                typer.echo(results_df.to_string(index=False))
                typer.secho(f"{len(results_df)} row(s) returned.", fg=typer.colors.GREEN)
    except QueryEngineError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    except duckdb.Error as e:
        logger.error(f"Query failed: {e}", exc_info=True)
        typer.secho(f"Query failed: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
