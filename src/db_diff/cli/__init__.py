"""CLI module for comparing two live database schemas.

Extracts a schema snapshot from a source and a target database, diffs them,
and prints the result as a report, as JSON, or as an advisory migration
script.

Usage:
    db-diff --source postgresql://app@localhost/dev --source-driver postgres \\
            --target postgresql://app@db/prod --target-driver postgres
    db-diff --source dev --target prod --json
    db-diff --source dev --target prod --migration --ignore-tables schema_migrations
    db-diff --source dev --target prod --parallel --ignore-columns users.updated_at

Exit codes:
    0 - Schemas match (after filtering)
    2 - Schemas differ
    1 - Configuration, connection, or extraction error
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from db_diff.config.loader import (
    DEFAULT_CONFIG_FILE,
    load_diff_config,
    merge_filter_config,
)
from db_diff.config.models import DiffConfig, FilterConfig
from db_diff.dialects.base import ExtractionError
from db_diff.factory import (
    ProfileNotFoundError,
    extract_database_schema,
    resolve_connection,
)
from db_diff.schema.comparator import compute_diff
from db_diff.schema.migration import generate_migration_sql
from db_diff.schema.models import SchemaDiff

EXIT_NO_DIFF = 0
EXIT_ERROR = 1
EXIT_DIFF = 2

console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)


# ============================================================================
# Argument helpers
# ============================================================================


def _split_csv(value: str | None) -> list[str]:
    """Split a comma-separated flag value, dropping blanks."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_ignore_columns(value: str | None) -> dict[str, list[str]]:
    """Parse ``table.col,table.col`` into ``{table: [col, ...]}``.

    Raises:
        ValueError: If an entry is not of the form ``table.column``.

    Example:
        >>> _parse_ignore_columns("users.updated_at,users.created_at,orders.note")
        {'users': ['updated_at', 'created_at'], 'orders': ['note']}
    """
    result: dict[str, list[str]] = {}
    for entry in _split_csv(value):
        table, sep, column = entry.partition(".")
        if not sep or not table or not column:
            raise ValueError(
                f"Invalid --ignore-columns entry '{entry}' (expected table.column)"
            )
        result.setdefault(table, []).append(column)
    return result


def _load_config(config_path: str | None) -> DiffConfig:
    """Load the config file, which is optional unless named explicitly."""
    if config_path:
        return load_diff_config(Path(config_path))

    default_path = Path.cwd() / DEFAULT_CONFIG_FILE
    if default_path.exists():
        return load_diff_config(default_path)
    return DiffConfig()


def _build_filter(args: argparse.Namespace, config: DiffConfig) -> FilterConfig:
    return merge_filter_config(
        config.filter,
        ignore_tables=_split_csv(args.ignore_tables),
        ignore_table_pattern=args.ignore_table_pattern,
        ignore_columns=_parse_ignore_columns(args.ignore_columns),
        ignore_indexes=args.ignore_indexes,
        ignore_foreign_keys=args.ignore_foreign_keys,
        ignore_checks=args.ignore_checks,
    )


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


# ============================================================================
# Output
# ============================================================================


def _print_result(args: argparse.Namespace, diff: SchemaDiff, dialect: str) -> None:
    """Print the diff in the requested format (migration, JSON, or report)."""
    if args.migration:
        console.print(
            generate_migration_sql(diff, dialect),
            markup=False,
            highlight=False,
            soft_wrap=True,
            end="",
        )
    elif args.json:
        console.print_json(diff.to_json())
    else:
        console.print(
            diff.format_report(),
            markup=False,
            highlight=False,
            soft_wrap=True,
        )


# ============================================================================
# Async command implementation
# ============================================================================


async def _async_diff(args: argparse.Namespace) -> int:
    """Resolve both sides, extract them, compute and print the diff.

    Every configuration problem is reported before any database is touched.
    """
    try:
        config = _load_config(args.config)
        filter_config = _build_filter(args, config)
        source_url, source_dialect, source_schema = resolve_connection(
            args.source, args.source_driver, config, args.schema
        )
        target_url, target_dialect, target_schema = resolve_connection(
            args.target, args.target_driver, config, args.schema
        )
    except (FileNotFoundError, ProfileNotFoundError, ValueError) as e:
        # ValidationError and UnsupportedDialectError are ValueErrors
        err_console.print(f"[red]Error: {escape(_first_line(e))}[/red]")
        return EXIT_ERROR

    try:
        source = await extract_database_schema(
            source_url,
            source_dialect,
            parallel=args.parallel,
            schema_name=source_schema,
        )
        target = await extract_database_schema(
            target_url,
            target_dialect,
            parallel=args.parallel,
            schema_name=target_schema,
        )
    except ConnectionError as e:
        err_console.print(
            f"[red]Error connecting to database: {escape(str(e))}[/red]"
        )
        return EXIT_ERROR
    except (ExtractionError, ValueError) as e:
        err_console.print(f"[red]Error extracting schema: {escape(str(e))}[/red]")
        return EXIT_ERROR

    logger.debug(
        "Comparing %d source tables with %d target tables",
        len(source.tables),
        len(target.tables),
    )
    diff = compute_diff(source, target, filter_config)
    _print_result(args, diff, source_dialect)

    return EXIT_NO_DIFF if diff.is_empty() else EXIT_DIFF


def _first_line(error: Exception) -> str:
    """Condense multi-line pydantic errors to their first line."""
    if isinstance(error, ValidationError):
        details = error.errors()
        if details:
            return f"Invalid configuration: {details[0]['msg']}"
    return str(error)


# ============================================================================
# Command wrappers
# ============================================================================


def cmd_diff(args: argparse.Namespace) -> int:
    """Compare source and target schemas.

    Wraps the async implementation with ``asyncio.run()``.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 if the schemas match, 2 if they differ, 1 on error.
    """
    return asyncio.run(_async_diff(args))


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the ``db-diff`` argument parser."""
    parser = argparse.ArgumentParser(
        prog="db-diff",
        description="Compare two database schemas and report drift",
    )

    # Connections
    parser.add_argument(
        "--source",
        required=True,
        help="Source database URL or profile name from db-diff.toml",
    )
    parser.add_argument(
        "--source-driver",
        help="Source dialect: postgres or mysql (optional for profiles)",
    )
    parser.add_argument(
        "--target",
        required=True,
        help="Target database URL or profile name from db-diff.toml",
    )
    parser.add_argument(
        "--target-driver",
        help="Target dialect: postgres or mysql (optional for profiles)",
    )
    parser.add_argument(
        "--schema",
        help="Postgres schema or MySQL database to compare (default: public / current)",
    )
    parser.add_argument(
        "--config",
        help=f"Path to config file (default: ./{DEFAULT_CONFIG_FILE} if present)",
    )

    # Output
    output = parser.add_mutually_exclusive_group()
    output.add_argument(
        "--json",
        action="store_true",
        help="Print the diff as JSON",
    )
    output.add_argument(
        "--migration",
        action="store_true",
        help="Print advisory migration SQL instead of a report",
    )

    # Extraction
    parser.add_argument(
        "--parallel",
        action="store_true",
        help="Extract tables concurrently (one pooled connection per table)",
    )

    # Filters
    parser.add_argument(
        "--ignore-tables",
        help="Comma-separated table names to ignore (e.g., schema_migrations,audit)",
    )
    parser.add_argument(
        "--ignore-table-pattern",
        help="Regex; tables whose name matches anywhere are ignored",
    )
    parser.add_argument(
        "--ignore-columns",
        help="Comma-separated table.column entries to ignore (e.g., users.updated_at)",
    )
    parser.add_argument(
        "--ignore-indexes",
        action="store_true",
        help="Skip index comparison",
    )
    parser.add_argument(
        "--ignore-foreign-keys",
        action="store_true",
        help="Skip foreign key comparison",
    )
    parser.add_argument(
        "--ignore-checks",
        action="store_true",
        help="Skip check constraint comparison",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging on stderr",
    )
    parser.set_defaults(func=cmd_diff)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and runs the diff.

    Returns:
        Exit code (0 no differences, 2 differences found, 1 error).
    """
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
