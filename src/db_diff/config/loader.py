"""TOML configuration loader for db-diff profiles and filter defaults."""

import tomllib
from pathlib import Path

from db_diff.config.models import DatabaseProfile, DiffConfig, FilterConfig

DEFAULT_CONFIG_FILE = "db-diff.toml"


def load_diff_config(config_path: Path | None = None) -> DiffConfig:
    """Load profiles and filter defaults from a TOML file.

    Args:
        config_path: Path to db-diff.toml (default: ``./db-diff.toml``)

    Returns:
        DiffConfig with all profiles and the ``[filter]`` table

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid (bad TOML, bad regex,
            unknown profile fields)
    """
    if config_path is None:
        config_path = Path.cwd() / DEFAULT_CONFIG_FILE

    if not config_path.exists():
        raise FileNotFoundError(f"db-diff config not found: {config_path}")

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {config_path.name}: {e}") from e

    profiles = {}
    for name, profile_data in data.get("profiles", {}).items():
        profiles[name] = DatabaseProfile(**profile_data)

    filter_data = data.get("filter", {})

    return DiffConfig(
        profiles=profiles,
        filter=FilterConfig(**filter_data),
    )


def merge_filter_config(
    base: FilterConfig,
    ignore_tables: list[str] | None = None,
    ignore_table_pattern: str | None = None,
    ignore_columns: dict[str, list[str]] | None = None,
    ignore_indexes: bool = False,
    ignore_foreign_keys: bool = False,
    ignore_checks: bool = False,
) -> FilterConfig:
    """Layer command-line filter options over a file-level FilterConfig.

    Table and column lists are unioned, switches are OR-ed, and a given
    pattern replaces the base pattern.

    Raises:
        ValueError: If ``ignore_table_pattern`` is not a valid regex
    """
    columns: dict[str, set[str]] = {
        table: set(cols) for table, cols in base.ignore_columns.items()
    }
    for table, cols in (ignore_columns or {}).items():
        columns.setdefault(table, set()).update(cols)

    return FilterConfig(
        ignore_tables=base.ignore_tables | set(ignore_tables or []),
        ignore_table_pattern=(
            ignore_table_pattern
            if ignore_table_pattern
            else base.ignore_table_pattern
        ),
        ignore_columns={table: frozenset(cols) for table, cols in columns.items()},
        ignore_indexes=base.ignore_indexes or ignore_indexes,
        ignore_foreign_keys=base.ignore_foreign_keys or ignore_foreign_keys,
        ignore_checks=base.ignore_checks or ignore_checks,
    )
