"""Structural schema comparison using set operations.

Compares a source DatabaseSchema against a target DatabaseSchema across six
facets per table: columns, primary key, foreign keys, unique constraints,
indexes and check constraints.
Pure logic -- no I/O, no database connections, no mutation of inputs.

Every emitted list is built from sorted key sets, so the same inputs always
produce the same diff regardless of dict insertion order.

Usage:
    from db_diff.schema.comparator import compute_diff
    from db_diff.config.models import FilterConfig

    diff = compute_diff(source_schema, target_schema, FilterConfig(ignore_indexes=True))
    if diff.is_empty():
        print("Schemas match")
    else:
        print(diff.format_report())
"""

import json
from collections.abc import Callable, Mapping
from typing import TypeVar

from db_diff.config.models import FilterConfig
from db_diff.schema.models import (
    CheckSchema,
    ColumnDiff,
    ColumnSchema,
    ConstraintDiff,
    DatabaseSchema,
    ForeignKeySchema,
    IndexSchema,
    PrimaryKeySchema,
    SchemaDiff,
    TableDiff,
    TableSchema,
    UniqueSchema,
)

T = TypeVar("T")


def compute_diff(
    source: DatabaseSchema,
    target: DatabaseSchema,
    filter_config: FilterConfig | None = None,
) -> SchemaDiff:
    """Compute the structural diff from *source* to *target*.

    Performs pure set operations to find:
    - Tables only in source / only in target (ignored tables dropped from both)
    - For each common, non-ignored table: a TableDiff, kept only if non-empty

    Args:
        source: Schema snapshot of the source database.
        target: Schema snapshot of the target database.
        filter_config: Tables, columns and facets to leave out.  ``None``
            compares everything.

    Returns:
        ``SchemaDiff`` whose lists are ordered by ascending table name.

    Examples:
        >>> from db_diff.schema.models import TableSchema
        >>> a = DatabaseSchema(tables={"a": TableSchema(name="a"), "b": TableSchema(name="b")})
        >>> b = DatabaseSchema(tables={"b": TableSchema(name="b"), "c": TableSchema(name="c")})
        >>> diff = compute_diff(a, b)
        >>> diff.tables_only_in_source, diff.tables_only_in_target
        (['a'], ['c'])
        >>> compute_diff(a, a).is_empty()
        True
    """
    filter_config = filter_config or FilterConfig()

    source_tables = {
        name for name in source.tables if not filter_config.should_ignore_table(name)
    }
    target_tables = {
        name for name in target.tables if not filter_config.should_ignore_table(name)
    }

    table_diffs: list[TableDiff] = []
    for table_name in sorted(source_tables & target_tables):
        table_diff = compare_table(
            source.tables[table_name], target.tables[table_name], filter_config
        )
        if not table_diff.is_empty():
            table_diffs.append(table_diff)

    return SchemaDiff(
        tables_only_in_source=sorted(source_tables - target_tables),
        tables_only_in_target=sorted(target_tables - source_tables),
        table_diffs=table_diffs,
    )


def compare_table(
    source: TableSchema,
    target: TableSchema,
    filter_config: FilterConfig | None = None,
) -> TableDiff:
    """Compare two versions of the same table facet by facet.

    Foreign keys, indexes and checks are skipped entirely when the matching
    ``filter_config`` switch is set; their lists stay empty.
    """
    filter_config = filter_config or FilterConfig()
    table_name = source.name

    source_cols = {
        name for name in source.columns
        if not filter_config.should_ignore_column(table_name, name)
    }
    target_cols = {
        name for name in target.columns
        if not filter_config.should_ignore_column(table_name, name)
    }

    column_diffs: list[ColumnDiff] = []
    for col_name in sorted(source_cols & target_cols):
        message = compare_column(source.columns[col_name], target.columns[col_name])
        if message:
            column_diffs.append(ColumnDiff(column_name=col_name, diff=message))

    facets: dict = {
        "columns_only_in_source": sorted(source_cols - target_cols),
        "columns_only_in_target": sorted(target_cols - source_cols),
        "column_diffs": column_diffs,
        "primary_key_diff": compare_primary_key(source.primary_key, target.primary_key),
    }

    if not filter_config.ignore_foreign_keys:
        (
            facets["foreign_keys_only_in_source"],
            facets["foreign_keys_only_in_target"],
            facets["foreign_key_diffs"],
        ) = _compare_named(source.foreign_keys, target.foreign_keys, compare_foreign_key)

    (
        facets["uniques_only_in_source"],
        facets["uniques_only_in_target"],
        facets["unique_diffs"],
    ) = _compare_named(
        source.unique_constraints, target.unique_constraints, compare_unique
    )

    if not filter_config.ignore_indexes:
        (
            facets["indexes_only_in_source"],
            facets["indexes_only_in_target"],
            facets["index_diffs"],
        ) = _compare_named(source.indexes, target.indexes, compare_index)

    if not filter_config.ignore_checks:
        (
            facets["checks_only_in_source"],
            facets["checks_only_in_target"],
            facets["check_diffs"],
        ) = _compare_named(
            source.check_constraints, target.check_constraints, compare_check
        )

    return TableDiff(table_name=table_name, **facets)


# ----------------------------------------------------------------------------
# Facet comparators -- each returns "" when the two sides match
# ----------------------------------------------------------------------------


def compare_column(source: ColumnSchema, target: ColumnSchema) -> str:
    """Compare type, nullability and default of one column.

    A missing default and an empty default both compare as ``""``.
    """
    diffs: list[str] = []

    if source.data_type != target.data_type:
        diffs.append(f"type: {source.data_type} → {target.data_type}")

    if source.is_nullable != target.is_nullable:
        diffs.append(
            f"nullable: {_fmt_bool(source.is_nullable)} → {_fmt_bool(target.is_nullable)}"
        )

    source_default = source.default or ""
    target_default = target.default or ""
    if source_default != target_default:
        diffs.append(
            f"default: {_fmt_quoted(source_default)} → {_fmt_quoted(target_default)}"
        )

    return "; ".join(diffs)


def compare_primary_key(
    source: PrimaryKeySchema | None,
    target: PrimaryKeySchema | None,
) -> str | None:
    """Compare primary keys.  Returns ``None`` when there is no difference."""
    if source is None and target is None:
        return None
    if source is None:
        return f"added: {_fmt_list(target.columns)}"
    if target is None:
        return f"removed: {_fmt_list(source.columns)}"
    if source.columns != target.columns:
        return f"columns: {_fmt_list(source.columns)} → {_fmt_list(target.columns)}"
    return None


def compare_foreign_key(source: ForeignKeySchema, target: ForeignKeySchema) -> str:
    diffs: list[str] = []

    if source.columns != target.columns:
        diffs.append(f"columns: {_fmt_list(source.columns)} → {_fmt_list(target.columns)}")

    if source.ref_table != target.ref_table:
        diffs.append(f"ref_table: {source.ref_table} → {target.ref_table}")

    if source.ref_columns != target.ref_columns:
        diffs.append(
            f"ref_columns: {_fmt_list(source.ref_columns)} → {_fmt_list(target.ref_columns)}"
        )

    if source.on_update != target.on_update:
        diffs.append(f"on_update: {source.on_update} → {target.on_update}")

    if source.on_delete != target.on_delete:
        diffs.append(f"on_delete: {source.on_delete} → {target.on_delete}")

    return "; ".join(diffs)


def compare_unique(source: UniqueSchema, target: UniqueSchema) -> str:
    if source.columns != target.columns:
        return f"columns: {_fmt_list(source.columns)} → {_fmt_list(target.columns)}"
    return ""


def compare_index(source: IndexSchema, target: IndexSchema) -> str:
    diffs: list[str] = []

    if source.columns != target.columns:
        diffs.append(f"columns: {_fmt_list(source.columns)} → {_fmt_list(target.columns)}")

    if source.is_unique != target.is_unique:
        diffs.append(f"unique: {_fmt_bool(source.is_unique)} → {_fmt_bool(target.is_unique)}")

    return "; ".join(diffs)


def compare_check(source: CheckSchema, target: CheckSchema) -> str:
    if source.expression != target.expression:
        return f"expression: {source.expression} → {target.expression}"
    return ""


# ----------------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------------


def _compare_named(
    source: Mapping[str, T],
    target: Mapping[str, T],
    compare: Callable[[T, T], str],
) -> tuple[list[str], list[str], list[ConstraintDiff]]:
    """Shared routine for the name-keyed constraint and index facets.

    Returns ``(only_in_source, only_in_target, changed)``, each sorted by name.
    """
    source_names = set(source)
    target_names = set(target)

    changed: list[ConstraintDiff] = []
    for name in sorted(source_names & target_names):
        message = compare(source[name], target[name])
        if message:
            changed.append(ConstraintDiff(name=name, diff=message))

    return (
        sorted(source_names - target_names),
        sorted(target_names - source_names),
        changed,
    )


def _fmt_list(values: list[str]) -> str:
    return "[" + ", ".join(values) + "]"


def _fmt_bool(value: bool) -> str:
    return "true" if value else "false"


def _fmt_quoted(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)
