"""Advisory migration SQL from a SchemaDiff.

The output is a starting point for a human, not executable DDL.  A diff
keeps names but not definitions, so almost every statement is emitted
commented out with a ``...`` placeholder.  The one exception is a column that
exists only in the target: its ``ALTER TABLE ... ADD COLUMN`` is emitted live,
without a type clause, and must be completed before running.

The dialect hint only picks between the two drop-statement families:
``postgres`` (``DROP CONSTRAINT``, ``DROP INDEX name``) and everything else,
MySQL-style (``DROP FOREIGN KEY``, ``DROP INDEX name ON table``, ``DROP CHECK``).

Usage:
    from db_diff.schema.comparator import compute_diff
    from db_diff.schema.migration import generate_migration_sql

    diff = compute_diff(source_schema, target_schema)
    print(generate_migration_sql(diff, "postgres"))
"""

from db_diff.schema.models import SchemaDiff, TableDiff

NO_MIGRATIONS = "-- No migrations needed\n"


def generate_migration_sql(diff: SchemaDiff, dialect: str = "postgres") -> str:
    """Render *diff* as an annotated migration script.

    Args:
        diff: Output of ``compute_diff()``.
        dialect: ``"postgres"`` or any other dialect name (treated as
            MySQL-style syntax for drop statements).

    Returns:
        The script text, prefixed by a review disclaimer.  An empty diff
        returns ``"-- No migrations needed\\n"``.

    Example:
        >>> from db_diff.schema.models import TableDiff
        >>> diff = SchemaDiff(table_diffs=[
        ...     TableDiff(table_name="users", columns_only_in_target=["email"]),
        ... ])
        >>> "ALTER TABLE users ADD COLUMN email;" in generate_migration_sql(diff)
        True
    """
    migrations: list[str] = []

    for table_name in diff.tables_only_in_target:
        migrations.append(f"-- Table '{table_name}' exists in target but not in source")
        migrations.append(f"-- Manual review required for table: {table_name}\n")

    for table_name in diff.tables_only_in_source:
        migrations.append(
            f"-- DROP TABLE {table_name};  -- Table exists in source but not in target\n"
        )

    for table_diff in diff.table_diffs:
        statements = table_migrations(table_diff, dialect)
        if statements:
            migrations.append(f"-- Migrations for table: {table_diff.table_name}")
            migrations.extend(statements)
            migrations.append("")

    if not migrations:
        return NO_MIGRATIONS

    header = (
        f"-- Migration SQL generated for {dialect}\n"
        "-- Review and test these statements before applying to production!\n"
        "-- Some statements may need manual adjustment.\n\n"
    )
    return header + "\n".join(migrations)


def table_migrations(diff: TableDiff, dialect: str = "postgres") -> list[str]:
    """Annotated statements for one table, in a fixed facet order."""
    postgres = dialect == "postgres"
    table = diff.table_name
    statements: list[str] = []

    # Columns
    for col in diff.columns_only_in_target:
        statements.append(
            f"ALTER TABLE {table} ADD COLUMN {col};  -- Column exists in target"
        )
    for col in diff.columns_only_in_source:
        statements.append(
            f"-- ALTER TABLE {table} DROP COLUMN {col};  "
            "-- Column exists in source but not in target"
        )
    alter = "ALTER COLUMN" if postgres else "MODIFY COLUMN"
    for col_diff in diff.column_diffs:
        statements.append(
            f"-- ALTER TABLE {table} {alter} {col_diff.column_name} ...;  -- {col_diff.diff}"
        )

    # Primary key
    if diff.primary_key_diff is not None:
        statements.append(
            f"-- Primary key of {table} differs ({diff.primary_key_diff}); "
            "rebuild it manually"
        )

    # Indexes
    for idx in diff.indexes_only_in_target:
        statements.append(
            f"-- CREATE INDEX {idx} ON {table} (...);  -- Index exists in target"
        )
    for idx in diff.indexes_only_in_source:
        drop = f"DROP INDEX {idx}" if postgres else f"DROP INDEX {idx} ON {table}"
        statements.append(f"-- {drop};  -- Index exists in source but not in target")
    for entry in diff.index_diffs:
        statements.append(f"-- Index {entry.name} differs: {entry.diff}")

    # Foreign keys
    for fk in diff.foreign_keys_only_in_target:
        statements.append(
            f"-- ALTER TABLE {table} ADD CONSTRAINT {fk} FOREIGN KEY (...) "
            "REFERENCES ...;  -- FK exists in target"
        )
    for fk in diff.foreign_keys_only_in_source:
        drop = f"DROP CONSTRAINT {fk}" if postgres else f"DROP FOREIGN KEY {fk}"
        statements.append(
            f"-- ALTER TABLE {table} {drop};  -- FK exists in source but not in target"
        )
    for entry in diff.foreign_key_diffs:
        statements.append(f"-- Foreign key {entry.name} differs: {entry.diff}")

    # Unique constraints
    for uq in diff.uniques_only_in_target:
        statements.append(
            f"-- ALTER TABLE {table} ADD CONSTRAINT {uq} UNIQUE (...);  "
            "-- Unique constraint exists in target"
        )
    for uq in diff.uniques_only_in_source:
        drop = f"DROP CONSTRAINT {uq}" if postgres else f"DROP INDEX {uq}"
        statements.append(
            f"-- ALTER TABLE {table} {drop};  "
            "-- Unique constraint exists in source but not in target"
        )
    for entry in diff.unique_diffs:
        statements.append(f"-- Unique constraint {entry.name} differs: {entry.diff}")

    # Check constraints
    for chk in diff.checks_only_in_target:
        statements.append(
            f"-- ALTER TABLE {table} ADD CONSTRAINT {chk} CHECK (...);  "
            "-- Check constraint exists in target"
        )
    for chk in diff.checks_only_in_source:
        drop = f"DROP CONSTRAINT {chk}" if postgres else f"DROP CHECK {chk}"
        statements.append(
            f"-- ALTER TABLE {table} {drop};  "
            "-- Check constraint exists in source but not in target"
        )
    for entry in diff.check_diffs:
        statements.append(f"-- Check constraint {entry.name} differs: {entry.diff}")

    return statements
