"""Schema model, diff engine, and migration annotator.

Provides the canonical schema models (``DatabaseSchema`` and its parts),
schema comparison (``compute_diff``), and advisory migration SQL
(``generate_migration_sql``).

Usage:
    from db_diff.schema import compute_diff, generate_migration_sql
    from db_diff.schema import DatabaseSchema, TableSchema, SchemaDiff
"""

from db_diff.schema.comparator import compare_table, compute_diff
from db_diff.schema.migration import generate_migration_sql
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

__all__ = [
    "compute_diff",
    "compare_table",
    "generate_migration_sql",
    "ColumnSchema",
    "PrimaryKeySchema",
    "ForeignKeySchema",
    "UniqueSchema",
    "IndexSchema",
    "CheckSchema",
    "TableSchema",
    "DatabaseSchema",
    "ColumnDiff",
    "ConstraintDiff",
    "TableDiff",
    "SchemaDiff",
]
