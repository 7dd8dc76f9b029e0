"""db-diff: Schema drift detection between two live databases.

Extracts a canonical schema snapshot (tables, columns, primary keys, foreign
keys, unique constraints, indexes, check constraints) from PostgreSQL or
MySQL, computes a structured diff, and renders it as a report, JSON, or an
advisory migration script.

Usage:
    from db_diff import compute_diff, extract_database_schema, FilterConfig
    from db_diff import generate_migration_sql, SchemaDiff
    from db_diff import PostgresExtractor, MySQLExtractor, get_extractor
"""

__version__ = "0.1.0"

# Config
from db_diff.config.loader import load_diff_config, merge_filter_config
from db_diff.config.models import DatabaseProfile, DiffConfig, FilterConfig

# Dialects
from db_diff.dialects import (
    ExtractionError,
    MySQLExtractor,
    PostgresExtractor,
    SchemaExtractor,
)

# Factory
from db_diff.factory import (
    ProfileNotFoundError,
    UnsupportedDialectError,
    extract_database_schema,
    get_extractor,
    resolve_url,
)

# Schema
from db_diff.schema.comparator import compute_diff
from db_diff.schema.migration import generate_migration_sql
from db_diff.schema.models import DatabaseSchema, SchemaDiff, TableDiff, TableSchema

__all__ = [
    # Config
    "load_diff_config",
    "merge_filter_config",
    "DatabaseProfile",
    "DiffConfig",
    "FilterConfig",
    # Dialects
    "SchemaExtractor",
    "ExtractionError",
    "PostgresExtractor",
    "MySQLExtractor",
    # Factory
    "get_extractor",
    "extract_database_schema",
    "resolve_url",
    "ProfileNotFoundError",
    "UnsupportedDialectError",
    # Schema
    "compute_diff",
    "generate_migration_sql",
    "DatabaseSchema",
    "TableSchema",
    "SchemaDiff",
    "TableDiff",
]
