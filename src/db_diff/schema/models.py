"""Pydantic models for schema snapshots and schema diffs.

This module contains schema-domain models:
- Snapshot models: ColumnSchema, PrimaryKeySchema, ForeignKeySchema,
  UniqueSchema, IndexSchema, CheckSchema, TableSchema, DatabaseSchema
- Diff models: ColumnDiff, ConstraintDiff, TableDiff, SchemaDiff

All models are frozen: a snapshot is built once per extraction and a diff
once per comparison, and neither is mutated afterwards.

Filter configuration (FilterConfig) lives in db_diff.config.models.
"""

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Schema Snapshot Models
# ============================================================================


class ColumnSchema(BaseModel):
    """Schema for a database column.

    ``data_type`` is the dialect's native type signature (``integer``,
    ``character varying(255)``, ``int(11) unsigned``).  It is never
    normalized across dialects.

    Example:
        >>> col = ColumnSchema(name="id", data_type="integer")
        >>> col.is_nullable
        True
    """

    model_config = ConfigDict(frozen=True)

    name: str
    data_type: str
    is_nullable: bool = True
    default: str | None = None


class PrimaryKeySchema(BaseModel):
    """Primary key constraint.  Column order is key ordinal order."""

    model_config = ConfigDict(frozen=True)

    name: str
    columns: list[str] = Field(default_factory=list)


class ForeignKeySchema(BaseModel):
    """Foreign key constraint.

    ``ref_columns`` is index-aligned with ``columns``.  ``on_update`` and
    ``on_delete`` hold the standard referential action tokens (CASCADE,
    RESTRICT, SET NULL, SET DEFAULT, NO ACTION).
    """

    model_config = ConfigDict(frozen=True)

    name: str
    columns: list[str] = Field(default_factory=list)
    ref_table: str
    ref_columns: list[str] = Field(default_factory=list)
    on_update: str = "NO ACTION"
    on_delete: str = "NO ACTION"


class UniqueSchema(BaseModel):
    """UNIQUE constraint."""

    model_config = ConfigDict(frozen=True)

    name: str
    columns: list[str] = Field(default_factory=list)


class IndexSchema(BaseModel):
    """Schema for a standalone index (not backing a PK/UNIQUE/FK constraint)."""

    model_config = ConfigDict(frozen=True)

    name: str
    columns: list[str] = Field(default_factory=list)
    is_unique: bool = False


class CheckSchema(BaseModel):
    """CHECK constraint with its raw, dialect-native expression."""

    model_config = ConfigDict(frozen=True)

    name: str
    expression: str


class TableSchema(BaseModel):
    """Schema for a database table.

    Every mapping is keyed by the name the database assigns to the column,
    constraint or index.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    columns: dict[str, ColumnSchema] = Field(default_factory=dict)
    primary_key: PrimaryKeySchema | None = None
    foreign_keys: dict[str, ForeignKeySchema] = Field(default_factory=dict)
    unique_constraints: dict[str, UniqueSchema] = Field(default_factory=dict)
    indexes: dict[str, IndexSchema] = Field(default_factory=dict)
    check_constraints: dict[str, CheckSchema] = Field(default_factory=dict)


class DatabaseSchema(BaseModel):
    """Complete set of base tables of one database at extraction time."""

    model_config = ConfigDict(frozen=True)

    tables: dict[str, TableSchema] = Field(default_factory=dict)


# ============================================================================
# Diff Models
# ============================================================================


class ColumnDiff(BaseModel):
    """A column present on both sides whose definition differs.

    Example:
        >>> ColumnDiff(column_name="id", diff="type: integer → bigint").diff
        'type: integer → bigint'
    """

    model_config = ConfigDict(frozen=True)

    column_name: str
    diff: str


class ConstraintDiff(BaseModel):
    """A foreign key, unique constraint, index or check present on both
    sides whose definition differs."""

    model_config = ConfigDict(frozen=True)

    name: str
    diff: str


class TableDiff(BaseModel):
    """Differences for one table present in both schemas.

    Every list is ordered by ascending column/constraint/index name.
    """

    model_config = ConfigDict(frozen=True)

    table_name: str
    columns_only_in_source: list[str] = Field(default_factory=list)
    columns_only_in_target: list[str] = Field(default_factory=list)
    column_diffs: list[ColumnDiff] = Field(default_factory=list)
    primary_key_diff: str | None = None
    foreign_keys_only_in_source: list[str] = Field(default_factory=list)
    foreign_keys_only_in_target: list[str] = Field(default_factory=list)
    foreign_key_diffs: list[ConstraintDiff] = Field(default_factory=list)
    uniques_only_in_source: list[str] = Field(default_factory=list)
    uniques_only_in_target: list[str] = Field(default_factory=list)
    unique_diffs: list[ConstraintDiff] = Field(default_factory=list)
    indexes_only_in_source: list[str] = Field(default_factory=list)
    indexes_only_in_target: list[str] = Field(default_factory=list)
    index_diffs: list[ConstraintDiff] = Field(default_factory=list)
    checks_only_in_source: list[str] = Field(default_factory=list)
    checks_only_in_target: list[str] = Field(default_factory=list)
    check_diffs: list[ConstraintDiff] = Field(default_factory=list)

    def is_empty(self) -> bool:
        """True when no facet reports a difference."""
        return self.primary_key_diff is None and not any(
            (
                self.columns_only_in_source,
                self.columns_only_in_target,
                self.column_diffs,
                self.foreign_keys_only_in_source,
                self.foreign_keys_only_in_target,
                self.foreign_key_diffs,
                self.uniques_only_in_source,
                self.uniques_only_in_target,
                self.unique_diffs,
                self.indexes_only_in_source,
                self.indexes_only_in_target,
                self.index_diffs,
                self.checks_only_in_source,
                self.checks_only_in_target,
                self.check_diffs,
            )
        )


class SchemaDiff(BaseModel):
    """Result of comparing a source schema against a target schema.

    Example:
        >>> diff = SchemaDiff()
        >>> diff.is_empty()
        True
        >>> diff.format_report()
        'No schema differences found'
    """

    model_config = ConfigDict(frozen=True)

    tables_only_in_source: list[str] = Field(default_factory=list)
    tables_only_in_target: list[str] = Field(default_factory=list)
    table_diffs: list[TableDiff] = Field(default_factory=list)

    def is_empty(self) -> bool:
        """True when both schemas are structurally identical (after filtering)."""
        return not (
            self.tables_only_in_source
            or self.tables_only_in_target
            or self.table_diffs
        )

    def to_json(self, indent: int = 2) -> str:
        """Serialize as JSON, omitting empty lists and absent values."""
        return self.model_dump_json(indent=indent, exclude_defaults=True)

    def format_report(self) -> str:
        """Format the diff as a human-readable report."""
        if self.is_empty():
            return "No schema differences found"

        lines = ["Schema differences found:", "=" * 80]

        if self.tables_only_in_source:
            lines.append(f"\nTables only in source ({len(self.tables_only_in_source)}):")
            for table in self.tables_only_in_source:
                lines.append(f"  - {table}")

        if self.tables_only_in_target:
            lines.append(f"\nTables only in target ({len(self.tables_only_in_target)}):")
            for table in self.tables_only_in_target:
                lines.append(f"  + {table}")

        for table_diff in self.table_diffs:
            lines.append(f"\nTable: {table_diff.table_name}")
            lines.append("-" * 80)

            _append_section(
                lines,
                "Columns",
                table_diff.columns_only_in_source,
                table_diff.columns_only_in_target,
                [(d.column_name, d.diff) for d in table_diff.column_diffs],
            )

            if table_diff.primary_key_diff is not None:
                lines.append(f"  Primary key: {table_diff.primary_key_diff}")

            _append_section(
                lines,
                "Foreign keys",
                table_diff.foreign_keys_only_in_source,
                table_diff.foreign_keys_only_in_target,
                [(d.name, d.diff) for d in table_diff.foreign_key_diffs],
            )
            _append_section(
                lines,
                "Unique constraints",
                table_diff.uniques_only_in_source,
                table_diff.uniques_only_in_target,
                [(d.name, d.diff) for d in table_diff.unique_diffs],
            )
            _append_section(
                lines,
                "Indexes",
                table_diff.indexes_only_in_source,
                table_diff.indexes_only_in_target,
                [(d.name, d.diff) for d in table_diff.index_diffs],
            )
            _append_section(
                lines,
                "Check constraints",
                table_diff.checks_only_in_source,
                table_diff.checks_only_in_target,
                [(d.name, d.diff) for d in table_diff.check_diffs],
            )

        return "\n".join(lines)


def _append_section(
    lines: list[str],
    label: str,
    only_in_source: list[str],
    only_in_target: list[str],
    changed: list[tuple[str, str]],
) -> None:
    if only_in_source:
        lines.append(f"  {label} only in source:")
        lines.extend(f"    - {name}" for name in only_in_source)
    if only_in_target:
        lines.append(f"  {label} only in target:")
        lines.extend(f"    + {name}" for name in only_in_target)
    if changed:
        lines.append(f"  {label} differences:")
        lines.extend(f"    ~ {name}: {diff}" for name, diff in changed)
