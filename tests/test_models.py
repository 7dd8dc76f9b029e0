"""Tests for schema snapshot and diff models.

Verifies immutability, emptiness checks, JSON serialization and the
human-readable report format of SchemaDiff.
"""

import json

import pytest
from pydantic import ValidationError

from db_diff.schema.models import (
    ColumnDiff,
    ColumnSchema,
    ConstraintDiff,
    DatabaseSchema,
    ForeignKeySchema,
    SchemaDiff,
    TableDiff,
    TableSchema,
)


class TestSnapshotModels:
    """Verify snapshot model defaults and immutability."""

    def test_column_defaults(self) -> None:
        """ColumnSchema defaults to nullable with no default."""
        col = ColumnSchema(name="id", data_type="integer")
        assert col.is_nullable is True
        assert col.default is None

    def test_foreign_key_action_defaults(self) -> None:
        """ForeignKeySchema actions default to NO ACTION."""
        fk = ForeignKeySchema(
            name="fk", columns=["user_id"], ref_table="users", ref_columns=["id"]
        )
        assert fk.on_update == "NO ACTION"
        assert fk.on_delete == "NO ACTION"

    def test_table_defaults_are_empty(self) -> None:
        """A bare TableSchema has no columns, constraints or indexes."""
        table = TableSchema(name="t")
        assert table.columns == {}
        assert table.primary_key is None
        assert table.foreign_keys == {}
        assert table.unique_constraints == {}
        assert table.indexes == {}
        assert table.check_constraints == {}

    def test_models_are_frozen(self) -> None:
        """Assigning to a snapshot field raises ValidationError."""
        col = ColumnSchema(name="id", data_type="integer")
        with pytest.raises(ValidationError):
            col.data_type = "bigint"

    def test_schema_equality_is_structural(self) -> None:
        """Two snapshots built from the same data compare equal."""
        a = DatabaseSchema(tables={"t": TableSchema(name="t")})
        b = DatabaseSchema(tables={"t": TableSchema(name="t")})
        assert a == b


class TestTableDiffEmptiness:
    """Verify TableDiff.is_empty() across facets."""

    def test_bare_table_diff_is_empty(self) -> None:
        assert TableDiff(table_name="t").is_empty()

    def test_column_only_in_target_is_not_empty(self) -> None:
        assert not TableDiff(table_name="t", columns_only_in_target=["email"]).is_empty()

    def test_primary_key_diff_is_not_empty(self) -> None:
        assert not TableDiff(table_name="t", primary_key_diff="added: [id]").is_empty()

    def test_check_diff_is_not_empty(self) -> None:
        diff = TableDiff(
            table_name="t",
            check_diffs=[ConstraintDiff(name="c", diff="expression: a → b")],
        )
        assert not diff.is_empty()


class TestSchemaDiffEmptiness:
    """Verify SchemaDiff.is_empty()."""

    def test_default_is_empty(self) -> None:
        assert SchemaDiff().is_empty()

    def test_table_only_in_source_is_not_empty(self) -> None:
        assert not SchemaDiff(tables_only_in_source=["a"]).is_empty()

    def test_table_diff_is_not_empty(self) -> None:
        diff = SchemaDiff(
            table_diffs=[TableDiff(table_name="t", columns_only_in_source=["x"])]
        )
        assert not diff.is_empty()


class TestSchemaDiffJson:
    """Verify SchemaDiff.to_json()."""

    def test_empty_diff_is_empty_object(self) -> None:
        assert json.loads(SchemaDiff().to_json()) == {}

    def test_omits_empty_lists(self) -> None:
        """Only populated fields appear in the JSON output."""
        diff = SchemaDiff(
            tables_only_in_target=["c"],
            table_diffs=[
                TableDiff(
                    table_name="users",
                    column_diffs=[
                        ColumnDiff(column_name="id", diff="type: integer → bigint")
                    ],
                )
            ],
        )
        data = json.loads(diff.to_json())

        assert data == {
            "tables_only_in_target": ["c"],
            "table_diffs": [
                {
                    "table_name": "users",
                    "column_diffs": [
                        {"column_name": "id", "diff": "type: integer → bigint"}
                    ],
                }
            ],
        }


class TestFormatReport:
    """Verify the human-readable report."""

    def test_empty_report(self) -> None:
        assert SchemaDiff().format_report() == "No schema differences found"

    def test_report_lists_tables(self) -> None:
        report = SchemaDiff(
            tables_only_in_source=["a"], tables_only_in_target=["c"]
        ).format_report()

        assert report.startswith("Schema differences found:\n" + "=" * 80)
        assert "Tables only in source (1):\n  - a" in report
        assert "Tables only in target (1):\n  + c" in report

    def test_report_table_sections(self) -> None:
        diff = SchemaDiff(
            table_diffs=[
                TableDiff(
                    table_name="users",
                    columns_only_in_target=["email"],
                    column_diffs=[
                        ColumnDiff(column_name="id", diff="type: integer → bigint")
                    ],
                    primary_key_diff="columns: [id] → [id, tenant_id]",
                    indexes_only_in_source=["idx_old"],
                )
            ]
        )
        report = diff.format_report()

        assert "Table: users\n" + "-" * 80 in report
        assert "  Columns only in target:\n    + email" in report
        assert "  Columns differences:\n    ~ id: type: integer → bigint" in report
        assert "  Primary key: columns: [id] → [id, tenant_id]" in report
        assert "  Indexes only in source:\n    - idx_old" in report
        assert "Foreign keys" not in report
