"""Tests for the PostgreSQL and MySQL schema extractors.

Runs both extractors against an in-memory fake ``AsyncEngine`` that answers
each dialect's catalog queries from canned rows.  Verifies row-to-model
mapping, sequential/parallel equivalence, connection-per-task isolation,
bounded concurrency, and error wrapping.
"""

import asyncio
from contextlib import asynccontextmanager

import pytest
from sqlalchemy.exc import OperationalError, ProgrammingError, SQLAlchemyError

from db_diff.dialects import mysql, postgres
from db_diff.dialects.base import (
    ExtractionError,
    extract_parallel,
    split_list,
    synthesize_name,
)
from db_diff.dialects.mysql import MySQLExtractor
from db_diff.dialects.postgres import PostgresExtractor
from db_diff.schema.models import (
    ColumnSchema,
    DatabaseSchema,
    ForeignKeySchema,
    IndexSchema,
    PrimaryKeySchema,
    TableSchema,
)


# ============================================================================
# Fake engine
# ============================================================================


class FakeResult:
    def __init__(self, rows: list[tuple]) -> None:
        self._rows = rows

    def fetchall(self) -> list[tuple]:
        return list(self._rows)

    def scalar(self):
        return self._rows[0][0] if self._rows else None


class FakeConnection:
    def __init__(self, engine: "FakeEngine") -> None:
        self._engine = engine

    async def execute(self, statement, params=None) -> FakeResult:
        params = dict(params or {})
        query = statement.text
        table = params.get("table")
        self._engine.executed.append((query, table))
        # Yield so parallel tasks interleave
        await asyncio.sleep(0)

        error = self._engine.failures.get((query, table))
        if error is not None:
            raise error
        return FakeResult(self._engine.catalog.get(query, {}).get(table, []))


class FakeEngine:
    """Answers ``catalog[query][table]`` rows; ``table`` is None for
    schema-level queries."""

    def __init__(
        self,
        catalog: dict[str, dict[str | None, list[tuple]]],
        failures: dict[tuple[str, str | None], Exception] | None = None,
    ) -> None:
        self.catalog = catalog
        self.failures = failures or {}
        self.executed: list[tuple[str, str | None]] = []
        self.connections_opened = 0
        self.active = 0
        self.max_active = 0

    @asynccontextmanager
    async def connect(self):
        self.connections_opened += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            yield FakeConnection(self)
        finally:
            self.active -= 1


def _boom(message: str = "boom") -> SQLAlchemyError:
    return OperationalError("SELECT", {}, Exception(message))


# ============================================================================
# Catalog fixtures
# ============================================================================


def _postgres_catalog() -> dict:
    return {
        postgres.TABLES_QUERY: {None: [("orders",), ("users",)]},
        postgres.COLUMNS_QUERY: {
            "users": [
                ("id", "integer", False, "nextval('users_id_seq'::regclass)"),
                ("email", "character varying(255)", True, None),
            ],
            "orders": [
                ("id", "bigint", False, None),
                ("user_id", "integer", True, None),
                ("status", "text", False, "'new'::text"),
            ],
        },
        postgres.PRIMARY_KEY_QUERY: {
            "users": [("users_pkey", ["id"])],
            "orders": [("orders_pkey", ["id"])],
        },
        postgres.FOREIGN_KEYS_QUERY: {
            "orders": [
                ("orders_user_id_fkey", ["user_id"], "users", ["id"], "a", "c"),
            ],
        },
        postgres.UNIQUE_QUERY: {
            "users": [("users_email_key", ["email"])],
        },
        postgres.INDEXES_QUERY: {
            "orders": [("idx_orders_status", ["status", "user_id"], False)],
        },
        postgres.CHECKS_QUERY: {
            "orders": [
                ("orders_status_check", "CHECK ((status <> ''::text))"),
            ],
        },
    }


def _mysql_catalog() -> dict:
    return {
        mysql.CURRENT_DATABASE_QUERY: {None: [("shop",)]},
        mysql.TABLES_QUERY: {None: [("orders",), ("users",)]},
        mysql.COLUMNS_QUERY: {
            "users": [
                ("id", "int unsigned", "NO", None),
                ("email", b"varchar(255)", "YES", None),
            ],
            "orders": [
                ("id", "bigint", "NO", None),
                ("user_id", "int unsigned", "YES", None),
                ("status", "varchar(16)", "NO", "new"),
            ],
        },
        mysql.PRIMARY_KEY_QUERY: {
            "users": [("PRIMARY", "id")],
            "orders": [("PRIMARY", "id")],
        },
        mysql.FOREIGN_KEYS_QUERY: {
            "orders": [
                ("fk_orders_user", "user_id", "users", "id", "NO ACTION", "CASCADE"),
            ],
        },
        mysql.UNIQUE_QUERY: {
            "users": [("uq_email", "email")],
        },
        mysql.INDEXES_QUERY: {
            "orders": [("idx_status", "status,user_id", 1)],
            "users": [("idx_email_lower", "email", 0)],
        },
        mysql.CHECKS_QUERY: {
            "orders": [("chk_status", b"(`status` <> _utf8mb4'')")],
        },
    }


# ============================================================================
# Helpers
# ============================================================================


class TestHelpers:
    """Verify list normalization and deterministic naming."""

    def test_split_list(self) -> None:
        assert split_list(None) == []
        assert split_list("") == []
        assert split_list("a,b") == ["a", "b"]
        assert split_list(b"a,b") == ["a", "b"]
        assert split_list(["a", "b"]) == ["a", "b"]

    def test_synthesize_name_sorts_columns(self) -> None:
        assert synthesize_name("key", "users", ["tenant_id", "email"]) == (
            "users_email_tenant_id_key"
        )

    def test_synthesize_name_is_bounded(self) -> None:
        name = synthesize_name("key", "t" * 50, ["c" * 30, "d" * 30])
        assert len(name) <= 63
        assert name == synthesize_name("key", "t" * 50, ["d" * 30, "c" * 30])

    def test_extraction_error_message(self) -> None:
        err = ExtractionError("users", "indexes", Exception("timeout"))
        assert str(err) == "error extracting indexes for users: timeout"
        assert err.table == "users"
        assert err.facet == "indexes"
        assert str(ExtractionError(None, "tables", Exception("x"))) == (
            "error extracting tables: x"
        )


# ============================================================================
# PostgreSQL
# ============================================================================


class TestPostgresExtractor:
    """Verify PostgresExtractor against canned catalog rows."""

    @pytest.mark.asyncio
    async def test_extracts_tables_and_columns(self) -> None:
        schema = await PostgresExtractor().extract_schema(
            FakeEngine(_postgres_catalog())
        )

        assert set(schema.tables) == {"orders", "users"}
        users = schema.tables["users"]
        assert users.columns["id"] == ColumnSchema(
            name="id",
            data_type="integer",
            is_nullable=False,
            default="nextval('users_id_seq'::regclass)",
        )
        assert users.columns["email"].data_type == "character varying(255)"
        assert users.columns["email"].default is None
        assert list(users.columns) == ["id", "email"]

    @pytest.mark.asyncio
    async def test_extracts_constraints(self) -> None:
        schema = await PostgresExtractor().extract_schema(
            FakeEngine(_postgres_catalog())
        )

        orders = schema.tables["orders"]
        assert orders.primary_key == PrimaryKeySchema(name="orders_pkey", columns=["id"])
        assert orders.foreign_keys["orders_user_id_fkey"] == ForeignKeySchema(
            name="orders_user_id_fkey",
            columns=["user_id"],
            ref_table="users",
            ref_columns=["id"],
            on_update="NO ACTION",
            on_delete="CASCADE",
        )
        assert orders.indexes["idx_orders_status"] == IndexSchema(
            name="idx_orders_status", columns=["status", "user_id"], is_unique=False
        )
        assert orders.check_constraints["orders_status_check"].expression == (
            "CHECK ((status <> ''::text))"
        )
        assert schema.tables["users"].unique_constraints["users_email_key"].columns == [
            "email"
        ]

    @pytest.mark.asyncio
    async def test_expression_index_keys(self) -> None:
        """Expression keys are kept as their definition text."""
        catalog = _postgres_catalog()
        catalog[postgres.INDEXES_QUERY]["users"] = [
            ("idx_users_email_lower", ["lower((email)::text)"], True),
            (
                "idx_users_id_coalesce",
                ["id", "COALESCE(email, ''::character varying)"],
                False,
            ),
        ]

        schema = await PostgresExtractor().extract_schema(FakeEngine(catalog))

        indexes = schema.tables["users"].indexes
        assert indexes["idx_users_email_lower"] == IndexSchema(
            name="idx_users_email_lower",
            columns=["lower((email)::text)"],
            is_unique=True,
        )
        assert indexes["idx_users_id_coalesce"].columns == [
            "id",
            "COALESCE(email, ''::character varying)",
        ]
        assert "pg_get_indexdef" in postgres.INDEXES_QUERY
        assert "LEFT JOIN pg_attribute" in postgres.INDEXES_QUERY

    @pytest.mark.asyncio
    async def test_table_without_primary_key(self) -> None:
        catalog = _postgres_catalog()
        del catalog[postgres.PRIMARY_KEY_QUERY]["orders"]

        schema = await PostgresExtractor().extract_schema(FakeEngine(catalog))

        assert schema.tables["orders"].primary_key is None

    @pytest.mark.asyncio
    async def test_queries_bind_schema_name(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        engine = FakeEngine({postgres.TABLES_QUERY: {None: []}})
        seen: list[dict] = []
        original = FakeConnection.execute

        async def spy(self, statement, params=None):
            seen.append(dict(params or {}))
            return await original(self, statement, params)

        monkeypatch.setattr(FakeConnection, "execute", spy)
        schema = await PostgresExtractor(schema_name="app").extract_schema(engine)

        assert schema == DatabaseSchema()
        assert seen == [{"schema": "app"}]

    @pytest.mark.asyncio
    async def test_sequential_equals_parallel(self) -> None:
        extractor = PostgresExtractor()

        sequential = await extractor.extract_schema(FakeEngine(_postgres_catalog()))
        parallel = await extractor.extract_schema_parallel(
            FakeEngine(_postgres_catalog())
        )

        assert sequential == parallel

    @pytest.mark.asyncio
    async def test_sequential_uses_one_connection(self) -> None:
        engine = FakeEngine(_postgres_catalog())
        await PostgresExtractor().extract_schema(engine)
        assert engine.connections_opened == 1

    @pytest.mark.asyncio
    async def test_parallel_uses_connection_per_table(self) -> None:
        engine = FakeEngine(_postgres_catalog())
        await PostgresExtractor().extract_schema_parallel(engine)
        # One for listing tables, one per table task
        assert engine.connections_opened == 3

    @pytest.mark.asyncio
    async def test_facet_error_is_wrapped(self) -> None:
        engine = FakeEngine(
            _postgres_catalog(),
            failures={(postgres.INDEXES_QUERY, "users"): _boom("canceling statement")},
        )

        with pytest.raises(ExtractionError) as exc_info:
            await PostgresExtractor().extract_schema(engine)

        assert exc_info.value.table == "users"
        assert exc_info.value.facet == "indexes"
        assert "error extracting indexes for users" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, SQLAlchemyError)

    @pytest.mark.asyncio
    async def test_table_listing_error_is_wrapped(self) -> None:
        engine = FakeEngine(
            _postgres_catalog(), failures={(postgres.TABLES_QUERY, None): _boom()}
        )

        with pytest.raises(ExtractionError) as exc_info:
            await PostgresExtractor().extract_schema_parallel(engine)

        assert exc_info.value.table is None
        assert exc_info.value.facet == "tables"


# ============================================================================
# MySQL
# ============================================================================


class TestMySQLExtractor:
    """Verify MySQLExtractor against canned catalog rows."""

    @pytest.mark.asyncio
    async def test_extracts_schema(self) -> None:
        schema = await MySQLExtractor().extract_schema(FakeEngine(_mysql_catalog()))

        users = schema.tables["users"]
        assert users.columns["id"] == ColumnSchema(
            name="id", data_type="int unsigned", is_nullable=False
        )
        assert users.columns["email"].data_type == "varchar(255)"
        assert users.columns["email"].is_nullable is True
        assert users.primary_key == PrimaryKeySchema(name="PRIMARY", columns=["id"])
        assert users.indexes["idx_email_lower"].is_unique is True

        orders = schema.tables["orders"]
        assert orders.columns["status"].default == "new"
        assert orders.foreign_keys["fk_orders_user"].on_delete == "CASCADE"
        assert orders.indexes["idx_status"] == IndexSchema(
            name="idx_status", columns=["status", "user_id"], is_unique=False
        )
        assert orders.check_constraints["chk_status"].expression == (
            "(`status` <> _utf8mb4'')"
        )

    @pytest.mark.asyncio
    async def test_uses_explicit_database(self) -> None:
        engine = FakeEngine(_mysql_catalog())

        await MySQLExtractor(database="shop").extract_schema(engine)

        assert mysql.CURRENT_DATABASE_QUERY not in [q for q, _ in engine.executed]

    @pytest.mark.asyncio
    async def test_no_database_selected(self) -> None:
        catalog = _mysql_catalog()
        catalog[mysql.CURRENT_DATABASE_QUERY] = {None: [(None,)]}

        with pytest.raises(ValueError, match="No database selected"):
            await MySQLExtractor().extract_schema(FakeEngine(catalog))

    @pytest.mark.asyncio
    async def test_check_constraint_failure_is_not_fatal(self) -> None:
        """Servers without a check_constraints catalog yield empty checks."""
        engine = FakeEngine(
            _mysql_catalog(),
            failures={
                (mysql.CHECKS_QUERY, "orders"): ProgrammingError(
                    "SELECT", {}, Exception("Unknown table 'CHECK_CONSTRAINTS'")
                ),
            },
        )

        schema = await MySQLExtractor().extract_schema(engine)

        assert schema.tables["orders"].check_constraints == {}
        assert schema.tables["orders"].columns

    @pytest.mark.asyncio
    async def test_other_facet_failure_is_fatal(self) -> None:
        engine = FakeEngine(
            _mysql_catalog(),
            failures={(mysql.FOREIGN_KEYS_QUERY, "orders"): _boom()},
        )

        with pytest.raises(ExtractionError) as exc_info:
            await MySQLExtractor().extract_schema_parallel(engine)

        assert exc_info.value.table == "orders"
        assert exc_info.value.facet == "foreign keys"

    @pytest.mark.asyncio
    async def test_sequential_equals_parallel(self) -> None:
        extractor = MySQLExtractor()

        sequential = await extractor.extract_schema(FakeEngine(_mysql_catalog()))
        parallel = await extractor.extract_schema_parallel(FakeEngine(_mysql_catalog()))

        assert sequential == parallel


# ============================================================================
# Parallel driver
# ============================================================================


class TestExtractParallel:
    """Verify the shared parallel extraction driver."""

    @staticmethod
    def _lister(names: list[str]):
        async def list_tables(conn) -> list[str]:
            return names

        return list_tables

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self) -> None:
        engine = FakeEngine({})
        names = [f"t{i}" for i in range(10)]

        async def load_table(conn, table_name: str) -> TableSchema:
            await asyncio.sleep(0.01)
            return TableSchema(name=table_name)

        schema = await extract_parallel(
            engine, self._lister(names), load_table, max_concurrency=3
        )

        assert set(schema.tables) == set(names)
        assert engine.max_active <= 3

    @pytest.mark.asyncio
    async def test_first_failure_in_table_order_wins(self) -> None:
        """Every task runs to completion; the earliest table's error is raised."""
        engine = FakeEngine({})
        finished: list[str] = []

        async def load_table(conn, table_name: str) -> TableSchema:
            # Later tables fail first
            await asyncio.sleep(0.01 if table_name == "a" else 0)
            finished.append(table_name)
            if table_name in ("a", "c"):
                raise ExtractionError(table_name, "columns", Exception("bad"))
            return TableSchema(name=table_name)

        with pytest.raises(ExtractionError) as exc_info:
            await extract_parallel(engine, self._lister(["a", "b", "c"]), load_table)

        assert exc_info.value.table == "a"
        assert sorted(finished) == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_connection_failure_is_wrapped(self) -> None:
        engine = FakeEngine({})
        opened = 0

        @asynccontextmanager
        async def flaky_connect():
            nonlocal opened
            opened += 1
            if opened > 1:
                raise _boom("too many connections")
            yield FakeConnection(engine)

        engine.connect = flaky_connect

        async def load_table(conn, table_name: str) -> TableSchema:
            return TableSchema(name=table_name)

        with pytest.raises(ExtractionError) as exc_info:
            await extract_parallel(engine, self._lister(["users"]), load_table)

        assert exc_info.value.facet == "connection"
        assert exc_info.value.table == "users"

    @pytest.mark.asyncio
    async def test_empty_schema(self) -> None:
        async def load_table(conn, table_name: str) -> TableSchema:
            raise AssertionError("no tables to load")

        schema = await extract_parallel(FakeEngine({}), self._lister([]), load_table)

        assert schema == DatabaseSchema()
