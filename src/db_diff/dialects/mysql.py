"""MySQL schema extraction via information_schema.

This module queries the live database to build a DatabaseSchema:
- Base tables of the connected database (``SELECT DATABASE()``) or of an
  explicitly named one
- Columns with their full ``column_type`` (``int(11) unsigned``), nullability
  and default
- Primary key, foreign keys, unique constraints, standalone indexes
- Check constraints (MySQL 8.0.16+; older servers yield none)

Runs over an SQLAlchemy ``AsyncEngine`` using the ``aiomysql`` driver.
Column lists come back from ``GROUP_CONCAT`` as comma-separated strings.

Usage:
    from db_diff.dialects.mysql import MySQLExtractor

    extractor = MySQLExtractor()
    schema = await extractor.extract_schema(engine)
"""

import logging
from functools import partial

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from db_diff.dialects.base import (
    DEFAULT_MAX_CONCURRENCY,
    FACET_CHECKS,
    FACET_COLUMNS,
    FACET_FOREIGN_KEYS,
    FACET_INDEXES,
    FACET_PRIMARY_KEY,
    FACET_TABLES,
    FACET_UNIQUES,
    extract_parallel,
    extract_sequential,
    run_facet,
    split_list,
)
from db_diff.schema.models import (
    CheckSchema,
    ColumnSchema,
    DatabaseSchema,
    ForeignKeySchema,
    IndexSchema,
    PrimaryKeySchema,
    TableSchema,
    UniqueSchema,
)

logger = logging.getLogger(__name__)

CURRENT_DATABASE_QUERY = "SELECT DATABASE()"

TABLES_QUERY = """
    SELECT table_name
    FROM information_schema.tables
    WHERE table_schema = :database
      AND table_type = 'BASE TABLE'
    ORDER BY table_name
"""

COLUMNS_QUERY = """
    SELECT
        column_name,
        column_type,
        is_nullable,
        column_default
    FROM information_schema.columns
    WHERE table_schema = :database
      AND table_name = :table
    ORDER BY ordinal_position
"""

PRIMARY_KEY_QUERY = """
    SELECT
        constraint_name,
        GROUP_CONCAT(column_name ORDER BY ordinal_position) AS columns
    FROM information_schema.key_column_usage
    WHERE table_schema = :database
      AND table_name = :table
      AND constraint_name = 'PRIMARY'
    GROUP BY constraint_name
"""

FOREIGN_KEYS_QUERY = """
    SELECT
        kcu.constraint_name,
        GROUP_CONCAT(kcu.column_name ORDER BY kcu.ordinal_position) AS columns,
        kcu.referenced_table_name,
        GROUP_CONCAT(kcu.referenced_column_name ORDER BY kcu.ordinal_position) AS ref_columns,
        rc.update_rule,
        rc.delete_rule
    FROM information_schema.key_column_usage kcu
    JOIN information_schema.referential_constraints rc
        ON kcu.constraint_name = rc.constraint_name
        AND kcu.table_schema = rc.constraint_schema
        AND kcu.table_name = rc.table_name
    WHERE kcu.table_schema = :database
      AND kcu.table_name = :table
      AND kcu.referenced_table_name IS NOT NULL
    GROUP BY kcu.constraint_name, kcu.referenced_table_name, rc.update_rule, rc.delete_rule
    ORDER BY kcu.constraint_name
"""

UNIQUE_QUERY = """
    SELECT
        kcu.constraint_name,
        GROUP_CONCAT(kcu.column_name ORDER BY kcu.ordinal_position) AS columns
    FROM information_schema.key_column_usage kcu
    JOIN information_schema.table_constraints tc
        ON tc.constraint_name = kcu.constraint_name
        AND tc.table_schema = kcu.table_schema
        AND tc.table_name = kcu.table_name
    WHERE kcu.table_schema = :database
      AND kcu.table_name = :table
      AND tc.constraint_type = 'UNIQUE'
    GROUP BY kcu.constraint_name
    ORDER BY kcu.constraint_name
"""

INDEXES_QUERY = """
    SELECT
        index_name,
        GROUP_CONCAT(column_name ORDER BY seq_in_index) AS columns,
        MAX(non_unique) AS non_unique
    FROM information_schema.statistics
    WHERE table_schema = :database
      AND table_name = :table
      AND index_name != 'PRIMARY'
      AND index_name NOT IN (
          SELECT constraint_name
          FROM information_schema.table_constraints
          WHERE table_schema = :database
            AND table_name = :table
            AND constraint_type IN ('UNIQUE', 'FOREIGN KEY')
      )
    GROUP BY index_name
    ORDER BY index_name
"""

CHECKS_QUERY = """
    SELECT
        cc.constraint_name,
        cc.check_clause
    FROM information_schema.check_constraints cc
    JOIN information_schema.table_constraints tc
        ON tc.constraint_schema = cc.constraint_schema
        AND tc.constraint_name = cc.constraint_name
    WHERE cc.constraint_schema = :database
      AND tc.table_name = :table
      AND tc.constraint_type = 'CHECK'
    ORDER BY cc.constraint_name
"""


class MySQLExtractor:
    """Extracts a MySQL schema into the canonical DatabaseSchema.

    Check-constraint extraction failures are not fatal: servers older than
    8.0.16 have no ``check_constraints`` catalog, so those tables simply get
    an empty check set.

    Args:
        database: Database (MySQL schema) to extract.  ``None`` uses the
            connection's current database.
        max_concurrency: Upper bound on tables extracted at once by
            ``extract_schema_parallel``.
    """

    name = "mysql"

    def __init__(
        self,
        database: str | None = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        self._database = database
        self._max_concurrency = max_concurrency

    async def extract_schema(self, engine: AsyncEngine) -> DatabaseSchema:
        """Extract all base tables sequentially over one connection."""
        database = await self._resolve_database(engine)
        return await extract_sequential(
            engine,
            partial(self._get_tables, database=database),
            partial(self._load_table, database=database),
        )

    async def extract_schema_parallel(self, engine: AsyncEngine) -> DatabaseSchema:
        """Extract all base tables with one concurrent task per table."""
        database = await self._resolve_database(engine)
        return await extract_parallel(
            engine,
            partial(self._get_tables, database=database),
            partial(self._load_table, database=database),
            max_concurrency=self._max_concurrency,
        )

    async def _resolve_database(self, engine: AsyncEngine) -> str:
        """Return the configured database, or ask the server for its current one."""
        if self._database:
            return self._database

        async def _current(conn: AsyncConnection) -> str | None:
            result = await conn.execute(text(CURRENT_DATABASE_QUERY))
            return result.scalar()

        async with engine.connect() as conn:
            database = await run_facet(None, FACET_TABLES, _current(conn))

        if not database:
            raise ValueError(
                "No database selected. Add a database name to the MySQL URL."
            )
        return database

    async def _load_table(
        self, conn: AsyncConnection, table_name: str, database: str
    ) -> TableSchema:
        """Run all six facet queries for one table, in order."""
        logger.debug("Extracting table %s.%s", database, table_name)
        return TableSchema(
            name=table_name,
            columns=await run_facet(
                table_name, FACET_COLUMNS, self._get_columns(conn, database, table_name)
            ),
            primary_key=await run_facet(
                table_name,
                FACET_PRIMARY_KEY,
                self._get_primary_key(conn, database, table_name),
            ),
            foreign_keys=await run_facet(
                table_name,
                FACET_FOREIGN_KEYS,
                self._get_foreign_keys(conn, database, table_name),
            ),
            unique_constraints=await run_facet(
                table_name,
                FACET_UNIQUES,
                self._get_unique_constraints(conn, database, table_name),
            ),
            indexes=await run_facet(
                table_name, FACET_INDEXES, self._get_indexes(conn, database, table_name)
            ),
            check_constraints=await self._get_check_constraints(
                conn, database, table_name
            ),
        )

    async def _fetch(
        self,
        conn: AsyncConnection,
        query: str,
        database: str,
        table_name: str | None = None,
    ) -> list:
        params = {"database": database}
        if table_name is not None:
            params["table"] = table_name
        result = await conn.execute(text(query), params)
        return result.fetchall()

    async def _get_tables(self, conn: AsyncConnection, database: str) -> list[str]:
        """Get all base table names in the database."""
        rows = await self._fetch(conn, TABLES_QUERY, database)
        return [row[0] for row in rows]

    async def _get_columns(
        self, conn: AsyncConnection, database: str, table_name: str
    ) -> dict[str, ColumnSchema]:
        rows = await self._fetch(conn, COLUMNS_QUERY, database, table_name)
        columns = {}
        for col_name, column_type, is_nullable, default in rows:
            columns[col_name] = ColumnSchema(
                name=col_name,
                data_type=_as_text(column_type),
                is_nullable=(is_nullable == "YES"),
                default=_as_text(default) if default is not None else None,
            )
        return columns

    async def _get_primary_key(
        self, conn: AsyncConnection, database: str, table_name: str
    ) -> PrimaryKeySchema | None:
        rows = await self._fetch(conn, PRIMARY_KEY_QUERY, database, table_name)
        if not rows:
            return None
        name, columns = rows[0]
        columns = split_list(columns)
        if not columns:
            return None
        return PrimaryKeySchema(name=name, columns=columns)

    async def _get_foreign_keys(
        self, conn: AsyncConnection, database: str, table_name: str
    ) -> dict[str, ForeignKeySchema]:
        rows = await self._fetch(conn, FOREIGN_KEYS_QUERY, database, table_name)
        foreign_keys = {}
        for name, columns, ref_table, ref_columns, update_rule, delete_rule in rows:
            foreign_keys[name] = ForeignKeySchema(
                name=name,
                columns=split_list(columns),
                ref_table=ref_table,
                ref_columns=split_list(ref_columns),
                on_update=update_rule,
                on_delete=delete_rule,
            )
        return foreign_keys

    async def _get_unique_constraints(
        self, conn: AsyncConnection, database: str, table_name: str
    ) -> dict[str, UniqueSchema]:
        rows = await self._fetch(conn, UNIQUE_QUERY, database, table_name)
        return {
            name: UniqueSchema(name=name, columns=split_list(columns))
            for name, columns in rows
        }

    async def _get_indexes(
        self, conn: AsyncConnection, database: str, table_name: str
    ) -> dict[str, IndexSchema]:
        """Get standalone indexes (PRIMARY, UNIQUE and FK-backed ones excluded)."""
        rows = await self._fetch(conn, INDEXES_QUERY, database, table_name)
        indexes = {}
        for name, columns, non_unique in rows:
            indexes[name] = IndexSchema(
                name=name,
                columns=split_list(columns),
                is_unique=(int(non_unique) == 0),
            )
        return indexes

    async def _get_check_constraints(
        self, conn: AsyncConnection, database: str, table_name: str
    ) -> dict[str, CheckSchema]:
        """Get check constraints; an unsupported catalog yields an empty set."""
        try:
            rows = await self._fetch(conn, CHECKS_QUERY, database, table_name)
        except SQLAlchemyError as e:
            logger.debug(
                "Check constraints unavailable for %s.%s: %s", database, table_name, e
            )
            return {}
        return {
            name: CheckSchema(name=name, expression=_as_text(expression))
            for name, expression in rows
        }


def _as_text(value) -> str:
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8")
    return str(value)
