"""PostgreSQL schema extraction via information_schema and pg_catalog.

This module queries the live database to build a DatabaseSchema:
- Base tables of one schema (default: public)
- Columns with their full type signature (``format_type``), nullability and
  default expression
- Primary key, foreign keys, unique and check constraints (``pg_constraint``)
- Standalone indexes (constraint-backed indexes excluded)

Runs over an SQLAlchemy ``AsyncEngine`` using the ``asyncpg`` driver.

Usage:
    from db_diff.dialects.postgres import PostgresExtractor

    extractor = PostgresExtractor(schema_name="public")
    schema = await extractor.extract_schema_parallel(engine)
"""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from db_diff.dialects.base import (
    DEFAULT_MAX_CONCURRENCY,
    FACET_CHECKS,
    FACET_COLUMNS,
    FACET_FOREIGN_KEYS,
    FACET_INDEXES,
    FACET_PRIMARY_KEY,
    FACET_UNIQUES,
    extract_parallel,
    extract_sequential,
    run_facet,
    split_list,
    synthesize_name,
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

# pg_constraint.confupdtype / confdeltype codes
REFERENTIAL_ACTIONS = {
    "a": "NO ACTION",
    "r": "RESTRICT",
    "c": "CASCADE",
    "n": "SET NULL",
    "d": "SET DEFAULT",
}

TABLES_QUERY = """
    SELECT table_name
    FROM information_schema.tables
    WHERE table_schema = :schema
      AND table_type = 'BASE TABLE'
    ORDER BY table_name
"""

COLUMNS_QUERY = """
    SELECT
        a.attname AS column_name,
        format_type(a.atttypid, a.atttypmod) AS data_type,
        NOT a.attnotnull AS is_nullable,
        pg_get_expr(ad.adbin, ad.adrelid) AS column_default
    FROM pg_attribute a
    JOIN pg_class c ON c.oid = a.attrelid
    JOIN pg_namespace n ON n.oid = c.relnamespace
    LEFT JOIN pg_attrdef ad
        ON ad.adrelid = a.attrelid
        AND ad.adnum = a.attnum
    WHERE n.nspname = :schema
      AND c.relname = :table
      AND a.attnum > 0
      AND NOT a.attisdropped
    ORDER BY a.attnum
"""

# Constraint columns in key order, for conkey (local) and confkey (referenced)
_KEY_COLUMNS = """
        ARRAY(
            SELECT a.attname
            FROM unnest(con.{key}) WITH ORDINALITY AS k(attnum, ord)
            JOIN pg_attribute a
                ON a.attrelid = con.{rel}
                AND a.attnum = k.attnum
            ORDER BY k.ord
        )"""

_CONSTRAINT_FROM = """
    FROM pg_constraint con
    JOIN pg_class rel ON rel.oid = con.conrelid
    JOIN pg_namespace n ON n.oid = rel.relnamespace
"""

PRIMARY_KEY_QUERY = f"""
    SELECT
        con.conname AS constraint_name,
        {_KEY_COLUMNS.format(key='conkey', rel='conrelid')} AS columns
    {_CONSTRAINT_FROM}
    WHERE n.nspname = :schema
      AND rel.relname = :table
      AND con.contype = 'p'
"""

FOREIGN_KEYS_QUERY = f"""
    SELECT
        con.conname AS constraint_name,
        {_KEY_COLUMNS.format(key='conkey', rel='conrelid')} AS columns,
        ref.relname AS ref_table,
        {_KEY_COLUMNS.format(key='confkey', rel='confrelid')} AS ref_columns,
        con.confupdtype AS update_rule,
        con.confdeltype AS delete_rule
    {_CONSTRAINT_FROM}
    JOIN pg_class ref ON ref.oid = con.confrelid
    WHERE n.nspname = :schema
      AND rel.relname = :table
      AND con.contype = 'f'
    ORDER BY con.conname
"""

UNIQUE_QUERY = f"""
    SELECT
        con.conname AS constraint_name,
        {_KEY_COLUMNS.format(key='conkey', rel='conrelid')} AS columns
    {_CONSTRAINT_FROM}
    WHERE n.nspname = :schema
      AND rel.relname = :table
      AND con.contype = 'u'
    ORDER BY con.conname
"""

# Expression keys (attnum 0) have no pg_attribute row; their text comes
# from pg_get_indexdef, e.g. "lower((email)::text)".
INDEXES_QUERY = """
    SELECT
        i.relname AS index_name,
        array_agg(
            CASE WHEN x.attnum = 0
                THEN pg_get_indexdef(ix.indexrelid, x.ordinality::int, true)
                ELSE a.attname::text
            END
            ORDER BY x.ordinality
        ) AS columns,
        ix.indisunique AS is_unique
    FROM pg_index ix
    JOIN pg_class t ON t.oid = ix.indrelid
    JOIN pg_class i ON i.oid = ix.indexrelid
    JOIN pg_namespace n ON n.oid = t.relnamespace
    JOIN LATERAL unnest(ix.indkey) WITH ORDINALITY AS x(attnum, ordinality) ON TRUE
    LEFT JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = x.attnum
    WHERE n.nspname = :schema
      AND t.relname = :table
      AND NOT ix.indisprimary
      AND NOT EXISTS (
          SELECT 1 FROM pg_constraint c
          WHERE c.conindid = ix.indexrelid
            AND c.conrelid = ix.indrelid
            AND c.contype IN ('p', 'u', 'x')
      )
    GROUP BY i.relname, ix.indisunique
    ORDER BY i.relname
"""

CHECKS_QUERY = f"""
    SELECT
        con.conname AS constraint_name,
        pg_get_constraintdef(con.oid) AS check_clause
    {_CONSTRAINT_FROM}
    WHERE n.nspname = :schema
      AND rel.relname = :table
      AND con.contype = 'c'
    ORDER BY con.conname
"""


class PostgresExtractor:
    """Extracts a PostgreSQL schema into the canonical DatabaseSchema.

    Args:
        schema_name: PostgreSQL schema to extract (default: public).
        max_concurrency: Upper bound on tables extracted at once by
            ``extract_schema_parallel``.
    """

    name = "postgres"

    def __init__(
        self,
        schema_name: str = "public",
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        self._schema_name = schema_name
        self._max_concurrency = max_concurrency

    async def extract_schema(self, engine: AsyncEngine) -> DatabaseSchema:
        """Extract all base tables sequentially over one connection."""
        return await extract_sequential(engine, self._get_tables, self._load_table)

    async def extract_schema_parallel(self, engine: AsyncEngine) -> DatabaseSchema:
        """Extract all base tables with one concurrent task per table."""
        return await extract_parallel(
            engine,
            self._get_tables,
            self._load_table,
            max_concurrency=self._max_concurrency,
        )

    async def _load_table(self, conn: AsyncConnection, table_name: str) -> TableSchema:
        """Run all six facet queries for one table, in order."""
        logger.debug("Extracting table %s.%s", self._schema_name, table_name)
        return TableSchema(
            name=table_name,
            columns=await run_facet(
                table_name, FACET_COLUMNS, self._get_columns(conn, table_name)
            ),
            primary_key=await run_facet(
                table_name, FACET_PRIMARY_KEY, self._get_primary_key(conn, table_name)
            ),
            foreign_keys=await run_facet(
                table_name, FACET_FOREIGN_KEYS, self._get_foreign_keys(conn, table_name)
            ),
            unique_constraints=await run_facet(
                table_name, FACET_UNIQUES, self._get_unique_constraints(conn, table_name)
            ),
            indexes=await run_facet(
                table_name, FACET_INDEXES, self._get_indexes(conn, table_name)
            ),
            check_constraints=await run_facet(
                table_name, FACET_CHECKS, self._get_check_constraints(conn, table_name)
            ),
        )

    async def _fetch(
        self, conn: AsyncConnection, query: str, table_name: str | None = None
    ) -> list:
        params = {"schema": self._schema_name}
        if table_name is not None:
            params["table"] = table_name
        result = await conn.execute(text(query), params)
        return result.fetchall()

    async def _get_tables(self, conn: AsyncConnection) -> list[str]:
        """Get all base table names in the schema."""
        rows = await self._fetch(conn, TABLES_QUERY)
        return [row[0] for row in rows]

    async def _get_columns(
        self, conn: AsyncConnection, table_name: str
    ) -> dict[str, ColumnSchema]:
        rows = await self._fetch(conn, COLUMNS_QUERY, table_name)
        columns = {}
        for col_name, data_type, is_nullable, default in rows:
            columns[col_name] = ColumnSchema(
                name=col_name,
                data_type=data_type,
                is_nullable=bool(is_nullable),
                default=default,
            )
        return columns

    async def _get_primary_key(
        self, conn: AsyncConnection, table_name: str
    ) -> PrimaryKeySchema | None:
        rows = await self._fetch(conn, PRIMARY_KEY_QUERY, table_name)
        if not rows:
            return None
        name, columns = rows[0]
        columns = split_list(columns)
        if not columns:
            return None
        return PrimaryKeySchema(
            name=name or synthesize_name("pkey", table_name, columns),
            columns=columns,
        )

    async def _get_foreign_keys(
        self, conn: AsyncConnection, table_name: str
    ) -> dict[str, ForeignKeySchema]:
        rows = await self._fetch(conn, FOREIGN_KEYS_QUERY, table_name)
        foreign_keys = {}
        for name, columns, ref_table, ref_columns, update_rule, delete_rule in rows:
            columns = split_list(columns)
            name = name or synthesize_name("fkey", table_name, columns)
            foreign_keys[name] = ForeignKeySchema(
                name=name,
                columns=columns,
                ref_table=ref_table,
                ref_columns=split_list(ref_columns),
                on_update=REFERENTIAL_ACTIONS.get(update_rule, update_rule),
                on_delete=REFERENTIAL_ACTIONS.get(delete_rule, delete_rule),
            )
        return foreign_keys

    async def _get_unique_constraints(
        self, conn: AsyncConnection, table_name: str
    ) -> dict[str, UniqueSchema]:
        rows = await self._fetch(conn, UNIQUE_QUERY, table_name)
        uniques = {}
        for name, columns in rows:
            columns = split_list(columns)
            name = name or synthesize_name("key", table_name, columns)
            uniques[name] = UniqueSchema(name=name, columns=columns)
        return uniques

    async def _get_indexes(
        self, conn: AsyncConnection, table_name: str
    ) -> dict[str, IndexSchema]:
        """Get standalone indexes (PK, UNIQUE and exclusion-backed ones excluded)."""
        rows = await self._fetch(conn, INDEXES_QUERY, table_name)
        indexes = {}
        for name, columns, is_unique in rows:
            indexes[name] = IndexSchema(
                name=name,
                columns=split_list(columns),
                is_unique=bool(is_unique),
            )
        return indexes

    async def _get_check_constraints(
        self, conn: AsyncConnection, table_name: str
    ) -> dict[str, CheckSchema]:
        rows = await self._fetch(conn, CHECKS_QUERY, table_name)
        return {
            name: CheckSchema(name=name, expression=expression)
            for name, expression in rows
        }
