"""Schema extractor protocol and shared extraction drivers.

Defines the ``SchemaExtractor`` Protocol that every dialect implements, the
``ExtractionError`` raised on any failed catalog query, and the two drivers
the dialects delegate to:

- ``extract_sequential``: one pooled connection, tables one after another.
- ``extract_parallel``: one asyncio task per table, each on its own pooled
  connection; results are merged only after every task has finished.

The connection handle is an SQLAlchemy ``AsyncEngine``.  Its pool is what
makes concurrent extraction safe: no two tasks share a connection.

Usage:
    from db_diff.dialects.base import SchemaExtractor

    async def snapshot(extractor: SchemaExtractor, engine) -> DatabaseSchema:
        return await extractor.extract_schema_parallel(engine)
"""

import asyncio
import hashlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from db_diff.schema.models import DatabaseSchema, TableSchema

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 8

# Facet labels used in ExtractionError
FACET_CONNECTION = "connection"
FACET_TABLES = "tables"
FACET_COLUMNS = "columns"
FACET_PRIMARY_KEY = "primary key"
FACET_FOREIGN_KEYS = "foreign keys"
FACET_UNIQUES = "unique constraints"
FACET_INDEXES = "indexes"
FACET_CHECKS = "check constraints"

ListTables = Callable[[AsyncConnection], Awaitable[list[str]]]
LoadTable = Callable[[AsyncConnection, str], Awaitable[TableSchema]]


class ExtractionError(Exception):
    """A catalog query failed while building a schema snapshot.

    Attributes:
        table: Table being extracted, or ``None`` for schema-level queries.
        facet: Metadata facet whose query failed (``columns``, ``indexes``...).
    """

    def __init__(self, table: str | None, facet: str, cause: BaseException) -> None:
        self.table = table
        self.facet = facet
        if table is None:
            message = f"error extracting {facet}: {cause}"
        else:
            message = f"error extracting {facet} for {table}: {cause}"
        super().__init__(message)


class SchemaExtractor(Protocol):
    """Dialect interface: build a DatabaseSchema from a live engine.

    Both methods must return schema-equal results for the same database
    state, raise ``ExtractionError`` on any failed query, and never return a
    partial schema.
    """

    name: str

    async def extract_schema(self, engine: AsyncEngine) -> DatabaseSchema:
        """Extract every base table sequentially over one connection."""
        ...

    async def extract_schema_parallel(self, engine: AsyncEngine) -> DatabaseSchema:
        """Extract every base table with one concurrent task per table."""
        ...


async def run_facet(table: str | None, facet: str, query: Awaitable[Any]) -> Any:
    """Await one catalog query, wrapping driver errors with table/facet context."""
    try:
        return await query
    except SQLAlchemyError as e:
        raise ExtractionError(table, facet, e) from e


async def extract_sequential(
    engine: AsyncEngine,
    list_tables: ListTables,
    load_table: LoadTable,
) -> DatabaseSchema:
    """Pull each table's full metadata to completion before the next one."""
    tables: dict[str, TableSchema] = {}

    async with engine.connect() as conn:
        table_names = await run_facet(None, FACET_TABLES, list_tables(conn))
        logger.debug("Extracting %d tables sequentially", len(table_names))

        for table_name in table_names:
            tables[table_name] = await load_table(conn, table_name)

    return DatabaseSchema(tables=tables)


async def extract_parallel(
    engine: AsyncEngine,
    list_tables: ListTables,
    load_table: LoadTable,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
) -> DatabaseSchema:
    """Fan out one task per table, then merge once every task has joined.

    Each task checks out its own connection; a semaphore caps how many hold
    one at a time.  A failing task does not cancel its siblings.  When
    several tasks fail, the error of the first table in table order is
    raised.
    """
    async with engine.connect() as conn:
        table_names = await run_facet(None, FACET_TABLES, list_tables(conn))

    logger.debug(
        "Extracting %d tables in parallel (max_concurrency=%d)",
        len(table_names),
        max_concurrency,
    )
    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def _extract_one(table_name: str) -> TableSchema:
        async with semaphore:
            try:
                async with engine.connect() as task_conn:
                    return await load_table(task_conn, table_name)
            except SQLAlchemyError as e:
                # Checkout/release failures; query failures arrive already wrapped
                raise ExtractionError(table_name, FACET_CONNECTION, e) from e

    results = await asyncio.gather(
        *(_extract_one(name) for name in table_names),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, BaseException)]
    if failures:
        logger.debug("%d of %d table tasks failed", len(failures), len(results))
        raise failures[0]

    return DatabaseSchema(tables={table.name: table for table in results})


def synthesize_name(kind: str, table: str, columns: list[str]) -> str:
    """Deterministic name for a constraint or index the catalog left unnamed.

    Built from the sorted column list so identical structures get identical
    names on both sides of a comparison.

    Example:
        >>> synthesize_name("uq", "users", ["email", "tenant_id"])
        'users_email_tenant_id_uq'
    """
    name = "_".join([table, *sorted(columns), kind])
    if len(name) <= 63:
        return name
    digest = hashlib.sha1(name.encode("utf-8")).hexdigest()[:10]
    return f"{table[:40]}_{digest}_{kind}"


def split_list(value: Any) -> list[str]:
    """Normalize a catalog column list (array, GROUP_CONCAT string, bytes)."""
    if value is None:
        return []
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        return value.split(",") if value else []
    return [str(v) for v in value]
