"""Dialect extractors package.

Provides the ``SchemaExtractor`` Protocol and the concrete extractors for
PostgreSQL and MySQL.

Usage:
    from db_diff.dialects import SchemaExtractor, PostgresExtractor, MySQLExtractor
"""

from db_diff.dialects.base import ExtractionError, SchemaExtractor
from db_diff.dialects.mysql import MySQLExtractor
from db_diff.dialects.postgres import PostgresExtractor

__all__ = [
    "SchemaExtractor",
    "ExtractionError",
    "PostgresExtractor",
    "MySQLExtractor",
]
