"""Pydantic models for connection profiles and diff filtering."""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from db-diff.toml."""

    model_config = ConfigDict(extra="forbid")

    url: str
    dialect: str = "postgres"
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    schema_name: str | None = None  # Postgres schema; MySQL database override


class FilterConfig(BaseModel):
    """What the diff engine leaves out of a comparison.

    Filtering happens at comparison time only; extraction always reads the
    full schema.  ``ignore_table_pattern`` is compiled during validation, so
    an invalid regex raises ``pydantic.ValidationError`` (a ``ValueError``)
    before any database is touched.

    Example:
        >>> f = FilterConfig(ignore_tables={"audit"}, ignore_table_pattern="^tmp_")
        >>> f.should_ignore_table("tmp_users"), f.should_ignore_table("users")
        (True, False)
    """

    model_config = ConfigDict(frozen=True)

    ignore_tables: frozenset[str] = Field(default_factory=frozenset)
    ignore_table_pattern: re.Pattern[str] | None = None
    ignore_columns: dict[str, frozenset[str]] = Field(default_factory=dict)
    ignore_indexes: bool = False
    ignore_foreign_keys: bool = False
    ignore_checks: bool = False

    @field_validator("ignore_table_pattern", mode="before")
    @classmethod
    def _empty_pattern_is_none(cls, value: object) -> object:
        # "" would compile to a regex matching every table
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def should_ignore_table(self, table_name: str) -> bool:
        """True if the table is excluded by exact name or by pattern search."""
        if table_name in self.ignore_tables:
            return True
        if self.ignore_table_pattern is not None:
            return self.ignore_table_pattern.search(table_name) is not None
        return False

    def should_ignore_column(self, table_name: str, column_name: str) -> bool:
        """True if the column is on the table's ignore list."""
        return column_name in self.ignore_columns.get(table_name, frozenset())


class DiffConfig(BaseModel):
    """Complete configuration from db-diff.toml."""

    profiles: dict[str, DatabaseProfile] = Field(default_factory=dict)
    filter: FilterConfig = Field(default_factory=FilterConfig)
