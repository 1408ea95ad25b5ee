"""
Database schema introspection for schemasync.

Reads the live column set of SQLite tables through PRAGMA table_xinfo.
Results are never cached: the live schema may change out of band between
two reconciliation passes.
"""

import logging
import re
import sqlite3
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, List, Optional, Set

from .connection import ConnectionManager, quote_identifier
from ..exceptions import DatabaseError, SchemaError


logger = logging.getLogger(__name__)

# ALTER TABLE ... DROP COLUMN landed in SQLite 3.35.0
DROP_COLUMN_MIN_VERSION = (3, 35, 0)

_WHERE = re.compile(r"\bWHERE\b", re.IGNORECASE)


def _mentions(sql: str, column: str) -> bool:
    pattern = r"(?<![\w$])" + re.escape(column) + r"(?![\w$])"
    return re.search(pattern, sql, re.IGNORECASE) is not None


class HiddenKind(IntEnum):
    """Values of the ``hidden`` column reported by PRAGMA table_xinfo."""

    NORMAL = 0
    HIDDEN = 1
    VIRTUAL_GENERATED = 2
    STORED_GENERATED = 3


@dataclass
class LiveColumn:
    """A column as reported by the live database."""

    name: str
    declared_type: str
    not_null: bool
    default_value: Optional[str] = None
    pk: int = 0  # ordinal inside the primary key, 0 when not a key column
    hidden: int = HiddenKind.NORMAL
    cid: int = 0
    unique: bool = False  # covered by a UNIQUE constraint

    @property
    def has_default(self) -> bool:
        return self.default_value is not None

    @property
    def is_primary_key(self) -> bool:
        return self.pk > 0

    @property
    def is_generated(self) -> bool:
        return self.hidden in (HiddenKind.VIRTUAL_GENERATED, HiddenKind.STORED_GENERATED)

    @property
    def is_hidden(self) -> bool:
        return self.hidden != HiddenKind.NORMAL

    @property
    def is_constrained(self) -> bool:
        """Whether DROP COLUMN refuses this column."""
        return self.unique or self.is_primary_key

    def __str__(self) -> str:
        result = f"{self.name} {self.declared_type}".rstrip()
        if self.not_null:
            result += " NOT NULL"
        if self.default_value is not None:
            result += f" DEFAULT {self.default_value}"
        if self.is_primary_key:
            result += f" PK({self.pk})"
        if self.unique:
            result += " UNIQUE"
        return result


def supports_drop_column(version: tuple) -> bool:
    """Whether a SQLite library of ``version`` understands DROP COLUMN."""
    return tuple(version) >= DROP_COLUMN_MIN_VERSION


class SchemaIntrospector:
    """Live-schema inspector. Pure reads, no side effects."""

    def __init__(self, connection: ConnectionManager):
        self.connection = connection

    async def table_exists(self, table: str) -> bool:
        """Check if a table exists."""
        query = """
            SELECT COUNT(*) FROM sqlite_master
            WHERE type = 'table' AND name = ?
        """

        try:
            result = await self.connection.fetchval(query, table)
            return bool(result)
        except DatabaseError as e:
            logger.error(f"Error checking table existence for {table}: {e}")
            raise SchemaError(f"Failed to check table existence for {table}", cause=e.cause) from e

    async def query_table_info(self, table: str) -> List[LiveColumn]:
        """
        Get the live columns of a table in declaration order.

        Returns an empty list when the table does not exist.
        """
        # PRAGMA arguments cannot be bound; the table-valued form can
        query = """
            SELECT cid, name, type, "notnull", dflt_value, pk, hidden
            FROM pragma_table_xinfo(?)
            ORDER BY cid
        """

        try:
            rows = await self.connection.fetch(query, table)
        except DatabaseError as e:
            logger.error(f"Error reading table info for {table}: {e}")
            raise SchemaError(f"Failed to read table info for {table}", cause=e.cause) from e

        unique = await self.unique_columns(table) if rows else set()

        return [
            LiveColumn(
                name=row["name"],
                declared_type=row["type"] or "",
                not_null=bool(row["notnull"]),
                default_value=row["dflt_value"],
                pk=int(row["pk"] or 0),
                hidden=int(row["hidden"] or 0),
                cid=int(row["cid"]),
                unique=row["name"] in unique,
            )
            for row in rows
        ]

    async def unique_columns(self, table: str) -> Set[str]:
        """Columns covered by a UNIQUE constraint of the table definition."""
        # origin 'u' marks the automatic index behind a UNIQUE constraint
        query = """
            SELECT DISTINCT info.name AS name
            FROM pragma_index_list(?) AS list, pragma_index_info(list.name) AS info
            WHERE list.origin = 'u'
        """

        try:
            rows = await self.connection.fetch(query, table)
        except DatabaseError as e:
            logger.error(f"Error reading unique constraints for {table}: {e}")
            raise SchemaError(
                f"Failed to read unique constraints for {table}", cause=e.cause
            ) from e
        return {row["name"] for row in rows if row["name"] is not None}

    async def get_columns(self, table: str) -> Dict[str, LiveColumn]:
        """Get the live columns of a table keyed by name."""
        return {column.name: column for column in await self.query_table_info(table)}

    async def list_tables(self, include_internal: bool = False) -> List[str]:
        """List all tables in the database."""
        query = """
            SELECT name FROM sqlite_master
            WHERE type = 'table'
            ORDER BY name
        """
        rows = await self.connection.fetch(query)
        names = [row["name"] for row in rows]
        if include_internal:
            return names
        return [name for name in names if not name.startswith("sqlite_")]

    async def list_indexes(self, table: str) -> List[str]:
        """List explicitly created indexes of a table."""
        query = """
            SELECT name FROM sqlite_master
            WHERE type = 'index' AND tbl_name = ? AND sql IS NOT NULL
            ORDER BY name
        """
        rows = await self.connection.fetch(query, table)
        return [row["name"] for row in rows]

    async def indexes_covering(self, table: str, column: str) -> List[str]:
        """
        Explicit indexes of a table that use ``column``.

        An index uses a column through its key columns, or through the text
        of an expression key or a partial-index WHERE clause. SQLite refuses
        to drop a column while any of them exists.
        """
        query = """
            SELECT name, sql FROM sqlite_master
            WHERE type = 'index' AND tbl_name = ? AND sql IS NOT NULL
            ORDER BY name
        """

        try:
            rows = await self.connection.fetch(query, table)
            covering = []
            for row in rows:
                keys = await self.connection.fetch(
                    "SELECT name FROM pragma_index_info(?)", row["name"]
                )
                names = [key["name"] for key in keys]
                if column.lower() in (name.lower() for name in names if name):
                    covering.append(row["name"])
                elif None in names or _WHERE.search(row["sql"]):
                    # expression keys and WHERE clauses are only visible as text
                    if _mentions(row["sql"], column):
                        covering.append(row["name"])
        except DatabaseError as e:
            logger.error(f"Error reading indexes of {table}: {e}")
            raise SchemaError(f"Failed to read indexes of {table}", cause=e.cause) from e
        return covering

    async def count_rows(self, table: str) -> int:
        """Count rows in a table."""
        return int(await self.connection.fetchval(
            f"SELECT COUNT(*) FROM {quote_identifier(table)}"
        ) or 0)

    async def drop_column_supported(self) -> bool:
        """Detect the DROP COLUMN capability from the library version."""
        try:
            version = await self.connection.get_sqlite_version()
        except (DatabaseError, ValueError) as e:
            logger.warning(f"Could not read SQLite version, assuming module version: {e}")
            version = sqlite3.sqlite_version_info
        return supports_drop_column(version)
