"""
Database connection management for schemasync.

Provides a single async SQLite connection (aiosqlite) with pragma setup,
lifecycle management and thin query helpers. One reconciliation pass
borrows this connection exclusively.
"""

import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import aiosqlite
from pydantic import BaseModel, Field, field_validator

from ..exceptions import (
    DatabaseConfigurationError,
    DatabaseConnectionError,
    DatabaseError,
)


logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"


def quote_identifier(name: str) -> str:
    """Quote an SQL identifier, doubling embedded quotes."""
    return '"' + name.replace('"', '""') + '"'


class ConnectionConfig(BaseModel):
    """Database connection configuration."""

    path: str = Field(..., description="SQLite database file path or :memory:")
    timeout: float = Field(5.0, description="Lock wait timeout in seconds")
    foreign_keys: bool = Field(True, description="Enable foreign key enforcement")
    journal_mode: Optional[str] = Field(None, description="Journal mode, e.g. WAL")
    busy_timeout_ms: int = Field(5000, description="PRAGMA busy_timeout value")

    @field_validator("path")
    @classmethod
    def validate_path(cls, v):
        if not v or not v.strip():
            raise ValueError("Database path is required")
        return v

    @field_validator("journal_mode")
    @classmethod
    def validate_journal_mode(cls, v):
        if v is None:
            return v
        allowed = {"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"}
        if v.upper() not in allowed:
            raise ValueError(f"Unsupported journal mode: {v}")
        return v.upper()

    @classmethod
    def from_url(cls, url: str) -> "ConnectionConfig":
        """Create configuration from a ``sqlite:///path`` URL."""
        parsed = urlparse(url)

        if parsed.scheme != "sqlite":
            raise DatabaseConfigurationError(f"Invalid database URL scheme: {parsed.scheme}")

        if parsed.netloc == MEMORY_DATABASE:
            return cls(path=MEMORY_DATABASE)

        # sqlite:///relative.db -> "relative.db", sqlite:////abs.db -> "/abs.db"
        path = parsed.path[1:] if parsed.path.startswith("/") else parsed.path
        if not path:
            raise DatabaseConfigurationError("Database path is required")

        return cls(path=path)

    @property
    def is_memory(self) -> bool:
        return self.path == MEMORY_DATABASE

    def to_connection_kwargs(self) -> Dict[str, Any]:
        """Convert to aiosqlite.connect kwargs."""
        # isolation_level=None: every DDL statement commits on its own
        return {
            "database": self.path,
            "timeout": self.timeout,
            "isolation_level": None,
        }

    def pragma_statements(self) -> List[str]:
        """PRAGMA statements issued right after connecting."""
        statements = [
            f"PRAGMA foreign_keys = {'ON' if self.foreign_keys else 'OFF'}",
            f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}",
        ]
        if self.journal_mode:
            statements.append(f"PRAGMA journal_mode = {self.journal_mode}")
        return statements


class ConnectionManager:
    """Async SQLite connection wrapper."""

    def __init__(self, config: ConnectionConfig):
        self.config = config
        self._connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        """Open the database connection. Alias for initialize()."""
        await self.initialize()

    async def initialize(self) -> None:
        """Open the connection and apply configured pragmas."""
        async with self._lock:
            if self._connection is not None:
                return

            try:
                logger.info(f"Opening SQLite database {self.config.path}")

                connection = await aiosqlite.connect(**self.config.to_connection_kwargs())
                connection.row_factory = aiosqlite.Row
                for pragma in self.config.pragma_statements():
                    await connection.execute(pragma)

                self._connection = connection
                logger.info("Database connection opened successfully")

            except (sqlite3.Error, OSError) as e:
                logger.error(f"Failed to open database {self.config.path}: {e}")
                raise DatabaseConnectionError(
                    f"Failed to open database {self.config.path}", cause=e
                ) from e

    async def close(self) -> None:
        """Close the connection."""
        async with self._lock:
            if self._connection is not None:
                logger.info("Closing database connection")
                await self._connection.close()
                self._connection = None

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[aiosqlite.Connection]:
        """Borrow the underlying connection."""
        if self._connection is None:
            raise DatabaseConnectionError("Database is not connected")

        yield self._connection

    async def execute(self, query: str, *args) -> int:
        """Execute a statement and return the affected row count."""
        async with self.acquire() as conn:
            try:
                cursor = await conn.execute(query, args)
                rowcount = cursor.rowcount
                await cursor.close()
                return rowcount
            except sqlite3.Error as e:
                raise DatabaseError(str(e), {"sql": query}, cause=e) from e

    async def fetch(self, query: str, *args) -> List[aiosqlite.Row]:
        """Fetch all results from a query."""
        async with self.acquire() as conn:
            try:
                async with conn.execute(query, args) as cursor:
                    return list(await cursor.fetchall())
            except sqlite3.Error as e:
                raise DatabaseError(str(e), {"sql": query}, cause=e) from e

    async def fetchrow(self, query: str, *args) -> Optional[aiosqlite.Row]:
        """Fetch a single row from a query."""
        async with self.acquire() as conn:
            try:
                async with conn.execute(query, args) as cursor:
                    return await cursor.fetchone()
            except sqlite3.Error as e:
                raise DatabaseError(str(e), {"sql": query}, cause=e) from e

    async def fetchval(self, query: str, *args, column: int = 0) -> Any:
        """Fetch a single value from a query."""
        row = await self.fetchrow(query, *args)
        if row is None:
            return None
        return row[column]

    async def get_sqlite_version(self) -> Tuple[int, ...]:
        """Version of the SQLite library behind this connection."""
        version = await self.fetchval("SELECT sqlite_version()")
        return tuple(int(part) for part in str(version).split("."))

    async def get_user_version(self) -> int:
        """Read PRAGMA user_version."""
        return int(await self.fetchval("PRAGMA user_version") or 0)

    async def set_user_version(self, version: int) -> None:
        """Write PRAGMA user_version."""
        await self.execute(f"PRAGMA user_version = {int(version)}")

    def get_stats(self) -> Dict[str, Any]:
        """Get connection statistics."""
        return {
            "path": self.config.path,
            "initialized": self.is_initialized,
            "in_transaction": bool(
                self._connection is not None and self._connection.in_transaction
            ),
        }

    @property
    def is_initialized(self) -> bool:
        """Check if the connection is open."""
        return self._connection is not None

    @property
    def is_closed(self) -> bool:
        """Check if the connection is closed."""
        return self._connection is None

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
