"""
Database integration package for schemasync.

This package provides:
- Async SQLite connection management (aiosqlite)
- Live schema introspection through PRAGMA table_xinfo
- Database health checks
"""

from .connection import ConnectionConfig, ConnectionManager, quote_identifier
from .introspection import HiddenKind, LiveColumn, SchemaIntrospector, supports_drop_column
from .health import DatabaseHealthChecker

__all__ = [
    "ConnectionConfig",
    "ConnectionManager",
    "quote_identifier",
    "HiddenKind",
    "LiveColumn",
    "SchemaIntrospector",
    "supports_drop_column",
    "DatabaseHealthChecker",
]
