"""
schemasync: declarative schema reconciliation for SQLite.

schemasync compares declared table definitions against the live database
and runs the least destructive DDL that brings the two back in line,
rebuilding tables through a backup copy when existing rows must be kept.
"""

__version__ = "0.1.0"
__author__ = "schemasync Contributors"

from .exceptions import (
    ColumnNotFoundError,
    ConfigurationError,
    DatabaseError,
    MigrationNotFoundError,
    SchemaError,
    SchemaSyncError,
    ValidationError,
    ValueIsNullError,
)
from .schema.model import DeclaredColumn, GeneratedSpec, StorageClass, TableSchema
from .schema.planner import ReconciliationOutcome
from .config import SchemaSyncConfig
from .storage import Storage

__all__ = [
    "__version__",
    "ColumnNotFoundError",
    "ConfigurationError",
    "DatabaseError",
    "DeclaredColumn",
    "GeneratedSpec",
    "MigrationNotFoundError",
    "ReconciliationOutcome",
    "SchemaError",
    "SchemaSyncConfig",
    "SchemaSyncError",
    "Storage",
    "StorageClass",
    "TableSchema",
    "ValidationError",
    "ValueIsNullError",
]
