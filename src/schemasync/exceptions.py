"""
Exception classes for schemasync.
"""

from typing import Any, Dict, Optional


class SchemaSyncError(Exception):
    """Base exception for all schemasync errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        result = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            result += f" [{details_str}]"
        if self.cause:
            result += f" (caused by: {self.cause})"
        return result


class ConfigurationError(SchemaSyncError):
    """Raised when there's an error in configuration."""

    pass


class ValidationError(SchemaSyncError):
    """Raised when a declared schema is inconsistent."""

    pass


class DatabaseError(SchemaSyncError):
    """Raised when a statement round trip to the database fails."""

    pass


class DatabaseConnectionError(DatabaseError):
    """Raised when there's an error opening or using the database connection."""

    pass


class DatabaseConfigurationError(DatabaseError):
    """Raised when there's an error in database configuration."""

    pass


class SchemaError(DatabaseError):
    """Raised when introspection or a DDL statement fails."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        sql: Optional[str] = None,
    ) -> None:
        if sql:
            details = dict(details or {})
            details["sql"] = sql
        super().__init__(message, details, cause)
        self.sql = sql


class ColumnNotFoundError(SchemaSyncError):
    """Raised when a lookup references a column the table does not declare."""

    def __init__(self, table_name: str, column_name: str) -> None:
        super().__init__(
            f"Column '{column_name}' not found in table '{table_name}'",
            {"table": table_name, "column": column_name},
        )
        self.table_name = table_name
        self.column_name = column_name


class ValueIsNullError(SchemaSyncError):
    """Raised when a value required to build a lookup clause is missing."""

    def __init__(self, table_name: str, column_name: str) -> None:
        super().__init__(
            f"Value for '{table_name}.{column_name}' is null",
            {"table": table_name, "column": column_name},
        )
        self.table_name = table_name
        self.column_name = column_name


class MigrationNotFoundError(SchemaSyncError):
    """Raised when no registered migration matches a version transition."""

    def __init__(self, from_version: int, to_version: int) -> None:
        super().__init__(
            f"No migration registered from version {from_version} to {to_version}"
        )
        self.from_version = from_version
        self.to_version = to_version
