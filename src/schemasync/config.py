"""
Configuration system for schemasync using Pydantic.
"""

import logging
import logging.handlers
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from .database.connection import ConnectionConfig
from .exceptions import ConfigurationError, SchemaSyncError
from .schema.diff import ComparisonOptions, TypeComparison
from .schema.model import (
    DeclaredColumn,
    ForeignKey,
    GeneratedSpec,
    IndexSchema,
    StorageClass,
    TableSchema,
)


class GeneratedConfig(BaseModel):
    """Generated column configuration."""

    expression: str = Field(..., description="SQL expression computing the value")
    storage: Literal["stored", "virtual"] = Field(
        "virtual", description="Whether the value is stored or computed on read"
    )


class ColumnConfig(BaseModel):
    """Configuration for a single declared column."""

    name: str = Field(..., description="Column name")
    type: str = Field("", description="Declared SQL type")
    not_null: bool = Field(False, description="NOT NULL constraint")
    default: Optional[str] = Field(
        None, description="Default value as SQL text, e.g. 0 or 'active'"
    )
    primary_key: bool = Field(False, description="Single-column primary key")
    unique: bool = Field(False, description="UNIQUE constraint")
    autoincrement: bool = Field(False, description="AUTOINCREMENT on an INTEGER PRIMARY KEY")
    generated: Optional[GeneratedConfig] = Field(
        None, description="Generated column specification"
    )

    @field_validator("default", mode="before")
    @classmethod
    def coerce_default(cls, v):
        # YAML turns `default: 0` into an int
        if isinstance(v, bool):
            return "1" if v else "0"
        if isinstance(v, (int, float)):
            return str(v)
        return v

    def to_declared_column(self) -> DeclaredColumn:
        generated = None
        if self.generated is not None:
            generated = GeneratedSpec(
                expression=self.generated.expression,
                storage_class=StorageClass(self.generated.storage),
            )
        return DeclaredColumn(
            name=self.name,
            declared_type=self.type,
            not_null=self.not_null,
            default=self.default,
            is_primary_key=self.primary_key,
            generated=generated,
            unique=self.unique,
            autoincrement=self.autoincrement,
        )


class IndexConfig(BaseModel):
    """Declared index configuration."""

    name: str = Field(..., description="Index name")
    columns: List[str] = Field(..., description="Indexed columns")
    unique: bool = Field(False, description="UNIQUE index")
    where: Optional[str] = Field(None, description="Partial index condition")


class ForeignKeyConfig(BaseModel):
    """Table-level foreign key configuration."""

    columns: List[str] = Field(..., description="Referencing columns")
    references: str = Field(..., description="Referenced table")
    ref_columns: List[str] = Field(..., description="Referenced columns")
    on_delete: Optional[str] = Field(None, description="ON DELETE action")
    on_update: Optional[str] = Field(None, description="ON UPDATE action")


class TableConfig(BaseModel):
    """Configuration for a single declared table."""

    name: str = Field(..., description="Table name")
    columns: List[ColumnConfig] = Field(..., description="Ordered column declarations")
    primary_key: List[str] = Field(
        default_factory=list, description="Composite primary key columns"
    )
    without_rowid: bool = Field(False, description="Create as WITHOUT ROWID")
    indexes: List[IndexConfig] = Field(default_factory=list, description="Declared indexes")
    foreign_keys: List[ForeignKeyConfig] = Field(
        default_factory=list, description="Foreign key constraints"
    )

    def to_table_schema(self) -> TableSchema:
        """Convert to the declared-schema model."""
        return TableSchema(
            name=self.name,
            columns=[column.to_declared_column() for column in self.columns],
            primary_key=tuple(self.primary_key),
            without_rowid=self.without_rowid,
            foreign_keys=[
                ForeignKey(
                    columns=tuple(fk.columns),
                    ref_table=fk.references,
                    ref_columns=tuple(fk.ref_columns),
                    on_delete=fk.on_delete,
                    on_update=fk.on_update,
                )
                for fk in self.foreign_keys
            ],
            indexes=[
                IndexSchema(
                    name=index.name,
                    table=self.name,
                    columns=tuple(index.columns),
                    unique=index.unique,
                    where=index.where,
                )
                for index in self.indexes
            ],
        )


class SyncConfig(BaseModel):
    """Schema synchronisation configuration."""

    preserve: bool = Field(False, description="Keep rows when tables are rebuilt")
    drop_column_supported: Optional[bool] = Field(
        None, description="Override DROP COLUMN detection (None = detect)"
    )
    type_comparison: Literal["normalized", "affinity"] = Field(
        "normalized", description="How column types are compared"
    )
    strict_defaults: bool = Field(
        False, description="Compare default expressions, not only their presence"
    )
    create_indexes: bool = Field(True, description="Create declared indexes after syncing")

    def comparison_options(self) -> ComparisonOptions:
        return ComparisonOptions(
            type_comparison=TypeComparison(self.type_comparison),
            strict_defaults=self.strict_defaults,
        )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO", description="Log level"
    )
    format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    file: Optional[str] = Field(None, description="Log file path")
    max_size: int = Field(10485760, description="Max log file size in bytes")  # 10MB
    backup_count: int = Field(5, description="Number of backup log files")


class SchemaSyncConfig(BaseSettings):
    """Main schemasync configuration."""

    debug: bool = Field(False, description="Enable debug mode")

    database: ConnectionConfig = Field(
        default_factory=lambda: ConnectionConfig(path="schemasync.db"),
        description="Database connection",
    )
    tables: List[TableConfig] = Field(
        default_factory=list, description="Declared tables, in sync order"
    )
    sync: SyncConfig = Field(
        default_factory=SyncConfig, description="Synchronisation configuration"
    )

    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    model_config = ConfigDict(
        env_file=".env",
        env_prefix="SCHEMASYNC_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore"
    )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "SchemaSyncConfig":
        """Load configuration from a YAML file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

            # Expand environment variables in the data
            data = cls._expand_env_vars(data)

            return cls(**data)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @classmethod
    def _expand_env_vars(cls, data: Any) -> Any:
        """Recursively expand environment variables in configuration data."""
        if isinstance(data, dict):
            return {k: cls._expand_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [cls._expand_env_vars(item) for item in data]
        elif isinstance(data, str):
            return os.path.expandvars(data)
        else:
            return data

    def get_table(self, name: str) -> TableConfig:
        """Get table configuration by name."""
        for table in self.tables:
            if table.name == name:
                return table
        raise ConfigurationError(f"Table configuration '{name}' not found")

    def table_schemas(self) -> List[TableSchema]:
        """Declared tables as schema models, in configuration order."""
        schemas = []
        for table in self.tables:
            try:
                schemas.append(table.to_table_schema())
            except SchemaSyncError as e:
                raise ConfigurationError(
                    f"Invalid table '{table.name}': {e.message}", cause=e
                ) from e
        return schemas

    def validate_config(self) -> None:
        """Validate the entire configuration for consistency."""
        seen: Dict[str, int] = {}
        for table in self.tables:
            seen[table.name] = seen.get(table.name, 0) + 1
        duplicates = sorted(name for name, count in seen.items() if count > 1)
        if duplicates:
            raise ConfigurationError(f"Duplicate table names: {', '.join(duplicates)}")

        schemas = {schema.name: schema for schema in self.table_schemas()}

        index_names: Dict[str, str] = {}
        for schema in schemas.values():
            for index in schema.indexes:
                if index.name in index_names:
                    raise ConfigurationError(
                        f"Index '{index.name}' is declared on both "
                        f"'{index_names[index.name]}' and '{schema.name}'"
                    )
                index_names[index.name] = schema.name

            # Check foreign key references to declared tables
            for foreign_key in schema.foreign_keys:
                parent = schemas.get(foreign_key.ref_table)
                if parent is None:
                    continue
                for name in foreign_key.ref_columns:
                    if not parent.has_column(name):
                        raise ConfigurationError(
                            f"Table '{schema.name}' references unknown column "
                            f"'{foreign_key.ref_table}.{name}'"
                        )

    def to_yaml(self, path: Union[str, Path]) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(
                self.model_dump(mode="json", exclude_none=True),
                f,
                default_flow_style=False,
                indent=2,
                sort_keys=False,
            )


def configure_logging(config: LoggingConfig, debug: bool = False) -> None:
    """Install a stream handler and, when configured, a rotating file handler."""
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if debug else getattr(logging, config.level))

    formatter = logging.Formatter(config.format)
    for handler in list(root.handlers):
        if getattr(handler, "_schemasync", False):
            root.removeHandler(handler)
            handler.close()

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if config.file:
        handlers.append(
            logging.handlers.RotatingFileHandler(
                config.file,
                maxBytes=config.max_size,
                backupCount=config.backup_count,
                encoding="utf-8",
            )
        )

    for handler in handlers:
        handler.setFormatter(formatter)
        handler._schemasync = True
        root.addHandler(handler)
