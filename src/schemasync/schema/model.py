"""
Declared-schema model for schemasync.

A ``TableSchema`` is the table as authored by the application: ordered
columns, the primary key, generated-column specs and the WITHOUT ROWID
flag. Tables can be written out by hand, derived from a pydantic model
class or loaded from the YAML configuration.
"""

import datetime
import decimal
import enum
import logging
import types
import typing
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Type, Union

from pydantic import BaseModel
from pydantic.fields import PydanticUndefined

from ..database.introspection import HiddenKind, LiveColumn
from ..exceptions import ValidationError


logger = logging.getLogger(__name__)

# json_schema_extra key holding per-field column options on pydantic models
COLUMN_OPTIONS_KEY = "schemasync"


class StorageClass(str, enum.Enum):
    """How a generated column keeps its value."""

    STORED = "stored"
    VIRTUAL = "virtual"


@dataclass(frozen=True)
class GeneratedSpec:
    """GENERATED ALWAYS AS (expression) STORED|VIRTUAL."""

    expression: str
    storage_class: StorageClass = StorageClass.VIRTUAL

    @property
    def is_stored(self) -> bool:
        return self.storage_class == StorageClass.STORED


@dataclass(frozen=True)
class DeclaredColumn:
    """A column as declared by the application."""

    name: str
    declared_type: str
    not_null: bool = False
    default: Optional[str] = None  # SQL expression text
    is_primary_key: bool = False
    generated: Optional[GeneratedSpec] = None
    unique: bool = False
    autoincrement: bool = False

    @property
    def has_default(self) -> bool:
        return self.default is not None

    @property
    def is_generated(self) -> bool:
        return self.generated is not None

    @property
    def is_stored_generated(self) -> bool:
        return self.generated is not None and self.generated.is_stored

    @property
    def is_virtual_generated(self) -> bool:
        return self.generated is not None and not self.generated.is_stored

    @property
    def hidden(self) -> int:
        """The ``hidden`` value PRAGMA table_xinfo reports for this column."""
        if self.generated is None:
            return HiddenKind.NORMAL
        if self.generated.is_stored:
            return HiddenKind.STORED_GENERATED
        return HiddenKind.VIRTUAL_GENERATED


@dataclass(frozen=True)
class ForeignKey:
    """FOREIGN KEY (columns) REFERENCES ref_table (ref_columns)."""

    columns: Tuple[str, ...]
    ref_table: str
    ref_columns: Tuple[str, ...]
    on_delete: Optional[str] = None
    on_update: Optional[str] = None

    def __post_init__(self):
        if len(self.columns) != len(self.ref_columns):
            raise ValidationError(
                f"Foreign key to '{self.ref_table}' maps {len(self.columns)} columns "
                f"onto {len(self.ref_columns)}"
            )


@dataclass(frozen=True)
class IndexSchema:
    """A declared index, created with IF NOT EXISTS after tables are synced."""

    name: str
    table: str
    columns: Tuple[str, ...]
    unique: bool = False
    where: Optional[str] = None


@dataclass
class TableSchema:
    """
    A declared table.

    Args:
        name: Table name
        columns: Ordered column declarations
        primary_key: Composite key column names; when empty the key is taken
            from columns flagged ``is_primary_key`` (at most one)
        without_rowid: Emit WITHOUT ROWID
        foreign_keys: Table-level foreign key constraints
        indexes: Indexes created alongside the table
    """

    name: str
    columns: List[DeclaredColumn]
    primary_key: Tuple[str, ...] = ()
    without_rowid: bool = False
    foreign_keys: List[ForeignKey] = field(default_factory=list)
    indexes: List[IndexSchema] = field(default_factory=list)

    def __post_init__(self):
        if not self.name:
            raise ValidationError("Table name is required")

        names = [column.name for column in self.columns]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValidationError(
                f"Table '{self.name}' declares duplicate columns: {', '.join(duplicates)}"
            )

        inline_keys = tuple(column.name for column in self.columns if column.is_primary_key)
        if self.primary_key:
            self.primary_key = tuple(self.primary_key)
            unknown = [name for name in self.primary_key if name not in names]
            if unknown:
                raise ValidationError(
                    f"Primary key of '{self.name}' references unknown columns: {', '.join(unknown)}"
                )
            stray = [name for name in inline_keys if name not in self.primary_key]
            if stray:
                raise ValidationError(
                    f"Columns {', '.join(stray)} of '{self.name}' are flagged primary key "
                    f"but not part of the declared key"
                )
        else:
            if len(inline_keys) > 1:
                raise ValidationError(
                    f"Table '{self.name}' flags {len(inline_keys)} primary key columns; "
                    f"declare a composite primary_key instead"
                )
            self.primary_key = inline_keys

        # membership in a composite key is carried on the column as well;
        # SQLite reports WITHOUT ROWID key columns as NOT NULL
        self.columns = [
            replace(
                column,
                is_primary_key=column.name in self.primary_key,
                not_null=column.not_null or (
                    self.without_rowid and column.name in self.primary_key
                ),
            )
            for column in self.columns
        ]

        for column in self.columns:
            if column.generated is not None and column.default is not None:
                raise ValidationError(
                    f"Generated column '{self.name}.{column.name}' cannot have a default"
                )
            if column.autoincrement and not (
                len(self.primary_key) == 1 and column.is_primary_key
                and column.declared_type.strip().upper() == "INTEGER"
            ):
                raise ValidationError(
                    f"AUTOINCREMENT on '{self.name}.{column.name}' requires an "
                    f"INTEGER PRIMARY KEY column"
                )

        if self.without_rowid and not self.primary_key:
            raise ValidationError(f"WITHOUT ROWID table '{self.name}' needs a primary key")

        for foreign_key in self.foreign_keys:
            for name in foreign_key.columns:
                if name not in names:
                    raise ValidationError(
                        f"Foreign key of '{self.name}' references unknown column '{name}'"
                    )

        for index in self.indexes:
            if index.table != self.name:
                raise ValidationError(
                    f"Index '{index.name}' belongs to '{index.table}', not '{self.name}'"
                )
            for name in index.columns:
                if name not in names:
                    raise ValidationError(
                        f"Index '{index.name}' references unknown column '{name}'"
                    )

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]

    @property
    def has_composite_key(self) -> bool:
        return len(self.primary_key) > 1

    def get_column(self, name: str) -> Optional[DeclaredColumn]:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def has_column(self, name: str) -> bool:
        return self.get_column(name) is not None

    def find_generated_storage_class(self, name: str) -> Optional[StorageClass]:
        column = self.get_column(name)
        if column is None or column.generated is None:
            return None
        return column.generated.storage_class

    def get_table_info(self) -> List[LiveColumn]:
        """Describe the declared columns in the shape live introspection returns."""
        return [
            LiveColumn(
                name=column.name,
                declared_type=column.declared_type,
                not_null=column.not_null,
                default_value=column.default,
                pk=self.primary_key.index(column.name) + 1 if column.is_primary_key else 0,
                hidden=column.hidden,
                cid=cid,
                unique=column.unique,
            )
            for cid, column in enumerate(self.columns)
        ]

    @classmethod
    def from_model(
        cls,
        model: Type[BaseModel],
        name: Optional[str] = None,
        primary_key: Union[str, Sequence[str], None] = None,
        without_rowid: bool = False,
        foreign_keys: Iterable[ForeignKey] = (),
        indexes: Iterable[IndexSchema] = (),
    ) -> "TableSchema":
        """
        Build a table from a pydantic model class.

        Field annotations map onto SQLite types; ``Optional[...]`` fields are
        nullable, everything else is NOT NULL. Scalar field defaults become
        SQL defaults. Per-field options go under
        ``json_schema_extra={"schemasync": {...}}`` with the keys ``type``,
        ``default``, ``generated``, ``storage``, ``unique``,
        ``autoincrement`` and ``primary_key``.

        The primary key defaults to an ``id`` field when one exists.
        """
        table_name = name or _default_table_name(model)

        if isinstance(primary_key, str):
            key: Tuple[str, ...] = (primary_key,)
        elif primary_key is None:
            key = ()
        else:
            key = tuple(primary_key)

        columns = []
        for field_name, info in model.model_fields.items():
            options = _column_options(info)
            columns.append(_column_from_field(field_name, info, options))

        if not key:
            flagged = tuple(column.name for column in columns if column.is_primary_key)
            if flagged:
                key = flagged
            elif "id" in model.model_fields:
                key = ("id",)

        return cls(
            name=table_name,
            columns=columns,
            primary_key=key,
            without_rowid=without_rowid,
            foreign_keys=list(foreign_keys),
            indexes=list(indexes),
        )


_PYTHON_TYPE_MAP: Dict[Any, str] = {
    bool: "INTEGER",
    int: "INTEGER",
    float: "REAL",
    str: "TEXT",
    bytes: "BLOB",
    decimal.Decimal: "NUMERIC",
    datetime.datetime: "TEXT",
    datetime.date: "TEXT",
    datetime.time: "TEXT",
}


def _default_table_name(model: Type[BaseModel]) -> str:
    configured = getattr(model, "__tablename__", None)
    if configured:
        return configured
    return model.__name__.lower()


def _column_options(info) -> Dict[str, Any]:
    extra = info.json_schema_extra
    if isinstance(extra, dict):
        options = extra.get(COLUMN_OPTIONS_KEY) or {}
        if isinstance(options, dict):
            return options
    return {}


def _unwrap_optional(annotation: Any) -> Tuple[Any, bool]:
    """Return (inner type, nullable)."""
    origin = typing.get_origin(annotation)
    if origin is Union or (hasattr(types, "UnionType") and origin is getattr(types, "UnionType")):
        args = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        nullable = len(args) != len(typing.get_args(annotation))
        if len(args) == 1:
            return args[0], nullable
        return Any, nullable
    return annotation, False


def sql_type_for(annotation: Any) -> str:
    """Map a Python annotation onto a SQLite column type."""
    inner, _ = _unwrap_optional(annotation)
    if inner in _PYTHON_TYPE_MAP:
        return _PYTHON_TYPE_MAP[inner]
    if isinstance(inner, type) and issubclass(inner, enum.Enum):
        if issubclass(inner, int):
            return "INTEGER"
        return "TEXT"
    # lists, dicts and nested models are stored as JSON text
    return "TEXT"


def sql_literal(value: Any) -> str:
    """Render a Python scalar as an SQL literal."""
    if isinstance(value, enum.Enum):
        value = value.value
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float, decimal.Decimal)):
        return str(value)
    if isinstance(value, bytes):
        return f"X'{value.hex()}'"
    return "'" + str(value).replace("'", "''") + "'"


def _column_from_field(field_name: str, info, options: Dict[str, Any]) -> DeclaredColumn:
    annotation = info.annotation
    _, nullable = _unwrap_optional(annotation)

    declared_type = options.get("type") or sql_type_for(annotation)

    default = options.get("default")
    if default is None and info.default is not PydanticUndefined and info.default is not None:
        if isinstance(info.default, (bool, int, float, str, bytes, decimal.Decimal, enum.Enum)):
            default = sql_literal(info.default)

    generated = None
    if options.get("generated"):
        generated = GeneratedSpec(
            expression=options["generated"],
            storage_class=StorageClass(options.get("storage", StorageClass.VIRTUAL.value)),
        )
        default = None

    return DeclaredColumn(
        name=info.alias or field_name,
        declared_type=declared_type,
        not_null=bool(options.get("not_null", not nullable)),
        default=default,
        is_primary_key=bool(options.get("primary_key", False)),
        generated=generated,
        unique=bool(options.get("unique", False)),
        autoincrement=bool(options.get("autoincrement", False)),
    )
