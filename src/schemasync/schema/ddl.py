"""
SQL text builders for SQLite DDL.

Everything here is pure string construction; statements are executed by
``SchemaOperations``.
"""

import re
from typing import Iterable, List, Optional

from ..database.connection import quote_identifier
from .model import DeclaredColumn, ForeignKey, IndexSchema, TableSchema


_WHITESPACE = re.compile(r"\s+")
_GENERATED_SUFFIX = re.compile(r"\s*GENERATED\s+ALWAYS\s*$", re.IGNORECASE)


def normalize_type(declared_type: Optional[str]) -> str:
    """
    Canonical form of a declared column type.

    Upper-cases, collapses whitespace, removes spaces around parentheses and
    commas, and strips the ``GENERATED ALWAYS`` suffix SQLite keeps on the
    type of generated columns.
    """
    text = _GENERATED_SUFFIX.sub("", declared_type or "")
    text = _WHITESPACE.sub(" ", text.strip().upper())
    text = re.sub(r"\s*([(),])\s*", r"\1", text)
    return text


def type_affinity(declared_type: Optional[str]) -> str:
    """Column affinity of a declared type, following SQLite's rules in order."""
    text = normalize_type(declared_type)
    if "INT" in text:
        return "INTEGER"
    if "CHAR" in text or "CLOB" in text or "TEXT" in text:
        return "TEXT"
    if "BLOB" in text or not text:
        return "BLOB"
    if "REAL" in text or "FLOA" in text or "DOUB" in text:
        return "REAL"
    return "NUMERIC"


def strip_parentheses(expression: Optional[str]) -> Optional[str]:
    """Remove redundant outer parentheses from an SQL expression."""
    if expression is None:
        return None
    text = expression.strip()
    while text.startswith("(") and text.endswith(")") and _wraps_whole(text):
        text = text[1:-1].strip()
    return text


def _wraps_whole(text: str) -> bool:
    depth = 0
    quote = None
    for position, char in enumerate(text):
        if quote:
            if char == quote:
                quote = None
            continue
        if char in ("'", '"'):
            quote = char
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0 and position != len(text) - 1:
                return False
    return depth == 0


def column_list(names: Iterable[str]) -> str:
    return ", ".join(quote_identifier(name) for name in names)


def column_definition(column: DeclaredColumn, inline_primary_key: bool = False) -> str:
    """Render one column definition of CREATE TABLE / ADD COLUMN."""
    parts = [quote_identifier(column.name)]
    if column.declared_type:
        parts.append(column.declared_type)
    if inline_primary_key:
        parts.append("PRIMARY KEY")
        if column.autoincrement:
            parts.append("AUTOINCREMENT")
    if column.not_null:
        parts.append("NOT NULL")
    if column.unique:
        parts.append("UNIQUE")
    if column.default is not None:
        parts.append(f"DEFAULT {_default_clause(column.default)}")
    if column.generated is not None:
        parts.append(
            f"GENERATED ALWAYS AS ({column.generated.expression}) "
            f"{column.generated.storage_class.value.upper()}"
        )
    return " ".join(parts)


_NUMBER = re.compile(r"[+-]?\d+(\.\d+)?([eE][+-]?\d+)?")
_STRING = re.compile(r"'(?:[^']|'')*'")
_BLOB = re.compile(r"[xX]'[0-9a-fA-F]*'")
_CONSTANT_KEYWORDS = ("NULL", "TRUE", "FALSE")
_TIME_KEYWORDS = ("CURRENT_TIME", "CURRENT_DATE", "CURRENT_TIMESTAMP")


def _is_literal(text: str) -> bool:
    return bool(
        _NUMBER.fullmatch(text)
        or _STRING.fullmatch(text)
        or _BLOB.fullmatch(text)
        or text.upper() in _CONSTANT_KEYWORDS
    )


def is_constant_default(default: Optional[str]) -> bool:
    """
    Whether ``default`` is a plain literal.

    ALTER TABLE ADD COLUMN rejects CURRENT_* keywords and expressions as
    defaults; only literals, optionally parenthesized, are accepted.
    """
    if default is None:
        return True
    return _is_literal(strip_parentheses(default))


def _default_clause(default: str) -> str:
    # literals and bare keywords are valid as-is; anything else needs parentheses
    text = default.strip()
    if _is_literal(text) or text.upper() in _TIME_KEYWORDS:
        return text
    if text.startswith("(") and text.endswith(")") and _wraps_whole(text):
        return text
    return f"({text})"


def foreign_key_clause(foreign_key: ForeignKey) -> str:
    clause = (
        f"FOREIGN KEY ({column_list(foreign_key.columns)}) "
        f"REFERENCES {quote_identifier(foreign_key.ref_table)} "
        f"({column_list(foreign_key.ref_columns)})"
    )
    if foreign_key.on_delete:
        clause += f" ON DELETE {foreign_key.on_delete.upper()}"
    if foreign_key.on_update:
        clause += f" ON UPDATE {foreign_key.on_update.upper()}"
    return clause


def create_table_sql(schema: TableSchema, name: Optional[str] = None) -> str:
    """
    CREATE TABLE for a declared schema.

    ``name`` overrides the table name, which is how backup tables are built
    from the declared schema of the table they replace.
    """
    inline_key = len(schema.primary_key) == 1

    definitions: List[str] = [
        column_definition(column, inline_primary_key=inline_key and column.is_primary_key)
        for column in schema.columns
    ]
    if len(schema.primary_key) > 1:
        definitions.append(f"PRIMARY KEY ({column_list(schema.primary_key)})")
    for foreign_key in schema.foreign_keys:
        definitions.append(foreign_key_clause(foreign_key))

    sql = f"CREATE TABLE {quote_identifier(name or schema.name)} ({', '.join(definitions)})"
    if schema.without_rowid:
        sql += " WITHOUT ROWID"
    return sql


def add_column_sql(table: str, column: DeclaredColumn) -> str:
    return f"ALTER TABLE {quote_identifier(table)} ADD COLUMN {column_definition(column)}"


def drop_column_sql(table: str, column_name: str) -> str:
    return f"ALTER TABLE {quote_identifier(table)} DROP COLUMN {quote_identifier(column_name)}"


def drop_table_sql(table: str) -> str:
    return f"DROP TABLE {quote_identifier(table)}"


def rename_table_sql(table: str, new_name: str) -> str:
    return f"ALTER TABLE {quote_identifier(table)} RENAME TO {quote_identifier(new_name)}"


def copy_rows_sql(target: str, source: str, columns: Iterable[str]) -> str:
    """INSERT INTO target (cols) SELECT cols FROM source."""
    names = column_list(columns)
    return (
        f"INSERT INTO {quote_identifier(target)} ({names}) "
        f"SELECT {names} FROM {quote_identifier(source)}"
    )


def create_index_sql(index: IndexSchema) -> str:
    unique = "UNIQUE " if index.unique else ""
    sql = (
        f"CREATE {unique}INDEX IF NOT EXISTS {quote_identifier(index.name)} "
        f"ON {quote_identifier(index.table)} ({column_list(index.columns)})"
    )
    if index.where:
        sql += f" WHERE {index.where}"
    return sql


def drop_index_sql(index_name: str) -> str:
    return f"DROP INDEX IF EXISTS {quote_identifier(index_name)}"
