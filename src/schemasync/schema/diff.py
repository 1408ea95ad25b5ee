"""
Declared-vs-live schema classification.

``classify`` is a total function: it never raises and accepts empty inputs
on either side.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from ..database.introspection import LiveColumn
from .ddl import normalize_type, strip_parentheses, type_affinity
from .model import DeclaredColumn


logger = logging.getLogger(__name__)


class TypeComparison(str, Enum):
    """How declared and live column types are compared."""

    NORMALIZED = "normalized"
    AFFINITY = "affinity"


@dataclass(frozen=True)
class ComparisonOptions:
    type_comparison: TypeComparison = TypeComparison.NORMALIZED
    strict_defaults: bool = False


@dataclass(frozen=True)
class ColumnMismatch:
    """A column present on both sides whose definitions disagree."""

    name: str
    reasons: tuple

    def __str__(self) -> str:
        return f"{self.name} ({', '.join(self.reasons)})"


@dataclass
class SchemaDiff:
    """Classification of one declared table against its live counterpart."""

    to_add: List[DeclaredColumn] = field(default_factory=list)
    extraneous: List[LiveColumn] = field(default_factory=list)
    mismatches: List[ColumnMismatch] = field(default_factory=list)

    @property
    def incompatible(self) -> bool:
        return bool(self.mismatches)

    @property
    def incompatible_columns(self) -> List[str]:
        return [mismatch.name for mismatch in self.mismatches]

    @property
    def extraneous_names(self) -> List[str]:
        return [column.name for column in self.extraneous]

    @property
    def is_empty(self) -> bool:
        return not (self.to_add or self.extraneous or self.mismatches)

    def describe(self) -> str:
        if self.is_empty:
            return "no differences"
        parts = []
        if self.to_add:
            parts.append(f"add: {', '.join(column.name for column in self.to_add)}")
        if self.extraneous:
            parts.append(f"extraneous: {', '.join(self.extraneous_names)}")
        if self.mismatches:
            parts.append(f"incompatible: {', '.join(str(m) for m in self.mismatches)}")
        return "; ".join(parts)


def types_match(declared: str, live: str, mode: TypeComparison) -> bool:
    if mode == TypeComparison.AFFINITY:
        return type_affinity(declared) == type_affinity(live)
    return normalize_type(declared) == normalize_type(live)


def compare_column(
    declared: DeclaredColumn,
    live: LiveColumn,
    options: ComparisonOptions,
) -> List[str]:
    """Return the reasons two same-named columns differ, empty when they match."""
    reasons = []

    if not types_match(declared.declared_type, live.declared_type, options.type_comparison):
        reasons.append(f"type {live.declared_type!r} != {declared.declared_type!r}")

    if declared.not_null != live.not_null:
        reasons.append("not null" if declared.not_null else "nullable")

    if declared.has_default != live.has_default:
        reasons.append("default added" if declared.has_default else "default removed")
    elif options.strict_defaults and declared.has_default:
        if strip_parentheses(declared.default) != strip_parentheses(live.default_value):
            reasons.append(f"default {live.default_value!r} != {declared.default!r}")

    if declared.is_primary_key != live.is_primary_key:
        reasons.append("primary key" if declared.is_primary_key else "not primary key")

    if declared.is_generated != live.is_generated:
        reasons.append("generated" if declared.is_generated else "not generated")
    elif declared.is_generated and declared.hidden != live.hidden:
        reasons.append(f"storage {declared.generated.storage_class.value}")

    return reasons


def classify(
    declared: Iterable[DeclaredColumn],
    live: Iterable[LiveColumn],
    options: Optional[ComparisonOptions] = None,
) -> SchemaDiff:
    """Classify how ``live`` has to change to become ``declared``."""
    options = options or ComparisonOptions()
    declared = list(declared)
    live_by_name: Dict[str, LiveColumn] = {column.name: column for column in live}
    declared_names = {column.name for column in declared}

    diff = SchemaDiff()

    for column in declared:
        live_column = live_by_name.get(column.name)
        if live_column is None:
            diff.to_add.append(column)
            continue
        reasons = compare_column(column, live_column, options)
        if reasons:
            diff.mismatches.append(ColumnMismatch(column.name, tuple(reasons)))

    for live_column in live_by_name.values():
        if live_column.name not in declared_names:
            diff.extraneous.append(live_column)

    return diff
