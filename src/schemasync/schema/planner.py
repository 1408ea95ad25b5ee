"""
Reconciliation planning.

Turns a ``SchemaDiff`` and a policy into an outcome plus the ordered list of
actions that realise it. Planning is pure and never raises.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from .ddl import is_constant_default
from .diff import SchemaDiff
from .model import DeclaredColumn


logger = logging.getLogger(__name__)


class ReconciliationOutcome(str, Enum):
    """What a reconciliation pass did (or would do) to one table."""

    ALREADY_IN_SYNC = "already in sync"
    NEW_TABLE_CREATED = "new table created"
    NEW_COLUMNS_ADDED = "new columns added"
    OLD_COLUMNS_REMOVED = "old columns removed"
    NEW_COLUMNS_ADDED_AND_OLD_COLUMNS_REMOVED = "new columns added and old columns removed"
    DROPPED_AND_RECREATED = "dropped and recreated"


class ActionKind(str, Enum):
    """Action types."""

    NO_OP = "no_op"
    CREATE = "create"
    ADD_COLUMNS = "add_columns"
    DROP_COLUMNS = "drop_columns"
    RECREATE_WITH_LOSS = "recreate_with_loss"
    RECREATE_WITH_BACKUP = "recreate_with_backup"


@dataclass(frozen=True)
class PlanAction:
    """One step of an action plan."""

    kind: ActionKind
    columns: Tuple[DeclaredColumn, ...] = ()
    names: Tuple[str, ...] = ()  # DropColumns targets, or RecreateWithBackup ignore list

    @classmethod
    def no_op(cls) -> "PlanAction":
        return cls(ActionKind.NO_OP)

    @classmethod
    def create(cls) -> "PlanAction":
        return cls(ActionKind.CREATE)

    @classmethod
    def add_columns(cls, columns) -> "PlanAction":
        return cls(ActionKind.ADD_COLUMNS, columns=tuple(columns))

    @classmethod
    def drop_columns(cls, names) -> "PlanAction":
        return cls(ActionKind.DROP_COLUMNS, names=tuple(names))

    @classmethod
    def recreate_with_loss(cls) -> "PlanAction":
        return cls(ActionKind.RECREATE_WITH_LOSS)

    @classmethod
    def recreate_with_backup(cls, ignore=()) -> "PlanAction":
        return cls(ActionKind.RECREATE_WITH_BACKUP, names=tuple(ignore))

    @property
    def ignore_columns(self) -> Tuple[str, ...]:
        return self.names if self.kind == ActionKind.RECREATE_WITH_BACKUP else ()

    @property
    def is_recreation(self) -> bool:
        return self.kind in (ActionKind.RECREATE_WITH_LOSS, ActionKind.RECREATE_WITH_BACKUP)

    def __str__(self) -> str:
        if self.kind == ActionKind.ADD_COLUMNS:
            return f"add columns({', '.join(c.name for c in self.columns)})"
        if self.kind == ActionKind.DROP_COLUMNS:
            return f"drop columns({', '.join(self.names)})"
        if self.kind == ActionKind.RECREATE_WITH_BACKUP:
            return f"recreate with backup(ignore={', '.join(self.names) or '-'})"
        return self.kind.value.replace("_", " ")


@dataclass(frozen=True)
class ActionPlan:
    """Ordered actions for one table."""

    actions: Tuple[PlanAction, ...] = (PlanAction(ActionKind.NO_OP),)

    @classmethod
    def single(cls, action: PlanAction) -> "ActionPlan":
        return cls((action,))

    @property
    def is_noop(self) -> bool:
        return all(action.kind == ActionKind.NO_OP for action in self.actions)

    @property
    def kinds(self) -> Tuple[ActionKind, ...]:
        return tuple(action.kind for action in self.actions)

    def __iter__(self):
        return iter(self.actions)

    def __len__(self) -> int:
        return len(self.actions)

    def __str__(self) -> str:
        return " -> ".join(str(action) for action in self.actions)


@dataclass(frozen=True)
class Policy:
    """
    Planning inputs beyond the diff.

    Args:
        preserve: Keep existing rows when a table has to be rebuilt
        drop_column_supported: The target database understands DROP COLUMN
    """

    preserve: bool = False
    drop_column_supported: bool = True


def _append_blocker(column: DeclaredColumn) -> Optional[str]:
    """Why ALTER TABLE ADD COLUMN cannot append this column, or None."""
    if column.is_stored_generated:
        return "stored generated"
    if column.unique:
        return "unique"
    if column.is_generated:
        return None
    if column.is_primary_key:
        return "primary key"
    if column.not_null and not column.has_default:
        return "not null without default"
    if not is_constant_default(column.default):
        return "non-constant default"
    return None


def plan(
    diff: SchemaDiff,
    table_exists: bool,
    policy: Policy,
) -> Tuple[ReconciliationOutcome, ActionPlan]:
    """Pick the outcome and the actions that reconcile one table."""
    if not table_exists:
        return ReconciliationOutcome.NEW_TABLE_CREATED, ActionPlan.single(PlanAction.create())

    if diff.incompatible:
        if policy.preserve:
            action = PlanAction.recreate_with_backup(
                diff.extraneous_names + diff.incompatible_columns
            )
        else:
            action = PlanAction.recreate_with_loss()
        logger.debug(f"Incompatible columns {diff.incompatible_columns}: {action}")
        return ReconciliationOutcome.DROPPED_AND_RECREATED, ActionPlan.single(action)

    pending: Optional[PlanAction] = None
    if diff.extraneous:
        constrained = [column.name for column in diff.extraneous if column.is_constrained]
        if policy.preserve:
            pending = PlanAction.recreate_with_backup(diff.extraneous_names)
        elif policy.drop_column_supported and not constrained:
            pending = PlanAction.drop_columns(diff.extraneous_names)
        else:
            if constrained:
                logger.debug(f"Columns {constrained} are key or UNIQUE columns and cannot be dropped")
            else:
                logger.debug("DROP COLUMN unsupported; extraneous columns force a rebuild")
            return (
                ReconciliationOutcome.DROPPED_AND_RECREATED,
                ActionPlan.single(PlanAction.recreate_with_loss()),
            )

    for column in diff.to_add:
        blocker = _append_blocker(column)
        if blocker is None:
            continue
        if column.is_stored_generated or not policy.preserve:
            action = PlanAction.recreate_with_loss()
        else:
            action = PlanAction.recreate_with_backup(diff.extraneous_names)
        logger.debug(f"Column {column.name} cannot be appended ({blocker}): {action}")
        return ReconciliationOutcome.DROPPED_AND_RECREATED, ActionPlan.single(action)

    if diff.to_add:
        if pending is None:
            return (
                ReconciliationOutcome.NEW_COLUMNS_ADDED,
                ActionPlan.single(PlanAction.add_columns(diff.to_add)),
            )
        if pending.kind == ActionKind.RECREATE_WITH_BACKUP:
            # the rebuilt table already carries the new columns
            actions: Tuple[PlanAction, ...] = (pending,)
        else:
            actions = (pending, PlanAction.add_columns(diff.to_add))
        return ReconciliationOutcome.NEW_COLUMNS_ADDED_AND_OLD_COLUMNS_REMOVED, ActionPlan(actions)

    if pending is not None:
        return ReconciliationOutcome.OLD_COLUMNS_REMOVED, ActionPlan.single(pending)

    return ReconciliationOutcome.ALREADY_IN_SYNC, ActionPlan.single(PlanAction.no_op())
