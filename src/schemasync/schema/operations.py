"""
DDL execution for schemasync.

Turns action plans into SQLite DDL statements and runs them one at a time
on the live connection. Every statement is recorded as a ``SchemaChange``
with its SQL, timing and error. The first failing statement aborts the
plan; nothing is retried or rolled back.
"""

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

from ..database.connection import ConnectionManager
from ..database.introspection import SchemaIntrospector
from ..exceptions import DatabaseError, SchemaError
from . import ddl
from .backup import BackupTableCoordinator
from .model import DeclaredColumn, IndexSchema, TableSchema
from .planner import ActionKind, ActionPlan


logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    """Types of schema changes."""

    CREATE_TABLE = "create_table"
    ADD_COLUMN = "add_column"
    DROP_COLUMN = "drop_column"
    DROP_TABLE = "drop_table"
    RENAME_TABLE = "rename_table"
    COPY_ROWS = "copy_rows"
    CREATE_INDEX = "create_index"
    DROP_INDEX = "drop_index"


class OperationMode(str, Enum):
    """Schema operation modes."""

    APPLY = "apply"
    DRY_RUN = "dry_run"  # Generate SQL but don't execute


@dataclass
class SchemaChange:
    """A single DDL statement and its execution result."""

    change_type: ChangeType
    table: str
    description: str
    sql: str
    target_object: Optional[str] = None  # Column name, index name, etc.

    # Execution results
    executed: bool = False
    execution_time_ms: Optional[float] = None
    error: Optional[str] = None

    @property
    def is_destructive(self) -> bool:
        return self.change_type in (ChangeType.DROP_COLUMN, ChangeType.DROP_TABLE)

    @property
    def has_error(self) -> bool:
        return self.error is not None

    @property
    def change_id(self) -> str:
        target = self.target_object or self.table
        return f"{self.change_type.value}_{self.table}_{target}"


class SchemaOperations:
    """Executes action plans against one connection."""

    def __init__(
        self,
        connection: ConnectionManager,
        mode: OperationMode = OperationMode.APPLY,
        drop_column_supported: bool = True,
        introspector: Optional[SchemaIntrospector] = None,
    ):
        self.connection = connection
        self.mode = mode
        self.drop_column_supported = drop_column_supported
        self.introspector = introspector or SchemaIntrospector(connection)
        self.backup = BackupTableCoordinator(self, self.introspector)

    @property
    def is_dry_run(self) -> bool:
        return self.mode == OperationMode.DRY_RUN

    # Statement builders

    def build_create_table(self, schema: TableSchema, name: Optional[str] = None) -> SchemaChange:
        table = name or schema.name
        return SchemaChange(
            change_type=ChangeType.CREATE_TABLE,
            table=table,
            description=f"Create table {table}",
            sql=ddl.create_table_sql(schema, name=table),
        )

    def build_add_column(self, table: str, column: DeclaredColumn) -> SchemaChange:
        return SchemaChange(
            change_type=ChangeType.ADD_COLUMN,
            table=table,
            description=f"Add column {column.name} to {table}",
            sql=ddl.add_column_sql(table, column),
            target_object=column.name,
        )

    def build_drop_column(self, table: str, column_name: str) -> SchemaChange:
        return SchemaChange(
            change_type=ChangeType.DROP_COLUMN,
            table=table,
            description=f"Drop column {column_name} from {table}",
            sql=ddl.drop_column_sql(table, column_name),
            target_object=column_name,
        )

    def build_drop_table(self, table: str) -> SchemaChange:
        return SchemaChange(
            change_type=ChangeType.DROP_TABLE,
            table=table,
            description=f"Drop table {table}",
            sql=ddl.drop_table_sql(table),
        )

    def build_rename_table(self, table: str, new_name: str) -> SchemaChange:
        return SchemaChange(
            change_type=ChangeType.RENAME_TABLE,
            table=table,
            description=f"Rename table {table} to {new_name}",
            sql=ddl.rename_table_sql(table, new_name),
            target_object=new_name,
        )

    def build_copy_rows(self, target: str, source: str, columns: List[str]) -> SchemaChange:
        return SchemaChange(
            change_type=ChangeType.COPY_ROWS,
            table=target,
            description=f"Copy {', '.join(columns)} from {source} into {target}",
            sql=ddl.copy_rows_sql(target, source, columns),
            target_object=source,
        )

    def build_create_index(self, index: IndexSchema) -> SchemaChange:
        return SchemaChange(
            change_type=ChangeType.CREATE_INDEX,
            table=index.table,
            description=f"Create index {index.name} on {index.table}",
            sql=ddl.create_index_sql(index),
            target_object=index.name,
        )

    def build_drop_index(self, table: str, index_name: str) -> SchemaChange:
        return SchemaChange(
            change_type=ChangeType.DROP_INDEX,
            table=table,
            description=f"Drop index {index_name} on {table}",
            sql=ddl.drop_index_sql(index_name),
            target_object=index_name,
        )

    # Execution

    async def execute_change(self, change: SchemaChange) -> SchemaChange:
        """Run one statement, or only log it in dry-run mode."""
        if self.is_dry_run:
            change.executed = False
            logger.info(f"DRY RUN: Would execute {change.change_id}")
            logger.info(f"SQL: {change.sql}")
            return change

        logger.info(f"Executing {change.description}: {change.sql}")
        start_time = time.time()

        try:
            await self.connection.execute(change.sql)
        except DatabaseError as e:
            change.executed = False
            change.error = str(e.cause or e)
            logger.error(f"Failed to execute {change.change_id}: {change.error}")
            raise SchemaError(
                f"Failed to {change.description[0].lower()}{change.description[1:]}",
                {"table": change.table},
                cause=e.cause or e,
                sql=change.sql,
            ) from e
        finally:
            change.execution_time_ms = (time.time() - start_time) * 1000

        change.executed = True
        return change

    async def execute_batch(
        self,
        changes: List[SchemaChange],
        record: Optional[List[SchemaChange]] = None,
    ) -> List[SchemaChange]:
        """Execute changes in order, stopping at the first failure."""
        results = record if record is not None else []
        for change in changes:
            results.append(change)
            await self.execute_change(change)
        return results

    async def apply(
        self,
        schema: TableSchema,
        plan: ActionPlan,
        changes: Optional[List[SchemaChange]] = None,
    ) -> List[SchemaChange]:
        """
        Execute an action plan for one table.

        Args:
            schema: Declared schema of the table
            plan: Actions produced by the planner
            changes: List the executed changes are appended to; a failed
                change is appended before the error propagates

        Returns:
            The changes, in execution order
        """
        changes = changes if changes is not None else []
        table = schema.name

        if ActionKind.DROP_COLUMNS in plan.kinds and not self.drop_column_supported:
            raise SchemaError(
                f"Cannot drop columns from {table}: DROP COLUMN is not supported "
                f"by this SQLite version",
                {"table": table},
            )

        for action in plan:
            if action.kind == ActionKind.NO_OP:
                continue

            if action.kind == ActionKind.CREATE:
                await self.execute_batch([self.build_create_table(schema)], changes)

            elif action.kind == ActionKind.ADD_COLUMNS:
                await self.execute_batch(
                    [self.build_add_column(table, column) for column in action.columns],
                    changes,
                )

            elif action.kind == ActionKind.DROP_COLUMNS:
                await self.execute_batch(await self._drop_column_steps(table, action.names), changes)

            elif action.kind == ActionKind.RECREATE_WITH_LOSS:
                async with self._foreign_keys_suspended():
                    await self.execute_batch(
                        [self.build_drop_table(table), self.build_create_table(schema)],
                        changes,
                    )

            elif action.kind == ActionKind.RECREATE_WITH_BACKUP:
                async with self._foreign_keys_suspended():
                    await self.backup.recreate_with_backup(
                        schema, action.ignore_columns, changes
                    )

        return changes

    async def _drop_column_steps(self, table: str, names) -> List[SchemaChange]:
        """
        DROP COLUMN statements, each preceded by dropping the indexes that use
        the column. Declared indexes come back through ``create_indexes``.
        """
        steps: List[SchemaChange] = []
        dropped = set()
        for name in names:
            for index_name in await self.introspector.indexes_covering(table, name):
                if index_name not in dropped:
                    dropped.add(index_name)
                    steps.append(self.build_drop_index(table, index_name))
            steps.append(self.build_drop_column(table, name))
        return steps

    async def create_indexes(
        self,
        schema: TableSchema,
        changes: Optional[List[SchemaChange]] = None,
    ) -> List[SchemaChange]:
        """Create the declared indexes of a table if they are missing."""
        changes = changes if changes is not None else []
        return await self.execute_batch(
            [self.build_create_index(index) for index in schema.indexes], changes
        )

    @asynccontextmanager
    async def _foreign_keys_suspended(self) -> AsyncIterator[None]:
        """Turn off FK enforcement while a table is dropped and rebuilt."""
        if self.is_dry_run:
            yield
            return

        enabled = bool(await self.connection.fetchval("PRAGMA foreign_keys"))
        if not enabled:
            yield
            return

        logger.debug("Suspending foreign key enforcement for table rebuild")
        await self.connection.execute("PRAGMA foreign_keys = OFF")
        try:
            yield
        finally:
            await self.connection.execute("PRAGMA foreign_keys = ON")

    def get_execution_summary(self, changes: List[SchemaChange]) -> Dict[str, Any]:
        """Get summary of execution results."""
        total = len(changes)
        successful = sum(1 for c in changes if c.executed)
        failed = sum(1 for c in changes if c.error)
        total_time = sum(c.execution_time_ms or 0 for c in changes)

        return {
            "total_operations": total,
            "successful": successful,
            "failed": failed,
            "success_rate": successful / total if total > 0 else 0,
            "total_execution_time_ms": total_time,
            "statements": [c.sql for c in changes],
            "failed_operations": [
                {
                    "change_id": c.change_id,
                    "error": c.error,
                    "change_type": c.change_type.value,
                }
                for c in changes if c.error
            ],
        }
