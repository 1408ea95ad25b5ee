"""
Backup-table recreation.

Rebuilds a table whose live definition cannot be altered in place while
keeping the rows of every column that survives: create a shadow table from
the declared schema, copy the common columns, drop the original and rename
the shadow into its place. A failure before the original is dropped
discards the shadow table; a failure after it leaves the shadow behind.
"""

import logging
from typing import TYPE_CHECKING, Iterable, List, Optional

from ..database.introspection import SchemaIntrospector
from ..exceptions import SchemaError
from .model import TableSchema

if TYPE_CHECKING:
    from .operations import SchemaChange, SchemaOperations


logger = logging.getLogger(__name__)

BACKUP_SUFFIX = "_backup"


class BackupTableCoordinator:
    """Shadow-table rebuild of a single table."""

    def __init__(self, operations: "SchemaOperations", introspector: SchemaIntrospector):
        self.operations = operations
        self.introspector = introspector

    async def find_backup_name(self, table: str) -> str:
        """First unused name of ``<table>_backup``, ``<table>_backup1``, ..."""
        base = f"{table}{BACKUP_SUFFIX}"
        candidate = base
        counter = 0
        while await self.introspector.table_exists(candidate):
            counter += 1
            candidate = f"{base}{counter}"
        return candidate

    async def common_columns(
        self,
        schema: TableSchema,
        ignore_columns: Iterable[str] = (),
    ) -> List[str]:
        """
        Columns whose values are copied into the rebuilt table.

        Those present both live and declared, minus ``ignore_columns``,
        minus generated columns on either side. Declared order.
        """
        ignored = set(ignore_columns)
        live = await self.introspector.get_columns(schema.name)

        common = []
        for column in schema.columns:
            live_column = live.get(column.name)
            if live_column is None or column.name in ignored:
                continue
            if column.is_generated or live_column.is_generated:
                continue
            common.append(column.name)
        return common

    async def recreate_with_backup(
        self,
        schema: TableSchema,
        ignore_columns: Iterable[str] = (),
        changes: Optional[List["SchemaChange"]] = None,
    ) -> List["SchemaChange"]:
        """
        Rebuild ``schema.name`` from its declared schema, keeping the rows.

        Args:
            schema: Declared schema the table is rebuilt with
            ignore_columns: Live columns whose values are not copied
            changes: List the executed changes are appended to
        """
        changes = changes if changes is not None else []
        table = schema.name
        operations = self.operations

        backup_name = await self.find_backup_name(table)
        columns = await self.common_columns(schema, ignore_columns)
        logger.info(
            f"Rebuilding {table} through {backup_name}, copying "
            f"{', '.join(columns) if columns else 'no columns'}"
        )

        create = operations.build_create_table(schema, name=backup_name)
        prepare = [create]
        if columns:
            prepare.append(operations.build_copy_rows(backup_name, table, columns))

        try:
            await operations.execute_batch(prepare, changes)
        except SchemaError:
            if create.executed:
                await self._discard(backup_name, changes)
            raise

        return await operations.execute_batch(
            [operations.build_drop_table(table), operations.build_rename_table(backup_name, table)],
            changes,
        )

    async def _discard(self, backup_name: str, changes: List["SchemaChange"]) -> None:
        """Drop a shadow table whose rows could not be filled in."""
        logger.warning(f"Discarding {backup_name}, the original table is untouched")
        try:
            await self.operations.execute_batch(
                [self.operations.build_drop_table(backup_name)], changes
            )
        except SchemaError as e:
            logger.error(f"Could not discard {backup_name}: {e}")
