"""
Storage facade for schemasync.

Owns the database connection, the declared tables and the migration
registry, and exposes the public synchronisation surface.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .config import SchemaSyncConfig, SyncConfig
from .database.connection import ConnectionConfig, ConnectionManager, quote_identifier
from .database.introspection import SchemaIntrospector
from .exceptions import ColumnNotFoundError, ValidationError, ValueIsNullError
from .migrations import MigrationCallback, MigrationRegistry
from .schema.model import TableSchema
from .schema.operations import SchemaChange
from .schema.planner import ReconciliationOutcome
from .schema.reconciler import SchemaReconciler


logger = logging.getLogger(__name__)


class Storage:
    """
    Declared tables bound to one SQLite database.

    Example:
        async with Storage(ConnectionConfig(path="app.db"), [users]) as storage:
            outcomes = await storage.sync_schema(preserve=True)
    """

    def __init__(
        self,
        connection_config: ConnectionConfig,
        tables: Iterable[TableSchema] = (),
        sync_config: Optional[SyncConfig] = None,
    ):
        self.connection_config = connection_config
        self.sync_config = sync_config or SyncConfig()
        self.connection = ConnectionManager(connection_config)
        self.introspector = SchemaIntrospector(self.connection)
        self.reconciler = SchemaReconciler(
            self.connection,
            drop_column_supported=self.sync_config.drop_column_supported,
            comparison=self.sync_config.comparison_options(),
            create_indexes=self.sync_config.create_indexes,
        )
        self.migrations = MigrationRegistry()

        self._tables: Dict[str, TableSchema] = {}
        for table in tables:
            self.add_table(table)

    @classmethod
    def from_config(cls, config: SchemaSyncConfig) -> "Storage":
        """Create a storage object from the loaded configuration."""
        return cls(config.database, config.table_schemas(), config.sync)

    async def open(self) -> "Storage":
        await self.connection.initialize()
        return self

    async def close(self) -> None:
        await self.connection.close()

    async def __aenter__(self):
        return await self.open()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def tables(self) -> List[TableSchema]:
        """Declared tables in declaration order."""
        return list(self._tables.values())

    def add_table(self, table: TableSchema) -> None:
        if table.name in self._tables:
            raise ValidationError(f"Table '{table.name}' is already declared")
        self._tables[table.name] = table

    def get_table(self, name: str) -> TableSchema:
        try:
            return self._tables[name]
        except KeyError:
            raise ValidationError(f"Table '{name}' is not declared") from None

    def _preserve(self, preserve: Optional[bool]) -> bool:
        return self.sync_config.preserve if preserve is None else preserve

    async def sync_schema(self, preserve: Optional[bool] = None) -> Dict[str, ReconciliationOutcome]:
        """
        Reconcile every declared table with the live database.

        Args:
            preserve: Keep rows when a table has to be rebuilt; defaults to
                the configured value

        Returns:
            Outcome per table name
        """
        return await self.reconciler.sync_schema(self.tables, self._preserve(preserve))

    async def sync_schema_simulate(
        self, preserve: Optional[bool] = None
    ) -> Dict[str, ReconciliationOutcome]:
        """Outcomes ``sync_schema`` would produce, without touching the database."""
        return await self.reconciler.sync_schema_simulate(self.tables, self._preserve(preserve))

    async def preview(self, preserve: Optional[bool] = None) -> Dict[str, List[SchemaChange]]:
        """Statements ``sync_schema`` would run, per table."""
        return await self.reconciler.preview_statements(self.tables, self._preserve(preserve))

    async def table_exists(self, name: str) -> bool:
        return await self.introspector.table_exists(name)

    def register_migration(
        self, from_version: int, to_version: int, callback: MigrationCallback
    ) -> None:
        """Register an async ``callback(connection)`` run by ``migrate_to``."""
        self.migrations.register(from_version, to_version, callback)

    async def migrate_to(self, to_version: int) -> int:
        """Run the registered migration to ``to_version``; returns the previous version."""
        return await self.migrations.migrate_to(self.connection, to_version)

    async def get_user_version(self) -> int:
        return await self.connection.get_user_version()

    async def has_dependent_rows(self, table: str, values: Mapping[str, Any]) -> bool:
        """
        Whether any declared table holds rows referencing a row of ``table``.

        Args:
            table: Referenced (parent) table
            values: Column values of the parent row

        Raises:
            ColumnNotFoundError: A foreign key references a column ``table``
                does not declare
            ValueIsNullError: The parent row value a foreign key references
                is missing or None
        """
        parent = self.get_table(table)

        for child in self.tables:
            for foreign_key in child.foreign_keys:
                if foreign_key.ref_table != table:
                    continue

                clauses = []
                params = []
                for column, ref_column in zip(foreign_key.columns, foreign_key.ref_columns):
                    if not parent.has_column(ref_column):
                        raise ColumnNotFoundError(table, ref_column)
                    value = values.get(ref_column)
                    if value is None:
                        raise ValueIsNullError(table, ref_column)
                    clauses.append(f"{quote_identifier(column)} = ?")
                    params.append(value)

                if not await self.introspector.table_exists(child.name):
                    continue

                query = (
                    f"SELECT EXISTS (SELECT 1 FROM {quote_identifier(child.name)} "
                    f"WHERE {' AND '.join(clauses)})"
                )
                if await self.connection.fetchval(query, *params):
                    logger.debug(f"{child.name} has rows referencing {table}")
                    return True

        return False
