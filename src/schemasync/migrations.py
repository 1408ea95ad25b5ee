"""
Version-keyed migration callbacks.

Callbacks are registered for a ``(from_version, to_version)`` pair and run
by ``migrate_to``, which tracks the current version in PRAGMA user_version.
"""

import logging
from typing import Awaitable, Callable, Dict, List, Tuple

from .database.connection import ConnectionManager
from .exceptions import MigrationNotFoundError, ValidationError


logger = logging.getLogger(__name__)

MigrationCallback = Callable[[ConnectionManager], Awaitable[None]]


class MigrationRegistry:
    """Registered migrations, empty until ``register`` is called."""

    def __init__(self):
        self._migrations: Dict[Tuple[int, int], MigrationCallback] = {}

    def register(self, from_version: int, to_version: int, callback: MigrationCallback) -> None:
        """Register (or replace) the migration between two versions."""
        if from_version == to_version:
            raise ValidationError(f"Migration from {from_version} to itself is meaningless")
        key = (int(from_version), int(to_version))
        if key in self._migrations:
            logger.warning(f"Replacing migration {from_version} -> {to_version}")
        self._migrations[key] = callback

    def get(self, from_version: int, to_version: int) -> MigrationCallback:
        try:
            return self._migrations[(from_version, to_version)]
        except KeyError:
            raise MigrationNotFoundError(from_version, to_version) from None

    def __contains__(self, key: Tuple[int, int]) -> bool:
        return key in self._migrations

    def __len__(self) -> int:
        return len(self._migrations)

    @property
    def registered(self) -> List[Tuple[int, int]]:
        return sorted(self._migrations)

    async def migrate_to(self, connection: ConnectionManager, to_version: int) -> int:
        """
        Run the migration from the database's current version to ``to_version``.

        Returns:
            The version the database was at before migrating

        Raises:
            MigrationNotFoundError: Nothing is registered for the transition
        """
        from_version = await connection.get_user_version()
        if from_version == to_version:
            logger.info(f"Database already at version {to_version}")
            return from_version

        callback = self.get(from_version, to_version)
        logger.info(f"Migrating database from version {from_version} to {to_version}")

        await callback(connection)
        await connection.set_user_version(to_version)

        logger.info(f"Database migrated to version {to_version}")
        return from_version
