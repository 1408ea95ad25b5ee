"""
Database health checking for schemasync.

Provides health checks for connectivity, the SQLite library version and
the capabilities reconciliation depends on, and database integrity.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

from .connection import ConnectionManager
from .introspection import DROP_COLUMN_MIN_VERSION, supports_drop_column


logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Health check status levels."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


@dataclass
class HealthCheckResult:
    """Result of a health check."""

    name: str
    status: HealthStatus
    message: str
    details: Dict[str, Any]
    duration_ms: float
    timestamp: float

    @property
    def is_healthy(self) -> bool:
        """Check if the result indicates healthy status."""
        return self.status == HealthStatus.HEALTHY

    @property
    def is_critical(self) -> bool:
        """Check if the result indicates critical status."""
        return self.status == HealthStatus.CRITICAL


def _version_text(version) -> str:
    return ".".join(str(part) for part in version)


class DatabaseHealthChecker:
    """Database health monitoring for schemasync."""

    def __init__(self, connection: ConnectionManager):
        self.connection = connection

    async def check_all(self) -> Dict[str, HealthCheckResult]:
        """Run all health checks."""
        checks = [
            self.check_connectivity(),
            self.check_sqlite_version(),
            self.check_integrity(),
            self.check_foreign_keys(),
        ]

        results = await asyncio.gather(*checks, return_exceptions=True)

        health_results = {}
        for i, result in enumerate(results):
            if isinstance(result, Exception):
                check_name = f"check_{i}"
                health_results[check_name] = HealthCheckResult(
                    name=check_name,
                    status=HealthStatus.CRITICAL,
                    message=f"Health check failed: {result}",
                    details={"error": str(result)},
                    duration_ms=0.0,
                    timestamp=time.time(),
                )
            else:
                health_results[result.name] = result

        return health_results

    async def check_connectivity(self) -> HealthCheckResult:
        """Check basic database connectivity."""
        start_time = time.time()

        try:
            if not self.connection.is_initialized:
                await self.connection.initialize()
            await self.connection.fetchval("SELECT 1")

            return HealthCheckResult(
                name="connectivity",
                status=HealthStatus.HEALTHY,
                message="Database connection successful",
                details={"path": self.connection.config.path},
                duration_ms=(time.time() - start_time) * 1000,
                timestamp=time.time(),
            )

        except Exception as e:
            logger.error(f"Database connectivity check failed: {e}")

            return HealthCheckResult(
                name="connectivity",
                status=HealthStatus.CRITICAL,
                message=f"Database connection failed: {e}",
                details={"error": str(e)},
                duration_ms=(time.time() - start_time) * 1000,
                timestamp=time.time(),
            )

    async def check_sqlite_version(self) -> HealthCheckResult:
        """Check the SQLite version and the DROP COLUMN capability."""
        start_time = time.time()

        try:
            version = await self.connection.get_sqlite_version()
            drop_column = supports_drop_column(version)
            details = {
                "version": _version_text(version),
                "drop_column_supported": drop_column,
            }

            if drop_column:
                status = HealthStatus.HEALTHY
                message = f"SQLite {details['version']}"
            else:
                status = HealthStatus.WARNING
                message = (
                    f"SQLite {details['version']} predates "
                    f"{_version_text(DROP_COLUMN_MIN_VERSION)}; removed columns "
                    f"force a table rebuild"
                )

            return HealthCheckResult(
                name="sqlite_version",
                status=status,
                message=message,
                details=details,
                duration_ms=(time.time() - start_time) * 1000,
                timestamp=time.time(),
            )

        except Exception as e:
            logger.error(f"SQLite version check failed: {e}")

            return HealthCheckResult(
                name="sqlite_version",
                status=HealthStatus.CRITICAL,
                message=f"SQLite version check failed: {e}",
                details={"error": str(e)},
                duration_ms=(time.time() - start_time) * 1000,
                timestamp=time.time(),
            )

    async def check_integrity(self) -> HealthCheckResult:
        """Run PRAGMA quick_check."""
        start_time = time.time()

        try:
            rows = await self.connection.fetch("PRAGMA quick_check")
            problems = [row[0] for row in rows if row[0] != "ok"]

            if problems:
                status = HealthStatus.CRITICAL
                message = f"Integrity check reported {len(problems)} problems"
            else:
                status = HealthStatus.HEALTHY
                message = "Integrity check passed"

            return HealthCheckResult(
                name="integrity",
                status=status,
                message=message,
                details={"problems": problems[:10]},
                duration_ms=(time.time() - start_time) * 1000,
                timestamp=time.time(),
            )

        except Exception as e:
            logger.error(f"Integrity check failed: {e}")

            return HealthCheckResult(
                name="integrity",
                status=HealthStatus.CRITICAL,
                message=f"Integrity check failed: {e}",
                details={"error": str(e)},
                duration_ms=(time.time() - start_time) * 1000,
                timestamp=time.time(),
            )

    async def check_foreign_keys(self) -> HealthCheckResult:
        """Run PRAGMA foreign_key_check."""
        start_time = time.time()

        try:
            rows = await self.connection.fetch("PRAGMA foreign_key_check")
            tables = sorted({row[0] for row in rows})

            if rows:
                status = HealthStatus.WARNING
                message = f"{len(rows)} rows violate foreign keys"
            else:
                status = HealthStatus.HEALTHY
                message = "No foreign key violations"

            return HealthCheckResult(
                name="foreign_keys",
                status=status,
                message=message,
                details={"violations": len(rows), "tables": tables},
                duration_ms=(time.time() - start_time) * 1000,
                timestamp=time.time(),
            )

        except Exception as e:
            logger.error(f"Foreign key check failed: {e}")

            return HealthCheckResult(
                name="foreign_keys",
                status=HealthStatus.CRITICAL,
                message=f"Foreign key check failed: {e}",
                details={"error": str(e)},
                duration_ms=(time.time() - start_time) * 1000,
                timestamp=time.time(),
            )
