"""
Schema reconciliation core logic for schemasync.

Drives the per-table pipeline (introspect, classify, plan, execute) for
every declared table, either for real or as a side-effect-free simulation.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from ..database.connection import ConnectionManager
from ..database.introspection import LiveColumn, SchemaIntrospector
from .diff import ComparisonOptions, SchemaDiff, classify
from .model import TableSchema
from .operations import OperationMode, SchemaChange, SchemaOperations
from .planner import ActionPlan, Policy, ReconciliationOutcome, plan


logger = logging.getLogger(__name__)


class ReconciliationStatus(str, Enum):
    """Status of reconciliation operations."""

    SUCCESS = "success"
    FAILED = "failed"
    SIMULATED = "simulated"


@dataclass
class TableAnalysis:
    """Everything known about one table before anything is executed."""

    schema: TableSchema
    exists: bool
    live_columns: List[LiveColumn]
    diff: SchemaDiff
    outcome: ReconciliationOutcome
    plan: ActionPlan


@dataclass
class ReconciliationResult:
    """Result of a schema reconciliation operation."""

    status: ReconciliationStatus
    table: str
    outcome: Optional[ReconciliationOutcome] = None
    plan: Optional[ActionPlan] = None
    changes_applied: List[SchemaChange] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    execution_time_ms: float = 0.0

    @property
    def successful_changes(self) -> int:
        """Count of successfully applied changes."""
        return sum(1 for c in self.changes_applied if c.executed)

    @property
    def failed_changes(self) -> int:
        """Count of failed changes."""
        return sum(1 for c in self.changes_applied if c.error)

    @property
    def changed(self) -> bool:
        return self.outcome not in (None, ReconciliationOutcome.ALREADY_IN_SYNC)


class SchemaReconciler:
    """
    Core schema reconciliation engine for schemasync.

    Tables are processed one at a time in declaration order on a single
    connection. A lock keeps two passes on the same reconciler from
    interleaving.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        drop_column_supported: Optional[bool] = None,
        comparison: Optional[ComparisonOptions] = None,
        create_indexes: bool = True,
    ):
        self.connection = connection
        self.drop_column_supported = drop_column_supported
        self.comparison = comparison or ComparisonOptions()
        self.create_indexes = create_indexes

        self.introspector = SchemaIntrospector(connection)
        self.operations = SchemaOperations(
            connection, OperationMode.APPLY, introspector=self.introspector
        )

        self.last_results: Dict[str, ReconciliationResult] = {}
        self._reconciliation_lock = asyncio.Lock()

    async def resolve_policy(self, preserve: bool) -> Policy:
        """Build the policy, detecting DROP COLUMN support unless configured."""
        supported = self.drop_column_supported
        if supported is None:
            supported = await self.introspector.drop_column_supported()
        return Policy(preserve=preserve, drop_column_supported=supported)

    async def analyze_table(self, schema: TableSchema, policy: Policy) -> TableAnalysis:
        """Introspect, classify and plan one table. Read-only."""
        exists = await self.introspector.table_exists(schema.name)
        live_columns = await self.introspector.query_table_info(schema.name) if exists else []

        diff = classify(schema.columns, live_columns, self.comparison)
        outcome, action_plan = plan(diff, exists, policy)

        logger.debug(f"{schema.name}: {diff.describe()} -> {outcome.value} [{action_plan}]")
        return TableAnalysis(
            schema=schema,
            exists=exists,
            live_columns=live_columns,
            diff=diff,
            outcome=outcome,
            plan=action_plan,
        )

    async def simulate_table(self, schema: TableSchema, policy: Policy) -> ReconciliationOutcome:
        """The outcome reconciling ``schema`` would have, without executing anything."""
        analysis = await self.analyze_table(schema, policy)
        return analysis.outcome

    async def reconcile_table(self, schema: TableSchema, policy: Policy) -> ReconciliationResult:
        """
        Reconcile a single table.

        Raises:
            SchemaError: A statement failed; the result recorded in
                ``last_results`` carries the partial changes
        """
        start_time = asyncio.get_event_loop().time()

        result = ReconciliationResult(status=ReconciliationStatus.FAILED, table=schema.name)
        self.last_results[schema.name] = result

        try:
            analysis = await self.analyze_table(schema, policy)
            result.outcome = analysis.outcome
            result.plan = analysis.plan

            if analysis.plan.is_noop:
                logger.info(f"No changes needed for {schema.name}")
            else:
                logger.info(f"Reconciling {schema.name}: {analysis.outcome.value}")
                self.operations.drop_column_supported = policy.drop_column_supported
                await self.operations.apply(schema, analysis.plan, result.changes_applied)

            result.status = ReconciliationStatus.SUCCESS

        except Exception as e:
            logger.error(f"Reconciliation failed for {schema.name}: {e}")
            result.errors.append(str(e))
            raise

        finally:
            result.execution_time_ms = (
                asyncio.get_event_loop().time() - start_time
            ) * 1000

        return result

    async def sync_schema(
        self,
        tables: Iterable[TableSchema],
        preserve: bool = False,
    ) -> Dict[str, ReconciliationOutcome]:
        """
        Bring every declared table in line with its declaration.

        Returns:
            Outcome per table name, in declaration order
        """
        tables = list(tables)
        outcomes: Dict[str, ReconciliationOutcome] = {}

        async with self._reconciliation_lock:
            self.last_results = {}
            policy = await self.resolve_policy(preserve)
            logger.info(
                f"Syncing {len(tables)} tables (preserve={policy.preserve}, "
                f"drop_column_supported={policy.drop_column_supported})"
            )

            for schema in tables:
                result = await self.reconcile_table(schema, policy)
                outcomes[schema.name] = result.outcome

            if self.create_indexes:
                for schema in tables:
                    if schema.indexes:
                        await self.operations.create_indexes(
                            schema, self.last_results[schema.name].changes_applied
                        )

        return outcomes

    async def sync_schema_simulate(
        self,
        tables: Iterable[TableSchema],
        preserve: bool = False,
    ) -> Dict[str, ReconciliationOutcome]:
        """Outcomes ``sync_schema`` would produce, with no side effects."""
        outcomes: Dict[str, ReconciliationOutcome] = {}

        async with self._reconciliation_lock:
            policy = await self.resolve_policy(preserve)
            for schema in tables:
                outcomes[schema.name] = await self.simulate_table(schema, policy)

        return outcomes

    async def preview_statements(
        self,
        tables: Iterable[TableSchema],
        preserve: bool = False,
    ) -> Dict[str, List[SchemaChange]]:
        """The statements ``sync_schema`` would run, per table, without running them."""
        preview = SchemaOperations(
            self.connection, OperationMode.DRY_RUN, introspector=self.introspector
        )
        statements: Dict[str, List[SchemaChange]] = {}

        async with self._reconciliation_lock:
            policy = await self.resolve_policy(preserve)
            preview.drop_column_supported = policy.drop_column_supported
            for schema in tables:
                analysis = await self.analyze_table(schema, policy)
                changes = await preview.apply(schema, analysis.plan)
                if self.create_indexes and schema.indexes:
                    await preview.create_indexes(schema, changes)
                statements[schema.name] = changes

        return statements

    def get_reconciliation_summary(
        self, results: Optional[Dict[str, ReconciliationResult]] = None
    ) -> Dict[str, Any]:
        """Get summary of reconciliation results."""
        results = self.last_results if results is None else results
        total = len(results)
        successful = sum(1 for r in results.values() if r.status == ReconciliationStatus.SUCCESS)
        failed = sum(1 for r in results.values() if r.status == ReconciliationStatus.FAILED)

        outcomes: Dict[str, int] = {}
        for result in results.values():
            if result.outcome is not None:
                outcomes[result.outcome.value] = outcomes.get(result.outcome.value, 0) + 1

        return {
            "total_tables": total,
            "successful": successful,
            "failed": failed,
            "success_rate": successful / total if total > 0 else 0,
            "changed_tables": sum(1 for r in results.values() if r.changed),
            "total_changes": sum(len(r.changes_applied) for r in results.values()),
            "successful_changes": sum(r.successful_changes for r in results.values()),
            "outcomes": outcomes,
            "failed_tables": [
                key for key, result in results.items()
                if result.status == ReconciliationStatus.FAILED
            ],
        }
