"""
Schema management package for schemasync.

This package provides:
- Declared table model (columns, keys, generated columns, indexes)
- Declared-vs-live diff classification
- Reconciliation planning and DDL execution
- Backup-table recreation that keeps existing rows
"""

from .backup import BackupTableCoordinator
from .diff import ColumnMismatch, ComparisonOptions, SchemaDiff, TypeComparison, classify
from .model import (
    DeclaredColumn,
    ForeignKey,
    GeneratedSpec,
    IndexSchema,
    StorageClass,
    TableSchema,
)
from .operations import ChangeType, OperationMode, SchemaChange, SchemaOperations
from .planner import ActionKind, ActionPlan, PlanAction, Policy, ReconciliationOutcome, plan
from .reconciler import ReconciliationResult, ReconciliationStatus, SchemaReconciler

__all__ = [
    "ActionKind",
    "ActionPlan",
    "BackupTableCoordinator",
    "ChangeType",
    "ColumnMismatch",
    "ComparisonOptions",
    "DeclaredColumn",
    "ForeignKey",
    "GeneratedSpec",
    "IndexSchema",
    "OperationMode",
    "PlanAction",
    "Policy",
    "ReconciliationOutcome",
    "ReconciliationResult",
    "ReconciliationStatus",
    "SchemaChange",
    "SchemaDiff",
    "SchemaOperations",
    "SchemaReconciler",
    "StorageClass",
    "TableSchema",
    "TypeComparison",
    "classify",
    "plan",
]
