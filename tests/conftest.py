"""
Pytest configuration and shared fixtures for schemasync tests.

This module provides shared fixtures and utilities for testing all schemasync components.
"""

import os
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock

import pytest
import yaml

from schemasync.config import SchemaSyncConfig
from schemasync.database.connection import ConnectionConfig, ConnectionManager
from schemasync.database.introspection import LiveColumn, SchemaIntrospector
from schemasync.schema.model import (
    DeclaredColumn,
    GeneratedSpec,
    StorageClass,
    TableSchema,
)


# ============================================================================
# Declared Schema Fixtures
# ============================================================================

@pytest.fixture
def users_schema() -> TableSchema:
    """User{id, name, age nullable}."""
    return TableSchema(
        name="users",
        columns=[
            DeclaredColumn("id", "INTEGER", is_primary_key=True),
            DeclaredColumn("name", "TEXT", not_null=True),
            DeclaredColumn("age", "INTEGER"),
        ],
    )


@pytest.fixture
def orders_schema() -> TableSchema:
    """Orders table with a stored generated column."""
    return TableSchema(
        name="orders",
        columns=[
            DeclaredColumn("id", "INTEGER", is_primary_key=True),
            DeclaredColumn("quantity", "INTEGER", not_null=True, default="1"),
            DeclaredColumn("price", "REAL", not_null=True, default="0"),
            DeclaredColumn(
                "total",
                "REAL",
                generated=GeneratedSpec("quantity * price", StorageClass.STORED),
            ),
        ],
    )


def live(name: str, declared_type: str, not_null: bool = False, default=None, pk: int = 0,
         hidden: int = 0, cid: int = 0, unique: bool = False) -> LiveColumn:
    """Shorthand for a live column row."""
    return LiveColumn(name, declared_type, not_null, default, pk, hidden, cid, unique)


@pytest.fixture
def live_column():
    """Factory for live column rows."""
    return live


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config_data(tmp_path) -> Dict[str, Any]:
    """Complete schemasync configuration for testing."""
    return {
        "debug": False,
        "database": {"path": str(tmp_path / "app.db")},
        "tables": [
            {
                "name": "users",
                "columns": [
                    {"name": "id", "type": "INTEGER", "primary_key": True},
                    {"name": "name", "type": "TEXT", "not_null": True, "default": "''"},
                    {"name": "age", "type": "INTEGER"},
                ],
                "indexes": [{"name": "idx_users_name", "columns": ["name"]}],
            },
            {
                "name": "posts",
                "columns": [
                    {"name": "id", "type": "INTEGER", "primary_key": True},
                    {"name": "user_id", "type": "INTEGER", "not_null": True},
                    {"name": "title", "type": "TEXT"},
                ],
                "foreign_keys": [
                    {"columns": ["user_id"], "references": "users", "ref_columns": ["id"]},
                ],
            },
        ],
        "sync": {"preserve": True},
    }


@pytest.fixture
def sample_config(sample_config_data) -> SchemaSyncConfig:
    return SchemaSyncConfig(**sample_config_data)


@pytest.fixture
def temp_config_file(tmp_path, sample_config_data) -> str:
    """Temporary configuration file for testing."""
    path = tmp_path / "schemasync.yaml"
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(sample_config_data, f)
    return str(path)


# ============================================================================
# Database Test Fixtures
# ============================================================================

@pytest.fixture
def mock_connection():
    """Mock connection manager for testing."""
    conn = AsyncMock(spec=ConnectionManager)
    conn.config = ConnectionConfig(path=":memory:")
    conn.execute = AsyncMock(return_value=0)
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetchval = AsyncMock(return_value=0)
    return conn


@pytest.fixture
def mock_introspector():
    """Mock introspector reporting an empty database."""
    introspector = MagicMock(spec=SchemaIntrospector)
    introspector.table_exists = AsyncMock(return_value=False)
    introspector.query_table_info = AsyncMock(return_value=[])
    introspector.get_columns = AsyncMock(return_value={})
    introspector.drop_column_supported = AsyncMock(return_value=True)
    introspector.indexes_covering = AsyncMock(return_value=[])
    return introspector


@pytest.fixture
async def sqlite_connection(tmp_path):
    """Open connection to a fresh database file."""
    manager = ConnectionManager(ConnectionConfig(path=str(tmp_path / "test.db")))
    await manager.initialize()
    yield manager
    await manager.close()


# ============================================================================
# Environment Setup
# ============================================================================

@pytest.fixture(autouse=True)
def setup_test_environment():
    """Keep SCHEMASYNC_* variables from the host out of the tests."""
    original_env = dict(os.environ)

    for key in list(os.environ):
        if key.startswith("SCHEMASYNC_"):
            del os.environ[key]

    yield

    os.environ.clear()
    os.environ.update(original_env)


# Mark integration tests properly
@pytest.fixture(autouse=True)
def mark_integration_tests(request):
    """
    Automatically mark tests in integration directory.
    """
    if "integration" in str(request.fspath):
        request.node.add_marker(pytest.mark.integration)
