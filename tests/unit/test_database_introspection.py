"""
Tests for schemasync.database.introspection module.

Tests the LiveColumn dataclass, the DROP COLUMN capability check and
SchemaIntrospector against mocked and real connections.
"""

from unittest.mock import AsyncMock

import pytest

from schemasync.database.introspection import (
    HiddenKind,
    LiveColumn,
    SchemaIntrospector,
    supports_drop_column,
)
from schemasync.exceptions import DatabaseError, SchemaError


class TestLiveColumn:
    """Test LiveColumn dataclass."""

    def test_live_column_basic(self):
        column = LiveColumn("id", "INTEGER", not_null=False, pk=1)

        assert column.is_primary_key
        assert not column.has_default
        assert not column.is_generated
        assert not column.is_hidden
        assert str(column) == "id INTEGER PK(1)"

    def test_generated_kinds(self):
        virtual = LiveColumn("v", "INTEGER", False, hidden=HiddenKind.VIRTUAL_GENERATED)
        stored = LiveColumn("s", "INTEGER", False, hidden=HiddenKind.STORED_GENERATED)
        hidden = LiveColumn("h", "INTEGER", False, hidden=HiddenKind.HIDDEN)

        assert virtual.is_generated and stored.is_generated
        assert not hidden.is_generated
        assert hidden.is_hidden

    def test_str_with_constraints(self):
        column = LiveColumn("name", "TEXT", not_null=True, default_value="''")
        assert str(column) == "name TEXT NOT NULL DEFAULT ''"


class TestSupportsDropColumn:
    """Test the version gate."""

    @pytest.mark.parametrize("version,expected", [
        ((3, 34, 1), False),
        ((3, 35, 0), True),
        ((3, 45, 2), True),
        ((4, 0, 0), True),
    ])
    def test_supports_drop_column(self, version, expected):
        assert supports_drop_column(version) is expected


class TestSchemaIntrospectorMocked:
    """Test SchemaIntrospector with a mocked connection."""

    @pytest.fixture
    def introspector(self, mock_connection):
        return SchemaIntrospector(mock_connection)

    @pytest.mark.asyncio
    async def test_table_exists(self, introspector, mock_connection):
        mock_connection.fetchval.return_value = 1

        assert await introspector.table_exists("users")
        assert mock_connection.fetchval.await_args.args[1] == "users"

    @pytest.mark.asyncio
    async def test_table_exists_error(self, introspector, mock_connection):
        mock_connection.fetchval.side_effect = DatabaseError("disk I/O error")

        with pytest.raises(SchemaError, match="Failed to check table existence"):
            await introspector.table_exists("users")

    @pytest.mark.asyncio
    async def test_query_table_info_maps_rows(self, introspector, mock_connection):
        mock_connection.fetch.side_effect = [
            [
                {"cid": 0, "name": "id", "type": "INTEGER", "notnull": 0,
                 "dflt_value": None, "pk": 1, "hidden": 0},
                {"cid": 1, "name": "note", "type": None, "notnull": 1,
                 "dflt_value": "'x'", "pk": 0, "hidden": 0},
            ],
            [{"name": "note"}],
        ]

        columns = await introspector.query_table_info("users")

        assert columns == [
            LiveColumn("id", "INTEGER", False, None, 1, 0, 0),
            LiveColumn("note", "", True, "'x'", 0, 0, 1, unique=True),
        ]

    @pytest.mark.asyncio
    async def test_query_table_info_error(self, introspector, mock_connection):
        mock_connection.fetch.side_effect = DatabaseError("boom")

        with pytest.raises(SchemaError, match="Failed to read table info"):
            await introspector.query_table_info("users")

    @pytest.mark.asyncio
    async def test_drop_column_supported_from_version(self, introspector, mock_connection):
        mock_connection.get_sqlite_version = AsyncMock(return_value=(3, 31, 1))
        assert await introspector.drop_column_supported() is False

        mock_connection.get_sqlite_version = AsyncMock(return_value=(3, 40, 0))
        assert await introspector.drop_column_supported() is True

    @pytest.mark.asyncio
    async def test_drop_column_supported_falls_back_to_module_version(
        self, introspector, mock_connection
    ):
        import sqlite3

        mock_connection.get_sqlite_version = AsyncMock(side_effect=DatabaseError("boom"))

        expected = supports_drop_column(sqlite3.sqlite_version_info)
        assert await introspector.drop_column_supported() is expected


class TestSchemaIntrospectorLive:
    """Test SchemaIntrospector against a real database file."""

    @pytest.mark.asyncio
    async def test_reads_columns_in_order(self, sqlite_connection):
        await sqlite_connection.execute(
            'CREATE TABLE "users" ("id" INTEGER PRIMARY KEY, '
            '"name" TEXT NOT NULL DEFAULT \'\', "age" integer)'
        )
        introspector = SchemaIntrospector(sqlite_connection)

        columns = await introspector.query_table_info("users")

        assert [c.name for c in columns] == ["id", "name", "age"]
        assert columns[0].pk == 1
        assert columns[1].not_null and columns[1].default_value == "''"
        assert columns[2].declared_type == "integer"
        assert await introspector.table_exists("users")
        assert not await introspector.table_exists("posts")

    @pytest.mark.asyncio
    async def test_missing_table_has_no_columns(self, sqlite_connection):
        introspector = SchemaIntrospector(sqlite_connection)
        assert await introspector.query_table_info("missing") == []

    @pytest.mark.asyncio
    async def test_generated_columns_are_reported(self, sqlite_connection):
        await sqlite_connection.execute(
            'CREATE TABLE "orders" ("q" INTEGER, "p" REAL, '
            '"total" REAL GENERATED ALWAYS AS ("q" * "p") STORED, '
            '"half" REAL GENERATED ALWAYS AS ("p" / 2) VIRTUAL)'
        )
        introspector = SchemaIntrospector(sqlite_connection)

        columns = await introspector.get_columns("orders")

        assert set(columns) == {"q", "p", "total", "half"}
        assert columns["total"].hidden == HiddenKind.STORED_GENERATED
        assert columns["half"].hidden == HiddenKind.VIRTUAL_GENERATED
        assert columns["q"].hidden == HiddenKind.NORMAL

    @pytest.mark.asyncio
    async def test_list_tables_indexes_and_count(self, sqlite_connection):
        await sqlite_connection.execute('CREATE TABLE "b" ("x" TEXT UNIQUE)')
        await sqlite_connection.execute('CREATE TABLE "a" ("x" TEXT)')
        await sqlite_connection.execute('CREATE INDEX "idx_a_x" ON "a" ("x")')
        await sqlite_connection.execute('INSERT INTO "a" ("x") VALUES (?), (?)', "1", "2")
        introspector = SchemaIntrospector(sqlite_connection)

        assert await introspector.list_tables() == ["a", "b"]
        # automatic UNIQUE index on b has no SQL and is skipped
        assert await introspector.list_indexes("a") == ["idx_a_x"]
        assert await introspector.list_indexes("b") == []
        assert await introspector.count_rows("a") == 2

    @pytest.mark.asyncio
    async def test_unique_constraints_are_reported(self, sqlite_connection):
        await sqlite_connection.execute(
            'CREATE TABLE "users" ("id" INTEGER PRIMARY KEY, "email" TEXT UNIQUE, '
            '"a" TEXT, "b" TEXT, "c" TEXT, UNIQUE ("a", "b"))'
        )
        await sqlite_connection.execute('CREATE UNIQUE INDEX "ix_c" ON "users" ("c")')
        introspector = SchemaIntrospector(sqlite_connection)

        columns = await introspector.get_columns("users")

        # a unique index created afterwards is not part of the table definition
        assert {name for name, column in columns.items() if column.unique} == {"email", "a", "b"}
        assert columns["id"].is_constrained
        assert not columns["c"].is_constrained

    @pytest.mark.asyncio
    async def test_indexes_covering(self, sqlite_connection):
        await sqlite_connection.execute(
            'CREATE TABLE "users" ("id" INTEGER PRIMARY KEY, "email" TEXT, "name" TEXT, '
            '"code" TEXT UNIQUE)'
        )
        await sqlite_connection.execute('CREATE INDEX "ix_email" ON "users" ("email")')
        await sqlite_connection.execute('CREATE INDEX "ix_name_email" ON "users" ("name", "email")')
        await sqlite_connection.execute('CREATE INDEX "ix_lower" ON "users" (lower("email"))')
        await sqlite_connection.execute(
            'CREATE INDEX "ix_named" ON "users" ("id") WHERE "email" IS NOT NULL'
        )
        await sqlite_connection.execute('CREATE INDEX "ix_name" ON "users" ("name")')
        introspector = SchemaIntrospector(sqlite_connection)

        assert await introspector.indexes_covering("users", "email") == [
            "ix_email", "ix_lower", "ix_name_email", "ix_named",
        ]
        assert await introspector.indexes_covering("users", "name") == ["ix_name", "ix_name_email"]
        # the automatic index behind UNIQUE is not an explicit index
        assert await introspector.indexes_covering("users", "code") == []
