"""
Unit tests for the configuration system.
"""

import logging

import pytest
import yaml

from schemasync.config import (
    ColumnConfig,
    LoggingConfig,
    SchemaSyncConfig,
    SyncConfig,
    TableConfig,
    configure_logging,
)
from schemasync.exceptions import ConfigurationError
from schemasync.schema.diff import TypeComparison
from schemasync.schema.model import StorageClass


class TestColumnConfig:
    """Test column declarations."""

    @pytest.mark.parametrize("raw,expected", [(0, "0"), (1.5, "1.5"), (True, "1"), ("'x'", "'x'")])
    def test_default_coerced_to_sql_text(self, raw, expected):
        assert ColumnConfig(name="c", default=raw).default == expected

    def test_to_declared_column(self):
        column = ColumnConfig(
            name="total",
            type="REAL",
            generated={"expression": "quantity * price", "storage": "stored"},
        ).to_declared_column()

        assert column.declared_type == "REAL"
        assert column.generated.storage_class == StorageClass.STORED
        assert column.is_stored_generated


class TestTableConfig:
    """Test table declarations."""

    def test_to_table_schema(self, sample_config):
        posts = sample_config.get_table("posts").to_table_schema()

        assert posts.column_names == ["id", "user_id", "title"]
        assert posts.primary_key == ("id",)
        assert posts.foreign_keys[0].ref_table == "users"
        assert posts.foreign_keys[0].ref_columns == ("id",)

    def test_indexes_bound_to_table(self, sample_config):
        users = sample_config.get_table("users").to_table_schema()

        assert users.indexes[0].table == "users"
        assert users.indexes[0].columns == ("name",)

    def test_composite_key(self):
        table = TableConfig(
            name="memberships",
            columns=[
                {"name": "user_id", "type": "INTEGER"},
                {"name": "group_id", "type": "INTEGER"},
            ],
            primary_key=["user_id", "group_id"],
            without_rowid=True,
        )

        schema = table.to_table_schema()

        assert schema.has_composite_key
        assert all(column.not_null for column in schema.columns)


class TestSchemaSyncConfig:
    """Test the main configuration object."""

    def test_defaults(self):
        config = SchemaSyncConfig()

        assert config.database.path == "schemasync.db"
        assert config.tables == []
        assert config.sync.preserve is False
        assert config.logging.level == "INFO"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("SCHEMASYNC_DEBUG", "true")
        monkeypatch.setenv("SCHEMASYNC_SYNC__PRESERVE", "true")

        config = SchemaSyncConfig()

        assert config.debug is True
        assert config.sync.preserve is True

    def test_from_yaml(self, temp_config_file, tmp_path):
        config = SchemaSyncConfig.from_yaml(temp_config_file)

        assert config.database.path == str(tmp_path / "app.db")
        assert [table.name for table in config.tables] == ["users", "posts"]
        assert config.sync.preserve is True

    def test_from_yaml_expands_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("APP_DB", str(tmp_path / "env.db"))
        path = tmp_path / "config.yaml"
        path.write_text("database:\n  path: ${APP_DB}\n", encoding="utf-8")

        config = SchemaSyncConfig.from_yaml(path)

        assert config.database.path == str(tmp_path / "env.db")

    def test_from_yaml_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            SchemaSyncConfig.from_yaml(tmp_path / "missing.yaml")

    def test_from_yaml_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("tables: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            SchemaSyncConfig.from_yaml(path)

    def test_from_yaml_invalid_values(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("sync:\n  type_comparison: fuzzy\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            SchemaSyncConfig.from_yaml(path)

    def test_get_table_unknown(self, sample_config):
        with pytest.raises(ConfigurationError, match="'comments' not found"):
            sample_config.get_table("comments")

    def test_table_schemas_wraps_model_errors(self):
        config = SchemaSyncConfig(tables=[{
            "name": "t",
            "columns": [{"name": "a", "type": "TEXT"}, {"name": "a", "type": "TEXT"}],
        }])

        with pytest.raises(ConfigurationError, match="Invalid table 't'"):
            config.table_schemas()

    def test_comparison_options(self):
        options = SyncConfig(type_comparison="affinity", strict_defaults=True).comparison_options()

        assert options.type_comparison == TypeComparison.AFFINITY
        assert options.strict_defaults is True

    def test_to_yaml_round_trip(self, sample_config, tmp_path):
        path = tmp_path / "saved.yaml"

        sample_config.to_yaml(path)

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
        assert list(data) == ["debug", "database", "tables", "sync", "logging"]
        assert SchemaSyncConfig.from_yaml(path).tables == sample_config.tables


class TestValidateConfig:
    """Test cross-table consistency checks."""

    def test_valid_config(self, sample_config):
        sample_config.validate_config()

    def test_duplicate_tables(self, sample_config_data):
        sample_config_data["tables"].append(sample_config_data["tables"][0])
        config = SchemaSyncConfig(**sample_config_data)

        with pytest.raises(ConfigurationError, match="Duplicate table names: users"):
            config.validate_config()

    def test_duplicate_index_names(self, sample_config_data):
        sample_config_data["tables"][1]["indexes"] = [
            {"name": "idx_users_name", "columns": ["title"]}
        ]
        config = SchemaSyncConfig(**sample_config_data)

        with pytest.raises(ConfigurationError, match="declared on both"):
            config.validate_config()

    def test_foreign_key_to_unknown_column(self, sample_config_data):
        sample_config_data["tables"][1]["foreign_keys"][0]["ref_columns"] = ["uuid"]
        config = SchemaSyncConfig(**sample_config_data)

        with pytest.raises(ConfigurationError, match="unknown column 'users.uuid'"):
            config.validate_config()

    def test_foreign_key_to_undeclared_table_allowed(self, sample_config_data):
        sample_config_data["tables"][1]["foreign_keys"][0]["references"] = "accounts"

        SchemaSyncConfig(**sample_config_data).validate_config()


class TestConfigureLogging:
    """Test logging setup."""

    def test_handlers_replaced_not_stacked(self, tmp_path):
        root = logging.getLogger()
        config = LoggingConfig(level="WARNING", file=str(tmp_path / "sync.log"))

        try:
            configure_logging(config)
            configure_logging(config)

            ours = [h for h in root.handlers if getattr(h, "_schemasync", False)]
            assert len(ours) == 2
            assert root.level == logging.WARNING

            configure_logging(LoggingConfig(), debug=True)
            assert root.level == logging.DEBUG
        finally:
            for handler in list(root.handlers):
                if getattr(handler, "_schemasync", False):
                    root.removeHandler(handler)
                    handler.close()
