"""
Tests for textile_config: layered settings and config -> kernel bridges.
"""

import logging
from pathlib import Path

import pytest
import yaml

from textile_config import get_active_settings
from textile_config.bridges import (
    build_data_source,
    build_over_consumption_policy,
    configure_logging_from,
)
from textile_config.loader import merge, parse_settings
from textile_kernel.db.datasource import FixtureDataSource, LiveDataSource
from textile_kernel.domain.policies import ClampPolicy, RejectPolicy
from textile_kernel.logging_config import configure_logging, reset_logging, set_log_level


@pytest.fixture
def config_file(tmp_path):
    def _write(data: dict) -> Path:
        path = tmp_path / "textile.yaml"
        path.write_text(yaml.safe_dump(data))
        return path

    return _write


class TestGetActiveSettings:

    def test_packaged_defaults(self):
        settings = get_active_settings(environ={})

        assert settings.data_source.kind == "fixture"
        assert settings.data_source.database_url is None
        assert settings.data_source.fixture_path is None
        assert settings.inventory.over_consumption == "clamp"
        assert settings.logging.level == "INFO"
        assert len(settings.checksum) == 64

    def test_file_overrides_defaults(self, config_file):
        path = config_file({"inventory": {"over_consumption": "reject"}, "logging": {"level": "debug"}})

        settings = get_active_settings(config_file=path, environ={})

        assert settings.inventory.over_consumption == "reject"
        assert settings.logging.level == "DEBUG"
        # Untouched sections keep their defaults
        assert settings.data_source.pool_size == 20

    def test_config_file_from_environment(self, config_file):
        path = config_file({"data_source": {"pool_size": 5}})

        settings = get_active_settings(environ={"TEXTILE_CONFIG_FILE": str(path)})

        assert settings.data_source.pool_size == 5

    def test_env_overrides_file(self, config_file):
        path = config_file({"inventory": {"over_consumption": "reject"}})

        settings = get_active_settings(
            config_file=path,
            environ={
                "TEXTILE_OVER_CONSUMPTION": "clamp",
                "TEXTILE_DATA_SOURCE": "live",
                "TEXTILE_DATABASE_URL": "postgresql://textile@localhost/textile",
            },
        )

        assert settings.inventory.over_consumption == "clamp"
        assert settings.data_source.kind == "live"
        assert settings.data_source.database_url == "postgresql://textile@localhost/textile"

    def test_fixture_path_from_environment(self):
        settings = get_active_settings(environ={"TEXTILE_FIXTURE_PATH": "/srv/textile/seed.yaml"})
        assert settings.data_source.fixture_path == Path("/srv/textile/seed.yaml")

    def test_missing_override_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_settings(config_file=tmp_path / "missing.yaml", environ={})

    def test_checksum_changes_with_content(self):
        a = get_active_settings(environ={})
        b = get_active_settings(environ={"TEXTILE_OVER_CONSUMPTION": "reject"})
        assert a.checksum != b.checksum

    def test_settings_logged(self, captured_logs):
        get_active_settings(environ={})

        records = [r for r in captured_logs() if r["message"] == "textile_config_loaded"]
        assert records[0]["data_source_kind"] == "fixture"


class TestInvalidSettings:

    @pytest.mark.parametrize(
        "data",
        [
            {"data_source": {"kind": "cloud"}},
            {"data_source": {"kind": "live"}},
            {"data_source": {"kind": "live", "database_url": "sqlite:///x.db"}},
            {"data_source": {"kind": "fixture", "database_url": "postgresql://x/y"}},
            {"data_source": {"pool_size": -1}},
            {"data_source": {"echo": "sometimes"}},
            {"inventory": {"over_consumption": "borrow"}},
            {"logging": {"level": "LOUD"}},
        ],
    )
    def test_rejected(self, data):
        with pytest.raises(ValueError):
            parse_settings(data)

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            get_active_settings(config_file=path, environ={})


class TestMerge:

    def test_nested_merge_does_not_mutate(self):
        base = {"data_source": {"kind": "fixture", "pool_size": 20}}

        merged = merge(base, {"data_source": {"pool_size": 5}})

        assert merged == {"data_source": {"kind": "fixture", "pool_size": 5}}
        assert base["data_source"]["pool_size"] == 20


class TestBridges:

    def test_fixture_data_source(self):
        settings = get_active_settings(environ={})

        data_source = build_data_source(settings)
        try:
            assert isinstance(data_source, FixtureDataSource)
            assert data_source.fixture_path is None
        finally:
            data_source.dispose()

    def test_live_data_source(self):
        settings = get_active_settings(
            environ={
                "TEXTILE_DATA_SOURCE": "live",
                "TEXTILE_DATABASE_URL": "postgresql://textile@localhost/textile",
            }
        )

        # Engine creation is lazy; nothing connects here
        data_source = build_data_source(settings)
        try:
            assert isinstance(data_source, LiveDataSource)
            assert data_source.kind == "live"
            assert data_source.engine.dialect.driver == "psycopg2"
        finally:
            data_source.dispose()

    @pytest.mark.parametrize("name,expected", [("clamp", ClampPolicy), ("reject", RejectPolicy)])
    def test_over_consumption_policy(self, name, expected):
        settings = get_active_settings(environ={"TEXTILE_OVER_CONSUMPTION": name})
        assert isinstance(build_over_consumption_policy(settings), expected)

    def test_configure_logging_from_settings(self):
        settings = get_active_settings(environ={"TEXTILE_LOG_LEVEL": "warning"})

        try:
            configure_logging_from(settings)
            assert logging.getLogger("textile_kernel").level == logging.WARNING
        finally:
            reset_logging()
            configure_logging(level=logging.DEBUG)

    def test_level_applies_when_already_configured(self):
        logger = logging.getLogger("textile_kernel")
        configure_logging(level=logging.DEBUG)
        settings = get_active_settings(environ={"TEXTILE_LOG_LEVEL": "error"})

        try:
            configure_logging_from(settings)
            assert logger.level == logging.ERROR
        finally:
            set_log_level(logging.DEBUG)
