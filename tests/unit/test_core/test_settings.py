"""Unit tests for modular Pydantic Settings v2."""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from nestedset.core.settings import (
    DatabaseSettings,
    LoggingSettings,
    NestedSetSettings,
    clear_all_caches,
    get_db_settings,
    get_logging_settings,
    get_nested_set_settings,
)


@pytest.fixture(autouse=True)
def _fresh_caches():
    clear_all_caches()
    yield
    clear_all_caches()


@pytest.mark.unit
class TestNestedSetSettings:
    """Test suite for NestedSetSettings."""

    def test_defaults(self):
        """Test NestedSetSettings default values."""
        settings = NestedSetSettings()

        assert settings.has_many_roots is False
        assert settings.default_root_id == 1
        assert settings.lft_column == "lft"
        assert settings.rgt_column == "rgt"
        assert settings.level_column == "level"
        assert settings.root_column == "root_id"
        assert settings.parent_column == "parent_id"
        assert settings.lock_trees is True

    def test_frozen(self):
        """Test that NestedSetSettings instances are frozen (immutable)."""
        settings = NestedSetSettings()

        with pytest.raises(ValidationError):
            settings.has_many_roots = True

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("NESTEDSET_HAS_MANY_ROOTS", "true")
        monkeypatch.setenv("NESTEDSET_ROOT_COLUMN", "tree_id")

        settings = NestedSetSettings()

        assert settings.has_many_roots is True
        assert settings.root_column == "tree_id"

    def test_init_kwargs_beat_env(self, monkeypatch):
        monkeypatch.setenv("NESTEDSET_LFT_COLUMN", "left_bound")

        assert NestedSetSettings(lft_column="lo").lft_column == "lo"

    @pytest.mark.parametrize("name", ["", "1st", "lft; DROP TABLE x", "has space"])
    def test_rejects_bad_column_names(self, name):
        with pytest.raises(ValidationError, match="Invalid column name"):
            NestedSetSettings(rgt_column=name)

    def test_rejects_negative_default_root(self):
        with pytest.raises(ValidationError):
            NestedSetSettings(default_root_id=-1)

    def test_yaml_and_conf_d_sources(self, tmp_path, monkeypatch):
        """conf.d files override the base YAML; env still wins."""
        (tmp_path / "nestedset.yaml").write_text("has_many_roots: true\nlft_column: l\n")
        conf_d = tmp_path / "nestedset.d"
        conf_d.mkdir()
        (conf_d / "10-columns.yaml").write_text("lft_column: tree_left\n")
        (conf_d / "20-lock.json").write_text('{"lock_trees": false}')
        monkeypatch.setenv("NESTEDSET_CONFIG_DIR", str(tmp_path))
        monkeypatch.setenv("NESTEDSET_RGT_COLUMN", "tree_right")

        settings = NestedSetSettings()

        assert settings.has_many_roots is True
        assert settings.lft_column == "tree_left"
        assert settings.rgt_column == "tree_right"
        assert settings.lock_trees is False

    def test_loader_is_cached(self, monkeypatch):
        first = get_nested_set_settings()
        monkeypatch.setenv("NESTEDSET_DEFAULT_ROOT_ID", "7")

        assert get_nested_set_settings() is first
        get_nested_set_settings.cache_clear()
        assert get_nested_set_settings().default_root_id == 7


@pytest.mark.unit
class TestLoggingSettings:
    """Test suite for LoggingSettings."""

    def test_defaults(self):
        settings = LoggingSettings()

        assert settings.level == "INFO"
        assert settings.json_logs is True
        assert settings.service_name == "nestedset"
        assert settings.level_int == 20

    def test_level_is_normalized(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = LoggingSettings()

        assert settings.level == "DEBUG"
        assert settings.level_int == 10

    def test_invalid_level(self):
        with pytest.raises(ValidationError):
            LoggingSettings(level="LOUD")

    def test_to_logging_kwargs(self):
        settings = LoggingSettings(level="WARNING", json_logs=False, service_name="trees")

        kwargs = settings.to_logging_kwargs()

        assert kwargs == {
            "log_level": "WARNING",
            "json_logs": False,
            "console_enabled": True,
            "include_function_name": False,
            "capture_warnings": True,
            "service_name": "trees",
        }


@pytest.mark.unit
class TestDatabaseSettings:
    """Test suite for DatabaseSettings."""

    def test_defaults(self):
        settings = DatabaseSettings()

        assert settings.url == "sqlite+aiosqlite:///./nestedset.db"
        assert settings.echo is False
        assert settings.expire_on_commit is False

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("DB_URL", "postgresql+asyncpg://u:p@db/trees")
        monkeypatch.setenv("DB_ECHO", "true")

        settings = DatabaseSettings()

        assert settings.url == "postgresql+asyncpg://u:p@db/trees"
        assert settings.echo is True

    @pytest.mark.parametrize(
        ("url", "message"),
        [
            ("nestedset.db", "must include a scheme"),
            ("sqlite:///./nestedset.db", "has no async driver"),
        ],
    )
    def test_url_validation(self, url, message):
        with pytest.raises(ValidationError, match=message):
            DatabaseSettings(url=url)


@pytest.mark.unit
class TestSettingsLoaders:
    """Test suite for cached loaders."""

    def test_loaders_return_singletons(self):
        assert get_db_settings() is get_db_settings()
        assert get_logging_settings() is get_logging_settings()
        assert get_nested_set_settings() is get_nested_set_settings()

    def test_clear_all_caches(self):
        db = get_db_settings()
        logs = get_logging_settings()
        tree = get_nested_set_settings()

        clear_all_caches()

        assert get_db_settings() is not db
        assert get_logging_settings() is not logs
        assert get_nested_set_settings() is not tree
