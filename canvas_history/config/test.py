"""Tests for environment-driven settings."""

import logging
from pathlib import Path

import pytest

from .lib import (
    DEFAULT_DB_PATH,
    EnvConfig,
    EnvVar,
    describe_environment,
    get_db_path,
    get_environment,
    get_environment_info,
    get_log_level,
    get_max_history_size,
    list_environment_variables,
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Start every test with no canvas-history variables set."""
    for var in EnvVar:
        monkeypatch.delenv(var.value.name, raising=False)


# =============================================================================
# get_environment
# =============================================================================


class TestGetEnvironment:
    """Resolution order and parsing."""

    @pytest.mark.unit
    def test_unset_uses_default(self):
        assert get_environment(EnvVar.MAX_HISTORY_SIZE) == 1000
        assert get_environment(EnvVar.DB_PATH) is None

    @pytest.mark.unit
    def test_override_beats_environment(self, monkeypatch):
        monkeypatch.setenv("CANVAS_HISTORY_MAX_SIZE", "20")
        assert get_environment(EnvVar.MAX_HISTORY_SIZE, override=5) == 5

    @pytest.mark.unit
    def test_environment_beats_default(self, monkeypatch):
        monkeypatch.setenv("CANVAS_HISTORY_MAX_SIZE", " 250 ")
        assert get_environment(EnvVar.MAX_HISTORY_SIZE) == 250

    @pytest.mark.unit
    def test_unparsable_value_logs_and_falls_back(self, monkeypatch, caplog):
        monkeypatch.setenv("CANVAS_HISTORY_MAX_SIZE", "lots")
        with caplog.at_level(logging.WARNING):
            assert get_environment(EnvVar.MAX_HISTORY_SIZE) == 1000
        assert "CANVAS_HISTORY_MAX_SIZE" in caplog.text

    @pytest.mark.unit
    def test_blank_string_falls_back(self, monkeypatch):
        monkeypatch.setenv("CANVAS_HISTORY_LOG_LEVEL", "   ")
        assert get_environment(EnvVar.LOG_LEVEL) == "INFO"

    @pytest.mark.unit
    def test_path_is_expanded(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        monkeypatch.setenv("CANVAS_HISTORY_DB_PATH", "~/h.db")
        result = get_environment(EnvVar.DB_PATH)
        assert isinstance(result, Path)
        assert result == tmp_path / "h.db"

    @pytest.mark.unit
    def test_minimum_clamps_environment_and_override(self, monkeypatch):
        monkeypatch.setenv("CANVAS_HISTORY_MAX_SIZE", "-3")
        assert get_environment(EnvVar.MAX_HISTORY_SIZE) == 1
        assert get_environment(EnvVar.MAX_HISTORY_SIZE, override=0) == 1


# =============================================================================
# Metadata
# =============================================================================


class TestMetadata:
    """Declarations, listing and display rows."""

    @pytest.mark.unit
    def test_info_is_declaration(self):
        info = get_environment_info(EnvVar.MAX_HISTORY_SIZE)
        assert isinstance(info, EnvConfig)
        assert info.var_type is int
        assert info.minimum == 1
        assert info.category == "retention"

    @pytest.mark.unit
    def test_every_setting_is_documented(self):
        for var in EnvVar:
            assert var.value.name.startswith("CANVAS_HISTORY_")
            assert var.value.description

    @pytest.mark.unit
    def test_list_by_category(self):
        assert list_environment_variables() == list(EnvVar)
        assert list_environment_variables("storage") == [EnvVar.DB_PATH]
        assert list_environment_variables("nope") == []

    @pytest.mark.unit
    def test_describe_marks_explicit_values(self, monkeypatch):
        monkeypatch.setenv("CANVAS_HISTORY_LOG_LEVEL", "debug")
        rows = {row["name"]: row for row in describe_environment()}
        assert rows["CANVAS_HISTORY_LOG_LEVEL"]["is_set"]
        assert rows["CANVAS_HISTORY_LOG_LEVEL"]["value"] == "debug"
        assert not rows["CANVAS_HISTORY_MAX_SIZE"]["is_set"]
        assert rows["CANVAS_HISTORY_MAX_SIZE"]["value"] == 1000


# =============================================================================
# Helpers
# =============================================================================


class TestHelpers:
    """Typed shortcuts used by the engine and CLI."""

    @pytest.mark.unit
    def test_db_path_resolution(self, monkeypatch, tmp_path):
        assert get_db_path() == DEFAULT_DB_PATH
        monkeypatch.setenv("CANVAS_HISTORY_DB_PATH", str(tmp_path / "env.db"))
        assert get_db_path() == tmp_path / "env.db"
        assert get_db_path(str(tmp_path / "o.db")) == tmp_path / "o.db"

    @pytest.mark.unit
    def test_max_history_size(self, monkeypatch):
        monkeypatch.setenv("CANVAS_HISTORY_MAX_SIZE", "0")
        assert get_max_history_size() == 1
        assert get_max_history_size(override=42) == 42

    @pytest.mark.unit
    def test_log_level_uppercased(self, monkeypatch):
        monkeypatch.setenv("CANVAS_HISTORY_LOG_LEVEL", "debug")
        assert get_log_level() == "DEBUG"
        assert get_log_level(override="warning") == "WARNING"
