"""
Unit Tests for ERC Intake Configuration

Tests environment overrides, invalid values, and the singleton accessors.
"""

import pytest

from erc_intake.config import ErcIntakeConfig, get_config, reset_config, set_config


class TestDefaults:
    """Test default configuration values."""

    def test_layout_defaults(self):
        config = ErcIntakeConfig()
        assert config.primary_sheet_name == "Understandable Data-final"
        assert config.data_dump_sheet_name == "Data Dump"
        assert config.form941_sheet_name == "941 form"

    def test_batch_defaults(self):
        config = ErcIntakeConfig()
        assert config.batch_inter_job_delay_ms == 500
        assert config.batch_max_rows == 1000
        assert config.remove_links_default is False


class TestFromEnv:
    """Test ERC_INTAKE_ environment overrides."""

    def test_overrides_are_applied(self, monkeypatch):
        monkeypatch.setenv("ERC_INTAKE_BATCH_INTER_JOB_DELAY_MS", "25")
        monkeypatch.setenv("ERC_INTAKE_FETCH_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("ERC_INTAKE_REMOVE_LINKS_DEFAULT", "yes")
        monkeypatch.setenv("ERC_INTAKE_PRIMARY_SHEET_NAME", "Answers")

        config = ErcIntakeConfig.from_env()

        assert config.batch_inter_job_delay_ms == 25
        assert config.fetch_timeout_seconds == 2.5
        assert config.remove_links_default is True
        assert config.primary_sheet_name == "Answers"

    def test_invalid_integer_falls_back_to_default(self, monkeypatch):
        monkeypatch.setenv("ERC_INTAKE_BATCH_MAX_ROWS", "lots")
        config = ErcIntakeConfig.from_env()
        assert config.batch_max_rows == 1000

    def test_invalid_float_falls_back_to_default(self, monkeypatch):
        monkeypatch.setenv("ERC_INTAKE_FETCH_TIMEOUT_SECONDS", "soon")
        config = ErcIntakeConfig.from_env()
        assert config.fetch_timeout_seconds == 60.0

    @pytest.mark.parametrize("raw,expected", [
        ("true", True), ("1", True), ("YES", True), ("false", False), ("off", False),
    ])
    def test_boolean_parsing(self, monkeypatch, raw, expected):
        monkeypatch.setenv("ERC_INTAKE_REMOVE_LINKS_DEFAULT", raw)
        assert ErcIntakeConfig.from_env().remove_links_default is expected


class TestSingleton:
    """Test get_config / set_config / reset_config."""

    def test_set_config_is_returned(self):
        custom = ErcIntakeConfig(batch_max_rows=5)
        set_config(custom)
        assert get_config() is custom

    def test_reset_rebuilds_from_env(self, monkeypatch):
        monkeypatch.setenv("ERC_INTAKE_BATCH_MAX_ROWS", "7")
        reset_config()
        first = get_config()
        assert first.batch_max_rows == 7
        assert get_config() is first
