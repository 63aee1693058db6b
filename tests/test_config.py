"""Tests for Lending Ledger configuration.

These tests cover:
1. Default values
2. Environment variable loading
3. Validation of bounded settings
4. The configuration singleton
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from lending_ledger.config import LedgerConfig, get_config, reset_config


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    """Relative database paths resolve under a temporary directory."""
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("LENDING_LEDGER_"):
            monkeypatch.delenv(key)
    reset_config()
    yield tmp_path
    reset_config()


class TestLedgerConfig:
    def test_default_configuration(self, isolated_cwd):
        config = LedgerConfig()

        assert config.loan_period_days == 14
        assert config.lock_timeout_seconds == 5.0
        assert config.storage_timeout_seconds == 5.0
        assert config.audit_queue_size == 1000
        assert config.enable_tracing is False
        assert config.server_name == "lending-ledger"
        assert config.database_path == (isolated_cwd / "data" / "lending.db")
        assert config.database_path.parent.is_dir()

    def test_environment_variable_loading(self, tmp_path):
        env_vars = {
            "LENDING_LEDGER_LOAN_PERIOD_DAYS": "21",
            "LENDING_LEDGER_LOCK_TIMEOUT_SECONDS": "0.5",
            "LENDING_LEDGER_DATABASE_PATH": str(tmp_path / "env" / "ledger.db"),
            "LENDING_LEDGER_DEBUG": "true",
            "LENDING_LEDGER_LOG_LEVEL": "DEBUG",
        }

        with patch.dict(os.environ, env_vars):
            config = LedgerConfig()

        assert config.loan_period_days == 21
        assert config.lock_timeout_seconds == 0.5
        assert config.database_path == tmp_path / "env" / "ledger.db"
        assert config.is_development

    @pytest.mark.parametrize("days", [0, 366])
    def test_loan_period_bounds(self, days):
        with pytest.raises(ValidationError):
            LedgerConfig(loan_period_days=days)

    def test_timeouts_must_be_positive(self):
        with pytest.raises(ValidationError):
            LedgerConfig(lock_timeout_seconds=0)
        with pytest.raises(ValidationError):
            LedgerConfig(storage_timeout_seconds=-1)

    def test_log_level_pattern(self):
        with pytest.raises(ValidationError):
            LedgerConfig(log_level="VERBOSE")

    def test_server_name_rules(self):
        with pytest.raises(ValidationError):
            LedgerConfig(server_name="ab")
        with pytest.raises(ValidationError):
            LedgerConfig(server_name="Has Spaces")

    def test_database_url_takes_precedence(self, tmp_path):
        config = LedgerConfig(
            database_path=tmp_path / "ignored.db",
            database_url="sqlite:///:memory:",
        )

        assert config.get_database_url() == "sqlite:///:memory:"

    def test_database_url_from_path(self, tmp_path):
        config = LedgerConfig(database_path=tmp_path / "ledger.db")

        assert config.get_database_url() == f"sqlite:///{tmp_path / 'ledger.db'}"

    def test_relative_path_made_absolute(self, isolated_cwd):
        config = LedgerConfig(database_path=Path("nested/dir/ledger.db"))

        assert config.database_path.is_absolute()
        assert (isolated_cwd / "nested" / "dir").is_dir()


class TestConfigSingleton:
    def test_get_config_returns_same_instance(self):
        assert get_config() is get_config()

    def test_reset_config(self):
        first = get_config()
        reset_config()

        assert get_config() is not first
