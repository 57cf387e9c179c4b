"""
Tests for ledger configuration loading.

Covers:
- The packaged ledger.yaml parses to the schema defaults
- Unknown keys and malformed values are rejected
- LEDGER_* environment overrides
- get_active_config caching
"""

from pathlib import Path
from uuid import UUID

import pytest
import yaml

from ledger_config import DEFAULT_CONFIG_FILE, get_active_config, reset_active_config
from ledger_config.loader import (
    apply_env_overrides,
    load_config,
    load_yaml_file,
    parse_config,
)
from ledger_config.schema import DEFAULT_VARIANT_KEYWORDS, LedgerConfig
from tests.conftest import EXPENSE_ACCOUNT_ID


@pytest.fixture
def write_config(tmp_path):
    def _write(data, name="ledger.yaml") -> Path:
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data) if not isinstance(data, str) else data, encoding="utf-8")
        return path
    return _write


@pytest.fixture(autouse=True)
def _fresh_active_config():
    reset_active_config()
    yield
    reset_active_config()


class TestPackagedDefaults:
    def test_matches_schema_defaults(self):
        config = load_config(DEFAULT_CONFIG_FILE)
        assert config == LedgerConfig()

    def test_values(self):
        config = load_config(DEFAULT_CONFIG_FILE)
        assert config.transaction_code_prefix == "PCS"
        assert config.batch_code_width == 3
        assert config.intake.variant_keywords == DEFAULT_VARIANT_KEYWORDS
        assert config.channel_name("TAKEAWAY") == "Take Away"
        assert config.channel_name("GRABFOOD") == "GRABFOOD"


class TestParseConfig:
    def test_partial_file_keeps_defaults(self, write_config):
        config = load_config(write_config({
            "sequences": {"transaction_code_prefix": "KAS"},
            "intake": {"default_expense_account_id": str(EXPENSE_ACCOUNT_ID)},
            "log_level": "debug",
        }))
        assert config.transaction_code_prefix == "KAS"
        assert config.transaction_code_width == 6
        assert config.intake.default_expense_account_id == EXPENSE_ACCOUNT_ID
        assert config.log_level == "DEBUG"
        assert config.database.url == "sqlite:///ledger.db"

    def test_empty_file(self, write_config):
        assert load_config(write_config("")) == LedgerConfig()

    def test_variant_keywords_lowercased(self, write_config):
        config = load_config(write_config({"intake": {"variant_keywords": ["Merah", "BESAR"]}}))
        assert config.intake.variant_keywords == ("merah", "besar")

    @pytest.mark.parametrize("data, message", [
        ({"databse": {}}, "configuration"),
        ({"database": {"uri": "x"}}, "database"),
        ({"intake": {"future_days": 3}}, "intake"),
    ])
    def test_unknown_keys(self, data, message):
        with pytest.raises(ValueError, match=message):
            parse_config(data)

    @pytest.mark.parametrize("data", [
        {"database": {"pool_size": 0}},
        {"database": {"pool_size": "20"}},
        {"sequences": {"batch_code_width": True}},
        {"intake": {"future_date_window_days": -1}},
        {"intake": {"default_expense_account_id": "expense"}},
        {"intake": {"variant_keywords": "merah"}},
        {"channel_names": ["DINE_IN"]},
    ])
    def test_malformed_values(self, data):
        with pytest.raises(ValueError):
            parse_config(data)

    def test_top_level_must_be_mapping(self, write_config):
        with pytest.raises(ValueError):
            load_yaml_file(write_config("- a\n- b\n"))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, write_config):
        with pytest.raises(yaml.YAMLError):
            load_config(write_config("database: [unclosed"))


class TestEnvOverrides:
    def test_overrides(self):
        config = apply_env_overrides(LedgerConfig(), {
            "LEDGER_DATABASE_URL": "postgresql://ledger@localhost/ledger",
            "LEDGER_SQL_ECHO": "true",
            "LEDGER_DEFAULT_EXPENSE_ACCOUNT_ID": str(EXPENSE_ACCOUNT_ID),
            "LEDGER_LOG_LEVEL": "warning",
        })
        assert config.database.url == "postgresql://ledger@localhost/ledger"
        assert config.database.echo is True
        assert config.intake.default_expense_account_id == EXPENSE_ACCOUNT_ID
        assert config.log_level == "WARNING"

    def test_unrelated_variables_ignored(self):
        assert apply_env_overrides(LedgerConfig(), {"DATABASE_URL": "x", "PATH": "/bin"}) == LedgerConfig()

    def test_invalid_account_override(self):
        with pytest.raises(ValueError):
            apply_env_overrides(LedgerConfig(), {"LEDGER_DEFAULT_EXPENSE_ACCOUNT_ID": "cash"})


class TestActiveConfig:
    def test_config_file_from_environment(self, write_config):
        path = write_config({"sequences": {"batch_code_prefix": "RB"}})
        config = get_active_config(environ={"LEDGER_CONFIG_FILE": str(path)})
        assert config.batch_code_prefix == "RB"
        # Cached until reset
        assert get_active_config() is config

    def test_explicit_file_reloads(self, write_config):
        first = get_active_config(environ={})
        second = get_active_config(config_file=write_config({"log_level": "ERROR"}), environ={})
        assert first.log_level == "INFO"
        assert second.log_level == "ERROR"
        assert get_active_config() is second

    def test_logged(self, captured_logs):
        get_active_config(environ={})
        entry = next(r for r in captured_logs() if r["message"] == "ledger_config_loaded")
        assert entry["transaction_code_prefix"] == "PCS"
        assert entry["database_dialect"] == "sqlite"

    def test_default_account_is_a_uuid(self, write_config):
        path = write_config({"intake": {"default_expense_account_id": str(EXPENSE_ACCOUNT_ID)}})
        config = get_active_config(config_file=path, environ={})
        assert isinstance(config.intake.default_expense_account_id, UUID)
