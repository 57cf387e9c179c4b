"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads a YAML configuration file, parses it into the typed
``ledger_config.schema`` dataclasses and applies ``LEDGER_*`` environment
overrides.  The single public entry point for runtime config is
``ledger_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown keys are rejected with ``ValueError``; a typo in a config file
  never silently falls back to a default.
* Every parsed object is a frozen dataclass from ``schema.py``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or wrong value type  -> ``ValueError``.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from ledger_config.schema import (
    DatabaseConfig,
    IntakeConfig,
    LedgerConfig,
    SequenceConfig,
)

ENV_PREFIX = "LEDGER_"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def _check_keys(section: str, data: Mapping[str, Any], cls: type) -> None:
    allowed = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValueError(f"Unknown key(s) in {section}: {', '.join(unknown)}")


def _parse_uuid(value: Any, key: str) -> UUID | None:
    if value is None or value == "":
        return None
    try:
        return UUID(str(value))
    except ValueError:
        raise ValueError(f"{key} must be a UUID, got {value!r}") from None


def _parse_int(value: Any, key: str, minimum: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    if value < minimum:
        raise ValueError(f"{key} must be >= {minimum}, got {value}")
    return value


def parse_database(data: Mapping[str, Any]) -> DatabaseConfig:
    _check_keys("database", data, DatabaseConfig)
    defaults = DatabaseConfig()
    return DatabaseConfig(
        url=str(data.get("url", defaults.url)),
        echo=bool(data.get("echo", defaults.echo)),
        pool_size=_parse_int(data.get("pool_size", defaults.pool_size), "database.pool_size", 1),
        max_overflow=_parse_int(data.get("max_overflow", defaults.max_overflow), "database.max_overflow"),
    )


def parse_sequences(data: Mapping[str, Any]) -> SequenceConfig:
    _check_keys("sequences", data, SequenceConfig)
    defaults = SequenceConfig()
    return SequenceConfig(
        transaction_code_prefix=str(
            data.get("transaction_code_prefix", defaults.transaction_code_prefix)
        ),
        transaction_code_width=_parse_int(
            data.get("transaction_code_width", defaults.transaction_code_width),
            "sequences.transaction_code_width",
            1,
        ),
        batch_code_prefix=str(data.get("batch_code_prefix", defaults.batch_code_prefix)),
        batch_code_width=_parse_int(
            data.get("batch_code_width", defaults.batch_code_width),
            "sequences.batch_code_width",
            1,
        ),
    )


def parse_intake(data: Mapping[str, Any]) -> IntakeConfig:
    _check_keys("intake", data, IntakeConfig)
    defaults = IntakeConfig()
    keywords = data.get("variant_keywords", defaults.variant_keywords)
    if not isinstance(keywords, (list, tuple)):
        raise ValueError("intake.variant_keywords must be a list")
    return IntakeConfig(
        future_date_window_days=_parse_int(
            data.get("future_date_window_days", defaults.future_date_window_days),
            "intake.future_date_window_days",
        ),
        default_expense_account_id=_parse_uuid(
            data.get("default_expense_account_id"), "intake.default_expense_account_id"
        ),
        variant_keywords=tuple(str(k).lower() for k in keywords),
        variant_weight=_parse_int(
            data.get("variant_weight", defaults.variant_weight), "intake.variant_weight", 1
        ),
    )


def parse_config(data: Mapping[str, Any]) -> LedgerConfig:
    """Parse a whole configuration mapping into a LedgerConfig."""
    _check_keys("configuration", data, LedgerConfig)
    defaults = LedgerConfig()
    channel_names = data.get("channel_names", defaults.channel_names)
    if not isinstance(channel_names, dict):
        raise ValueError("channel_names must be a mapping")
    return LedgerConfig(
        database=parse_database(data.get("database") or {}),
        sequences=parse_sequences(data.get("sequences") or {}),
        intake=parse_intake(data.get("intake") or {}),
        channel_names={str(k): str(v) for k, v in channel_names.items()},
        log_level=str(data.get("log_level", defaults.log_level)).upper(),
    )


def apply_env_overrides(config: LedgerConfig, environ: Mapping[str, str]) -> LedgerConfig:
    """Return ``config`` with ``LEDGER_*`` environment variables applied."""
    database = config.database
    intake = config.intake
    log_level = config.log_level

    if f"{ENV_PREFIX}DATABASE_URL" in environ:
        database = dataclasses.replace(database, url=environ[f"{ENV_PREFIX}DATABASE_URL"])
    if f"{ENV_PREFIX}SQL_ECHO" in environ:
        database = dataclasses.replace(
            database,
            echo=environ[f"{ENV_PREFIX}SQL_ECHO"].lower() in ("1", "true", "yes"),
        )
    if f"{ENV_PREFIX}DEFAULT_EXPENSE_ACCOUNT_ID" in environ:
        intake = dataclasses.replace(
            intake,
            default_expense_account_id=_parse_uuid(
                environ[f"{ENV_PREFIX}DEFAULT_EXPENSE_ACCOUNT_ID"],
                f"{ENV_PREFIX}DEFAULT_EXPENSE_ACCOUNT_ID",
            ),
        )
    if f"{ENV_PREFIX}LOG_LEVEL" in environ:
        log_level = environ[f"{ENV_PREFIX}LOG_LEVEL"].upper()

    return dataclasses.replace(config, database=database, intake=intake, log_level=log_level)


def load_config(path: Path, environ: Mapping[str, str] | None = None) -> LedgerConfig:
    """Load ``path`` and apply environment overrides."""
    config = parse_config(load_yaml_file(path))
    return apply_env_overrides(config, environ or {})
