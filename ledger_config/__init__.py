"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files or environment variables directly.

Architecture position:
    Configuration.  Sits above ``ledger_kernel`` and below
    ``ledger_modules`` / ``ledger_services``.  The kernel MUST NEVER
    import from ``ledger_config``; services pass the values it needs.

Failure modes:
    - ``FileNotFoundError`` -- LEDGER_CONFIG_FILE points at a missing file.
    - ``ValueError`` -- unknown keys or malformed values.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Mapping
from pathlib import Path

from ledger_config.loader import load_config
from ledger_config.schema import (
    DatabaseConfig,
    IntakeConfig,
    LedgerConfig,
    SequenceConfig,
)

_logger = logging.getLogger("ledger_kernel.config")

DEFAULT_CONFIG_FILE = Path(__file__).parent / "ledger.yaml"

_active: LedgerConfig | None = None
_lock = threading.Lock()


def get_active_config(
    config_file: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerConfig:
    """The ONLY public configuration entrypoint.

    The first call loads ``config_file`` (or ``$LEDGER_CONFIG_FILE``, or the
    packaged ``ledger.yaml``) and caches the result; later calls return the
    cached config.  Passing ``config_file`` or ``environ`` always reloads.
    """
    global _active
    with _lock:
        if _active is not None and config_file is None and environ is None:
            return _active
        env = os.environ if environ is None else environ
        path = config_file or Path(env.get("LEDGER_CONFIG_FILE") or DEFAULT_CONFIG_FILE)
        config = load_config(path, env)
        _active = config

    _logger.info(
        "ledger_config_loaded",
        extra={
            "config_file": str(path),
            "database_dialect": config.database.url.split(":", 1)[0],
            "transaction_code_prefix": config.transaction_code_prefix,
            "batch_code_prefix": config.batch_code_prefix,
        },
    )
    return config


def reset_active_config() -> None:
    """Drop the cached config. FOR TESTING ONLY."""
    global _active
    with _lock:
        _active = None


__all__ = [
    "DatabaseConfig",
    "IntakeConfig",
    "LedgerConfig",
    "SequenceConfig",
    "get_active_config",
    "reset_active_config",
]
