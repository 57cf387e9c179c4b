"""CLI utilities: payload loading, item catalogs, result printing, logging mute."""

import json
import logging
import sys
from decimal import Decimal
from pathlib import Path
from uuid import UUID

import yaml

from ledger_intake.matcher import InventoryItem, StaticItemCatalog


def load_payload(raw: str | None) -> dict:
    """Decode ``--json``: inline JSON, or ``@path`` to read a file. Decimals stay exact."""
    if not raw:
        return {}
    if raw.startswith("@"):
        raw = Path(raw[1:]).read_text(encoding="utf-8")
    data = json.loads(raw, parse_float=Decimal)
    if not isinstance(data, dict):
        raise ValueError("payload must be a JSON object")
    return data


def load_item_catalog(path: Path) -> StaticItemCatalog:
    """
    Read inventory items from YAML.

    Expected shape::

        items:
          - id: 6f1c...
            code: CBM
            name: Cabe Merah
            keywords: cabe, merah, cabai
            unit: kg
    """
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    rows = data.get("items", []) if isinstance(data, dict) else data
    return StaticItemCatalog(
        InventoryItem(
            id=UUID(str(row["id"])),
            code=str(row.get("code", "")),
            name=str(row["name"]),
            keywords=str(row.get("keywords", "")),
            unit=str(row.get("unit", "")),
        )
        for row in rows
    )


def print_result(result, stream=None) -> None:
    """Print an OperationResult body as indented JSON (nothing for 204)."""
    out = stream or sys.stdout
    if result.body is None:
        print(f"status: {result.status}", file=out)
        return
    print(json.dumps(result.body, indent=2, ensure_ascii=False), file=out)


def enable_quiet_logging():
    """Mute console handlers so CLI output stays clean. Returns list to pass to restore_logging."""
    lk_logger = logging.getLogger("ledger_kernel")
    muted = []
    for h in lk_logger.handlers:
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler):
            muted.append((h, h.level))
            h.setLevel(logging.CRITICAL + 1)
    return muted


def restore_logging(muted):
    """Restore muted handlers after a quiet-logging section."""
    for h, orig_level in muted:
        h.setLevel(orig_level)
