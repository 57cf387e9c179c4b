"""
Wire encoding for ledger DTOs.

Decimals travel as strings, never floats: quantities at 4 decimal places,
every other decimal (prices, amounts, sales, pay) at 2.  UUIDs are strings,
dates ISO-8601, enums their value.
"""

from __future__ import annotations

import dataclasses
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from ledger_kernel.db.types import format_money, format_quantity

QUANTITY_FIELDS = frozenset({"quantity"})


def encode_value(value: Any, name: str = "") -> Any:
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, Decimal):
        return format_quantity(value) if name in QUANTITY_FIELDS else format_money(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return to_wire(value)
    if isinstance(value, dict):
        return {str(k): encode_value(v, str(k)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v, name) for v in value]
    raise TypeError(f"cannot encode {type(value).__name__} for the wire")


def to_wire(dto: Any, exclude: frozenset[str] = frozenset()) -> dict[str, Any]:
    """Encode a frozen dataclass DTO field by field."""
    return {
        f.name: encode_value(getattr(dto, f.name), f.name)
        for f in dataclasses.fields(dto)
        if f.name not in exclude
    }
