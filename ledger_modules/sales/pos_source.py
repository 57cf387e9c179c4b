"""
POS sales sources and aggregation.

Contract:
    PosSalesSource.events() yields completed-or-not POS payment events for
    one outlet and date range.  ``aggregate_pos_sales`` keeps only events
    whose order AND payment completed, and totals them per
    (completion date, order type, payment method).

Architecture: ledger_modules/sales.  The JSON source does file I/O only;
no DB or kernel service imports.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from ledger_kernel.db.types import ZERO, parse_decimal, round_money
from ledger_kernel.exceptions import ValidationError

COMPLETED = "COMPLETED"


@dataclass(frozen=True)
class PosSalesEvent:
    """One payment against one POS order."""

    order_id: str
    completed_at: datetime
    order_type: str
    payment_method: str
    amount: Decimal
    outlet_id: UUID
    order_status: str = COMPLETED
    payment_status: str = COMPLETED


@dataclass(frozen=True)
class PosSalesAggregate:
    """Total completed payments for one (date, order type, payment method)."""

    sales_date: date
    order_type: str
    payment_method: str
    total_amount: Decimal


@runtime_checkable
class PosSalesSource(Protocol):
    """Anything that can list POS payment events for an outlet."""

    def events(self, outlet_id: UUID, start_date: date, end_date: date) -> Iterator[PosSalesEvent]:
        ...


class StaticPosSalesSource:
    """In-memory source over a fixed list of events."""

    def __init__(self, events: Iterable[PosSalesEvent] = ()):
        self._events = list(events)

    def add(self, event: PosSalesEvent) -> None:
        self._events.append(event)

    def events(self, outlet_id: UUID, start_date: date, end_date: date) -> Iterator[PosSalesEvent]:
        for event in self._events:
            if event.outlet_id != outlet_id:
                continue
            if start_date <= event.completed_at.date() <= end_date:
                yield event


def event_from_dict(row: Mapping[str, Any]) -> PosSalesEvent:
    """Build an event from a decoded JSON object; ValidationError on bad fields."""
    if not isinstance(row, Mapping):
        raise ValidationError(f"POS event must be an object, got {type(row).__name__}")
    try:
        completed_at = datetime.fromisoformat(str(row["completed_at"]))
        outlet_id = UUID(str(row["outlet_id"]))
        order_type = str(row["order_type"]).strip()
        payment_method = str(row["payment_method"]).strip()
    except KeyError as exc:
        raise ValidationError(f"POS event missing {exc.args[0]}", field=exc.args[0]) from None
    except ValueError as exc:
        raise ValidationError(f"invalid POS event: {exc}") from None
    return PosSalesEvent(
        order_id=str(row.get("order_id", "")),
        completed_at=completed_at,
        order_type=order_type,
        payment_method=payment_method,
        amount=parse_decimal(row.get("amount"), field="amount"),
        outlet_id=outlet_id,
        order_status=str(row.get("order_status", COMPLETED)).upper(),
        payment_status=str(row.get("payment_status", COMPLETED)).upper(),
    )


class JsonPosSalesSource:
    """Read POS events from a JSON array file or a JSON Lines file."""

    def __init__(self, path: Path | str, fmt: str = "array", encoding: str = "utf-8"):
        self._path = Path(path)
        self._fmt = fmt
        self._encoding = encoding

    def _rows(self) -> Iterator[dict[str, Any]]:
        with self._path.open("r", encoding=self._encoding) as f:
            if self._fmt == "jsonl":
                for line in f:
                    line = line.strip()
                    if line:
                        yield json.loads(line, parse_float=Decimal)
                return
            data = json.load(f, parse_float=Decimal)
        if isinstance(data, dict):
            data = data.get("events", [])
        if not isinstance(data, list):
            raise ValidationError("POS event file must hold a JSON array")
        yield from data

    def events(self, outlet_id: UUID, start_date: date, end_date: date) -> Iterator[PosSalesEvent]:
        yield from StaticPosSalesSource(
            event_from_dict(row) for row in self._rows()
        ).events(outlet_id, start_date, end_date)


def aggregate_pos_sales(events: Iterable[PosSalesEvent]) -> list[PosSalesAggregate]:
    """Sum completed payments by (date, order type, payment method), sorted by that key."""
    totals: dict[tuple[date, str, str], Decimal] = {}
    for event in events:
        if event.order_status != COMPLETED or event.payment_status != COMPLETED:
            continue
        key = (event.completed_at.date(), event.order_type, event.payment_method)
        totals[key] = totals.get(key, ZERO) + event.amount
    return [
        PosSalesAggregate(
            sales_date=key[0],
            order_type=key[1],
            payment_method=key[2],
            total_amount=round_money(total),
        )
        for key, total in sorted(totals.items())
    ]
