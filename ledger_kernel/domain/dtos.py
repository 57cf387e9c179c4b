"""
DTOs -- Pure domain data transfer objects for the ledger.

Responsibility:
    Defines the immutable data structures that cross the persistence
    boundary: ``LedgerEntryDraft`` (what a posting operation wants written)
    and ``LedgerEntryRecord`` (what was written, including its code).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - ``LineType`` is a closed enum; free-form line types cannot reach the
      ledger.
    - Money fields are Decimal, never float.

Data flow:
    module service -> LedgerEntryDraft -> LedgerWriter -> LedgerEntryRecord
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class LineType(str, Enum):
    """Bookkeeping classification of a ledger entry."""

    ASSET = "ASSET"
    INVENTORY = "INVENTORY"
    EXPENSE = "EXPENSE"
    SALES = "SALES"
    COGS = "COGS"
    LIABILITY = "LIABILITY"
    CAPITAL = "CAPITAL"
    DRAWING = "DRAWING"


@dataclass(frozen=True)
class LedgerEntryDraft:
    """A ledger entry requested by a posting operation, before code allocation."""

    transaction_date: date
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal
    line_type: LineType
    account_id: UUID
    cash_account_id: UUID
    item_id: UUID | None = None
    outlet_id: UUID | None = None
    reimbursement_batch_id: str | None = None


@dataclass(frozen=True)
class LedgerEntryRecord:
    """A persisted, immutable ledger entry."""

    id: UUID
    transaction_code: str
    transaction_date: date
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal
    line_type: LineType
    account_id: UUID
    cash_account_id: UUID
    item_id: UUID | None = None
    outlet_id: UUID | None = None
    reimbursement_batch_id: str | None = None
    created_at: datetime | None = None
