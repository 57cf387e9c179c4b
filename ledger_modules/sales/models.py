"""
Sales Domain Models.

Daily sales summaries, their provenance, and the results of syncing and
posting them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.domain.dtos import LedgerEntryRecord


class SalesSource(str, Enum):
    """Where a summary came from.  POS rows are read-only to users."""
    POS = "pos"
    MANUAL = "manual"


@dataclass(frozen=True)
class SalesSummaryKey:
    """The natural key: one summary per date, channel, method and outlet."""
    sales_date: date
    channel: str
    payment_method: str
    outlet_id: UUID | None = None


@dataclass(frozen=True)
class SalesDailySummary:
    """Gross, discount and net sales for one key."""
    id: UUID
    sales_date: date
    channel: str
    payment_method: str
    gross_sales: Decimal
    discount_amount: Decimal
    net_sales: Decimal
    cash_account_id: UUID
    source: SalesSource
    outlet_id: UUID | None = None
    posted_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def is_posted(self) -> bool:
        return self.posted_at is not None


@dataclass(frozen=True)
class SalesSyncResult:
    """Summaries written by a POS sync, plus keys left alone because they were posted."""
    synced_count: int
    summaries: tuple[SalesDailySummary, ...]
    skipped_posted: tuple[SalesSummaryKey, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class SalesPostingResult:
    posted_count: int
    transactions_created: int
    transactions: tuple[LedgerEntryRecord, ...] = field(default_factory=tuple)
