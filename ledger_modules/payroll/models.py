"""
Payroll Domain Models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.domain.dtos import LedgerEntryRecord


class PeriodType(str, Enum):
    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"


@dataclass(frozen=True)
class EmployeePay:
    """One employee line of a payroll batch."""
    employee_name: str
    gross_pay: Decimal
    payment_method: str


@dataclass(frozen=True)
class PayrollEntry:
    id: UUID
    payroll_date: date
    period_type: PeriodType
    employee_name: str
    gross_pay: Decimal
    payment_method: str
    cash_account_id: UUID
    period_ref: str | None = None
    outlet_id: UUID | None = None
    posted_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def is_posted(self) -> bool:
        return self.posted_at is not None


@dataclass(frozen=True)
class PayrollPostingResult:
    posted_count: int
    transactions_created: int
    transactions: tuple[LedgerEntryRecord, ...] = field(default_factory=tuple)
