"""
Reimbursement Domain Models.

The nouns of expense claims: requests, their lifecycle status, batches.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.domain.dtos import LedgerEntryRecord, LineType


class ReimbursementStatus(str, Enum):
    """Request lifecycle: Draft -> Ready -> Posted, never backwards."""
    DRAFT = "Draft"
    READY = "Ready"
    POSTED = "Posted"


# Line types a reimbursement may carry
REIMBURSABLE_LINE_TYPES: tuple[LineType, ...] = (LineType.INVENTORY, LineType.EXPENSE)

# Statuses a caller may set directly; Posted is reached only by posting
SETTABLE_STATUSES: tuple[ReimbursementStatus, ...] = (
    ReimbursementStatus.DRAFT,
    ReimbursementStatus.READY,
)


@dataclass(frozen=True)
class NewReimbursementRequest:
    """Validated input for one request."""
    expense_date: date
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal
    line_type: LineType
    account_id: UUID
    requester: str
    status: ReimbursementStatus = ReimbursementStatus.DRAFT
    item_id: UUID | None = None
    receipt_link: str | None = None


@dataclass(frozen=True)
class ReimbursementRequest:
    """An individually submitted expense claim."""
    id: UUID
    expense_date: date
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal
    line_type: LineType
    account_id: UUID
    status: ReimbursementStatus
    requester: str
    batch_id: str | None = None
    item_id: UUID | None = None
    receipt_link: str | None = None
    posted_at: datetime | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class BatchAssignment:
    """Outcome of tagging requests with a new batch code."""
    batch_id: str
    assigned: int
    requested: int
    skipped_ids: tuple[UUID, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class BatchPostingResult:
    """Outcome of posting a batch."""
    batch_id: str
    posted: int
    transactions: tuple[LedgerEntryRecord, ...]
    left_in_draft: int = 0
