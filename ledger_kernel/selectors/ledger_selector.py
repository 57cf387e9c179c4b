"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only queries over the cash ledger.
Architecture position: Kernel > Selectors.  MUST NOT mutate data.

Invariants enforced:
    - Selectors never call add/delete/flush/commit.
    - Results are LedgerEntryRecord DTOs, not ORM rows.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import LedgerEntryRecord, LineType
from ledger_kernel.exceptions import TransactionNotFoundError
from ledger_kernel.models.cash_transaction import CashTransaction

DEFAULT_LIMIT = 50
MAX_LIMIT = 500


def clamp_page(limit: int | None, offset: int | None) -> tuple[int, int]:
    """Normalize pagination: default 50, at most 500, offset never negative."""
    if limit is None or limit <= 0:
        limit = DEFAULT_LIMIT
    limit = min(limit, MAX_LIMIT)
    offset = max(offset or 0, 0)
    return limit, offset


class LedgerSelector:
    """Structured read access to CashTransaction rows."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_code(self, transaction_code: str) -> LedgerEntryRecord:
        row = self.session.execute(
            select(CashTransaction).where(CashTransaction.transaction_code == transaction_code)
        ).scalar_one_or_none()
        if row is None:
            raise TransactionNotFoundError(transaction_code)
        return row.to_dto()

    def list_transactions(
        self,
        *,
        start_date: date | None = None,
        end_date: date | None = None,
        line_type: LineType | None = None,
        account_id: UUID | None = None,
        cash_account_id: UUID | None = None,
        outlet_id: UUID | None = None,
        reimbursement_batch_id: str | None = None,
        search: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[LedgerEntryRecord]:
        """Entries matching every given filter, newest date first, then by code."""
        limit, offset = clamp_page(limit, offset)
        stmt = select(CashTransaction)
        if start_date is not None:
            stmt = stmt.where(CashTransaction.transaction_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(CashTransaction.transaction_date <= end_date)
        if line_type is not None:
            stmt = stmt.where(CashTransaction.line_type == LineType(line_type).value)
        if account_id is not None:
            stmt = stmt.where(CashTransaction.account_id == account_id)
        if cash_account_id is not None:
            stmt = stmt.where(CashTransaction.cash_account_id == cash_account_id)
        if outlet_id is not None:
            stmt = stmt.where(CashTransaction.outlet_id == outlet_id)
        if reimbursement_batch_id is not None:
            stmt = stmt.where(CashTransaction.reimbursement_batch_id == reimbursement_batch_id)
        if search:
            pattern = f"%{search.lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(CashTransaction.description).like(pattern),
                    func.lower(CashTransaction.transaction_code).like(pattern),
                )
            )
        stmt = (
            stmt.order_by(
                CashTransaction.transaction_date.desc(),
                CashTransaction.transaction_code.desc(),
            )
            .limit(limit)
            .offset(offset)
        )
        return [row.to_dto() for row in self.session.execute(stmt).scalars()]

    def list_codes(self) -> list[str]:
        """All transaction codes in allocation order."""
        return list(
            self.session.execute(
                select(CashTransaction.transaction_code).order_by(
                    func.length(CashTransaction.transaction_code),
                    CashTransaction.transaction_code,
                )
            ).scalars()
        )

    def count(self) -> int:
        return self.session.execute(select(func.count(CashTransaction.id))).scalar_one()
