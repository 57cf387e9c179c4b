"""
Module: ledger_kernel.models.cash_transaction
Responsibility: ORM persistence for cash ledger entries -- the append-only
    ledger of record.
Architecture position: Kernel > Models.  May import from db/ and domain/dtos.
    MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - transaction_code is UNIQUE.
    - quantity Numeric(12, 4); unit_price and amount Numeric(12, 2).
    - Rows are never updated or deleted (ORM listeners in db/immutability.py).
    - Rows are created only by LedgerWriter.

Failure modes:
    - IntegrityError on duplicate transaction_code.
    - ImmutabilityViolationError on UPDATE/DELETE.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, DateTime, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base
from ledger_kernel.db.types import LongText, Money, Quantity
from ledger_kernel.domain.dtos import LedgerEntryRecord, LineType

_LINE_TYPES = ", ".join(f"'{t.value}'" for t in LineType)


class CashTransaction(Base):
    """
    One immutable, sequentially coded financial movement.

    Guarantees:
        - ``transaction_code`` is unique across the ledger.
        - ``line_type`` is one of LineType.
    """

    __tablename__ = "cash_transactions"

    __table_args__ = (
        CheckConstraint(f"line_type IN ({_LINE_TYPES})", name="ck_cash_transaction_line_type"),
        Index("idx_cash_transaction_date", "transaction_date"),
        Index("idx_cash_transaction_batch", "reimbursement_batch_id"),
        Index("idx_cash_transaction_account", "account_id"),
    )

    transaction_code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    item_id: Mapped[UUID | None]
    description: Mapped[LongText] = mapped_column(nullable=False)
    quantity: Mapped[Quantity] = mapped_column(nullable=False)
    unit_price: Mapped[Money] = mapped_column(nullable=False)
    amount: Mapped[Money] = mapped_column(nullable=False)
    line_type: Mapped[str] = mapped_column(String(20), nullable=False)
    account_id: Mapped[UUID] = mapped_column(nullable=False)
    cash_account_id: Mapped[UUID] = mapped_column(nullable=False)
    outlet_id: Mapped[UUID | None]
    reimbursement_batch_id: Mapped[str | None] = mapped_column(String(30), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<CashTransaction {self.transaction_code} {self.line_type} {self.amount}>"

    def to_dto(self) -> LedgerEntryRecord:
        return LedgerEntryRecord(
            id=self.id,
            transaction_code=self.transaction_code,
            transaction_date=self.transaction_date,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            amount=self.amount,
            line_type=LineType(self.line_type),
            account_id=self.account_id,
            cash_account_id=self.cash_account_id,
            item_id=self.item_id,
            outlet_id=self.outlet_id,
            reimbursement_batch_id=self.reimbursement_batch_id,
            created_at=self.created_at,
        )
