"""
SQLAlchemy ORM persistence models for the Reimbursement module.

Invariants enforced
-------------------
* ``status`` is one of Draft / Ready / Posted (CHECK constraint).
* ``line_type`` is INVENTORY or EXPENSE (CHECK constraint).
* Posted rows are immutable (``ledger_kernel.db.immutability``).
* A batch is not a table: it is the set of rows sharing ``batch_id``.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.db.types import LongText, Money, Quantity


class ReimbursementRequestModel(TrackedBase):
    """
    An expense claim awaiting (or done with) batch posting.

    Maps to the ``ReimbursementRequest`` DTO in
    ``ledger_modules.reimbursement.models``.
    """

    __tablename__ = "reimbursement_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('Draft', 'Ready', 'Posted')",
            name="ck_reimbursement_status",
        ),
        CheckConstraint(
            "line_type IN ('INVENTORY', 'EXPENSE')",
            name="ck_reimbursement_line_type",
        ),
        Index("idx_reimbursement_batch", "batch_id"),
        Index("idx_reimbursement_status", "status"),
        Index("idx_reimbursement_expense_date", "expense_date"),
        Index("idx_reimbursement_requester", "requester"),
    )

    batch_id: Mapped[str | None] = mapped_column(String(30), nullable=True)
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    item_id: Mapped[UUID | None]
    description: Mapped[LongText] = mapped_column(nullable=False)
    quantity: Mapped[Quantity] = mapped_column(nullable=False)
    unit_price: Mapped[Money] = mapped_column(nullable=False)
    amount: Mapped[Money] = mapped_column(nullable=False)
    line_type: Mapped[str] = mapped_column(String(20), nullable=False)
    account_id: Mapped[UUID] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(10), nullable=False, default="Draft")
    requester: Mapped[str] = mapped_column(String(100), nullable=False)
    receipt_link: Mapped[str | None] = mapped_column(String(500), nullable=True)
    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def to_dto(self):
        from ledger_kernel.domain.dtos import LineType
        from ledger_modules.reimbursement.models import (
            ReimbursementRequest,
            ReimbursementStatus,
        )

        return ReimbursementRequest(
            id=self.id,
            expense_date=self.expense_date,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            amount=self.amount,
            line_type=LineType(self.line_type),
            account_id=self.account_id,
            status=ReimbursementStatus(self.status),
            requester=self.requester,
            batch_id=self.batch_id,
            item_id=self.item_id,
            receipt_link=self.receipt_link,
            posted_at=self.posted_at,
            created_at=self.created_at,
        )

    @classmethod
    def from_new(cls, new) -> "ReimbursementRequestModel":
        return cls(
            expense_date=new.expense_date,
            description=new.description,
            quantity=new.quantity,
            unit_price=new.unit_price,
            amount=new.amount,
            line_type=new.line_type.value,
            account_id=new.account_id,
            status=new.status.value,
            requester=new.requester,
            item_id=new.item_id,
            receipt_link=new.receipt_link,
        )
