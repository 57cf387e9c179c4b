"""
SQLAlchemy ORM persistence model for payroll entries.

Invariants enforced
-------------------
* ``period_type`` is Daily / Weekly / Monthly (CHECK constraint).
* Posted rows are immutable (``ledger_kernel.db.immutability``).
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.db.types import Money


class PayrollEntryModel(TrackedBase):
    """Maps to ``PayrollEntry`` in ``ledger_modules.payroll.models``."""

    __tablename__ = "payroll_entries"

    __table_args__ = (
        CheckConstraint(
            "period_type IN ('Daily', 'Weekly', 'Monthly')",
            name="ck_payroll_period_type",
        ),
        Index("idx_payroll_date", "payroll_date"),
        Index("idx_payroll_outlet", "outlet_id"),
    )

    payroll_date: Mapped[date] = mapped_column(Date, nullable=False)
    period_type: Mapped[str] = mapped_column(String(10), nullable=False)
    period_ref: Mapped[str | None] = mapped_column(String(50), nullable=True)
    employee_name: Mapped[str] = mapped_column(String(100), nullable=False)
    gross_pay: Mapped[Money] = mapped_column(nullable=False)
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)
    cash_account_id: Mapped[UUID] = mapped_column(nullable=False)
    outlet_id: Mapped[UUID | None]
    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def to_dto(self):
        from ledger_modules.payroll.models import PayrollEntry, PeriodType

        return PayrollEntry(
            id=self.id,
            payroll_date=self.payroll_date,
            period_type=PeriodType(self.period_type),
            employee_name=self.employee_name,
            gross_pay=self.gross_pay,
            payment_method=self.payment_method,
            cash_account_id=self.cash_account_id,
            period_ref=self.period_ref,
            outlet_id=self.outlet_id,
            posted_at=self.posted_at,
            created_at=self.created_at,
        )
