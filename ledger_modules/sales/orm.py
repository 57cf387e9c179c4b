"""
SQLAlchemy ORM persistence model for daily sales summaries.

Invariants enforced
-------------------
* UNIQUE (sales_date, channel, payment_method, outlet_id).
* ``source`` is ``pos`` or ``manual`` (CHECK constraint).
* ``net_sales = gross_sales - discount_amount`` is checked by the service.
* Posted rows are immutable (``ledger_kernel.db.immutability``).
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.db.types import Money


class SalesDailySummaryModel(TrackedBase):
    """Maps to ``SalesDailySummary`` in ``ledger_modules.sales.models``."""

    __tablename__ = "sales_daily_summaries"

    __table_args__ = (
        UniqueConstraint(
            "sales_date", "channel", "payment_method", "outlet_id",
            name="uq_sales_summary_key",
        ),
        CheckConstraint("source IN ('pos', 'manual')", name="ck_sales_summary_source"),
        Index("idx_sales_summary_date", "sales_date"),
        Index("idx_sales_summary_unposted", "sales_date", "posted_at"),
    )

    sales_date: Mapped[date] = mapped_column(Date, nullable=False)
    channel: Mapped[str] = mapped_column(String(50), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)
    gross_sales: Mapped[Money] = mapped_column(nullable=False)
    discount_amount: Mapped[Money] = mapped_column(nullable=False)
    net_sales: Mapped[Money] = mapped_column(nullable=False)
    cash_account_id: Mapped[UUID] = mapped_column(nullable=False)
    outlet_id: Mapped[UUID | None]
    source: Mapped[str] = mapped_column(String(10), nullable=False, default="manual")
    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def to_dto(self):
        from ledger_modules.sales.models import SalesDailySummary, SalesSource

        return SalesDailySummary(
            id=self.id,
            sales_date=self.sales_date,
            channel=self.channel,
            payment_method=self.payment_method,
            gross_sales=self.gross_sales,
            discount_amount=self.discount_amount,
            net_sales=self.net_sales,
            cash_account_id=self.cash_account_id,
            source=SalesSource(self.source),
            outlet_id=self.outlet_id,
            posted_at=self.posted_at,
            created_at=self.created_at,
        )

    def key(self):
        from ledger_modules.sales.models import SalesSummaryKey

        return SalesSummaryKey(self.sales_date, self.channel, self.payment_method, self.outlet_id)
