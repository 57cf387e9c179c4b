"""
Sales Module Service (``ledger_modules.sales.service``).

Responsibility
--------------
Maintains daily sales summaries from two entry paths (manual entry and
POS sync) and posts unposted summaries into the cash ledger.

Architecture position
---------------------
**Modules layer**.  ``SalesService`` is the sole writer of
``sales_daily_summaries`` and the only caller of ``LedgerWriter`` for
``SALES`` entries.  POS events arrive through a ``PosSalesSource``.

Invariants enforced
-------------------
* One summary per (sales date, channel, payment method, outlet).
* ``net_sales == gross_sales - discount_amount`` for manual rows; POS rows
  carry no discount.
* Only ``manual`` rows without ``posted_at`` are user-editable.
* A POS sync either writes every aggregated group or nothing: a payment
  method without a cash account mapping aborts the whole sync.
* Posting is all-or-nothing; each posted summary yields one ledger entry.

Failure modes
-------------
* ``DuplicateSalesSummaryError`` (409) -- natural key already taken.
* ``RecordNotEditableError`` -- edit of a POS-sourced or posted row.
* ``MissingAccountMappingError`` (400) -- sync with unmapped methods.
* ``NoUnpostedRecordsError`` (400) -- nothing to post.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_config import get_active_config
from ledger_config.schema import LedgerConfig
from ledger_kernel.db.types import ZERO, format_money, parse_money
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LedgerEntryDraft, LineType
from ledger_kernel.exceptions import (
    DuplicateSalesSummaryError,
    InvalidAmountError,
    MissingAccountMappingError,
    NoUnpostedRecordsError,
    RecordNotEditableError,
    SalesSummaryNotFoundError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.selectors.ledger_selector import clamp_page
from ledger_kernel.services.code_sequencer import CodeSequencer
from ledger_kernel.services.ledger_writer import LedgerWriter
from ledger_modules._posting_helpers import (
    optional_date,
    optional_uuid,
    require_date,
    require_text,
    require_uuid,
    unit_of_work,
)
from ledger_modules.sales.models import (
    SalesDailySummary,
    SalesPostingResult,
    SalesSource,
    SalesSummaryKey,
    SalesSyncResult,
)
from ledger_modules.sales.orm import SalesDailySummaryModel
from ledger_modules.sales.pos_source import (
    PosSalesSource,
    StaticPosSalesSource,
    aggregate_pos_sales,
)

logger = get_logger("modules.sales.service")

_EDITABLE_FIELDS = frozenset({
    "channel",
    "payment_method",
    "gross_sales",
    "discount_amount",
    "net_sales",
    "cash_account_id",
})


def check_sales_amounts(gross: Decimal, discount: Decimal, net: Decimal) -> None:
    if gross < 0:
        raise InvalidAmountError(gross, field="gross_sales", reason="must not be negative")
    if discount < 0:
        raise InvalidAmountError(discount, field="discount_amount", reason="must not be negative")
    if discount > gross:
        raise InvalidAmountError(discount, field="discount_amount", reason="exceeds gross_sales")
    if net != gross - discount:
        raise ValidationError(
            f"net_sales {format_money(net)} must equal gross_sales - discount_amount "
            f"({format_money(gross - discount)})",
            field="net_sales",
        )


def describe_sales_entry(summary: SalesDailySummaryModel) -> str:
    """Ledger description: ``<Channel> <PaymentMethod> <YYYY-MM-DD>``."""
    return f"{summary.channel} {summary.payment_method} {summary.sales_date.isoformat()}"


class SalesService:
    """
    Daily sales summary operations over one session.

    Contract
    --------
    * Each public method is one unit of work.
    * ``sync_pos`` validates every account mapping before touching a row.

    Non-goals
    ---------
    * Does NOT read POS tables directly; events come from the injected
      ``PosSalesSource``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: LedgerConfig | None = None,
        sequencer: CodeSequencer | None = None,
        pos_source: PosSalesSource | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._sequencer = sequencer or CodeSequencer.from_config(session, self._config)
        self._writer = LedgerWriter(session, self._sequencer)
        self._pos_source = pos_source or StaticPosSalesSource()

    # =========================================================================
    # Manual summaries
    # =========================================================================

    def create_summary(self, **fields: Any) -> SalesDailySummary:
        """Create a ``manual`` summary.  Discount defaults to zero."""
        sales_date = require_date(fields.get("sales_date"), "sales_date")
        channel = require_text(fields.get("channel"), "channel")
        payment_method = require_text(fields.get("payment_method"), "payment_method")
        gross = parse_money(fields.get("gross_sales"), field="gross_sales")
        raw_discount = fields.get("discount_amount")
        discount = ZERO if raw_discount in (None, "") else parse_money(raw_discount, field="discount_amount")
        net = parse_money(fields.get("net_sales"), field="net_sales")
        check_sales_amounts(gross, discount, net)
        cash_account_id = require_uuid(fields.get("cash_account_id"), "cash_account_id")
        outlet_id = optional_uuid(fields.get("outlet_id"), "outlet_id")
        key = SalesSummaryKey(sales_date, channel, payment_method, outlet_id)

        with unit_of_work(self._session, logger, "sales_summary_create", sales_date=sales_date):
            if self._find_by_key(key) is not None:
                raise self._duplicate(key)
            row = SalesDailySummaryModel(
                sales_date=sales_date,
                channel=channel,
                payment_method=payment_method,
                gross_sales=gross,
                discount_amount=discount,
                net_sales=net,
                cash_account_id=cash_account_id,
                outlet_id=outlet_id,
                source=SalesSource.MANUAL.value,
            )
            self._session.add(row)
            self._flush_or_duplicate(key)
            result = row.to_dto()

        logger.info("sales_summary_created", extra={
            "summary_id": str(result.id),
            "sales_date": result.sales_date,
            "channel": result.channel,
            "payment_method": result.payment_method,
            "net_sales": str(result.net_sales),
        })
        return result

    def get_summary(self, summary_id: Any) -> SalesDailySummary:
        sid = require_uuid(summary_id, "id")
        row = self._session.get(SalesDailySummaryModel, sid)
        if row is None:
            raise SalesSummaryNotFoundError(str(sid))
        return row.to_dto()

    def list_summaries(
        self,
        *,
        start_date: Any = None,
        end_date: Any = None,
        channel: str | None = None,
        outlet_id: Any = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[SalesDailySummary]:
        limit, offset = clamp_page(limit, offset)
        stmt = select(SalesDailySummaryModel)
        start = optional_date(start_date, "start_date")
        end = optional_date(end_date, "end_date")
        outlet = optional_uuid(outlet_id, "outlet_id")
        if start is not None:
            stmt = stmt.where(SalesDailySummaryModel.sales_date >= start)
        if end is not None:
            stmt = stmt.where(SalesDailySummaryModel.sales_date <= end)
        if channel:
            stmt = stmt.where(SalesDailySummaryModel.channel == channel)
        if outlet is not None:
            stmt = stmt.where(SalesDailySummaryModel.outlet_id == outlet)
        stmt = stmt.order_by(
            SalesDailySummaryModel.sales_date.desc(),
            SalesDailySummaryModel.channel,
            SalesDailySummaryModel.payment_method,
        ).limit(limit).offset(offset)
        return [row.to_dto() for row in self._session.execute(stmt).scalars()]

    def update_summary(self, summary_id: Any, /, **changes: Any) -> SalesDailySummary:
        """Partial update of a manual, unposted summary."""
        sid = require_uuid(summary_id, "id")
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"unknown fields: {', '.join(sorted(unknown))}")

        with unit_of_work(self._session, logger, "sales_summary_update", summary_id=str(sid)):
            row = self._lock_editable(sid)
            values: dict[str, Any] = {}
            for name in ("channel", "payment_method"):
                if name in changes:
                    values[name] = require_text(changes[name], name)
            for name in ("gross_sales", "net_sales"):
                if name in changes:
                    values[name] = parse_money(changes[name], field=name)
            if "discount_amount" in changes:
                raw = changes["discount_amount"]
                values["discount_amount"] = ZERO if raw in (None, "") else parse_money(raw, field="discount_amount")
            if "cash_account_id" in changes:
                values["cash_account_id"] = require_uuid(changes["cash_account_id"], "cash_account_id")

            check_sales_amounts(
                values.get("gross_sales", row.gross_sales),
                values.get("discount_amount", row.discount_amount),
                values.get("net_sales", row.net_sales),
            )
            key = SalesSummaryKey(
                row.sales_date,
                values.get("channel", row.channel),
                values.get("payment_method", row.payment_method),
                row.outlet_id,
            )
            if key != row.key():
                other = self._find_by_key(key)
                if other is not None and other.id != row.id:
                    raise self._duplicate(key)

            for name, value in values.items():
                setattr(row, name, value)
            self._flush_or_duplicate(key)
            result = row.to_dto()

        logger.info("sales_summary_updated", extra={
            "summary_id": str(sid),
            "fields": sorted(changes),
        })
        return result

    def delete_summary(self, summary_id: Any) -> None:
        sid = require_uuid(summary_id, "id")
        with unit_of_work(self._session, logger, "sales_summary_delete", summary_id=str(sid)):
            row = self._lock_editable(sid)
            self._session.delete(row)
            self._session.flush()
        logger.info("sales_summary_deleted", extra={"summary_id": str(sid)})

    # =========================================================================
    # POS sync
    # =========================================================================

    def sync_pos(
        self,
        start_date: Any,
        end_date: Any,
        outlet_id: Any,
        payment_method_accounts: Mapping[str, Any],
    ) -> SalesSyncResult:
        """
        Aggregate POS payments for an outlet and upsert ``pos`` summaries.

        Unposted summaries for the same key are overwritten; posted ones
        are left alone and reported in ``skipped_posted``.
        """
        start = require_date(start_date, "start_date")
        end = require_date(end_date, "end_date")
        if end < start:
            raise ValidationError("end_date must not be before start_date", field="end_date")
        outlet = require_uuid(outlet_id, "outlet_id")
        if not isinstance(payment_method_accounts, Mapping) or not payment_method_accounts:
            raise ValidationError("payment_method_accounts is required", field="payment_method_accounts")
        accounts = {
            str(method): require_uuid(account, f"payment_method_accounts.{method}")
            for method, account in payment_method_accounts.items()
        }

        aggregates = aggregate_pos_sales(self._pos_source.events(outlet, start, end))
        missing = sorted({a.payment_method for a in aggregates} - set(accounts))
        if missing:
            logger.warning("sales_sync_missing_account_mapping", extra={
                "outlet_id": str(outlet),
                "payment_methods": missing,
            })
            raise MissingAccountMappingError(missing)

        summaries: list[SalesDailySummary] = []
        skipped: list[SalesSummaryKey] = []
        with unit_of_work(self._session, logger, "sales_sync", outlet_id=str(outlet)):
            for agg in aggregates:
                key = SalesSummaryKey(
                    agg.sales_date,
                    self._config.channel_name(agg.order_type),
                    agg.payment_method,
                    outlet,
                )
                row = self._upsert_pos(key, agg.total_amount, accounts[agg.payment_method])
                if row is None:
                    skipped.append(key)
                else:
                    summaries.append(row.to_dto())

        logger.info("sales_sync_completed", extra={
            "outlet_id": str(outlet),
            "start_date": start,
            "end_date": end,
            "synced_count": len(summaries),
            "skipped_posted": len(skipped),
        })
        return SalesSyncResult(
            synced_count=len(summaries),
            summaries=tuple(summaries),
            skipped_posted=tuple(skipped),
        )

    # =========================================================================
    # Posting
    # =========================================================================

    def post_sales(self, sales_date: Any, account_id: Any, outlet_id: Any = None) -> SalesPostingResult:
        """
        Post every unposted summary for a date (and outlet, when given).

        Each summary becomes one ``SALES`` entry for its net sales against
        the revenue ``account_id`` and the summary's own cash account.
        """
        day = require_date(sales_date, "sales_date")
        revenue_account = require_uuid(account_id, "account_id")
        outlet = optional_uuid(outlet_id, "outlet_id")

        with LogContext.bind(operation="post_sales"), \
                unit_of_work(self._session, logger, "sales_post", sales_date=day):
            stmt = (
                select(SalesDailySummaryModel)
                .where(
                    SalesDailySummaryModel.sales_date == day,
                    SalesDailySummaryModel.posted_at.is_(None),
                )
                .order_by(SalesDailySummaryModel.channel, SalesDailySummaryModel.payment_method)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            if outlet is not None:
                stmt = stmt.where(SalesDailySummaryModel.outlet_id == outlet)
            rows = list(self._session.execute(stmt).scalars())
            if not rows:
                raise NoUnpostedRecordsError("sales summaries", detail=day.isoformat())

            posted_at = self._clock.now()
            transactions = []
            for row in rows:
                entry = self._writer.write(LedgerEntryDraft(
                    transaction_date=row.sales_date,
                    description=describe_sales_entry(row),
                    quantity=Decimal("1"),
                    unit_price=row.net_sales,
                    amount=row.net_sales,
                    line_type=LineType.SALES,
                    account_id=revenue_account,
                    cash_account_id=row.cash_account_id,
                    outlet_id=row.outlet_id,
                ))
                transactions.append(entry.to_dto())
                row.posted_at = posted_at
            self._session.flush()

        logger.info("sales_posted", extra={
            "sales_date": day,
            "outlet_id": str(outlet) if outlet else None,
            "posted_count": len(rows),
            "first_code": transactions[0].transaction_code,
            "last_code": transactions[-1].transaction_code,
        })
        return SalesPostingResult(
            posted_count=len(rows),
            transactions_created=len(transactions),
            transactions=tuple(transactions),
        )

    # =========================================================================
    # Internal
    # =========================================================================

    def _find_by_key(self, key: SalesSummaryKey, lock: bool = False) -> SalesDailySummaryModel | None:
        outlet_clause = (
            SalesDailySummaryModel.outlet_id.is_(None)
            if key.outlet_id is None
            else SalesDailySummaryModel.outlet_id == key.outlet_id
        )
        stmt = select(SalesDailySummaryModel).where(
            SalesDailySummaryModel.sales_date == key.sales_date,
            SalesDailySummaryModel.channel == key.channel,
            SalesDailySummaryModel.payment_method == key.payment_method,
            outlet_clause,
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def _upsert_pos(
        self, key: SalesSummaryKey, gross: Decimal, cash_account_id: UUID,
    ) -> SalesDailySummaryModel | None:
        """Insert or refresh a ``pos`` row; None when the existing row is posted."""
        row = self._find_by_key(key, lock=True)
        if row is None:
            try:
                with self._session.begin_nested():
                    row = SalesDailySummaryModel(
                        sales_date=key.sales_date,
                        channel=key.channel,
                        payment_method=key.payment_method,
                        gross_sales=gross,
                        discount_amount=ZERO,
                        net_sales=gross,
                        cash_account_id=cash_account_id,
                        outlet_id=key.outlet_id,
                        source=SalesSource.POS.value,
                    )
                    self._session.add(row)
                    self._session.flush()
                return row
            except IntegrityError:
                # Lost an insert race; fall through and update the winner's row
                row = self._find_by_key(key, lock=True)
                if row is None:
                    raise

        if row.posted_at is not None:
            return None
        row.gross_sales = gross
        row.discount_amount = ZERO
        row.net_sales = gross
        row.cash_account_id = cash_account_id
        row.source = SalesSource.POS.value
        self._session.flush()
        return row

    def _lock_editable(self, sid: UUID) -> SalesDailySummaryModel:
        row = self._session.execute(
            select(SalesDailySummaryModel)
            .where(SalesDailySummaryModel.id == sid)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise SalesSummaryNotFoundError(str(sid))
        if row.source != SalesSource.MANUAL.value:
            raise RecordNotEditableError("SalesDailySummary", str(sid), "summary is POS-sourced")
        if row.posted_at is not None:
            raise RecordNotEditableError("SalesDailySummary", str(sid), "summary is posted")
        return row

    def _flush_or_duplicate(self, key: SalesSummaryKey) -> None:
        try:
            self._session.flush()
        except IntegrityError:
            raise self._duplicate(key) from None

    @staticmethod
    def _duplicate(key: SalesSummaryKey) -> DuplicateSalesSummaryError:
        return DuplicateSalesSummaryError(
            key.sales_date.isoformat(),
            key.channel,
            key.payment_method,
            str(key.outlet_id) if key.outlet_id else None,
        )
