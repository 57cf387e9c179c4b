"""
Payroll Module Service (``ledger_modules.payroll.service``).

Responsibility
--------------
Records payroll entries for a pay date and period, and posts a chosen
set of unposted entries into the cash ledger as ``EXPENSE`` lines.

Architecture position
---------------------
**Modules layer**.  Same posting pattern as the sales module: lock the
unposted rows, write one ledger entry each, stamp ``posted_at``.

Invariants enforced
-------------------
* ``period_type`` is Daily, Weekly or Monthly.
* Only unposted entries may be edited, deleted or posted.
* Posting is all-or-nothing.

Failure modes
-------------
* ``InvalidPeriodTypeError`` -- unknown period type.
* ``PayrollEntryNotFoundError`` / ``RecordNotEditableError``.
* ``NoUnpostedRecordsError`` (400) -- none of the given ids is unposted.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_config import get_active_config
from ledger_config.schema import LedgerConfig
from ledger_kernel.db.types import parse_money
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LedgerEntryDraft, LineType
from ledger_kernel.exceptions import (
    InvalidAmountError,
    InvalidPeriodTypeError,
    NoUnpostedRecordsError,
    PayrollEntryNotFoundError,
    RecordNotEditableError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.selectors.ledger_selector import clamp_page
from ledger_kernel.services.code_sequencer import CodeSequencer
from ledger_kernel.services.ledger_writer import LedgerWriter
from ledger_modules._posting_helpers import (
    optional_date,
    optional_text,
    optional_uuid,
    require_date,
    require_text,
    require_uuid,
    unit_of_work,
)
from ledger_modules.payroll.models import (
    EmployeePay,
    PayrollEntry,
    PayrollPostingResult,
    PeriodType,
)
from ledger_modules.payroll.orm import PayrollEntryModel

logger = get_logger("modules.payroll.service")

_EDITABLE_FIELDS = frozenset({
    "payroll_date",
    "period_type",
    "period_ref",
    "employee_name",
    "gross_pay",
    "payment_method",
    "cash_account_id",
    "outlet_id",
})


def parse_period_type(value: Any) -> PeriodType:
    if isinstance(value, PeriodType):
        return value
    try:
        return PeriodType(str(value).strip().capitalize())
    except ValueError:
        raise InvalidPeriodTypeError(str(value)) from None


def parse_gross_pay(value: Any) -> Decimal:
    pay = parse_money(value, field="gross_pay")
    if pay < 0:
        raise InvalidAmountError(value, field="gross_pay", reason="must not be negative")
    return pay


def parse_employee(raw: Mapping[str, Any] | EmployeePay) -> EmployeePay:
    if isinstance(raw, EmployeePay):
        return raw
    if not isinstance(raw, Mapping):
        raise ValidationError("each employee must be an object", field="employees")
    return EmployeePay(
        employee_name=require_text(raw.get("employee_name"), "employee_name"),
        gross_pay=parse_gross_pay(raw.get("gross_pay")),
        payment_method=require_text(raw.get("payment_method"), "payment_method"),
    )


def describe_payroll_entry(entry: PayrollEntryModel) -> str:
    """Ledger description: ``Gaji <Employee>`` plus `` <PeriodRef>`` when set."""
    if entry.period_ref:
        return f"Gaji {entry.employee_name} {entry.period_ref}"
    return f"Gaji {entry.employee_name}"


class PayrollService:
    """
    Payroll entry operations over one session.

    Contract
    --------
    * Each public method is one unit of work.
    * ``create_entries`` validates every employee line before inserting any.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: LedgerConfig | None = None,
        sequencer: CodeSequencer | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._sequencer = sequencer or CodeSequencer.from_config(session, self._config)
        self._writer = LedgerWriter(session, self._sequencer)

    def create_entries(
        self,
        payroll_date: Any,
        period_type: Any,
        cash_account_id: Any,
        employees: Sequence[Mapping[str, Any] | EmployeePay],
        period_ref: str | None = None,
        outlet_id: Any = None,
    ) -> list[PayrollEntry]:
        """Create one entry per employee sharing date, period and cash account."""
        pay_date = require_date(payroll_date, "payroll_date")
        period = parse_period_type(period_type)
        cash_account = require_uuid(cash_account_id, "cash_account_id")
        ref = optional_text(period_ref, "period_ref")
        outlet = optional_uuid(outlet_id, "outlet_id")
        if not employees or isinstance(employees, (str, Mapping)):
            raise ValidationError("employees is required", field="employees")
        lines = [parse_employee(raw) for raw in employees]

        with unit_of_work(self._session, logger, "payroll_create", payroll_date=pay_date):
            rows = [
                PayrollEntryModel(
                    payroll_date=pay_date,
                    period_type=period.value,
                    period_ref=ref,
                    employee_name=line.employee_name,
                    gross_pay=line.gross_pay,
                    payment_method=line.payment_method,
                    cash_account_id=cash_account,
                    outlet_id=outlet,
                )
                for line in lines
            ]
            self._session.add_all(rows)
            self._session.flush()
            created = [row.to_dto() for row in rows]

        logger.info("payroll_entries_created", extra={
            "payroll_date": pay_date,
            "period_type": period.value,
            "count": len(created),
        })
        return created

    def get_entry(self, entry_id: Any) -> PayrollEntry:
        eid = require_uuid(entry_id, "id")
        row = self._session.get(PayrollEntryModel, eid)
        if row is None:
            raise PayrollEntryNotFoundError(str(eid))
        return row.to_dto()

    def list_entries(
        self,
        *,
        start_date: Any = None,
        end_date: Any = None,
        outlet_id: Any = None,
        period_type: Any = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[PayrollEntry]:
        limit, offset = clamp_page(limit, offset)
        stmt = select(PayrollEntryModel)
        start = optional_date(start_date, "start_date")
        end = optional_date(end_date, "end_date")
        outlet = optional_uuid(outlet_id, "outlet_id")
        if start is not None:
            stmt = stmt.where(PayrollEntryModel.payroll_date >= start)
        if end is not None:
            stmt = stmt.where(PayrollEntryModel.payroll_date <= end)
        if outlet is not None:
            stmt = stmt.where(PayrollEntryModel.outlet_id == outlet)
        if period_type not in (None, ""):
            stmt = stmt.where(PayrollEntryModel.period_type == parse_period_type(period_type).value)
        stmt = stmt.order_by(
            PayrollEntryModel.payroll_date.desc(),
            PayrollEntryModel.created_at.desc(),
            PayrollEntryModel.id,
        ).limit(limit).offset(offset)
        return [row.to_dto() for row in self._session.execute(stmt).scalars()]

    def update_entry(self, entry_id: Any, /, **changes: Any) -> PayrollEntry:
        eid = require_uuid(entry_id, "id")
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"unknown fields: {', '.join(sorted(unknown))}")

        with unit_of_work(self._session, logger, "payroll_update", entry_id=str(eid)):
            row = self._lock_unposted(eid)
            for name, raw in changes.items():
                if name == "payroll_date":
                    value = require_date(raw, name)
                elif name == "period_type":
                    value = parse_period_type(raw).value
                elif name == "period_ref":
                    value = optional_text(raw, name)
                elif name in ("employee_name", "payment_method"):
                    value = require_text(raw, name)
                elif name == "gross_pay":
                    value = parse_gross_pay(raw)
                elif name == "cash_account_id":
                    value = require_uuid(raw, name)
                else:
                    value = optional_uuid(raw, name)
                setattr(row, name, value)
            self._session.flush()
            result = row.to_dto()

        logger.info("payroll_entry_updated", extra={
            "entry_id": str(eid),
            "fields": sorted(changes),
        })
        return result

    def delete_entry(self, entry_id: Any) -> None:
        eid = require_uuid(entry_id, "id")
        with unit_of_work(self._session, logger, "payroll_delete", entry_id=str(eid)):
            row = self._lock_unposted(eid)
            self._session.delete(row)
            self._session.flush()
        logger.info("payroll_entry_deleted", extra={"entry_id": str(eid)})

    def post_payroll(self, ids: Iterable[Any], account_id: Any) -> PayrollPostingResult:
        """
        Post the unposted entries among ``ids`` against an expense account.

        Ids that are unknown or already posted are ignored; if nothing
        remains, ``NoUnpostedRecordsError`` is raised.
        """
        if ids is None or isinstance(ids, (str, bytes)):
            raise ValidationError("ids must be a list of entry ids", field="ids")
        unique: list[UUID] = []
        for raw in ids:
            eid = require_uuid(raw, "ids")
            if eid not in unique:
                unique.append(eid)
        if not unique:
            raise ValidationError("ids is required", field="ids")
        expense_account = require_uuid(account_id, "account_id")

        with LogContext.bind(operation="post_payroll"), \
                unit_of_work(self._session, logger, "payroll_post", requested=len(unique)):
            rows = list(self._session.execute(
                select(PayrollEntryModel)
                .where(
                    PayrollEntryModel.id.in_(unique),
                    PayrollEntryModel.posted_at.is_(None),
                )
                .order_by(PayrollEntryModel.employee_name, PayrollEntryModel.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars())
            if not rows:
                raise NoUnpostedRecordsError("payroll entries")

            posted_at = self._clock.now()
            transactions = []
            for row in rows:
                entry = self._writer.write(LedgerEntryDraft(
                    transaction_date=row.payroll_date,
                    description=describe_payroll_entry(row),
                    quantity=Decimal("1"),
                    unit_price=row.gross_pay,
                    amount=row.gross_pay,
                    line_type=LineType.EXPENSE,
                    account_id=expense_account,
                    cash_account_id=row.cash_account_id,
                    outlet_id=row.outlet_id,
                ))
                transactions.append(entry.to_dto())
                row.posted_at = posted_at
            self._session.flush()

        logger.info("payroll_posted", extra={
            "requested": len(unique),
            "posted_count": len(rows),
            "first_code": transactions[0].transaction_code,
            "last_code": transactions[-1].transaction_code,
        })
        return PayrollPostingResult(
            posted_count=len(rows),
            transactions_created=len(transactions),
            transactions=tuple(transactions),
        )

    def _lock_unposted(self, eid: UUID) -> PayrollEntryModel:
        row = self._session.execute(
            select(PayrollEntryModel)
            .where(PayrollEntryModel.id == eid)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise PayrollEntryNotFoundError(str(eid))
        if row.posted_at is not None:
            raise RecordNotEditableError("PayrollEntry", str(eid), "entry is posted")
        return row
