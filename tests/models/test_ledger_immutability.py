"""
ORM-level immutability of posted records.

Posted reimbursement requests, posted sales summaries, posted payroll
entries and every cash transaction must refuse UPDATE and DELETE through
the ORM, while the transition INTO the posted state stays allowed.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from ledger_kernel.domain.dtos import LedgerEntryDraft, LineType
from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.services.ledger_writer import LedgerWriter
from ledger_modules.payroll.orm import PayrollEntryModel
from ledger_modules.reimbursement.orm import ReimbursementRequestModel
from ledger_modules.sales.orm import SalesDailySummaryModel
from tests.conftest import CASH_ACCOUNT_ID, EXPENSE_ACCOUNT_ID

POSTED_AT = datetime(2024, 1, 25, 9, 0, tzinfo=timezone.utc)


def _request(status: str) -> ReimbursementRequestModel:
    return ReimbursementRequestModel(
        expense_date=date(2024, 1, 20),
        description="gas",
        quantity=Decimal("1"),
        unit_price=Decimal("25000"),
        amount=Decimal("25000"),
        line_type="EXPENSE",
        account_id=EXPENSE_ACCOUNT_ID,
        status=status,
        requester="Budi",
    )


def _summary(posted_at=None) -> SalesDailySummaryModel:
    return SalesDailySummaryModel(
        sales_date=date(2024, 1, 20),
        channel="Dine In",
        payment_method="CASH",
        gross_sales=Decimal("1000000"),
        discount_amount=Decimal("0"),
        net_sales=Decimal("1000000"),
        cash_account_id=CASH_ACCOUNT_ID,
        source="manual",
        posted_at=posted_at,
    )


def _payroll(posted_at=None) -> PayrollEntryModel:
    return PayrollEntryModel(
        payroll_date=date(2024, 1, 31),
        period_type="Monthly",
        employee_name="Sari",
        gross_pay=Decimal("3000000"),
        payment_method="TRANSFER",
        cash_account_id=CASH_ACCOUNT_ID,
        posted_at=posted_at,
    )


def _persist(session, row):
    session.add(row)
    session.commit()
    return row


class TestCashTransactionImmutability:
    @pytest.fixture
    def entry(self, session, sequencer):
        row = LedgerWriter(session, sequencer).write(LedgerEntryDraft(
            transaction_date=date(2024, 1, 20),
            description="gas",
            quantity=Decimal("1"),
            unit_price=Decimal("25000"),
            amount=Decimal("25000"),
            line_type=LineType.EXPENSE,
            account_id=EXPENSE_ACCOUNT_ID,
            cash_account_id=CASH_ACCOUNT_ID,
        ))
        session.commit()
        return row

    def test_update_blocked(self, session, entry):
        entry.description = "edited"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_delete_blocked(self, session, entry):
        session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


class TestReimbursementImmutability:
    def test_draft_and_ready_are_mutable(self, session):
        row = _persist(session, _request("Draft"))
        row.status = "Ready"
        session.commit()
        row.description = "gas 12kg"
        session.commit()
        assert row.description == "gas 12kg"

    def test_transition_into_posted_allowed(self, session):
        row = _persist(session, _request("Ready"))
        row.status = "Posted"
        row.posted_at = POSTED_AT
        session.commit()

    def test_posted_update_blocked(self, session):
        row = _persist(session, _request("Posted"))
        row.amount = Decimal("1")
        with pytest.raises(ImmutabilityViolationError) as exc:
            session.flush()
        assert exc.value.entity_type == "ReimbursementRequest"
        session.rollback()

    def test_posted_delete_blocked(self, session):
        row = _persist(session, _request("Posted"))
        session.delete(row)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_violation_logged(self, session, captured_logs):
        row = _persist(session, _request("Posted"))
        row.description = "tampered"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()
        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked and blocked[0]["operation"] == "UPDATE"


class TestPostedAtImmutability:
    @pytest.mark.parametrize("factory", [_summary, _payroll])
    def test_unposted_row_mutable_and_postable(self, session, factory):
        row = _persist(session, factory())
        row.cash_account_id = EXPENSE_ACCOUNT_ID
        session.commit()
        row.posted_at = POSTED_AT
        session.commit()

    @pytest.mark.parametrize("factory", [_summary, _payroll])
    def test_posted_update_blocked(self, session, factory):
        row = _persist(session, factory(posted_at=POSTED_AT))
        row.cash_account_id = EXPENSE_ACCOUNT_ID
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    @pytest.mark.parametrize("factory", [_summary, _payroll])
    def test_posted_delete_blocked(self, session, factory):
        row = _persist(session, factory(posted_at=POSTED_AT))
        session.delete(row)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()
