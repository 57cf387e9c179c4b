"""
Tests for ExpenseIntakeService: chat message in, Draft reimbursements out.

Covers:
- Matched items become INVENTORY with the item reference, others EXPENSE
- Amount derived from the stated total, with a warning when rounding moves it
- Skipped lines and skipped items reported as warnings
- All drafts from one message are created together or not at all
- Reply message layout
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_config.schema import LedgerConfig
from ledger_intake.matcher import MatchStatus
from ledger_intake.service import (
    ExpenseIntakeService,
    format_quantity_unit,
    format_reply_date,
    format_rupiah,
    parse_error_reply,
)
from ledger_kernel.domain.dtos import LineType
from ledger_kernel.exceptions import (
    MissingOrInvalidDateError,
    NoItemsParsedError,
    ValidationError,
)
from ledger_modules.reimbursement.models import ReimbursementStatus
from ledger_modules.reimbursement.service import ReimbursementService
from tests.conftest import (
    BAWANG_MERAH_ID,
    BAWANG_PUTIH_ID,
    EXPENSE_ACCOUNT_ID,
    GAS_ID,
    INVENTORY_ACCOUNT_ID,
)

MESSAGE = "20 jan\ncabe merah tanjung 5kg 500k\nbawang 2kg 300rb\ngas 1.5jt"


@pytest.fixture
def intake(session, item_catalog, deterministic_clock, ledger_config) -> ExpenseIntakeService:
    return ExpenseIntakeService(
        session,
        catalog=item_catalog,
        clock=deterministic_clock,
        config=ledger_config,
    )


def _stored(session, ledger_config):
    return ReimbursementService(session, config=ledger_config).list_requests()


class TestReplyFormatting:
    @pytest.mark.parametrize("amount, expected", [
        (Decimal("1500000"), "1.5Jt"),
        (Decimal("2000000"), "2.0Jt"),
        (Decimal("500000"), "500K"),
        (Decimal("25500"), "26K"),
        (Decimal("750"), "750"),
    ])
    def test_rupiah(self, amount, expected):
        assert format_rupiah(amount) == expected

    @pytest.mark.parametrize("quantity, unit, expected", [
        (Decimal("5.0000"), "kg", "5kg"),
        (Decimal("1.5000"), "kg", "1.5kg"),
        (Decimal("1.0000"), "", ""),
    ])
    def test_quantity_unit(self, quantity, unit, expected):
        assert format_quantity_unit(quantity, unit) == expected

    def test_reply_date(self):
        assert format_reply_date(date(2024, 1, 20)) == "20 Jan 2024"

    def test_parse_error_reply(self):
        reply = parse_error_reply(MissingOrInvalidDateError("besok"))
        assert reply.startswith("❌ Format pesan salah:\n")
        assert "Contoh format yang benar:\n20 jan\n" in reply


class TestSubmitMessage:
    def test_creates_one_draft_per_item(self, session, intake, ledger_config):
        result = intake.submit_message(MESSAGE, "Budi")

        assert result.expense_date == date(2024, 1, 20)
        assert result.items_created == 3
        assert result.count(MatchStatus.MATCHED) == 1
        assert result.count(MatchStatus.AMBIGUOUS) == 1
        assert result.count(MatchStatus.UNMATCHED) == 1
        assert result.warnings == ()

        stored = _stored(session, ledger_config)
        assert len(stored) == 3
        assert {r.status for r in stored} == {ReimbursementStatus.DRAFT}
        assert {r.requester for r in stored} == {"Budi"}
        assert {r.expense_date for r in stored} == {date(2024, 1, 20)}

    def test_matched_item_is_inventory(self, intake):
        result = intake.submit_message(MESSAGE, "Budi")
        gas = next(r for r in result.requests if r.description == "gas")
        assert gas.line_type is LineType.INVENTORY
        assert gas.item_id == GAS_ID
        assert gas.amount == Decimal("1500000.00")

    def test_unmatched_and_ambiguous_are_expense(self, intake):
        result = intake.submit_message(MESSAGE, "Budi")
        bawang = next(ln for ln in result.lines if ln.item.description == "bawang")
        cabe = next(ln for ln in result.lines if ln.item.description == "cabe merah tanjung")

        assert bawang.match.status is MatchStatus.AMBIGUOUS
        assert {c.id for c in bawang.match.candidates} == {BAWANG_MERAH_ID, BAWANG_PUTIH_ID}
        assert bawang.request.line_type is LineType.EXPENSE
        assert bawang.request.item_id is None
        assert bawang.request.unit_price == Decimal("150000.00")

        assert cabe.match.status is MatchStatus.UNMATCHED
        assert cabe.request.line_type is LineType.EXPENSE
        assert cabe.request.quantity == Decimal("5.0000")

    def test_default_account(self, intake):
        result = intake.submit_message(MESSAGE, "Budi")
        assert {r.account_id for r in result.requests} == {EXPENSE_ACCOUNT_ID}

    def test_explicit_account(self, intake):
        result = intake.submit_message("20 jan\ngas 25k", "Budi", account_id=str(INVENTORY_ACCOUNT_ID))
        assert result.requests[0].account_id == INVENTORY_ACCOUNT_ID

    def test_no_account_configured(self, session, item_catalog, deterministic_clock):
        intake = ExpenseIntakeService(
            session, catalog=item_catalog, clock=deterministic_clock, config=LedgerConfig(),
        )
        with pytest.raises(ValidationError) as exc:
            intake.submit_message("20 jan\ngas 25k", "Budi")
        assert exc.value.field == "account_id"

    def test_rounding_adjustment_warns(self, intake):
        result = intake.submit_message("20 jan\ntissue 3pcs 100k", "Budi")
        request = result.requests[0]
        assert request.unit_price == Decimal("33333.33")
        assert request.amount == Decimal("99999.99")
        assert result.warnings == ("amount adjusted: tissue 3pcs 100k (100000.00 -> 99999.99)",)

    def test_skipped_items_warn(self, intake):
        result = intake.submit_message("20 jan\ngas 0kg 25k\n25k\ntissue\nsabun 10k", "Budi")
        assert result.items_created == 1
        assert result.warnings == (
            "skipped: tissue",
            "skipped zero quantity: gas 0kg 25k",
            "skipped missing description: 25k",
        )

    def test_every_item_skipped(self, session, intake, ledger_config):
        with pytest.raises(NoItemsParsedError) as exc:
            intake.submit_message("20 jan\ngas 0kg 25k", "Budi")
        assert exc.value.warnings == ["skipped zero quantity: gas 0kg 25k"]
        assert _stored(session, ledger_config) == []

    def test_parse_error_creates_nothing(self, session, intake, ledger_config):
        with pytest.raises(MissingOrInvalidDateError):
            intake.submit_message("gas 25k", "Budi")
        assert _stored(session, ledger_config) == []

    @pytest.mark.parametrize("text, requester, field", [
        ("", "Budi", "message_text"),
        ("   ", "Budi", "message_text"),
        (None, "Budi", "message_text"),
        ("20 jan\ngas 25k", "  ", "requester"),
    ])
    def test_required_inputs(self, intake, text, requester, field):
        with pytest.raises(ValidationError) as exc:
            intake.submit_message(text, requester)
        assert exc.value.field == field

    def test_reply_message(self, intake):
        result = intake.submit_message(MESSAGE, "Budi")
        assert result.reply_message == (
            "✅ Reimburse diterima!\n\n"
            "✔️ Cocok:\n"
            "• Gas LPG → gas (1.5Jt)\n\n"
            "⚠️ Ambigu (perlu review):\n"
            "• bawang 2kg (300K)\n"
            "  Mungkin: Bawang Merah, Bawang Putih\n\n"
            "❌ Tidak cocok:\n"
            "• cabe merah tanjung 5kg (500K)\n\n"
            "Total: 3 item = 2.3Jt\n"
            "Peminta: Budi\n"
            "Tanggal: 20 Jan 2024"
        )

    def test_acceptance_logged(self, intake, captured_logs):
        intake.submit_message(MESSAGE, "Budi")
        entry = next(r for r in captured_logs() if r["message"] == "expense_message_accepted")
        assert entry["items_created"] == 3
        assert entry["items_matched"] == 1
        assert entry["requester"] == "Budi"
