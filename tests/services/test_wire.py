"""Tests for wire encoding of ledger DTOs."""

import json
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from ledger_intake.parser import DraftExpenseItem, ParsedMessage
from ledger_kernel.domain.dtos import LedgerEntryRecord, LineType
from ledger_modules.reimbursement.models import ReimbursementRequest, ReimbursementStatus
from ledger_services.wire import encode_value, to_wire
from tests.conftest import CASH_ACCOUNT_ID, EXPENSE_ACCOUNT_ID

ENTRY_ID = UUID("00000000-0000-4000-c000-000000000001")


class TestEncodeValue:
    @pytest.mark.parametrize("value, name, expected", [
        (Decimal("5"), "quantity", "5.0000"),
        (Decimal("1.23456"), "quantity", "1.2346"),
        (Decimal("25000"), "amount", "25000.00"),
        (Decimal("0.125"), "unit_price", "0.13"),
        (date(2024, 1, 20), "", "2024-01-20"),
        (datetime(2024, 1, 25, 9, tzinfo=timezone.utc), "", "2024-01-25T09:00:00+00:00"),
        (ENTRY_ID, "", str(ENTRY_ID)),
        (LineType.SALES, "", "SALES"),
        (True, "", True),
        (None, "", None),
        (3, "", 3),
    ])
    def test_scalars(self, value, name, expected):
        assert encode_value(value, name) == expected

    def test_str_enum_becomes_plain_string(self):
        encoded = encode_value(ReimbursementStatus.POSTED)
        assert encoded == "Posted"
        assert type(encoded) is str

    def test_containers_keep_field_names(self):
        assert encode_value({"quantity": Decimal("2"), "amount": Decimal("2")}) == {
            "quantity": "2.0000", "amount": "2.00",
        }
        assert encode_value([Decimal("1"), Decimal("2")], "quantity") == ["1.0000", "2.0000"]

    def test_float_refused(self):
        with pytest.raises(TypeError):
            encode_value(1.5, "amount")


class TestToWire:
    def test_ledger_entry(self):
        record = LedgerEntryRecord(
            id=ENTRY_ID,
            transaction_code="PCS000001",
            transaction_date=date(2024, 1, 26),
            description="gas",
            quantity=Decimal("1"),
            unit_price=Decimal("25000"),
            amount=Decimal("25000"),
            line_type=LineType.EXPENSE,
            account_id=EXPENSE_ACCOUNT_ID,
            cash_account_id=CASH_ACCOUNT_ID,
            reimbursement_batch_id="RMB001",
        )
        wire = to_wire(record)
        assert wire["quantity"] == "1.0000"
        assert wire["unit_price"] == "25000.00"
        assert wire["line_type"] == "EXPENSE"
        assert wire["item_id"] is None
        assert wire["reimbursement_batch_id"] == "RMB001"
        json.dumps(wire)

    def test_nested_dtos(self):
        parsed = ParsedMessage(
            expense_date=date(2024, 1, 20),
            items=(DraftExpenseItem("gas 1.5jt", "gas", Decimal("1"), "", Decimal("1500000")),),
            warnings=("skipped: tissue",),
        )
        wire = to_wire(parsed)
        assert wire == {
            "expense_date": "2024-01-20",
            "items": [{
                "raw_text": "gas 1.5jt",
                "description": "gas",
                "quantity": "1.0000",
                "unit": "",
                "total_price": "1500000.00",
            }],
            "warnings": ["skipped: tissue"],
        }

    def test_exclude(self):
        request = ReimbursementRequest(
            id=ENTRY_ID,
            expense_date=date(2024, 1, 20),
            description="gas",
            quantity=Decimal("1"),
            unit_price=Decimal("25000"),
            amount=Decimal("25000"),
            line_type=LineType.EXPENSE,
            account_id=EXPENSE_ACCOUNT_ID,
            status=ReimbursementStatus.DRAFT,
            requester="Budi",
        )
        wire = to_wire(request, exclude=frozenset({"created_at", "posted_at"}))
        assert "created_at" not in wire
        assert wire["status"] == "Draft"

    def test_unencodable_field_rejected(self):
        @dataclass
        class Plain:
            value: object

        with pytest.raises(TypeError):
            to_wire(Plain(value=object()))
