"""
Tests for ReimbursementService.

Covers:
- Create, update and delete while a request is mutable
- Draft -> Ready only; Posted is reachable only by posting a batch
- Batch assignment is best-effort per id
- Batch posting: Ready members only, all-or-nothing, at most once
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import LineType
from ledger_kernel.exceptions import (
    AmountMismatchError,
    BatchAlreadyPostedError,
    BatchNotFoundError,
    InvalidAmountError,
    InvalidLineTypeError,
    InvalidStatusTransitionError,
    NoReadyRequestsError,
    RecordNotEditableError,
    ReimbursementNotFoundError,
    ValidationError,
)
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_modules.reimbursement.models import ReimbursementStatus
from ledger_modules.reimbursement.service import ReimbursementService
from tests.conftest import (
    CABE_MERAH_ID,
    CASH_ACCOUNT_ID,
    EXPENSE_ACCOUNT_ID,
    INVENTORY_ACCOUNT_ID,
)

PAYMENT_DATE = date(2024, 1, 26)


@pytest.fixture
def reimbursements(session, deterministic_clock, ledger_config) -> ReimbursementService:
    return ReimbursementService(session, clock=deterministic_clock, config=ledger_config)


def create(service: ReimbursementService, **overrides):
    fields = dict(
        expense_date="2024-01-20",
        description="gas",
        quantity="1",
        unit_price="25000",
        amount="25000",
        line_type="EXPENSE",
        account_id=str(EXPENSE_ACCOUNT_ID),
        requester="Budi",
    )
    fields.update(overrides)
    return service.create_request(**fields)


class TestCreateRequest:
    def test_defaults_to_draft(self, reimbursements):
        request = create(reimbursements)
        assert request.status is ReimbursementStatus.DRAFT
        assert request.amount == Decimal("25000.00")
        assert request.batch_id is None
        assert request.posted_at is None
        assert reimbursements.get_request(request.id).id == request.id

    def test_inventory_with_item(self, reimbursements):
        request = create(
            reimbursements,
            description="cabe merah",
            quantity="5",
            unit_price="100000",
            amount="500000",
            line_type="inventory",
            account_id=str(INVENTORY_ACCOUNT_ID),
            item_id=str(CABE_MERAH_ID),
            receipt_link="https://example.com/r/1.jpg",
        )
        assert request.line_type is LineType.INVENTORY
        assert request.item_id == CABE_MERAH_ID
        assert request.quantity == Decimal("5.0000")

    def test_created_ready(self, reimbursements):
        assert create(reimbursements, status="Ready").status is ReimbursementStatus.READY

    def test_amount_mismatch(self, reimbursements):
        with pytest.raises(AmountMismatchError):
            create(reimbursements, amount="24000")
        assert reimbursements.list_requests() == []

    @pytest.mark.parametrize("line_type", ["SALES", "bogus"])
    def test_line_type_restricted(self, reimbursements, line_type):
        with pytest.raises(InvalidLineTypeError):
            create(reimbursements, line_type=line_type)

    def test_cannot_create_posted(self, reimbursements):
        with pytest.raises(ValidationError) as exc:
            create(reimbursements, status="Posted")
        assert exc.value.field == "status"

    @pytest.mark.parametrize("field, value", [
        ("quantity", 1.0),
        ("quantity", "0"),
        ("unit_price", "abc"),
    ])
    def test_bad_numbers(self, reimbursements, field, value):
        with pytest.raises(InvalidAmountError):
            create(reimbursements, **{field: value})

    @pytest.mark.parametrize("field", ["expense_date", "description", "account_id", "requester"])
    def test_required_fields(self, reimbursements, field):
        with pytest.raises(ValidationError) as exc:
            create(reimbursements, **{field: None})
        assert exc.value.field == field

    def test_unknown_id(self, reimbursements):
        with pytest.raises(ReimbursementNotFoundError):
            reimbursements.get_request(uuid4())


class TestListRequests:
    def test_filters(self, reimbursements):
        create(reimbursements, requester="Budi")
        create(reimbursements, requester="Sari", status="Ready", expense_date="2024-01-22")
        create(reimbursements, requester="Sari", expense_date="2024-01-18")

        assert len(reimbursements.list_requests()) == 3
        assert len(reimbursements.list_requests(requester="Sari")) == 2
        assert len(reimbursements.list_requests(status="ready")) == 1
        assert len(reimbursements.list_requests(start_date="2024-01-19")) == 2
        dates = [r.expense_date for r in reimbursements.list_requests()]
        assert dates == sorted(dates, reverse=True)

    def test_invalid_status_filter(self, reimbursements):
        with pytest.raises(ValidationError):
            reimbursements.list_requests(status="Archived")


class TestUpdateRequest:
    def test_partial_update(self, reimbursements):
        request = create(reimbursements)
        updated = reimbursements.update_request(request.id, description="gas 12kg", receipt_link="r.jpg")
        assert updated.description == "gas 12kg"
        assert updated.receipt_link == "r.jpg"
        assert updated.amount == request.amount

    def test_quantity_change_needs_consistent_amount(self, reimbursements):
        request = create(reimbursements)
        with pytest.raises(AmountMismatchError):
            reimbursements.update_request(request.id, quantity="2")
        updated = reimbursements.update_request(request.id, quantity="2", amount="50000")
        assert updated.amount == Decimal("50000.00")

    def test_draft_to_ready(self, reimbursements):
        request = create(reimbursements)
        updated = reimbursements.update_request(request.id, status="Ready")
        assert updated.status is ReimbursementStatus.READY

    def test_ready_back_to_draft_rejected(self, reimbursements):
        request = create(reimbursements, status="Ready")
        with pytest.raises(InvalidStatusTransitionError):
            reimbursements.update_request(request.id, status="Draft")
        assert reimbursements.get_request(request.id).status is ReimbursementStatus.READY

    def test_unknown_field(self, reimbursements):
        request = create(reimbursements)
        with pytest.raises(ValidationError):
            reimbursements.update_request(request.id, batch_id="RMB009")

    def test_id_in_changes_is_an_unknown_field(self, reimbursements):
        request = create(reimbursements)
        with pytest.raises(ValidationError):
            reimbursements.update_request(request.id, request_id=str(request.id), description="x")
        assert reimbursements.get_request(request.id).description == "gas"

    def test_posted_request_not_editable(self, reimbursements):
        request = create(reimbursements, status="Ready")
        batch = reimbursements.assign_batch([request.id])
        reimbursements.post_batch(batch.batch_id, PAYMENT_DATE, CASH_ACCOUNT_ID)

        with pytest.raises(RecordNotEditableError):
            reimbursements.update_request(request.id, description="edited")

    def test_unknown_request(self, reimbursements):
        with pytest.raises(ReimbursementNotFoundError):
            reimbursements.update_request(uuid4(), description="x")


class TestDeleteRequest:
    def test_draft_deleted(self, reimbursements):
        request = create(reimbursements)
        reimbursements.delete_request(request.id)
        with pytest.raises(ReimbursementNotFoundError):
            reimbursements.get_request(request.id)

    def test_ready_kept(self, reimbursements):
        request = create(reimbursements, status="Ready")
        with pytest.raises(RecordNotEditableError):
            reimbursements.delete_request(request.id)
        assert reimbursements.get_request(request.id).status is ReimbursementStatus.READY

    def test_unknown(self, reimbursements):
        with pytest.raises(ReimbursementNotFoundError):
            reimbursements.delete_request(str(uuid4()))


class TestAssignBatch:
    def test_assigns_new_code(self, reimbursements):
        a = create(reimbursements)
        b = create(reimbursements, status="Ready")
        result = reimbursements.assign_batch([a.id, str(b.id), a.id])

        assert result.batch_id == "RMB001"
        assert result.assigned == 2
        assert result.requested == 2
        assert result.skipped_ids == ()
        assert {r.id for r in reimbursements.list_requests(batch_id="RMB001")} == {a.id, b.id}
        # Status is untouched
        assert reimbursements.get_request(a.id).status is ReimbursementStatus.DRAFT

    def test_missing_ids_skipped(self, reimbursements):
        a = create(reimbursements)
        missing = uuid4()
        result = reimbursements.assign_batch([a.id, missing])
        assert result.assigned == 1
        assert result.skipped_ids == (missing,)

    def test_reassignment_moves_request(self, reimbursements):
        a = create(reimbursements)
        reimbursements.assign_batch([a.id])
        second = reimbursements.assign_batch([a.id])
        assert second.batch_id == "RMB002"
        assert reimbursements.get_request(a.id).batch_id == "RMB002"

    def test_posted_requests_skipped(self, reimbursements):
        a = create(reimbursements, status="Ready")
        first = reimbursements.assign_batch([a.id])
        reimbursements.post_batch(first.batch_id, PAYMENT_DATE, CASH_ACCOUNT_ID)

        result = reimbursements.assign_batch([a.id])
        assert result.assigned == 0
        assert result.skipped_ids == (a.id,)
        assert reimbursements.get_request(a.id).batch_id == first.batch_id

    @pytest.mark.parametrize("ids", [[], None, "abc"])
    def test_ids_required(self, reimbursements, ids):
        with pytest.raises(ValidationError):
            reimbursements.assign_batch(ids)


class TestPostBatch:
    @pytest.fixture
    def batch(self, reimbursements):
        ready_gas = create(reimbursements, status="Ready", expense_date="2024-01-19")
        ready_cabe = create(
            reimbursements,
            status="Ready",
            expense_date="2024-01-20",
            description="cabe merah",
            quantity="5",
            unit_price="100000",
            amount="500000",
            line_type="INVENTORY",
            account_id=str(INVENTORY_ACCOUNT_ID),
            item_id=str(CABE_MERAH_ID),
        )
        draft = create(reimbursements, description="tissue", expense_date="2024-01-21")
        assignment = reimbursements.assign_batch([ready_gas.id, ready_cabe.id, draft.id])
        return assignment.batch_id, ready_gas, ready_cabe, draft

    def test_posts_ready_members(self, session, reimbursements, batch):
        batch_id, ready_gas, ready_cabe, draft = batch
        result = reimbursements.post_batch(batch_id, "2024-01-26", str(CASH_ACCOUNT_ID))

        assert result.batch_id == batch_id
        assert result.posted == 2
        assert result.left_in_draft == 1
        assert [t.transaction_code for t in result.transactions] == ["PCS000001", "PCS000002"]
        assert [t.description for t in result.transactions] == ["gas", "cabe merah"]
        for entry in result.transactions:
            assert entry.transaction_date == PAYMENT_DATE
            assert entry.cash_account_id == CASH_ACCOUNT_ID
            assert entry.reimbursement_batch_id == batch_id
        assert result.transactions[1].line_type is LineType.INVENTORY
        assert result.transactions[1].item_id == CABE_MERAH_ID

        assert reimbursements.get_request(ready_gas.id).status is ReimbursementStatus.POSTED
        assert reimbursements.get_request(ready_cabe.id).posted_at is not None
        assert reimbursements.get_request(draft.id).status is ReimbursementStatus.DRAFT
        assert reimbursements.is_batch_posted(batch_id)

    def test_repost_rejected_without_side_effects(self, session, reimbursements, batch):
        batch_id = batch[0]
        reimbursements.post_batch(batch_id, PAYMENT_DATE, CASH_ACCOUNT_ID)
        with pytest.raises(BatchAlreadyPostedError) as exc:
            reimbursements.post_batch(batch_id, PAYMENT_DATE, CASH_ACCOUNT_ID)
        assert exc.value.status == 409
        assert LedgerSelector(session).count() == 2

    def test_draft_left_behind_cannot_be_posted_later(self, reimbursements, batch):
        batch_id, _, _, draft = batch
        reimbursements.post_batch(batch_id, PAYMENT_DATE, CASH_ACCOUNT_ID)
        reimbursements.update_request(draft.id, status="Ready")
        with pytest.raises(BatchAlreadyPostedError):
            reimbursements.post_batch(batch_id, PAYMENT_DATE, CASH_ACCOUNT_ID)

    def test_unknown_batch(self, reimbursements):
        with pytest.raises(BatchNotFoundError):
            reimbursements.post_batch("RMB999", PAYMENT_DATE, CASH_ACCOUNT_ID)

    def test_no_ready_members(self, session, reimbursements):
        draft = create(reimbursements)
        batch_id = reimbursements.assign_batch([draft.id]).batch_id
        with pytest.raises(NoReadyRequestsError):
            reimbursements.post_batch(batch_id, PAYMENT_DATE, CASH_ACCOUNT_ID)
        assert LedgerSelector(session).count() == 0

    @pytest.mark.parametrize("batch_id, payment_date, cash_account", [
        ("", PAYMENT_DATE, CASH_ACCOUNT_ID),
        ("RMB001", "26/01/2024", CASH_ACCOUNT_ID),
        ("RMB001", PAYMENT_DATE, "not-a-uuid"),
    ])
    def test_input_validation(self, reimbursements, batch_id, payment_date, cash_account):
        with pytest.raises(ValidationError):
            reimbursements.post_batch(batch_id, payment_date, cash_account)

    def test_posting_logged(self, reimbursements, batch, captured_logs):
        reimbursements.post_batch(batch[0], PAYMENT_DATE, CASH_ACCOUNT_ID)
        entry = next(r for r in captured_logs() if r["message"] == "reimbursement_batch_posted")
        assert entry["batch_id"] == batch[0]
        assert entry["posted"] == 2
        assert entry["first_code"] == "PCS000001"
        assert entry["last_code"] == "PCS000002"
