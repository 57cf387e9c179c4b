"""
LedgerWriter -- the sole creator of CashTransaction rows.

Responsibility:
    Validates a LedgerEntryDraft, allocates its transaction code and
    appends it to the cash ledger.

Architecture position:
    Kernel > Services.  Called by the reimbursement, sales and payroll
    posting operations inside their own transaction.

Invariants enforced:
    - amount == round(quantity x unit_price, 2) for every entry written.
    - Quantity stored at 4 decimal places, money at 2 (half-up).
    - Codes are allocated in write order, so entries written by one posting
      call carry strictly increasing codes.

Failure modes:
    - AmountMismatchError if the draft amount is inconsistent.
    - InvalidAmountError if quantity is not positive.

Audit relevance:
    Every write logs ``ledger_entry_written`` with the code, line type,
    amount and batch tag.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy.orm import Session

from ledger_kernel.db.types import format_money, line_amount, round_money, round_quantity
from ledger_kernel.domain.dtos import LedgerEntryDraft
from ledger_kernel.exceptions import AmountMismatchError, InvalidAmountError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.cash_transaction import CashTransaction
from ledger_kernel.services.code_sequencer import CodeSequencer

logger = get_logger("services.ledger_writer")


class LedgerWriter:
    """
    Append-only writer for the cash ledger.

    Non-goals:
        - Does NOT commit; the calling service owns the transaction.
    """

    def __init__(self, session: Session, sequencer: CodeSequencer):
        self._session = session
        self._sequencer = sequencer

    def write(self, draft: LedgerEntryDraft) -> CashTransaction:
        quantity = round_quantity(draft.quantity)
        unit_price = round_money(draft.unit_price)
        amount = round_money(draft.amount)

        if quantity <= 0:
            raise InvalidAmountError(draft.quantity, field="quantity", reason="must be positive")
        expected = line_amount(quantity, unit_price)
        if amount != expected:
            raise AmountMismatchError(format_money(amount), format_money(expected))

        code = self._sequencer.next_transaction_code()
        row = CashTransaction(
            transaction_code=code,
            transaction_date=draft.transaction_date,
            item_id=draft.item_id,
            description=draft.description,
            quantity=quantity,
            unit_price=unit_price,
            amount=amount,
            line_type=draft.line_type.value,
            account_id=draft.account_id,
            cash_account_id=draft.cash_account_id,
            outlet_id=draft.outlet_id,
            reimbursement_batch_id=draft.reimbursement_batch_id,
        )
        self._session.add(row)
        self._session.flush()

        logger.info(
            "ledger_entry_written",
            extra={
                "transaction_code": code,
                "line_type": draft.line_type.value,
                "amount": str(amount),
                "reimbursement_batch_id": draft.reimbursement_batch_id,
            },
        )
        return row

    def write_all(self, drafts: Iterable[LedgerEntryDraft]) -> list[CashTransaction]:
        return [self.write(d) for d in drafts]
