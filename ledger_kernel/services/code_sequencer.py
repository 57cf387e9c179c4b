"""
CodeSequencer -- prefixed, zero-padded ledger and batch codes.

Responsibility:
    Turns locked sequence values into the human-facing codes used by the
    ledger (``PCS000001``) and by reimbursement batches (``RMB001``).

Architecture position:
    Kernel > Services.  Wraps SequenceService.  Called by LedgerWriter
    (transaction codes) and ReimbursementService (batch codes).

Invariants enforced:
    - Codes issued in one transaction are strictly increasing and distinct
      from every previously persisted code: the counter is seeded from the
      highest persisted code the first time a kind is used and is only ever
      advanced under a row lock afterwards.
    - A persisted code with a non-numeric suffix is a data-integrity error.

Failure modes:
    - SequenceCorruptionError when the highest persisted code for a kind is
      malformed.  Fatal, never retried.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.exceptions import SequenceCorruptionError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.code_sequencer")


@dataclass(frozen=True)
class CodeKind:
    """A family of codes sharing a prefix and a persisted source column."""

    sequence_name: str
    prefix: str
    width: int

    def format(self, value: int) -> str:
        return f"{self.prefix}{value:0{self.width}d}"

    def parse(self, code: str) -> int:
        """Numeric suffix of ``code``; SequenceCorruptionError if malformed."""
        if not code.startswith(self.prefix):
            raise SequenceCorruptionError(self.sequence_name, code)
        suffix = code[len(self.prefix):]
        if not suffix.isdigit():
            raise SequenceCorruptionError(self.sequence_name, code)
        return int(suffix)


TRANSACTION_SEQUENCE = "cash_transaction"
BATCH_SEQUENCE = "reimbursement_batch"


class CodeSequencer:
    """
    Allocates the next code of a given kind.

    Contract:
        ``next_code(kind)`` returns a code strictly greater than any code of
        that kind already persisted or previously issued.  The allocation is
        part of the caller's transaction.

    Non-goals:
        - Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        transaction_prefix: str = "PCS",
        transaction_width: int = 6,
        batch_prefix: str = "RMB",
        batch_width: int = 3,
    ):
        self._session = session
        self._sequences = SequenceService(session)
        self.transaction_kind = CodeKind(TRANSACTION_SEQUENCE, transaction_prefix, transaction_width)
        self.batch_kind = CodeKind(BATCH_SEQUENCE, batch_prefix, batch_width)

    @classmethod
    def from_config(cls, session: Session, config: Any) -> "CodeSequencer":
        return cls(
            session,
            transaction_prefix=config.transaction_code_prefix,
            transaction_width=config.transaction_code_width,
            batch_prefix=config.batch_code_prefix,
            batch_width=config.batch_code_width,
        )

    def next_code(self, kind: CodeKind, source_column: Any) -> str:
        """Next code of ``kind``; ``source_column`` holds persisted codes for seeding."""
        value = self._sequences.next_value(
            kind.sequence_name,
            seed=lambda: self._max_persisted(kind, source_column),
        )
        code = kind.format(value)
        logger.info(
            "code_allocated",
            extra={"sequence_name": kind.sequence_name, "code": code},
        )
        return code

    def next_transaction_code(self) -> str:
        from ledger_kernel.models.cash_transaction import CashTransaction

        return self.next_code(self.transaction_kind, CashTransaction.transaction_code)

    def next_batch_code(self) -> str:
        from ledger_modules.reimbursement.orm import ReimbursementRequestModel

        return self.next_code(self.batch_kind, ReimbursementRequestModel.batch_id)

    def _max_persisted(self, kind: CodeKind, column: Any) -> int:
        """Highest numeric suffix among persisted codes of ``kind`` (0 if none)."""
        # Zero-padded codes sort numerically once grouped by length
        highest = self._session.execute(
            select(column)
            .where(column.like(f"{kind.prefix}%"))
            .order_by(func.length(column).desc(), column.desc())
            .limit(1)
        ).scalar_one_or_none()
        if highest is None:
            return 0
        value = kind.parse(highest)
        logger.info(
            "sequence_seeded",
            extra={"sequence_name": kind.sequence_name, "seed_code": highest, "seed": value},
        )
        return value
