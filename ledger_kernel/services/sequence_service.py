"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly monotonically increasing sequence numbers for ledger
    transaction codes and reimbursement batch codes.  Uses a dedicated
    counter table with row-level locking (``SELECT ... FOR UPDATE``) to
    guarantee uniqueness and ordering under concurrent access.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by CodeSequencer, which formats values into prefixed codes.

Invariants enforced:
    - Sequence monotonicity: the locked counter row is the sole source of
      truth for the next value.  Reading the current maximum code and adding
      one outside a lock is never done.
    - Transactional: the increment is only visible after the caller's
      transaction commits.  Rollback returns the value.
    - Seeding: a counter created on first use starts from a caller-supplied
      seed (the highest value already persisted), so codes stay distinct
      from rows written before the counter existed.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and retry).
    - Whatever the seed callable raises (SequenceCorruptionError for a
      malformed persisted code) propagates and is not retried.
"""

from typing import Callable

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from ledger_kernel.db.base import Base
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    Row-level locking ensures monotonicity under concurrency.
    """

    __tablename__ = "sequence_counters"

    # Sequence name (e.g., "cash_transaction", "reimbursement_batch")
    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Contract:
        Accepts a sequence name and returns the next strictly-monotonic
        integer value.  The increment is transactional -- it is only
        committed when the caller's transaction commits.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session):
        self._session = session

    def _lock_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(
        self,
        sequence_name: str,
        seed: Callable[[], int] | None = None,
    ) -> int:
        """
        Get the next value for a named sequence.

        1. Locks the sequence row (or creates it, starting from ``seed()``)
        2. Increments the counter
        3. Returns the new value

        Args:
            sequence_name: Name of the sequence.
            seed: Called only when the counter row does not exist yet.
                Returns the highest value already in use (0 if none).

        Returns:
            The next sequence value (always > 0).
        """
        counter = self._lock_counter(sequence_name)

        if counter is None:
            start = seed() if seed is not None else 0
            # Savepoint so a lost creation race does not roll back caller work
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=start + 1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={
                        "sequence_name": sequence_name,
                        "value": start + 1,
                        "seeded_from": start,
                    },
                )
                return start + 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._lock_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None if absent."""
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

        return counter.current_value if counter else None
