"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Posted financial records must be tamper-proof.  A mistake in a posted entry is
corrected by a new entry, never by editing history.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check our invariants:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                    | When Immutable                 | Why
--------------------------|--------------------------------|------------------------------
CashTransaction           | ALWAYS (from creation)         | Ledger of record
ReimbursementRequest      | After status = Posted          | Copied into the ledger
SalesDailySummary         | After posted_at is set         | Copied into the ledger
PayrollEntry              | After posted_at is set         | Copied into the ledger

===============================================================================
DESIGN DECISIONS
===============================================================================

1. CHECK "WAS POSTED" NOT "IS POSTED".
   The posting workflow itself must set status=Posted / posted_at.  The
   transition into the posted state is allowed; any change after it is not.
   This is detected from SQLAlchemy's attribute history (the value that was
   loaded from the database).

2. INLINE IMPORTS.
   Module ORM models import kernel db types; importing them at module level
   here would be circular.

3. Bulk ``UPDATE`` / ``DELETE`` statements bypass ORM events.  Services
   mutate posted-state rows through the ORM only.

===============================================================================
USAGE
===============================================================================

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _persisted_value(target, attr: str):
    """Value of ``attr`` as loaded from the database (before pending changes)."""
    history = get_history(target, attr)
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return None


def _block(entity_type: str, target, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "reason": reason,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_cash_transaction_immutability(mapper, connection, target):
    """Cash transactions are never updated."""
    _block("CashTransaction", target, "UPDATE", "Ledger entries are immutable")


def _check_cash_transaction_delete(mapper, connection, target):
    """Cash transactions are never deleted."""
    _block("CashTransaction", target, "DELETE", "Ledger entries cannot be deleted")


def _check_reimbursement_immutability(mapper, connection, target):
    """Block updates to requests that were already Posted when loaded."""
    if _persisted_value(target, "status") == "Posted":
        _block("ReimbursementRequest", target, "UPDATE", "Posted requests are immutable")


def _check_reimbursement_delete(mapper, connection, target):
    if _persisted_value(target, "status") == "Posted":
        _block("ReimbursementRequest", target, "DELETE", "Posted requests cannot be deleted")


def _check_posted_at_immutability(mapper, connection, target):
    """Block updates to summaries / payroll entries posted before this flush."""
    if _persisted_value(target, "posted_at") is not None:
        _block(type(target).__name__, target, "UPDATE", "Posted records are immutable")


def _check_posted_at_delete(mapper, connection, target):
    if _persisted_value(target, "posted_at") is not None:
        _block(type(target).__name__, target, "DELETE", "Posted records cannot be deleted")


def _listener_table():
    from ledger_kernel.models.cash_transaction import CashTransaction
    from ledger_modules.payroll.orm import PayrollEntryModel
    from ledger_modules.reimbursement.orm import ReimbursementRequestModel
    from ledger_modules.sales.orm import SalesDailySummaryModel

    return [
        (CashTransaction, "before_update", _check_cash_transaction_immutability),
        (CashTransaction, "before_delete", _check_cash_transaction_delete),
        (ReimbursementRequestModel, "before_update", _check_reimbursement_immutability),
        (ReimbursementRequestModel, "before_delete", _check_reimbursement_delete),
        (SalesDailySummaryModel, "before_update", _check_posted_at_immutability),
        (SalesDailySummaryModel, "before_delete", _check_posted_at_delete),
        (PayrollEntryModel, "before_update", _check_posted_at_immutability),
        (PayrollEntryModel, "before_delete", _check_posted_at_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: a listener already registered is not added twice.
    """
    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listener_table():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
