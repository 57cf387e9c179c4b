"""
Reimbursement Module (``ledger_modules.reimbursement``).

Expense claims submitted one by one, grouped under an ``RMB###`` batch
code and posted into the cash ledger as a unit.

Invariants enforced
-------------------
* Draft -> Ready -> Posted, one way.
* A batch posts at most once, all-or-nothing.
* Posted requests are immutable.
"""

from ledger_modules.reimbursement.models import (
    BatchAssignment,
    BatchPostingResult,
    NewReimbursementRequest,
    ReimbursementRequest,
    ReimbursementStatus,
)
from ledger_modules.reimbursement.service import ReimbursementService
from ledger_modules.reimbursement.workflows import REIMBURSEMENT_WORKFLOW

__all__ = [
    "BatchAssignment",
    "BatchPostingResult",
    "NewReimbursementRequest",
    "REIMBURSEMENT_WORKFLOW",
    "ReimbursementRequest",
    "ReimbursementService",
    "ReimbursementStatus",
]
