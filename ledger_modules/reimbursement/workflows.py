"""Reimbursement Workflows.

State machine for reimbursement requests.
"""

from ledger_kernel.domain.workflow import Guard, Transition, Workflow
from ledger_kernel.logging_config import get_logger
from ledger_modules.reimbursement.models import ReimbursementStatus

logger = get_logger("modules.reimbursement.workflows")

_DRAFT = ReimbursementStatus.DRAFT.value
_READY = ReimbursementStatus.READY.value
_POSTED = ReimbursementStatus.POSTED.value

BATCH_NOT_POSTED = Guard(
    name="batch_not_posted",
    description="No member of the batch has been posted",
)

REIMBURSEMENT_WORKFLOW = Workflow(
    name="reimbursement_request",
    description="Expense claim lifecycle",
    initial_state=_DRAFT,
    states=(_DRAFT, _READY, _POSTED),
    transitions=(
        Transition(_DRAFT, _READY, action="mark_ready"),
        Transition(_READY, _POSTED, action="post", guard=BATCH_NOT_POSTED, posts_entry=True),
    ),
    terminal_states=(_POSTED,),
)

logger.info(
    "reimbursement_workflow_defined",
    extra={"workflow": REIMBURSEMENT_WORKFLOW.name, "states": list(REIMBURSEMENT_WORKFLOW.states)},
)


def can_set_status(current: ReimbursementStatus, requested: ReimbursementStatus) -> bool:
    """Whether an edit may move ``current`` to ``requested`` (staying put is allowed)."""
    if requested is ReimbursementStatus.POSTED:
        return False
    if current == requested:
        return True
    return REIMBURSEMENT_WORKFLOW.can_transition(current.value, requested.value)
