"""
Reimbursement Module Service (``ledger_modules.reimbursement.service``).

Responsibility
--------------
Owns the lifecycle of expense claims: create, edit and delete requests
while they are mutable, group them under a batch code, and post a batch
into the cash ledger.

Architecture position
---------------------
**Modules layer**.  ``ReimbursementService`` is the sole writer of
``reimbursement_requests.status`` / ``posted_at`` and the only caller of
``LedgerWriter`` for reimbursements.

Invariants enforced
-------------------
* Status moves Draft -> Ready -> Posted only; Posted is reachable only
  through ``post_batch``.
* ``amount == round(quantity x unit_price, 2)`` on create and update.
* A batch posts at most once.  The posted check is one query over the
  batch, taken after the member rows are locked.
* Posting is all-or-nothing: every Ready member becomes Posted with its
  ledger entry, or nothing changes.
* Batch assignment is best-effort per id: missing and Posted ids are
  skipped and reported, never fatal.

Failure modes
-------------
* ``ValidationError`` family -- malformed input, raised before any write.
* ``ReimbursementNotFoundError`` / ``RecordNotEditableError`` -- unknown
  id, or an edit against a row in the wrong state.
* ``BatchAlreadyPostedError`` -- re-posting a batch (no side effects).
* ``BatchNotFoundError`` -- batch code with no members.
* ``NoReadyRequestsError`` -- batch exists but every member is Draft.

Audit relevance
---------------
Every public method logs its outcome; posting logs the batch code, the
number of entries written and their code range.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any
from uuid import UUID

from sqlalchemy import and_, exists, select
from sqlalchemy.orm import Session

from ledger_config import get_active_config
from ledger_config.schema import LedgerConfig
from ledger_kernel.db.types import (
    format_money,
    line_amount,
    parse_money,
    parse_quantity,
)
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LedgerEntryDraft, LineType
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
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.selectors.ledger_selector import clamp_page
from ledger_kernel.services.code_sequencer import CodeSequencer
from ledger_kernel.services.ledger_writer import LedgerWriter
from ledger_modules._posting_helpers import (
    optional_date,
    optional_text,
    optional_uuid,
    require_date,
    require_text,
    require_uuid,
    unit_of_work,
)
from ledger_modules.reimbursement.models import (
    REIMBURSABLE_LINE_TYPES,
    SETTABLE_STATUSES,
    BatchAssignment,
    BatchPostingResult,
    NewReimbursementRequest,
    ReimbursementRequest,
    ReimbursementStatus,
)
from ledger_modules.reimbursement.orm import ReimbursementRequestModel
from ledger_modules.reimbursement.workflows import can_set_status

logger = get_logger("modules.reimbursement.service")

_EDITABLE_FIELDS = frozenset({
    "expense_date",
    "item_id",
    "description",
    "quantity",
    "unit_price",
    "amount",
    "line_type",
    "account_id",
    "status",
    "requester",
    "receipt_link",
})


def parse_line_type(value: Any) -> LineType:
    """Coerce to a reimbursable LineType (INVENTORY or EXPENSE)."""
    allowed = tuple(t.value for t in REIMBURSABLE_LINE_TYPES)
    if isinstance(value, LineType):
        line_type = value
    else:
        try:
            line_type = LineType(str(value).strip().upper())
        except ValueError:
            raise InvalidLineTypeError(str(value), allowed) from None
    if line_type not in REIMBURSABLE_LINE_TYPES:
        raise InvalidLineTypeError(line_type.value, allowed)
    return line_type


def parse_status(value: Any) -> ReimbursementStatus:
    """Coerce to a status a caller may set (Draft or Ready)."""
    if isinstance(value, ReimbursementStatus):
        status = value
    else:
        try:
            status = ReimbursementStatus(str(value).strip().capitalize())
        except ValueError:
            raise ValidationError(f"invalid status {value!r}", field="status") from None
    if status not in SETTABLE_STATUSES:
        raise ValidationError("status must be Draft or Ready", field="status")
    return status


def check_amount(quantity, unit_price, amount) -> None:
    if quantity <= 0:
        raise InvalidAmountError(quantity, field="quantity", reason="must be positive")
    if unit_price < 0:
        raise InvalidAmountError(unit_price, field="unit_price", reason="must not be negative")
    expected = line_amount(quantity, unit_price)
    if amount != expected:
        raise AmountMismatchError(format_money(amount), format_money(expected))


def build_new_request(fields: Mapping[str, Any]) -> NewReimbursementRequest:
    """
    Validate raw create fields into a NewReimbursementRequest.

    Raises a ValidationError subclass naming the first offending field.
    """
    quantity = parse_quantity(fields.get("quantity"), field="quantity")
    unit_price = parse_money(fields.get("unit_price"), field="unit_price")
    amount = parse_money(fields.get("amount"), field="amount")
    check_amount(quantity, unit_price, amount)

    status = fields.get("status")
    return NewReimbursementRequest(
        expense_date=require_date(fields.get("expense_date"), "expense_date"),
        description=require_text(fields.get("description"), "description"),
        quantity=quantity,
        unit_price=unit_price,
        amount=amount,
        line_type=parse_line_type(fields.get("line_type")),
        account_id=require_uuid(fields.get("account_id"), "account_id"),
        requester=require_text(fields.get("requester"), "requester"),
        status=parse_status(status) if status not in (None, "") else ReimbursementStatus.DRAFT,
        item_id=optional_uuid(fields.get("item_id"), "item_id"),
        receipt_link=optional_text(fields.get("receipt_link"), "receipt_link"),
    )


class ReimbursementService:
    """
    Expense-claim operations over one session.

    Contract
    --------
    * Each public method is one unit of work: commit on success, rollback
      and re-raise on any exception.
    * Methods return frozen DTOs, never ORM rows.

    Non-goals
    ---------
    * Does NOT resolve account or item references; they are opaque ids
      owned by master data.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: LedgerConfig | None = None,
        sequencer: CodeSequencer | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._sequencer = sequencer or CodeSequencer.from_config(session, self._config)
        self._writer = LedgerWriter(session, self._sequencer)

    # =========================================================================
    # Requests
    # =========================================================================

    def create_request(self, **fields: Any) -> ReimbursementRequest:
        new = build_new_request(fields)
        return self.create_requests([new])[0]

    def create_requests(
        self, requests: Sequence[NewReimbursementRequest],
    ) -> list[ReimbursementRequest]:
        """Persist already-validated requests together."""
        with unit_of_work(self._session, logger, "reimbursement_create", count=len(requests)):
            rows = [ReimbursementRequestModel.from_new(r) for r in requests]
            self._session.add_all(rows)
            self._session.flush()
            created = [row.to_dto() for row in rows]

        for dto in created:
            logger.info("reimbursement_request_created", extra={
                "request_id": str(dto.id),
                "status": dto.status.value,
                "line_type": dto.line_type.value,
                "amount": str(dto.amount),
                "requester": dto.requester,
            })
        return created

    def get_request(self, request_id: Any) -> ReimbursementRequest:
        rid = require_uuid(request_id, "id")
        row = self._session.get(ReimbursementRequestModel, rid)
        if row is None:
            raise ReimbursementNotFoundError(str(rid))
        return row.to_dto()

    def list_requests(
        self,
        *,
        status: Any = None,
        requester: str | None = None,
        batch_id: str | None = None,
        start_date: Any = None,
        end_date: Any = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[ReimbursementRequest]:
        """Requests matching every given filter, newest expense date first."""
        limit, offset = clamp_page(limit, offset)
        stmt = select(ReimbursementRequestModel)
        if status not in (None, ""):
            if isinstance(status, ReimbursementStatus):
                wanted = status
            else:
                try:
                    wanted = ReimbursementStatus(str(status).strip().capitalize())
                except ValueError:
                    raise ValidationError(f"invalid status {status!r}", field="status") from None
            stmt = stmt.where(ReimbursementRequestModel.status == wanted.value)
        if requester:
            stmt = stmt.where(ReimbursementRequestModel.requester == requester)
        if batch_id:
            stmt = stmt.where(ReimbursementRequestModel.batch_id == batch_id)
        start = optional_date(start_date, "start_date")
        end = optional_date(end_date, "end_date")
        if start is not None:
            stmt = stmt.where(ReimbursementRequestModel.expense_date >= start)
        if end is not None:
            stmt = stmt.where(ReimbursementRequestModel.expense_date <= end)

        stmt = stmt.order_by(
            ReimbursementRequestModel.expense_date.desc(),
            ReimbursementRequestModel.created_at.desc(),
            ReimbursementRequestModel.id,
        ).limit(limit).offset(offset)
        return [row.to_dto() for row in self._session.execute(stmt).scalars()]

    def update_request(self, request_id: Any, /, **changes: Any) -> ReimbursementRequest:
        """
        Apply a partial update to a Draft or Ready request.

        Only the given fields change.  The resulting quantity, unit price
        and amount must still agree.
        """
        rid = require_uuid(request_id, "id")
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"unknown fields: {', '.join(sorted(unknown))}")

        with unit_of_work(self._session, logger, "reimbursement_update", request_id=str(rid)):
            row = self._lock_request(rid)
            current = ReimbursementStatus(row.status)
            if current is ReimbursementStatus.POSTED:
                raise RecordNotEditableError("ReimbursementRequest", str(rid), "request is posted")

            values = self._coerce_changes(changes)
            quantity = values.get("quantity", row.quantity)
            unit_price = values.get("unit_price", row.unit_price)
            amount = values.get("amount", row.amount)
            check_amount(quantity, unit_price, amount)

            if "status" in values:
                requested = values["status"]
                if not can_set_status(current, requested):
                    raise InvalidStatusTransitionError(current.value, requested.value)
                values["status"] = requested.value
            if "line_type" in values:
                values["line_type"] = values["line_type"].value

            for name, value in values.items():
                setattr(row, name, value)
            self._session.flush()
            result = row.to_dto()

        logger.info("reimbursement_request_updated", extra={
            "request_id": str(rid),
            "fields": sorted(changes),
            "status": result.status.value,
        })
        return result

    def delete_request(self, request_id: Any) -> None:
        """Delete a Draft request.  Ready and Posted requests are kept."""
        rid = require_uuid(request_id, "id")
        with unit_of_work(self._session, logger, "reimbursement_delete", request_id=str(rid)):
            row = self._lock_request(rid)
            if row.status != ReimbursementStatus.DRAFT.value:
                raise RecordNotEditableError(
                    "ReimbursementRequest", str(rid),
                    f"only Draft requests can be deleted (status {row.status})",
                )
            self._session.delete(row)
            self._session.flush()

        logger.info("reimbursement_request_deleted", extra={"request_id": str(rid)})

    # =========================================================================
    # Batches
    # =========================================================================

    def assign_batch(self, ids: Iterable[Any]) -> BatchAssignment:
        """
        Tag the given requests with one newly allocated batch code.

        Status is not changed.  Unknown ids and Posted requests are skipped;
        compare ``assigned`` with ``requested`` to detect a partial result.
        """
        if ids is None or isinstance(ids, (str, bytes)):
            raise ValidationError("ids must be a list of request ids", field="ids")
        unique: list[UUID] = []
        for raw in ids:
            rid = require_uuid(raw, "ids")
            if rid not in unique:
                unique.append(rid)
        if not unique:
            raise ValidationError("ids is required", field="ids")

        with unit_of_work(self._session, logger, "reimbursement_batch_assign", requested=len(unique)):
            batch_id = self._sequencer.next_batch_code()
            rows = {
                row.id: row
                for row in self._session.execute(
                    select(ReimbursementRequestModel)
                    .where(ReimbursementRequestModel.id.in_(unique))
                    .with_for_update()
                ).scalars()
            }
            skipped: list[UUID] = []
            assigned = 0
            for rid in unique:
                row = rows.get(rid)
                if row is None or row.status == ReimbursementStatus.POSTED.value:
                    skipped.append(rid)
                    continue
                row.batch_id = batch_id
                assigned += 1
            self._session.flush()

        logger.info("reimbursement_batch_assigned", extra={
            "batch_id": batch_id,
            "assigned": assigned,
            "requested": len(unique),
            "skipped": len(skipped),
        })
        return BatchAssignment(
            batch_id=batch_id,
            assigned=assigned,
            requested=len(unique),
            skipped_ids=tuple(skipped),
        )

    def is_batch_posted(self, batch_id: str) -> bool:
        """True once any member of ``batch_id`` is Posted."""
        return bool(self._session.execute(
            select(exists().where(and_(
                ReimbursementRequestModel.batch_id == batch_id,
                ReimbursementRequestModel.status == ReimbursementStatus.POSTED.value,
            )))
        ).scalar())

    def post_batch(self, batch_id: Any, payment_date: Any, cash_account_id: Any) -> BatchPostingResult:
        """
        Post every Ready member of a batch into the ledger.

        Each Ready request becomes one ``CashTransaction`` dated on the
        payment date and tagged with the batch code; the request is then
        marked Posted.  Draft members are neither posted nor advanced.
        """
        batch_code = require_text(batch_id, "batch_id")
        paid_on = require_date(payment_date, "payment_date")
        cash_account = require_uuid(cash_account_id, "cash_account_id")

        with LogContext.bind(batch_id=batch_code, operation="post_batch"), \
                unit_of_work(self._session, logger, "reimbursement_batch_post", batch_id=batch_code):
            members = self._lock_batch(batch_code)
            if self.is_batch_posted(batch_code):
                raise BatchAlreadyPostedError(batch_code)
            if not members:
                raise BatchNotFoundError(batch_code)

            ready = [m for m in members if m.status == ReimbursementStatus.READY.value]
            if not ready:
                raise NoReadyRequestsError(batch_code)

            logger.info("reimbursement_batch_post_started", extra={
                "batch_id": batch_code,
                "members": len(members),
                "ready": len(ready),
            })

            posted_at = self._clock.now()
            transactions = []
            for row in ready:
                entry = self._writer.write(LedgerEntryDraft(
                    transaction_date=paid_on,
                    description=row.description,
                    quantity=row.quantity,
                    unit_price=row.unit_price,
                    amount=row.amount,
                    line_type=LineType(row.line_type),
                    account_id=row.account_id,
                    cash_account_id=cash_account,
                    item_id=row.item_id,
                    reimbursement_batch_id=batch_code,
                ))
                transactions.append(entry.to_dto())
                row.status = ReimbursementStatus.POSTED.value
                row.posted_at = posted_at
            self._session.flush()

            result = BatchPostingResult(
                batch_id=batch_code,
                posted=len(transactions),
                transactions=tuple(transactions),
                left_in_draft=len(members) - len(ready),
            )

        logger.info("reimbursement_batch_posted", extra={
            "batch_id": batch_code,
            "posted": result.posted,
            "left_in_draft": result.left_in_draft,
            "first_code": transactions[0].transaction_code,
            "last_code": transactions[-1].transaction_code,
        })
        return result

    # =========================================================================
    # Internal
    # =========================================================================

    def _lock_request(self, rid: UUID) -> ReimbursementRequestModel:
        row = self._session.execute(
            select(ReimbursementRequestModel)
            .where(ReimbursementRequestModel.id == rid)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise ReimbursementNotFoundError(str(rid))
        return row

    def _lock_batch(self, batch_code: str) -> list[ReimbursementRequestModel]:
        return list(self._session.execute(
            select(ReimbursementRequestModel)
            .where(ReimbursementRequestModel.batch_id == batch_code)
            .order_by(
                ReimbursementRequestModel.expense_date,
                ReimbursementRequestModel.created_at,
                ReimbursementRequestModel.id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars())

    @staticmethod
    def _coerce_changes(changes: Mapping[str, Any]) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for name, raw in changes.items():
            if name == "expense_date":
                values[name] = require_date(raw, name)
            elif name in ("description", "requester"):
                values[name] = require_text(raw, name)
            elif name == "receipt_link":
                values[name] = optional_text(raw, name)
            elif name == "item_id":
                values[name] = optional_uuid(raw, name)
            elif name == "account_id":
                values[name] = require_uuid(raw, name)
            elif name == "quantity":
                values[name] = parse_quantity(raw, field=name)
            elif name in ("unit_price", "amount"):
                values[name] = parse_money(raw, field=name)
            elif name == "line_type":
                values[name] = parse_line_type(raw)
            elif name == "status":
                values[name] = parse_status(raw)
        return values
