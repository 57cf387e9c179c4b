"""
LedgerOperations -- wire-shaped entry points for every ledger workflow.

Responsibility:
    Accepts decoded request payloads (plain dicts, decimals as strings),
    runs the matching module service in a fresh session, and returns an
    ``OperationResult`` holding a status code and a JSON-ready body.

Architecture position:
    Services -- the outermost layer below transport (HTTP handler, CLI,
    chat webhook).  Holds no state besides its collaborators.

Invariants enforced:
    - Every ``LedgerError`` becomes ``{"error": {"kind", "code", "message"}}``
      with the status fixed by its kind.
    - Internal failures (store errors, sequence corruption) are logged with
      their traceback and surfaced with an opaque message.
    - One session per operation, always closed.

Failure modes:
    - None raised: every exception is converted into an error result.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from sqlalchemy.orm import Session, sessionmaker

from ledger_config import get_active_config
from ledger_config.schema import LedgerConfig
from ledger_intake.matcher import ItemCatalog, MatchStatus
from ledger_intake.parser import ExpenseMessageParser
from ledger_intake.service import ExpenseIntakeService, parse_error_reply
from ledger_kernel.db.engine import get_session_factory
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LineType
from ledger_kernel.exceptions import (
    ErrorKind,
    ExpenseParseError,
    InvalidLineTypeError,
    LedgerError,
    NoItemsParsedError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_modules._posting_helpers import optional_date, optional_uuid
from ledger_modules.payroll.service import PayrollService
from ledger_modules.reimbursement.service import ReimbursementService
from ledger_modules.sales.pos_source import PosSalesSource
from ledger_modules.sales.service import SalesService
from ledger_services.wire import to_wire

logger = get_logger("services.operations")

INTERNAL_MESSAGE = "internal server error"

# Older clients send ``qty``
_FIELD_ALIASES = {"qty": "quantity"}


@dataclass(frozen=True)
class OperationResult:
    status: int
    body: Any

    @property
    def ok(self) -> bool:
        return self.status < 400


def error_body(exc: LedgerError) -> dict[str, Any]:
    """Wire body for a typed error.  Internal errors never leak their message."""
    message = INTERNAL_MESSAGE if exc.kind is ErrorKind.INTERNAL else str(exc)
    body: dict[str, Any] = {"kind": exc.kind.value, "code": exc.code, "message": message}
    field = getattr(exc, "field", None)
    if field and exc.kind is ErrorKind.VALIDATION:
        body["field"] = field
    if isinstance(exc, NoItemsParsedError) and exc.warnings:
        body["warnings"] = list(exc.warnings)
    return {"error": body}


def _body(payload: Any) -> dict[str, Any]:
    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise ValidationError("request body must be a JSON object")
    return {_FIELD_ALIASES.get(k, k): v for k, v in payload.items()}


def _line_type(value: Any) -> LineType | None:
    if value in (None, ""):
        return None
    try:
        return LineType(str(value).strip().upper())
    except ValueError:
        raise InvalidLineTypeError(str(value), tuple(t.value for t in LineType)) from None


def _page(payload: Mapping[str, Any], name: str) -> int | None:
    value = payload.get(name)
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer", field=name) from None


class LedgerOperations:
    """
    Facade over the reimbursement, sales, payroll, intake and ledger reads.

    Contract:
        Every public method takes a payload mapping (and an id where the
        operation targets one row) and returns an ``OperationResult``.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | Callable[[], Session] | None = None,
        clock: Clock | None = None,
        config: LedgerConfig | None = None,
        catalog: ItemCatalog | None = None,
        pos_source: PosSalesSource | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._catalog = catalog
        self._pos_source = pos_source

    # =========================================================================
    # Plumbing
    # =========================================================================

    def _new_session(self) -> Session:
        factory = self._session_factory or get_session_factory()
        return factory()

    def _run(
        self,
        operation: str,
        fn: Callable[[Session], tuple[int, Any]],
        on_error: Callable[[LedgerError, dict[str, Any]], None] | None = None,
    ) -> OperationResult:
        with LogContext.bind(operation=operation, correlation_id=str(uuid4())):
            session = self._new_session()
            try:
                status, body = fn(session)
                return OperationResult(status, body)
            except LedgerError as exc:
                if exc.kind is ErrorKind.INTERNAL:
                    logger.error(
                        "operation_failed",
                        extra={"operation": operation, "error_code": exc.code},
                        exc_info=True,
                    )
                else:
                    logger.info(
                        "operation_rejected",
                        extra={"operation": operation, "error_code": exc.code},
                    )
                body = error_body(exc)
                if on_error is not None:
                    on_error(exc, body)
                return OperationResult(exc.status, body)
            except Exception:
                logger.error("operation_failed", extra={"operation": operation}, exc_info=True)
                return OperationResult(
                    ErrorKind.INTERNAL.status,
                    {"error": {"kind": ErrorKind.INTERNAL.value, "code": "INTERNAL_ERROR",
                               "message": INTERNAL_MESSAGE}},
                )
            finally:
                session.close()

    def _reimbursements(self, session: Session) -> ReimbursementService:
        return ReimbursementService(session, clock=self._clock, config=self._config)

    def _sales(self, session: Session) -> SalesService:
        return SalesService(
            session, clock=self._clock, config=self._config, pos_source=self._pos_source,
        )

    def _payroll(self, session: Session) -> PayrollService:
        return PayrollService(session, clock=self._clock, config=self._config)

    # =========================================================================
    # Expense messages
    # =========================================================================

    def parse_message(self, payload: Any) -> OperationResult:
        """Parse only; nothing is persisted."""
        def run(session: Session) -> tuple[int, Any]:
            body = _body(payload)
            text = body.get("message_text", body.get("text"))
            if not isinstance(text, str) or not text.strip():
                raise ValidationError("message_text is required", field="message_text")
            parsed = ExpenseMessageParser(
                clock=self._clock,
                future_window_days=self._config.intake.future_date_window_days,
            ).parse(text)
            return 200, to_wire(parsed)
        return self._run("parse_message", run)

    def submit_expense_message(self, payload: Any) -> OperationResult:
        """Chat webhook: parse, match and create Draft requests, reply text included."""
        def run(session: Session) -> tuple[int, Any]:
            body = _body(payload)
            service = ExpenseIntakeService(
                session,
                catalog=self._catalog,
                clock=self._clock,
                config=self._config,
                reimbursements=self._reimbursements(session),
            )
            result = service.submit_message(
                body.get("message_text"),
                body.get("sender_name", body.get("requester")),
                account_id=body.get("account_id"),
            )
            return 200, {
                "reply_message": result.reply_message,
                "items_created": result.items_created,
                "items_matched": result.count(MatchStatus.MATCHED),
                "items_ambiguous": result.count(MatchStatus.AMBIGUOUS),
                "items_unmatched": result.count(MatchStatus.UNMATCHED),
                "warnings": list(result.warnings),
                "requests": [to_wire(r) for r in result.requests],
            }

        def add_reply(exc: LedgerError, body: dict[str, Any]) -> None:
            if isinstance(exc, ExpenseParseError):
                body["reply_message"] = parse_error_reply(exc)

        return self._run("submit_expense_message", run, on_error=add_reply)

    # =========================================================================
    # Reimbursements
    # =========================================================================

    def list_reimbursements(self, payload: Any = None) -> OperationResult:
        def run(session: Session) -> tuple[int, Any]:
            body = _body(payload)
            rows = self._reimbursements(session).list_requests(
                status=body.get("status"),
                requester=body.get("requester"),
                batch_id=body.get("batch_id"),
                start_date=body.get("start_date"),
                end_date=body.get("end_date"),
                limit=_page(body, "limit"),
                offset=_page(body, "offset"),
            )
            return 200, [to_wire(r) for r in rows]
        return self._run("list_reimbursements", run)

    def get_reimbursement(self, request_id: Any) -> OperationResult:
        return self._run(
            "get_reimbursement",
            lambda s: (200, to_wire(self._reimbursements(s).get_request(request_id))),
        )

    def create_reimbursement(self, payload: Any) -> OperationResult:
        return self._run(
            "create_reimbursement",
            lambda s: (201, to_wire(self._reimbursements(s).create_request(**_body(payload)))),
        )

    def update_reimbursement(self, request_id: Any, payload: Any) -> OperationResult:
        return self._run(
            "update_reimbursement",
            lambda s: (200, to_wire(self._reimbursements(s).update_request(request_id, **_body(payload)))),
        )

    def delete_reimbursement(self, request_id: Any) -> OperationResult:
        def run(session: Session) -> tuple[int, Any]:
            self._reimbursements(session).delete_request(request_id)
            return 204, None
        return self._run("delete_reimbursement", run)

    def assign_batch(self, payload: Any) -> OperationResult:
        def run(session: Session) -> tuple[int, Any]:
            body = _body(payload)
            result = self._reimbursements(session).assign_batch(body.get("ids"))
            return 200, to_wire(result)
        return self._run("assign_batch", run)

    def post_batch(self, payload: Any) -> OperationResult:
        def run(session: Session) -> tuple[int, Any]:
            body = _body(payload)
            result = self._reimbursements(session).post_batch(
                body.get("batch_id"), body.get("payment_date"), body.get("cash_account_id"),
            )
            return 200, to_wire(result)
        return self._run("post_batch", run)

    # =========================================================================
    # Sales
    # =========================================================================

    def list_sales_summaries(self, payload: Any = None) -> OperationResult:
        def run(session: Session) -> tuple[int, Any]:
            body = _body(payload)
            rows = self._sales(session).list_summaries(
                start_date=body.get("start_date"),
                end_date=body.get("end_date"),
                channel=body.get("channel"),
                outlet_id=body.get("outlet_id"),
                limit=_page(body, "limit"),
                offset=_page(body, "offset"),
            )
            return 200, [to_wire(r) for r in rows]
        return self._run("list_sales_summaries", run)

    def get_sales_summary(self, summary_id: Any) -> OperationResult:
        return self._run(
            "get_sales_summary",
            lambda s: (200, to_wire(self._sales(s).get_summary(summary_id))),
        )

    def create_sales_summary(self, payload: Any) -> OperationResult:
        return self._run(
            "create_sales_summary",
            lambda s: (201, to_wire(self._sales(s).create_summary(**_body(payload)))),
        )

    def update_sales_summary(self, summary_id: Any, payload: Any) -> OperationResult:
        return self._run(
            "update_sales_summary",
            lambda s: (200, to_wire(self._sales(s).update_summary(summary_id, **_body(payload)))),
        )

    def delete_sales_summary(self, summary_id: Any) -> OperationResult:
        def run(session: Session) -> tuple[int, Any]:
            self._sales(session).delete_summary(summary_id)
            return 204, None
        return self._run("delete_sales_summary", run)

    def sync_pos(self, payload: Any) -> OperationResult:
        def run(session: Session) -> tuple[int, Any]:
            body = _body(payload)
            result = self._sales(session).sync_pos(
                body.get("start_date"),
                body.get("end_date"),
                body.get("outlet_id"),
                body.get("payment_method_accounts"),
            )
            return 200, to_wire(result)
        return self._run("sync_pos", run)

    def post_sales(self, payload: Any) -> OperationResult:
        def run(session: Session) -> tuple[int, Any]:
            body = _body(payload)
            result = self._sales(session).post_sales(
                body.get("sales_date"), body.get("account_id"), outlet_id=body.get("outlet_id"),
            )
            return 201, to_wire(result)
        return self._run("post_sales", run)

    # =========================================================================
    # Payroll
    # =========================================================================

    def list_payroll_entries(self, payload: Any = None) -> OperationResult:
        def run(session: Session) -> tuple[int, Any]:
            body = _body(payload)
            rows = self._payroll(session).list_entries(
                start_date=body.get("start_date"),
                end_date=body.get("end_date"),
                outlet_id=body.get("outlet_id"),
                period_type=body.get("period_type"),
                limit=_page(body, "limit"),
                offset=_page(body, "offset"),
            )
            return 200, [to_wire(r) for r in rows]
        return self._run("list_payroll_entries", run)

    def create_payroll_batch(self, payload: Any) -> OperationResult:
        def run(session: Session) -> tuple[int, Any]:
            body = _body(payload)
            rows = self._payroll(session).create_entries(
                body.get("payroll_date"),
                body.get("period_type"),
                body.get("cash_account_id"),
                body.get("employees") or [],
                period_ref=body.get("period_ref"),
                outlet_id=body.get("outlet_id"),
            )
            return 201, [to_wire(r) for r in rows]
        return self._run("create_payroll_batch", run)

    def update_payroll_entry(self, entry_id: Any, payload: Any) -> OperationResult:
        return self._run(
            "update_payroll_entry",
            lambda s: (200, to_wire(self._payroll(s).update_entry(entry_id, **_body(payload)))),
        )

    def delete_payroll_entry(self, entry_id: Any) -> OperationResult:
        def run(session: Session) -> tuple[int, Any]:
            self._payroll(session).delete_entry(entry_id)
            return 204, None
        return self._run("delete_payroll_entry", run)

    def post_payroll(self, payload: Any) -> OperationResult:
        def run(session: Session) -> tuple[int, Any]:
            body = _body(payload)
            result = self._payroll(session).post_payroll(body.get("ids"), body.get("account_id"))
            return 200, to_wire(result)
        return self._run("post_payroll", run)

    # =========================================================================
    # Ledger reads
    # =========================================================================

    def list_transactions(self, payload: Any = None) -> OperationResult:
        def run(session: Session) -> tuple[int, Any]:
            body = _body(payload)
            rows = LedgerSelector(session).list_transactions(
                start_date=optional_date(body.get("start_date"), "start_date"),
                end_date=optional_date(body.get("end_date"), "end_date"),
                line_type=_line_type(body.get("line_type")),
                account_id=optional_uuid(body.get("account_id"), "account_id"),
                cash_account_id=optional_uuid(body.get("cash_account_id"), "cash_account_id"),
                outlet_id=optional_uuid(body.get("outlet_id"), "outlet_id"),
                reimbursement_batch_id=body.get("reimbursement_batch_id"),
                search=body.get("search"),
                limit=_page(body, "limit"),
                offset=_page(body, "offset"),
            )
            return 200, [to_wire(r) for r in rows]
        return self._run("list_transactions", run)

    def get_transaction(self, transaction_code: Any) -> OperationResult:
        return self._run(
            "get_transaction",
            lambda s: (200, to_wire(LedgerSelector(s).get_by_code(str(transaction_code)))),
        )


