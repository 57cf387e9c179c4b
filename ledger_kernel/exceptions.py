"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the posting workflows (HTTP handlers, the CLI, chat intake bots)
must react to failures by category, not by parsing message text:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Every exception has a KIND (Validation / NotFound / Conflict / Internal /
     Parse) that fixes its wire status
  4. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        service.post_batch(batch_id, payment_date, cash_account_id)
    except BatchAlreadyPostedError as e:
        respond(status=e.status, code=e.code, batch=e.batch_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerError (base)
    |
    +-- ValidationError                       (400)
    |   +-- InvalidAmountError
    |   +-- AmountMismatchError
    |   +-- InvalidLineTypeError
    |   +-- InvalidPeriodTypeError
    |   +-- InvalidStatusTransitionError
    |   +-- NoReadyRequestsError
    |   +-- MissingAccountMappingError
    |   +-- NoUnpostedRecordsError
    |
    +-- NotFoundError                         (404)
    |   +-- ReimbursementNotFoundError
    |   +-- BatchNotFoundError
    |   +-- SalesSummaryNotFoundError
    |   +-- PayrollEntryNotFoundError
    |   +-- TransactionNotFoundError
    |   +-- RecordNotEditableError
    |
    +-- ConflictError                         (409)
    |   +-- BatchAlreadyPostedError
    |   +-- DuplicateSalesSummaryError
    |
    +-- InternalError                         (500)
    |   +-- SequenceCorruptionError
    |   +-- ImmutabilityViolationError
    |
    +-- ExpenseParseError                     (400, surfaced verbatim)
        +-- MissingOrInvalidDateError
        +-- NoItemsParsedError

===============================================================================
DESIGN DECISIONS
===============================================================================

1. A record that exists but is in the wrong state for an operation (posted,
   POS-sourced) is reported as NotFound, the same as an absent record.
2. Internal errors keep their structured attributes for server-side logs;
   the wire layer replaces their message with an opaque one.
3. Parse errors are user-actionable (malformed message text) and form their
   own kind so callers can echo them back to the sender.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Wire-level error taxonomy."""

    VALIDATION = "Validation"
    NOT_FOUND = "NotFound"
    CONFLICT = "Conflict"
    INTERNAL = "Internal"
    PARSE = "Parse"

    @property
    def status(self) -> int:
        return _KIND_STATUS[self]


_KIND_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INTERNAL: 500,
    ErrorKind.PARSE: 400,
}


class LedgerError(Exception):
    """
    Base exception for all ledger errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification and a ``kind`` fixing the wire status.
    """

    code: str = "LEDGER_ERROR"
    kind: ErrorKind = ErrorKind.INTERNAL

    @property
    def status(self) -> int:
        return self.kind.status


# Validation errors


class ValidationError(LedgerError):
    """Malformed or missing required field."""

    code: str = "VALIDATION_ERROR"
    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidAmountError(ValidationError):
    """A decimal value could not be parsed or is out of range."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, value: object, field: str | None = None, reason: str = "not a decimal"):
        self.value = value
        self.reason = reason
        label = field or "amount"
        super().__init__(f"Invalid {label} {value!r}: {reason}", field=field)


class AmountMismatchError(ValidationError):
    """Supplied amount is inconsistent with quantity x unit price."""

    code: str = "AMOUNT_MISMATCH"

    def __init__(self, amount: str, expected: str, field: str = "amount"):
        self.amount = amount
        self.expected = expected
        super().__init__(
            f"{field} {amount} does not match expected {expected}",
            field=field,
        )


class InvalidLineTypeError(ValidationError):
    """Line type is not allowed for the operation."""

    code: str = "INVALID_LINE_TYPE"

    def __init__(self, line_type: str, allowed: tuple[str, ...]):
        self.line_type = line_type
        self.allowed = allowed
        super().__init__(
            f"line_type must be one of {', '.join(allowed)}, got {line_type!r}",
            field="line_type",
        )


class InvalidPeriodTypeError(ValidationError):
    """Payroll period type is not Daily, Weekly or Monthly."""

    code: str = "INVALID_PERIOD_TYPE"

    def __init__(self, period_type: str):
        self.period_type = period_type
        super().__init__(
            f"period_type must be Daily, Weekly, or Monthly, got {period_type!r}",
            field="period_type",
        )


class InvalidStatusTransitionError(ValidationError):
    """Requested status change is not a valid workflow transition."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cannot change status from {from_status} to {to_status}",
            field="status",
        )


class NoReadyRequestsError(ValidationError):
    """Batch exists but none of its members is Ready."""

    code: str = "NO_READY_REQUESTS"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch {batch_id} has no Ready requests to post")


class MissingAccountMappingError(ValidationError):
    """A payment method present in synced sales has no cash account mapping."""

    code: str = "MISSING_ACCOUNT_MAPPING"

    def __init__(self, payment_methods: list[str]):
        self.payment_methods = payment_methods
        super().__init__(
            "No cash account mapping for payment method(s): "
            + ", ".join(payment_methods),
            field="payment_method_accounts",
        )


class NoUnpostedRecordsError(ValidationError):
    """A posting call found nothing to post."""

    code: str = "NO_UNPOSTED_RECORDS"

    def __init__(self, record_type: str, detail: str = ""):
        self.record_type = record_type
        self.detail = detail
        message = f"No unposted {record_type} found"
        if detail:
            message = f"{message} for {detail}"
        super().__init__(message)


# Not-found errors


class NotFoundError(LedgerError):
    """Record absent, or present but in the wrong state for the operation."""

    code: str = "NOT_FOUND"
    kind: ErrorKind = ErrorKind.NOT_FOUND


class ReimbursementNotFoundError(NotFoundError):
    code: str = "REIMBURSEMENT_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Reimbursement request not found: {request_id}")


class BatchNotFoundError(NotFoundError):
    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"No reimbursement requests found for batch {batch_id}")


class SalesSummaryNotFoundError(NotFoundError):
    code: str = "SALES_SUMMARY_NOT_FOUND"

    def __init__(self, summary_id: str):
        self.summary_id = summary_id
        super().__init__(f"Sales summary not found: {summary_id}")


class PayrollEntryNotFoundError(NotFoundError):
    code: str = "PAYROLL_ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Payroll entry not found: {entry_id}")


class TransactionNotFoundError(NotFoundError):
    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_code: str):
        self.transaction_code = transaction_code
        super().__init__(f"Cash transaction not found: {transaction_code}")


class RecordNotEditableError(NotFoundError):
    """Record exists but is posted or otherwise locked against edits."""

    code: str = "RECORD_NOT_EDITABLE"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"{entity_type} {entity_id} not found or {reason}")


# Conflict errors


class ConflictError(LedgerError):
    """Duplicate unique key or already-posted record."""

    code: str = "CONFLICT"
    kind: ErrorKind = ErrorKind.CONFLICT


class BatchAlreadyPostedError(ConflictError):
    code: str = "BATCH_ALREADY_POSTED"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch {batch_id} has already been posted")


class DuplicateSalesSummaryError(ConflictError):
    code: str = "DUPLICATE_SALES_SUMMARY"

    def __init__(self, sales_date: str, channel: str, payment_method: str, outlet_id: str | None):
        self.sales_date = sales_date
        self.channel = channel
        self.payment_method = payment_method
        self.outlet_id = outlet_id
        super().__init__(
            f"Sales summary already exists for {sales_date} / {channel} / "
            f"{payment_method} / outlet {outlet_id or '-'}"
        )


# Internal errors


class InternalError(LedgerError):
    """Store failure or data-integrity problem. Message is not shown to callers."""

    code: str = "INTERNAL_ERROR"
    kind: ErrorKind = ErrorKind.INTERNAL


class SequenceCorruptionError(InternalError):
    """A persisted code has a non-numeric suffix. Not retried."""

    code: str = "SEQUENCE_CORRUPTION"

    def __init__(self, sequence_name: str, value: str):
        self.sequence_name = sequence_name
        self.value = value
        super().__init__(
            f"Sequence {sequence_name} cannot continue from malformed code {value!r}"
        )


class ImmutabilityViolationError(InternalError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Expense message parse errors


class ExpenseParseError(LedgerError):
    """Free-text expense message could not be turned into items."""

    code: str = "EXPENSE_PARSE_ERROR"
    kind: ErrorKind = ErrorKind.PARSE


class MissingOrInvalidDateError(ExpenseParseError):
    code: str = "MISSING_OR_INVALID_DATE"

    def __init__(self, line: str | None = None):
        self.line = line
        if line is None:
            super().__init__("no date line found")
        else:
            super().__init__(f"first line must be a date (e.g. '20 jan'), got {line!r}")


class NoItemsParsedError(ExpenseParseError):
    code: str = "NO_ITEMS_PARSED"

    def __init__(self, warnings: list[str] | None = None):
        self.warnings = list(warnings or [])
        super().__init__("no items could be parsed from message")
