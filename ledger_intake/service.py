"""
Expense Intake Service (``ledger_intake.service``).

Responsibility
--------------
Turns one chat message into Draft reimbursement requests: parse the text,
match each item against the inventory catalog, create the drafts in one
transaction, and compose the reply sent back to the requester.

Architecture position
---------------------
**Intake layer**.  Uses ``ExpenseMessageParser`` and ``ItemMatcher`` (pure)
and hands persistence to ``ReimbursementService.create_requests``.

Invariants enforced
-------------------
* Matched items become ``INVENTORY`` with the item reference; ambiguous and
  unmatched items become ``EXPENSE`` for review.
* ``unit_price = round(total / quantity, 2)`` and
  ``amount = round(quantity x unit_price, 2)``; when that differs from the
  stated total a warning is added.
* All drafts from one message commit together or not at all.

Failure modes
-------------
* ``ExpenseParseError`` subclasses propagate unchanged; callers may use
  ``parse_error_reply`` to answer the requester.
* ``ValidationError`` when no account is given and none is configured.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from ledger_config import get_active_config
from ledger_config.schema import LedgerConfig
from ledger_intake.matcher import (
    ItemCatalog,
    ItemMatcher,
    MatchResult,
    MatchStatus,
    StaticItemCatalog,
)
from ledger_intake.parser import DraftExpenseItem, ExpenseMessageParser
from ledger_kernel.db.types import ZERO, format_money, line_amount, round_money
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LineType
from ledger_kernel.exceptions import ExpenseParseError, NoItemsParsedError, ValidationError
from ledger_kernel.logging_config import get_logger
from ledger_modules._posting_helpers import optional_uuid, require_text
from ledger_modules.reimbursement.models import (
    NewReimbursementRequest,
    ReimbursementRequest,
    ReimbursementStatus,
)
from ledger_modules.reimbursement.service import ReimbursementService

logger = get_logger("intake.service")

_MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

FORMAT_EXAMPLE = "20 jan\ncabe merah 5kg 500k\nbawang merah 2kg 300k"


@dataclass(frozen=True)
class IntakeLine:
    """One parsed item with its match outcome and the draft created for it."""

    item: DraftExpenseItem
    match: MatchResult
    request: ReimbursementRequest


@dataclass(frozen=True)
class IntakeResult:
    expense_date: date
    requester: str
    lines: tuple[IntakeLine, ...]
    warnings: tuple[str, ...] = field(default_factory=tuple)
    reply_message: str = ""

    @property
    def requests(self) -> tuple[ReimbursementRequest, ...]:
        return tuple(line.request for line in self.lines)

    @property
    def items_created(self) -> int:
        return len(self.lines)

    def count(self, status: MatchStatus) -> int:
        return sum(1 for line in self.lines if line.match.status is status)


# ---------------------------------------------------------------------------
# Reply formatting
# ---------------------------------------------------------------------------


def format_rupiah(amount: Decimal) -> str:
    """``1500000`` -> ``"1.5Jt"``, ``500000`` -> ``"500K"``, ``750`` -> ``"750"``."""
    if amount >= 1_000_000:
        return f"{round_money(amount / 1_000_000, 1)}Jt"
    if amount >= 1_000:
        return f"{round_money(amount / 1_000, 0)}K"
    return str(round_money(amount, 0))


def format_quantity_unit(quantity: Decimal, unit: str) -> str:
    """``(5, "kg")`` -> ``"5kg"``, ``(1.5, "kg")`` -> ``"1.5kg"``; empty without a unit."""
    if not unit:
        return ""
    if quantity == quantity.to_integral_value():
        return f"{int(quantity)}{unit}"
    return f"{round_money(quantity, 1)}{unit}"


def format_reply_date(value: date) -> str:
    return f"{value.day} {_MONTH_ABBR[value.month - 1]} {value.year}"


def _line(*parts: str) -> str:
    return " ".join(p for p in parts if p)


def build_reply_message(lines: tuple[IntakeLine, ...], requester: str, expense_date: date) -> str:
    """Human-readable receipt grouped into matched, ambiguous and unmatched items."""
    matched = [ln for ln in lines if ln.match.status is MatchStatus.MATCHED]
    ambiguous = [ln for ln in lines if ln.match.status is MatchStatus.AMBIGUOUS]
    unmatched = [ln for ln in lines if ln.match.status is MatchStatus.UNMATCHED]

    out = ["✅ Reimburse diterima!\n\n"]
    if matched:
        out.append("✔️ Cocok:\n")
        for ln in matched:
            qty = format_quantity_unit(ln.item.quantity, ln.item.unit)
            out.append(
                f"• {_line(ln.match.item.name, qty)} → {ln.item.description} "
                f"({format_rupiah(ln.item.total_price)})\n"
            )
        out.append("\n")
    if ambiguous:
        out.append("⚠️ Ambigu (perlu review):\n")
        for ln in ambiguous:
            qty = format_quantity_unit(ln.item.quantity, ln.item.unit)
            names = ", ".join(c.name for c in ln.match.candidates)
            out.append(
                f"• {_line(ln.item.description, qty)} ({format_rupiah(ln.item.total_price)})\n"
                f"  Mungkin: {names}\n"
            )
        out.append("\n")
    if unmatched:
        out.append("❌ Tidak cocok:\n")
        for ln in unmatched:
            qty = format_quantity_unit(ln.item.quantity, ln.item.unit)
            out.append(f"• {_line(ln.item.description, qty)} ({format_rupiah(ln.item.total_price)})\n")
        out.append("\n")

    total = sum((ln.item.total_price for ln in lines), ZERO)
    out.append(f"Total: {len(lines)} item = {format_rupiah(total)}\n")
    out.append(f"Peminta: {requester}\n")
    out.append(f"Tanggal: {format_reply_date(expense_date)}")
    return "".join(out)


def parse_error_reply(error: ExpenseParseError) -> str:
    """Reply telling the requester the message could not be read."""
    return f"❌ Format pesan salah:\n{error}\n\nContoh format yang benar:\n{FORMAT_EXAMPLE}"


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ExpenseIntakeService:
    """
    Chat-message intake for reimbursements.

    Contract
    --------
    * ``submit_message`` either creates every draft from the message or
      none of them.
    * The item catalog is read once per message.
    """

    def __init__(
        self,
        session: Session,
        catalog: ItemCatalog | None = None,
        clock: Clock | None = None,
        config: LedgerConfig | None = None,
        reimbursements: ReimbursementService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._catalog = catalog or StaticItemCatalog()
        self._parser = ExpenseMessageParser(
            clock=self._clock,
            future_window_days=self._config.intake.future_date_window_days,
        )
        self._reimbursements = reimbursements or ReimbursementService(
            session, clock=self._clock, config=self._config,
        )

    def _matcher(self) -> ItemMatcher:
        return ItemMatcher(
            self._catalog.list_items(),
            variant_keywords=self._config.intake.variant_keywords,
            variant_weight=self._config.intake.variant_weight,
        )

    def submit_message(self, text: Any, requester: Any, account_id: Any = None) -> IntakeResult:
        """
        Parse ``text`` and create one Draft request per usable item.

        ``account_id`` defaults to the configured expense account.
        """
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("message_text is required", field="message_text")
        sender = require_text(requester, "requester")
        account = optional_uuid(account_id, "account_id") or self._config.intake.default_expense_account_id
        if account is None:
            raise ValidationError(
                "account_id is required when no default expense account is configured",
                field="account_id",
            )

        parsed = self._parser.parse(text)
        matcher = self._matcher()
        warnings = list(parsed.warnings)
        pending: list[tuple[DraftExpenseItem, MatchResult, NewReimbursementRequest]] = []

        for item in parsed.items:
            if item.quantity <= 0:
                warnings.append(f"skipped zero quantity: {item.raw_text}")
                continue
            if not item.description:
                warnings.append(f"skipped missing description: {item.raw_text}")
                continue

            match = matcher.match(item.description)
            unit_price = round_money(item.total_price / item.quantity)
            amount = line_amount(item.quantity, unit_price)
            if amount != item.total_price:
                warnings.append(
                    f"amount adjusted: {item.raw_text} "
                    f"({format_money(item.total_price)} -> {format_money(amount)})"
                )
            is_matched = match.status is MatchStatus.MATCHED
            pending.append((item, match, NewReimbursementRequest(
                expense_date=parsed.expense_date,
                description=item.description,
                quantity=item.quantity,
                unit_price=unit_price,
                amount=amount,
                line_type=LineType.INVENTORY if is_matched else LineType.EXPENSE,
                account_id=account,
                requester=sender,
                status=ReimbursementStatus.DRAFT,
                item_id=match.item.id if is_matched else None,
            )))

        if not pending:
            raise NoItemsParsedError(warnings)

        created = self._reimbursements.create_requests([p[2] for p in pending])
        lines = tuple(
            IntakeLine(item=item, match=match, request=request)
            for (item, match, _), request in zip(pending, created)
        )
        result = IntakeResult(
            expense_date=parsed.expense_date,
            requester=sender,
            lines=lines,
            warnings=tuple(warnings),
            reply_message=build_reply_message(lines, sender, parsed.expense_date),
        )
        logger.info("expense_message_accepted", extra={
            "requester": sender,
            "expense_date": parsed.expense_date,
            "items_created": result.items_created,
            "items_matched": result.count(MatchStatus.MATCHED),
            "items_ambiguous": result.count(MatchStatus.AMBIGUOUS),
            "items_unmatched": result.count(MatchStatus.UNMATCHED),
            "warning_count": len(warnings),
        })
        return result
