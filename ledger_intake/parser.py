"""
Expense Message Parser (``ledger_intake.parser``).

Responsibility
--------------
Turns a free-text expense report, as typed into a chat app, into an expense
date plus a list of draft items::

    20 jan
    cabe merah tanjung 5kg 500k
    bawang 2kg 300rb
    gas 1.5jt

Architecture position
---------------------
**Intake layer** -- pure functions, zero I/O.  The current date comes from
an injected Clock.

Algorithm
---------
1. Split into non-empty, trimmed lines.
2. The first line must be ``<day> <month>`` with an Indonesian month name or
   abbreviation.  A date more than ``future_window_days`` after today is
   taken to be from the previous year.
3. Every later line is lowercased, split on whitespace, and each token is
   classified as ``PRICE`` (``500k``, ``300rb``, ``1.5jt``), ``QUANTITY_UNIT``
   (``5kg``, ``2ikat``) or ``TEXT``.  The first price and the first
   quantity on a line are used; every other token becomes description.
4. A line without a price is recorded as a warning and skipped.

Failure modes
-------------
* ``MissingOrInvalidDateError`` -- empty message, or first line not a date.
* ``NoItemsParsedError`` -- no line produced an item.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum

from ledger_kernel.db.types import MAX_MONEY, MAX_QUANTITY, round_money, round_quantity
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import MissingOrInvalidDateError, NoItemsParsedError
from ledger_kernel.logging_config import get_logger

logger = get_logger("intake.parser")

MONTHS: dict[str, int] = {
    "jan": 1, "januari": 1,
    "feb": 2, "februari": 2,
    "mar": 3, "maret": 3,
    "apr": 4, "april": 4,
    "mei": 5,
    "jun": 6, "juni": 6,
    "jul": 7, "juli": 7,
    "agu": 8, "ags": 8, "agustus": 8,
    "sep": 9, "september": 9,
    "okt": 10, "oktober": 10,
    "nov": 11, "november": 11,
    "des": 12, "desember": 12,
}

# Checked in order: "jt" before "k" so "1jt" is never read as "1j" thousands
PRICE_SUFFIXES: tuple[tuple[str, Decimal], ...] = (
    ("jt", Decimal(1_000_000)),
    ("rb", Decimal(1_000)),
    ("k", Decimal(1_000)),
)

QUANTITY_UNITS: frozenset[str] = frozenset({
    "kg", "g", "l", "ml",
    "pcs", "bks", "pack", "box",
    "ikat", "iket", "lbr", "btl",
    "ltr", "buah", "bh", "lembar",
    "sdm", "sdt", "ekor", "btr",
})

DEFAULT_FUTURE_WINDOW_DAYS = 30

_NUMBER = re.compile(r"^(?:\d+\.?\d*|\.\d+)$", re.ASCII)
_LEADING_NUMBER = re.compile(r"^[\d.]+", re.ASCII)


class TokenKind(str, Enum):
    PRICE = "Price"
    QUANTITY_UNIT = "QuantityUnit"
    TEXT = "Text"


@dataclass(frozen=True)
class Token:
    """One classified token of an item line."""

    kind: TokenKind
    text: str
    value: Decimal | None = None
    unit: str = ""


@dataclass(frozen=True)
class DraftExpenseItem:
    """One parsed item.  Lives only until it becomes a reimbursement request."""

    raw_text: str
    description: str
    quantity: Decimal
    unit: str
    total_price: Decimal


@dataclass(frozen=True)
class ParsedMessage:
    expense_date: date
    items: tuple[DraftExpenseItem, ...]
    warnings: tuple[str, ...] = field(default_factory=tuple)


def _to_number(text: str) -> Decimal | None:
    if not _NUMBER.match(text):
        return None
    return Decimal(text)


def parse_price(token: str) -> Decimal | None:
    """``"500k"`` -> 500000, ``"1.5jt"`` -> 1500000, ``"300rb"`` -> 300000."""
    token = token.lower()
    for suffix, multiplier in PRICE_SUFFIXES:
        if token.endswith(suffix):
            number = _to_number(token[: -len(suffix)])
            if number is not None and number * multiplier < MAX_MONEY:
                return round_money(number * multiplier)
    return None


def parse_quantity_unit(token: str) -> tuple[Decimal, str] | None:
    """``"5kg"`` -> (5, "kg").  Only known units match; ``"5"`` alone does not."""
    match = _LEADING_NUMBER.match(token)
    if match is None or match.end() == len(token):
        return None
    unit = token[match.end():]
    if unit not in QUANTITY_UNITS:
        return None
    number = _to_number(match.group())
    if number is None or number >= MAX_QUANTITY:
        return None
    return round_quantity(number), unit


def classify_token(token: str) -> Token:
    price = parse_price(token)
    if price is not None:
        return Token(TokenKind.PRICE, token, value=price)
    quantity = parse_quantity_unit(token)
    if quantity is not None:
        return Token(TokenKind.QUANTITY_UNIT, token, value=quantity[0], unit=quantity[1])
    return Token(TokenKind.TEXT, token)


def tokenize(line: str) -> list[Token]:
    return [classify_token(tok) for tok in line.lower().split()]


def parse_date_line(
    line: str,
    today: date,
    future_window_days: int = DEFAULT_FUTURE_WINDOW_DAYS,
) -> date | None:
    """``"20 jan"`` -> the 20th of January this year (or last year, see module doc)."""
    parts = line.lower().split()
    if len(parts) != 2 or not (parts[0].isascii() and parts[0].isdigit()):
        return None
    day = int(parts[0])
    month = MONTHS.get(parts[1])
    if month is None or not 1 <= day <= 31:
        return None
    try:
        parsed = date(today.year, month, day)
        if parsed > today + timedelta(days=future_window_days):
            # Year-end messages sent in January
            parsed = date(today.year - 1, month, day)
    except ValueError:
        # No such day in that month (31 apr, 29 feb outside a leap year)
        return None
    return parsed


def parse_item_line(line: str) -> DraftExpenseItem | None:
    """Item for ``line``, or None when it carries no price."""
    price: Decimal | None = None
    quantity: Decimal | None = None
    unit = ""
    description: list[str] = []

    for token in tokenize(line):
        if token.kind is TokenKind.PRICE and price is None:
            price = token.value
        elif token.kind is TokenKind.QUANTITY_UNIT and quantity is None:
            quantity = token.value
            unit = token.unit
        else:
            description.append(token.text)

    if price is None:
        return None
    return DraftExpenseItem(
        raw_text=line,
        description=" ".join(description),
        quantity=quantity if quantity is not None else Decimal("1.0000"),
        unit=unit,
        total_price=price,
    )


class ExpenseMessageParser:
    """Line-oriented recovery parser for free-text expense reports."""

    def __init__(
        self,
        clock: Clock | None = None,
        future_window_days: int = DEFAULT_FUTURE_WINDOW_DAYS,
    ):
        self._clock = clock or SystemClock()
        self._future_window_days = future_window_days

    def parse(self, text: str) -> ParsedMessage:
        lines = [line.strip() for line in text.splitlines()]
        lines = [line for line in lines if line]
        if not lines:
            raise MissingOrInvalidDateError()

        expense_date = parse_date_line(lines[0], self._clock.today(), self._future_window_days)
        if expense_date is None:
            raise MissingOrInvalidDateError(lines[0])

        items: list[DraftExpenseItem] = []
        warnings: list[str] = []
        for line in lines[1:]:
            item = parse_item_line(line)
            if item is None:
                warnings.append(f"skipped: {line}")
                continue
            items.append(item)

        if not items:
            logger.info(
                "expense_message_rejected",
                extra={"reason": "no_items", "warnings": warnings},
            )
            raise NoItemsParsedError(warnings)

        logger.info(
            "expense_message_parsed",
            extra={
                "expense_date": expense_date.isoformat(),
                "item_count": len(items),
                "warning_count": len(warnings),
            },
        )
        return ParsedMessage(
            expense_date=expense_date,
            items=tuple(items),
            warnings=tuple(warnings),
        )


def parse_message(text: str, clock: Clock | None = None) -> ParsedMessage:
    """Parse with default settings."""
    return ExpenseMessageParser(clock).parse(text)
