"""
Module: ledger_kernel.db.types
Responsibility: Annotated column types and the decimal helpers every component
    uses for quantities and money.  Centralizes precision, parsing, rounding
    and canonical string output so that models, services and the wire layer
    agree on one representation.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and outer layers.  MUST NOT import from any of them.

Invariants enforced:
    - No floats.  parse_decimal() rejects float and bool input; decimals
      travel as strings on the wire.
    - Persisted precision: quantity 4 decimal places, unit price and amount
      2 decimal places.  round_quantity() / round_money() are the ONLY
      sanctioned rounding functions and always round half-up.
    - line_amount() is the single definition of quantity x unit price.

Failure modes:
    - InvalidAmountError on malformed, non-finite, or float input.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from ledger_kernel.exceptions import InvalidAmountError

# Annotated column types, resolved to SQL types by Base.type_annotation_map
# Quantity: Numeric(12, 4)
Quantity = Annotated[Decimal, "quantity"]

# Unit price / amount: Numeric(12, 2)
Money = Annotated[Decimal, "money"]

# Descriptions: String(1000)
LongText = Annotated[str, "long_text"]


QUANTITY_DECIMAL_PLACES = 4
MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")

# Column limits: Numeric(12, 2) and Numeric(12, 4)
MAX_MONEY = Decimal(10) ** 10
MAX_QUANTITY = Decimal(10) ** 8


def parse_decimal(value: object, field: str | None = None) -> Decimal:
    """
    Parse a wire value into a finite Decimal.

    Accepts ``Decimal``, ``int``, or a decimal string (surrounding
    whitespace ignored).  Float and bool are refused so binary rounding
    never reaches the ledger.

    Raises:
        InvalidAmountError: if the value is not a finite decimal.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmountError(value, field=field, reason="floating point not accepted")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise InvalidAmountError(value, field=field, reason="empty")
        try:
            result = Decimal(text)
        except InvalidOperation:
            raise InvalidAmountError(value, field=field) from None
    else:
        raise InvalidAmountError(value, field=field)

    if not result.is_finite():
        raise InvalidAmountError(value, field=field, reason="not finite")
    return result


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the persisted precision (half-up).

    This is the ONLY sanctioned rounding function for money.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def round_quantity(value: Decimal) -> Decimal:
    """Round a quantity to 4 decimal places (half-up)."""
    return round_money(value, QUANTITY_DECIMAL_PLACES)


def parse_money(value: object, field: str | None = None) -> Decimal:
    """Parse and round to 2 decimal places."""
    result = parse_decimal(value, field=field)
    if abs(result) >= MAX_MONEY:
        raise InvalidAmountError(value, field=field, reason="out of range")
    return round_money(result)


def parse_quantity(value: object, field: str | None = None) -> Decimal:
    """Parse and round to 4 decimal places."""
    result = parse_decimal(value, field=field)
    if abs(result) >= MAX_QUANTITY:
        raise InvalidAmountError(value, field=field, reason="out of range")
    return round_quantity(result)


def line_amount(quantity: Decimal, unit_price: Decimal) -> Decimal:
    """quantity x unit price, rounded to 2 decimal places."""
    return round_money(quantity * unit_price)


def format_money(value: Decimal) -> str:
    """Canonical wire string for a money value, e.g. ``"500000.00"``."""
    return str(round_money(value))


def format_quantity(value: Decimal) -> str:
    """Canonical wire string for a quantity, e.g. ``"5.0000"``."""
    return str(round_quantity(value))
