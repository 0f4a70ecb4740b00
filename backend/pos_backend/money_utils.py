"""
Money helpers.

All monetary values are decimal.Decimal in memory and Numeric(12, 2) in
the database. Floats coming from JSON are converted through str() so
0.1 stays 0.1.
"""
from __future__ import annotations

from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value) -> Decimal:
    """Convert a DB or JSON number to Decimal. None becomes 0."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidOperation("boolean is not a number")
    return Decimal(str(value))


def quantize_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value) -> str | None:
    """Two-decimal string for JSON responses."""
    if value is None:
        return None
    return str(quantize_money(value))


def round_half_up_to_unit(value) -> Decimal:
    """
    Round to a whole currency unit: a fractional part below 0.5 rounds
    down, 0.5 and above rounds up.

    Cents are discarded. Stock valuation prices depend on this exact
    rule, so do not swap in banker's rounding.
    """
    d = to_decimal(value)
    integer_part = d.to_integral_value(rounding=ROUND_FLOOR)
    if d - integer_part < Decimal("0.5"):
        return integer_part
    return integer_part + 1
