"""Decimal helpers for monetary arithmetic.

Amounts are persisted as floats on aggregates but every calculation goes
through ``Decimal`` quantized to the currency minor unit with banker's
rounding, so stored components always add up exactly.
"""

from decimal import ROUND_HALF_EVEN, Decimal

MINOR_UNIT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize(value) -> Decimal:
    """Round to the minor unit, half to even."""
    return to_decimal(value).quantize(MINOR_UNIT, rounding=ROUND_HALF_EVEN)


def percent_of(amount, percent) -> Decimal:
    return quantize(to_decimal(amount) * to_decimal(percent) / HUNDRED)


def to_float(value) -> float:
    return float(quantize(value))
