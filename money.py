"""Currency helpers.

Amounts are stored and summed as integer cents; conversion to a decimal amount
happens only where data leaves or enters the API.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from errors import ValidationError

CENT = Decimal("0.01")

Amount = Union[Decimal, float, int, str]


def to_cents(amount: Amount) -> int:
    """Convert a decimal amount (e.g. ``9.99``) into integer cents."""
    try:
        value = Decimal(str(amount))
    except ArithmeticError:
        raise ValidationError(f"Invalid amount: {amount!r}")
    if not value.is_finite():
        raise ValidationError(f"Invalid amount: {amount!r}")
    if value < 0:
        raise ValidationError("Amount must be non-negative")
    return int((value.quantize(CENT, rounding=ROUND_HALF_UP) * 100).to_integral_value())


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def as_float(cents: int) -> float:
    # JSON and GraphQL Float boundary
    return float(from_cents(cents))
