from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal | None:
    """
    Coerce a numeric value to Decimal without passing through binary floats.

    Floats are converted via their shortest repr, so 5.5 becomes Decimal("5.5")
    rather than Decimal(5.5)'s 5.5000000000000000000...; None passes through.
    """
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("boolean is not a numeric amount")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"not a decimal amount: {value!r}")


def format_amount(value: Decimal | None) -> str | None:
    """Two-place string for JSON output (e.g. "36.50")."""
    if value is None:
        return None
    return str(Decimal(value).quantize(CENT))
