# Overview: Decimal helpers for GBP amounts and percentages.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """
    Coerce JSON/DB numerics to Decimal without binary float noise.

    Floats go through str() so 16.99 stays 16.99.
    """
    if value is None:
        raise InvalidOperation("cannot convert None to Decimal")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidOperation("booleans are not amounts")
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(str(value).strip())


def round_money(value: Any) -> Decimal:
    """Nearest-penny rounding, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def money_float(value: Any) -> float | None:
    """JSON representation of an amount (None passes through)."""
    if value is None:
        return None
    return float(round_money(value))


def percent_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(to_decimal(value))
