"""
Monetary helpers shared by ingestion and reporting.

Amounts are carried as Decimal end-to-end and rounded only when exposed.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """Coerce DB/API numeric values (Decimal, float, int, str, None) to Decimal."""
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value if value.is_finite() else default
    try:
        # str() first so floats keep their shortest repr (33.335, not 33.33499...)
        result = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return default
    return result if result.is_finite() else default


def quantize_money(value: Any) -> Decimal:
    """Round to cents, half away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def round_money(value: Any) -> float:
    """JSON-ready amount rounded to 2 decimals (half away from zero)."""
    return float(quantize_money(value))
