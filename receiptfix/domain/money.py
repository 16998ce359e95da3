"""Money helpers shared by the correction core and its adapters."""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")


def to_decimal(value: object) -> Decimal | None:
    """Coerce a JSON-ish number/string into a Decimal; None for blanks and garbage."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        # str() keeps the shortest repr, so 9.49 stays 9.49 rather than 9.4900000000000002131...
        result = Decimal(str(value))
        return result if result.is_finite() else None
    if isinstance(value, str):
        text = value.strip().replace("$", "").replace(",", "")
        if not text:
            return None
        try:
            result = Decimal(text)
        except InvalidOperation:
            return None
        return result if result.is_finite() else None
    return None


def round_currency(value: Decimal) -> Decimal:
    """Round to cents, half away from zero."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def same_money(a: Decimal | None, b: Decimal | None) -> bool:
    """Compare two optional amounts after rounding both to cents."""
    if a is None and b is None:
        return True
    if a is None or b is None:
        return False
    return round_currency(a) == round_currency(b)


def sum_money(values: Iterable[Decimal | None]) -> Decimal | None:
    """Sum the known amounts; None when nothing is known."""
    known = [value for value in values if value is not None]
    if not known:
        return None
    return round_currency(sum(known, Decimal("0")))


def is_whole(value: Decimal) -> bool:
    return value == value.to_integral_value()


def format_money(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return f"{round_currency(value):.2f}"
