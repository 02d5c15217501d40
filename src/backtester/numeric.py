"""Decimal helpers shared by the cleaner and the indicators."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

PRICE_PLACES = 2
INDICATOR_PLACES = 4


def to_decimal(value: object) -> Decimal:
    """Convert ints, strings and floats to Decimal without binary artefacts.

    Floats and other numeric scalars (e.g. numpy types from pandas frames) go
    through ``str`` so ``0.1`` becomes ``Decimal("0.1")``.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, str)):
        return Decimal(value)
    return Decimal(str(value))


def parse_decimal(value: object) -> Decimal | None:
    """Parse a provider value into a finite Decimal, or None if impossible.

    Empty strings, NaN and infinities all map to None.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        result = to_decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


def parse_int(value: object) -> int | None:
    """Parse a provider volume into an int, or None if impossible."""
    parsed = parse_decimal(value)
    if parsed is None or parsed != parsed.to_integral_value():
        return None
    return int(parsed)


def round_half_up(value: Decimal, places: int) -> Decimal:
    """Round ``value`` to ``places`` decimal places, ties away from zero."""
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def safe_ratio(numerator: Decimal, denominator: Decimal, places: int = INDICATOR_PLACES) -> Decimal:
    """Divide and round half-up; a zero denominator yields zero."""
    if denominator == 0:
        return Decimal(0).quantize(Decimal(1).scaleb(-places))
    return round_half_up(numerator / denominator, places)


__all__ = [
    "PRICE_PLACES",
    "INDICATOR_PLACES",
    "to_decimal",
    "parse_decimal",
    "parse_int",
    "round_half_up",
    "safe_ratio",
]
