"""Validation and cleaning of raw daily bars.

The cleaner is a pure transform: it never mutates its input, never raises on a
bad record, and returns a new list of :class:`~backtester.types.Bar` sorted by
date. Rejected records are logged and reported so callers can count them.
"""

from __future__ import annotations

import datetime as dt
import logging
from decimal import Decimal
from typing import Iterable, Union

from backtester.exceptions import DataValidationError
from backtester.numeric import PRICE_PLACES, round_half_up
from backtester.types import Bar, FrozenModel, RawBar, Symbol

logger = logging.getLogger(__name__)

PRICE_FIELDS = ("open", "high", "low", "close", "adjusted_close")

BarLike = Union[RawBar, Bar]


class Rejection(FrozenModel):
    """A record dropped by the cleaner.

    :param symbol: Symbol of the record as delivered (may be None).
    :param date: Date of the record as delivered (may be None).
    :param reason: Why the record was rejected.
    """

    symbol: str | None = None
    date: dt.date | None = None
    reason: str


class CleaningResult(FrozenModel):
    """Output of :func:`clean_bars_detailed`.

    :param bars: Surviving bars, ascending by date.
    :param rejections: Records that were dropped.
    """

    bars: list[Bar]
    rejections: list[Rejection]


def validate_bar(raw: BarLike, today: dt.date | None = None) -> None:
    """Check a single record against the bar invariants.

    :param raw: Record to check.
    :param today: Reference "current date"; bars after it are rejected.
    :raises DataValidationError: With the first rule the record breaks.
    """
    today = today or dt.date.today()

    if raw.symbol is None or not str(raw.symbol).strip():
        raise DataValidationError("missing symbol")
    if raw.date is None:
        raise DataValidationError("missing date")
    if raw.date > today:
        raise DataValidationError(f"future date {raw.date}")

    for field in PRICE_FIELDS:
        price = getattr(raw, field)
        if price is None:
            raise DataValidationError(f"missing {field}")
        if price <= 0:
            raise DataValidationError(f"non-positive {field} {price}")

    if raw.volume is None:
        raise DataValidationError("missing volume")
    if raw.volume < 0:
        raise DataValidationError(f"negative volume {raw.volume}")

    if raw.high < raw.low:
        raise DataValidationError("high < low")
    if raw.high < raw.open or raw.high < raw.close:
        raise DataValidationError("high < open/close")
    if raw.low > raw.open or raw.low > raw.close:
        raise DataValidationError("low > open/close")


def normalize_bar(raw: BarLike) -> Bar:
    """Build a clean bar from an already validated record.

    The symbol is trimmed and upper-cased, every price is rounded to two
    decimal places half-up.

    :param raw: Record that passed :func:`validate_bar`.
    :returns: New immutable bar.
    :raises DataValidationError: If rounding drives a price to zero.
    """
    prices: dict[str, Decimal] = {}
    for field in PRICE_FIELDS:
        rounded = round_half_up(getattr(raw, field), PRICE_PLACES)
        if rounded <= 0:
            raise DataValidationError(f"{field} rounds to zero")
        prices[field] = rounded

    return Bar(
        symbol=Symbol(str(raw.symbol).strip().upper()),
        date=raw.date,
        volume=int(raw.volume),
        **prices,
    )


def clean_bars_detailed(
    raw_bars: Iterable[BarLike],
    today: dt.date | None = None,
) -> CleaningResult:
    """Validate, normalize and sort raw bars, keeping track of rejections.

    :param raw_bars: Records as delivered by a quote source, in any order.
    :param today: Reference "current date" (defaults to the local date).
    :returns: Clean bars sorted ascending by date plus the rejections.
    """
    today = today or dt.date.today()
    bars: list[Bar] = []
    rejections: list[Rejection] = []

    for raw in raw_bars:
        try:
            validate_bar(raw, today)
            bars.append(normalize_bar(raw))
        except DataValidationError as e:
            logger.warning(
                "Rejected bar for symbol %s on %s: %s", raw.symbol, raw.date, e
            )
            rejections.append(
                Rejection(
                    symbol=None if raw.symbol is None else str(raw.symbol),
                    date=raw.date,
                    reason=str(e),
                )
            )

    # sorted() is stable: bars sharing a date keep their input order
    bars = sorted(bars, key=lambda b: b.date)

    if rejections:
        logger.info("Cleaning kept %d bars and rejected %d", len(bars), len(rejections))

    return CleaningResult(bars=bars, rejections=rejections)


def clean_bars(raw_bars: Iterable[BarLike], today: dt.date | None = None) -> list[Bar]:
    """Validate, normalize and sort raw bars.

    :param raw_bars: Records as delivered by a quote source.
    :param today: Reference "current date" (defaults to the local date).
    :returns: Clean bars sorted ascending by date (possibly empty).
    """
    return clean_bars_detailed(raw_bars, today).bars


__all__ = [
    "PRICE_FIELDS",
    "Rejection",
    "CleaningResult",
    "validate_bar",
    "normalize_bar",
    "clean_bars_detailed",
    "clean_bars",
]
