"""Price indicators used by strategies."""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence

from backtester.numeric import INDICATOR_PLACES, round_half_up


def simple_moving_average(values: Sequence[Decimal], window: int) -> list[Decimal]:
    """Calculate the simple moving average of ``values``.

    Element ``i`` of the result is the mean of ``values[i : i + window]``,
    rounded half-up to four decimal places, so the result has
    ``len(values) - window + 1`` elements (none if there are fewer values than
    the window).

    :param values: Prices, oldest first.
    :param window: Number of values per average.
    :returns: Moving averages, oldest first.
    :raises ValueError: If ``window`` is not positive.
    """
    if window <= 0:
        raise ValueError("window must be positive")
    if len(values) < window:
        return []

    divisor = Decimal(window)
    averages: list[Decimal] = []
    running = sum(values[:window], Decimal(0))
    averages.append(round_half_up(running / divisor, INDICATOR_PLACES))
    for i in range(window, len(values)):
        running += values[i] - values[i - window]
        averages.append(round_half_up(running / divisor, INDICATOR_PLACES))
    return averages
