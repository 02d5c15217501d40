"""Base strategy class that all signal strategies must implement.

Strategies are pure: they receive an ordered, immutable bar series for one
symbol and return the signals it implies. They hold no state between calls.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Sequence

from backtester.types import StrategyId

if TYPE_CHECKING:
    from backtester.types import Bar, Signal


class Strategy(ABC):
    """Abstract capability interface for signal strategies.

    All strategies must implement `generate_signals`, `strategy_id`,
    `name`, `parameters`, `minimum_data_points` and `describe`. The default
    `validate_data` checks length and date ordering and can be overridden.

    Example usage::

        class AlwaysBuyStrategy(Strategy):
            @property
            def strategy_id(self) -> StrategyId:
                return StrategyId("always_buy")

            ...

            def generate_signals(self, series: Sequence[Bar]) -> list[Signal]:
                last = series[-1]
                return [Signal(strategy_id=self.strategy_id, symbol=last.symbol, ...)]
    """

    @property
    @abstractmethod
    def strategy_id(self) -> StrategyId:
        """Unique identifier, e.g. ``sma_crossover_20_50``."""
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable strategy name."""
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """Strategy parameters keyed by name."""
        ...

    @property
    @abstractmethod
    def minimum_data_points(self) -> int:
        """Fewest bars the strategy needs to produce anything."""
        ...

    @abstractmethod
    def generate_signals(self, series: Sequence[Bar]) -> list[Signal]:
        """Evaluate the strategy over a bar series.

        :param series: Bars for one symbol, oldest first.
        :returns: Signals in chronological order (can be empty).
        """
        ...

    @abstractmethod
    def describe(self) -> str:
        """Longer description of how the strategy works."""
        ...

    def validate_data(self, series: Sequence[Bar]) -> bool:
        """Check that the strategy can be applied to ``series``.

        The series must be non-empty, hold at least `minimum_data_points` bars
        and be sorted ascending by date. Ordering is checked against the
        immediate predecessor only; equal consecutive dates are accepted.

        :param series: Bars for one symbol.
        :returns: True if the series is usable.
        """
        if not series:
            return False

        if len(series) < self.minimum_data_points:
            return False

        for previous, current in zip(series, series[1:]):
            if current.date < previous.date:
                return False

        return True

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.parameters!r})"
