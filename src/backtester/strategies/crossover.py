"""Simple moving-average crossover strategy."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Sequence

from backtester.exceptions import ConfigError
from backtester.numeric import parse_decimal, round_half_up, safe_ratio
from backtester.strategies.base import Strategy
from backtester.strategies.indicators import simple_moving_average
from backtester.types import (
    Signal,
    SignalMetadata,
    SignalType,
    StrategyConfig,
    StrategyId,
)

if TYPE_CHECKING:
    from backtester.types import Bar

logger = logging.getLogger(__name__)


class MovingAverageCrossoverStrategy(Strategy):
    """Simple moving average crossover strategy.

    Emits BUY when the short MA crosses above the long MA (golden cross) and
    SELL when it crosses below (death cross). A crossing only counts if the
    relative gap between the averages, rounded to four places, reaches
    ``threshold``.

    Both averages are compared on the bar where the long window ends, so
    position ``i`` of the comparison is input bar ``i + long_window - 1``.

    :param short_window: Short MA window (default: 20).
    :param long_window: Long MA window (default: 50).
    :param threshold: Minimum relative gap, e.g. 0.01 = 1% (default: 0.01).
    :raises ConfigError: If a window is not positive, short >= long or the
        threshold is not a non-negative number.
    """

    def __init__(
        self,
        short_window: int = 20,
        long_window: int = 50,
        threshold: Decimal | float | str = Decimal("0.01"),
    ) -> None:
        """Initialize moving average crossover strategy."""
        if short_window <= 0 or long_window <= 0:
            raise ConfigError("Windows must be positive integers")
        if short_window >= long_window:
            raise ConfigError("Short window must be less than long window")
        parsed = parse_decimal(threshold)
        if parsed is None:
            raise ConfigError(f"Invalid threshold: {threshold!r}")
        threshold = parsed
        if threshold < 0:
            raise ConfigError("Threshold must not be negative")

        self.short_window = int(short_window)
        self.long_window = int(long_window)
        self.threshold = threshold

    @classmethod
    def from_config(cls, config: StrategyConfig) -> MovingAverageCrossoverStrategy:
        """Build the strategy from a :class:`StrategyConfig`."""
        return cls(config.short_window, config.long_window, config.threshold)

    @property
    def strategy_id(self) -> StrategyId:
        return StrategyId(f"sma_crossover_{self.short_window}_{self.long_window}")

    @property
    def name(self) -> str:
        return f"Simple Moving Average Crossover ({self.short_window}/{self.long_window})"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "short_window": self.short_window,
            "long_window": self.long_window,
            "threshold": self.threshold,
        }

    @property
    def minimum_data_points(self) -> int:
        return self.long_window

    def describe(self) -> str:
        return (
            f"Simple Moving Average Crossover strategy using {self.short_window}-day and "
            f"{self.long_window}-day moving averages. Generates BUY signals when the "
            f"{self.short_window}-day MA crosses above the {self.long_window}-day MA "
            f"(golden cross), and SELL signals when it crosses below (death cross). "
            f"Minimum signal threshold: {self.threshold * 100:.1f}%"
        )

    def moving_averages(self, series: Sequence[Bar]) -> tuple[list[Decimal], list[Decimal]]:
        """Short and long averages aligned on the bars where the long window ends.

        :param series: Bars for one symbol, oldest first.
        :returns: ``(short, long)``, both of length ``len(series) - long_window + 1``.
        """
        closes = [bar.close for bar in series]
        short_ma = simple_moving_average(closes, self.short_window)
        long_ma = simple_moving_average(closes, self.long_window)
        offset = self.long_window - self.short_window
        return short_ma[offset:], long_ma

    def is_golden_cross(
        self,
        prev_short: Decimal,
        prev_long: Decimal,
        curr_short: Decimal,
        curr_long: Decimal,
    ) -> bool:
        """Short MA was at or below the long MA and is now strictly above it."""
        if not (prev_short <= prev_long and curr_short > curr_long):
            return False
        return safe_ratio(curr_short - curr_long, curr_long) >= self.threshold

    def is_death_cross(
        self,
        prev_short: Decimal,
        prev_long: Decimal,
        curr_short: Decimal,
        curr_long: Decimal,
    ) -> bool:
        """Short MA was at or above the long MA and is now strictly below it."""
        if not (prev_short >= prev_long and curr_short < curr_long):
            return False
        return safe_ratio(curr_long - curr_short, curr_long) >= self.threshold

    def generate_signals(self, series: Sequence[Bar]) -> list[Signal]:
        """Generate crossover signals for one symbol.

        :param series: Bars for one symbol, oldest first.
        :returns: Signals in chronological order; empty if the series is not
            valid for this strategy.
        """
        if not self.validate_data(series):
            logger.warning("Invalid market data for strategy: %s", self.strategy_id)
            return []

        logger.info(
            "Generating signals for %s with %d data points", self.strategy_id, len(series)
        )

        short_ma, long_ma = self.moving_averages(series)
        signals: list[Signal] = []

        for i in range(1, len(long_ma)):
            bar = series[i + self.long_window - 1]
            prev_short, curr_short = short_ma[i - 1], short_ma[i]
            prev_long, curr_long = long_ma[i - 1], long_ma[i]

            if self.is_golden_cross(prev_short, prev_long, curr_short, curr_long):
                signal_type = SignalType.BUY
            elif self.is_death_cross(prev_short, prev_long, curr_short, curr_long):
                signal_type = SignalType.SELL
            else:
                continue

            signals.append(self._create_signal(signal_type, bar, curr_short, curr_long))
            logger.debug("%s signal generated for %s on %s", signal_type.value, bar.symbol, bar.date)

        logger.info("Generated %d signals for symbol: %s", len(signals), series[0].symbol)
        return signals

    def _create_signal(
        self,
        signal_type: SignalType,
        bar: Bar,
        short_ma: Decimal,
        long_ma: Decimal,
    ) -> Signal:
        strength = safe_ratio(abs(short_ma - long_ma), long_ma)
        return Signal(
            strategy_id=self.strategy_id,
            symbol=bar.symbol,
            date=bar.date,
            signal_type=signal_type,
            price_at_signal=bar.close,
            strength=strength,
            metadata=SignalMetadata(
                short_window=self.short_window,
                long_window=self.long_window,
                short_ma=short_ma,
                long_ma=long_ma,
                price=round_half_up(bar.close, 2),
            ),
        )
