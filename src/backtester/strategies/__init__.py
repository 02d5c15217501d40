"""Strategy module for signal strategy implementations."""

from backtester.strategies.base import Strategy
from backtester.strategies.crossover import MovingAverageCrossoverStrategy
from backtester.strategies.indicators import simple_moving_average
from backtester.strategies.registry import (STRATEGIES, build_strategy,
                                            register_strategy)

__all__ = [
    # Base
    "Strategy",
    # Implementations
    "MovingAverageCrossoverStrategy",
    # Indicators
    "simple_moving_average",
    # Registry
    "STRATEGIES",
    "build_strategy",
    "register_strategy",
]
