"""Name-based lookup of strategy implementations."""

from __future__ import annotations

from typing import Callable

from backtester.exceptions import ConfigError, StrategyError
from backtester.strategies.base import Strategy
from backtester.strategies.crossover import MovingAverageCrossoverStrategy
from backtester.types import StrategyConfig

StrategyFactory = Callable[[StrategyConfig], Strategy]

STRATEGIES: dict[str, StrategyFactory] = {
    "sma_crossover": MovingAverageCrossoverStrategy.from_config,
}


def register_strategy(name: str, factory: StrategyFactory) -> None:
    """Make a strategy available to :func:`build_strategy` under ``name``."""
    STRATEGIES[name] = factory


def build_strategy(config: StrategyConfig) -> Strategy:
    """Instantiate the strategy named in ``config``.

    :param config: Strategy configuration.
    :returns: Strategy instance.
    :raises ConfigError: If the name is unknown or the parameters are invalid.
    :raises StrategyError: If the registered factory does not return a strategy.
    """
    factory = STRATEGIES.get(config.name)
    if factory is None:
        raise ConfigError(
            f"Unknown strategy '{config.name}'. "
            f"Available strategies: {', '.join(sorted(STRATEGIES))}"
        )
    strategy = factory(config)
    if not isinstance(strategy, Strategy):
        raise StrategyError(
            f"Factory for strategy '{config.name}' returned "
            f"{type(strategy).__name__}, not a Strategy"
        )
    return strategy
