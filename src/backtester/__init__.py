"""Backtester package root."""

from backtester.exceptions import ConfigError, TradingError

__version__ = "0.1.0"

__all__ = ["__version__", "ConfigError", "TradingError"]
