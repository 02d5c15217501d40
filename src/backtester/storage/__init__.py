"""Persistence of cleaned bars and generated signals."""

from backtester.storage.base import MarketDataStore, SignalStore
from backtester.storage.keys import (bar_key, signal_key, signal_row_key,
                                     timestamped_signal_key)
from backtester.storage.local import LocalMarketDataStore, LocalSignalStore
from backtester.storage.memory import (InMemoryMarketDataStore,
                                       InMemorySignalStore)

__all__ = [
    "MarketDataStore",
    "SignalStore",
    "InMemoryMarketDataStore",
    "InMemorySignalStore",
    "LocalMarketDataStore",
    "LocalSignalStore",
    "bar_key",
    "signal_key",
    "signal_row_key",
    "timestamped_signal_key",
]
