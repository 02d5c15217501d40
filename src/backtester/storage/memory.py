"""In-memory stores, used by tests and for dry runs."""

from __future__ import annotations

import time
from typing import Callable

from backtester.storage.base import MarketDataStore, SignalStore
from backtester.types import Bar, Signal, SignalKeyMode


class InMemoryMarketDataStore(MarketDataStore):
    """Market data store backed by a dict of dicts."""

    def __init__(self) -> None:
        self._rows: dict[str, dict[str, Bar]] = {}

    def _load(self, symbol: str) -> dict[str, Bar]:
        return dict(self._rows.get(symbol, {}))

    def _save(self, symbol: str, rows: dict[str, Bar]) -> None:
        self._rows[symbol] = dict(rows)

    def symbols(self) -> list[str]:
        return sorted(s for s, rows in self._rows.items() if rows)

    def snapshot(self) -> dict[str, dict[str, Bar]]:
        """Copy of the full store contents keyed by symbol then row key."""
        return {symbol: dict(rows) for symbol, rows in self._rows.items()}


class InMemorySignalStore(SignalStore):
    """Signal store backed by a dict of dicts."""

    def __init__(
        self,
        key_mode: SignalKeyMode = SignalKeyMode.TIMESTAMPED,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(key_mode, clock)
        self._rows: dict[str, dict[str, Signal]] = {}

    def _load(self, symbol: str) -> dict[str, Signal]:
        return dict(self._rows.get(symbol, {}))

    def _save(self, symbol: str, rows: dict[str, Signal]) -> None:
        self._rows[symbol] = dict(rows)

    def symbols(self) -> list[str]:
        return sorted(s for s, rows in self._rows.items() if rows)

    def row_keys(self, symbol: str) -> list[str]:
        """Stored row keys for ``symbol``."""
        return sorted(self._rows.get(symbol.strip().upper(), {}))
