"""Abstract stores for cleaned bars and generated signals.

Both stores are organised per symbol. Subclasses only provide loading and
saving of one symbol's rows; keying, row checks, upsert and query logic live
here.

An upsert is all-or-nothing per call: if any row is rejected, nothing from
that call is written and the rejected rows are reported in the
:class:`~backtester.types.UpsertResult`.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections import Counter, defaultdict
from datetime import date
from typing import Callable, Sequence

from backtester.storage.keys import bar_row_key, signal_row_key
from backtester.types import (
    Bar,
    DateRange,
    Signal,
    SignalKeyMode,
    SignalType,
    UpsertResult,
)

logger = logging.getLogger(__name__)


class MarketDataStore(ABC):
    """Store of cleaned daily bars, keyed on ``(symbol, date)``."""

    @abstractmethod
    def _load(self, symbol: str) -> dict[str, Bar]:
        """Return all stored rows for ``symbol`` keyed by row key."""
        ...

    @abstractmethod
    def _save(self, symbol: str, rows: dict[str, Bar]) -> None:
        """Replace all stored rows for ``symbol``."""
        ...

    @abstractmethod
    def symbols(self) -> list[str]:
        """Symbols with at least one stored bar."""
        ...

    def check_row(self, bar: Bar) -> str | None:
        """Return an error message if the store refuses ``bar``.

        The default accepts every row. Stores with schema constraints override
        this.
        """
        return None

    def upsert_bars(self, bars: Sequence[Bar]) -> UpsertResult:
        """Insert or replace bars by ``(symbol, date)``.

        Writing the same bars twice leaves the store unchanged.

        :param bars: Bars to write (any symbols, any order).
        :returns: Number of rows written or the per-row errors.
        """
        if not bars:
            logger.warning("No market data to insert")
            return UpsertResult()

        row_errors: dict[str, str] = {}
        by_symbol: dict[str, dict[str, Bar]] = defaultdict(dict)
        for bar in bars:
            key = bar_row_key(bar)
            error = self.check_row(bar)
            if error is not None:
                row_errors[key] = error
                continue
            by_symbol[str(bar.symbol)][key] = bar

        if row_errors:
            for key, error in row_errors.items():
                logger.error("Row %s: %s", key, error)
            return UpsertResult(row_errors=row_errors)

        for symbol, new_rows in by_symbol.items():
            rows = self._load(symbol)
            rows.update(new_rows)
            self._save(symbol, rows)

        # rows sharing a key within one call collapse to the last one
        written = sum(len(new_rows) for new_rows in by_symbol.values())
        logger.info("Inserted %d market data records", written)
        return UpsertResult(written=written)

    def query_bars(self, symbol: str, date_range: DateRange | None = None) -> list[Bar]:
        """Stored bars for ``symbol`` inside ``date_range``, ascending by date.

        :param symbol: Symbol to look up (case-insensitive).
        :param date_range: Inclusive range, or None for all bars.
        """
        rows = self._load(symbol.strip().upper())
        bars = [b for b in rows.values() if date_range is None or date_range.contains(b.date)]
        return sorted(bars, key=lambda b: b.date)

    def latest_date(self, symbol: str) -> date | None:
        """Most recent stored date for ``symbol``, or None."""
        bars = self.query_bars(symbol)
        return bars[-1].date if bars else None

    def has_data(self, symbol: str) -> bool:
        """True if at least one bar is stored for ``symbol``."""
        return bool(self._load(symbol.strip().upper()))

    def count(self) -> int:
        """Total number of stored bars."""
        return sum(len(self._load(s)) for s in self.symbols())


class SignalStore(ABC):
    """Store of generated signals.

    :param key_mode: Row key scheme, see :class:`SignalKeyMode`.
    :param clock: Wall-clock time source used by the timestamped scheme.
    """

    def __init__(
        self,
        key_mode: SignalKeyMode = SignalKeyMode.TIMESTAMPED,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.key_mode = SignalKeyMode(key_mode)
        self._clock = clock

    @abstractmethod
    def _load(self, symbol: str) -> dict[str, Signal]:
        """Return all stored rows for ``symbol`` keyed by row key."""
        ...

    @abstractmethod
    def _save(self, symbol: str, rows: dict[str, Signal]) -> None:
        """Replace all stored rows for ``symbol``."""
        ...

    @abstractmethod
    def symbols(self) -> list[str]:
        """Symbols with at least one stored signal."""
        ...

    def check_row(self, signal: Signal) -> str | None:
        """Return an error message if the store refuses ``signal``."""
        return None

    def row_key(self, signal: Signal) -> str:
        return signal_row_key(signal, self.key_mode, self._clock)

    def upsert_signals(self, signals: Sequence[Signal]) -> UpsertResult:
        """Write signals under the configured key scheme.

        :param signals: Signals to write.
        :returns: Number of rows written or the per-row errors.
        """
        if not signals:
            logger.warning("No trading signals to insert")
            return UpsertResult()

        row_errors: dict[str, str] = {}
        by_symbol: dict[str, dict[str, Signal]] = defaultdict(dict)
        for signal in signals:
            key = self.row_key(signal)
            error = self.check_row(signal)
            if error is not None:
                row_errors[key] = error
                continue
            by_symbol[str(signal.symbol)][key] = signal

        if row_errors:
            for key, error in row_errors.items():
                logger.error("Row %s: %s", key, error)
            return UpsertResult(row_errors=row_errors)

        for symbol, new_rows in by_symbol.items():
            rows = self._load(symbol)
            rows.update(new_rows)
            self._save(symbol, rows)

        written = sum(len(new_rows) for new_rows in by_symbol.values())
        logger.info("Inserted %d trading signals", written)
        return UpsertResult(written=written)

    def query_signals(self, symbol: str, strategy_id: str | None = None) -> list[Signal]:
        """Stored signals for ``symbol``, ascending by date.

        :param symbol: Symbol to look up (case-insensitive).
        :param strategy_id: Only return signals of this strategy.
        """
        rows = self._load(symbol.strip().upper())
        signals = [
            s for s in rows.values() if strategy_id is None or s.strategy_id == strategy_id
        ]
        return sorted(signals, key=lambda s: s.date)

    def summary(self, symbol: str, strategy_id: str) -> dict[SignalType, int]:
        """Count stored signals of one strategy by signal type."""
        counts = Counter(s.signal_type for s in self.query_signals(symbol, strategy_id))
        return {signal_type: counts.get(signal_type, 0) for signal_type in SignalType}

    def count(self) -> int:
        """Total number of stored signal rows."""
        return sum(len(self._load(s)) for s in self.symbols())
