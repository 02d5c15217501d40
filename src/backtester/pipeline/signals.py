"""Signal generation over bars already in the market data store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from backtester.exceptions import PersistenceError
from backtester.pipeline.ingest import normalize_symbols
from backtester.types import DateRange, SignalType

if TYPE_CHECKING:
    from backtester.storage.base import MarketDataStore, SignalStore
    from backtester.strategies.base import Strategy

logger = logging.getLogger(__name__)


class SignalGenerationService:
    """Run a strategy over stored bars and persist the resulting signals.

    :param bar_store: Store to read bars from.
    :param signal_store: Store to write signals to.
    """

    def __init__(self, bar_store: MarketDataStore, signal_store: SignalStore) -> None:
        self.bar_store = bar_store
        self.signal_store = signal_store

    def generate_signals(
        self,
        symbol: str,
        strategy: Strategy,
        date_range: DateRange | None = None,
    ) -> int:
        """Generate and persist signals for one symbol.

        :param symbol: Symbol to evaluate.
        :param strategy: Strategy to run.
        :param date_range: Inclusive range of stored bars to use.
        :returns: Number of signals persisted; 0 when there is no data, too
            little data, or no crossing.
        :raises PersistenceError: If the signal store rejects any row.
        """
        symbol = symbol.strip().upper()
        logger.info("Generating signals for %s using %s", symbol, strategy.strategy_id)

        bars = self.bar_store.query_bars(symbol, date_range)
        if not bars:
            logger.warning("No market data found for %s", symbol)
            return 0

        if not strategy.validate_data(bars):
            logger.warning(
                "Insufficient data for strategy: %s. Required: %d, Available: %d",
                strategy.strategy_id,
                strategy.minimum_data_points,
                len(bars),
            )
            return 0

        signals = strategy.generate_signals(bars)
        if not signals:
            logger.info("No signals generated for %s", symbol)
            return 0

        result = self.signal_store.upsert_signals(signals)
        if not result.success:
            raise PersistenceError(
                f"Failed to write {len(result.row_errors)} signal rows for symbol: {symbol}",
                result.row_errors,
            )

        logger.info("Generated and stored %d signals for %s", result.written, symbol)
        return result.written

    def generate_signals_bulk(
        self,
        symbols: Iterable[str],
        strategy: Strategy,
        date_range: DateRange | None = None,
    ) -> int:
        """Generate signals for several symbols one after another.

        :returns: Total number of signals persisted.
        """
        symbol_list = normalize_symbols(symbols)
        logger.info("Generating signals for %d symbols", len(symbol_list))
        total = sum(self.generate_signals(s, strategy, date_range) for s in symbol_list)
        logger.info("Generated %d total signals", total)
        return total

    def signal_summary(self, symbol: str, strategy_id: str) -> dict[SignalType, int]:
        """Count stored signals of one strategy for ``symbol`` by signal type."""
        return self.signal_store.summary(symbol, strategy_id)
