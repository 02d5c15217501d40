"""Ingest pipeline: fetch, clean, generate signals and persist, per symbol.

This module provides the main orchestration for ingest runs.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Iterable

from backtester.data.limiter import NullRateLimiter, RateLimiter
from backtester.data.normalize import clean_bars_detailed
from backtester.exceptions import (
    PersistenceError,
    RateLimitError,
    StorageError,
    TradingError,
    TransportError,
)
from backtester.strategies.registry import build_strategy
from backtester.types import (
    Bar,
    OutputSize,
    PipelineConfig,
    RunId,
    RunReport,
    RunStatus,
    Signal,
    Symbol,
    SymbolOutcome,
    SymbolStatus,
)

if TYPE_CHECKING:
    from backtester.data.sources import QuoteSource
    from backtester.storage.base import MarketDataStore, SignalStore
    from backtester.strategies.base import Strategy

logger = logging.getLogger(__name__)


def normalize_symbols(symbols: Iterable[str]) -> list[Symbol]:
    """Trim, upper-case and de-duplicate symbols, keeping first occurrences."""
    seen: set[str] = set()
    result: list[Symbol] = []
    for raw in symbols:
        symbol = raw.strip().upper()
        if symbol and symbol not in seen:
            seen.add(symbol)
            result.append(Symbol(symbol))
    return result


class Pipeline:
    """Ingest pipeline that processes symbols strictly one at a time.

    Example usage::

        from backtester.data import AlphaVantageQuoteSource, FixedIntervalRateLimiter
        from backtester.pipeline import Pipeline
        from backtester.storage import InMemoryMarketDataStore, InMemorySignalStore
        from backtester.types import PipelineConfig, StrategyConfig

        pipeline = Pipeline(
            source=AlphaVantageQuoteSource({"api_key": "..."}),
            bar_store=InMemoryMarketDataStore(),
            signal_store=InMemorySignalStore(),
            config=PipelineConfig(strategy=StrategyConfig(short_window=20, long_window=50)),
            rate_limiter=FixedIntervalRateLimiter(calls_per_minute=5),
        )
        report = pipeline.run(["AAPL", "MSFT"])
        print(report.summary())

    :param source: Quote source to fetch from.
    :param bar_store: Store receiving cleaned bars.
    :param signal_store: Store receiving signals.
    :param config: Explicit pipeline configuration.
    :param rate_limiter: Limiter consulted before every fetch (default: none).
    :param strategy: Strategy instance; overrides ``config.strategy`` if given.
    :param today: Reference "current date" for the cleaner.
    :raises ConfigError: If the source is not usable or the strategy is invalid.
    """

    def __init__(
        self,
        source: QuoteSource,
        bar_store: MarketDataStore,
        signal_store: SignalStore,
        config: PipelineConfig | None = None,
        rate_limiter: RateLimiter | None = None,
        strategy: Strategy | None = None,
        today: date | None = None,
    ) -> None:
        """Initialize pipeline and check the source configuration."""
        self.source = source
        self.bar_store = bar_store
        self.signal_store = signal_store
        self.config = config or PipelineConfig()
        self.rate_limiter = rate_limiter or NullRateLimiter()
        self.today = today
        self.status = RunStatus.INITIALIZED

        if strategy is None and self.config.strategy is not None:
            strategy = build_strategy(self.config.strategy)
        self.strategy = strategy

        # Credentials are checked before any symbol is processed
        self.source.check_configuration()

    def _set_status(self, status: RunStatus, symbol: str | None = None) -> None:
        self.status = status
        if symbol is not None:
            logger.debug("Run status %s for %s", status.value, symbol)

    def run(
        self,
        symbols: Iterable[str],
        size: OutputSize | str | None = None,
        run_id: str | None = None,
    ) -> RunReport:
        """Process ``symbols`` sequentially.

        Transport failures, empty fetches and symbols whose bars are all
        rejected are skipped. A provider rate-limit response or a store
        rejecting rows fails the run, as does any other backtester error.
        Symbols already written stay written.

        :param symbols: Symbols to ingest.
        :param size: History depth; defaults to ``config.output_size``.
        :param run_id: Optional run ID (auto-generated if not provided).
        :returns: Report of the run.
        """
        report = RunReport(
            run_id=RunId(run_id or self.new_run_id()),
            started_at=datetime.now(timezone.utc),
        )
        symbol_list = normalize_symbols(symbols)
        size = OutputSize(size) if size is not None else self.config.output_size
        logger.info("Starting run %s for %d symbols", report.run_id, len(symbol_list))

        for symbol in symbol_list:
            outcome = SymbolOutcome(symbol=symbol)
            report.symbols.append(outcome)
            try:
                self._process_symbol(symbol, size, outcome)
            except RateLimitError as e:
                logger.error("Rate limit hit while fetching %s, aborting run: %s", symbol, e)
                self._fail(report, outcome, e)
                break
            except (PersistenceError, StorageError) as e:
                logger.error("Failed to persist data for %s, aborting run: %s", symbol, e)
                self._fail(report, outcome, e)
                break
            except TradingError as e:
                logger.error("Unexpected error while processing %s, aborting run: %s", symbol, e)
                self._fail(report, outcome, e)
                break
        else:
            self._set_status(RunStatus.COMPLETED)
            report.status = RunStatus.COMPLETED

        report.finished_at = datetime.now(timezone.utc)
        logger.info(
            "Run %s %s: %d bars and %d signals written, %d symbols skipped",
            report.run_id,
            report.status.value,
            report.bars_written,
            report.signals_written,
            len(report.skipped),
        )
        return report

    def _fail(self, report: RunReport, outcome: SymbolOutcome, error: Exception) -> None:
        self._set_status(RunStatus.FAILED)
        outcome.status = SymbolStatus.FAILED
        outcome.reason = str(error)
        report.status = RunStatus.FAILED
        report.error = str(error)

    def _skip(self, outcome: SymbolOutcome, reason: str) -> None:
        logger.warning("Skipping %s: %s", outcome.symbol, reason)
        outcome.status = SymbolStatus.SKIPPED
        outcome.reason = reason

    def _process_symbol(self, symbol: Symbol, size: OutputSize, outcome: SymbolOutcome) -> None:
        self._set_status(RunStatus.FETCHING, symbol)
        self.rate_limiter.acquire()
        try:
            raw_bars = self.source.fetch(symbol, size)
        except TransportError as e:
            self._skip(outcome, f"fetch failed: {e}")
            return

        outcome.fetched = len(raw_bars)
        if not raw_bars:
            self._skip(outcome, "no market data received")
            return
        logger.info("Read %d records for symbol: %s", len(raw_bars), symbol)

        self._set_status(RunStatus.CLEANING, symbol)
        cleaned = clean_bars_detailed(raw_bars, self.today)
        outcome.rejected = len(cleaned.rejections)
        bars = self._restrict(cleaned.bars)
        if not bars:
            self._skip(outcome, "no valid records after cleaning")
            return

        if self.strategy is not None:
            self._set_status(RunStatus.SIGNAL_GENERATION, symbol)
            signals = self._generate(bars)
            self._set_status(RunStatus.PERSISTING, symbol)
            outcome.signals_written = self._persist_signals(symbol, signals)

        self._set_status(RunStatus.PERSISTING, symbol)
        outcome.bars_written = self._persist_bars(symbol, bars)
        logger.info(
            "Wrote %d bars and %d signals for symbol: %s",
            outcome.bars_written,
            outcome.signals_written,
            symbol,
        )

    def _restrict(self, bars: list[Bar]) -> list[Bar]:
        date_range = self.config.date_range
        if date_range is None:
            return bars
        return [b for b in bars if date_range.contains(b.date)]

    def _generate(self, bars: list[Bar]) -> list[Signal]:
        assert self.strategy is not None
        if len(bars) < self.strategy.minimum_data_points:
            logger.warning(
                "Insufficient data for strategy: %s. Required: %d, Available: %d",
                self.strategy.strategy_id,
                self.strategy.minimum_data_points,
                len(bars),
            )
            return []
        return self.strategy.generate_signals(bars)

    def _persist_signals(self, symbol: str, signals: list[Signal]) -> int:
        if not signals:
            return 0
        result = self.signal_store.upsert_signals(signals)
        if not result.success:
            raise PersistenceError(
                f"Failed to write {len(result.row_errors)} signal rows for symbol: {symbol}",
                result.row_errors,
            )
        return result.written

    def _persist_bars(self, symbol: str, bars: list[Bar]) -> int:
        result = self.bar_store.upsert_bars(bars)
        if not result.success:
            raise PersistenceError(
                f"Failed to write market data to store for symbol: {symbol}",
                result.row_errors,
            )
        return result.written

    @staticmethod
    def new_run_id() -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        return f"ingest_{timestamp}_{uuid.uuid4().hex[:8]}"


__all__ = ["Pipeline", "normalize_symbols"]
