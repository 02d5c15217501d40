"""Tests for the ingest pipeline and background runs."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from backtester.data.limiter import FixedIntervalRateLimiter
from backtester.data.sources import AlphaVantageQuoteSource, QuoteSource
from backtester.exceptions import (ConfigError, DataSourceError, RateLimitError,
                                   TransportError)
from backtester.pipeline import Pipeline, ingest, normalize_symbols
from backtester.storage import (InMemoryMarketDataStore, InMemorySignalStore,
                                LocalMarketDataStore, LocalSignalStore)
from backtester.types import (Bar, DateRange, OutputSize, PipelineConfig,
                              RawBar, RunStatus, SignalKeyMode, SignalType,
                              StrategyConfig, SymbolStatus)

TODAY = date(2024, 6, 28)


def _raw_series(symbol: str, closes: list, start: date = date(2024, 1, 1)) -> list[RawBar]:
    """Raw bars newest first, the way providers deliver them."""
    bars = []
    for i, close in enumerate(closes):
        price = Decimal(str(close))
        bars.append(
            RawBar(
                symbol=symbol,
                date=start + timedelta(days=i),
                open=price,
                high=price,
                low=price,
                close=price,
                adjusted_close=price,
                volume=1000,
            )
        )
    return list(reversed(bars))


class FakeQuoteSource(QuoteSource):
    """Quote source serving canned responses per symbol.

    A response may be a list of raw bars or an exception to raise.
    """

    def __init__(self, responses: dict) -> None:
        self.responses = responses
        self.calls: list[tuple[str, OutputSize]] = []

    def fetch(self, symbol, size=OutputSize.COMPACT):
        self.calls.append((symbol, size))
        response = self.responses.get(symbol, [])
        if isinstance(response, Exception):
            raise response
        return response


class FailingSignalStore(InMemorySignalStore):
    def check_row(self, signal):
        return "strength out of range"


class FailingBarStore(InMemoryMarketDataStore):
    def __init__(self, refuse_symbol: str) -> None:
        super().__init__()
        self.refuse_symbol = refuse_symbol

    def check_row(self, bar: Bar) -> str | None:
        if bar.symbol == self.refuse_symbol:
            return "value too long for column"
        return None


@pytest.fixture
def crossing_series() -> list[int]:
    return [10, 10, 10, 10, 10, 12, 12, 12, 12, 12]


@pytest.fixture
def strategy_config() -> PipelineConfig:
    return PipelineConfig(
        strategy=StrategyConfig(short_window=2, long_window=5, threshold=Decimal("0")),
    )


def _pipeline(source, config=None, **kwargs) -> Pipeline:
    kwargs.setdefault("bar_store", InMemoryMarketDataStore())
    kwargs.setdefault("signal_store", InMemorySignalStore(key_mode=SignalKeyMode.STABLE))
    return Pipeline(source=source, config=config, today=TODAY, **kwargs)


class TestNormalizeSymbols:
    """Tests for symbol list normalization."""

    def test_trims_uppercases_and_dedupes(self) -> None:
        assert normalize_symbols([" aapl", "MSFT", "AAPL ", "", "  ", "ibm"]) == [
            "AAPL",
            "MSFT",
            "IBM",
        ]


class TestPipelineConstruction:
    """Tests for Pipeline construction."""

    def test_missing_credential_fails_before_any_fetch(self, monkeypatch) -> None:
        monkeypatch.delenv("ALPHAVANTAGE_API_KEY", raising=False)
        source = AlphaVantageQuoteSource({"api_key": "demo"}, session=MagicMock())

        with pytest.raises(ConfigError, match="API key"):
            _pipeline(source)

        source.session.get.assert_not_called()

    def test_invalid_strategy_config_fails(self) -> None:
        config = PipelineConfig(strategy=StrategyConfig(short_window=50, long_window=20))

        with pytest.raises(ConfigError):
            _pipeline(FakeQuoteSource({}), config)

    def test_initial_status(self) -> None:
        pipeline = _pipeline(FakeQuoteSource({}))

        assert pipeline.status is RunStatus.INITIALIZED
        assert pipeline.strategy is None


class TestPipelineRun:
    """Tests for Pipeline.run."""

    def test_ingests_bars_and_signals(self, strategy_config, crossing_series) -> None:
        source = FakeQuoteSource({"AAPL": _raw_series("AAPL", crossing_series)})
        bar_store = InMemoryMarketDataStore()
        signal_store = InMemorySignalStore(key_mode=SignalKeyMode.STABLE)
        pipeline = _pipeline(source, strategy_config, bar_store=bar_store, signal_store=signal_store)

        report = pipeline.run(["aapl"])

        assert report.status is RunStatus.COMPLETED
        assert pipeline.status is RunStatus.COMPLETED
        assert report.bars_written == 10
        assert report.signals_written == 1
        assert report.finished_at is not None
        stored = bar_store.query_bars("AAPL")
        assert [b.date for b in stored] == sorted(b.date for b in stored)
        signals = signal_store.query_signals("AAPL")
        assert [s.signal_type for s in signals] == [SignalType.BUY]
        assert signals[0].date == date(2024, 1, 6)

    def test_empty_symbol_is_skipped_and_run_completes(self, strategy_config, crossing_series) -> None:
        """Five symbols, one of which returns nothing: four are stored."""
        symbols = ["AAPL", "MSFT", "EMPTY", "IBM", "QQQ"]
        responses = {s: _raw_series(s, crossing_series) for s in symbols if s != "EMPTY"}
        responses["EMPTY"] = []
        bar_store = InMemoryMarketDataStore()
        pipeline = _pipeline(FakeQuoteSource(responses), strategy_config, bar_store=bar_store)

        report = pipeline.run(symbols)

        assert report.status is RunStatus.COMPLETED
        assert bar_store.symbols() == ["AAPL", "IBM", "MSFT", "QQQ"]
        assert [o.symbol for o in report.skipped] == ["EMPTY"]
        assert report.skipped[0].reason == "no market data received"

    def test_rate_limiter_spaces_fetches(self, fake_clock, crossing_series) -> None:
        """Five symbols at 5 calls/minute take at least 48 seconds of waiting."""
        symbols = ["A", "B", "C", "D", "E"]
        source = FakeQuoteSource({s: _raw_series(s, crossing_series) for s in symbols})
        limiter = FixedIntervalRateLimiter(5, clock=fake_clock, sleep=fake_clock.sleep)
        start = fake_clock()

        report = _pipeline(source, rate_limiter=limiter).run(symbols)

        assert report.succeeded
        assert len(source.calls) == 5
        assert fake_clock() - start >= 48.0
        assert fake_clock.sleeps == [12.0, 12.0, 12.0, 12.0]

    def test_rate_limit_response_fails_the_run(self, crossing_series) -> None:
        responses = {
            "AAPL": _raw_series("AAPL", crossing_series),
            "MSFT": RateLimitError("API rate limit exceeded"),
            "IBM": _raw_series("IBM", crossing_series),
        }
        source = FakeQuoteSource(responses)
        bar_store = InMemoryMarketDataStore()

        report = _pipeline(source, bar_store=bar_store).run(["AAPL", "MSFT", "IBM"])

        assert report.status is RunStatus.FAILED
        assert "rate limit" in report.error
        assert [call[0] for call in source.calls] == ["AAPL", "MSFT"]
        # earlier symbols are not rolled back
        assert bar_store.symbols() == ["AAPL"]
        assert report.symbols[-1].status is SymbolStatus.FAILED

    def test_unexpected_source_error_fails_the_run(self, crossing_series) -> None:
        """Errors outside the skip rules still end the run with a report."""
        responses = {
            "AAPL": _raw_series("AAPL", crossing_series),
            "MSFT": DataSourceError("yfinance is not installed"),
            "IBM": _raw_series("IBM", crossing_series),
        }
        bar_store = InMemoryMarketDataStore()
        pipeline = _pipeline(FakeQuoteSource(responses), bar_store=bar_store)

        report = pipeline.run(["AAPL", "MSFT", "IBM"])

        assert report.status is RunStatus.FAILED
        assert pipeline.status is RunStatus.FAILED
        assert report.error == "yfinance is not installed"
        assert bar_store.symbols() == ["AAPL"]
        assert report.symbols[-1].status is SymbolStatus.FAILED

    def test_slashed_symbol_completes_with_local_stores(
        self, tmp_path, strategy_config, crossing_series
    ) -> None:
        bar_store = LocalMarketDataStore(tmp_path)
        source = FakeQuoteSource({"BRK/B": _raw_series("BRK/B", crossing_series)})

        report = _pipeline(
            source,
            strategy_config,
            bar_store=bar_store,
            signal_store=LocalSignalStore(tmp_path, key_mode=SignalKeyMode.STABLE),
        ).run(["brk/b"])

        assert report.status is RunStatus.COMPLETED
        assert report.bars_written == 10
        assert bar_store.symbols() == ["BRK/B"]
        assert not list(tmp_path.glob("*.json"))

    def test_transport_error_skips_symbol(self, crossing_series) -> None:
        responses = {
            "AAPL": TransportError("connection reset"),
            "MSFT": _raw_series("MSFT", crossing_series),
        }
        bar_store = InMemoryMarketDataStore()

        report = _pipeline(FakeQuoteSource(responses), bar_store=bar_store).run(["AAPL", "MSFT"])

        assert report.succeeded
        assert bar_store.symbols() == ["MSFT"]
        assert report.symbols[0].status is SymbolStatus.SKIPPED
        assert "connection reset" in report.symbols[0].reason

    def test_all_bars_rejected_skips_symbol(self) -> None:
        bad = [
            RawBar(symbol="AAPL", date=date(2024, 1, 2), close=Decimal("10")),
            RawBar(symbol="AAPL", date=TODAY + timedelta(days=5)),
        ]
        bar_store = InMemoryMarketDataStore()

        report = _pipeline(FakeQuoteSource({"AAPL": bad}), bar_store=bar_store).run(["AAPL"])

        assert report.succeeded
        assert report.symbols[0].status is SymbolStatus.SKIPPED
        assert report.symbols[0].rejected == 2
        assert bar_store.count() == 0

    def test_partial_rejections_are_counted(self, crossing_series) -> None:
        raw = _raw_series("AAPL", crossing_series)
        raw.append(RawBar(symbol="AAPL", date=date(2023, 12, 31), volume=-1))
        bar_store = InMemoryMarketDataStore()

        report = _pipeline(FakeQuoteSource({"AAPL": raw}), bar_store=bar_store).run(["AAPL"])

        assert report.symbols[0].fetched == 11
        assert report.symbols[0].rejected == 1
        assert report.bars_written == 10

    def test_bar_persistence_failure_fails_the_run(self, crossing_series) -> None:
        responses = {s: _raw_series(s, crossing_series) for s in ("AAPL", "MSFT", "IBM")}
        bar_store = FailingBarStore("MSFT")
        source = FakeQuoteSource(responses)

        report = _pipeline(source, bar_store=bar_store).run(["AAPL", "MSFT", "IBM"])

        assert report.status is RunStatus.FAILED
        assert "Failed to write market data" in report.error
        assert bar_store.symbols() == ["AAPL"]
        assert len(source.calls) == 2

    def test_signal_persistence_failure_fails_the_run(self, strategy_config, crossing_series) -> None:
        source = FakeQuoteSource({"AAPL": _raw_series("AAPL", crossing_series)})
        bar_store = InMemoryMarketDataStore()

        pipeline = _pipeline(
            source, strategy_config, bar_store=bar_store, signal_store=FailingSignalStore()
        )
        report = pipeline.run(["AAPL"])

        assert report.status is RunStatus.FAILED
        assert pipeline.status is RunStatus.FAILED
        assert "signal rows" in report.error
        # signals are persisted before bars, so nothing was written
        assert bar_store.count() == 0

    def test_insufficient_data_still_stores_bars(self, strategy_config) -> None:
        source = FakeQuoteSource({"AAPL": _raw_series("AAPL", [10, 11, 12])})
        bar_store = InMemoryMarketDataStore()

        report = _pipeline(source, strategy_config, bar_store=bar_store).run(["AAPL"])

        assert report.succeeded
        assert report.bars_written == 3
        assert report.signals_written == 0

    def test_date_range_restricts_bars(self, crossing_series) -> None:
        config = PipelineConfig(
            date_range=DateRange(start=date(2024, 1, 3), end=date(2024, 1, 5)),
        )
        bar_store = InMemoryMarketDataStore()
        source = FakeQuoteSource({"AAPL": _raw_series("AAPL", crossing_series)})

        report = _pipeline(source, config, bar_store=bar_store).run(["AAPL"])

        assert report.bars_written == 3
        assert bar_store.latest_date("AAPL") == date(2024, 1, 5)

    def test_size_override(self) -> None:
        source = FakeQuoteSource({})

        _pipeline(source).run(["AAPL"], size="full")
        _pipeline(source).run(["MSFT"])

        assert source.calls == [("AAPL", OutputSize.FULL), ("MSFT", OutputSize.COMPACT)]

    def test_rerun_is_idempotent_for_bars(self, crossing_series) -> None:
        source = FakeQuoteSource({"AAPL": _raw_series("AAPL", crossing_series)})
        bar_store = InMemoryMarketDataStore()
        pipeline = _pipeline(source, bar_store=bar_store)

        pipeline.run(["AAPL"])
        pipeline.run(["AAPL"])

        assert bar_store.count() == 10

    def test_rerun_duplicates_timestamped_signals(self, strategy_config, crossing_series) -> None:
        """With timestamped keys a re-run adds a second copy of each signal."""
        ticks = iter(range(1_700_000_000, 1_700_000_100))
        signal_store = InMemorySignalStore(clock=lambda: float(next(ticks)))
        source = FakeQuoteSource({"AAPL": _raw_series("AAPL", crossing_series)})
        pipeline = _pipeline(source, strategy_config, signal_store=signal_store)

        pipeline.run(["AAPL"])
        pipeline.run(["AAPL"])

        assert signal_store.count() == 2

    def test_run_id(self) -> None:
        report = _pipeline(FakeQuoteSource({})).run([], run_id="ingest_test")

        assert report.run_id == "ingest_test"
        assert report.status is RunStatus.COMPLETED
        assert report.symbols == []


class TestIngest:
    """Tests for the background ingest trigger."""

    def test_ingest_returns_handle_and_completes(self, crossing_series) -> None:
        bar_store = InMemoryMarketDataStore()
        source = FakeQuoteSource({"AAPL": _raw_series("AAPL", crossing_series)})
        pipeline = _pipeline(source, bar_store=bar_store)

        handle = ingest(pipeline, ["AAPL"])
        report = handle.result(timeout=10)

        assert handle.done()
        assert report.run_id == handle.run_id
        assert report.succeeded
        assert bar_store.count() == 10

    def test_ingest_passes_size(self) -> None:
        source = FakeQuoteSource({})

        ingest(_pipeline(source), ["AAPL"], size=OutputSize.FULL).result(timeout=10)

        assert source.calls == [("AAPL", OutputSize.FULL)]
