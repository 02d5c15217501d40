"""Core type definitions for the backtester.

All data models use Pydantic BaseModel for automatic validation, JSON
serialization, and better error messages. Prices are ``Decimal`` so that
half-up rounding is exact.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any, NewType

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Type aliases for domain-specific identifiers
Symbol = NewType("Symbol", str)
StrategyId = NewType("StrategyId", str)
RunId = NewType("RunId", str)


# ---------------------------------------------------------------------------
# Base Configuration
# ---------------------------------------------------------------------------


class FrozenModel(BaseModel):
    """Base model with frozen (immutable) configuration."""

    model_config = ConfigDict(frozen=True)


class MutableModel(BaseModel):
    """Base model for mutable state objects."""

    model_config = ConfigDict(validate_assignment=True)


# ---------------------------------------------------------------------------
# Date Types
# ---------------------------------------------------------------------------


class DateRange(FrozenModel):
    """Inclusive date range for time-bounded queries.

    Either end may be omitted, meaning the range is open on that side.

    :param start: First day of the range (inclusive), or None.
    :param end: Last day of the range (inclusive), or None.
    """

    start: dt.date | None = None
    end: dt.date | None = None

    @model_validator(mode="after")
    def _check_order(self) -> DateRange:
        if self.start is not None and self.end is not None and self.start > self.end:
            raise ValueError("date range start must not be after end")
        return self

    def contains(self, day: dt.date) -> bool:
        """Return True if ``day`` falls inside the range."""
        if self.start is not None and day < self.start:
            return False
        if self.end is not None and day > self.end:
            return False
        return True


class OutputSize(str, Enum):
    """How much history a quote source should return."""

    COMPACT = "compact"
    FULL = "full"


# ---------------------------------------------------------------------------
# Market Data Types
# ---------------------------------------------------------------------------


class RawBar(FrozenModel):
    """Daily bar exactly as delivered by a quote source, before cleaning.

    Every field is optional because providers deliver incomplete records; the
    cleaner decides what survives.
    """

    symbol: str | None = None
    date: dt.date | None = None
    open: Decimal | None = None
    high: Decimal | None = None
    low: Decimal | None = None
    close: Decimal | None = None
    adjusted_close: Decimal | None = None
    volume: int | None = None


class Bar(FrozenModel):
    """One validated trading day for one symbol.

    Identity key is ``(symbol, date)``.

    :param symbol: Upper-case market symbol.
    :param date: Trading day.
    :param open: Opening price.
    :param high: Highest price of the day.
    :param low: Lowest price of the day.
    :param close: Closing price.
    :param adjusted_close: Close adjusted for splits and dividends.
    :param volume: Shares traded.
    """

    symbol: Symbol
    date: dt.date
    open: Decimal = Field(gt=0)
    high: Decimal = Field(gt=0)
    low: Decimal = Field(gt=0)
    close: Decimal = Field(gt=0)
    adjusted_close: Decimal = Field(gt=0)
    volume: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_price_range(self) -> Bar:
        if not (self.low <= self.open <= self.high and self.low <= self.close <= self.high):
            raise ValueError(
                f"open/close must lie within [low, high] for {self.symbol} on {self.date}"
            )
        return self

    @property
    def key(self) -> tuple[str, dt.date]:
        """Identity key of this bar."""
        return (str(self.symbol), self.date)


# ---------------------------------------------------------------------------
# Signal Types
# ---------------------------------------------------------------------------


class SignalType(str, Enum):
    """Direction of a trading signal."""

    BUY = "BUY"
    SELL = "SELL"


class SignalMetadata(FrozenModel):
    """Context recorded alongside a signal; not part of its identity.

    :param short_window: Short moving-average window.
    :param long_window: Long moving-average window.
    :param short_ma: Short moving average at the signal bar.
    :param long_ma: Long moving average at the signal bar.
    :param price: Close price at the signal bar.
    """

    short_window: int
    long_window: int
    short_ma: Decimal
    long_ma: Decimal
    price: Decimal


class Signal(FrozenModel):
    """A single strategy output.

    :param strategy_id: Identifier of the strategy that produced the signal.
    :param symbol: Market symbol.
    :param date: Trading day the signal is attributed to.
    :param signal_type: BUY or SELL.
    :param price_at_signal: Close price at the signal bar.
    :param strength: Relative separation of the averages (fraction).
    :param metadata: Free-form context.
    """

    strategy_id: StrategyId
    symbol: Symbol
    date: dt.date
    signal_type: SignalType
    price_at_signal: Decimal
    strength: Decimal
    metadata: SignalMetadata | None = None

    @property
    def key(self) -> tuple[str, dt.date, str]:
        """Logical identity key of this signal."""
        return (str(self.symbol), self.date, str(self.strategy_id))


# ---------------------------------------------------------------------------
# Configuration Types
# ---------------------------------------------------------------------------


class StrategyConfig(FrozenModel):
    """Parameters for a strategy variant.

    Window ordering is checked by the strategy constructor so that invalid
    combinations surface as :class:`~backtester.exceptions.ConfigError`.

    :param name: Registered strategy name.
    :param short_window: Short moving-average window.
    :param long_window: Long moving-average window.
    :param threshold: Minimum relative separation required to emit a signal.
    """

    name: str = "sma_crossover"
    short_window: int = 20
    long_window: int = 50
    threshold: Decimal = Decimal("0.01")


class SignalKeyMode(str, Enum):
    """How signal rows are keyed when written to a signal store.

    ``TIMESTAMPED`` appends the write time in milliseconds to the logical key,
    so re-writing the same signal produces a new row. ``STABLE`` keys on
    ``(symbol, date, strategy_id)`` only.
    """

    TIMESTAMPED = "timestamped"
    STABLE = "stable"


class PipelineConfig(FrozenModel):
    """Explicit configuration passed to the ingest pipeline.

    :param output_size: History depth requested from the quote source.
    :param strategy: Strategy to evaluate per symbol, or None to only ingest bars.
    :param date_range: Optional range restricting which cleaned bars are used.
    """

    output_size: OutputSize = OutputSize.COMPACT
    strategy: StrategyConfig | None = None
    date_range: DateRange | None = None


class IngestConfig(FrozenModel):
    """Configuration for the ingest command.

    :param symbols: Symbols to ingest.
    :param pipeline: Pipeline configuration.
    :param source: Quote source type (e.g., "alphavantage", "yahoo", "csv").
    :param source_params: Source-specific parameters.
    :param calls_per_minute: Provider call budget, or None for no limiting.
    :param burst: Token bucket capacity, or None for a fixed interval.
    :param store_path: Root directory of the local stores.
    :param signal_keys: Signal row key scheme.
    :param log_level: Logging level name.
    """

    symbols: list[Symbol]
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    source: str = "alphavantage"
    source_params: dict[str, Any] = Field(default_factory=dict)
    calls_per_minute: float | None = 5
    burst: int | None = None
    store_path: str = "~/.trading/store"
    signal_keys: SignalKeyMode = SignalKeyMode.TIMESTAMPED
    log_level: str = "INFO"


# ---------------------------------------------------------------------------
# Storage / Run Types
# ---------------------------------------------------------------------------


class UpsertResult(FrozenModel):
    """Outcome of a bulk upsert.

    :param written: Number of rows accepted by the store.
    :param row_errors: Row key to error message for rejected rows.
    """

    written: int = 0
    row_errors: dict[str, str] = Field(default_factory=dict)

    @property
    def success(self) -> bool:
        """True when no row was rejected."""
        return not self.row_errors


class RunStatus(str, Enum):
    """State of an ingest run."""

    INITIALIZED = "initialized"
    FETCHING = "fetching"
    CLEANING = "cleaning"
    SIGNAL_GENERATION = "signal_generation"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    FAILED = "failed"


class SymbolStatus(str, Enum):
    """Per-symbol outcome of an ingest run."""

    PROCESSED = "processed"
    SKIPPED = "skipped"
    FAILED = "failed"


class SymbolOutcome(MutableModel):
    """What happened to one symbol during a run.

    :param symbol: Symbol processed.
    :param status: Final status for the symbol.
    :param reason: Why the symbol was skipped or failed.
    :param fetched: Raw bars returned by the source.
    :param rejected: Raw bars rejected by the cleaner.
    :param bars_written: Bars accepted by the market data store.
    :param signals_written: Signals accepted by the signal store.
    """

    symbol: Symbol
    status: SymbolStatus = SymbolStatus.PROCESSED
    reason: str | None = None
    fetched: int = 0
    rejected: int = 0
    bars_written: int = 0
    signals_written: int = 0


class RunReport(MutableModel):
    """Summary of an ingest run.

    :param run_id: Identifier for the run.
    :param status: Final run status (completed or failed).
    :param symbols: Per-symbol outcomes in processing order.
    :param error: Message of the fatal error, if the run failed.
    :param started_at: When the run started.
    :param finished_at: When the run finished.
    """

    run_id: RunId
    status: RunStatus = RunStatus.INITIALIZED
    symbols: list[SymbolOutcome] = Field(default_factory=list)
    error: str | None = None
    started_at: dt.datetime | None = None
    finished_at: dt.datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.COMPLETED

    @property
    def bars_written(self) -> int:
        return sum(o.bars_written for o in self.symbols)

    @property
    def signals_written(self) -> int:
        return sum(o.signals_written for o in self.symbols)

    @property
    def rejected(self) -> int:
        return sum(o.rejected for o in self.symbols)

    @property
    def skipped(self) -> list[SymbolOutcome]:
        return [o for o in self.symbols if o.status == SymbolStatus.SKIPPED]

    def summary(self) -> dict[str, Any]:
        """Flat summary suitable for printing or JSON output."""
        return {
            "run_id": str(self.run_id),
            "status": self.status.value,
            "symbols": len(self.symbols),
            "skipped": len(self.skipped),
            "rejected": self.rejected,
            "bars_written": self.bars_written,
            "signals_written": self.signals_written,
            "error": self.error,
        }


# ---------------------------------------------------------------------------
# Exports
# ---------------------------------------------------------------------------

__all__ = [
    # Type aliases
    "Symbol",
    "StrategyId",
    "RunId",
    # Base models
    "FrozenModel",
    "MutableModel",
    # Dates
    "DateRange",
    "OutputSize",
    # Market data
    "RawBar",
    "Bar",
    # Signals
    "SignalType",
    "SignalMetadata",
    "Signal",
    # Configuration
    "StrategyConfig",
    "SignalKeyMode",
    "PipelineConfig",
    "IngestConfig",
    # Storage / runs
    "UpsertResult",
    "RunStatus",
    "SymbolStatus",
    "SymbolOutcome",
    "RunReport",
]
