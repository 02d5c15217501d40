"""Configuration and execution for the ingest command.

Example config file (ingest.yaml):

    symbols:
      - "AAPL"
      - "MSFT"
    output_size: compact
    source:
      name: alphavantage
      params:
        api_key_env: ALPHAVANTAGE_API_KEY
    rate_limit:
      calls_per_minute: 5
    strategy:
      name: sma_crossover
      short_window: 20
      long_window: 50
      threshold: 0.01
    date_range:             # Optional
      start: "2024-01-01"
      end: "2024-06-30"
    storage:
      path: "~/.trading/store"
      signal_keys: timestamped
    logging:
      level: INFO
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from backtester.data.limiter import build_rate_limiter
from backtester.data.sources import SOURCES, resolve_quote_source
from backtester.exceptions import ConfigError
from backtester.pipeline.ingest import Pipeline, normalize_symbols
from backtester.storage.local import LocalMarketDataStore, LocalSignalStore
from backtester.types import (
    DateRange,
    IngestConfig,
    OutputSize,
    PipelineConfig,
    RunReport,
    SignalKeyMode,
    StrategyConfig,
)

VALID_LOG_LEVELS = frozenset(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])


def _parse_date(value: str | date | None, field: str) -> date | None:
    """Parse an ISO date string or pass through date objects.

    :param value: ``YYYY-MM-DD`` string, date, or None.
    :param field: Config field name used in error messages.
    :raises ConfigError: If parsing fails.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as e:
        raise ConfigError(f"Invalid date for '{field}': {value}") from e


def _mapping(raw_config: dict[str, Any], field: str) -> dict[str, Any]:
    value = raw_config.get(field) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{field}' must be a mapping")
    return value


def _parse_strategy(raw: dict[str, Any]) -> StrategyConfig:
    try:
        threshold = Decimal(str(raw.get("threshold", "0.01")))
    except InvalidOperation as e:
        raise ConfigError(f"Invalid strategy threshold: {raw.get('threshold')}") from e

    try:
        return StrategyConfig(
            name=raw.get("name", "sma_crossover"),
            short_window=raw.get("short_window", 20),
            long_window=raw.get("long_window", 50),
            threshold=threshold,
        )
    except ValidationError as e:
        raise ConfigError(f"Invalid strategy configuration: {e}") from e


def load_ingest_config(config_path: str | Path) -> IngestConfig:
    """Parse and validate an ingest configuration file.

    :param config_path: Path to YAML configuration file.
    :returns: Validated IngestConfig object.
    :raises ConfigError: If file cannot be read or config is invalid.
    """
    config_path = Path(config_path)

    # Read and parse YAML
    try:
        with open(config_path) as f:
            raw_config = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {config_path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in configuration file: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigError("Configuration must be a YAML mapping")

    if "symbols" not in raw_config:
        raise ConfigError("Missing required field: symbols")

    # Parse symbols
    raw_symbols = raw_config["symbols"]
    if not isinstance(raw_symbols, list) or not all(isinstance(s, str) for s in raw_symbols):
        raise ConfigError("'symbols' must be a list of strings")
    symbols = normalize_symbols(raw_symbols)
    if not symbols:
        raise ConfigError("'symbols' must contain at least one symbol")

    # Parse output_size
    try:
        output_size = OutputSize(raw_config.get("output_size", OutputSize.COMPACT.value))
    except ValueError as e:
        raise ConfigError(
            f"Invalid output_size '{raw_config.get('output_size')}'. "
            f"Valid options: {[s.value for s in OutputSize]}"
        ) from e

    # Parse source
    source = _mapping(raw_config, "source")
    source_name = str(source.get("name", "alphavantage")).lower()
    if source_name not in SOURCES:
        raise ConfigError(
            f"Invalid source '{source_name}'. Valid options: {sorted(SOURCES)}"
        )
    source_params = source.get("params") or {}
    if not isinstance(source_params, dict):
        raise ConfigError("'source.params' must be a mapping")

    # Parse rate_limit (absent section keeps the provider default)
    rate_limit = _mapping(raw_config, "rate_limit")
    calls_per_minute = rate_limit.get("calls_per_minute", 5)
    burst = rate_limit.get("burst")
    if calls_per_minute is not None and (
        not isinstance(calls_per_minute, (int, float)) or calls_per_minute <= 0
    ):
        raise ConfigError("'rate_limit.calls_per_minute' must be a positive number")
    if burst is not None and (not isinstance(burst, int) or burst <= 0):
        raise ConfigError("'rate_limit.burst' must be a positive integer")

    # Parse strategy (optional)
    strategy = None
    if raw_config.get("strategy") is not None:
        strategy = _parse_strategy(_mapping(raw_config, "strategy"))

    # Parse date_range (optional)
    date_range = None
    if raw_config.get("date_range") is not None:
        raw_range = _mapping(raw_config, "date_range")
        start = _parse_date(raw_range.get("start"), "date_range.start")
        end = _parse_date(raw_range.get("end"), "date_range.end")
        if start is not None and end is not None and start > end:
            raise ConfigError("'date_range.start' must not be after 'date_range.end'")
        date_range = DateRange(start=start, end=end)

    # Parse storage
    storage = _mapping(raw_config, "storage")
    store_path = str(storage.get("path", "~/.trading/store"))
    try:
        signal_keys = SignalKeyMode(storage.get("signal_keys", SignalKeyMode.TIMESTAMPED.value))
    except ValueError as e:
        raise ConfigError(
            f"Invalid storage.signal_keys '{storage.get('signal_keys')}'. "
            f"Valid options: {[m.value for m in SignalKeyMode]}"
        ) from e

    # Parse logging
    log_level = str(_mapping(raw_config, "logging").get("level", "INFO")).upper()
    if log_level not in VALID_LOG_LEVELS:
        raise ConfigError(
            f"Invalid logging.level '{log_level}'. Valid options: {sorted(VALID_LOG_LEVELS)}"
        )

    return IngestConfig(
        symbols=symbols,
        pipeline=PipelineConfig(
            output_size=output_size,
            strategy=strategy,
            date_range=date_range,
        ),
        source=source_name,
        source_params=source_params,
        calls_per_minute=calls_per_minute,
        burst=burst,
        store_path=store_path,
        signal_keys=signal_keys,
        log_level=log_level,
    )


def build_pipeline(config: IngestConfig) -> Pipeline:
    """Wire sources, limiter and local stores into a pipeline.

    :param config: Loaded ingest configuration.
    :raises ConfigError: If the source is unusable (e.g. no API key).
    """
    store_root = Path(config.store_path).expanduser()
    return Pipeline(
        source=resolve_quote_source(config.source, config.source_params),
        bar_store=LocalMarketDataStore(store_root),
        signal_store=LocalSignalStore(store_root, key_mode=config.signal_keys),
        config=config.pipeline,
        rate_limiter=build_rate_limiter(config.calls_per_minute, config.burst),
    )


def run_ingest(config: IngestConfig) -> RunReport:
    """Build a pipeline from ``config`` and run it to completion."""
    pipeline = build_pipeline(config)
    return pipeline.run(config.symbols)
