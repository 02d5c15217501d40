"""Quote source implementations for fetching daily bars.

This module provides an abstract interface for quote sources and concrete
implementations for Alpha Vantage, Yahoo Finance, and CSV files. A source
returns raw, unvalidated bars for one symbol per call; cleaning happens
downstream.
"""

from __future__ import annotations

import csv
import logging
import os
from abc import ABC, abstractmethod
from datetime import date, datetime
from pathlib import Path
from typing import Any

import requests

from backtester.exceptions import (
    ConfigError,
    DataSourceError,
    MalformedPayloadError,
    RateLimitError,
    TransportError,
)
from backtester.numeric import parse_decimal, parse_int
from backtester.types import OutputSize, RawBar

logger = logging.getLogger(__name__)

# Number of trading days a "compact" request returns
COMPACT_BARS = 100


class QuoteSource(ABC):
    """Abstract base class for quote sources.

    All quote source implementations must inherit from this class and implement
    the `fetch` method.
    """

    name: str = "abstract"

    @abstractmethod
    def fetch(self, symbol: str, size: OutputSize = OutputSize.COMPACT) -> list[RawBar]:
        """Fetch daily bars for one symbol.

        :param symbol: Symbol to fetch.
        :param size: History depth to request.
        :returns: Raw bars in any order (possibly empty).
        :raises RateLimitError: If the provider reports its budget is exhausted.
        :raises TransportError: If the request fails as a whole.
        """
        ...

    def check_configuration(self) -> None:
        """Verify credentials and settings before any call is made.

        :raises ConfigError: If the source cannot be used as configured.
        """


class AlphaVantageQuoteSource(QuoteSource):
    """Quote source backed by the Alpha Vantage ``TIME_SERIES_DAILY`` endpoint.

    :param source_params: Optional parameters for configuring the source.
        - api_key: API key (takes precedence over ``api_key_env``)
        - api_key_env: Environment variable holding the key
          (default: "ALPHAVANTAGE_API_KEY")
        - base_url: Endpoint URL (default: the public query endpoint)
        - timeout: Request timeout in seconds (default: 30)
    :param session: Optional ``requests.Session`` to issue requests with.
    """

    name = "alphavantage"
    BASE_URL = "https://www.alphavantage.co/query"
    SERIES_KEY = "Time Series (Daily)"

    # Payload keys of one daily entry
    FIELD_MAP = {
        "open": "1. open",
        "high": "2. high",
        "low": "3. low",
        "close": "4. close",
        "volume": "5. volume",
    }

    def __init__(
        self,
        source_params: dict[str, Any] | None = None,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize Alpha Vantage quote source."""
        self.params = source_params or {}
        api_key_env = self.params.get("api_key_env", "ALPHAVANTAGE_API_KEY")
        self.api_key = str(self.params.get("api_key") or os.environ.get(api_key_env, ""))
        self.base_url = self.params.get("base_url", self.BASE_URL)
        self.timeout = self.params.get("timeout", 30)
        self.session = session or requests.Session()

    def is_configured(self) -> bool:
        """Return True if a usable API key is present."""
        return bool(self.api_key.strip()) and self.api_key != "demo"

    def check_configuration(self) -> None:
        if not self.is_configured():
            raise ConfigError("Alpha Vantage API key is not configured")

    def fetch(self, symbol: str, size: OutputSize = OutputSize.COMPACT) -> list[RawBar]:
        """Fetch daily bars from Alpha Vantage.

        :param symbol: Symbol to fetch.
        :param size: ``compact`` (last 100 days) or ``full`` (20+ years).
        :returns: Raw bars, newest first as delivered by the API.
        :raises RateLimitError: If the API answers with a rate-limit note.
        :raises TransportError: On network, HTTP or API errors.
        """
        size = OutputSize(size)
        logger.info("Fetching daily series for %s (output size %s)", symbol, size.value)
        query = {
            "function": "TIME_SERIES_DAILY",
            "symbol": symbol,
            "outputsize": size.value,
            "apikey": self.api_key,
        }

        try:
            response = self.session.get(self.base_url, params=query, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as e:
            raise TransportError(f"Request for symbol '{symbol}' failed: {e}") from e
        except ValueError as e:
            raise TransportError(f"Invalid JSON received for symbol '{symbol}': {e}") from e

        return self.parse_payload(payload, symbol)

    def parse_payload(self, payload: Any, symbol: str) -> list[RawBar]:
        """Turn a decoded API response into raw bars.

        Entries that cannot be parsed are logged and skipped.

        :param payload: Decoded JSON body.
        :param symbol: Symbol the request was made for.
        :returns: Raw bars (empty if the payload has no series).
        :raises RateLimitError: If the payload carries a rate-limit note.
        :raises TransportError: If the payload carries an API error.
        """
        if not isinstance(payload, dict):
            raise TransportError(f"Unexpected response type for symbol '{symbol}'")

        if "Error Message" in payload:
            raise TransportError(f"API error for symbol '{symbol}': {payload['Error Message']}")

        for key in ("Note", "Information"):
            if key in payload:
                logger.warning("API rate limit warning: %s", payload[key])
                raise RateLimitError(f"API rate limit exceeded: {payload[key]}")

        series = payload.get(self.SERIES_KEY)
        if not isinstance(series, dict):
            logger.error("No time series data found in response for symbol: %s", symbol)
            return []

        bars: list[RawBar] = []
        for date_str, entry in series.items():
            try:
                bars.append(self._parse_entry(symbol, date_str, entry))
            except MalformedPayloadError as e:
                logger.warning("Skipping entry %s for symbol %s: %s", date_str, symbol, e)

        logger.info("Parsed %d daily records for symbol: %s", len(bars), symbol)
        return bars

    def _parse_entry(self, symbol: str, date_str: str, entry: Any) -> RawBar:
        if not isinstance(entry, dict):
            raise MalformedPayloadError("entry is not a mapping")
        try:
            day = datetime.strptime(date_str, "%Y-%m-%d").date()
        except ValueError as e:
            raise MalformedPayloadError(f"bad date '{date_str}'") from e

        values: dict[str, Any] = {}
        for field, key in self.FIELD_MAP.items():
            if key not in entry:
                raise MalformedPayloadError(f"missing '{key}'")
            parsed = parse_int(entry[key]) if field == "volume" else parse_decimal(entry[key])
            if parsed is None:
                raise MalformedPayloadError(f"unparsable '{key}': {entry[key]!r}")
            values[field] = parsed

        # The free endpoint has no adjusted close; use the close
        return RawBar(
            symbol=symbol,
            date=day,
            adjusted_close=values["close"],
            **values,
        )


class YahooQuoteSource(QuoteSource):
    """Quote source that fetches data from Yahoo Finance via yfinance.

    :param source_params: Optional parameters for configuring the source.
        - timeout: Request timeout in seconds (default: 30)
    """

    name = "yahoo"

    # Map output sizes to yfinance history periods
    PERIOD_MAP = {
        OutputSize.COMPACT: "6mo",
        OutputSize.FULL: "max",
    }

    def __init__(self, source_params: dict[str, Any] | None = None) -> None:
        """Initialize Yahoo quote source."""
        self.params = source_params or {}
        self.timeout = self.params.get("timeout", 30)

    def fetch(self, symbol: str, size: OutputSize = OutputSize.COMPACT) -> list[RawBar]:
        """Fetch daily bars from Yahoo Finance.

        :param symbol: Symbol to fetch.
        :param size: ``compact`` keeps the last 100 rows, ``full`` everything.
        :returns: Raw bars in chronological order.
        :raises TransportError: If fetching fails.
        """
        try:
            import yfinance as yf
        except ImportError as e:
            raise DataSourceError(
                "yfinance is not installed. Install it with: pip install yfinance"
            ) from e

        size = OutputSize(size)
        try:
            ticker = yf.Ticker(symbol)
            df = ticker.history(
                period=self.PERIOD_MAP[size],
                interval="1d",
                auto_adjust=False,
                timeout=self.timeout,
            )
        except Exception as e:
            raise TransportError(f"Failed to fetch data for symbol '{symbol}': {e}") from e

        if df.empty:
            return []
        if size == OutputSize.COMPACT:
            df = df.tail(COMPACT_BARS)

        bars: list[RawBar] = []
        for timestamp, row in df.iterrows():
            close = parse_decimal(row.get("Close"))
            adjusted = parse_decimal(row.get("Adj Close"))
            bars.append(
                RawBar(
                    symbol=symbol,
                    date=timestamp.date(),
                    open=parse_decimal(row.get("Open")),
                    high=parse_decimal(row.get("High")),
                    low=parse_decimal(row.get("Low")),
                    close=close,
                    adjusted_close=adjusted if adjusted is not None else close,
                    volume=parse_int(row.get("Volume")),
                )
            )
        return bars


class CSVQuoteSource(QuoteSource):
    """Quote source that reads daily bars from a CSV file.

    Expected CSV format (default columns):
    - symbol: Stock symbol
    - date: ISO date (YYYY-MM-DD)
    - open, high, low, close: Prices
    - adjusted_close: Adjusted close (optional; defaults to close)
    - volume: Trading volume

    Fields that cannot be parsed are left empty so the cleaner rejects the
    record instead of the whole file failing.

    :param source_params: Required parameters:
        - file_path: Path to the CSV file.
        Optional parameters:
        - symbol_col, date_col, open_col, high_col, low_col, close_col,
          adjusted_close_col, volume_col: Column names
        - delimiter: CSV delimiter (default: ",")
        - date_format: strptime format for dates (default: ISO format)
    """

    name = "csv"

    def __init__(self, source_params: dict[str, Any] | None = None) -> None:
        """Initialize CSV quote source.

        :raises ConfigError: If file_path is not provided.
        """
        self.params = source_params or {}
        self.file_path = self.params.get("file_path")
        if not self.file_path:
            raise ConfigError("CSVQuoteSource requires 'file_path' in source_params")

        # Column name mappings with defaults
        self.symbol_col = self.params.get("symbol_col", "symbol")
        self.date_col = self.params.get("date_col", "date")
        self.open_col = self.params.get("open_col", "open")
        self.high_col = self.params.get("high_col", "high")
        self.low_col = self.params.get("low_col", "low")
        self.close_col = self.params.get("close_col", "close")
        self.adjusted_close_col = self.params.get("adjusted_close_col", "adjusted_close")
        self.volume_col = self.params.get("volume_col", "volume")
        self.delimiter = self.params.get("delimiter", ",")
        self.date_format = self.params.get("date_format")

    def check_configuration(self) -> None:
        if not Path(self.file_path).exists():
            raise ConfigError(f"CSV file not found: {self.file_path}")

    def _parse_date(self, value: str | None) -> date | None:
        if not value:
            return None
        try:
            if self.date_format:
                return datetime.strptime(value, self.date_format).date()
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None

    def fetch(self, symbol: str, size: OutputSize = OutputSize.COMPACT) -> list[RawBar]:
        """Read the rows for ``symbol`` from the CSV file.

        :param symbol: Symbol to select (case-insensitive).
        :param size: ``compact`` keeps the 100 most recent rows.
        :returns: Raw bars.
        :raises TransportError: If the file cannot be read.
        """
        path = Path(self.file_path)
        wanted = symbol.strip().upper()
        bars: list[RawBar] = []

        try:
            with open(path, newline="", encoding="utf-8") as f:
                reader = csv.DictReader(f, delimiter=self.delimiter)
                for row in reader:
                    row_symbol = (row.get(self.symbol_col) or "").strip()
                    if row_symbol.upper() != wanted:
                        continue

                    close = parse_decimal(row.get(self.close_col))
                    adjusted = parse_decimal(row.get(self.adjusted_close_col))
                    bars.append(
                        RawBar(
                            symbol=row_symbol,
                            date=self._parse_date(row.get(self.date_col)),
                            open=parse_decimal(row.get(self.open_col)),
                            high=parse_decimal(row.get(self.high_col)),
                            low=parse_decimal(row.get(self.low_col)),
                            close=close,
                            adjusted_close=adjusted if adjusted is not None else close,
                            volume=parse_int(row.get(self.volume_col)),
                        )
                    )
        except csv.Error as e:
            raise TransportError(f"CSV parsing error: {e}") from e
        except OSError as e:
            raise TransportError(f"Failed to read CSV file: {e}") from e

        if OutputSize(size) == OutputSize.COMPACT and len(bars) > COMPACT_BARS:
            dated = sorted((b for b in bars if b.date is not None), key=lambda b: b.date)
            bars = dated[-COMPACT_BARS:]
        return bars


SOURCES: dict[str, type[QuoteSource]] = {
    "alphavantage": AlphaVantageQuoteSource,
    "yahoo": YahooQuoteSource,
    "csv": CSVQuoteSource,
}


def resolve_quote_source(name: str, source_params: dict[str, Any] | None = None) -> QuoteSource:
    """Construct a quote source from configuration.

    :param name: Source type ("alphavantage", "yahoo" or "csv").
    :param source_params: Source-specific parameters.
    :returns: QuoteSource instance for the specified type.
    :raises ConfigError: If the source type is unrecognized.
    """
    source_cls = SOURCES.get(name.lower())
    if source_cls is None:
        raise ConfigError(
            f"Unrecognized quote source type: '{name}'. "
            f"Supported types: {', '.join(sorted(SOURCES))}"
        )
    return source_cls(source_params)
