"""Tests for quote source implementations."""

from datetime import date
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from backtester.data.sources import (AlphaVantageQuoteSource, CSVQuoteSource,
                                     QuoteSource, YahooQuoteSource,
                                     resolve_quote_source)
from backtester.exceptions import (ConfigError, RateLimitError,
                                   TransportError)
from backtester.types import OutputSize


def _daily_payload() -> dict:
    return {
        "Meta Data": {"2. Symbol": "IBM"},
        "Time Series (Daily)": {
            "2024-06-28": {
                "1. open": "170.1000",
                "2. high": "172.0500",
                "3. low": "169.8000",
                "4. close": "171.2500",
                "5. volume": "3456789",
            },
            "2024-06-27": {
                "1. open": "168.0000",
                "2. high": "170.5000",
                "3. low": "167.9000",
                "4. close": "170.1000",
                "5. volume": "2345678",
            },
        },
    }


@pytest.fixture
def session() -> MagicMock:
    """A requests session whose GET returns the daily payload."""
    response = MagicMock()
    response.json.return_value = _daily_payload()
    response.raise_for_status.return_value = None
    mock_session = MagicMock(spec=requests.Session)
    mock_session.get.return_value = response
    return mock_session


class TestQuoteSourceProtocol:
    """Tests for the QuoteSource abstract base class."""

    def test_quote_source_is_abstract(self) -> None:
        with pytest.raises(TypeError, match="abstract"):
            QuoteSource()  # type: ignore[abstract]

    def test_default_check_configuration_passes(self) -> None:
        class StaticSource(QuoteSource):
            def fetch(self, symbol, size=OutputSize.COMPACT):
                return []

        StaticSource().check_configuration()


class TestAlphaVantageQuoteSource:
    """Tests for AlphaVantageQuoteSource."""

    def test_api_key_from_params(self) -> None:
        source = AlphaVantageQuoteSource({"api_key": "KEY123"})

        assert source.api_key == "KEY123"
        assert source.is_configured()

    def test_api_key_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MY_AV_KEY", "ENVKEY")

        source = AlphaVantageQuoteSource({"api_key_env": "MY_AV_KEY"})

        assert source.api_key == "ENVKEY"

    @pytest.mark.parametrize("key", ["", "   ", "demo"])
    def test_unusable_key_fails_configuration_check(
        self, key: str, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("ALPHAVANTAGE_API_KEY", raising=False)
        source = AlphaVantageQuoteSource({"api_key": key})

        assert not source.is_configured()
        with pytest.raises(ConfigError, match="API key"):
            source.check_configuration()

    def test_fetch_sends_daily_query(self, session: MagicMock) -> None:
        source = AlphaVantageQuoteSource({"api_key": "KEY", "timeout": 5}, session=session)

        source.fetch("IBM", OutputSize.FULL)

        session.get.assert_called_once_with(
            AlphaVantageQuoteSource.BASE_URL,
            params={
                "function": "TIME_SERIES_DAILY",
                "symbol": "IBM",
                "outputsize": "full",
                "apikey": "KEY",
            },
            timeout=5,
        )

    def test_fetch_parses_daily_entries(self, session: MagicMock) -> None:
        source = AlphaVantageQuoteSource({"api_key": "KEY"}, session=session)

        bars = source.fetch("IBM", "compact")

        assert len(bars) == 2
        first = bars[0]
        assert first.symbol == "IBM"
        assert first.date == date(2024, 6, 28)
        assert first.open == Decimal("170.1000")
        assert first.close == Decimal("171.2500")
        assert first.adjusted_close == first.close
        assert first.volume == 3456789

    @pytest.mark.parametrize("key", ["Note", "Information"])
    def test_rate_limit_payload_raises(self, key: str) -> None:
        source = AlphaVantageQuoteSource({"api_key": "KEY"})

        with pytest.raises(RateLimitError, match="rate limit"):
            source.parse_payload({key: "Thank you for using Alpha Vantage!"}, "IBM")

    def test_error_message_payload_raises_transport_error(self) -> None:
        source = AlphaVantageQuoteSource({"api_key": "KEY"})

        with pytest.raises(TransportError, match="Invalid API call"):
            source.parse_payload({"Error Message": "Invalid API call."}, "XXXX")

    def test_missing_series_gives_empty_list(self) -> None:
        source = AlphaVantageQuoteSource({"api_key": "KEY"})

        assert source.parse_payload({"Meta Data": {}}, "IBM") == []

    def test_non_mapping_payload_raises(self) -> None:
        source = AlphaVantageQuoteSource({"api_key": "KEY"})

        with pytest.raises(TransportError, match="Unexpected response"):
            source.parse_payload(["not", "a", "dict"], "IBM")

    def test_malformed_entries_are_skipped(self) -> None:
        payload = _daily_payload()
        series = payload["Time Series (Daily)"]
        series["2024-06-26"] = {"1. open": "1"}
        series["not-a-date"] = dict(series["2024-06-28"])
        series["2024-06-25"] = dict(series["2024-06-28"], **{"4. close": "n/a"})
        source = AlphaVantageQuoteSource({"api_key": "KEY"})

        bars = source.parse_payload(payload, "IBM")

        assert [b.date for b in bars] == [date(2024, 6, 28), date(2024, 6, 27)]

    def test_request_exception_becomes_transport_error(self, session: MagicMock) -> None:
        session.get.side_effect = requests.ConnectionError("connection refused")
        source = AlphaVantageQuoteSource({"api_key": "KEY"}, session=session)

        with pytest.raises(TransportError, match="connection refused"):
            source.fetch("IBM")

    def test_http_error_becomes_transport_error(self, session: MagicMock) -> None:
        session.get.return_value.raise_for_status.side_effect = requests.HTTPError("503")
        source = AlphaVantageQuoteSource({"api_key": "KEY"}, session=session)

        with pytest.raises(TransportError):
            source.fetch("IBM")

    def test_invalid_json_becomes_transport_error(self, session: MagicMock) -> None:
        session.get.return_value.json.side_effect = ValueError("Expecting value")
        source = AlphaVantageQuoteSource({"api_key": "KEY"}, session=session)

        with pytest.raises(TransportError, match="Invalid JSON"):
            source.fetch("IBM")


class TestYahooQuoteSource:
    """Tests for YahooQuoteSource."""

    def test_init_with_defaults(self) -> None:
        assert YahooQuoteSource().timeout == 30

    def test_fetch_returns_raw_bars(self) -> None:
        import pandas as pd

        mock_df = pd.DataFrame(
            {
                "Open": [150.0, 151.0],
                "High": [155.0, 156.0],
                "Low": [148.0, 149.5],
                "Close": [153.0, 155.25],
                "Adj Close": [152.5, 154.75],
                "Volume": [1000000, 1100000],
            },
            index=pd.DatetimeIndex(
                [pd.Timestamp("2024-01-02", tz="America/New_York"),
                 pd.Timestamp("2024-01-03", tz="America/New_York")]
            ),
        )
        mock_ticker = MagicMock()
        mock_ticker.history.return_value = mock_df

        with patch.dict("sys.modules", {"yfinance": MagicMock()}):
            import sys

            mock_yf = sys.modules["yfinance"]
            mock_yf.Ticker.return_value = mock_ticker

            bars = YahooQuoteSource().fetch("AAPL", OutputSize.FULL)

        mock_ticker.history.assert_called_once_with(
            period="max", interval="1d", auto_adjust=False, timeout=30
        )
        assert len(bars) == 2
        assert bars[0].symbol == "AAPL"
        assert bars[0].date == date(2024, 1, 2)
        assert bars[0].open == Decimal("150.0")
        assert bars[1].close == Decimal("155.25")
        assert bars[1].adjusted_close == Decimal("154.75")
        assert bars[1].volume == 1100000

    def test_compact_keeps_last_hundred_rows(self) -> None:
        import pandas as pd

        index = pd.date_range("2023-01-01", periods=150, freq="D")
        mock_df = pd.DataFrame(
            {
                "Open": [10.0] * 150,
                "High": [11.0] * 150,
                "Low": [9.0] * 150,
                "Close": [10.5] * 150,
                "Volume": [100] * 150,
            },
            index=index,
        )
        mock_ticker = MagicMock()
        mock_ticker.history.return_value = mock_df

        with patch.dict("sys.modules", {"yfinance": MagicMock()}):
            import sys

            sys.modules["yfinance"].Ticker.return_value = mock_ticker
            bars = YahooQuoteSource().fetch("SPY", OutputSize.COMPACT)

        assert len(bars) == 100
        assert bars[-1].date == index[-1].date()
        # without an "Adj Close" column the close is used
        assert bars[0].adjusted_close == Decimal("10.5")

    def test_empty_history_gives_empty_list(self) -> None:
        import pandas as pd

        mock_ticker = MagicMock()
        mock_ticker.history.return_value = pd.DataFrame()

        with patch.dict("sys.modules", {"yfinance": MagicMock()}):
            import sys

            sys.modules["yfinance"].Ticker.return_value = mock_ticker
            assert YahooQuoteSource().fetch("NOPE") == []

    def test_fetch_failure_becomes_transport_error(self) -> None:
        mock_ticker = MagicMock()
        mock_ticker.history.side_effect = RuntimeError("Yahoo unavailable")

        with patch.dict("sys.modules", {"yfinance": MagicMock()}):
            import sys

            sys.modules["yfinance"].Ticker.return_value = mock_ticker
            with pytest.raises(TransportError, match="Yahoo unavailable"):
                YahooQuoteSource().fetch("AAPL")


class TestCSVQuoteSource:
    """Tests for CSVQuoteSource."""

    @pytest.fixture
    def csv_file(self, tmp_path: Path) -> Path:
        path = tmp_path / "bars.csv"
        path.write_text(
            "symbol,date,open,high,low,close,adjusted_close,volume\n"
            "AAPL,2024-01-02,187.15,188.44,183.89,185.64,185.20,82488700\n"
            "MSFT,2024-01-02,373.86,375.90,366.77,370.87,369.50,25258600\n"
            "aapl,2024-01-03,184.22,185.88,183.43,184.25,,58414500\n"
            "AAPL,2024-01-04,bad,183.09,180.88,181.91,181.50,71983600\n"
        )
        return path

    def test_requires_file_path(self) -> None:
        with pytest.raises(ConfigError, match="file_path"):
            CSVQuoteSource({})

    def test_check_configuration_requires_existing_file(self, tmp_path: Path) -> None:
        source = CSVQuoteSource({"file_path": str(tmp_path / "missing.csv")})

        with pytest.raises(ConfigError, match="CSV file not found"):
            source.check_configuration()

    def test_fetch_selects_symbol_case_insensitively(self, csv_file: Path) -> None:
        source = CSVQuoteSource({"file_path": str(csv_file)})

        bars = source.fetch("aapl")

        assert [b.date for b in bars] == [date(2024, 1, 2), date(2024, 1, 3), date(2024, 1, 4)]
        assert bars[0].close == Decimal("185.64")
        assert bars[0].adjusted_close == Decimal("185.20")
        # missing adjusted close falls back to close
        assert bars[1].adjusted_close == Decimal("184.25")
        # unparsable fields are left for the cleaner to reject
        assert bars[2].open is None

    def test_custom_columns_and_date_format(self, tmp_path: Path) -> None:
        path = tmp_path / "custom.csv"
        path.write_text("Ticker;Day;O;H;L;C;V\nSPY;02/01/2024;470;475;468;472;1000\n")
        source = CSVQuoteSource(
            {
                "file_path": str(path),
                "delimiter": ";",
                "symbol_col": "Ticker",
                "date_col": "Day",
                "open_col": "O",
                "high_col": "H",
                "low_col": "L",
                "close_col": "C",
                "volume_col": "V",
                "date_format": "%d/%m/%Y",
            }
        )

        bars = source.fetch("SPY")

        assert len(bars) == 1
        assert bars[0].date == date(2024, 1, 2)
        assert bars[0].high == Decimal("475")
        assert bars[0].volume == 1000

    def test_compact_keeps_most_recent_rows(self, tmp_path: Path) -> None:
        path = tmp_path / "long.csv"
        lines = ["symbol,date,open,high,low,close,volume"]
        for i in range(120):
            day = date(2023, 1, 1).toordinal() + i
            lines.append(f"QQQ,{date.fromordinal(day).isoformat()},1,1,1,1,10")
        path.write_text("\n".join(lines) + "\n")
        source = CSVQuoteSource({"file_path": str(path)})

        compact = source.fetch("QQQ", OutputSize.COMPACT)
        full = source.fetch("QQQ", OutputSize.FULL)

        assert len(compact) == 100
        assert compact[0].date == date.fromordinal(date(2023, 1, 1).toordinal() + 20)
        assert len(full) == 120

    def test_unreadable_file_raises_transport_error(self, tmp_path: Path) -> None:
        source = CSVQuoteSource({"file_path": str(tmp_path)})

        with pytest.raises(TransportError, match="Failed to read CSV file"):
            source.fetch("AAPL")


class TestResolveQuoteSource:
    """Tests for resolve_quote_source."""

    def test_resolve_yahoo(self) -> None:
        assert isinstance(resolve_quote_source("yahoo"), YahooQuoteSource)

    def test_resolve_is_case_insensitive(self) -> None:
        source = resolve_quote_source("AlphaVantage", {"api_key": "KEY"})

        assert isinstance(source, AlphaVantageQuoteSource)

    def test_resolve_csv_passes_params(self, tmp_path: Path) -> None:
        source = resolve_quote_source("csv", {"file_path": str(tmp_path / "x.csv")})

        assert isinstance(source, CSVQuoteSource)

    def test_unknown_source(self) -> None:
        with pytest.raises(ConfigError, match="Unrecognized quote source type"):
            resolve_quote_source("bloomberg")
