"""Quote sources, rate limiting and bar cleaning."""

from backtester.data.limiter import (FixedIntervalRateLimiter,
                                     NullRateLimiter, RateLimiter,
                                     TokenBucketRateLimiter,
                                     build_rate_limiter)
from backtester.data.normalize import (CleaningResult, Rejection, clean_bars,
                                       clean_bars_detailed, normalize_bar,
                                       validate_bar)
from backtester.data.sources import (AlphaVantageQuoteSource, CSVQuoteSource,
                                     QuoteSource, YahooQuoteSource,
                                     resolve_quote_source)

__all__ = [
    "QuoteSource",
    "AlphaVantageQuoteSource",
    "YahooQuoteSource",
    "CSVQuoteSource",
    "resolve_quote_source",
    "RateLimiter",
    "NullRateLimiter",
    "FixedIntervalRateLimiter",
    "TokenBucketRateLimiter",
    "build_rate_limiter",
    "CleaningResult",
    "Rejection",
    "clean_bars",
    "clean_bars_detailed",
    "normalize_bar",
    "validate_bar",
]
