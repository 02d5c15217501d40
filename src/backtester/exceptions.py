"""Backtester exception hierarchy.

All backtester-specific exceptions derive from :class:`TradingError` so callers
can catch all pipeline-related errors uniformly.
"""

from __future__ import annotations


class TradingError(Exception):
    """Base class for backtester exceptions.

    Derived exceptions should extend this class so that callers can catch all
    backtester-specific errors uniformly.
    """


class ConfigError(TradingError):
    """Raised when configuration files, parameters or credentials are invalid."""


class DataSourceError(TradingError):
    """Raised when accessing or processing a quote source fails."""


class RateLimitError(DataSourceError):
    """Raised when the quote provider reports its call budget is exhausted.

    Fatal for the current run; never retried.
    """


class TransportError(DataSourceError):
    """Raised when a quote request fails as a whole (network, HTTP, API error).

    The pipeline skips the current symbol and continues with the next one.
    """


class MalformedPayloadError(DataSourceError):
    """Raised when a single record in a provider payload cannot be parsed."""


class DataValidationError(TradingError):
    """Raised when a bar fails validation checks.

    Named DataValidationError to avoid conflict with pydantic's ValidationError.
    """


class StorageError(TradingError):
    """Raised when reading from or writing to storage fails."""


class PersistenceError(StorageError):
    """Raised when a store rejects one or more rows of a bulk upsert.

    :param message: Human readable summary.
    :param row_errors: Mapping of row key to the error reported for that row.
    """

    def __init__(self, message: str, row_errors: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.row_errors = dict(row_errors or {})


class StrategyError(TradingError):
    """Raised when a registered strategy factory does not produce a strategy."""


__all__ = [
    "TradingError",
    "ConfigError",
    "DataSourceError",
    "RateLimitError",
    "TransportError",
    "MalformedPayloadError",
    "DataValidationError",
    "StorageError",
    "PersistenceError",
    "StrategyError",
]
