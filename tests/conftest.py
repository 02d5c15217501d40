"""Shared fixtures for backtester tests."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Callable

import pytest

from backtester.types import Bar, RawBar, Symbol

BarFactory = Callable[..., list[Bar]]


def make_bar(symbol: str, day: date, close: Decimal | str | int, volume: int = 1000) -> Bar:
    price = Decimal(str(close))
    return Bar(
        symbol=Symbol(symbol),
        date=day,
        open=price,
        high=price,
        low=price,
        close=price,
        adjusted_close=price,
        volume=volume,
    )


@pytest.fixture
def make_bars() -> BarFactory:
    """Build a daily bar series from closing prices."""

    def _make(
        closes: list[Decimal | str | int],
        symbol: str = "AAPL",
        start: date = date(2024, 1, 1),
    ) -> list[Bar]:
        return [make_bar(symbol, start + timedelta(days=i), c) for i, c in enumerate(closes)]

    return _make


@pytest.fixture
def crossing_closes() -> list[int]:
    """Flat then stepped-up closes that produce one golden cross for 2/5 windows."""
    return [10, 10, 10, 10, 10, 12, 12, 12, 12, 12]


@pytest.fixture
def raw_bar() -> RawBar:
    """A raw bar that passes every validation rule."""
    return RawBar(
        symbol=" aapl ",
        date=date(2024, 1, 2),
        open=Decimal("185.125"),
        high=Decimal("188.444"),
        low=Decimal("183.885"),
        close=Decimal("185.645"),
        adjusted_close=Decimal("185.645"),
        volume=82488700,
    )


class FakeClock:
    """Manually advanced monotonic clock whose ``sleep`` advances time."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
