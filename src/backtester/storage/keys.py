"""Row keys used to make store writes idempotent.

Bars are keyed on ``(symbol, date)``. Signals have the logical key
``(symbol, date, strategy_id)``; the timestamped scheme appends the write time
in milliseconds, so every write of the same signal produces a distinct row.
"""

from __future__ import annotations

import time
from datetime import date
from typing import Callable

from backtester.types import Bar, Signal, SignalKeyMode


def bar_key(symbol: str, day: date) -> str:
    """Storage key of the bar for ``symbol`` on ``day``."""
    return f"{symbol.strip().upper()}_{day.isoformat()}"


def bar_row_key(bar: Bar) -> str:
    return bar_key(bar.symbol, bar.date)


def signal_key(signal: Signal) -> str:
    """Logical key of a signal: symbol, date and strategy id."""
    return f"{signal.symbol}_{signal.date.isoformat()}_{signal.strategy_id}"


def timestamped_signal_key(signal: Signal, now_ms: int) -> str:
    """Logical key with the write time appended."""
    return f"{signal_key(signal)}_{now_ms}"


def signal_row_key(
    signal: Signal,
    mode: SignalKeyMode = SignalKeyMode.TIMESTAMPED,
    clock: Callable[[], float] = time.time,
) -> str:
    """Storage key of a signal under the given key scheme.

    :param signal: Signal being written.
    :param mode: Key scheme.
    :param clock: Wall-clock time source in seconds.
    """
    if SignalKeyMode(mode) == SignalKeyMode.STABLE:
        return signal_key(signal)
    return timestamped_signal_key(signal, int(clock() * 1000))
