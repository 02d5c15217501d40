"""Rate limiters for calls to external quote providers.

Limiters take an injectable ``clock`` and ``sleep`` so tests can drive them
with a fake clock instead of real wall-clock delays.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable

from backtester.exceptions import ConfigError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], None]


class RateLimiter(ABC):
    """Abstract base class for blocking rate limiters."""

    @abstractmethod
    def acquire(self) -> float:
        """Block until another call is allowed.

        :returns: Seconds spent waiting.
        """
        ...


class NullRateLimiter(RateLimiter):
    """Limiter that never waits."""

    def acquire(self) -> float:
        return 0.0


class FixedIntervalRateLimiter(RateLimiter):
    """Enforce a fixed minimum spacing between consecutive calls.

    With the default budget of 5 calls per minute consecutive ``acquire`` calls
    are at least 12 seconds apart. The first call never waits. There is no
    jitter and no backoff.

    :param calls_per_minute: Provider call budget.
    :param clock: Monotonic time source in seconds.
    :param sleep: Blocking sleep function.
    """

    def __init__(
        self,
        calls_per_minute: float = 5,
        clock: Clock = time.monotonic,
        sleep: Sleep = time.sleep,
    ) -> None:
        if calls_per_minute <= 0:
            raise ConfigError("calls_per_minute must be positive")
        self.calls_per_minute = calls_per_minute
        self.interval = 60.0 / calls_per_minute
        self._clock = clock
        self._sleep = sleep
        self._last_call: float | None = None

    def acquire(self) -> float:
        waited = 0.0
        if self._last_call is not None:
            wait_time = self._last_call + self.interval - self._clock()
            if wait_time > 0:
                logger.debug("Rate limiter sleeping %.2fs", wait_time)
                self._sleep(wait_time)
                waited = wait_time
        self._last_call = self._clock()
        return waited


class TokenBucketRateLimiter(RateLimiter):
    """Token bucket allowing short bursts up to ``capacity`` calls.

    Tokens refill continuously at ``refill_per_minute``. The bucket starts
    full.

    :param capacity: Maximum burst size.
    :param refill_per_minute: Tokens added per minute.
    :param clock: Monotonic time source in seconds.
    :param sleep: Blocking sleep function.
    """

    def __init__(
        self,
        capacity: int = 5,
        refill_per_minute: float = 5,
        clock: Clock = time.monotonic,
        sleep: Sleep = time.sleep,
    ) -> None:
        if capacity <= 0:
            raise ConfigError("capacity must be positive")
        if refill_per_minute <= 0:
            raise ConfigError("refill_per_minute must be positive")
        self.capacity = capacity
        self.refill_rate = refill_per_minute / 60.0
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._updated = clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._updated
        if elapsed > 0:
            self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_rate)
        self._updated = now

    @property
    def tokens(self) -> float:
        """Tokens currently available."""
        self._refill()
        return self._tokens

    def acquire(self) -> float:
        self._refill()
        waited = 0.0
        if self._tokens < 1:
            wait_time = (1 - self._tokens) / self.refill_rate
            logger.debug("Token bucket empty, sleeping %.2fs", wait_time)
            self._sleep(wait_time)
            waited = wait_time
            self._refill()
            # the sleep function may return early under a fake clock
            self._tokens = max(self._tokens, 1.0)
        self._tokens -= 1
        return waited


def build_rate_limiter(
    calls_per_minute: float | None,
    burst: int | None = None,
    clock: Clock = time.monotonic,
    sleep: Sleep = time.sleep,
) -> RateLimiter:
    """Construct a limiter from configuration values.

    :param calls_per_minute: Call budget, or None to disable limiting.
    :param burst: If given, use a token bucket of this capacity.
    :returns: RateLimiter instance.
    """
    if calls_per_minute is None:
        return NullRateLimiter()
    if burst is not None:
        return TokenBucketRateLimiter(burst, calls_per_minute, clock=clock, sleep=sleep)
    return FixedIntervalRateLimiter(calls_per_minute, clock=clock, sleep=sleep)


__all__ = [
    "RateLimiter",
    "NullRateLimiter",
    "FixedIntervalRateLimiter",
    "TokenBucketRateLimiter",
    "build_rate_limiter",
]
