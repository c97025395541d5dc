"""
Rate Limiter for the Access Provisioner.

Provider calls are routed through a RateLimiter instead of sleeping inline
in the stage loops. The pacing strategy is selected by configuration:

- ``fixed``: a minimum gap between the end of one call and the start of the next
- ``token_bucket``: bursts up to ``capacity`` calls, then ``refill_per_second``
- ``none``: no pacing

All limiters block with a plain sleep; the clock and sleep function are
injectable so tests never wait.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, TypeVar

from ..config import RateLimitConfig
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], None]
ClockFunc = Callable[[], float]


class RateLimiter(ABC):
    """Paces calls to the identity provider."""

    def __init__(self, sleep: SleepFunc = time.sleep, clock: ClockFunc = time.monotonic):
        self._sleep = sleep
        self._clock = clock

    @abstractmethod
    def acquire(self) -> float:
        """
        Block until the next call may start.

        Returns:
            Seconds spent waiting
        """
        pass

    def release(self) -> None:
        """Note that a call has finished."""

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run func once the limiter allows it."""
        self.acquire()
        try:
            return func(*args, **kwargs)
        finally:
            self.release()

    def _wait(self, seconds: float) -> float:
        if seconds <= 0:
            return 0.0
        logger.debug(f"Rate limiter waiting {seconds:.2f}s")
        self._sleep(seconds)
        return seconds


class NoDelayLimiter(RateLimiter):
    """Never waits."""

    def acquire(self) -> float:
        return 0.0


class FixedDelayLimiter(RateLimiter):
    """Keeps at least `interval` seconds between consecutive calls."""

    def __init__(self, interval: float, sleep: SleepFunc = time.sleep, clock: ClockFunc = time.monotonic):
        super().__init__(sleep, clock)
        if interval < 0:
            raise ConfigurationError("Rate limit interval must not be negative")
        self.interval = interval
        self._last_finished: Optional[float] = None

    def acquire(self) -> float:
        if self._last_finished is None:
            return 0.0
        remaining = self._last_finished + self.interval - self._clock()
        return self._wait(remaining)

    def release(self) -> None:
        self._last_finished = self._clock()


class TokenBucketLimiter(RateLimiter):
    """Allows bursts of `capacity` calls, refilled at `refill_per_second`."""

    def __init__(self, capacity: int, refill_per_second: float,
                 sleep: SleepFunc = time.sleep, clock: ClockFunc = time.monotonic):
        super().__init__(sleep, clock)
        if capacity < 1:
            raise ConfigurationError("Token bucket capacity must be at least 1")
        if refill_per_second <= 0:
            raise ConfigurationError("Token bucket refill rate must be positive")
        self.capacity = capacity
        self.refill_per_second = refill_per_second
        self.tokens = float(capacity)
        self._updated = self._clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(now - self._updated, 0.0)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_per_second)
        self._updated = now

    def acquire(self) -> float:
        self._refill()
        waited = 0.0
        if self.tokens < 1:
            waited = self._wait((1 - self.tokens) / self.refill_per_second)
            self._refill()
            # a sleep can return slightly early on some clocks
            self.tokens = max(self.tokens, 1.0)
        self.tokens -= 1
        return waited


def create_rate_limiter(config: Optional[RateLimitConfig] = None,
                        sleep: SleepFunc = time.sleep,
                        clock: ClockFunc = time.monotonic) -> RateLimiter:
    """
    Build the limiter selected by configuration.

    Args:
        config: Rate limit settings; defaults to a 1 second fixed delay
        sleep: Sleep function (injectable for tests)
        clock: Monotonic clock (injectable for tests)

    Returns:
        A RateLimiter instance
    """
    config = config or RateLimitConfig()

    if config.strategy == "fixed":
        return FixedDelayLimiter(config.interval_seconds, sleep=sleep, clock=clock)
    elif config.strategy == "token_bucket":
        return TokenBucketLimiter(config.capacity, config.refill_per_second, sleep=sleep, clock=clock)
    elif config.strategy == "none":
        return NoDelayLimiter(sleep=sleep, clock=clock)
    else:
        raise ConfigurationError(f"Unknown rate limit strategy: {config.strategy}")
