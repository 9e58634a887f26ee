"""
Request pacing for the GitHub REST API.

A crawl fans out one task per addin, so hundreds of requests can be ready in
the same second. Every worker thread takes a token from one shared bucket
before each request: bursts stay under ``capacity`` and the sustained rate
under ``refill_rate`` requests per second.

Configuration (``github.rate_limit`` in the discovery config)::

    github:
      rate_limit:
        capacity: 20        # burst size
        refill_rate: 1.2    # requests per second, about 4300 an hour
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

# longest single sleep while waiting, so a waiting thread re-checks the bucket often
MAX_SLEEP_STEP = 1.0

_limiters: dict[str, RateLimiter] = {}
_limiters_lock = threading.Lock()


@dataclass(frozen=True)
class RateLimiterConfig:
    capacity: float = 20.0
    refill_rate: float = 1.2

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> RateLimiterConfig:
        d = d or {}
        return cls(
            capacity=float(d.get("capacity", 20.0)),
            refill_rate=float(d.get("refill_rate", 1.2)),
        )

    @property
    def hourly_budget(self) -> float:
        return self.refill_rate * 3600.0


# 5000 requests an hour with a token
GITHUB_AUTHENTICATED = RateLimiterConfig(capacity=20.0, refill_rate=1.2)
# 60 requests an hour without one
GITHUB_ANONYMOUS = RateLimiterConfig(capacity=10.0, refill_rate=60.0 / 3600.0)


class RateLimiter:
    """Thread-safe token bucket. ``clock`` and ``sleep`` are injectable for tests."""

    def __init__(
        self,
        capacity: float = 20.0,
        refill_rate: float = 1.2,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if capacity <= 0 or refill_rate <= 0:
            raise ValueError("capacity and refill_rate must be positive")
        self.capacity = float(capacity)
        self.refill_rate = float(refill_rate)
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._tokens = self.capacity
        self._updated = clock()

    @classmethod
    def from_config(cls, config: RateLimiterConfig, **kwargs: Any) -> RateLimiter:
        return cls(config.capacity, config.refill_rate, **kwargs)

    def __repr__(self) -> str:
        return f"RateLimiter(capacity={self.capacity:g}, refill_rate={self.refill_rate:g})"

    def _take(self, tokens: float) -> float:
        """Take ``tokens`` and return 0, or return the seconds until they are available."""
        with self._lock:
            now = self._clock()
            elapsed = max(0.0, now - self._updated)
            self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_rate)
            self._updated = now
            if self._tokens >= tokens:
                self._tokens -= tokens
                return 0.0
            return (tokens - self._tokens) / self.refill_rate

    def try_acquire(self, tokens: float = 1.0) -> bool:
        return self._take(tokens) == 0.0

    def acquire(self, tokens: float = 1.0) -> float:
        """Block until ``tokens`` are taken. Returns the seconds spent waiting."""
        waited = 0.0
        while True:
            shortfall = self._take(tokens)
            if shortfall == 0.0:
                return waited
            step = min(shortfall, MAX_SLEEP_STEP)
            self._sleep(step)
            waited += step

    def available_tokens(self) -> float:
        self._take(0.0)
        with self._lock:
            return self._tokens


def get_rate_limiter(name: str, config: RateLimiterConfig | dict[str, Any] | None = None) -> RateLimiter:
    """The limiter shared under ``name``; ``config`` only applies when it is created."""
    with _limiters_lock:
        limiter = _limiters.get(name)
        if limiter is None:
            if not isinstance(config, RateLimiterConfig):
                config = RateLimiterConfig.from_dict(config)
            limiter = _limiters[name] = RateLimiter.from_config(config)
        return limiter


def reset_rate_limiters() -> None:
    with _limiters_lock:
        _limiters.clear()
