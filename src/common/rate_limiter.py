from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict


class RateLimitError(RuntimeError):
    """Raised when a non-blocking acquire would exceed the rate limit."""


@dataclass
class _WindowConfig:
    max_calls: int
    per_seconds: float


class SlidingWindowRateLimiter:
    """
    Thread-safe sliding-window limiter.

    - At most `max_calls` acquisitions within any `per_seconds` window.
    - `max_calls=1` turns it into a minimum spacing between calls, which is how
      the chain checker paces calls made with a single API key.
    - `blocking=False` raises `RateLimitError` instead of waiting.

    Scoped to one invocation; not a distributed limiter.
    """

    def __init__(
        self,
        max_calls: int,
        per_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_calls <= 0:
            raise ValueError("max_calls must be > 0")
        if per_seconds <= 0:
            raise ValueError("per_seconds must be > 0")
        self._cfg = _WindowConfig(max_calls=max_calls, per_seconds=per_seconds)
        self._events: Deque[float] = deque()
        self._lock = threading.Lock()
        self._clock = clock
        self._sleep = sleep

    def _prune(self, now: float) -> None:
        window_start = now - self._cfg.per_seconds
        while self._events and self._events[0] <= window_start:
            self._events.popleft()

    def _next_available_delay(self, now: float) -> float:
        if len(self._events) < self._cfg.max_calls:
            return 0.0
        oldest = self._events[0]
        return max(0.0, oldest + self._cfg.per_seconds - now)

    def acquire(self, *, blocking: bool = True) -> None:
        """Take a slot, sleeping until one frees up unless `blocking` is False."""
        while True:
            with self._lock:
                now = self._clock()
                self._prune(now)
                delay = self._next_available_delay(now)
                if delay == 0.0:
                    self._events.append(now)
                    return
            if not blocking:
                raise RateLimitError("rate limit exceeded; no slot available")
            self._sleep(min(delay, 1.0))


class KeyedRateLimiter:
    """One `SlidingWindowRateLimiter` per key (e.g. per Torn API key)."""

    def __init__(
        self,
        max_calls: int,
        per_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._max_calls = max_calls
        self._per_seconds = per_seconds
        self._clock = clock
        self._sleep = sleep
        self._lanes: Dict[str, SlidingWindowRateLimiter] = {}
        self._lock = threading.Lock()

    def lane(self, key: str) -> SlidingWindowRateLimiter:
        with self._lock:
            limiter = self._lanes.get(key)
            if limiter is None:
                limiter = SlidingWindowRateLimiter(
                    self._max_calls, self._per_seconds, clock=self._clock, sleep=self._sleep
                )
                self._lanes[key] = limiter
            return limiter

    def acquire(self, key: str, *, blocking: bool = True) -> None:
        self.lane(key).acquire(blocking=blocking)


__all__ = ["KeyedRateLimiter", "RateLimitError", "SlidingWindowRateLimiter"]
