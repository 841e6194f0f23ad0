from __future__ import annotations

import threading

import pytest

from common.rate_limiter import KeyedRateLimiter, RateLimitError, SlidingWindowRateLimiter


class FakeClock:
    def __init__(self, t: float = 0.0) -> None:
        self.t = t

    def __call__(self) -> float:  # acts like time.monotonic
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


def test_non_blocking_exceeds_limit():
    clock = FakeClock()
    rl = SlidingWindowRateLimiter(max_calls=2, per_seconds=60.0, clock=clock)

    rl.acquire(blocking=True)
    rl.acquire(blocking=True)
    with pytest.raises(RateLimitError):
        rl.acquire(blocking=False)

    clock.advance(60.0)
    rl.acquire(blocking=False)  # now allowed


def test_blocking_allows_after_window_expires():
    clock = FakeClock()
    rl = SlidingWindowRateLimiter(max_calls=1, per_seconds=10.0, clock=clock)

    rl.acquire(blocking=True)
    clock.advance(10.0)
    rl.acquire(blocking=True)  # should succeed immediately after window


def test_blocking_sleeps_until_slot_frees():
    clock = FakeClock()
    slept = []

    def fake_sleep(dt: float) -> None:
        slept.append(dt)
        clock.advance(dt)

    rl = SlidingWindowRateLimiter(max_calls=1, per_seconds=0.2, clock=clock, sleep=fake_sleep)
    rl.acquire()
    rl.acquire()
    rl.acquire()

    assert slept == [pytest.approx(0.2), pytest.approx(0.2)]


def test_invalid_config():
    with pytest.raises(ValueError):
        SlidingWindowRateLimiter(max_calls=0, per_seconds=1.0)
    with pytest.raises(ValueError):
        SlidingWindowRateLimiter(max_calls=1, per_seconds=0)


def test_keyed_limiter_isolates_keys():
    clock = FakeClock()
    rl = KeyedRateLimiter(max_calls=1, per_seconds=60.0, clock=clock)

    rl.acquire("key-a", blocking=False)
    rl.acquire("key-b", blocking=False)
    with pytest.raises(RateLimitError):
        rl.acquire("key-a", blocking=False)
    assert rl.lane("key-a") is rl.lane("key-a")


def test_thread_safety_under_concurrency():
    clock = FakeClock()
    rl = SlidingWindowRateLimiter(max_calls=5, per_seconds=60.0, clock=clock)
    ok = []
    denied = []

    def worker():
        try:
            rl.acquire(blocking=False)
            ok.append(1)
        except RateLimitError:
            denied.append(1)

    threads = [threading.Thread(target=worker) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(ok) == 5
    assert len(denied) == 15
