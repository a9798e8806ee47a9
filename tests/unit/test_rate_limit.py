"""Unit tests for the fixed-window rate limiter."""

from __future__ import annotations

from typing import Dict, List, Tuple

from aiohub.logic.rate_limit import InMemoryRateLimitStore, RateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_allows_up_to_max_then_blocks_with_retry_after():
    clock = FakeClock()
    limiter = RateLimiter(InMemoryRateLimitStore(clock=clock), window_seconds=10, max_requests=2, clock=clock)

    first, second, third = (limiter.check("u1") for _ in range(3))

    assert first.allowed and first.remaining == 1
    assert second.allowed and second.remaining == 0
    assert not third.allowed
    assert third.retry_after == 10


def test_window_resets_after_expiry():
    clock = FakeClock()
    limiter = RateLimiter(InMemoryRateLimitStore(clock=clock), window_seconds=10, max_requests=1, clock=clock)
    limiter.check("u1")
    assert not limiter.check("u1").allowed

    clock.now += 10

    assert limiter.check("u1").allowed


def test_keys_are_counted_independently():
    clock = FakeClock()
    limiter = RateLimiter(InMemoryRateLimitStore(clock=clock), window_seconds=10, max_requests=1, clock=clock)

    assert limiter.check("u1").allowed
    assert limiter.check("u2").allowed
    assert not limiter.check("u1").allowed


def test_custom_store_is_used():
    class RecordingStore:
        def __init__(self) -> None:
            self.calls: List[Tuple[str, int]] = []
            self.counts: Dict[str, int] = {}

        def hit(self, key: str, window_seconds: int) -> Tuple[int, float]:
            self.calls.append((key, window_seconds))
            self.counts[key] = self.counts.get(key, 0) + 1
            return self.counts[key], 0.0

    store = RecordingStore()
    limiter = RateLimiter(store, window_seconds=30, max_requests=5)

    limiter.check("shared")

    assert store.calls == [("shared", 30)]
