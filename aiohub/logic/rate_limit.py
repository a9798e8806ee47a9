"""Fixed-window rate limiting behind an injectable store.

The store is passed into the app factory instead of living in a module
global, so multi-instance deployments can swap the in-memory store for a
shared cache that implements the same `hit` contract.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Protocol, Tuple


class RateLimitStore(Protocol):
    def hit(self, key: str, window_seconds: int) -> Tuple[int, float]:
        """Record one request for `key`; return (count in window, window reset time)."""
        ...


class InMemoryRateLimitStore:
    """Process-local store; counters reset once their window elapses."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, window_seconds: int) -> Tuple[int, float]:
        now = self._clock()
        with self._lock:
            count, reset_at = self._windows.get(key, (0, 0.0))
            if now >= reset_at:
                count, reset_at = 0, now + float(window_seconds)
            count += 1
            self._windows[key] = (count, reset_at)
            self._evict_expired(now)
            return count, reset_at

    def _evict_expired(self, now: float) -> None:
        # Cheap bound on memory: drop stale windows once the map grows
        if len(self._windows) < 1024:
            return
        for stale in [k for k, (_, reset_at) in self._windows.items() if reset_at <= now]:
            del self._windows[stale]


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    remaining: int
    retry_after: int


class RateLimiter:
    def __init__(self, store: RateLimitStore, *, window_seconds: int, max_requests: int,
                 clock: Callable[[], float] = time.monotonic) -> None:
        self.store = store
        self.window_seconds = int(window_seconds)
        self.max_requests = int(max_requests)
        self._clock = clock

    def check(self, key: str) -> RateDecision:
        count, reset_at = self.store.hit(key, self.window_seconds)
        if count <= self.max_requests:
            return RateDecision(allowed=True, remaining=self.max_requests - count, retry_after=0)
        retry_after = max(1, int(reset_at - self._clock() + 0.999))
        return RateDecision(allowed=False, remaining=0, retry_after=retry_after)


__all__ = ["RateLimitStore", "InMemoryRateLimitStore", "RateDecision", "RateLimiter"]
