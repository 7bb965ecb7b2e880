from __future__ import annotations

import math
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from finbuddy.core.config import Settings


@dataclass(slots=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: int = 0


class RateLimitStore(ABC):
    """Shared counter storage keyed by client."""

    @abstractmethod
    def hit(self, key: str, window_seconds: float, now: float) -> tuple[int, float]:
        """Count one request for ``key`` and return (count in window, window reset time)."""
        raise NotImplementedError


class InMemoryRateLimitStore(RateLimitStore):
    def __init__(self) -> None:
        self._windows: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()
        self._next_sweep = 0.0

    def hit(self, key: str, window_seconds: float, now: float) -> tuple[int, float]:
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
                self._next_sweep = now + window_seconds
            count, reset_at = self._windows.get(key, (0, 0.0))
            if now >= reset_at:
                count, reset_at = 0, now + window_seconds
            count += 1
            self._windows[key] = (count, reset_at)
            return count, reset_at

    def _sweep(self, now: float) -> None:
        expired = [key for key, (_, reset_at) in self._windows.items() if now >= reset_at]
        for key in expired:
            del self._windows[key]

    def size(self) -> int:
        with self._lock:
            return len(self._windows)

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()


class RateLimiter:
    def __init__(
        self,
        store: RateLimitStore,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock

    def check(self, key: str) -> RateLimitDecision:
        now = self.clock()
        count, reset_at = self.store.hit(key, self.window_seconds, now)
        if count > self.max_requests:
            return RateLimitDecision(allowed=False, remaining=0, retry_after=max(1, math.ceil(reset_at - now)))
        return RateLimitDecision(allowed=True, remaining=self.max_requests - count)


def build_rate_limiter(settings: Settings, store: RateLimitStore | None = None) -> RateLimiter | None:
    if not settings.rate_limit_enabled:
        return None
    return RateLimiter(
        store or InMemoryRateLimitStore(),
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


def client_key(headers: Mapping[str, str], peer: str | None = None) -> str:
    forwarded = headers.get("x-forwarded-for", "")
    if forwarded.strip():
        return forwarded.split(",")[0].strip()
    real_ip = headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip
    return peer or "unknown"
