"""Sliding-window rate limiting for the expensive API routes."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from stakelab.config import Settings

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_SECONDS = 300.0


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    def retry_after(self, now: float) -> int:
        return max(int(self.reset_at - now + 0.999), 0)


class RateLimiter:
    """Per-identifier sliding window; rejects instead of waiting.

    Identifiers whose window has fully expired are swept every
    ``sweep_interval`` seconds so client-chosen ids do not pile up.
    """

    def __init__(
        self,
        max_events: int,
        window_seconds: float = 60.0,
        *,
        time_fn: Callable[[], float] | None = None,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
    ) -> None:
        self.max_events = max_events
        self.window_seconds = window_seconds
        self.sweep_interval = sweep_interval
        self._timestamps: dict[str, deque[float]] = {}
        self._time = time_fn or time.time
        self._lock = threading.Lock()
        self._last_sweep = self._time()

    def now(self) -> float:
        return self._time()

    def tracked(self) -> int:
        return len(self._timestamps)

    def _sweep(self, cutoff: float) -> None:
        expired = [key for key, stamps in self._timestamps.items() if not stamps or stamps[-1] <= cutoff]
        for key in expired:
            del self._timestamps[key]
        if expired:
            logger.debug("Evicted %d idle rate-limit identifiers", len(expired))

    def hit(self, identifier: str) -> RateLimitResult:
        now = self._time()
        if self.max_events <= 0:
            return RateLimitResult(True, 0, 0, now)
        with self._lock:
            cutoff = now - self.window_seconds
            if now - self._last_sweep >= self.sweep_interval:
                self._sweep(cutoff)
                self._last_sweep = now
            stamps = self._timestamps.setdefault(identifier, deque())
            while stamps and stamps[0] <= cutoff:
                stamps.popleft()
            if len(stamps) >= self.max_events:
                reset_at = stamps[0] + self.window_seconds
                logger.info("Rate limit hit for %s", identifier)
                return RateLimitResult(False, self.max_events, 0, reset_at)
            stamps.append(now)
            return RateLimitResult(
                True,
                self.max_events,
                self.max_events - len(stamps),
                stamps[0] + self.window_seconds,
            )


class RateLimitRegistry:
    """One limiter per route bucket, built from settings."""

    def __init__(self, limiters: dict[str, RateLimiter]) -> None:
        self.limiters = limiters

    @classmethod
    def from_settings(
        cls, settings: Settings, time_fn: Callable[[], float] | None = None
    ) -> RateLimitRegistry:
        window = settings.rate_limit_window_seconds
        limits = {
            "predict": settings.rate_limit_predict,
            "save": settings.rate_limit_save,
            "custom": settings.rate_limit_custom,
            "default": settings.rate_limit_default,
        }
        return cls({name: RateLimiter(n, window, time_fn=time_fn) for name, n in limits.items()})

    def get(self, bucket: str) -> RateLimiter:
        return self.limiters.get(bucket) or self.limiters["default"]
