"""Rate limiter tests."""

from __future__ import annotations

from types import SimpleNamespace

from stakelab.services.rate_limit import RateLimiter, RateLimitRegistry


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def time(self) -> float:
        return self.now


def test_rate_limiter_rejects_when_window_is_full() -> None:
    clock = FakeClock()
    limiter = RateLimiter(max_events=2, window_seconds=10, time_fn=clock.time)
    assert limiter.hit("client").remaining == 1
    clock.now += 1
    assert limiter.hit("client").remaining == 0
    clock.now += 1
    result = limiter.hit("client")
    assert not result.allowed
    assert result.retry_after(clock.now) == 8


def test_rate_limiter_frees_slots_as_the_window_slides() -> None:
    clock = FakeClock()
    limiter = RateLimiter(max_events=1, window_seconds=10, time_fn=clock.time)
    assert limiter.hit("client").allowed
    clock.now = 9.5
    assert not limiter.hit("client").allowed
    clock.now = 10.0
    assert limiter.hit("client").allowed


def test_rate_limiter_tracks_identifiers_separately() -> None:
    clock = FakeClock()
    limiter = RateLimiter(max_events=1, window_seconds=10, time_fn=clock.time)
    assert limiter.hit("a").allowed
    assert limiter.hit("b").allowed
    assert not limiter.hit("a").allowed


def test_zero_limit_disables_limiting() -> None:
    limiter = RateLimiter(max_events=0)
    assert all(limiter.hit("client").allowed for _ in range(100))


def test_registry_falls_back_to_default_bucket() -> None:
    settings = SimpleNamespace(
        rate_limit_window_seconds=60,
        rate_limit_predict=1,
        rate_limit_save=2,
        rate_limit_custom=3,
        rate_limit_default=4,
    )
    registry = RateLimitRegistry.from_settings(settings)
    assert registry.get("predict").max_events == 1
    assert registry.get("custom").max_events == 3
    assert registry.get("unknown").max_events == 4


def test_idle_identifiers_are_evicted() -> None:
    clock = FakeClock()
    limiter = RateLimiter(max_events=5, window_seconds=10, time_fn=clock.time)
    for idx in range(10_000):
        limiter.hit(f"client-{idx}")
    assert limiter.tracked() == 10_000
    clock.now = 10_000.0
    assert limiter.hit("fresh").allowed
    assert limiter.tracked() == 1


def test_sweep_keeps_identifiers_inside_their_window() -> None:
    clock = FakeClock()
    limiter = RateLimiter(max_events=1, window_seconds=60, time_fn=clock.time, sweep_interval=300)
    limiter.hit("idle")
    clock.now = 280.0
    limiter.hit("busy")
    clock.now = 300.0
    limiter.hit("other")
    assert limiter.tracked() == 2
    assert not limiter.hit("busy").allowed
