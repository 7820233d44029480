"""Tests for the per-provider circuit breaker."""

import asyncio

import pytest

from stock_decision.data.provider_guard import ProviderGuard, ProviderUnavailableError


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def guard(clock) -> ProviderGuard:
    return ProviderGuard(clock=clock)


def fail_times(guard: ProviderGuard, provider: str, n: int) -> None:
    for _ in range(n):
        guard.record_failure(provider, RuntimeError("boom"))


class TestBreaker:
    """Tests for failure counting and cooldowns."""

    def test_stays_available_below_threshold(self, guard):
        fail_times(guard, "yfinance-info", 4)
        assert guard.is_available("yfinance-info") is True

    def test_disabled_at_threshold(self, guard):
        fail_times(guard, "yfinance-info", 5)
        assert guard.is_available("yfinance-info") is False
        assert guard.cooldown_remaining("yfinance-info") == 30.0

    def test_reenabled_after_cooldown(self, guard, clock):
        fail_times(guard, "yfinance-info", 5)
        clock.now += 30
        assert guard.is_available("yfinance-info") is True
        assert guard.cooldown_remaining("yfinance-info") == 0.0

    def test_cooldown_grows_exponentially(self, guard):
        assert guard.cooldown_for(5) == 30
        assert guard.cooldown_for(6) == 60
        assert guard.cooldown_for(7) == 120
        assert guard.cooldown_for(9) == 300
        assert guard.cooldown_for(20) == 300

    def test_success_resets_failures(self, guard):
        fail_times(guard, "yfinance-info", 4)
        guard.record_success("yfinance-info")
        fail_times(guard, "yfinance-info", 4)
        assert guard.is_available("yfinance-info") is True

    def test_providers_are_independent(self, guard):
        fail_times(guard, "yfinance-options", 5)
        assert guard.is_available("yfinance-options") is False
        assert guard.is_available("yfinance-history") is True

    def test_health(self, guard):
        fail_times(guard, "yfinance-options", 3)
        guard.record_success("yfinance-history")
        health = guard.get_health()
        assert health["yfinance-options"]["available"] is True
        assert health["yfinance-options"]["healthy"] is False
        assert health["yfinance-options"]["last_error"] == "boom"
        assert health["yfinance-history"]["healthy"] is True
        assert health["yfinance-history"]["total_successes"] == 1

    def test_reset_one_and_all(self, guard):
        fail_times(guard, "a", 5)
        fail_times(guard, "b", 5)
        guard.reset("a")
        assert guard.is_available("a") is True
        assert guard.is_available("b") is False
        guard.reset()
        assert guard.get_health() == {}


class TestCall:
    """Tests for ProviderGuard.call."""

    def test_success_recorded(self, guard):
        async def operation():
            return 42

        assert asyncio.run(guard.call("p", operation)) == 42
        assert guard.get_health()["p"]["total_successes"] == 1

    def test_error_propagates_without_fallback(self, guard):
        async def operation():
            raise RuntimeError("provider down")

        with pytest.raises(RuntimeError, match="provider down"):
            asyncio.run(guard.call("p", operation))
        assert guard.get_health()["p"]["consecutive_failures"] == 1

    def test_fallback_on_error(self, guard):
        async def operation():
            raise RuntimeError("provider down")

        assert asyncio.run(guard.call("p", operation, fallback=lambda: "default")) == "default"

    def test_open_circuit_raises(self, guard):
        fail_times(guard, "p", 5)
        calls = []

        async def operation():
            calls.append(1)
            return 1

        with pytest.raises(ProviderUnavailableError) as exc_info:
            asyncio.run(guard.call("p", operation))
        assert exc_info.value.provider == "p"
        assert exc_info.value.retry_after_seconds == 30.0
        assert calls == []

    def test_open_circuit_uses_fallback(self, guard):
        fail_times(guard, "p", 5)

        async def operation():
            return 1

        assert asyncio.run(guard.call("p", operation, fallback=lambda: 0)) == 0
