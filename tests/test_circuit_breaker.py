"""Tests for the sliding-window circuit breaker."""

import asyncio

import pytest

from chaos_harness.config import CircuitBreakerConfig
from chaos_harness.dispatch.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
)


@pytest.fixture
def config():
    return CircuitBreakerConfig(failure_threshold=3, failure_window_seconds=5.0, reset_timeout_seconds=10.0)


@pytest.fixture
def breaker(config, clock):
    return CircuitBreaker("intent-dispatch", config, clock)


def trip(breaker, count=3):
    for _ in range(count):
        breaker.record_failure()


class TestClosedState:

    def test_starts_closed(self, breaker):
        assert breaker.state == CircuitState.CLOSED
        assert breaker.allow_request()

    def test_opens_at_threshold(self, breaker):
        """Three failures inside the window open the breaker"""
        trip(breaker, 2)
        assert breaker.state == CircuitState.CLOSED
        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        assert not breaker.allow_request()

    def test_failures_outside_window_do_not_accumulate(self, breaker, clock):
        for _ in range(3):
            breaker.record_failure()
            clock.advance(6.0)
        assert breaker.state == CircuitState.CLOSED
        assert breaker.consecutive_failures == 3

    def test_success_resets_consecutive_failures(self, breaker):
        trip(breaker, 2)
        breaker.record_success()
        assert breaker.consecutive_failures == 0


class TestRecovery:
    """OPEN -> HALF_OPEN -> CLOSED/OPEN"""

    def test_half_open_after_reset_timeout(self, breaker, clock):
        trip(breaker)
        clock.advance(9.9)
        assert breaker.state == CircuitState.OPEN
        clock.advance(0.2)
        assert breaker.state == CircuitState.HALF_OPEN

    def test_half_open_admits_single_trial(self, breaker, clock):
        trip(breaker)
        clock.advance(10.0)
        assert breaker.allow_request()
        assert not breaker.allow_request()

    def test_trial_success_closes(self, breaker, clock):
        trip(breaker)
        clock.advance(10.0)
        assert breaker.allow_request()
        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.consecutive_failures == 0
        assert breaker.allow_request()

    def test_trial_failure_reopens_with_fresh_cooldown(self, breaker, clock):
        trip(breaker)
        clock.advance(10.0)
        assert breaker.allow_request()
        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        clock.advance(9.0)
        assert breaker.state == CircuitState.OPEN
        clock.advance(1.0)
        assert breaker.state == CircuitState.HALF_OPEN

    def test_outcome_from_earlier_state_is_ignored(self, breaker, clock):
        """A request admitted while CLOSED cannot settle the HALF_OPEN trial"""
        stale = breaker.acquire()
        trip(breaker)
        clock.advance(10.0)
        trial = breaker.acquire()
        assert trial.trial

        breaker.record_success(stale)
        assert breaker.state == CircuitState.HALF_OPEN
        assert not breaker.allow_request()

        breaker.record_success(trial)
        assert breaker.state == CircuitState.CLOSED

    def test_release_frees_unsettled_trial(self, breaker, clock):
        trip(breaker)
        clock.advance(10.0)
        trial = breaker.acquire()
        breaker.release(trial)
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.acquire().trial

    def test_release_after_outcome_is_noop(self, breaker, clock):
        trip(breaker)
        clock.advance(10.0)
        trial = breaker.acquire()
        breaker.record_failure(trial)
        breaker.release(trial)
        assert breaker.state == CircuitState.OPEN
        assert breaker.acquire() is None

    @pytest.mark.asyncio
    async def test_cooldown_fires_on_running_loop(self):
        """With a running loop the transition happens without a state read"""
        breaker = CircuitBreaker(
            "db",
            CircuitBreakerConfig(failure_threshold=1, failure_window_seconds=1.0, reset_timeout_seconds=0.05),
        )
        breaker.record_failure()
        assert breaker._state == CircuitState.OPEN
        await asyncio.sleep(0.1)
        assert breaker._state == CircuitState.HALF_OPEN


class TestOverrides:

    def test_force_open_holds_without_cooldown(self, breaker, clock):
        breaker.force_open()
        clock.advance(1000.0)
        assert breaker.state == CircuitState.OPEN
        assert not breaker.allow_request()

    def test_force_closed_releases(self, breaker):
        breaker.force_open()
        breaker.force_closed()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.allow_request()

    def test_reset_clears_failure_history(self, breaker):
        trip(breaker)
        breaker.reset()
        snapshot = breaker.snapshot()
        assert snapshot.state == CircuitState.CLOSED
        assert snapshot.consecutive_failures == 0
        assert snapshot.last_failure_timestamp is None

    def test_snapshot_to_dict(self, breaker):
        trip(breaker)
        data = breaker.snapshot().to_dict()
        assert data["name"] == "intent-dispatch"
        assert data["state"] == "OPEN"
        assert data["consecutive_failures"] == 3
        assert data["last_failure_timestamp"] is not None


class TestRegistry:

    def test_one_breaker_per_target(self, config, clock):
        registry = CircuitBreakerRegistry(config, clock)
        assert registry.get("db") is registry.get("db")
        trip(registry.get("db"))
        assert registry.state_of("db") == CircuitState.OPEN
        assert registry.state_of("api") == CircuitState.CLOSED

    def test_snapshot_and_reset(self, config, clock):
        registry = CircuitBreakerRegistry(config, clock)
        registry.get("db")
        registry.get("api")
        assert set(registry.snapshot()) == {"db", "api"}
        registry.reset()
        assert registry.snapshot() == {}
