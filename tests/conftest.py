"""Shared fixtures for the chaos harness test suite."""

import random
from pathlib import Path

import pytest

from chaos_harness.config import (
    CircuitBreakerConfig,
    DispatcherConfig,
    HarnessConfig,
    RecoveryConfig,
    TelemetryConfig,
)
from chaos_harness.mocks.services import MockServices

REPO_ROOT = Path(__file__).resolve().parent.parent


class FakeClock:
    """Manually advanced clock for timer-driven state machines."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedRandom:
    """Returns a fixed sequence from ``random()``; repeats the last value when exhausted."""

    def __init__(self, values):
        self.values = list(values)

    def random(self) -> float:
        if len(self.values) > 1:
            return self.values.pop(0)
        return self.values[0]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def breaker_config():
    """Short cool-down so HALF_OPEN is reachable within a test"""
    return CircuitBreakerConfig(
        failure_threshold=3,
        failure_window_seconds=5.0,
        reset_timeout_seconds=0.2,
    )


@pytest.fixture
def dispatcher_config(breaker_config):
    return DispatcherConfig(
        failure_rate=0.0,
        default_latency_ms=0.0,
        circuit_breaker=breaker_config,
    )


@pytest.fixture
def harness_config():
    return HarnessConfig(
        target_component="intent-dispatch",
        max_concurrent_failures=2,
        journal=True,
        modules=["database", "api"],
        severity_levels={"cache": 2},
    )


@pytest.fixture
def telemetry_config():
    return TelemetryConfig(max_data_points=5, sample_interval_seconds=0.01)


@pytest.fixture
def recovery_config():
    return RecoveryConfig(
        grace_period_seconds=0.01,
        stage_delay_seconds=0.01,
        failure_duration_seconds=0.05,
        failure_severity=3,
    )


@pytest.fixture
def services():
    return MockServices()


@pytest.fixture
def scripted_rng():
    """Factory for ScriptedRandom"""
    return ScriptedRandom
