"""
Chaos tests for the failure injection engine.

Covers the concurrency cap, duplicate rejection, scheduled recovery and the
interaction between injected failures and the dispatcher's circuit breaker.
"""

import time

import pytest

from chaos_harness.actions.failure_injection import ChaosHarness, FailureOptions
from chaos_harness.config import CircuitBreakerConfig, DispatcherConfig, HarnessConfig
from chaos_harness.dispatch.circuit_breaker import CircuitState
from chaos_harness.dispatch.dispatcher import DispatchError, IntentDispatcher


@pytest.fixture
def harness(harness_config, services):
    harness = ChaosHarness(harness_config, services=services)
    harness.start()
    return harness


def failure(failure_type="database", target="database", duration=0.05, severity=None):
    return FailureOptions(type=failure_type, target=target, duration_seconds=duration, severity=severity)


@pytest.mark.chaos
class TestInjection:

    @pytest.mark.asyncio
    async def test_rejected_when_not_running(self, harness_config):
        harness = ChaosHarness(harness_config)
        assert await harness.inject_failure(failure()) is None
        assert harness.active_count == 0

    @pytest.mark.asyncio
    async def test_invalid_parameters_raise(self, harness):
        with pytest.raises(ValueError):
            await harness.inject_failure(failure(duration=-1))
        with pytest.raises(ValueError):
            await harness.inject_failure(failure(severity=6))

    @pytest.mark.asyncio
    async def test_inject_degrades_and_recovery_restores(self, harness, services):
        injection = await harness.inject_failure(failure(severity=4))
        assert injection is not None
        assert injection.active
        assert harness.is_failing("database")
        assert not services.database.healthy
        assert services.database.query_latency_ms == 400.0

        await harness.wait_for_recovery()
        assert not injection.active
        assert not harness.is_failing("database")
        assert services.database.healthy
        assert services.database.query_latency_ms == 20.0

    @pytest.mark.asyncio
    async def test_recovery_never_fires_early(self, harness):
        started = time.monotonic()
        await harness.inject_failure(failure(duration=0.1))
        await harness.wait_for_recovery()
        assert time.monotonic() - started >= 0.1

    @pytest.mark.asyncio
    async def test_concurrency_cap(self, harness):
        assert await harness.inject_failure(failure("database", "database")) is not None
        assert await harness.inject_failure(failure("api", "api")) is not None
        assert await harness.inject_failure(failure("cache", "cache")) is None
        assert harness.active_count == 2
        await harness.wait_for_recovery()
        assert harness.active_count == 0

    @pytest.mark.asyncio
    async def test_duplicate_key_rejected(self, harness):
        assert await harness.inject_failure(failure()) is not None
        assert await harness.inject_failure(failure()) is None
        assert harness.active_count == 1
        await harness.wait_for_recovery()

    @pytest.mark.asyncio
    async def test_default_severity_from_config(self, harness):
        cache = await harness.inject_failure(failure("cache", "cache"))
        database = await harness.inject_failure(failure("database", "database"))
        assert cache.severity == 2
        assert database.severity == 3
        await harness.wait_for_recovery()

    @pytest.mark.asyncio
    async def test_stop_clears_active_failures(self, harness, services):
        await harness.inject_failure(failure(duration=0.05))
        harness.stop()
        assert harness.active_count == 0
        assert services.database.healthy
        assert await harness.inject_failure(failure("api", "api")) is None
        # The scheduled recovery still fires, against cleared state
        await harness.wait_for_recovery()
        assert harness.active_count == 0

    @pytest.mark.asyncio
    async def test_journal_records_lifecycle(self, harness):
        await harness.inject_failure(failure())
        await harness.wait_for_recovery()
        assert [entry["event"] for entry in harness.journal] == ["inject", "recover"]
        assert harness.journal[0]["target"] == "database"

    @pytest.mark.asyncio
    async def test_wait_for_recovery_with_nothing_pending(self, harness):
        await harness.wait_for_recovery()
        assert harness.pending_recoveries == 0

    def test_analyze_dependencies(self, harness):
        dependencies = harness.analyze_dependencies()
        assert dependencies["api"] == ["database", "cache"]
        assert "intent-dispatch" in dependencies
        assert dependencies["database"] == []

    @pytest.mark.asyncio
    async def test_injection_to_dict(self, harness):
        injection = await harness.inject_failure(FailureOptions(
            type="api", target="api", duration_seconds=0.01, severity=2, metadata={"source": "test"},
        ))
        data = injection.to_dict()
        assert data["id"].startswith("failure_")
        assert data["severity"] == 2
        assert data["metadata"] == {"source": "test"}
        await harness.wait_for_recovery()


@pytest.mark.chaos
class TestDispatchUnderFailure:
    """Injected failures seen through the intent dispatcher"""

    @pytest.mark.asyncio
    async def test_database_failure_opens_then_closes_circuit(self, services):
        """
        A database failure opens the breaker within three dispatches; once the
        failure has been recovered the breaker closes again.
        """
        harness = ChaosHarness(HarnessConfig(target_component="database"), services=services)
        harness.start()
        dispatcher = IntentDispatcher(
            DispatcherConfig(
                default_latency_ms=0.0,
                circuit_breaker=CircuitBreakerConfig(
                    failure_threshold=3, failure_window_seconds=5.0, reset_timeout_seconds=0.1
                ),
            ),
            harness=harness,
        )
        dispatcher.enable_harness()
        await dispatcher.initialize()
        intent = await dispatcher.process_text("search database status")

        await harness.inject_failure(failure(duration=0.3, severity=4))
        errors = []
        for _ in range(3):
            errors.append((await dispatcher.dispatch_intent(intent.id, target="database")).error)
        assert errors == [DispatchError.INJECTED_FAILURE] * 3
        assert dispatcher.circuit_state("database") == CircuitState.OPEN

        await harness.wait_for_recovery()
        result = await dispatcher.dispatch_intent(intent.id, target="database")
        assert result.success
        assert dispatcher.circuit_state("database") == CircuitState.CLOSED
