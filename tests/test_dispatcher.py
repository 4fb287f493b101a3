"""Tests for the intent dispatcher."""

import asyncio
import time
from unittest.mock import MagicMock

import pytest

from chaos_harness.dispatch.circuit_breaker import CircuitState
from chaos_harness.dispatch.dispatcher import DispatchError, IntentDispatcher, ScenarioOptions
from chaos_harness.dispatch.intents import IntentStatus, IntentType
from chaos_harness.exceptions import IntentNotFoundError, LifecycleError


@pytest.fixture
def dispatcher(dispatcher_config, rng):
    return IntentDispatcher(dispatcher_config, rng=rng)


async def ready(dispatcher):
    dispatcher.enable_harness()
    await dispatcher.initialize()
    return dispatcher


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_initialize_requires_enable(self, dispatcher):
        with pytest.raises(LifecycleError):
            await dispatcher.initialize()

    @pytest.mark.asyncio
    async def test_operations_require_initialize(self, dispatcher):
        dispatcher.enable_harness()
        with pytest.raises(LifecycleError):
            await dispatcher.process_text("search for reports")
        with pytest.raises(LifecycleError):
            await dispatcher.dispatch_intent("intent_missing")

    @pytest.mark.asyncio
    async def test_disable_blocks_operations(self, dispatcher):
        await ready(dispatcher)
        dispatcher.disable_harness()
        with pytest.raises(LifecycleError):
            await dispatcher.get_all_intents()

    @pytest.mark.asyncio
    async def test_reset_requires_new_initialize(self, dispatcher):
        await ready(dispatcher)
        await dispatcher.process_text("search for reports")
        dispatcher.reset()
        with pytest.raises(LifecycleError):
            await dispatcher.get_all_intents()
        await dispatcher.initialize()
        assert await dispatcher.get_all_intents() == []


class TestIntentStore:

    @pytest.mark.asyncio
    async def test_process_text_stores_intent(self, dispatcher):
        await ready(dispatcher)
        intent = await dispatcher.process_text("search for invoices")
        assert intent.type == IntentType.SEARCH
        assert intent.status == IntentStatus.PENDING
        assert (await dispatcher.get_intent(intent.id)) is intent

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self, dispatcher):
        await ready(dispatcher)
        with pytest.raises(ValueError):
            await dispatcher.process_text("   ")

    @pytest.mark.asyncio
    async def test_unknown_intent_raises(self, dispatcher):
        await ready(dispatcher)
        with pytest.raises(IntentNotFoundError) as exc_info:
            await dispatcher.get_intent("intent_missing")
        assert exc_info.value.intent_id == "intent_missing"

    @pytest.mark.asyncio
    async def test_compound_intent_owns_children(self, dispatcher):
        await ready(dispatcher)
        compound = await dispatcher.process_compound_intent("create a task and delete the draft")
        assert compound.type == IntentType.COMPOUND
        assert compound.confidence == 0.9
        assert len(compound.child_ids) == 2

        children = [await dispatcher.get_intent(child_id) for child_id in compound.child_ids]
        assert [c.type for c in children] == [IntentType.CREATE, IntentType.DELETE]
        assert all(c.parent_id == compound.id for c in children)
        assert len(await dispatcher.get_all_intents()) == 3

    @pytest.mark.asyncio
    async def test_delete_compound_removes_children(self, dispatcher):
        await ready(dispatcher)
        compound = await dispatcher.process_compound_intent("create a task and delete the draft")
        await dispatcher.delete_intent(compound.id)
        assert await dispatcher.get_all_intents() == []

    @pytest.mark.asyncio
    async def test_delete_child_unlinks_from_parent(self, dispatcher):
        await ready(dispatcher)
        compound = await dispatcher.process_compound_intent("create a task and delete the draft")
        first_child = compound.child_ids[0]
        await dispatcher.delete_intent(first_child)
        assert first_child not in compound.child_ids
        assert len(compound.child_ids) == 1

    @pytest.mark.asyncio
    async def test_delete_unknown_raises(self, dispatcher):
        await ready(dispatcher)
        with pytest.raises(IntentNotFoundError):
            await dispatcher.delete_intent("intent_missing")

    @pytest.mark.asyncio
    async def test_delete_and_save_conflict(self, dispatcher):
        """Deleting and saving the same document are flagged as conflicting"""
        await ready(dispatcher)
        delete = await dispatcher.process_text("delete the quarterly report")
        save = await dispatcher.process_text("save the quarterly report")
        other = await dispatcher.process_text("create a budget")
        assert dispatcher.conflicts(delete, save)
        assert not dispatcher.conflicts(delete, other)

    @pytest.mark.asyncio
    async def test_delete_all_vs_save_all_documents(self, dispatcher):
        await ready(dispatcher)
        delete = await dispatcher.process_text("delete all documents")
        save = await dispatcher.process_text("save all documents")
        assert delete.type == IntentType.DELETE
        assert save.type != IntentType.DELETE
        assert dispatcher.conflicts(delete, save)


class TestDispatch:

    @pytest.mark.asyncio
    async def test_successful_dispatch(self, dispatcher):
        await ready(dispatcher)
        intent = await dispatcher.process_text("search for invoices")
        result = await dispatcher.dispatch_intent(intent.id)
        assert result.success
        assert result.error is None
        assert result.trace == ["intent_lookup", "process_search", "success"]
        assert result.dependency_tag == "intent-processor"
        assert result.data["target"] == "intent-dispatch"
        assert intent.status == IntentStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_unknown_intent_is_a_result_not_an_exception(self, dispatcher):
        await ready(dispatcher)
        result = await dispatcher.dispatch_intent("intent_missing")
        assert not result.success
        assert result.error == DispatchError.INTENT_NOT_FOUND
        assert result.trace == ["intent_lookup", "not_found"]
        assert result.dependency_tag == "intent-store"

    @pytest.mark.asyncio
    async def test_processing_errors_open_circuit(self, dispatcher):
        """Three processing errors open the breaker; the fourth dispatch is rejected"""
        await ready(dispatcher)
        dispatcher.set_failure_rate(1.0)
        intent = await dispatcher.process_text("search for invoices")

        for _ in range(3):
            result = await dispatcher.dispatch_intent(intent.id)
            assert result.error == DispatchError.PROCESSING_ERROR
            assert result.trace == ["intent_lookup", "process_search", "error"]
        assert intent.status == IntentStatus.FAILED
        assert dispatcher.circuit_state() == CircuitState.OPEN

        rejected = await dispatcher.dispatch_intent(intent.id)
        assert rejected.error == DispatchError.CIRCUIT_OPEN
        assert rejected.trace == ["circuit_breaker_check", "circuit_open_rejection"]
        assert rejected.dependency_tag == "circuit-breaker"

    @pytest.mark.asyncio
    async def test_injected_failure(self, dispatcher):
        harness = MagicMock()
        harness.is_failing.return_value = True
        dispatcher.harness = harness
        await ready(dispatcher)

        intent = await dispatcher.process_text("search for invoices")
        result = await dispatcher.dispatch_intent(intent.id, target="database")
        assert result.error == DispatchError.INJECTED_FAILURE
        assert result.trace == ["intent_lookup", "process_search", "injected_failure"]
        assert result.dependency_tag == "chaos-harness"
        harness.is_failing.assert_called_with("database")

    @pytest.mark.asyncio
    async def test_breakers_are_per_target(self, dispatcher):
        await ready(dispatcher)
        dispatcher.set_failure_rate(1.0)
        intent = await dispatcher.process_text("search for invoices")
        for _ in range(3):
            await dispatcher.dispatch_intent(intent.id, target="database")
        assert dispatcher.circuit_state("database") == CircuitState.OPEN
        assert dispatcher.circuit_state() == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_forced_open_scenario(self, dispatcher):
        await ready(dispatcher)
        intent = await dispatcher.process_text("search for invoices")

        dispatcher.set_custom_scenario(ScenarioOptions(circuit_open=True))
        result = await dispatcher.dispatch_intent(intent.id)
        assert result.error == DispatchError.CIRCUIT_OPEN
        assert dispatcher.scenario.circuit_open is True

        dispatcher.set_custom_scenario(ScenarioOptions(circuit_open=False))
        assert (await dispatcher.dispatch_intent(intent.id)).success

    @pytest.mark.asyncio
    async def test_latency_is_applied(self, dispatcher):
        await ready(dispatcher)
        intent = await dispatcher.process_text("search for invoices")
        dispatcher.set_custom_scenario(ScenarioOptions(latency_ms=30))
        started = time.perf_counter()
        await dispatcher.dispatch_intent(intent.id)
        assert time.perf_counter() - started >= 0.025

    def test_failure_rate_is_clamped(self, dispatcher):
        dispatcher.set_failure_rate(5.0)
        assert dispatcher.failure_rate == 1.0
        dispatcher.set_failure_rate(-1.0)
        assert dispatcher.failure_rate == 0.0

    @pytest.mark.asyncio
    async def test_knobs_set_before_initialize_survive_it(self, dispatcher):
        dispatcher.set_latency(25)
        await ready(dispatcher)
        assert dispatcher.latency_ms == 25
        assert dispatcher.failure_rate == 0.0

        dispatcher.reset()
        await dispatcher.initialize()
        assert dispatcher.latency_ms == 0.0

    @pytest.mark.asyncio
    async def test_result_to_dict(self, dispatcher):
        await ready(dispatcher)
        result = await dispatcher.dispatch_intent("intent_missing")
        data = result.to_dict()
        assert data["error"] == "INTENT_NOT_FOUND"
        assert data["success"] is False
        assert data["trace"] == ["intent_lookup", "not_found"]


class TestHalfOpenTrial:
    """The single HALF_OPEN trial is always settled or released"""

    async def open_and_cool_down(self, dispatcher):
        await ready(dispatcher)
        dispatcher.set_failure_rate(1.0)
        intent = await dispatcher.process_text("search for invoices")
        for _ in range(3):
            await dispatcher.dispatch_intent(intent.id)
        assert dispatcher.circuit_state() == CircuitState.OPEN
        await asyncio.sleep(0.3)
        assert dispatcher.circuit_state() == CircuitState.HALF_OPEN
        dispatcher.set_failure_rate(0.0)
        return intent

    @pytest.mark.asyncio
    async def test_cancelled_trial_does_not_wedge_breaker(self, dispatcher):
        intent = await self.open_and_cool_down(dispatcher)

        dispatcher.set_latency(500)
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(dispatcher.dispatch_intent(intent.id), 0.05)
        assert dispatcher.circuit_state() == CircuitState.HALF_OPEN

        dispatcher.set_latency(0)
        result = await dispatcher.dispatch_intent(intent.id)
        assert result.success
        assert dispatcher.circuit_state() == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_raising_trial_does_not_wedge_breaker(self, dispatcher):
        intent = await self.open_and_cool_down(dispatcher)

        harness = MagicMock()
        harness.is_failing.side_effect = RuntimeError("harness unavailable")
        dispatcher.harness = harness
        with pytest.raises(RuntimeError):
            await dispatcher.dispatch_intent(intent.id)

        harness.is_failing.side_effect = None
        harness.is_failing.return_value = False
        assert (await dispatcher.dispatch_intent(intent.id)).success
        assert dispatcher.circuit_state() == CircuitState.CLOSED


class TestSessionsAndTelemetry:

    @pytest.mark.asyncio
    async def test_session_history_holds_snapshots(self, dispatcher):
        """Stored entries keep the intent as it was when stored"""
        await ready(dispatcher)
        intent = await dispatcher.process_text("search for invoices")
        await dispatcher.store_intent(intent.id, "session-1")
        await dispatcher.dispatch_intent(intent.id)

        history = await dispatcher.get_session_history("session-1")
        assert len(history) == 1
        assert history[0].id == intent.id
        assert history[0].status == IntentStatus.PENDING
        assert intent.status == IntentStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_unknown_session_is_empty(self, dispatcher):
        await ready(dispatcher)
        assert await dispatcher.get_session_history("nope") == []

    @pytest.mark.asyncio
    async def test_store_unknown_intent_raises(self, dispatcher):
        await ready(dispatcher)
        with pytest.raises(IntentNotFoundError):
            await dispatcher.store_intent("intent_missing", "session-1")

    @pytest.mark.asyncio
    async def test_telemetry_data(self, dispatcher):
        await ready(dispatcher)
        intent = await dispatcher.process_text("search for invoices")
        await dispatcher.store_intent(intent.id, "session-1")
        await dispatcher.dispatch_intent(intent.id)
        await dispatcher.dispatch_intent("intent_missing")

        data = await dispatcher.get_telemetry_data()
        assert data["error_rate"] == 0.5
        assert data["active_intents"] == 1
        assert data["session_count"] == 1
        assert data["circuit_state"] == "CLOSED"
        assert "intent-dispatch" in data["circuit_breakers"]
        assert data["avg_dispatch_time_ms"] >= 0
