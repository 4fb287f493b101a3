"""Tests for harness metrics and tracing helpers."""

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from chaos_harness.observability import (
    CHAOS_INJECTIONS,
    CIRCUIT_BREAKER_STATE,
    get_metrics_endpoint,
    get_registry,
    record_anomaly,
    record_circuit_transition,
    record_injection,
    track_chaos_recovery,
    track_dispatch,
)
from chaos_harness.tracing import initialize_tracing, span


class TestMetrics:

    def test_metrics_exist(self):
        assert CHAOS_INJECTIONS is not None
        assert CHAOS_INJECTIONS._name == "chaos_harness_injections"

    def test_recording_helpers_export(self):
        record_injection("database", "injected")
        record_anomaly("api_error_rate", 3)
        record_circuit_transition("test-target", "CLOSED", "OPEN")

        output = get_metrics_endpoint().decode()
        assert 'chaos_harness_injections_total{type="database",status="injected"}' in output
        assert "chaos_harness_anomalies_detected_total" in output
        assert get_registry().get_sample_value(
            "chaos_harness_circuit_breaker_state", {"name": "test-target"}
        ) == 1.0
        assert CIRCUIT_BREAKER_STATE is not None

    def test_track_dispatch_observes_on_error(self):
        with pytest.raises(RuntimeError):
            with track_dispatch():
                raise RuntimeError("dispatch failed")

    def test_track_chaos_recovery_reraises(self):
        with pytest.raises(KeyError):
            with track_chaos_recovery("cache"):
                raise KeyError("boom")


class TestTracing:

    def test_exporter_receives_spans(self):
        exporter = InMemorySpanExporter()
        provider = initialize_tracing(service_name="chaos-harness-test", exporter=exporter)
        with provider.get_tracer("test").start_as_current_span("inject_failure"):
            pass
        assert [s.name for s in exporter.get_finished_spans()] == ["inject_failure"]

    def test_disabled_tracing(self):
        assert isinstance(initialize_tracing(enabled=False), TracerProvider)

    def test_span_sets_attributes(self):
        with span("dispatch_intent", {"intent_id": "intent_1", "attempt": 2}) as current:
            current.set_attribute("dispatch.success", True)
