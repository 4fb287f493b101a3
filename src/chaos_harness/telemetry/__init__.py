"""Telemetry collection and anomaly detection during chaos runs."""

from chaos_harness.telemetry.collector import (
    Anomaly,
    ChaosEventWindow,
    ChaosTelemetryCollector,
    TelemetrySnapshot,
    Threshold,
    breach_severity,
)
from chaos_harness.telemetry.sources import (
    dispatcher_source,
    mock_services_source,
    process_metrics_source,
)

__all__ = [
    "Anomaly",
    "ChaosEventWindow",
    "ChaosTelemetryCollector",
    "TelemetrySnapshot",
    "Threshold",
    "breach_severity",
    "dispatcher_source",
    "mock_services_source",
    "process_metrics_source",
]
