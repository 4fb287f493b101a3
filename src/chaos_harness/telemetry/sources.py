"""
Metric sources for the telemetry collector.

A metric source is any callable returning a ``{name: number}`` mapping, either
directly or as an awaitable.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Union

import psutil

logger = logging.getLogger(__name__)

MetricValues = Dict[str, float]
MetricSource = Callable[[], Union[MetricValues, Awaitable[MetricValues]]]


def process_metrics_source() -> MetricSource:
    """
    Process and host metrics via psutil.

    ``cpu_percent`` is measured between successive calls, so the first sample
    reads 0.0.
    """
    process = psutil.Process()
    process.cpu_percent(interval=None)

    def collect() -> MetricValues:
        memory_info = process.memory_info()
        return {
            "memory_usage_mb": memory_info.rss / (1024 * 1024),
            "process_cpu_percent": process.cpu_percent(interval=None),
            "system_cpu_percent": psutil.cpu_percent(interval=None),
            "system_memory_percent": psutil.virtual_memory().percent,
        }

    return collect


def mock_services_source(services: Any) -> MetricSource:
    """Metrics of a ``MockServices`` bundle."""
    return services.metrics


def dispatcher_source(dispatcher: Any) -> MetricSource:
    """Dispatch timing and error rate of an initialized ``IntentDispatcher``."""

    async def collect() -> MetricValues:
        data = await dispatcher.get_telemetry_data()
        return {
            "dispatch_avg_time_ms": data["avg_dispatch_time_ms"],
            "dispatch_error_rate": data["error_rate"],
            "active_intents": float(data["active_intents"]),
        }

    return collect
