"""
Chaos engineering harness for an intent dispatch pipeline.

Injects failures into mocked dependencies, drives resource constraints,
collects telemetry with anomaly detection and verifies that every component
recovers through its declared recovery path.

Modules:
    dispatch: Intent dispatcher guarded by per-target circuit breakers
    actions: Failure injection and resource constraint actions
    telemetry: Metric sampling, anomaly detection and reporting
    validation: UX impact tracking and recovery path verification
    experiments: End-to-end chaos testing sequence
"""

__version__ = "1.0.0"
__all__ = [
    "ChaosHarness",
    "IntentDispatcher",
    "ChaosTelemetryCollector",
    "UXImpactTracker",
    "RecoveryPathValidator",
    "ChaosTestingSequence",
    "HarnessSettings",
    "run_sequence",
]

from chaos_harness.config import HarnessSettings
from chaos_harness.actions.failure_injection import ChaosHarness
from chaos_harness.dispatch.dispatcher import IntentDispatcher
from chaos_harness.telemetry.collector import ChaosTelemetryCollector
from chaos_harness.validation.ux_impact import UXImpactTracker
from chaos_harness.validation.recovery_validator import RecoveryPathValidator
from chaos_harness.experiments.runner import ChaosTestingSequence, run_sequence
