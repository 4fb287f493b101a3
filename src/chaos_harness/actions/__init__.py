"""
Chaos Actions

- Failure injection engine (ChaosHarness)
- Resource chaos (CPU, memory)
- Network and disk chaos
- Load scenarios combining the above
"""

from chaos_harness.actions.failure_injection import (
    ChaosHarness,
    FailureInjection,
    FailureOptions,
)
from chaos_harness.actions.load_scenario import (
    LoadScenarioConfig,
    LoadScenarioGenerator,
    LoadScenarioResult,
    load_scenario,
)
from chaos_harness.actions.network_chaos import (
    DiskConstraint,
    NetworkConstraint,
    disk_severity,
    network_severity,
)
from chaos_harness.actions.resource_chaos import (
    CpuConstraint,
    LoadPattern,
    MemoryConstraint,
)

__all__ = [
    "ChaosHarness",
    "FailureInjection",
    "FailureOptions",
    "LoadScenarioConfig",
    "LoadScenarioGenerator",
    "LoadScenarioResult",
    "load_scenario",
    "DiskConstraint",
    "NetworkConstraint",
    "disk_severity",
    "network_severity",
    "CpuConstraint",
    "LoadPattern",
    "MemoryConstraint",
]
