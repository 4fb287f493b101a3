"""
Chaos testing sequence definitions.

A sequence lists the failure modes exercised one at a time, the combinations
exercised concurrently and the resource constraints applied. Definitions can be
loaded from YAML; durations are in seconds before time scaling.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

from chaos_harness.actions.load_scenario import LoadScenarioConfig
from chaos_harness.actions.network_chaos import DiskConstraint, NetworkConstraint
from chaos_harness.actions.resource_chaos import CpuConstraint, MemoryConstraint

logger = logging.getLogger(__name__)


@dataclass
class FailureMode:
    """A failure injected during the sequence"""
    type: str
    component: str
    severity: int
    duration_seconds: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FailureMode":
        return cls(
            type=data["type"],
            component=data.get("component", data["type"]),
            severity=int(data["severity"]),
            duration_seconds=float(data["duration_seconds"]),
        )


@dataclass
class SequenceDefinition:
    individual_failures: List[FailureMode] = field(default_factory=list)
    concurrent_failures: List[List[FailureMode]] = field(default_factory=list)
    resource_constraints: List[LoadScenarioConfig] = field(default_factory=list)
    settle_seconds: float = 5.0
    baseline_seconds: float = 5.0
    timeline_metrics: List[str] = field(default_factory=list)


def _constraints_from_dict(data: Dict[str, Any]) -> LoadScenarioConfig:
    return LoadScenarioConfig(
        cpu=CpuConstraint(**data["cpu"]) if "cpu" in data else None,
        memory=MemoryConstraint(**data["memory"]) if "memory" in data else None,
        network=NetworkConstraint(**data["network"]) if "network" in data else None,
        disk=DiskConstraint(**data["disk"]) if "disk" in data else None,
    )


def sequence_from_dict(data: Dict[str, Any]) -> SequenceDefinition:
    """
    Build a sequence definition.

    Raises:
        ValueError: If an entry is missing required fields
    """
    try:
        return SequenceDefinition(
            individual_failures=[FailureMode.from_dict(m) for m in data.get("individual_failures", [])],
            concurrent_failures=[
                [FailureMode.from_dict(m) for m in combination]
                for combination in data.get("concurrent_failures", [])
            ],
            resource_constraints=[_constraints_from_dict(c) for c in data.get("resource_constraints", [])],
            settle_seconds=float(data.get("settle_seconds", 5.0)),
            baseline_seconds=float(data.get("baseline_seconds", 5.0)),
            timeline_metrics=list(data.get("timeline_metrics", DEFAULT_TIMELINE_METRICS)),
        )
    except (KeyError, TypeError) as e:
        raise ValueError(f"Invalid sequence definition: {e}") from e


def load_sequence(path: Union[str, Path]) -> SequenceDefinition:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Sequence definition not found: {path}")
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    logger.info(f"Loaded sequence definition: {path}")
    return sequence_from_dict(data)


DEFAULT_TIMELINE_METRICS = [
    "database_query_latency",
    "api_error_rate",
    "cache_hit_rate",
    "memory_usage_mb",
    "system_cpu_percent",
]

DEFAULT_SEQUENCE = sequence_from_dict({
    "individual_failures": [
        {"type": "database", "component": "database", "severity": 4, "duration_seconds": 10},
        {"type": "cache", "component": "cache", "severity": 3, "duration_seconds": 8},
        {"type": "api", "component": "api", "severity": 3, "duration_seconds": 12},
        {"type": "network", "component": "network", "severity": 4, "duration_seconds": 15},
        {"type": "memory", "component": "memory", "severity": 3, "duration_seconds": 20},
    ],
    "concurrent_failures": [
        [
            {"type": "database", "component": "database", "severity": 3, "duration_seconds": 15},
            {"type": "api", "component": "api", "severity": 2, "duration_seconds": 10},
        ],
        [
            {"type": "network", "component": "network", "severity": 4, "duration_seconds": 20},
            {"type": "memory", "component": "memory", "severity": 3, "duration_seconds": 25},
        ],
        [
            {"type": "cache", "component": "cache", "severity": 2, "duration_seconds": 12},
            {"type": "cpu", "component": "cpu", "severity": 3, "duration_seconds": 18},
        ],
    ],
    "resource_constraints": [
        {"cpu": {"target_usage": 0.8, "pattern": "constant", "duration_seconds": 20}},
        {"memory": {"target_usage_mb": 512, "duration_seconds": 15}},
        {"network": {"bandwidth_kbps": 50, "latency_ms": 500, "packet_loss": 0.05, "duration_seconds": 25}},
    ],
})
