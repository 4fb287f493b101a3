"""
Load Scenario Generator

Runs each requested resource constraint as its own task and resolves only when
all of them have completed.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, List, Optional, Tuple

from chaos_harness.actions.network_chaos import (
    DiskConstraint,
    NetworkConstraint,
    apply_disk_constraint,
    apply_network_constraint,
)
from chaos_harness.actions.resource_chaos import (
    CpuConstraint,
    MemoryConstraint,
    apply_cpu_load,
    apply_memory_load,
)
from chaos_harness.observability import LOAD_CONSTRAINTS

logger = logging.getLogger(__name__)


@dataclass
class LoadScenarioConfig:
    """Independent optional constraints applied concurrently"""
    cpu: Optional[CpuConstraint] = None
    memory: Optional[MemoryConstraint] = None
    network: Optional[NetworkConstraint] = None
    disk: Optional[DiskConstraint] = None

    def constraints(self) -> Dict[str, Any]:
        return {
            kind: constraint
            for kind, constraint in (
                ("cpu", self.cpu),
                ("memory", self.memory),
                ("network", self.network),
                ("disk", self.disk),
            )
            if constraint is not None
        }


@dataclass
class ConstraintOutcome:
    """How one constraint ran"""
    kind: str
    severity: int
    duration_seconds: float
    elapsed_seconds: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "severity": self.severity,
            "duration_seconds": self.duration_seconds,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


@dataclass
class LoadScenarioResult:
    outcomes: List[ConstraintOutcome] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def max_severity(self) -> int:
        return max((o.severity for o in self.outcomes), default=0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcomes": [o.to_dict() for o in self.outcomes],
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "max_severity": self.max_severity,
        }


class LoadScenarioGenerator:
    """
    Applies load scenarios, optionally bracketing each constraint as a chaos
    event on a telemetry collector.
    """

    def __init__(self, telemetry: Any = None):
        self.telemetry = telemetry

    async def load_scenario(self, config: LoadScenarioConfig) -> LoadScenarioResult:
        """
        Run every present constraint concurrently.

        Returns:
            LoadScenarioResult once all constraints have completed
        """
        constraints = config.constraints()
        if not constraints:
            logger.info("Load scenario has no constraints")
            return LoadScenarioResult()

        logger.info(f"Loading scenario with constraints: {', '.join(constraints)}")
        start = time.monotonic()
        outcomes = await asyncio.gather(
            *(self._run(kind, constraint) for kind, constraint in constraints.items())
        )
        result = LoadScenarioResult(outcomes=list(outcomes), elapsed_seconds=time.monotonic() - start)
        logger.info(f"All constraints completed in {result.elapsed_seconds:.2f}s")
        return result

    async def _run(self, kind: str, constraint: Any) -> ConstraintOutcome:
        severity = constraint.severity
        event_id = f"load-{kind}-{time.time_ns()}"
        if self.telemetry is not None:
            self.telemetry.register_chaos_event(event_id, {"resource": kind, "severity": severity})
        if LOAD_CONSTRAINTS:
            LOAD_CONSTRAINTS.labels(kind=kind).inc()

        start = time.monotonic()
        try:
            await self._runner(kind, constraint)
        finally:
            if self.telemetry is not None:
                self.telemetry.unregister_chaos_event(event_id)
        return ConstraintOutcome(
            kind=kind,
            severity=severity,
            duration_seconds=constraint.duration_seconds,
            elapsed_seconds=time.monotonic() - start,
        )

    @staticmethod
    def _runner(kind: str, constraint: Any) -> Awaitable:
        runners: Dict[str, Tuple[type, Any]] = {
            "cpu": (CpuConstraint, apply_cpu_load),
            "memory": (MemoryConstraint, apply_memory_load),
            "network": (NetworkConstraint, apply_network_constraint),
            "disk": (DiskConstraint, apply_disk_constraint),
        }
        expected, runner = runners[kind]
        if not isinstance(constraint, expected):
            raise ValueError(f"{kind} constraint must be a {expected.__name__}")
        return runner(constraint)


async def load_scenario(config: LoadScenarioConfig, telemetry: Any = None) -> LoadScenarioResult:
    """Run a load scenario without keeping a generator around."""
    return await LoadScenarioGenerator(telemetry).load_scenario(config)
