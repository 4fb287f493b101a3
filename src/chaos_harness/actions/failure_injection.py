"""
Failure Injection Engine

Time-bounded failure injection against named targets:
- Concurrency cap enforced on inject (rejections are logged no-ops)
- Active failures keyed by (type, target)
- Recovery scheduled as a task when the failure starts; it is never cancelled
  and fires no earlier than the failure's duration
- ``wait_for_recovery`` awaits every recovery scheduled so far
"""

import asyncio
import copy
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from chaos_harness.config import HarnessConfig
from chaos_harness.observability import ACTIVE_FAILURES, record_injection, track_chaos_recovery
from chaos_harness.tracing import span

logger = logging.getLogger(__name__)

DEFAULT_SEVERITY = 3

# Declarative sub-component map reported by analyze_dependencies()
DEFAULT_DEPENDENCIES: Dict[str, List[str]] = {
    "intent-dispatch": ["intent-store", "circuit-breaker", "intent-processor"],
    "api": ["database", "cache"],
    "voice": ["api", "intent-dispatch"],
    "database": [],
    "cache": [],
}


@dataclass
class FailureOptions:
    """Parameters of a failure to inject"""
    type: str
    target: str
    duration_seconds: float
    severity: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class FailureInjection:
    """An injected failure and its lifecycle"""
    id: str
    type: str
    target: str
    severity: int
    duration_seconds: float
    started_at: float = field(default_factory=time.time)
    active: bool = True
    metadata: Dict[str, Any] = field(default_factory=dict)
    started_monotonic: float = field(default_factory=time.monotonic, repr=False)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.type, self.target)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "target": self.target,
            "severity": self.severity,
            "started_at": self.started_at,
            "duration_seconds": self.duration_seconds,
            "active": self.active,
            "metadata": self.metadata,
        }


class ChaosHarness:
    """
    Owns the active-failure set for one chaos run.

    ``services`` is an optional ``MockServices`` bundle; when bound, injecting a
    failure degrades the matching simulated service and recovery restores it.
    """

    def __init__(self, config: Optional[HarnessConfig] = None, services: Any = None):
        self.config = config or HarnessConfig()
        if self.config.target_component == "unknown":
            logger.warning("No target_component specified, using 'unknown'")
        self.services = services

        self._running = False
        self._active: Dict[Tuple[str, str], FailureInjection] = {}
        self._pending: Set[asyncio.Task] = set()
        self._journal: List[Dict[str, Any]] = []

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_failures(self) -> List[FailureInjection]:
        return list(self._active.values())

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def pending_recoveries(self) -> int:
        return len(self._pending)

    @property
    def journal(self) -> List[Dict[str, Any]]:
        return list(self._journal)

    def start(self) -> None:
        self._running = True
        logger.info(f"Started chaos harness for {self.config.target_component}")
        if self.config.journal:
            logger.info(f"Journaling enabled for {self.config.target_component}")

    def stop(self) -> None:
        """Refuse further injections and clear the active set."""
        self._running = False
        self._clear_active()
        logger.info(f"Stopped chaos harness for {self.config.target_component}")

    def cleanup(self) -> None:
        self._clear_active()
        logger.info(f"Cleaned up chaos harness for {self.config.target_component}")

    def _clear_active(self) -> None:
        for injection in self._active.values():
            injection.active = False
            if self.services is not None:
                self.services.restore(injection.target)
        self._active.clear()
        self._update_gauge()

    def is_failing(self, target: str) -> bool:
        return any(key[1] == target for key in self._active)

    async def inject_failure(self, options: FailureOptions) -> Optional[FailureInjection]:
        """
        Inject a failure and schedule its recovery.

        Args:
            options: Failure type, target, duration and optional severity

        Returns:
            The active FailureInjection, or None if the injection was rejected

        Raises:
            ValueError: If duration is negative or severity is outside 1-5
        """
        if options.duration_seconds < 0:
            raise ValueError("duration_seconds must be non-negative")
        severity = options.severity
        if severity is None:
            severity = self.config.severity_levels.get(options.target, DEFAULT_SEVERITY)
        if not 1 <= severity <= 5:
            raise ValueError(f"severity must be between 1 and 5, got {severity}")

        if not self._running:
            logger.warning(f"Cannot inject {options.type} on {options.target}: harness not running")
            record_injection(options.type, "rejected")
            return None

        if len(self._active) >= self.config.max_concurrent_failures:
            logger.warning(
                f"Cannot inject {options.type} on {options.target}: "
                f"max concurrent failures ({self.config.max_concurrent_failures}) reached"
            )
            record_injection(options.type, "rejected")
            return None

        key = (options.type, options.target)
        if key in self._active:
            logger.warning(f"Failure {options.type} already active on {options.target}")
            record_injection(options.type, "rejected")
            return None

        with span("inject_failure", {
            "failure.type": options.type,
            "failure.target": options.target,
            "failure.severity": severity,
            "failure.duration_seconds": options.duration_seconds,
        }):
            injection = FailureInjection(
                id=f"failure_{uuid.uuid4().hex[:12]}",
                type=options.type,
                target=options.target,
                severity=severity,
                duration_seconds=options.duration_seconds,
                metadata=dict(options.metadata),
            )
            self._active[key] = injection
            if self.services is not None:
                self.services.degrade(options.target, severity)

            task = asyncio.create_task(self._recover_after(injection))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        self._update_gauge()
        record_injection(options.type, "injected")
        self._record("inject", injection)
        logger.info(
            f"Injected {options.type} failure on {options.target} "
            f"(severity={severity}, duration={options.duration_seconds}s)"
        )
        return injection

    async def _recover_after(self, injection: FailureInjection) -> None:
        deadline = injection.started_monotonic + injection.duration_seconds
        with track_chaos_recovery(injection.type):
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                await asyncio.sleep(remaining)
        self._recover(injection)

    def _recover(self, injection: FailureInjection) -> None:
        injection.active = False
        if self._active.get(injection.key) is not injection:
            logger.debug(f"Recovery for {injection.id} fired against cleared state")
            return

        del self._active[injection.key]
        if self.services is not None and not self.is_failing(injection.target):
            self.services.restore(injection.target)
        self._update_gauge()
        record_injection(injection.type, "recovered")
        self._record("recover", injection)
        logger.info(f"Recovered from {injection.type} failure on {injection.target}")

    async def wait_for_recovery(self) -> None:
        """Wait until every recovery scheduled so far has fired."""
        batch = list(self._pending)
        if not batch:
            return
        logger.info(f"Waiting for {len(batch)} pending recoveries")
        await asyncio.gather(*batch)
        logger.info("All recoveries complete")

    def analyze_dependencies(self) -> Dict[str, List[str]]:
        """Static dependency map for the configured components."""
        dependencies = copy.deepcopy(DEFAULT_DEPENDENCIES)
        dependencies.update(copy.deepcopy(self.config.dependencies))
        for module in self.config.modules:
            dependencies.setdefault(module, [])
        dependencies.setdefault(self.config.target_component, [])
        return dependencies

    def _record(self, event: str, injection: FailureInjection) -> None:
        if not self.config.journal:
            return
        self._journal.append({"event": event, "timestamp": time.time(), **injection.to_dict()})

    def _update_gauge(self) -> None:
        if ACTIVE_FAILURES:
            ACTIVE_FAILURES.labels(harness=self.config.target_component).set(len(self._active))
