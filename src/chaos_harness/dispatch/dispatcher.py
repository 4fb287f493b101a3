"""
Intent Dispatcher

Owns the intent store, session history and one circuit breaker per dispatch
target. Every dispatch returns a ``DispatchResult``; the only exception a
dispatch raises is ``LifecycleError`` for calls made before ``initialize()`` or
while the dispatcher is disabled.
"""

import asyncio
import dataclasses
import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from chaos_harness.config import DispatcherConfig
from chaos_harness.dispatch.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitPermit,
    CircuitState,
)
from chaos_harness.dispatch.intents import (
    COMPOUND_CONFIDENCE,
    Intent,
    IntentStatus,
    IntentType,
    classify_text,
    detect_conflict,
    new_intent_id,
    split_into_sub_intents,
)
from chaos_harness.exceptions import IntentNotFoundError, LifecycleError
from chaos_harness.observability import INTENT_DISPATCHES, track_dispatch
from chaos_harness.tracing import span

logger = logging.getLogger(__name__)


class DispatchError(str, Enum):
    """Error codes carried by failed dispatch results"""
    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    INTENT_NOT_FOUND = "INTENT_NOT_FOUND"
    INJECTED_FAILURE = "INJECTED_FAILURE"
    PROCESSING_ERROR = "PROCESSING_ERROR"


@dataclass
class DispatchResult:
    """Outcome of a single dispatch attempt"""
    success: bool
    dependency_tag: str
    trace: List[str] = field(default_factory=list)
    message: Optional[str] = None
    error: Optional[DispatchError] = None
    data: Optional[Dict[str, Any]] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "error": self.error.value if self.error else None,
            "data": self.data,
            "timestamp": self.timestamp,
            "trace": list(self.trace),
            "dependency_tag": self.dependency_tag,
        }


@dataclass
class ScenarioOptions:
    """Explicit overrides applied by ``set_custom_scenario``"""
    failure_rate: Optional[float] = None
    latency_ms: Optional[float] = None
    circuit_open: Optional[bool] = None


class IntentDispatcher:
    """
    Simulated intent backend gated by per-target circuit breakers.

    Lifecycle: ``enable_harness()`` -> ``initialize()`` -> operations ->
    ``reset()``. ``harness`` is any object exposing ``is_failing(target)``;
    when given, dispatches to a target with an active injected failure fail with
    ``INJECTED_FAILURE``.
    """

    def __init__(
        self,
        config: Optional[DispatcherConfig] = None,
        harness: Any = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or DispatcherConfig()
        self.harness = harness
        self._rng = rng or random.Random()
        self._clock = clock
        self.breakers = CircuitBreakerRegistry(self.config.circuit_breaker, clock)

        self._enabled = False
        self._initialized = False
        self._failure_rate = 0.0
        self._latency_ms = 0.0
        self._knobs_set: set = set()
        self._scenario = ScenarioOptions()

        self._intents: Dict[str, Intent] = {}
        self._sessions: Dict[str, List[Intent]] = {}
        self._dispatch_count = 0
        self._dispatch_failures = 0
        self._dispatch_time_total_ms = 0.0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def failure_rate(self) -> float:
        return self._failure_rate

    @property
    def latency_ms(self) -> float:
        return self._latency_ms

    def enable_harness(self) -> None:
        self._enabled = True
        logger.info("Intent dispatcher enabled")

    def disable_harness(self) -> None:
        self._enabled = False
        logger.info("Intent dispatcher disabled")

    async def initialize(self) -> None:
        """
        Prepare the dispatcher for use.

        The configured failure rate and latency apply only to knobs not already
        set through ``set_failure_rate``/``set_latency``.

        Raises:
            LifecycleError: If the dispatcher is not enabled
        """
        if not self._enabled:
            raise LifecycleError("Intent dispatcher is not enabled")
        if self._initialized:
            logger.debug("Intent dispatcher already initialized")
            return
        if "failure_rate" not in self._knobs_set:
            self._failure_rate = self.config.failure_rate
        if "latency_ms" not in self._knobs_set:
            self._latency_ms = self.config.default_latency_ms
        self._initialized = True
        logger.info(
            f"Intent dispatcher initialized (failure_rate={self._failure_rate}, "
            f"latency={self._latency_ms}ms)"
        )

    def reset(self) -> None:
        """Drop all intents, sessions, breakers and knobs; requires a new initialize()."""
        self._initialized = False
        self._intents.clear()
        self._sessions.clear()
        self._failure_rate = 0.0
        self._latency_ms = 0.0
        self._knobs_set.clear()
        self._scenario = ScenarioOptions()
        self._dispatch_count = 0
        self._dispatch_failures = 0
        self._dispatch_time_total_ms = 0.0
        self.breakers.reset()
        logger.info("Intent dispatcher reset")

    def _require_ready(self) -> None:
        if not self._enabled or not self._initialized:
            raise LifecycleError("Intent dispatcher is not enabled or initialized")

    # ------------------------------------------------------------------
    # Fault-injection knobs
    # ------------------------------------------------------------------

    def set_failure_rate(self, rate: float) -> None:
        self._failure_rate = max(0.0, min(1.0, rate))
        self._knobs_set.add("failure_rate")
        logger.info(f"Dispatch failure rate set to {self._failure_rate}")

    def set_latency(self, latency_ms: float) -> None:
        self._latency_ms = max(0.0, latency_ms)
        self._knobs_set.add("latency_ms")
        logger.info(f"Dispatch latency set to {self._latency_ms}ms")

    def set_custom_scenario(self, options: ScenarioOptions, target: Optional[str] = None) -> None:
        """
        Force dispatch parameters directly.

        ``circuit_open=True`` holds the target's breaker OPEN with no automatic
        cool-down until a later ``circuit_open=False`` or ``reset()``.
        """
        if options.failure_rate is not None:
            self.set_failure_rate(options.failure_rate)
        if options.latency_ms is not None:
            self.set_latency(options.latency_ms)
        if options.circuit_open is not None:
            breaker = self.breakers.get(target or self.config.target)
            if options.circuit_open:
                breaker.force_open()
            else:
                breaker.force_closed()
        self._scenario = dataclasses.replace(
            self._scenario,
            **{k: v for k, v in dataclasses.asdict(options).items() if v is not None},
        )

    @property
    def scenario(self) -> ScenarioOptions:
        return self._scenario

    async def _simulate_latency(self) -> None:
        if self._latency_ms > 0:
            await asyncio.sleep(self._latency_ms / 1000.0)

    # ------------------------------------------------------------------
    # Intent store
    # ------------------------------------------------------------------

    def _create_intent(self, text: str, parent_id: Optional[str] = None) -> Intent:
        intent_type, confidence, entities = classify_text(text)
        intent = Intent(
            id=new_intent_id(),
            text=text,
            type=intent_type,
            confidence=confidence,
            entities=entities,
            parent_id=parent_id,
        )
        self._intents[intent.id] = intent
        logger.debug(f"Classified '{text}' as {intent_type.value} ({confidence})")
        return intent

    async def process_text(self, text: str) -> Intent:
        """
        Classify free text and store the resulting intent.

        Raises:
            LifecycleError: If not enabled/initialized
            ValueError: If text is empty
        """
        self._require_ready()
        await self._simulate_latency()
        if not text or not text.strip():
            raise ValueError("Empty text input")
        return self._create_intent(text)

    async def process_compound_intent(self, text: str) -> Intent:
        """Split text into sub-intents owned by a new compound intent."""
        self._require_ready()
        await self._simulate_latency()
        if not text or not text.strip():
            raise ValueError("Empty text input")

        compound_id = new_intent_id("intent_compound")
        child_ids = [
            self._create_intent(part, parent_id=compound_id).id
            for part in split_into_sub_intents(text)
        ]
        compound = Intent(
            id=compound_id,
            text=text,
            type=IntentType.COMPOUND,
            confidence=COMPOUND_CONFIDENCE,
            child_ids=child_ids,
        )
        self._intents[compound_id] = compound
        logger.info(f"Compound intent {compound_id} created with {len(child_ids)} children")
        return compound

    async def get_intent(self, intent_id: str) -> Intent:
        self._require_ready()
        await self._simulate_latency()
        intent = self._intents.get(intent_id)
        if intent is None:
            raise IntentNotFoundError(intent_id)
        return intent

    async def get_all_intents(self) -> List[Intent]:
        self._require_ready()
        await self._simulate_latency()
        return list(self._intents.values())

    async def delete_intent(self, intent_id: str) -> None:
        """Delete an intent; a compound intent takes the children it owns with it."""
        self._require_ready()
        await self._simulate_latency()
        intent = self._intents.pop(intent_id, None)
        if intent is None:
            raise IntentNotFoundError(intent_id)

        for child_id in intent.child_ids or []:
            child = self._intents.get(child_id)
            if child is not None and child.parent_id == intent_id:
                del self._intents[child_id]

        if intent.parent_id:
            parent = self._intents.get(intent.parent_id)
            if parent is not None and parent.child_ids:
                parent.child_ids = [c for c in parent.child_ids if c != intent_id]

    def conflicts(self, first: Intent, second: Intent) -> bool:
        return detect_conflict(first, second)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch_intent(self, intent_id: str, target: Optional[str] = None) -> DispatchResult:
        """
        Dispatch a stored intent against ``target`` (the configured default
        target when omitted).

        Returns:
            DispatchResult; never raises for runtime failures

        Raises:
            LifecycleError: If not enabled/initialized
        """
        self._require_ready()
        target = target or self.config.target
        started = time.perf_counter()

        with span("dispatch_intent", {"intent_id": intent_id, "target": target}) as current:
            with track_dispatch():
                result = await self._dispatch(intent_id, target)
            current.set_attribute("dispatch.success", result.success)
            if result.error:
                current.set_attribute("dispatch.error", result.error.value)

        elapsed_ms = (time.perf_counter() - started) * 1000.0
        self._dispatch_count += 1
        self._dispatch_time_total_ms += elapsed_ms
        if not result.success:
            self._dispatch_failures += 1
        if INTENT_DISPATCHES:
            INTENT_DISPATCHES.labels(
                outcome=result.error.value if result.error else "SUCCESS"
            ).inc()
        return result

    async def _dispatch(self, intent_id: str, target: str) -> DispatchResult:
        breaker = self.breakers.get(target)

        permit = breaker.acquire()
        if permit is None:
            logger.info(f"Circuit for {target} is {breaker.state.value}, rejecting dispatch")
            return DispatchResult(
                success=False,
                message=f"Circuit breaker is open for {target}",
                error=DispatchError.CIRCUIT_OPEN,
                trace=["circuit_breaker_check", "circuit_open_rejection"],
                dependency_tag="circuit-breaker",
            )

        try:
            return await self._evaluate(intent_id, target, breaker, permit)
        finally:
            breaker.release(permit)

    async def _evaluate(
        self, intent_id: str, target: str, breaker: CircuitBreaker, permit: CircuitPermit
    ) -> DispatchResult:
        await self._simulate_latency()

        intent = self._intents.get(intent_id)
        if intent is None:
            breaker.record_failure(permit)
            logger.info(f"Dispatch of unknown intent {intent_id}")
            return DispatchResult(
                success=False,
                message=f"Intent not found: {intent_id}",
                error=DispatchError.INTENT_NOT_FOUND,
                trace=["intent_lookup", "not_found"],
                dependency_tag="intent-store",
            )

        stage = f"process_{intent.type.value}"

        if self.harness is not None and self.harness.is_failing(target):
            breaker.record_failure(permit)
            intent.status = IntentStatus.FAILED
            return DispatchResult(
                success=False,
                message=f"Injected failure active on {target}",
                error=DispatchError.INJECTED_FAILURE,
                trace=["intent_lookup", stage, "injected_failure"],
                dependency_tag="chaos-harness",
            )

        if self._rng.random() < self._failure_rate:
            breaker.record_failure(permit)
            intent.status = IntentStatus.FAILED
            return DispatchResult(
                success=False,
                message=f"Error processing intent: {intent.type.value}",
                error=DispatchError.PROCESSING_ERROR,
                trace=["intent_lookup", stage, "error"],
                dependency_tag="intent-processor",
            )

        breaker.record_success(permit)
        intent.status = IntentStatus.COMPLETED
        return DispatchResult(
            success=True,
            message=f"Intent {intent.type.value} processed successfully",
            data={"intent_id": intent_id, "type": intent.type.value, "target": target},
            trace=["intent_lookup", stage, "success"],
            dependency_tag="intent-processor",
        )

    def circuit_state(self, target: Optional[str] = None) -> CircuitState:
        return self.breakers.state_of(target or self.config.target)

    # ------------------------------------------------------------------
    # Sessions and telemetry
    # ------------------------------------------------------------------

    async def store_intent(self, intent_id: str, session_id: str) -> None:
        """Append a snapshot of the intent to the session's history."""
        self._require_ready()
        await self._simulate_latency()
        intent = self._intents.get(intent_id)
        if intent is None:
            raise IntentNotFoundError(intent_id)
        self._sessions.setdefault(session_id, []).append(dataclasses.replace(intent))
        logger.debug(f"Intent {intent_id} stored in session {session_id}")

    async def get_session_history(self, session_id: str) -> List[Intent]:
        self._require_ready()
        await self._simulate_latency()
        return list(self._sessions.get(session_id, []))

    async def get_telemetry_data(self) -> Dict[str, Any]:
        """Point-in-time dispatcher summary."""
        self._require_ready()
        avg_ms = (
            self._dispatch_time_total_ms / self._dispatch_count
            if self._dispatch_count else self._latency_ms
        )
        return {
            "avg_dispatch_time_ms": round(avg_ms, 3),
            "error_rate": (
                self._dispatch_failures / self._dispatch_count if self._dispatch_count else 0.0
            ),
            "failure_rate": self._failure_rate,
            "circuit_state": self.circuit_state().value,
            "circuit_breakers": self.breakers.snapshot(),
            "active_intents": len(self._intents),
            "session_count": len(self._sessions),
        }
