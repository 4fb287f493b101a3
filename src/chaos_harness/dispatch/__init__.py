"""
Intent dispatch for the chaos harness

- Intent classification, entity extraction and conflict detection
- Per-target circuit breakers
- IntentDispatcher: the simulated backend exercised during chaos runs
"""

from chaos_harness.dispatch.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitBreakerState,
    CircuitPermit,
    CircuitState,
)
from chaos_harness.dispatch.dispatcher import (
    DispatchError,
    DispatchResult,
    IntentDispatcher,
    ScenarioOptions,
)
from chaos_harness.dispatch.intents import (
    Intent,
    IntentStatus,
    IntentType,
    classify_text,
    detect_conflict,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitBreakerState",
    "CircuitPermit",
    "CircuitState",
    "DispatchError",
    "DispatchResult",
    "IntentDispatcher",
    "ScenarioOptions",
    "Intent",
    "IntentStatus",
    "IntentType",
    "classify_text",
    "detect_conflict",
]
