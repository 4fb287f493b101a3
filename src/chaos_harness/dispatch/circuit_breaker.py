"""
Circuit Breaker for intent dispatch

Three-state guard per dispatch target:
- CLOSED -> OPEN when ``failure_threshold`` failures land inside a sliding
  ``failure_window_seconds`` window
- OPEN -> HALF_OPEN once ``reset_timeout_seconds`` have elapsed, via a deferred
  callback on the running loop (or lazily on the next state read)
- HALF_OPEN admits a single trial request: success -> CLOSED with counters reset,
  failure -> OPEN for another cool-down

``acquire`` hands out a ``CircuitPermit`` stamped with the state generation it
was admitted under. Outcomes reported with a permit from an earlier generation
are ignored, and ``release`` frees a trial slot whose request ended without an
outcome (cancelled or raised).

``force_open`` / ``force_closed`` are explicit test overrides that bypass the
natural accrual; a forced OPEN breaker stays open until released.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Dict, Optional

from chaos_harness.config import CircuitBreakerConfig
from chaos_harness.observability import record_circuit_transition

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker state"""
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass
class CircuitBreakerState:
    """Point-in-time view of a breaker"""
    name: str
    state: CircuitState
    consecutive_failures: int
    last_failure_timestamp: Optional[float]

    def to_dict(self):
        return {
            "name": self.name,
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "last_failure_timestamp": self.last_failure_timestamp,
        }


@dataclass(frozen=True)
class CircuitPermit:
    """Admission ticket for one request"""
    generation: int
    trial: bool = False


class CircuitBreaker:
    """Sliding-window circuit breaker for one dispatch target."""

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failures: Deque[float] = deque()
        self._consecutive_failures = 0
        self._last_failure_at: Optional[float] = None
        self._last_failure_timestamp: Optional[float] = None
        self._opened_at: Optional[float] = None
        self._forced = False
        self._trial_in_flight = False
        self._generation = 0
        self._cooldown_handle: Optional[asyncio.TimerHandle] = None

    @property
    def state(self) -> CircuitState:
        if (
            self._state == CircuitState.OPEN
            and not self._forced
            and self._opened_at is not None
            and self._clock() - self._opened_at >= self.config.reset_timeout_seconds
        ):
            self._transition(CircuitState.HALF_OPEN)
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def acquire(self) -> Optional[CircuitPermit]:
        """
        Admit a request.

        Returns:
            A permit if CLOSED, or if HALF_OPEN and no trial request is in
            flight; None when the request must be rejected
        """
        state = self.state
        if state == CircuitState.CLOSED:
            return CircuitPermit(self._generation)
        if state == CircuitState.HALF_OPEN and not self._trial_in_flight:
            self._trial_in_flight = True
            return CircuitPermit(self._generation, trial=True)
        return None

    def allow_request(self) -> bool:
        return self.acquire() is not None

    def release(self, permit: Optional[CircuitPermit]) -> None:
        """Free the trial slot if ``permit``'s trial never reported an outcome."""
        if permit is not None and permit.trial and not self._is_stale(permit):
            if self._trial_in_flight:
                logger.info(f"Circuit {self.name}: trial request ended without an outcome")
            self._trial_in_flight = False

    def _is_stale(self, permit: Optional[CircuitPermit]) -> bool:
        return permit is not None and permit.generation != self._generation

    def record_success(self, permit: Optional[CircuitPermit] = None) -> None:
        if self._is_stale(permit):
            logger.debug(f"Circuit {self.name}: ignoring success from an earlier state")
            return
        self._consecutive_failures = 0
        if self.state == CircuitState.HALF_OPEN:
            self._failures.clear()
            self._transition(CircuitState.CLOSED)

    def record_failure(self, permit: Optional[CircuitPermit] = None) -> None:
        if self._is_stale(permit):
            logger.debug(f"Circuit {self.name}: ignoring failure from an earlier state")
            return
        now = self._clock()
        self._consecutive_failures += 1
        self._last_failure_at = now
        self._last_failure_timestamp = time.time()

        state = self.state
        if state == CircuitState.HALF_OPEN:
            logger.info(f"Circuit {self.name}: trial request failed, reopening")
            self._open(now)
            return

        if state == CircuitState.CLOSED:
            self._failures.append(now)
            window_start = now - self.config.failure_window_seconds
            while self._failures and self._failures[0] < window_start:
                self._failures.popleft()
            if len(self._failures) >= self.config.failure_threshold:
                logger.warning(
                    f"Circuit {self.name}: {len(self._failures)} failures within "
                    f"{self.config.failure_window_seconds}s, opening"
                )
                self._open(now)

    def force_open(self) -> None:
        """Hold the breaker OPEN until ``force_closed`` or ``reset``."""
        self._cancel_cooldown()
        self._forced = True
        self._opened_at = self._clock()
        if self._state != CircuitState.OPEN:
            self._transition(CircuitState.OPEN)

    def force_closed(self) -> None:
        """Close the breaker and clear failure accrual."""
        self._cancel_cooldown()
        self._forced = False
        self._failures.clear()
        self._consecutive_failures = 0
        if self._state != CircuitState.CLOSED:
            self._transition(CircuitState.CLOSED)

    def reset(self) -> None:
        self.force_closed()
        self._last_failure_at = None
        self._last_failure_timestamp = None
        self._opened_at = None

    def snapshot(self) -> CircuitBreakerState:
        return CircuitBreakerState(
            name=self.name,
            state=self.state,
            consecutive_failures=self._consecutive_failures,
            last_failure_timestamp=self._last_failure_timestamp,
        )

    def _open(self, now: float) -> None:
        self._opened_at = now
        self._failures.clear()
        self._transition(CircuitState.OPEN)
        self._schedule_cooldown()

    def _schedule_cooldown(self) -> None:
        self._cancel_cooldown()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the transition happens on the next state read.
            return
        self._cooldown_handle = loop.call_later(
            self.config.reset_timeout_seconds, self._on_cooldown_elapsed
        )

    def _on_cooldown_elapsed(self) -> None:
        self._cooldown_handle = None
        if self._state == CircuitState.OPEN and not self._forced:
            self._transition(CircuitState.HALF_OPEN)

    def _cancel_cooldown(self) -> None:
        if self._cooldown_handle is not None:
            self._cooldown_handle.cancel()
            self._cooldown_handle = None

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._generation += 1
        self._trial_in_flight = False
        if new_state == CircuitState.CLOSED:
            self._opened_at = None
        logger.info(f"Circuit {self.name}: {old_state.value} -> {new_state.value}")
        record_circuit_transition(self.name, old_state.value, new_state.value)


class CircuitBreakerRegistry:
    """Owns one breaker per dispatch target."""

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get(self, target: str) -> CircuitBreaker:
        breaker = self._breakers.get(target)
        if breaker is None:
            breaker = CircuitBreaker(target, self.config, self._clock)
            self._breakers[target] = breaker
        return breaker

    def state_of(self, target: str) -> CircuitState:
        return self.get(target).state

    def snapshot(self) -> Dict[str, Dict]:
        return {name: breaker.snapshot().to_dict() for name, breaker in self._breakers.items()}

    def reset(self) -> None:
        for breaker in self._breakers.values():
            breaker.reset()
        self._breakers.clear()
