"""
Chaos Harness Prometheus Metrics Module
Reliability metrics emitted while chaos experiments run
"""

from prometheus_client import Counter, Histogram, Gauge, REGISTRY, CollectorRegistry, generate_latest
from contextlib import contextmanager
import time
import logging

logger = logging.getLogger(__name__)

# Circuit states encoded for the gauge
CIRCUIT_STATE_VALUES = {"CLOSED": 0, "OPEN": 1, "HALF_OPEN": 2}

# ============================================================================
# FAILURE INJECTION METRICS
# ============================================================================
try:
    CHAOS_INJECTIONS = Counter(
        'chaos_harness_injections_total',
        'Chaos failure injections',
        ['type', 'status']
    )
except ValueError as e:
    logger.error(f"Failed to create CHAOS_INJECTIONS metric: {e}")
    CHAOS_INJECTIONS = None

try:
    CHAOS_RECOVERY_TIME = Histogram(
        'chaos_harness_recovery_time_seconds',
        'Time from failure injection to scheduled recovery',
        ['type'],
        buckets=(0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0)
    )
except ValueError:
    CHAOS_RECOVERY_TIME = None

try:
    ACTIVE_FAILURES = Gauge(
        'chaos_harness_active_failures',
        'Currently active injected failures',
        ['harness']
    )
except ValueError:
    ACTIVE_FAILURES = None

# ============================================================================
# DISPATCH / CIRCUIT BREAKER METRICS
# ============================================================================
try:
    CIRCUIT_BREAKER_STATE = Gauge(
        'chaos_harness_circuit_breaker_state',
        'Circuit breaker state (0=CLOSED, 1=OPEN, 2=HALF_OPEN)',
        ['name']
    )
except ValueError:
    CIRCUIT_BREAKER_STATE = None

try:
    CIRCUIT_BREAKER_TRANSITIONS = Counter(
        'chaos_harness_circuit_breaker_transitions_total',
        'Circuit breaker state transitions',
        ['name', 'from_state', 'to_state']
    )
except ValueError:
    CIRCUIT_BREAKER_TRANSITIONS = None

try:
    INTENT_DISPATCHES = Counter(
        'chaos_harness_intent_dispatches_total',
        'Intent dispatch outcomes',
        ['outcome']
    )
except ValueError:
    INTENT_DISPATCHES = None

try:
    DISPATCH_LATENCY = Histogram(
        'chaos_harness_dispatch_duration_seconds',
        'Intent dispatch latency',
        buckets=(0.001, 0.01, 0.05, 0.1, 0.5, 1.0, 2.5)
    )
except ValueError:
    DISPATCH_LATENCY = None

# ============================================================================
# TELEMETRY / UX METRICS
# ============================================================================
try:
    ANOMALY_DETECTIONS = Counter(
        'chaos_harness_anomalies_detected_total',
        'Telemetry anomalies detected',
        ['metric', 'severity']
    )
except ValueError:
    ANOMALY_DETECTIONS = None

try:
    TELEMETRY_SAMPLES = Counter(
        'chaos_harness_telemetry_samples_total',
        'Telemetry samples collected',
        ['phase']
    )
except ValueError:
    TELEMETRY_SAMPLES = None

try:
    UX_IMPACTS = Counter(
        'chaos_harness_ux_impacts_total',
        'Recorded user-experience impacts',
        ['severity']
    )
except ValueError:
    UX_IMPACTS = None

try:
    RECOVERY_PATH_OUTCOMES = Counter(
        'chaos_harness_recovery_path_outcomes_total',
        'Recovery path validation outcomes',
        ['stage']
    )
except ValueError:
    RECOVERY_PATH_OUTCOMES = None

try:
    LOAD_CONSTRAINTS = Counter(
        'chaos_harness_load_constraints_total',
        'Load scenario constraints applied',
        ['kind']
    )
except ValueError:
    LOAD_CONSTRAINTS = None

try:
    ERRORS = Counter(
        'chaos_harness_errors_total',
        'Unexpected harness errors',
        ['type', 'component']
    )
except ValueError:
    ERRORS = None


# ============================================================================
# RECORDING HELPERS
# ============================================================================

def record_circuit_transition(name: str, from_state: str, to_state: str) -> None:
    """Record a breaker transition and the resulting state."""
    if CIRCUIT_BREAKER_TRANSITIONS:
        CIRCUIT_BREAKER_TRANSITIONS.labels(name=name, from_state=from_state, to_state=to_state).inc()
    if CIRCUIT_BREAKER_STATE:
        CIRCUIT_BREAKER_STATE.labels(name=name).set(CIRCUIT_STATE_VALUES.get(to_state, -1))


def record_injection(failure_type: str, status: str) -> None:
    if CHAOS_INJECTIONS:
        CHAOS_INJECTIONS.labels(type=failure_type, status=status).inc()


def record_anomaly(metric: str, severity: int) -> None:
    if ANOMALY_DETECTIONS:
        ANOMALY_DETECTIONS.labels(metric=metric, severity=str(severity)).inc()


@contextmanager
def track_dispatch():
    """Track intent dispatch latency"""
    start = time.time()
    try:
        yield
    finally:
        if DISPATCH_LATENCY:
            DISPATCH_LATENCY.observe(time.time() - start)


@contextmanager
def track_chaos_recovery(chaos_type: str):
    """Track recovery time from chaos injection"""
    start = time.time()
    try:
        yield
        duration = time.time() - start
        if CHAOS_RECOVERY_TIME:
            CHAOS_RECOVERY_TIME.labels(type=chaos_type).observe(duration)
    except Exception as e:
        logger.error(f"Chaos recovery failed for {chaos_type}: {e}")
        if ERRORS:
            ERRORS.labels(type=type(e).__name__, component="chaos_recovery").inc()
        raise


def get_registry() -> CollectorRegistry:
    """Get the Prometheus metrics registry"""
    return REGISTRY


def get_metrics_endpoint() -> bytes:
    """
    Generate Prometheus-format metrics response

    Returns:
        Bytes containing all metrics in Prometheus text format
    """
    try:
        return generate_latest(REGISTRY)
    except Exception as e:
        logger.error(f"Failed to generate metrics endpoint: {e}")
        if ERRORS:
            ERRORS.labels(type=type(e).__name__, component="metrics_endpoint").inc()
        raise
