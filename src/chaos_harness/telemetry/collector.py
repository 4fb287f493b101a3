"""
Chaos Telemetry Collector

Samples registered metric sources, keeps a bounded history and flags metrics
that breach configured thresholds.

Ordering:
- Snapshots are appended in time order and stamped at append time
- Chaos-monitoring ticks wait until a baseline has been collected, so baseline
  samples always precede monitoring samples

Closed chaos event windows beyond ``max_data_points`` are evicted oldest first.

Anomaly severity is the highest severity among chaos events open at sampling
time; with no severity-tagged event open it comes from how far the value
overshoots its bound (see ``breach_severity``).
"""

import asyncio
import inspect
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Union

from chaos_harness.config import TelemetryConfig
from chaos_harness.observability import ERRORS, TELEMETRY_SAMPLES, record_anomaly
from chaos_harness.telemetry.sources import MetricSource, MetricValues

logger = logging.getLogger(__name__)

# (max overshoot ratio, severity)
BREACH_SEVERITY_TABLE = ((0.10, 1), (0.25, 2), (0.50, 3), (1.00, 4))


@dataclass
class Threshold:
    """Per-metric anomaly bounds; either may be omitted"""
    max: Optional[float] = None
    min: Optional[float] = None

    @classmethod
    def from_value(cls, value: Union["Threshold", Dict[str, float]]) -> "Threshold":
        if isinstance(value, Threshold):
            return value
        return cls(max=value.get("max"), min=value.get("min"))

    def breached_bound(self, value: float) -> Optional[float]:
        """The bound ``value`` crosses, or None if it is within limits."""
        if self.max is not None and value > self.max:
            return self.max
        if self.min is not None and value < self.min:
            return self.min
        return None

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {"max": self.max, "min": self.min}


@dataclass
class Anomaly:
    """A metric sample outside its threshold"""
    metric: str
    value: float
    threshold: float
    severity: int
    timestamp: float
    event_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metric": self.metric,
            "value": self.value,
            "threshold": self.threshold,
            "severity": self.severity,
            "timestamp": self.timestamp,
            "event_ids": list(self.event_ids),
        }


@dataclass
class TelemetrySnapshot:
    """One sampling tick"""
    timestamp: float
    metrics: MetricValues
    anomalies: List[Anomaly] = field(default_factory=list)
    phase: str = "chaos"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "phase": self.phase,
            "metrics": dict(self.metrics),
            "anomalies": [a.to_dict() for a in self.anomalies],
        }


@dataclass
class ChaosEventWindow:
    """A bracketed failure window on the timeline"""
    event_id: str
    start: float
    details: Dict[str, Any] = field(default_factory=dict)
    end: Optional[float] = None

    @property
    def active(self) -> bool:
        return self.end is None

    @property
    def severity(self) -> Optional[int]:
        severity = self.details.get("severity")
        return int(severity) if isinstance(severity, (int, float)) else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "start": self.start,
            "end": self.end,
            "duration": (self.end - self.start) if self.end is not None else None,
            "details": dict(self.details),
        }


def breach_severity(value: float, bound: float) -> int:
    """
    Severity from the relative overshoot of a bound:
    <=10% -> 1, <=25% -> 2, <=50% -> 3, <=100% -> 4, otherwise 5.
    """
    if bound == 0:
        return 5
    ratio = abs(value - bound) / abs(bound)
    for limit, severity in BREACH_SEVERITY_TABLE:
        if ratio <= limit:
            return severity
    return 5


class ChaosTelemetryCollector:
    """Samples metrics during chaos runs and detects anomalies."""

    def __init__(self, config: Optional[TelemetryConfig] = None, clock: Callable[[], float] = time.time):
        self.config = config or TelemetryConfig()
        self._clock = clock
        self._sources: List[MetricSource] = []
        self._thresholds: Dict[str, Threshold] = {
            metric: Threshold.from_value(bounds)
            for metric, bounds in self.config.anomaly_thresholds.items()
        }
        self._history: Deque[TelemetrySnapshot] = deque(maxlen=self.config.max_data_points)
        self._events: Dict[str, ChaosEventWindow] = {}
        self._baseline: MetricValues = {}
        self._baseline_done = asyncio.Event()
        self._monitor_task: Optional[asyncio.Task] = None
        self._last_timestamp = 0.0

        logger.info(
            f"ChaosTelemetryCollector initialized: max_data_points={self.config.max_data_points}, "
            f"interval={self.config.sample_interval_seconds}s"
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def add_metric_source(self, source: MetricSource) -> None:
        self._sources.append(source)

    def set_anomaly_thresholds(self, thresholds: Dict[str, Union[Threshold, Dict[str, float]]]) -> None:
        for metric, bounds in thresholds.items():
            self._thresholds[metric] = Threshold.from_value(bounds)
        logger.info(f"Anomaly thresholds set for: {', '.join(sorted(thresholds))}")

    @property
    def thresholds(self) -> Dict[str, Threshold]:
        return dict(self._thresholds)

    @property
    def baseline(self) -> MetricValues:
        return dict(self._baseline)

    @property
    def history(self) -> List[TelemetrySnapshot]:
        return list(self._history)

    @property
    def is_monitoring(self) -> bool:
        return self._monitor_task is not None and not self._monitor_task.done()

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    async def _collect(self) -> MetricValues:
        merged: MetricValues = {}
        for source in self._sources:
            try:
                values = source()
                if inspect.isawaitable(values):
                    values = await values
                merged.update(values)
            except Exception as e:
                logger.warning(f"Metric source {getattr(source, '__name__', source)} failed: {e}")
                if ERRORS:
                    ERRORS.labels(type=type(e).__name__, component="metric_source").inc()
        return merged

    async def sample(self, phase: str = "chaos") -> TelemetrySnapshot:
        """Take one sample, check it against thresholds and append it."""
        metrics = await self._collect()
        timestamp = max(self._clock(), self._last_timestamp)
        self._last_timestamp = timestamp

        snapshot = TelemetrySnapshot(
            timestamp=timestamp,
            metrics=metrics,
            anomalies=self._detect(metrics, timestamp),
            phase=phase,
        )
        self._history.append(snapshot)
        if TELEMETRY_SAMPLES:
            TELEMETRY_SAMPLES.labels(phase=phase).inc()
        logger.debug(f"Telemetry sample ({phase}): {len(metrics)} metrics, {len(snapshot.anomalies)} anomalies")
        return snapshot

    async def collect_baseline_metrics(
        self, duration_seconds: float, interval_seconds: Optional[float] = None
    ) -> MetricValues:
        """
        Sample for ``duration_seconds`` and store the per-metric mean as baseline.

        Returns:
            The baseline metric values
        """
        interval = interval_seconds or self.config.sample_interval_seconds
        self._baseline_done.clear()
        samples: List[MetricValues] = []
        try:
            logger.info(f"Collecting baseline metrics for {duration_seconds}s")
            deadline = time.monotonic() + duration_seconds
            while True:
                samples.append((await self.sample(phase="baseline")).metrics)
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                await asyncio.sleep(min(interval, remaining))
        finally:
            self._baseline = _mean(samples)
            self._baseline_done.set()

        logger.info(f"Baseline collected from {len(samples)} samples")
        return dict(self._baseline)

    def start_chaos_monitoring(self, interval_seconds: Optional[float] = None) -> None:
        """Start periodic sampling on the running event loop; ticks begin after the baseline."""
        if self.is_monitoring:
            logger.info("Chaos monitoring already running")
            return
        interval = interval_seconds or self.config.sample_interval_seconds
        self._monitor_task = asyncio.create_task(self._monitor(interval))
        logger.info(f"Chaos monitoring started (interval={interval}s)")

    async def _monitor(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            await self._baseline_done.wait()
            await self.sample(phase="chaos")

    def stop_monitoring(self) -> None:
        if self._monitor_task is not None:
            self._monitor_task.cancel()
            self._monitor_task = None
            logger.info("Chaos monitoring stopped")

    # ------------------------------------------------------------------
    # Chaos event windows
    # ------------------------------------------------------------------

    def register_chaos_event(self, event_id: str, details: Optional[Dict[str, Any]] = None) -> ChaosEventWindow:
        window = ChaosEventWindow(event_id=event_id, start=self._clock(), details=dict(details or {}))
        self._events[event_id] = window
        self._prune_events()
        logger.info(f"Chaos event registered: {event_id}")
        return window

    def _prune_events(self) -> None:
        excess = len(self._events) - self.config.max_data_points
        if excess <= 0:
            return
        closed = [event_id for event_id, w in self._events.items() if not w.active][:excess]
        for event_id in closed:
            del self._events[event_id]
        logger.debug(f"Evicted {len(closed)} closed chaos events")

    def clear_chaos_events(self) -> None:
        """Drop closed event windows; open ones stay."""
        self._events = {event_id: w for event_id, w in self._events.items() if w.active}

    def unregister_chaos_event(self, event_id: str) -> Optional[ChaosEventWindow]:
        window = self._events.get(event_id)
        if window is None:
            logger.warning(f"Unknown chaos event: {event_id}")
            return None
        if window.active:
            window.end = self._clock()
            logger.info(f"Chaos event closed: {event_id}")
        return window

    @property
    def chaos_events(self) -> List[ChaosEventWindow]:
        return list(self._events.values())

    def _active_events(self) -> List[ChaosEventWindow]:
        return [w for w in self._events.values() if w.active]

    # ------------------------------------------------------------------
    # Anomalies
    # ------------------------------------------------------------------

    def _detect(self, metrics: MetricValues, timestamp: float) -> List[Anomaly]:
        active = self._active_events()
        event_severities = [w.severity for w in active if w.severity is not None]
        anomalies = []
        for metric, threshold in self._thresholds.items():
            value = metrics.get(metric)
            if value is None:
                continue
            bound = threshold.breached_bound(value)
            if bound is None:
                continue
            severity = max(event_severities) if event_severities else breach_severity(value, bound)
            anomalies.append(Anomaly(
                metric=metric,
                value=value,
                threshold=bound,
                severity=severity,
                timestamp=timestamp,
                event_ids=[w.event_id for w in active],
            ))
            record_anomaly(metric, severity)
            logger.debug(f"Anomaly: {metric}={value} breached {bound} (severity {severity})")
        return anomalies

    def detect_anomalies(self) -> Dict[str, List[Dict[str, Any]]]:
        """All anomalies in the retained history, grouped by metric."""
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for snapshot in self._history:
            for anomaly in snapshot.anomalies:
                grouped.setdefault(anomaly.metric, []).append(anomaly.to_dict())
        return grouped

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def get_telemetry_data(self) -> List[Dict[str, Any]]:
        return [snapshot.to_dict() for snapshot in self._history]

    def generate_chaos_timeline_visualization(self, metric_names: Iterable[str]) -> Dict[str, Any]:
        """Time-ordered series for the requested metrics plus the chaos event windows."""
        names = list(metric_names)
        wanted = set(names)
        return {
            "metrics": names,
            "timestamps": [s.timestamp for s in self._history],
            "series": {
                name: [
                    {"timestamp": s.timestamp, "value": s.metrics[name]}
                    for s in self._history if name in s.metrics
                ]
                for name in names
            },
            "events": [w.to_dict() for w in sorted(self._events.values(), key=lambda w: w.start)],
            "anomalies": [
                a.to_dict() for s in self._history for a in s.anomalies if a.metric in wanted
            ],
        }

    def generate_telemetry_report(self) -> Dict[str, Any]:
        """Per-metric statistics against the baseline, anomaly counts and event windows."""
        values: Dict[str, List[float]] = {}
        for snapshot in self._history:
            for name, value in snapshot.metrics.items():
                values.setdefault(name, []).append(value)

        metrics = {}
        for name, series in values.items():
            average = sum(series) / len(series)
            baseline = self._baseline.get(name)
            metrics[name] = {
                "min": min(series),
                "max": max(series),
                "avg": average,
                "last": series[-1],
                "baseline": baseline,
                "delta": (average - baseline) if baseline is not None else None,
            }

        by_severity: Dict[str, int] = {}
        by_metric: Dict[str, int] = {}
        for snapshot in self._history:
            for anomaly in snapshot.anomalies:
                by_severity[str(anomaly.severity)] = by_severity.get(str(anomaly.severity), 0) + 1
                by_metric[anomaly.metric] = by_metric.get(anomaly.metric, 0) + 1

        return {
            "generated_at": self._clock(),
            "data_points": len(self._history),
            "max_data_points": self.config.max_data_points,
            "baseline": dict(self._baseline),
            "metrics": metrics,
            "anomalies": {
                "total": sum(by_metric.values()),
                "by_metric": by_metric,
                "by_severity": by_severity,
            },
            "thresholds": {name: t.to_dict() for name, t in self._thresholds.items()},
            "chaos_events": [w.to_dict() for w in self._events.values()],
        }


def _mean(samples: List[MetricValues]) -> MetricValues:
    totals: Dict[str, float] = {}
    counts: Dict[str, int] = {}
    for sample in samples:
        for name, value in sample.items():
            totals[name] = totals.get(name, 0.0) + value
            counts[name] = counts.get(name, 0) + 1
    return {name: totals[name] / counts[name] for name in totals}
