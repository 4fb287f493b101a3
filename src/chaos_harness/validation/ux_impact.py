"""
UX Impact Tracker

Accumulates severity-tagged user-experience impacts for a test run and
aggregates them into a score, a report and recommendations.

Scoring: each record scores

    (severity / 5) * (0.7 + 0.3 * min(1, recovery_time_ms / recovery_ceiling_ms))

so a record is weighted mostly by severity and partly by how long recovery took,
saturating at the ceiling. The run score is the mean record score, in [0, 1],
non-decreasing in both severity and recovery time. An empty run scores 0.
"""

import logging
import math
import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Iterable, List, Optional, Union

from chaos_harness.observability import UX_IMPACTS

logger = logging.getLogger(__name__)

DEFAULT_RECOVERY_CEILING_MS = 30000.0
SLOW_RECOVERY_MS = 10000.0


class UXSeverity(IntEnum):
    """Ordered user-visible degradation levels"""
    NONE = 0
    MINOR = 1
    MODERATE = 2
    SIGNIFICANT = 3
    SEVERE = 4
    CRITICAL = 5

    @classmethod
    def coerce(cls, value: Union["UXSeverity", int, str]) -> "UXSeverity":
        if isinstance(value, str):
            return cls[value.upper()]
        return cls(value)


def failure_severity_to_ux(failure_severity: int) -> UXSeverity:
    """Map a 1-5 failure severity onto the UX scale; out-of-range maps to MODERATE."""
    if 1 <= failure_severity <= 5:
        return UXSeverity(failure_severity)
    return UXSeverity.MODERATE


def combined_severity(failure_severities: Iterable[int]) -> UXSeverity:
    """Severity of concurrent failures: ceil(mean) + 1, capped at CRITICAL."""
    severities = list(failure_severities)
    if not severities:
        return UXSeverity.NONE
    return UXSeverity(min(UXSeverity.CRITICAL, math.ceil(sum(severities) / len(severities)) + 1))


@dataclass
class UXImpactRecord:
    """One recorded impact"""
    component: str
    severity: UXSeverity
    description: str
    recovery_time_ms: float
    timestamp: float = field(default_factory=time.time)

    def score(self, recovery_ceiling_ms: float = DEFAULT_RECOVERY_CEILING_MS) -> float:
        recovery_factor = min(1.0, self.recovery_time_ms / recovery_ceiling_ms)
        return (int(self.severity) / 5.0) * (0.7 + 0.3 * recovery_factor)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component": self.component,
            "severity": self.severity.name,
            "severity_level": int(self.severity),
            "description": self.description,
            "recovery_time_ms": self.recovery_time_ms,
            "timestamp": self.timestamp,
        }


@dataclass
class UXImpactScore:
    """Aggregate over recorded impacts"""
    count: int
    distribution: Dict[str, int]
    avg_recovery_time_ms: float
    score: float
    max_severity: UXSeverity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "distribution": dict(self.distribution),
            "avg_recovery_time_ms": round(self.avg_recovery_time_ms, 2),
            "score": round(self.score, 4),
            "max_severity": self.max_severity.name,
        }


class UXImpactTracker:
    """Append-only impact log for one test run."""

    def __init__(self, recovery_ceiling_ms: float = DEFAULT_RECOVERY_CEILING_MS):
        if recovery_ceiling_ms <= 0:
            raise ValueError("recovery_ceiling_ms must be positive")
        self.recovery_ceiling_ms = recovery_ceiling_ms
        self._impacts: List[UXImpactRecord] = []

    @property
    def impacts(self) -> List[UXImpactRecord]:
        return list(self._impacts)

    def record_impact(
        self,
        component: str,
        severity: Union[UXSeverity, int, str],
        description: str,
        recovery_time_ms: float,
    ) -> UXImpactRecord:
        if recovery_time_ms < 0:
            raise ValueError("recovery_time_ms must be non-negative")
        record = UXImpactRecord(
            component=component,
            severity=UXSeverity.coerce(severity),
            description=description,
            recovery_time_ms=float(recovery_time_ms),
        )
        self._impacts.append(record)
        if UX_IMPACTS:
            UX_IMPACTS.labels(severity=record.severity.name).inc()
        logger.info(
            f"UX impact on {component}: {record.severity.name} "
            f"({description}, recovery {recovery_time_ms:.0f}ms)"
        )
        return record

    def clear_impacts(self) -> None:
        self._impacts.clear()
        logger.debug("UX impacts cleared")

    def calculate_impact(self, impacts: Optional[List[UXImpactRecord]] = None) -> UXImpactScore:
        records = self._impacts if impacts is None else impacts
        distribution = {level.name: 0 for level in UXSeverity}
        for record in records:
            distribution[record.severity.name] += 1

        count = len(records)
        return UXImpactScore(
            count=count,
            distribution=distribution,
            avg_recovery_time_ms=(
                sum(r.recovery_time_ms for r in records) / count if count else 0.0
            ),
            score=(
                sum(r.score(self.recovery_ceiling_ms) for r in records) / count if count else 0.0
            ),
            max_severity=max((r.severity for r in records), default=UXSeverity.NONE),
        )

    def generate_recommendations(self) -> List[Dict[str, str]]:
        """Recommendations per component, most severe first."""
        recommendations = []
        for component, records in self._by_component().items():
            worst = max(r.severity for r in records)
            avg_recovery = sum(r.recovery_time_ms for r in records) / len(records)

            if worst == UXSeverity.CRITICAL:
                recommendations.append({
                    "component": component,
                    "priority": "high",
                    "recommendation": f"Add or harden a fallback strategy for {component}; "
                                      f"at least one failure was not recovered",
                })
            elif worst == UXSeverity.SEVERE:
                recommendations.append({
                    "component": component,
                    "priority": "high",
                    "recommendation": f"Improve primary and secondary recovery for {component}; "
                                      f"recovery relied on the fallback strategy",
                })
            elif worst == UXSeverity.SIGNIFICANT:
                recommendations.append({
                    "component": component,
                    "priority": "medium",
                    "recommendation": f"Add graceful degradation for {component} while recovery is in progress",
                })

            if avg_recovery > SLOW_RECOVERY_MS:
                recommendations.append({
                    "component": component,
                    "priority": "medium",
                    "recommendation": f"Reduce recovery time for {component} "
                                      f"(average {avg_recovery:.0f}ms)",
                })

        order = {"high": 0, "medium": 1, "low": 2}
        recommendations.sort(key=lambda r: order[r["priority"]])
        return recommendations

    def generate_ux_impact_report(self) -> Dict[str, Any]:
        overall = self.calculate_impact()
        return {
            "summary": {
                "total_impacts": overall.count,
                "score": round(overall.score, 4),
                "max_severity": overall.max_severity.name,
                "avg_recovery_time_ms": round(overall.avg_recovery_time_ms, 2),
            },
            "details": {
                "total_impacts": overall.count,
                "impacts_by_severity": overall.distribution,
                "avg_recovery_time_ms": overall.avg_recovery_time_ms,
            },
            "by_component": {
                component: self.calculate_impact(records).to_dict()
                for component, records in self._by_component().items()
            },
            "impacts": [r.to_dict() for r in self._impacts],
            "recommendations": self.generate_recommendations(),
        }

    def _by_component(self) -> Dict[str, List[UXImpactRecord]]:
        grouped: Dict[str, List[UXImpactRecord]] = {}
        for record in self._impacts:
            grouped.setdefault(record.component, []).append(record)
        return grouped
