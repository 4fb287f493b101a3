"""
Recovery Path Validation for Chaos Testing

Replays documented recovery strategies against injected failures. For each
path a failure is injected on the component, a grace period passes, then each
declared stage (primary, secondary, fallback) is attempted in order with its
own success probability until one succeeds. The terminal outcome is reported to
the UX tracker:

    primary -> MODERATE, secondary -> SIGNIFICANT, fallback -> SEVERE,
    no stage succeeded -> CRITICAL
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from chaos_harness.actions.failure_injection import ChaosHarness, FailureOptions
from chaos_harness.config import RecoveryConfig
from chaos_harness.observability import RECOVERY_PATH_OUTCOMES
from chaos_harness.tracing import span
from chaos_harness.validation.recovery_paths import RecoveryPath, failure_type_for_component
from chaos_harness.validation.report_writer import RECOVERY_VERIFICATION, ReportWriter
from chaos_harness.validation.ux_impact import UXImpactTracker, UXSeverity

logger = logging.getLogger(__name__)


class RecoveryStage(str, Enum):
    """Stage at which a path's recovery concluded"""
    PRIMARY = "primary"
    SECONDARY = "secondary"
    FALLBACK = "fallback"
    COMPLETE_FAILURE = "complete_failure"


STAGE_UX_SEVERITY: Dict[RecoveryStage, UXSeverity] = {
    RecoveryStage.PRIMARY: UXSeverity.MODERATE,
    RecoveryStage.SECONDARY: UXSeverity.SIGNIFICANT,
    RecoveryStage.FALLBACK: UXSeverity.SEVERE,
    RecoveryStage.COMPLETE_FAILURE: UXSeverity.CRITICAL,
}


@dataclass
class StageAttempt:
    """One recovery strategy attempt"""
    stage: RecoveryStage
    strategy: str
    succeeded: bool
    recovery_time_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "strategy": self.strategy,
            "succeeded": self.succeeded,
            "recovery_time_ms": round(self.recovery_time_ms, 2),
        }


@dataclass
class RecoveryOutcome:
    """Observed result of validating one recovery path"""
    component: str
    failure_type: str
    final_stage: RecoveryStage
    recovery_time_ms: float
    expected_recovery_time_ms: float
    injected: bool
    attempts: List[StageAttempt] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.final_stage != RecoveryStage.COMPLETE_FAILURE

    @property
    def attempted_stage(self) -> Optional[RecoveryStage]:
        return self.attempts[-1].stage if self.attempts else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component": self.component,
            "failure_type": self.failure_type,
            "final_stage": self.final_stage.value,
            "succeeded": self.succeeded,
            "attempted_stage": self.attempted_stage.value if self.attempted_stage else None,
            "recovery_time_ms": round(self.recovery_time_ms, 2),
            "expected_recovery_time_ms": self.expected_recovery_time_ms,
            "within_expected": self.succeeded and self.recovery_time_ms <= self.expected_recovery_time_ms,
            "injected": self.injected,
            "attempts": [a.to_dict() for a in self.attempts],
        }


@dataclass
class RecoveryVerificationSummary:
    """Aggregate over all validated paths; success_rate is a percentage"""
    total: int
    primary_success: int
    secondary_success: int
    fallback_success: int
    complete_fail: int
    success_rate: float
    avg_recovery_time_ms: float

    @classmethod
    def from_outcomes(cls, outcomes: List[RecoveryOutcome]) -> "RecoveryVerificationSummary":
        counts = {stage: 0 for stage in RecoveryStage}
        for outcome in outcomes:
            counts[outcome.final_stage] += 1
        successful = [o.recovery_time_ms for o in outcomes if o.succeeded]
        total = len(outcomes)
        return cls(
            total=total,
            primary_success=counts[RecoveryStage.PRIMARY],
            secondary_success=counts[RecoveryStage.SECONDARY],
            fallback_success=counts[RecoveryStage.FALLBACK],
            complete_fail=counts[RecoveryStage.COMPLETE_FAILURE],
            success_rate=(len(successful) / total * 100.0) if total else 0.0,
            avg_recovery_time_ms=(sum(successful) / len(successful)) if successful else 0.0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "primary_success": self.primary_success,
            "secondary_success": self.secondary_success,
            "fallback_success": self.fallback_success,
            "complete_fail": self.complete_fail,
            "success_rate": round(self.success_rate, 2),
            "avg_recovery_time_ms": round(self.avg_recovery_time_ms, 2),
        }


class RecoveryPathValidator:
    """
    Validates recovery paths against a running ``ChaosHarness``.

    ``rng`` decides stage success: a stage succeeds when ``rng.random()`` is
    below its configured probability. ``telemetry`` is an optional collector on
    which each path is bracketed as a chaos event.
    """

    def __init__(
        self,
        harness: ChaosHarness,
        ux_tracker: UXImpactTracker,
        config: Optional[RecoveryConfig] = None,
        telemetry: Any = None,
        rng: Optional[random.Random] = None,
    ):
        self.harness = harness
        self.ux_tracker = ux_tracker
        self.config = config or RecoveryConfig()
        self.telemetry = telemetry
        self._rng = rng or random.Random()
        self._probabilities = {
            RecoveryStage.PRIMARY: self.config.primary_success_probability,
            RecoveryStage.SECONDARY: self.config.secondary_success_probability,
            RecoveryStage.FALLBACK: self.config.fallback_success_probability,
        }

    async def validate_path(self, path: RecoveryPath) -> RecoveryOutcome:
        failure_type = failure_type_for_component(path.component).value
        target = path.component.lower()
        event_id = f"recovery-{path.component}"

        with span("validate_recovery_path", {"component": path.component, "failure.type": failure_type}):
            if self.telemetry is not None:
                self.telemetry.register_chaos_event(event_id, {
                    "component": path.component,
                    "severity": self.config.failure_severity,
                    "recovery_path": path.to_dict(),
                })

            try:
                start = time.monotonic()
                injection = await self.harness.inject_failure(FailureOptions(
                    type=failure_type,
                    target=target,
                    duration_seconds=self.config.failure_duration_seconds,
                    severity=self.config.failure_severity,
                ))
                if injection is None:
                    logger.warning(f"Failure for {path.component} was not injected; validating anyway")

                await asyncio.sleep(self.config.grace_period_seconds)

                attempts: List[StageAttempt] = []
                final_stage = RecoveryStage.COMPLETE_FAILURE
                for index, stage_name in enumerate(path.stages):
                    stage = RecoveryStage(stage_name)
                    if index > 0:
                        await asyncio.sleep(self.config.stage_delay_seconds)
                    strategy = getattr(path, stage_name)
                    succeeded = self._rng.random() < self._probabilities[stage]
                    attempts.append(StageAttempt(
                        stage=stage,
                        strategy=strategy,
                        succeeded=succeeded,
                        recovery_time_ms=(time.monotonic() - start) * 1000.0,
                    ))
                    if succeeded:
                        logger.info(f"{stage.value.capitalize()} recovery ({strategy}) succeeded for {path.component}")
                        final_stage = stage
                        break
                    logger.info(f"{stage.value.capitalize()} recovery ({strategy}) failed for {path.component}")

                recovery_time_ms = (time.monotonic() - start) * 1000.0
                self.ux_tracker.record_impact(
                    component=path.component,
                    severity=STAGE_UX_SEVERITY[final_stage],
                    description=self._describe(path, final_stage),
                    recovery_time_ms=recovery_time_ms,
                )
                if RECOVERY_PATH_OUTCOMES:
                    RECOVERY_PATH_OUTCOMES.labels(stage=final_stage.value).inc()
            finally:
                if self.telemetry is not None:
                    self.telemetry.unregister_chaos_event(event_id)

        # Let the injected failure recover before the next path is exercised
        await self.harness.wait_for_recovery()

        return RecoveryOutcome(
            component=path.component,
            failure_type=failure_type,
            final_stage=final_stage,
            recovery_time_ms=recovery_time_ms,
            expected_recovery_time_ms=path.expected_recovery_time_ms,
            injected=injection is not None,
            attempts=attempts,
        )

    async def validate_all(
        self, paths: List[RecoveryPath], writer: Optional[ReportWriter] = None
    ) -> Dict[str, Any]:
        """
        Validate every path in order and build the verification report.

        Args:
            paths: Recovery paths to exercise
            writer: Optional writer persisting ``recovery-verification.json``

        Returns:
            Report with a summary and per-path detail
        """
        outcomes = []
        for path in paths:
            logger.info(f"Testing recovery path for {path.component}")
            outcomes.append(await self.validate_path(path))

        summary = RecoveryVerificationSummary.from_outcomes(outcomes)
        logger.info(
            f"Recovery verification: {summary.total} paths, "
            f"success rate {summary.success_rate:.1f}%, "
            f"average recovery {summary.avg_recovery_time_ms:.2f}ms"
        )
        report = {
            "timestamp": time.time(),
            "summary": summary.to_dict(),
            "details": [o.to_dict() for o in outcomes],
        }
        if writer is not None:
            writer.write(RECOVERY_VERIFICATION, report)
        return report

    @staticmethod
    def _describe(path: RecoveryPath, stage: RecoveryStage) -> str:
        if stage == RecoveryStage.COMPLETE_FAILURE:
            return f"{path.component} failed to recover via any declared path"
        return f"{path.component} recovered via {stage.value} path ({getattr(path, stage.value)})"
