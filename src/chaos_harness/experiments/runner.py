"""
Chaos Testing Sequence Runner

Runs the end-to-end resilience sequence against the simulated backend:

1. Baseline telemetry, then continuous chaos monitoring
2. Individual failure modes, one at a time, probing the intent dispatcher
3. Concurrent failure combinations
4. Resource constraints (CPU, memory, network, disk)
5. Recovery path validation

and writes every report artifact into the reports directory. ``time_scale``
multiplies every duration, so 0.01 runs the full sequence a hundred times faster.
"""

import asyncio
import dataclasses
import logging
import random
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from chaos_harness.actions.failure_injection import ChaosHarness, FailureOptions
from chaos_harness.actions.load_scenario import LoadScenarioConfig, LoadScenarioGenerator
from chaos_harness.config import HarnessSettings
from chaos_harness.dispatch.dispatcher import IntentDispatcher
from chaos_harness.experiments.definitions import DEFAULT_SEQUENCE, FailureMode, SequenceDefinition
from chaos_harness.mocks.services import MockServices
from chaos_harness.telemetry.collector import ChaosTelemetryCollector
from chaos_harness.telemetry.sources import (
    dispatcher_source,
    mock_services_source,
    process_metrics_source,
)
from chaos_harness.validation import report_writer
from chaos_harness.validation.recovery_paths import DEFAULT_RECOVERY_PATHS, RecoveryPath
from chaos_harness.validation.recovery_validator import RecoveryPathValidator
from chaos_harness.validation.report_writer import ReportWriter
from chaos_harness.validation.ux_impact import (
    UXImpactTracker,
    combined_severity,
    failure_severity_to_ux,
)

logger = logging.getLogger(__name__)

DEFAULT_ANOMALY_THRESHOLDS = {
    "database_query_latency": {"max": 500},
    "api_error_rate": {"max": 0.05},
    "memory_usage_mb": {"max": 1024},
    "system_cpu_percent": {"max": 80},
}

MODULES = ["database", "api", "cache", "voice"]
DISPATCH_CHECK_ATTEMPTS = 3


class ChaosTestingSequence:
    """
    End-to-end chaos testing sequence.

    Owns the simulated services, dispatcher, telemetry collector and UX
    tracker for one run; each phase gets its own ``ChaosHarness``.
    """

    def __init__(
        self,
        settings: Optional[HarnessSettings] = None,
        sequence: Optional[SequenceDefinition] = None,
        recovery_paths: Optional[List[RecoveryPath]] = None,
        time_scale: float = 1.0,
        rng: Optional[random.Random] = None,
        process_metrics: bool = True,
    ):
        if time_scale <= 0:
            raise ValueError("time_scale must be positive")
        self.settings = settings or HarnessSettings()
        self.sequence = sequence or DEFAULT_SEQUENCE
        self.recovery_paths = list(recovery_paths) if recovery_paths is not None else list(DEFAULT_RECOVERY_PATHS)
        self.time_scale = time_scale
        self._rng = rng or random.Random()

        self.services = MockServices()
        self.ux_tracker = UXImpactTracker()
        self.writer = ReportWriter(self.settings.reports_dir)
        self.telemetry = ChaosTelemetryCollector(self.settings.telemetry)
        self.telemetry.add_metric_source(mock_services_source(self.services))
        if process_metrics:
            self.telemetry.add_metric_source(process_metrics_source())
        self.telemetry.set_anomaly_thresholds(
            self.settings.telemetry.anomaly_thresholds or DEFAULT_ANOMALY_THRESHOLDS
        )

        dispatcher_config = dataclasses.replace(
            self.settings.dispatcher,
            default_latency_ms=self.settings.dispatcher.default_latency_ms * time_scale,
            circuit_breaker=dataclasses.replace(
                self.settings.dispatcher.circuit_breaker,
                failure_window_seconds=self.settings.dispatcher.circuit_breaker.failure_window_seconds * time_scale,
                reset_timeout_seconds=self.settings.dispatcher.circuit_breaker.reset_timeout_seconds * time_scale,
            ),
        )
        self.dispatcher = IntentDispatcher(dispatcher_config, rng=self._rng)
        self.phases: Dict[str, List[Dict[str, Any]]] = {}

    def _scaled(self, seconds: float) -> float:
        return seconds * self.time_scale

    def _harness(self, max_concurrent_failures: int) -> ChaosHarness:
        config = dataclasses.replace(
            self.settings.harness,
            target_component=self.settings.harness.target_component
            if self.settings.harness.target_component != "unknown" else "chaos-sequence",
            max_concurrent_failures=max_concurrent_failures,
            modules=self.settings.harness.modules or list(MODULES),
        )
        harness = ChaosHarness(config, services=self.services)
        harness.start()
        return harness

    async def run(self) -> Dict[str, Any]:
        """
        Run every phase and write the reports.

        Returns:
            The summary report
        """
        started = time.monotonic()
        error: Optional[str] = None
        recovery_report: Optional[Dict[str, Any]] = None
        logger.info(f"Starting chaos testing sequence (time_scale={self.time_scale})")

        self.dispatcher.enable_harness()
        await self.dispatcher.initialize()
        self.telemetry.add_metric_source(dispatcher_source(self.dispatcher))
        self.telemetry.start_chaos_monitoring(self._scaled(self.settings.telemetry.sample_interval_seconds))

        try:
            await self.telemetry.collect_baseline_metrics(
                self._scaled(self.sequence.baseline_seconds),
                self._scaled(self.settings.telemetry.sample_interval_seconds),
            )

            logger.info("=== Phase 1: individual failure modes ===")
            self.phases["individual_failures"] = await self.run_individual_failures()

            logger.info("=== Phase 2: concurrent failures ===")
            self.phases["concurrent_failures"] = await self.run_concurrent_failures()

            logger.info("=== Phase 3: resource constraints ===")
            self.phases["resource_constraints"] = await self.run_resource_constraints()

            logger.info("=== Phase 4: recovery paths ===")
            recovery_report = await self.validate_recovery_paths()
        except Exception as e:
            logger.error(f"Error during chaos testing: {e}", exc_info=True)
            error = str(e)
        finally:
            self.telemetry.stop_monitoring()
            self.services.restore_all()

        summary = self.write_reports(time.monotonic() - started, recovery_report, error)
        logger.info(
            f"Chaos testing complete: {summary['ux_impacts']['total']} UX impacts, "
            f"{summary['anomalies']['total']} anomalies, reports in {self.writer.reports_dir}"
        )
        return summary

    async def _check_dispatch(self, target: str) -> Dict[str, Any]:
        intent = await self.dispatcher.process_text(f"search {target} status")
        outcomes = [
            (await self.dispatcher.dispatch_intent(intent.id, target=target)).to_dict()
            for _ in range(DISPATCH_CHECK_ATTEMPTS)
        ]
        return {
            "errors": [o["error"] for o in outcomes],
            "circuit_state": self.dispatcher.circuit_state(target).value,
        }

    async def run_individual_failures(self) -> List[Dict[str, Any]]:
        harness = self._harness(max_concurrent_failures=1)
        self.dispatcher.harness = harness
        results = []
        try:
            for mode in self.sequence.individual_failures:
                results.append(await self._run_failure_mode(harness, mode))
                await self._settle()
        finally:
            harness.stop()
            self.dispatcher.harness = None
        return results

    async def _run_failure_mode(self, harness: ChaosHarness, mode: FailureMode) -> Dict[str, Any]:
        event_id = f"{mode.type}-{mode.component}-failure"
        self.telemetry.register_chaos_event(event_id, {
            "type": mode.type, "component": mode.component, "severity": mode.severity,
        })
        start = time.monotonic()
        injection = await harness.inject_failure(FailureOptions(
            type=mode.type,
            target=mode.component,
            duration_seconds=self._scaled(mode.duration_seconds),
            severity=mode.severity,
        ))
        dispatch_check = await self._check_dispatch(mode.component)
        await harness.wait_for_recovery()
        recovery_ms = (time.monotonic() - start) * 1000.0

        severity = failure_severity_to_ux(mode.severity)
        self.ux_tracker.record_impact(
            component=mode.component,
            severity=severity,
            description=f"{mode.type} failure on {mode.component} (severity {mode.severity})",
            recovery_time_ms=recovery_ms,
        )
        self.telemetry.unregister_chaos_event(event_id)
        return {
            "type": mode.type,
            "component": mode.component,
            "injected": injection is not None,
            "ux_severity": severity.name,
            "recovery_time_ms": round(recovery_ms, 2),
            "dispatch_check": dispatch_check,
        }

    async def run_concurrent_failures(self) -> List[Dict[str, Any]]:
        results = []
        for combination in self.sequence.concurrent_failures:
            harness = self._harness(max_concurrent_failures=max(2, len(combination)))
            name = " + ".join(f"{m.type}-{m.component}" for m in combination)
            event_id = f"concurrent-{len(results)}"
            self.telemetry.register_chaos_event(event_id, {
                "failures": [dataclasses.asdict(m) for m in combination],
                "severity": max(m.severity for m in combination),
            })
            start = time.monotonic()
            try:
                injected = [
                    await harness.inject_failure(FailureOptions(
                        type=m.type,
                        target=m.component,
                        duration_seconds=self._scaled(m.duration_seconds),
                        severity=m.severity,
                    ))
                    for m in combination
                ]
                await harness.wait_for_recovery()
            finally:
                harness.stop()
            recovery_ms = (time.monotonic() - start) * 1000.0

            severity = combined_severity(m.severity for m in combination)
            self.ux_tracker.record_impact(
                component="System",
                severity=severity,
                description=f"Concurrent failures: {name}",
                recovery_time_ms=recovery_ms,
            )
            self.telemetry.unregister_chaos_event(event_id)
            results.append({
                "combination": name,
                "injected": sum(1 for i in injected if i is not None),
                "ux_severity": severity.name,
                "recovery_time_ms": round(recovery_ms, 2),
            })
            await self._settle()
        return results

    async def run_resource_constraints(self) -> List[Dict[str, Any]]:
        generator = LoadScenarioGenerator(self.telemetry)
        results = []
        for config in self.sequence.resource_constraints:
            scaled = LoadScenarioConfig(**{
                kind: dataclasses.replace(c, duration_seconds=self._scaled(c.duration_seconds))
                for kind, c in config.constraints().items()
            })
            start = time.monotonic()
            outcome = await generator.load_scenario(scaled)
            recovery_ms = (time.monotonic() - start) * 1000.0
            for constraint in outcome.outcomes:
                self.ux_tracker.record_impact(
                    component=constraint.kind.capitalize(),
                    severity=failure_severity_to_ux(constraint.severity),
                    description=f"{constraint.kind} constraint (severity {constraint.severity})",
                    recovery_time_ms=recovery_ms,
                )
            results.append(outcome.to_dict())
            await self._settle()
        return results

    async def validate_recovery_paths(self) -> Dict[str, Any]:
        harness = self._harness(max_concurrent_failures=1)
        recovery = self.settings.recovery
        scaled = dataclasses.replace(
            recovery,
            grace_period_seconds=self._scaled(recovery.grace_period_seconds),
            stage_delay_seconds=self._scaled(recovery.stage_delay_seconds),
            failure_duration_seconds=self._scaled(recovery.failure_duration_seconds),
        )
        validator = RecoveryPathValidator(
            harness, self.ux_tracker, scaled, telemetry=self.telemetry, rng=self._rng
        )
        try:
            return await validator.validate_all(self.recovery_paths, writer=self.writer)
        finally:
            harness.stop()

    async def _settle(self) -> None:
        await asyncio.sleep(self._scaled(self.sequence.settle_seconds))

    def write_reports(
        self,
        elapsed_seconds: float,
        recovery_report: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> Dict[str, Any]:
        ux_report = self.ux_tracker.generate_ux_impact_report()
        anomalies = self.telemetry.detect_anomalies()
        recommendations = self.ux_tracker.generate_recommendations()

        summary = {
            "timestamp": datetime.utcnow().isoformat(),
            "test_duration_ms": round(elapsed_seconds * 1000.0, 2),
            "time_scale": self.time_scale,
            "ux_impacts": {
                "total": ux_report["details"]["total_impacts"],
                "by_level": ux_report["details"]["impacts_by_severity"],
                "avg_recovery_time_ms": ux_report["details"]["avg_recovery_time_ms"],
                "score": ux_report["summary"]["score"],
            },
            "anomalies": {
                "metrics": len(anomalies),
                "total": sum(len(v) for v in anomalies.values()),
            },
            "recommendations": len(recommendations),
            "telemetry_data_points": len(self.telemetry.get_telemetry_data()),
            "recovery_verification": recovery_report["summary"] if recovery_report else None,
            "phases": self.phases,
            "error": error,
        }

        self.writer.write_all({
            report_writer.UX_IMPACT_REPORT: ux_report,
            report_writer.TELEMETRY_REPORT: self.telemetry.generate_telemetry_report(),
            report_writer.TIMELINE_VISUALIZATION: self.telemetry.generate_chaos_timeline_visualization(
                self.sequence.timeline_metrics
            ),
            report_writer.ANOMALIES: anomalies,
            report_writer.RECOMMENDATIONS: recommendations,
            report_writer.SUMMARY_REPORT: summary,
        })
        return summary


async def run_sequence(
    settings: Optional[HarnessSettings] = None,
    time_scale: float = 1.0,
    **kwargs,
) -> Dict[str, Any]:
    """
    Convenience function to run the chaos testing sequence.

    Args:
        settings: Harness settings (defaults when omitted)
        time_scale: Multiplier applied to every duration

    Returns:
        Summary report
    """
    sequence = ChaosTestingSequence(settings, time_scale=time_scale, **kwargs)
    return await sequence.run()
