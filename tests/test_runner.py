"""
End-to-end chaos testing sequence.

Runs a short sequence at 1/100th of real time against the simulated backend
and checks the report artifacts it leaves behind.
"""

import random
from unittest.mock import AsyncMock

import pytest

from chaos_harness.config import HarnessSettings
from chaos_harness.experiments.definitions import sequence_from_dict
from chaos_harness.experiments.runner import ChaosTestingSequence, run_sequence
from chaos_harness.validation import report_writer
from chaos_harness.validation.recovery_paths import RecoveryPath

TIME_SCALE = 0.01

SMALL_SEQUENCE = {
    "individual_failures": [
        {"type": "database", "component": "database", "severity": 4, "duration_seconds": 10},
    ],
    "concurrent_failures": [
        [
            {"type": "database", "component": "database", "severity": 3, "duration_seconds": 10},
            {"type": "api", "component": "api", "severity": 2, "duration_seconds": 10},
        ],
    ],
    "resource_constraints": [
        {"network": {"bandwidth_kbps": 80, "duration_seconds": 5}},
        {"disk": {"latency_ms": 600, "duration_seconds": 5}},
    ],
    "timeline_metrics": ["database_query_latency", "api_error_rate"],
}

SMALL_PATHS = [
    RecoveryPath("Database", "connection-retry", 5000, "read-replica", "cached-data"),
    RecoveryPath("Frontend", "component-remount", 1000),
]

ALL_REPORTS = [
    report_writer.ANOMALIES,
    report_writer.RECOMMENDATIONS,
    report_writer.RECOVERY_VERIFICATION,
    report_writer.SUMMARY_REPORT,
    report_writer.TELEMETRY_REPORT,
    report_writer.TIMELINE_VISUALIZATION,
    report_writer.UX_IMPACT_REPORT,
]


@pytest.fixture
def settings(tmp_path):
    return HarnessSettings(reports_dir=str(tmp_path / "reports"))


@pytest.fixture
def sequence(settings):
    return ChaosTestingSequence(
        settings,
        sequence=sequence_from_dict(SMALL_SEQUENCE),
        recovery_paths=SMALL_PATHS,
        time_scale=TIME_SCALE,
        rng=random.Random(7),
        process_metrics=False,
    )


@pytest.mark.chaos
@pytest.mark.slow
class TestChaosTestingSequence:

    @pytest.mark.asyncio
    async def test_full_run(self, sequence):
        summary = await sequence.run()

        assert summary["error"] is None
        assert summary["time_scale"] == TIME_SCALE
        # 1 individual + 1 concurrent + 2 resource + 2 recovery paths
        assert summary["ux_impacts"]["total"] == 6
        assert summary["recovery_verification"]["total"] == 2
        assert summary["telemetry_data_points"] > 0
        assert summary["anomalies"]["total"] >= 1
        assert sorted(sequence.writer.list_reports()) == sorted(ALL_REPORTS)

    @pytest.mark.asyncio
    async def test_individual_failure_trips_dispatch_circuit(self, sequence):
        summary = await sequence.run()
        individual = summary["phases"]["individual_failures"][0]
        assert individual["injected"]
        assert individual["ux_severity"] == "SEVERE"
        assert individual["dispatch_check"]["errors"] == ["INJECTED_FAILURE"] * 3
        assert individual["dispatch_check"]["circuit_state"] == "OPEN"
        assert individual["recovery_time_ms"] >= 10 * TIME_SCALE * 1000

    @pytest.mark.asyncio
    async def test_concurrent_and_resource_phases(self, sequence):
        summary = await sequence.run()
        concurrent = summary["phases"]["concurrent_failures"][0]
        assert concurrent["injected"] == 2
        assert concurrent["ux_severity"] == "SEVERE"

        components = [i.component for i in sequence.ux_tracker.impacts]
        assert components[:4] == ["database", "System", "Network", "Disk"]
        disk = sequence.ux_tracker.impacts[3]
        assert disk.severity.name == "CRITICAL"

    @pytest.mark.asyncio
    async def test_services_restored_after_run(self, sequence):
        await sequence.run()
        assert all(
            sequence.services.is_healthy(name) for name in ("database", "api", "cache", "voice")
        )
        assert not sequence.telemetry.is_monitoring

    @pytest.mark.asyncio
    async def test_reports_content(self, sequence):
        await sequence.run()
        timeline = sequence.writer.read(report_writer.TIMELINE_VISUALIZATION)
        assert timeline["metrics"] == ["database_query_latency", "api_error_rate"]
        assert any(e["event_id"] == "database-database-failure" for e in timeline["events"])

        anomalies = sequence.writer.read(report_writer.ANOMALIES)
        assert "api_error_rate" in anomalies

        ux_report = sequence.writer.read(report_writer.UX_IMPACT_REPORT)
        assert ux_report["summary"]["total_impacts"] == 6

    @pytest.mark.asyncio
    async def test_phase_error_is_reported(self, sequence):
        sequence.run_concurrent_failures = AsyncMock(side_effect=RuntimeError("boom"))
        summary = await sequence.run()
        assert summary["error"] == "boom"
        assert "resource_constraints" not in summary["phases"]
        assert report_writer.SUMMARY_REPORT in sequence.writer.list_reports()
        assert sequence.services.is_healthy("database")

    def test_time_scale_must_be_positive(self, settings):
        with pytest.raises(ValueError):
            ChaosTestingSequence(settings, time_scale=0)

    @pytest.mark.asyncio
    async def test_run_sequence(self, settings):
        summary = await run_sequence(
            settings,
            time_scale=TIME_SCALE,
            sequence=sequence_from_dict({"baseline_seconds": 1, "settle_seconds": 0}),
            recovery_paths=[],
            process_metrics=False,
        )
        assert summary["error"] is None
        assert summary["ux_impacts"]["total"] == 0
        assert summary["recovery_verification"]["total"] == 0
