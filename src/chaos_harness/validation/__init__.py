"""
Validation utilities for chaos runs

- UX impact tracking and scoring
- Recovery path definitions and map rendering
- Recovery path validation
- JSON report persistence
"""

from chaos_harness.validation.recovery_paths import (
    DEFAULT_RECOVERY_PATHS,
    FailureType,
    RecoveryPath,
    failure_type_for_component,
    load_recovery_paths,
    render_recovery_path_map,
    write_recovery_path_map,
)
from chaos_harness.validation.recovery_validator import (
    RecoveryOutcome,
    RecoveryPathValidator,
    RecoveryStage,
    RecoveryVerificationSummary,
)
from chaos_harness.validation.report_writer import ReportWriter
from chaos_harness.validation.ux_impact import (
    UXImpactRecord,
    UXImpactTracker,
    UXSeverity,
    combined_severity,
    failure_severity_to_ux,
)

__all__ = [
    "DEFAULT_RECOVERY_PATHS",
    "FailureType",
    "RecoveryPath",
    "failure_type_for_component",
    "load_recovery_paths",
    "render_recovery_path_map",
    "write_recovery_path_map",
    "RecoveryOutcome",
    "RecoveryPathValidator",
    "RecoveryStage",
    "RecoveryVerificationSummary",
    "ReportWriter",
    "UXImpactRecord",
    "UXImpactTracker",
    "UXSeverity",
    "combined_severity",
    "failure_severity_to_ux",
]
