"""
Report persistence for chaos runs.

Every artifact is written as indented JSON into one output directory.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

UX_IMPACT_REPORT = "ux-impact-report.json"
TELEMETRY_REPORT = "telemetry-report.json"
TIMELINE_VISUALIZATION = "timeline-visualization.json"
ANOMALIES = "anomalies.json"
RECOMMENDATIONS = "recommendations.json"
RECOVERY_VERIFICATION = "recovery-verification.json"
SUMMARY_REPORT = "summary-report.json"


class ReportWriter:
    """Writes JSON report artifacts into ``reports_dir``."""

    def __init__(self, reports_dir: str = "logs/chaos"):
        self.reports_dir = Path(reports_dir)

    def write(self, filename: str, data: Any) -> Path:
        """
        Write one report.

        Args:
            filename: File name inside the reports directory
            data: JSON-serializable report

        Returns:
            Path of the written file
        """
        self.reports_dir.mkdir(parents=True, exist_ok=True)
        path = self.reports_dir / filename
        with open(path, "w") as f:
            json.dump(data, f, indent=2, default=str)
        logger.info(f"Report written: {path}")
        return path

    def write_all(self, reports: Dict[str, Any]) -> List[Path]:
        return [self.write(filename, data) for filename, data in reports.items()]

    def read(self, filename: str) -> Any:
        with open(self.reports_dir / filename, "r") as f:
            return json.load(f)

    def list_reports(self) -> List[str]:
        if not self.reports_dir.exists():
            return []
        return sorted(p.name for p in self.reports_dir.glob("*.json"))
