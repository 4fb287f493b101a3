"""
Configuration management for the chaos harness.

Settings are plain dataclasses with defaults. They can be loaded from a JSON or
YAML file, overridden through ``CHAOS_*`` environment variables and validated
before use.
"""

import json
import logging
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)


DEFAULT_RESOURCE_PROFILES: Dict[str, Dict[str, str]] = {
    "basic": {"memory": "256MB", "cpu": "1 core", "time": "5s"},
    "cascade": {"memory": "1GB", "cpu": "2 cores", "time": "15s"},
    "recovery": {"memory": "2GB", "cpu": "4 cores", "time": "30s"},
}


@dataclass
class CircuitBreakerConfig:
    """Circuit breaker thresholds."""

    failure_threshold: int = 3
    failure_window_seconds: float = 5.0
    reset_timeout_seconds: float = 10.0


@dataclass
class DispatcherConfig:
    """Intent dispatcher defaults."""

    failure_rate: float = 0.0
    default_latency_ms: float = 50.0
    target: str = "intent-dispatch"
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)


@dataclass
class HarnessConfig:
    """Failure injection engine configuration."""

    target_component: str = "unknown"
    max_concurrent_failures: int = 1
    journal: bool = False
    modules: List[str] = field(default_factory=list)
    severity_levels: Dict[str, int] = field(default_factory=dict)
    dependencies: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class TelemetryConfig:
    """Telemetry collector configuration."""

    max_data_points: int = 1000
    sample_interval_seconds: float = 1.0
    anomaly_thresholds: Dict[str, Dict[str, float]] = field(default_factory=dict)


@dataclass
class RecoveryConfig:
    """Recovery path validation parameters."""

    primary_success_probability: float = 0.7
    secondary_success_probability: float = 0.6
    fallback_success_probability: float = 0.8
    grace_period_seconds: float = 5.0
    stage_delay_seconds: float = 3.0
    failure_duration_seconds: float = 10.0
    failure_severity: int = 3


@dataclass
class HarnessSettings:
    """Top-level settings bundle."""

    dispatcher: DispatcherConfig = field(default_factory=DispatcherConfig)
    harness: HarnessConfig = field(default_factory=HarnessConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)
    resource_profiles: Dict[str, Dict[str, str]] = field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_RESOURCE_PROFILES.items()}
    )
    reports_dir: str = "logs/chaos"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HarnessSettings":
        """Build settings from a nested dictionary, ignoring unknown keys."""
        dispatcher_data = dict(data.get("dispatcher", {}))
        breaker_data = dispatcher_data.pop("circuit_breaker", {})

        settings = cls(
            dispatcher=DispatcherConfig(
                circuit_breaker=CircuitBreakerConfig(**_known(CircuitBreakerConfig, breaker_data)),
                **_known(DispatcherConfig, dispatcher_data),
            ),
            harness=HarnessConfig(**_known(HarnessConfig, data.get("harness", {}))),
            telemetry=TelemetryConfig(**_known(TelemetryConfig, data.get("telemetry", {}))),
            recovery=RecoveryConfig(**_known(RecoveryConfig, data.get("recovery", {}))),
        )
        if "resource_profiles" in data:
            settings.resource_profiles.update(data["resource_profiles"])
        if "reports_dir" in data:
            settings.reports_dir = data["reports_dir"]
        return settings

    @classmethod
    def from_file(cls, path: str = "config/chaos.yaml") -> "HarnessSettings":
        """
        Load settings from a JSON or YAML file.
        Falls back to defaults if the file is missing or invalid.

        Args:
            path: Path to configuration file

        Returns:
            HarnessSettings with file values and environment overrides applied
        """
        config_path = Path(path)
        settings = None

        if config_path.exists():
            try:
                with open(config_path, "r") as f:
                    if config_path.suffix == ".json":
                        data = json.load(f)
                    else:
                        data = yaml.safe_load(f) or {}
                settings = cls.from_dict(data)
                logger.info(f"Loaded chaos configuration from {path}")
            except (json.JSONDecodeError, yaml.YAMLError, TypeError, AttributeError) as e:
                logger.error(
                    f"Failed to load configuration from {path}: {e}. Using defaults.",
                    exc_info=True
                )
        else:
            logger.info(f"Configuration file {path} not found. Using defaults.")

        if settings is None:
            settings = cls()
        settings._apply_env_overrides()
        return settings

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides to configuration."""
        overrides = [
            ("CHAOS_FAILURE_RATE", self.dispatcher, "failure_rate", float),
            ("CHAOS_LATENCY_MS", self.dispatcher, "default_latency_ms", float),
            ("CHAOS_MAX_CONCURRENT_FAILURES", self.harness, "max_concurrent_failures", int),
            ("CHAOS_MAX_DATA_POINTS", self.telemetry, "max_data_points", int),
            ("CHAOS_SAMPLE_INTERVAL", self.telemetry, "sample_interval_seconds", float),
            ("CHAOS_BREAKER_RESET_TIMEOUT", self.dispatcher.circuit_breaker, "reset_timeout_seconds", float),
        ]
        for env_name, target, attr, cast in overrides:
            raw = os.getenv(env_name)
            if not raw:
                continue
            try:
                setattr(target, attr, cast(raw))
            except ValueError:
                logger.warning(f"Invalid {env_name} environment variable")

        if os.getenv("CHAOS_REPORTS_DIR"):
            self.reports_dir = os.getenv("CHAOS_REPORTS_DIR")

    def validate(self) -> None:
        """
        Validate configuration parameters.

        Raises:
            ValueError: If parameters are invalid
        """
        errors = []
        breaker = self.dispatcher.circuit_breaker

        if not 0.0 <= self.dispatcher.failure_rate <= 1.0:
            errors.append("dispatcher.failure_rate must be between 0 and 1")
        if self.dispatcher.default_latency_ms < 0:
            errors.append("dispatcher.default_latency_ms must be non-negative")
        if breaker.failure_threshold <= 0:
            errors.append("circuit_breaker.failure_threshold must be positive")
        if breaker.failure_window_seconds <= 0:
            errors.append("circuit_breaker.failure_window_seconds must be positive")
        if breaker.reset_timeout_seconds <= 0:
            errors.append("circuit_breaker.reset_timeout_seconds must be positive")
        if self.harness.max_concurrent_failures <= 0:
            errors.append("harness.max_concurrent_failures must be positive")
        for name, level in self.harness.severity_levels.items():
            if not 1 <= level <= 5:
                errors.append(f"harness.severity_levels[{name}] must be between 1 and 5")
        if self.telemetry.max_data_points <= 0:
            errors.append("telemetry.max_data_points must be positive")
        if self.telemetry.sample_interval_seconds <= 0:
            errors.append("telemetry.sample_interval_seconds must be positive")
        for name in ("primary", "secondary", "fallback"):
            probability = getattr(self.recovery, f"{name}_success_probability")
            if not 0.0 <= probability <= 1.0:
                errors.append(f"recovery.{name}_success_probability must be between 0 and 1")
        if self.recovery.grace_period_seconds < 0 or self.recovery.stage_delay_seconds < 0:
            errors.append("recovery delays must be non-negative")

        if errors:
            error_msg = "; ".join(errors)
            logger.error(f"Invalid chaos configuration: {error_msg}")
            raise ValueError(f"Invalid chaos configuration: {error_msg}")

    def get_resource_profile(self, category: str) -> Dict[str, str]:
        """Get the resource profile for a test category, defaulting to ``basic``."""
        return self.resource_profiles.get(category) or self.resource_profiles["basic"]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _known(cls, data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Filter a mapping down to the fields a dataclass accepts."""
    if not data:
        return {}
    names = set(cls.__dataclass_fields__)
    unknown = set(data) - names
    if unknown:
        logger.warning(f"Ignoring unknown {cls.__name__} keys: {sorted(unknown)}")
    return {k: v for k, v in data.items() if k in names}
