"""
Simulated backend services

Each service carries a health flag and a handful of metrics. ``degrade`` moves
the metrics toward an unhealthy value proportional to a 1-5 severity and
``restore`` puts the healthy baseline back. The bundle doubles as a telemetry
metric source.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Dict

logger = logging.getLogger(__name__)


@dataclass
class DatabaseService:
    healthy: bool = True
    connection_count: int = 100
    query_latency_ms: float = 20.0

    def degrade(self, severity: int) -> None:
        self.healthy = False
        self.query_latency_ms = 100.0 * severity
        self.connection_count = max(0, 100 - 20 * severity)


@dataclass
class ApiService:
    healthy: bool = True
    request_count: int = 1000
    error_rate: float = 0.0

    def degrade(self, severity: int) -> None:
        self.healthy = False
        self.error_rate = min(1.0, 0.1 * severity)
        self.request_count = max(0, 1000 - 200 * severity)


@dataclass
class CacheService:
    healthy: bool = True
    hit_rate: float = 0.9

    def degrade(self, severity: int) -> None:
        self.healthy = False
        self.hit_rate = max(0.0, 0.9 - 0.15 * severity)


@dataclass
class VoiceService:
    healthy: bool = True
    recognition_accuracy: float = 0.95

    def degrade(self, severity: int) -> None:
        self.healthy = False
        self.recognition_accuracy = max(0.0, 0.95 - 0.15 * severity)


_SERVICE_TYPES = {
    "database": DatabaseService,
    "api": ApiService,
    "cache": CacheService,
    "voice": VoiceService,
}


class MockServices:
    """Bundle of simulated services keyed by component name."""

    def __init__(self):
        self.services = {name: factory() for name, factory in _SERVICE_TYPES.items()}

    @property
    def database(self) -> DatabaseService:
        return self.services["database"]

    @property
    def api(self) -> ApiService:
        return self.services["api"]

    @property
    def cache(self) -> CacheService:
        return self.services["cache"]

    @property
    def voice(self) -> VoiceService:
        return self.services["voice"]

    def degrade(self, component: str, severity: int) -> bool:
        """
        Degrade a service in proportion to severity.

        Returns:
            True if the component names a simulated service
        """
        service = self.services.get(component.lower())
        if service is None:
            logger.debug(f"No simulated service for component {component}")
            return False
        service.degrade(severity)
        logger.info(f"Degraded {component} at severity {severity}")
        return True

    def restore(self, component: str) -> bool:
        name = component.lower()
        if name not in self.services:
            return False
        self.services[name] = _SERVICE_TYPES[name]()
        logger.info(f"Restored {component}")
        return True

    def restore_all(self) -> None:
        for name in list(self.services):
            self.restore(name)

    def is_healthy(self, component: str) -> bool:
        service = self.services.get(component.lower())
        return service.healthy if service is not None else True

    def metrics(self) -> Dict[str, float]:
        """Flat metric map in the shape the telemetry collector samples."""
        return {
            "database_connections": float(self.database.connection_count),
            "database_query_latency": self.database.query_latency_ms,
            "api_request_count": float(self.api.request_count),
            "api_error_rate": self.api.error_rate,
            "cache_hit_rate": self.cache.hit_rate,
            "voice_recognition_accuracy": self.voice.recognition_accuracy,
        }

    def to_dict(self) -> Dict[str, Dict]:
        return {name: asdict(service) for name, service in self.services.items()}
