"""Tests for the simulated backend services."""

import pytest

from chaos_harness.mocks.services import MockServices


class TestMockServices:

    def test_healthy_baseline(self, services):
        metrics = services.metrics()
        assert metrics["database_connections"] == 100.0
        assert metrics["database_query_latency"] == 20.0
        assert metrics["api_error_rate"] == 0.0
        assert metrics["cache_hit_rate"] == 0.9
        assert metrics["voice_recognition_accuracy"] == 0.95

    def test_degrade_is_proportional_to_severity(self, services):
        assert services.degrade("Database", 3)
        assert services.database.query_latency_ms == 300.0
        assert services.database.connection_count == 40
        assert not services.is_healthy("database")

        services.degrade("api", 5)
        assert services.api.error_rate == 0.5
        assert services.api.request_count == 0

        services.degrade("cache", 5)
        assert services.cache.hit_rate == pytest.approx(0.15)

    def test_unknown_component(self, services):
        assert not services.degrade("network", 3)
        assert not services.restore("network")
        assert services.is_healthy("network")

    def test_restore(self, services):
        services.degrade("voice", 2)
        assert services.restore("voice")
        assert services.voice.healthy
        assert services.voice.recognition_accuracy == 0.95

    def test_restore_all(self):
        services = MockServices()
        for name in ("database", "api", "cache", "voice"):
            services.degrade(name, 4)
        services.restore_all()
        assert all(services.is_healthy(name) for name in ("database", "api", "cache", "voice"))
        assert services.to_dict()["database"]["query_latency_ms"] == 20.0
