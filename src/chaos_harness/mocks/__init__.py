"""Simulated backend services degraded by chaos injections."""

from chaos_harness.mocks.services import (
    ApiService,
    CacheService,
    DatabaseService,
    MockServices,
    VoiceService,
)

__all__ = [
    "ApiService",
    "CacheService",
    "DatabaseService",
    "MockServices",
    "VoiceService",
]
