"""
Network and Disk Chaos Actions

Network and disk constraints are time-delay placeholders; what matters to the
harness is their duration and the severity derived from their parameters.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

# (break point, severity), checked in order; first match wins
BANDWIDTH_SEVERITY: Sequence[Tuple[float, int]] = ((50, 5), (100, 4), (200, 3), (500, 2))
NETWORK_LATENCY_SEVERITY: Sequence[Tuple[float, int]] = ((1000, 5), (500, 4), (200, 3), (100, 2))
PACKET_LOSS_SEVERITY: Sequence[Tuple[float, int]] = ((0.2, 5), (0.1, 4), (0.05, 3), (0.01, 2))
DISK_LATENCY_SEVERITY: Sequence[Tuple[float, int]] = ((500, 5), (200, 4), (100, 3), (50, 2))
DISK_ERROR_RATE_SEVERITY: Sequence[Tuple[float, int]] = ((0.2, 5), (0.1, 4), (0.05, 3), (0.01, 2))


@dataclass
class NetworkConstraint:
    """Degraded network link; bandwidth in KB/s"""
    duration_seconds: float
    bandwidth_kbps: Optional[float] = None
    latency_ms: Optional[float] = None
    packet_loss: Optional[float] = None

    @property
    def severity(self) -> int:
        return network_severity(self)


@dataclass
class DiskConstraint:
    """Slow or failing disk"""
    duration_seconds: float
    latency_ms: Optional[float] = None
    error_rate: Optional[float] = None

    @property
    def severity(self) -> int:
        return disk_severity(self)


def _above(value: Optional[float], table: Sequence[Tuple[float, int]]) -> int:
    if not value:
        return 1
    for limit, severity in table:
        if value > limit:
            return severity
    return 1


def _below(value: Optional[float], table: Sequence[Tuple[float, int]]) -> int:
    if not value:
        return 1
    for limit, severity in table:
        if value < limit:
            return severity
    return 1


def network_severity(constraint: NetworkConstraint) -> int:
    """Worst severity across bandwidth, latency and packet loss (1-5)."""
    return max(
        _below(constraint.bandwidth_kbps, BANDWIDTH_SEVERITY),
        _above(constraint.latency_ms, NETWORK_LATENCY_SEVERITY),
        _above(constraint.packet_loss, PACKET_LOSS_SEVERITY),
    )


def disk_severity(constraint: DiskConstraint) -> int:
    """Worst severity across latency and error rate (1-5)."""
    return max(
        _above(constraint.latency_ms, DISK_LATENCY_SEVERITY),
        _above(constraint.error_rate, DISK_ERROR_RATE_SEVERITY),
    )


async def apply_network_constraint(constraint: NetworkConstraint) -> None:
    logger.info(
        f"Applying network constraint: bandwidth={constraint.bandwidth_kbps}KB/s, "
        f"latency={constraint.latency_ms}ms, packet_loss={constraint.packet_loss}, "
        f"duration={constraint.duration_seconds}s"
    )
    await asyncio.sleep(constraint.duration_seconds)
    logger.info("Network constraint completed")


async def apply_disk_constraint(constraint: DiskConstraint) -> None:
    logger.info(
        f"Applying disk constraint: latency={constraint.latency_ms}ms, "
        f"error_rate={constraint.error_rate}, duration={constraint.duration_seconds}s"
    )
    await asyncio.sleep(constraint.duration_seconds)
    logger.info("Disk constraint completed")
