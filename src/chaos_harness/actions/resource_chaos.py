"""
Resource Chaos Actions

CPU and memory pressure used by load scenarios:
- CPU load with constant, spike or oscillating patterns
- Memory allocation in 1MB chunks, held then released
"""

import asyncio
import gc
import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import List

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
OSCILLATION_PERIOD_SECONDS = 10.0
SPIKE_INTERVAL_SECONDS = 5.0
SPIKE_LENGTH_SECONDS = 1.0
SLICE_SECONDS = 0.1


class LoadPattern(str, Enum):
    """CPU load pattern"""
    CONSTANT = "constant"
    SPIKE = "spike"
    OSCILLATING = "oscillating"


@dataclass
class CpuConstraint:
    """Target CPU utilization (0-1) held for a duration"""
    target_usage: float
    duration_seconds: float
    pattern: LoadPattern = LoadPattern.CONSTANT

    def __post_init__(self):
        self.pattern = LoadPattern(self.pattern)
        if not 0.0 <= self.target_usage <= 1.0:
            raise ValueError("target_usage must be between 0 and 1")
        if self.duration_seconds < 0:
            raise ValueError("duration_seconds must be non-negative")

    @property
    def severity(self) -> int:
        return max(1, min(5, math.ceil(self.target_usage * 5)))


@dataclass
class MemoryConstraint:
    """Memory to hold, in MB, for a duration"""
    target_usage_mb: float
    duration_seconds: float

    def __post_init__(self):
        if self.target_usage_mb < 0:
            raise ValueError("target_usage_mb must be non-negative")
        if self.duration_seconds < 0:
            raise ValueError("duration_seconds must be non-negative")

    @property
    def severity(self) -> int:
        return max(1, min(5, math.ceil(self.target_usage_mb / 1024 * 5)))


def cpu_intensity(constraint: CpuConstraint, elapsed: float) -> float:
    """Busy fraction for the slice starting ``elapsed`` seconds into the load."""
    if constraint.pattern == LoadPattern.SPIKE:
        in_burst = (elapsed % SPIKE_INTERVAL_SECONDS) < SPIKE_LENGTH_SECONDS
        return constraint.target_usage if in_burst else 0.0
    if constraint.pattern == LoadPattern.OSCILLATING:
        phase = (elapsed % OSCILLATION_PERIOD_SECONDS) / OSCILLATION_PERIOD_SECONDS
        return constraint.target_usage * (0.5 + 0.5 * math.sin(phase * 2 * math.pi))
    return constraint.target_usage


def _burn_cpu(seconds: float) -> None:
    end = time.perf_counter() + seconds
    while time.perf_counter() < end:
        _ = sum(i * i for i in range(1000))


async def apply_cpu_load(constraint: CpuConstraint) -> None:
    """
    Consume CPU for the constraint's duration.

    Each slice burns ``intensity * SLICE_SECONDS`` in a worker thread and idles
    for the remainder, so other coroutines keep running.
    """
    logger.info(
        f"Applying CPU load: target={constraint.target_usage}, "
        f"pattern={constraint.pattern.value}, duration={constraint.duration_seconds}s"
    )
    start = time.monotonic()
    while True:
        elapsed = time.monotonic() - start
        remaining = constraint.duration_seconds - elapsed
        if remaining <= 0:
            break
        slice_seconds = min(SLICE_SECONDS, remaining)
        busy = cpu_intensity(constraint, elapsed) * slice_seconds
        if busy > 0:
            await asyncio.to_thread(_burn_cpu, busy)
        await asyncio.sleep(max(0.0, slice_seconds - busy))
    logger.info("CPU constraint completed")


async def apply_memory_load(constraint: MemoryConstraint) -> int:
    """
    Allocate, hold and release memory.

    Returns:
        Number of 1MB chunks that were allocated
    """
    logger.info(
        f"Applying memory load: target={constraint.target_usage_mb}MB, "
        f"duration={constraint.duration_seconds}s"
    )
    start = time.monotonic()
    chunks: List[bytearray] = []
    target_chunks = int(constraint.target_usage_mb)

    for i in range(target_chunks):
        try:
            chunk = bytearray(CHUNK_SIZE)
            # Touch every page so the allocation is real
            for offset in range(0, CHUNK_SIZE, 4096):
                chunk[offset] = 1
            chunks.append(chunk)
        except MemoryError:
            logger.error(f"Failed to allocate memory after {len(chunks)}MB, holding what was allocated")
            break
        if i % 10 == 0:
            logger.debug(f"Allocated {i + 1} chunks")
            await asyncio.sleep(0)
        if time.monotonic() - start >= constraint.duration_seconds:
            break

    allocated = len(chunks)
    logger.info(f"Allocated {allocated}MB of memory")

    remaining = constraint.duration_seconds - (time.monotonic() - start)
    if remaining > 0:
        await asyncio.sleep(remaining)

    chunks.clear()
    gc.collect()
    logger.info("Memory released")
    return allocated
