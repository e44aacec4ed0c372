"""Resource planning: container memory cap and PostgreSQL memory settings.

All sizes derive from the host's total memory with the ratios below. The
fixed baselines are tuned for a 16 GiB / 4 core reference host (an AWS
m7g.xlarge) and only ever scale down from there.
"""
from __future__ import annotations

from .models import HostProfile, ResourcePlan


KB = 1024
MB = 1024 * KB
GB = 1024 * MB

CONTAINER_MEMORY_PERCENT = 75

BUFFER_CACHE_RATIO_MIN = 0.125
BUFFER_CACHE_RATIO_MAX = 0.25
DEFAULT_BUFFER_CACHE_RATIO = BUFFER_CACHE_RATIO_MIN
EFFECTIVE_CACHE_RATIO = 0.375

REFERENCE_MEMORY_BYTES = 16 * GB
BASE_WORK_MEM_BYTES = 32 * MB
BASE_MAINTENANCE_WORK_MEM_BYTES = 512 * MB
BASE_MAX_CONNECTIONS = 100

# PostgreSQL's own lower bounds (shared_buffers 128kB, work_mem 64kB, maintenance_work_mem 1MB).
MIN_BUFFER_CACHE_BYTES = 128 * KB
MIN_EFFECTIVE_CACHE_BYTES = 128 * KB
MIN_WORK_MEM_BYTES = 64 * KB
MIN_MAINTENANCE_WORK_MEM_BYTES = 1 * MB
MIN_MAX_CONNECTIONS = 10

# Ratios are applied as integer fractions of 1/_SCALE so huge hosts never go through floats.
_SCALE = 10_000


def _fraction(total: int, ratio: float) -> int:
    return total * int(round(ratio * _SCALE)) // _SCALE


def _scaled(base: int, total: int) -> int:
    """base * min(1, total / reference)."""
    if total >= REFERENCE_MEMORY_BYTES:
        return base
    return base * total // REFERENCE_MEMORY_BYTES


def clamp_buffer_cache_ratio(ratio: float) -> float:
    return max(BUFFER_CACHE_RATIO_MIN, min(BUFFER_CACHE_RATIO_MAX, float(ratio)))


def plan(profile: HostProfile, buffer_cache_ratio: float = DEFAULT_BUFFER_CACHE_RATIO) -> ResourcePlan:
    total = max(0, int(profile.total_memory_bytes))
    ratio = clamp_buffer_cache_ratio(buffer_cache_ratio)

    if total > 0:
        container_limit = max(1, total * CONTAINER_MEMORY_PERCENT // 100)
    else:
        container_limit = 0

    return ResourcePlan(
        container_memory_limit_bytes=container_limit,
        buffer_cache_bytes=max(MIN_BUFFER_CACHE_BYTES, _fraction(total, ratio)),
        effective_cache_bytes=max(MIN_EFFECTIVE_CACHE_BYTES, _fraction(total, EFFECTIVE_CACHE_RATIO)),
        work_mem_bytes=max(MIN_WORK_MEM_BYTES, _scaled(BASE_WORK_MEM_BYTES, total)),
        maintenance_work_mem_bytes=max(
            MIN_MAINTENANCE_WORK_MEM_BYTES, _scaled(BASE_MAINTENANCE_WORK_MEM_BYTES, total)
        ),
        max_connections=max(MIN_MAX_CONNECTIONS, _scaled(BASE_MAX_CONNECTIONS, total)),
    )


def pg_size(n_bytes: int) -> str:
    """Render a byte count as a PostgreSQL memory setting (GB, MB or kB)."""
    n = max(0, int(n_bytes))
    if n >= GB and n % GB == 0:
        return f"{n // GB}GB"
    if n >= MB:
        return f"{n // MB}MB"
    return f"{max(1, n // KB)}kB"
