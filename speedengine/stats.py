"""
Network measurement statistics.

Pure functions and lightweight dataclasses -- no I/O, no side effects.
Everything here is deterministic and easy to unit-test.
"""
from __future__ import annotations

import statistics
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from .constants import (
    DEFAULT_JITTER_MS,
    DEFAULT_LATENCY_MS,
    MEGABIT,
    MIN_TRIM_SAMPLES,
)
from .tiers import SpeedTier, adapt_parameters, fallback_speed


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass
class ConnectionStats:
    """Per-slot statistics collected by download / upload workers."""

    id: int = 0
    bytes_transferred: int = 0
    duration_ms: float = 0.0
    speed_mbps: float = 0.0
    requests: int = 0
    errors: int = 0

    def calculate(self) -> None:
        self.speed_mbps = to_mbps(self.bytes_transferred, self.duration_ms / 1000)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bytes": self.bytes_transferred,
            "duration_ms": round(self.duration_ms, 2),
            "speed_mbps": round(self.speed_mbps, 2),
            "requests": self.requests,
            "errors": self.errors,
        }


# ---------------------------------------------------------------------------
# Pure helper functions
# ---------------------------------------------------------------------------

def to_mbps(nbytes: float, seconds: float) -> float:
    """Bytes over *seconds* as Mbit/s (1 Mbit = 1024 * 1024 bits)."""
    if seconds <= 0:
        return 0.0
    return (nbytes * 8) / (MEGABIT * seconds)


def calculate_jitter(samples: Sequence[float]) -> float:
    """Mean absolute difference between consecutive samples."""
    if len(samples) < 2:
        return 0.0
    diffs = [abs(samples[i] - samples[i - 1]) for i in range(1, len(samples))]
    return statistics.mean(diffs)


def calculate_percentile(samples: Sequence[float], fraction: float) -> float:
    """
    Nearest-rank percentile: ``sorted[floor(len * fraction)]``.

    *fraction* is in ``[0, 1]``; the index is clamped to the last element so
    ``fraction=1.0`` returns the maximum.
    """
    if not samples:
        return 0.0
    if not 0.0 <= fraction <= 1.0:
        raise ValueError("fraction must be between 0 and 1")

    ordered = sorted(samples)
    idx = min(int(len(ordered) * fraction), len(ordered) - 1)
    return ordered[idx]


def trim_outliers(samples: Sequence[float], fraction: float) -> List[float]:
    """
    Drop the lowest and highest ``max(1, int(n * fraction))`` values.

    The survivors keep their time order so consecutive
    differences still mean something.  Ties are broken by position.
    """
    n = len(samples)
    k = max(1, int(n * fraction))
    if n - 2 * k < 1:
        return list(samples)

    by_value = sorted(range(n), key=lambda i: (samples[i], i))
    keep = sorted(by_value[k:n - k])
    return [samples[i] for i in keep]


def reduce_latency(
    pings: Sequence[float],
    trim_fraction: float,
) -> Tuple[float, float, List[float]]:
    """
    Reduce raw ping round trips to ``(latency_ms, jitter_ms, kept)``.

    With at least ``MIN_TRIM_SAMPLES`` pings the outliers at both ends are
    trimmed, latency is the median of the rest and jitter the mean of their
    consecutive differences.  Fewer pings use a plain mean; no pings at all
    yield the documented defaults.
    """
    if not pings:
        return DEFAULT_LATENCY_MS, DEFAULT_JITTER_MS, []

    if len(pings) < MIN_TRIM_SAMPLES:
        kept = list(pings)
        return statistics.mean(kept), calculate_jitter(kept), kept

    kept = trim_outliers(pings, trim_fraction)
    return statistics.median(kept), calculate_jitter(kept), kept


def _speed_of(sample) -> float:  # noqa: ANN001 (Sample or float)
    return float(getattr(sample, "mbps", sample))


def reduce_samples(samples: Sequence, tier: SpeedTier, direction: str) -> float:
    """
    Reduce a phase's speed samples to the reported figure.

    Picks the tier/direction percentile from ``TestParameters``; an empty
    sequence returns the fallback constant for that tier and direction.
    Accepts ``Sample`` objects or plain floats.
    """
    if not samples:
        return fallback_speed(tier, direction)

    fraction = adapt_parameters(tier).percentile(direction)
    return calculate_percentile([_speed_of(s) for s in samples], fraction)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def format_speed(speed_mbps: float) -> str:
    """Human-readable speed string."""
    if speed_mbps >= 1000:
        return f"{speed_mbps / 1000:.2f} Gbps"
    return f"{speed_mbps:.2f} Mbps"


def format_latency(latency_ms: float) -> str:
    """Human-readable latency string."""
    if latency_ms >= 1000:
        return f"{latency_ms / 1000:.2f} s"
    return f"{latency_ms:.1f} ms"
