"""
Connection speed tiers and the test parameters derived from them.

One table, one place: the probe result picks a ``SpeedTier`` and every
later phase reads its sizes, concurrency and reducer percentiles from the
``TestParameters`` for that tier.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import asdict, dataclass
from typing import Dict, List, Tuple

from .constants import KB, MB

logger = logging.getLogger(__name__)


class SpeedTier(enum.Enum):
    """Coarse connection speed classes, slowest first."""

    SLOW = "slow"
    MODERATE = "moderate"
    FAST = "fast"
    VERY_FAST = "very-fast"
    ULTRA_FAST = "ultra-fast"

    @property
    def rank(self) -> int:
        return _ORDER.index(self)

    def __lt__(self, other: SpeedTier) -> bool:
        if not isinstance(other, SpeedTier):
            return NotImplemented
        return self.rank < other.rank


_ORDER: List[SpeedTier] = list(SpeedTier)

# Upper bounds (exclusive), in Mbps. Anything at or above the last bound is
# ULTRA_FAST.
TIER_THRESHOLDS: List[Tuple[float, SpeedTier]] = [
    (10.0, SpeedTier.SLOW),
    (50.0, SpeedTier.MODERATE),
    (200.0, SpeedTier.FAST),
    (750.0, SpeedTier.VERY_FAST),
]


def classify_speed(mbps: float) -> SpeedTier:
    """Map a probed speed in Mbps to its tier."""
    for bound, tier in TIER_THRESHOLDS:
        if mbps < bound:
            return tier
    return SpeedTier.ULTRA_FAST


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TestParameters:
    """Concrete knobs for one test run."""

    __test__ = False  # not a pytest test class

    download_payload_size: int
    upload_payload_size: int
    download_concurrency: int
    upload_concurrency: int
    buffer_size: int
    download_percentile: float
    upload_percentile: float
    latency_trim_fraction: float

    def percentile(self, direction: str) -> float:
        if direction == "download":
            return self.download_percentile
        if direction == "upload":
            return self.upload_percentile
        raise ValueError(f"Unknown direction: {direction!r}")

    def to_dict(self) -> dict:
        return asdict(self)


_PARAMETERS: Dict[SpeedTier, TestParameters] = {
    SpeedTier.SLOW: TestParameters(
        download_payload_size=10 * MB,
        upload_payload_size=1 * MB,
        download_concurrency=2,
        upload_concurrency=1,
        buffer_size=64 * KB,
        download_percentile=0.50,
        upload_percentile=0.50,
        latency_trim_fraction=0.10,
    ),
    SpeedTier.MODERATE: TestParameters(
        download_payload_size=25 * MB,
        upload_payload_size=2 * MB,
        download_concurrency=3,
        upload_concurrency=2,
        buffer_size=128 * KB,
        download_percentile=0.60,
        upload_percentile=0.50,
        latency_trim_fraction=0.10,
    ),
    SpeedTier.FAST: TestParameters(
        download_payload_size=50 * MB,
        upload_payload_size=4 * MB,
        download_concurrency=4,
        upload_concurrency=3,
        buffer_size=256 * KB,
        download_percentile=0.75,
        upload_percentile=0.70,
        latency_trim_fraction=0.15,
    ),
    SpeedTier.VERY_FAST: TestParameters(
        download_payload_size=100 * MB,
        upload_payload_size=8 * MB,
        download_concurrency=6,
        upload_concurrency=4,
        buffer_size=512 * KB,
        download_percentile=0.85,
        upload_percentile=0.80,
        latency_trim_fraction=0.20,
    ),
    SpeedTier.ULTRA_FAST: TestParameters(
        download_payload_size=200 * MB,
        upload_payload_size=16 * MB,
        download_concurrency=8,
        upload_concurrency=6,
        buffer_size=1 * MB,
        download_percentile=0.90,
        upload_percentile=0.85,
        latency_trim_fraction=0.20,
    ),
}


def adapt_parameters(tier: SpeedTier) -> TestParameters:
    """Return the test parameters for *tier*."""
    params = _PARAMETERS[tier]
    logger.debug("Parameters for tier %s: %s", tier.value, params)
    return params


# ---------------------------------------------------------------------------
# Fallbacks
# ---------------------------------------------------------------------------

# Reported when a phase produces no usable sample at all.
FALLBACK_SPEEDS: Dict[str, Dict[SpeedTier, float]] = {
    "download": {
        SpeedTier.SLOW: 5.0,
        SpeedTier.MODERATE: 25.0,
        SpeedTier.FAST: 100.0,
        SpeedTier.VERY_FAST: 400.0,
        SpeedTier.ULTRA_FAST: 1000.0,
    },
    "upload": {
        SpeedTier.SLOW: 2.0,
        SpeedTier.MODERATE: 10.0,
        SpeedTier.FAST: 50.0,
        SpeedTier.VERY_FAST: 200.0,
        SpeedTier.ULTRA_FAST: 500.0,
    },
}


def fallback_speed(tier: SpeedTier, direction: str) -> float:
    try:
        return FALLBACK_SPEEDS[direction][tier]
    except KeyError:
        raise ValueError(f"Unknown direction: {direction!r}") from None
