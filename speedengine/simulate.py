"""
Synthetic throughput for loopback targets.

When client and server share a machine, a "very fast" or "ultra fast"
link only measures memcpy speed.  For those tiers the drivers hand the
phase to ``SimulatedThroughput``, which produces plausible readings from a
random-walk model and feeds them through the same sampler, warm-up
discard, progress reporting and reducer as the network path.
"""
from __future__ import annotations

import asyncio
import math
import random
from typing import TYPE_CHECKING, Dict, Optional, Tuple

from .constants import MEGABIT, SAMPLE_INTERVAL
from .sampling import SpeedSampler
from .tiers import SpeedTier

if TYPE_CHECKING:
    from .driver import ThroughputResult
    from .session import TestSession

SIMULATED_TIERS = frozenset({SpeedTier.VERY_FAST, SpeedTier.ULTRA_FAST})

# Download target range per tier, in Mbps.
_TARGETS: Dict[SpeedTier, Tuple[float, float]] = {
    SpeedTier.VERY_FAST: (300.0, 700.0),
    SpeedTier.ULTRA_FAST: (800.0, 1500.0),
}
UPLOAD_SHARE = 0.6


class RandomWalkModel:
    """
    Speed over time: ramp-up curve, bounded random walk, slow drift.

    ``speed_at`` must be called with non-decreasing times; each call
    advances the walk by one step.
    """

    def __init__(
        self,
        target_mbps: float,
        rng: random.Random,
        *,
        ramp_tau: float = 1.0,
        walk_step: float = 0.02,
        walk_bound: float = 0.08,
        drift_amplitude: float = 0.05,
        drift_period: float = 6.0,
    ) -> None:
        self.target_mbps = target_mbps
        self.rng = rng
        self.ramp_tau = ramp_tau
        self.walk_step = walk_step
        self.walk_bound = walk_bound
        self.drift_amplitude = drift_amplitude
        self.drift_period = drift_period
        self._walk = 0.0

    def speed_at(self, t: float) -> float:
        ramp = 1.0 - math.exp(-t / self.ramp_tau)
        self._walk += self.rng.gauss(0.0, self.walk_step)
        self._walk = max(-self.walk_bound, min(self.walk_bound, self._walk))
        drift = self.drift_amplitude * math.sin(2 * math.pi * t / self.drift_period)
        return max(0.1, self.target_mbps * ramp * (1.0 + self._walk + drift))


class SimulatedThroughput:
    """Drop-in replacement for a network throughput phase."""

    def __init__(
        self,
        tier: SpeedTier,
        direction: str,
        *,
        duration_seconds: float,
        warmup_seconds: float,
        interval: float = SAMPLE_INTERVAL,
        rng: Optional[random.Random] = None,
        realtime: bool = True,
    ) -> None:
        if tier not in _TARGETS:
            raise ValueError(f"No simulation model for tier {tier.value}")
        self.tier = tier
        self.direction = direction
        self.duration_seconds = duration_seconds
        self.warmup_seconds = warmup_seconds
        self.interval = interval
        self.rng = rng or random.Random()
        self.realtime = realtime

        low, high = _TARGETS[tier]
        target = self.rng.uniform(low, high)
        if direction == "upload":
            target *= UPLOAD_SHARE
        self.model = RandomWalkModel(target, self.rng)

    async def run(self, session: "TestSession", result: "ThroughputResult") -> "ThroughputResult":
        # Simulated time starts at zero; the sampler never sees a wall clock.
        sampler = SpeedSampler(0.0, self.warmup_seconds)
        t = 0.0

        while t < self.duration_seconds and not session.aborted:
            t += self.interval
            mbps = self.model.speed_at(t)
            nbytes = int(mbps * MEGABIT / 8 * self.interval)
            sampler.total_bytes += nbytes
            sampler.observe(t, mbps, nbytes)
            session.report_progress(t / self.duration_seconds * 100, sampler.smoothed)
            await asyncio.sleep(self.interval if self.realtime else 0)

        result.simulated = True
        result.samples = list(sampler.samples)
        result.bytes_total = sampler.total_bytes
        result.duration_ms = t * 1000
        return result
