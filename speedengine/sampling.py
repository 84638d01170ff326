"""
Instantaneous speed sampling for the throughput drivers.

Workers feed received / sent byte counts into a ``SpeedSampler``; a
sampler coroutine calls ``tick`` every ``SAMPLE_INTERVAL`` seconds to turn
the bytes of the elapsed window into one speed reading.  Readings taken
before the warm-up boundary are shown to the user but never stored.
Uploads instead go through a ``CompletionTimeline`` built from finished
requests.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .constants import EMA_ALPHA, MAX_REASONABLE_SPEED, MIN_SAMPLE_ELAPSED
from .stats import to_mbps


@dataclass(frozen=True)
class Sample:
    """One post-warm-up speed reading."""

    timestamp: float
    mbps: float
    bytes: int = 0

    def to_dict(self) -> dict:
        return {
            "timestamp": round(self.timestamp, 3),
            "mbps": round(self.mbps, 2),
            "bytes": self.bytes,
        }


class SpeedSampler:
    """Window accumulator with warm-up discard and spike filtering."""

    def __init__(
        self,
        start: float,
        warmup: float,
        *,
        max_speed: float = MAX_REASONABLE_SPEED,
        min_window: float = MIN_SAMPLE_ELAPSED,
        alpha: float = EMA_ALPHA,
    ) -> None:
        self.start = start
        self.warmup_end = start + warmup
        self.max_speed = max_speed
        self.min_window = min_window
        self.alpha = alpha

        self.total_bytes = 0
        self.samples: List[Sample] = []
        self.smoothed = 0.0
        self.rejected = 0

        self._window_bytes = 0
        self._window_start = start

    def add_bytes(self, nbytes: int) -> None:
        self.total_bytes += nbytes
        self._window_bytes += nbytes

    def tick(self, now: float) -> Optional[float]:
        """Close the current window at *now* and return its speed, if valid."""
        elapsed = now - self._window_start
        if elapsed < self.min_window:
            return None

        nbytes = self._window_bytes
        self._window_bytes = 0
        self._window_start = now
        return self.observe(now, to_mbps(nbytes, elapsed), nbytes)

    def observe(self, now: float, mbps: float, nbytes: int = 0) -> Optional[float]:
        """Record a speed reading taken at *now*."""
        if not 0.0 < mbps < self.max_speed:
            self.rejected += 1
            return None

        self.smooth(mbps)
        if now >= self.warmup_end:
            self.samples.append(Sample(timestamp=now, mbps=mbps, bytes=nbytes))
        return mbps

    def smooth(self, mbps: float) -> float:
        """Fold *mbps* into the display speed without storing a sample."""
        self.smoothed = (
            mbps if self.smoothed == 0.0
            else self.alpha * mbps + (1 - self.alpha) * self.smoothed
        )
        return self.smoothed

    @property
    def warmed_up(self) -> bool:
        return bool(self.samples)


class CompletionTimeline:
    """
    Acknowledged transfers, each spread evenly over its own span.

    Bytes handed to a socket are not bytes delivered: the kernel buffers
    swallow a whole upload payload at once.  So only finished requests
    are recorded here, and window speeds are derived from them afterwards,
    summed over every concurrent request.  A window is only valid up to
    the point every slot has reported in (``covered_until``).
    """

    def __init__(self) -> None:
        self.spans: List[Tuple[float, float, int]] = []
        self._slot_end: Dict[int, float] = {}

    def add(self, slot: int, start: float, end: float, nbytes: int) -> None:
        if end > start and nbytes > 0:
            self.spans.append((start, end, nbytes))
        self._slot_end[slot] = max(end, self._slot_end.get(slot, end))

    @property
    def total_bytes(self) -> int:
        return sum(n for _, _, n in self.spans)

    def covered_until(self, slots: int) -> Optional[float]:
        """Latest time up to which every one of *slots* has finished."""
        if slots <= 0 or any(i not in self._slot_end for i in range(slots)):
            return None
        return min(self._slot_end[i] for i in range(slots))

    def bytes_between(self, t0: float, t1: float) -> float:
        total = 0.0
        for start, end, nbytes in self.spans:
            overlap = min(end, t1) - max(start, t0)
            if overlap > 0:
                total += nbytes * overlap / (end - start)
        return total

    def speed_between(self, t0: float, t1: float) -> float:
        if t1 - t0 < MIN_SAMPLE_ELAPSED:
            return 0.0
        return to_mbps(self.bytes_between(t0, t1), t1 - t0)

    def windows(
        self,
        start: float,
        end: float,
        interval: float,
        *,
        max_speed: float = MAX_REASONABLE_SPEED,
    ) -> List[Sample]:
        """Fixed-length windows from *start* up to *end*, as samples."""
        samples: List[Sample] = []
        if interval <= 0 or end <= start:
            return samples
        for i in range(int((end - start) / interval + 1e-9)):
            t0 = start + i * interval
            nbytes = self.bytes_between(t0, t0 + interval)
            mbps = to_mbps(nbytes, interval)
            if 0.0 < mbps < max_speed:
                samples.append(Sample(timestamp=t0 + interval, mbps=mbps, bytes=int(nbytes)))
        return samples
