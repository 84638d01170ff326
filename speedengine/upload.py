"""
Upload speed test module.

The payload is generated once, before the clock starts, then
``upload_concurrency`` slots keep POSTing it to ``/upload``.  Bytes only
count once the server has acknowledged a request: each finished request
is spread over the time the server spent receiving it, and the window
samples are cut from the sum over all slots.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

import aiohttp

from .constants import UPLOAD_HEADERS
from .driver import REQUEST_ERRORS, ThroughputDriver, ThroughputResult, _Phase
from .randomdata import random_bytes
from .sampling import Sample
from .stats import ConnectionStats, to_mbps
from .tiers import SpeedTier, TestParameters

logger = logging.getLogger(__name__)

# Seconds of acknowledged traffic behind the live display speed.
DISPLAY_WINDOW = 1.0


@dataclass
class UploadResult(ThroughputResult):
    """Upload test result."""

    request_speeds: List[float] = field(default_factory=list)
    acknowledged_mbps: Optional[float] = None

    def finalize(self, tier: SpeedTier) -> None:
        # The whole acknowledged span stands in when no window fell after warm-up.
        if not self.samples and self.acknowledged_mbps and not self.simulated:
            self.tier = tier.value
            self.speed_mbps = self.acknowledged_mbps
            self.fallback = False
            return
        super().finalize(tier)

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["request_speeds"] = [round(s, 2) for s in self.request_speeds]
        return result


def request_seconds(client_elapsed: float, server_duration: Optional[float]) -> float:
    """
    Pick the duration used for one request's speed.

    The server's own reading is preferred only when it is positive and
    shorter than what the client measured; anything else could inflate
    the result, so client wall-clock time wins.
    """
    if (
        isinstance(server_duration, (int, float))
        and not isinstance(server_duration, bool)
        and 0 < server_duration < client_elapsed
    ):
        return float(server_duration)
    return client_elapsed


def acknowledged_bytes(sent: int, reported: object) -> int:
    """Bytes the server says it received, bounded by what was sent."""
    if isinstance(reported, int) and not isinstance(reported, bool) and 0 <= reported <= sent:
        return reported
    return sent


class UploadTester(ThroughputDriver):
    """Parallel POST upload tester."""

    direction = "upload"
    result_class = UploadResult

    def __init__(self, *args, **kwargs) -> None:  # noqa: ANN002, ANN003
        super().__init__(*args, **kwargs)
        self._payload = b""

    def concurrency(self, params: TestParameters) -> int:
        return params.upload_concurrency

    def prepare(self, params: TestParameters) -> None:
        if len(self._payload) != params.upload_payload_size:
            self._payload = random_bytes(params.upload_payload_size)

    def open_http(self, connections: int) -> aiohttp.ClientSession:
        connector = aiohttp.TCPConnector(
            limit=connections,
            limit_per_host=connections,
            force_close=False,
        )
        timeout = aiohttp.ClientTimeout(total=None, connect=5, sock_read=30)
        return aiohttp.ClientSession(
            headers=UPLOAD_HEADERS,
            connector=connector,
            timeout=timeout,
        )

    async def transfer(self, phase: _Phase, slot: int, stats: ConnectionStats) -> None:
        t0 = time.perf_counter()
        try:
            async with phase.http.post(
                phase.session.server.upload_url(),
                data=self._payload,
            ) as resp:
                resp.raise_for_status()
                try:
                    info = await resp.json(content_type=None)
                except ValueError:
                    info = None
        except REQUEST_ERRORS:
            # Nothing acknowledged, but the slot has accounted for this time.
            phase.timeline.add(slot, t0, time.perf_counter(), 0)
            raise

        t_end = time.perf_counter()
        elapsed = t_end - t0
        if not isinstance(info, dict):
            info = {}
        seconds = request_seconds(elapsed, info.get("duration"))
        nbytes = acknowledged_bytes(len(self._payload), info.get("size"))

        phase.timeline.add(slot, t_end - seconds, t_end, nbytes)
        phase.sampler.add_bytes(nbytes)
        stats.bytes_transferred += nbytes

        speed = to_mbps(nbytes, seconds)
        logger.debug(
            "upload %d: %d bytes in %.3fs (server %s) = %.2f Mbps",
            slot, nbytes, elapsed, info.get("duration"), speed,
        )
        if speed > 0:
            phase.result.request_speeds.append(speed)

    def sample(self, phase: _Phase, now: float) -> None:
        # Display only: the last second every slot has reported on.
        covered = phase.timeline.covered_until(self.concurrency(phase.params))
        if covered is None:
            return
        t0 = max(phase.sampler.start, covered - DISPLAY_WINDOW)
        mbps = phase.timeline.speed_between(t0, covered)
        if 0.0 < mbps < phase.sampler.max_speed:
            phase.sampler.smooth(mbps)

    def collect_samples(self, phase: _Phase, connections: int) -> List[Sample]:
        timeline = phase.timeline
        covered = timeline.covered_until(connections)
        if covered is None:
            logger.debug("Not every upload slot finished a request")
            return []

        start = phase.sampler.start
        if covered > start:
            phase.result.acknowledged_mbps = timeline.speed_between(start, covered) or None
        return timeline.windows(
            phase.sampler.warmup_end,
            covered,
            self.sample_interval,
            max_speed=phase.sampler.max_speed,
        )
