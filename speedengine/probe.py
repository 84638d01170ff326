"""
Connection probe.

A couple of short downloads give a rough speed estimate that picks the
tier (and so the parameters) for the real test.  A very slow first probe
ends probing early; otherwise the median of a few larger probes is used.
If nothing gets through, the run carries on with a moderate-speed guess.
"""
from __future__ import annotations

import logging
import statistics
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

import aiohttp

from .constants import (
    DOWNLOAD_HEADERS,
    PROBE_COUNT,
    PROBE_FALLBACK_MBPS,
    PROBE_INITIAL_SIZE,
    PROBE_SIZE,
    PROBE_TIMEOUT,
)
from .stats import to_mbps
from .tiers import TIER_THRESHOLDS
from .transfers import REQUEST_ERRORS

if TYPE_CHECKING:
    from .session import TestSession

logger = logging.getLogger(__name__)

# Below the slow-tier bound, larger probes are not worth the wait.
SLOW_PROBE_CUTOFF = TIER_THRESHOLDS[0][0]


@dataclass
class ProbeResult:
    """Outcome of the probing phase."""

    speed_mbps: float = 0.0
    samples: List[float] = field(default_factory=list)
    attempts: int = 0
    failures: int = 0
    short_circuit: bool = False
    fallback: bool = False

    def to_dict(self) -> dict:
        return {
            "speed_mbps": round(self.speed_mbps, 2),
            "samples": [round(s, 2) for s in self.samples],
            "attempts": self.attempts,
            "failures": self.failures,
            "short_circuit": self.short_circuit,
            "fallback": self.fallback,
        }


class NetworkProbe:
    """Estimate raw throughput with a few fixed-size downloads."""

    def __init__(
        self,
        initial_size: int = PROBE_INITIAL_SIZE,
        probe_size: int = PROBE_SIZE,
        probe_count: int = PROBE_COUNT,
        timeout: float = PROBE_TIMEOUT,
    ) -> None:
        self.initial_size = initial_size
        self.probe_size = probe_size
        self.probe_count = probe_count
        self.timeout = timeout

    async def probe(self, session: "TestSession") -> ProbeResult:
        result = ProbeResult()
        session.reset_progress()
        session.report_progress(0.0, 0.0)

        timeout = aiohttp.ClientTimeout(total=self.timeout, connect=5)
        async with aiohttp.ClientSession(
            headers=DOWNLOAD_HEADERS,
            timeout=timeout,
            auto_decompress=False,
        ) as http:
            first = await self._measure(session, http, self.initial_size, result)
            session.report_progress(50.0, first or 0.0)

            if first is not None and first < SLOW_PROBE_CUTOFF:
                logger.info("Slow link (%.2f Mbps): skipping larger probes", first)
                result.speed_mbps = first
                result.short_circuit = True
                session.report_progress(100.0, first, final=True)
                return result

            larger: List[float] = []
            for _ in range(self.probe_count):
                if session.aborted:
                    break
                speed = await self._measure(session, http, self.probe_size, result)
                if speed is not None:
                    larger.append(speed)

        if larger:
            result.speed_mbps = statistics.median(larger)
        elif first is not None:
            result.speed_mbps = first
        else:
            logger.warning(
                "All probes failed; assuming %.0f Mbps", PROBE_FALLBACK_MBPS
            )
            result.speed_mbps = PROBE_FALLBACK_MBPS
            result.fallback = True

        logger.info("Probe: %.2f Mbps", result.speed_mbps)
        session.report_progress(100.0, result.speed_mbps, final=True)
        return result

    async def _measure(
        self,
        session: "TestSession",
        http: aiohttp.ClientSession,
        size: int,
        result: ProbeResult,
    ) -> Optional[float]:
        """Download *size* bytes once; return Mbps or None on failure."""
        if session.aborted:
            return None
        result.attempts += 1
        t0 = time.perf_counter()

        task = await session.transfers.settle(
            self._fetch(http, session.server.testfile_url(size)),
            name=f"estimate-{result.attempts}",
        )
        if task.cancelled():
            result.failures += 1
            logger.debug("Probe of %d bytes cancelled", size)
            return None
        exc = task.exception()
        if exc is not None:
            if not isinstance(exc, REQUEST_ERRORS):
                raise exc
            result.failures += 1
            logger.warning("Probe of %d bytes failed: %s", size, exc)
            return None

        nbytes = task.result()
        elapsed = time.perf_counter() - t0
        speed = to_mbps(nbytes, elapsed)
        if speed <= 0:
            result.failures += 1
            return None

        logger.debug("Probe %d bytes in %.3fs = %.2f Mbps", nbytes, elapsed, speed)
        result.samples.append(speed)
        return speed

    @staticmethod
    async def _fetch(http: aiohttp.ClientSession, url: str) -> int:
        nbytes = 0
        async with http.get(url) as resp:
            resp.raise_for_status()
            async for chunk in resp.content.iter_any():
                nbytes += len(chunk)
        return nbytes
