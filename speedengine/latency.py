"""
HTTP round-trip latency measurement.

Protocol flow::

    1. GET /ping  x WARMUP_PINGS   (connection set-up, results discarded)
    2. GET /ping?t=<token>  x ping_count, each timed with perf_counter
    3. Trim outliers, median -> latency, consecutive differences -> jitter

All pings share one keep-alive connection so the handshake cost lands in
the warm-up pings, not in the measurement.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

import aiohttp

from .constants import (
    COMMON_HEADERS,
    DEFAULT_PING_COUNT,
    LOOPBACK_MIN_JITTER_MS,
    LOOPBACK_MIN_LATENCY_MS,
    PING_INTERVAL,
    PING_TIMEOUT,
    WARMUP_PINGS,
)
from .endpoints import Server
from .stats import reduce_latency
from .transfers import REQUEST_ERRORS

if TYPE_CHECKING:
    from .session import TestSession

logger = logging.getLogger(__name__)

DEFAULT_TRIM_FRACTION = 0.1


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------

@dataclass
class LatencyResult:
    """Aggregated latency data for one run."""

    pings: List[float] = field(default_factory=list)
    kept: List[float] = field(default_factory=list)
    latency_ms: float = 0.0
    jitter_ms: float = 0.0
    attempts: int = 0
    failures: int = 0
    fallback: bool = False

    def calculate(self, trim_fraction: float, local: bool = False) -> None:
        """Derive latency and jitter from the collected pings."""
        self.latency_ms, self.jitter_ms, self.kept = reduce_latency(self.pings, trim_fraction)
        self.fallback = not self.pings

        # Sub-millisecond loopback readings would show up as zero.
        if local:
            self.latency_ms = max(self.latency_ms, LOOPBACK_MIN_LATENCY_MS)
            self.jitter_ms = max(self.jitter_ms, LOOPBACK_MIN_JITTER_MS)

    @property
    def packet_loss(self) -> float:
        if self.attempts == 0:
            return 0.0
        return self.failures / self.attempts * 100

    def to_dict(self) -> dict:
        return {
            "pings": [round(p, 3) for p in self.pings],
            "kept": [round(p, 3) for p in self.kept],
            "latency_ms": round(self.latency_ms, 3),
            "jitter_ms": round(self.jitter_ms, 3),
            "attempts": self.attempts,
            "failures": self.failures,
            "fallback": self.fallback,
        }


# ---------------------------------------------------------------------------
# Tester
# ---------------------------------------------------------------------------

class LatencyTester:
    """Time round trips to the server's no-op endpoint."""

    def __init__(
        self,
        ping_count: int = DEFAULT_PING_COUNT,
        warmup_pings: int = WARMUP_PINGS,
        interval: float = PING_INTERVAL,
        timeout: float = PING_TIMEOUT,
    ) -> None:
        self.ping_count = ping_count
        self.warmup_pings = warmup_pings
        self.interval = interval
        self.timeout = timeout

    async def test(self, session: "TestSession") -> LatencyResult:
        result = LatencyResult()
        server = session.server
        trim = (
            session.params.latency_trim_fraction
            if session.params is not None
            else DEFAULT_TRIM_FRACTION
        )
        session.reset_progress()

        connector = aiohttp.TCPConnector(limit=1, force_close=False)
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(
            headers=COMMON_HEADERS,
            connector=connector,
            timeout=timeout,
        ) as http:
            for _ in range(self.warmup_pings):
                if session.aborted:
                    break
                await self._ping_once(session, http)

            for i in range(self.ping_count):
                if session.aborted:
                    break
                result.attempts += 1
                rtt = await self._ping_once(session, http)
                if rtt is None:
                    result.failures += 1
                else:
                    result.pings.append(rtt)

                session.report_progress((i + 1) / self.ping_count * 100, 0.0)
                if self.interval > 0:
                    await asyncio.sleep(self.interval)

        result.calculate(trim, local=server.is_local)
        if result.fallback:
            logger.warning("No ping succeeded; using default latency values")
        logger.info(
            "Latency: %.2f ms, jitter %.2f ms (%d/%d pings)",
            result.latency_ms, result.jitter_ms, len(result.pings), result.attempts,
        )
        session.report_progress(100.0, 0.0, final=True)
        return result

    # -- Internals ----------------------------------------------------------

    async def _ping_once(
        self, session: "TestSession", http: aiohttp.ClientSession
    ) -> Optional[float]:
        """One GET /ping; round trip in ms, or None when it failed."""
        task = await session.transfers.settle(self._ping(http, session.server), name="ping")
        if task.cancelled():
            return None
        return task.result()

    @staticmethod
    async def _ping(http: aiohttp.ClientSession, server: Server) -> Optional[float]:
        t0 = time.perf_counter()
        try:
            async with http.get(server.ping_url()) as resp:
                await resp.read()
                if resp.status != 200:
                    logger.debug("Ping returned HTTP %d", resp.status)
                    return None
        except REQUEST_ERRORS as exc:
            logger.debug("Ping failed: %s", exc)
            return None
        return (time.perf_counter() - t0) * 1000
