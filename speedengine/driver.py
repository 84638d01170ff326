"""
Shared machinery for the download and upload throughput drivers.

Both directions run the same phase: ``concurrency`` slots each keep one
request in flight, a sampler coroutine turns transferred bytes into a
speed reading every ``SAMPLE_INTERVAL`` seconds, readings before the
warm-up boundary are thrown away, and when the test window closes every
remaining request is cancelled rather than awaited.  Subclasses say how
one request moves bytes, and may replace how readings are taken when
bytes in flight are not yet bytes delivered (uploads).
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

import aiohttp

from .constants import (
    DEFAULT_DURATION,
    DEFAULT_WARMUP,
    GRACE_SECONDS,
    RETRY_BACKOFF,
    SAMPLE_INTERVAL,
)
from .sampling import CompletionTimeline, Sample, SpeedSampler
from .simulate import SIMULATED_TIERS, SimulatedThroughput
from .stats import ConnectionStats, reduce_samples
from .tiers import SpeedTier, TestParameters, fallback_speed
from .transfers import REQUEST_ERRORS

if TYPE_CHECKING:
    from .session import TestSession

logger = logging.getLogger(__name__)

# Anything else escaping the phase still ends in a fallback figure.
PHASE_ERRORS = REQUEST_ERRORS + (RuntimeError, ValueError)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass
class ThroughputResult:
    """Outcome of one download or upload phase."""

    direction: str = ""
    tier: str = ""
    speed_mbps: float = 0.0
    bytes_total: int = 0
    duration_ms: float = 0.0
    connections: List[ConnectionStats] = field(default_factory=list)
    samples: List[Sample] = field(default_factory=list)
    fallback: bool = False
    simulated: bool = False
    aborted: bool = False
    error: Optional[str] = None

    def finalize(self, tier: SpeedTier) -> None:
        """Reduce the collected samples to the reported speed."""
        self.tier = tier.value
        if self.samples:
            self.speed_mbps = reduce_samples(self.samples, tier, self.direction)
            self.fallback = False
        else:
            self.speed_mbps = fallback_speed(tier, self.direction)
            self.fallback = True

    def to_dict(self) -> dict:
        result = {
            "direction": self.direction,
            "tier": self.tier,
            "speed_mbps": round(self.speed_mbps, 2),
            "bytes_total": self.bytes_total,
            "duration_ms": round(self.duration_ms, 2),
            "connections": [c.to_dict() for c in self.connections],
            "samples": [round(s.mbps, 2) for s in self.samples],
            "fallback": self.fallback,
            "simulated": self.simulated,
        }
        if self.aborted:
            result["aborted"] = True
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class _Phase:
    """Everything a single request needs while a phase is running."""

    session: "TestSession"
    params: TestParameters
    http: aiohttp.ClientSession
    sampler: SpeedSampler
    result: ThroughputResult
    stop: asyncio.Event
    end_time: float
    timeline: CompletionTimeline = field(default_factory=CompletionTimeline)


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------

class ThroughputDriver:
    """Base class for the timed, concurrent transfer phases."""

    direction = ""
    result_class = ThroughputResult

    def __init__(
        self,
        duration_seconds: float = DEFAULT_DURATION,
        warmup_seconds: float = DEFAULT_WARMUP,
        grace_seconds: float = GRACE_SECONDS,
        sample_interval: float = SAMPLE_INTERVAL,
    ) -> None:
        if warmup_seconds >= duration_seconds:
            raise ValueError("warm-up must be shorter than the test duration")
        self.duration_seconds = duration_seconds
        self.warmup_seconds = warmup_seconds
        self.grace_seconds = grace_seconds
        self.sample_interval = sample_interval

    # -- Subclass hooks -----------------------------------------------------

    def concurrency(self, params: TestParameters) -> int:
        raise NotImplementedError

    def prepare(self, params: TestParameters) -> None:
        """Work done before the clock starts (e.g. payload generation)."""

    def open_http(self, connections: int) -> aiohttp.ClientSession:
        raise NotImplementedError

    async def transfer(self, phase: _Phase, slot: int, stats: ConnectionStats) -> None:
        """Run one request to completion, feeding bytes into the sampler."""
        raise NotImplementedError

    def sample(self, phase: _Phase, now: float) -> None:
        """Take one speed reading for the ticker."""
        phase.sampler.tick(now)

    def collect_samples(self, phase: _Phase, connections: int) -> List[Sample]:
        """The post-warm-up samples the phase result is reduced from."""
        return list(phase.sampler.samples)

    # -- Public -------------------------------------------------------------

    async def test(self, session: "TestSession") -> ThroughputResult:
        tier, params = session.require_parameters()
        result = self.result_class(direction=self.direction)
        session.reset_progress()

        if session.server.is_local and tier in SIMULATED_TIERS:
            logger.info(
                "Loopback target at tier %s: simulating %s throughput",
                tier.value, self.direction,
            )
            sim = SimulatedThroughput(
                tier,
                self.direction,
                duration_seconds=self.duration_seconds,
                warmup_seconds=self.warmup_seconds,
                interval=self.sample_interval,
                rng=session.rng,
                realtime=session.realtime,
            )
            await sim.run(session, result)
        else:
            try:
                self.prepare(params)
                await self._run(session, params, result)
            except PHASE_ERRORS as exc:
                logger.warning("%s phase failed: %s", self.direction.capitalize(), exc)
                result.error = str(exc) or type(exc).__name__

        result.aborted = session.aborted
        result.finalize(tier)
        logger.info(
            "%s: %.2f Mbps from %d samples%s",
            self.direction.capitalize(),
            result.speed_mbps,
            len(result.samples),
            " (fallback)" if result.fallback else "",
        )
        session.report_progress(100.0, result.speed_mbps, final=True)
        return result

    # -- Internals ----------------------------------------------------------

    async def _run(
        self,
        session: "TestSession",
        params: TestParameters,
        result: ThroughputResult,
    ) -> None:
        connections = self.concurrency(params)
        start_time = time.perf_counter()
        end_time = start_time + self.duration_seconds
        sampler = SpeedSampler(start_time, self.warmup_seconds)
        stop = asyncio.Event()

        async with self.open_http(connections) as http:
            phase = _Phase(
                session=session,
                params=params,
                http=http,
                sampler=sampler,
                result=result,
                stop=stop,
                end_time=end_time,
            )
            slots = [
                asyncio.create_task(self._slot(phase, i), name=f"{self.direction}-slot-{i}")
                for i in range(connections)
            ]
            ticker = asyncio.create_task(self._sampler(phase, start_time))
            tasks = slots + [ticker]

            try:
                await session.wait_aborted(end_time - time.perf_counter())
            finally:
                # Test end: abort whatever is still in flight.
                stop.set()
                session.transfers.cancel_all()
                _, pending = await asyncio.wait(tasks, timeout=self.grace_seconds)
                for task in pending:
                    task.cancel()
                if pending:
                    await asyncio.gather(*pending, return_exceptions=True)
                await session.transfers.wait_closed(self.grace_seconds)

            result.duration_ms = (time.perf_counter() - start_time) * 1000
            result.bytes_total = sampler.total_bytes
            result.samples = self.collect_samples(phase, connections)

            for task in slots:
                if not task.cancelled() and task.exception() is not None:
                    raise task.exception()

    @staticmethod
    def _window_open(phase: _Phase) -> bool:
        return (
            not phase.stop.is_set()
            and not phase.session.aborted
            and time.perf_counter() < phase.end_time
        )

    async def _slot(self, phase: _Phase, slot: int) -> None:
        """Keep one request in flight until the test window closes."""
        stats = ConnectionStats(id=slot)
        phase.result.connections.append(stats)
        t0 = time.perf_counter()

        try:
            while self._window_open(phase):
                stats.requests += 1
                task = await phase.session.transfers.settle(
                    self.transfer(phase, slot, stats),
                    name=f"{self.direction}-{slot}-{stats.requests}",
                )
                if task.cancelled():
                    continue

                exc = task.exception()
                if exc is None:
                    continue
                if not isinstance(exc, REQUEST_ERRORS):
                    raise exc

                stats.errors += 1
                logger.debug("%s stream %d failed: %s", self.direction, slot, exc)
                if not self._window_open(phase):
                    break
                try:
                    await asyncio.wait_for(phase.stop.wait(), timeout=RETRY_BACKOFF)
                except asyncio.TimeoutError:
                    pass
        finally:
            stats.duration_ms = (time.perf_counter() - t0) * 1000
            stats.calculate()

    async def _sampler(self, phase: _Phase, start_time: float) -> None:
        while not phase.stop.is_set():
            try:
                await asyncio.wait_for(phase.stop.wait(), timeout=self.sample_interval)
                break
            except asyncio.TimeoutError:
                pass

            now = time.perf_counter()
            self.sample(phase, now)
            elapsed_pct = (now - start_time) / self.duration_seconds * 100
            phase.session.report_progress(elapsed_pct, phase.sampler.smoothed)
