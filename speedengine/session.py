"""
Test session state and the end-to-end run.

A ``TestSession`` owns everything one run touches -- tier, parameters,
result, status, in-flight transfers -- so nothing leaks between runs and
each phase can be driven on its own in tests.  ``run_speedtest`` walks the
phases in order::

    probe -> adapt -> latency -> download -> upload -> complete
"""
from __future__ import annotations

import asyncio
import enum
import logging
import random
from dataclasses import dataclass, fields
from typing import Callable, Optional, Tuple

from .constants import (
    DEFAULT_DURATION,
    DEFAULT_PING_COUNT,
    DEFAULT_WARMUP,
    PING_INTERVAL,
)
from .download import DownloadResult, DownloadTester
from .endpoints import Server
from .latency import LatencyResult, LatencyTester
from .probe import NetworkProbe, ProbeResult
from .tiers import SpeedTier, TestParameters, adapt_parameters, classify_speed
from .transfers import ActiveTransferSet
from .upload import UploadResult, UploadTester

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, float], None]
StatusCallback = Callable[["TestStatus"], None]


class TestStatus(enum.Enum):
    """Run status reported to the presentation layer."""

    __test__ = False

    IDLE = "idle"
    PROBING = "probing"
    DOWNLOAD = "download"
    UPLOAD = "upload"
    COMPLETE = "complete"


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass
class TestResult:
    """Final figures of one run; each field is written exactly once."""

    __test__ = False

    download_mbps: Optional[float] = None
    upload_mbps: Optional[float] = None
    latency_ms: Optional[float] = None
    jitter_ms: Optional[float] = None

    def record(self, **values: float) -> None:
        names = {f.name for f in fields(self)}
        for name, value in values.items():
            if name not in names:
                raise ValueError(f"Unknown result field: {name}")
            if getattr(self, name) is not None:
                raise ValueError(f"Result field {name} is already set")
            setattr(self, name, float(value))

    @property
    def complete(self) -> bool:
        return all(getattr(self, f.name) is not None for f in fields(self))

    def to_dict(self) -> dict:
        return {
            f.name: (round(getattr(self, f.name), 3) if getattr(self, f.name) is not None else None)
            for f in fields(self)
        }


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class TestSession:
    """Mutable state of a single speed test run."""

    __test__ = False

    def __init__(
        self,
        server: Server,
        *,
        ping_count: int = DEFAULT_PING_COUNT,
        ping_interval: float = PING_INTERVAL,
        download_duration: float = DEFAULT_DURATION,
        upload_duration: float = DEFAULT_DURATION,
        warmup_seconds: float = DEFAULT_WARMUP,
        on_progress: Optional[ProgressCallback] = None,
        on_status: Optional[StatusCallback] = None,
        rng: Optional[random.Random] = None,
        realtime: bool = True,
    ) -> None:
        if warmup_seconds >= min(download_duration, upload_duration):
            raise ValueError("Warm-up must be shorter than the download and upload durations")

        self.server = server
        self.ping_count = ping_count
        self.ping_interval = ping_interval
        self.download_duration = download_duration
        self.upload_duration = upload_duration
        self.warmup_seconds = warmup_seconds
        self.on_progress = on_progress
        self.on_status = on_status
        self.rng = rng or random.Random()
        self.realtime = realtime

        self.transfers = ActiveTransferSet()
        self.running = False
        self._abort = asyncio.Event()
        self._clear()

    def _clear(self) -> None:
        self.tier: Optional[SpeedTier] = None
        self.params: Optional[TestParameters] = None
        self.result = TestResult()
        self.status = TestStatus.IDLE
        self.probe_result: Optional[ProbeResult] = None
        self.latency_result: Optional[LatencyResult] = None
        self.download_result: Optional[DownloadResult] = None
        self.upload_result: Optional[UploadResult] = None
        self._progress = 0.0

    # -- Tier / parameters --------------------------------------------------

    def set_tier(self, tier: SpeedTier) -> TestParameters:
        if self.tier is not None:
            raise RuntimeError("Speed tier is already set for this run")
        self.tier = tier
        self.params = adapt_parameters(tier)
        return self.params

    def require_parameters(self) -> Tuple[SpeedTier, TestParameters]:
        if self.tier is None or self.params is None:
            raise RuntimeError("Speed tier has not been determined yet")
        return self.tier, self.params

    # -- Status / progress --------------------------------------------------

    def set_status(self, status: TestStatus) -> None:
        self.status = status
        self.reset_progress()
        logger.debug("Status: %s", status.value)
        if self.on_status:
            self.on_status(status)

    def reset_progress(self) -> None:
        self._progress = 0.0

    def report_progress(self, percent: float, speed_mbps: float, final: bool = False) -> None:
        """Forward progress to the sink; never moves backwards within a phase."""
        cap = 100.0 if final else 99.0
        self._progress = max(self._progress, min(max(percent, 0.0), cap))
        if self.on_progress:
            self.on_progress(self._progress, max(speed_mbps, 0.0))

    # -- Cancellation -------------------------------------------------------

    @property
    def aborted(self) -> bool:
        return self._abort.is_set()

    def abort(self) -> int:
        """Stop the running test; returns the number of requests cancelled."""
        logger.info("Aborting speed test")
        self._abort.set()
        return self.transfers.cancel_all()

    async def wait_aborted(self, timeout: float) -> bool:
        """Sleep up to *timeout* seconds, waking early on abort."""
        if timeout <= 0:
            return self.aborted
        try:
            await asyncio.wait_for(self._abort.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def reset(self) -> None:
        """Forget the previous run so the session can be used again."""
        if self.running:
            raise RuntimeError("Cannot reset while a test is running")
        self.transfers.cancel_all()
        self._abort.clear()
        self._clear()


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

async def run_speedtest(
    session: TestSession,
    probe: Optional[NetworkProbe] = None,
) -> TestResult:
    """
    Execute the full test sequence on *session* and return its result.

    An abort ends the run after the current phase with status ``idle`` and
    whatever fields were recorded so far.  Any other exception also resets
    the status to ``idle`` before propagating.
    """
    if session.running:
        raise RuntimeError("A test is already running on this session")
    if session.result.download_mbps is not None or session.tier is not None:
        raise RuntimeError("Session already used; call reset() first")

    session.running = True
    try:
        # -- Probe ----------------------------------------------------------
        session.set_status(TestStatus.PROBING)
        session.probe_result = await (probe or NetworkProbe()).probe(session)
        tier = classify_speed(session.probe_result.speed_mbps)
        params = session.set_tier(tier)
        logger.info("Tier %s: %s", tier.value, params)
        if session.aborted:
            return _abandon(session)

        # -- Latency --------------------------------------------------------
        latency = await LatencyTester(
            ping_count=session.ping_count,
            interval=session.ping_interval,
        ).test(session)
        session.latency_result = latency
        session.result.record(latency_ms=latency.latency_ms, jitter_ms=latency.jitter_ms)
        if session.aborted:
            return _abandon(session)

        # -- Download -------------------------------------------------------
        session.set_status(TestStatus.DOWNLOAD)
        download = await DownloadTester(
            duration_seconds=session.download_duration,
            warmup_seconds=session.warmup_seconds,
        ).test(session)
        session.download_result = download
        if session.aborted:
            return _abandon(session)
        session.result.record(download_mbps=download.speed_mbps)

        # -- Upload ---------------------------------------------------------
        session.set_status(TestStatus.UPLOAD)
        upload = await UploadTester(
            duration_seconds=session.upload_duration,
            warmup_seconds=session.warmup_seconds,
        ).test(session)
        session.upload_result = upload
        if session.aborted:
            return _abandon(session)
        session.result.record(upload_mbps=upload.speed_mbps)

        session.set_status(TestStatus.COMPLETE)
        return session.result

    except Exception:
        logger.exception("Speed test failed")
        session.set_status(TestStatus.IDLE)
        raise
    finally:
        session.transfers.cancel_all()
        session.running = False


def _abandon(session: TestSession) -> TestResult:
    logger.info("Speed test aborted during %s", session.status.value)
    session.set_status(TestStatus.IDLE)
    return session.result
