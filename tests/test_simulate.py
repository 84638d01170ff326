"""Tests for speedengine.simulate -- synthetic loopback throughput."""

import random
import unittest

from speedengine.download import DownloadTester
from speedengine.driver import ThroughputResult
from speedengine.endpoints import Server
from speedengine.session import TestSession
from speedengine.simulate import RandomWalkModel, SimulatedThroughput
from speedengine.tiers import SpeedTier
from speedengine.upload import UploadTester


def _session(**kwargs):
    kwargs.setdefault("download_duration", 3.0)
    kwargs.setdefault("upload_duration", 3.0)
    kwargs.setdefault("warmup_seconds", 1.0)
    kwargs.setdefault("realtime", False)
    return TestSession(Server.from_url("http://127.0.0.1:8080"), **kwargs)


class TestRandomWalkModel(unittest.TestCase):
    def test_starts_near_zero(self):
        model = RandomWalkModel(500.0, random.Random(1))
        self.assertLess(model.speed_at(0.0), 1.0)

    def test_stays_bounded(self):
        model = RandomWalkModel(500.0, random.Random(7))
        for i in range(1, 600):
            speed = model.speed_at(5.0 + i * 0.1)
            # ramp <= 1, walk +-8 %, drift +-5 %
            self.assertLessEqual(speed, 500.0 * 1.13 + 1e-9)
            self.assertGreaterEqual(speed, 500.0 * 0.99 * 0.87)

    def test_unsupported_tier(self):
        with self.assertRaises(ValueError):
            SimulatedThroughput(SpeedTier.SLOW, "download", duration_seconds=3, warmup_seconds=1)


class TestSimulatedThroughput(unittest.IsolatedAsyncioTestCase):
    async def _run(self, seed):
        sim = SimulatedThroughput(
            SpeedTier.ULTRA_FAST,
            "download",
            duration_seconds=3.0,
            warmup_seconds=1.0,
            rng=random.Random(seed),
            realtime=False,
        )
        return await sim.run(_session(), ThroughputResult(direction="download"))

    async def test_deterministic_with_seed(self):
        a = await self._run(42)
        b = await self._run(42)
        self.assertEqual([s.mbps for s in a.samples], [s.mbps for s in b.samples])
        self.assertEqual(a.bytes_total, b.bytes_total)

    async def test_warmup_discarded(self):
        result = await self._run(3)
        self.assertTrue(result.simulated)
        self.assertTrue(all(s.timestamp >= 1.0 for s in result.samples))
        self.assertTrue(19 <= len(result.samples) <= 21)
        self.assertGreater(result.bytes_total, 0)

    async def test_progress_reaches_phase_end(self):
        seen = []
        session = _session(on_progress=lambda p, s: seen.append(p))
        sim = SimulatedThroughput(
            SpeedTier.VERY_FAST, "upload",
            duration_seconds=3.0, warmup_seconds=1.0,
            rng=random.Random(5), realtime=False,
        )
        await sim.run(session, ThroughputResult(direction="upload"))
        self.assertEqual(seen, sorted(seen))
        self.assertLessEqual(max(seen), 99.0)


class TestDriverSimulation(unittest.IsolatedAsyncioTestCase):
    async def test_loopback_fast_tiers_are_simulated(self):
        session = _session(rng=random.Random(11))
        session.set_tier(SpeedTier.VERY_FAST)

        download = await DownloadTester(duration_seconds=3.0, warmup_seconds=1.0).test(session)
        upload = await UploadTester(duration_seconds=3.0, warmup_seconds=1.0).test(session)

        self.assertTrue(download.simulated)
        self.assertTrue(upload.simulated)
        self.assertFalse(download.fallback)
        self.assertGreater(download.speed_mbps, 150.0)
        self.assertLess(download.speed_mbps, 800.0)
        self.assertGreater(upload.speed_mbps, 90.0)
        self.assertLess(upload.speed_mbps, 480.0)
        self.assertEqual(session.transfers.pending, 0)


if __name__ == "__main__":
    unittest.main()
