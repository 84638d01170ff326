"""Tests for the companion server endpoints."""

import time
import unittest

import aiohttp
from aiohttp.test_utils import TestServer

from testserver.app import LinkThrottle, create_app


class ServerTestCase(unittest.IsolatedAsyncioTestCase):
    app_kwargs = {}

    async def asyncSetUp(self):
        self.server = TestServer(create_app(**self.app_kwargs))
        await self.server.start_server()
        self.http = aiohttp.ClientSession(auto_decompress=False)

    async def asyncTearDown(self):
        await self.http.close()
        await self.server.close()

    def url(self, path):
        return str(self.server.make_url(path))


class TestEndpoints(ServerTestCase):
    app_kwargs = {"max_size": 1024 * 1024}

    async def test_ping(self):
        async with self.http.get(self.url("/ping?t=1")) as resp:
            self.assertEqual(resp.status, 200)
            self.assertEqual(await resp.read(), b"")
            self.assertIn("no-store", resp.headers["Cache-Control"])

    async def test_testfile_exact_size(self):
        async with self.http.get(self.url("/testfile?size=200000&stream=1")) as resp:
            self.assertEqual(resp.status, 200)
            self.assertEqual(resp.headers["Content-Type"], "application/octet-stream")
            self.assertEqual(resp.content_length, 200_000)
            self.assertIn("no-store", resp.headers["Cache-Control"])
            body = await resp.read()
        self.assertEqual(len(body), 200_000)

    async def test_testfile_zero(self):
        async with self.http.get(self.url("/testfile?size=0")) as resp:
            self.assertEqual(resp.status, 200)
            self.assertEqual(await resp.read(), b"")

    async def test_testfile_capped(self):
        async with self.http.get(self.url("/testfile?size=999999999")) as resp:
            self.assertEqual(resp.content_length, 1024 * 1024)
            self.assertEqual(len(await resp.read()), 1024 * 1024)

    async def test_testfile_default_size_capped(self):
        async with self.http.get(self.url("/testfile")) as resp:
            self.assertEqual(resp.content_length, 1024 * 1024)

    async def test_testfile_bad_size(self):
        for query in ("size=abc", "size=-5", "size=10&throttle=fast"):
            with self.subTest(query=query):
                async with self.http.get(self.url(f"/testfile?{query}")) as resp:
                    self.assertEqual(resp.status, 400)

    async def test_upload(self):
        async with self.http.post(self.url("/upload?t=1"), data=b"x" * 100_000) as resp:
            self.assertEqual(resp.status, 200)
            info = await resp.json()
        self.assertTrue(info["success"])
        self.assertEqual(info["size"], 100_000)
        self.assertGreaterEqual(info["duration"], 0)

    async def test_upload_too_large(self):
        async with self.http.post(self.url("/upload"), data=b"x" * (1024 * 1024 + 1)) as resp:
            self.assertEqual(resp.status, 413)


class TestThrottledServer(ServerTestCase):
    app_kwargs = {"link_rate_mbps": 4.0}

    async def test_download_is_paced(self):
        # 4 Mbps = 524288 B/s; a quarter megabyte needs about half a second.
        t0 = time.perf_counter()
        async with self.http.get(self.url("/testfile?size=262144")) as resp:
            body = await resp.read()
        elapsed = time.perf_counter() - t0
        self.assertEqual(len(body), 262_144)
        self.assertGreater(elapsed, 0.35)
        self.assertLess(elapsed, 2.0)

    async def test_upload_is_paced(self):
        async with self.http.post(self.url("/upload"), data=b"x" * 262_144) as resp:
            info = await resp.json()
        self.assertEqual(info["size"], 262_144)
        # reported duration is the whole body at 524288 B/s
        self.assertGreater(info["duration"], 0.4)
        self.assertLess(info["duration"], 1.5)

    async def test_ping_not_throttled(self):
        t0 = time.perf_counter()
        async with self.http.get(self.url("/ping")) as resp:
            await resp.read()
        self.assertLess(time.perf_counter() - t0, 0.5)


class TestLinkThrottle(unittest.IsolatedAsyncioTestCase):
    def test_invalid_rate(self):
        with self.assertRaises(ValueError):
            LinkThrottle(0)

    def test_units(self):
        self.assertEqual(LinkThrottle.from_mbps(8).rate, 1024 * 1024)
        self.assertEqual(LinkThrottle.from_kbps(10).rate, 10 * 1024)

    def test_chunk_hint(self):
        self.assertEqual(LinkThrottle(1_000).chunk_hint, 1024)
        self.assertEqual(LinkThrottle(1_000_000).chunk_hint, 10_000)
        self.assertEqual(LinkThrottle(1e9).chunk_hint, 64 * 1024)

    async def test_shared_timeline(self):
        throttle = LinkThrottle(100_000)
        t0 = time.perf_counter()
        for _ in range(3):
            await throttle.consume(10_000)
        # each chunk waits out its own 0.1 s slot
        self.assertGreater(time.perf_counter() - t0, 0.25)

    async def test_single_chunk_waits_its_slot(self):
        # A single chunk still takes its full transfer time.
        throttle = LinkThrottle(100_000)
        t0 = time.perf_counter()
        await throttle.consume(50_000)
        self.assertGreater(time.perf_counter() - t0, 0.4)


if __name__ == "__main__":
    unittest.main()
