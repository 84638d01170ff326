"""
Download speed test module.

Keeps ``download_concurrency`` streamed GET requests against
``/testfile`` in flight for the whole test window; each stream reads the
body in ``buffer_size`` pieces and reports the bytes to the phase sampler.
A stream that finishes early is replaced straight away.
"""
from __future__ import annotations

import aiohttp

from .constants import DOWNLOAD_HEADERS
from .driver import ThroughputDriver, ThroughputResult, _Phase
from .stats import ConnectionStats
from .tiers import TestParameters


class DownloadResult(ThroughputResult):
    """Download test result."""


class DownloadTester(ThroughputDriver):
    """Parallel streamed-GET download tester."""

    direction = "download"
    result_class = DownloadResult

    def concurrency(self, params: TestParameters) -> int:
        return params.download_concurrency

    def open_http(self, connections: int) -> aiohttp.ClientSession:
        connector = aiohttp.TCPConnector(
            limit=connections,
            limit_per_host=connections,
            force_close=False,
        )
        timeout = aiohttp.ClientTimeout(total=None, connect=5, sock_read=5)
        return aiohttp.ClientSession(
            headers=DOWNLOAD_HEADERS,
            connector=connector,
            timeout=timeout,
            auto_decompress=False,
        )

    async def transfer(self, phase: _Phase, slot: int, stats: ConnectionStats) -> None:
        url = phase.session.server.testfile_url(phase.params.download_payload_size, stream=slot)
        async with phase.http.get(url) as resp:
            resp.raise_for_status()
            while True:
                chunk = await resp.content.read(phase.params.buffer_size)
                if not chunk:
                    break
                n = len(chunk)
                stats.bytes_transferred += n
                phase.sampler.add_bytes(n)
