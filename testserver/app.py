"""
Companion HTTP server for the speed test client.

Endpoints::

    GET  /ping                       empty 200, no-store
    GET  /testfile?size=N[&throttle] N random bytes, octet-stream
    POST /upload[?throttle]          {"success", "size", "duration"}

An optional link rate shared by every request emulates one bottleneck
link, which is what the end-to-end tests measure against.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Optional

from aiohttp import web

from speedengine.constants import (
    DEFAULT_TESTFILE_SIZE,
    KB,
    MAX_TRANSFER_SIZE,
    MEGABIT,
    NO_STORE_HEADERS,
    SERVER_CHUNK_SIZE,
)
from speedengine.randomdata import random_bytes

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Throttling
# ---------------------------------------------------------------------------

class LinkThrottle:
    """
    Paces byte transfers to *rate* bytes per second.

    Every caller reserves the next free slot on a shared timeline, so a
    single instance shared by many requests caps their aggregate rate.
    Idle time earns no credit.
    """

    def __init__(self, rate: float) -> None:
        if rate <= 0:
            raise ValueError("rate must be > 0")
        self.rate = rate
        self._next = 0.0

    @classmethod
    def from_mbps(cls, mbps: float) -> LinkThrottle:
        return cls(mbps * MEGABIT / 8)

    @classmethod
    def from_kbps(cls, kbytes_per_sec: float) -> LinkThrottle:
        return cls(kbytes_per_sec * KB)

    @property
    def chunk_hint(self) -> int:
        """Write size giving about a hundred writes per second."""
        return max(1024, min(SERVER_CHUNK_SIZE, int(self.rate / 100)))

    async def consume(self, nbytes: int) -> None:
        """Wait until *nbytes* have gone through at the link rate."""
        now = asyncio.get_running_loop().time()
        start = max(now, self._next)
        self._next = start + nbytes / self.rate
        await asyncio.sleep(self._next - now)


LINK_KEY = web.AppKey("link", Optional[LinkThrottle])
BUFFER_KEY = web.AppKey("buffer", bytes)
MAX_SIZE_KEY = web.AppKey("max_size", int)


def _throttles(request: web.Request) -> List[LinkThrottle]:
    throttles = []
    link = request.app[LINK_KEY]
    if link is not None:
        throttles.append(link)

    raw = request.query.get("throttle", "")
    if raw:
        try:
            kbps = int(raw)
        except ValueError:
            raise web.HTTPBadRequest(text="throttle must be an integer (KB/s)")
        if kbps > 0:
            logger.debug("Throttling request to %d KB/s", kbps)
            throttles.append(LinkThrottle.from_kbps(kbps))
    return throttles


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

async def handle_ping(request: web.Request) -> web.Response:
    return web.Response(status=200, headers=NO_STORE_HEADERS)


async def handle_testfile(request: web.Request) -> web.StreamResponse:
    try:
        size = int(request.query.get("size", DEFAULT_TESTFILE_SIZE))
    except ValueError:
        raise web.HTTPBadRequest(text="size must be an integer")
    if size < 0:
        raise web.HTTPBadRequest(text="size must be >= 0")
    size = min(size, request.app[MAX_SIZE_KEY])

    throttles = _throttles(request)
    buffer = request.app[BUFFER_KEY]
    chunk_size = min([len(buffer)] + [t.chunk_hint for t in throttles])

    resp = web.StreamResponse(
        headers={**NO_STORE_HEADERS, "Content-Type": "application/octet-stream"},
    )
    resp.content_length = size
    await resp.prepare(request)

    remaining = size
    try:
        while remaining > 0:
            n = min(chunk_size, remaining)
            for throttle in throttles:
                await throttle.consume(n)
            await resp.write(buffer[:n])
            remaining -= n
        await resp.write_eof()
    except ConnectionResetError:
        # The client aborts streams at the end of its test window.
        logger.debug("Client went away with %d bytes left", remaining)
    return resp


async def handle_upload(request: web.Request) -> web.Response:
    throttles = _throttles(request)
    max_size = request.app[MAX_SIZE_KEY]
    size = 0
    start = time.perf_counter()

    async for chunk in request.content.iter_any():
        size += len(chunk)
        if size > max_size:
            raise web.HTTPRequestEntityTooLarge(max_size=max_size, actual_size=size)
        for throttle in throttles:
            await throttle.consume(len(chunk))

    duration = time.perf_counter() - start
    return web.json_response(
        {"success": True, "size": size, "duration": duration},
        headers=NO_STORE_HEADERS,
    )


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

def create_app(
    link_rate_mbps: Optional[float] = None,
    max_size: int = MAX_TRANSFER_SIZE,
    chunk_size: int = SERVER_CHUNK_SIZE,
) -> web.Application:
    """Build the server; *link_rate_mbps* caps all traffic combined."""
    # Large uploads are streamed by the handler, not buffered by aiohttp.
    app = web.Application(client_max_size=max_size)
    app[LINK_KEY] = LinkThrottle.from_mbps(link_rate_mbps) if link_rate_mbps else None
    app[BUFFER_KEY] = random_bytes(chunk_size)
    app[MAX_SIZE_KEY] = max_size

    app.router.add_get("/ping", handle_ping)
    app.router.add_get("/testfile", handle_testfile)
    app.router.add_post("/upload", handle_upload)
    return app


def run_server(
    host: str = "0.0.0.0",
    port: int = 8080,
    link_rate_mbps: Optional[float] = None,
) -> None:
    logger.info("Starting speed test server on %s:%d", host, port)
    if link_rate_mbps:
        logger.info("Link rate limited to %.1f Mbps", link_rate_mbps)
    web.run_app(create_app(link_rate_mbps=link_rate_mbps), host=host, port=port)
