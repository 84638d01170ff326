"""In-flight request bookkeeping for one test phase."""
from __future__ import annotations

import asyncio
import logging
from typing import Coroutine, Optional, Set

import aiohttp

logger = logging.getLogger(__name__)

# A single request failing is routine; callers skip or replace it.
REQUEST_ERRORS = (aiohttp.ClientError, OSError, asyncio.TimeoutError)


class ActiveTransferSet:
    """
    The cancelable requests currently in flight.

    Every HTTP request of a throughput phase runs as its own task spawned
    through this set, so a phase end, a user abort or a session reset can
    cancel all of them at once without waiting for natural completion.
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()
        self.cancelled_total = 0

    def spawn(self, coro: Coroutine, name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def settle(self, coro: Coroutine, name: Optional[str] = None) -> asyncio.Task:
        """
        Spawn *coro* and wait until it is done; return the finished task.

        A transfer stopped by ``cancel_all`` comes back as a cancelled
        task instead of raising into the caller.  Cancelling the caller
        cancels the transfer as well.
        """
        task = self.spawn(coro, name)
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        return task

    @property
    def pending(self) -> int:
        return sum(1 for t in self._tasks if not t.done())

    def __len__(self) -> int:
        return len(self._tasks)

    def cancel_all(self) -> int:
        """Request cancellation of every pending transfer; returns the count."""
        count = 0
        for task in list(self._tasks):
            if not task.done():
                task.cancel()
                count += 1
        if count:
            logger.debug("Cancelled %d active transfer(s)", count)
        self.cancelled_total += count
        return count

    async def wait_closed(self, timeout: Optional[float] = None) -> bool:
        """Wait for all transfers to finish; True if none is left pending."""
        tasks = [t for t in self._tasks if not t.done()]
        if not tasks:
            return True
        _, still_pending = await asyncio.wait(tasks, timeout=timeout)
        if still_pending:
            logger.warning("%d transfer(s) still pending after %.1fs", len(still_pending), timeout or 0)
        return not still_pending
