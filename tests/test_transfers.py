"""Tests for speedengine.transfers -- in-flight request bookkeeping."""

import asyncio
import unittest

from speedengine.transfers import ActiveTransferSet


class TestActiveTransferSet(unittest.IsolatedAsyncioTestCase):
    async def test_cancel_all(self):
        transfers = ActiveTransferSet()
        tasks = [transfers.spawn(asyncio.sleep(10), name=f"t{i}") for i in range(3)]
        self.assertEqual(transfers.pending, 3)

        self.assertEqual(transfers.cancel_all(), 3)
        self.assertTrue(await transfers.wait_closed(1.0))
        self.assertEqual(transfers.pending, 0)
        self.assertTrue(all(t.cancelled() for t in tasks))
        self.assertEqual(transfers.cancelled_total, 3)

    async def test_finished_tasks_leave_the_set(self):
        transfers = ActiveTransferSet()

        async def quick():
            return 42

        task = transfers.spawn(quick())
        self.assertEqual(await task, 42)
        await asyncio.sleep(0)
        self.assertEqual(len(transfers), 0)
        self.assertEqual(transfers.cancel_all(), 0)

    async def test_wait_closed_when_empty(self):
        self.assertTrue(await ActiveTransferSet().wait_closed(0.1))

    async def test_settle_returns_finished_task(self):
        transfers = ActiveTransferSet()

        async def quick():
            return 7

        task = await transfers.settle(quick(), name="ping")
        self.assertTrue(task.done())
        self.assertEqual(task.result(), 7)

    async def test_settle_survives_cancel_all(self):
        transfers = ActiveTransferSet()
        loop = asyncio.get_running_loop()
        loop.call_later(0.05, transfers.cancel_all)

        task = await asyncio.wait_for(transfers.settle(asyncio.sleep(10)), timeout=2)
        self.assertTrue(task.cancelled())
        self.assertEqual(transfers.pending, 0)

    async def test_task_name(self):
        transfers = ActiveTransferSet()
        task = transfers.spawn(asyncio.sleep(10), name="download-0-0")
        self.assertEqual(task.get_name(), "download-0-0")
        transfers.cancel_all()
        await transfers.wait_closed(1.0)


if __name__ == "__main__":
    unittest.main()
