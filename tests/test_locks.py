import asyncio
import unittest

from app.services.locks import UserLocks


class TestUserLocks(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.locks = UserLocks()
        self.events: list[str] = []

    async def _work(self, key: str, name: str) -> None:
        async with self.locks.for_user(key):
            self.events.append(f"{name} start")
            await asyncio.sleep(0.01)
            self.events.append(f"{name} end")

    async def test_same_sender_runs_one_at_a_time(self):
        await asyncio.gather(self._work("+1", "a"), self._work("+1", "b"))
        self.assertEqual(self.events, ["a start", "a end", "b start", "b end"])

    async def test_different_senders_do_not_wait_for_each_other(self):
        await asyncio.gather(self._work("+1", "a"), self._work("+2", "b"))
        self.assertEqual(self.events[:2], ["a start", "b start"])

    async def test_entry_is_dropped_once_released(self):
        async with self.locks.for_user("+1"):
            self.assertEqual(len(self.locks), 1)
        self.assertEqual(len(self.locks), 0)

        await asyncio.gather(*(self._work(f"+{n}", str(n)) for n in range(20)))
        self.assertEqual(len(self.locks), 0)

    async def test_cancelled_waiter_does_not_leak_an_entry(self):
        release = asyncio.Event()

        async def holder():
            async with self.locks.for_user("+1"):
                await release.wait()

        held = asyncio.create_task(holder())
        await asyncio.sleep(0)
        waiter = asyncio.create_task(self._work("+1", "waiter"))
        await asyncio.sleep(0)
        waiter.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await waiter

        release.set()
        await held
        self.assertEqual(len(self.locks), 0)
        self.assertEqual(self.events, [])
