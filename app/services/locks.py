import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class UserLocks:
    """One lock per sender, so a user's messages are handled one at a time.

    An entry exists only while some task holds or waits for that sender's
    lock, so the table does not grow with every phone number ever seen.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def for_user(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                del self._locks[key]
