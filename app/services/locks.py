"""Per-key serialization for read-then-write recomputation.

Two progress events for the same enrollment both read lesson summaries,
compute a percent, and write it back.  Interleaved, the second write can
be based on a stale read.  Holding a lock per enrollment id makes each
recompute see every write that came before it.

This covers one process.  With PostgreSQL the enrollment row is also
locked (SELECT ... FOR UPDATE) inside the request transaction, which
covers several API instances.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager


class KeyedLock:
    """asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


# Module-level singletons shared by the services
enrollment_locks = KeyedLock()
attempt_locks = KeyedLock()  # keyed by (quiz_id, enrollment_id)
