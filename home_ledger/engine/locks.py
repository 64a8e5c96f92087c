"""Per-entity serialization of read-modify-write transitions."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable


class EntityLocks:
    """
    Registry of asyncio locks keyed by (kind, id).

    Two transitions on the same expense or template run one after the
    other; transitions on different entities never wait on each other.
    A lock is dropped from the registry once its last holder or waiter
    leaves, so the registry only holds entities currently in use.
    """

    def __init__(self):
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, kind: str, entity_id: Hashable) -> AsyncIterator[None]:
        key = (kind, entity_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]
