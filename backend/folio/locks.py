"""Per-document mutation locks.

One ``asyncio.Lock`` per ``(kind, id)`` serialises edits to the same
proposal or template inside this process.  Edits from other processes are
caught by the optimistic ``version`` column instead.

Holders commit their session before leaving ``hold`` so the next waiter
reads the rows that match the blobs it downloads.
"""

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable

logger = logging.getLogger(__name__)


class DocumentLocks:
    """Registry of locks keyed by document; unused locks are garbage collected."""

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[tuple, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    @asynccontextmanager
    async def hold(self, kind: str, key: Hashable) -> AsyncIterator[None]:
        lock_key = (kind, str(key))
        lock = self._locks.get(lock_key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[lock_key] = lock

        if lock.locked():
            logger.debug("Waiting for %s %s lock", kind, key)
        async with lock:
            yield
