"""
In-process TTL cache used in front of the store and the storage signer.

One instance is built per application (see ``create_app``) and handed to
services through dependencies. Entries expire lazily on ``get`` and are
swept periodically by ``sweep_periodically``; the sweep only bounds memory.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class MemoryCache:
    """Key -> (value, absolute expiry) map. Last write wins, no locking."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        if self._clock() > entry.expires_at:
            self._entries.pop(key, None)
            return default
        return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        self._entries[key] = CacheEntry(
            value=value, expires_at=self._clock() + ttl_seconds
        )

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def cleanup(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self._clock()
        expired = [k for k, e in list(self._entries.items()) if now > e.expires_at]
        for key in expired:
            self._entries.pop(key, None)
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict:
        return {"size": len(self._entries), "keys": list(self._entries.keys())}

    def __len__(self) -> int:
        return len(self._entries)


async def sweep_periodically(cache: MemoryCache, interval_seconds: float) -> None:
    """Run ``cache.cleanup()`` every ``interval_seconds`` until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        removed = cache.cleanup()
        if removed:
            logger.debug("Cache sweep removed %d expired entries", removed)
