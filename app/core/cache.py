# app/core/cache.py
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from cachetools import TTLCache

logger = logging.getLogger(__name__)


class ReadCache:
    """
    Bounded TTL cache for read views, keyed by view name.

    Keys are namespaced with ':' ("products:page:<filter>:<n>", "featured").
    Values are replaced wholesale and never mutated in place; mutations call
    invalidate() with the view prefixes they may have made stale.

    Expired entries are evicted on every write, and at most `max_entries`
    views are held (least recently used go first).
    """

    def __init__(
        self,
        ttl_seconds: float = 60.0,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._entries: TTLCache = TTLCache(maxsize=max_entries, ttl=ttl_seconds, timer=clock)

    def get(self, key: str) -> Any | None:
        return self._entries.get(key)

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = value

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = await loader()
        self.set(key, value)
        return value

    def invalidate(self, *prefixes: str) -> int:
        """Drop every key equal to or namespaced under one of `prefixes`."""
        stale = [
            key for key in list(self._entries.keys())
            if any(key == p or key.startswith(f"{p}:") for p in prefixes)
        ]
        for key in stale:
            self._entries.pop(key, None)
        logger.debug("Invalidated %d cached views for %s", len(stale), prefixes)
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        self._entries.expire()
        return len(self._entries)
