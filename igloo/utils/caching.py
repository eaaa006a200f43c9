from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncGenerator
from typing import Generic, TypeVar
from weakref import WeakValueDictionary

import cachingutils

from igloo.log import get_logger


__all__ = ("GuildCache",)

log = get_logger(__name__)

VT = TypeVar("VT")


class _EvictableLRUCache(cachingutils.LRUCache[str, VT]):
    """An LRUCache which also supports removing entries before they are evicted."""

    def __delitem__(self, key: str) -> None:
        del self._items[key]

    def clear(self) -> None:
        self._items.clear()


class GuildCache(Generic[VT]):
    """
    A bounded per-guild cache with a lock for each guild.

    Entries are evicted least-recently-used once `max_guilds` guilds are held, and expire after `ttl` seconds if set.
    Callers that read, modify and write back an entry should hold `lock(guild_id)` for the whole sequence.
    """

    def __init__(self, max_guilds: int, ttl: float | None = None) -> None:
        if max_guilds < 1:
            msg = "max_guilds must be at least 1"
            raise ValueError(msg)
        self.max_guilds = max_guilds
        self.ttl = ttl
        self._entries: _EvictableLRUCache[VT] = _EvictableLRUCache(max_guilds, timeout=ttl)
        self._locks: WeakValueDictionary[str, asyncio.Lock] = WeakValueDictionary()

    def get(self, guild_id: str) -> VT | None:
        return self._entries.get(guild_id)

    def set(self, guild_id: str, value: VT) -> None:
        self._entries[guild_id] = value

    def invalidate(self, guild_id: str) -> bool:
        """Drop a guild from the cache. Returns whether it was cached."""
        try:
            del self._entries[guild_id]
        except KeyError:
            return False
        log.debug("Dropped guild %s from the cache", guild_id)
        return True

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, guild_id: object) -> bool:
        return guild_id in self._entries

    @contextlib.asynccontextmanager
    async def lock(self, guild_id: str) -> AsyncGenerator[None, None]:
        """Hold the lock for a single guild. Locks for different guilds never block each other."""
        lock = self._locks.get(guild_id)
        if lock is None:
            lock = self._locks[guild_id] = asyncio.Lock()
        async with lock:
            yield
