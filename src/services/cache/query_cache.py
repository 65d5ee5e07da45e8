"""
Query Cache

In-memory request/response cache for collections read from the server,
keyed by tuples such as ``("debts", user_id)``.

DESIGN DECISION: The cache supports exactly what optimistic offline writes
need:
1. patch()      - apply a pure transformation to a cached collection
2. invalidate() - mark it stale so the next read refetches from the server

Invalidation does not drop the data. Until the refetch lands, readers keep
seeing the last known (possibly optimistic) collection.
"""

from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

import structlog


logger = structlog.get_logger(__name__)

CacheKey = Hashable
InvalidationListener = Callable[[CacheKey], None]


@dataclass
class CacheEntry:
    data: Any
    stale: bool = False
    updated_at: datetime = field(default_factory=datetime.utcnow)


class QueryCache:
    """
    Keyed cache with manual invalidation and local patching.

    Not thread-safe: all access is expected from the event loop thread.
    """

    def __init__(self):
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._listeners: list[InvalidationListener] = []

    def get_data(self, key: CacheKey) -> Optional[Any]:
        entry = self._entries.get(key)
        return entry.data if entry else None

    def set_data(self, key: CacheKey, data: Any) -> None:
        """Store fresh server data."""
        self._entries[key] = CacheEntry(data=data)

    def patch(self, key: CacheKey, update_fn: Callable[[list], list]) -> list:
        """
        Replace the cached collection with ``update_fn(current)``.

        ``current`` is an empty list when nothing is cached. The staleness flag
        of an existing entry is preserved: a patch is not server truth.

        Returns:
            The new collection
        """
        entry = self._entries.get(key)
        current = list(entry.data) if entry and entry.data is not None else []
        updated = update_fn(current)
        self._entries[key] = CacheEntry(
            data=updated,
            stale=entry.stale if entry else False,
        )
        return updated

    def invalidate(self, key: CacheKey) -> None:
        """Mark a key stale and tell listeners so they can refetch."""
        entry = self._entries.get(key)
        if entry:
            entry.stale = True
        logger.debug("cache_invalidated", key=repr(key), cached=entry is not None)
        for listener in list(self._listeners):
            listener(key)

    def is_stale(self, key: CacheKey) -> bool:
        """True if the key must be fetched before it can be trusted (missing counts)."""
        entry = self._entries.get(key)
        return entry is None or entry.stale

    async def fetch(
        self,
        key: CacheKey,
        fetcher: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Return cached data if fresh, otherwise await ``fetcher`` and cache it."""
        entry = self._entries.get(key)
        if entry and not entry.stale:
            return entry.data
        data = await fetcher()
        self.set_data(key, data)
        return data

    def subscribe(self, listener: InvalidationListener) -> Callable[[], None]:
        """Register an invalidation listener. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
