# =============================================================================
# site_core/cache/query_cache.py
# In-Memory Query Cache with Staleness and Invalidation
# =============================================================================
"""
QueryCache - keeps the results of server queries for list-backed views.

Each entry is keyed by a tuple (e.g. ``("tasks",)`` or ``("weather", "p1")``)
and remembers the coroutine that produced it. Invalidating a key marks the
entry stale and schedules that coroutine again, so views always re-derive
from authoritative server state. Invalidating twice is harmless: at worst
the same query runs twice.
"""

from __future__ import annotations
import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple
import logging

logger = logging.getLogger(__name__)

QueryKey = Tuple[Any, ...]
Fetcher = Callable[[], Awaitable[Any]]


@dataclass
class QueryEntry:
    key: QueryKey
    data: Any = None
    updated_at: Optional[float] = None
    last_access: float = 0.0
    invalidated: bool = False
    fetcher: Optional[Fetcher] = None
    fetch_count: int = 0

    @property
    def has_data(self) -> bool:
        return self.updated_at is not None


class QueryCache:
    """
    Usage:
        cache = QueryCache(stale_time=300, gc_time=1800)
        tasks = await cache.fetch(("tasks",), load_tasks)
        cache.invalidate(("tasks",))   # schedules load_tasks again
        await cache.drain()
    """

    def __init__(
        self,
        stale_time: float = 0.0,
        gc_time: float = 30 * 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            stale_time: Seconds a result counts as fresh
            gc_time: Seconds an unused entry is retained before eviction
            clock: Monotonic seconds source
        """
        self.stale_time = stale_time
        self.gc_time = gc_time
        self._clock = clock
        self._entries: Dict[QueryKey, QueryEntry] = {}
        self._pending: Set[asyncio.Task] = set()
        self.invalidation_count = 0

    def __contains__(self, key: QueryKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> List[QueryKey]:
        return list(self._entries)

    def _entry(self, key: QueryKey) -> QueryEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = QueryEntry(key=key, last_access=self._clock())
            self._entries[key] = entry
        return entry

    # =========================================================================
    # READS
    # =========================================================================

    def is_stale(self, key: QueryKey, stale_time: Optional[float] = None) -> bool:
        entry = self._entries.get(key)
        if entry is None or not entry.has_data or entry.invalidated:
            return True
        limit = self.stale_time if stale_time is None else stale_time
        return (self._clock() - entry.updated_at) >= limit

    def get_data(self, key: QueryKey) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return None
        entry.last_access = self._clock()
        return entry.data

    async def fetch(
        self,
        key: QueryKey,
        fetcher: Fetcher,
        stale_time: Optional[float] = None,
    ) -> Any:
        """
        Return cached data while fresh, otherwise run ``fetcher`` and store it.

        Concurrent calls are not de-duplicated; the later result wins.
        """
        entry = self._entry(key)
        entry.fetcher = fetcher
        entry.last_access = self._clock()

        if not self.is_stale(key, stale_time):
            return entry.data

        data = await fetcher()
        entry.fetch_count += 1
        self.set_data(key, data)
        return data

    # =========================================================================
    # WRITES
    # =========================================================================

    def set_data(self, key: QueryKey, data: Any) -> None:
        entry = self._entry(key)
        now = self._clock()
        entry.data = data
        entry.updated_at = now
        entry.last_access = now
        entry.invalidated = False

    def find_record(self, key: QueryKey, record_id: Any, id_field: str = "id") -> Optional[Dict[str, Any]]:
        """Look up a row inside a cached list result."""
        data = self.get_data(key)
        if not isinstance(data, list):
            return None
        for row in data:
            if isinstance(row, dict) and row.get(id_field) == record_id:
                return row
        return None

    def patch_record(self, key: QueryKey, record: Dict[str, Any], id_field: str = "id") -> bool:
        """
        Replace one row of a cached list in place.

        Returns:
            False when the list or the row is not cached
        """
        entry = self._entries.get(key)
        if entry is None or not isinstance(entry.data, list):
            return False

        record_id = record.get(id_field)
        for index, row in enumerate(entry.data):
            if isinstance(row, dict) and row.get(id_field) == record_id:
                patched = list(entry.data)
                patched[index] = {**row, **record}
                entry.data = patched
                entry.last_access = self._clock()
                return True
        return False

    # =========================================================================
    # INVALIDATION / EVICTION
    # =========================================================================

    def invalidate(self, prefix: QueryKey) -> int:
        """
        Mark every entry whose key starts with ``prefix`` as stale and
        schedule its fetcher when an event loop is running.

        Returns:
            Number of entries invalidated
        """
        self.invalidation_count += 1
        matched = [e for k, e in self._entries.items() if k[:len(prefix)] == tuple(prefix)]

        for entry in matched:
            entry.invalidated = True
            if entry.fetcher is not None:
                self._schedule_refetch(entry)

        logger.debug(f"Invalidated {len(matched)} queries for {prefix}")
        return len(matched)

    def invalidate_all(self) -> int:
        return self.invalidate(())

    def _schedule_refetch(self, entry: QueryEntry) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the next fetch() call re-runs the query
            return
        task = loop.create_task(self._refetch(entry))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _refetch(self, entry: QueryEntry) -> None:
        try:
            data = await entry.fetcher()
        except Exception as e:
            logger.error(f"Refetch failed for {entry.key}: {e}")
            return
        entry.fetch_count += 1
        self.set_data(entry.key, data)

    async def drain(self) -> None:
        """Wait for every scheduled refetch to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def evict_expired(self) -> int:
        """Drop entries unused for longer than ``gc_time``."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now - e.last_access > self.gc_time]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Evicted {len(expired)} cached queries")
        return len(expired)

    def remove(self, key: QueryKey) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()
        self._entries.clear()
