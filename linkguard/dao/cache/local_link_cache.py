"""In-process redirect record cache (L1)

Sits in front of Redis on the redirect hot path. Holds positive entries
(a RedirectRecord) and negative entries ("this shortcode does not exist") with
separate TTLs. The negative TTL is kept short so a link visited right after
being created becomes visible quickly; creations also invalidate explicitly.

The cache is split into shards, each an OrderedDict used as an approximate LRU
(move-to-end on access, evict from the front) with its own lock.

Example:
    >>> cache = LocalLinkCache(capacity=1000, ttl=30, negative_ttl=2)
    >>> cache.put('abc123', record)
    >>> cache.get('abc123').record is record
    True
    >>> cache.put_missing('nope')
    >>> cache.get('nope').missing
    True
    >>> cache.invalidate('nope')
    >>> cache.get('nope') is None
    True
"""

import time
import threading
import logging
from collections import OrderedDict
from dataclasses import dataclass

from linkguard.models import RedirectRecord


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    record: RedirectRecord | None  # None marks a negative (miss) entry
    expires_at: float

    @property
    def missing(self) -> bool:
        return self.record is None


class _Shard:
    def __init__(self, capacity: int):
        self.capacity = capacity
        self.entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self.lock = threading.Lock()


class LocalLinkCache:
    """Sharded, capacity-bounded TTL cache of redirect records.

    Args:
        capacity (int):
            Total number of entries across all shards.
        ttl (float):
            Seconds a positive entry stays fresh.
        negative_ttl (float):
            Seconds a negative entry stays fresh.
        shards (int):
            Number of independently locked shards.
    """

    def __init__(self, capacity: int = 10_000, ttl: float = 30.0, negative_ttl: float = 2.0, shards: int = 16):
        if capacity < shards:
            shards = max(1, capacity)
        self.ttl = ttl
        self.negative_ttl = negative_ttl
        per_shard = max(1, capacity // shards)
        self._shards = [_Shard(per_shard) for _ in range(shards)]

    def _shard(self, shortcode: str) -> _Shard:
        return self._shards[hash(shortcode) % len(self._shards)]

    def get(self, shortcode: str) -> CacheEntry | None:
        """Return the fresh entry for a shortcode, or None on a cache miss"""
        shard = self._shard(shortcode)
        now = time.time()
        with shard.lock:
            entry = shard.entries.get(shortcode)
            if entry is None:
                return None
            if entry.expires_at <= now:
                del shard.entries[shortcode]
                return None
            shard.entries.move_to_end(shortcode)
            return entry

    def put(self, shortcode: str, record: RedirectRecord) -> None:
        self._store(shortcode, CacheEntry(record=record, expires_at=time.time() + self.ttl))

    def put_missing(self, shortcode: str) -> None:
        self._store(shortcode, CacheEntry(record=None, expires_at=time.time() + self.negative_ttl))

    def invalidate(self, shortcode: str) -> None:
        shard = self._shard(shortcode)
        with shard.lock:
            shard.entries.pop(shortcode, None)

    def sweep(self) -> int:
        """Drop expired entries shard by shard and return how many were removed"""
        removed = 0
        for shard in self._shards:
            now = time.time()
            with shard.lock:
                stale = [code for code, entry in shard.entries.items() if entry.expires_at <= now]
                for code in stale:
                    del shard.entries[code]
            removed += len(stale)
        if removed:
            logger.debug('Swept expired redirect cache entries.', extra={'removed': removed})
        return removed

    def clear(self) -> None:
        for shard in self._shards:
            with shard.lock:
                shard.entries.clear()

    def __len__(self) -> int:
        return sum(len(shard.entries) for shard in self._shards)

    def _store(self, shortcode: str, entry: CacheEntry) -> None:
        shard = self._shard(shortcode)
        with shard.lock:
            shard.entries[shortcode] = entry
            shard.entries.move_to_end(shortcode)
            while len(shard.entries) > shard.capacity:
                shard.entries.popitem(last=False)
