"""Lock striping for process-wide keyed state

Shared maps (rate buckets, click timestamps, cache entries) are guarded per key
by one of a fixed number of locks, so requests for unrelated keys rarely contend.

Example:
    >>> locks = ShardedLock(shards=64)
    >>> with locks.hold('203.0.113.7', '203.0.113.0/24'):
    ...     ...  # check-and-record for both keys
"""

import threading
import contextlib
from collections import OrderedDict
from collections.abc import Callable, Hashable, Iterator


class ShardedLock:
    """Fixed pool of locks addressed by key hash."""

    def __init__(self, shards: int = 64):
        if shards < 1:
            raise ValueError(f'Number of shards must be positive (given value: {shards}).')
        self._locks = [threading.Lock() for _ in range(shards)]

    def __len__(self) -> int:
        return len(self._locks)

    def index(self, key: Hashable) -> int:
        return hash(key) % len(self._locks)

    def lock_for(self, key: Hashable) -> threading.Lock:
        return self._locks[self.index(key)]

    @contextlib.contextmanager
    def hold(self, *keys: Hashable) -> Iterator[None]:
        """Acquire the locks of all given keys.

        Locks are taken in index order, so two callers holding overlapping key
        sets can't deadlock. Keys sharing a shard take its lock once.
        """
        indexes = sorted({self.index(key) for key in keys})
        with contextlib.ExitStack() as stack:
            for i in indexes:
                stack.enter_context(self._locks[i])
            yield


class KeyedTable[V]:
    """Capacity-bounded key -> value table with oldest-entry eviction

    The table lock only guards membership (lookup, insert, evict, snapshot).
    Values are mutated under the caller's per-key shard lock.

    Example:
        >>> table = KeyedTable(list, capacity=2)
        >>> table.get_or_create('a').append(1)
        >>> table.get_or_create('b'); table.get_or_create('c')
        >>> 'a' in table
        False
    """

    def __init__(self, factory: Callable[[], V], capacity: int):
        if capacity < 1:
            raise ValueError(f'Table capacity must be positive (given value: {capacity}).')
        self._factory = factory
        self._capacity = capacity
        self._entries: OrderedDict[Hashable, V] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> V | None:
        with self._lock:
            return self._entries.get(key)

    def get_or_create(self, key: Hashable) -> V:
        with self._lock:
            value = self._entries.get(key)
            if value is None:
                while len(self._entries) >= self._capacity:
                    self._entries.popitem(last=False)
                value = self._entries[key] = self._factory()
            return value

    def discard(self, key: Hashable, value: V) -> None:
        """Remove a key only if it still maps to the given value"""
        with self._lock:
            if self._entries.get(key) is value:
                del self._entries[key]

    def keys(self) -> list[Hashable]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries
