"""
Disk-backed activity store for queue items.

Provides an ActivityStore class that keeps queue items on disk using diskcache
with per-key TTL support. Items live under a namespace; keys look like
"{namespace}.{sequence}" so one cache directory can hold several queues.

Key design decisions:
- SQLite-backed storage via diskcache (atomic per call, no transactions
  across calls)
- Namespace reads return entries in insertion order (diskcache rowid order;
  updates keep their row, so a rewritten item keeps its place)
- Expired entries are invisible to reads even before diskcache culls them

Example:
    >>> from store.activity_store import ActivityStore
    >>> store = ActivityStore("/path/to/data_dir")
    >>> key = store.create("jQueue", {"data": {"id": 1}, "meta": {"status": "new"}})
    >>> store.read_all("jQueue")
    [('jQueue.000000000001', {'data': {'id': 1}, 'meta': {'status': 'new'}, 'key': 'jQueue.000000000001'})]
"""

import logging
import os
from typing import Any, Dict, List, Optional, Tuple

from diskcache import Cache

logger = logging.getLogger('Eventual.store')

_MISSING = object()


class ActivityStore:
    """
    Namespaced key-value store with per-key expiry.

    Args:
        data_dir: Base directory for storage (activities/ subdirectory created)
        size_limit: Maximum store size in bytes (default: 100MB)

    Example:
        >>> store = ActivityStore("/data/eventual")
        >>> key = store.create("jQueue", {"meta": {"status": "new"}})
        >>> store.set_expiry(key, 10)
        True
        >>> store.delete(key)
        True
    """

    # Default size limit: 100MB
    DEFAULT_SIZE_LIMIT = 100 * 1024 * 1024

    def __init__(self, data_dir: str, size_limit: int = DEFAULT_SIZE_LIMIT) -> None:
        self._data_dir = data_dir
        self._size_limit = size_limit

        store_dir = os.path.join(data_dir, 'activities')
        os.makedirs(store_dir, exist_ok=True)

        # Items must never be evicted by size pressure, only by expiry
        self._cache = Cache(store_dir, size_limit=size_limit, eviction_policy='none')

        logger.debug(f"ActivityStore initialized at {store_dir}")

    def _make_counter_key(self, namespace: str) -> Tuple[str, str]:
        """Generate the sequence counter key for a namespace."""
        return ('__sequence__', namespace)

    def _make_item_key(self, namespace: str, sequence: int) -> str:
        """Generate the storage key for a new item."""
        return f"{namespace}.{sequence:012d}"

    def create(self, namespace: str, item: Dict[str, Any]) -> Optional[str]:
        """
        Store a new item under namespace and return its key.

        The key is copied into the stored item as item['key'].

        Args:
            namespace: Queue namespace
            item: Item dict (not modified)

        Returns:
            The assigned key. diskcache writes are synchronous, so this store
            always acknowledges the write.
        """
        sequence = self._cache.incr(self._make_counter_key(namespace))
        key = self._make_item_key(namespace, sequence)
        stored = dict(item)
        stored['key'] = key
        self._cache.set(key, stored)
        logger.debug(f"Created {key}")
        return key

    def read_all(self, namespace: str) -> List[Tuple[str, Any]]:
        """
        Read every live entry under namespace.

        Returns:
            List of (key, value) tuples in insertion order. Values are returned
            as stored, so malformed entries come back unchanged.
        """
        prefix = f"{namespace}."
        entries = []
        for key in list(self._cache):
            if not isinstance(key, str) or not key.startswith(prefix):
                continue
            value = self._cache.get(key, default=_MISSING)
            if value is _MISSING:
                # Expired or deleted since iteration started
                continue
            entries.append((key, value))
        return entries

    def count(self, namespace: str) -> int:
        """Number of live entries under namespace."""
        return len(self.read_all(namespace))

    def get(self, key: str) -> Any:
        """Return the stored value for key, or None if absent/expired."""
        return self._cache.get(key)

    def write(self, key: str, item: Any) -> None:
        """Replace the value stored at key."""
        self._cache.set(key, item)

    def delete(self, key: str) -> bool:
        """Delete key. Returns True if it existed."""
        return self._cache.delete(key)

    def set_expiry(self, key: str, seconds: Optional[float]) -> bool:
        """
        Set the time-to-live of an existing key.

        Args:
            key: Storage key
            seconds: Seconds until the entry expires (None = never)

        Returns:
            True if the key existed and was updated
        """
        return self._cache.touch(key, expire=seconds)

    def clear(self) -> None:
        """Remove every entry, including sequence counters."""
        self._cache.clear()
        logger.info("Activity store cleared")

    def close(self) -> None:
        """Close the underlying cache connection."""
        self._cache.close()
        logger.debug("Activity store closed")

    def __repr__(self) -> str:
        return f"ActivityStore(data_dir={self._data_dir!r})"
