"""Per-category listing snapshots with a TTL and a persisted copy."""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Iterable, List, Optional

from .config import CACHE_MAX_ENTRIES
from .errors import CacheIOError
from .storage import BlobStore
from .types import CacheEntry, Category

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def now_ms() -> float:
    return time.time() * 1000.0


def cache_key(categories: Iterable[Category]) -> str:
    slugs = sorted({c.slug for c in categories})
    return "+".join(slugs)


class CategoryCache:
    """In-memory LRU of ``CacheEntry`` backed by a blob store.

    Evicting an entry only drops it from memory; the persisted copy stays
    and is re-validated against the TTL when it is loaded again.
    """

    def __init__(
        self,
        store: Optional[BlobStore],
        namespace: str,
        ttl_ms: float,
        capacity: int = CACHE_MAX_ENTRIES,
        clock: Clock = now_ms,
    ) -> None:
        self.store = store
        self.namespace = namespace
        self.ttl_ms = ttl_ms
        self.capacity = capacity
        self.clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="cache-persist")
        self._pending: List[Future] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def is_valid(self, entry: Optional[CacheEntry]) -> bool:
        if entry is None:
            return False
        return (self.clock() - entry.created_at) < self.ttl_ms

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(key)
        if entry is not None:
            return entry

        entry = self._load(key)
        if entry is not None:
            with self._lock:
                self._remember(key, entry)
        return entry

    def get_valid(self, key: str) -> Optional[CacheEntry]:
        entry = self.get(key)
        if self.is_valid(entry):
            return entry
        if entry is not None:
            logger.info("Cache entry %s is stale", key)
        return None

    def put(self, key: str, entry: CacheEntry) -> None:
        with self._lock:
            self._remember(key, entry)
        if self.store is None:
            return
        future = self._executor.submit(self._persist, key, entry)
        with self._lock:
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)

    def flush(self, timeout: Optional[float] = None) -> None:
        """Block until queued writes have finished."""
        with self._lock:
            pending = list(self._pending)
        for future in pending:
            future.exception(timeout=timeout)

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def _remember(self, key: str, entry: CacheEntry) -> None:
        self._entries.pop(key, None)
        self._entries[key] = entry
        while len(self._entries) > self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted %s from the in-memory cache", evicted)

    def _load(self, key: str) -> Optional[CacheEntry]:
        if self.store is None:
            return None
        try:
            raw = self.store.load(self.namespace, key)
        except CacheIOError as error:
            logger.warning("Unable to read cache entry %s: %s", key, error)
            return None
        if raw is None:
            return None
        try:
            return CacheEntry.from_dict(json.loads(raw.decode("utf-8")))
        except (ValueError, KeyError, TypeError) as error:
            logger.warning("Ignoring corrupt cache entry %s: %s", key, error)
            return None

    def _persist(self, key: str, entry: CacheEntry) -> None:
        try:
            payload = json.dumps(entry.to_dict(), ensure_ascii=False).encode("utf-8")
            self.store.save(self.namespace, key, payload)
        except (CacheIOError, TypeError, ValueError) as error:
            logger.warning("Failed to save cache for %s: %s", key, error)
        else:
            logger.debug("Persisted %d records for %s", len(entry.records), key)
