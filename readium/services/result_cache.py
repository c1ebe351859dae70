"""In-process cache of rendered articles keyed by request path.

The default policy is deliberately crude: once the mapping has grown past
``max_entries`` the next insert wipes it completely. ``eviction="lru"``
swaps in a ``cachetools.LRUCache`` that drops one entry at a time.

With the default ``locking="global"`` a single lock is held for the whole
lookup, fetch, extract, insert and hit-count sequence, so a slow upstream
blocks every other request. ``locking="per_path"`` keeps the map under a
short lock and only serializes work for the same path.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, MutableMapping

import structlog
from cachetools import LRUCache

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ENTRIES = 200

EVICTION_FLUSH = "flush"
EVICTION_LRU = "lru"
EVICTION_POLICIES = (EVICTION_FLUSH, EVICTION_LRU)

LOCKING_GLOBAL = "global"
LOCKING_PER_PATH = "per_path"
LOCKING_STRATEGIES = (LOCKING_GLOBAL, LOCKING_PER_PATH)

FetchAndExtract = Callable[[str], tuple[int, bytes]]


@dataclass
class CacheEntry:
    status_code: int
    content: bytes
    hits: int = 0


@dataclass(frozen=True)
class ServeResult:
    status_code: int
    content: bytes
    hits: int
    cache_size: int


class _PathLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class ResultCache:
    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        *,
        eviction: str = EVICTION_FLUSH,
        locking: str = LOCKING_GLOBAL,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if eviction not in EVICTION_POLICIES:
            raise ValueError(f"Unsupported eviction policy: {eviction!r}")
        if locking not in LOCKING_STRATEGIES:
            raise ValueError(f"Unsupported locking strategy: {locking!r}")

        self.max_entries = max_entries
        self.eviction = eviction
        self.locking = locking
        self.flush_count = 0
        self._entries: MutableMapping[str, CacheEntry] = self._new_mapping()
        self._lock = threading.Lock()
        self._path_locks: dict[str, _PathLock] = {}

    def _new_mapping(self) -> MutableMapping[str, CacheEntry]:
        if self.eviction == EVICTION_LRU:
            return LRUCache(maxsize=self.max_entries)
        return {}

    def serve(self, path: str, fetch_and_extract: FetchAndExtract) -> ServeResult:
        """Return the cached rendering of ``path``, producing it on a miss.

        ``fetch_and_extract`` runs only on a miss; its exceptions propagate
        and leave the cache untouched. Every serve bumps the entry's hit
        counter, so the first one reports ``hits == 1``.
        """
        if self.locking == LOCKING_PER_PATH:
            return self._serve_per_path(path, fetch_and_extract)

        with self._lock:
            entry = self._entries.get(path)
            if entry is None:
                logger.info("reader.cache_miss", cache_key=path)
                status_code, content = fetch_and_extract(path)
                entry = self._insert(path, CacheEntry(status_code, content))
            else:
                logger.debug("reader.cache_hit", cache_key=path)
            return self._hit(entry)

    def _serve_per_path(self, path: str, fetch_and_extract: FetchAndExtract) -> ServeResult:
        with self._lock:
            entry = self._entries.get(path)
            if entry is not None:
                logger.debug("reader.cache_hit", cache_key=path)
                return self._hit(entry)

        with self._path_lock(path):
            # Another request may have filled the entry while we waited.
            with self._lock:
                entry = self._entries.get(path)
                if entry is not None:
                    logger.debug("reader.cache_hit", cache_key=path)
                    return self._hit(entry)

            logger.info("reader.cache_miss", cache_key=path)
            status_code, content = fetch_and_extract(path)

            with self._lock:
                entry = self._insert(path, CacheEntry(status_code, content))
                return self._hit(entry)

    @contextmanager
    def _path_lock(self, path: str) -> Iterator[None]:
        with self._lock:
            path_lock = self._path_locks.get(path)
            if path_lock is None:
                path_lock = self._path_locks[path] = _PathLock()
            path_lock.users += 1
        try:
            with path_lock.lock:
                yield
        finally:
            with self._lock:
                path_lock.users -= 1
                if path_lock.users == 0:
                    del self._path_locks[path]

    def _insert(self, path: str, entry: CacheEntry) -> CacheEntry:
        # Caller holds self._lock.
        if self.eviction == EVICTION_FLUSH and len(self._entries) > self.max_entries:
            logger.info("cache.flush", dropped=len(self._entries), max_entries=self.max_entries)
            self._entries.clear()
            self.flush_count += 1
        self._entries[path] = entry
        return entry

    def _hit(self, entry: CacheEntry) -> ServeResult:
        # Caller holds self._lock.
        entry.hits += 1
        return ServeResult(
            status_code=entry.status_code,
            content=entry.content,
            hits=entry.hits,
            cache_size=len(self._entries),
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._entries

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, int | str]:
        with self._lock:
            return {
                "size": len(self._entries),
                "max_entries": self.max_entries,
                "eviction": self.eviction,
                "locking": self.locking,
                "flushes": self.flush_count,
            }


__all__ = [
    "CacheEntry",
    "ResultCache",
    "ServeResult",
    "DEFAULT_MAX_ENTRIES",
    "EVICTION_FLUSH",
    "EVICTION_LRU",
    "LOCKING_GLOBAL",
    "LOCKING_PER_PATH",
]
