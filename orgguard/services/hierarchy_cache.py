"""Short-lived, process-wide cache of active direct-report sets keyed by manager id."""

import logging
import threading
import time
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from orgguard.core.config import Settings

logger = logging.getLogger(__name__)


class HierarchyCache:
    """
    TTL cache for direct reports. Entries expire ttl_sec after they were stored and are
    dropped early by invalidate() when a manager reassignment or (de)activation touches them.

    Every invalidate() or clear() bumps generation. A reader records generation before its
    store query and passes it to put(); the put is dropped if a write happened in between,
    so a read that started before a reassignment cannot restore the old report set.
    """

    def __init__(self, ttl_sec: float, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl_sec <= 0:
            raise ValueError("ttl_sec must be positive")
        self.ttl_sec = ttl_sec
        self._clock = clock
        self._entries: dict[str, tuple[float, frozenset[str]]] = {}
        self._generation = 0
        self._lock = threading.Lock()

    def get(self, manager_id: str) -> frozenset[str] | None:
        """Return the cached set, or None when absent or expired."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(manager_id)
            if entry is None:
                return None
            expires_at, reports = entry
            if expires_at <= now:
                del self._entries[manager_id]
                return None
            return reports

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def put(self, manager_id: str, reports: Iterable[str], generation: int | None = None) -> bool:
        """Store reports for manager_id. Returns False if generation is stale and nothing was stored."""
        expires_at = self._clock() + self.ttl_sec
        with self._lock:
            if generation is not None and generation != self._generation:
                return False
            self._entries[manager_id] = (expires_at, frozenset(reports))
            return True

    def invalidate(self, *manager_ids: str | None) -> None:
        """Drop entries for the given managers. None values are ignored."""
        with self._lock:
            self._generation += 1
            for manager_id in manager_ids:
                if manager_id is not None:
                    self._entries.pop(manager_id, None)
        logger.debug("Hierarchy cache invalidated", extra={"manager_ids": list(manager_ids)})

    def clear(self) -> None:
        with self._lock:
            self._generation += 1
            self._entries.clear()


_cache: HierarchyCache | None = None
_cache_lock = threading.Lock()


def get_hierarchy_cache(settings: "Settings") -> HierarchyCache | None:
    """Return the shared cache, or None when HIERARCHY_CACHE_TTL_SEC is 0 (caching disabled)."""
    global _cache
    ttl = settings.HIERARCHY_CACHE_TTL_SEC
    if ttl <= 0:
        return None
    with _cache_lock:
        if _cache is None or _cache.ttl_sec != ttl:
            _cache = HierarchyCache(ttl)
        return _cache
