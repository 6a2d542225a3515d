"""Read-through cache of active resumption contexts, keyed by project."""

import threading
from dataclasses import dataclass

from concord.store.models import ResumptionContext


@dataclass
class CacheStats:
    """Cache counters."""

    size: int = 0
    hits: int = 0
    misses: int = 0
    invalidations: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


class ContextCache:
    """Process-local mirror of each project's active context.

    Never authoritative: the store is the source of truth. Entries are
    replaced on every write and dropped wholesale on sweeps and clears.
    """

    def __init__(self):
        self._entries: dict[str, ResumptionContext] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._invalidations = 0

    def get(self, project_id: str) -> ResumptionContext | None:
        with self._lock:
            entry = self._entries.get(project_id)
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            return entry.model_copy(deep=True)

    def put(self, context: ResumptionContext) -> None:
        with self._lock:
            self._entries[context.project_id] = context.model_copy(deep=True)

    def invalidate(self, project_id: str) -> None:
        with self._lock:
            if self._entries.pop(project_id, None) is not None:
                self._invalidations += 1

    def clear(self) -> None:
        with self._lock:
            self._invalidations += len(self._entries)
            self._entries.clear()

    def projects(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                invalidations=self._invalidations,
            )
